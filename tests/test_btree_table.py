from kiplsm.btree_table import BTreeTable
from kiplsm.table import Seek


def _data():
    return [
        (b"1", None),
        (b"2", b"1"),
        (b"3", None),
        (b"4", None),
        (b"5", b"2"),
        (b"6", None),
    ]


def test_iterator():
    vec = _data()
    table = BTreeTable(0, 0, vec)
    it = table.iter()

    for item in vec:
        assert it.try_next() == item
    assert it.try_next() is None

    it.seek(Seek.first())
    assert it.try_next() == vec[0]

    it.seek(Seek.backward(b"3"))
    assert it.try_next() == vec[2]

    it.seek(Seek.last())
    assert it.try_next() is None


def test_query_and_properties():
    table = BTreeTable(2, 7, _data())
    assert table.query(b"5") == (b"5", b"2")
    assert table.query(b"9") is None
    assert len(table) == len(_data())
    assert table.gen() == 7
    assert table.level() == 2
    assert table.size_of_disk() == 0


def test_later_duplicate_overrides():
    table = BTreeTable(0, 1, [(b"k", b"old"), (b"k", None)])
    assert table.query(b"k") == (b"k", None)
    assert len(table) == 2
    it = table.iter()
    assert it.try_next() == (b"k", None)
    assert it.try_next() is None


def test_unsorted_input_iterates_sorted():
    table = BTreeTable(0, 1, [(b"c", None), (b"a", b"x"), (b"b", None)])
    it = table.iter()
    keys = []
    while (item := it.try_next()) is not None:
        keys.append(item[0])
    assert keys == [b"a", b"b", b"c"]
    assert it.is_valid()


def test_seek_beyond_last_key():
    table = BTreeTable(0, 1, _data())
    it = table.iter()
    it.seek(Seek.backward(b"7"))
    assert it.try_next() is None