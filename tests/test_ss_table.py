import struct

import pytest

from kiplsm.block import BlockOptions
from kiplsm.kernel import DataEmptyError
from kiplsm.lru_cache import ShardingLruCache
from kiplsm.ss_table import SSTable
from kiplsm.table import Seek

TABLE_VALUE = b"If you shed tears when you miss the sun, you also miss the stars."
ITER_VALUE = b"What you are you do not see, what you see is your shadow."
TIMES = 2333


def _cache():
    return ShardingLruCache(1024, 16)


def _create(path, data, level=0, gen=1, options=None):
    return SSTable.create(path, _cache(), gen, data, level, options or BlockOptions(), 0.05)


@pytest.fixture
def table_data():
    return [(struct.pack(">I", i), TABLE_VALUE) for i in range(TIMES)]


@pytest.fixture
def iter_data():
    return [(b"KipDB-" + struct.pack(">I", i), ITER_VALUE) for i in range(TIMES)]


def test_ss_table_query_and_reload(tmp_path, table_data):
    path = tmp_path / "1.sst"
    with _create(path, table_data, level=1) as table:
        for key, _ in table_data:
            assert table.query(key) == (key, TABLE_VALUE)

    with SSTable.load_from_file(path, _cache()) as loaded:
        for key, _ in table_data:
            assert loaded.query(key)[1] == TABLE_VALUE
        assert loaded.gen() == 1
        assert loaded.level() == 1
        assert len(loaded) == TIMES


def test_metadata_matches_file(tmp_path, table_data):
    path = tmp_path / "7.sst"
    with _create(path, table_data, level=2, gen=7) as table:
        assert table.size_of_disk() == path.stat().st_size
        assert len(table) == TIMES
        assert table.gen() == 7
        assert table.level() == 2


def test_query_missing_key(tmp_path, table_data):
    with _create(tmp_path / "1.sst", table_data) as table:
        assert table.query(b"missing-key") is None


def test_deleted_value_is_found_as_none(tmp_path):
    data = [(b"a", b"1"), (b"b", None), (b"c", b"3")]
    with _create(tmp_path / "2.sst", data) as table:
        assert table.query(b"b") == (b"b", None)
        assert table.query(b"c") == (b"c", b"3")


def test_empty_data_rejected(tmp_path):
    with pytest.raises(DataEmptyError):
        _create(tmp_path / "3.sst", [])


def test_load_requires_generation_name(tmp_path, table_data):
    path = tmp_path / "1.sst"
    _create(path, table_data).close()
    renamed = tmp_path / "table.sst"
    path.rename(renamed)
    with pytest.raises(ValueError):
        SSTable.load_from_file(renamed, _cache())


def test_iterator(tmp_path, iter_data):
    with _create(tmp_path / "1.sst", iter_data) as table:
        iterator = table.iter()

        for kv in iter_data:
            assert iterator.try_next() == kv

        for i in reversed(range(TIMES - 1)):
            assert iterator.try_prev() == iter_data[i]

        iterator.seek(Seek.backward(iter_data[114][0]))
        assert iterator.try_next() == iter_data[114]

        iterator.seek(Seek.first())
        assert iterator.try_next() == iter_data[0]

        iterator.seek(Seek.last())
        assert iterator.try_next() is None


def test_iterator_small_blocks(tmp_path):
    data = [(b"key-%03d" % i, b"v%d" % i) for i in range(50)]
    options = BlockOptions(block_size=32, data_restart_interval=3)
    with _create(tmp_path / "4.sst", data, options=options) as table:
        assert list(table.iter()) == data
        for key, value in data:
            assert table.query(key) == (key, value)


def test_index_block_entries_cover_data(tmp_path, iter_data):
    with _create(tmp_path / "5.sst", iter_data) as table:
        index_block = table.index_block()
        assert index_block.entry_len() >= 2
        last_index = index_block.find_with_upper(iter_data[-1][0])
        block = table.data_block(last_index)
        assert block.find(iter_data[-1][0]) == (ITER_VALUE, True)


def test_reader_closed_after_close(tmp_path):
    path = tmp_path / "6.sst"
    table = _create(path, [(b"a", b"1")])
    table.close()
    with pytest.raises(ValueError):
        table.data_block(table.index_block().find_with_upper(b"a"))