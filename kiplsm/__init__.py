"""Building blocks of an LSM-tree key-value storage engine: tables, blocks, filters and caches."""

__version__ = "0.1.0"