"""Building blocks for a DAG-based blockchain: config, emission, hashing, ledger, registry, sharding and a monitor."""

__version__ = "0.2.1"

__all__ = [
    "blake3",
    "config",
    "emission",
    "ledger",
    "monitor",
    "primitives",
    "registry",
    "shards",
]