# hyperchain

Building blocks for a DAG-based blockchain node, in plain Python:

- **`hyperchain.config`**: node configuration (`Config`, `LoggingConfig`,
  `P2pConfig`). It is read from TOML files (`Config.load`), from environment
  variables (`Config.from_env`) or from a dict (`Config.from_dict`), and written
  back with `Config.save`. Validation checks the multiaddresses (`Multiaddr.parse`),
  the genesis validator, and the mining and mesh parameters.
- **`hyperchain.emission`**: the block reward schedule (`Emission`). The initial
  reward shrinks by 3% every halving period, is split across chains, and counts
  against a total supply cap.
- **`hyperchain.blake3`**: a pure-Python BLAKE3 with extendable output
  (`blake3_digest`).
- **`hyperchain.ledger`**: a linear ledger (`Blockchain`, `Block`, `Transaction`,
  `ShardManager`). Transactions are signed with Ed25519, blocks are mined by
  proof of work (`mine_block`), and hashing uses a BLAKE3 digest mixed through a
  matrix product and then Keccak-256 (`reliable_hashing_algorithm`).
- **`hyperchain.primitives`**: Keccak-256 (`keccak256`), Merkle roots
  (`compute_merkle_root`), block signing digests (`signing_digest`), proof-of-work
  header hashes (`pow_hash`), hash-based signatures (`LatticeSignature`), amount
  commitments (`HomomorphicEncrypted`), cross-chain swaps (`CrossChainSwap`,
  `SwapState`) and toy smart contracts (`SmartContract`).
- **`hyperchain.registry`**: validator stakes, stake-weighted selection,
  governance proposals and voting, and bookkeeping for swaps and contracts
  (`ChainRegistry`, `GovernanceProposal`).
- **`hyperchain.shards`**: chain load tracking, dynamic sharding, difficulty
  retargeting and block finalization (`ShardState`, `BlockRecord`).
- **`hyperchain.monitor`**: a console monitor that polls node status endpoints
  (`MonitoredNode`, `render_report`, and the `hyperchain-monitor` command).

## Installation

```console
pip install .
```

To run the test suite:

```console
pip install ".[test]"
pytest
```

## Configuration

```python
from hyperchain.config import Config, ConfigError

config = Config.load("config.toml")   # parses and validates
config.save("config.copy.toml")

defaults = Config.from_env()          # P2P_ADDRESS, API_ADDRESS, PEERS, ...
try:
    defaults.validate()
except ConfigError as exc:
    print(f"bad configuration: {exc}")
```

Problems are raised as subclasses of `ConfigError`: `InvalidAddressError`,
`InvalidValidatorError`, `InvalidLogLevelError`, `InvalidParameterError` and
`ValidationError`. Read and parse failures raise `ConfigError` itself.

## Emission schedule

```python
from hyperchain.emission import Emission, EmissionError

emission = Emission.default_with_timestamp(genesis_timestamp=1_700_000_000, num_chains=2)
reward = emission.calculate_reward(1_700_000_060)   # per-chain reward, at least 1
emission.update_supply(reward)                      # EmissionError once the cap is hit
```

## Ledger and mining

```python
from hyperchain.ledger import Blockchain, Transaction, reliable_hashing_algorithm

digest = reliable_hashing_algorithm(b"test_input")   # 32 bytes
chain = Blockchain(difficulty=1, target_block_time=60)
block = chain.add_block([], reward_address="reward_addr")
```

`Blockchain.add_block` checks every transaction, mines the block and appends it.
It raises `LedgerError` on an invalid batch, and also when mining gives up after
one million nonces. Blocks are kept in memory. The latest block is also written
as JSON to the mapping passed as `storage`, which is a plain dict by default.

## Primitives

```python
from hyperchain.primitives import keccak256, LatticeSignature, compute_merkle_root

print(keccak256(b"hello").hex())
print(compute_merkle_root(["tx1", "tx2", "tx3"]))

signer = LatticeSignature.generate(b"placeholder")
signature = signer.sign(b"message")
assert signer.verify(b"message", signature)
```

## Monitoring a testnet

`hyperchain-monitor` clears the screen, polls the status endpoint of each node
and prints a table of peer IDs and block counts. It repeats every five seconds
until you press Ctrl+C:

```console
hyperchain-monitor
hyperchain-monitor --node "Local=http://localhost:9000/status" --interval 2 --iterations 3
```

Options:

- `--node NAME=URL`: a node to poll. It can be repeated. Without it, a built-in
  list of three nodes is used.
- `--interval`: the number of seconds between refreshes.
- `--iterations`: stop after this many refreshes.

## What this package does not do

The package provides the pieces of a node, not a running node. It has:

- no peer-to-peer networking;
- no HTTP API server;
- no wallet or key management;
- no persistent block database;
- no command that starts a node.

`ChainRegistry` and `ShardState` hold their state in memory only.