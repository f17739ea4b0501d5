"""Node configuration: loading, saving, environment defaults and validation."""

from __future__ import annotations

import ipaddress
import os
import re
import sys
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import tomli_w

if sys.version_info >= (3, 11):
    import tomllib as _toml_reader
else:
    import tomli as _toml_reader

__all__ = [
    "ConfigError",
    "InvalidAddressError",
    "InvalidValidatorError",
    "InvalidLogLevelError",
    "InvalidParameterError",
    "ValidationError",
    "Multiaddr",
    "LoggingConfig",
    "P2pConfig",
    "Config",
]

_U32_MAX = 2**32 - 1
_U64_MAX = 2**64 - 1
_USIZE_MAX = _U64_MAX

DEFAULT_GENESIS_VALIDATOR = (
    "2119707c4caf16139cfb5c09c4dcc9bf9cfe6808b571c108d739f49cc14793b9"
)
LOG_LEVELS = ("trace", "debug", "info", "warn", "error")


class ConfigError(Exception):
    """Base class for every configuration problem."""


class InvalidAddressError(ConfigError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Invalid address: {detail}")
        self.detail = detail


class InvalidValidatorError(ConfigError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Invalid validator: {detail}")
        self.detail = detail


class InvalidLogLevelError(ConfigError):
    def __init__(self, level: str) -> None:
        super().__init__(
            f"Invalid log level: {level}, must be trace, debug, info, warn, or error"
        )
        self.level = level


class InvalidParameterError(ConfigError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Invalid parameter: {detail}")
        self.detail = detail


class ValidationError(ConfigError):
    def __init__(self, detail: str) -> None:
        super().__init__(f"Validation error: {detail}")
        self.detail = detail


# --- multiaddress -----------------------------------------------------------

_NO_ARG = frozenset(
    {
        "quic", "quic-v1", "ws", "wss", "tls", "noise", "http", "https",
        "p2p-circuit", "webtransport", "webrtc", "webrtc-direct", "utp", "udt",
    }
)
_WITH_ARG = {
    "ip4": "ip4",
    "ip6": "ip6",
    "tcp": "port",
    "udp": "port",
    "dccp": "port",
    "sctp": "port",
    "dns": "name",
    "dns4": "name",
    "dns6": "name",
    "dnsaddr": "name",
    "ip6zone": "name",
    "p2p": "peer",
    "ipfs": "peer",
    "memory": "u64",
    "unix": "path",
}
_BASE58 = re.compile(r"[1-9A-HJ-NP-Za-km-z]+")
_DIGITS = re.compile(r"[0-9]+")


def _check_argument(protocol: str, kind: str, value: str) -> None:
    if kind == "ip4":
        try:
            ipaddress.IPv4Address(value)
        except ValueError as exc:
            raise ValueError(f"invalid IPv4 address {value!r}") from exc
    elif kind == "ip6":
        if "%" in value:
            raise ValueError(f"invalid IPv6 address {value!r}")
        try:
            ipaddress.IPv6Address(value)
        except ValueError as exc:
            raise ValueError(f"invalid IPv6 address {value!r}") from exc
    elif kind == "port":
        if not _DIGITS.fullmatch(value) or int(value) > 65535:
            raise ValueError(f"invalid port {value!r} for {protocol}")
    elif kind == "u64":
        if not _DIGITS.fullmatch(value) or int(value) > _U64_MAX:
            raise ValueError(f"invalid number {value!r} for {protocol}")
    elif kind == "peer":
        if not _BASE58.fullmatch(value):
            raise ValueError(f"invalid peer id {value!r}")
    elif not value:
        raise ValueError(f"missing value for {protocol}")


@dataclass(frozen=True)
class Multiaddr:
    """A parsed textual multiaddress such as ``/ip4/127.0.0.1/tcp/8000``."""

    components: tuple[tuple[str, str | None], ...] = ()

    @classmethod
    def parse(cls, text: str) -> "Multiaddr":
        """Parse ``text``; raise ``ValueError`` if it is not a valid multiaddress."""
        if text == "":
            return cls()
        if not text.startswith("/"):
            raise ValueError("multiaddress must start with '/'")
        parts = text[1:].split("/")
        components: list[tuple[str, str | None]] = []
        position = 0
        while position < len(parts):
            protocol = parts[position]
            position += 1
            if protocol in _NO_ARG:
                components.append((protocol, None))
                continue
            kind = _WITH_ARG.get(protocol)
            if kind is None:
                raise ValueError(f"unknown protocol {protocol!r}")
            if kind == "path":
                value = "/".join(parts[position:])
                position = len(parts)
            else:
                if position >= len(parts):
                    raise ValueError(f"missing value for {protocol}")
                value = parts[position]
                position += 1
            _check_argument(protocol, kind, value)
            components.append((protocol, value))
        return cls(tuple(components))

    def __str__(self) -> str:
        return "".join(
            f"/{name}" if value is None else f"/{name}/{value}"
            for name, value in self.components
        )


# --- environment helpers ------------------------------------------------------

_UINT_TEXT = re.compile(r"\+?[0-9]+")


def _env_uint(name: str, default: int, maximum: int) -> int:
    text = os.environ.get(name)
    if text is None or not _UINT_TEXT.fullmatch(text):
        return default
    value = int(text)
    return value if value <= maximum else default


def _env_bool(name: str, default: bool) -> bool:
    text = os.environ.get(name)
    if text == "true":
        return True
    if text == "false":
        return False
    return default


# --- deserialisation helpers --------------------------------------------------

def _parse_error(message: str) -> ConfigError:
    return ConfigError(f"TOML parsing error: {message}")


def _take_str(data: dict[str, Any], key: str) -> str:
    if key not in data:
        raise _parse_error(f"missing field `{key}`")
    value = data[key]
    if not isinstance(value, str):
        raise _parse_error(f"invalid type for `{key}`: expected a string")
    return value


def _take_uint(data: dict[str, Any], key: str, maximum: int) -> int:
    if key not in data:
        raise _parse_error(f"missing field `{key}`")
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise _parse_error(f"invalid type for `{key}`: expected an integer")
    if value < 0 or value > maximum:
        raise _parse_error(f"invalid value for `{key}`: {value} out of range")
    return value


def _take_bool(data: dict[str, Any], key: str) -> bool:
    if key not in data:
        raise _parse_error(f"missing field `{key}`")
    value = data[key]
    if not isinstance(value, bool):
        raise _parse_error(f"invalid type for `{key}`: expected a boolean")
    return value


def _take_table(data: dict[str, Any], key: str) -> dict[str, Any] | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise _parse_error(f"invalid type for `{key}`: expected a table")
    return value


# --- configuration ------------------------------------------------------------

@dataclass
class LoggingConfig:
    level: str = "info"

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """Defaults, with ``LOG_LEVEL`` taken from the environment."""
        return cls(level=os.environ.get("LOG_LEVEL", "info"))

    def validate(self) -> None:
        if self.level not in LOG_LEVELS:
            raise InvalidLogLevelError(self.level)


@dataclass
class P2pConfig:
    heartbeat_interval: int = 10000
    mesh_n: int = 4
    mesh_n_low: int = 1
    mesh_n_high: int = 8

    @classmethod
    def from_env(cls) -> "P2pConfig":
        """Defaults, with ``P2P_HEARTBEAT`` taken from the environment."""
        return cls(heartbeat_interval=_env_uint("P2P_HEARTBEAT", 10000, _U64_MAX))


@dataclass
class Config:
    p2p_address: str
    api_address: str
    network_id: str
    peers: list[str]
    genesis_validator: str
    target_block_time: int
    difficulty: int
    max_amount: int
    use_gpu: bool
    zk_enabled: bool
    mining_threads: int
    num_chains: int
    mining_chain_id: int
    local_full_p2p_address: str | None = None
    logging: LoggingConfig = field(default_factory=LoggingConfig.from_env)
    p2p: P2pConfig = field(default_factory=P2pConfig.from_env)

    @classmethod
    def from_env(cls) -> "Config":
        """Build the default configuration, overridden by environment variables."""
        peers = [
            peer.strip()
            for peer in os.environ.get("PEERS", "").split(",")
            if peer.strip()
        ]
        return cls(
            p2p_address=os.environ.get("P2P_ADDRESS", "/ip4/0.0.0.0/tcp/8000"),
            api_address=os.environ.get("API_ADDRESS", "0.0.0.0:9000"),
            network_id="hyperdag-mainnet",
            peers=peers,
            genesis_validator=os.environ.get(
                "GENESIS_VALIDATOR", DEFAULT_GENESIS_VALIDATOR
            ),
            target_block_time=_env_uint("TARGET_BLOCK_TIME", 60000, _U64_MAX),
            difficulty=_env_uint("DIFFICULTY", 100, _U64_MAX),
            max_amount=_env_uint("MAX_AMOUNT", 10_000_000_000, _U64_MAX),
            use_gpu=_env_bool("USE_GPU", False),
            zk_enabled=_env_bool("ZK_ENABLED", False),
            mining_threads=_env_uint("MINING_THREADS", 1, _USIZE_MAX),
            num_chains=_env_uint("NUM_CHAINS", 1, _U32_MAX),
            mining_chain_id=_env_uint("MINING_CHAIN_ID", 0, _U32_MAX),
            local_full_p2p_address=None,
            logging=LoggingConfig.from_env(),
            p2p=P2pConfig.from_env(),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Build a configuration from a parsed TOML document."""
        peers = data.get("peers")
        if "peers" not in data:
            raise _parse_error("missing field `peers`")
        if not isinstance(peers, list) or not all(isinstance(p, str) for p in peers):
            raise _parse_error("invalid type for `peers`: expected a list of strings")

        local_full = data.get("local_full_p2p_address")
        if local_full is not None and not isinstance(local_full, str):
            raise _parse_error(
                "invalid type for `local_full_p2p_address`: expected a string"
            )

        logging_table = _take_table(data, "logging")
        logging_config = (
            LoggingConfig.from_env()
            if logging_table is None
            else LoggingConfig(level=_take_str(logging_table, "level"))
        )

        p2p_table = _take_table(data, "p2p")
        if p2p_table is None:
            p2p_config = P2pConfig.from_env()
        else:
            p2p_config = P2pConfig(
                heartbeat_interval=_take_uint(p2p_table, "heartbeat_interval", _U64_MAX),
                mesh_n=_take_uint(p2p_table, "mesh_n", _USIZE_MAX),
                mesh_n_low=_take_uint(p2p_table, "mesh_n_low", _USIZE_MAX),
                mesh_n_high=_take_uint(p2p_table, "mesh_n_high", _USIZE_MAX),
            )

        return cls(
            p2p_address=_take_str(data, "p2p_address"),
            api_address=_take_str(data, "api_address"),
            network_id=_take_str(data, "network_id"),
            peers=list(peers),
            genesis_validator=_take_str(data, "genesis_validator"),
            target_block_time=_take_uint(data, "target_block_time", _U64_MAX),
            difficulty=_take_uint(data, "difficulty", _U64_MAX),
            max_amount=_take_uint(data, "max_amount", _U64_MAX),
            use_gpu=_take_bool(data, "use_gpu"),
            zk_enabled=_take_bool(data, "zk_enabled"),
            mining_threads=_take_uint(data, "mining_threads", _USIZE_MAX),
            num_chains=_take_uint(data, "num_chains", _U32_MAX),
            mining_chain_id=_take_uint(data, "mining_chain_id", _U32_MAX),
            local_full_p2p_address=local_full,
            logging=logging_config,
            p2p=p2p_config,
        )

    def to_dict(self) -> dict[str, Any]:
        """Return the configuration as plain data, omitting an unset full address."""
        result: dict[str, Any] = {}
        for item in fields(self):
            value = getattr(self, item.name)
            if item.name == "local_full_p2p_address" and value is None:
                continue
            if isinstance(value, (LoggingConfig, P2pConfig)):
                value = asdict(value)
            elif isinstance(value, list):
                value = list(value)
            result[item.name] = value
        return result

    @classmethod
    def load(cls, path: str | os.PathLike[str]) -> "Config":
        """Read, parse and validate a TOML configuration file."""
        try:
            contents = Path(path).read_text(encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"IO error: {exc}") from exc
        try:
            data = _toml_reader.loads(contents)
        except _toml_reader.TOMLDecodeError as exc:
            raise _parse_error(str(exc)) from exc
        config = cls.from_dict(data)
        config.logging.validate()
        config.validate()
        return config

    def save(self, path: str | os.PathLike[str]) -> None:
        """Write the configuration to ``path`` as TOML."""
        try:
            text = tomli_w.dumps(self.to_dict())
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"TOML serialization error: {exc}") from exc
        try:
            Path(path).write_text(text, encoding="utf-8")
        except OSError as exc:
            raise ConfigError(f"IO error: {exc}") from exc

    def validate(self) -> None:
        """Check every field, raising the matching ``ConfigError`` subclass."""
        if not self.p2p_address:
            raise InvalidAddressError("P2P address cannot be empty")
        if self.local_full_p2p_address is not None:
            try:
                Multiaddr.parse(self.local_full_p2p_address)
            except ValueError:
                raise InvalidAddressError(
                    "Invalid local_full_p2p_address format: "
                    f"{self.local_full_p2p_address}"
                ) from None
        if not self.api_address:
            raise InvalidAddressError("API address cannot be empty")
        if not self.genesis_validator:
            raise InvalidValidatorError("Genesis validator cannot be empty")
        try:
            Multiaddr.parse(self.p2p_address)
        except ValueError as exc:
            raise InvalidAddressError(
                f"Invalid P2P address {self.p2p_address}: {exc}"
            ) from None
        for peer in self.peers:
            try:
                Multiaddr.parse(peer)
            except ValueError as exc:
                raise InvalidAddressError(f"Invalid peer address {peer}: {exc}") from None
        if len(self.genesis_validator) != 64 or not _is_hex(self.genesis_validator):
            raise InvalidValidatorError(
                "Genesis validator must be a 64-character hex string representing 32 bytes"
            )
        if self.target_block_time == 0:
            raise InvalidParameterError("Target block time must be positive")
        if self.difficulty == 0:
            raise InvalidParameterError("Difficulty must be positive")
        if self.max_amount == 0:
            raise InvalidParameterError("Max amount must be positive")
        if self.num_chains == 0:
            raise InvalidParameterError("Number of chains must be positive")
        if self.mining_chain_id >= self.num_chains:
            raise InvalidParameterError(
                f"Mining chain ID {self.mining_chain_id} must be less than "
                f"number of chains {self.num_chains}"
            )
        if self.mining_threads == 0 or self.mining_threads > 128:
            raise InvalidParameterError("Mining threads must be between 1 and 128")
        if not self.p2p.mesh_n_low <= self.p2p.mesh_n <= self.p2p.mesh_n_high:
            raise InvalidParameterError(
                "Invalid mesh parameters: must satisfy mesh_n_low <= mesh_n <= mesh_n_high"
            )
        if self.p2p.heartbeat_interval < 100:
            raise InvalidParameterError("P2P heartbeat interval must be at least 100ms")
        if not self.network_id:
            raise ValidationError("network_id cannot be empty")


def _is_hex(text: str) -> bool:
    try:
        bytes.fromhex(text)
    except ValueError:
        return False
    return all(ch in "0123456789abcdefABCDEF" for ch in text)