"""Guild configuration records, typed settings helpers and the storage interface."""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from fractions import Fraction
from typing import Any

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

ZERO_TIME_TEXT = "0001-01-01T00:00:00Z"
_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_TIME_RE = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})[Tt](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?(Z|z|[+-]\d{2}:\d{2})"
)
_INT_RE = re.compile(r"[+-]?[0-9]+")
_DURATION_COMPONENT = re.compile(r"([0-9]*)(?:\.([0-9]*))?(ns|us|µs|μs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}
_BOOL_TEXT = {
    "1": True, "t": True, "T": True, "TRUE": True, "true": True, "True": True,
    "0": False, "f": False, "F": False, "FALSE": False, "false": False, "False": False,
}


class StorageError(Exception):
    """Base class for configuration storage errors."""


class ConcurrencyConflictError(StorageError):
    """Raised when a conditional write loses against a concurrent modification."""

    def __init__(self, message: str = "concurrent modification detected") -> None:
        super().__init__(message)


class GuildConfigNotFoundError(StorageError):
    """Raised when no configuration exists for a guild."""

    def __init__(self, guild_id: str | None = None) -> None:
        self.guild_id = guild_id
        message = "guild config not found"
        if guild_id is not None:
            message += f": {guild_id}"
        super().__init__(message)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _format_time(value: datetime | None) -> str:
    if value is None:
        return ZERO_TIME_TEXT
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    text = (
        f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
        f"T{value.hour:02d}:{value.minute:02d}:{value.second:02d}"
    )
    if value.microsecond:
        text += "." + f"{value.microsecond:06d}".rstrip("0")
    return text + "Z"


def _parse_time(text: Any) -> datetime | None:
    if text is None:
        return None
    if not isinstance(text, str):
        raise ValueError(f"invalid timestamp {text!r}")
    match = _TIME_RE.fullmatch(text)
    if match is None:
        raise ValueError(f"invalid timestamp {text!r}")
    year, month, day, hour, minute, second, fraction, zone = match.groups()
    micros = int((fraction or "")[:6].ljust(6, "0"))
    if zone in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if zone[0] == "-" else 1
        offset = timedelta(hours=int(zone[1:3]), minutes=int(zone[4:6]))
        tz = timezone(sign * offset)
    parsed = datetime(
        int(year), int(month), int(day), int(hour), int(minute), int(second), micros, tzinfo=tz
    )
    if parsed == _ZERO_TIME:
        return None
    return parsed.astimezone(timezone.utc)


def parse_bool(text: str) -> bool:
    """Parse the boolean spellings accepted for settings; raise ValueError otherwise."""
    try:
        return _BOOL_TEXT[text]
    except KeyError:
        raise ValueError(f"invalid boolean {text!r}") from None


def _parse_int(text: str) -> int:
    if _INT_RE.fullmatch(text) is None:
        raise ValueError(f"invalid integer {text!r}")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"integer out of range {text!r}")
    return value


def _duration_from_ns(ns: int) -> timedelta:
    micros = abs(ns) // 1000
    return timedelta(microseconds=-micros if ns < 0 else micros)


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``"1h30m"``, ``"1.5s"`` or ``"300ms"``."""
    rest = text
    negative = False
    if rest and rest[0] in "+-":
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ValueError(f"invalid duration {text!r}")
    total = Fraction(0)
    pos = 0
    while pos < len(rest):
        match = _DURATION_COMPONENT.match(rest, pos)
        if match is None or not (match.group(1) or match.group(2)):
            raise ValueError(f"invalid duration {text!r}")
        whole, fraction, unit = match.groups()
        amount = Fraction(int(whole or "0"))
        if fraction:
            amount += Fraction(int(fraction), 10 ** len(fraction))
        total += amount * _DURATION_UNITS[unit]
        pos = match.end()
    ns = int(total)
    limit = -_INT64_MIN if negative else _INT64_MAX
    if ns > limit:
        raise ValueError(f"invalid duration {text!r}")
    return _duration_from_ns(-ns if negative else ns)


def _with_fraction(amount: int, scale: int) -> str:
    whole, frac = divmod(amount, scale)
    if not frac:
        return str(whole)
    digits = f"{frac:0{len(str(scale)) - 1}d}".rstrip("0")
    return f"{whole}.{digits}"


def format_duration(value: timedelta) -> str:
    """Render a duration in the compact ``"1h2m3.5s"`` form."""
    ns = ((value.days * 86400 + value.seconds) * 1_000_000 + value.microseconds) * 1000
    if ns == 0:
        return "0s"
    sign = "-" if ns < 0 else ""
    magnitude = abs(ns)
    if magnitude < 1_000_000_000:
        for unit, scale in (("ns", 1), ("µs", 1_000), ("ms", 1_000_000)):
            if magnitude < scale * 1000:
                return sign + _with_fraction(magnitude, scale) + unit
    seconds, frac_ns = divmod(magnitude, 1_000_000_000)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    text = _with_fraction(secs * 1_000_000_000 + frac_ns, 1_000_000_000) + "s"
    if hours:
        text = f"{hours}h{minutes}m{text}"
    elif minutes:
        text = f"{minutes}m{text}"
    return sign + text


@dataclass
class GuildQueryState:
    """Per-guild progress of one query."""

    guild_id: str
    query_id: str
    last_processed_block: int = 0
    last_processed_tx_index: int = 0
    is_executing: bool = False
    last_run_timestamp: datetime | None = None
    next_run_timestamp: datetime | None = None
    enabled: bool = False
    state: dict[str, Any] = field(default_factory=dict)
    error_count: int = 0
    last_error: str = ""
    last_error_time: datetime | None = None

    def update_last_processed_block(self, height: int) -> None:
        """Advance to a later block, resetting the transaction index."""
        if height > self.last_processed_block:
            self.last_processed_block = height
            self.last_processed_tx_index = 0

    def update_processing_position(self, block_height: int, tx_index: int) -> None:
        """Advance the block height and transaction index, never moving back."""
        if block_height > self.last_processed_block:
            self.last_processed_block = block_height
            self.last_processed_tx_index = tx_index
        elif block_height == self.last_processed_block and tx_index > self.last_processed_tx_index:
            self.last_processed_tx_index = tx_index

    def processing_position(self) -> tuple[int, int]:
        """Return ``(block_height, tx_index)``."""
        return self.last_processed_block, self.last_processed_tx_index

    def update_run_timestamp(self, interval: timedelta) -> None:
        """Record a run now and schedule the next one after ``interval``."""
        self.last_run_timestamp = _now()
        self.next_run_timestamp = self.last_run_timestamp + interval

    def record_error(self, error: BaseException | str) -> None:
        self.error_count += 1
        self.last_error = str(error)
        self.last_error_time = _now()

    def clear_errors(self) -> None:
        self.error_count = 0
        self.last_error = ""
        self.last_error_time = None

    def is_ready(self) -> bool:
        """True when enabled, not executing and past its next run time."""
        if not self.enabled or self.is_executing:
            return False
        return self.next_run_timestamp is None or _now() > self.next_run_timestamp

    def set_state(self, key: str, value: Any) -> None:
        self.state[key] = value

    def get_state(self, key: str) -> Any:
        """Return the stored value, or None when the key is absent."""
        return self.state.get(key)

    def get_state_string(self, key: str) -> str | None:
        value = self.state.get(key)
        return value if isinstance(value, str) else None

    def get_state_int(self, key: str) -> int | None:
        value = self.state.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return None

    def copy(self) -> GuildQueryState:
        return replace(self, state=dict(self.state))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "guild_id": self.guild_id,
            "query_id": self.query_id,
            "last_processed_block": self.last_processed_block,
            "last_processed_tx_index": self.last_processed_tx_index,
            "is_executing": self.is_executing,
            "last_run_timestamp": _format_time(self.last_run_timestamp),
            "next_run_timestamp": _format_time(self.next_run_timestamp),
            "enabled": self.enabled,
        }
        if self.state:
            data["state"] = dict(self.state)
        data["error_count"] = self.error_count
        if self.last_error:
            data["last_error"] = self.last_error
        data["last_error_time"] = _format_time(self.last_error_time)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GuildQueryState:
        return cls(
            guild_id=data.get("guild_id") or "",
            query_id=data.get("query_id") or "",
            last_processed_block=int(data.get("last_processed_block") or 0),
            last_processed_tx_index=int(data.get("last_processed_tx_index") or 0),
            is_executing=bool(data.get("is_executing", False)),
            last_run_timestamp=_parse_time(data.get("last_run_timestamp")),
            next_run_timestamp=_parse_time(data.get("next_run_timestamp")),
            enabled=bool(data.get("enabled", False)),
            state=dict(data.get("state") or {}),
            error_count=int(data.get("error_count") or 0),
            last_error=data.get("last_error") or "",
            last_error_time=_parse_time(data.get("last_error_time")),
        )


@dataclass
class GuildConfig:
    """Configuration of one chat guild."""

    guild_id: str
    admin_role_id: str = ""
    verified_role_id: str = ""
    settings: dict[str, str] = field(default_factory=dict)
    query_states: dict[str, GuildQueryState] = field(default_factory=dict)
    monitored_realms: list[str] = field(default_factory=list)
    last_updated: datetime | None = None
    # Managed by the storage layer; never serialized.
    etag: str = ""

    def _touch(self) -> None:
        self.last_updated = _now()

    def get_string(self, key: str, default: str) -> str:
        return self.settings.get(key, default)

    def set_string(self, key: str, value: str) -> None:
        self.settings[key] = value
        self._touch()

    def get_bool(self, key: str, default: bool) -> bool:
        try:
            return parse_bool(self.settings[key])
        except (KeyError, ValueError):
            return default

    def set_bool(self, key: str, value: bool) -> None:
        self.set_string(key, "true" if value else "false")

    def get_int(self, key: str, default: int) -> int:
        try:
            return _parse_int(self.settings[key])
        except (KeyError, ValueError):
            return default

    def set_int(self, key: str, value: int) -> None:
        self.set_string(key, str(value))

    def get_duration(self, key: str, default: timedelta) -> timedelta:
        try:
            return parse_duration(self.settings[key])
        except (KeyError, ValueError):
            return default

    def set_duration(self, key: str, value: timedelta) -> None:
        self.set_string(key, format_duration(value))

    def has_admin_role(self) -> bool:
        return self.admin_role_id != ""

    def has_verified_role(self) -> bool:
        return self.verified_role_id != ""

    def get_query_state(self, query_id: str) -> GuildQueryState | None:
        return self.query_states.get(query_id)

    def set_query_state(self, query_id: str, state: GuildQueryState) -> None:
        self.query_states[query_id] = state
        self._touch()

    def ensure_query_state(self, query_id: str, enabled: bool) -> GuildQueryState:
        """Return the query's state, creating it when missing."""
        state = self.get_query_state(query_id)
        if state is not None:
            return state
        state = new_guild_query_state(self.guild_id, query_id, enabled)
        self.set_query_state(query_id, state)
        return state

    def enable_query(self, query_id: str) -> None:
        state = self.get_query_state(query_id)
        if state is not None:
            state.enabled = True
            self._touch()

    def disable_query(self, query_id: str) -> None:
        state = self.get_query_state(query_id)
        if state is not None:
            state.enabled = False
            self._touch()

    def enabled_queries(self) -> list[str]:
        return [query_id for query_id, state in self.query_states.items() if state.enabled]

    def delete_query_state(self, query_id: str) -> None:
        self.query_states.pop(query_id, None)
        self._touch()

    def copy(self) -> GuildConfig:
        """Return a deep copy that shares no mutable containers."""
        return replace(
            self,
            settings=dict(self.settings),
            query_states={key: state.copy() for key, state in self.query_states.items()},
            monitored_realms=list(self.monitored_realms),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"guild_id": self.guild_id}
        if self.admin_role_id:
            data["admin_role_id"] = self.admin_role_id
        if self.verified_role_id:
            data["verified_role_id"] = self.verified_role_id
        if self.settings:
            data["settings"] = dict(self.settings)
        if self.query_states:
            data["query_states"] = {key: state.to_dict() for key, state in self.query_states.items()}
        if self.monitored_realms:
            data["monitored_realms"] = list(self.monitored_realms)
        data["last_updated"] = _format_time(self.last_updated)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GuildConfig:
        query_states = {
            key: GuildQueryState.from_dict(value)
            for key, value in (data.get("query_states") or {}).items()
            if value is not None
        }
        return cls(
            guild_id=data.get("guild_id") or "",
            admin_role_id=data.get("admin_role_id") or "",
            verified_role_id=data.get("verified_role_id") or "",
            settings=dict(data.get("settings") or {}),
            query_states=query_states,
            monitored_realms=list(data.get("monitored_realms") or []),
            last_updated=_parse_time(data.get("last_updated")),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"), ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str | bytes) -> GuildConfig:
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("guild config JSON must be an object")
        return cls.from_dict(data)


@dataclass
class GlobalConfig:
    """Bot-wide state shared by all guilds."""

    config_id: str = "global"
    last_processed_block_height: int = 0
    last_updated: datetime | None = None
    etag: str = ""

    def copy(self) -> GlobalConfig:
        return replace(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "config_id": self.config_id,
            "last_processed_block_height": self.last_processed_block_height,
            "last_updated": _format_time(self.last_updated),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GlobalConfig:
        return cls(
            config_id=data.get("config_id") or "",
            last_processed_block_height=int(data.get("last_processed_block_height") or 0),
            last_updated=_parse_time(data.get("last_updated")),
        )


class ConfigStore(ABC):
    """Storage for guild and global configuration."""

    @abstractmethod
    def get(self, guild_id: str) -> GuildConfig:
        """Return the guild's config; raise GuildConfigNotFoundError when absent."""

    @abstractmethod
    def set(self, guild_id: str, config: GuildConfig) -> None:
        """Store the guild's config."""

    @abstractmethod
    def delete(self, guild_id: str) -> None:
        """Remove the guild's config; absent guilds are not an error."""

    @abstractmethod
    def get_global(self) -> GlobalConfig:
        """Return the global config, or a default one."""

    @abstractmethod
    def set_global(self, config: GlobalConfig) -> None:
        """Store the global config."""


def new_guild_config(guild_id: str) -> GuildConfig:
    return GuildConfig(guild_id=guild_id, last_updated=_now())


def new_guild_query_state(guild_id: str, query_id: str, enabled: bool) -> GuildQueryState:
    return GuildQueryState(
        guild_id=guild_id,
        query_id=query_id,
        next_run_timestamp=_now(),
        enabled=enabled,
    )


def default_global_config() -> GlobalConfig:
    return GlobalConfig(config_id="global", last_processed_block_height=0, last_updated=_now())