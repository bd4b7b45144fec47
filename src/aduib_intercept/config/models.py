from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, cast


def _ensure_mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise TypeError(f"{field_name} must be a mapping")
    return cast(Mapping[str, Any], value)


def _coerce_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise TypeError(f"{field_name} must be an int")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        return int(value.strip())
    raise TypeError(f"{field_name} must be an int")


def _coerce_float(value: Any, field_name: str) -> float:
    if isinstance(value, bool):
        raise TypeError(f"{field_name} must be a float")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return float(value.strip())
    raise TypeError(f"{field_name} must be a float")


def _coerce_str(value: Any, field_name: str) -> str:
    if isinstance(value, str):
        return value
    return str(value)


def _coerce_log_level(value: Any, field_name: str) -> str:
    level = _coerce_str(value, field_name).strip().upper()
    if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ValueError(f"{field_name} must be a valid log level")
    return level


def _coerce_log_format(value: Any, field_name: str) -> str:
    fmt = _coerce_str(value, field_name).strip().lower()
    if fmt not in {"json", "console"}:
        raise ValueError(f"{field_name} must be 'json' or 'console'")
    return fmt


def _optional(coerce: Callable[[Any, str], Any]) -> Callable[[Any, str], Any]:
    def _wrapped(value: Any, field_name: str) -> Any:
        if value is None:
            return None
        return coerce(value, field_name)

    return _wrapped


def _positive(coerce: Callable[[Any, str], Any]) -> Callable[[Any, str], Any]:
    def _wrapped(value: Any, field_name: str) -> Any:
        result = coerce(value, field_name)
        if result is not None and result <= 0:
            raise ValueError(f"{field_name} must be positive")
        return result

    return _wrapped


FieldSpec = tuple[str, Callable[[Any, str], Any], str]


def _extract_fields(payload: Mapping[str, Any], specs: Sequence[FieldSpec]) -> dict[str, Any]:
    kwargs: dict[str, Any] = {}
    for name, coerce, label in specs:
        if name in payload:
            kwargs[name] = coerce(payload[name], label)
    return kwargs


_ENGINE_FIELDS: tuple[FieldSpec, ...] = (
    ("max_workers", _positive(_optional(_coerce_int)), "engine.max_workers"),
    ("drain_timeout_seconds", _positive(_coerce_float), "engine.drain_timeout_seconds"),
    ("list_page_size", _positive(_coerce_int), "engine.list_page_size"),
)

_LOGGING_FIELDS: tuple[FieldSpec, ...] = (
    ("format", _coerce_log_format, "logging.format"),
    ("level", _coerce_log_level, "logging.level"),
)

_SERVER_FIELDS: tuple[FieldSpec, ...] = (
    ("name", _coerce_str, "server.name"),
    ("version", _coerce_str, "server.version"),
)


@dataclass
class EngineConfig:
    """Execution settings for the interceptor engine.

    Attributes:
        max_workers: Thread pool size for synchronous handlers (None = executor default).
        drain_timeout_seconds: Grace period for in-flight observability tasks at shutdown.
        list_page_size: Page size for ``interceptors/list``.
    """

    max_workers: int | None = None
    drain_timeout_seconds: float = 5.0
    list_page_size: int = 50

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "EngineConfig":
        if data is None:
            return cls()
        return cls(**_extract_fields(_ensure_mapping(data, "engine"), _ENGINE_FIELDS))


@dataclass
class LoggingConfig:
    format: str = "json"
    level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "LoggingConfig":
        if data is None:
            return cls()
        return cls(**_extract_fields(_ensure_mapping(data, "logging"), _LOGGING_FIELDS))


@dataclass
class ServerConfig:
    name: str = "aduib-intercept"
    version: str = "0.1.0"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "ServerConfig":
        if data is None:
            return cls()
        return cls(**_extract_fields(_ensure_mapping(data, "server"), _SERVER_FIELDS))


@dataclass
class InterceptorEngineConfig:
    engine: EngineConfig = field(default_factory=EngineConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "InterceptorEngineConfig":
        if data is None:
            return cls()
        if isinstance(data, cls):
            return data
        payload = _ensure_mapping(data, "config")
        kwargs: dict[str, Any] = {}
        if "engine" in payload:
            kwargs["engine"] = EngineConfig.from_dict(payload["engine"])
        if "logging" in payload:
            kwargs["logging"] = LoggingConfig.from_dict(payload["logging"])
        if "server" in payload:
            kwargs["server"] = ServerConfig.from_dict(payload["server"])
        return cls(**kwargs)

    def __post_init__(self) -> None:
        if not isinstance(self.engine, EngineConfig):
            self.engine = EngineConfig.from_dict(self.engine)  # type: ignore[arg-type]
        if not isinstance(self.logging, LoggingConfig):
            self.logging = LoggingConfig.from_dict(self.logging)  # type: ignore[arg-type]
        if not isinstance(self.server, ServerConfig):
            self.server = ServerConfig.from_dict(self.server)  # type: ignore[arg-type]
