"""Session and transfer settings, optionally loaded from a YAML file."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
import importlib
import importlib.util
import os
from pathlib import Path
from typing import Any, Optional

from shellcp.errors import ConfigurationError


def _env_flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() not in {"", "0", "false", "no"}


@dataclass(frozen=True)
class ChannelSettings:
    endpoint: str = "localhost"
    username: str = ""
    password: str = field(default_factory=lambda: os.getenv("SHELLCP_PASSWORD", ""))
    https: bool = False
    insecure: bool = False
    ca_trust_path: Optional[str] = None
    transport: str = "ntlm"
    connect_timeout_s: float = 30.0
    operation_timeout_s: float = 60.0


@dataclass(frozen=True)
class TransferSettings:
    max_attempts: int = 3
    retry_delay_s: float = 1.0
    retry_backoff: float = 2.0
    # cmd.exe command line limit; None lets the envelope size decide alone.
    max_command_chars: Optional[int] = 8191
    max_operations_per_shell: int = 15
    operation_timeout_s: Optional[float] = None
    archive_directories: bool = True
    max_parallel: int = 4
    default_envelope_kb: int = 500
    strict_probe: bool = False
    debug: bool = field(default_factory=lambda: _env_flag("SHELLCP_DEBUG"))

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ConfigurationError("max_attempts must be at least 1")
        if self.retry_delay_s < 0 or self.retry_backoff < 1:
            raise ConfigurationError("retry delay must be >= 0 and backoff >= 1")
        if self.max_operations_per_shell < 0:
            raise ConfigurationError("max_operations_per_shell must be >= 0")
        if self.max_parallel < 1:
            raise ConfigurationError("max_parallel must be at least 1")
        if self.default_envelope_kb < 1:
            raise ConfigurationError("default_envelope_kb must be positive")


def endpoint_url(settings: ChannelSettings) -> str:
    if "://" in settings.endpoint:
        return settings.endpoint
    scheme, port = ("https", 5986) if settings.https else ("http", 5985)
    host = settings.endpoint
    has_port = "]:" in host if host.startswith("[") else ":" in host
    if has_port:
        return f"{scheme}://{host}/wsman"
    return f"{scheme}://{host}:{port}/wsman"


def _build(cls: type, section: Any, name: str) -> Any:
    if section is None:
        return cls()
    if not isinstance(section, dict):
        raise ConfigurationError(f"Section '{name}' must be a mapping")
    known = {item.name for item in fields(cls)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ConfigurationError(
            f"Unknown keys in section '{name}': {', '.join(unknown)}"
        )
    try:
        return cls(**section)
    except TypeError as exc:
        raise ConfigurationError(f"Invalid section '{name}': {exc}") from exc


def load_settings(
    config_path: str | Path = "config/shellcp.yaml",
) -> tuple[ChannelSettings, TransferSettings]:
    path = Path(config_path)
    if not path.exists():
        return ChannelSettings(), TransferSettings()
    yaml_spec = importlib.util.find_spec("yaml")
    if yaml_spec is None:
        raise RuntimeError("PyYAML is required to load shellcp settings.")
    yaml = importlib.import_module("yaml")
    with path.open("r", encoding="utf-8") as handle:
        try:
            data = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Cannot parse {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping")
    unknown = sorted(set(data) - {"channel", "transfer"})
    if unknown:
        raise ConfigurationError(f"Unknown sections in {path}: {', '.join(unknown)}")
    channel = _build(ChannelSettings, data.get("channel"), "channel")
    transfer = _build(TransferSettings, data.get("transfer"), "transfer")
    return channel, transfer
