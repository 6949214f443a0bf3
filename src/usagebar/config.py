import os
from dataclasses import dataclass, field
from pathlib import Path

from usagebar.models import DisplayPreferences

SOURCES = ("api", "helper")

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: "str") -> "bool":
    return os.environ.get(name, "").strip().lower() in _TRUTHY


def _env_float(name: "str", default: "float") -> "float":
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def _default_claude_dir() -> "Path":
    return Path.home() / ".claude"


@dataclass
class Config:
    # polling interval in seconds
    poll_interval: "int" = 60
    log_level: "str" = "info"
    # "api" calls the endpoint directly, "helper" runs fetch-usage.sh
    source: "str" = "api"
    # metrics listen address, format ":9186" or "127.0.0.1:9186".
    # empty disables the metrics server
    listen_address: "str" = ""
    show_values: "bool" = False
    show_labels: "bool" = False
    claude_dir: "Path" = field(default_factory=_default_claude_dir)
    request_timeout: "float" = 10.0
    helper_timeout: "float" = 30.0
    once: "bool" = False

    @classmethod
    def from_env(cls) -> "Config":
        claude_dir = os.environ.get("USAGEBAR_CLAUDE_DIR", "")
        return cls(
            source=os.environ.get("USAGEBAR_SOURCE", "api"),
            show_values=_env_bool("USAGEBAR_SHOW_VALUES"),
            show_labels=_env_bool("USAGEBAR_SHOW_LABELS"),
            claude_dir=Path(claude_dir).expanduser() if claude_dir else _default_claude_dir(),
            helper_timeout=_env_float("USAGEBAR_HELPER_TIMEOUT", 30.0),
        )

    @property
    def preferences(self) -> "DisplayPreferences":
        return DisplayPreferences(
            show_values=self.show_values,
            show_labels=self.show_labels,
        )

    @property
    def metrics_enabled(self) -> "bool":
        return bool(self.listen_address)
