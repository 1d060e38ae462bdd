"""Runtime configuration for fetchers.

A `FetchConfig` is an immutable bundle of the per-request knobs. Every
`Fetcher` copies the values it needs out of a config at construction time, so
replacing the process default later only affects fetchers built afterwards.

The process default is read from the environment the first time it is needed:

    WEBFETCH_DEFAULT_RETRIES          retry count (default 5)
    WEBFETCH_DEFAULT_TIMEOUT_MS       per-attempt timeout (default 60000)
    WEBFETCH_DEFAULT_RETRY_DELAY_MS   sleep between timeout retries (default 10000)
    WEBFETCH_INSECURE_SKIP_VERIFY     accept any server certificate (default true)
    WEBFETCH_FOLLOW_REDIRECTS         follow redirects transparently (default true)
    WEBFETCH_LEGACY_FORM_ENCODING     `key=value&` POST bodies (default false)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

DEFAULT_RETRIES = 5
DEFAULT_TIMEOUT_MS = 60_000
DEFAULT_RETRY_DELAY_MS = 10_000

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class FetchConfig:
    """Per-request settings used to initialise a Fetcher."""

    retries: int = DEFAULT_RETRIES
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS
    # SECURITY: accepting every certificate exposes callers to MITM attacks.
    # Kept on by default for compatibility with existing deployments.
    insecure_skip_verify: bool = True
    follow_redirects: bool = True
    legacy_form_encoding: bool = False

    def __post_init__(self) -> None:
        for name in ("retries", "timeout_ms", "retry_delay_ms"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer, got {value!r}")
            if value < 0:
                raise ValueError(f"{name} must be >= 0, got {value}")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise RuntimeError(f"Invalid integer in environment variable {name}: {raw!r}") from None
    if value < 0:
        raise RuntimeError(f"Environment variable {name} must be >= 0, got {value}")
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise RuntimeError(f"Invalid boolean in environment variable {name}: {raw!r}")


def config_from_env(base: FetchConfig | None = None) -> FetchConfig:
    """Build a config from `WEBFETCH_*` environment variables.

    Unset variables fall back to the values in `base` (or the built-in
    defaults when no base is given).
    """
    base = base or FetchConfig()
    return FetchConfig(
        retries=_env_int("WEBFETCH_DEFAULT_RETRIES", base.retries),
        timeout_ms=_env_int("WEBFETCH_DEFAULT_TIMEOUT_MS", base.timeout_ms),
        retry_delay_ms=_env_int("WEBFETCH_DEFAULT_RETRY_DELAY_MS", base.retry_delay_ms),
        insecure_skip_verify=_env_bool("WEBFETCH_INSECURE_SKIP_VERIFY", base.insecure_skip_verify),
        follow_redirects=_env_bool("WEBFETCH_FOLLOW_REDIRECTS", base.follow_redirects),
        legacy_form_encoding=_env_bool("WEBFETCH_LEGACY_FORM_ENCODING", base.legacy_form_encoding),
    )


_default_config: FetchConfig | None = None


def get_default_config() -> FetchConfig:
    """Get the process default config, loading it from the environment on first use."""
    global _default_config
    if _default_config is None:
        _default_config = config_from_env()
    return _default_config


def set_default_config(config: FetchConfig) -> None:
    """Replace the process default used by fetchers constructed from now on."""
    global _default_config
    if not isinstance(config, FetchConfig):
        raise TypeError(f"Expected FetchConfig, got {type(config).__name__}")
    _default_config = config


def update_default_config(**changes) -> FetchConfig:
    """Change individual default fields (e.g. `retries=3`) and return the new default."""
    config = replace(get_default_config(), **changes)
    set_default_config(config)
    return config


def reset_default_config() -> None:
    """Forget the current default; the next read reloads it from the environment."""
    global _default_config
    _default_config = None
