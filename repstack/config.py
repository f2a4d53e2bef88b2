from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

from .env import get_env

try:  # pragma: no cover - Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - Python <3.11
    import tomli as tomllib  # type: ignore

DEFAULT_FUTURE_TOLERANCE_SECONDS = 60.0
DEFAULT_DELOAD_SET_FACTOR = 0.6
DEFAULT_TARGET_REPS = 10


@dataclass(frozen=True)
class AppConfig:
    future_tolerance_seconds: float = DEFAULT_FUTURE_TOLERANCE_SECONDS
    deload_set_factor: float = DEFAULT_DELOAD_SET_FACTOR
    default_target_reps: int = DEFAULT_TARGET_REPS
    reset_on_migration_error: bool = True


def _config_path() -> Path | None:
    """Resolve the TOML configuration file, if present."""
    env_override = get_env("CONFIG")
    if env_override:
        path = Path(env_override).expanduser()
        return path if path.exists() else None

    default_path = Path("config/repstack.toml")
    if default_path.exists():
        return default_path
    return None


def _load_toml(path: Path) -> Mapping[str, Any]:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _coerce_float(raw: Any, default: float, *, minimum: float, maximum: float) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    if value < minimum or value > maximum:
        return default
    return value


def _coerce_bool(raw: Any, default: bool) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, str):
        lowered = raw.strip().lower()
        if lowered in {"1", "true", "yes", "on"}:
            return True
        if lowered in {"0", "false", "no", "off"}:
            return False
    return default


def _build_config(raw: Mapping[str, Any]) -> AppConfig:
    base = AppConfig()
    section = raw.get("repstack")
    values = section if isinstance(section, Mapping) else raw
    return AppConfig(
        future_tolerance_seconds=_coerce_float(
            values.get("future_tolerance_seconds", base.future_tolerance_seconds),
            base.future_tolerance_seconds,
            minimum=0.0,
            maximum=86400.0,
        ),
        deload_set_factor=_coerce_float(
            values.get("deload_set_factor", base.deload_set_factor),
            base.deload_set_factor,
            minimum=0.1,
            maximum=1.0,
        ),
        default_target_reps=int(
            _coerce_float(
                values.get("default_target_reps", base.default_target_reps),
                base.default_target_reps,
                minimum=1,
                maximum=100,
            )
        ),
        reset_on_migration_error=_coerce_bool(
            values.get("reset_on_migration_error"), base.reset_on_migration_error
        ),
    )


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    """Load configuration once, falling back to built-in defaults."""
    path = _config_path()
    if not path:
        return AppConfig()
    data = _load_toml(path)
    return _build_config(data)


def as_dict() -> dict[str, Any]:
    """Return the effective configuration for debug/CLI display."""
    config = get_config()
    return {
        "future_tolerance_seconds": config.future_tolerance_seconds,
        "deload_set_factor": config.deload_set_factor,
        "default_target_reps": config.default_target_reps,
        "reset_on_migration_error": config.reset_on_migration_error,
        "source": str(_config_path() or "defaults"),
    }
