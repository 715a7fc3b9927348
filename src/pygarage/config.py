"""Configuration for pygarage."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path
from typing import Any

from pygarage._constants import (
    DEFAULT_ARCHIVE_DAYS,
    DEFAULT_MATCH_THRESHOLD,
    DEFAULT_MAX_SUGGESTIONS,
    DEFAULT_OPERATOR,
    DEFAULT_REASON,
    DEFAULT_SOURCE,
    DEFAULT_SUGGESTION_THRESHOLD,
    JSON_LOG_NAME,
    TEXT_LOG_NAME,
)
from pygarage.exceptions import GarageConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env_key: str, raw: str, cast: type[int] | type[float]) -> int | float:
    try:
        return cast(raw)
    except ValueError as exc:
        raise GarageConfigError(f"{env_key} must be a {cast.__name__}, got {raw!r}") from exc


@dataclasses.dataclass(frozen=True)
class GarageConfig:
    """Library configuration.

    Parameters
    ----------
    log_dir : Path
        Directory holding the audit logs and their archives.
    text_log_name : str
        File name of the human-readable audit log.
    json_log_name : str
        File name of the JSON-lines audit log.
    match_threshold : float
        Minimum similarity for a name to count as a confident match.
    suggestion_threshold : float
        Lower similarity used to collect "did you mean" suggestions.
    max_suggestions : int
        Maximum number of suggestions attached to a failed item.
    operator : str
        Operator recorded in audit entries when the caller gives none.
    source : str
        Source recorded in audit entries.
    reason : str
        Update reason recorded when the caller gives none.
    archive_days : int
        Default retention window for :meth:`AuditLogger.archive`.
    optimistic_locking : bool
        Pass the observed status as ``expected_status`` on every store
        update so concurrent modifications fail instead of being
        overwritten.
    store_url : str or None
        Base URL of a remote vehicle store (selects :class:`HttpVehicleStore`).
    sqlite_path : Path or None
        SQLite database file (selects :class:`SqliteVehicleStore`).
    http_timeout : float
        Total timeout in seconds for remote store requests.
    """

    log_dir: Path = Path("logs")
    text_log_name: str = TEXT_LOG_NAME
    json_log_name: str = JSON_LOG_NAME
    match_threshold: float = DEFAULT_MATCH_THRESHOLD
    suggestion_threshold: float = DEFAULT_SUGGESTION_THRESHOLD
    max_suggestions: int = DEFAULT_MAX_SUGGESTIONS
    operator: str = DEFAULT_OPERATOR
    source: str = DEFAULT_SOURCE
    reason: str = DEFAULT_REASON
    archive_days: int = DEFAULT_ARCHIVE_DAYS
    optimistic_locking: bool = True
    store_url: str | None = None
    sqlite_path: Path | None = None
    http_timeout: float = 10.0

    def __post_init__(self) -> None:
        for name in ("match_threshold", "suggestion_threshold"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise GarageConfigError(f"{name} must be between 0 and 1, got {value}")
        if self.max_suggestions < 0:
            raise GarageConfigError(f"max_suggestions must be non-negative, got {self.max_suggestions}")
        if self.archive_days < 0:
            raise GarageConfigError(f"archive_days must be non-negative, got {self.archive_days}")
        # Accept plain strings for paths.
        if not isinstance(self.log_dir, Path):
            object.__setattr__(self, "log_dir", Path(self.log_dir))
        if self.sqlite_path is not None and not isinstance(self.sqlite_path, Path):
            object.__setattr__(self, "sqlite_path", Path(self.sqlite_path))

    @property
    def text_log_path(self) -> Path:
        return self.log_dir / self.text_log_name

    @property
    def json_log_path(self) -> Path:
        return self.log_dir / self.json_log_name

    @classmethod
    def from_env(cls, **overrides: Any) -> GarageConfig:
        """Create configuration from environment variables.

        Reads optional ``GARAGE_*`` variables. Explicit keyword arguments
        override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        GarageConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_STR_MAP = {
            "GARAGE_OPERATOR": "operator",
            "GARAGE_SOURCE": "source",
            "GARAGE_REASON": "reason",
            "GARAGE_STORE_URL": "store_url",
        }
        _ENV_PATH_MAP = {
            "GARAGE_LOG_DIR": "log_dir",
            "GARAGE_SQLITE_PATH": "sqlite_path",
        }
        _ENV_NUMBER_MAP: dict[str, tuple[str, type[int] | type[float]]] = {
            "GARAGE_MATCH_THRESHOLD": ("match_threshold", float),
            "GARAGE_SUGGESTION_THRESHOLD": ("suggestion_threshold", float),
            "GARAGE_MAX_SUGGESTIONS": ("max_suggestions", int),
            "GARAGE_ARCHIVE_DAYS": ("archive_days", int),
            "GARAGE_HTTP_TIMEOUT": ("http_timeout", float),
        }

        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_STR_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        for env_key, field_name in _ENV_PATH_MAP.items():
            val = env.get(env_key)
            if val:
                config_kwargs[field_name] = Path(val)

        for env_key, (field_name, cast) in _ENV_NUMBER_MAP.items():
            val = env.get(env_key)
            if val is not None and field_name not in overrides:
                config_kwargs[field_name] = _env_number(env_key, val, cast)

        if "optimistic_locking" not in overrides:
            config_kwargs["optimistic_locking"] = _env_bool(env.get("GARAGE_OPTIMISTIC_LOCKING"), True)

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
