"""Environment-driven settings for nobl schedulers.

``NoblSettings`` holds the knobs a deployment may want to tune without
touching code: the cycle duration, the throttle split and logging options.
Values come from ``NOBL_*`` environment variables or a ``.env`` file.

Examples:
    >>> from nobl.core.settings import NoblSettings
    >>> settings = NoblSettings()
    >>> settings.duration
    20.0

    >>> import os
    >>> os.environ["NOBL_THROTTLE"] = "1.5"
    >>> NoblSettings().throttle  # clamped
    1.0

Tags:
    settings, configuration, pydantic, environment, nobl
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_DURATION_MS = 20.0
DEFAULT_THROTTLE = 0.5


class NoblSettings(BaseSettings):
    """Scheduler configuration.

    Fields
    ──────
    duration     : Milliseconds per work/idle cycle (must be > 0)
    throttle     : Share of each cycle spent stepping, clamped to [0, 1]
    log_level    : Structlog log level
    json_logs    : Force JSON (True) or console (False) logs; None = auto

    log_level and json_logs are applied by
    ``nobl.core.logging.configure_from_settings``.
    """

    model_config = SettingsConfigDict(
        env_prefix="NOBL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Scheduling ───────────────────────────────────────────────
    duration: float = Field(
        default=DEFAULT_DURATION_MS,
        gt=0,
        description="Milliseconds per work/idle cycle",
    )
    throttle: float = Field(
        default=DEFAULT_THROTTLE,
        description="Fraction of each cycle spent stepping",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    json_logs: bool | None = None

    @field_validator("throttle")
    @classmethod
    def _clamp_throttle(cls, value: float) -> float:
        return max(0.0, min(value, 1.0))
