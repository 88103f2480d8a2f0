"""
Scan configuration.

Settings are read from the environment (``TAGGUARD_*``) or a ``.env`` file.
The effect of each rule is not a setting: it is a parameter of the
initiative assignment, re-read whenever the initiative is bound.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScanSettings(BaseSettings):
    """Runtime settings for compliance scans."""

    model_config = SettingsConfigDict(
        env_prefix="TAGGUARD_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    max_workers: int = Field(default=8, ge=1, description="Concurrent resource evaluations")
    deadline_seconds: Optional[float] = Field(
        default=None, gt=0, description="Overall scan deadline"
    )
    evaluate_after_modify: bool = Field(
        default=False, description="Evaluate audit/deny rules against patched tags"
    )

    log_level: str = Field(default="INFO")
    metrics_enabled: bool = Field(default=True)
    service_name: str = Field(default="tagguard")
    console_tracing: bool = Field(default=False)
