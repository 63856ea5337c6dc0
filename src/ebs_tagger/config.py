"""Configuration management with validation.

The tagger is configured entirely from the process environment. Required
fields are validated at load time so a misconfigured process exits before
the first reconciliation pass.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Environment variable names
ENV_CLUSTER_NAME = "CLUSTER_NAME"
ENV_AWS_REGION = "AWS_REGION"
ENV_EBS_TAGGING_ENABLED = "EBS_TAGGING_ENABLED"
ENV_OVERWRITE_IF_DIFFERENT = "OVERWRITE_IF_DIFFERENT_TAG_VALUE"
ENV_EXECUTION_INTERVAL_MINUTES = "EXECUTION_INTERVAL_IN_MINUTES"
ENV_TAGGING_PACE_MILLISECONDS = "TAGGING_PACE_MILLISECONDS"

# Every variable starting with this prefix registers a desired tag
ENV_TAG_PREFIX = "TAG_"

# Configuration constants
DEFAULT_INTERVAL_MINUTES = 10.0
DEFAULT_APPLY_PACING_MILLISECONDS = 500.0
MAX_FAILED_PASSES = 10


@dataclass(frozen=True)
class Config:
    """Tagger configuration loaded from environment variables.

    All fields are validated at construction time. The desired tag map is
    stored as a read-only mapping and never changes after startup.
    """

    # Required fields
    cluster_name: str
    region: str

    # Desired state
    desired_tags: Mapping[str, str] = field(default_factory=dict)

    # Behavior
    tagging_enabled: bool = True
    overwrite_if_different: bool = False

    # Timing
    interval_minutes: float = DEFAULT_INTERVAL_MINUTES
    apply_pacing_seconds: float = DEFAULT_APPLY_PACING_MILLISECONDS / 1000

    # Fatal threshold for failed passes (exceeding it terminates the process)
    max_failures: int = MAX_FAILED_PASSES

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        object.__setattr__(self, "desired_tags", MappingProxyType(dict(self.desired_tags)))

        errors: list[str] = []

        if not self.cluster_name:
            errors.append(f"{ENV_CLUSTER_NAME} is required")

        if not self.region:
            errors.append(f"{ENV_AWS_REGION} is required")

        if not self.interval_minutes > 0:
            errors.append(
                f"{ENV_EXECUTION_INTERVAL_MINUTES} must be greater than 0: {self.interval_minutes}"
            )

        if not self.apply_pacing_seconds >= 0:
            errors.append(f"{ENV_TAGGING_PACE_MILLISECONDS} must not be negative")

        if self.max_failures < 0:
            errors.append("max_failures must not be negative")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @property
    def interval_seconds(self) -> float:
        """Pause between two reconciliation passes, in seconds."""
        return self.interval_minutes * 60

    def log_summary(self) -> None:
        """Log every effective setting and registered tag."""
        logger.info(
            "Configuration loaded",
            extra={
                "cluster_name": self.cluster_name,
                "region": self.region,
                "tagging_enabled": self.tagging_enabled,
                "overwrite_if_different": self.overwrite_if_different,
                "interval_minutes": self.interval_minutes,
                "apply_pacing_seconds": self.apply_pacing_seconds,
            },
        )
        for key, value in sorted(self.desired_tags.items()):
            logger.info("Registered tag", extra={"tag_key": key, "tag_value": value})
        if not self.desired_tags:
            logger.warning("No desired tags registered, passes will be no-ops")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            CLUSTER_NAME: Name of the cluster owning the volumes (required)
            AWS_REGION: Region the cluster runs in (required)
            EBS_TAGGING_ENABLED: If "false", only log intended changes (default: true)
            OVERWRITE_IF_DIFFERENT_TAG_VALUE: Overwrite tags holding another value
                (default: false)
            EXECUTION_INTERVAL_IN_MINUTES: Minutes between passes, fractions allowed
                (default: 10)
            TAGGING_PACE_MILLISECONDS: Minimum spacing between two tag-apply calls
                (default: 500)
            TAG_<name>: Desired value of tag <name>. Any number may be given.
        """
        env = os.environ if environ is None else environ

        def get_bool(key: str, default: bool) -> bool:
            value = env.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        def get_float(key: str, default: float) -> float:
            value = env.get(key)
            if value is None or value == "":
                return default
            try:
                return float(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be a number: {value}") from e

        desired_tags = {
            key[len(ENV_TAG_PREFIX) :]: value
            for key, value in env.items()
            if key.startswith(ENV_TAG_PREFIX) and len(key) > len(ENV_TAG_PREFIX)
        }

        return cls(
            cluster_name=env.get(ENV_CLUSTER_NAME, ""),
            region=env.get(ENV_AWS_REGION, ""),
            desired_tags=desired_tags,
            tagging_enabled=get_bool(ENV_EBS_TAGGING_ENABLED, True),
            overwrite_if_different=get_bool(ENV_OVERWRITE_IF_DIFFERENT, False),
            interval_minutes=get_float(ENV_EXECUTION_INTERVAL_MINUTES, DEFAULT_INTERVAL_MINUTES),
            apply_pacing_seconds=get_float(
                ENV_TAGGING_PACE_MILLISECONDS, DEFAULT_APPLY_PACING_MILLISECONDS
            )
            / 1000,
        )
