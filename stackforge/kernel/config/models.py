"""Configuration data models for stackforge."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from stackforge.kernel.domain.unit import Component, StackDefinition
from stackforge.kernel.orchestration.models import (
    ConflictResolverConfig,
    HealthMonitorConfig,
    UpdateConfig,
)
from stackforge.kernel.orchestration.retry import RetryConfig


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Logging configuration for stackforge.

    Attributes
    ----------
    level : str, default="INFO"
        Minimum level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    format : str, default="structured"
        One of console, json, structured, rich
    output_file : str | None, default=None
        Extra JSON log file
    use_color, include_timestamp, enable_stdlib_bridge, diagnose : bool
        Passed through to ``configure_logging``

    Examples
    --------
    TOML configuration:

    ```toml
    [tool.stackforge.logging]
    level = "DEBUG"
    format = "rich"
    ```

    Environment variable overrides:

    ```bash
    export STACKFORGE_LOG_LEVEL=DEBUG
    export STACKFORGE_LOG_FORMAT=json
    export STACKFORGE_LOG_FILE=/var/log/stackforge/app.log
    ```
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "structured", "rich"] = "structured"
    output_file: str | None = None
    use_color: bool = True
    include_timestamp: bool = True
    enable_stdlib_bridge: bool = False
    diagnose: bool = False


@dataclass(slots=True)
class StackForgeConfig:
    """Complete stackforge configuration.

    Examples
    --------
    TOML configuration in pyproject.toml:

    ```toml
    [tool.stackforge]
    deployment_id = "local-stack"

    [tool.stackforge.logging]
    level = "DEBUG"

    [tool.stackforge.retry]
    max_attempts = 5

    [tool.stackforge.stack]
    order = ["db", "api", "gateway"]

    [[tool.stackforge.stack.units]]
    id = "api"
    depends_on = ["db"]
    ```
    """

    deployment_id: str = "default"
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    health: HealthMonitorConfig = field(default_factory=HealthMonitorConfig)
    conflicts: ConflictResolverConfig = field(default_factory=ConflictResolverConfig)
    update: UpdateConfig = field(default_factory=UpdateConfig)
    stack: StackDefinition = field(default_factory=StackDefinition)


__all__ = [
    "Component",
    "ConflictResolverConfig",
    "HealthMonitorConfig",
    "LoggingConfig",
    "RetryConfig",
    "StackDefinition",
    "StackForgeConfig",
    "UpdateConfig",
]
