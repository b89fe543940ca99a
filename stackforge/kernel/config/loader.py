"""Configuration loader for stackforge.

Parses configuration into the kernel's configuration models. Supports two
config sources:

1. **kind: Config YAML**, loaded via explicit path or the
   ``STACKFORGE_CONFIG_PATH`` env var.
2. **pyproject.toml [tool.stackforge]**, the auto-discovery fallback.
"""

from __future__ import annotations

import dataclasses
import os
import re
import tomllib
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from stackforge.kernel.config.models import LoggingConfig, StackForgeConfig
from stackforge.kernel.domain.unit import Component, StackDefinition, Unit
from stackforge.kernel.exceptions import ConfigurationError, ValidationError
from stackforge.kernel.logging import get_logger
from stackforge.kernel.orchestration.models import (
    ConflictResolverConfig,
    HealthMonitorConfig,
    UpdateConfig,
)
from stackforge.kernel.orchestration.retry import RetryConfig

_TRUTHY_VALUES = frozenset({"true", "1", "yes", "on", "enabled"})
_FALSY_VALUES = frozenset({"false", "0", "no", "off", "disabled"})

# LoggingConfig field -> environment variable, for boolean switches
_BOOL_ENV_OVERRIDES = {
    "use_color": "STACKFORGE_LOG_COLOR",
    "include_timestamp": "STACKFORGE_LOG_TIMESTAMP",
    "enable_stdlib_bridge": "STACKFORGE_LOG_STDLIB_BRIDGE",
    "diagnose": "STACKFORGE_LOG_DIAGNOSE",
}

logger = get_logger(__name__)


def _parse_bool_env(value: str) -> bool:
    """Parse boolean from environment variable value.

    Raises
    ------
    ValueError
        If value is not a recognized boolean string
    """
    normalized = value.lower().strip()
    if normalized in _TRUTHY_VALUES:
        return True
    if normalized in _FALSY_VALUES:
        return False
    expected = sorted(_TRUTHY_VALUES | _FALSY_VALUES)
    raise ValueError(f"Invalid boolean value: {value!r}. Expected one of: {expected}")


@lru_cache(maxsize=32)
def _load_and_parse_cached(path_str: str) -> StackForgeConfig:
    """Cached configuration loader."""
    loader = ConfigLoader()
    return loader._load_and_parse(Path(path_str))


def _build(section: str, cls: type[Any], data: Any, **extra: Any) -> Any:
    """Instantiate a config dataclass from a mapping, rejecting unknown keys."""
    if not isinstance(data, dict):
        raise ConfigurationError(section, f"expected a mapping, got {type(data).__name__}")
    known = {f.name for f in dataclasses.fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(section, f"unknown key(s): {', '.join(unknown)}")
    values = {
        key: tuple(value) if isinstance(value, list) else value for key, value in data.items()
    }
    values.update(extra)
    try:
        return cls(**values)
    except ValidationError as exc:
        raise ConfigurationError(section, str(exc)) from exc


class ConfigLoader:
    """Loads and processes stackforge configuration files.

    Supports two config sources:

    1. ``kind: Config`` YAML manifests (explicit path or env var)
    2. ``pyproject.toml [tool.stackforge]`` (auto-discovery)
    """

    ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

    def load_config_file(self, path: str | Path | None = None) -> StackForgeConfig:
        """Load configuration from YAML or pyproject.toml.

        Parameters
        ----------
        path : str | Path | None
            Path to config file. If None, searches using discovery order.

        Returns
        -------
        StackForgeConfig
            Parsed configuration with environment variables substituted
        """
        config_path = self._find_config_file(path)
        return _load_and_parse_cached(str(config_path.absolute()))

    def _load_and_parse(self, config_path: Path) -> StackForgeConfig:
        logger.info("Loading configuration from {path}", path=config_path)

        if config_path.suffix in (".yaml", ".yml"):
            return self._load_yaml_config(config_path)
        return self._load_toml_config(config_path)

    def _load_yaml_config(self, config_path: Path) -> StackForgeConfig:
        """Load and parse a kind: Config YAML file.

        Raises
        ------
        ConfigurationError
            If the YAML file is not a valid kind: Config manifest
        """
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        if not isinstance(data, dict):
            raise ConfigurationError(
                config_path.name, f"expected a mapping, got {type(data).__name__}"
            )

        kind = data.get("kind")
        if kind != "Config":
            raise ConfigurationError(
                config_path.name,
                f"YAML config files must use the 'kind: Config' manifest format, got {kind!r}",
            )

        spec = data.get("spec") or {}
        if not isinstance(spec, dict):
            raise ConfigurationError(config_path.name, "'spec' must be a mapping")

        return self._parse_config(self._substitute_env_vars(spec))

    def _load_toml_config(self, config_path: Path) -> StackForgeConfig:
        with config_path.open("rb") as f:
            data = tomllib.load(f)

        if config_path.name == "pyproject.toml":
            section = data.get("tool", {}).get("stackforge", {})
            if not section:
                logger.warning(
                    "No [tool.stackforge] section found in pyproject.toml, using defaults"
                )
                return get_default_config()
        elif "stackforge" in data.get("tool", {}):
            section = data["tool"]["stackforge"]
        else:
            # Flat TOML file
            section = data

        return self._parse_config(self._substitute_env_vars(section))

    def _find_config_file(self, path: str | Path | None) -> Path:
        """Find configuration file.

        Discovery order:
        1. Explicit path argument
        2. ``STACKFORGE_CONFIG_PATH`` env var
        3. ``pyproject.toml`` in CWD
        4. ``pyproject.toml`` in parent directories (with ``[tool.stackforge]``)

        Raises
        ------
        FileNotFoundError
            If no configuration file is found
        """
        if path:
            config_path = Path(path)
            if not config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {config_path}")
            return config_path

        if env_path := os.getenv("STACKFORGE_CONFIG_PATH"):
            config_path = Path(env_path)
            if config_path.exists():
                logger.debug("Using config from STACKFORGE_CONFIG_PATH: {}", config_path)
                return config_path
            logger.warning("STACKFORGE_CONFIG_PATH set but file not found: {}", config_path)

        if Path("pyproject.toml").exists():
            return Path("pyproject.toml")

        current = Path.cwd()
        while current != current.parent:
            pyproject = current / "pyproject.toml"
            if pyproject.exists():
                with pyproject.open("rb") as f:
                    data = tomllib.load(f)
                if "stackforge" in data.get("tool", {}):
                    return pyproject
            current = current.parent

        raise FileNotFoundError(
            "No configuration file found. Provide a kind: Config YAML path, "
            "set STACKFORGE_CONFIG_PATH, or add [tool.stackforge] to pyproject.toml"
        )

    def _substitute_env_vars(self, data: Any) -> Any:
        """Recursively replace ``${VAR}`` with environment values.

        Unknown variables keep their placeholder.
        """
        if isinstance(data, str):

            def replacer(match: re.Match[str]) -> str:
                var_name = match.group(1)
                value = os.environ.get(var_name)
                if value is None:
                    logger.debug(
                        "Environment variable ${{{var_name}}} not found, keeping placeholder",
                        var_name=var_name,
                    )
                    return match.group(0)
                return value

            return self.ENV_VAR_PATTERN.sub(replacer, data)

        if isinstance(data, dict):
            return {key: self._substitute_env_vars(value) for key, value in data.items()}

        if isinstance(data, list):
            return [self._substitute_env_vars(item) for item in data]

        return data

    def _parse_config(self, data: dict[str, Any]) -> StackForgeConfig:
        """Parse format-agnostic configuration data into StackForgeConfig.

        Raises
        ------
        ConfigurationError
            If a section has unknown keys or invalid values
        """
        config = StackForgeConfig()
        config.deployment_id = str(data.get("deployment_id", config.deployment_id))
        config.logging = self._parse_logging_config(data.get("logging", {}))

        if "retry" in data:
            config.retry = _build("retry", RetryConfig, data["retry"])
        if "health" in data:
            config.health = _build("health", HealthMonitorConfig, data["health"])
        if "conflicts" in data:
            config.conflicts = _build("conflicts", ConflictResolverConfig, data["conflicts"])
        if "update" in data:
            config.update = _build("update", UpdateConfig, data["update"])
        if "stack" in data:
            config.stack = self._parse_stack(data["stack"])
            logger.debug("Loaded stack with {count} unit(s)", count=len(config.stack.units))

        return config

    def _parse_stack(self, data: Any) -> StackDefinition:
        if not isinstance(data, dict):
            raise ConfigurationError("stack", "expected a mapping")

        units: list[Unit] = []
        for raw in data.get("units", []):
            if not isinstance(raw, dict) or "id" not in raw:
                raise ConfigurationError("stack.units", f"each unit needs an 'id': {raw!r}")
            raw = dict(raw)
            depends_on = frozenset(raw.pop("depends_on", ()))
            continue_on_error = frozenset(raw.pop("continue_on_error", ()))
            units.append(
                _build(
                    f"stack.units.{raw['id']}",
                    Unit,
                    raw,
                    depends_on=depends_on,
                    continue_on_error=continue_on_error,
                )
            )

        components: list[Component] = []
        for raw in data.get("components", []):
            if not isinstance(raw, dict) or "id" not in raw:
                raise ConfigurationError(
                    "stack.components", f"each component needs an 'id': {raw!r}"
                )
            raw = dict(raw)
            unit_ids = tuple(raw.pop("units", ()))
            components.append(
                _build(f"stack.components.{raw['id']}", Component, raw, unit_ids=unit_ids)
            )

        known = {unit.id for unit in units}
        for component in components:
            missing = sorted(set(component.unit_ids) - known)
            if missing:
                raise ConfigurationError(
                    f"stack.components.{component.id}", f"unknown unit(s): {', '.join(missing)}"
                )

        return StackDefinition(
            units=tuple(units),
            order=tuple(data.get("order", ())),
            components=tuple(components),
        )

    def _parse_logging_config(self, logging_data: Any) -> LoggingConfig:
        """Build ``LoggingConfig``; ``STACKFORGE_LOG_*`` variables win over the file.

        ``STACKFORGE_LOG_LEVEL``, ``STACKFORGE_LOG_FORMAT`` and ``STACKFORGE_LOG_FILE``
        replace their fields verbatim. The boolean switches listed in
        ``_BOOL_ENV_OVERRIDES`` are ignored with a warning when unparseable.
        """
        if not isinstance(logging_data, dict):
            return _build("logging", LoggingConfig, logging_data)
        values = dict(logging_data)

        env_values = {
            "level": os.getenv("STACKFORGE_LOG_LEVEL", "").upper(),
            "format": os.getenv("STACKFORGE_LOG_FORMAT", "").lower(),
            "output_file": os.getenv("STACKFORGE_LOG_FILE", ""),
        }
        for name, value in env_values.items():
            if value:
                logger.debug("Logging {field} set from env: {value}", field=name, value=value)
                values[name] = value

        for name, env_var in _BOOL_ENV_OVERRIDES.items():
            if raw := os.getenv(env_var):
                try:
                    values[name] = _parse_bool_env(raw)
                except ValueError as e:
                    logger.warning("Ignoring {var}: {error}", var=env_var, error=e)

        return _build("logging", LoggingConfig, values)


def load_config(path: str | Path | None = None) -> StackForgeConfig:
    """Load configuration from file or return defaults.

    Parameters
    ----------
    path : str | Path | None
        Path to configuration file or None to search

    Returns
    -------
    StackForgeConfig
        Loaded configuration or defaults if no file found
    """
    try:
        return ConfigLoader().load_config_file(path)
    except FileNotFoundError:
        if path:
            raise
        logger.info("No configuration file found, using defaults")
        return get_default_config()


def clear_config_cache() -> None:
    """Clear the configuration cache.

    Useful for testing or when configuration files have been modified.
    """
    _load_and_parse_cached.cache_clear()


def get_default_config() -> StackForgeConfig:
    return StackForgeConfig()
