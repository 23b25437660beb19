"""Configuration file loader for benchmark builds.

Provides YAML-based configuration loading with default value support
and a type-safe configuration dataclass.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from sumbench.core.exceptions import ConfigurationError
from sumbench.design.method import DEFAULT_ASSAY


@dataclass(slots=True)
class BuildConfig:
    """Default settings for :func:`sumbench.build.build_bench`.

    Attributes
    ----------
    parallel : bool
        Run methods in a worker pool.
    max_workers : int
        Upper bound on pool size (never more than the number of methods).
    catch_errors : bool
        Record method failures as NA instead of raising.
    default_assay : str
        Assay name used when methods have no named post-processing.
    strict_assays : bool
        Require all methods with named post-processing to declare the same
        output names.
    """

    parallel: bool = False
    max_workers: int = 4
    catch_errors: bool = True
    default_assay: str = DEFAULT_ASSAY
    strict_assays: bool = False

    def __post_init__(self):
        if not isinstance(self.max_workers, int) or isinstance(self.max_workers, bool) or self.max_workers < 1:
            raise ConfigurationError(f"max_workers must be a positive integer, got {self.max_workers!r}")
        if not isinstance(self.default_assay, str) or not self.default_assay:
            raise ConfigurationError(
                f"default_assay must be a non-empty string, got {self.default_assay!r}"
            )


def _parse_config(data: dict, path: Path | None = None) -> BuildConfig:
    defaults = BuildConfig()
    try:
        return BuildConfig(
            parallel=bool(data.get("parallel", defaults.parallel)),
            max_workers=data.get("max_workers", defaults.max_workers),
            catch_errors=bool(data.get("catch_errors", defaults.catch_errors)),
            default_assay=data.get("default_assay", defaults.default_assay),
            strict_assays=bool(data.get("strict_assays", defaults.strict_assays)),
        )
    except ConfigurationError as e:
        raise ConfigurationError(str(e), config_path=path) from e


def load_config(config_path: str | Path) -> BuildConfig:
    """Load build configuration from YAML file.

    If the file does not exist, creates and returns a default configuration.
    The default configuration is saved to the specified path.

    Parameters
    ----------
    config_path : str | Path
        Path to the configuration YAML file.

    Returns
    -------
    BuildConfig
        Loaded build configuration.

    Raises
    ------
    ConfigurationError
        If YAML parsing fails, the file is unreadable or a value is invalid.
    """
    path = Path(config_path)

    if not path.exists():
        default_config = get_default_config()
        save_config(default_config, path)
        return default_config

    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML config: {e}",
            config_path=path,
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read config file: {e}",
            config_path=path,
        ) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError("Config file must contain a mapping.", config_path=path)

    return _parse_config(data, path)


def save_config(config: BuildConfig, config_path: str | Path) -> None:
    """Save configuration to YAML file.

    Raises
    ------
    ConfigurationError
        If file cannot be written.
    """
    path = Path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "parallel": config.parallel,
        "max_workers": config.max_workers,
        "catch_errors": config.catch_errors,
        "default_assay": config.default_assay,
        "strict_assays": config.strict_assays,
    }

    try:
        with path.open("w", encoding="utf-8") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Failed to save config file: {e}",
            config_path=path,
        ) from e


def get_default_config() -> BuildConfig:
    """Get default build configuration."""
    return BuildConfig()


__all__ = [
    "BuildConfig",
    "load_config",
    "save_config",
    "get_default_config",
]
