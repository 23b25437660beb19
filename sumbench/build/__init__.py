"""Building benchmarks: executing designs into result containers."""

from .config import BuildConfig, get_default_config, load_config, save_config
from .engine import build_bench, output_names, update_bench
from .provenance import (
    VERS_SRC_FUNC,
    VERS_SRC_MANUAL,
    VERS_SRC_META_FUNC,
    PackageInfo,
    module_package_info,
    resolve_provenance,
)

__all__ = [
    "build_bench",
    "update_bench",
    "output_names",
    "BuildConfig",
    "load_config",
    "save_config",
    "get_default_config",
    "PackageInfo",
    "module_package_info",
    "resolve_provenance",
    "VERS_SRC_FUNC",
    "VERS_SRC_MANUAL",
    "VERS_SRC_META_FUNC",
]
