"""Package provenance of benchmarked methods.

The package name and version recorded for each method come from a lookup
callable ``lookup(func) -> PackageInfo``. :func:`module_package_info` is the
default; it maps the defining module of a callable to its installed
distribution. Any other callable with the same signature can be passed to
:func:`sumbench.build.build_bench` instead.
"""

from __future__ import annotations

import functools
import importlib.metadata
import platform
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from sumbench.design.method import MethodSpec

__all__ = [
    "PackageInfo",
    "PackageLookup",
    "VERS_SRC_FUNC",
    "VERS_SRC_MANUAL",
    "VERS_SRC_META_FUNC",
    "module_package_info",
    "resolve_provenance",
]

VERS_SRC_FUNC = "bfunc"
VERS_SRC_MANUAL = "bmeta_manual"
VERS_SRC_META_FUNC = "bmeta_func"


@dataclass(frozen=True)
class PackageInfo:
    """Name and version of the package providing a callable."""

    name: str | None = None
    version: str | None = None


type PackageLookup = Callable[[Callable[..., Any]], PackageInfo]


def _defining_module(func: Callable[..., Any]) -> str | None:
    while isinstance(func, functools.partial):
        func = func.func
    module = getattr(func, "__module__", None)
    if module is None:
        module = getattr(type(func), "__module__", None)
    return module


@functools.lru_cache(maxsize=None)
def _distribution_info(top_level: str) -> PackageInfo:
    if top_level == "builtins":
        return PackageInfo("python", platform.python_version())
    dists = importlib.metadata.packages_distributions().get(top_level, [])
    dist_name = dists[0] if dists else top_level
    try:
        return PackageInfo(dist_name, importlib.metadata.version(dist_name))
    except importlib.metadata.PackageNotFoundError:
        return PackageInfo(top_level, None)


def module_package_info(func: Callable[..., Any]) -> PackageInfo:
    """Look up the installed distribution that defines ``func``.

    Functions defined in scripts or test modules report their top-level
    module name and no version.
    """
    module = _defining_module(func)
    if not module:
        return PackageInfo()
    return _distribution_info(module.split(".")[0])


def resolve_provenance(
    spec: MethodSpec, lookup: PackageLookup = module_package_info
) -> dict[str, str | None]:
    """Package name, version and version source recorded for one method.

    ``meta["pkg_func"]`` takes precedence and is looked up instead of the
    primary function; manual ``meta["pkg_name"]`` / ``meta["pkg_vers"]``
    come next; otherwise the primary function is looked up.
    """
    meta = spec.meta
    if "pkg_func" in meta:
        info = lookup(meta["pkg_func"])
        source = VERS_SRC_META_FUNC
    elif "pkg_name" in meta or "pkg_vers" in meta:
        name, vers = meta.get("pkg_name"), meta.get("pkg_vers")
        info = PackageInfo(
            None if name is None else str(name),
            None if vers is None else str(vers),
        )
        source = VERS_SRC_MANUAL
    else:
        info = lookup(spec.func)
        source = VERS_SRC_FUNC
    return {"pkg_name": info.name, "pkg_vers": info.version, "vers_src": source}
