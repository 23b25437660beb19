"""Declarative benchmark designs: method specifications and their container."""

from .bench_design import BenchDesign
from .compare import compare_designs, compare_methods, tidy_methods
from .method import (
    DEFAULT_ASSAY,
    FieldRef,
    Literal,
    MethodSpec,
    NamedPost,
    NoPost,
    SinglePost,
    as_param,
    as_post,
    ref,
)

__all__ = [
    "BenchDesign",
    "MethodSpec",
    "Literal",
    "FieldRef",
    "ref",
    "as_param",
    "NoPost",
    "SinglePost",
    "NamedPost",
    "as_post",
    "DEFAULT_ASSAY",
    "compare_methods",
    "compare_designs",
    "tidy_methods",
]
