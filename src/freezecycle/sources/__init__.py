"""Raw sensor point sources."""

from freezecycle.sources.base import (
    RawPoint,
    RawPointSource,
    SourceUnavailable,
    annotate_min_real,
    fetch_in_chunks,
)

__all__ = [
    "RawPoint",
    "RawPointSource",
    "SourceUnavailable",
    "annotate_min_real",
    "fetch_in_chunks",
]
