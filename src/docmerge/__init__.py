"""doc-merge: combine per-crate rustdoc output into a single site."""

__version__ = "0.3.0"

from docmerge.merger import DocMerger, MergeResult, SharedAssetDivergence
from docmerge.index import IndexSynthesizer

__all__ = [
    "__version__",
    "DocMerger",
    "MergeResult",
    "SharedAssetDivergence",
    "IndexSynthesizer",
]
