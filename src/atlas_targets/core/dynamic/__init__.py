# src/atlas_targets/core/dynamic/__init__.py

from .aggregate import AGGREGATE, LIST, READ_MODES, aggregate, as_mapping, element_count
from .expander import DynamicExpander, Expansion, SubTargetSpec, Upstream, effective_cap, expand

__all__ = [
    "AGGREGATE",
    "DynamicExpander",
    "Expansion",
    "LIST",
    "READ_MODES",
    "SubTargetSpec",
    "Upstream",
    "aggregate",
    "as_mapping",
    "effective_cap",
    "element_count",
    "expand",
]
