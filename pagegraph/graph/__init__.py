# ============================================================================
# pagegraph/graph/__init__.py
# Graph Package - Typed Page Graphs and Causal Queries
# ============================================================================
#
# KEY MODULES:
# - ids.py: frame-qualified node/edge identifiers
# - node_types.py / edge_types.py: one frozen dataclass per recorded variant
# - store.py: PageGraph (node/edge tables over a networkx DiGraph)
# - merge.py: splicing remote frame recordings into their parent
# - attribution.py: which document (DOM root) an element or action belongs to
# - effects.py: the causal "what happened because of this edge" engine
# - queries.py / stats.py: higher level questions built on the above
#
# ============================================================================

from .ids import EdgeId, FrameId, NodeId
from .store import Edge, Node, PageGraph, PageGraphDescriptor, PageGraphTime

__all__ = [
    "EdgeId",
    "FrameId",
    "NodeId",
    "Edge",
    "Node",
    "PageGraph",
    "PageGraphDescriptor",
    "PageGraphTime",
]
