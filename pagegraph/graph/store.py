"""
Page Graph Store - Typed Nodes and Edges over a networkx DiGraph

PURPOSE:
Hold one loaded page graph: the recording descriptor, the node and edge
tables, and the adjacency structure every causal query walks.

KEY CONCEPTS:
- **Node / Edge**: an id, a timestamp and a typed variant (node_types /
  edge_types). Nodes and edges compare and hash by id.
- **Parallel edges**: several actions can happen between the same two nodes
  (e.g. repeated attribute sets). The DiGraph keeps one arc per ordered pair
  and stores the edge ids on it, in recording order, as the `edge_ids`
  attribute.
- **Lifecycle**: a graph is built once by the GraphML reader (add_node /
  add_edge) and only `merge_frame` mutates it afterwards. Everything else is
  read-only.

EXAMPLE:
    graph.edges_outgoing(script_node)   -> [Execute, RequestStart, ...]
    graph.filter_nodes(lambda t: isinstance(t, node_types.Parser))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Union

import networkx as nx

from pagegraph.errors import DanglingEdgeError, ErrorCode, InvariantViolation
from pagegraph.graph import edge_types as et
from pagegraph.graph import node_types as nt
from pagegraph.graph.ids import MAX_LOCAL_ID, EdgeId, FrameId, NodeId

logger = logging.getLogger(__name__)

EDGE_IDS = "edge_ids"


@dataclass(eq=False)
class Node:
    id: NodeId
    timestamp: int
    node_type: nt.NodeType

    @property
    def kind(self) -> nt.NodeKind:
        return self.node_type.KIND

    def __eq__(self, other):
        if not isinstance(other, Node):
            return NotImplemented
        return self.id == other.id

    def __hash__(self):
        return hash(self.id)


@dataclass(eq=False)
class Edge:
    id: EdgeId
    timestamp: Optional[int]
    source: NodeId
    target: NodeId
    edge_type: et.EdgeType

    @property
    def kind(self) -> et.EdgeKind:
        return self.edge_type.KIND

    def __eq__(self, other):
        if not isinstance(other, Edge):
            return NotImplemented
        return self.id == other.id

    def __hash__(self):
        return hash(self.id)


@dataclass(frozen=True)
class PageGraphTime:
    start: int
    end: int


@dataclass(frozen=True)
class PageGraphDescriptor:
    """Metadata from the <desc> block of a recording."""
    version: str
    about: Optional[str] = None
    url: Optional[str] = None
    is_root: bool = True
    frame_id: Optional[FrameId] = None
    time: Optional[PageGraphTime] = None


NodeLike = Union[Node, NodeId]


class PageGraph:
    """
    One page graph recording, possibly with remote frames merged in.

    Lookups of unknown ids and edges with dangling endpoints raise
    DanglingEdgeError: they mean the input is corrupt.
    """

    def __init__(self, desc: PageGraphDescriptor):
        self.desc = desc
        self.nodes: Dict[NodeId, Node] = {}
        self.edges: Dict[EdgeId, Edge] = {}
        self.graph = nx.DiGraph()
        # synthetic edge ids count down from the top of the id space
        self._next_edge_id = MAX_LOCAL_ID

    def __repr__(self) -> str:
        return f"PageGraph(url={self.desc.url!r}, nodes={len(self.nodes)}, edges={len(self.edges)})"

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def add_node(self, node: Node) -> Node:
        if node.id in self.nodes:
            raise InvariantViolation(
                f"duplicate node id {node.id}",
                ErrorCode.GRAPH_ID_COLLISION,
                details={"node_id": str(node.id)},
            )
        self.nodes[node.id] = node
        self.graph.add_node(node.id)
        return node

    def add_edge(self, edge: Edge) -> Edge:
        if edge.id in self.edges:
            raise InvariantViolation(
                f"duplicate edge id {edge.id}",
                ErrorCode.GRAPH_ID_COLLISION,
                details={"edge_id": str(edge.id)},
            )
        for endpoint in (edge.source, edge.target):
            if endpoint not in self.nodes:
                raise DanglingEdgeError(
                    f"edge {edge.id} references missing node {endpoint}",
                    details={"edge_id": str(edge.id), "node_id": str(endpoint)},
                )
        self.edges[edge.id] = edge
        if self.graph.has_edge(edge.source, edge.target):
            self.graph[edge.source][edge.target][EDGE_IDS].append(edge.id)
        else:
            self.graph.add_edge(edge.source, edge.target, **{EDGE_IDS: [edge.id]})
        return edge

    def new_edge_id(self) -> EdgeId:
        """Mint an edge id that cannot collide with one parsed from a recording."""
        edge_id = EdgeId(self._next_edge_id)
        if edge_id in self.edges:
            raise InvariantViolation(
                f"synthetic edge id {edge_id} already in use",
                ErrorCode.GRAPH_ID_COLLISION,
            )
        self._next_edge_id -= 1
        return edge_id

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def node(self, node_id: NodeId) -> Node:
        try:
            return self.nodes[node_id]
        except KeyError:
            raise DanglingEdgeError(
                f"no node with id {node_id}", details={"node_id": str(node_id)}
            ) from None

    def edge(self, edge_id: EdgeId) -> Edge:
        try:
            return self.edges[edge_id]
        except KeyError:
            raise DanglingEdgeError(
                f"no edge with id {edge_id}", details={"edge_id": str(edge_id)}
            ) from None

    def find_node(self, node_id: NodeId) -> Optional[Node]:
        return self.nodes.get(node_id)

    def find_edge(self, edge_id: EdgeId) -> Optional[Edge]:
        return self.edges.get(edge_id)

    def source_of(self, edge: Edge) -> Node:
        return self.node(edge.source)

    def target_of(self, edge: Edge) -> Node:
        return self.node(edge.target)

    # ------------------------------------------------------------------
    # Adjacency
    # ------------------------------------------------------------------
    # Each call returns a fresh generator, so a sequence can be restarted by
    # calling again. Order follows the DiGraph adjacency and then recording
    # order among parallel edges.

    def edges_incoming(self, node: NodeLike) -> Iterator[Edge]:
        node_id = _node_id(node)
        self._require_node(node_id)
        for _, _, edge_ids in self.graph.in_edges(node_id, data=EDGE_IDS):
            for edge_id in edge_ids:
                yield self.edge(edge_id)

    def edges_outgoing(self, node: NodeLike) -> Iterator[Edge]:
        node_id = _node_id(node)
        self._require_node(node_id)
        for _, _, edge_ids in self.graph.out_edges(node_id, data=EDGE_IDS):
            for edge_id in edge_ids:
                yield self.edge(edge_id)

    def neighbors_incoming(self, node: NodeLike) -> Iterator[Node]:
        node_id = _node_id(node)
        self._require_node(node_id)
        for predecessor in self.graph.predecessors(node_id):
            yield self.node(predecessor)

    def neighbors_outgoing(self, node: NodeLike) -> Iterator[Node]:
        node_id = _node_id(node)
        self._require_node(node_id)
        for successor in self.graph.successors(node_id):
            yield self.node(successor)

    def filter_nodes(self, predicate: Callable[[nt.NodeType], bool]) -> List[Node]:
        """Snapshot of the nodes whose variant satisfies `predicate`."""
        return [node for node in self.nodes.values() if predicate(node.node_type)]

    def filter_edges(self, predicate: Callable[[et.EdgeType], bool]) -> List[Edge]:
        """Snapshot of the edges whose variant satisfies `predicate`."""
        return [edge for edge in self.edges.values() if predicate(edge.edge_type)]

    def nodes_of_kind(self, kind: nt.NodeKind) -> List[Node]:
        return self.filter_nodes(lambda node_type: node_type.KIND is kind)

    def edges_of_kind(self, kind: et.EdgeKind) -> List[Edge]:
        return self.filter_edges(lambda edge_type: edge_type.KIND is kind)

    def all_remote_frame_ids(self) -> List[FrameId]:
        return [
            node.node_type.frame_id
            for node in self.nodes_of_kind(nt.NodeKind.REMOTE_FRAME)
        ]

    # ------------------------------------------------------------------
    # Frame merge, attribution and causal queries
    # ------------------------------------------------------------------
    # Thin entry points; the algorithms live in merge, attribution, effects
    # and queries.

    def merge_frame(self, child: "PageGraph", frame_id: FrameId) -> None:
        from pagegraph.graph.merge import merge_frame
        merge_frame(self, child, frame_id)

    def dom_root_for_html_node(self, node: Node) -> Node:
        from pagegraph.graph.attribution import DomRootResolver
        return DomRootResolver(self).dom_root_for_html_node(node)

    def dom_root_for_edge(self, edge: Edge) -> Optional[Node]:
        from pagegraph.graph.attribution import DomRootResolver
        return DomRootResolver(self).dom_root_for_edge(edge)

    def local_context_root_for_id(self, item) -> Node:
        from pagegraph.graph.attribution import DomRootResolver
        return DomRootResolver(self).local_context_root_for_id(item)

    def direct_downstream_effects_of(self, edge: Edge) -> List[Edge]:
        from pagegraph.graph.effects import EffectsEngine
        return EffectsEngine(self).direct_downstream_effects_of(edge)

    def all_downstream_effects_of(self, edge: Edge):
        from pagegraph.graph.effects import EffectsEngine
        return EffectsEngine(self).all_downstream_effects_of(edge)

    def all_downstream_requests_nested(self, edge: Edge):
        from pagegraph.graph.effects import EffectsEngine
        return EffectsEngine(self).all_downstream_requests_nested(edge)

    @property
    def queries(self):
        from pagegraph.graph.queries import GraphQueries
        return GraphQueries(self)

    def all_html_element_modifications(self, node_id: NodeId) -> List[Edge]:
        return self.queries.all_html_element_modifications(node_id)

    def resource_request_types(self, node_id: NodeId):
        return self.queries.resource_request_types(node_id)

    def resources_matching_filters(self, patterns, only_exceptions: bool = False, matcher_factory=None):
        return self.queries.resources_matching_filters(patterns, only_exceptions, matcher_factory)

    def resources_matching_filter(self, pattern: str, only_exceptions: bool = False, matcher_factory=None):
        return self.queries.resources_matching_filter(pattern, only_exceptions, matcher_factory)

    def root_url(self) -> str:
        return self.queries.root_url()

    def _require_node(self, node_id: NodeId) -> None:
        if node_id not in self.nodes:
            raise DanglingEdgeError(
                f"no node with id {node_id}", details={"node_id": str(node_id)}
            )


def _node_id(node: NodeLike) -> NodeId:
    return node.id if isinstance(node, Node) else node
