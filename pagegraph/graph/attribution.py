"""
DOM Root Attribution - Which document does a node or action belong to?

PURPOSE:
Answer "which DOM root owns this element / script / edge" for a loaded page
graph. Third-party checks and the causal engine both need the document an
action happened in, and the recording only tells us indirectly: through
InsertNode parent ids, CreateNode creators and Execute chains.

KEY CONCEPTS:
- **DOM root**: the DomRoot node at the top of one document.
- **Local context root**: the single DomRoot of a frame context that is not
  itself attached below another document by a CrossDom edge from the same
  context. Used as the fallback whenever walking the causal chain is not
  possible.
- **Multi-root scripts**: the same script source can be executed from several
  documents of one frame context. The root with the alphabetically first URL
  is picked so answers are deterministic. This is an approximation; only the
  partiness of the URL is relied on downstream.
- **Re-entry**: module scripts can form execution cycles. Each top-level call
  tracks the nodes and edges it is currently resolving, and a re-entered item
  falls back to its local context root instead of recursing forever.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set, Tuple, Union

from pagegraph.errors import ErrorCode, InvariantViolation, UnsupportedEdgeError
from pagegraph.graph import edge_types as et
from pagegraph.graph import node_types as nt
from pagegraph.graph.ids import EdgeId, FrameId, NodeId
from pagegraph.graph.store import Edge, Node, PageGraph

logger = logging.getLogger(__name__)

_PARENT_KINDS = (nt.HtmlElement, nt.DomRoot, nt.FrameOwner)

Item = Union[Node, Edge, NodeId, EdgeId]
Active = Set[Union[NodeId, EdgeId]]


def find_dom_parent(graph: PageGraph, context: Item, parent_id: int,
                    index: Optional[Dict[Tuple[Optional[FrameId], int], List[Node]]] = None) -> Node:
    """
    The unique HtmlElement, DomRoot or FrameOwner with Blink node id
    `parent_id` in the frame context of `context`.
    """
    frame = _frame(context)
    if index is not None:
        candidates = index.get((frame, parent_id), [])
    else:
        candidates = [
            node for node in graph.nodes.values()
            if node.id.frame == frame
            and isinstance(node.node_type, _PARENT_KINDS)
            and node.node_type.node_id == parent_id
        ]
    if not candidates:
        raise InvariantViolation(
            f"no HTML parent node with id {parent_id} found for {_item_id(context)}",
            ErrorCode.GRAPH_DANGLING_REFERENCE,
            details={"parent": parent_id, "item": str(_item_id(context))},
        )
    if len(candidates) > 1:
        raise InvariantViolation(
            f"multiple HTML parent nodes with id {parent_id} found",
            ErrorCode.GRAPH_DUPLICATE_DOM_ID,
            details={"parent": parent_id, "nodes": [str(n.id) for n in candidates]},
        )
    return candidates[0]


class DomRootResolver:
    """
    Resolves DOM roots for nodes and edges of one graph.

    Instances cache a (frame, Blink node id) index of the graph, so create a
    new resolver after the graph has been mutated by `merge_frame`.
    """

    def __init__(self, graph: PageGraph):
        self.graph = graph
        self._parent_index: Optional[Dict[Tuple[Optional[FrameId], int], List[Node]]] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def dom_root_for_html_node(self, node: Node, _active: Optional[Active] = None) -> Node:
        """DOM root of a DomRoot, HtmlElement, TextNode or FrameOwner node."""
        if isinstance(node.node_type, nt.DomRoot):
            return node
        if not isinstance(node.node_type, (nt.HtmlElement, nt.TextNode, nt.FrameOwner)):
            raise InvariantViolation(
                f"{node.id} is a {node.node_type.TYPE_NAME} node, not an HTML node",
                ErrorCode.GRAPH_WRONG_NODE_TYPE,
                details={"node_id": str(node.id)},
            )

        active = set() if _active is None else _active
        if node.id in active:
            logger.debug("Re-entered DOM root lookup for %s, using local context root", node.id)
            return self.local_context_root_for_id(node.id)
        active.add(node.id)
        try:
            return self._dom_root_for_dom_node(node, active)
        finally:
            active.discard(node.id)

    def dom_root_for_edge(self, edge: Edge, _active: Optional[Active] = None) -> Optional[Node]:
        """
        DOM root an action is attributed to.

        Supports RequestComplete, Execute and CrossDom edges. Returns None for
        requests initiated by the parser (prefetches, CSS), which cannot be
        attributed to a document.
        """
        if not isinstance(edge.edge_type, (et.RequestComplete, et.Execute, et.CrossDom)):
            raise UnsupportedEdgeError(
                f"DOM root attribution is not modeled for {edge.edge_type.TYPE_NAME} edges",
                details={"edge_id": str(edge.id)},
            )

        active = set() if _active is None else _active
        if edge.id in active:
            logger.debug("Re-entered DOM root lookup for %s, using local context root", edge.id)
            return self.local_context_root_for_id(edge.id)
        active.add(edge.id)
        try:
            if isinstance(edge.edge_type, et.RequestComplete):
                return self._root_for_request_complete(edge, active)
            if isinstance(edge.edge_type, et.Execute):
                return self._root_for_execute(edge, active)
            return self._root_for_cross_dom(edge, active)
        finally:
            active.discard(edge.id)

    def local_context_root_for_id(self, item: Item) -> Node:
        """
        The top-level DomRoot of `item`'s frame context: the one DomRoot of
        that context with no incoming CrossDom edge from the same context.
        """
        frame = _frame(item)
        matches = [
            node for node in self.graph.nodes.values()
            if node.id.frame == frame
            and isinstance(node.node_type, nt.DomRoot)
            and not any(
                isinstance(edge.edge_type, et.CrossDom) and edge.id.frame == frame
                for edge in self.graph.edges_incoming(node)
            )
        ]
        if len(matches) != 1:
            raise InvariantViolation(
                f"wrong number of local context DOM roots: {len(matches)}",
                ErrorCode.GRAPH_CARDINALITY,
                details={"item": str(_item_id(item)), "roots": [str(n.id) for n in matches]},
            )
        return matches[0]

    # ------------------------------------------------------------------
    # DOM nodes
    # ------------------------------------------------------------------

    def _dom_root_for_dom_node(self, node: Node, active: Active) -> Node:
        # The first InsertNode parent decides.
        for edge in self.graph.edges_incoming(node):
            if isinstance(edge.edge_type, et.InsertNode):
                parent = find_dom_parent(self.graph, node, edge.edge_type.parent, self._index())
                return self.dom_root_for_html_node(parent, active)

        # Never inserted, so it may have been created by a script.
        creators = [
            self.graph.source_of(edge)
            for edge in self.graph.edges_incoming(node)
            if isinstance(edge.edge_type, et.CreateNode)
        ]
        if len(creators) != 1:
            raise InvariantViolation(
                f"{node.id} was never inserted and has {len(creators)} creators",
                ErrorCode.GRAPH_CARDINALITY,
                details={"node_id": str(node.id)},
            )
        creator = creators[0]
        if not isinstance(creator.node_type, nt.Script):
            raise InvariantViolation(
                f"{node.id} was never inserted, but created by a "
                f"{creator.node_type.TYPE_NAME} node, which is not a script",
                ErrorCode.GRAPH_WRONG_NODE_TYPE,
                details={"node_id": str(node.id), "creator": str(creator.id)},
            )

        roots = self._executor_roots(creator, active)
        if not roots:
            return self.local_context_root_for_id(creator.id)
        return _first_root_by_url(roots, creator)

    # ------------------------------------------------------------------
    # Edges
    # ------------------------------------------------------------------

    def _root_for_request_complete(self, edge: Edge, active: Active) -> Optional[Node]:
        target = self.graph.target_of(edge)
        if isinstance(target.node_type, (nt.HtmlElement, nt.FrameOwner)):
            return self.dom_root_for_html_node(target, active)
        if isinstance(target.node_type, nt.Script):
            # Usually one Execute edge, more for several script elements
            # sharing the same source.
            roots = self._executor_roots(target, active)
            if not roots:
                return self.local_context_root_for_id(edge.id)
            return _first_root_by_url(roots, target)
        if isinstance(target.node_type, nt.Parser):
            return None
        raise InvariantViolation(
            f"request {edge.id} was initiated by a {target.node_type.TYPE_NAME} node "
            f"(not a script or HTML element)",
            ErrorCode.GRAPH_WRONG_NODE_TYPE,
            details={"edge_id": str(edge.id), "node_id": str(target.id)},
        )

    def _root_for_execute(self, edge: Edge, active: Active) -> Node:
        source = self.graph.source_of(edge)
        source_type = source.node_type
        if isinstance(source_type, nt.HtmlElement) and source_type.tag_name == "script":
            return self.dom_root_for_html_node(source, active)
        if isinstance(source_type, nt.Script):
            if source_type.is_module:
                return self.local_context_root_for_id(edge.id)
            roots = self._executor_roots(source, active)
            if not roots:
                raise InvariantViolation(
                    f"script {source.id} executed by {edge.id} had no executor",
                    ErrorCode.GRAPH_CARDINALITY,
                    details={"edge_id": str(edge.id), "node_id": str(source.id)},
                )
            return _first_root_by_url(roots, source)
        if isinstance(source_type, nt.DomRoot):
            # DOM roots occasionally execute scripts themselves
            return source
        raise InvariantViolation(
            f"script was executed by a {source_type.TYPE_NAME} node "
            f"(not a script element or another script)",
            ErrorCode.GRAPH_WRONG_NODE_TYPE,
            details={"edge_id": str(edge.id), "node_id": str(source.id)},
        )

    def _root_for_cross_dom(self, edge: Edge, active: Active) -> Optional[Node]:
        source = self.graph.source_of(edge)
        if isinstance(source.node_type, nt.RemoteFrame):
            previous = [
                e for e in self.graph.edges_incoming(source)
                if isinstance(e.edge_type, et.CrossDom)
            ]
            if len(previous) != 1:
                raise InvariantViolation(
                    f"remote frame {source.id} has {len(previous)} incoming cross DOM edges",
                    ErrorCode.GRAPH_CARDINALITY,
                    details={"node_id": str(source.id)},
                )
            return self.dom_root_for_edge(previous[0], active)
        if isinstance(source.node_type, nt.FrameOwner):
            return self.dom_root_for_html_node(source, active)
        if isinstance(source.node_type, nt.DomRoot):
            # a script-created DOM root can hang directly off another root
            return source
        raise InvariantViolation(
            f"cross DOM edge {edge.id} has a {source.node_type.TYPE_NAME} source "
            f"(not a remote frame, frame owner or DOM root)",
            ErrorCode.GRAPH_WRONG_NODE_TYPE,
            details={"edge_id": str(edge.id), "node_id": str(source.id)},
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _executor_roots(self, script: Node, active: Active) -> List[Node]:
        roots = []
        for edge in self.graph.edges_incoming(script):
            if isinstance(edge.edge_type, et.Execute):
                root = self.dom_root_for_edge(edge, active)
                if root is not None:
                    roots.append(root)
        return roots

    def _index(self) -> Dict[Tuple[Optional[FrameId], int], List[Node]]:
        if self._parent_index is None:
            index: Dict[Tuple[Optional[FrameId], int], List[Node]] = {}
            for node in self.graph.nodes.values():
                if isinstance(node.node_type, _PARENT_KINDS):
                    index.setdefault((node.id.frame, node.node_type.node_id), []).append(node)
            self._parent_index = index
        return self._parent_index


def _first_root_by_url(roots: List[Node], script: Node) -> Node:
    with_url = [
        root for root in roots
        if isinstance(root.node_type, nt.DomRoot) and root.node_type.url is not None
    ]
    if not with_url:
        raise InvariantViolation(
            f"none of the DOM roots executing {script.id} has a URL",
            ErrorCode.GRAPH_CARDINALITY,
            details={"node_id": str(script.id), "roots": [str(r.id) for r in roots]},
        )
    return min(with_url, key=lambda root: root.node_type.url)


def _item_id(item: Item) -> Union[NodeId, EdgeId]:
    return item.id if isinstance(item, (Node, Edge)) else item


def _frame(item: Item) -> Optional[FrameId]:
    return _item_id(item).frame


__all__ = [
    "DomRootResolver",
    "find_dom_parent",
]
