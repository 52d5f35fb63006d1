"""
Causal Effects Engine - What happened because of this action?

PURPOSE:
Given one edge (an action recorded in the page graph), find every edge that
would not exist had that action not happened.

KEY CONCEPTS:
- **Direct effects**: a dispatch table keyed by EdgeKind encodes which
  actions cause which follow-up actions. It is total over EdgeKind: kinds the
  causal model does not cover raise UnsupportedEdgeError instead of quietly
  returning nothing. The table is checked against EdgeKind at import.
- **Closure**: `all_downstream_effects_of` applies the table repeatedly with
  an explicit work-list.
- **Nested requests**: `all_downstream_requests_nested` runs the same walk but
  turns every RequestStart it reaches into a subtree of the requests that
  request caused in turn.

EXAMPLE:
    Execute(script)
      -> RequestStart(7)        script fetches data
           -> RequestComplete(7)
      -> SetAttribute(img.src)  script points an image somewhere
           -> RequestStart(8)
"""

from __future__ import annotations

import bisect
import logging
from typing import Callable, Dict, FrozenSet, List, Optional, Set

from pagegraph.errors import ErrorCode, InvariantViolation, UnsupportedEdgeError
from pagegraph.graph import edge_types as et
from pagegraph.graph import node_types as nt
from pagegraph.graph.attribution import find_dom_parent
from pagegraph.graph.edge_types import EdgeKind
from pagegraph.graph.ids import EdgeId
from pagegraph.graph.models import DownstreamRequests
from pagegraph.graph.store import Edge, Node, PageGraph

logger = logging.getLogger(__name__)

# Elements whose `src` attribute starts a load when set
CAN_HAVE_SRC: FrozenSet[str] = frozenset({
    "audio", "embed", "iframe", "img", "input", "script", "source", "track", "video",
})

# Kinds the causal model deliberately does not cover yet
UNMODELED_KINDS: FrozenSet[EdgeKind] = frozenset({
    EdgeKind.FILTER,
    EdgeKind.STRUCTURE,
    EdgeKind.RESOURCE_BLOCK,
    EdgeKind.SHIELD,
    EdgeKind.TEXT_CHANGE,
    EdgeKind.REMOVE_NODE,
    EdgeKind.DELETE_NODE,
    EdgeKind.JS_RESULT,
    EdgeKind.JS_CALL,
    EdgeKind.REQUEST_RESPONSE,
    EdgeKind.ADD_EVENT_LISTENER,
    EdgeKind.REMOVE_EVENT_LISTENER,
    EdgeKind.EVENT_LISTENER,
    EdgeKind.STORAGE_SET,
    EdgeKind.STORAGE_READ_RESULT,
    EdgeKind.DELETE_STORAGE,
    EdgeKind.READ_STORAGE_CALL,
    EdgeKind.CLEAR_STORAGE,
    EdgeKind.STORAGE_BUCKET,
    EdgeKind.EXECUTE_FROM_ATTRIBUTE,
    EdgeKind.DELETE_ATTRIBUTE,
    EdgeKind.BINDING,
    EdgeKind.BINDING_EVENT,
})

# EdgeKind -> EffectsEngine method computing its direct effects
_RULES: Dict[EdgeKind, str] = {
    EdgeKind.CROSS_DOM: "_effects_of_cross_dom",
    EdgeKind.INSERT_NODE: "_effects_of_insert_node",
    EdgeKind.CREATE_NODE: "_no_effects",
    EdgeKind.REQUEST_COMPLETE: "_effects_of_request_complete",
    EdgeKind.REQUEST_ERROR: "_no_effects",
    EdgeKind.REQUEST_START: "_effects_of_request_start",
    EdgeKind.EXECUTE: "_effects_of_execute",
    EdgeKind.SET_ATTRIBUTE: "_effects_of_set_attribute",
}
_RULES.update({kind: "_unmodeled" for kind in UNMODELED_KINDS})


def _timestamp_key(edge: Edge):
    # a missing timestamp orders before every recorded one
    return (0, 0) if edge.timestamp is None else (1, edge.timestamp)


def _require_timestamp(edge: Edge) -> int:
    if edge.timestamp is None:
        raise InvariantViolation(
            f"edge {edge.id} has no timestamp",
            ErrorCode.GRAPH_MISSING_TIMESTAMP,
            details={"edge_id": str(edge.id)},
        )
    return edge.timestamp


class EffectsEngine:
    """Causal queries over one read-only page graph."""

    def __init__(self, graph: PageGraph):
        self.graph = graph
        self._handlers: Dict[EdgeKind, Callable[[Edge], List[Edge]]] = {
            kind: getattr(self, name) for kind, name in _RULES.items()
        }

    # ========================================================================
    # Public API
    # ========================================================================

    def direct_downstream_effects_of(self, edge: Edge) -> List[Edge]:
        return self._handlers[edge.kind](edge)

    def all_downstream_effects_of(self, edge: Edge) -> Set[Edge]:
        """
        Every edge transitively caused by `edge`, not including `edge` itself.
        """
        seen: Set[EdgeId] = {edge.id}
        result: Set[Edge] = set()
        pending = [edge]
        while pending:
            current = pending.pop()
            for effect in self.direct_downstream_effects_of(current):
                if effect.id in seen:
                    continue
                seen.add(effect.id)
                result.add(effect)
                pending.append(effect)
        return result

    def all_downstream_requests_nested(self, edge: Edge) -> List[DownstreamRequests]:
        """
        Requests caused by `edge`, each carrying the requests it caused.

        Work-list walk like `all_downstream_effects_of`, except that a
        RequestStart effect is not expanded in place: it becomes an entry whose
        children come from recursing on that RequestStart edge.
        """
        return self._nested_requests(edge, frozenset({edge.id}))

    def _nested_requests(self, edge: Edge, ancestry: FrozenSet[EdgeId]) -> List[DownstreamRequests]:
        answer: List[DownstreamRequests] = []
        seen: Set[EdgeId] = {edge.id}
        pending = [edge]
        while pending:
            current = pending.pop()
            for effect in self.direct_downstream_effects_of(current):
                if effect.id in seen:
                    continue
                seen.add(effect.id)
                if isinstance(effect.edge_type, et.RequestStart):
                    answer.append(self._request_entry(effect, ancestry))
                else:
                    pending.append(effect)
        return answer

    def _request_entry(self, edge: Edge, ancestry: FrozenSet[EdgeId]) -> DownstreamRequests:
        resource = self.graph.target_of(edge)
        if not isinstance(resource.node_type, nt.Resource):
            raise InvariantViolation(
                f"request start {edge.id} does not point at a resource",
                ErrorCode.GRAPH_WRONG_NODE_TYPE,
                details={"edge_id": str(edge.id), "node_id": str(resource.id)},
            )
        if edge.id in ancestry:
            logger.debug("Request %s already expanded higher up the tree", edge.id)
            children: List[DownstreamRequests] = []
        else:
            children = self._nested_requests(edge, ancestry | {edge.id})
        return DownstreamRequests(
            request_id=edge.edge_type.request_id,
            request_type=edge.edge_type.request_type.label,
            url=resource.node_type.url,
            node_id=str(resource.id),
            children=children,
        )

    # ========================================================================
    # Dispatch table entries
    # ========================================================================

    def _no_effects(self, edge: Edge) -> List[Edge]:
        return []

    def _unmodeled(self, edge: Edge) -> List[Edge]:
        raise UnsupportedEdgeError(
            f"downstream effects of {edge.edge_type.TYPE_NAME} edges are not modeled",
            details={"edge_id": str(edge.id), "edge_type": edge.edge_type.TYPE_NAME},
        )

    def _effects_of_cross_dom(self, edge: Edge) -> List[Edge]:
        target = self.graph.target_of(edge)
        if isinstance(target.node_type, nt.DomRoot):
            return self._initial_parse_edges(target)
        if isinstance(target.node_type, nt.Parser):
            # reached when a remote frame was merged; the frame's DOM root
            # edge reports its effects
            return []
        if isinstance(target.node_type, nt.RemoteFrame):
            return [
                e for e in self.graph.edges_outgoing(target)
                if isinstance(e.edge_type, et.CrossDom)
            ]
        raise UnsupportedEdgeError(
            f"cross DOM edge {edge.id} points at a {target.node_type.TYPE_NAME} node",
            ErrorCode.EFFECTS_UNSUPPORTED_NODE,
            details={"edge_id": str(edge.id), "node_id": str(target.id)},
        )

    def _effects_of_insert_node(self, edge: Edge) -> List[Edge]:
        # Inserting an element with `src` can start a load, but that is
        # modeled through SetAttribute. Inserting the text of a script
        # element runs it.
        target = self.graph.target_of(edge)
        if not isinstance(target.node_type, nt.TextNode):
            return []

        parent = find_dom_parent(self.graph, edge, edge.edge_type.parent)
        parent_type = parent.node_type
        if not (isinstance(parent_type, nt.HtmlElement) and parent_type.tag_name == "script"):
            return []

        inserted_at = _timestamp_key(edge)
        executions = [
            e for e in self.graph.edges_outgoing(parent)
            if isinstance(e.edge_type, et.Execute) and _timestamp_key(e) >= inserted_at
        ]
        # e.g. <script type="application/json"> never executes
        if not executions:
            return []
        return [min(executions, key=_timestamp_key)]

    def _effects_of_request_complete(self, edge: Edge) -> List[Edge]:
        target = self.graph.target_of(edge)
        target_type = target.node_type
        if (
            edge.edge_type.resource_type == "script"
            and isinstance(target_type, nt.HtmlElement)
            and target_type.tag_name == "script"
        ):
            return [
                e for e in self.graph.edges_outgoing(target)
                if isinstance(e.edge_type, et.Execute)
            ]
        return []

    def _effects_of_request_start(self, edge: Edge) -> List[Edge]:
        request_id = edge.edge_type.request_id
        return [
            e for e in self.graph.edges_outgoing(self.graph.target_of(edge))
            if isinstance(e.edge_type, (et.RequestComplete, et.RequestError))
            and e.edge_type.request_id == request_id
        ]

    def _effects_of_execute(self, edge: Edge) -> List[Edge]:
        # Scripts can fetch, run other scripts or set attributes that start
        # loads. DOM changes, API calls and storage access are not modeled.
        return [
            e for e in self.graph.edges_outgoing(self.graph.target_of(edge))
            if isinstance(e.edge_type, (et.RequestStart, et.Execute, et.SetAttribute))
        ]

    def _effects_of_set_attribute(self, edge: Edge) -> List[Edge]:
        if edge.edge_type.key != "src":
            return []
        target = self.graph.target_of(edge)
        target_type = target.node_type
        if isinstance(target_type, nt.HtmlElement) and target_type.tag_name in CAN_HAVE_SRC:
            return [
                e for e in self.graph.edges_outgoing(target)
                if isinstance(e.edge_type, et.RequestStart)
            ]
        if isinstance(target_type, nt.FrameOwner) and target_type.tag_name in CAN_HAVE_SRC:
            return self._frame_loads_after_src_set(edge, target)
        return []

    # ========================================================================
    # Helpers
    # ========================================================================

    def _frame_loads_after_src_set(self, edge: Edge, owner: Node) -> List[Edge]:
        """
        CrossDom loads of `owner` between this `src` set and the next one.

        Only loads of a real document (a DomRoot other than about:blank) or of
        a remote frame count.
        """
        set_at = _require_timestamp(edge)
        later_sets = [
            _require_timestamp(other)
            for other in self.graph.edges_incoming(owner)
            if other.id != edge.id
            and isinstance(other.edge_type, et.SetAttribute)
            and other.edge_type.key == "src"
        ]
        later_sets = [ts for ts in later_sets if ts > set_at]
        next_set_at: Optional[int] = min(later_sets) if later_sets else None

        loads = []
        for candidate in self.graph.edges_outgoing(owner):
            if not isinstance(candidate.edge_type, et.CrossDom):
                continue
            loaded = self.graph.target_of(candidate).node_type
            if isinstance(loaded, nt.DomRoot):
                if loaded.url == "about:blank":
                    continue
            elif not isinstance(loaded, nt.RemoteFrame):
                continue
            loaded_at = _require_timestamp(candidate)
            if loaded_at < set_at:
                continue
            if next_set_at is not None and loaded_at >= next_set_at:
                continue
            loads.append(candidate)
        return loads

    def _initial_parse_edges(self, dom_root: Node) -> List[Edge]:
        """
        CreateNode, SetAttribute and InsertNode edges from the frame context's
        parser into nodes that belong to `dom_root` itself (not to a document
        nested below it).
        """
        frame = dom_root.id.frame
        parsers = [
            node for node in self.graph.nodes_of_kind(nt.NodeKind.PARSER)
            if node.id.frame == frame
        ]
        if len(parsers) != 1:
            raise InvariantViolation(
                f"frame context of {dom_root.id} has {len(parsers)} parsers",
                ErrorCode.GRAPH_CARDINALITY,
                details={"node_id": str(dom_root.id)},
            )
        parser = parsers[0]

        # Everything the parser created in this frame context, plus DOM roots
        # nobody created. Still not necessarily the same document.
        candidates = [
            self.graph.target_of(e) for e in self.graph.edges_outgoing(parser)
            if isinstance(e.edge_type, et.CreateNode)
        ]
        candidates.extend(
            node for node in self.graph.nodes_of_kind(nt.NodeKind.DOM_ROOT)
            if node.id.frame == frame
            and not any(
                isinstance(e.edge_type, et.CreateNode)
                for e in self.graph.edges_incoming(node)
            )
        )
        for node in candidates:
            if node.kind not in nt.DOM_NODE_KINDS:
                raise InvariantViolation(
                    f"parser created a {node.node_type.TYPE_NAME} node, which has no DOM node id",
                    ErrorCode.GRAPH_WRONG_NODE_TYPE,
                    details={"node_id": str(node.id)},
                )
        candidates.sort(key=lambda node: node.node_type.node_id)
        dom_ids = [node.node_type.node_id for node in candidates]
        for a, b in zip(dom_ids, dom_ids[1:]):
            if a == b:
                raise InvariantViolation(
                    f"HTML node id {a} is present twice",
                    ErrorCode.GRAPH_DUPLICATE_DOM_ID,
                    details={"node_id": a},
                )

        flags: List[Optional[bool]] = [None] * len(candidates)
        for index in range(len(candidates)):
            self._resolve_membership(index, candidates, dom_ids, flags, dom_root)

        result = []
        for node, belongs in zip(candidates, flags):
            if not belongs or isinstance(node.node_type, nt.DomRoot):
                continue
            result.extend(
                e for e in self.graph.edges_incoming(node)
                if isinstance(e.edge_type, (et.CreateNode, et.SetAttribute, et.InsertNode))
                and e.source == parser.id
            )
        return result

    def _resolve_membership(self, index: int, candidates: List[Node], dom_ids: List[int],
                            flags: List[Optional[bool]], dom_root: Node) -> bool:
        """
        Follow InsertNode parents up to a DOM root, then copy that root's
        verdict onto every node on the way.
        """
        path: List[int] = []
        on_path: Set[int] = set()
        current = index
        while True:
            if flags[current] is not None:
                verdict = flags[current]
                break
            if current in on_path:
                # an insertion cycle never reaches a root
                verdict = False
                break
            path.append(current)
            on_path.add(current)

            node = candidates[current]
            if isinstance(node.node_type, nt.DomRoot):
                verdict = node.id == dom_root.id
                break

            parent_index = None
            for e in self.graph.edges_incoming(node):
                if not isinstance(e.edge_type, et.InsertNode):
                    continue
                position = bisect.bisect_left(dom_ids, e.edge_type.parent)
                if position < len(dom_ids) and dom_ids[position] == e.edge_type.parent:
                    parent_index = position
                    break
            if parent_index is None:
                # parser-created but never inserted under a known node
                verdict = False
                break
            current = parent_index

        for i in path:
            flags[i] = verdict
        return verdict


_missing = set(EdgeKind) - set(_RULES)
if _missing or not all(hasattr(EffectsEngine, name) for name in _RULES.values()):
    raise RuntimeError(f"incomplete downstream effect rules: {sorted(k.value for k in _missing)}")
del _missing
