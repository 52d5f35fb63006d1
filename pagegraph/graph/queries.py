"""
Read-only queries over a loaded page graph.

These sit on top of the store and the causal engine and return either graph
objects or the pydantic records in `pagegraph.graph.models`. None of them
format output.
"""

from __future__ import annotations

import logging
from dataclasses import fields
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlsplit

from pagegraph.errors import DanglingEdgeError, ErrorCode, InvariantViolation
from pagegraph.graph import edge_types as et
from pagegraph.graph import node_types as nt
from pagegraph.graph.ids import EdgeId, FrameId, NodeId
from pagegraph.graph.models import MatchingResource, RequestInfo
from pagegraph.graph.store import Edge, Node, PageGraph

logger = logging.getLogger(__name__)

MatcherFactory = Callable[[List[str]], Any]


def _require_kind(node: Node, node_class, label: str) -> None:
    if not isinstance(node.node_type, node_class):
        raise InvariantViolation(
            f"{node.id} is a {node.node_type.TYPE_NAME} node, expected {label}",
            ErrorCode.GRAPH_WRONG_NODE_TYPE,
            details={"node_id": str(node.id)},
        )


def parse_size(size: str) -> Optional[int]:
    """Recorded response size, or None for streamed or unsized responses."""
    return int(size) if size.isascii() and size.isdigit() else None


def _hostname(url: str) -> Optional[str]:
    try:
        return urlsplit(url).hostname
    except ValueError:
        return None


class GraphQueries:
    def __init__(self, graph: PageGraph):
        self.graph = graph

    # ------------------------------------------------------------------
    # DOM
    # ------------------------------------------------------------------

    def all_html_element_modifications(self, node_id: NodeId) -> List[Edge]:
        """
        Every action taken on an HtmlElement (all incoming edges except
        Structure), in chronological order.
        """
        element = self.graph.node(node_id)
        _require_kind(element, nt.HtmlElement, "an HTML element")
        modifications = [
            edge for edge in self.graph.edges_incoming(element)
            if not isinstance(edge.edge_type, et.Structure)
        ]
        for edge in modifications:
            if edge.timestamp is None:
                raise InvariantViolation(
                    f"HTML element modification {edge.id} has no timestamp",
                    ErrorCode.GRAPH_MISSING_TIMESTAMP,
                    details={"edge_id": str(edge.id), "node_id": str(node_id)},
                )
        modifications.sort(key=lambda edge: edge.timestamp)
        return modifications

    def heavily_modified_elements(self, minimum: int = 4) -> List[Tuple[Node, int]]:
        """HtmlElements modified at least `minimum` times, most modified first."""
        counted = []
        for element in self.graph.nodes_of_kind(nt.NodeKind.HTML_ELEMENT):
            count = len(self.all_html_element_modifications(element.id))
            if count >= minimum:
                counted.append((element, count))
        counted.sort(key=lambda pair: (-pair[1], pair[0].id))
        return counted

    # ------------------------------------------------------------------
    # Resources and requests
    # ------------------------------------------------------------------

    def scripts_that_caused_resource(self, node_id: NodeId) -> List[Node]:
        resource = self.graph.node(node_id)
        _require_kind(resource, nt.Resource, "a resource")
        return list(self.graph.neighbors_incoming(resource))

    def resources_from_script(self, node_id: NodeId) -> List[Node]:
        """
        Resources requested by a Script node, or by a `<script>` element
        either directly (`src`) or through the Script nodes it ran.
        """
        element = self.graph.node(node_id)
        element_type = element.node_type
        resources = [
            node for node in self.graph.neighbors_outgoing(element)
            if isinstance(node.node_type, nt.Resource)
        ]
        if isinstance(element_type, nt.Script):
            return resources
        if isinstance(element_type, nt.HtmlElement) and element_type.tag_name == "script":
            for script in self.graph.neighbors_outgoing(element):
                if not isinstance(script.node_type, nt.Script):
                    continue
                resources.extend(
                    node for node in self.graph.neighbors_outgoing(script)
                    if isinstance(node.node_type, nt.Resource)
                )
            return resources
        raise InvariantViolation(
            f"{node_id} is neither a script nor a <script> element",
            ErrorCode.GRAPH_WRONG_NODE_TYPE,
            details={"node_id": str(node_id)},
        )

    def resource_request_types(self, node_id: NodeId) -> List[Tuple[str, Optional[int]]]:
        """
        (request type label, response size) for every request of a resource.

        A resource nobody requested reports a single ("other", None).
        """
        resource = self.graph.node(node_id)
        _require_kind(resource, nt.Resource, "a resource")

        completions: Dict[int, Edge] = {}
        for edge in self.graph.edges_outgoing(resource):
            if isinstance(edge.edge_type, et.RequestComplete):
                completions.setdefault(edge.edge_type.request_id, edge)

        found: List[Tuple[str, Optional[int]]] = []
        for edge in self.graph.edges_incoming(resource):
            if not isinstance(edge.edge_type, et.RequestStart):
                continue
            complete = completions.get(edge.edge_type.request_id)
            size = parse_size(complete.edge_type.size) if complete is not None else None
            entry = (edge.edge_type.request_type.label, size)
            if entry not in found:
                found.append(entry)
        if not found:
            return [("other", None)]
        return found

    def request_info(self, request_id: int, frame_id: Optional[FrameId] = None) -> RequestInfo:
        """
        Everything recorded about one request id within one frame context.

        Several start/complete pairs can share an id when they hit the same
        cached resource; they carry the same information, so any is used.
        """
        start = complete = None
        for edge in self.graph.edges.values():
            if edge.id.frame != frame_id:
                continue
            edge_type = edge.edge_type
            if isinstance(edge_type, et.RequestStart) and edge_type.request_id == request_id:
                start = start or edge
            elif isinstance(edge_type, et.RequestComplete) and edge_type.request_id == request_id:
                complete = complete or edge
        if start is None or complete is None:
            missing = "RequestStart" if start is None else "RequestComplete"
            raise InvariantViolation(
                f"no {missing} edge for request id {request_id}",
                ErrorCode.GRAPH_CARDINALITY,
                details={"request_id": request_id, "frame_id": str(frame_id) if frame_id else None},
            )

        resource = self.graph.target_of(start)
        if resource.id != complete.source:
            raise InvariantViolation(
                f"RequestStart {start.id} and RequestComplete {complete.id} do not refer "
                f"to the same resource",
                ErrorCode.GRAPH_CARDINALITY,
                details={"request_id": request_id},
            )
        _require_kind(resource, nt.Resource, "a resource")

        done = complete.edge_type
        return RequestInfo(
            request_id=request_id,
            frame_id=str(frame_id) if frame_id is not None else None,
            request_type=start.edge_type.request_type.label,
            url=resource.node_type.url,
            node_id=str(resource.id),
            initiator_id=str(start.source),
            status=done.status,
            resource_type=done.resource_type,
            size=done.size,
            headers=done.headers,
            response_hash=done.response_hash,
            start_edge_id=str(start.id),
            complete_edge_id=str(complete.id),
        )

    # ------------------------------------------------------------------
    # Filter rules
    # ------------------------------------------------------------------

    def root_url(self) -> str:
        """URL of the recorded page."""
        if self.graph.desc.url is not None:
            return self.graph.desc.url
        # older recordings: the one DOM root nothing points at
        roots = [
            node for node in self.graph.nodes_of_kind(nt.NodeKind.DOM_ROOT)
            if next(self.graph.edges_incoming(node), None) is None
        ]
        if len(roots) != 1 or roots[0].node_type.url is None:
            raise InvariantViolation(
                f"could not determine the page URL from {len(roots)} unattached DOM roots",
                ErrorCode.GRAPH_CARDINALITY,
                details={"roots": [str(node.id) for node in roots]},
            )
        return roots[0].node_type.url

    def resources_matching_filters(self, patterns: Iterable[str], only_exceptions: bool = False,
                                   matcher_factory: Optional[MatcherFactory] = None) -> List[Tuple[NodeId, Node]]:
        """
        Resources whose requests match any of `patterns` (adblock syntax), or
        with `only_exceptions`, that an exception rule covers.

        Resources whose URL has no host cannot be checked and are skipped.
        """
        from pagegraph.filters.matcher import FilterRequest, RuleMatcher, get_domain, third_party_flag

        source_url = self.root_url()
        source_hostname = _hostname(source_url)
        if not source_hostname:
            raise InvariantViolation(
                f"page URL has no host: {source_url!r}",
                ErrorCode.GRAPH_CARDINALITY,
                details={"url": source_url},
            )
        source_domain = get_domain(source_hostname)
        patterns = list(patterns)
        matcher = (matcher_factory or RuleMatcher)(patterns)

        matching = []
        for node in self.graph.nodes_of_kind(nt.NodeKind.RESOURCE):
            url = node.node_type.url
            hostname = _hostname(url)
            if not hostname:
                continue
            third_party = third_party_flag(source_domain, get_domain(hostname))
            for request_type, _size in self.resource_request_types(node.id):
                request = FilterRequest(
                    url=url,
                    hostname=hostname,
                    source_hostname=source_hostname,
                    request_type=request_type,
                    third_party=third_party,
                )
                if matcher.matches(request, only_exceptions):
                    matching.append((node.id, node))
                    break
        logger.info("%d resources matched %d filter rules", len(matching), len(patterns))
        return matching

    def resources_matching_filter(self, pattern: str, only_exceptions: bool = False,
                                  matcher_factory: Optional[MatcherFactory] = None) -> List[Tuple[NodeId, Node]]:
        return self.resources_matching_filters([pattern], only_exceptions, matcher_factory)

    def matching_resources(self, patterns: Iterable[str], only_exceptions: bool = False,
                           matcher_factory: Optional[MatcherFactory] = None) -> List[MatchingResource]:
        records = []
        for node_id, node in self.resources_matching_filters(patterns, only_exceptions, matcher_factory):
            requests = [
                (edge.edge_type.request_id, str(edge.id))
                for edge in self.graph.edges_incoming(node)
                if isinstance(edge.edge_type, et.RequestStart)
            ]
            records.append(MatchingResource(
                url=node.node_type.url,
                node_id=str(node_id),
                request_types=[label for label, _ in self.resource_request_types(node_id)],
                requests=requests,
            ))
        records.sort(key=lambda record: record.node_id)
        return records


# ----------------------------------------------------------------------------
# Item descriptions
# ----------------------------------------------------------------------------

def describe_node(node: Node) -> Dict[str, Any]:
    return {
        "id": str(node.id),
        "timestamp": node.timestamp,
        "type": node.node_type.TYPE_NAME,
        "data": _variant_data(node.node_type),
    }


def describe_edge(edge: Edge) -> Dict[str, Any]:
    return {
        "id": str(edge.id),
        "timestamp": edge.timestamp,
        "type": edge.edge_type.TYPE_NAME,
        "source": str(edge.source),
        "target": str(edge.target),
        "data": _variant_data(edge.edge_type),
    }


def _variant_data(variant) -> Dict[str, Any]:
    data = {}
    for f in fields(variant):
        value = getattr(variant, f.name)
        if isinstance(value, et.RequestType):
            value = value.label
        elif isinstance(value, FrameId):
            value = str(value)
        data[f.name] = value
    return data


def describe_item(graph: PageGraph, text_id: str) -> Dict[str, Any]:
    """
    Structured description of a node (with its incoming and outgoing edges)
    or of an edge (with its source and target). `text_id` is `n...`/`e...`;
    a bare number is looked up as a node first, then as an edge.
    """
    if text_id[:1] == NodeId.PREFIX:
        candidates = [NodeId.parse(text_id)]
    elif text_id[:1] == EdgeId.PREFIX:
        candidates = [EdgeId.parse(text_id)]
    else:
        candidates = [NodeId.parse_unprefixed(text_id), EdgeId.parse_unprefixed(text_id)]
    for item_id in candidates:
        if isinstance(item_id, NodeId):
            node = graph.find_node(item_id)
            if node is not None:
                description = describe_node(node)
                description["incoming"] = [describe_edge(e) for e in graph.edges_incoming(node)]
                description["outgoing"] = [describe_edge(e) for e in graph.edges_outgoing(node)]
                return description
        else:
            edge = graph.find_edge(item_id)
            if edge is not None:
                description = describe_edge(edge)
                description["source_node"] = describe_node(graph.source_of(edge))
                description["target_node"] = describe_node(graph.target_of(edge))
                return description
    raise DanglingEdgeError(
        f"no node or edge with id {text_id} in this graph",
        details={"id": text_id},
    )
