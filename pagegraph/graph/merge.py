"""
Frame merging.

Out-of-process iframes are recorded in their own files. `merge_frame` splices
such a recording into the root graph, qualifying every id of the child with
the frame token so ids of different frames never collide, and links the
parent's RemoteFrame placeholder to the child's top-level DOM root and parser
with two new CrossDom edges.

This is the only operation that mutates a graph after it was read.
"""

from __future__ import annotations

import logging

from pagegraph.errors import FrameMergeError
from pagegraph.graph import edge_types as et
from pagegraph.graph import node_types as nt
from pagegraph.graph.ids import FrameId
from pagegraph.graph.store import EDGE_IDS, Edge, Node, PageGraph

logger = logging.getLogger(__name__)


def _top_level(graph: PageGraph, kind: nt.NodeKind, label: str) -> Node:
    matches = [
        node for node in graph.nodes_of_kind(kind)
        if not any(isinstance(e.edge_type, et.CrossDom) for e in graph.edges_incoming(node))
    ]
    if len(matches) != 1:
        raise FrameMergeError(
            f"wrong number of top-level {label} in frame graph: {len(matches)}",
            details={"matches": [str(node.id) for node in matches]},
        )
    return matches[0]


def merge_frame(parent: PageGraph, child: PageGraph, frame_id: FrameId) -> None:
    """
    Insert `child` (the recording of remote frame `frame_id`) into `parent`.

    `parent` must be a root recording and `child` must not be. The child graph
    is consumed: do not use it afterwards.
    """
    if not parent.desc.is_root:
        raise FrameMergeError("frames can only be merged into a root graph")
    if child.desc.is_root:
        raise FrameMergeError("a root graph cannot be merged as a frame")

    remote_frames = parent.filter_nodes(
        lambda t: isinstance(t, nt.RemoteFrame) and t.frame_id == frame_id
    )
    if len(remote_frames) != 1:
        raise FrameMergeError(
            f"expected one remote frame node for {frame_id}, found {len(remote_frames)}",
            details={"frame_id": str(frame_id)},
        )
    remote_frame = remote_frames[0]

    dom_root = _top_level(child, nt.NodeKind.DOM_ROOT, "DOM roots")
    parser = _top_level(child, nt.NodeKind.PARSER, "parsers")

    for node in child.nodes.values():
        merged = parent.add_node(Node(
            id=node.id.with_frame(frame_id),
            timestamp=node.timestamp,
            node_type=node.node_type,
        ))
        if node.id == dom_root.id or node.id == parser.id:
            parent.add_edge(Edge(
                id=parent.new_edge_id(),
                timestamp=None,
                source=remote_frame.id,
                target=merged.id,
                edge_type=et.CrossDom(),
            ))

    # walk the child adjacency so parallel edges keep their order
    for source, target, edge_ids in child.graph.edges(data=EDGE_IDS):
        for edge_id in edge_ids:
            edge = child.edges[edge_id]
            parent.add_edge(Edge(
                id=edge_id.with_frame(frame_id),
                timestamp=edge.timestamp,
                source=source.with_frame(frame_id),
                target=target.with_frame(frame_id),
                edge_type=edge.edge_type,
            ))

    logger.info(
        "Merged frame %s: %d nodes, %d edges", frame_id, len(child.nodes), len(child.edges)
    )
