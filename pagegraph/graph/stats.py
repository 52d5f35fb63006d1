"""
Per-recording statistics, computed one graph per worker process.

Graphs share nothing, so a batch over many recordings fans out over a
ProcessPoolExecutor with no coordination between workers.
"""

import logging
from collections import Counter
from concurrent.futures import ProcessPoolExecutor
from typing import Any, Dict, Iterable, List, Optional

from pagegraph.base.config import get_config
from pagegraph.errors import PageGraphError
from pagegraph.graph import edge_types as et
from pagegraph.graph import node_types as nt
from pagegraph.graph.models import GraphStats
from pagegraph.graph.queries import GraphQueries
from pagegraph.graph.store import PageGraph

logger = logging.getLogger(__name__)

# an element counts as touched after more than this many modifications
TOUCHED_THRESHOLD = 2


def graph_stats(graph: PageGraph, source: str = "") -> GraphStats:
    queries = GraphQueries(graph)
    created = retained = touched = 0
    for element in graph.nodes_of_kind(nt.NodeKind.HTML_ELEMENT):
        created += 1
        if not element.node_type.is_deleted:
            retained += 1
        if len(queries.all_html_element_modifications(element.id)) > TOUCHED_THRESHOLD:
            touched += 1

    return GraphStats(
        source=source,
        url=graph.desc.url,
        nodes=len(graph.nodes),
        edges=len(graph.edges),
        node_kinds=dict(Counter(node.node_type.TYPE_NAME for node in graph.nodes.values())),
        edge_kinds=dict(Counter(edge.edge_type.TYPE_NAME for edge in graph.edges.values())),
        dom_nodes_created=created,
        dom_nodes_retained=retained,
        dom_nodes_touched=touched,
        requests_completed=len(graph.edges_of_kind(et.EdgeKind.REQUEST_COMPLETE)),
        event_listeners_added=len(graph.edges_of_kind(et.EdgeKind.ADD_EVENT_LISTENER)),
    )


def _worker_stats(path: str) -> Dict[str, Any]:
    """
    Isolated worker function. Loads one recording and summarizes it.
    """
    from pagegraph.io.loader import load_page_graph

    try:
        return graph_stats(load_page_graph(path), source=path).model_dump()
    except PageGraphError as e:
        # reported per file, the rest of the batch still runs
        return {"source": path, "nodes": 0, "edges": 0, "error": e.to_dict()}
    except OSError as e:
        return {
            "source": path, "nodes": 0, "edges": 0,
            "error": {"code": "OS_ERROR", "message": str(e), "details": {}},
        }


def batch_graph_stats(paths: Iterable[str], max_workers: Optional[int] = None) -> List[GraphStats]:
    """Statistics for many recordings, in the order given."""
    paths = list(paths)
    workers = max_workers or get_config().analysis.max_workers
    logger.info("Computing statistics for %d recordings on %d workers", len(paths), workers)
    with ProcessPoolExecutor(max_workers=workers) as executor:
        results = list(executor.map(_worker_stats, paths))
    stats = [GraphStats(**result) for result in results]
    for entry in stats:
        if entry.error is not None:
            logger.warning("Could not summarize %s: %s", entry.source, entry.error["message"])
    return stats
