"""
pagegraph CLI - causal queries over a recorded page graph.

Usage examples:
    pagegraph -f page_graph.graphml identify n42
    pagegraph -f page_graph.graphml downstream_requests e1200 --nested
    pagegraph -f page_graph.graphml adblock_rules '||ads.example^' --only-exceptions
    pagegraph stats run1/page_graph.graphml run2/page_graph.graphml

Every command prints JSON on stdout. Errors are logged and exit with status 1.
"""

import argparse
import json
import logging
import sys
from typing import Any, List, Optional

from pagegraph import __version__
from pagegraph.base.config import get_config, setup_logging
from pagegraph.errors import PageGraphError
from pagegraph.graph import edge_types as et
from pagegraph.graph.ids import EdgeId, FrameId
from pagegraph.graph.queries import describe_item
from pagegraph.graph.stats import batch_graph_stats
from pagegraph.io.loader import load_page_graph

logger = logging.getLogger(__name__)


def _edge_id(text: str) -> EdgeId:
    if text.startswith(EdgeId.PREFIX):
        return EdgeId.parse(text)
    return EdgeId.parse_unprefixed(text)


# ----------------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------------

def cmd_identify(graph, args) -> Any:
    return describe_item(graph, args.id)


def cmd_adblock_rules(graph, args) -> Any:
    records = graph.queries.matching_resources(args.rules, args.only_exceptions)
    return [record.model_dump() for record in records]


def cmd_downstream_requests(graph, args) -> Any:
    edge = graph.edge(_edge_id(args.edge_id))
    if args.nested:
        return [entry.model_dump() for entry in graph.all_downstream_requests_nested(edge)]
    starts = [
        effect for effect in graph.all_downstream_effects_of(edge)
        if isinstance(effect.edge_type, et.RequestStart)
    ]
    pairs = sorted((effect.edge_type.request_id, effect.id) for effect in starts)
    return [[request_id, str(edge_id)] for request_id, edge_id in pairs]


def cmd_request_id_info(graph, args) -> Any:
    frame_id = FrameId.parse(args.frame_id) if args.frame_id else None
    return graph.queries.request_info(args.request_id, frame_id).model_dump()


def cmd_modifications(graph, args) -> Any:
    return [
        {"node_id": str(node.id), "tag_name": node.node_type.tag_name, "modifications": count}
        for node, count in graph.queries.heavily_modified_elements(args.minimum)
    ]


def cmd_stats(args) -> Any:
    return [entry.model_dump() for entry in batch_graph_stats(args.files, args.workers)]


GRAPH_COMMANDS = {
    "identify": cmd_identify,
    "adblock_rules": cmd_adblock_rules,
    "downstream_requests": cmd_downstream_requests,
    "request_id_info": cmd_request_id_info,
    "modifications": cmd_modifications,
}


# ----------------------------------------------------------------------------
# Argument parsing
# ----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pagegraph", description="Causal queries over browser page graph recordings"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-f", "--file", help="Root .graphml recording to query")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at INFO level")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("identify", help="Describe a node or edge")
    p.add_argument("id", help="n<id>, e<id> or a bare number")

    p = sub.add_parser("adblock_rules", help="Resources matching adblock rules")
    p.add_argument("rules", nargs="+", help="Rules in adblock syntax")
    p.add_argument("--only-exceptions", action="store_true",
                   help="Report only resources an exception rule covers")

    p = sub.add_parser("downstream_requests", help="Requests caused by an edge")
    p.add_argument("edge_id")
    p.add_argument("--nested", action="store_true", help="Print the request tree")

    p = sub.add_parser("request_id_info", help="Everything recorded about one request")
    p.add_argument("request_id", type=int)
    p.add_argument("frame_id", nargs="?", help="32 character frame token")

    p = sub.add_parser("modifications", help="Most modified HTML elements")
    p.add_argument("--minimum", type=int, default=4)

    p = sub.add_parser("stats", help="Summary statistics for many recordings")
    p.add_argument("files", nargs="+")
    p.add_argument("--workers", type=int, default=None)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = get_config()
    setup_logging(config)
    if args.verbose and not config.debug:
        logging.getLogger().setLevel(logging.INFO)

    if args.command != "stats" and not args.file:
        parser.error(f"{args.command} requires -f FILE")

    try:
        if args.command == "stats":
            result = cmd_stats(args)
        else:
            graph = load_page_graph(args.file, config)
            result = GRAPH_COMMANDS[args.command](graph, args)
    except PageGraphError as e:
        logger.error("%s", e)
        return 1
    except OSError as e:
        logger.error("Could not read %s: %s", e.filename, e.strerror)
        return 1

    json.dump(result, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
