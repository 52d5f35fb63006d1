"""GraphML input: single recordings and root-plus-companion loading."""

from pagegraph.io.graphml import parse_timestamp, read_from_bytes, read_from_file, read_from_stream
from pagegraph.io.loader import load_page_graph

__all__ = [
    "parse_timestamp",
    "read_from_bytes",
    "read_from_file",
    "read_from_stream",
    "load_page_graph",
]
