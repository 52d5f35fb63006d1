# ============================================================================
# pagegraph/io/graphml.py
# GraphML Reader for Page Graph Recordings
# ============================================================================
#
# PURPOSE:
# Turns a recorded .graphml document into a PageGraph. The reader is strict:
# a recording that does not follow the schema cannot be queried safely, so
# every surprise is a GraphMLError instead of a silently dropped value.
#
# DOCUMENT SHAPE:
#   <graphml>
#     <key id="d0" for="node" attr.name="node type" attr.type="string"/>
#     ...
#     <desc>
#       <version>0.6.3</version> <about>...</about> <url>https://...</url>
#       <is_root>true</is_root> <frame_id>0123...CDEF</frame_id>
#       <time><start>...</start><end>...</end></time>
#     </desc>
#     <graph>
#       <node id="n1"><data key="d0">DOM root</data>...</node>
#       <edge id="e7" source="n1" target="n2">...</edge>
#     </graph>
#   </graphml>
#
# KEY CONCEPTS:
# 1. Streaming: iterparse, each <node>/<edge> is dropped once converted
# 2. <key> declarations map data keys to attribute names ("node type", "url")
# 3. Variant construction drains the attributes it declares; leftovers are
#    fatal "extra data"
#
# ============================================================================

from __future__ import annotations

import io
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import BinaryIO, Dict, Optional, Union

from pagegraph.errors import ErrorCode, GraphMLError, ParseIdError
from pagegraph.graph.edge_types import EDGE_TYPES
from pagegraph.graph.ids import EdgeId, FrameId, NodeId
from pagegraph.graph.node_types import NODE_TYPES
from pagegraph.graph.schema import construct_variant, parse_bool, parse_usize
from pagegraph.graph.store import Edge, Node, PageGraph, PageGraphDescriptor, PageGraphTime

logger = logging.getLogger(__name__)

_SIGNED = re.compile(r"[+-]?[0-9]+")

KEY_ATTRIBUTES = frozenset({"id", "for", "attr.name", "attr.type"})
DESC_FIELDS = frozenset({"version", "about", "url", "is_root", "frame_id", "time"})

# attributes every node / edge carries outside of its variant
NODE_TYPE_ATTR = "node type"
EDGE_TYPE_ATTR = "edge type"
ID_ATTR = "id"
TIMESTAMP_ATTR = "timestamp"


def parse_timestamp(text: str) -> int:
    """
    Integer timestamp from recorded text.

    Some recordings write floating point values ("12345.0"): trailing zeros
    and then the point are trimmed before parsing. Anything still malformed
    reads as 0.
    """
    text = text.strip()
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if not _SIGNED.fullmatch(text):
        return 0
    return int(text)


def _local(tag: str) -> str:
    # "{http://graphml.graphdrawing.org/xmlns}node" -> "node"
    return tag.rsplit("}", 1)[-1]


def _text(elem: ET.Element) -> str:
    text = elem.text or ""
    # whitespace-only content is formatting, not data
    return "" if not text.strip() else text


@dataclass(frozen=True)
class KeyItem:
    id: str
    for_type: str
    attr_name: str
    attr_type: str


class _KeyModel:
    def __init__(self):
        self.node_items: Dict[str, KeyItem] = {}
        self.edge_items: Dict[str, KeyItem] = {}

    def add(self, item: KeyItem) -> None:
        target = self.node_items if item.for_type == "node" else self.edge_items
        target[item.id] = item


class GraphMLReader:
    """Single-use reader for one GraphML document."""

    def __init__(self, source: Union[str, BinaryIO]):
        self.source = source
        self.keys = _KeyModel()
        self.desc: Optional[PageGraphDescriptor] = None
        self.graph: Optional[PageGraph] = None

    def read(self) -> PageGraph:
        try:
            self._parse()
        except ET.ParseError as e:
            raise GraphMLError(f"malformed XML: {e}", details={"position": list(e.position)}) from e
        if self.graph is None:
            raise GraphMLError("graphml ended without graph definition")
        logger.info(
            "Read page graph for %s: %d nodes, %d edges",
            self.graph.desc.url, len(self.graph.nodes), len(self.graph.edges),
        )
        return self.graph

    # ------------------------------------------------------------------
    # Document walk
    # ------------------------------------------------------------------

    def _parse(self) -> None:
        depth = 0
        graph_elem: Optional[ET.Element] = None
        in_graph = False
        skip_depth: Optional[int] = None

        for event, elem in ET.iterparse(self.source, events=("start", "end")):
            name = _local(elem.tag)
            if event == "start":
                depth += 1
                if depth == 1:
                    if name != "graphml":
                        raise GraphMLError(f"expected graphml element, found `{name}`")
                    continue
                if skip_depth is not None or depth != 2:
                    continue
                if name == "key" and self.graph is not None:
                    raise GraphMLError("key item located after graph")
                if name == "graph":
                    if self.graph is not None:
                        raise GraphMLError("more than one graph item not supported")
                    if self.desc is None:
                        raise GraphMLError("could not find desc before graph")
                    self.graph = PageGraph(self.desc)
                    graph_elem = elem
                    in_graph = True
                elif name not in ("key", "desc"):
                    logger.warning("Unhandled element in graphml: %s", name)
                    skip_depth = depth
                continue

            # end event
            if skip_depth is not None:
                if depth == skip_depth:
                    skip_depth = None
                depth -= 1
                continue
            if depth == 2:
                if name == "key":
                    self.keys.add(_build_key(elem))
                elif name == "desc":
                    self.desc = _build_desc(elem)
                elif name == "graph":
                    in_graph = False
                elem.clear()
            elif depth == 3 and in_graph:
                if name == "node":
                    self.graph.add_node(self._build_node(elem))
                elif name == "edge":
                    self.graph.add_edge(self._build_edge(elem))
                else:
                    logger.warning("Unhandled element in graph: %s", name)
                graph_elem.clear()
            depth -= 1

    # ------------------------------------------------------------------
    # Nodes and edges
    # ------------------------------------------------------------------

    def _collect_data(self, elem: ET.Element, items: Dict[str, KeyItem], what: str) -> Dict[str, str]:
        data: Dict[str, str] = {}
        for child in elem:
            child_name = _local(child.tag)
            if child_name != "data":
                logger.warning("Unhandled element in %s: %s", what, child_name)
                continue
            for attr_name in child.attrib:
                if _local(attr_name) != "key":
                    raise GraphMLError(f"unexpected attribute in data: {attr_name}")
            if len(child):
                raise GraphMLError(f"unexpected element inside data of {what}")
            key_id = child.get("key")
            if key_id is None:
                raise GraphMLError("couldn't find `key` value on data")
            item = items.get(key_id)
            if item is None:
                raise GraphMLError(
                    f"extra data on {what}: undeclared key `{key_id}`",
                    ErrorCode.GRAPHML_EXTRA_DATA,
                    details={"key": key_id},
                )
            data[item.attr_name] = _text(child)
        return data

    def _build_node(self, elem: ET.Element) -> Node:
        for attr_name in elem.attrib:
            if _local(attr_name) != "id":
                raise GraphMLError(f"unexpected attribute in node: {attr_name}")
        node_id = _parse_id(NodeId, elem.get("id"), "node")
        data = self._collect_data(elem, self.keys.node_items, "node")

        _check_data_id(data, node_id)
        if TIMESTAMP_ATTR not in data:
            raise GraphMLError(
                f"couldn't find `timestamp` attr on node {node_id}",
                ErrorCode.GRAPHML_MISSING_ATTRIBUTE,
            )
        timestamp = parse_timestamp(data.pop(TIMESTAMP_ATTR))
        variant_class = _variant_class(NODE_TYPES, data, NODE_TYPE_ATTR, node_id)
        node_type = construct_variant(variant_class, data)
        _check_extra(data, node_id, variant_class.TYPE_NAME)
        return Node(id=node_id, timestamp=timestamp, node_type=node_type)

    def _build_edge(self, elem: ET.Element) -> Edge:
        for attr_name in elem.attrib:
            if _local(attr_name) not in ("id", "source", "target"):
                raise GraphMLError(f"unexpected attribute in edge: {attr_name}")
        edge_id = _parse_id(EdgeId, elem.get("id"), "edge")
        source = _parse_id(NodeId, elem.get("source"), "edge source")
        target = _parse_id(NodeId, elem.get("target"), "edge target")
        data = self._collect_data(elem, self.keys.edge_items, "edge")

        _check_data_id(data, edge_id)
        timestamp = None
        if TIMESTAMP_ATTR in data:
            timestamp = parse_timestamp(data.pop(TIMESTAMP_ATTR))
        variant_class = _variant_class(EDGE_TYPES, data, EDGE_TYPE_ATTR, edge_id)
        edge_type = construct_variant(variant_class, data)
        _check_extra(data, edge_id, variant_class.TYPE_NAME)
        return Edge(id=edge_id, timestamp=timestamp, source=source, target=target, edge_type=edge_type)


# ----------------------------------------------------------------------------
# Element builders
# ----------------------------------------------------------------------------

def _build_key(elem: ET.Element) -> KeyItem:
    values = {}
    for attr_name, value in elem.attrib.items():
        name = _local(attr_name)
        if name not in KEY_ATTRIBUTES:
            raise GraphMLError(f"unexpected value in key: {name}")
        values[name] = value
    for required in ("id", "for", "attr.name", "attr.type"):
        if required not in values:
            raise GraphMLError(f"couldn't find `{required}` value on key")
    if values["for"] not in ("node", "edge"):
        raise GraphMLError(f"unexpected `for` value on key: {values['for']}")
    return KeyItem(
        id=values["id"],
        for_type=values["for"],
        attr_name=values["attr.name"],
        attr_type=values["attr.type"],
    )


def _build_desc(elem: ET.Element) -> PageGraphDescriptor:
    fields: Dict[str, ET.Element] = {}
    for child in elem:
        name = _local(child.tag)
        if name not in DESC_FIELDS:
            raise GraphMLError(f"unexpected `{name}` in desc")
        fields[name] = child

    if "version" not in fields:
        raise GraphMLError("couldn't find `version` in desc", ErrorCode.GRAPHML_MISSING_ATTRIBUTE)
    if "is_root" not in fields:
        raise GraphMLError("couldn't find `is_root` in desc", ErrorCode.GRAPHML_MISSING_ATTRIBUTE)

    frame_id = None
    if "frame_id" in fields:
        try:
            frame_id = FrameId.parse(_text(fields["frame_id"]).strip())
        except ParseIdError as e:
            raise GraphMLError(
                f"could not parse desc frame_id: {e.message}", ErrorCode.GRAPHML_BAD_VALUE
            ) from e

    time = None
    if "time" in fields:
        time = _build_time(fields["time"])

    return PageGraphDescriptor(
        version=_text(fields["version"]),
        about=_text(fields["about"]) if "about" in fields else None,
        url=_text(fields["url"]) if "url" in fields else None,
        is_root=parse_bool("is_root", _text(fields["is_root"]).strip()),
        frame_id=frame_id,
        time=time,
    )


def _build_time(elem: ET.Element) -> PageGraphTime:
    values: Dict[str, int] = {}
    for child in elem:
        name = _local(child.tag)
        if name not in ("start", "end"):
            raise GraphMLError(f"unexpected `{name}` in time")
        values[name] = parse_usize(name, _text(child).strip())
    for required in ("start", "end"):
        if required not in values:
            raise GraphMLError(f"couldn't find `{required}` in time", ErrorCode.GRAPHML_MISSING_ATTRIBUTE)
    return PageGraphTime(start=values["start"], end=values["end"])


def _parse_id(id_class, text: Optional[str], what: str):
    if text is None:
        raise GraphMLError(f"couldn't find id value on {what}", ErrorCode.GRAPHML_MISSING_ATTRIBUTE)
    try:
        return id_class.parse(text)
    except ParseIdError as e:
        raise GraphMLError(
            f"could not parse {what} id {text!r}: {e.reason.value}",
            ErrorCode.GRAPHML_BAD_VALUE,
            details={"text": text},
        ) from e


def _check_data_id(data: Dict[str, str], item_id) -> None:
    # <data> copy of the id, without the type letter
    if ID_ATTR not in data:
        return
    text = data.pop(ID_ATTR)
    try:
        data_id = type(item_id).parse_unprefixed(text)
    except ParseIdError as e:
        raise GraphMLError(f"could not parse data id {text!r}", ErrorCode.GRAPHML_BAD_VALUE) from e
    if data_id.local_id != item_id.local_id:
        raise GraphMLError(
            f"wrong id: element says {item_id}, data says {text}",
            ErrorCode.GRAPHML_BAD_VALUE,
        )


def _variant_class(registry, data: Dict[str, str], type_attr: str, item_id):
    if type_attr not in data:
        raise GraphMLError(
            f"couldn't find `{type_attr}` attr on {item_id}",
            ErrorCode.GRAPHML_MISSING_ATTRIBUTE,
        )
    type_str = data.pop(type_attr)
    try:
        return registry[type_str]
    except KeyError:
        raise GraphMLError(
            f"unknown {type_attr} `{type_str}`",
            ErrorCode.GRAPHML_UNKNOWN_TYPE,
            details={"type": type_str, "id": str(item_id)},
        ) from None


def _check_extra(data: Dict[str, str], item_id, type_name: str) -> None:
    if data:
        raise GraphMLError(
            f"extra data on {type_name} {item_id}: {sorted(data)}",
            ErrorCode.GRAPHML_EXTRA_DATA,
            details={"id": str(item_id), "attributes": sorted(data)},
        )


# ----------------------------------------------------------------------------
# Entry points
# ----------------------------------------------------------------------------

def read_from_stream(stream: BinaryIO) -> PageGraph:
    return GraphMLReader(stream).read()


def read_from_bytes(data: bytes) -> PageGraph:
    return read_from_stream(io.BytesIO(data))


def read_from_file(path) -> PageGraph:
    """Read one recording. OSError propagates for unreadable files."""
    logger.info("Reading page graph from %s", path)
    with open(path, "rb") as fp:
        return read_from_stream(fp)
