"""Read-only queries: modifications, request types, request info, root URL."""

import pytest

from pagegraph.errors import DanglingEdgeError, ErrorCode, InvariantViolation
from pagegraph.graph import edge_types as et
from pagegraph.graph.ids import FrameId, NodeId
from pagegraph.graph.queries import describe_item, parse_size
from pagegraph.graph.stats import graph_stats

from helpers import FRAME_HEX, GraphBuilder, document


def test_modifications_are_chronological_and_skip_structure():
    b = document()
    div = b.element("div", 9)
    b.edge(b.parser_node, div, et.Structure(), timestamp=None)
    late = b.set_attribute(b.parser_node, div, "class", "b", timestamp=30)
    created = b.create(b.parser_node, div, timestamp=5)
    inserted = b.insert(b.parser_node, div, b.body, timestamp=10)
    graph = b.build()

    mods = graph.all_html_element_modifications(div.id)
    assert mods == [created, inserted, late]
    timestamps = [e.timestamp for e in mods]
    assert timestamps == sorted(timestamps)


def test_modification_without_timestamp_is_fatal():
    b = document()
    div = b.element("div", 9)
    b.set_attribute(b.parser_node, div, "class", "a", timestamp=None)
    with pytest.raises(InvariantViolation) as excinfo:
        b.build().all_html_element_modifications(div.id)
    assert excinfo.value.code is ErrorCode.GRAPH_MISSING_TIMESTAMP


def test_modifications_require_an_html_element():
    b = document()
    with pytest.raises(InvariantViolation):
        b.build().all_html_element_modifications(b.root.id)


def test_heavily_modified_elements():
    b = document()
    busy = b.element("div", 9)
    for i in range(5):
        b.set_attribute(b.parser_node, busy, "style", str(i))
    graph = b.build()
    ranked = graph.queries.heavily_modified_elements(minimum=4)
    assert ranked == [(busy, 5)]
    assert graph.queries.heavily_modified_elements(minimum=10) == []


def test_resource_request_types_correlate_sizes():
    b = document()
    script = b.script()
    img = b.element("img", 8)
    resource = b.resource("https://cdn.site.com/a.png")
    b.request_start(img, resource, 1, et.RequestType.IMAGE)
    b.request_complete(resource, img, 1, resource_type="image", size="2048")
    b.request_start(script, resource, 2, et.RequestType.AJAX)
    b.request_complete(resource, script, 2, resource_type="xhr", size="")
    b.request_start(img, resource, 3, et.RequestType.IMAGE)
    b.request_complete(resource, img, 3, resource_type="image", size="2048")
    graph = b.build()

    assert graph.resource_request_types(resource.id) == [("image", 2048), ("xhr", None)]


def test_unrequested_resource_is_other():
    b = document()
    resource = b.resource("https://cdn.site.com/never.js")
    assert b.build().resource_request_types(resource.id) == [("other", None)]


def test_parse_size():
    assert parse_size("1024") == 1024
    assert parse_size("") is None
    assert parse_size("-1") is None


def test_parse_size_rejects_non_ascii_digits():
    assert parse_size("\u00b2") is None
    assert parse_size("1\u00b2") is None


def test_scripts_and_resources():
    b = document()
    element = b.element("script", 4)
    code = b.script()
    b.execute(element, code)
    lib = b.resource("https://cdn.site.com/lib.js")
    data = b.resource("https://api.site.com/data")
    b.request_start(element, lib, 1)
    b.request_start(code, data, 2)
    graph = b.build()

    assert graph.queries.scripts_that_caused_resource(data.id) == [code]
    assert graph.queries.resources_from_script(code.id) == [data]
    assert graph.queries.resources_from_script(element.id) == [lib, data]
    with pytest.raises(InvariantViolation):
        graph.queries.resources_from_script(b.body.id)
    with pytest.raises(InvariantViolation):
        graph.queries.scripts_that_caused_resource(code.id)


def test_request_info_joins_start_and_complete():
    b = document()
    script = b.script()
    resource = b.resource("https://api.site.com/data")
    start = b.request_start(script, resource, 12, et.RequestType.AJAX)
    done = b.request_complete(resource, script, 12, resource_type="xhr", size="77")
    info = b.build().queries.request_info(12)

    assert info.url == "https://api.site.com/data"
    assert info.request_type == "xhr"
    assert info.size == "77"
    assert info.initiator_id == str(script.id)
    assert info.start_edge_id == str(start.id)
    assert info.complete_edge_id == str(done.id)
    assert info.frame_id is None


def test_request_info_missing_half_is_fatal():
    b = document()
    script = b.script()
    resource = b.resource("https://api.site.com/data")
    b.request_start(script, resource, 12)
    graph = b.build()
    with pytest.raises(InvariantViolation):
        graph.queries.request_info(12)
    with pytest.raises(InvariantViolation):
        graph.queries.request_info(12, FrameId.parse(FRAME_HEX))


def test_root_url_from_descriptor_and_fallback():
    assert document(url="https://site.com/").build().root_url() == "https://site.com/"

    old = GraphBuilder(url=None)
    old.dom_root(url="https://legacy.example/", node_id=1)
    assert old.build().root_url() == "https://legacy.example/"

    ambiguous = GraphBuilder(url=None)
    ambiguous.dom_root(url="https://a.example/", node_id=1)
    ambiguous.dom_root(url="https://b.example/", node_id=2)
    with pytest.raises(InvariantViolation):
        ambiguous.build().root_url()


def test_describe_item():
    b = document()
    graph = b.build()

    node = describe_item(graph, "n3")
    assert node["type"] == "HTML element"
    assert node["data"]["tag_name"] == "body"
    assert len(node["incoming"]) == 2

    edge = describe_item(graph, "e1")
    assert edge["type"] == "create node"
    assert edge["source_node"]["id"] == str(b.parser_node.id)

    # bare numbers are tried as a node first
    assert describe_item(graph, "2")["id"] == "n2"
    with pytest.raises(DanglingEdgeError):
        describe_item(graph, "n999")


def test_describe_item_renders_request_types():
    b = document()
    start = b.request_start(b.script(), b.resource("https://site.com/a"), 1, et.RequestType.CSS)
    described = describe_item(b.build(), str(start.id))
    assert described["data"]["request_type"] == "stylesheet"


def test_graph_stats():
    b = document()
    deleted = b.element("p", 9, is_deleted=True)
    for i in range(3):
        b.set_attribute(b.parser_node, deleted, "class", str(i))
    script = b.script()
    resource = b.resource("https://site.com/x.js")
    b.request_start(script, resource, 1)
    b.request_complete(resource, script, 1)
    stats = graph_stats(b.build(), source="page.graphml")

    assert stats.source == "page.graphml"
    assert stats.url == "https://site.com/"
    assert stats.dom_nodes_created == 3
    assert stats.dom_nodes_retained == 2
    assert stats.dom_nodes_touched == 1
    assert stats.requests_completed == 1
    assert stats.node_kinds["HTML element"] == 3
    assert stats.error is None


def test_frame_qualified_lookups():
    frame = FrameId.parse(FRAME_HEX)
    b = document()
    graph = b.build()
    assert graph.find_node(NodeId(1, frame)) is None
