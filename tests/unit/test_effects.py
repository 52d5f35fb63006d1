"""Causal effects engine: dispatch rules, closure and nested requests."""

import pytest

from pagegraph.errors import ErrorCode, InvariantViolation, UnsupportedEdgeError
from pagegraph.graph import edge_types as et
from pagegraph.graph.edge_types import EdgeKind
from pagegraph.graph.effects import _RULES, UNMODELED_KINDS, EffectsEngine
from pagegraph.graph.ids import FrameId

from helpers import FRAME_HEX, GraphBuilder, document


def script_loading_script():
    """
    <script src=a.js> whose code, once run, fetches data.json.

        set src -> start(1) -> complete(1) -> execute -> start(2) -> complete(2)
    """
    b = document()
    b.element_script = b.element("script", 4)
    b.create(b.parser_node, b.element_script)
    b.insert(b.parser_node, b.element_script, b.body)
    b.set_src = b.set_attribute(b.parser_node, b.element_script, "src", "https://cdn.site.com/a.js")
    a_js = b.resource("https://cdn.site.com/a.js")
    b.start1 = b.request_start(b.element_script, a_js, 1)
    b.complete1 = b.request_complete(a_js, b.element_script, 1, resource_type="script")
    b.code = b.script(url="https://cdn.site.com/a.js")
    b.run = b.execute(b.element_script, b.code)
    data = b.resource("https://api.site.com/data.json")
    b.start2 = b.request_start(b.code, data, 2, et.RequestType.AJAX)
    b.complete2 = b.request_complete(data, b.code, 2, resource_type="fetch")
    return b


# ----------------------------------------------------------------------------
# Dispatch table
# ----------------------------------------------------------------------------

def test_dispatch_covers_every_edge_kind():
    assert set(_RULES) == set(EdgeKind)
    engine = EffectsEngine(GraphBuilder().build())
    for name in _RULES.values():
        assert callable(getattr(engine, name))


@pytest.mark.parametrize("edge_type", [
    et.Structure(),
    et.JsCall(args=None, script_position=0),
    et.JsResult(value=None),
    et.StorageSet(key="k", value="v"),
    et.AddEventListener(key="click", event_listener_id=1, script_id=2),
    et.DeleteAttribute(key="class", is_style=False),
    et.TextChange(),
    et.BindingEvent(script_position=3),
])
def test_unmodeled_kinds_fail_loudly(edge_type):
    assert edge_type.KIND in UNMODELED_KINDS
    b = document()
    edge = b.edge(b.parser_node, b.body, edge_type)
    with pytest.raises(UnsupportedEdgeError) as excinfo:
        b.build().direct_downstream_effects_of(edge)
    assert excinfo.value.code is ErrorCode.EFFECTS_UNSUPPORTED_EDGE


def test_create_node_and_request_error_have_no_effects():
    b = document()
    created = b.create(b.parser_node, b.element("p", 9))
    resource = b.resource("https://cdn.site.com/missing.js")
    script = b.script()
    b.request_start(script, resource, 5)
    failed = b.request_error(resource, script, 5)
    graph = b.build()
    assert graph.direct_downstream_effects_of(created) == []
    assert graph.direct_downstream_effects_of(failed) == []


# ----------------------------------------------------------------------------
# Requests and execution
# ----------------------------------------------------------------------------

def test_execute_then_request_scenario():
    b = GraphBuilder(url="http://x")
    b.dom_root(url="http://x", node_id=1)
    script = b.script()
    target = b.script()
    run = b.execute(script, target)
    resource = b.resource("http://x/data")
    start = b.request_start(target, resource, 5)
    complete = b.request_complete(resource, target, 5, resource_type="xhr")

    assert b.build().all_downstream_effects_of(run) == {start, complete}


def test_request_start_correlates_by_request_id():
    b = document()
    script = b.script()
    resource = b.resource("https://cdn.site.com/lib.js")
    first = b.request_start(script, resource, 7)
    b.request_start(script, resource, 8)
    done = b.request_complete(resource, script, 7)
    b.request_complete(resource, script, 8)
    failed = b.request_error(resource, script, 7)
    graph = b.build()

    effects = graph.direct_downstream_effects_of(first)
    assert effects == [done, failed]
    for effect in effects:
        assert effect.edge_type.request_id == first.edge_type.request_id


def test_script_response_runs_the_script_element():
    b = script_loading_script()
    graph = b.build()
    assert graph.direct_downstream_effects_of(b.complete1) == [b.run]
    # responses to a Script node do not execute anything
    assert graph.direct_downstream_effects_of(b.complete2) == []


def test_execute_effects_are_requests_executions_and_attribute_sets():
    b = document()
    parent = b.script()
    child = b.script()
    run = b.execute(parent, child)
    resource = b.resource("https://cdn.site.com/p.gif")
    start = b.request_start(child, resource, 3, et.RequestType.IMAGE)
    grandchild = b.script()
    nested_run = b.execute(child, grandchild)
    set_attr = b.set_attribute(child, b.body, "class", "dark")
    b.create(child, b.element("div", 30))
    assert b.build().direct_downstream_effects_of(run) == [start, nested_run, set_attr]


# ----------------------------------------------------------------------------
# Attribute sets
# ----------------------------------------------------------------------------

def test_src_set_on_loading_element_starts_its_requests():
    b = script_loading_script()
    graph = b.build()
    assert graph.direct_downstream_effects_of(b.set_src) == [b.start1]


def test_other_attributes_and_tags_do_not_load():
    b = document()
    img = b.element("img", 8)
    div = b.element("div", 9)
    alt = b.set_attribute(b.parser_node, img, "alt", "logo")
    div_src = b.set_attribute(b.parser_node, div, "src", "x.png")
    b.request_start(div, b.resource("https://site.com/x.png"), 1)
    graph = b.build()
    assert graph.direct_downstream_effects_of(alt) == []
    assert graph.direct_downstream_effects_of(div_src) == []


def test_frame_src_window_selects_loads_until_the_next_src_set():
    b = document()
    owner = b.frame_owner(10)
    first_set = b.set_attribute(b.parser_node, owner, "src", "https://a.example/", timestamp=10)
    blank = b.dom_root(url="about:blank", node_id=11)
    b.cross_dom(owner, blank, timestamp=11)
    loaded = b.dom_root(url="https://a.example/", node_id=12)
    in_window = b.cross_dom(owner, loaded, timestamp=12)
    remote = b.remote_frame(FrameId.parse(FRAME_HEX))
    remote_load = b.cross_dom(owner, remote, timestamp=15)
    b.set_attribute(b.parser_node, owner, "src", "https://b.example/", timestamp=20)
    later = b.dom_root(url="https://b.example/", node_id=13)
    after_window = b.cross_dom(owner, later, timestamp=25)
    graph = b.build()

    assert graph.direct_downstream_effects_of(first_set) == [in_window, remote_load]
    assert after_window not in graph.direct_downstream_effects_of(first_set)


def test_last_frame_src_set_has_an_open_window():
    b = document()
    owner = b.frame_owner(10)
    b.set_attribute(b.parser_node, owner, "src", "https://a.example/", timestamp=1)
    last_set = b.set_attribute(b.parser_node, owner, "src", "https://b.example/", timestamp=5)
    early = b.dom_root(url="https://a.example/", node_id=11)
    b.cross_dom(owner, early, timestamp=3)
    late = b.dom_root(url="https://b.example/", node_id=12)
    load = b.cross_dom(owner, late, timestamp=50)
    assert b.build().direct_downstream_effects_of(last_set) == [load]


def test_frame_src_set_without_timestamp_is_fatal():
    b = document()
    owner = b.frame_owner(10)
    untimed = b.set_attribute(b.parser_node, owner, "src", "https://a.example/", timestamp=None)
    with pytest.raises(InvariantViolation) as excinfo:
        b.build().direct_downstream_effects_of(untimed)
    assert excinfo.value.code is ErrorCode.GRAPH_MISSING_TIMESTAMP


# ----------------------------------------------------------------------------
# Insertions
# ----------------------------------------------------------------------------

def inline_script():
    b = document()
    b.element_script = b.element("script", 4)
    b.create(b.parser_node, b.element_script)
    b.insert(b.parser_node, b.element_script, b.body)
    b.code = b.script()
    b.early_run = b.execute(b.element_script, b.code, timestamp=1)
    b.text_node = b.text(5, "console.log(1)")
    b.create(b.parser_node, b.text_node, timestamp=40)
    b.insert_text = b.insert(b.parser_node, b.text_node, b.element_script, timestamp=50)
    b.late_run = b.execute(b.element_script, b.script(), timestamp=90)
    b.next_run = b.execute(b.element_script, b.script(), timestamp=60)
    return b


def test_inserting_script_text_runs_the_next_execution():
    b = inline_script()
    assert b.build().direct_downstream_effects_of(b.insert_text) == [b.next_run]


def test_script_text_that_never_runs_has_no_effect():
    b = document()
    element = b.element("script", 4)
    b.insert(b.parser_node, element, b.body)
    text = b.text(5, '{"json": true}')
    insert = b.insert(b.parser_node, text, element)
    assert b.build().direct_downstream_effects_of(insert) == []


def test_other_insertions_have_no_effect():
    b = document()
    text = b.text(6, "hello")
    insert_text = b.insert(b.parser_node, text, b.body)
    img = b.element("img", 7)
    insert_img = b.insert(b.parser_node, img, b.body)
    graph = b.build()
    assert graph.direct_downstream_effects_of(insert_text) == []
    assert graph.direct_downstream_effects_of(insert_img) == []


# ----------------------------------------------------------------------------
# Cross DOM and initial parse
# ----------------------------------------------------------------------------

def iframe_document():
    b = document()
    b.owner = b.frame_owner(10)
    b.create(b.parser_node, b.owner)
    b.insert(b.parser_node, b.owner, b.body)
    b.child_root = b.dom_root(url="https://a.example/", node_id=20)
    b.load = b.cross_dom(b.owner, b.child_root)
    b.child_body = b.element("body", 21)
    b.child_create = b.create(b.parser_node, b.child_body)
    b.child_insert = b.insert(b.parser_node, b.child_body, b.child_root)
    b.child_attr = b.set_attribute(b.parser_node, b.child_body, "class", "x")
    return b


def test_cross_dom_into_a_document_returns_its_initial_parse():
    b = iframe_document()
    effects = b.build().direct_downstream_effects_of(b.load)
    assert effects == [b.child_create, b.child_insert, b.child_attr]


def test_initial_parse_excludes_nested_documents():
    b = iframe_document()
    graph = b.build()
    edges = EffectsEngine(graph)._initial_parse_edges(b.root)
    assert b.child_create not in edges
    assert {e.target for e in edges} == {b.html.id, b.body.id, b.owner.id}


def test_initial_parse_requires_one_parser():
    b = iframe_document()
    b.parser()
    with pytest.raises(InvariantViolation) as excinfo:
        b.build().direct_downstream_effects_of(b.load)
    assert excinfo.value.code is ErrorCode.GRAPH_CARDINALITY


def test_initial_parse_rejects_duplicate_dom_ids():
    b = iframe_document()
    b.create(b.parser_node, b.element("span", 21))
    with pytest.raises(InvariantViolation) as excinfo:
        b.build().direct_downstream_effects_of(b.load)
    assert excinfo.value.code is ErrorCode.GRAPH_DUPLICATE_DOM_ID


def test_cross_dom_to_parser_and_remote_frame():
    b = document()
    owner = b.frame_owner(10)
    remote = b.remote_frame(FrameId.parse(FRAME_HEX))
    to_remote = b.cross_dom(owner, remote)
    other_parser = b.parser()
    to_parser = b.cross_dom(remote, other_parser)
    graph = b.build()
    assert graph.direct_downstream_effects_of(to_parser) == []
    assert graph.direct_downstream_effects_of(to_remote) == [to_parser]


def test_cross_dom_to_an_element_is_unsupported():
    b = document()
    edge = b.cross_dom(b.root, b.body)
    with pytest.raises(UnsupportedEdgeError) as excinfo:
        b.build().direct_downstream_effects_of(edge)
    assert excinfo.value.code is ErrorCode.EFFECTS_UNSUPPORTED_NODE


# ----------------------------------------------------------------------------
# Closure and nested requests
# ----------------------------------------------------------------------------

def test_closure_excludes_the_seed_and_is_a_fixed_point():
    b = script_loading_script()
    graph = b.build()
    result = graph.all_downstream_effects_of(b.set_src)

    assert b.set_src not in result
    assert result == {b.start1, b.complete1, b.run, b.start2, b.complete2}
    for edge in result:
        assert set(graph.direct_downstream_effects_of(edge)) <= result | {b.set_src}


def test_closure_terminates_on_execution_cycles():
    b = document()
    first = b.script()
    second = b.script()
    forward = b.execute(first, second)
    back = b.execute(second, first)
    resource = b.resource("https://cdn.site.com/loop.js")
    start = b.request_start(second, resource, 4)
    assert b.build().all_downstream_effects_of(forward) == {back, start}


def test_nested_requests_form_a_tree():
    b = script_loading_script()
    tree = b.build().all_downstream_requests_nested(b.set_src)

    assert len(tree) == 1
    top = tree[0]
    assert top.request_id == 1
    assert top.url == "https://cdn.site.com/a.js"
    assert top.request_type == "script"
    assert [child.request_id for child in top.children] == [2]
    assert top.children[0].request_type == "xhr"
    assert top.children[0].url == "https://api.site.com/data.json"
    assert top.children[0].children == []


def test_nested_request_ids_match_the_flat_closure():
    b = script_loading_script()
    graph = b.build()
    flat = {
        e.edge_type.request_id for e in graph.all_downstream_effects_of(b.set_src)
        if isinstance(e.edge_type, et.RequestStart)
    }
    nested = {
        entry.request_id
        for root in graph.all_downstream_requests_nested(b.set_src)
        for entry in root.flatten()
    }
    assert nested == flat


def test_nested_request_to_a_non_resource_is_fatal():
    b = document()
    script = b.script()
    other = b.script()
    run = b.execute(script, other)
    b.request_start(other, b.element("img", 40), 1)
    with pytest.raises(InvariantViolation) as excinfo:
        b.build().all_downstream_requests_nested(run)
    assert excinfo.value.code is ErrorCode.GRAPH_WRONG_NODE_TYPE
