"""Loading a root recording together with its companion frame recordings."""

import logging

from pagegraph.base.config import LoaderConfig, PageGraphConfig
from pagegraph.graph import node_types as nt
from pagegraph.graph.ids import FrameId, NodeId
from pagegraph.io.loader import companion_path, load_page_graph

from helpers import FRAME_HEX

ROOT = """<?xml version="1.0"?>
<graphml>
  <key id="t" for="node" attr.name="node type" attr.type="string"/>
  <key id="ts" for="node" attr.name="timestamp" attr.type="string"/>
  <key id="u" for="node" attr.name="url" attr.type="string"/>
  <key id="f" for="node" attr.name="frame id" attr.type="string"/>
  <key id="tn" for="node" attr.name="tag name" attr.type="string"/>
  <key id="del" for="node" attr.name="is deleted" attr.type="boolean"/>
  <key id="nid" for="node" attr.name="node id" attr.type="long"/>
  <key id="e" for="edge" attr.name="edge type" attr.type="string"/>
  <desc><version>0.6.3</version><url>https://site.com/</url><is_root>{is_root}</is_root></desc>
  <graph id="G" edgedefault="directed">
    <node id="n1"><data key="t">parser</data><data key="ts">1</data></node>
    <node id="n2"><data key="t">DOM root</data><data key="ts">1</data><data key="u">{url}</data>
      <data key="tn">html</data><data key="del">false</data><data key="nid">1</data></node>
    {extra}
  </graph>
</graphml>
"""

REMOTE = f'<node id="n3"><data key="t">remote frame</data><data key="ts">2</data><data key="f">{FRAME_HEX}</data></node>'


def write(path, is_root="true", url="https://site.com/", extra=""):
    path.write_text(ROOT.format(is_root=is_root, url=url, extra=extra))
    return path


def test_companion_frames_are_merged(tmp_path):
    root = write(tmp_path / "page_graph.graphml", extra=REMOTE)
    write(tmp_path / f"page_graph_{FRAME_HEX}.0.graphml", is_root="false", url="https://ads.example/")
    graph = load_page_graph(root)

    frame = FrameId.parse(FRAME_HEX)
    assert graph.node(NodeId(2, frame)).node_type.url == "https://ads.example/"
    remote = graph.node(NodeId(3))
    assert len(list(graph.edges_outgoing(remote))) == 2


def test_missing_companion_is_skipped(tmp_path, caplog):
    root = write(tmp_path / "page_graph.graphml", extra=REMOTE)
    with caplog.at_level(logging.INFO, logger="pagegraph.io.loader"):
        graph = load_page_graph(str(root))
    assert len(graph.nodes) == 3
    assert "skipping" in caplog.text


def test_merging_can_be_disabled(tmp_path):
    root = write(tmp_path / "page_graph.graphml", extra=REMOTE)
    write(tmp_path / f"page_graph_{FRAME_HEX}.0.graphml", is_root="false")
    config = PageGraphConfig(loader=LoaderConfig(merge_frames=False))
    assert len(load_page_graph(root, config).nodes) == 3


def test_companion_path_uses_the_pattern(tmp_path):
    frame = FrameId.parse(FRAME_HEX)
    config = PageGraphConfig(loader=LoaderConfig(frame_file_pattern="{frame_id}.xml"))
    path = companion_path(str(tmp_path / "root.graphml"), frame, config)
    assert path == str(tmp_path / f"{FRAME_HEX}.xml")


def test_loaded_graph_has_typed_nodes(tmp_path):
    root = write(tmp_path / "page_graph.graphml")
    graph = load_page_graph(root)
    assert isinstance(graph.node(NodeId(1)).node_type, nt.Parser)
