"""In-memory page graph construction for tests."""

from pagegraph.graph import edge_types as et
from pagegraph.graph import node_types as nt
from pagegraph.graph.ids import EdgeId, NodeId
from pagegraph.graph.store import Edge, Node, PageGraph, PageGraphDescriptor

FRAME_HEX = "0123456789ABCDEF0123456789ABCDEF"


class GraphBuilder:
    """
    Builds a PageGraph node by node. Ids are assigned in creation order and
    edges get increasing timestamps unless one is given.
    """

    def __init__(self, url="https://site.com/", is_root=True, frame_id=None):
        self.graph = PageGraph(PageGraphDescriptor(
            version="0.6.3", url=url, is_root=is_root, frame_id=frame_id,
        ))
        self._node_counter = 0
        self._edge_counter = 0
        self._clock = 0

    # nodes

    def node(self, node_type, timestamp=0):
        self._node_counter += 1
        return self.graph.add_node(Node(NodeId(self._node_counter), timestamp, node_type))

    def parser(self):
        return self.node(nt.Parser())

    def dom_root(self, url="https://site.com/", node_id=1):
        return self.node(nt.DomRoot(url=url, tag_name="", is_deleted=False, node_id=node_id))

    def element(self, tag_name, node_id, is_deleted=False):
        return self.node(nt.HtmlElement(tag_name=tag_name, is_deleted=is_deleted, node_id=node_id))

    def text(self, node_id, text="..."):
        return self.node(nt.TextNode(text=text, is_deleted=False, node_id=node_id))

    def frame_owner(self, node_id, tag_name="iframe"):
        return self.node(nt.FrameOwner(tag_name=tag_name, is_deleted=False, node_id=node_id))

    def script(self, url=None, script_type="classic", script_id=0):
        return self.node(nt.Script(url=url, script_type=script_type, script_id=script_id, source="..."))

    def resource(self, url):
        return self.node(nt.Resource(url=url))

    def remote_frame(self, frame_id):
        return self.node(nt.RemoteFrame(frame_id=frame_id))

    # edges

    def edge(self, source, target, edge_type, timestamp="auto"):
        self._edge_counter += 1
        if timestamp == "auto":
            self._clock += 1
            timestamp = self._clock
        return self.graph.add_edge(Edge(
            EdgeId(self._edge_counter), timestamp, source.id, target.id, edge_type,
        ))

    def create(self, creator, node, **kw):
        return self.edge(creator, node, et.CreateNode(), **kw)

    def insert(self, actor, node, parent, **kw):
        return self.edge(actor, node, et.InsertNode(parent=parent.node_type.node_id, before=None), **kw)

    def execute(self, source, script, **kw):
        return self.edge(source, script, et.Execute(), **kw)

    def cross_dom(self, source, target, **kw):
        return self.edge(source, target, et.CrossDom(), **kw)

    def set_attribute(self, actor, element, key, value="", **kw):
        return self.edge(actor, element, et.SetAttribute(key=key, value=value, is_style=False), **kw)

    def request_start(self, initiator, resource, request_id, request_type=et.RequestType.SCRIPT, **kw):
        return self.edge(initiator, resource, et.RequestStart(
            request_type=request_type, status="started", request_id=request_id,
        ), **kw)

    def request_complete(self, resource, initiator, request_id, resource_type="script", size="100", **kw):
        return self.edge(resource, initiator, et.RequestComplete(
            resource_type=resource_type, status="complete", value=None, response_hash=None,
            request_id=request_id, headers="", size=size,
        ), **kw)

    def request_error(self, resource, initiator, request_id, **kw):
        return self.edge(resource, initiator, et.RequestError(
            status="error", request_id=request_id, value=None, headers="", size="",
        ), **kw)

    def build(self):
        return self.graph


def document(url="https://site.com/"):
    """
    A builder with the usual skeleton of one parsed document:
    parser, DOM root (node id 1), <html> (2) and <body> (3).
    """
    b = GraphBuilder(url=url)
    b.parser_node = b.parser()
    b.root = b.dom_root(url=url, node_id=1)
    b.html = b.element("html", 2)
    b.body = b.element("body", 3)
    b.create(b.parser_node, b.html)
    b.insert(b.parser_node, b.html, b.root)
    b.create(b.parser_node, b.body)
    b.insert(b.parser_node, b.body, b.html)
    return b
