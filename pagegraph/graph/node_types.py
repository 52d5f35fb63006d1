"""
Node variants of a page graph.

Nodes (mostly) represent either actors (things that do things, such as
scripts and the HTML parser) or actees (things that have things done to them,
such as HTML elements, resources and storage areas).

Every variant is a frozen dataclass registered under the exact "node type"
string the recording browser writes. `NodeKind` is the closed set of tags.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Dict, Optional, Type

from pagegraph.graph.ids import FrameId
from pagegraph.graph.schema import attr


class NodeKind(Enum):
    EXTENSIONS = "extensions"
    REMOTE_FRAME = "remote frame"
    RESOURCE = "resource"
    AD_FILTER = "ad filter"
    TRACKER_FILTER = "tracker filter"
    FINGERPRINTING_FILTER = "fingerprinting filter"
    WEB_API = "web API"
    JS_BUILTIN = "JS builtin"
    HTML_ELEMENT = "HTML element"
    TEXT_NODE = "text node"
    DOM_ROOT = "DOM root"
    FRAME_OWNER = "frame owner"
    STORAGE = "storage"
    LOCAL_STORAGE = "local storage"
    SESSION_STORAGE = "session storage"
    COOKIE_JAR = "cookie jar"
    SCRIPT = "script"
    PARSER = "parser"
    BRAVE_SHIELDS = "Brave Shields"
    ADS_SHIELD = "shieldsAds shield"
    TRACKERS_SHIELD = "trackers shield"
    JAVASCRIPT_SHIELD = "javascript shield"
    FINGERPRINTING_SHIELD = "fingerprinting shield"
    FINGERPRINTING_V2_SHIELD = "fingerprintingV2 shield"
    BINDING = "binding"
    BINDING_EVENT = "binding event"


NODE_TYPES: Dict[str, Type["NodeType"]] = {}


def _register(cls):
    NODE_TYPES[cls.KIND.value] = cls
    cls.TYPE_NAME = cls.KIND.value
    return cls


@dataclass(frozen=True)
class NodeType:
    KIND: ClassVar[NodeKind]
    TYPE_NAME: ClassVar[str] = ""

    @property
    def kind(self) -> NodeKind:
        return self.KIND


# ----------------------------------------------------------------------------
# Network, filters and APIs
# ----------------------------------------------------------------------------

@_register
@dataclass(frozen=True)
class Extensions(NodeType):
    KIND = NodeKind.EXTENSIONS


@_register
@dataclass(frozen=True)
class RemoteFrame(NodeType):
    """Placeholder for an out-of-process iframe recorded in its own file."""
    KIND = NodeKind.REMOTE_FRAME
    frame_id: FrameId = attr("frame id", "frame_id")


@_register
@dataclass(frozen=True)
class Resource(NodeType):
    """One requested URL. Each request to it is a RequestStart edge."""
    KIND = NodeKind.RESOURCE
    url: str = attr("url")


@_register
@dataclass(frozen=True)
class AdFilter(NodeType):
    KIND = NodeKind.AD_FILTER
    rule: str = attr("rule")


@_register
@dataclass(frozen=True)
class TrackerFilter(NodeType):
    KIND = NodeKind.TRACKER_FILTER


@_register
@dataclass(frozen=True)
class FingerprintingFilter(NodeType):
    KIND = NodeKind.FINGERPRINTING_FILTER


@_register
@dataclass(frozen=True)
class WebApi(NodeType):
    KIND = NodeKind.WEB_API
    method: str = attr("method")


@_register
@dataclass(frozen=True)
class JsBuiltin(NodeType):
    KIND = NodeKind.JS_BUILTIN
    method: str = attr("method")


# ----------------------------------------------------------------------------
# DOM
# ----------------------------------------------------------------------------
# `node_id` is the integer Blink assigns to every DOM node. It is unique among
# HTML elements, text nodes, DOM roots and frame owners of one frame context
# and is what InsertNode edges reference in their `parent` / `before` fields.

@_register
@dataclass(frozen=True)
class HtmlElement(NodeType):
    KIND = NodeKind.HTML_ELEMENT
    tag_name: str = attr("tag name")
    is_deleted: bool = attr("is deleted", "bool")
    node_id: int = attr("node id", "usize")


@_register
@dataclass(frozen=True)
class TextNode(NodeType):
    KIND = NodeKind.TEXT_NODE
    is_deleted: bool = attr("is deleted", "bool")
    node_id: int = attr("node id", "usize")
    text: Optional[str] = attr("text", "opt_str")


@_register
@dataclass(frozen=True)
class DomRoot(NodeType):
    """Top of one document. `url` is absent for documents that never navigated."""
    KIND = NodeKind.DOM_ROOT
    tag_name: str = attr("tag name")
    is_deleted: bool = attr("is deleted", "bool")
    node_id: int = attr("node id", "usize")
    url: Optional[str] = attr("url", "opt_str")


@_register
@dataclass(frozen=True)
class FrameOwner(NodeType):
    """An <iframe>, <frame>, <object> or similar element hosting a document."""
    KIND = NodeKind.FRAME_OWNER
    tag_name: str = attr("tag name")
    is_deleted: bool = attr("is deleted", "bool")
    node_id: int = attr("node id", "usize")


# ----------------------------------------------------------------------------
# Storage
# ----------------------------------------------------------------------------

@_register
@dataclass(frozen=True)
class Storage(NodeType):
    KIND = NodeKind.STORAGE


@_register
@dataclass(frozen=True)
class LocalStorage(NodeType):
    KIND = NodeKind.LOCAL_STORAGE


@_register
@dataclass(frozen=True)
class SessionStorage(NodeType):
    KIND = NodeKind.SESSION_STORAGE


@_register
@dataclass(frozen=True)
class CookieJar(NodeType):
    KIND = NodeKind.COOKIE_JAR


# ----------------------------------------------------------------------------
# Actors
# ----------------------------------------------------------------------------

@_register
@dataclass(frozen=True)
class Script(NodeType):
    """
    One JavaScript code unit.

    script_type is the V8 classification, e.g. "classic", "module",
    "inline inside generated attribute" or "eval".
    """
    KIND = NodeKind.SCRIPT
    script_type: str = attr("script type")
    script_id: int = attr("script id", "usize")
    url: Optional[str] = attr("url", "opt_str")
    # absent from recordings made with newer browser builds
    source: str = attr("source", default="")

    @property
    def is_module(self) -> bool:
        return self.script_type == "module"


@_register
@dataclass(frozen=True)
class Parser(NodeType):
    KIND = NodeKind.PARSER


# ----------------------------------------------------------------------------
# Shields
# ----------------------------------------------------------------------------

@_register
@dataclass(frozen=True)
class BraveShields(NodeType):
    KIND = NodeKind.BRAVE_SHIELDS


@_register
@dataclass(frozen=True)
class AdsShield(NodeType):
    KIND = NodeKind.ADS_SHIELD


@_register
@dataclass(frozen=True)
class TrackersShield(NodeType):
    KIND = NodeKind.TRACKERS_SHIELD


@_register
@dataclass(frozen=True)
class JavascriptShield(NodeType):
    KIND = NodeKind.JAVASCRIPT_SHIELD


@_register
@dataclass(frozen=True)
class FingerprintingShield(NodeType):
    KIND = NodeKind.FINGERPRINTING_SHIELD


@_register
@dataclass(frozen=True)
class FingerprintingV2Shield(NodeType):
    KIND = NodeKind.FINGERPRINTING_V2_SHIELD


# ----------------------------------------------------------------------------
# Bindings
# ----------------------------------------------------------------------------

@_register
@dataclass(frozen=True)
class Binding(NodeType):
    KIND = NodeKind.BINDING
    binding: str = attr("binding")
    binding_type: str = attr("binding type")


@_register
@dataclass(frozen=True)
class BindingEvent(NodeType):
    KIND = NodeKind.BINDING_EVENT
    binding_event: str = attr("binding event")


# Kinds that carry a Blink `node_id`
DOM_NODE_KINDS = frozenset({
    NodeKind.HTML_ELEMENT,
    NodeKind.TEXT_NODE,
    NodeKind.DOM_ROOT,
    NodeKind.FRAME_OWNER,
})

if set(NODE_TYPES) != {k.value for k in NodeKind}:
    raise RuntimeError("every NodeKind needs exactly one registered node variant")
