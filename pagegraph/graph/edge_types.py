"""
Edge variants of a page graph.

Edges are the actions recorded while the page ran: structural DOM changes,
the request lifecycle, script execution and calls, attribute and storage
mutations, event listener bookkeeping and bindings.

Every variant is a frozen dataclass registered under the exact "edge type"
string the recording browser writes. `EdgeKind` is the closed set of tags,
and the causal dispatch in `pagegraph.graph.effects` is checked against it.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Dict, Optional, Type

from pagegraph.graph.schema import attr


class RequestType(Enum):
    """Request classification recorded on RequestStart edges, valued by its label."""
    IMAGE = "image"
    SCRIPT = "script"
    CSS = "stylesheet"
    AJAX = "xhr"
    UNKNOWN = "unknown"

    @classmethod
    def from_recorded(cls, text: str) -> "RequestType":
        # anything the browser reports that is not listed here is Unknown
        return _RECORDED_REQUEST_TYPES.get(text, cls.UNKNOWN)

    @property
    def label(self) -> str:
        return self.value


_RECORDED_REQUEST_TYPES = {
    "Image": RequestType.IMAGE,
    "Script": RequestType.SCRIPT,
    "ScriptClassic": RequestType.SCRIPT,
    "CSS": RequestType.CSS,
    "AJAX": RequestType.AJAX,
    "Unknown": RequestType.UNKNOWN,
}


class EdgeKind(Enum):
    FILTER = "filter"
    STRUCTURE = "structure"
    CROSS_DOM = "cross DOM"
    RESOURCE_BLOCK = "resource block"
    SHIELD = "shield"
    TEXT_CHANGE = "text change"
    REMOVE_NODE = "remove node"
    DELETE_NODE = "delete node"
    INSERT_NODE = "insert node"
    CREATE_NODE = "create node"
    JS_RESULT = "js result"
    JS_CALL = "js call"
    REQUEST_COMPLETE = "request complete"
    REQUEST_ERROR = "request error"
    REQUEST_START = "request start"
    REQUEST_RESPONSE = "request response"
    ADD_EVENT_LISTENER = "add event listener"
    REMOVE_EVENT_LISTENER = "remove event listener"
    EVENT_LISTENER = "event listener"
    STORAGE_SET = "storage set"
    STORAGE_READ_RESULT = "storage read result"
    DELETE_STORAGE = "delete storage"
    READ_STORAGE_CALL = "read storage call"
    CLEAR_STORAGE = "clear storage"
    STORAGE_BUCKET = "storage bucket"
    EXECUTE_FROM_ATTRIBUTE = "execute from attribute"
    EXECUTE = "execute"
    SET_ATTRIBUTE = "set attribute"
    DELETE_ATTRIBUTE = "delete attribute"
    BINDING = "binding"
    BINDING_EVENT = "binding event"


EDGE_TYPES: Dict[str, Type["EdgeType"]] = {}


def _register(cls):
    EDGE_TYPES[cls.KIND.value] = cls
    cls.TYPE_NAME = cls.KIND.value
    return cls


@dataclass(frozen=True)
class EdgeType:
    KIND: ClassVar[EdgeKind]
    TYPE_NAME: ClassVar[str] = ""

    @property
    def kind(self) -> EdgeKind:
        return self.KIND


# ============================================================================
# Structural edges
# ============================================================================

@_register
@dataclass(frozen=True)
class Filter(EdgeType):
    KIND = EdgeKind.FILTER


@_register
@dataclass(frozen=True)
class Structure(EdgeType):
    KIND = EdgeKind.STRUCTURE


@_register
@dataclass(frozen=True)
class CrossDom(EdgeType):
    """Bridges two documents: frame owner to child root, remote frame to merged frame."""
    KIND = EdgeKind.CROSS_DOM


@_register
@dataclass(frozen=True)
class ResourceBlock(EdgeType):
    KIND = EdgeKind.RESOURCE_BLOCK


@_register
@dataclass(frozen=True)
class Shield(EdgeType):
    KIND = EdgeKind.SHIELD


@_register
@dataclass(frozen=True)
class TextChange(EdgeType):
    KIND = EdgeKind.TEXT_CHANGE


@_register
@dataclass(frozen=True)
class RemoveNode(EdgeType):
    KIND = EdgeKind.REMOVE_NODE


@_register
@dataclass(frozen=True)
class DeleteNode(EdgeType):
    KIND = EdgeKind.DELETE_NODE


@_register
@dataclass(frozen=True)
class InsertNode(EdgeType):
    """`parent` and `before` are Blink node ids, not graph node ids."""
    KIND = EdgeKind.INSERT_NODE
    parent: int = attr("parent", "usize")
    before: Optional[int] = attr("before", "opt_usize")


@_register
@dataclass(frozen=True)
class CreateNode(EdgeType):
    KIND = EdgeKind.CREATE_NODE


# ============================================================================
# Script interaction
# ============================================================================

@_register
@dataclass(frozen=True)
class JsResult(EdgeType):
    KIND = EdgeKind.JS_RESULT
    value: Optional[str] = attr("value", "opt_str")


@_register
@dataclass(frozen=True)
class JsCall(EdgeType):
    KIND = EdgeKind.JS_CALL
    script_position: int = attr("script position", "usize")
    args: Optional[str] = attr("args", "opt_str")


@_register
@dataclass(frozen=True)
class ExecuteFromAttribute(EdgeType):
    KIND = EdgeKind.EXECUTE_FROM_ATTRIBUTE
    attr_name: str = attr("attr name")


@_register
@dataclass(frozen=True)
class Execute(EdgeType):
    KIND = EdgeKind.EXECUTE


# ============================================================================
# Request lifecycle
# ============================================================================
# RequestStart, RequestComplete and RequestError edges sharing a request_id
# all refer to the same Resource node.

@_register
@dataclass(frozen=True)
class RequestStart(EdgeType):
    KIND = EdgeKind.REQUEST_START
    request_type: RequestType = attr("request type", "request_type")
    status: str = attr("status")
    request_id: int = attr("request id", "usize")


@_register
@dataclass(frozen=True)
class RequestComplete(EdgeType):
    KIND = EdgeKind.REQUEST_COMPLETE
    resource_type: str = attr("resource type")
    status: str = attr("status")
    request_id: int = attr("request id", "usize")
    headers: str = attr("headers")
    size: str = attr("size")
    value: Optional[str] = attr("value", "opt_str")
    response_hash: Optional[str] = attr("response hash", "opt_str")


@_register
@dataclass(frozen=True)
class RequestError(EdgeType):
    KIND = EdgeKind.REQUEST_ERROR
    status: str = attr("status")
    request_id: int = attr("request id", "usize")
    headers: str = attr("headers")
    size: str = attr("size")
    value: Optional[str] = attr("value", "opt_str")


@_register
@dataclass(frozen=True)
class RequestResponse(EdgeType):
    KIND = EdgeKind.REQUEST_RESPONSE


# ============================================================================
# Event listeners
# ============================================================================

@_register
@dataclass(frozen=True)
class AddEventListener(EdgeType):
    KIND = EdgeKind.ADD_EVENT_LISTENER
    key: str = attr("key")
    event_listener_id: int = attr("event listener id", "usize")
    script_id: int = attr("script id", "usize")


@_register
@dataclass(frozen=True)
class RemoveEventListener(EdgeType):
    KIND = EdgeKind.REMOVE_EVENT_LISTENER
    key: str = attr("key")
    event_listener_id: int = attr("event listener id", "usize")
    script_id: int = attr("script id", "usize")


@_register
@dataclass(frozen=True)
class EventListener(EdgeType):
    KIND = EdgeKind.EVENT_LISTENER
    key: str = attr("key")
    event_listener_id: int = attr("event listener id", "usize")


# ============================================================================
# Storage
# ============================================================================

@_register
@dataclass(frozen=True)
class StorageSet(EdgeType):
    KIND = EdgeKind.STORAGE_SET
    key: str = attr("key")
    value: Optional[str] = attr("value", "opt_str")


@_register
@dataclass(frozen=True)
class StorageReadResult(EdgeType):
    KIND = EdgeKind.STORAGE_READ_RESULT
    key: str = attr("key")
    value: Optional[str] = attr("value", "opt_str")


@_register
@dataclass(frozen=True)
class DeleteStorage(EdgeType):
    KIND = EdgeKind.DELETE_STORAGE
    key: str = attr("key")


@_register
@dataclass(frozen=True)
class ReadStorageCall(EdgeType):
    KIND = EdgeKind.READ_STORAGE_CALL
    key: str = attr("key")


@_register
@dataclass(frozen=True)
class ClearStorage(EdgeType):
    KIND = EdgeKind.CLEAR_STORAGE
    key: str = attr("key")


@_register
@dataclass(frozen=True)
class StorageBucket(EdgeType):
    KIND = EdgeKind.STORAGE_BUCKET


# ============================================================================
# Attributes
# ============================================================================

@_register
@dataclass(frozen=True)
class SetAttribute(EdgeType):
    KIND = EdgeKind.SET_ATTRIBUTE
    key: str = attr("key")
    is_style: bool = attr("is style", "bool")
    value: Optional[str] = attr("value", "opt_str")


@_register
@dataclass(frozen=True)
class DeleteAttribute(EdgeType):
    KIND = EdgeKind.DELETE_ATTRIBUTE
    key: str = attr("key")
    is_style: bool = attr("is style", "bool")


# ============================================================================
# Bindings
# ============================================================================

@_register
@dataclass(frozen=True)
class Binding(EdgeType):
    KIND = EdgeKind.BINDING


@_register
@dataclass(frozen=True)
class BindingEvent(EdgeType):
    KIND = EdgeKind.BINDING_EVENT
    script_position: int = attr("script position", "usize")


REQUEST_KINDS = frozenset({
    EdgeKind.REQUEST_START,
    EdgeKind.REQUEST_COMPLETE,
    EdgeKind.REQUEST_ERROR,
})

if set(EDGE_TYPES) != {k.value for k in EdgeKind}:
    raise RuntimeError("every EdgeKind needs exactly one registered edge variant")
