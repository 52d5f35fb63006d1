"""
Attribute schema shared by the node and edge variant dataclasses.

Each variant field is declared with `attr("<graphml attribute name>", kind)`.
`construct_variant` drains exactly those attributes from the parsed
`{attribute name: text}` mapping, so anything left over afterwards is data the
schema does not know about.
"""

from __future__ import annotations

import re
from dataclasses import MISSING, field, fields
from typing import Any, Callable, Dict, MutableMapping

from pagegraph.errors import ErrorCode, GraphMLError, ParseIdError

_UNSIGNED = re.compile(r"\+?[0-9]+")

REQUIRED_KINDS = ("str", "bool", "usize", "frame_id", "request_type")
OPTIONAL_KINDS = ("opt_str", "opt_usize")


def attr(name: str, kind: str = "str", **kwargs) -> Any:
    """Declare a variant field backed by the GraphML attribute `name`."""
    if kind not in REQUIRED_KINDS + OPTIONAL_KINDS:
        raise ValueError(f"unknown attribute kind {kind!r}")
    if kind in OPTIONAL_KINDS:
        kwargs.setdefault("default", None)
    return field(metadata={"attr": name, "kind": kind}, **kwargs)


def parse_usize(name: str, text: str) -> int:
    if not _UNSIGNED.fullmatch(text):
        raise GraphMLError(
            f"could not parse attribute `{name}` as an unsigned integer: `{text}`",
            ErrorCode.GRAPHML_BAD_VALUE,
        )
    return int(text)


def parse_bool(name: str, text: str) -> bool:
    value = text.lower()
    if value not in ("true", "false"):
        raise GraphMLError(
            f"could not parse attribute `{name}` as bool: `{text}`",
            ErrorCode.GRAPHML_BAD_VALUE,
        )
    return value == "true"


def _parse_frame_id(name: str, text: str):
    from pagegraph.graph.ids import FrameId

    try:
        return FrameId.parse(text)
    except ParseIdError as e:
        raise GraphMLError(
            f"could not parse attribute `{name}` as a frame id: `{text}`",
            ErrorCode.GRAPHML_BAD_VALUE,
        ) from e


def _parse_request_type(name: str, text: str):
    from pagegraph.graph.edge_types import RequestType

    return RequestType.from_recorded(text)


_CONVERTERS: Dict[str, Callable[[str, str], Any]] = {
    "str": lambda name, text: text,
    "opt_str": lambda name, text: text,
    "bool": parse_bool,
    "usize": parse_usize,
    "opt_usize": parse_usize,
    "frame_id": _parse_frame_id,
    "request_type": _parse_request_type,
}


def construct_variant(cls, attrs: MutableMapping[str, str]):
    """
    Build `cls` from `attrs`, removing every attribute the variant consumes.

    Fields declared with a default may be absent. Raises GraphMLError when
    any other attribute is absent or malformed.
    """
    kwargs = {}
    for f in fields(cls):
        name = f.metadata.get("attr")
        if name is None:
            continue
        kind = f.metadata["kind"]
        if name not in attrs:
            if f.default is not MISSING:
                kwargs[f.name] = f.default
                continue
            raise GraphMLError(
                f"attribute `{name}` was not present for `{cls.TYPE_NAME}`",
                ErrorCode.GRAPHML_MISSING_ATTRIBUTE,
            )
        kwargs[f.name] = _CONVERTERS[kind](name, attrs.pop(name))
    return cls(**kwargs)
