"""
Frame-qualified identifiers for page graph nodes and edges.

Every node and edge id is a small integer assigned by the recording browser,
optionally qualified by the 128-bit token of the frame it was recorded in.
Ids from different frames only become comparable after a remote frame's
recording is merged into its parent, at which point the frame token keeps
them from colliding.

Canonical text forms:
    n123                                      node 123 of the local frame
    e9:0123456789ABCDEF0123456789ABCDEF       edge 9 of a remote frame
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from functools import total_ordering
from typing import Optional, Tuple

from pagegraph.errors import ParseIdError, ParseIdErrorKind

# Largest local id a recording can contain (usize on 64-bit builds).
MAX_LOCAL_ID = 2 ** 64 - 1

FRAME_ID_HEX_LENGTH = 32

_DIGITS = re.compile(r"[0-9]+")
_HEX = re.compile(r"[0-9a-fA-F]+")


def _parse_local_id(text: str, original: str) -> int:
    if not _DIGITS.fullmatch(text):
        raise ParseIdError(ParseIdErrorKind.INVALID_INTEGER, original)
    value = int(text)
    if value > MAX_LOCAL_ID:
        raise ParseIdError(ParseIdErrorKind.INVALID_INTEGER, original)
    return value


@dataclass(frozen=True, order=True)
class FrameId:
    """A Chromium frame token, rendered as 32 upper-case hexadecimal characters."""
    value: int

    @classmethod
    def parse(cls, text: str) -> "FrameId":
        if len(text) != FRAME_ID_HEX_LENGTH:
            raise ParseIdError(ParseIdErrorKind.BAD_FRAME_LENGTH, text)
        if not _HEX.fullmatch(text):
            raise ParseIdError(ParseIdErrorKind.INVALID_INTEGER, text)
        return cls(int(text, 16))

    def __str__(self) -> str:
        return f"{self.value:032X}"

    def __repr__(self) -> str:
        return f"FrameId({str(self)!r})"


@total_ordering
@dataclass(frozen=True, eq=True)
class GraphItemId:
    """
    Shared shape of node and edge ids: `(local_id, frame)`.

    Subclasses fix the one-letter text prefix. A NodeId never compares equal
    to an EdgeId even when both fields match.
    """
    local_id: int
    frame: Optional[FrameId] = None

    PREFIX = ""

    @classmethod
    def parse(cls, text: str):
        """Parse the canonical text form, raising ParseIdError on malformed input."""
        if not cls.PREFIX or not text.startswith(cls.PREFIX):
            raise ParseIdError(ParseIdErrorKind.MISSING_PREFIX, text)
        return cls.parse_unprefixed(text[len(cls.PREFIX):], original=text)

    @classmethod
    def parse_unprefixed(cls, text: str, original: Optional[str] = None):
        """Parse `<id>` or `<id>:<frame-hex>` without the leading type letter."""
        original = text if original is None else original
        local, sep, frame = text.partition(":")
        local_id = _parse_local_id(local, original)
        if not sep:
            return cls(local_id)
        if len(frame) != FRAME_ID_HEX_LENGTH:
            raise ParseIdError(ParseIdErrorKind.BAD_FRAME_LENGTH, original)
        if not _HEX.fullmatch(frame):
            raise ParseIdError(ParseIdErrorKind.INVALID_INTEGER, original)
        return cls(local_id, FrameId(int(frame, 16)))

    def with_frame(self, frame: FrameId):
        """Copy of this id qualified by `frame`. Only frame merging needs this."""
        return replace(self, frame=frame)

    def sort_key(self) -> Tuple[int, int, int]:
        # unframed ids sort before framed ones with the same local id
        if self.frame is None:
            return (self.local_id, 0, 0)
        return (self.local_id, 1, self.frame.value)

    def __lt__(self, other):
        if other.__class__ is not self.__class__:
            return NotImplemented
        return self.sort_key() < other.sort_key()

    def __str__(self) -> str:
        if self.frame is None:
            return f"{self.PREFIX}{self.local_id}"
        return f"{self.PREFIX}{self.local_id}:{self.frame}"


@dataclass(frozen=True, eq=True)
class NodeId(GraphItemId):
    PREFIX = "n"

    def __repr__(self) -> str:
        return f"NodeId({str(self)!r})"


@dataclass(frozen=True, eq=True)
class EdgeId(GraphItemId):
    PREFIX = "e"

    def __repr__(self) -> str:
        return f"EdgeId({str(self)!r})"


def same_frame_context(a, b) -> bool:
    """
    True when two ids (or nodes/edges carrying ids) were recorded in the same
    frame context, including both belonging to the unqualified root frame.
    """
    return _frame_of(a) == _frame_of(b)


def _frame_of(item) -> Optional[FrameId]:
    if isinstance(item, GraphItemId):
        return item.frame
    return item.id.frame
