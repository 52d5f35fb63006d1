"""Module errors: structured error taxonomy for pagegraph."""
#
# PURPOSE:
# Provides error codes and typed exceptions for every fatal condition the
# graph loader and the causal queries can hit.
#
# ERROR CLASSES:
# - Malformed input (ID_XXX, GRAPHML_XXX): a corrupt trace cannot be queried.
# - Invariant violations (GRAPH_XXX, MERGE_XXX): the causal model's
#   assumptions are broken, so any answer would be misleading.
# - Incompleteness (EFFECTS_XXX): edge/node combinations the causal model
#   does not cover yet. Raised instead of guessing.
# - Expected absence (missing companion frame, resource never requested,
#   script tag never executed) is NOT an error and has no code here.
#
# USAGE:
#   from pagegraph.errors import InvariantViolation, ErrorCode
#
#   raise InvariantViolation(
#       "Frame context had multiple parsers",
#       ErrorCode.GRAPH_CARDINALITY,
#       details={"frame_id": str(frame_id)},
#   )
#
from enum import Enum
from typing import Dict, Any, Optional


class ErrorCode(Enum):
    # Identifier Errors
    ID_MISSING_PREFIX = "ID_001"
    ID_INVALID_INTEGER = "ID_002"
    ID_BAD_FRAME_LENGTH = "ID_003"

    # GraphML Errors
    GRAPHML_STRUCTURE = "GRAPHML_001"
    GRAPHML_UNKNOWN_TYPE = "GRAPHML_002"
    GRAPHML_EXTRA_DATA = "GRAPHML_003"
    GRAPHML_MISSING_ATTRIBUTE = "GRAPHML_004"
    GRAPHML_BAD_VALUE = "GRAPHML_005"

    # Graph Invariant Errors
    GRAPH_DANGLING_REFERENCE = "GRAPH_001"
    GRAPH_CARDINALITY = "GRAPH_002"
    GRAPH_DUPLICATE_DOM_ID = "GRAPH_003"
    GRAPH_MISSING_TIMESTAMP = "GRAPH_004"
    GRAPH_WRONG_NODE_TYPE = "GRAPH_005"
    GRAPH_ID_COLLISION = "GRAPH_006"

    # Frame Merge Errors
    MERGE_PRECONDITION = "MERGE_001"

    # Causal Model Errors
    EFFECTS_UNSUPPORTED_EDGE = "EFFECTS_001"
    EFFECTS_UNSUPPORTED_NODE = "EFFECTS_002"

    # Config Errors
    CONFIG_INVALID = "CONFIG_001"


class PageGraphError(Exception):
    """
    Base exception class for pagegraph with structured error information.

    Attributes:
        code: ErrorCode enum value (e.g., "GRAPH_002")
        message: Human-readable error message
        details: Optional dictionary with additional context
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}

        # Build exception message with code for easy debugging
        super().__init__(f"[{code.value}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert error to dictionary for JSON serialization.
        """
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }

    def to_json(self) -> str:
        """
        Serialize error to JSON string.
        """
        import json
        return json.dumps(self.to_dict(), default=str)


class ParseIdErrorKind(Enum):
    """Why a textual node/edge/frame identifier was rejected."""
    MISSING_PREFIX = "missing prefix"
    INVALID_INTEGER = "invalid integer"
    BAD_FRAME_LENGTH = "bad frame length"


_PARSE_ID_CODES = {
    ParseIdErrorKind.MISSING_PREFIX: ErrorCode.ID_MISSING_PREFIX,
    ParseIdErrorKind.INVALID_INTEGER: ErrorCode.ID_INVALID_INTEGER,
    ParseIdErrorKind.BAD_FRAME_LENGTH: ErrorCode.ID_BAD_FRAME_LENGTH,
}


class ParseIdError(PageGraphError, ValueError):
    """Raised when an identifier string does not follow `n<id>[:<frame>]` / `e<id>[:<frame>]`."""

    def __init__(self, reason: ParseIdErrorKind, text: str):
        super().__init__(
            _PARSE_ID_CODES[reason],
            f"Could not parse identifier {text!r}: {reason.value}",
            details={"text": text},
        )
        self.reason = reason


class GraphMLError(PageGraphError):
    """Raised when a GraphML document is malformed or violates the strict schema."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.GRAPHML_STRUCTURE,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(code, message, details)


class InvariantViolation(PageGraphError, RuntimeError):
    """Raised when the graph breaks an assumption the causal model relies on."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.GRAPH_CARDINALITY,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(code, message, details)


class DanglingEdgeError(InvariantViolation):
    """Raised when an edge endpoint or a looked-up id does not exist in the graph."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.GRAPH_DANGLING_REFERENCE, details)


class FrameMergeError(InvariantViolation):
    """Raised when `merge_frame` preconditions do not hold."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorCode.MERGE_PRECONDITION, details)


class UnsupportedEdgeError(PageGraphError, NotImplementedError):
    """Raised for edge/node combinations the causal model does not cover."""

    def __init__(self, message: str, code: ErrorCode = ErrorCode.EFFECTS_UNSUPPORTED_EDGE,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(code, message, details)


__all__ = [
    "ErrorCode",
    "PageGraphError",
    "ParseIdErrorKind",
    "ParseIdError",
    "GraphMLError",
    "InvariantViolation",
    "DanglingEdgeError",
    "FrameMergeError",
    "UnsupportedEdgeError",
]
