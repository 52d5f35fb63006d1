from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field


class DownstreamRequests(BaseModel):
    request_id: int
    request_type: str = Field(description="Request type label, e.g. 'script' or 'xhr'")
    url: str = Field(description="URL of the requested Resource node")
    node_id: str = Field(description="Id of the requested Resource node")
    children: List["DownstreamRequests"] = Field(
        default_factory=list,
        description="Requests that would not have happened without this one",
    )

    def flatten(self) -> List["DownstreamRequests"]:
        """This record followed by every descendant, depth first."""
        out = [self]
        for child in self.children:
            out.extend(child.flatten())
        return out


class RequestInfo(BaseModel):
    request_id: int
    frame_id: Optional[str] = None
    request_type: str
    url: str
    node_id: str = Field(description="Id of the requested Resource node")
    initiator_id: str = Field(description="Id of the node that issued the request")
    status: str
    resource_type: Optional[str] = None
    size: Optional[str] = None
    headers: Optional[str] = None
    response_hash: Optional[str] = None
    start_edge_id: str
    complete_edge_id: str


class MatchingResource(BaseModel):
    url: str
    node_id: str
    request_types: List[str] = Field(default_factory=list)
    requests: List[Tuple[int, str]] = Field(
        default_factory=list,
        description="(request id, RequestStart edge id) for every request of this resource",
    )


class GraphStats(BaseModel):
    source: str = Field(default="", description="File the statistics were computed from")
    url: Optional[str] = None
    nodes: int
    edges: int
    node_kinds: Dict[str, int] = Field(default_factory=dict)
    edge_kinds: Dict[str, int] = Field(default_factory=dict)
    dom_nodes_created: int = 0
    dom_nodes_retained: int = 0
    dom_nodes_touched: int = 0
    requests_completed: int = 0
    event_listeners_added: int = 0
    error: Optional[Dict[str, Any]] = None


DownstreamRequests.model_rebuild()
