"""
Request/response models for the capture registry API.

Request models carry types only; bounds and ordering of failures are
enforced by the registry so callers always see its typed error codes.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


class RegisterRequest(BaseModel):
    fingerprint: str = Field(..., description="Hex-encoded content fingerprint (up to 32 bytes)")
    volume: int = Field(..., description="Captured volume, fixed-point scaled")
    method: str
    location: str
    metadata: str = ""


class RegisterResponse(BaseModel):
    record_id: int


class RecordResponse(BaseModel):
    id: int
    fingerprint: str
    owner: str
    created: int
    volume: int
    method: str
    location: str
    metadata: str


class RecordListResponse(BaseModel):
    records: List[RecordResponse]


class RevisionRequest(BaseModel):
    fingerprint: str = Field(..., description="Hex-encoded replacement fingerprint")
    notes: str = ""


class RevisionAddedResponse(BaseModel):
    record_id: int
    revision: int


class RevisionResponse(BaseModel):
    record_id: int
    revision: int
    fingerprint: str
    notes: str
    created: int


class RevisionListResponse(BaseModel):
    revisions: List[RevisionResponse]


class TagsRequest(BaseModel):
    tags: List[str]


class TagsResponse(BaseModel):
    record_id: int
    tags: List[str]


class CollaboratorRequest(BaseModel):
    collaborator: str
    role: str
    permissions: List[str] = Field(default_factory=list)


class CollaboratorResponse(BaseModel):
    record_id: int
    collaborator: str
    role: str
    permissions: List[str]
    added: int


class CollaboratorListResponse(BaseModel):
    collaborators: List[CollaboratorResponse]


class StatusRequest(BaseModel):
    status: str  # pending|verified|disputed
    visible: bool = True


class StatusResponse(BaseModel):
    record_id: int
    status: str
    visible: bool
    last_update: int


class AuthorizationResponse(BaseModel):
    record_id: int
    actor: str
    permission: str
    authorized: bool


class NextIdResponse(BaseModel):
    next_id: int


class AckResponse(BaseModel):
    success: bool = True


class EventResponse(BaseModel):
    id: int
    record_id: int
    actor: str
    action: str
    payload: Dict[str, Any]
    sequence: int


class EventListResponse(BaseModel):
    events: List[EventResponse]


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    record_count: int


class ErrorResponse(BaseModel):
    error_type: str
    message: str
    timestamp: datetime = None
    details: Optional[Dict[str, Any]] = None

    def __init__(self, **data):
        super().__init__(timestamp=datetime.now(), **data)
