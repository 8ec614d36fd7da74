"""
HTTP surface of the capture registry.

The acting identity comes from the X-Actor-Id header; fingerprints travel
as hex strings. Reads of absent keys answer 200 with a null body.
"""

from fastapi import FastAPI, Depends, Header, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from typing import Optional

from .schemas import (
    RegisterRequest,
    RegisterResponse,
    RecordResponse,
    RecordListResponse,
    RevisionRequest,
    RevisionAddedResponse,
    RevisionResponse,
    RevisionListResponse,
    TagsRequest,
    TagsResponse,
    CollaboratorRequest,
    CollaboratorResponse,
    CollaboratorListResponse,
    StatusRequest,
    StatusResponse,
    AuthorizationResponse,
    NextIdResponse,
    AckResponse,
    EventResponse,
    EventListResponse,
    HealthResponse,
    ErrorResponse,
)
from ..core.config import VERSION, debug_enabled, get_cors_origins
from ..core.db import health_check
from ..core.errors import (
    RegistryError,
    NotFound,
    Unauthorized,
    AlreadyRegistered,
    MaxVersionsReached,
)
from ..core.registry import CaptureRegistry
from ..core.schema import CaptureRecord, Revision, CollaboratorGrant

# Initialize the FastAPI application
app = FastAPI(
    title="Capture Registry API",
    version=VERSION,
    description="Content-addressed, access-controlled registry of carbon-capture reports",
    docs_url="/docs" if debug_enabled() else None,
    redoc_url="/redoc" if debug_enabled() else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS_CODES = {
    NotFound: 404,
    Unauthorized: 403,
    AlreadyRegistered: 409,
    MaxVersionsReached: 409,
}

_registry: Optional[CaptureRegistry] = None


def get_registry() -> CaptureRegistry:
    """Process-wide registry, created on first use."""
    global _registry
    if _registry is None:
        _registry = CaptureRegistry()
    return _registry


@app.exception_handler(RegistryError)
async def registry_error_handler(request: Request, exc: RegistryError):
    status_code = ERROR_STATUS_CODES.get(type(exc), 400)
    error = exc.to_dict()
    body = ErrorResponse(
        error_type=error["kind"],
        message=error["message"],
        details={"code": error["code"], **error["details"]},
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def _decode_fingerprint(value: str) -> Optional[bytes]:
    """Hex to bytes; None for malformed input, which the registry rejects in its own check order."""
    try:
        return bytes.fromhex(value)
    except ValueError:
        return None


def _record_response(record: CaptureRecord) -> RecordResponse:
    return RecordResponse(
        id=record.id,
        fingerprint=record.fingerprint_hex,
        owner=record.owner,
        created=record.created,
        volume=record.volume,
        method=record.method,
        location=record.location,
        metadata=record.metadata,
    )


def _revision_response(revision: Revision) -> RevisionResponse:
    return RevisionResponse(
        record_id=revision.record_id,
        revision=revision.revision,
        fingerprint=revision.fingerprint.hex(),
        notes=revision.notes,
        created=revision.created,
    )


def _collaborator_response(grant: CollaboratorGrant) -> CollaboratorResponse:
    return CollaboratorResponse(
        record_id=grant.record_id,
        collaborator=grant.collaborator,
        role=grant.role,
        permissions=grant.permissions,
        added=grant.added,
    )


@app.get("/health", response_model=HealthResponse)
def health_check_endpoint(registry: CaptureRegistry = Depends(get_registry)):
    """Check system health."""
    db_health = health_check(registry.db_path)
    return HealthResponse(
        status="healthy" if db_health else "unhealthy",
        version=VERSION,
        db_health=db_health,
        record_count=registry.get_record_count() if db_health else 0
    )


@app.post("/records", response_model=RegisterResponse, status_code=201)
def register_endpoint(
    req: RegisterRequest,
    actor: str = Header(..., alias="X-Actor-Id"),
    registry: CaptureRegistry = Depends(get_registry),
):
    fingerprint = _decode_fingerprint(req.fingerprint)
    record_id = registry.register(fingerprint, req.volume, req.method, req.location, req.metadata, caller=actor)
    return RegisterResponse(record_id=record_id)


@app.get("/records", response_model=RecordListResponse)
def list_records_endpoint(
    owner: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 100,
    registry: CaptureRegistry = Depends(get_registry),
):
    records = registry.list_records(owner=owner, status=status, limit=limit)
    return RecordListResponse(records=[_record_response(r) for r in records])


# Define fixed paths BEFORE /records/{record_id} to avoid path parameter conflict
@app.get("/records/next-id", response_model=NextIdResponse)
def next_id_endpoint(registry: CaptureRegistry = Depends(get_registry)):
    return NextIdResponse(next_id=registry.peek_next_id())


@app.get("/records/by-fingerprint/{fingerprint}", response_model=Optional[RecordResponse])
def get_record_by_fingerprint_endpoint(fingerprint: str, registry: CaptureRegistry = Depends(get_registry)):
    record = registry.get_record_by_fingerprint(_decode_fingerprint(fingerprint))
    return _record_response(record) if record else None


@app.get("/records/{record_id}", response_model=Optional[RecordResponse])
def get_record_endpoint(record_id: int, registry: CaptureRegistry = Depends(get_registry)):
    record = registry.get_record(record_id)
    return _record_response(record) if record else None


@app.post("/records/{record_id}/revisions", response_model=RevisionAddedResponse, status_code=201)
def add_revision_endpoint(
    record_id: int,
    req: RevisionRequest,
    actor: str = Header(..., alias="X-Actor-Id"),
    registry: CaptureRegistry = Depends(get_registry),
):
    fingerprint = _decode_fingerprint(req.fingerprint)
    revision = registry.add_revision(record_id, fingerprint, req.notes, caller=actor)
    return RevisionAddedResponse(record_id=record_id, revision=revision)


@app.get("/records/{record_id}/revisions", response_model=RevisionListResponse)
def list_revisions_endpoint(record_id: int, registry: CaptureRegistry = Depends(get_registry)):
    return RevisionListResponse(revisions=[_revision_response(r) for r in registry.list_revisions(record_id)])


@app.get("/records/{record_id}/revisions/{revision}", response_model=Optional[RevisionResponse])
def get_revision_endpoint(record_id: int, revision: int, registry: CaptureRegistry = Depends(get_registry)):
    entry = registry.get_revision(record_id, revision)
    return _revision_response(entry) if entry else None


@app.put("/records/{record_id}/tags", response_model=AckResponse)
def set_tags_endpoint(
    record_id: int,
    req: TagsRequest,
    actor: str = Header(..., alias="X-Actor-Id"),
    registry: CaptureRegistry = Depends(get_registry),
):
    registry.set_tags(record_id, req.tags, caller=actor)
    return AckResponse()


@app.get("/records/{record_id}/tags", response_model=Optional[TagsResponse])
def get_tags_endpoint(record_id: int, registry: CaptureRegistry = Depends(get_registry)):
    tag_set = registry.get_tags(record_id)
    return TagsResponse(record_id=record_id, tags=tag_set.tags) if tag_set else None


@app.post("/records/{record_id}/collaborators", response_model=AckResponse, status_code=201)
def add_collaborator_endpoint(
    record_id: int,
    req: CollaboratorRequest,
    actor: str = Header(..., alias="X-Actor-Id"),
    registry: CaptureRegistry = Depends(get_registry),
):
    registry.add_collaborator(record_id, req.collaborator, req.role, req.permissions, caller=actor)
    return AckResponse()


@app.get("/records/{record_id}/collaborators", response_model=CollaboratorListResponse)
def list_collaborators_endpoint(record_id: int, registry: CaptureRegistry = Depends(get_registry)):
    grants = registry.list_collaborators(record_id)
    return CollaboratorListResponse(collaborators=[_collaborator_response(g) for g in grants])


@app.get("/records/{record_id}/collaborators/{collaborator}", response_model=Optional[CollaboratorResponse])
def get_collaborator_endpoint(record_id: int, collaborator: str, registry: CaptureRegistry = Depends(get_registry)):
    grant = registry.get_collaborator(record_id, collaborator)
    return _collaborator_response(grant) if grant else None


@app.put("/records/{record_id}/status", response_model=AckResponse)
def set_status_endpoint(
    record_id: int,
    req: StatusRequest,
    actor: str = Header(..., alias="X-Actor-Id"),
    registry: CaptureRegistry = Depends(get_registry),
):
    registry.set_status(record_id, req.status, req.visible, caller=actor)
    return AckResponse()


@app.get("/records/{record_id}/status", response_model=Optional[StatusResponse])
def get_status_endpoint(record_id: int, registry: CaptureRegistry = Depends(get_registry)):
    entry = registry.get_status(record_id)
    if not entry:
        return None
    return StatusResponse(
        record_id=entry.record_id,
        status=entry.status,
        visible=entry.visible,
        last_update=entry.last_update,
    )


@app.get("/records/{record_id}/authorized", response_model=AuthorizationResponse)
def is_authorized_endpoint(
    record_id: int,
    actor: str,
    permission: str = "update",
    registry: CaptureRegistry = Depends(get_registry),
):
    return AuthorizationResponse(
        record_id=record_id,
        actor=actor,
        permission=permission,
        authorized=registry.is_authorized(record_id, actor, permission),
    )


@app.get("/events", response_model=EventListResponse)
def list_events_endpoint(
    record_id: Optional[int] = None,
    limit: int = 100,
    registry: CaptureRegistry = Depends(get_registry),
):
    events = registry.list_events(record_id=record_id, limit=limit)
    return EventListResponse(events=[
        EventResponse(
            id=e.id,
            record_id=e.record_id,
            actor=e.actor,
            action=e.action,
            payload=e.payload,
            sequence=e.sequence,
        )
        for e in events
    ])
