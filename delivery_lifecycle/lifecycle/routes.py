"""
Delivery lifecycle API routes.

REST endpoints over the project registry, delivery ledger and annotation
tracker. All endpoints are prefixed with /lifecycle.
"""

from typing import Any, Dict, List, NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ..db.audit_service import AuditService
from ..db.base import get_db
from ..errors import (
    AmbiguousAction,
    AmbiguousScope,
    DeliveryNotEditable,
    InvalidArtifactLocator,
    LifecycleError,
    NoPendingCorrections,
    NotAuthorized,
    NotFound,
    PaymentFailed,
    ResolutionConflict,
    TransitionNotAllowed,
    VersionAllocationConflict,
)
from .annotations import AnnotationTracker
from .collaborators import (
    AccessPolicy,
    AllowAllAccessPolicy,
    EventPublisher,
    LoggingEventPublisher,
    NullPaymentGateway,
    PaymentGateway,
)
from .enums import UnitStatus
from .ledger import DeliveryLedger
from .registry import ProjectRegistry
from .schemas import (
    ApproveRequest,
    CommentCreate,
    DeliverySubmit,
    ProducerAssign,
    ProjectCreate,
    ReplyCreate,
    ResolutionToggle,
    ResolutionUpdate,
    RevisionRequest,
)
from .scope import scope_for
from .transitions import ALLOWED_TRANSITIONS, get_available_actions

router = APIRouter(prefix="/lifecycle", tags=["Lifecycle"])

ERROR_STATUS = {
    NotFound: 404,
    TransitionNotAllowed: 409,
    DeliveryNotEditable: 409,
    VersionAllocationConflict: 409,
    ResolutionConflict: 409,
    AmbiguousScope: 422,
    NoPendingCorrections: 422,
    InvalidArtifactLocator: 422,
    PaymentFailed: 402,
    NotAuthorized: 403,
    AmbiguousAction: 500,
}

# Collaborators used when the enclosing service does not override them
_publisher: EventPublisher = LoggingEventPublisher()
_payments: PaymentGateway = NullPaymentGateway()
_access: AccessPolicy = AllowAllAccessPolicy()


def get_publisher() -> EventPublisher:
    return _publisher


def get_payments() -> PaymentGateway:
    return _payments


def get_access() -> AccessPolicy:
    return _access


def status_for(exc: LifecycleError) -> int:
    for error_type, status_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return 400


def _raise_http(exc: Exception) -> NoReturn:
    if isinstance(exc, LifecycleError):
        raise HTTPException(status_code=status_for(exc), detail=exc.to_dict()) from exc
    raise HTTPException(
        status_code=422,
        detail={"error": "invalid_request", "message": str(exc), "details": {}},
    ) from exc


def get_ledger(
    db: Session = Depends(get_db),
    publisher: EventPublisher = Depends(get_publisher),
    payments: PaymentGateway = Depends(get_payments),
    access: AccessPolicy = Depends(get_access),
) -> DeliveryLedger:
    return DeliveryLedger(db, publisher=publisher, payments=payments, access=access)


def get_tracker(
    db: Session = Depends(get_db),
    access: AccessPolicy = Depends(get_access),
) -> AnnotationTracker:
    return AnnotationTracker(db, access=access)


def get_registry(db: Session = Depends(get_db)) -> ProjectRegistry:
    return ProjectRegistry(db)


# =============================================================================
# Transition table
# =============================================================================


@router.get("/transitions")
def list_transitions(
    status: Optional[UnitStatus] = Query(None, description="Only rows leaving this status"),
) -> List[Dict[str, Any]]:
    """List the legal transitions, optionally from one status."""
    rows = get_available_actions(status) if status else ALLOWED_TRANSITIONS
    return [t.to_dict() for t in rows]


# =============================================================================
# Project Endpoints
# =============================================================================


@router.post("/projects", status_code=201)
def create_project(
    body: ProjectCreate,
    registry: ProjectRegistry = Depends(get_registry),
) -> Dict[str, Any]:
    """Register a project (and its batch slots)."""
    try:
        project = registry.create_project(
            creator_id=body.creator_id,
            title=body.title,
            is_batch=body.is_batch,
            batch_quantity=body.batch_quantity,
            delivery_mode=body.delivery_mode,
            deadline_days=body.deadline_days,
        )
    except (LifecycleError, ValueError) as e:
        _raise_http(e)
    return {"status": "success", "project": project.to_dict()}


@router.get("/projects/{project_id}")
def get_project(
    project_id: str,
    registry: ProjectRegistry = Depends(get_registry),
) -> Dict[str, Any]:
    """Get a project with its batch slots."""
    try:
        project = registry.get_project(project_id)
    except LifecycleError as e:
        _raise_http(e)
    data = project.to_dict()
    data["batch_videos"] = [v.to_dict() for v in project.batch_videos]
    return data


@router.post("/projects/{project_id}/assign")
def assign_producer(
    project_id: str,
    body: ProducerAssign,
    registry: ProjectRegistry = Depends(get_registry),
) -> Dict[str, Any]:
    """Assign a producer and start work."""
    try:
        project = registry.assign_producer(project_id, body.producer_id)
    except LifecycleError as e:
        _raise_http(e)
    return {"status": "success", "project": project.to_dict()}


@router.get("/projects/{project_id}/progress")
def get_progress(
    project_id: str,
    registry: ProjectRegistry = Depends(get_registry),
) -> Dict[str, Any]:
    """Live progress figures for a project."""
    try:
        return registry.get_progress(project_id).model_dump()
    except LifecycleError as e:
        _raise_http(e)


@router.get("/projects/{project_id}/board")
def get_board(
    project_id: str,
    registry: ProjectRegistry = Depends(get_registry),
) -> Dict[str, Any]:
    """Kanban board for a project."""
    try:
        return registry.get_board(project_id).model_dump(mode="json")
    except LifecycleError as e:
        _raise_http(e)


@router.get("/projects/{project_id}/deliveries")
def list_deliveries(
    project_id: str,
    batch_video_id: Optional[str] = Query(None),
    ledger: DeliveryLedger = Depends(get_ledger),
) -> List[Dict[str, Any]]:
    """Deliveries of a project (or one batch slot), newest first."""
    scope = scope_for(project_id, batch_video_id)
    return [d.to_dict() for d in ledger.list_deliveries(scope)]


# =============================================================================
# Delivery Endpoints
# =============================================================================


@router.post("/deliveries", status_code=201)
def submit_delivery(
    body: DeliverySubmit,
    ledger: DeliveryLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    """Submit a delivery for review."""
    try:
        delivery = ledger.submit_delivery(
            scope_for(body.project_id, body.batch_video_id),
            producer_id=body.producer_id,
            artifact_url=body.artifact_url,
            note=body.note,
            idempotency_key=body.idempotency_key,
        )
    except LifecycleError as e:
        _raise_http(e)
    return {"status": "success", "delivery": delivery.to_dict()}


@router.get("/deliveries/{delivery_id}")
def get_delivery(
    delivery_id: str,
    ledger: DeliveryLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    """Get a delivery by ID."""
    try:
        return ledger.get_delivery(delivery_id).to_dict()
    except LifecycleError as e:
        _raise_http(e)


@router.post("/deliveries/{delivery_id}/approve")
def approve_delivery(
    delivery_id: str,
    body: ApproveRequest,
    ledger: DeliveryLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    """Approve a pending delivery."""
    try:
        delivery = ledger.approve_delivery(delivery_id, body.reviewer_id, body.feedback)
    except LifecycleError as e:
        _raise_http(e)
    return {"status": "success", "delivery": delivery.to_dict()}


@router.post("/deliveries/{delivery_id}/request-revision")
def request_revision(
    delivery_id: str,
    body: RevisionRequest,
    ledger: DeliveryLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    """Send a pending delivery back with its unresolved comments."""
    try:
        delivery = ledger.request_revision(delivery_id, body.reviewer_id, body.summary)
    except LifecycleError as e:
        _raise_http(e)
    return {"status": "success", "delivery": delivery.to_dict()}


# =============================================================================
# Comment Endpoints
# =============================================================================


@router.post("/deliveries/{delivery_id}/comments", status_code=201)
def add_comment(
    delivery_id: str,
    body: CommentCreate,
    tracker: AnnotationTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    """Pin a comment to the delivery's media."""
    try:
        comment = tracker.add_comment(
            delivery_id,
            author_id=body.author_id,
            author_role=body.author_role,
            content=body.content,
            offset_seconds=body.offset_seconds,
            tag=body.tag,
        )
    except (LifecycleError, ValueError) as e:
        _raise_http(e)
    return comment.to_dict()


@router.get("/deliveries/{delivery_id}/comments")
def list_comments(
    delivery_id: str,
    tracker: AnnotationTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    """Comments ordered by media offset, with the unresolved count."""
    try:
        comments = tracker.list_comments(delivery_id)
    except LifecycleError as e:
        _raise_http(e)
    return {
        "comments": [c.to_dict() for c in comments],
        "unresolved": tracker.count_unresolved(delivery_id),
    }


@router.put("/comments/{comment_id}/resolution")
def set_resolution(
    comment_id: str,
    body: ResolutionUpdate,
    tracker: AnnotationTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    """Set the resolved flag to an explicit value."""
    try:
        comment = tracker.set_resolved(comment_id, body.resolved, body.actor_id)
    except LifecycleError as e:
        _raise_http(e)
    return comment.to_dict()


@router.post("/comments/{comment_id}/toggle")
def toggle_resolution(
    comment_id: str,
    body: ResolutionToggle,
    tracker: AnnotationTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    """Flip the resolved flag if it still has the value the client saw."""
    try:
        comment = tracker.toggle_resolved(comment_id, body.actor_id, body.expected_resolved)
    except LifecycleError as e:
        _raise_http(e)
    return comment.to_dict()


@router.delete("/comments/{comment_id}", status_code=204)
def delete_comment(
    comment_id: str,
    caller_id: str = Query(..., min_length=1),
    tracker: AnnotationTracker = Depends(get_tracker),
) -> None:
    try:
        tracker.delete_comment(comment_id, caller_id)
    except LifecycleError as e:
        _raise_http(e)


@router.post("/comments/{comment_id}/replies", status_code=201)
def add_reply(
    comment_id: str,
    body: ReplyCreate,
    tracker: AnnotationTracker = Depends(get_tracker),
) -> Dict[str, Any]:
    """Reply in a comment thread."""
    try:
        reply = tracker.add_reply(
            comment_id,
            author_id=body.author_id,
            author_role=body.author_role,
            content=body.content,
        )
    except (LifecycleError, ValueError) as e:
        _raise_http(e)
    return reply.to_dict()


@router.delete("/replies/{reply_id}", status_code=204)
def delete_reply(
    reply_id: str,
    caller_id: str = Query(..., min_length=1),
    tracker: AnnotationTracker = Depends(get_tracker),
) -> None:
    try:
        tracker.delete_reply(reply_id, caller_id)
    except LifecycleError as e:
        _raise_http(e)


# =============================================================================
# Audit Endpoints
# =============================================================================


@router.get("/audit/{entity_kind}/{entity_id}")
def get_audit_history(
    entity_kind: str,
    entity_id: str,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    """Audit history of one entity, newest first."""
    entries = AuditService(db).query_by_entity(entity_kind, entity_id, limit=limit, offset=offset)
    return [e.to_dict() for e in entries]
