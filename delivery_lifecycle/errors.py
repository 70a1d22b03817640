"""
Error taxonomy for the delivery lifecycle.

Every error carries a stable ``code`` for programmatic handling and a
``message`` naming the rule that blocked the action, so a rejected request
can tell the user what to fix instead of failing generically.
"""

from typing import Any, Dict, Optional


class LifecycleError(Exception):
    """Base class for all lifecycle failures.

    Attributes:
        code: Stable error code for programmatic handling
        message: Human-readable description of the blocking rule
        details: Extra context (ids, statuses) for logs and API payloads
    """

    code = "lifecycle_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(f"{self.code}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFound(LifecycleError):
    """A referenced project, video, delivery, comment or reply does not exist."""

    code = "not_found"

    def __init__(self, entity_kind: str, entity_id: str):
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        super().__init__(
            f"{entity_kind} '{entity_id}' was not found",
            {"entity_kind": entity_kind, "entity_id": entity_id},
        )


class TransitionNotAllowed(LifecycleError):
    """The attempted action is illegal from the current status."""

    code = "transition_not_allowed"

    def __init__(
        self,
        current: str,
        action: str,
        next_status: Optional[str] = None,
        reason: Optional[str] = None,
    ):
        self.current = current
        self.action = action
        self.next_status = next_status
        if next_status is not None:
            message = f"Cannot {action} from '{current}' to '{next_status}'"
        else:
            message = f"Cannot {action} while status is '{current}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message,
            {"current": current, "next": next_status, "action": action},
        )


class AmbiguousScope(LifecycleError):
    """A batch delivery was attempted without choosing a video slot."""

    code = "ambiguous_scope"

    def __init__(self, project_id: str):
        self.project_id = project_id
        super().__init__(
            "Select which video you are delivering: this project is a batch",
            {"project_id": project_id},
        )


class NoPendingCorrections(LifecycleError):
    """A revision was requested on a delivery with no unresolved comments."""

    code = "no_pending_corrections"

    def __init__(self, delivery_id: str):
        self.delivery_id = delivery_id
        super().__init__(
            "Add at least one unresolved comment before requesting corrections",
            {"delivery_id": delivery_id},
        )


class DeliveryNotEditable(LifecycleError):
    """Annotations were mutated after the delivery left pending_review."""

    code = "delivery_not_editable"

    def __init__(self, delivery_id: str, status: str):
        self.delivery_id = delivery_id
        self.status = status
        super().__init__(
            f"Delivery has already been reviewed ({status}); comments are read-only",
            {"delivery_id": delivery_id, "status": status},
        )


class VersionAllocationConflict(LifecycleError):
    """Concurrent writers raced for the same scope and retries ran out."""

    code = "version_allocation_conflict"

    def __init__(self, scope_key: str, attempts: int):
        self.scope_key = scope_key
        self.attempts = attempts
        super().__init__(
            "Another delivery was submitted for this video at the same time; "
            "reload and submit again",
            {"scope": scope_key, "attempts": attempts},
        )


class AmbiguousAction(LifecycleError):
    """The transition table holds more than one row for a (status, action) pair.

    This is a configuration defect and is never resolved silently.
    """

    code = "ambiguous_action"

    def __init__(self, current: str, action: str, candidates: int):
        self.current = current
        self.action = action
        super().__init__(
            f"Transition table has {candidates} rows for ({current}, {action})",
            {"current": current, "action": action, "candidates": candidates},
        )


class InvalidArtifactLocator(LifecycleError):
    """The artifact locator is not a usable URL."""

    code = "invalid_artifact_locator"

    def __init__(self, locator: str, reason: str):
        self.locator = locator
        super().__init__(reason, {"locator": locator})


class ResolutionConflict(LifecycleError):
    """A compare-and-set on a comment's resolved flag saw stale state."""

    code = "resolution_conflict"

    def __init__(self, comment_id: str, expected: bool, actual: bool):
        self.comment_id = comment_id
        super().__init__(
            "Comment resolution changed since it was loaded; refresh and retry",
            {"comment_id": comment_id, "expected": expected, "actual": actual},
        )


class PaymentFailed(LifecycleError):
    """The payment collaborator refused the charge or release."""

    code = "payment_failed"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        super().__init__(
            f"Payment {operation} failed: {reason}",
            {"operation": operation},
        )


class NotAuthorized(LifecycleError):
    """The identity collaborator rejected the caller for this project."""

    code = "not_authorized"

    def __init__(self, caller_id: str, project_id: str, reason: Optional[str] = None):
        super().__init__(
            reason or "You do not have access to this project",
            {"caller_id": caller_id, "project_id": project_id},
        )
