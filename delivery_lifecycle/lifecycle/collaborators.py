"""
Interfaces to the collaborators the lifecycle depends on but does not own:
identity/authorization, payments and notification dispatch.

Each interface has a trivial default so the core runs without a surrounding
service, plus in-memory variants used by tests and local tooling.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

import structlog

from .enums import AuthorRole
from .scope import DeliveryScope
from .schemas import LifecycleEvent

logger = structlog.get_logger()


class AccessPolicy(ABC):
    """Identity and authorization lookups."""

    @abstractmethod
    def role_of(self, caller_id: str) -> AuthorRole:
        """Return the caller's role."""

    @abstractmethod
    def is_authorized(self, caller_id: str, project_id: str) -> bool:
        """Return whether the caller may act on the project."""


class AllowAllAccessPolicy(AccessPolicy):
    """Grants every caller access; role lookups fall back to a fixed default."""

    def __init__(
        self,
        roles: Optional[Dict[str, AuthorRole]] = None,
        default_role: AuthorRole = AuthorRole.CREATOR,
    ):
        self.roles = dict(roles or {})
        self.default_role = default_role

    def role_of(self, caller_id: str) -> AuthorRole:
        return self.roles.get(caller_id, self.default_role)

    def is_authorized(self, caller_id: str, project_id: str) -> bool:
        return True


class PaymentGateway(ABC):
    """Charges reviewers for paid revision rounds and releases producer earnings.

    Implementations raise on failure; the lifecycle then leaves all state
    untouched.
    """

    @abstractmethod
    def charge(self, scope: DeliveryScope, reason: str) -> None:
        """Capture a payment for ``scope``."""

    @abstractmethod
    def release(self, scope: DeliveryScope, delivery_id: str) -> None:
        """Release the producer's payment for an approved delivery."""


class NullPaymentGateway(PaymentGateway):
    """Accepts every charge and release without doing anything."""

    def charge(self, scope: DeliveryScope, reason: str) -> None:
        logger.debug("payment_charge_skipped", scope=scope.key, reason=reason)

    def release(self, scope: DeliveryScope, delivery_id: str) -> None:
        logger.debug("payment_release_skipped", scope=scope.key, delivery_id=delivery_id)


class RecordingPaymentGateway(PaymentGateway):
    """Records calls and can be told to fail the next charge or release."""

    def __init__(self) -> None:
        self.charges: List[Tuple[str, str]] = []
        self.releases: List[Tuple[str, str]] = []
        self.fail_charge: Optional[str] = None
        self.fail_release: Optional[str] = None

    def charge(self, scope: DeliveryScope, reason: str) -> None:
        if self.fail_charge:
            raise RuntimeError(self.fail_charge)
        self.charges.append((scope.key, reason))

    def release(self, scope: DeliveryScope, delivery_id: str) -> None:
        if self.fail_release:
            raise RuntimeError(self.fail_release)
        self.releases.append((scope.key, delivery_id))


class EventPublisher(ABC):
    """Sink for lifecycle events. Called only after the causing change commits."""

    @abstractmethod
    def publish(self, event: LifecycleEvent) -> None:
        """Hand the event to the notification system."""


class InMemoryEventPublisher(EventPublisher):
    """Keeps published events in a list."""

    def __init__(self) -> None:
        self.events: List[LifecycleEvent] = []

    def publish(self, event: LifecycleEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> List[LifecycleEvent]:
        return [e for e in self.events if e.event_type.value == event_type]

    def clear(self) -> None:
        self.events.clear()


class LoggingEventPublisher(EventPublisher):
    """Writes events to the structured log. Default when nothing is wired."""

    def publish(self, event: LifecycleEvent) -> None:
        logger.info("lifecycle_event", **event.model_dump(mode="json"))


def publish_safely(publisher: EventPublisher, event: LifecycleEvent) -> bool:
    """Publish best-effort: a failing notifier never undoes a committed change."""
    try:
        publisher.publish(event)
        return True
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "collaborator_failed",
            collaborator="event_publisher",
            event_type=event.event_type.value,
            delivery_id=event.delivery_id,
            error=str(exc),
        )
        return False
