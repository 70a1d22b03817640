"""Test configuration and fixtures."""

from typing import Generator

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from delivery_lifecycle.db import audit_models, models  # noqa: F401
from delivery_lifecycle.db.base import Base, build_engine
from delivery_lifecycle.db.models import ProjectModel
from delivery_lifecycle.lifecycle.annotations import AnnotationTracker
from delivery_lifecycle.lifecycle.collaborators import (
    AllowAllAccessPolicy,
    InMemoryEventPublisher,
    RecordingPaymentGateway,
)
from delivery_lifecycle.lifecycle.enums import AuthorRole, DeliveryMode
from delivery_lifecycle.lifecycle.ledger import DeliveryLedger
from delivery_lifecycle.lifecycle.locks import ScopeLocks
from delivery_lifecycle.lifecycle.registry import ProjectRegistry

CREATOR = "creator-1"
PRODUCER = "editor-1"
ADMIN = "admin-1"

DRIVE_URL = "https://drive.google.com/file/d/1AbCdEfGh/view?usp=sharing"
YOUTUBE_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    """Fresh in-memory database shared by every session of one test."""
    engine = build_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def publisher() -> InMemoryEventPublisher:
    return InMemoryEventPublisher()


@pytest.fixture
def payments() -> RecordingPaymentGateway:
    return RecordingPaymentGateway()


@pytest.fixture
def access() -> AllowAllAccessPolicy:
    return AllowAllAccessPolicy(
        roles={
            CREATOR: AuthorRole.CREATOR,
            PRODUCER: AuthorRole.EDITOR,
            ADMIN: AuthorRole.ADMIN,
        }
    )


@pytest.fixture
def locks() -> ScopeLocks:
    return ScopeLocks()


@pytest.fixture
def registry(db_session, locks) -> ProjectRegistry:
    return ProjectRegistry(db_session, locks=locks)


@pytest.fixture
def ledger(db_session, publisher, payments, access, locks) -> DeliveryLedger:
    return DeliveryLedger(
        db_session,
        publisher=publisher,
        payments=payments,
        access=access,
        locks=locks,
    )


@pytest.fixture
def tracker(db_session, access) -> AnnotationTracker:
    return AnnotationTracker(db_session, access=access)


@pytest.fixture
def single_project(registry) -> ProjectModel:
    """A single-video project already assigned, so it is in_progress."""
    project = registry.create_project(CREATOR, title="Channel trailer")
    return registry.assign_producer(project.id, PRODUCER)


def make_batch(
    registry: ProjectRegistry,
    quantity: int = 3,
    mode: DeliveryMode = DeliveryMode.SEQUENTIAL,
    deadline_days=None,
) -> ProjectModel:
    project = registry.create_project(
        CREATOR,
        title="Shorts pack",
        is_batch=True,
        batch_quantity=quantity,
        delivery_mode=mode,
        deadline_days=deadline_days,
    )
    return registry.assign_producer(project.id, PRODUCER)


@pytest.fixture
def batch_project(registry) -> ProjectModel:
    """A sequential batch of three videos, assigned."""
    return make_batch(registry)
