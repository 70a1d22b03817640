"""
Database package for the delivery lifecycle.
"""

from .audit_models import AuditLogModel
from .base import Base, get_db, get_engine, get_session_local, init_database
from .models import (
    BatchVideoModel,
    CommentModel,
    DeliveryModel,
    ProjectModel,
    ReplyModel,
)

__all__ = [
    "Base",
    "get_db",
    "get_engine",
    "get_session_local",
    "init_database",
    "AuditLogModel",
    "ProjectModel",
    "BatchVideoModel",
    "DeliveryModel",
    "CommentModel",
    "ReplyModel",
]
