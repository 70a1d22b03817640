"""
Delivery Lifecycle

Versioned deliveries, timestamped review comments and the status machine
that moves video projects, and the individual videos of a batch, from
first delivery to approval.
"""

import importlib.metadata

__version__ = importlib.metadata.version("delivery-lifecycle")

from .errors import (
    AmbiguousAction,
    AmbiguousScope,
    DeliveryNotEditable,
    LifecycleError,
    NoPendingCorrections,
    TransitionNotAllowed,
    VersionAllocationConflict,
)
from .lifecycle import (
    Action,
    BatchVideoScope,
    DeliveryStatus,
    ProjectScope,
    UnitStatus,
    compute_progress,
    map_status_to_column,
)

__all__ = [
    "Action",
    "AmbiguousAction",
    "AmbiguousScope",
    "BatchVideoScope",
    "DeliveryNotEditable",
    "DeliveryStatus",
    "LifecycleError",
    "NoPendingCorrections",
    "ProjectScope",
    "TransitionNotAllowed",
    "UnitStatus",
    "VersionAllocationConflict",
    "compute_progress",
    "map_status_to_column",
]
