"""
Storage Services Package

Provides abstract interfaces and concrete implementations for plan storage.
The local JSON store is the default; Google Sheets and an in-memory store
implement the same interfaces.
"""

from budget_planner.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    NotAuthenticatedError,
    NotFoundError,
    PlanStorageInterface,
    ProfileStorageInterface,
    SharedPlanStorageInterface,
    StorageError,
    require_user_id,
)
from budget_planner.services.storage.local import (
    InMemoryPlanStorage,
    JsonFilePlanStorage,
    JsonlAuditStorage,
)
from budget_planner.services.storage.collaboration import (
    CollaborationDisabledError,
    CollaborationService,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "PlanStorageInterface",
    "ProfileStorageInterface",
    "SharedPlanStorageInterface",
    # Exceptions
    "CollaborationDisabledError",
    "ConnectionError",
    "NotAuthenticatedError",
    "NotFoundError",
    "StorageError",
    "require_user_id",
    # Implementations
    "InMemoryPlanStorage",
    "JsonFilePlanStorage",
    "JsonlAuditStorage",
    # Sharing
    "CollaborationService",
]
