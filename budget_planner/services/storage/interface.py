"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap the local JSON store for Google Sheets (or a real database)
2. Use in-memory storage for testing
3. Keep the planner decoupled from where plans live

Every plan and profile operation is scoped to one user's namespace.
Calling without an authenticated identity fails before any I/O.
There is no concurrency control: last writer wins.
"""

from abc import ABC, abstractmethod
from typing import Optional

from budget_planner.models.audit import AuditEvent
from budget_planner.models.identity import UserIdentity
from budget_planner.models.plan import PlanDraft, SavedPlan


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class NotAuthenticatedError(StorageError):
    """Operation attempted without a signed-in user."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


def require_user_id(identity: Optional[UserIdentity]) -> str:
    """Return the identity's user id or fail immediately."""
    if identity is None or not identity.is_authenticated:
        raise NotAuthenticatedError("User not authenticated")
    return identity.user_id


class PlanStorageInterface(ABC):
    """
    Abstract interface for budget plan storage.

    Any storage implementation (JSON files, Google Sheets, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def list_plans(self, identity: UserIdentity) -> list[SavedPlan]:
        """
        List every plan in the user's collection.

        Returns:
            Plans in the order they were created
        """
        pass

    @abstractmethod
    async def get_plan(
        self,
        identity: UserIdentity,
        plan_id: str,
    ) -> Optional[SavedPlan]:
        """Retrieve one plan, or None if the user has no plan with that id."""
        pass

    @abstractmethod
    async def create_plan(
        self,
        identity: UserIdentity,
        draft: PlanDraft,
    ) -> SavedPlan:
        """
        Persist a new plan.

        The store assigns a fresh identifier and creation timestamp.

        Returns:
            The saved plan

        Raises:
            StorageError: If the write is rejected
        """
        pass

    @abstractmethod
    async def update_plan(
        self,
        identity: UserIdentity,
        plan: SavedPlan,
    ) -> SavedPlan:
        """
        Replace a stored plan wholesale.

        The stored id and created_at are kept; every other field is
        taken from the given plan.

        Raises:
            NotFoundError: If the user has no plan with that id
            StorageError: If the write is rejected
        """
        pass

    @abstractmethod
    async def delete_plan(self, identity: UserIdentity, plan_id: str) -> bool:
        """
        Delete a plan by id.

        Returns:
            True if a plan was removed, False if the id was absent
        """
        pass


class ProfileStorageInterface(ABC):
    """Per-user profile data (the display name shown on the dashboard)."""

    @abstractmethod
    async def get_username(self, identity: UserIdentity) -> Optional[str]:
        pass

    @abstractmethod
    async def save_username(self, identity: UserIdentity, username: str) -> None:
        pass


class SharedPlanStorageInterface(ABC):
    """
    Storage for plans shared between users.

    Shared plans live outside any one user's namespace and are
    keyed by plan id alone.
    """

    @abstractmethod
    async def upsert_shared_plan(self, plan: SavedPlan) -> None:
        pass

    @abstractmethod
    async def get_shared_plan(self, plan_id: str) -> Optional[SavedPlan]:
        pass

    @abstractmethod
    async def list_shared_plans_for_email(self, email: str) -> list[SavedPlan]:
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass
