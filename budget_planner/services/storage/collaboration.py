"""
Plan sharing between users.

A shared plan is a copy of the owner's plan kept in shared storage,
with a list of collaborator e-mails. Collaborators find plans by
their e-mail address.

Sharing is optional: when it is not enabled every call raises
CollaborationDisabledError and the UI hides the feature.
"""

from typing import Optional

from budget_planner.models.identity import UserIdentity
from budget_planner.models.plan import SavedPlan
from budget_planner.services.storage.interface import (
    NotFoundError,
    SharedPlanStorageInterface,
    StorageError,
    require_user_id,
)


class CollaborationDisabledError(StorageError):
    """Sharing was requested but is not configured."""
    pass


class CollaborationService:
    """Share plans and manage their collaborator lists."""

    def __init__(
        self,
        storage: Optional[SharedPlanStorageInterface],
        enabled: bool = True,
    ):
        self._storage = storage
        self._enabled = enabled and storage is not None

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _require_storage(self) -> SharedPlanStorageInterface:
        if not self._enabled:
            raise CollaborationDisabledError(
                "Collaboration disabled: shared storage is not configured."
            )
        return self._storage

    async def share_plan(self, identity: UserIdentity, plan: SavedPlan) -> SavedPlan:
        """Publish a plan to shared storage with the caller as owner."""
        storage = self._require_storage()
        owner_id = require_user_id(identity)
        shared = plan.model_copy(update={"owner_id": owner_id, "shared": True})
        await storage.upsert_shared_plan(shared)
        return shared

    async def get_shared_plan(self, plan_id: str) -> Optional[SavedPlan]:
        return await self._require_storage().get_shared_plan(plan_id)

    async def list_shared_plans_for_email(self, email: str) -> list[SavedPlan]:
        if not email:
            return []
        return await self._require_storage().list_shared_plans_for_email(email)

    async def invite_collaborator(self, plan_id: str, email: str) -> SavedPlan:
        """
        Add a collaborator to a shared plan.

        E-mails are stored lower-cased and never duplicated.

        Raises:
            NotFoundError: If the plan has not been shared
        """
        storage = self._require_storage()
        plan = await storage.get_shared_plan(plan_id)
        if plan is None:
            raise NotFoundError("Shared plan not found")
        email = email.strip().lower()
        collaborators = list(plan.collaborators)
        if email and email not in collaborators:
            collaborators.append(email)
        updated = plan.model_copy(update={"collaborators": collaborators, "shared": True})
        await storage.upsert_shared_plan(updated)
        return updated

    async def remove_collaborator(self, plan_id: str, email: str) -> Optional[SavedPlan]:
        """Remove a collaborator; does nothing if the plan is not shared."""
        storage = self._require_storage()
        plan = await storage.get_shared_plan(plan_id)
        if plan is None:
            return None
        email = email.strip().lower()
        collaborators = [c for c in plan.collaborators if c.lower() != email]
        updated = plan.model_copy(update={"collaborators": collaborators, "shared": True})
        await storage.upsert_shared_plan(updated)
        return updated
