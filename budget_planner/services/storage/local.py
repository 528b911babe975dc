"""
Local Storage Implementations

Plans, profiles and shared plans are kept as JSON documents keyed by
namespace:
    plans-<user_id>     list of the user's plans
    profile-<user_id>   the user's profile
    shared_plans        plans shared between users, by plan id

NamespacedStorage implements every operation on top of two primitives
(_load / _dump). The in-memory backend keeps documents in a dict, the
file backend keeps one JSON file per namespace under the data directory.

TRADEOFFS:
- Whole-document read-modify-write, no locking (single writer assumed)
- A corrupt document reads as empty rather than taking the dashboard down
"""

import hashlib
import json
from pathlib import Path
from typing import Any, Optional

import structlog

from budget_planner.models.audit import AuditEvent
from budget_planner.models.identity import UserIdentity
from budget_planner.models.plan import PlanDraft, SavedPlan
from budget_planner.services.storage.interface import (
    AuditStorageInterface,
    NotFoundError,
    PlanStorageInterface,
    ProfileStorageInterface,
    SharedPlanStorageInterface,
    StorageError,
    require_user_id,
)


logger = structlog.get_logger(__name__)

SHARED_NAMESPACE = "shared_plans"


def plans_namespace(user_id: str) -> str:
    return f"plans-{user_id}"


def profile_namespace(user_id: str) -> str:
    return f"profile-{user_id}"


class NamespacedStorage(
    PlanStorageInterface,
    ProfileStorageInterface,
    SharedPlanStorageInterface,
):
    """Plan, profile and sharing operations over namespaced JSON documents."""

    def _load(self, namespace: str) -> Any:
        raise NotImplementedError

    def _dump(self, namespace: str, document: Any) -> None:
        raise NotImplementedError

    # -- plans ---------------------------------------------------------------

    def _read_plans(self, user_id: str) -> list[SavedPlan]:
        document = self._load(plans_namespace(user_id)) or []
        plans = []
        for item in document:
            try:
                plans.append(SavedPlan.model_validate(item))
            except Exception as e:
                logger.warning(
                    "skipping_malformed_plan",
                    user_id=user_id,
                    error=str(e),
                )
        return plans

    def _write_plans(self, user_id: str, plans: list[SavedPlan]) -> None:
        self._dump(
            plans_namespace(user_id),
            [plan.model_dump(mode="json") for plan in plans],
        )

    async def list_plans(self, identity: UserIdentity) -> list[SavedPlan]:
        user_id = require_user_id(identity)
        return self._read_plans(user_id)

    async def get_plan(
        self,
        identity: UserIdentity,
        plan_id: str,
    ) -> Optional[SavedPlan]:
        user_id = require_user_id(identity)
        for plan in self._read_plans(user_id):
            if plan.id == plan_id:
                return plan
        return None

    async def create_plan(
        self,
        identity: UserIdentity,
        draft: PlanDraft,
    ) -> SavedPlan:
        user_id = require_user_id(identity)
        plans = self._read_plans(user_id)
        taken = {plan.id for plan in plans}

        plan = SavedPlan(**draft.model_dump(exclude={"id", "created_at"}))
        while plan.id in taken:
            plan = SavedPlan(**draft.model_dump(exclude={"id", "created_at"}))

        plans.append(plan)
        self._write_plans(user_id, plans)
        return plan

    async def update_plan(
        self,
        identity: UserIdentity,
        plan: SavedPlan,
    ) -> SavedPlan:
        user_id = require_user_id(identity)
        plans = self._read_plans(user_id)

        for idx, existing in enumerate(plans):
            if existing.id == plan.id:
                replacement = plan.model_copy(
                    update={"id": existing.id, "created_at": existing.created_at},
                    deep=True,
                )
                plans[idx] = replacement
                self._write_plans(user_id, plans)
                return replacement

        raise NotFoundError(f"Plan not found: {plan.id}")

    async def delete_plan(self, identity: UserIdentity, plan_id: str) -> bool:
        user_id = require_user_id(identity)
        plans = self._read_plans(user_id)
        remaining = [plan for plan in plans if plan.id != plan_id]
        if len(remaining) == len(plans):
            return False
        self._write_plans(user_id, remaining)
        return True

    # -- profile -------------------------------------------------------------

    async def get_username(self, identity: UserIdentity) -> Optional[str]:
        user_id = require_user_id(identity)
        profile = self._load(profile_namespace(user_id)) or {}
        return profile.get("username") or None

    async def save_username(self, identity: UserIdentity, username: str) -> None:
        user_id = require_user_id(identity)
        profile = self._load(profile_namespace(user_id)) or {}
        profile["username"] = username.strip()
        self._dump(profile_namespace(user_id), profile)

    # -- shared plans --------------------------------------------------------

    async def upsert_shared_plan(self, plan: SavedPlan) -> None:
        shared = self._load(SHARED_NAMESPACE) or {}
        existing = shared.get(plan.id, {})
        shared[plan.id] = {
            **existing,
            **plan.model_dump(mode="json"),
            "shared": True,
        }
        self._dump(SHARED_NAMESPACE, shared)

    async def get_shared_plan(self, plan_id: str) -> Optional[SavedPlan]:
        shared = self._load(SHARED_NAMESPACE) or {}
        data = shared.get(plan_id)
        return SavedPlan.model_validate(data) if data else None

    async def list_shared_plans_for_email(self, email: str) -> list[SavedPlan]:
        email = email.strip().lower()
        shared = self._load(SHARED_NAMESPACE) or {}
        return [
            SavedPlan.model_validate(data)
            for data in shared.values()
            if email in [c.lower() for c in data.get("collaborators", [])]
        ]


class InMemoryPlanStorage(NamespacedStorage):
    """
    Process-local storage.

    Used by tests and by the "memory" backend for throwaway sessions.
    Documents round-trip through JSON so the in-memory and file stores
    behave identically.
    """

    def __init__(self):
        self._documents: dict[str, str] = {}

    def _load(self, namespace: str) -> Any:
        raw = self._documents.get(namespace)
        return json.loads(raw) if raw else None

    def _dump(self, namespace: str, document: Any) -> None:
        self._documents[namespace] = json.dumps(document)


class JsonFilePlanStorage(NamespacedStorage):
    """
    One JSON file per namespace under a data directory.

    User ids come from the identity provider and may contain characters
    that are not safe in file names, so they are hashed into the file name.
    """

    def __init__(self, data_dir: Path):
        self._data_dir = Path(data_dir)

    def _path(self, namespace: str) -> Path:
        prefix, _, user_id = namespace.partition("-")
        if user_id:
            digest = hashlib.sha256(user_id.encode("utf-8")).hexdigest()[:32]
            return self._data_dir / f"{prefix}-{digest}.json"
        return self._data_dir / f"{namespace}.json"

    def _load(self, namespace: str) -> Any:
        path = self._path(namespace)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error("storage_read_failed", path=str(path), error=str(e))
            return None

    def _dump(self, namespace: str, document: Any) -> None:
        path = self._path(namespace)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=2)
        except OSError as e:
            raise StorageError(f"Failed to write {path.name}: {e}") from e


class JsonlAuditStorage(AuditStorageInterface):
    """Append-only audit log as one JSON object per line."""

    def __init__(self, path: Path):
        self._path = Path(path)

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(event.model_dump_json() + "\n")
            return True
        except OSError as e:
            logger.error("audit_append_failed", error=str(e))
            return False

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        if not self._path.exists():
            return []
        events = []
        with self._path.open("r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    events.append(AuditEvent.model_validate_json(line))
                except Exception:
                    continue
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
