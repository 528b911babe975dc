"""
Audit Logger

Every action that reaches a provider or the plan store is logged:
generation, playback, dictation, saves and deletes.

The audit logger:
- Is async so it fits the planner's async flows
- Never raises (a failing audit sink must not take a plan down with it)
- Supports correlation IDs to tie the steps of one user action together
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from budget_planner.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from budget_planner.services.storage import AuditStorageInterface


def configure_logging(debug: bool = False) -> None:
    """
    Configure structlog on top of the standard library logger.

    Output is one JSON object per line on stderr.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=logging.DEBUG if debug else logging.INFO,
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The configured audit store (JSONL file or Google Sheets), if any
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("budget_planner.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                stored = await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False
            if not stored:
                self._logger.warning(
                    "audit_storage_rejected",
                    event_id=str(event.event_id),
                )
            return stored

        return True

    async def log_validation_failed(
        self,
        issues: list[dict],
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(issues, correlation_id))

    async def log_plan_generated(
        self,
        word_count: int,
        expense_count: int,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a successful generation."""
        await self.log(
            AuditEventBuilder.plan_generated(word_count, expense_count, correlation_id)
        )

    async def log_generation_failed(
        self,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.generation_failed(error_message, correlation_id))

    async def log_playback_started(
        self,
        mode: str,
        voice_id: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.playback_started(mode, voice_id, correlation_id))

    async def log_playback_stopped(
        self,
        reason: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.playback_stopped(reason, correlation_id))

    async def log_synthesis_failed(
        self,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.synthesis_failed(error_message, correlation_id))

    async def log_speech_recognized(
        self,
        target_type: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.speech_recognized(target_type, correlation_id))

    async def log_recognition_failed(
        self,
        error_code: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.recognition_failed(error_code, correlation_id))

    async def log_plan_saved(
        self,
        plan_id: str,
        user_id: Optional[str],
        name: str,
        correlation_id: Optional[UUID],
        updated: bool = False,
    ) -> None:
        """Log a plan save; `updated` distinguishes overwrite from create."""
        builder = AuditEventBuilder.plan_updated if updated else AuditEventBuilder.plan_saved
        await self.log(builder(plan_id, user_id, name, correlation_id))

    async def log_plan_deleted(
        self,
        plan_id: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.plan_deleted(plan_id, user_id, correlation_id))

    async def log_save_failed(
        self,
        error_message: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.save_failed(error_message, user_id, correlation_id))

    async def log_username_saved(
        self,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.username_saved(user_id, correlation_id))

    async def log_plan_shared(
        self,
        plan_id: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(AuditEventBuilder.plan_shared(plan_id, user_id, correlation_id))

    async def log_collaborator_changed(
        self,
        plan_id: str,
        email: str,
        added: bool,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(
            AuditEventBuilder.collaborator_changed(plan_id, email, added, correlation_id)
        )

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log external service error."""
        await self.log(
            AuditEventBuilder.external_service_error(service, error_message, correlation_id)
        )


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g. Generate Plan).
    """
    return uuid4()
