"""
Audit Models for AI Budget Planner

Every user action that reaches an external provider or the store is
recorded as an audit event. This provides:
1. A trail of what was generated, spoken, saved and deleted
2. Debugging information when a provider misbehaves
3. Correlation of the steps of one user action

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from budget_planner.models.plan import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Input
    VALIDATION_FAILED = "validation_failed"
    SPEECH_RECOGNIZED = "speech_recognized"
    RECOGNITION_FAILED = "recognition_failed"

    # Generation
    PLAN_GENERATED = "plan_generated"
    GENERATION_FAILED = "generation_failed"

    # Playback
    PLAYBACK_STARTED = "playback_started"
    PLAYBACK_STOPPED = "playback_stopped"
    SYNTHESIS_FAILED = "synthesis_failed"

    # Persistence
    PLAN_SAVED = "plan_saved"
    PLAN_UPDATED = "plan_updated"
    PLAN_DELETED = "plan_deleted"
    SAVE_FAILED = "save_failed"
    USERNAME_SAVED = "username_saved"

    # Sharing
    PLAN_SHARED = "plan_shared"
    COLLABORATOR_INVITED = "collaborator_invited"
    COLLABORATOR_REMOVED = "collaborator_removed"

    # System events
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'plan', 'playback', 'speech')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    user_id: Optional[str] = Field(
        default=None,
        description="Opaque id of the user the action belongs to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., generate then save)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_row(self) -> list[str]:
        """
        Flatten to a row of strings for tabular storage.

        Columns: [event_id, timestamp, event_type, severity, entity_type,
        entity_id, user_id, correlation_id, description, details_json,
        error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            self.user_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.plan_generated(word_count, correlation_id)
        event = AuditEventBuilder.plan_saved(plan_id, user_id, name, correlation_id)
    """

    @staticmethod
    def validation_failed(
        issues: list[dict],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="form",
            correlation_id=correlation_id,
            description=f"Planner input rejected with {len(issues)} issues",
            details={"issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def plan_generated(
        word_count: int,
        expense_count: int,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_GENERATED,
            entity_type="plan",
            correlation_id=correlation_id,
            description=f"Budget plan generated ({word_count} words)",
            details={
                "word_count": word_count,
                "expense_count": expense_count,
            },
        )

    @staticmethod
    def generation_failed(
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GENERATION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="plan",
            correlation_id=correlation_id,
            description="Budget plan generation failed",
            error_message=error_message,
        )

    @staticmethod
    def playback_started(
        mode: str,
        voice_id: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAYBACK_STARTED,
            entity_type="playback",
            correlation_id=correlation_id,
            description=f"{mode.capitalize()} playback started",
            details={"mode": mode, "voice_id": voice_id},
            is_user_action=True,
        )

    @staticmethod
    def playback_stopped(
        reason: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAYBACK_STOPPED,
            entity_type="playback",
            correlation_id=correlation_id,
            description=f"Playback stopped: {reason}",
            details={"reason": reason},
        )

    @staticmethod
    def synthesis_failed(
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNTHESIS_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="playback",
            correlation_id=correlation_id,
            description="Speech synthesis failed",
            error_message=error_message,
        )

    @staticmethod
    def speech_recognized(
        target_type: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPEECH_RECOGNIZED,
            entity_type="speech",
            correlation_id=correlation_id,
            description=f"Dictation routed to {target_type}",
            details={"target": target_type},
            is_user_action=True,
        )

    @staticmethod
    def recognition_failed(
        error_code: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECOGNITION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="speech",
            correlation_id=correlation_id,
            description=f"Speech recognition error: {error_code}",
            error_message=error_code,
        )

    @staticmethod
    def plan_saved(
        plan_id: str,
        user_id: Optional[str],
        name: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_SAVED,
            entity_type="plan",
            entity_id=plan_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Plan saved: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def plan_updated(
        plan_id: str,
        user_id: Optional[str],
        name: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_UPDATED,
            entity_type="plan",
            entity_id=plan_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Plan updated: {name}",
            details={"name": name},
            is_user_action=True,
        )

    @staticmethod
    def plan_deleted(
        plan_id: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_DELETED,
            entity_type="plan",
            entity_id=plan_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Plan deleted",
            is_user_action=True,
        )

    @staticmethod
    def save_failed(
        error_message: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="plan",
            user_id=user_id,
            correlation_id=correlation_id,
            description="Plan could not be persisted",
            error_message=error_message,
        )

    @staticmethod
    def username_saved(
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USERNAME_SAVED,
            entity_type="profile",
            user_id=user_id,
            correlation_id=correlation_id,
            description="Display name saved",
            is_user_action=True,
        )

    @staticmethod
    def plan_shared(
        plan_id: str,
        user_id: Optional[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PLAN_SHARED,
            entity_type="plan",
            entity_id=plan_id,
            user_id=user_id,
            correlation_id=correlation_id,
            description="Plan shared",
            is_user_action=True,
        )

    @staticmethod
    def collaborator_changed(
        plan_id: str,
        email: str,
        added: bool,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.COLLABORATOR_INVITED
                if added
                else AuditEventType.COLLABORATOR_REMOVED
            ),
            entity_type="plan",
            entity_id=plan_id,
            correlation_id=correlation_id,
            description=(
                f"Collaborator {'invited to' if added else 'removed from'} plan"
            ),
            details={"email": email},
            is_user_action=True,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
