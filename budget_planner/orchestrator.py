"""
Main Orchestrator for AI Budget Planner

Ties the components together and defines the end-to-end flows:
1. Planner (form → validate → generate → read aloud → save)
2. Dashboard (list, edit, delete, username, sharing)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing remote is called with an invalid form
- Generation never persists anything; only an explicit save does
- One playback and one dictation at a time
- Every failure ends as one user-visible message with flags reset
- Every step is audited
"""

from datetime import datetime
from typing import Callable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, ValidationError

from budget_planner.agents import BudgetAgent, GenerationError
from budget_planner.audit import AuditLogger, configure_logging, create_correlation_id
from budget_planner.config import Settings, get_settings
from budget_planner.models.identity import UserIdentity
from budget_planner.models.plan import ActiveInput, PlanForm, SavedPlan
from budget_planner.services.speech import (
    AudioSink,
    BufferAudioSink,
    BufferedPlayback,
    ElevenLabsSynthesisClient,
    GeminiSpeechRecognizer,
    Playback,
    PlaybackRejectedError,
    RecognitionCapability,
    RecognitionUnavailableError,
    SpeechInputBridge,
    SpeechSynthesisClient,
    StreamedPlayback,
    SynthesizedAudio,
)
from budget_planner.services.storage import (
    AuditStorageInterface,
    CollaborationService,
    InMemoryPlanStorage,
    JsonFilePlanStorage,
    JsonlAuditStorage,
    NotFoundError,
    PlanStorageInterface,
    ProfileStorageInterface,
    SharedPlanStorageInterface,
    StorageError,
)
from budget_planner.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsPlanStorage,
)
from budget_planner.validation import PlanInputValidator


logger = structlog.get_logger(__name__)

GENERATION_FAILED_MESSAGE = (
    "Failed to generate budget. Please check your Gemini API key and try again."
)
PLAYBACK_REJECTED_MESSAGE = (
    "Audio playback failed. Please interact with the page and try again."
)


def default_plan_name(now: Optional[datetime] = None) -> str:
    """'Budget for October 2026'."""
    now = now or datetime.now()
    return f"Budget for {now.strftime('%B %Y')}"


class PlannerStatus(BaseModel):
    """Flags the planner page renders from."""
    is_loading: bool = False
    is_speaking: bool = False
    is_listening: bool = False
    error: Optional[str] = None


class PlannerFlow:
    """
    Orchestrates one user's planner page.

    Flow:
    1. Validate → the form must have income and complete expenses
    2. Generate → Gemini writes the plan (nothing is saved)
    3. Listen → optional read-aloud, buffered or streamed
    4. Save → create, or replace the plan being edited

    Holds per-session state (status, current playback), so each
    browser session gets its own PlannerFlow.
    """

    def __init__(
        self,
        agent: Optional[BudgetAgent],
        synthesizer: SpeechSynthesisClient,
        plan_storage: PlanStorageInterface,
        recognizer_factory: Optional[Callable[[], RecognitionCapability]] = None,
        audit_logger: Optional[AuditLogger] = None,
        validator: Optional[PlanInputValidator] = None,
        playback_mode: str = "streamed",
        poll_interval: float = 0.1,
        sink_factory: Optional[Callable[[], AudioSink]] = None,
    ):
        self._agent = agent
        self._synthesizer = synthesizer
        self._plan_storage = plan_storage
        self._bridge = SpeechInputBridge(recognizer_factory or GeminiSpeechRecognizer)
        self._audit_logger = audit_logger or AuditLogger()
        self._validator = validator or PlanInputValidator()
        self._playback_mode = playback_mode
        self._poll_interval = poll_interval
        self._sink_factory = sink_factory or self._default_sink

        self.status = PlannerStatus()
        self.last_clip: Optional[SynthesizedAudio] = None
        self._playback: Optional[Playback] = None
        self._playback_correlation: Optional[UUID] = None

    # -- generation ----------------------------------------------------------

    async def generate_plan(
        self,
        form: PlanForm,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Validate the form and write a plan into form.plan_text.

        Returns:
            True if a plan was generated
        """
        correlation_id = correlation_id or create_correlation_id()
        self.status.error = None
        self.status.is_loading = True

        try:
            result = self._validator.validate(form)
            if not result.is_valid:
                self.status.error = result.message
                await self._audit_logger.log_validation_failed(
                    issues=result.issues_as_dicts(),
                    correlation_id=correlation_id,
                )
                return False

            if self._agent is None:
                raise GenerationError("Gemini is not configured")

            text = await self._agent.generate_plan(result.request)

        except GenerationError as e:
            self.status.error = GENERATION_FAILED_MESSAGE
            await self._audit_logger.log_generation_failed(
                error_message=str(e),
                correlation_id=correlation_id,
            )
            return False
        finally:
            self.status.is_loading = False

        form.plan_text = text
        if not form.plan_name.strip():
            form.plan_name = default_plan_name()

        await self._audit_logger.log_plan_generated(
            word_count=len(text.split()),
            expense_count=len(result.request.expenses),
            correlation_id=correlation_id,
        )
        return True

    # -- persistence ---------------------------------------------------------

    async def save_plan(
        self,
        identity: UserIdentity,
        form: PlanForm,
        initial_plan: Optional[SavedPlan] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[SavedPlan]:
        """
        Save the form as a new plan, or replace `initial_plan` when editing.

        Returns:
            The stored plan, or None if saving failed (see status.error)
        """
        correlation_id = correlation_id or create_correlation_id()
        self.status.error = None

        check = self._validator.validate_for_save(form)
        if not check.is_valid:
            self.status.error = check.message
            return None

        try:
            draft = form.to_draft()
            if initial_plan is not None:
                data = initial_plan.model_dump()
                data.update(
                    draft.model_dump(exclude={"owner_id", "collaborators", "shared"})
                )
                saved = await self._plan_storage.update_plan(
                    identity, SavedPlan.model_validate(data)
                )
            else:
                saved = await self._plan_storage.create_plan(identity, draft)
        except (StorageError, ValidationError) as e:
            self.status.error = f"Failed to save plan: {e}"
            await self._audit_logger.log_save_failed(
                error_message=str(e),
                user_id=identity.user_id,
                correlation_id=correlation_id,
            )
            return None

        await self._audit_logger.log_plan_saved(
            plan_id=saved.id,
            user_id=identity.user_id,
            name=saved.name,
            correlation_id=correlation_id,
            updated=initial_plan is not None,
        )
        return saved

    # -- playback ------------------------------------------------------------

    def _default_sink(self) -> AudioSink:
        def publish(data: bytes, mime_type: str) -> None:
            self.last_clip = SynthesizedAudio(data=data, mime_type=mime_type)

        return BufferAudioSink(on_clip=publish)

    def _new_playback(self) -> Playback:
        sink = self._sink_factory()
        if self._playback_mode == "buffered":
            return BufferedPlayback(self._synthesizer, sink)
        return StreamedPlayback(self._synthesizer, sink, poll_interval=self._poll_interval)

    @property
    def playback(self) -> Optional[Playback]:
        return self._playback

    async def _settle_playback(self, playback: Playback) -> None:
        """Record how a playback ended and drop the speaking flag."""
        if self._playback is not playback:
            return
        self._playback = None
        self.status.is_speaking = False

        error = playback.error
        if error is not None:
            if isinstance(error, PlaybackRejectedError):
                self.status.error = PLAYBACK_REJECTED_MESSAGE
            else:
                self.status.error = f"Failed to play audio: {error}"
            await self._audit_logger.log_synthesis_failed(
                error_message=str(error),
                correlation_id=self._playback_correlation,
            )
        else:
            await self._audit_logger.log_playback_stopped(
                reason=playback.stop_reason or "stopped",
                correlation_id=self._playback_correlation,
            )

    async def toggle_playback(
        self,
        text: str,
        voice_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[Playback]:
        """
        Start reading `text` aloud, or stop if already speaking.

        Returns:
            The new playback, or None if this call stopped one (or failed)
        """
        if self._playback is not None:
            if self._playback.is_active:
                await self.stop_playback()
                return None
            await self._settle_playback(self._playback)

        if not text.strip():
            return None

        self.status.error = None
        self._playback_correlation = correlation_id or create_correlation_id()
        self.last_clip = None

        playback = self._new_playback()
        self._playback = playback
        self.status.is_speaking = True

        try:
            await playback.start(text, voice_id)
        except Exception:
            await playback.stop()
            await self._settle_playback(playback)
            return None

        await self._audit_logger.log_playback_started(
            mode=playback.mode,
            voice_id=voice_id or "",
            correlation_id=self._playback_correlation,
        )
        return playback

    async def wait_playback(self) -> None:
        """Block until the current playback ends, then settle it."""
        playback = self._playback
        if playback is None:
            return
        await playback.wait()
        await self._settle_playback(playback)

    async def speak(self, text: str, voice_id: Optional[str] = None) -> Optional[SynthesizedAudio]:
        """
        Read `text` aloud to completion.

        Returns:
            The finished clip, or None if playback failed
        """
        playback = await self.toggle_playback(text, voice_id)
        if playback is None:
            return None
        await self.wait_playback()
        return self.last_clip if playback.error is None else None

    async def stop_playback(self) -> None:
        """Stop the current playback, if any."""
        playback = self._playback
        if playback is None:
            return
        await playback.stop()
        await self._settle_playback(playback)

    # -- dictation -----------------------------------------------------------

    @property
    def bridge(self) -> SpeechInputBridge:
        return self._bridge

    async def listen(
        self,
        form: PlanForm,
        target: ActiveInput,
        audio: bytes,
        mime_type: str = "audio/wav",
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Dictate one utterance into `target`.

        Returns:
            True if a transcript was applied to the form
        """
        correlation_id = correlation_id or create_correlation_id()
        self.status.error = None
        self.status.is_listening = True

        try:
            outcome = await self._bridge.listen(form, target, audio, mime_type)
        except RecognitionUnavailableError as e:
            self.status.error = str(e)
            await self._audit_logger.log_recognition_failed(
                error_code=e.code,
                correlation_id=correlation_id,
            )
            return False
        finally:
            self.status.is_listening = False

        if outcome.kind == "error":
            self.status.error = f"Speech recognition error: {outcome.error_code}"
            await self._audit_logger.log_recognition_failed(
                error_code=outcome.error_code or "unknown",
                correlation_id=correlation_id,
            )
            return False

        if outcome.kind == "result":
            await self._audit_logger.log_speech_recognized(
                target_type=target.type,
                correlation_id=correlation_id,
            )
            return True

        return False

    async def close(self) -> None:
        """Tear down anything still running (page left or session ended)."""
        self._bridge.stop()
        await self.stop_playback()


class DashboardFlow:
    """
    Orchestrates the dashboard: the user's saved plans, display name
    and shared plans.

    Stateless; storage errors propagate to the caller.
    """

    def __init__(
        self,
        plan_storage: PlanStorageInterface,
        profile_storage: Optional[ProfileStorageInterface] = None,
        collaboration: Optional[CollaborationService] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._plan_storage = plan_storage
        self._profile_storage = profile_storage
        self._collaboration = collaboration or CollaborationService(None, enabled=False)
        self._audit_logger = audit_logger or AuditLogger()

    @property
    def collaboration_enabled(self) -> bool:
        return self._collaboration.enabled

    async def list_plans(self, identity: UserIdentity) -> list[SavedPlan]:
        return await self._plan_storage.list_plans(identity)

    async def load_plan(self, identity: UserIdentity, plan_id: str) -> Optional[PlanForm]:
        """Load a saved plan into a form for editing."""
        plan = await self._plan_storage.get_plan(identity, plan_id)
        return PlanForm.from_plan(plan) if plan else None

    async def get_plan(self, identity: UserIdentity, plan_id: str) -> Optional[SavedPlan]:
        return await self._plan_storage.get_plan(identity, plan_id)

    async def delete_plan(
        self,
        identity: UserIdentity,
        plan_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        deleted = await self._plan_storage.delete_plan(identity, plan_id)
        if deleted:
            await self._audit_logger.log_plan_deleted(
                plan_id=plan_id,
                user_id=identity.user_id,
                correlation_id=correlation_id or create_correlation_id(),
            )
        return deleted

    async def get_username(self, identity: UserIdentity) -> Optional[str]:
        if self._profile_storage is None:
            return None
        return await self._profile_storage.get_username(identity)

    async def save_username(
        self,
        identity: UserIdentity,
        username: str,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """Store the display name. Blank names are ignored."""
        if self._profile_storage is None or not username.strip():
            return False
        await self._profile_storage.save_username(identity, username)
        await self._audit_logger.log_username_saved(
            user_id=identity.user_id,
            correlation_id=correlation_id or create_correlation_id(),
        )
        return True

    async def share_plan(
        self,
        identity: UserIdentity,
        plan_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> SavedPlan:
        """
        Publish one of the user's plans to shared storage.

        The user's own copy is marked as shared too.

        Raises:
            NotFoundError: If the user has no such plan
            CollaborationDisabledError: If sharing is not configured
        """
        plan = await self._plan_storage.get_plan(identity, plan_id)
        if plan is None:
            raise NotFoundError(f"Plan not found: {plan_id}")

        existing = await self._collaboration.get_shared_plan(plan_id)
        if existing is not None:
            plan = plan.model_copy(update={"collaborators": existing.collaborators})

        shared = await self._collaboration.share_plan(identity, plan)
        await self._plan_storage.update_plan(identity, shared)
        await self._audit_logger.log_plan_shared(
            plan_id=plan_id,
            user_id=identity.user_id,
            correlation_id=correlation_id or create_correlation_id(),
        )
        return shared

    async def invite_collaborator(
        self,
        identity: UserIdentity,
        plan_id: str,
        email: str,
        correlation_id: Optional[UUID] = None,
    ) -> SavedPlan:
        """Share the plan if needed, then add `email` as a collaborator."""
        if await self._collaboration.get_shared_plan(plan_id) is None:
            await self.share_plan(identity, plan_id, correlation_id)

        updated = await self._collaboration.invite_collaborator(plan_id, email)
        await self._sync_own_copy(identity, updated)
        await self._audit_logger.log_collaborator_changed(
            plan_id=plan_id,
            email=email.strip().lower(),
            added=True,
            correlation_id=correlation_id or create_correlation_id(),
        )
        return updated

    async def remove_collaborator(
        self,
        identity: UserIdentity,
        plan_id: str,
        email: str,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[SavedPlan]:
        updated = await self._collaboration.remove_collaborator(plan_id, email)
        if updated is None:
            return None
        await self._sync_own_copy(identity, updated)
        await self._audit_logger.log_collaborator_changed(
            plan_id=plan_id,
            email=email.strip().lower(),
            added=False,
            correlation_id=correlation_id or create_correlation_id(),
        )
        return updated

    async def _sync_own_copy(self, identity: UserIdentity, shared: SavedPlan) -> None:
        own = await self._plan_storage.get_plan(identity, shared.id)
        if own is not None:
            await self._plan_storage.update_plan(
                identity,
                own.model_copy(update={
                    "collaborators": list(shared.collaborators),
                    "shared": True,
                    "owner_id": shared.owner_id,
                }),
            )

    async def list_shared_with_me(self, identity: UserIdentity) -> list[SavedPlan]:
        """Plans other users have shared with this user's e-mail."""
        if not self._collaboration.enabled or not identity.email:
            return []
        return await self._collaboration.list_shared_plans_for_email(identity.email)


class AppComponents:
    """Shared, process-wide components built once by create_app_components."""

    def __init__(
        self,
        settings: Settings,
        agent: Optional[BudgetAgent],
        synthesizer: SpeechSynthesisClient,
        plan_storage: PlanStorageInterface,
        profile_storage: Optional[ProfileStorageInterface],
        collaboration: CollaborationService,
        audit_logger: AuditLogger,
        recognizer_factory: Callable[[], RecognitionCapability],
        startup_issues: Optional[list[tuple[str, str]]] = None,
    ):
        self.settings = settings
        self.agent = agent
        self.synthesizer = synthesizer
        self.plan_storage = plan_storage
        self.profile_storage = profile_storage
        self.collaboration = collaboration
        self.audit_logger = audit_logger
        self.recognizer_factory = recognizer_factory
        # (service, error) pairs for providers that could not be set up
        self.startup_issues = list(startup_issues or [])
        self.dashboard = DashboardFlow(
            plan_storage=plan_storage,
            profile_storage=profile_storage,
            collaboration=collaboration,
            audit_logger=audit_logger,
        )

    async def report_startup_issues(self) -> None:
        """Audit the providers that failed during setup."""
        correlation_id = create_correlation_id()
        for service, error in self.startup_issues:
            await self.audit_logger.log_external_service_error(
                service=service,
                error_message=error,
                correlation_id=correlation_id,
            )

    def new_planner_flow(self) -> PlannerFlow:
        """A PlannerFlow for one browser session."""
        app_settings = self.settings.app
        return PlannerFlow(
            agent=self.agent,
            synthesizer=self.synthesizer,
            plan_storage=self.plan_storage,
            recognizer_factory=self.recognizer_factory,
            audit_logger=self.audit_logger,
            playback_mode=app_settings.playback_mode,
            poll_interval=app_settings.end_of_stream_poll_seconds,
        )


def _create_storage(
    settings: Settings,
    issues: list[tuple[str, str]],
) -> tuple[
    PlanStorageInterface,
    Optional[ProfileStorageInterface],
    Optional[SharedPlanStorageInterface],
    Optional[AuditStorageInterface],
]:
    """
    Pick the storage backend named in settings.

    A Sheets backend that cannot be reached falls back to local files;
    the failure is added to `issues` so the settings page can show it.
    """
    app_settings = settings.app

    if app_settings.storage_backend == "sheets":
        try:
            sheets_client = GoogleSheetsClient(settings.google_sheets)
            sheets_client.get_spreadsheet()
            plan_storage = GoogleSheetsPlanStorage(sheets_client)
            return (
                plan_storage,
                plan_storage,
                None,
                GoogleSheetsAuditStorage(sheets_client),
            )
        except Exception as e:
            logger.warning("sheets_storage_unavailable", error=str(e))
            issues.append(("google_sheets", str(e)))

    if app_settings.storage_backend == "memory":
        storage = InMemoryPlanStorage()
        return storage, storage, storage, None

    storage = JsonFilePlanStorage(app_settings.data_dir)
    return (
        storage,
        storage,
        storage,
        JsonlAuditStorage(app_settings.data_dir / "audit.jsonl"),
    )


def create_app_components(settings: Optional[Settings] = None) -> AppComponents:
    """
    Factory function to create all application components.

    Missing provider keys do not stop the app: the affected feature
    reports the problem when used, and setup failures are kept in
    `startup_issues`.
    """
    settings = settings or get_settings()
    app_settings = settings.app
    configure_logging(app_settings.debug_mode)

    issues: list[tuple[str, str]] = []
    plan_storage, profile_storage, shared_storage, audit_storage = _create_storage(
        settings, issues
    )
    audit_logger = AuditLogger(audit_storage)

    try:
        agent = BudgetAgent(settings.gemini)
    except Exception as e:
        logger.warning("gemini_not_configured", error=str(e))
        issues.append(("gemini", str(e)))
        agent = None

    collaboration = CollaborationService(
        shared_storage,
        enabled=app_settings.collaboration_enabled,
    )

    return AppComponents(
        settings=settings,
        agent=agent,
        synthesizer=ElevenLabsSynthesisClient(settings.elevenlabs),
        plan_storage=plan_storage,
        profile_storage=profile_storage,
        collaboration=collaboration,
        audit_logger=audit_logger,
        recognizer_factory=GeminiSpeechRecognizer,
        startup_issues=issues,
    )
