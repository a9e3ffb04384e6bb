"""
Project tracking service.

Owns the post-hire lifecycle: stage progression with its stage history,
progress, the typed project timeline, chat messages with read markers,
and the client's completion confirmation that closes the job.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from homico.marketplace.collaborators import Collaborators, NotificationType, best_effort
from homico.marketplace.errors import (
    ConflictError,
    InvalidTransitionError,
    MarketplaceError,
    ProjectNotFoundError,
    UnauthorizedError,
)
from homico.marketplace.jobs.models import Job, JobStatus, Proposal
from homico.marketplace.jobs.storage import JobStorage
from homico.marketplace.tracking.models import (
    LAST_VIEWED_FIELDS,
    MATERIAL_EVENTS,
    ConfirmationResult,
    HistoryEvent,
    HistoryEventType,
    HistoryMetadata,
    NoteMeta,
    ProjectMessage,
    ProjectStage,
    ProjectTracking,
    StageChangeMeta,
    StageHistoryEntry,
    UnreadCounts,
    UserRole,
    ValueChangeMeta,
    metadata_from_dict,
)
from homico.marketplace.tracking.storage import TrackingStorage
from homico.marketplace.types import enum_value, format_datetime, utc_now

logger = logging.getLogger(__name__)

# Notification copy sent to the counterparty when a stage is entered
STAGE_NOTIFICATIONS: Dict[ProjectStage, Tuple[str, str]] = {
    ProjectStage.HIRED: ("Project Created", "You have been hired"),
    ProjectStage.STARTED: ("Project Started", 'Work has started on "{title}"'),
    ProjectStage.IN_PROGRESS: ("Work in Progress", 'Work is in progress on "{title}"'),
    ProjectStage.REVIEW: ("Ready for Review", '"{title}" is ready for your review'),
    ProjectStage.COMPLETED: ("Project Completed", '"{title}" has been completed'),
}

MESSAGE_PREVIEW_LENGTH = 50


class ProjectTrackingService:
    """Service for post-hire project tracking."""

    def __init__(
        self,
        storage: TrackingStorage,
        job_storage: JobStorage,
        collaborators: Optional[Collaborators] = None,
    ):
        """Initialize project tracking service.

        Args:
            storage: Tracking storage backend
            job_storage: Job storage backend, used to close jobs on confirmation
            collaborators: Notification, realtime, portfolio and payment hooks
        """
        self.storage = storage
        self.job_storage = job_storage
        self.collaborators = collaborators or Collaborators()

    # =========================================================================
    # Lookup
    # =========================================================================

    def _get_tracking(self, job_id: str) -> ProjectTracking:
        tracking = self.storage.get_tracking(job_id)
        if tracking is None:
            raise ProjectNotFoundError(f"Project tracking for job {job_id} not found")
        return tracking

    def _participant(self, job_id: str, user_id: str) -> Tuple[ProjectTracking, UserRole]:
        tracking = self._get_tracking(job_id)
        role = tracking.role_of(user_id)
        if role is None:
            raise UnauthorizedError("You are not part of this project")
        return tracking, role

    def _job_title(self, job_id: str) -> str:
        job = self.job_storage.get_job(job_id)
        return job.title if job else "your project"

    def get_project(self, job_id: str, user_id: str) -> ProjectTracking:
        """Get a project. Only the client and the hired professional may read it."""
        tracking, _ = self._participant(job_id, user_id)
        return tracking

    def list_projects(self, user_id: str, role: Union[str, UserRole]) -> List[ProjectTracking]:
        """List projects where the user is the client or the professional."""
        role = UserRole(role)
        if role == UserRole.CLIENT:
            return self.storage.list_trackings(client_id=user_id)
        if role == UserRole.PRO:
            return self.storage.list_trackings(pro_id=user_id)
        raise MarketplaceError(f"Cannot list projects for role '{role.value}'")

    # =========================================================================
    # Creation
    # =========================================================================

    def create_for_hire(
        self, job: Job, pro_id: str, proposal: Optional[Proposal] = None
    ) -> ProjectTracking:
        """Create the tracking record for a freshly hired job.

        Price and duration come from the accepted proposal, or from the job
        budget when the hire came through a direct request.

        Raises:
            TrackingExistsError: The job already has a tracking record
        """
        now = utc_now()
        tracking = ProjectTracking(
            id=str(uuid.uuid4()),
            job_id=job.id,
            client_id=job.client_id,
            pro_id=pro_id,
            proposal_id=proposal.id if proposal else None,
            current_stage=ProjectStage.HIRED.value,
            progress=0,
            hired_at=now,
            agreed_price=proposal.proposed_price if proposal else job.budget_amount,
            estimated_duration=proposal.estimated_duration if proposal else None,
            estimated_duration_unit=proposal.estimated_duration_unit if proposal else None,
            stage_history=[
                StageHistoryEntry(stage=ProjectStage.HIRED.value, entered_at=now, changed_by=job.client_id)
            ],
            created_at=now,
            updated_at=now,
        )
        self.storage.save_tracking(tracking)
        logger.info(f"Project tracking created | job={job.id} | pro={pro_id}")

        self.add_history_event(job.id, HistoryEventType.PROJECT_CREATED, job.client_id, NoteMeta("Project created"))
        return tracking

    # =========================================================================
    # Stages and progress
    # =========================================================================

    def update_stage(
        self,
        job_id: str,
        user_id: str,
        new_stage: Union[str, ProjectStage],
        note: Optional[str] = None,
        portfolio_images: Optional[List[str]] = None,
    ) -> ProjectTracking:
        """Move the project to a new stage.

        Either party may change the stage. Moves go forward, except that a
        project in review can go back to in_progress. Nothing moves after the
        client confirmed completion.

        Raises:
            ProjectNotFoundError: No tracking for the job
            UnauthorizedError: Caller is not a participant
            InvalidTransitionError: Stage move not allowed
            ConflictError: The stage changed under a concurrent request
        """
        tracking, role = self._participant(job_id, user_id)
        try:
            target = ProjectStage(new_stage)
        except ValueError:
            raise InvalidTransitionError(f"Invalid stage: {enum_value(new_stage)}")

        if tracking.is_confirmed:
            raise InvalidTransitionError("Project has already been confirmed")
        if not tracking.can_transition_to(target):
            raise InvalidTransitionError(
                f"Cannot move project from '{tracking.current_stage}' to '{target.value}'"
            )

        now = utc_now()
        stage_history = list(tracking.stage_history)
        if stage_history:
            last = stage_history[-1]
            stage_history[-1] = StageHistoryEntry(
                stage=last.stage,
                entered_at=last.entered_at,
                exited_at=now,
                changed_by=last.changed_by,
                note=last.note,
            )
        stage_history.append(
            StageHistoryEntry(stage=target.value, entered_at=now, changed_by=user_id, note=note)
        )

        updates: Dict[str, Any] = {
            "current_stage": target.value,
            "stage_history": stage_history,
            "progress": max(tracking.progress, target.progress_floor),
        }
        if target == ProjectStage.STARTED and tracking.started_at is None:
            updates["started_at"] = now
        if target == ProjectStage.COMPLETED:
            updates["completed_at"] = now
            updates["progress"] = 100
            if portfolio_images and role == UserRole.PRO:
                updates["portfolio_images"] = list(portfolio_images)

        updated = self.storage.update_tracking(
            job_id,
            expected={"current_stage": tracking.current_stage, "client_confirmed_at": None},
            **updates,
        )
        if updated is None:
            logger.warning(f"Stage update lost a race | job={job_id} | user={user_id}")
            raise ConflictError("The project changed while updating its stage, please retry")

        logger.info(
            f"Project stage changed | job={job_id} | {tracking.current_stage} -> {target.value} | user={user_id}"
        )

        best_effort(
            "Realtime stage update",
            self.collaborators.realtime.emit_project_stage_update,
            job_id,
            updated.client_id,
            updated.pro_id,
            {"stage": target.value, "progress": updated.progress, "project": updated.to_dict(include_children=False)},
        )
        self.add_history_event(
            job_id,
            HistoryEventType.STAGE_CHANGED,
            user_id,
            StageChangeMeta(from_stage=tracking.current_stage, to_stage=target.value, note=note),
        )
        self._notify_stage_change(updated, role, target)
        return updated

    def _notify_stage_change(self, tracking: ProjectTracking, role: UserRole, stage: ProjectStage) -> None:
        title, template = STAGE_NOTIFICATIONS[stage]
        if role == UserRole.PRO:
            recipient, link = tracking.client_id, f"/jobs/{tracking.job_id}"
        else:
            recipient, link = tracking.pro_id, f"/my-jobs/{tracking.job_id}"
        best_effort(
            "Stage notification",
            self.collaborators.notifications.notify,
            recipient,
            NotificationType.PROJECT_STAGE,
            title,
            template.format(title=self._job_title(tracking.job_id)),
            link=link,
            reference_id=tracking.job_id,
            metadata={"stage": stage.value},
        )

    def update_progress(self, job_id: str, pro_id: str, progress: int) -> ProjectTracking:
        """Set progress directly. Professional only; clamped to 0-100."""
        tracking = self._get_tracking(job_id)
        if tracking.pro_id != pro_id:
            raise UnauthorizedError("Only the professional can update progress")

        value = min(100, max(0, int(progress)))
        updated = self.storage.update_tracking(job_id, progress=value)
        if updated is None:
            raise ProjectNotFoundError(f"Project tracking for job {job_id} not found")
        logger.debug(f"Project progress | job={job_id} | progress={value}")
        return updated

    def set_expected_end_date(self, job_id: str, pro_id: str, expected_end_date: datetime) -> ProjectTracking:
        """Set the expected finish date. Professional only."""
        tracking = self._get_tracking(job_id)
        if tracking.pro_id != pro_id:
            raise UnauthorizedError("Only the professional can set expected end date")

        updated = self.storage.update_tracking(job_id, expected_end_date=expected_end_date)
        if updated is None:
            raise ProjectNotFoundError(f"Project tracking for job {job_id} not found")
        self.add_history_event(
            job_id,
            HistoryEventType.DEADLINE_UPDATED,
            pro_id,
            ValueChangeMeta(
                field_name="expected_end_date",
                old_value=format_datetime(tracking.expected_end_date),
                new_value=format_datetime(expected_end_date),
            ),
        )
        return updated

    # =========================================================================
    # Confirmation
    # =========================================================================

    def confirm_completion(self, job_id: str, client_id: str) -> ConfirmationResult:
        """Client accepts the professional's completion claim.

        This is the only path that completes the job. It also bumps the
        professional's completed-job counter, fires the payment hook and
        turns captured images into a portfolio entry.

        Raises:
            ProjectNotFoundError: No tracking for the job
            UnauthorizedError: Caller is not the client
            InvalidTransitionError: Not completed yet, or already confirmed
        """
        tracking = self._get_tracking(job_id)
        if tracking.client_id != client_id:
            raise UnauthorizedError("Only the client can confirm project completion")
        if tracking.stage != ProjectStage.COMPLETED:
            raise InvalidTransitionError("Project must be marked as completed by the professional first")
        if tracking.is_confirmed:
            raise InvalidTransitionError("Project has already been confirmed")

        now = utc_now()
        confirmed = self.storage.update_tracking(
            job_id,
            expected={"current_stage": ProjectStage.COMPLETED.value, "client_confirmed_at": None},
            client_confirmed_at=now,
        )
        if confirmed is None:
            raise InvalidTransitionError("Project has already been confirmed")

        job = self.job_storage.transition_job(
            job_id, JobStatus.IN_PROGRESS, JobStatus.COMPLETED, completed_at=now
        )
        if job is None:
            logger.warning(f"Confirmed project's job was not in progress | job={job_id}")
        logger.info(f"Project confirmed | job={job_id} | client={client_id} | pro={confirmed.pro_id}")

        best_effort(
            "Completed-jobs counter", self.collaborators.pro_stats.increment_completed_jobs, confirmed.pro_id
        )
        self.add_history_event(
            job_id, HistoryEventType.PROJECT_COMPLETED, client_id, NoteMeta("Client confirmed completion")
        )

        title = job.title if job else self._job_title(job_id)
        best_effort(
            "Confirmation notification",
            self.collaborators.notifications.notify,
            confirmed.pro_id,
            NotificationType.JOB_COMPLETED,
            "Payment is on its way",
            f'The client confirmed completion of "{title}". Payment will follow shortly.',
            link=f"/my-jobs/{job_id}",
            reference_id=job_id,
        )
        best_effort(
            "Payment trigger",
            self.collaborators.payments.completion_confirmed,
            job_id,
            confirmed.pro_id,
            client_id,
        )

        portfolio_item_id = None
        if confirmed.portfolio_images:
            portfolio_item_id = self._create_portfolio_item(confirmed, job, now)
            if portfolio_item_id:
                confirmed = self.storage.update_tracking(job_id, portfolio_item_id=portfolio_item_id) or confirmed

        return ConfirmationResult(
            tracking=confirmed, job_completed=job is not None, portfolio_item_id=portfolio_item_id
        )

    def _create_portfolio_item(self, tracking: ProjectTracking, job: Optional[Job], now: datetime) -> Optional[str]:
        job = job or self.job_storage.get_job(tracking.job_id)
        return best_effort(
            "Portfolio item creation",
            self.collaborators.portfolio.create_from_job,
            pro_id=tracking.pro_id,
            job_id=tracking.job_id,
            client_id=tracking.client_id,
            title=job.title if job else "Completed Project",
            description=job.description if job else None,
            category=job.category if job else None,
            location=job.location if job else None,
            images=list(tracking.portfolio_images),
            completed_date=now,
        )

    # =========================================================================
    # History
    # =========================================================================

    def add_history_event(
        self,
        job_id: str,
        event_type: Union[str, HistoryEventType],
        user_id: str,
        metadata: Optional[Union[HistoryMetadata, Dict[str, Any]]] = None,
    ) -> Optional[HistoryEvent]:
        """Append an event to the project timeline.

        Never raises: a failure to record history is logged and the caller's
        action goes on. Returns the recorded event, or None.
        """
        try:
            tracking = self.storage.get_tracking(job_id)
            if tracking is None:
                return None
            if isinstance(metadata, dict):
                metadata = metadata_from_dict(event_type, metadata)
            role = tracking.role_of(user_id) or UserRole.SYSTEM
            event = HistoryEvent(
                id=str(uuid.uuid4()),
                event_type=enum_value(event_type),
                user_id=user_id,
                user_role=role.value,
                metadata=metadata,
                created_at=utc_now(),
            )
            if not self.storage.append_history_event(job_id, event):
                return None
            return event
        except Exception as e:
            logger.error(f"Failed to add history event | job={job_id} | type={enum_value(event_type)}: {e}")
            return None

    def get_history(
        self,
        job_id: str,
        user_id: str,
        limit: Optional[int] = None,
        offset: int = 0,
        event_types: Optional[Iterable[Union[str, HistoryEventType]]] = None,
        user_filter: Optional[str] = None,
    ) -> Tuple[List[HistoryEvent], int]:
        """Get the project timeline, newest first.

        Returns:
            The requested page of events and the total after filtering
        """
        tracking, _ = self._participant(job_id, user_id)
        history = list(tracking.history)

        if event_types:
            wanted = {enum_value(t) for t in event_types}
            history = [h for h in history if h.event_type in wanted]
        if user_filter:
            history = [h for h in history if h.user_id == user_filter]

        history.sort(key=lambda h: h.created_at, reverse=True)
        total = len(history)

        history = history[offset:]
        if limit:
            history = history[:limit]
        return history, total

    # =========================================================================
    # Messages and read markers
    # =========================================================================

    def add_message(
        self, job_id: str, user_id: str, content: str, attachments: Optional[List[str]] = None
    ) -> ProjectMessage:
        """Post a chat message to the project."""
        content = (content or "").strip()
        attachments = list(attachments or [])
        if not content and not attachments:
            raise MarketplaceError("Message must have content or attachments")

        tracking, role = self._participant(job_id, user_id)
        message = ProjectMessage(
            id=str(uuid.uuid4()),
            sender_id=user_id,
            sender_role=role.value,
            content=content,
            attachments=attachments,
            created_at=utc_now(),
        )
        if not self.storage.append_message(job_id, message):
            raise ProjectNotFoundError(f"Project tracking for job {job_id} not found")

        best_effort(
            "Realtime project message",
            self.collaborators.realtime.emit_project_message,
            job_id,
            message.to_dict(),
        )
        preview = content if len(content) <= MESSAGE_PREVIEW_LENGTH else content[:MESSAGE_PREVIEW_LENGTH] + "..."
        best_effort(
            "Message notification",
            self.collaborators.notifications.notify,
            tracking.counterparty_of(user_id),
            NotificationType.PROJECT_MESSAGE,
            "New message",
            preview or "A file was sent",
            link=f"/jobs/{job_id}#chat",
            reference_id=job_id,
            metadata={"job_title": self._job_title(job_id)},
        )
        self.add_history_event(job_id, HistoryEventType.MESSAGE_SENT, user_id, NoteMeta(preview or "attachment"))
        return message

    def get_messages(self, job_id: str, user_id: str) -> Tuple[List[Dict[str, Any]], int]:
        """Get the chat thread with a per-message read flag for the caller.

        Returns:
            Messages oldest first, each with ``is_read``, and the unread count
        """
        tracking, role = self._participant(job_id, user_id)
        last_read = getattr(tracking, LAST_VIEWED_FIELDS[role.value]["chat"])

        messages = []
        unread = 0
        for message in sorted(tracking.messages, key=lambda m: m.created_at):
            is_unread = message.sender_id != user_id and (last_read is None or message.created_at > last_read)
            unread += is_unread
            messages.append(dict(message.to_dict(), is_read=not is_unread))
        return messages, unread

    def _mark_viewed(self, job_id: str, user_id: str, feature: str) -> datetime:
        _, role = self._participant(job_id, user_id)
        now = utc_now()
        self.storage.update_tracking(job_id, **{LAST_VIEWED_FIELDS[role.value][feature]: now})
        return now

    def mark_messages_read(self, job_id: str, user_id: str) -> datetime:
        return self._mark_viewed(job_id, user_id, "chat")

    def mark_polls_viewed(self, job_id: str, user_id: str) -> datetime:
        return self._mark_viewed(job_id, user_id, "polls")

    def mark_materials_viewed(self, job_id: str, user_id: str) -> datetime:
        return self._mark_viewed(job_id, user_id, "materials")

    def get_unread_counts(self, job_id: str, user_id: str) -> UnreadCounts:
        """Count chat messages, polls and materials from the other party since the caller last looked."""
        tracking, role = self._participant(job_id, user_id)
        markers = {feature: getattr(tracking, name) for feature, name in LAST_VIEWED_FIELDS[role.value].items()}

        def after(marker: Optional[datetime], when: datetime) -> bool:
            return marker is None or when > marker

        chat = sum(
            1 for m in tracking.messages if m.sender_id != user_id and after(markers["chat"], m.created_at)
        )
        polls = sum(
            1
            for e in tracking.history
            if e.event_type == HistoryEventType.POLL_CREATED.value
            and e.user_id != user_id
            and after(markers["polls"], e.created_at)
        )
        materials = sum(
            1
            for e in tracking.history
            if e.event_type in MATERIAL_EVENTS
            and e.user_id != user_id
            and after(markers["materials"], e.created_at)
        )
        return UnreadCounts(chat=chat, polls=polls, materials=materials)
