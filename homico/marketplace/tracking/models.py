"""
Project tracking data models.

A ProjectTracking record is created when a professional is hired and
follows the engagement through its stages up to client confirmation.
It keeps two logs: ``stage_history`` (one entry per stage, with enter and
exit times) and ``history`` (typed domain events for the project timeline).
"""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type, Union

from homico.marketplace.types import enum_value, format_datetime, parse_datetime


class ProjectStage(str, Enum):
    """Post-hire stages, in working order."""

    HIRED = "hired"
    STARTED = "started"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    COMPLETED = "completed"

    @property
    def order(self) -> int:
        return STAGE_ORDER.index(self)

    @property
    def progress_floor(self) -> int:
        return STAGE_PROGRESS[self]


STAGE_ORDER: List[ProjectStage] = list(ProjectStage)

# Minimum progress once a stage is entered
STAGE_PROGRESS: Dict[ProjectStage, int] = {
    ProjectStage.HIRED: 0,
    ProjectStage.STARTED: 10,
    ProjectStage.IN_PROGRESS: 50,
    ProjectStage.REVIEW: 85,
    ProjectStage.COMPLETED: 100,
}

# Forward moves to any later stage, plus review -> in_progress when the
# client asks for changes. Nothing leaves completed.
VALID_STAGE_TRANSITIONS: Dict[ProjectStage, List[ProjectStage]] = {
    stage: [s for s in STAGE_ORDER if s.order > stage.order] for stage in STAGE_ORDER
}
VALID_STAGE_TRANSITIONS[ProjectStage.REVIEW] = [ProjectStage.IN_PROGRESS, ProjectStage.COMPLETED]


class UserRole(str, Enum):
    """Who performed a tracked action."""

    CLIENT = "client"
    PRO = "pro"
    SYSTEM = "system"


class HistoryEventType(str, Enum):
    """Domain events recorded on the project timeline."""

    STAGE_CHANGED = "stage_changed"
    POLL_CREATED = "poll_created"
    POLL_VOTED = "poll_voted"
    POLL_CLOSED = "poll_closed"
    POLL_OPTION_SELECTED = "poll_option_selected"
    RESOURCE_ADDED = "resource_added"
    RESOURCE_REMOVED = "resource_removed"
    RESOURCE_EDITED = "resource_edited"
    RESOURCE_ITEM_ADDED = "resource_item_added"
    RESOURCE_ITEM_REMOVED = "resource_item_removed"
    RESOURCE_ITEM_EDITED = "resource_item_edited"
    RESOURCE_REACTION = "resource_reaction"
    ATTACHMENT_ADDED = "attachment_added"
    ATTACHMENT_REMOVED = "attachment_removed"
    MESSAGE_SENT = "message_sent"
    PROJECT_CREATED = "project_created"
    PROJECT_COMPLETED = "project_completed"
    PRICE_UPDATED = "price_updated"
    DEADLINE_UPDATED = "deadline_updated"


# Events that count towards the "materials" unread badge
MATERIAL_EVENTS = (HistoryEventType.RESOURCE_ADDED.value, HistoryEventType.RESOURCE_ITEM_ADDED.value)


# =============================================================================
# History metadata variants
# =============================================================================


class _Meta:
    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        names = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in names})


@dataclass(frozen=True)
class StageChangeMeta(_Meta):
    from_stage: str
    to_stage: str
    note: Optional[str] = None


@dataclass(frozen=True)
class PollEventMeta(_Meta):
    poll_id: str
    poll_title: Optional[str] = None
    option_id: Optional[str] = None
    option_text: Optional[str] = None


@dataclass(frozen=True)
class ResourceEventMeta(_Meta):
    resource_id: str
    resource_name: Optional[str] = None
    item_id: Optional[str] = None
    item_name: Optional[str] = None
    reaction: Optional[str] = None


@dataclass(frozen=True)
class AttachmentMeta(_Meta):
    file_name: str
    file_url: Optional[str] = None


@dataclass(frozen=True)
class ValueChangeMeta(_Meta):
    field_name: str
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None


@dataclass(frozen=True)
class NoteMeta(_Meta):
    text: str = ""


HistoryMetadata = Union[
    StageChangeMeta, PollEventMeta, ResourceEventMeta, AttachmentMeta, ValueChangeMeta, NoteMeta
]

EVENT_METADATA_TYPES: Dict[HistoryEventType, Type] = {
    HistoryEventType.STAGE_CHANGED: StageChangeMeta,
    HistoryEventType.POLL_CREATED: PollEventMeta,
    HistoryEventType.POLL_VOTED: PollEventMeta,
    HistoryEventType.POLL_CLOSED: PollEventMeta,
    HistoryEventType.POLL_OPTION_SELECTED: PollEventMeta,
    HistoryEventType.RESOURCE_ADDED: ResourceEventMeta,
    HistoryEventType.RESOURCE_REMOVED: ResourceEventMeta,
    HistoryEventType.RESOURCE_EDITED: ResourceEventMeta,
    HistoryEventType.RESOURCE_ITEM_ADDED: ResourceEventMeta,
    HistoryEventType.RESOURCE_ITEM_REMOVED: ResourceEventMeta,
    HistoryEventType.RESOURCE_ITEM_EDITED: ResourceEventMeta,
    HistoryEventType.RESOURCE_REACTION: ResourceEventMeta,
    HistoryEventType.ATTACHMENT_ADDED: AttachmentMeta,
    HistoryEventType.ATTACHMENT_REMOVED: AttachmentMeta,
    HistoryEventType.MESSAGE_SENT: NoteMeta,
    HistoryEventType.PROJECT_CREATED: NoteMeta,
    HistoryEventType.PROJECT_COMPLETED: NoteMeta,
    HistoryEventType.PRICE_UPDATED: ValueChangeMeta,
    HistoryEventType.DEADLINE_UPDATED: ValueChangeMeta,
}


def metadata_from_dict(event_type: Union[str, HistoryEventType], data: Optional[Dict[str, Any]]) -> Optional[HistoryMetadata]:
    """Rebuild the metadata variant that belongs to an event type.

    Raises:
        ValueError: Unknown event type, or data missing a required field
    """
    if data is None:
        return None
    meta_cls = EVENT_METADATA_TYPES[HistoryEventType(event_type)]
    try:
        return meta_cls.from_dict(data)
    except TypeError as e:
        raise ValueError(f"Invalid metadata for {enum_value(event_type)}: {e}") from e


def check_metadata(event_type: Union[str, HistoryEventType], metadata: Optional[HistoryMetadata]) -> None:
    """Raise ValueError if ``metadata`` is not the variant ``event_type`` carries."""
    if metadata is None:
        return
    expected = EVENT_METADATA_TYPES[HistoryEventType(event_type)]
    if not isinstance(metadata, expected):
        raise ValueError(
            f"{enum_value(event_type)} events carry {expected.__name__}, got {type(metadata).__name__}"
        )


# =============================================================================
# Records
# =============================================================================


@dataclass
class StageHistoryEntry:
    """One stage the project passed through."""

    stage: str
    entered_at: datetime
    exited_at: Optional[datetime] = None
    changed_by: Optional[str] = None
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage,
            "entered_at": format_datetime(self.entered_at),
            "exited_at": format_datetime(self.exited_at),
            "changed_by": self.changed_by,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StageHistoryEntry":
        return cls(
            stage=data["stage"],
            entered_at=parse_datetime(data["entered_at"]),
            exited_at=parse_datetime(data.get("exited_at")),
            changed_by=data.get("changed_by"),
            note=data.get("note"),
        )


@dataclass
class HistoryEvent:
    """A typed entry on the project timeline."""

    id: str
    event_type: str
    user_id: str
    user_role: str
    created_at: datetime
    metadata: Optional[HistoryMetadata] = None

    def __post_init__(self):
        self.event_type = HistoryEventType(self.event_type).value
        self.user_role = UserRole(self.user_role).value
        check_metadata(self.event_type, self.metadata)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "user_id": self.user_id,
            "user_role": self.user_role,
            "metadata": self.metadata.to_dict() if self.metadata else None,
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEvent":
        return cls(
            id=data["id"],
            event_type=data["event_type"],
            user_id=data["user_id"],
            user_role=data["user_role"],
            created_at=parse_datetime(data["created_at"]),
            metadata=metadata_from_dict(data["event_type"], data.get("metadata")),
        )


@dataclass
class ProjectMessage:
    """A chat message between the client and the professional."""

    id: str
    sender_id: str
    sender_role: str
    content: str
    created_at: datetime
    attachments: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "sender_id": self.sender_id,
            "sender_role": self.sender_role,
            "content": self.content,
            "attachments": list(self.attachments),
            "created_at": format_datetime(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectMessage":
        return cls(
            id=data["id"],
            sender_id=data["sender_id"],
            sender_role=data["sender_role"],
            content=data.get("content") or "",
            created_at=parse_datetime(data["created_at"]),
            attachments=list(data.get("attachments") or []),
        )


# Per-party last-viewed marker fields, by (role, feature)
LAST_VIEWED_FIELDS: Dict[str, Dict[str, str]] = {
    UserRole.CLIENT.value: {
        "chat": "client_last_read_at",
        "polls": "client_last_viewed_polls_at",
        "materials": "client_last_viewed_materials_at",
    },
    UserRole.PRO.value: {
        "chat": "pro_last_read_at",
        "polls": "pro_last_viewed_polls_at",
        "materials": "pro_last_viewed_materials_at",
    },
}

# Columns that hold lists of child records rather than scalars
_CHILD_FIELDS = ("stage_history", "history", "messages")


@dataclass
class ProjectTracking:
    """Post-hire engagement record, one per job.

    Attributes:
        id: Unique identifier (UUID)
        job_id: Tracked job
        client_id: Job owner
        pro_id: Hired professional
        proposal_id: Accepted proposal, None for direct requests
        current_stage: Current ProjectStage value
        progress: Percent complete (0-100)
        agreed_price: Price copied from the proposal or the job budget
        client_confirmed_at: Set once, when the client confirms completion
        portfolio_images: Images captured by the professional on completion
        portfolio_item_id: Portfolio entry created at confirmation
    """

    id: str
    job_id: str
    client_id: str
    pro_id: str
    hired_at: datetime
    proposal_id: Optional[str] = None
    current_stage: str = ProjectStage.HIRED.value
    progress: int = 0
    started_at: Optional[datetime] = None
    expected_end_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    client_confirmed_at: Optional[datetime] = None
    agreed_price: Optional[float] = None
    estimated_duration: Optional[int] = None
    estimated_duration_unit: Optional[str] = None
    stage_history: List[StageHistoryEntry] = field(default_factory=list)
    history: List[HistoryEvent] = field(default_factory=list)
    messages: List[ProjectMessage] = field(default_factory=list)
    portfolio_images: List[str] = field(default_factory=list)
    portfolio_item_id: Optional[str] = None

    # Last-viewed markers
    client_last_read_at: Optional[datetime] = None
    pro_last_read_at: Optional[datetime] = None
    client_last_viewed_polls_at: Optional[datetime] = None
    pro_last_viewed_polls_at: Optional[datetime] = None
    client_last_viewed_materials_at: Optional[datetime] = None
    pro_last_viewed_materials_at: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate tracking data."""
        self.current_stage = ProjectStage(self.current_stage).value
        if not 0 <= self.progress <= 100:
            raise ValueError("Progress must be between 0 and 100")
        if self.client_confirmed_at is not None and self.current_stage != ProjectStage.COMPLETED.value:
            raise ValueError("Only a completed project can be confirmed")

    @property
    def stage(self) -> ProjectStage:
        return ProjectStage(self.current_stage)

    @property
    def is_confirmed(self) -> bool:
        return self.client_confirmed_at is not None

    def role_of(self, user_id: str) -> Optional[UserRole]:
        """Role of a participant, or None for outsiders."""
        if user_id == self.client_id:
            return UserRole.CLIENT
        if user_id == self.pro_id:
            return UserRole.PRO
        return None

    def counterparty_of(self, user_id: str) -> str:
        return self.pro_id if user_id == self.client_id else self.client_id

    def can_transition_to(self, new_stage: ProjectStage) -> bool:
        if self.is_confirmed:
            return False
        return ProjectStage(new_stage) in VALID_STAGE_TRANSITIONS[self.stage]

    def to_dict(self, include_children: bool = True) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {
            "id": self.id,
            "job_id": self.job_id,
            "client_id": self.client_id,
            "pro_id": self.pro_id,
            "proposal_id": self.proposal_id,
            "current_stage": self.current_stage,
            "progress": self.progress,
            "hired_at": format_datetime(self.hired_at),
            "started_at": format_datetime(self.started_at),
            "expected_end_date": format_datetime(self.expected_end_date),
            "completed_at": format_datetime(self.completed_at),
            "client_confirmed_at": format_datetime(self.client_confirmed_at),
            "agreed_price": self.agreed_price,
            "estimated_duration": self.estimated_duration,
            "estimated_duration_unit": self.estimated_duration_unit,
            "stage_history": [e.to_dict() for e in self.stage_history],
            "portfolio_images": list(self.portfolio_images),
            "portfolio_item_id": self.portfolio_item_id,
            "client_last_read_at": format_datetime(self.client_last_read_at),
            "pro_last_read_at": format_datetime(self.pro_last_read_at),
            "client_last_viewed_polls_at": format_datetime(self.client_last_viewed_polls_at),
            "pro_last_viewed_polls_at": format_datetime(self.pro_last_viewed_polls_at),
            "client_last_viewed_materials_at": format_datetime(self.client_last_viewed_materials_at),
            "pro_last_viewed_materials_at": format_datetime(self.pro_last_viewed_materials_at),
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
        }
        if include_children:
            data["history"] = [e.to_dict() for e in self.history]
            data["messages"] = [m.to_dict() for m in self.messages]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectTracking":
        """Create from dictionary."""
        kwargs = {}
        for f in fields(cls):
            if f.name in _CHILD_FIELDS or f.name not in data:
                continue
            value = data[f.name]
            if f.name.endswith("_at") or f.name == "expected_end_date":
                value = parse_datetime(value)
            kwargs[f.name] = value
        kwargs["portfolio_images"] = list(data.get("portfolio_images") or [])
        kwargs["stage_history"] = [StageHistoryEntry.from_dict(e) for e in data.get("stage_history") or []]
        kwargs["history"] = [HistoryEvent.from_dict(e) for e in data.get("history") or []]
        kwargs["messages"] = [ProjectMessage.from_dict(m) for m in data.get("messages") or []]
        return cls(**kwargs)


@dataclass
class UnreadCounts:
    """Unread badge counts for one participant."""

    chat: int = 0
    polls: int = 0
    materials: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"chat": self.chat, "polls": self.polls, "materials": self.materials}


@dataclass
class ConfirmationResult:
    """Outcome of a client confirming completion."""

    tracking: ProjectTracking
    job_completed: bool
    portfolio_item_id: Optional[str] = None
