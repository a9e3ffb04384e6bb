"""Project tracking for hired jobs.

One ProjectTracking record exists per hired job. It carries the stage
pipeline (hired -> started -> in_progress -> review -> completed), the
activity history, the project chat and the per-participant read markers.
"""

from homico.marketplace.tracking.models import (
    VALID_STAGE_TRANSITIONS,
    HistoryEvent,
    HistoryEventType,
    ProjectMessage,
    ProjectStage,
    ProjectTracking,
    StageHistoryEntry,
    UnreadCounts,
    UserRole,
)
from homico.marketplace.tracking.storage import InMemoryTrackingStorage, TrackingStorage

__all__ = [
    "ProjectStage",
    "ProjectTracking",
    "StageHistoryEntry",
    "HistoryEvent",
    "HistoryEventType",
    "ProjectMessage",
    "UnreadCounts",
    "UserRole",
    "VALID_STAGE_TRANSITIONS",
    "TrackingStorage",
    "InMemoryTrackingStorage",
]
