"""State-change notifications delivered to the rendering layer."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable


class EventType(str, Enum):
    """Kinds of controller notifications."""

    SYNC_STARTED = "sync.started"
    SYNC_COMPLETED = "sync.completed"
    SYNC_FAILED = "sync.failed"
    DEMO_MODE = "sync.demo"
    CACHE_LOADED = "cache.loaded"
    DATA_CHANGED = "data.changed"
    SETTINGS_CHANGED = "settings.changed"


class SyncStatus(str, Enum):
    """Status text shown next to the sync indicator."""

    IDLE = ""
    SYNCING = "Syncing..."
    SYNCED = "Synced"
    DEMO = "Demo Mode"
    ERROR = "Error"


@dataclass
class ControllerEvent:
    """One notification; ``data`` carries event-specific fields."""

    event_type: EventType
    status: SyncStatus
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.event_type.value,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "data": self.data,
        }


EventListener = Callable[[ControllerEvent], None]
