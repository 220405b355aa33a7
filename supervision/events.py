"""
Event channel connecting a supervision session to its consumers
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional
import inspect
import logging
import time


logger = logging.getLogger(__name__)


class EventType(Enum):
    SUPERVISION_STARTED = "supervisionStarted"
    INTERVENTION_REQUIRED = "interventionRequired"
    INTERVENTION_DELIVERED = "interventionDelivered"
    QUESTION_ANSWERED = "questionAnswered"
    PERMISSION_GRANTED = "permissionGranted"
    WORKFLOW_PHASE_ADVANCED = "workflowPhaseAdvanced"
    CLAUDE_CODE_ERROR = "claudeCodeError"
    SUPERVISION_COMPLETE = "supervisionComplete"
    # Supplementary events
    PROGRESS_MARKER = "progressMarker"
    PROCESS_EXITED = "processExited"
    MANUAL_REVIEW_REQUIRED = "manualReviewRequired"
    RESPONSE_READY = "responseReady"


@dataclass
class SupervisionEvent:
    type: EventType
    session_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "session_id": self.session_id,
            "timestamp": self.timestamp,
            "payload": self.payload,
        }


class EventChannel:
    """Publish/subscribe channel owned by one session.

    Subscribers may be plain or async callables taking a SupervisionEvent.
    They are awaited in registration order; a failing subscriber is logged
    and does not affect the others or the publisher.
    """

    def __init__(self, history_size: int = 500):
        self._subscribers: List[Callable] = []
        self.history: Deque[SupervisionEvent] = deque(maxlen=history_size)

    def subscribe(self, callback: Callable) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable) -> None:
        self._subscribers = [s for s in self._subscribers if s is not callback]

    async def publish(self, event_type: EventType, session_id: str, **payload) -> SupervisionEvent:
        event = SupervisionEvent(type=event_type, session_id=session_id, payload=payload)
        self.history.append(event)
        logger.debug("Event %s for session %s", event_type.value, session_id)
        for callback in list(self._subscribers):
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Event subscriber failed on %s", event_type.value)
        return event

    def events_of(self, event_type: EventType, session_id: Optional[str] = None) -> List[SupervisionEvent]:
        return [
            e for e in self.history
            if e.type is event_type and (session_id is None or e.session_id == session_id)
        ]
