"""
Claude Supervisor - supervision of coding-assistant sessions
"""

from .config import SupervisionConfig
from .context_provider import ContextProvider
from .decision_engine import DecisionEngine, ResponseThrottle
from .delivery import DeliveryCapability, DirectInputDelivery, EmitOnlyDelivery
from .events import EventChannel, EventType, SupervisionEvent
from .exceptions import ConfigurationError, SessionStateError, SupervisionError, SupervisionSetupError
from .models import Decision, Issue, IssueCategory, ProjectContext, Severity, SupervisionMode, WorkflowPhase
from .patterns import PATTERN_CATALOG, PatternClassifier
from .session import SessionState, SupervisionSession
from .stream_monitor import StreamMonitor
from .workflow import WorkflowTracker

__all__ = [
    'SupervisionConfig',
    'ContextProvider',
    'DecisionEngine',
    'ResponseThrottle',
    'DeliveryCapability',
    'DirectInputDelivery',
    'EmitOnlyDelivery',
    'EventChannel',
    'EventType',
    'SupervisionEvent',
    'ConfigurationError',
    'SessionStateError',
    'SupervisionError',
    'SupervisionSetupError',
    'Decision',
    'Issue',
    'IssueCategory',
    'ProjectContext',
    'Severity',
    'SupervisionMode',
    'WorkflowPhase',
    'PATTERN_CATALOG',
    'PatternClassifier',
    'SessionState',
    'SupervisionSession',
    'StreamMonitor',
    'WorkflowTracker',
]
