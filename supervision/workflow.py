"""
Workflow Tracker - ordered delivery phases for a supervised session
"""

from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple
import logging
import time

from .models import PHASE_ORDER, PhaseTransition, WorkflowPhase


logger = logging.getLogger(__name__)

# Phase -> (marker types that count, consecutive markers needed to advance)
PROGRESS_RULES: Dict[WorkflowPhase, Tuple[FrozenSet[str], int]] = {
    WorkflowPhase.REQUIREMENTS_RESOLUTION: (frozenset({"implementation", "file_creation", "coding"}), 3),
    WorkflowPhase.IMPLEMENTATION: (frozenset({"testing"}), 2),
}
COMPLETION_MARKER = "completion"


class WorkflowTracker:
    """Tracks which delivery phase a session is in.

    The phase index only moves forward and stops at ``completion``.
    """

    def __init__(self, phases: Tuple[WorkflowPhase, ...] = PHASE_ORDER,
                 clock: Callable[[], float] = time.time):
        self.phases = phases
        self._clock = clock
        self.current_phase_index = 0
        self.phase_start_time = clock()
        self.started_at = self.phase_start_time
        self.interventions: List[Dict[str, Any]] = []
        self.approvals: List[Dict[str, Any]] = []
        self.transitions: List[PhaseTransition] = []
        self._streak = 0

    @property
    def current_phase(self) -> WorkflowPhase:
        return self.phases[self.current_phase_index]

    @property
    def is_complete(self) -> bool:
        return self.current_phase_index == len(self.phases) - 1

    @property
    def progress(self) -> float:
        return self.current_phase_index / len(self.phases)

    def advance(self, completed_phase_label: str) -> Optional[PhaseTransition]:
        if self.is_complete:
            logger.debug("Workflow already complete, ignoring advance(%s)", completed_phase_label)
            return None

        previous = self.current_phase
        self.current_phase_index = min(self.current_phase_index + 1, len(self.phases) - 1)
        self.phase_start_time = self._clock()
        self._streak = 0

        transition = PhaseTransition(
            from_phase=previous,
            to_phase=self.current_phase,
            completed_label=completed_phase_label,
            progress=self.progress,
            timestamp=self.phase_start_time,
        )
        self.transitions.append(transition)
        logger.info("Workflow phase %s -> %s (%s)", previous.value, self.current_phase.value, completed_phase_label)
        return transition

    def complete(self, completed_phase_label: str = "completion_detected") -> List[PhaseTransition]:
        """Advance step by step until the terminal phase"""
        transitions = []
        while not self.is_complete:
            transitions.append(self.advance(completed_phase_label))
        return transitions

    def record_progress_marker(self, marker_type: str) -> List[PhaseTransition]:
        if self.is_complete:
            return []
        if marker_type == COMPLETION_MARKER:
            return self.complete(f"{marker_type}_marker")

        rule = PROGRESS_RULES.get(self.current_phase)
        if rule is None:
            return []
        markers, needed = rule
        if marker_type not in markers:
            self._streak = 0
            return []

        self._streak += 1
        if self._streak >= needed:
            return [self.advance(f"{marker_type}_markers")]
        return []

    def record_intervention(self, entry: Dict[str, Any]):
        self.interventions.append({**entry, "phase": self.current_phase.value, "timestamp": self._clock()})

    def record_approval(self, entry: Dict[str, Any]):
        self.approvals.append({**entry, "phase": self.current_phase.value, "timestamp": self._clock()})

    def get_status(self) -> Dict[str, Any]:
        return {
            "phase": self.current_phase.value,
            "phase_index": self.current_phase_index,
            "phase_count": len(self.phases),
            "progress": self.progress,
            "phase_duration": self._clock() - self.phase_start_time,
            "interventions": len(self.interventions),
            "approvals": len(self.approvals),
            "is_complete": self.is_complete,
        }
