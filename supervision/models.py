"""
Data model shared by the supervision components
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Pattern, Set, Tuple
import time


class IssueCategory(Enum):
    """Kinds of signal detected in assistant output"""
    CONFUSION = "confusion"
    QUESTION = "question"
    PERMISSION = "permission"
    ERROR = "error"
    PROGRESS = "progress"


class Severity(Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SupervisionMode(Enum):
    """How eagerly decisions are auto-delivered"""
    STRICT = "strict"
    BALANCED = "balanced"
    PERMISSIVE = "permissive"
    AUTO = "auto"


class RequestShape(Enum):
    """What the assistant is asking for"""
    PROCEDURAL = "procedural"
    TECHNICAL_CHOICE = "technical_choice"
    PREFERENCE = "preference"
    INFORMATIONAL = "informational"


class DecisionKind(Enum):
    CONTEXT_INJECTION = "context_injection"
    AUTO_APPROVE = "auto_approve"
    ANSWER = "answer"
    ERROR_RECOVERY = "error_recovery"
    SUPPRESSED = "suppressed"


class WorkflowPhase(Enum):
    """Project delivery phases, in order"""
    PRD_ANALYSIS = "prd_analysis"
    CLAUDE_MD_CREATION = "claude_md_creation"
    CLAUDE_CODE_LAUNCH = "claude_code_launch"
    REQUIREMENTS_RESOLUTION = "requirements_resolution"
    IMPLEMENTATION = "implementation"
    VALIDATION = "validation"
    COMPLETION = "completion"


PHASE_ORDER: Tuple[WorkflowPhase, ...] = tuple(WorkflowPhase)


@dataclass(frozen=True)
class PatternRule:
    """One entry of the pattern catalog"""
    category: IssueCategory
    severity: Severity
    matcher: Pattern
    type_tag: str


@dataclass(frozen=True)
class Issue:
    """A single rule match against a single output line"""
    category: IssueCategory
    type_tag: str
    severity: Severity
    confidence: float
    matched_text: str
    context_excerpt: str
    timestamp: float = field(default_factory=time.time)
    intervention_required: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "type_tag": self.type_tag,
            "severity": self.severity.value,
            "confidence": round(self.confidence, 3),
            "matched_text": self.matched_text,
            "context_excerpt": self.context_excerpt,
            "timestamp": self.timestamp,
            "intervention_required": self.intervention_required,
        }


@dataclass
class ProjectContext:
    """What the supervisor knows about the project being worked on"""
    working_directory: str
    instruction_text: Optional[str] = None
    requirements_text: Optional[str] = None
    requirements: List[str] = field(default_factory=list)
    project_type: str = "general"
    frameworks: Set[str] = field(default_factory=set)
    has_tests: bool = False
    has_component_dir: bool = False
    has_lint_config: bool = False
    instruction_path: Optional[str] = None
    instruction_created: bool = False
    structure: Dict[str, str] = field(default_factory=dict)

    @property
    def primary_framework(self) -> str:
        if not self.frameworks:
            return "JavaScript" if self.project_type in ("react", "webapp", "api") else "unspecified"
        return sorted(self.frameworks)[0]


@dataclass(frozen=True)
class Decision:
    """Outcome of the decision engine for one intervention"""
    response_text: str
    confidence: float
    rationale: str
    kind: DecisionKind
    rule_matched: Optional[str] = None
    conditions_satisfied: Tuple[str, ...] = ()
    escalate: bool = False
    shape: Optional[RequestShape] = None
    category: Optional[IssueCategory] = None
    type_tag: Optional[str] = None

    @property
    def suppressed(self) -> bool:
        return self.kind is DecisionKind.SUPPRESSED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "response_text": self.response_text,
            "confidence": round(self.confidence, 3),
            "rationale": self.rationale,
            "kind": self.kind.value,
            "rule_matched": self.rule_matched,
            "conditions_satisfied": list(self.conditions_satisfied),
            "escalate": self.escalate,
            "shape": self.shape.value if self.shape else None,
            "category": self.category.value if self.category else None,
            "type_tag": self.type_tag,
        }


@dataclass(frozen=True)
class DecisionHistoryEntry:
    timestamp: float
    question_text: str
    decision: Decision
    confidence: float
    rationale: str


@dataclass(frozen=True)
class PhaseTransition:
    """A single forward step of the workflow"""
    from_phase: WorkflowPhase
    to_phase: WorkflowPhase
    completed_label: str
    progress: float
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from_phase": self.from_phase.value,
            "to_phase": self.to_phase.value,
            "completed_label": self.completed_label,
            "progress": self.progress,
        }


@dataclass
class InterventionPoint:
    """A line that warranted intervention, and whether it was dealt with"""
    timestamp: float
    line: str
    intervention_type: str
    categories: List[str] = field(default_factory=list)
    addressed: bool = False


@dataclass
class LogEntry:
    timestamp: float
    stream: str
    content: str
