"""
Decision Engine - turns classified issues into responses for the assistant
"""

from collections import Counter, deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Sequence, Tuple
import asyncio
import logging
import re
import time

from .context_provider import ContextProvider
from .models import (
    Decision, DecisionHistoryEntry, DecisionKind, Issue, IssueCategory,
    ProjectContext, RequestShape, SupervisionMode,
)
from .patterns import primary_issue


logger = logging.getLogger(__name__)

SAFE, CONTEXTUAL, REVIEW = "safe", "contextual", "review"

UNSATISFIED_CONDITION_FACTOR = 0.6
ESCALATION_THRESHOLD = 0.5
STRICT_THRESHOLD = 0.9
PERMISSIVE_THRESHOLD = 0.4

BASELINE_CONFIDENCE = {
    "auto_approve": 0.9,
    "context_injection": 0.8,
    "context_injection_empty": 0.45,
    "technical_choice": 0.7,
    "preference": 0.6,
    "answer": 0.65,
    "error_recovery": 0.75,
    "critical": 0.3,
}


@dataclass(frozen=True)
class DecisionRule:
    name: str
    tier: str
    pattern: "re.Pattern"
    confidence: float
    conditions: Tuple[str, ...]
    rationale: str


def _rule(name, tier, regex, confidence, conditions, rationale) -> DecisionRule:
    return DecisionRule(name, tier, re.compile(regex, re.IGNORECASE), confidence, tuple(conditions), rationale)


DECISION_RULES: Tuple[DecisionRule, ...] = (
    _rule("create_test", SAFE, r"create.*tests?\b", 0.95,
          ["has_test_directory", "follows_naming_convention"], "Test creation is always safe"),
    _rule("add_documentation", SAFE, r"add.*comments?|document", 0.9,
          ["not_removing_existing_comments"], "Documentation improves code quality"),
    _rule("format_code", SAFE, r"format.*code|prettier|lint", 0.85,
          ["has_prettier_config"], "Code formatting is safe with existing config"),
    _rule("create_component", CONTEXTUAL, r"create.*component", 0.8,
          ["matches_component_pattern", "has_component_directory"],
          "Component creation follows project patterns"),
    _rule("update_config", CONTEXTUAL, r"update.*config", 0.7,
          ["config_change_safe", "follows_project_standards"], "Configuration changes need context validation"),
    _rule("delete_files", REVIEW, r"\bdelete\b|remove.*file", 0.3,
          ["always_review_deletions"], "Deletions require manual review"),
    _rule("database_change", REVIEW, r"change.*database|modify.*schema|migration", 0.2,
          ["database_changes_require_approval"], "Database changes require approval"),
    _rule("external_integration", REVIEW, r"external.*api|third.?party", 0.4,
          ["external_apis_need_review"], "External integrations need review"),
)

PROCEDURAL_PATTERN = re.compile(
    r"\b(proceed|continue|go ahead)\b|\bshall i\b|\bmay i\b|would you like me to|do you want me to",
    re.IGNORECASE,
)
CHOICE_PATTERN = re.compile(
    r"\bshould i use\b|\bwhich (framework|library|approach|database|tool)\b|\b[\w.+#-]+\s+or\s+[\w.+#-]+\s*\?",
    re.IGNORECASE,
)
OPTIONS_PATTERN = re.compile(r"([\w.+#-]+)\s+or\s+([\w.+#-]+)", re.IGNORECASE)
PREFERENCE_PATTERN = re.compile(
    r"\b(audience|style|styling|design|theme|colou?rs?|look and feel|features?|target users|users)\b",
    re.IGNORECASE,
)
YES_NO_PROMPT = re.compile(r"[(\[]\s*y\s*/\s*n\s*[)\]]", re.IGNORECASE)
NUMBERED_YES = re.compile(r"\b1[.)]\s*(yes|proceed|continue|allow)", re.IGNORECASE)

CRITICAL_ERRORS = frozenset({"syntax_error"})

ERROR_SOLUTIONS: Dict[str, Tuple[str, ...]] = {
    "command_not_found": (
        "Check that the command is installed and on PATH",
        "Verify the command syntax",
        "Use an equivalent command that is available in this environment",
    ),
    "permission_denied": (
        "Check the file permissions on the target path",
        "Avoid running with elevated permissions; pick a location inside the project",
        "Write to a different location if this one is read-only",
    ),
    "file_not_found": (
        "Check the path relative to the working directory",
        "Create the missing file if it is part of the requirements",
        "Use an existing file with the expected name",
    ),
    "path_error": (
        "Check the path relative to the working directory",
        "Create the missing directory before writing into it",
    ),
    "timeout": (
        "Retry the operation once",
        "Break the operation into smaller steps",
    ),
    "network_error": (
        "Check network connectivity and retry",
        "Continue with the parts that do not need the network",
    ),
    "dependency_error": (
        "Install the missing dependency with the project's package manager",
        "Check the package name and version",
    ),
    "rate_limit": (
        "Wait briefly before retrying",
    ),
}
GENERIC_SOLUTIONS = (
    "Read the full error message and identify the failing step",
    "Fix the root cause rather than the symptom",
    "Re-run the step to confirm the fix",
)


def normalize_question(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace"""
    cleaned = re.sub(r"[^\w\s]", " ", text.lower())
    return " ".join(cleaned.split())


def classify_shape(line: str, issue: Optional[Issue]) -> RequestShape:
    if issue is not None and issue.category is IssueCategory.PERMISSION:
        return RequestShape.PROCEDURAL
    if issue is not None and issue.category in (IssueCategory.ERROR, IssueCategory.CONFUSION):
        return RequestShape.INFORMATIONAL
    if CHOICE_PATTERN.search(line):
        return RequestShape.TECHNICAL_CHOICE
    if PROCEDURAL_PATTERN.search(line):
        return RequestShape.PROCEDURAL
    if PREFERENCE_PATTERN.search(line):
        return RequestShape.PREFERENCE
    return RequestShape.INFORMATIONAL


class ResponseThrottle:
    """Keeps delivered responses at least ``min_interval`` seconds apart.

    Only the caller awaiting ``wait_for_slot`` is delayed; nothing is dropped.
    """

    def __init__(self, min_interval: float = 3.0,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Any] = asyncio.sleep):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last_delivery: Optional[float] = None

    async def wait_for_slot(self) -> float:
        async with self._lock:
            now = self._clock()
            if self._last_delivery is not None:
                wait = self._last_delivery + self.min_interval - now
                while wait > 0:
                    logger.debug("Rate limit: delaying response by %.2fs", wait)
                    await self._sleep(wait)
                    now = self._clock()
                    wait = self._last_delivery + self.min_interval - now
            self._last_delivery = now
            return now


class DecisionEngine:
    """Decides how the supervisor answers an intervention"""

    def __init__(self,
                 context_provider: ContextProvider,
                 mode: SupervisionMode = SupervisionMode.BALANCED,
                 history_limit: int = 100,
                 duplicate_window: float = 5.0,
                 clock: Callable[[], float] = time.time):
        self.context_provider = context_provider
        self.mode = mode
        self.duplicate_window = duplicate_window
        self._clock = clock
        self.history: Deque[DecisionHistoryEntry] = deque(maxlen=history_limit)
        self._answered: Dict[str, float] = {}
        self.stats: Dict[str, Any] = {
            "total_decisions": 0,
            "auto_approved": 0,
            "manual_review": 0,
            "suppressed": 0,
            "by_category": Counter(),
            "by_kind": Counter(),
        }

    def set_mode(self, mode: SupervisionMode):
        logger.info("Supervision mode changed: %s -> %s", self.mode.value, mode.value)
        self.mode = mode

    def decide(self, issues: Sequence[Issue], line: str,
               context: Optional[ProjectContext] = None,
               mode: Optional[SupervisionMode] = None) -> Decision:
        now = self._clock()
        normalized = normalize_question(line)

        if self._is_duplicate(normalized, now):
            self.stats["suppressed"] += 1
            logger.info("Suppressing duplicate response to: %s", line.strip()[:80])
            return Decision(
                response_text="",
                confidence=0.0,
                rationale="Same question was answered within the last %.0fs" % self.duplicate_window,
                kind=DecisionKind.SUPPRESSED,
            )

        context = context or self.context_provider.context or self.context_provider.initialize()
        mode = mode or self.mode
        issue = primary_issue(issues)
        shape = classify_shape(line, issue)

        kind, text, confidence, rationale, forced_review = self._respond(issue, shape, line, context)

        rule_matched = None
        conditions_satisfied: Tuple[str, ...] = ()
        if issue is None or issue.category in (IssueCategory.PERMISSION, IssueCategory.QUESTION):
            rule = self._match_rule(line)
            if rule is not None:
                satisfied = self.context_provider.satisfied_conditions(rule.conditions, line, context)
                unsatisfied = len(rule.conditions) - len(satisfied)
                confidence = rule.confidence * (UNSATISFIED_CONDITION_FACTOR ** unsatisfied)
                rule_matched = rule.name
                conditions_satisfied = tuple(satisfied)
                rationale = rule.rationale
                if rule.tier == REVIEW:
                    forced_review = True

        escalate = forced_review or confidence < ESCALATION_THRESHOLD
        escalate = self._apply_mode(mode, escalate, confidence, forced_review)

        decision = Decision(
            response_text=text,
            confidence=round(min(1.0, max(0.0, confidence)), 3),
            rationale=rationale,
            kind=kind,
            rule_matched=rule_matched,
            conditions_satisfied=conditions_satisfied,
            escalate=escalate,
            shape=shape,
            category=issue.category if issue else None,
            type_tag=issue.type_tag if issue else None,
        )
        self._record(decision, line, normalized, now)
        return decision

    def _apply_mode(self, mode: SupervisionMode, escalate: bool, confidence: float, forced_review: bool) -> bool:
        if forced_review:
            return True
        if mode is SupervisionMode.STRICT:
            return escalate or confidence < STRICT_THRESHOLD
        if mode is SupervisionMode.PERMISSIVE and escalate and confidence > PERMISSIVE_THRESHOLD:
            return False
        return escalate

    def _match_rule(self, line: str) -> Optional[DecisionRule]:
        best = None
        for rule in DECISION_RULES:
            if not rule.pattern.search(line):
                continue
            # Review rules win over any auto-respond match
            if rule.tier == REVIEW:
                return rule
            if best is None or rule.confidence > best.confidence:
                best = rule
        return best

    def _respond(self, issue: Optional[Issue], shape: RequestShape, line: str, context: ProjectContext):
        """Returns (kind, text, confidence, rationale, forced_review)"""
        if issue is not None and issue.category is IssueCategory.ERROR:
            return self._error_recovery(issue, context)
        if issue is not None and issue.category is IssueCategory.CONFUSION:
            return self._context_injection(issue, context)
        if shape is RequestShape.PROCEDURAL:
            return (DecisionKind.AUTO_APPROVE, self._affirmative(line),
                    BASELINE_CONFIDENCE["auto_approve"], "Routine request to proceed", False)
        if shape is RequestShape.TECHNICAL_CHOICE:
            return (DecisionKind.ANSWER, self._technical_choice(line, context),
                    BASELINE_CONFIDENCE["technical_choice"], "Picked an option consistent with the project", False)
        if shape is RequestShape.PREFERENCE:
            return (DecisionKind.ANSWER, self._preference(context),
                    BASELINE_CONFIDENCE["preference"], "Preference answered from the requirements", False)
        return (DecisionKind.ANSWER, self._informational(issue, context),
                BASELINE_CONFIDENCE["answer"], "Answered from project context", False)

    def _affirmative(self, line: str) -> str:
        if YES_NO_PROMPT.search(line):
            return "y"
        if NUMBERED_YES.search(line):
            return "1"
        return "Yes, please proceed."

    def _context_injection(self, issue: Issue, context: ProjectContext):
        location = f"Working directory: {context.working_directory}."
        if context.requirements:
            listed = "\n".join(f"{i}. {req}" for i, req in enumerate(context.requirements, 1))
            text = (
                "Here are the project requirements to work from:\n"
                f"{listed}\n"
                f"Project type: {context.project_type} (framework: {context.primary_framework}). {location}\n"
                "Start with requirement 1 and work through them in order."
            )
            confidence = BASELINE_CONFIDENCE["context_injection"]
            rationale = f"Injected {len(context.requirements)} requirements for {issue.type_tag}"
        else:
            instructions = context.instruction_path or "CLAUDE.md"
            text = (
                f"The project instructions are in {instructions}. "
                f"Project type: {context.project_type}. {location} "
                "Make reasonable assumptions and keep the first version small."
            )
            confidence = BASELINE_CONFIDENCE["context_injection_empty"]
            rationale = f"No requirements loaded; pointed to project instructions for {issue.type_tag}"
        return DecisionKind.CONTEXT_INJECTION, text, confidence, rationale, False

    def _error_recovery(self, issue: Issue, context: ProjectContext):
        if issue.type_tag in CRITICAL_ERRORS:
            text = (
                f"A {issue.type_tag.replace('_', ' ')} was reported: {issue.context_excerpt}. "
                "Fix the reported location before continuing."
            )
            return (DecisionKind.ERROR_RECOVERY, text, BASELINE_CONFIDENCE["critical"],
                    "Critical errors are reported, not auto-recovered", True)

        steps = ERROR_SOLUTIONS.get(issue.type_tag, GENERIC_SOLUTIONS)
        numbered = " ".join(f"{i}. {step}." for i, step in enumerate(steps, 1))
        text = (
            f"To recover from this error: {numbered} "
            f"Working directory: {context.working_directory}. Framework: {context.primary_framework}."
        )
        return (DecisionKind.ERROR_RECOVERY, text, BASELINE_CONFIDENCE["error_recovery"],
                f"Recovery guidance for {issue.type_tag}", False)

    def _technical_choice(self, line: str, context: ProjectContext) -> str:
        options = OPTIONS_PATTERN.search(line)
        if options:
            candidates = [opt.strip(".,?!") for opt in options.groups()]
            pick = candidates[0]
            for candidate in candidates:
                if candidate.lower() in context.frameworks or candidate.lower() == context.project_type:
                    pick = candidate
                    break
            return (f"I'd suggest {pick}, since it fits the {context.project_type} setup "
                    f"already described for this project.")
        if context.frameworks:
            return (f"I'd suggest staying with {context.primary_framework}, since the project "
                    "already uses it.")
        return ("I'd suggest the simplest option that satisfies the requirements, since nothing "
                "in the project calls for more.")

    def _preference(self, context: ProjectContext) -> str:
        if context.requirements:
            return (f"The requirements describe a {context.project_type} project: {context.requirements[0]}. "
                    "Anything consistent with that works, so use your judgment on the details.")
        return ("There are no stated preferences for this. Keep it simple and consistent with the "
                "existing code, and use your judgment on the details.")

    def _informational(self, issue: Optional[Issue], context: ProjectContext) -> str:
        tag = issue.type_tag if issue else ""
        if tag == "file_selection":
            return ("Current project structure:\n"
                    f"{self.context_provider.format_structure()}\n"
                    "Work in the files that match the requirement you are implementing.")
        if tag == "location_question":
            if context.has_component_dir:
                target = "the existing components directory"
            elif "src" in context.structure:
                target = "the src/ directory"
            else:
                target = "the project root"
            return f"Create new files in {target} under {context.working_directory}."
        if tag == "implementation_question":
            return (f"Follow {context.primary_framework} conventions for a {context.project_type} project "
                    "and keep the implementation minimal until the requirements are met.")
        if tag == "next_step_question" and context.requirements:
            upcoming = "; ".join(context.requirements[:3])
            return f"Next, work on the remaining requirements: {upcoming}."
        return (f"Working directory: {context.working_directory}. "
                f"Framework: {context.primary_framework}. Continue with the requirements in CLAUDE.md.")

    def _is_duplicate(self, normalized: str, now: float) -> bool:
        expired = [key for key, ts in self._answered.items() if now - ts > self.duplicate_window]
        for key in expired:
            del self._answered[key]
        return bool(normalized) and normalized in self._answered

    def release(self, line: str):
        """Forget that a question was answered, e.g. when the answer never arrived"""
        if self._answered.pop(normalize_question(line), None) is not None:
            logger.debug("Released answered question: %s", line.strip()[:80])

    def _record(self, decision: Decision, line: str, normalized: str, now: float):
        self.history.append(DecisionHistoryEntry(
            timestamp=now,
            question_text=line.strip(),
            decision=decision,
            confidence=decision.confidence,
            rationale=decision.rationale,
        ))
        self.stats["total_decisions"] += 1
        self.stats["by_kind"][decision.kind.value] += 1
        if decision.category is not None:
            self.stats["by_category"][decision.category.value] += 1
        if decision.escalate:
            self.stats["manual_review"] += 1
        else:
            self.stats["auto_approved"] += 1
            self._answered[normalized] = now
        logger.info(
            "Decision %s (confidence %.2f, escalate=%s): %s",
            decision.kind.value, decision.confidence, decision.escalate, decision.rationale,
        )

    def get_decision_history(self, limit: int = 10) -> List[DecisionHistoryEntry]:
        return list(self.history)[-limit:]

    def get_statistics(self) -> Dict[str, Any]:
        total = self.stats["total_decisions"]
        return {
            "total_decisions": total,
            "auto_approved": self.stats["auto_approved"],
            "manual_review": self.stats["manual_review"],
            "suppressed": self.stats["suppressed"],
            "auto_approval_rate": self.stats["auto_approved"] / total if total else 0.0,
            "by_category": dict(self.stats["by_category"]),
            "by_kind": dict(self.stats["by_kind"]),
            "mode": self.mode.value,
        }
