"""
Pattern catalog and classifier for coding-assistant output
"""

from collections import deque
from typing import Callable, Deque, Iterable, List, Optional, Sequence, Tuple
import logging
import re
import time

from .models import Issue, IssueCategory, PatternRule, Severity


logger = logging.getLogger(__name__)

C, Q, P, E, G = (
    IssueCategory.CONFUSION,
    IssueCategory.QUESTION,
    IssueCategory.PERMISSION,
    IssueCategory.ERROR,
    IssueCategory.PROGRESS,
)
HIGH, MEDIUM, LOW = Severity.HIGH, Severity.MEDIUM, Severity.LOW

# (category, severity, regex, type tag)
PATTERN_TABLE: Tuple[Tuple[IssueCategory, Severity, str, str], ...] = (
    (C, HIGH, r"could you (please )?clarify", "clarification_needed"),
    (C, HIGH, r"what specific.*requirements.*referring to", "requirements_missing"),
    (C, HIGH, r"cannot find.*claude\.md", "claude_md_missing"),
    (C, HIGH, r"no requirements.*found", "requirements_not_found"),
    (C, HIGH, r"i (don't|do not) understand", "general_confusion"),
    (C, HIGH, r"missing.*(context|information about the project)", "incomplete_context"),
    (C, MEDIUM, r"i'm not sure|i am not sure", "uncertainty"),
    (C, MEDIUM, r"unclear what", "unclear_instructions"),
    (C, MEDIUM, r"need more information", "missing_information"),
    (C, MEDIUM, r"what.*should.*i.*do", "direction_needed"),

    (Q, HIGH, r"which.*file.*should", "file_selection"),
    (Q, HIGH, r"where.*should.*i.*(create|put|place)", "location_question"),
    (Q, HIGH, r"how.*should.*i.*implement", "implementation_question"),
    (Q, HIGH, r"what.*is.*the.*next.*step", "next_step_question"),
    (Q, HIGH, r"(should i use|which (framework|library|approach|database)).*\?\s*$", "choice_question"),
    (Q, HIGH, r"(shall|should) i (proceed|continue|go ahead).*\?\s*$", "proceed_question"),
    (Q, HIGH, r"(what|which|who).*(style|design|theme|audience|target users|features).*\?\s*$", "preference_question"),

    (P, HIGH, r"permission.*to.*create", "create_permission"),
    (P, HIGH, r"permission.*to.*(modify|edit|update)", "modify_permission"),
    (P, HIGH, r"permission.*to.*(delete|remove)", "delete_permission"),
    (P, HIGH, r"\bmay i (create|implement|add|modify|update|write|delete|remove|run|install)\b", "permission_prompt"),
    (P, HIGH, r"do you want me to", "permission_prompt"),
    (P, HIGH, r"would you like me to", "action_confirmation"),

    (E, MEDIUM, r"\berror:", "generic_error"),
    (E, MEDIUM, r"failed to", "failure"),
    (E, MEDIUM, r"command not found", "command_not_found"),
    (E, HIGH, r"file not found|cannot find module", "file_not_found"),
    (E, HIGH, r"no such file or directory|enoent", "path_error"),
    (E, HIGH, r"permission denied|eacces|eperm", "permission_denied"),
    (E, HIGH, r"timed? ?out\b|etimedout", "timeout"),
    (E, MEDIUM, r"econnrefused|network error|connection (refused|reset)", "network_error"),
    (E, MEDIUM, r"\bnpm (err!|error)|module not found|dependency.*(failed|missing)", "dependency_error"),
    (E, HIGH, r"syntax ?error|unexpected token|parse error", "syntax_error"),
    (E, HIGH, r"claude.*(command )?not found|claude.*not installed", "claude_cli_missing"),
    (E, HIGH, r"api key.*(invalid|missing)|invalid.*api key|authentication failed", "api_key_error"),
    (E, MEDIUM, r"rate limit|too many requests", "rate_limit"),

    (G, LOW, r"creat(ing|ed)\s+(.*\bfiles?\b|\S+\.\w{1,6}\b)", "file_creation"),
    (G, LOW, r"\bimplementing\b", "implementation"),
    (G, LOW, r"writing.*code", "coding"),
    (G, LOW, r"\b(running|writing)?\s*tests?\b.*\b(pass(ed|ing)?|running)\b|\btesting\b", "testing"),
    (G, LOW, r"\b(implementation|task|project|all tasks|everything)\b.*\b(completed?|finished|done)\b", "completion"),
)

HIGH_VALUE_PHRASES: Tuple[str, ...] = ("could you please clarify",)

BASE_CONFIDENCE = 0.5
EXTRA_MATCH_BONUS = 0.1
HIGH_SEVERITY_BONUS = 0.2
HIGH_VALUE_BONUS = 0.3
MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 1.0
EXCERPT_RADIUS = 50
SEVERITY_RANK = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}
# Catch-all tags that lose to a more specific match on the same line
GENERIC_TAGS = frozenset({"generic_error", "failure"})


def compile_catalog(table: Iterable[Tuple[IssueCategory, Severity, str, str]]) -> Tuple[PatternRule, ...]:
    """Compile a declarative rule table into an immutable catalog"""
    return tuple(
        PatternRule(category=category, severity=severity,
                    matcher=re.compile(regex, re.IGNORECASE), type_tag=tag)
        for category, severity, regex, tag in table
    )


# Shared read-only by every session
PATTERN_CATALOG: Tuple[PatternRule, ...] = compile_catalog(PATTERN_TABLE)


def score_confidence(line: str, matched: Sequence[PatternRule]) -> float:
    if not matched:
        return MIN_CONFIDENCE
    confidence = BASE_CONFIDENCE + EXTRA_MATCH_BONUS * (len(matched) - 1)
    if any(rule.severity is Severity.HIGH for rule in matched):
        confidence += HIGH_SEVERITY_BONUS
    lowered = line.lower()
    if any(phrase in lowered for phrase in HIGH_VALUE_PHRASES):
        confidence += HIGH_VALUE_BONUS
    return max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, confidence))


def excerpt(line: str, start: int, end: int, radius: int = EXCERPT_RADIUS) -> str:
    return line[max(0, start - radius):end + radius].strip()


class PatternClassifier:
    """Classify output lines against the pattern catalog.

    Each session owns one classifier. Apart from the trailing recurrence
    window used to escalate repeated medium/low issues, ``analyze`` is a pure
    function of the line.
    """

    def __init__(self,
                 catalog: Tuple[PatternRule, ...] = PATTERN_CATALOG,
                 recurrence_window: float = 300.0,
                 recurrence_threshold: int = 2,
                 clock: Callable[[], float] = time.time):
        self.catalog = catalog
        self.recurrence_window = recurrence_window
        self.recurrence_threshold = recurrence_threshold
        self._clock = clock
        self._occurrences: Deque[Tuple[IssueCategory, float]] = deque()

    def analyze(self, line: str) -> List[Issue]:
        text = line.strip()
        if not text:
            return []

        hits = []
        for rule in self.catalog:
            match = rule.matcher.search(text)
            if match:
                hits.append((rule, match))
        if not hits:
            return []

        now = self._clock()
        matched_rules = [rule for rule, _ in hits]
        confidence = score_confidence(text, matched_rules)
        any_high = any(rule.severity is Severity.HIGH for rule in matched_rules)
        recurring = self._recurring_categories({rule.category for rule in matched_rules}, now)

        issues = []
        for rule, match in hits:
            required = (
                any_high
                or rule.category is IssueCategory.PERMISSION
                or rule.category in recurring
            )
            issues.append(Issue(
                category=rule.category,
                type_tag=rule.type_tag,
                severity=rule.severity,
                confidence=confidence,
                matched_text=match.group(0),
                context_excerpt=excerpt(text, match.start(), match.end()),
                timestamp=now,
                intervention_required=required,
            ))
        return issues

    def _recurring_categories(self, categories, now: float):
        cutoff = now - self.recurrence_window
        while self._occurrences and self._occurrences[0][1] < cutoff:
            self._occurrences.popleft()

        recurring = set()
        for category in categories:
            if category is IssueCategory.PROGRESS:
                continue
            prior = sum(1 for seen, _ in self._occurrences if seen is category)
            if prior >= self.recurrence_threshold:
                recurring.add(category)
                logger.debug("Recurring %s issue (%d in window)", category.value, prior)
            self._occurrences.append((category, now))
        return recurring

    def reset(self):
        self._occurrences.clear()


def primary_issue(issues: Sequence[Issue]) -> Optional[Issue]:
    """Pick the issue that should drive the intervention"""
    if not issues:
        return None

    def rank(issue: Issue) -> Tuple[int, int, bool]:
        return _category_rank(issue), SEVERITY_RANK[issue.severity], issue.type_tag in GENERIC_TAGS

    return min(issues, key=rank)


def _category_rank(issue: Issue) -> int:
    if issue.category is IssueCategory.PERMISSION:
        return 0
    if issue.category is IssueCategory.CONFUSION and issue.severity is Severity.HIGH:
        return 1
    if issue.category is IssueCategory.QUESTION:
        return 2
    if issue.category is IssueCategory.ERROR:
        return 3
    if issue.category is IssueCategory.CONFUSION:
        return 4
    return 5


def intervention_type(issues: Sequence[Issue]) -> str:
    categories = {issue.category for issue in issues}
    if IssueCategory.PERMISSION in categories:
        return "permission_request"
    if any(i.category is IssueCategory.CONFUSION and i.severity is Severity.HIGH for i in issues):
        return "critical_confusion"
    if IssueCategory.QUESTION in categories:
        return "question_response"
    if IssueCategory.ERROR in categories:
        return "error_recovery"
    return "general_guidance"
