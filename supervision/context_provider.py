"""
Context Provider - project knowledge used to ground supervisor responses
"""

from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
import logging
import re

from .models import ProjectContext


logger = logging.getLogger(__name__)

INSTRUCTION_PATHS = ("CLAUDE.md", ".claude/CLAUDE.md", "docs/CLAUDE.md")
REQUIREMENTS_PATHS = ("PRD.md", "requirements.md", "docs/PRD.md", "docs/requirements.md")
TEST_DIRS = ("test", "tests", "__tests__", "spec")
COMPONENT_DIRS = ("components", "src/components", "app/components")
LINT_CONFIG_FILES = (
    ".prettierrc", ".prettierrc.json", "prettier.config.js",
    ".eslintrc", ".eslintrc.js", ".eslintrc.json", "eslint.config.js",
    ".flake8", "ruff.toml", ".editorconfig",
)
IGNORED_ENTRIES = ("node_modules", "__pycache__")

MAX_REQUIREMENTS = 20
MIN_REQUIREMENT_LENGTH = 10
OVERVIEW_LINES = 5

REQUIREMENT_MARKER = re.compile(r"^\s*(\d+[.)]|[-•*])\s*")
REQUIREMENT_KEYWORD = re.compile(r"\b(must|should)\b", re.IGNORECASE)

# First matching group wins
PROJECT_TYPES: Tuple[Tuple[str, str], ...] = (
    ("react", r"\breact\b|\bcomponents?\b"),
    ("api", r"\bapi\b|\bbackend\b"),
    ("webapp", r"\bwebsite\b|\bweb app\b|\bweb application\b"),
    ("mobile", r"\bmobile\b|\bios\b|\bandroid\b"),
    ("database", r"\bdatabase\b"),
)

FRAMEWORKS: Tuple[Tuple[str, str], ...] = (
    ("react", r"\breact\b"),
    ("vue", r"\bvue(\.js)?\b"),
    ("angular", r"\bangular\b"),
    ("express", r"\bexpress(\.js)?\b"),
    ("next.js", r"\bnext\.?js\b"),
    ("django", r"\bdjango\b"),
    ("flask", r"\bflask\b"),
    ("fastapi", r"\bfastapi\b"),
)

RISK_KEYWORDS: Tuple[Tuple[str, float], ...] = (
    ("delete", 0.5),
    ("database", 0.4),
    ("config", 0.3),
    ("external", 0.3),
    ("security", 0.4),
)
BASE_RISK = 0.1
SAFE_CONFIG_RISK = 0.7


def extract_requirements(text: Optional[str], limit: int = MAX_REQUIREMENTS) -> List[str]:
    """Pull requirement bullets out of a requirements document"""
    if not text:
        return []
    requirements = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line:
            continue
        if not (REQUIREMENT_MARKER.match(line) or REQUIREMENT_KEYWORD.search(line)):
            continue
        cleaned = REQUIREMENT_MARKER.sub("", line, count=1).strip()
        if len(cleaned) > MIN_REQUIREMENT_LENGTH:
            requirements.append(cleaned)
        if len(requirements) >= limit:
            break
    return requirements


def identify_project_type(text: str) -> str:
    for project_type, pattern in PROJECT_TYPES:
        if re.search(pattern, text, re.IGNORECASE):
            return project_type
    return "general"


def identify_frameworks(text: str) -> set:
    return {name for name, pattern in FRAMEWORKS if re.search(pattern, text, re.IGNORECASE)}


def assess_risk_level(text: str) -> float:
    lowered = (text or "").lower()
    risk = BASE_RISK + sum(weight for word, weight in RISK_KEYWORDS if word in lowered)
    return min(risk, 1.0)


# Condition predicates receive the project context and the request text
ConditionPredicate = Callable[[ProjectContext, str], bool]

CONDITION_PREDICATES: Dict[str, ConditionPredicate] = {
    "has_test_directory": lambda ctx, text: ctx.has_tests,
    "has_component_directory": lambda ctx, text: ctx.has_component_dir,
    "has_lint_config": lambda ctx, text: ctx.has_lint_config,
    "has_prettier_config": lambda ctx, text: ctx.has_lint_config,
    "has_requirements": lambda ctx, text: bool(ctx.requirements),
    "has_instruction_file": lambda ctx, text: ctx.instruction_text is not None,
    "follows_naming_convention": lambda ctx, text: True,
    "matches_component_pattern": lambda ctx, text: ctx.project_type == "react" or "react" in ctx.frameworks,
    "not_removing_existing_comments": lambda ctx, text: not re.search(r"remov\w*.*comment", text, re.IGNORECASE),
    "config_change_safe": lambda ctx, text: assess_risk_level(text) < SAFE_CONFIG_RISK,
    "follows_project_standards": lambda ctx, text: True,
    "external_apis_need_review": lambda ctx, text: assess_risk_level(text) <= 0.5,
    # Always require a human
    "always_review_deletions": lambda ctx, text: False,
    "database_changes_require_approval": lambda ctx, text: False,
}

ALWAYS_REVIEW_CONDITIONS = frozenset({"always_review_deletions", "database_changes_require_approval"})


class ContextProvider:
    """Loads requirements and project instructions and inspects the project root"""

    def __init__(self, project_root, instruction_filename: str = "CLAUDE.md"):
        self.project_root = Path(project_root).resolve()
        self.instruction_filename = instruction_filename
        self.context: Optional[ProjectContext] = None
        self._requirements_override: Optional[str] = None

    def initialize(self, requirements_text: Optional[str] = None) -> ProjectContext:
        """Build the project context for a session"""
        self._requirements_override = requirements_text
        if requirements_text is None:
            requirements_text = self._read_first(REQUIREMENTS_PATHS)

        instruction_path = self._find_first(self._instruction_candidates())
        instruction_text = self._read(instruction_path) if instruction_path else None

        requirements = extract_requirements(requirements_text)
        for extra in extract_requirements(instruction_text):
            if len(requirements) >= MAX_REQUIREMENTS:
                break
            if extra not in requirements:
                requirements.append(extra)

        corpus = "\n".join(filter(None, [requirements_text, instruction_text]))
        structure = self._scan_structure()

        self.context = ProjectContext(
            working_directory=str(self.project_root),
            instruction_text=instruction_text,
            requirements_text=requirements_text,
            requirements=requirements,
            project_type=identify_project_type(corpus),
            frameworks=identify_frameworks(corpus),
            has_tests=self._any_dir(TEST_DIRS),
            has_component_dir=self._any_dir(COMPONENT_DIRS),
            has_lint_config=any((self.project_root / name).is_file() for name in LINT_CONFIG_FILES),
            instruction_path=str(instruction_path) if instruction_path else None,
            structure=structure,
        )
        logger.info(
            "Project context loaded: %d requirements, type=%s, frameworks=%s, instructions=%s",
            len(requirements), self.context.project_type,
            ",".join(sorted(self.context.frameworks)) or "-",
            "yes" if instruction_text else "no",
        )
        return self.context

    def refresh(self) -> ProjectContext:
        created = self.context.instruction_created if self.context else False
        context = self.initialize(self._requirements_override)
        context.instruction_created = created
        return context

    def ensure_instruction_file(self) -> bool:
        """Write a CLAUDE.md from the requirements when none exists.

        Returns True when a new file was generated. Failing to write is not
        fatal: the generated text is still kept on the context so responses
        can quote it.
        """
        context = self._require_context()
        if context.instruction_text is not None:
            return False

        content = self.generate_instruction_text(context)
        target = self.project_root / self.instruction_filename
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            context.instruction_path = str(target)
            logger.info("Created %s from requirements", target)
        except OSError as e:
            logger.warning("Could not write %s: %s", target, e)

        context.instruction_text = content
        context.instruction_created = True
        return True

    def generate_instruction_text(self, context: ProjectContext) -> str:
        overview_source = (context.requirements_text or "").strip().splitlines()
        overview = "\n".join(overview_source[:OVERVIEW_LINES]) or "No requirements document was provided."
        if context.requirements:
            numbered = "\n".join(f"{i}. {req}" for i, req in enumerate(context.requirements, 1))
        else:
            numbered = "No explicit requirements were found. Ask for clarification before large changes."

        return (
            "# Project Instructions\n\n"
            "## Overview\n"
            f"{overview}\n\n"
            "## Requirements\n"
            f"{numbered}\n\n"
            "## Project Details\n"
            f"- **Type**: {context.project_type}\n"
            f"- **Framework**: {context.primary_framework}\n"
            f"- **Working Directory**: {context.working_directory}\n\n"
            "## Supervision Context\n"
            "This session is supervised. Follow the requirements above, keep changes focused "
            "and prefer existing project conventions.\n\n"
            f"_Generated: {datetime.now().isoformat(timespec='seconds')}_\n"
        )

    def check_conditions(self, conditions: Iterable[str], request_text: str = "",
                         context: Optional[ProjectContext] = None) -> bool:
        """True when every named condition holds. Unknown names are ignored."""
        context = context or self._require_context()
        for name in conditions:
            predicate = CONDITION_PREDICATES.get(name)
            if predicate is not None and not predicate(context, request_text):
                return False
        return True

    def satisfied_conditions(self, conditions: Sequence[str], request_text: str = "",
                             context: Optional[ProjectContext] = None) -> List[str]:
        context = context or self._require_context()
        satisfied = []
        for name in conditions:
            predicate = CONDITION_PREDICATES.get(name)
            if predicate is None or predicate(context, request_text):
                satisfied.append(name)
        return satisfied

    def get_context_summary(self) -> Dict[str, object]:
        context = self.context
        if context is None:
            return {
                "has_claude_md": False,
                "has_requirements": False,
                "project_type": None,
                "frameworks": [],
                "requirement_count": 0,
            }
        return {
            "has_claude_md": context.instruction_text is not None,
            "claude_md_created": context.instruction_created,
            "has_requirements": bool(context.requirements),
            "project_type": context.project_type,
            "frameworks": sorted(context.frameworks),
            "requirement_count": len(context.requirements),
            "has_tests": context.has_tests,
            "has_component_dir": context.has_component_dir,
            "has_lint_config": context.has_lint_config,
        }

    def format_structure(self, limit: int = 15) -> str:
        context = self._require_context()
        entries = sorted(context.structure.items(), key=lambda item: (item[1] != "directory", item[0]))
        lines = [f"- {name}/" if kind == "directory" else f"- {name}" for name, kind in entries[:limit]]
        return "\n".join(lines) if lines else "(empty project directory)"

    def _instruction_candidates(self) -> List[str]:
        candidates = [self.instruction_filename]
        candidates.extend(p for p in INSTRUCTION_PATHS if p != self.instruction_filename)
        return candidates

    def _require_context(self) -> ProjectContext:
        if self.context is None:
            self.initialize()
        return self.context

    def _find_first(self, relative_paths: Iterable[str]) -> Optional[Path]:
        for rel in relative_paths:
            path = self.project_root / rel
            if path.is_file():
                return path
        return None

    def _read_first(self, relative_paths: Iterable[str]) -> Optional[str]:
        path = self._find_first(relative_paths)
        return self._read(path) if path else None

    def _read(self, path: Path) -> Optional[str]:
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read %s: %s", path, e)
            return None

    def _any_dir(self, relative_paths: Iterable[str]) -> bool:
        return any((self.project_root / rel).is_dir() for rel in relative_paths)

    def _scan_structure(self) -> Dict[str, str]:
        structure = {}
        try:
            entries = list(self.project_root.iterdir())
        except OSError as e:
            logger.warning("Could not list %s: %s", self.project_root, e)
            return structure
        for entry in entries:
            if entry.name.startswith(".") or entry.name in IGNORED_ENTRIES:
                continue
            structure[entry.name] = "directory" if entry.is_dir() else "file"
        return structure
