"""
Test utilities shared by the supervisor tests
"""

import shutil
import tempfile
from pathlib import Path
from typing import Dict, Optional


SAMPLE_PRD = """# Todo App

Build a small React todo application.

1. Users must be able to add todo items
2. Users should be able to mark items complete
- Persist todos in local storage between sessions
"""

SCENARIO_LINES = [
    "Starting session...",
    "Could you please clarify what requirements you mean?",
    "Creating src/app.js",
    "May I create the following files: a, b, c?",
    "Implementation completed successfully!",
]


class TempWorkspace:
    """Context manager for temporary workspace"""

    def __init__(self, prefix: str = "test_workspace_"):
        self.prefix = prefix
        self.temp_dir: Optional[Path] = None

    def __enter__(self) -> Path:
        self.temp_dir = Path(tempfile.mkdtemp(prefix=self.prefix))
        return self.temp_dir

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.temp_dir and self.temp_dir.exists():
            shutil.rmtree(self.temp_dir)


def create_project_files(workspace: Path, prd: bool = True, tests_dir: bool = False,
                         components: bool = False, lint_config: bool = False) -> Dict[str, Path]:
    """Lay out a small project in the workspace"""
    files = {}

    if prd:
        prd_file = workspace / "PRD.md"
        prd_file.write_text(SAMPLE_PRD)
        files["prd"] = prd_file

    src = workspace / "src"
    src.mkdir(exist_ok=True)
    app = src / "app.js"
    app.write_text("console.log('hello');\n")
    files["app"] = app

    if tests_dir:
        (workspace / "tests").mkdir(exist_ok=True)
    if components:
        (src / "components").mkdir(exist_ok=True)
    if lint_config:
        prettier = workspace / ".prettierrc"
        prettier.write_text("{}\n")
        files["prettier"] = prettier

    return files


class FakeClock:
    """Manually advanced clock with a matching async sleep"""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds

    async def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds
