"""
Rich console rendering for supervision events and status
"""

from typing import Any, Dict, List
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from supervision.events import EventType, SupervisionEvent
from supervision.models import Issue


EVENT_STYLES = {
    EventType.SUPERVISION_STARTED: ("🚀", "blue"),
    EventType.INTERVENTION_REQUIRED: ("⚠️ ", "yellow"),
    EventType.INTERVENTION_DELIVERED: ("📨", "green"),
    EventType.QUESTION_ANSWERED: ("💬", "green"),
    EventType.PERMISSION_GRANTED: ("✅", "green"),
    EventType.WORKFLOW_PHASE_ADVANCED: ("📈", "cyan"),
    EventType.CLAUDE_CODE_ERROR: ("❌", "red"),
    EventType.MANUAL_REVIEW_REQUIRED: ("🛑", "magenta"),
    EventType.RESPONSE_READY: ("📝", "bold green"),
    EventType.PROCESS_EXITED: ("🏁", "blue"),
    EventType.SUPERVISION_COMPLETE: ("🏁", "blue"),
}


class SupervisionInterface:
    """Prints what the supervisor sees and does"""

    def __init__(self, console: Console, verbose: bool = False):
        self.console = console
        self.verbose = verbose

    def on_event(self, event: SupervisionEvent):
        if event.type is EventType.PROGRESS_MARKER and not self.verbose:
            return
        icon, style = EVENT_STYLES.get(event.type, ("•", "white"))
        self.console.print(f"[{style}]{icon} {event.type.value}[/{style}] {self._describe(event)}")

        if event.type is EventType.RESPONSE_READY:
            self.console.print(Panel(event.payload.get("response", ""), title="Suggested response", expand=False))

    def _describe(self, event: SupervisionEvent) -> str:
        payload = event.payload
        if event.type is EventType.INTERVENTION_REQUIRED:
            return f"({payload.get('intervention_type')}) {payload.get('line', '').strip()[:100]}"
        if event.type is EventType.INTERVENTION_DELIVERED:
            return f"{payload.get('kind')} via {payload.get('delivery')} (confidence {payload.get('confidence')})"
        if event.type is EventType.WORKFLOW_PHASE_ADVANCED:
            return f"{payload.get('from_phase')} → {payload.get('to_phase')} ({payload.get('progress', 0):.0%})"
        if event.type is EventType.CLAUDE_CODE_ERROR:
            return f"[{payload.get('kind')}] {payload.get('error_type') or payload.get('error', '')}"
        if event.type is EventType.MANUAL_REVIEW_REQUIRED:
            decision = payload.get("decision", {})
            return f"{decision.get('rationale', '')} (confidence {decision.get('confidence')})"
        if event.type is EventType.PROGRESS_MARKER:
            return payload.get("marker", "")
        if event.type is EventType.PROCESS_EXITED:
            return f"exit code {payload.get('exit_code')}, {len(payload.get('unresolved_questions', []))} open questions"
        return ""

    def show_status(self, status: Dict[str, Any]):
        table = Table(title=f"Supervision Session {status['session_id']}")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="white")

        workflow = status["workflow"]
        table.add_row("State", status["state"])
        table.add_row("Mode", status["mode"])
        table.add_row("Phase", f"{workflow['phase']} ({workflow['progress']:.0%})")
        for key, value in status["stats"].items():
            if key == "session_duration":
                value = f"{value:.1f}s"
            table.add_row(key.replace("_", " ").title(), str(value))

        context = status["context"]
        table.add_row("CLAUDE.md", "found" if context.get("has_claude_md") else "missing")
        table.add_row("Requirements", str(context.get("requirement_count", 0)))
        table.add_row("Project Type", str(context.get("project_type")))
        table.add_row("Frameworks", ", ".join(context.get("frameworks", [])) or "-")

        self.console.print(table)

    def show_issues(self, line: str, issues: List[Issue]):
        if not issues:
            self.console.print(f"[dim]No issues:[/dim] {line}")
            return
        table = Table(title=line[:80])
        table.add_column("Category", style="cyan")
        table.add_column("Type", style="white")
        table.add_column("Severity", style="yellow")
        table.add_column("Confidence", style="green")
        table.add_column("Intervene", style="red")
        for issue in issues:
            table.add_row(
                issue.category.value,
                issue.type_tag,
                issue.severity.value,
                f"{issue.confidence:.2f}",
                "yes" if issue.intervention_required else "no",
            )
        self.console.print(table)
