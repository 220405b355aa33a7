"""
Supervision Session - runs one supervised coding-assistant session end to end
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple
import asyncio
import logging
import time
import uuid

from .config import SupervisionConfig
from .context_provider import ContextProvider
from .decision_engine import DecisionEngine, ResponseThrottle
from .delivery import DeliveryAdapter, DeliveryCapability, DirectInputDelivery, EmitOnlyDelivery
from .events import EventChannel, EventType, SupervisionEvent
from .exceptions import SessionStateError, SupervisionSetupError
from .models import Decision, DecisionKind, Issue, IssueCategory, ProjectContext, SupervisionMode
from .patterns import PatternClassifier, primary_issue
from .stream_monitor import StreamMonitor
from .terminal import Terminal
from .workflow import WorkflowTracker


logger = logging.getLogger(__name__)

TERMINATE_TIMEOUT = 5.0
EOF_GRACE_PERIOD = 1.0
CRITICAL_ERROR_TAGS = frozenset({"syntax_error"})


class SessionState(Enum):
    CREATED = "created"
    ACTIVE = "active"
    STOPPED = "stopped"


@dataclass
class SessionStats:
    """Running counters for a session"""
    interventions: int = 0
    questions_answered: int = 0
    approvals: int = 0
    context_injections: int = 0
    manual_reviews: int = 0
    errors_reported: int = 0
    responses_delivered: int = 0
    started_at: float = field(default_factory=time.time)
    ended_at: Optional[float] = None

    @property
    def session_duration(self) -> float:
        return (self.ended_at or time.time()) - self.started_at

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["session_duration"] = self.session_duration
        return data


class SupervisionSession:
    """Composes monitor, classifier, decision engine and workflow for one session.

    A session either owns the assistant process (spawned from a command, with
    responses written to its stdin, or to its pseudo-terminal when
    ``use_pty`` is set) or only observes output pushed through
    ``feed``, in which case responses are emitted as ``responseReady`` events
    for an external input mechanism.
    """

    def __init__(self,
                 project_root,
                 config: Optional[SupervisionConfig] = None,
                 channel: Optional[EventChannel] = None,
                 delivery: Optional[DeliveryAdapter] = None,
                 throttle: Optional[ResponseThrottle] = None,
                 session_id: Optional[str] = None):
        self.config = config or SupervisionConfig()
        self.project_root = Path(project_root).resolve()
        self.session_id = session_id or f"supervision_{uuid.uuid4().hex[:8]}"
        self.channel = channel or EventChannel()
        self.delivery = delivery

        self.context_provider = ContextProvider(self.project_root, self.config.instruction_filename)
        self.classifier = PatternClassifier(
            recurrence_window=self.config.recurrence_window,
            recurrence_threshold=self.config.recurrence_threshold,
        )
        self.monitor = StreamMonitor(self.session_id, self.classifier, self.channel, self.config.buffer_size)
        self.engine = DecisionEngine(
            self.context_provider,
            mode=self.config.mode,
            history_limit=self.config.history_limit,
            duplicate_window=self.config.duplicate_window,
        )
        self.workflow = WorkflowTracker()
        self.throttle = throttle or ResponseThrottle(self.config.min_response_interval)

        self.state = SessionState.CREATED
        self.stats = SessionStats()
        self.process: Optional[asyncio.subprocess.Process] = None
        self.owns_process = False
        self._terminal: Optional[Terminal] = None
        self._input: Optional[asyncio.StreamWriter] = None
        self.delivery_times: List[float] = []
        self._queue: "asyncio.Queue[Tuple[Decision, str, str]]" = asyncio.Queue()
        self._tasks: List[asyncio.Task] = []
        self._remediated: Set[str] = set()
        self._closed = asyncio.Event()

        self.channel.subscribe(self._on_event)

    @property
    def context(self) -> Optional[ProjectContext]:
        return self.context_provider.context

    async def start(self,
                    requirements_text: Optional[str] = None,
                    command: Optional[Sequence[str]] = None,
                    process: Optional[asyncio.subprocess.Process] = None) -> ProjectContext:
        """Load context, make sure CLAUDE.md exists and attach to the output.

        ``command`` spawns and owns the assistant. ``process`` attaches to an
        already running one without owning it. With neither, the session
        observes whatever is passed to ``feed``.
        """
        if self.state is not SessionState.CREATED:
            raise SessionStateError(f"Session {self.session_id} already {self.state.value}")

        self.state = SessionState.ACTIVE
        self.stats.started_at = time.time()
        await self.channel.publish(
            EventType.SUPERVISION_STARTED,
            self.session_id,
            project_root=str(self.project_root),
            mode=self.engine.mode.value,
        )

        context = self.context_provider.initialize(requirements_text)
        await self._advance("prd_analysis_complete")

        self.context_provider.ensure_instruction_file()
        await self._advance("claude_md_ready")

        if command:
            process = await self._spawn(list(command))
            self.owns_process = True

        if process is not None:
            self.process = process
            if self._terminal is not None:
                self.monitor.attach(self._terminal.reader)
            else:
                self.monitor.attach(process.stdout, process.stderr)
                self._input = process.stdin
            self._tasks.append(asyncio.create_task(self._liveness_loop()))

        self.delivery = self._select_delivery()
        self._tasks.append(asyncio.create_task(self._delivery_worker()))
        await self._advance("claude_code_attached")

        logger.info(
            "Supervision session %s active (%s, delivery=%s)",
            self.session_id,
            "owned process" if self.owns_process else ("attached process" if self.process else "observing"),
            self.delivery.capability.value,
            extra={"session_id": self.session_id},
        )
        return context

    async def _spawn(self, command: List[str]) -> asyncio.subprocess.Process:
        terminal = Terminal() if self.config.use_pty else None
        try:
            if terminal is not None:
                # Interactive CLIs only prompt when attached to a terminal
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdin=terminal.slave_fd,
                    stdout=terminal.slave_fd,
                    stderr=terminal.slave_fd,
                    cwd=str(self.project_root),
                    start_new_session=True,
                )
            else:
                process = await asyncio.create_subprocess_exec(
                    *command,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=str(self.project_root),
                )
        except (FileNotFoundError, PermissionError) as e:
            if terminal is not None:
                terminal.close()
            logger.error("Could not start %s: %s", command[0], e)
            self.stats.errors_reported += 1
            await self.channel.publish(
                EventType.CLAUDE_CODE_ERROR,
                self.session_id,
                kind="setup",
                error=str(e),
                command=command,
            )
            await self.stop("setup_failed")
            raise SupervisionSetupError(f"Could not start {command[0]}: {e}", command=command) from e

        if terminal is not None:
            terminal.release_child_side()
            _, self._input = await terminal.connect()
            self._terminal = terminal

        logger.info("Started %s (pid %s)", " ".join(command), process.pid)
        return process

    def _select_delivery(self) -> DeliveryAdapter:
        if self.delivery is not None:
            if isinstance(self.delivery, DirectInputDelivery) and self.delivery.writer is None and self._input is not None:
                self.delivery.bind(self._input)
            return self.delivery
        if self._input is not None and self.config.delivery == "direct":
            return DirectInputDelivery(self._input)
        return EmitOnlyDelivery(self.channel)

    async def feed(self, data, stream: str = "stdout"):
        """Push observed output into the session"""
        if self.state is not SessionState.ACTIVE:
            raise SessionStateError(f"Session {self.session_id} is {self.state.value}, cannot accept output")
        await self.monitor.feed(data, stream)

    async def end_of_input(self) -> Dict[str, Any]:
        """The observed output ended: summarize, deliver what is pending, stop"""
        summary = await self.monitor.handle_exit(None)
        await self.drain()
        await self.stop("input_closed")
        return summary

    async def drain(self):
        """Wait until every queued response has been delivered"""
        await self._queue.join()

    async def wait_closed(self):
        await self._closed.wait()

    def set_mode(self, mode: SupervisionMode):
        self.engine.set_mode(mode)

    async def _advance(self, label: str):
        transition = self.workflow.advance(label)
        if transition is not None:
            await self._publish_transition(transition)

    async def _publish_transition(self, transition):
        await self.channel.publish(EventType.WORKFLOW_PHASE_ADVANCED, self.session_id, **transition.to_dict())

    async def _on_event(self, event: SupervisionEvent):
        if event.session_id != self.session_id or self.state is not SessionState.ACTIVE:
            return
        if event.type is EventType.INTERVENTION_REQUIRED:
            await self._handle_intervention(event.payload)
        elif event.type is EventType.PROGRESS_MARKER:
            for transition in self.workflow.record_progress_marker(event.payload["marker"]):
                await self._publish_transition(transition)

    async def _handle_intervention(self, payload: Dict[str, Any]):
        issues: List[Issue] = payload["issues"]
        line: str = payload["line"]
        kind: str = payload["intervention_type"]

        self.stats.interventions += 1
        self.workflow.record_intervention({
            "type": kind,
            "line": line.strip(),
            "categories": sorted({issue.category.value for issue in issues}),
        })

        lead = primary_issue(issues)
        if lead is not None and lead.category is IssueCategory.ERROR:
            if lead.type_tag in CRITICAL_ERROR_TAGS:
                await self._report_error("critical", lead, line)
            elif lead.type_tag in self._remediated:
                # Already tried to fix this once; let the caller decide
                await self._report_error("unresolved", lead, line)
                return

        decision = self.engine.decide(issues, line, self.context)
        if decision.suppressed:
            return
        if decision.escalate:
            self.stats.manual_reviews += 1
            await self.channel.publish(
                EventType.MANUAL_REVIEW_REQUIRED,
                self.session_id,
                line=line,
                intervention_type=kind,
                decision=decision.to_dict(),
            )
            return

        if lead is not None and lead.category is IssueCategory.ERROR:
            self._remediated.add(lead.type_tag)
        await self._queue.put((decision, line, kind))

    async def _report_error(self, kind: str, issue: Issue, line: str):
        self.stats.errors_reported += 1
        logger.warning("Reporting %s error %s: %s", kind, issue.type_tag, line.strip()[:120])
        await self.channel.publish(
            EventType.CLAUDE_CODE_ERROR,
            self.session_id,
            kind=kind,
            error_type=issue.type_tag,
            line=line,
            excerpt=issue.context_excerpt,
        )

    async def _delivery_worker(self):
        while True:
            decision, line, kind = await self._queue.get()
            try:
                self.delivery_times.append(await self.throttle.wait_for_slot())
                await self._deliver(decision, line, kind)
            except Exception:
                logger.exception("Response delivery failed for session %s", self.session_id)
            finally:
                self._queue.task_done()

    async def _deliver(self, decision: Decision, line: str, kind: str):
        if not await self.delivery.deliver(self.session_id, decision):
            # A repeat of the question should be answered again
            self.engine.release(line)
            self.stats.errors_reported += 1
            await self.channel.publish(
                EventType.CLAUDE_CODE_ERROR,
                self.session_id,
                kind="delivery",
                error="response could not be delivered",
                line=line,
            )
            return

        self.stats.responses_delivered += 1
        await self.channel.publish(
            EventType.INTERVENTION_DELIVERED,
            self.session_id,
            intervention_type=kind,
            kind=decision.kind.value,
            response=decision.response_text,
            confidence=decision.confidence,
            delivery=self.delivery.capability.value,
        )

        if decision.kind is DecisionKind.CONTEXT_INJECTION:
            self.stats.context_injections += 1
        if decision.category is IssueCategory.PERMISSION:
            self.stats.approvals += 1
            self.workflow.record_approval({"line": line.strip(), "response": decision.response_text})
            await self.channel.publish(EventType.PERMISSION_GRANTED, self.session_id,
                                       request=line.strip(), response=decision.response_text)
        elif decision.category is IssueCategory.QUESTION:
            self.stats.questions_answered += 1
            await self.channel.publish(EventType.QUESTION_ANSWERED, self.session_id,
                                       question=line.strip(), answer=decision.response_text)

        self.monitor.mark_intervention_handled(line if decision.category is IssueCategory.QUESTION else None)

    async def _liveness_loop(self):
        while self.state is SessionState.ACTIVE:
            await asyncio.sleep(self.config.liveness_interval)
            if self.process is None or self.process.returncode is None:
                continue

            logger.info("Monitored process exited with %s", self.process.returncode)
            try:
                await asyncio.wait_for(self.monitor.wait_for_eof(), timeout=EOF_GRACE_PERIOD)
            except asyncio.TimeoutError:
                logger.debug("Output readers still open after exit; closing them")
            await self.monitor.handle_exit(self.process.returncode)
            await self.drain_pending()
            await self.stop("process_exited")
            return

    async def drain_pending(self):
        """Deliver queued responses if the process can still receive them"""
        if self._queue.empty():
            return
        if self.delivery is not None and self.delivery.capability is DeliveryCapability.DIRECT_INPUT:
            # Nobody is reading stdin anymore
            while not self._queue.empty():
                self._queue.get_nowait()
                self._queue.task_done()
            return
        await self.drain()

    async def stop(self, reason: str = "stopped"):
        """Stop supervising. Safe to call more than once."""
        if self.state is SessionState.STOPPED:
            return
        self.state = SessionState.STOPPED
        self.stats.ended_at = time.time()

        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current and not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()

        await self.monitor.detach()

        if self.owns_process and self.process is not None and self.process.returncode is None:
            await self._terminate_process()
        if self._terminal is not None:
            self._terminal.close()

        logger.info("Supervision session %s stopped (%s)", self.session_id, reason,
                    extra={"session_id": self.session_id})
        if self.owns_process:
            await self.channel.publish(
                EventType.SUPERVISION_COMPLETE,
                self.session_id,
                reason=reason,
                exit_code=self.process.returncode if self.process else None,
                status=self.get_status(),
            )
        self._closed.set()

    async def _terminate_process(self):
        try:
            self.process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(self.process.wait(), timeout=TERMINATE_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Process %s ignored SIGTERM, killing it", self.process.pid)
            self.process.kill()
            await self.process.wait()

    def get_status(self) -> Dict[str, Any]:
        stats = self.stats.to_dict()
        return {
            "session_id": self.session_id,
            "state": self.state.value,
            "mode": self.engine.mode.value,
            "owns_process": self.owns_process,
            "workflow": self.workflow.get_status(),
            "stats": {
                "interventions": stats["interventions"],
                "questions_answered": stats["questions_answered"],
                "approvals": stats["approvals"],
                "context_injections": stats["context_injections"],
                "manual_reviews": stats["manual_reviews"],
                "errors_reported": stats["errors_reported"],
                "responses_delivered": stats["responses_delivered"],
                "session_duration": stats["session_duration"],
            },
            "context": self.context_provider.get_context_summary(),
            "monitor": self.monitor.get_status(),
            "decisions": self.engine.get_statistics(),
        }

    def get_decision_history(self, limit: int = 10):
        return self.engine.get_decision_history(limit)

    def get_session_log(self):
        return self.monitor.get_session_log()
