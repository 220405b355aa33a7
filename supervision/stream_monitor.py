"""
Stream Monitor - line-by-line observation of the assistant's output
"""

from collections import deque
from typing import Any, Deque, Dict, List, Optional, Union
import asyncio
import codecs
import errno
import logging
import re
import signal
import time

from .events import EventChannel, EventType
from .models import InterventionPoint, Issue, IssueCategory, LogEntry
from .patterns import PatternClassifier, intervention_type


logger = logging.getLogger(__name__)

ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;?]*[ -/]*[@-~]|\x1b\][^\x07]*\x07")

STDOUT = "stdout"
STDERR = "stderr"

READ_CHUNK_SIZE = 1024
SNAPSHOT_LINES = 10
SNAPSHOT_ERRORS = 5
SNAPSHOT_PROGRESS = 5
HANDLED_WINDOW = 30.0


class StreamMonitor:
    """Watches stdout/stderr of a monitored session and raises events.

    Lines are processed strictly one at a time, in arrival order, whether
    they come from attached stream readers or from ``feed``.
    """

    def __init__(self, session_id: str, classifier: PatternClassifier, channel: EventChannel,
                 buffer_size: int = 1000):
        self.session_id = session_id
        self.classifier = classifier
        self.channel = channel
        self.buffers: Dict[str, Deque[str]] = {
            STDOUT: deque(maxlen=buffer_size),
            STDERR: deque(maxlen=buffer_size),
        }
        self.session_log: List[LogEntry] = []
        self.current_activity: Optional[str] = None
        self.progress_markers: List[Dict[str, Any]] = []
        self.error_lines: Deque[str] = deque(maxlen=buffer_size)
        self.unanswered_questions: List[Dict[str, Any]] = []
        self.intervention_points: List[InterventionPoint] = []
        self.lines_processed = 0
        self.started_at = time.time()
        self.attached = False
        self.closed = False
        self._partial: Dict[str, str] = {STDOUT: "", STDERR: ""}
        # Multi-byte characters may straddle chunk boundaries
        self._decoders = {
            stream: codecs.getincrementaldecoder("utf-8")(errors="replace") for stream in (STDOUT, STDERR)
        }
        self._lock = asyncio.Lock()
        self._readers: List[asyncio.Task] = []

    def attach(self, stdout: asyncio.StreamReader, stderr: Optional[asyncio.StreamReader] = None):
        """Start reading the given streams in background tasks"""
        self.attached = True
        self._readers.append(asyncio.create_task(self._read_stream(stdout, STDOUT)))
        if stderr is not None:
            self._readers.append(asyncio.create_task(self._read_stream(stderr, STDERR)))
        logger.info("Stream monitor attached for session %s", self.session_id)

    async def wait_for_eof(self):
        """Wait until every attached reader hits end of stream"""
        if self._readers:
            await asyncio.gather(*self._readers, return_exceptions=True)

    async def _read_stream(self, reader: asyncio.StreamReader, stream: str):
        try:
            while True:
                chunk = await reader.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                await self.feed(chunk, stream)
        except asyncio.CancelledError:
            raise
        except OSError as e:
            # A terminal reports EIO once the child side is closed
            if e.errno == errno.EIO:
                logger.debug("Terminal %s of session %s closed", stream, self.session_id)
            else:
                logger.warning("Lost %s of session %s: %s", stream, self.session_id, e)
        finally:
            if not self.closed:
                await self._flush(stream)

    async def feed(self, data: Union[str, bytes], stream: str = STDOUT):
        """Push a chunk of output; complete lines are processed immediately"""
        if self.closed:
            return
        if isinstance(data, bytes):
            data = self._decoders[stream].decode(data)

        buffer = self._partial[stream] + data
        while "\n" in buffer:
            line, buffer = buffer.split("\n", 1)
            await self.process_line(line.rstrip("\r"), stream)
        self._partial[stream] = buffer

    async def _flush(self, stream: str):
        remainder = self._partial[stream] + self._decoders[stream].decode(b"", final=True)
        self._partial[stream] = ""
        if remainder.strip():
            await self.process_line(remainder.rstrip("\r"), stream)

    async def process_line(self, raw_line: str, stream: str = STDOUT) -> List[Issue]:
        async with self._lock:
            if self.closed:
                return []
            line = ANSI_ESCAPE.sub("", raw_line)
            now = time.time()
            self.buffers[stream].append(line)
            self.session_log.append(LogEntry(timestamp=now, stream=stream, content=line))
            self.lines_processed += 1

            issues = self.classifier.analyze(line)
            if not issues:
                return issues

            for issue in issues:
                if issue.category is IssueCategory.PROGRESS:
                    await self._record_progress(issue, line)
                elif issue.category is IssueCategory.QUESTION:
                    self.unanswered_questions.append({
                        "question": line.strip(),
                        "type": issue.type_tag,
                        "timestamp": now,
                    })
                elif issue.category is IssueCategory.ERROR:
                    self.error_lines.append(line)

            required = [issue for issue in issues if issue.intervention_required]
            if required:
                kind = intervention_type(required)
                self.intervention_points.append(InterventionPoint(
                    timestamp=now,
                    line=line.strip(),
                    intervention_type=kind,
                    categories=sorted({i.category.value for i in required}),
                ))
                logger.info("Intervention required (%s): %s", kind, line.strip()[:120])
                await self.channel.publish(
                    EventType.INTERVENTION_REQUIRED,
                    self.session_id,
                    issues=required,
                    line=line,
                    stream=stream,
                    intervention_type=kind,
                    context=self.snapshot(),
                )
            return issues

    async def _record_progress(self, issue: Issue, line: str):
        self.current_activity = issue.type_tag
        marker = {"type": issue.type_tag, "line": line.strip(), "timestamp": issue.timestamp}
        self.progress_markers.append(marker)
        await self.channel.publish(EventType.PROGRESS_MARKER, self.session_id, marker=issue.type_tag, line=line)

    def snapshot(self) -> Dict[str, Any]:
        """Recent state handed to the decision engine with an intervention"""
        recent = list(self.buffers[STDOUT])[-SNAPSHOT_LINES:]
        return {
            "recent_output": recent,
            "recent_errors": list(self.error_lines)[-SNAPSHOT_ERRORS:],
            "unanswered_questions": list(self.unanswered_questions),
            "current_activity": self.current_activity,
            "progress_markers": self.progress_markers[-SNAPSHOT_PROGRESS:],
            "session_duration": time.time() - self.started_at,
        }

    def mark_intervention_handled(self, question: Optional[str] = None):
        cutoff = time.time() - HANDLED_WINDOW
        for point in self.intervention_points:
            if point.timestamp >= cutoff:
                point.addressed = True
        if question is not None:
            self.unanswered_questions = [
                q for q in self.unanswered_questions if q["question"] != question.strip()
            ]

    def unaddressed_interventions(self) -> List[InterventionPoint]:
        return [point for point in self.intervention_points if not point.addressed]

    async def handle_exit(self, returncode: Optional[int]) -> Dict[str, Any]:
        """Flush, publish the final summary and release the readers"""
        for stream in (STDOUT, STDERR):
            await self._flush(stream)

        exit_signal = None
        if returncode is not None and returncode < 0:
            try:
                exit_signal = signal.Signals(-returncode).name
            except ValueError:
                exit_signal = str(-returncode)

        summary = {
            "exit_code": returncode,
            "signal": exit_signal,
            "unresolved_questions": list(self.unanswered_questions),
            "unaddressed_interventions": [p.line for p in self.unaddressed_interventions()],
            "final_activity": self.current_activity,
            "lines_processed": self.lines_processed,
            "session_duration": time.time() - self.started_at,
        }
        logger.info("Monitored process exited (code=%s, signal=%s)", returncode, exit_signal)
        await self.channel.publish(EventType.PROCESS_EXITED, self.session_id, **summary)
        await self.detach()
        return summary

    async def detach(self):
        """Stop reading; nothing is processed or published afterwards"""
        self.closed = True
        current = asyncio.current_task()
        readers = [task for task in self._readers if task is not current]
        for task in readers:
            if not task.done():
                task.cancel()
        if readers:
            await asyncio.gather(*readers, return_exceptions=True)
        self._readers.clear()
        self.attached = False

    def get_session_log(self) -> List[LogEntry]:
        return list(self.session_log)

    def get_status(self) -> Dict[str, Any]:
        return {
            "attached": self.attached,
            "lines_processed": self.lines_processed,
            "current_activity": self.current_activity,
            "unanswered_questions": len(self.unanswered_questions),
            "unaddressed_interventions": len(self.unaddressed_interventions()),
            "progress_markers": len(self.progress_markers),
        }
