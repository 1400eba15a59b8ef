"""
Velvest Ingestion Pipeline

Decouples capture delivery from analysis. Producers on any thread put
records on a bounded queue; one consumer thread drains it in FIFO order
and is the only caller that mutates the engine.
"""

import queue
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from velvest.analysis.engine import AnalysisEngine
from velvest.analysis.models import EngineSnapshot, PacketRecord
from velvest.exceptions import PipelineClosed

logger = structlog.get_logger(__name__)


DEFAULT_QUEUE_SIZE = 10000


class _Kind(str, Enum):
    RECORD = "record"
    CLEAR = "clear"
    FILTER = "filter"
    STOP = "stop"


@dataclass(slots=True)
class _Command:
    kind: _Kind
    payload: Any = None
    done: threading.Event | None = None
    # Outcome, written by the consumer (or by stop() when discarded)
    claimed: bool = False
    cancelled: bool = False
    applied: bool = False
    error: Exception | None = None


class IngestPipeline:
    """
    Single-consumer queue in front of an AnalysisEngine.

    Clear and filter changes travel through the same queue as records, so
    they apply at exactly the point in the stream where they were issued.
    """

    def __init__(self, engine: AnalysisEngine, queue_size: int = DEFAULT_QUEUE_SIZE):
        """
        Initialize the pipeline.

        Args:
            engine: Engine that receives every queued record.
            queue_size: Maximum commands waiting to be processed.
        """
        self.engine = engine
        self._queue: queue.Queue[_Command] = queue.Queue(maxsize=queue_size)
        self._thread: threading.Thread | None = None
        self._state_lock = threading.Lock()
        # Held across the running check and the put, so nothing lands behind the stop marker
        self._enqueue_lock = threading.Lock()
        self._running = False

        self._stats = {
            "submitted": 0,
            "processed": 0,
            "skipped": 0,
            "errors": 0,
            "dropped": 0,
            "discarded": 0,
            "cancelled": 0,
        }

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self) -> "IngestPipeline":
        """Start the consumer thread."""
        with self._state_lock:
            if self._running:
                return self
            self._running = True
            self._thread = threading.Thread(
                target=self._run,
                name="velvest-ingest",
                daemon=True,
            )
            self._thread.start()

        logger.info("pipeline_started", queue_size=self._queue.maxsize)
        return self

    def stop(self, drain: bool = True, timeout: float | None = None) -> None:
        """
        Stop accepting work and shut the consumer down.

        Args:
            drain: Process everything already queued before stopping.
                If False, queued records and commands are discarded, and
                a clear() waiting on a discarded command raises
                PipelineClosed.
            timeout: Maximum seconds to wait for the consumer thread.
        """
        with self._enqueue_lock, self._state_lock:
            if not self._running:
                return
            self._running = False

        if not drain:
            self._discard_pending()

        self._queue.put(_Command(_Kind.STOP))
        if self._thread is not None:
            self._thread.join(timeout)

        logger.info("pipeline_stopped", **self.stats)

    @property
    def running(self) -> bool:
        return self._running

    def __enter__(self) -> "IngestPipeline":
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    # -------------------------------------------------------------------------
    # Producer API
    # -------------------------------------------------------------------------

    def submit(
        self,
        record: PacketRecord,
        block: bool = True,
        timeout: float | None = None,
    ) -> None:
        """
        Queue a record for ingestion. Safe to call from any thread.

        Raises:
            PipelineClosed: If the pipeline is not running.
            queue.Full: If block is False (or timeout expires) and the
                queue is full.
        """
        self._enqueue(_Command(_Kind.RECORD, record), block=block, timeout=timeout)
        with self._state_lock:
            self._stats["submitted"] += 1

    def set_filter(self, text: str | None, timeout: float | None = None) -> None:
        """
        Queue a filter change that applies to records submitted after it.

        Raises:
            PipelineClosed: If the pipeline is not running.
            queue.Full: If timeout expires while the queue is full.
        """
        self._enqueue(_Command(_Kind.FILTER, text or ""), timeout=timeout)

    def clear(self, timeout: float | None = None) -> EngineSnapshot:
        """
        Reset the engine once every earlier submission has been applied.

        Blocks until the reset is done, so no record submitted before this
        call can show up in state afterwards.

        Args:
            timeout: Maximum seconds to wait, covering both a full queue and
                the consumer catching up. A clear that times out before the
                consumer reaches it is cancelled and never runs.

        Raises:
            PipelineClosed: If the pipeline is not running, or stops before
                the clear is applied.
            TimeoutError: If the clear was not applied in time.
        """
        command = _Command(_Kind.CLEAR, done=threading.Event())
        try:
            self._enqueue(command, timeout=timeout)
        except queue.Full as e:
            raise TimeoutError("ingest queue is full") from e

        if not command.done.wait(timeout):
            with self._state_lock:
                if not command.claimed:
                    command.cancelled = True
                    self._stats["cancelled"] += 1
                    raise TimeoutError("clear was not applied in time and has been cancelled")
            raise TimeoutError("clear is being applied but did not finish in time")

        if command.error is not None:
            raise command.error
        if not command.applied:
            raise PipelineClosed("pipeline stopped before clear was applied")
        return self.engine.snapshot

    def join(self) -> None:
        """Block until every queued command has been processed."""
        self._queue.join()

    def snapshot(self) -> EngineSnapshot:
        """Latest snapshot published by the engine."""
        return self.engine.snapshot

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def stats(self) -> dict[str, int]:
        with self._state_lock:
            return dict(self._stats)

    # -------------------------------------------------------------------------
    # Consumer
    # -------------------------------------------------------------------------

    def _run(self) -> None:
        while True:
            command = self._queue.get()
            try:
                if command.kind == _Kind.STOP:
                    return
                with self._state_lock:
                    if command.cancelled:
                        continue
                    command.claimed = True
                self._dispatch(command)
                command.applied = True
            except Exception as e:
                command.error = e
                with self._state_lock:
                    self._stats["errors"] += 1
                logger.error("pipeline_command_failed", kind=command.kind.value, error=str(e), exc_info=True)
            finally:
                if command.done is not None:
                    command.done.set()
                self._queue.task_done()

    def _dispatch(self, command: _Command) -> None:
        if command.kind == _Kind.RECORD:
            effect = self.engine.ingest(command.payload)
            with self._state_lock:
                self._stats["processed" if effect is not None else "skipped"] += 1
        elif command.kind == _Kind.CLEAR:
            self.engine.clear()
        elif command.kind == _Kind.FILTER:
            self.engine.set_filter(command.payload)

    def _enqueue(self, command: _Command, block: bool = True, timeout: float | None = None) -> None:
        with self._enqueue_lock:
            if not self._running:
                raise PipelineClosed("ingest pipeline is not running")
            self._queue.put(command, block=block, timeout=timeout)

    def _discard_pending(self) -> None:
        discarded: dict[str, int] = {}
        while True:
            try:
                command = self._queue.get_nowait()
            except queue.Empty:
                break
            if command.kind != _Kind.STOP:
                key = "dropped" if command.kind == _Kind.RECORD else "discarded"
                with self._state_lock:
                    self._stats[key] += 1
                if command.kind != _Kind.RECORD:
                    discarded[command.kind.value] = discarded.get(command.kind.value, 0) + 1
            # applied stays False, so a waiting clear() sees the discard
            if command.done is not None:
                command.done.set()
            self._queue.task_done()

        if discarded:
            logger.warning("pipeline_commands_discarded", **discarded)
