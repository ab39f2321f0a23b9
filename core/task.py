"""
Reader task for running a binlog reader job.

Plays the execution-engine role around the lifecycle controllers: restores
the last checkpoint, creates one split per parallelism, runs every split in
its own thread, hands records to the record handler and persists checkpoints
periodically and at shutdown.
"""

import logging
import signal
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from core.checkpoint_store import CheckpointStore
from core.error_sanitizer import sanitize_error, sanitize_for_log
from core.event_sink import DEFAULT_POLL_INTERVAL_MS
from core.lifecycle import LifecycleController
from core.models import BinlogConfig, CheckpointState, InputSplit
from core.splits import READER_SPLIT_INDEX, SplitCoordinator

logger = logging.getLogger(__name__)

RecordHandler = Callable[[dict[str, Any]], None]
ControllerFactory = Callable[[InputSplit, Optional[CheckpointState]], LifecycleController]


@dataclass
class SplitWorker:
    """Container for split thread information."""

    split: InputSplit
    thread: Optional[threading.Thread] = None
    controller: Optional[LifecycleController] = None
    error: Optional[BaseException] = None
    records: int = 0

    @property
    def is_alive(self) -> bool:
        """Check if the split thread is running."""
        return self.thread is not None and self.thread.is_alive()


@dataclass
class TaskStatus:
    """Snapshot of the task for status reporting."""

    job_name: str
    running: bool
    splits: list[dict[str, Any]] = field(default_factory=list)
    checkpoint: Optional[dict[str, Any]] = None


class BinlogReaderTask:
    """
    Runs one binlog reader job across its splits.

    Only split 0 streams; the other splits idle until shutdown. A failure of
    any split stops the whole task and is re-raised from `run()`.
    """

    def __init__(
        self,
        job_name: str,
        config: BinlogConfig,
        store: CheckpointStore,
        record_handler: RecordHandler,
        parallelism: int = 1,
        checkpoint_interval_ms: int = 10000,
        restore_enabled: bool = True,
        poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS,
        controller_factory: Optional[ControllerFactory] = None,
        register_signals: bool = False,
    ):
        """
        Initialize reader task.

        Args:
            job_name: Job name used for logging and checkpoint keys
            config: Reader configuration
            store: Checkpoint store
            record_handler: Receives every change record
            parallelism: Number of splits
            checkpoint_interval_ms: Interval between checkpoint saves
            restore_enabled: Restore from and produce checkpoints
            poll_interval_ms: Wake-up interval of blocking reads
            controller_factory: Optional LifecycleController factory
            register_signals: Install SIGINT/SIGTERM handlers that stop the task
        """
        self._job_name = job_name
        self._config = config
        self._store = store
        self._record_handler = record_handler
        self._parallelism = parallelism
        self._checkpoint_interval = checkpoint_interval_ms / 1000
        self._restore_enabled = restore_enabled
        self._poll_interval = poll_interval_ms / 1000
        self._poll_interval_ms = poll_interval_ms
        self._controller_factory = controller_factory

        self._workers: dict[int, SplitWorker] = {}
        self._coordinator: Optional[SplitCoordinator] = None
        self._restored: Optional[CheckpointState] = None
        self._last_checkpoint: Optional[CheckpointState] = None
        self._stop_event = threading.Event()
        self._running = False
        self._logger = logging.getLogger(f"{__name__}.{job_name}")

        if register_signals:
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals."""
        signal_name = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
        self._logger.info(f"Received {signal_name}, stopping task")
        self._stop_event.set()

    @property
    def job_name(self) -> str:
        return self._job_name

    @property
    def coordinator(self) -> Optional[SplitCoordinator]:
        return self._coordinator

    @property
    def last_checkpoint(self) -> Optional[CheckpointState]:
        return self._last_checkpoint

    def _build_controller(self, split: InputSplit) -> LifecycleController:
        if self._controller_factory is not None:
            controller = self._controller_factory(split, self._restored)
        else:
            controller = LifecycleController(
                self._config,
                checkpoint=self._restored,
                restore_enabled=self._restore_enabled,
                split_index=split.index,
                poll_interval_ms=self._poll_interval_ms,
            )
        self._workers[split.index].controller = controller
        return controller

    def _run_split(self, worker: SplitWorker) -> None:
        """Worker function running one split until the task stops."""
        split = worker.split
        try:
            controller = self._coordinator.open_split(split)
            while not self._stop_event.is_set():
                record = controller.next(timeout=self._poll_interval)
                if record is None:
                    continue
                self._record_handler(record)
                controller.ack()
                worker.records += 1
        except Exception as e:
            self._logger.error(
                f"Split {split.index} failed: {sanitize_for_log(e)}", exc_info=True
            )
            worker.error = e
            self._stop_event.set()

    def save_checkpoint(self) -> Optional[CheckpointState]:
        """
        Persist the reader split's latest checkpoint.

        States without a position are not saved so they never overwrite
        confirmed progress.
        """
        worker = self._workers.get(READER_SPLIT_INDEX)
        if worker is None or worker.controller is None:
            return None

        state = worker.controller.checkpoint()
        if state is None or state.position is None:
            return None

        self._store.save(state)
        self._last_checkpoint = state
        self._logger.debug(f"Checkpoint saved: {state.to_dict()}")
        return state

    def run(self) -> None:
        """
        Run the task until `stop()` is called or a split fails.

        Raises:
            Exception: The first split failure
        """
        self._restored = self._store.load() if self._restore_enabled else None
        self._last_checkpoint = self._restored
        self._coordinator = SplitCoordinator(self._build_controller)
        splits = self._coordinator.create_splits(self._parallelism)

        self._logger.info(f"Starting job {self._job_name} with {len(splits)} split(s)")
        self._running = True

        for split in splits:
            worker = SplitWorker(split=split)
            self._workers[split.index] = worker
            worker.thread = threading.Thread(
                target=self._run_split,
                args=(worker,),
                name=f"Split_{split.index}",
                daemon=True,
            )
            worker.thread.start()

        try:
            while not self._stop_event.wait(self._checkpoint_interval):
                self.save_checkpoint()
        finally:
            self._shutdown()

        failed = [w for w in self._workers.values() if w.error is not None]
        if failed:
            raise failed[0].error

    def _shutdown(self) -> None:
        self._logger.info(f"Stopping job {self._job_name}")
        self._stop_event.set()

        for worker in self._workers.values():
            if worker.controller is not None:
                try:
                    worker.controller.close()
                except Exception as e:
                    self._logger.warning(
                        f"Error closing split {worker.split.index}: {sanitize_for_log(e)}"
                    )

        for worker in self._workers.values():
            if worker.thread is not None:
                worker.thread.join(timeout=self._poll_interval * 4 + 1)

        try:
            self.save_checkpoint()
        except Exception as e:
            self._logger.error(f"Failed to save final checkpoint: {sanitize_for_log(e)}")

        self._running = False
        self._logger.info(f"Job {self._job_name} stopped")

    def stop(self) -> None:
        """Request the task to stop."""
        self._stop_event.set()

    def status(self) -> TaskStatus:
        """Get task status."""
        splits = []
        for index in sorted(self._workers):
            worker = self._workers[index]
            controller = worker.controller
            splits.append(
                {
                    "index": index,
                    "state": controller.state.value if controller else None,
                    "alive": worker.is_alive,
                    "records": worker.records,
                    "error": sanitize_error(worker.error) if worker.error else None,
                }
            )

        return TaskStatus(
            job_name=self._job_name,
            running=self._running,
            splits=splits,
            checkpoint=self._last_checkpoint.to_dict() if self._last_checkpoint else None,
        )
