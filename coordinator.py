"""
Simulation coordinator: runs the Monte Carlo simulator off the caller's thread.
Workers talk back over a queue with typed messages; a listener thread relays them
to the run's handle in order. One active run per coordinator.
"""
import logging
import multiprocessing as mp
import queue
import threading
import traceback
from collections import deque
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Deque, List, Optional, Tuple

from config_utils import DEFAULT_ITERATIONS, PROGRESS_INTERVAL, WORKER_MODES, load_engine_config
from scenario import ScenarioInput
from simulation import AggregateResult, MonteCarloSimulator, SimulationCancelledError

logger = logging.getLogger(__name__)

SIMULATION_PROGRESS = "SIMULATION_PROGRESS"
SIMULATION_COMPLETE = "SIMULATION_COMPLETE"
SIMULATION_ERROR = "SIMULATION_ERROR"
SIMULATION_CANCELLED = "SIMULATION_CANCELLED"

RUNNING = "running"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"

_POLL_SECONDS = 0.05
_JOIN_SECONDS = 5.0


class SimulationFailedError(RuntimeError):
    """The simulation worker reported an error or died"""


@dataclass(frozen=True)
class SimulationProgress:
    run_id: int
    progress: float
    type: str = SIMULATION_PROGRESS


@dataclass(frozen=True)
class SimulationComplete:
    run_id: int
    result: AggregateResult
    type: str = SIMULATION_COMPLETE


@dataclass(frozen=True)
class SimulationError:
    run_id: int
    message: str
    type: str = SIMULATION_ERROR


@dataclass(frozen=True)
class SimulationCancelled:
    run_id: int
    type: str = SIMULATION_CANCELLED


def _simulation_worker(scenario: ScenarioInput,
                       iterations: int,
                       random_seed: Optional[int],
                       progress_interval: int,
                       out_queue,
                       cancel_event=None) -> None:
    """
    Worker entry point. Top-level so it is picklable for process workers.

    Every outcome, including failures, is reported on `out_queue` as a
    (message type, payload) tuple.
    """
    def report_progress(progress: float) -> None:
        out_queue.put((SIMULATION_PROGRESS, progress))

    should_cancel = cancel_event.is_set if cancel_event is not None else None

    try:
        simulator = MonteCarloSimulator(scenario, iterations, random_seed)
        result = simulator.run(
            progress_callback=report_progress,
            should_cancel=should_cancel,
            progress_interval=progress_interval,
        )
    except SimulationCancelledError:
        out_queue.put((SIMULATION_CANCELLED, None))
    except Exception as e:
        logger.error("Monte Carlo worker failed: %s", e, exc_info=True)
        out_queue.put((SIMULATION_ERROR, f"{type(e).__name__}: {e}\n{traceback.format_exc()}"))
    else:
        out_queue.put((SIMULATION_COMPLETE, result))


class _ProcessWorker:
    """Simulation in a separate process; stopped by termination"""

    def __init__(self, args):
        ctx = mp.get_context("spawn")
        self.queue = ctx.Queue()
        self._process = ctx.Process(target=_simulation_worker, args=(*args, self.queue), daemon=True)

    def start(self) -> None:
        self._process.start()

    def is_alive(self) -> bool:
        return self._process.is_alive()

    def describe_exit(self) -> str:
        return f"exit code {self._process.exitcode}"

    def stop(self) -> None:
        if self._process.is_alive():
            self._process.terminate()
        self._process.join(_JOIN_SECONDS)
        self.queue.close()
        self.queue.cancel_join_thread()


class _ThreadWorker:
    """Simulation on a background thread; stopped through a cancellation token"""

    def __init__(self, args):
        self.queue = queue.Queue()
        self.cancel_event = threading.Event()
        self._thread = threading.Thread(
            target=_simulation_worker,
            args=(*args, self.queue, self.cancel_event),
            name="monte-carlo-worker",
            daemon=True,
        )

    def start(self) -> None:
        self._thread.start()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def describe_exit(self) -> str:
        return "thread exited"

    def stop(self) -> None:
        self.cancel_event.set()
        if self._thread is not threading.current_thread():
            self._thread.join(_JOIN_SECONDS)


class SimulationHandle:
    """
    Caller-side view of one simulation run.

    Events are delivered to subscribers in order: zero or more
    SimulationProgress with increasing percentages, then exactly one of
    SimulationComplete, SimulationError or SimulationCancelled. Events are
    queued as they are recorded and one thread at a time notifies
    subscribers from that queue, so a slow subscriber delays later events
    but never reorders them.
    """

    def __init__(self, run_id: int, iterations: int, canceller: Callable[['SimulationHandle'], None]):
        self.run_id = run_id
        self.iterations = iterations
        self.status = RUNNING
        self.progress = 0.0
        self._canceller = canceller
        self._lock = threading.Lock()
        self._subscribers: List[Callable[[Any], None]] = []
        self._events: List[Any] = []
        self._pending: Deque[Tuple[Any, List[Callable[[Any], None]]]] = deque()
        self._draining = False
        self._settled = False
        self._future: Future = Future()

    def subscribe(self, callback: Callable[[Any], None]) -> None:
        """
        Register for events. Events already recorded are replayed first.

        Callbacks run on whichever thread is draining the event queue and
        must not wait on result().
        """
        with self._lock:
            self._subscribers.append(callback)
            self._pending.extend((event, [callback]) for event in self._events)
        self._drain()

    @property
    def events(self) -> List[Any]:
        with self._lock:
            return list(self._events)

    def done(self) -> bool:
        return self.status != RUNNING

    def cancel(self) -> None:
        """Cancel this run if it is still active"""
        self._canceller(self)

    def result(self, timeout: Optional[float] = None) -> AggregateResult:
        """
        Wait for the aggregate result.

        Raises:
            SimulationFailedError: the worker reported an error or died
            SimulationCancelledError: the run was cancelled
            concurrent.futures.TimeoutError: not finished within `timeout`
        """
        return self._future.result(timeout)

    def add_done_callback(self, fn: Callable[[Future], None]) -> None:
        self._future.add_done_callback(fn)

    def _deliver(self, event) -> bool:
        """Record an event and notify subscribers. Returns False if the event was dropped."""
        recorded = self._record(event)
        self._drain()
        return recorded

    def _record(self, event) -> bool:
        with self._lock:
            if self.status != RUNNING:
                return False

            if isinstance(event, SimulationProgress):
                has_progress = any(isinstance(e, SimulationProgress) for e in self._events)
                if has_progress and event.progress <= self.progress:
                    return False
                self.progress = event.progress
            elif isinstance(event, SimulationComplete):
                self.status = COMPLETED
                self.progress = 100.0
            elif isinstance(event, SimulationError):
                self.status = FAILED
            elif isinstance(event, SimulationCancelled):
                self.status = CANCELLED

            self._events.append(event)
            self._pending.append((event, list(self._subscribers)))
            return True

    def _drain(self) -> None:
        """
        Notify subscribers of queued events in the order they were recorded.

        Returns at once if another thread (or an outer frame of this one) is
        already draining; that drain picks up whatever was queued.
        """
        with self._lock:
            if self._draining:
                return
            self._draining = True

        try:
            while True:
                with self._lock:
                    if not self._pending:
                        self._draining = False
                        settle = self.status != RUNNING and not self._settled
                        self._settled = self._settled or settle
                        break
                    event, callbacks = self._pending.popleft()
                for callback in callbacks:
                    self._notify(callback, event)
        except BaseException:
            with self._lock:
                self._draining = False
            raise

        if settle:
            self._settle(self._events[-1])

    def _settle(self, event) -> None:
        """Resolve the result future from the terminal event"""
        if isinstance(event, SimulationComplete):
            self._future.set_result(event.result)
        elif isinstance(event, SimulationError):
            self._future.set_exception(SimulationFailedError(event.message))
        else:
            self._future.set_exception(SimulationCancelledError(f"Simulation run {self.run_id} cancelled"))

    def _notify(self, callback, event) -> None:
        try:
            callback(event)
        except Exception:
            logger.exception("Simulation event subscriber raised on %s", event.type)


class SimulationCoordinator:
    """Owns the worker for at most one in-flight simulation"""

    def __init__(self, worker_mode: str = "process", progress_interval: int = PROGRESS_INTERVAL):
        if worker_mode not in WORKER_MODES:
            raise ValueError(f"worker_mode must be one of {WORKER_MODES}, got {worker_mode!r}")
        self.worker_mode = worker_mode
        self.progress_interval = progress_interval
        self._lock = threading.RLock()
        self._run_counter = 0
        self._worker = None
        self._handle: Optional[SimulationHandle] = None

    @classmethod
    def from_config(cls, path: Optional[str] = None) -> 'SimulationCoordinator':
        """Coordinator using the worker settings from the engine config file"""
        config = load_engine_config(path)
        return cls(worker_mode=config['worker_mode'], progress_interval=config['progress_interval'])

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._handle is not None and not self._handle.done()

    @property
    def current(self) -> Optional[SimulationHandle]:
        return self._handle

    def start(self,
              scenario: ScenarioInput,
              iterations: int = DEFAULT_ITERATIONS,
              random_seed: Optional[int] = None) -> SimulationHandle:
        """
        Start a simulation run, cancelling any run already in flight.

        Returns:
            SimulationHandle for the new run
        """
        with self._lock:
            self._teardown()

            self._run_counter += 1
            handle = SimulationHandle(self._run_counter, iterations, self._cancel_handle)
            args = (scenario, iterations, random_seed, self.progress_interval)

            try:
                worker = _ProcessWorker(args) if self.worker_mode == "process" else _ThreadWorker(args)
                worker.start()
            except Exception as e:
                logger.error("Failed to start simulation worker: %s", e, exc_info=True)
                handle._deliver(SimulationError(handle.run_id, f"Failed to start simulation: {e}"))
                return handle

            self._worker = worker
            self._handle = handle
            logger.debug("Started simulation run %d (%s worker, %d iterations)",
                         handle.run_id, self.worker_mode, iterations)

            listener = threading.Thread(
                target=self._listen,
                args=(worker, handle),
                name=f"monte-carlo-listener-{handle.run_id}",
                daemon=True,
            )
            listener.start()
            return handle

    def cancel(self) -> None:
        """Cancel the in-flight run, if any"""
        with self._lock:
            self._teardown()

    def shutdown(self) -> None:
        self.cancel()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown()

    def _cancel_handle(self, handle: SimulationHandle) -> None:
        with self._lock:
            if handle is self._handle:
                self._teardown()

    def _teardown(self) -> None:
        """Mark the current run cancelled (if still running) and stop its worker"""
        handle, worker = self._handle, self._worker
        self._handle, self._worker = None, None

        if handle is not None and handle._deliver(SimulationCancelled(handle.run_id)):
            logger.debug("Cancelled simulation run %d", handle.run_id)
        if worker is not None:
            worker.stop()

    def _listen(self, worker, handle: SimulationHandle) -> None:
        """Relay worker messages to the handle until the run ends"""
        while not handle.done():
            try:
                message_type, payload = worker.queue.get(timeout=_POLL_SECONDS)
            except queue.Empty:
                if worker.is_alive() or handle.done():
                    continue
                # Worker is gone; pick up anything it flushed on the way out
                try:
                    message_type, payload = worker.queue.get(timeout=_POLL_SECONDS * 10)
                except queue.Empty:
                    message = f"Simulation worker exited without a result ({worker.describe_exit()})"
                    logger.warning("Run %d: %s", handle.run_id, message)
                    handle._deliver(SimulationError(handle.run_id, message))
                    break
            except (EOFError, OSError, ValueError):
                # Queue closed by teardown
                break

            self._dispatch(handle, message_type, payload)

        self._release_worker(worker)

    def _release_worker(self, worker) -> None:
        """Stop a worker whose run has ended, unless teardown already took it"""
        with self._lock:
            if self._worker is not worker:
                return
            self._worker = None
        worker.stop()
        logger.debug("Released simulation worker (%s)", worker.describe_exit())

    @staticmethod
    def _dispatch(handle: SimulationHandle, message_type: str, payload) -> None:
        if message_type == SIMULATION_PROGRESS:
            handle._deliver(SimulationProgress(handle.run_id, payload))
        elif message_type == SIMULATION_COMPLETE:
            handle._deliver(SimulationComplete(handle.run_id, payload))
        elif message_type == SIMULATION_ERROR:
            handle._deliver(SimulationError(handle.run_id, payload or "Unknown simulation error"))
        elif message_type == SIMULATION_CANCELLED:
            handle._deliver(SimulationCancelled(handle.run_id))
        else:
            logger.warning("Run %d: ignoring unknown message type %r", handle.run_id, message_type)


def run_monte_carlo(scenario: ScenarioInput,
                    iterations: int = DEFAULT_ITERATIONS,
                    random_seed: Optional[int] = None,
                    worker_mode: str = "process",
                    on_event: Optional[Callable[[Any], None]] = None) -> SimulationHandle:
    """
    Start a simulation on a fresh coordinator.

    Returns:
        SimulationHandle supporting subscription, result() and cancel()
    """
    coordinator = SimulationCoordinator(worker_mode=worker_mode)
    handle = coordinator.start(scenario, iterations, random_seed)
    if on_event is not None:
        handle.subscribe(on_event)
    return handle
