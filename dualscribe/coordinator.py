"""
Race coordination for one recording session at a time.

A Session runs both engines concurrently once recording stops, commits the
first non-empty text, and lets the slower engine finish in the background.
If the streaming engine won and the batch engine later disagrees, the batch
text is published as a refinement (clipboard), never re-injected.
"""

import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set
from uuid import UUID, uuid4

import numpy as np

from .audio import AudioSource
from .engines import BATCH, STREAMING, BatchEngine, StreamingEngine
from .errors import (
    CaptureError, CAPTURE_FAILED, NO_AUDIO_RECORDED, NO_SPEECH_DETECTED, error_message,
)
from .output import OutputSink
from .reconcile import needs_refinement
from .state import SessionStateMachine
from .types import COMPLETE, EngineResult, SessionOutcome, SessionStatus
from . import metrics as m


DEFAULT_SETTLE_DELAY = 2.0


@dataclass
class Session:
    """
    One recording-to-result cycle.

    Created by begin(), dropped when the coordinator settles back to idle.
    """
    id: UUID
    start_time: float
    input_sample_rate: int = 0
    samples: Optional[np.ndarray] = None

    # Race results
    results: List[EngineResult] = field(default_factory=list)
    winner: Optional[str] = None
    committed_text: str = ""
    committed: bool = False
    refinement: str = ""

    @property
    def audio_duration_ms(self) -> float:
        if self.samples is None or not self.input_sample_rate:
            return 0.0
        return len(self.samples) / self.input_sample_rate * 1000


class RaceCoordinator:
    """
    Drives Idle -> Recording -> Transcribing -> Complete/Error -> Idle.

    Engines, audio and output are injected so tests can swap in fakes.
    begin()/end() may be called from any thread (typically the hotkey
    listener); the race itself runs on the coordinator's own executor.

    Usage:
        coordinator = RaceCoordinator(audio, streaming, batch, sink)
        coordinator.begin()
        # ... user speaks ...
        future = coordinator.end()
        outcome = future.result()
    """

    def __init__(
        self,
        audio: AudioSource,
        streaming: StreamingEngine,
        batch: Optional[BatchEngine],
        sink: OutputSink,
        settle_delay: float = DEFAULT_SETTLE_DELAY,
        can_record: Optional[Callable[[], bool]] = None,
        metrics: Optional[m.MetricsWriter] = None,
        state: Optional[SessionStateMachine] = None,
    ):
        self.audio = audio
        self.streaming = streaming
        self.batch = batch
        self.sink = sink
        self.settle_delay = settle_delay
        self.can_record = can_record
        self.metrics = metrics
        self.state = state or SessionStateMachine()

        self.audio_level: float = 0.0
        self._session: Optional[Session] = None
        self._lock = threading.RLock()
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="race")
        self._settle_timer: Optional[threading.Timer] = None

        # Raw chunks go straight to the streaming engine
        self.audio.listener = self.streaming.append_chunk
        self.audio.on_level = self._on_level

    # Observable fields

    @property
    def status(self) -> SessionStatus:
        return self.state.status

    @property
    def session(self) -> Optional[Session]:
        with self._lock:
            return self._session

    @property
    def model_ready(self) -> bool:
        return self.batch is not None and self.batch.is_ready

    # Session control

    def begin(self) -> bool:
        """
        Start recording.

        Returns False (no side effects) if a session is already live or the
        record precondition fails. Returns False after moving to error if
        capture can't start.
        """
        with self._lock:
            if self.state.status.kind != "idle":
                print(f"[Race] Busy ({self.state.status.kind}), ignoring start")
                return False

            if not self._check_can_record():
                print("[Race] Recording not possible (no input device or permission)")
                return False

            session = Session(id=uuid4(), start_time=time.time())
            self._session = session

            # Open the recognition stream first so no early chunk is lost
            self.streaming.start_session()

            try:
                self.audio.start()
            except CaptureError as e:
                self.streaming.cleanup()
                reason = error_message(CAPTURE_FAILED, str(e))
                print(f"[Race] {reason}")
                self.state.fail(CAPTURE_FAILED, reason)
                if self.metrics:
                    m.log_capture_failed(self.metrics, str(session.id), str(e))
                self._schedule_settle(session)
                return False

            session.input_sample_rate = self.audio.sample_rate
            self.state.begin()

        if self.metrics:
            m.log_session_start(
                self.metrics,
                session_id=str(session.id),
                sample_rate=session.input_sample_rate,
                model_ready=self.model_ready,
            )
        return True

    def end(self) -> Optional["Future[SessionOutcome]"]:
        """
        Stop recording and start the race.

        Returns a future resolving to the SessionOutcome once the race is
        decided, or None if no session is recording.
        """
        with self._lock:
            session = self._session
            if session is None or self.state.status.kind != "recording":
                return None

            samples, sample_rate = self.audio.stop()
            self.audio_level = 0.0
            session.samples = samples
            session.input_sample_rate = sample_rate

            self.state.end()

            # Read readiness once per session
            batch_ready = self.model_ready

            return self._executor.submit(
                self._run_race, session, samples, sample_rate, batch_ready
            )

    def shutdown(self) -> None:
        """Stop everything. Running inference is left to finish on its own."""
        with self._lock:
            if self._settle_timer:
                self._settle_timer.cancel()
                self._settle_timer = None

        self.audio.stop()
        self.streaming.shutdown()
        if self.batch is not None:
            self.batch.shutdown()
        self._executor.shutdown(wait=False)

    # Race

    def _run_race(
        self,
        session: Session,
        samples: np.ndarray,
        sample_rate: int,
        batch_ready: bool,
    ) -> SessionOutcome:
        """Fan in both branches and commit the first non-empty text."""
        if len(samples) == 0:
            # Nothing to recognize: close the stream without waiting on it
            self.streaming.cleanup()
            return self._fail(session, NO_AUDIO_RECORDED)

        race_start = time.time()

        branches: Dict[Future, str] = {self.streaming.submit_finalize(): STREAMING}
        batch_future: Optional[Future] = None
        if batch_ready:
            batch_future = self.batch.submit(samples, sample_rate)
            branches[batch_future] = BATCH
        else:
            print("[Race] Batch model not ready, streaming engine only")

        consumed: Set[Future] = set()
        winner: Optional[EngineResult] = None

        # Losers are never cancelled; the batch branch may still refine
        for future in as_completed(branches):
            consumed.add(future)
            result = self._branch_result(session, branches[future], future, race_start)
            if not result.is_empty:
                winner = result
                break
            print(f"[Race] {result.engine} returned nothing, discarded")

        if winner is None:
            return self._fail(session, NO_SPEECH_DETECTED)

        outcome = self._commit(session, winner)

        if winner.engine == STREAMING and batch_future is not None and batch_future not in consumed:
            committed_text = winner.text
            batch_future.add_done_callback(
                lambda f: self._reconcile(session, committed_text, f, race_start)
            )

        return outcome

    def _branch_result(
        self,
        session: Session,
        engine: str,
        future: Future,
        race_start: float,
    ) -> EngineResult:
        """Turn a finished branch into an EngineResult. Failures become empty text."""
        try:
            text = future.result() or ""
        except Exception as e:
            print(f"[Race] {engine} failed: {e}")
            text = ""

        latency_ms = int((time.time() - race_start) * 1000)
        result = EngineResult(engine=engine, text=text.strip(), latency_ms=latency_ms)

        with self._lock:
            session.results.append(result)

        print(f"[Race] {engine}: {latency_ms / 1000:.2f}s -> \"{result.text[:50]}\"")
        if self.metrics:
            m.log_branch_result(self.metrics, str(session.id), engine, latency_ms, result.text)
        return result

    def _commit(self, session: Session, winner: EngineResult) -> SessionOutcome:
        """Deliver the winning text exactly once, then complete."""
        with self._lock:
            if session.committed:
                return SessionOutcome(session.id, COMPLETE, session.committed_text, session.winner)
            session.committed = True
            session.winner = winner.engine
            session.committed_text = winner.text

        try:
            self.sink.inject_primary(winner.text)
        except Exception as e:
            print(f"[Race] Output error: {e}")

        self.state.commit()
        print(f"[Race] {winner.engine} won the race: \"{winner.text}\"")

        if self.metrics:
            m.log_race_winner(self.metrics, str(session.id), winner.engine, winner.latency_ms)
            self._log_complete(session, COMPLETE)

        self._schedule_settle(session)
        return SessionOutcome(session.id, COMPLETE, winner.text, winner.engine)

    def _fail(self, session: Session, error_code: str) -> SessionOutcome:
        reason = error_message(error_code)
        self.state.fail(error_code, reason)
        status = SessionStatus("error", reason=reason, error_code=error_code)
        print(f"[Race] Session failed: {reason}")

        if self.metrics:
            self._log_complete(session, status)

        self._schedule_settle(session)
        return SessionOutcome(session.id, status)

    def _reconcile(
        self,
        session: Session,
        committed_text: str,
        future: Future,
        race_start: float,
    ) -> None:
        """Publish the batch text as a refinement if it differs from the commit."""
        result = self._branch_result(session, BATCH, future, race_start)
        if result.is_empty:
            return

        if not needs_refinement(committed_text, result.text):
            print("[Race] Batch matches streaming, no refinement needed")
            return

        with self._lock:
            if session.refinement:
                return
            session.refinement = result.text

        try:
            self.sink.publish_refinement(result.text)
        except Exception as e:
            print(f"[Race] Refinement output error: {e}")
            return

        print(f"[Race] Batch refinement published: \"{result.text}\"")
        if self.metrics:
            m.log_refinement(self.metrics, str(session.id), committed_text, result.text)

    # Settle

    def _schedule_settle(self, session: Session) -> None:
        timer = threading.Timer(self.settle_delay, self._settle, args=(session.id,))
        timer.daemon = True
        with self._lock:
            if self._settle_timer:
                self._settle_timer.cancel()
            self._settle_timer = timer
        timer.start()

    def _settle(self, session_id: UUID) -> None:
        """Return to idle, unless a different session has taken over."""
        with self._lock:
            session = self._session
            if session is None or session.id != session_id:
                return
            if not self.state.status.is_terminal:
                return
            self.state.settle()
            self._session = None
            self._settle_timer = None

    # Helpers

    def _check_can_record(self) -> bool:
        if self.can_record is None:
            return True
        try:
            return bool(self.can_record())
        except Exception as e:
            print(f"[Race] Record precondition failed: {e}")
            return False

    def _on_level(self, level: float) -> None:
        self.audio_level = level

    def _log_complete(self, session: Session, status: SessionStatus) -> None:
        m.log_session_complete(
            self.metrics,
            session_id=str(session.id),
            status=status.kind,
            reason=status.reason,
            total_duration_ms=(time.time() - session.start_time) * 1000,
            audio_duration_ms=session.audio_duration_ms,
        )
