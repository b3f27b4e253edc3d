"""
Structured session events as JSON lines.

Events are queued from any thread and appended to the metrics file by one
background writer, so the race never waits on disk.

Usage:
    metrics = MetricsWriter(config.metrics_file)
    log_race_winner(metrics, session_id, "streaming", 234)
    ...
    metrics.shutdown()
"""

import json
import time
import threading
from queue import Queue, Empty
from pathlib import Path
from typing import Any, Dict, List

# Truncation for transcript text stored in events
MAX_TEXT = 200

_STOP = None


class MetricsWriter:
    """
    Append-only JSONL event log fed through a queue.

    The writer thread blocks on the queue and, once woken, takes everything
    pending so bursts land in a single file append.
    """

    def __init__(self, metrics_file: Path):
        self.metrics_file = Path(metrics_file)
        self._pending: "Queue[Any]" = Queue()
        self._thread = threading.Thread(
            target=self._run, name="metrics-writer", daemon=True
        )
        self._closed = False
        self._thread.start()

    def log(self, event: str, **fields: Any) -> None:
        """Queue one event. Never blocks, ignored after shutdown."""
        if self._closed:
            return
        self._pending.put({"ts": time.time(), "event": event, **fields})

    def _run(self) -> None:
        while True:
            batch = [self._pending.get()]
            batch.extend(self._take_pending())

            stop = _STOP in batch
            entries = [entry for entry in batch if entry is not _STOP]
            if entries:
                self._append(entries)
            if stop:
                return

    def _take_pending(self) -> List[Any]:
        items = []
        while True:
            try:
                items.append(self._pending.get_nowait())
            except Empty:
                return items

    def _append(self, entries: List[Dict[str, Any]]) -> None:
        lines = "".join(json.dumps(entry) + "\n" for entry in entries)
        try:
            self.metrics_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.metrics_file, "a") as f:
                f.write(lines)
        except OSError as e:
            print(f"[Metrics] Write failed ({len(entries)} events dropped): {e}")

    def shutdown(self, timeout: float = 2.0) -> None:
        """Write everything queued so far and stop the writer thread."""
        if self._closed:
            return
        self._closed = True
        self._pending.put(_STOP)
        self._thread.join(timeout=timeout)


# Event helpers, one per event kind

def log_session_start(metrics: MetricsWriter, session_id: str, sample_rate: int, model_ready: bool) -> None:
    metrics.log("session_start", session_id=session_id, sample_rate=sample_rate, model_ready=model_ready)


def log_capture_failed(metrics: MetricsWriter, session_id: str, reason: str) -> None:
    metrics.log("capture_failed", session_id=session_id, reason=reason)


def log_branch_result(
    metrics: MetricsWriter,
    session_id: str,
    engine: str,
    latency_ms: int,
    text: str,
) -> None:
    """One per engine that finished, including late batch results."""
    metrics.log(
        "branch_result",
        session_id=session_id,
        engine=engine,
        latency_ms=latency_ms,
        empty=not text.strip(),
        text=text[:MAX_TEXT],
    )


def log_race_winner(metrics: MetricsWriter, session_id: str, engine: str, latency_ms: int) -> None:
    metrics.log("race_winner", session_id=session_id, engine=engine, latency_ms=latency_ms)


def log_refinement(metrics: MetricsWriter, session_id: str, committed: str, refined: str) -> None:
    metrics.log(
        "refinement",
        session_id=session_id,
        committed=committed[:MAX_TEXT],
        refined=refined[:MAX_TEXT],
    )


def log_session_complete(
    metrics: MetricsWriter,
    session_id: str,
    status: str,
    reason: str,
    total_duration_ms: float,
    audio_duration_ms: float,
) -> None:
    """Terminal event: status is "complete" or "error"."""
    metrics.log(
        "session_complete",
        session_id=session_id,
        status=status,
        reason=reason,
        total_duration_ms=round(total_duration_ms, 1),
        audio_duration_ms=round(audio_duration_ms, 1),
    )
