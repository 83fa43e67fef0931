"""
Asynchronous task helpers for long-running background jobs (document translation).

A job drives the resumable translate-document operation to completion in a
background thread: it calls it repeatedly with a small chunk budget and stops
when the document is done, the job is cancelled, an error occurs, or several
consecutive calls make no forward progress.
"""

from __future__ import annotations

import threading
import time
import uuid
from dataclasses import dataclass, field, asdict
from typing import Any, Callable, Dict, List, Optional

from ai_translate.config import DEFAULT_MAX_STALLED_CALLS
from ai_translate.logger import get_logger
from ai_translate.ai.exceptions import TranslationError
from ai_translate.translation.manager import TranslationManager
from ai_translate.translation.progress import TranslationProgress

logger = get_logger(__name__)

DEFAULT_JOB_CHUNKS_PER_CALL = 1


@dataclass
class JobState:
    """In-memory representation of an asynchronous job."""

    job_id: str
    uid: str
    document_id: str
    source_locale: str
    target_locale: str
    prompt: Optional[str] = None
    include_json: bool = False
    chunks_per_call: int = DEFAULT_JOB_CHUNKS_PER_CALL
    max_stalled_calls: int = DEFAULT_MAX_STALLED_CALLS
    cancel_requested: bool = False
    state: str = "pending"  # pending|running|completed|failed|cancelled|stalled
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    calls: int = 0
    progress: Dict[str, Any] = field(default_factory=dict)
    progress_history: List[Dict[str, Any]] = field(default_factory=list)
    cache: Dict[str, int] = field(default_factory=lambda: {"hits": 0, "writes": 0})
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    last_update: float = field(default_factory=time.time)

    def request_cancel(self):
        """Mark this job as requested for cancellation."""
        self.cancel_requested = True
        self.last_update = time.time()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_jobs: Dict[str, JobState] = {}
_jobs_lock = threading.Lock()
_JOB_RETENTION_SECONDS = 600  # Retain job info for 10 minutes after completion


def create_translation_job(
    uid: str,
    document_id: str,
    source_locale: str,
    target_locale: str,
    prompt: Optional[str] = None,
    include_json: bool = False,
    chunks_per_call: Optional[int] = None,
    max_stalled_calls: Optional[int] = None,
    manager_factory: Optional[Callable[[], TranslationManager]] = None,
    start: bool = True,
) -> JobState:
    """
    Create and launch an asynchronous translation job for one document.

    Args:
        uid: Content type uid.
        document_id: Document identifier.
        source_locale: Locale to translate from.
        target_locale: Locale to translate to.
        prompt: Optional additional instructions for the model.
        include_json: Also translate strings inside json fields.
        chunks_per_call: Chunk budget of every resumable call.
        max_stalled_calls: Consecutive calls without progress before giving up.
        manager_factory: Builds the TranslationManager used by the worker.
        start: Launch the worker thread immediately.

    Returns:
        JobState for the new job (already registered, running in background when start=True).
    """
    job_id = uuid.uuid4().hex
    job_state = JobState(
        job_id=job_id,
        uid=uid,
        document_id=document_id,
        source_locale=source_locale,
        target_locale=target_locale,
        prompt=prompt,
        include_json=include_json,
        chunks_per_call=chunks_per_call or DEFAULT_JOB_CHUNKS_PER_CALL,
        max_stalled_calls=max_stalled_calls or DEFAULT_MAX_STALLED_CALLS,
    )

    with _jobs_lock:
        _cleanup_jobs_locked()
        _jobs[job_id] = job_state

    if start:
        thread = threading.Thread(
            target=run_translation_job,
            args=(job_state, manager_factory or TranslationManager),
            name=f"translation-job-{job_id}",
            daemon=True,
        )
        thread.start()
    logger.info(
        "Translation job %s started for %s/%s (%s -> %s, chunks per call=%s)",
        job_id,
        uid,
        document_id,
        source_locale,
        target_locale,
        job_state.chunks_per_call,
    )
    return job_state


def get_job(job_id: str) -> Optional[JobState]:
    """Fetch a job by ID (if still retained)."""
    with _jobs_lock:
        job = _jobs.get(job_id)
        if job and job.finished_at and (time.time() - job.finished_at) > _JOB_RETENTION_SECONDS:
            _jobs.pop(job_id, None)
            return None
        return job


def cancel_job(job_id: str) -> bool:
    """
    Request cancellation of a running job.

    Returns:
        True if job was found and cancellation requested, False otherwise.
    """
    with _jobs_lock:
        job = _jobs.get(job_id)
        if not job:
            return False
        if job.state in ("completed", "failed", "cancelled", "stalled"):
            return False
        job.request_cancel()
        logger.info("Cancellation requested for job %s", job_id)
        return True


def serialize_job(job: JobState) -> Dict[str, Any]:
    """Convert JobState into JSON-safe dict."""
    with _jobs_lock:
        payload = job.to_dict()
    payload["done"] = bool(payload["result"] and payload["result"].get("done"))
    return payload


def _finish(job: JobState, state: str):
    with _jobs_lock:
        job.state = state
        job.finished_at = time.time()
        job.last_update = job.finished_at


def run_translation_job(job: JobState, manager_factory: Callable[[], TranslationManager] = TranslationManager):
    """
    Worker function executed in a background thread.

    Loops over the resumable operation; the progress the previous call left in
    the translation cache is what lets the next call continue.
    """
    with _jobs_lock:
        job.state = "running"
        job.started_at = time.time()
        job.last_update = job.started_at

    def on_progress(progress: TranslationProgress):
        with _jobs_lock:
            serialized = _serialize_progress(progress)
            job.progress = serialized
            job.progress_history.append(serialized)
            job.last_update = time.time()
            return job.cancel_requested

    def check_cancel():
        with _jobs_lock:
            return job.cancel_requested

    stalled_calls = 0
    previous_remaining = None
    try:
        manager = manager_factory()
        while True:
            if check_cancel():
                _finish(job, "cancelled")
                logger.info("Translation job %s cancelled after %s calls", job.job_id, job.calls)
                return

            result = manager.translate_document_progress(
                job.uid,
                job.document_id,
                job.source_locale,
                job.target_locale,
                prompt=job.prompt,
                include_json=job.include_json,
                max_chunks=job.chunks_per_call,
                progress_callback=on_progress,
                cancel_check=check_cancel,
            )

            remaining = result["progress"]["remaining"]
            with _jobs_lock:
                job.calls += 1
                job.result = result
                job.progress = dict(result["progress"])
                job.cache["hits"] += result["cache"]["hits"]
                job.cache["writes"] += result["cache"]["writes"]
                job.last_update = time.time()

            if result["done"]:
                _finish(job, "completed")
                logger.info(
                    "Translation job %s finished (calls=%s, segments=%s)",
                    job.job_id,
                    job.calls,
                    result["progress"]["total"],
                )
                return

            if previous_remaining is not None and remaining >= previous_remaining:
                stalled_calls += 1
            else:
                stalled_calls = 0
            previous_remaining = remaining

            if stalled_calls >= job.max_stalled_calls:
                with _jobs_lock:
                    job.error = (
                        f"No progress after {stalled_calls} consecutive calls "
                        f"({remaining} segments remaining)"
                    )
                    job.error_code = "stalled"
                _finish(job, "stalled")
                logger.warning("Translation job %s stalled with %s segments remaining", job.job_id, remaining)
                return
    except TranslationError as exc:
        with _jobs_lock:
            job.error = str(exc)
            job.error_code = exc.code
        _finish(job, "failed")
        logger.error("✗ Translation job %s failed: %s (%s)", job.job_id, exc, exc.code)
    except Exception as exc:
        with _jobs_lock:
            job.error = f"{type(exc).__name__}: {exc}"
            job.error_code = "internal_error"
        _finish(job, "failed")
        logger.exception("✗ Translation job %s failed: %s", job.job_id, exc)


def _cleanup_jobs_locked():
    """Remove completed jobs that exceeded retention period (call with lock held)."""
    now = time.time()
    expired = [
        job_id
        for job_id, job in _jobs.items()
        if job.finished_at and (now - job.finished_at) > _JOB_RETENTION_SECONDS
    ]
    for job_id in expired:
        _jobs.pop(job_id, None)


def _serialize_progress(progress: TranslationProgress) -> Dict[str, Any]:
    payload = progress.progress_dict()
    payload.update({
        "current_chunk": progress.current_chunk,
        "planned_chunks": progress.planned_chunks,
        "phase": progress.phase,
    })
    return payload
