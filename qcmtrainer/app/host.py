from __future__ import annotations

"""Session host: loads a session from a store and keeps the store in sync.

The host owns the countdown and auto-save tasks of the session it has open.
Store writes are best-effort: a ``PersistenceError`` never rolls back or
blocks in-memory state. The failed payload is kept as pending, a
``persist_failed`` event is published, and ``retry_pending()`` flushes it.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from storage.documents import SessionStore
from storage.schema import FLOW_KIND, FinalResult, NoteEntry, ProgressSnapshot, ReportEntry, ResultRow
from storage.store import append_results, validate_records

from ..errors import PersistenceError, SessionLoadError
from ..models import SessionSpec, extract_question_records
from ..policy.feedback import policy_for_flow
from .events import EventBus
from .flow_registry import session_kwargs
from .session_manager import PendingConfirmation, QuizSession, SessionState, progress_ratio
from .timers import AutoSaver, Countdown

logger = logging.getLogger(__name__)

STATUSES = ("all", "in_progress", "finished")


@dataclass(frozen=True)
class SessionSummary:
    session_id: str
    title: str
    finished: bool
    progress: float
    num_questions: int
    remaining_time: Optional[int] = None
    score_all_or_nothing: Optional[float] = None


class SessionHost:
    def __init__(
        self,
        store: SessionStore,
        user_id: str,
        *,
        cfg: Optional[Dict[str, Any]] = None,
        history_dir: Optional[Path] = None,
    ) -> None:
        self.store = store
        self.user_id = user_id
        self.cfg = cfg or {}
        self.history_dir = Path(history_dir) if history_dir is not None else None
        self.events = EventBus()
        self.session: Optional[QuizSession] = None
        self.kind: Optional[str] = None
        self.countdown: Optional[Countdown] = None
        self.autosaver: Optional[AutoSaver] = None
        self.last_error: Optional[PersistenceError] = None
        self._pending: Dict[str, Union[ProgressSnapshot, FinalResult]] = {}
        self._pending_annotations: List[Tuple[str, Union[NoteEntry, ReportEntry]]] = []
        self._pending_delete: Optional[Tuple[str, str]] = None

    # ------------------------------------------------------------------ config
    def _timer_setting(self, key: str, default: float) -> float:
        return float(self.cfg.get("timers", {}).get(key, default))

    def _default_duration(self) -> int:
        return int(self.cfg.get("exam", {}).get("default_duration_s", 30 * 60))

    # ---------------------------------------------------------------- opening
    def open(self, flow: str, session_id: str) -> QuizSession:
        """Load, restore and start a stored session.

        Raises ``SessionLoadError`` when the document is missing or malformed.
        A session without questions opens as a valid, empty session.
        """
        if flow not in FLOW_KIND:
            raise SessionLoadError(f"Unknown flow: {flow}")
        self.close()
        kind = FLOW_KIND[flow]
        doc = self.store.fetch_session(self.user_id, kind, session_id)
        if doc is None:
            raise SessionLoadError(f"{kind}/{session_id} not found")
        spec = SessionSpec.from_json(doc, session_id=session_id, flow=flow)
        if flow == "exam" and spec.total_time is None:
            spec.total_time = self._default_duration()

        kwargs = dict(policy=policy_for_flow(flow), **session_kwargs(self.cfg))
        try:
            if spec.finished:
                session = QuizSession.from_finished(spec, doc.get("selectedAnswers") or {}, **kwargs)
            elif spec.progress:
                session = QuizSession.restore(spec, spec.progress, **kwargs)
            else:
                session = QuizSession(spec, **kwargs)
                session.start()
        except ValidationError as exc:
            raise SessionLoadError(f"{kind}/{session_id}: unreadable progress ({exc.error_count()} errors)") from exc

        self.session = session
        self.kind = kind
        self._pending.clear()
        session.events.subscribe("finished", self._on_finished)
        session.events.subscribe("restarted", self._on_restarted)
        self._start_timers()
        logger.info("opened %s/%s (%d questions, %s)", kind, session_id, session.n, session.state.value)
        return session

    def _start_timers(self) -> None:
        self._stop_timers()
        session = self.session
        if session is None or session.finished:
            return
        self.autosaver = AutoSaver(session, self.save, interval_s=self._timer_setting("autosave_interval_s", 30.0))
        self.autosaver.start()
        if session.time_left is not None:
            self.countdown = Countdown(session, tick_s=self._timer_setting("tick_s", 1.0))
            self.countdown.start()

    def _stop_timers(self) -> None:
        if self.countdown:
            self.countdown.stop()
            self.countdown = None
        if self.autosaver:
            self.autosaver.stop()
            self.autosaver = None

    def close(self) -> None:
        """Tear down: stop both periodic tasks and save a last snapshot."""
        session = self.session
        self._stop_timers()
        if session is None:
            return
        if not session.finished and session.state is not SessionState.NOT_STARTED:
            self.save()
        session.events.unsubscribe("finished", self._on_finished)
        session.events.unsubscribe("restarted", self._on_restarted)
        self.session = None
        self.kind = None

    # ------------------------------------------------------------------ timer
    def pause(self) -> bool:
        if self.countdown is None:
            return False
        self.countdown.pause()
        self.save()
        return True

    def resume(self) -> bool:
        if self.countdown is None:
            return False
        self.countdown.resume()
        return True

    # ------------------------------------------------------------ persistence
    def _write(self, key: str, fn: Callable[[], None]) -> bool:
        try:
            fn()
        except PersistenceError as exc:
            logger.warning("store write %s failed: %s", key, exc)
            self.last_error = exc
            self.events.emit("persist_failed", exc)
            return False
        return True

    def save(self, snapshot: Union[ProgressSnapshot, FinalResult, None] = None) -> bool:
        """Persist the current snapshot (progress, or the final result once finished)."""
        session = self.session
        if session is None or self.kind is None:
            return False
        snap = snapshot if snapshot is not None else session.snapshot()
        if isinstance(snap, FinalResult):
            return self._write_final(snap)
        if session.finished or "final" in self._pending:
            # a progress snapshot taken before finalize must not reopen the document
            logger.debug("dropping progress snapshot for finished session %s", session.spec.session_id)
            self._pending.pop("progress", None)
            return False
        sid, kind = session.spec.session_id, self.kind
        ok = self._write("progress", lambda: self.store.write_progress(self.user_id, kind, sid, snap))
        if ok:
            self._pending.pop("progress", None)
        else:
            self._pending["progress"] = snap
        return ok

    def _write_final(self, result: FinalResult) -> bool:
        session = self.session
        if session is None or self.kind is None:
            return False
        sid, kind = session.spec.session_id, self.kind
        # a final result supersedes any unsaved progress
        self._pending.pop("progress", None)
        ok = self._write("final", lambda: self.store.write_final(self.user_id, kind, sid, result))
        if ok:
            self._pending.pop("final", None)
        else:
            self._pending["final"] = result
        return ok

    def _record_history(self, result: FinalResult) -> None:
        session = self.session
        if self.history_dir is None or session is None:
            return
        row = ResultRow(
            session_id=session.spec.session_id,
            user_id=self.user_id,
            flow=session.spec.flow,
            title=session.spec.title,
            finished_at=result.updated_at,
            n_questions=session.n,
            answered=len(result.selected_answers),
            score_all_or_nothing=result.score_all_or_nothing,
            score_partial=result.score_partial,
            score_partial_negative=result.score_partial_negative,
        )
        try:
            append_results(validate_records([row]), self.history_dir)
        except (OSError, ValueError) as exc:
            logger.warning("could not record score history: %s", exc)

    def _on_finished(self, result: FinalResult) -> None:
        self._stop_timers()
        self._write_final(result)
        self._record_history(result)

    def _on_restarted(self, _session_id: Any) -> None:
        session = self.session
        if session is None or self.kind is None:
            return
        self._pending.clear()
        sid, kind = session.spec.session_id, self.kind
        if not self._write("reset", lambda: self.store.reset_progress(self.user_id, kind, sid)):
            # the next progress save overwrites the stale document anyway
            self._pending["progress"] = session.snapshot()  # type: ignore[assignment]
        self._start_timers()

    @property
    def pending(self) -> List[str]:
        return sorted(self._pending) + [k for k, _ in self._pending_annotations]

    def retry_pending(self) -> bool:
        """Flush writes that failed earlier; True when nothing is left pending."""
        if self.session is None or self.kind is None:
            return not self._pending_annotations
        if "final" in self._pending:
            self._write_final(self._pending["final"])  # type: ignore[arg-type]
        elif "progress" in self._pending:
            self.save(self._pending["progress"])
        remaining = []
        for kind, entry in self._pending_annotations:
            if not self._write_annotation(kind, entry):
                remaining.append((kind, entry))
        self._pending_annotations = remaining
        done = not self._pending and not self._pending_annotations
        if done:
            self.last_error = None
            self.events.emit("persist_recovered", None)
        return done

    # ------------------------------------------------------------ annotations
    def _write_annotation(self, kind: str, entry: Union[NoteEntry, ReportEntry]) -> bool:
        session = self.session
        if session is None or self.kind is None:
            return False
        sid, coll = session.spec.session_id, self.kind
        if kind == "note":
            return self._write("note", lambda: self.store.append_note(self.user_id, coll, sid, entry))  # type: ignore[arg-type]
        return self._write("report", lambda: self.store.append_report(self.user_id, coll, sid, entry))  # type: ignore[arg-type]

    def _annotate(self, kind: str, text: str) -> bool:
        session = self.session
        if session is None:
            raise RuntimeError("no session is open")
        if not (text or "").strip():
            raise ValueError(f"empty {kind}")
        q = session.current_question
        if q is None:
            raise ValueError("session has no questions")
        if kind == "note":
            entry: Union[NoteEntry, ReportEntry] = NoteEntry(
                question_id=q.index, question_text=q.text, note=text, user=self.user_id
            )
            session.set_note(text)
        else:
            entry = ReportEntry(question_id=q.index, question_text=q.text, message=text, user=self.user_id)
        ok = self._write_annotation(kind, entry)
        if not ok:
            self._pending_annotations.append((kind, entry))
        return ok

    def save_note(self, text: str) -> bool:
        return self._annotate("note", text)

    def report(self, message: str) -> bool:
        return self._annotate("report", message)

    # --------------------------------------------------------------- listings
    def list_sessions(self, flow: str, status: str = "all") -> List[SessionSummary]:
        if status not in STATUSES:
            raise ValueError(f"Unknown status filter: {status}")
        out = []
        for sid, doc in self.store.list_sessions(self.user_id, FLOW_KIND[flow]):
            finished = bool(doc.get("finished", False))
            if (status == "finished" and not finished) or (status == "in_progress" and finished):
                continue
            n = int(doc.get("num_questions") or len(extract_question_records(doc)))
            current = int(doc.get("currentIndex") or 0)
            progress = progress_ratio(current, n, finished) * 100
            out.append(
                SessionSummary(
                    session_id=sid,
                    title=str(doc.get("title") or "Untitled session"),
                    finished=finished,
                    progress=round(progress, 2),
                    num_questions=n,
                    remaining_time=doc.get("remainingTime", doc.get("totalTime")),
                    score_all_or_nothing=doc.get("score_all_or_nothing"),
                )
            )
        out.sort(key=lambda s: s.session_id)
        return out

    def request_delete(self, flow: str, session_id: str) -> PendingConfirmation:
        self._pending_delete = (FLOW_KIND[flow], session_id)
        return PendingConfirmation(action="delete", message=f"Delete session {session_id}?")

    def confirm_delete(self) -> bool:
        target, self._pending_delete = self._pending_delete, None
        if target is None:
            return False
        kind, sid = target
        if self.session is not None and self.kind == kind and self.session.spec.session_id == sid:
            self._stop_timers()
            self.session = None
            self.kind = None
        return self._write("delete", lambda: self.store.delete_session(self.user_id, kind, sid))

    def cancel_delete(self) -> bool:
        had = self._pending_delete is not None
        self._pending_delete = None
        return had
