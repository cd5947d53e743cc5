from __future__ import annotations

"""Keyed document stores for session records.

Documents live under ``(user_id, kind, session_id)`` where ``kind`` is one of
the collections ``sessions``, ``td_sessions`` or ``exams``. Every write is a
small read-modify-write of one document, mirroring a remote ``updateDoc``.
Failed writes raise ``PersistenceError``; callers decide whether to retry.
"""

import copy
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Protocol, Tuple
from uuid import uuid4

from qcmtrainer.errors import PersistenceError

from .schema import KINDS, SCORE_COLUMNS, FinalResult, NoteEntry, ProgressSnapshot, ReportEntry, utcnow

logger = logging.getLogger(__name__)

Doc = Dict[str, Any]


class SessionStore(Protocol):
    def fetch_session(self, user_id: str, kind: str, session_id: str) -> Optional[Doc]: ...

    def create_session(self, user_id: str, kind: str, doc: Doc, session_id: Optional[str] = None) -> str: ...

    def write_progress(self, user_id: str, kind: str, session_id: str, snapshot: ProgressSnapshot) -> None: ...

    def write_final(self, user_id: str, kind: str, session_id: str, result: FinalResult) -> None: ...

    def reset_progress(self, user_id: str, kind: str, session_id: str) -> None: ...

    def append_note(self, user_id: str, kind: str, session_id: str, note: NoteEntry) -> None: ...

    def append_report(self, user_id: str, kind: str, session_id: str, report: ReportEntry) -> None: ...

    def list_sessions(self, user_id: str, kind: str) -> List[Tuple[str, Doc]]: ...

    def delete_session(self, user_id: str, kind: str, session_id: str) -> None: ...


def _check_kind(kind: str) -> None:
    if kind not in KINDS:
        raise ValueError(f"Unknown collection: {kind}")


class BaseDocumentStore:
    """Implements the store operations on top of four primitive hooks."""

    def _get(self, user_id: str, kind: str, session_id: str) -> Optional[Doc]:
        raise NotImplementedError

    def _put(self, user_id: str, kind: str, session_id: str, doc: Doc) -> None:
        raise NotImplementedError

    def _remove(self, user_id: str, kind: str, session_id: str) -> None:
        raise NotImplementedError

    def _ids(self, user_id: str, kind: str) -> Iterator[str]:
        raise NotImplementedError

    # -- reads --
    def fetch_session(self, user_id: str, kind: str, session_id: str) -> Optional[Doc]:
        _check_kind(kind)
        return self._get(user_id, kind, session_id)

    def list_sessions(self, user_id: str, kind: str) -> List[Tuple[str, Doc]]:
        _check_kind(kind)
        out = []
        for sid in sorted(self._ids(user_id, kind)):
            doc = self._get(user_id, kind, sid)
            if doc is not None:
                out.append((sid, doc))
        return out

    # -- writes --
    def create_session(self, user_id: str, kind: str, doc: Doc, session_id: Optional[str] = None) -> str:
        _check_kind(kind)
        sid = session_id or str(uuid4())
        body = copy.deepcopy(doc)
        body.setdefault("finished", False)
        body.setdefault("createdAt", utcnow().isoformat())
        self._put(user_id, kind, sid, body)
        logger.info("created %s/%s for user %s", kind, sid, user_id)
        return sid

    def _update(self, user_id: str, kind: str, session_id: str, operation: str, fn) -> None:
        _check_kind(kind)
        doc = self._get(user_id, kind, session_id)
        if doc is None:
            raise PersistenceError(f"{kind}/{session_id} not found", operation=operation)
        fn(doc)
        doc["updatedAt"] = utcnow().isoformat()
        self._put(user_id, kind, session_id, doc)

    def write_progress(self, user_id: str, kind: str, session_id: str, snapshot: ProgressSnapshot) -> None:
        def apply(doc: Doc) -> None:
            if doc.get("finished"):
                logger.info("ignoring progress for finished %s/%s", kind, session_id)
                return
            doc["progress"] = snapshot.to_doc()
            doc["currentIndex"] = snapshot.current_question
            if snapshot.time_left is not None:
                doc["remainingTime"] = snapshot.time_left

        self._update(user_id, kind, session_id, "write_progress", apply)

    def write_final(self, user_id: str, kind: str, session_id: str, result: FinalResult) -> None:
        def apply(doc: Doc) -> None:
            doc.pop("progress", None)
            doc.update(result.to_doc())

        self._update(user_id, kind, session_id, "write_final", apply)

    def reset_progress(self, user_id: str, kind: str, session_id: str) -> None:
        def apply(doc: Doc) -> None:
            for key in ["progress", "selectedAnswers", "currentIndex", *SCORE_COLUMNS]:
                doc.pop(key, None)
            doc["finished"] = False
            if doc.get("totalTime") is not None:
                doc["remainingTime"] = doc["totalTime"]

        self._update(user_id, kind, session_id, "reset_progress", apply)

    def append_note(self, user_id: str, kind: str, session_id: str, note: NoteEntry) -> None:
        self._update(
            user_id, kind, session_id, "append_note",
            lambda doc: doc.setdefault("notes", []).append(note.to_doc()),
        )

    def append_report(self, user_id: str, kind: str, session_id: str, report: ReportEntry) -> None:
        self._update(
            user_id, kind, session_id, "append_report",
            lambda doc: doc.setdefault("reports", []).append(report.to_doc()),
        )

    def delete_session(self, user_id: str, kind: str, session_id: str) -> None:
        _check_kind(kind)
        self._remove(user_id, kind, session_id)
        logger.info("deleted %s/%s for user %s", kind, session_id, user_id)


class MemoryDocumentStore(BaseDocumentStore):
    """In-process store; documents are deep-copied in and out."""

    def __init__(self) -> None:
        self._docs: Dict[Tuple[str, str, str], Doc] = {}

    def _get(self, user_id: str, kind: str, session_id: str) -> Optional[Doc]:
        doc = self._docs.get((user_id, kind, session_id))
        return copy.deepcopy(doc) if doc is not None else None

    def _put(self, user_id: str, kind: str, session_id: str, doc: Doc) -> None:
        self._docs[(user_id, kind, session_id)] = copy.deepcopy(doc)

    def _remove(self, user_id: str, kind: str, session_id: str) -> None:
        self._docs.pop((user_id, kind, session_id), None)

    def _ids(self, user_id: str, kind: str) -> Iterator[str]:
        return (sid for (u, k, sid) in list(self._docs) if u == user_id and k == kind)


class JsonDocumentStore(BaseDocumentStore):
    """One JSON file per session under ``<data_dir>/<user>/<kind>/<id>.json``."""

    def __init__(self, data_dir: Path) -> None:
        self.data_dir = Path(data_dir)

    def _path(self, user_id: str, kind: str, session_id: str) -> Path:
        return self.data_dir / user_id / kind / f"{session_id}.json"

    def _get(self, user_id: str, kind: str, session_id: str) -> Optional[Doc]:
        p = self._path(user_id, kind, session_id)
        if not p.exists():
            return None
        try:
            with p.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("could not read %s: %s", p, exc)
            return None
        return data if isinstance(data, dict) else None

    def _put(self, user_id: str, kind: str, session_id: str, doc: Doc) -> None:
        p = self._path(user_id, kind, session_id)
        tmp = p.with_suffix(".json.tmp")
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(doc, f, indent=2, ensure_ascii=False)
            os.replace(tmp, p)
        except OSError as exc:
            raise PersistenceError(f"could not write {p}: {exc}", operation="put") from exc

    def _remove(self, user_id: str, kind: str, session_id: str) -> None:
        p = self._path(user_id, kind, session_id)
        try:
            p.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise PersistenceError(f"could not delete {p}: {exc}", operation="delete") from exc

    def _ids(self, user_id: str, kind: str) -> Iterator[str]:
        folder = self.data_dir / user_id / kind
        if not folder.is_dir():
            return iter(())
        return (p.stem for p in folder.glob("*.json"))
