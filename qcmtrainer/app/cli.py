from __future__ import annotations

"""CLI for qcmtrainer using SessionHost and the flow registry."""

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from storage.documents import JsonDocumentStore
from storage.schema import FLOW_KIND
from storage.store import best_scores, export_ndjson, load_all, query_trend

from ..config.config import load_config, validate_config
from ..errors import QcmError
from ..models import extract_question_records, load_questions
from ..scoring.scoring import ScoreTuple, compute_scores, question_points
from ..stats.stats import format_scores, format_summary, new_session_stats, update_stats
from ..util.randomness import seed_if_needed
from .flow_registry import build_spec, get_flow, list_flows, resolve_params
from .host import STATUSES, SessionHost
from .session_manager import QuizSession

logger = logging.getLogger(__name__)

HELP = (
    "Letters toggle options (A or AC). Commands: r reveal, n next, p prev, g N goto, "
    "x L rule out, note TEXT, report TEXT, s TERM search, pause, resume, f finish, restart, q save and quit"
)


def _read_doc(path: str) -> Any:
    p = Path(path)
    with p.open("r", encoding="utf-8") as f:
        if p.suffix.lower() in (".yml", ".yaml"):
            return yaml.safe_load(f)
        return json.load(f)


def _load_question_records(path: str) -> List[Dict[str, Any]]:
    data = _read_doc(path)
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return extract_question_records(data)
    raise QcmError(f"{path}: expected a list of questions or a session document")


def _fmt_time(seconds: int) -> str:
    m, s = divmod(max(0, int(seconds)), 60)
    return f"{m:02d}:{s:02d}"


def _build_ui() -> dict[str, Callable[..., Any]]:
    def ask(prompt: str) -> str:
        return input(prompt)

    def inform(msg: str) -> None:
        print(msg)

    return {"ask": ask, "inform": inform}


def _render(session: QuizSession, inform: Callable[[str], None]) -> None:
    q = session.current_question
    if q is None:
        return
    year = f" ({q.year})" if q.year else ""
    inform(f"\n[{session.current + 1}/{session.n}]{year} {q.text}")
    sel = session.selection()
    struck = session.struck()
    for label in q.labels:
        mark = "x" if label in sel else " "
        ruled = "  (ruled out)" if label in struck else ""
        inform(f"  [{mark}] {label}. {q.options[label]}{ruled}")
    if session.is_revealed():
        inform("  (revealed)")
    if session.time_left is not None:
        inform(f"Time left: {_fmt_time(session.time_left)}")


def _confirm(session: QuizSession, action: str, ui: dict[str, Callable[..., Any]]) -> None:
    pending = session.request(action)
    if pending is None:
        ui["inform"](f"Cannot {action} now.")
        return
    if ui["ask"](f"{pending.message} [y/N] ").strip().lower() in ("y", "yes"):
        session.confirm()
    else:
        session.cancel()


def run_interactive(host: SessionHost, ui: dict[str, Callable[..., Any]]) -> None:
    """Drive the open session from text commands until it finishes or the user quits."""
    session = host.session
    if session is None:
        return
    inform = ui["inform"]
    if session.n == 0:
        inform("This session has no questions.")
        return
    inform(HELP)
    while not session.finished:
        _render(session, inform)
        try:
            raw = ui["ask"]("> ").strip()
        except EOFError:
            break
        if session.finished:
            inform("Time is up.")
            break
        cmd, _, arg = raw.partition(" ")
        low = cmd.lower()
        if not raw:
            continue
        if low == "q":
            break
        if low == "r":
            out = session.reveal()
            if out is None:
                inform("Nothing to reveal (select an option first; exams reveal on submission).")
                continue
            inform(f"{out.verdict.feedback} Correct: {', '.join(out.correct_answer)}")
            if out.justification:
                inform(out.justification)
            inform(format_scores(session.running_scores(), session.scale))
        elif low == "n":
            session.next()
        elif low == "p":
            session.prev()
        elif low == "g":
            try:
                session.goto(int(arg) - 1)
            except ValueError:
                inform("Usage: g N")
        elif low == "x":
            if not session.toggle_struck(arg):
                inform("Usage: x L")
        elif low == "note":
            try:
                host.save_note(arg)
            except ValueError:
                inform("A note cannot be empty.")
        elif low == "report":
            try:
                host.report(arg)
            except ValueError:
                inform("A report cannot be empty.")
        elif low == "s":
            hits = session.search(arg)
            inform("Matches: " + (", ".join(str(i + 1) for i in hits) if hits else "none"))
        elif low == "pause":
            if host.pause():
                inform("Timer paused.")
        elif low == "resume":
            if host.resume():
                inform("Timer resumed.")
        elif low == "f":
            _confirm(session, "finalize", ui)
        elif low == "restart":
            _confirm(session, "restart", ui)
        elif raw.isalpha():
            for label in raw.upper():
                if not session.answer(label):
                    inform(f"Cannot select {label}.")
        else:
            inform(HELP)


def _summary(session: QuizSession) -> str:
    stats = new_session_stats()
    selections = session.selections()
    for q in session.questions:
        update_stats(stats, q.source, question_points(q, selections.get(q.index), penalty=session.penalty))
    result = session.result
    scores = ScoreTuple.from_json(result.to_doc()) if result is not None else session.scores()
    return format_summary(stats, scores)


def _history_dir(cfg: Dict[str, Any], data_dir: str) -> Optional[Path]:
    return Path(data_dir) if cfg["storage"].get("history_enabled", True) else None


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(prog="qcmtrainer")
    p.add_argument("--config", default=None, help="Path to YAML config")
    p.add_argument("-v", "--verbose", action="store_true")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("list-flows")

    sp = sub.add_parser("show-params")
    sp.add_argument("--flow", required=True)
    sp.add_argument("--preset", default=None)

    rp = sub.add_parser("run")
    src = rp.add_mutually_exclusive_group(required=True)
    src.add_argument("--questions", help="JSON/YAML list of questions, or a session document")
    src.add_argument("--resume", metavar="SESSION_ID", help="Continue a stored session")
    rp.add_argument("--flow", default=None, choices=sorted(FLOW_KIND))
    rp.add_argument("--preset", default="default")
    rp.add_argument("--title", default=None)
    rp.add_argument("--num", type=int, default=None, help="Number of questions")
    rp.add_argument("--order", default=None, choices=["by_year", "random"])
    rp.add_argument("--duration", type=int, default=None, help="Exam duration in seconds")
    rp.add_argument("--data-dir", default=None)
    rp.add_argument("--user", default="local")
    rp.add_argument("--explain", action="store_true")

    sc = sub.add_parser("score")
    sc.add_argument("--questions", required=True)
    sc.add_argument("--answers", required=True, help="JSON/YAML mapping of question index to labels")

    ls = sub.add_parser("sessions")
    ls.add_argument("--data-dir", default=None)
    ls.add_argument("--user", default="local")
    ls.add_argument("--flow", default="training", choices=sorted(FLOW_KIND))
    ls.add_argument("--status", default="all", choices=list(STATUSES))

    hp = sub.add_parser("history")
    hp.add_argument("--data-dir", default=None)
    hp.add_argument("--flow", default=None, choices=sorted(FLOW_KIND))
    hp.add_argument("--user", default=None)
    hp.add_argument("--export", default=None, help="Write the rows as NDJSON")
    hp.add_argument("--plot", default=None, help="Save a trend plot (PNG)")

    args = p.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if (args.verbose or getattr(args, "explain", False)) else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "list-flows":
        for m in list_flows():
            print(f"{m.id}: {m.name} - {m.description} | presets: {', '.join(m.presets.keys())}")
        return 0

    if args.cmd == "show-params":
        try:
            m = get_flow(args.flow)
        except KeyError as exc:
            print(exc.args[0])
            return 2
        print(f"Flow {m.id}: {m.name}")
        print("Presets:")
        for name, params in m.presets.items():
            if args.preset is None or args.preset == name:
                print(f"  - {name}: {params}")
        return 0

    try:
        cfg = validate_config(load_config(args.config))
    except QcmError as exc:
        print(f"[ERROR] {exc}")
        return 2
    data_dir = getattr(args, "data_dir", None) or cfg["storage"]["data_dir"]

    if args.cmd == "score":
        try:
            questions = load_questions(_load_question_records(args.questions))
            answers = _read_doc(args.answers) or {}
        except (OSError, ValueError, yaml.YAMLError, QcmError) as exc:
            print(f"[ERROR] {exc}")
            return 2
        if isinstance(answers, list):
            answers = dict(enumerate(answers))
        selections = {int(k): [v] if isinstance(v, str) else list(v or []) for k, v in answers.items()}
        scoring = cfg["scoring"]
        scores = compute_scores(
            questions, selections,
            penalty=scoring["penalty_per_wrong"], scale=scoring["scale"], decimals=scoring["decimals"],
        )
        print(format_scores(scores, scoring["scale"]))
        return 0

    if args.cmd == "sessions":
        host = SessionHost(JsonDocumentStore(Path(data_dir)), args.user, cfg=cfg)
        rows = host.list_sessions(args.flow, args.status)
        if not rows:
            print("No sessions.")
        for s in rows:
            state = "finished" if s.finished else f"{s.progress:.0f}%"
            extra = f" | {s.score_all_or_nothing:.2f}/20" if s.score_all_or_nothing is not None else ""
            print(f"{s.session_id}: {s.title} [{s.num_questions} q] {state}{extra}")
        return 0

    if args.cmd == "history":
        df = load_all(Path(data_dir))
        if args.flow:
            df = query_trend(df, flow=args.flow, user_id=args.user)
        elif args.user:
            df = df[df["user_id"].astype("string") == args.user]
        if df.empty:
            print("No finished sessions recorded.")
            return 0
        cols = ["finished_at", "flow", "title", "score_all_or_nothing", "score_partial", "score_partial_negative"]
        print(df[cols].to_string(index=False))
        best = best_scores(df)
        print("Best: " + ", ".join(f"{k}={float(v):.2f}" for k, v in best.items()))
        if args.export:
            export_ndjson(df, Path(args.export))
        if args.plot:
            from analytics import AnalyticsConfig, ewma_by_session, load_and_prepare, plot_trend

            acfg = AnalyticsConfig()
            prepared = ewma_by_session(load_and_prepare(Path(data_dir), acfg), value_col=acfg.scheme, span=acfg.smoothing_span)
            plot_trend(prepared, flow=args.flow, user_id=args.user, value_col=acfg.scheme, pass_mark=acfg.pass_mark, save_path=args.plot)
        return 0

    if args.cmd == "run":
        seed_if_needed()
        if args.explain:
            from .explain import enable as explain_enable
            explain_enable(True)
            cfg["explain"]["enabled"] = True

        flow = args.flow or cfg["session"]["flow"]
        store = JsonDocumentStore(Path(data_dir))
        try:
            if args.resume:
                sid = args.resume
            else:
                overrides = {
                    "num_questions": args.num if args.num is not None else cfg["session"]["num_questions"],
                    "order_mode": args.order,
                    "duration_s": args.duration,
                }
                params = resolve_params(flow, args.preset, overrides)
                if flow == "exam":
                    params.setdefault("duration_s", cfg["exam"]["default_duration_s"])
                title = args.title or Path(args.questions).stem
                spec = build_spec(
                    flow, session_id="", title=title,
                    question_records=_load_question_records(args.questions), params=params,
                )
                sid = store.create_session(args.user, FLOW_KIND[flow], spec.to_json())
            host = SessionHost(store, args.user, cfg=cfg, history_dir=_history_dir(cfg, data_dir))
            host.events.subscribe("persist_failed", lambda exc: print(f"[WARN] not saved yet: {exc}"))
            session = host.open(flow, sid)
        except KeyError as exc:
            print(f"[ERROR] {exc.args[0]}")
            return 2
        except (OSError, ValueError, yaml.YAMLError, QcmError) as exc:
            print(f"[ERROR] {exc}")
            return 2

        print(f"Session {sid}: {session.spec.title} ({session.n} questions)")
        try:
            run_interactive(host, _build_ui())
            if host.pending:
                host.retry_pending()
        finally:
            host.close()
        if session.finished:
            print("\nSession Summary:")
            print(_summary(session))
        else:
            print(f"Progress saved. Resume with: qcmtrainer run --flow {flow} --resume {sid}")
        return 0

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
