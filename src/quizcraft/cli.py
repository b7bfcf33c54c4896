"""Command-line entry point for quizcraft."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable, Optional, Sequence

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import engine, share
from .config import (
    ConfigOverrides,
    LoadResult,
    QuizcraftConfigError,
    load_config,
    write_default_config,
)
from .console import InputProvider, run_session
from .core import workspace as workspace_mod
from .core.logging import configure_logger
from .markup import (
    BLANK_TEMPLATE,
    GeneratorForm,
    autofix,
    build_prompt,
    parse,
)
from .markup import preview as preview_markup
from .models import ALL_TAGS, Diagnostic, FeedbackLevel, Mode, Session
from .store import FileKeyValueStore, SessionStore, boot, export_snapshot

EXPORT_FILENAME = "quizcraft-session.json"

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="quizcraft",
        description=(
            "Validate quiz markup, take quizzes in the terminal and share "
            "sessions as URL-safe tokens."
        ),
    )
    parser.add_argument(
        "--config",
        type=Path,
        help=(
            "Path to a TOML config file (defaults to the workspace config "
            "directory)."
        ),
    )
    parser.add_argument(
        "--workspace",
        type=Path,
        help="Override the workspace root holding config, logs and state.",
    )
    parser.add_argument(
        "--log-level",
        help="Set the logging level for the run (defaults to INFO).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        default=None,
        help="Mirror log output to stderr.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser(
        "init", help="Write the default quizcraft.toml template."
    )
    init_parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing config file if present.",
    )

    check_parser = subparsers.add_parser(
        "check", help="Validate quiz markup and list diagnostics."
    )
    check_parser.add_argument("source", help="Markup file, or - for stdin.")

    fix_parser = subparsers.add_parser(
        "fix", help="Normalize common markup mistakes."
    )
    fix_parser.add_argument("source", help="Markup file, or - for stdin.")
    fix_parser.add_argument(
        "--write",
        action="store_true",
        help="Rewrite the file in place instead of printing the result.",
    )

    prompt_parser = subparsers.add_parser(
        "prompt", help="Print a prompt for generating quiz markup."
    )
    prompt_parser.add_argument("--topic", default="")
    prompt_parser.add_argument("--count", type=int, default=12)
    prompt_parser.add_argument("--difficulty", default="Medium")
    prompt_parser.add_argument(
        "--style", default=GeneratorForm.style, help="Question style hint."
    )
    prompt_parser.add_argument(
        "--tags", action=argparse.BooleanOptionalAction, default=True
    )
    prompt_parser.add_argument("--tag-hint", default=GeneratorForm.tag_hint)
    prompt_parser.add_argument(
        "--evidence", action=argparse.BooleanOptionalAction, default=True
    )
    prompt_parser.add_argument("--evidence-hint", default="")
    prompt_parser.add_argument(
        "--template",
        action="store_true",
        help="Print the blank markup template instead.",
    )

    take_parser = subparsers.add_parser(
        "take", help="Load quiz markup and start an interactive session."
    )
    take_parser.add_argument("source", help="Markup file, or - for stdin.")
    take_parser.add_argument(
        "--mode", choices=[member.value for member in Mode]
    )
    take_parser.add_argument(
        "--shuffle",
        action="store_true",
        default=None,
        help="Shuffle question order.",
    )
    take_parser.add_argument(
        "--shuffle-answers",
        action="store_true",
        default=None,
        help="Shuffle the display order of choices on every render.",
    )
    take_parser.add_argument(
        "--no-timer",
        dest="timer",
        action="store_false",
        default=None,
        help="Hide the elapsed-time display.",
    )
    take_parser.add_argument(
        "--feedback", choices=[member.value for member in FeedbackLevel]
    )
    take_parser.add_argument(
        "--tag",
        dest="tag_filter",
        help="Restrict the progress map to one tag.",
    )

    subparsers.add_parser("resume", help="Continue the saved session.")

    share_parser = subparsers.add_parser(
        "share", help="Print a share URL for a session."
    )
    share_parser.add_argument(
        "source",
        nargs="?",
        help="Build a fresh session from this markup file instead.",
    )
    _add_compress_flag(share_parser)

    open_parser = subparsers.add_parser(
        "open", help="Open a shared session from a token or URL."
    )
    open_parser.add_argument("token", help="Share token or share URL.")

    export_parser = subparsers.add_parser(
        "export", help="Write the saved session as a JSON snapshot."
    )
    export_parser.add_argument(
        "path",
        nargs="?",
        type=Path,
        help="Destination file (defaults to the workspace exports directory).",
    )

    subparsers.add_parser("reset", help="Discard the saved session.")
    subparsers.add_parser("status", help="Summarize the saved session.")
    return parser


def _add_compress_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--no-compress",
        dest="compress",
        action="store_false",
        default=None,
        help="Use plain tokens instead of gzip-compressed ones.",
    )


def main(
    argv: Optional[Sequence[str]] = None,
    *,
    console: Optional[Console] = None,
    input_provider: Optional[InputProvider] = None,
) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    console = console or Console()

    if args.command == "init":
        return _handle_init(args, console)

    try:
        load_result = load_config(
            config_path=args.config,
            overrides=_overrides_from_args(args),
            workspace_path=args.workspace,
        )
    except QuizcraftConfigError as exc:
        parser.error(str(exc))

    configure_logger(
        "quizcraft",
        log_dir=load_result.layout.path_for("logs"),
        level=load_result.config.log_level,
        verbose=load_result.config.verbose,
    )
    logger.debug("quizcraft CLI invoked", extra={"command": args.command})

    provider = input_provider or (lambda: console.input("[bold]> [/]"))
    handler = _HANDLERS[args.command]
    return handler(args, load_result, console, provider)


def _overrides_from_args(args: argparse.Namespace) -> ConfigOverrides:
    return ConfigOverrides(
        mode=getattr(args, "mode", None),
        timer=getattr(args, "timer", None),
        shuffle_questions=getattr(args, "shuffle", None),
        shuffle_answers=getattr(args, "shuffle_answers", None),
        feedback=getattr(args, "feedback", None),
        tag_filter=getattr(args, "tag_filter", None),
        compress=getattr(args, "compress", None),
        log_level=args.log_level,
        verbose=args.verbose,
    )


def _handle_init(args: argparse.Namespace, console: Console) -> int:
    try:
        layout = workspace_mod.ensure_workspace(path=args.workspace)
        written = write_default_config(
            layout, path=args.config, overwrite=args.force
        )
    except (workspace_mod.WorkspaceError, QuizcraftConfigError) as exc:
        _print_error(console, str(exc))
        return 1
    console.print(f"Wrote config template to {written}")
    return 0


def _handle_check(
    args: argparse.Namespace,
    load_result: LoadResult,
    console: Console,
    provider: InputProvider,
) -> int:
    text = _read_source(args.source, console)
    if text is None:
        return 2
    summary = preview_markup(text)
    console.print(
        f"{summary.blocks} block(s), {summary.valid} valid question(s)."
    )
    result = parse(text)
    if result.diagnostics:
        console.print(_diagnostics_table(result.diagnostics))
        return 1
    if not result.questions:
        _print_error(console, "No questions found.")
        return 1
    console.print("[green]Markup OK.[/]")
    return 0


def _handle_fix(
    args: argparse.Namespace,
    load_result: LoadResult,
    console: Console,
    provider: InputProvider,
) -> int:
    text = _read_source(args.source, console)
    if text is None:
        return 2
    fixed = autofix(text)
    if args.write and args.source != "-":
        try:
            Path(args.source).write_text(fixed, encoding="utf-8")
        except OSError as exc:
            _print_error(console, f"Could not write {args.source}: {exc}")
            return 2
        console.print(f"Rewrote {args.source}")
        return 0
    sys.stdout.write(fixed)
    return 0


def _handle_prompt(
    args: argparse.Namespace,
    load_result: LoadResult,
    console: Console,
    provider: InputProvider,
) -> int:
    if args.template:
        sys.stdout.write(BLANK_TEMPLATE)
        return 0
    form = GeneratorForm(
        topic=args.topic,
        count=args.count,
        difficulty=args.difficulty,
        style=args.style,
        include_tags=args.tags,
        tag_hint=args.tag_hint,
        include_evidence=args.evidence,
        evidence_hint=args.evidence_hint,
    )
    sys.stdout.write(build_prompt(form) + "\n")
    return 0


def _handle_take(
    args: argparse.Namespace,
    load_result: LoadResult,
    console: Console,
    provider: InputProvider,
) -> int:
    text = _read_source(args.source, console)
    if text is None:
        return 2
    source = "stdin" if args.source == "-" else Path(args.source).name
    outcome = engine.load_text(
        engine.default_session(load_result.config.settings),
        text,
        source=source,
    )
    if not outcome.loaded:
        _print_error(console, "Quiz not loaded; fix these problems first.")
        if outcome.result.diagnostics:
            console.print(_diagnostics_table(outcome.result.diagnostics))
        return 1
    tag = outcome.session.settings.tag_filter
    known = engine.all_tags(outcome.session)
    if tag != ALL_TAGS and tag not in known:
        _print_error(
            console,
            f"Unknown tag '{escape(tag)}'. "
            f"Known: {escape(', '.join(known)) or '(none)'}",
        )
        return 1
    store = _session_store(load_result)
    store.save(outcome.session)
    run_session(outcome.session, console, provider, store=store)
    return 0


def _handle_resume(
    args: argparse.Namespace,
    load_result: LoadResult,
    console: Console,
    provider: InputProvider,
) -> int:
    store = _session_store(load_result)
    session = store.load()
    if session is None or session.quiz is None:
        _print_error(console, "No saved session to resume.")
        return 1
    run_session(session, console, provider, store=store)
    return 0


def _handle_share(
    args: argparse.Namespace,
    load_result: LoadResult,
    console: Console,
    provider: InputProvider,
) -> int:
    compressor = _compressor(load_result)
    if args.source:
        text = _read_source(args.source, console)
        if text is None:
            return 2
        token = share.share_from_text(text, compressor=compressor)
        if token is None:
            _print_error(console, "Markup has problems; run `check` first.")
            return 1
    else:
        session = _session_store(load_result).load()
        if session is None or session.quiz is None:
            _print_error(console, "No saved session to share.")
            return 1
        token = share.encode(session, compressor=compressor)
    sys.stdout.write(
        share.share_url(load_result.config.share_base_url, token) + "\n"
    )
    return 0


def _handle_open(
    args: argparse.Namespace,
    load_result: LoadResult,
    console: Console,
    provider: InputProvider,
) -> int:
    store = _session_store(load_result)
    token = share.token_from_fragment(args.token)
    if token is None or share.decode(token) is None:
        console.print(
            "[yellow]Share token could not be read; "
            "falling back to the saved session.[/]"
        )
    session = boot(
        args.token,
        store,
        settings=load_result.config.settings,
    )
    result = run_session(session, console, provider, store=store)
    return 1 if result.exit_action == "empty" else 0


def _handle_export(
    args: argparse.Namespace,
    load_result: LoadResult,
    console: Console,
    provider: InputProvider,
) -> int:
    session = _session_store(load_result).load()
    if session is None:
        _print_error(console, "No saved session to export.")
        return 1
    target = args.path or (
        load_result.layout.path_for("exports") / EXPORT_FILENAME
    )
    if not export_snapshot(session, target):
        _print_error(console, f"Could not write {target}.")
        return 2
    console.print(f"Exported session to {target}")
    return 0


def _handle_reset(
    args: argparse.Namespace,
    load_result: LoadResult,
    console: Console,
    provider: InputProvider,
) -> int:
    if not _session_store(load_result).clear():
        _print_error(console, "Could not clear the saved session.")
        return 2
    console.print("Saved session cleared.")
    return 0


def _handle_status(
    args: argparse.Namespace,
    load_result: LoadResult,
    console: Console,
    provider: InputProvider,
) -> int:
    session = _session_store(load_result).load()
    if session is None or session.quiz is None:
        console.print("No saved session.")
        return 0
    console.print(_status_table(session))
    return 0


def _status_table(session: Session) -> Table:
    result = engine.score(session)
    table = Table(show_header=False, box=box.SIMPLE, expand=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    quiz = session.quiz
    if quiz is not None:
        table.add_row("Source", quiz.meta.source)
        table.add_row("Created", quiz.meta.created_at)
    table.add_row("Route", session.route.value)
    table.add_row("Mode", session.settings.mode.value)
    table.add_row(
        "Position", f"{session.position + 1} / {len(session.ordering)}"
    )
    table.add_row("Answered", f"{len(session.answers)} / {result.total}")
    table.add_row("Flagged", str(len(session.flags)))
    table.add_row(
        "Score", f"{result.right} right, {result.wrong} wrong "
        f"({result.percentage}%)"
    )
    table.add_row("Elapsed", engine.format_elapsed(session.elapsed_ms))
    return table


def _diagnostics_table(diagnostics: Sequence[Diagnostic]) -> Table:
    table = Table(title="Problems", box=box.SIMPLE, expand=False)
    table.add_column("Q#", justify="right")
    table.add_column("Line", justify="right")
    table.add_column("Message", overflow="fold")
    for diagnostic in diagnostics:
        table.add_row(
            str(diagnostic.q_index), str(diagnostic.line), diagnostic.message
        )
    return table


def _read_source(source: str, console: Console) -> Optional[str]:
    if source == "-":
        return sys.stdin.read()
    try:
        return Path(source).expanduser().read_text(encoding="utf-8")
    except OSError as exc:
        _print_error(console, f"Could not read {source}: {exc}")
        return None


def _session_store(load_result: LoadResult) -> SessionStore:
    state_dir = load_result.layout.path_for("state")
    return SessionStore(FileKeyValueStore(state_dir))


def _compressor(load_result: LoadResult) -> share.Compressor:
    if load_result.config.compress:
        return share.GzipCompressor()
    return share.NullCompressor()


def _print_error(console: Console, message: str) -> None:
    console.print(f"[bold red]Error:[/] {message}")


Handler = Callable[
    [argparse.Namespace, LoadResult, Console, InputProvider], int
]

_HANDLERS: dict[str, Handler] = {
    "check": _handle_check,
    "fix": _handle_fix,
    "prompt": _handle_prompt,
    "take": _handle_take,
    "resume": _handle_resume,
    "share": _handle_share,
    "open": _handle_open,
    "export": _handle_export,
    "reset": _handle_reset,
    "status": _handle_status,
}


if __name__ == "__main__":  # pragma: no cover - module CLI guard
    raise SystemExit(main())
