"""Rich-powered console loop over the session engine.

The loop renders the current route (a question with its progress map, or the
results summary), reads one command per iteration from ``input_provider`` and
feeds it to the engine. Every state change is persisted through the optional
``SessionStore`` so an interrupted session can be resumed later.
"""

from __future__ import annotations

import random
import time
from dataclasses import dataclass
from typing import Callable, Literal, Optional

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import engine
from .models import ALL_TAGS, Mode, Question, Route, Session
from .store import SessionStore

InputProvider = Callable[[], str]
ExitAction = Literal["quit", "import", "empty"]
CommandType = Literal[
    "select",
    "next",
    "prev",
    "goto",
    "flag",
    "finish",
    "back",
    "retry",
    "review",
    "tag",
    "import",
    "help",
    "quit",
]

_REVIEW_SUBSETS = ("all", "missed", "flagged")

QUIZ_HINT = (
    "Commands: a-d (answer), n (next), p (prev), g N (go to), f (flag), "
    "tag NAME, finish, import, quit"
)
RESULTS_HINT = (
    "Commands: back, retry, review all|missed|flagged, import, quit"
)


@dataclass(frozen=True)
class SessionCommand:
    """Normalized user command parsed from console input."""

    type: CommandType
    argument: Optional[str] = None


@dataclass(frozen=True)
class ConsoleResult:
    session: Session
    exit_action: ExitAction


def parse_session_command(raw: Optional[str]) -> Optional[SessionCommand]:
    """Parse raw user input into a structured command."""

    if raw is None:
        return None
    text = raw.strip()
    if not text:
        return None
    head, _, rest = text.partition(" ")
    word = head.lower()
    argument = rest.strip() or None
    if word in {"a", "b", "c", "d"} and argument is None:
        return SessionCommand("select", word.upper())
    if word in {"n", "next"}:
        return SessionCommand("next")
    if word in {"p", "prev", "previous"}:
        return SessionCommand("prev")
    if word in {"g", "goto"}:
        if argument is None or not argument.isdigit():
            return None
        return SessionCommand("goto", argument)
    if word in {"f", "flag"}:
        return SessionCommand("flag")
    if word in {"finish", "submit", "s"}:
        return SessionCommand("finish")
    if word == "back":
        return SessionCommand("back")
    if word == "retry":
        return SessionCommand("retry")
    if word == "review":
        subset = (argument or "all").lower()
        if subset not in _REVIEW_SUBSETS:
            return None
        return SessionCommand("review", subset)
    if word == "tag":
        return SessionCommand("tag", argument or ALL_TAGS)
    if word in {"i", "import"}:
        return SessionCommand("import")
    if word in {"?", "h", "help"}:
        return SessionCommand("help")
    if word in {"q", "quit", "exit"}:
        return SessionCommand("quit")
    return None


def run_session(
    session: Session,
    console: Console,
    input_provider: InputProvider,
    *,
    store: Optional[SessionStore] = None,
    rng: Optional[random.Random] = None,
    clock: Callable[[], float] = time.time,
) -> ConsoleResult:
    """Drive ``session`` interactively until the learner leaves."""

    session = engine.resume(session)
    if session.route is Route.IMPORT or session.quiz is None:
        console.print(
            Panel(
                "No quiz loaded. Use `quizcraft take FILE` to start one.",
                title="Quiz Session",
                border_style="yellow",
            )
        )
        return ConsoleResult(session, "empty")

    rng = rng or random.Random()
    while True:
        session = engine.tick(session, clock=clock)
        if session.route is Route.RESULTS:
            render_results(console, session)
        else:
            render_question(console, session, rng=rng)
        try:
            raw = input_provider()
        except (EOFError, KeyboardInterrupt, StopIteration):
            console.print("\n[bold yellow]Session interrupted.[/]")
            _persist(store, session)
            return ConsoleResult(session, "quit")
        command = parse_session_command(raw)
        if command is None:
            console.print("[red]Unrecognized command. Try again.[/]")
            continue
        updated, exit_action = _apply_command(
            command, session, console, rng=rng, clock=clock
        )
        if updated is not session:
            _persist(store, updated)
        session = updated
        if exit_action is not None:
            return ConsoleResult(session, exit_action)


def _apply_command(
    command: SessionCommand,
    session: Session,
    console: Console,
    *,
    rng: random.Random,
    clock: Callable[[], float],
) -> tuple[Session, Optional[ExitAction]]:
    in_results = session.route is Route.RESULTS
    question = engine.current_question(session)

    if command.type == "quit":
        console.print("\n[bold yellow]Leaving the session.[/]")
        return session, "quit"
    if command.type == "import":
        return engine.go_to_import(session), "import"
    if command.type == "help":
        console.print(Text(RESULTS_HINT if in_results else QUIZ_HINT))
        return session, None

    if in_results:
        if command.type == "back":
            return engine.back_to_quiz(session), None
        if command.type == "retry":
            return engine.retry(session, rng=rng, clock=clock), None
        if command.type == "review" and command.argument:
            reviewed = engine.review(
                session, command.argument  # type: ignore[arg-type]
            )
            if _subset_is_empty(session, command.argument):
                console.print(
                    f"[yellow]No {command.argument} questions; "
                    "reviewing the current order.[/]"
                )
            return reviewed, None
        console.print("[red]That command is not available on results.[/]")
        return session, None

    if command.type == "select" and command.argument and question:
        if question.id in session.answers:
            console.print("[yellow]Already answered; first answer counts.[/]")
            return session, None
        console.print(f"Selected [bold]{command.argument}[/].")
        return (
            engine.choose(session, question.id, command.argument, clock=clock),
            None,
        )
    if command.type == "next":
        return engine.navigate(session, 1), None
    if command.type == "prev":
        return engine.navigate(session, -1), None
    if command.type == "goto" and command.argument:
        return engine.jump(session, int(command.argument) - 1), None
    if command.type == "flag" and question:
        return engine.toggle_flag(session, question.id), None
    if command.type == "finish":
        return engine.finish(session), None
    if command.type == "tag" and command.argument:
        known = engine.all_tags(session)
        if command.argument != ALL_TAGS and command.argument not in known:
            console.print(
                f"[red]Unknown tag '{escape(command.argument)}'.[/] "
                f"Known: {escape(', '.join(known)) or '(none)'}"
            )
            return session, None
        return (
            engine.update_settings(session, tag_filter=command.argument),
            None,
        )
    console.print("[red]That command is not available during a quiz.[/]")
    return session, None


def _subset_is_empty(session: Session, subset: str) -> bool:
    if subset == "missed":
        return all(answer.correct for answer in session.answers.values())
    if subset == "flagged":
        return not session.flags
    return False


def _persist(store: Optional[SessionStore], session: Session) -> None:
    if store is not None:
        store.save(session)


def render_question(
    console: Console,
    session: Session,
    *,
    rng: Optional[random.Random] = None,
) -> None:
    question = engine.current_question(session)
    if question is None:
        return
    header = Text.assemble(
        (f"Question {session.position + 1}", "bold cyan"),
        (f" / {len(session.ordering)}", "dim"),
    )
    if question.id in session.flags:
        header.append("  [flagged]", style="bold yellow")
    if session.settings.timer_on:
        header.append(
            f"  {engine.format_elapsed(session.elapsed_ms)}", style="dim"
        )
    console.print()
    console.rule(header)
    console.print(Text(question.prompt, style="bold"))
    if question.tags:
        console.print(Text("Tags: " + ", ".join(question.tags), style="dim"))

    answer = session.answers.get(question.id)
    table = Table(show_header=False, box=box.SIMPLE, expand=True)
    table.add_column("Key", justify="center", style="cyan")
    table.add_column("Choice")
    for letter in engine.display_letters(session.settings, rng):
        picked = answer is not None and answer.pick == letter
        row_text = Text("• " if picked else "  ")
        choice_text = Text(question.choices[letter])
        if picked:
            choice_text.stylize("bold")
        row_text += choice_text
        table.add_row(letter, row_text)
    console.print(table)

    feedback = engine.feedback_for(session, question.id)
    if feedback is not None:
        console.print(_feedback_panel(question, feedback))
    elif answer is not None and session.settings.mode is Mode.TEST:
        console.print(Text("Answer recorded.", style="dim"))

    console.print(render_progress(session))
    console.print(
        Text(
            f"Answered {len(session.answers)}/{session.total} | {QUIZ_HINT}",
            style="dim",
        )
    )


def _feedback_panel(question: Question, feedback: engine.Feedback) -> Panel:
    body = Text()
    if feedback.correct:
        body.append("Correct.", style="bold green")
    else:
        body.append(
            f"Incorrect. The answer is {feedback.answer}.", style="bold red"
        )
    body.append("\n")
    body.append(feedback.rationale)
    for letter, text in feedback.option_feedback:
        style = "green" if letter == feedback.answer else ""
        body.append(f"\n{letter}) ", style="cyan")
        body.append(text, style=style)
    if question.evidence:
        body.append("\nEvidence: ", style="dim")
        body.append(question.evidence, style="italic")
    return Panel(
        body,
        title="Feedback",
        border_style="green" if feedback.correct else "red",
    )


def render_progress(session: Session) -> Text:
    """One cell per question in the ordering, filtered by the active tag."""

    line = Text()
    tag = session.settings.tag_filter
    if tag != ALL_TAGS:
        line.append(f"[{tag}] ", style="magenta")
    for cell in engine.progress_map(session):
        if cell.correct is True:
            style = "green"
        elif cell.correct is False:
            style = "red"
        elif cell.answered:
            style = "cyan"
        else:
            style = "dim"
        if cell.current:
            style += " reverse"
        label = f"{cell.slot + 1}{'*' if cell.flagged else ''}"
        line.append(label, style=style)
        line.append(" ")
    return line


def render_results(console: Console, session: Session) -> None:
    console.print()
    console.rule(Text("Results", style="bold magenta"))

    result = engine.score(session)
    overview = Table(
        show_header=False,
        box=box.MINIMAL_DOUBLE_HEAD,
        expand=False,
    )
    overview.add_column("Metric", style="bold")
    overview.add_column("Value", justify="right")
    overview.add_row("Right", str(result.right))
    overview.add_row("Wrong", str(result.wrong))
    overview.add_row("Unanswered", str(result.unanswered))
    overview.add_row("Total", str(result.total))
    overview.add_row("Score", f"{result.percentage}%")
    if session.settings.timer_on:
        overview.add_row("Time", engine.format_elapsed(session.elapsed_ms))
    console.print(overview)

    responses = Table(title="Responses", box=box.SIMPLE, expand=True)
    responses.add_column("#", justify="right")
    responses.add_column("Question", overflow="fold")
    responses.add_column("Your answer")
    responses.add_column("Correct answer")
    responses.add_column("Result", justify="center")
    quiz = session.quiz
    if quiz is not None:
        for idx, question in enumerate(quiz.questions, start=1):
            answer = session.answers.get(question.id)
            if answer is None:
                outcome = "-"
            else:
                outcome = "✅" if answer.correct else "❌"
            stem = question.prompt
            if question.id in session.flags:
                stem += " *"
            responses.add_row(
                str(idx),
                stem,
                answer.pick if answer else "-",
                question.answer,
                outcome,
            )
    console.print(responses)
    console.print(Text(RESULTS_HINT, style="dim"))
