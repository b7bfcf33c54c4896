from __future__ import annotations

from pathlib import Path

from rich.console import Console

from fixtures import question_block, quiz_text

from quizcraft import engine
from quizcraft.console import (
    SessionCommand,
    parse_session_command,
    render_progress,
    run_session,
)
from quizcraft.models import Mode, Route, Settings
from quizcraft.store import FileKeyValueStore, SessionStore


def make_provider(commands: list[str]):
    iterator = iter(commands)

    def _provider() -> str:
        return next(iterator)

    return _provider


def make_console() -> Console:
    return Console(record=True, width=100)


def _two() -> str:
    return quiz_text(
        question_block("What is 2+2?", answer="B", tags="math"),
        question_block("Capital of France?", answer="A", tags="geo"),
    )


def test_parse_session_command_variants() -> None:
    assert parse_session_command("a") == SessionCommand("select", "A")
    assert parse_session_command(" D ") == SessionCommand("select", "D")
    assert parse_session_command("Next") == SessionCommand("next")
    assert parse_session_command("p") == SessionCommand("prev")
    assert parse_session_command("g 3") == SessionCommand("goto", "3")
    assert parse_session_command("goto x") is None
    assert parse_session_command("f") == SessionCommand("flag")
    assert parse_session_command("finish") == SessionCommand("finish")
    assert parse_session_command("review") == SessionCommand("review", "all")
    assert parse_session_command("review Missed") == SessionCommand(
        "review", "missed"
    )
    assert parse_session_command("review later") is None
    assert parse_session_command("tag math") == SessionCommand("tag", "math")
    assert parse_session_command("tag") == SessionCommand("tag", "All")
    assert parse_session_command("quit") == SessionCommand("quit")
    assert parse_session_command(None) is None
    assert parse_session_command("") is None
    assert parse_session_command("e") is None


def test_study_flow_shows_feedback_and_results(load, clock) -> None:
    console = make_console()
    session = load(_two())

    result = run_session(
        session,
        console,
        make_provider(["c", "n", "a", "finish", "quit"]),
        clock=clock,
    )

    assert result.exit_action == "quit"
    assert result.session.route is Route.RESULTS
    assert engine.score(result.session).right == 1
    rendered = console.export_text()
    assert "Incorrect. The answer is B." in rendered
    assert "Correct." in rendered
    assert "Results" in rendered
    assert "50%" in rendered


def test_first_answer_is_kept(load, clock) -> None:
    console = make_console()

    result = run_session(
        load(), console, make_provider(["b", "a", "quit"]), clock=clock
    )

    assert result.session.answers["q1"].pick == "B"
    assert "Already answered" in console.export_text()


def test_test_mode_hides_feedback_until_results(load, clock) -> None:
    console = make_console()
    session = load(settings=Settings(mode=Mode.TEST))

    result = run_session(
        session, console, make_provider(["a", "quit"]), clock=clock
    )

    rendered = console.export_text()
    assert "Answer recorded." in rendered
    assert "Feedback" not in rendered
    assert result.session.answers["q1"].correct is False


def test_review_missed_and_retry(load, clock) -> None:
    console = make_console()
    commands = ["a", "n", "a", "finish", "review missed", "finish", "retry"]

    result = run_session(
        load(_two()),
        console,
        make_provider(commands + ["quit"]),
        clock=clock,
    )

    assert result.session.route is Route.QUIZ
    assert result.session.answers == {}
    assert result.session.ordering == (0, 1)


def test_review_of_empty_subset_warns(load, clock) -> None:
    console = make_console()

    result = run_session(
        load(),
        console,
        make_provider(["b", "finish", "review flagged", "quit"]),
        clock=clock,
    )

    assert result.session.route is Route.QUIZ
    assert "No flagged questions" in console.export_text()


def test_goto_flag_and_tag_filter(load, clock) -> None:
    console = make_console()

    result = run_session(
        load(_two()),
        console,
        make_provider(["g 2", "f", "tag geo", "tag art", "quit"]),
        clock=clock,
    )

    assert result.session.position == 1
    assert result.session.flags == frozenset({"q2"})
    assert result.session.settings.tag_filter == "geo"
    rendered = console.export_text()
    assert "[flagged]" in rendered
    assert "Unknown tag 'art'" in rendered


def test_render_progress_marks_cells(load, clock) -> None:
    session = engine.choose(load(_two()), "q1", "B", clock=clock)
    session = engine.toggle_flag(session, "q2")

    line = render_progress(session)

    assert line.plain.split() == ["1", "2*"]


def test_unknown_and_unavailable_commands(load, clock) -> None:
    console = make_console()

    run_session(
        load(),
        console,
        make_provider(["wat", "retry", "quit"]),
        clock=clock,
    )

    rendered = console.export_text()
    assert "Unrecognized command" in rendered
    assert "not available during a quiz" in rendered


def test_interrupt_persists_and_exits(load, clock, tmp_path: Path) -> None:
    console = make_console()
    store = SessionStore(FileKeyValueStore(tmp_path))

    result = run_session(
        load(), console, make_provider(["b"]), store=store, clock=clock
    )

    assert result.exit_action == "quit"
    assert "Session interrupted." in console.export_text()
    assert store.load() == result.session
    assert store.load().answers["q1"].pick == "B"


def test_import_command_parks_session(load, clock, tmp_path: Path) -> None:
    store = SessionStore(FileKeyValueStore(tmp_path))

    result = run_session(
        load(), make_console(), make_provider(["import"]), store=store
    )

    assert result.exit_action == "import"
    assert store.load().route is Route.IMPORT

    resumed = run_session(
        store.load(), make_console(), make_provider(["quit"]), clock=clock
    )
    assert resumed.session.route is Route.QUIZ


def test_empty_session_exits_immediately() -> None:
    console = make_console()

    result = run_session(
        engine.default_session(), console, make_provider([])
    )

    assert result.exit_action == "empty"
    assert "No quiz loaded" in console.export_text()
