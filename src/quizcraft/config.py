"""Configuration loader for quizcraft commands."""

from __future__ import annotations

import os
from dataclasses import dataclass
from importlib import resources
from pathlib import Path
from typing import Mapping, MutableMapping, Optional

from .core import config as core_config
from .core import workspace as workspace_mod
from .models import ALL_TAGS, FeedbackLevel, Mode, Settings

CONFIG_FILENAME = "quizcraft.toml"
CONFIG_ENV = "QUIZCRAFT_CONFIG"
ENV_PREFIX = "QUIZCRAFT_"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


class QuizcraftConfigError(RuntimeError):
    """Raised when configuration parsing or validation fails."""


@dataclass(frozen=True)
class QuizcraftConfig:
    settings: Settings
    share_base_url: str
    compress: bool
    log_level: str
    verbose: bool


@dataclass(frozen=True)
class ConfigOverrides:
    """Values taken from command-line flags; ``None`` means not given."""

    mode: Optional[str] = None
    timer: Optional[bool] = None
    shuffle_questions: Optional[bool] = None
    shuffle_answers: Optional[bool] = None
    feedback: Optional[str] = None
    tag_filter: Optional[str] = None
    compress: Optional[bool] = None
    log_level: Optional[str] = None
    verbose: Optional[bool] = None


@dataclass(frozen=True)
class LoadResult:
    config: QuizcraftConfig
    layout: workspace_mod.WorkspaceLayout
    config_path: Optional[Path]


def default_template() -> str:
    """Return the packaged ``quizcraft.toml`` template text."""

    resource = resources.files("quizcraft").joinpath(CONFIG_FILENAME)
    return resource.read_text(encoding="utf-8")


def write_default_config(
    layout: workspace_mod.WorkspaceLayout,
    *,
    path: Optional[Path] = None,
    overwrite: bool = False,
) -> Path:
    target = path or layout.path_for("config") / CONFIG_FILENAME
    try:
        return core_config.write_text_template(
            target, default_template(), overwrite=overwrite
        )
    except core_config.TomlConfigError as exc:
        raise QuizcraftConfigError(str(exc)) from exc


def load_config(
    *,
    config_path: Optional[Path] = None,
    overrides: Optional[ConfigOverrides] = None,
    env: Optional[Mapping[str, str]] = None,
    workspace_path: Optional[Path] = None,
) -> LoadResult:
    """Resolve configuration with CLI > env > TOML > built-in defaults."""

    overrides = overrides or ConfigOverrides()
    env_map = os.environ if env is None else env
    try:
        layout = workspace_mod.ensure_workspace(
            env=env_map, path=workspace_path
        )
    except workspace_mod.WorkspaceError as exc:
        raise QuizcraftConfigError(str(exc)) from exc

    requested = _resolve_config_path(
        config_path, env_map, layout.path_for("config") / CONFIG_FILENAME
    )
    table = _default_table()
    loaded_path: Optional[Path] = None
    if requested.exists():
        try:
            core_config.merge_defaults(table, core_config.load_toml(requested))
        except core_config.TomlConfigError as exc:
            raise QuizcraftConfigError(str(exc)) from exc
        loaded_path = requested
    elif config_path is not None or env_map.get(CONFIG_ENV, "").strip():
        raise QuizcraftConfigError(f"Config file not found: {requested}")

    session = table["session"]
    share = table["share"]
    logging_table = table["logging"]

    settings = Settings(
        mode=_parse_mode(
            _pick(overrides.mode, _env(env_map, "MODE"), session["mode"])
        ),
        timer_on=_parse_bool(
            _pick(overrides.timer, _env(env_map, "TIMER"), session["timer"]),
            "session.timer",
        ),
        shuffle_questions=_parse_bool(
            _pick(
                overrides.shuffle_questions,
                _env(env_map, "SHUFFLE_QUESTIONS"),
                session["shuffle_questions"],
            ),
            "session.shuffle_questions",
        ),
        shuffle_answers=_parse_bool(
            _pick(
                overrides.shuffle_answers,
                _env(env_map, "SHUFFLE_ANSWERS"),
                session["shuffle_answers"],
            ),
            "session.shuffle_answers",
        ),
        feedback=_parse_feedback(
            _pick(
                overrides.feedback,
                _env(env_map, "FEEDBACK"),
                session["feedback"],
            )
        ),
        tag_filter=_parse_string(
            _pick(
                overrides.tag_filter,
                _env(env_map, "TAG_FILTER"),
                session["tag_filter"],
            ),
            "session.tag_filter",
        ),
    )
    config = QuizcraftConfig(
        settings=settings,
        share_base_url=_parse_string(
            _pick(_env(env_map, "SHARE_BASE_URL"), share["base_url"]),
            "share.base_url",
        ),
        compress=_parse_bool(
            _pick(
                overrides.compress,
                _env(env_map, "COMPRESS"),
                share["compress"],
            ),
            "share.compress",
        ),
        log_level=_parse_string(
            _pick(
                overrides.log_level,
                _env(env_map, "LOG_LEVEL"),
                logging_table["level"],
            ),
            "logging.level",
        ).upper(),
        verbose=_parse_bool(
            _pick(
                overrides.verbose,
                _env(env_map, "VERBOSE"),
                logging_table["verbose"],
            ),
            "logging.verbose",
        ),
    )
    return LoadResult(config=config, layout=layout, config_path=loaded_path)


def _default_table() -> MutableMapping[str, MutableMapping[str, object]]:
    return {
        "session": {
            "mode": Mode.STUDY.value,
            "timer": True,
            "shuffle_questions": False,
            "shuffle_answers": False,
            "feedback": FeedbackLevel.ALL.value,
            "tag_filter": ALL_TAGS,
        },
        "share": {
            "base_url": "https://quizcraft.local/",
            "compress": True,
        },
        "logging": {"level": "INFO", "verbose": False},
    }


def _resolve_config_path(
    config_path: Optional[Path],
    env_map: Mapping[str, str],
    default_path: Path,
) -> Path:
    if config_path is not None:
        return config_path.expanduser()
    candidate = env_map.get(CONFIG_ENV, "").strip()
    if candidate:
        return Path(candidate).expanduser()
    return default_path


def _env(env_map: Mapping[str, str], key: str) -> Optional[str]:
    raw = env_map.get(f"{ENV_PREFIX}{key}")
    if raw is None:
        return None
    value = raw.strip()
    return value or None


def _pick(*candidates: object) -> object:
    for candidate in candidates:
        if candidate is not None:
            return candidate
    return None


def _parse_bool(value: object, field: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
    raise QuizcraftConfigError(f"'{field}' must be a boolean.")


def _parse_string(value: object, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise QuizcraftConfigError(f"'{field}' must be a non-empty string.")
    return value.strip()


def _parse_mode(value: object) -> Mode:
    text = _parse_string(value, "session.mode").lower()
    try:
        return Mode(text)
    except ValueError as exc:
        expected = ", ".join(member.value for member in Mode)
        raise QuizcraftConfigError(
            f"'session.mode' must be one of: {expected}."
        ) from exc


def _parse_feedback(value: object) -> FeedbackLevel:
    text = _parse_string(value, "session.feedback").lower()
    try:
        return FeedbackLevel(text)
    except ValueError as exc:
        expected = ", ".join(member.value for member in FeedbackLevel)
        raise QuizcraftConfigError(
            f"'session.feedback' must be one of: {expected}."
        ) from exc
