from __future__ import annotations

import os
from enum import StrEnum
from pathlib import Path

from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field

from context_pack.config import DEFAULT_ENCODING, DEFAULT_MAX_TOKENS, SafetyLimits

ENV_FILE = find_dotenv(usecwd=True)
ENV_PREFIX = "CONTEXT_PACK_"


class OutputFormat(StrEnum):
    """Document layout produced by the output stage."""

    TEXT = "text"
    JSON = "json"


class Settings(BaseModel):
    """Resolved configuration of one packaging run."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    paths: list[str] = Field(default_factory=lambda: ["."], description="Files, directories or globs to package.")
    root: Path = Field(default_factory=Path.cwd, description="Directory relative inputs are resolved against.")

    max_tokens: int = Field(default=DEFAULT_MAX_TOKENS, ge=0, description="Default per-file token ceiling.")
    token_limits: dict[str, int] = Field(
        default_factory=dict,
        description="Ordered pattern -> token ceiling overrides; 0 skips matching files.",
    )
    include_patterns: list[str] = Field(
        default_factory=list,
        description="Include globs; the built-in table is used when empty.",
    )
    exclude_patterns: list[str] = Field(default_factory=list, description="Exclude globs.")
    exclude_directories: list[str] = Field(
        default_factory=list,
        description="Extra directory names or relative prefixes to skip.",
    )
    exclude_extensions: list[str] = Field(default_factory=list, description="Extra file extensions to skip.")
    type_filters: list[str] = Field(default_factory=list, description="File type globs, e.g. '*.py'.")
    limits: SafetyLimits = Field(default_factory=SafetyLimits, description="Hard safety caps.")

    count_tokens: bool = Field(default=False, description="Tokenize and truncate every file (stats mode).")
    diff: bool = Field(default=False, description="Only package uncommitted changes.")
    use_git: bool = Field(default=True, description="Use git ls-files inside repositories.")
    encoding: str = Field(default=DEFAULT_ENCODING, description="tiktoken encoding name.")
    workers: int = Field(default=0, ge=0, description="Worker threads; 0 picks from the CPU count.")

    output: Path | None = Field(default=None, description="Output file; stdout when unset.")
    format: OutputFormat = Field(default=OutputFormat.TEXT, description="Output format.")
    show_tree: bool = Field(default=False, description="Prepend a directory tree.")
    list_only: bool = Field(default=False, description="Only list the selected files.")
    log_file: str = Field(default="", description="Log file path.")


def env_defaults(env_file: str | Path | None = None) -> dict[str, str]:
    """Read `CONTEXT_PACK_*` variables from a `.env` file and the environment.

    Args:
        env_file: path of the file; the nearest `.env` from the working
            directory when None

    Returns:
        dict[str, str]: lower-cased option names without the prefix, e.g.
            `CONTEXT_PACK_MAX_TOKENS=500` gives `{"max_tokens": "500"}`
    """
    path = ENV_FILE if env_file is None else env_file
    values: dict[str, str | None] = dict(dotenv_values(path)) if path else {}
    values.update(os.environ)
    out: dict[str, str] = {}
    for key, value in values.items():
        if key.startswith(ENV_PREFIX) and value is not None:
            out[key.removeprefix(ENV_PREFIX).lower()] = value
    return out
