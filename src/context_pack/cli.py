"""
context_pack: package a source tree into one document for an LLM.

Overview
--------
Files are discovered with `git ls-files` inside a repository (or a
filesystem walk elsewhere), filtered by include/exclude patterns, read
concurrently and assembled into a single text or JSON document. The
document is tokenized once and the run aborts, without output, when a
safety limit (file count or total tokens) is exceeded.

Options are layered: built-in defaults, `~/.contextpack.toml`, the project's
`.contextpack.toml`, `CONTEXT_PACK_*` variables (from the environment or a
`.env` file), then command-line flags.

Usage
-----
Run `context-pack --help` for full options. Common examples:
    - Current project to stdout:
        context-pack

    - Only Python files, with a tree, into a file:
        context-pack src -t "*.py" --tree --output context.txt

    - Uncommitted changes with per-file truncation:
        context-pack --diff --stats --max-tokens 2000
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from context_pack import __version__
from context_pack.collector import ContextCollector
from context_pack.config import DEFAULT_ENCODING, DEFAULT_MAX_TOKENS, SafetyLimits
from context_pack.config_loader import FileConfig, load_config
from context_pack.exceptions import ContextPackError, SafetyLimitError
from context_pack.file_manipulation import normalize_globs
from context_pack.logging import logger, redirect_logging
from context_pack.settings import OutputFormat, Settings, env_defaults

if TYPE_CHECKING:
    from collections.abc import Sequence

MIB = 1024 * 1024
_LIMIT_DEFAULTS = SafetyLimits()


def _first(*values: Any) -> Any:
    for value in values:
        if value is not None:
            return value
    return None


def parse_token_limit(value: str) -> tuple[str, int]:
    """Parse a `PATTERN=LIMIT` command-line value.

    Args:
        value (str): e.g. `*.json=500` or `resources/lang/**=0`

    Raises:
        argparse.ArgumentTypeError: if the value is malformed

    Returns:
        tuple[str, int]: the pattern and its token ceiling
    """
    pattern, sep, limit = value.rpartition("=")
    pattern = pattern.strip()
    if not sep or not pattern:
        msg = f"expected PATTERN=LIMIT, got {value!r}"
        raise argparse.ArgumentTypeError(msg)
    try:
        ceiling = int(limit)
    except ValueError:
        msg = f"token limit must be an integer, got {limit!r}"
        raise argparse.ArgumentTypeError(msg) from None
    if ceiling < 0:
        msg = f"token limit must be >= 0, got {ceiling}"
        raise argparse.ArgumentTypeError(msg)
    return pattern, ceiling


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser.

    Returns:
        argparse.ArgumentParser: Configured parser.
    """
    p = argparse.ArgumentParser(
        prog="context-pack",
        description="Package files into a single token-bounded document for LLM consumption.",
    )
    p.add_argument("paths", nargs="*", help="Files, directories or globs (default: current directory).")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    limits = p.add_argument_group("limits")
    limits.add_argument("--max-tokens", type=int, default=None, help="Per-file token ceiling (default 10000).")
    limits.add_argument(
        "--token-limit",
        type=parse_token_limit,
        action="append",
        default=[],
        metavar="PATTERN=N",
        help="Token ceiling for matching files, 0 skips them (repeatable).",
    )
    limits.add_argument("--max-files", type=int, default=None, help="Abort above this many files (default 100000).")
    limits.add_argument("--max-file-size-mb", type=int, default=None, help="Skip files above this size (default 100).")
    limits.add_argument(
        "--max-total-tokens",
        type=int,
        default=None,
        help="Abort when the output exceeds this many tokens (default 1000000).",
    )

    filters = p.add_argument_group("filters")
    filters.add_argument("-i", "--include", action="append", default=[], help="Include glob (repeatable).")
    filters.add_argument("--exclude", action="append", default=[], help="Directory to exclude (repeatable).")
    filters.add_argument("--exclude-pattern", action="append", default=[], help="Exclude glob (repeatable).")
    filters.add_argument("-t", "--type", action="append", default=[], help="File type glob, e.g. '*.py' (repeatable).")

    mode = p.add_argument_group("mode")
    mode.add_argument("--stats", action="store_true", help="Tokenize and truncate every file.")
    mode.add_argument("--diff", action="store_true", help="Only package uncommitted changes.")
    mode.add_argument("--no-git", action="store_true", help="Walk the filesystem instead of using git ls-files.")
    mode.add_argument("--encoding", type=str, default=None, help="tiktoken encoding (default cl100k_base).")
    mode.add_argument("--workers", type=int, default=None, help="Worker threads.")

    output = p.add_argument_group("output")
    output.add_argument("--json", action="store_true", help="Emit a JSON document.")
    output.add_argument("--tree", action="store_true", help="Prepend a directory tree.")
    output.add_argument("--list-only", action="store_true", help="Only list the selected files.")
    output.add_argument("--output", type=Path, default=None, help="Output file (default: stdout).")
    output.add_argument("--log-file", type=str, default=None, help="Log file path.")
    output.add_argument("--root", type=Path, default=None, help="Directory used to locate the project configuration.")
    return p


def build_settings(
    args: argparse.Namespace,
    *,
    file_config: FileConfig | None = None,
    env: dict[str, str] | None = None,
) -> Settings:
    """Combine parsed flags, configuration files and environment defaults.

    Args:
        args (argparse.Namespace): Parsed command line.
        file_config (FileConfig | None): Merged `.contextpack.toml` content.
        env (dict[str, str] | None): `CONTEXT_PACK_*` values, prefix stripped.

    Returns:
        Settings: The resolved settings.
    """
    cfg = file_config or FileConfig()
    env = env or {}
    defaults = cfg.defaults

    max_file_size_mb = _first(args.max_file_size_mb, env.get("max_file_size_mb"), defaults.max_file_size_mb)
    limits = {
        "max_files": _first(args.max_files, env.get("max_files"), defaults.max_files, _LIMIT_DEFAULTS.max_files),
        "max_file_size": (
            int(max_file_size_mb) * MIB if max_file_size_mb is not None else _LIMIT_DEFAULTS.max_file_size
        ),
        "max_total_tokens": _first(
            args.max_total_tokens,
            env.get("max_total_tokens"),
            defaults.max_total_tokens,
            _LIMIT_DEFAULTS.max_total_tokens,
        ),
    }
    # Command-line rules precede configured ones.
    token_limits = dict(args.token_limit)
    for pattern, limit in cfg.token_limits.items():
        token_limits.setdefault(pattern, limit)

    fmt = OutputFormat.JSON if args.json else _first(env.get("format"), cfg.output.format, OutputFormat.TEXT)
    values: dict[str, Any] = {
        "paths": args.paths or ["."],
        "max_tokens": _first(args.max_tokens, env.get("max_tokens"), defaults.max_tokens, DEFAULT_MAX_TOKENS),
        "token_limits": token_limits,
        "include_patterns": normalize_globs(args.include or cfg.include.patterns or []),
        "exclude_patterns": normalize_globs(args.exclude_pattern or cfg.exclude.patterns or []),
        "exclude_directories": args.exclude or cfg.exclude.directories or [],
        "exclude_extensions": cfg.exclude.extensions or [],
        "type_filters": normalize_globs(args.type or cfg.include.types or []),
        "limits": limits,
        "count_tokens": args.stats or cfg.performance.mode == "content-aware",
        "diff": args.diff,
        "use_git": False if args.no_git else _first(env.get("use_git"), True),
        "encoding": _first(args.encoding, env.get("encoding"), defaults.encoding, DEFAULT_ENCODING),
        "workers": _first(args.workers, env.get("workers"), 0),
        "output": args.output,
        "format": fmt,
        "show_tree": args.tree or bool(defaults.show_tree) or bool(cfg.output.include_tree),
        "list_only": args.list_only,
        "log_file": _first(args.log_file, env.get("log_file"), ""),
    }
    return Settings.model_validate(values)


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Parse CLI arguments into settings, reading configuration files and `.env`.

    Args:
        argv (Sequence[str] | None): Optional CLI args.

    Returns:
        Settings: The resolved settings.
    """
    args = build_parser().parse_args(argv)
    config_base = args.root or Path(args.paths[0] if args.paths else ".")
    return build_settings(args, file_config=load_config(config_base.resolve()), env=env_defaults())


def report_error(error: ContextPackError) -> None:
    """Print a fatal error, and its suggested remedy, to stderr."""
    sys.stderr.write(f"Error: {error.message}\n")
    if isinstance(error, SafetyLimitError) and error.suggestion:
        sys.stderr.write(f"Suggestion: {error.suggestion}\n")


def main(argv: Sequence[str] | None = None) -> int:
    """Package files into a single document.

    Args:
        argv (Sequence[str] | None): Optional CLI arguments.

    Returns:
        int: Process exit code.
    """
    try:
        settings = parse_args(argv)
    except ValueError as e:
        sys.stderr.write(f"Error: invalid settings\n{e}\n")
        return 2
    if settings.log_file:
        redirect_logging(settings.log_file)

    try:
        result = ContextCollector(settings).collect()
    except ContextPackError as e:
        logger.error("run aborted", error=e.message)
        report_error(e)
        return 1

    if settings.output is not None:
        settings.output.write_text(result.output, encoding="utf-8")
    else:
        sys.stdout.write(result.output)
    sys.stderr.write(f"Collected {result.file_count} files, ~{result.total_tokens} tokens\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
