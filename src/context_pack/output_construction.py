from __future__ import annotations

import io
import json
from typing import TYPE_CHECKING

from context_pack.file_manipulation import build_tree_lines, relpath

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from context_pack.config import FileRecord

RULE = "=" * 80


def build_text(
    base: Path,
    recs: Sequence[FileRecord],
    *,
    show_tree: bool = False,
) -> str:
    """Build the plain-text document handed to the language model.

    Each file gets a header with its path relative to `base` and, when the
    record was tokenized, its token count. Truncated records mention their
    original size. An optional directory tree comes first.

    Args:
        base (Path): directory the displayed paths are relative to
        recs (Sequence[FileRecord]): the processed files, in output order
        show_tree (bool): whether to prepend a tree of the selected files

    Returns:
        str: the document
    """
    out = io.StringIO()
    rels = [relpath(r.path, base) for r in recs]
    if show_tree:
        out.write("Directory structure:\n")
        out.write("\n".join(build_tree_lines(base.name or str(base), rels)))
        out.write("\n\n")

    for rel, rec in zip(rels, recs, strict=True):
        out.write(f"Path: {rel}\n")
        out.write(RULE + "\n")
        if rec.token_count or rec.truncated:
            out.write(f"({rec.token_count} tokens")
            if rec.truncated:
                out.write(f", truncated from {rec.original_token_count}")
            out.write(")\n")
        out.write(rec.content)
        out.write("\n")
        out.write(RULE + "\n\n")
    return out.getvalue()


def build_json(base: Path, recs: Sequence[FileRecord]) -> str:
    """Build a JSON document listing every file and its content.

    Args:
        base (Path): directory the displayed paths are relative to
        recs (Sequence[FileRecord]): the processed files, in output order

    Returns:
        str: the JSON document
    """
    doc = {
        "file_count": len(recs),
        "files": [
            {
                "path": relpath(r.path, base),
                "token_count": r.token_count,
                "original_token_count": r.original_token_count,
                "truncated": r.truncated,
                "skipped": r.skip_reason is not None,
                "content": r.content,
            }
            for r in recs
        ],
    }
    return json.dumps(doc, ensure_ascii=False, indent=2) + "\n"


def build_file_list(base: Path, recs: Sequence[FileRecord]) -> str:
    """List the selected files, one relative path per line.

    Args:
        base (Path): directory the displayed paths are relative to
        recs (Sequence[FileRecord]): the processed files

    Returns:
        str: newline separated paths, with a trailing `[TRUNCATED]` mark where relevant
    """
    lines = [relpath(r.path, base) + (" [TRUNCATED]" if r.truncated else "") for r in recs]
    return "\n".join(lines) + ("\n" if lines else "")
