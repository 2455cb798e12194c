from __future__ import annotations

import stat
from pathlib import Path
from typing import TYPE_CHECKING, Any

from context_pack.config import BINARY_SNIFF_BYTES
from context_pack.patterns import has_wildcard

if TYPE_CHECKING:
    from collections.abc import Sequence


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def is_regular_file(path: Path) -> bool:
    """Check if a file is regular.

    Args:
        path (Path): path to test.

    Returns:
        bool: True if the file is regular, False otherwise.
    """
    try:
        st = path.stat()
        return stat.S_ISREG(st.st_mode)
    except OSError:
        return False


def is_under(path: str, prefix: str) -> bool:
    """Whether POSIX `path` equals `prefix` or lies below it on a `/` boundary.

    `src` contains `src/a.py` but not `src2/a.py`.
    """
    if not prefix:
        return True
    return path == prefix or path.startswith(prefix.rstrip("/") + "/")


def has_binary_marker(head: bytes) -> bool:
    """Check a file prefix for a null byte, the binary heuristic.

    Args:
        head (bytes): the first bytes of the file

    Returns:
        bool: True if a null byte appears in the first `BINARY_SNIFF_BYTES`
    """
    return b"\x00" in head[:BINARY_SNIFF_BYTES]


def normalize_globs(globs: Sequence[str]) -> list[str]:
    """Normalize a sequence of path glob patterns.

    Normalize a sequence of glob patterns by stripping whitespace and
    replacing backslashes with forward slashes.

    Args:
        globs (Sequence[str]): the glob patterns to normalize

    Returns:
        list[str]: the normalized glob patterns
    """
    out: list[str] = []
    for g in globs:
        g2 = (g or "").strip()
        if not g2:
            continue
        out.append(g2.replace("\\", "/"))
    return out


def split_glob(pattern: str) -> tuple[Path, str]:
    """Split a glob input into its literal base directory and the remainder.

    `src/**/*.py` gives `(Path("src"), "**/*.py")` and `*.md` gives
    `(Path("."), "*.md")`.

    Args:
        pattern (str): a glob given on the command line

    Returns:
        tuple[Path, str]: the directory to walk and the glob relative to it
    """
    parts = pattern.replace("\\", "/").split("/")
    base: list[str] = []
    for part in parts:
        if has_wildcard(part):
            break
        base.append(part)
    rest = "/".join(parts[len(base) :])
    if not base:
        return Path(), rest
    if base == [""]:
        return Path("/"), rest
    return Path("/".join(base) or "/"), rest


def build_tree_lines(root_name: str, rel_paths: Sequence[str]) -> list[str]:
    """Build a visual tree representation of file paths.

    Args:
        root_name (str): the name to use for the root of the tree
        rel_paths (Sequence[str]): the list of file paths relative to the root, using POSIX separators (e.g. "src/main.py")

    Returns:
        list[str]: a list of strings representing the tree structure, suitable for printing
    """
    rels = sorted(
        {p.strip("/").replace("\\", "/") for p in rel_paths if p.strip()},
        key=str.lower,
    )
    tree: dict[str, Any] = {}
    for rp in rels:
        cur = tree
        parts = rp.split("/")
        for i, part in enumerate(parts):
            if i == len(parts) - 1:
                cur.setdefault("__files__", set()).add(part)
            else:
                cur = cur.setdefault(part, {})

    lines: list[str] = [root_name]

    def walk(node: dict[str, Any], prefix: str) -> None:
        dirs = sorted([k for k in node if k != "__files__"], key=str.lower)
        files = sorted(node.get("__files__", set()), key=str.lower)
        entries: list[tuple[str, str, Any]] = []
        entries.extend(("dir", d, node[d]) for d in dirs)
        entries.extend(("file", f, None) for f in files)
        for idx, (kind, name, child) in enumerate(entries):
            last = idx == len(entries) - 1
            branch = "└── " if last else "├── "
            lines.append(prefix + branch + name + ("/" if kind == "dir" else ""))
            if kind == "dir":
                ext = "    " if last else "│   "
                walk(child, prefix + ext)

    walk(tree, "")
    return lines
