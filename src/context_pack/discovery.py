"""Turn input paths and globs into a filtered, ordered list of files.

Discovery runs in one of three modes:

- git: inside a repository, `git ls-files` decides what exists so
  `.gitignore` is honoured;
- filesystem: `os.walk` with in-place pruning of hidden and excluded
  directories;
- diff: only files with uncommitted changes.

Whatever the mode, the result is deduplicated by canonical path, sorted by
path string and checked against `SafetyLimits.max_files`.
"""

from __future__ import annotations

import os
import threading
from collections import OrderedDict
from pathlib import Path
from typing import TYPE_CHECKING, NamedTuple

from context_pack.exceptions import TooManyFilesError
from context_pack.file_manipulation import is_regular_file, is_under, relpath, split_glob
from context_pack.git import GitRepository
from context_pack.logging import logger
from context_pack.patterns import PatternMatcher, has_wildcard, matches_path

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from context_pack.config import SafetyLimits
    from context_pack.settings import Settings

DEFAULT_NORMALIZER_SIZE = 10_000


class PathNormalizer:
    """Canonicalise paths through a bounded LRU cache.

    The same directories are normalised over and over during a walk; the
    cache keeps that cheap without growing without bound.
    """

    def __init__(self, max_entries: int = DEFAULT_NORMALIZER_SIZE) -> None:
        self.max_entries = max(1, max_entries)
        self._cache: OrderedDict[str, Path] = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._cache)

    def normalize(self, path: str | Path) -> Path:
        """Return the absolute, symlink-free form of `path`.

        Args:
            path: path to normalise; relative paths resolve against the working directory

        Returns:
            Path: the canonical path
        """
        key = os.fspath(path)
        with self._lock:
            hit = self._cache.get(key)
            if hit is not None:
                self._cache.move_to_end(key)
                return hit
        canonical = Path(os.path.realpath(key))
        with self._lock:
            self._cache[key] = canonical
            self._cache.move_to_end(key)
            while len(self._cache) > self.max_entries:
                self._cache.popitem(last=False)
        return canonical


class ScanTarget(NamedTuple):
    """One input: a canonical file or directory, optionally narrowed by a glob."""

    path: Path
    glob: str | None = None

    @property
    def is_file(self) -> bool:
        return self.glob is None and is_regular_file(self.path)


class DiscoveryResult(NamedTuple):
    """Selected files and the directory their relative paths are computed from."""

    files: list[Path]
    base: Path


def check_file_count(found: int, limits: SafetyLimits) -> None:
    """Abort when discovery found more files than allowed.

    Raises:
        TooManyFilesError: if `found` exceeds `limits.max_files`
    """
    if found > limits.max_files:
        logger.error("file limit exceeded", found=found, limit=limits.max_files)
        raise TooManyFilesError(found=found, limit=limits.max_files)


class DirectoryWalker:
    """Filesystem discovery with directory pruning."""

    def __init__(self, matcher: PatternMatcher, normalizer: PathNormalizer) -> None:
        self.matcher = matcher
        self.normalizer = normalizer

    def walk(self, root: Path, glob: str | None = None, *, base: Path | None = None) -> list[Path]:
        """Collect the files below `root` that pass the filters.

        Hidden files are skipped; hidden and excluded directories are never
        entered. Filters see paths relative to `base`, the same way git mode
        sees paths relative to the repository root, so walking `src` with
        `base` at the project root matches `src/gen/**`.

        Args:
            root: canonical directory to walk
            glob: when set, only files whose path relative to `root` matches
                it are kept and the include table is not consulted
            base: canonical ancestor of `root` the filters are evaluated
                against; `root` itself when None

        Returns:
            list[Path]: canonical paths of the kept files
        """
        base = base or root
        results: list[Path] = []
        for dirpath, dirnames, filenames in os.walk(root):
            current = Path(dirpath)
            below = "" if current == root else relpath(current, root) + "/"
            prefix = "" if current == base else relpath(current, base) + "/"
            dirnames[:] = sorted(d for d in dirnames if not self.matcher.is_excluded_directory(prefix + d))
            for name in sorted(filenames):
                if name.startswith("."):
                    continue
                path = current / name
                rel = prefix + name
                if not is_regular_file(path):
                    continue
                if glob is None:
                    keep = self.matcher.should_include(path, rel)
                else:
                    keep = matches_path(below + name, glob) and not self.matcher.is_excluded(path, rel)
                if keep:
                    results.append(self.normalizer.normalize(path))
        return results

    def collect(self, targets: Iterable[ScanTarget], base: Path | None = None) -> list[Path]:
        """Walk every directory or glob target, evaluating filters against `base`."""
        results: list[Path] = []
        for target in targets:
            if not target.path.is_dir():
                logger.warning("input path not found", path=str(target.path))
                continue
            results.extend(self.walk(target.path, target.glob, base=base))
        return results


class GitDiscovery:
    """Discovery driven by the repository's own file listing."""

    def __init__(self, repo: GitRepository, matcher: PatternMatcher, normalizer: PathNormalizer) -> None:
        self.repo = repo
        self.matcher = matcher
        self.normalizer = normalizer

    def discover(self, targets: Sequence[ScanTarget]) -> list[Path]:
        """List tracked and untracked-but-not-ignored files under `targets`."""
        return self.select(self.repo.list_files(), targets)

    def select(self, rel_files: Iterable[str], targets: Sequence[ScanTarget]) -> list[Path]:
        """Keep the repository-relative paths requested by `targets`.

        Each file must lie below one of the targets on a `/` boundary; the
        check is skipped for a target equal to the repository root. Directory
        targets apply the full filter set, glob targets match the remainder
        of the path with `matches_path`, file targets must match exactly.
        Paths that no longer exist on disk are dropped.

        Args:
            rel_files: POSIX paths relative to the repository root
            targets: canonical inputs, all inside the repository

        Returns:
            list[Path]: canonical paths of the kept files
        """
        root = self.repo.root
        scopes = [
            ("" if t.path == root else relpath(t.path, root), t.glob, t.is_file)
            for t in targets
        ]
        results: list[Path] = []
        for rel in rel_files:
            path = root / rel
            for scope, glob, is_file in scopes:
                if not is_under(rel, scope):
                    continue
                if is_file:
                    keep = rel == scope
                elif glob is not None:
                    below = rel[len(scope) + 1 :] if scope else rel
                    keep = matches_path(below, glob) and not self.matcher.is_excluded(path, rel)
                else:
                    keep = self.matcher.should_include(path, rel)
                if keep:
                    if is_regular_file(path):
                        results.append(self.normalizer.normalize(path))
                    break
        return results


class FileDiscovery:
    """Select the files of one run according to `Settings`."""

    def __init__(
        self,
        settings: Settings,
        *,
        normalizer: PathNormalizer | None = None,
        matcher: PatternMatcher | None = None,
    ) -> None:
        self.settings = settings
        self.normalizer = normalizer or PathNormalizer()
        self.matcher = matcher or PatternMatcher.from_settings(settings)

    def targets(self) -> list[ScanTarget]:
        """Resolve the configured inputs against `settings.root`."""
        root = self.settings.root
        out: list[ScanTarget] = []
        for raw in self.settings.paths or ["."]:
            value = raw.strip()
            if not value:
                continue
            if has_wildcard(value):
                base, rest = split_glob(value)
                base = base.expanduser()
                out.append(ScanTarget(self.normalizer.normalize(base if base.is_absolute() else root / base), rest))
            else:
                path = Path(value).expanduser()
                out.append(ScanTarget(self.normalizer.normalize(path if path.is_absolute() else root / path)))
        return out

    def probe(self, targets: Sequence[ScanTarget]) -> GitRepository | None:
        """Return the repository to use, or None for a filesystem walk.

        Git discovery is used only when enabled and when every input lies
        inside the repository found from the first input.
        """
        if not self.settings.use_git or not targets:
            return None
        repo = GitRepository.find(targets[0].path)
        if repo is None:
            return None
        root = repo.root.as_posix()
        if not all(is_under(t.path.as_posix(), root) for t in targets):
            logger.info("inputs span outside the repository, walking the filesystem", repo=root)
            return None
        return repo

    def scan_root(self, targets: Sequence[ScanTarget]) -> Path:
        """Directory a filesystem walk evaluates relative paths against.

        `settings.root` when it contains every input, otherwise the deepest
        directory shared by the inputs. Filters, token-limit rules and the
        displayed paths all use it.
        """
        root = self.normalizer.normalize(self.settings.root)
        dirs = [t.path.parent if t.is_file else t.path for t in targets]
        if all(is_under(d.as_posix(), root.as_posix()) for d in dirs):
            return root
        return Path(os.path.commonpath(dirs))

    def discover(self) -> DiscoveryResult:
        """Run discovery.

        Raises:
            TooManyFilesError: if more than `max_files` files are selected
            NotAGitRepositoryError: in diff mode, outside a repository
            GitCommandError: if a git command fails

        Returns:
            DiscoveryResult: unique canonical paths, sorted by path string,
                and the directory they are relative to
        """
        targets = self.targets()
        if self.settings.diff:
            base, found = self._discover_changes(targets)
        else:
            found = [t.path for t in targets if t.is_file]
            scan = [t for t in targets if not t.is_file]
            repo = self.probe(targets)
            if repo is not None:
                base = repo.root
                logger.info("discovering files with git", repo=str(repo.root))
                if scan:
                    found.extend(GitDiscovery(repo, self.matcher, self.normalizer).discover(scan))
            else:
                base = self.scan_root(targets)
                logger.info("discovering files by walking the filesystem", base=str(base))
                found.extend(DirectoryWalker(self.matcher, self.normalizer).collect(scan, base))

        files = sorted(set(found), key=str)
        check_file_count(len(files), self.settings.limits)
        logger.info("discovery done", files=len(files))
        return DiscoveryResult(files=files, base=base)

    def _discover_changes(self, targets: Sequence[ScanTarget]) -> tuple[Path, list[Path]]:
        start = targets[0].path if targets else self.normalizer.normalize(self.settings.root)
        repo = GitRepository.require(start)
        changes = [c for c in repo.uncommitted_changes() if not c.is_deleted]
        logger.info("discovering uncommitted changes", repo=str(repo.root), changes=len(changes))
        return repo.root, GitDiscovery(repo, self.matcher, self.normalizer).select([c.path for c in changes], targets)
