from __future__ import annotations

import subprocess  # noqa: S404
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from context_pack.exceptions import GitCommandError, NotAGitRepositoryError
from context_pack.logging import logger

DELETED = "D"


def run_git(args: list[str], cwd: Path) -> str:
    """Run a git subcommand and return its standard output.

    Args:
        args: arguments passed after `git`
        cwd: working directory of the command

    Raises:
        GitCommandError: if git is missing or exits with a non-zero status

    Returns:
        str: the captured stdout
    """
    try:
        out = subprocess.run(
            ["git", *args],  # noqa: S607
            cwd=str(cwd),
            text=True,
            capture_output=True,
            check=True,
        )
    except subprocess.CalledProcessError as e:
        raise GitCommandError(
            command=" ".join(args),
            returncode=e.returncode,
            stdout=e.stdout or "",
            stderr=e.stderr or "",
        ) from e
    except OSError as e:
        raise GitCommandError(command=" ".join(args), returncode=-1, stdout="", stderr=str(e)) from e
    return out.stdout


class FileChange(BaseModel):
    """One entry of `git diff --name-status`."""

    model_config = ConfigDict(frozen=True)

    status: str = Field(..., description="git status letter(s), e.g. M, A, D, R100")
    path: str = Field(..., description="path relative to the repository root")

    @property
    def is_deleted(self) -> bool:
        return self.status.startswith(DELETED)


class GitRepository:
    """Thin wrapper over the git command line for one working tree."""

    def __init__(self, root: Path) -> None:
        self.root = root

    @classmethod
    def find(cls, path: Path) -> GitRepository | None:
        """Locate the repository containing `path`.

        Args:
            path: a file or directory

        Returns:
            GitRepository | None: the repository, or None when `path` is not
                inside a working tree or git is unavailable
        """
        start = path if path.is_dir() else path.parent
        if not start.exists():
            return None
        try:
            top = run_git(["rev-parse", "--show-toplevel"], start).strip()
        except GitCommandError as e:
            logger.debug("no git repository found", path=str(path), error=e.stderr.strip())
            return None
        if not top:
            return None
        return cls(Path(top).resolve())

    @classmethod
    def require(cls, path: Path) -> GitRepository:
        """Like `find`, but raise when `path` is not inside a repository.

        Raises:
            NotAGitRepositoryError: if no repository contains `path`
        """
        repo = cls.find(path)
        if repo is None:
            raise NotAGitRepositoryError(folder=path)
        return repo

    def list_files(self) -> list[str]:
        """List tracked and untracked-but-not-ignored files.

        Returns:
            list[str]: POSIX paths relative to the repository root
        """
        out = run_git(["ls-files", "-z", "--cached", "--others", "--exclude-standard"], self.root)
        return [entry for entry in out.split("\0") if entry]

    def uncommitted_changes(self) -> list[FileChange]:
        """List files changed relative to HEAD, staged or not.

        Renames and copies report the destination path.

        Returns:
            list[FileChange]: one entry per changed path
        """
        out = run_git(["-c", "core.quotepath=off", "diff", "--name-status", "HEAD"], self.root)
        changes: list[FileChange] = []
        for line in out.splitlines():
            fields = line.strip().split("\t")
            if len(fields) < 2:  # noqa: PLR2004
                continue
            changes.append(FileChange(status=fields[0], path=fields[-1]))
        return changes
