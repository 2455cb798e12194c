from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ContextPackError(Exception):
    """Base exception for errors in the context_pack module."""

    @property
    def message(self) -> str:
        """Human readable description of the failure."""
        return self.__doc__ or self.__class__.__name__

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class SafetyLimitError(ContextPackError):
    """Raised when a hard safety limit is exceeded and the run must abort."""

    @property
    def suggestion(self) -> str:
        """Remedy shown to the user alongside the message."""
        return ""


@dataclass(frozen=True)
class TooManyFilesError(SafetyLimitError):
    """Raised when discovery finds more files than `max_files` allows."""

    found: int
    limit: int

    @property
    def message(self) -> str:
        return f"Too many files discovered: {self.found}. Maximum is {self.limit}."

    @property
    def suggestion(self) -> str:
        return "Try filtering with --type or --include patterns, or increase the limit with --max-files."


@dataclass(frozen=True)
class TooManyTokensError(SafetyLimitError):
    """Raised when the assembled output holds more tokens than `max_total_tokens` allows."""

    total: int
    limit: int

    @property
    def message(self) -> str:
        return f"Total tokens ({self.total}) exceeds limit of {self.limit}."

    @property
    def suggestion(self) -> str:
        return "Reduce --max-tokens per file, filter to fewer files, or raise --max-total-tokens."


@dataclass(frozen=True)
class GitCommandError(ContextPackError):
    """Raised when a git command fails."""

    command: str
    returncode: int
    stdout: str
    stderr: str

    @property
    def message(self) -> str:
        return f"git {self.command} failed ({self.returncode}): {self.stderr.strip()}"


@dataclass(frozen=True)
class NotAGitRepositoryError(ContextPackError):
    """Raised when the specified directory is not a Git repository."""

    folder: Path

    @property
    def message(self) -> str:
        return f"{self.folder} is not inside a Git repository. Use --diff only in git repositories."


@dataclass(frozen=True)
class TokenizerInitError(ContextPackError):
    """Raised when the tokenizer backend cannot be initialised."""

    encoding: str
    reason: str

    @property
    def message(self) -> str:
        return f"Tokenizer initialization error for {self.encoding!r}: {self.reason}"
