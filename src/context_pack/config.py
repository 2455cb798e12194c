from __future__ import annotations

from enum import StrEnum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, computed_field


class SkipReason(StrEnum):
    """Why a discovered file was kept in the result without its content.

    The value is a format string rendered into `FileRecord.content`, so the
    output stage shows the reason in place of the file body.
    """

    TOO_LARGE = "[SKIPPED - File too large: {size_mb}MB, limit is {limit_mb}MB]"
    BINARY = "[SKIPPED - Binary file detected]"
    INVALID_ENCODING = "[SKIPPED - Invalid UTF-8 encoding]"
    PATTERN_EXCLUDED = "[SKIPPED - Pattern-excluded file]"

    def render(self, **kwargs: int) -> str:
        """Render the sentinel text shown in place of the file content."""
        return self.value.format(**kwargs) if kwargs else self.value


DEFAULT_INCLUDE_PATTERNS: tuple[str, ...] = (
    # Web
    "*.ts", "*.js", "*.mjs", "*.jsx", "*.tsx",
    "*.html", "*.htm", "*.css", "*.scss", "*.sass", "*.less",
    "*.vue", "*.svelte", "*.astro",
    # Backend
    "*.php", "*.blade.php",
    "*.py", "*.pyi",
    "*.rb", "*.erb",
    "*.java", "*.kt", "*.kts",
    "*.cs", "*.vb",
    "*.go",
    # Systems
    "*.sh", "*.bash", "*.zsh",
    "*.c", "*.cpp", "*.cxx", "*.cc", "*.h", "*.hpp",
    "*.rs",
    "*.swift",
    "*.lua",
    # Markup & config
    "*.md", "*.mdx", "*.markdown",
    "*.json", "*.jsonc", "*.json5",
    "*.yaml", "*.yml",
    "*.toml",
    "*.xml",
    "*.ini", "*.conf", "*.cfg",
    # Shaders
    "*.glsl", "*.vsh", "*.fsh", "*.shader",
    # Build
    "Makefile", "makefile",
    "Dockerfile", "dockerfile",
    "*.cmake", "CMakeLists.txt",
    "*.gradle",
    # Unity
    "*.unity", "*.meta", "*.asset", "*.prefab",
)  # fmt: skip

EXCLUDED_DIRECTORIES = frozenset({
    # Dependencies
    "node_modules",
    "vendor",
    "bower_components",
    # Build artifacts
    "build",
    ".build",
    "dist",
    "out",
    "target",
    "bin",
    "obj",
    # Version control
    ".git",
    ".svn",
    ".hg",
    # Environments
    "venv",
    ".venv",
    "env",
    ".env",
    "virtualenv",
    ".virtualenv",
    # Storage
    "storage",
    "public/storage",
    # Unity
    "Library",
    "Temp",
    "Obj",
    # IDE
    ".idea",
    ".vscode",
    ".vs",
    # Cache
    "__pycache__",
    ".cache",
    ".pytest_cache",
    ".mypy_cache",
    ".ruff_cache",
})

IGNORED_EXTENSIONS = frozenset({
    # Archives
    "zip", "tar", "gz", "bz2", "xz", "rar", "7z",
    # Executables
    "exe", "bin", "dll", "so", "dylib",
    # Compiled
    "pyc", "pyo", "class", "o", "a", "jar", "war",
    # Media
    "png", "jpg", "jpeg", "gif", "bmp", "svg", "ico",
    "mp3", "mp4", "avi", "mov", "wav",
    # Fonts
    "woff", "woff2", "ttf", "otf", "eot",
    # Databases
    "db", "sqlite", "sqlite3",
    # Logs
    "log",
})  # fmt: skip

# Checked in order, first match wins.
LOW_VALUE_PATTERNS: tuple[tuple[str, int], ...] = (
    ("*.lock", 500),
    ("*-lock.json", 500),
    ("*.resolved", 500),
    ("*mock*.xml", 1000),
    ("*mock*.json", 1000),
    ("*api*.json", 2000),
    ("*-api-*.md", 2000),
    ("*.min.*", 0),
)

DEFAULT_MAX_TOKENS = 10_000
DEFAULT_ENCODING = "cl100k_base"
BINARY_SNIFF_BYTES = 1024


class SafetyLimits(BaseModel):
    """Hard caps whose violation aborts the run instead of degrading output."""

    model_config = ConfigDict(frozen=True)

    max_files: int = Field(default=100_000, ge=0, description="Maximum number of files to collect")
    max_file_size: int = Field(
        default=100 * 1024 * 1024,
        ge=0,
        description="Maximum size per file in bytes; larger files are skipped",
    )
    max_total_tokens: int = Field(
        default=1_000_000,
        ge=0,
        description="Maximum tokens in the assembled output",
    )


class TruncationResult(BaseModel):
    """Outcome of fitting one file's content into its token ceiling.

    Attributes:
        content: Possibly truncated content.
        token_count: Tokens kept from the original content.
        original_token_count: Tokens in the content before truncation.
        truncated: Whether any content was dropped.
    """

    model_config = ConfigDict(frozen=True)

    content: str
    token_count: int = Field(..., ge=0)
    original_token_count: int = Field(..., ge=0)
    truncated: bool = False


class FileRecord(BaseModel):
    """One processed file, ready for the output stage.

    Attributes:
        path: Absolute path to the file on disk.
        content: File text, possibly truncated, or a `SkipReason` sentinel.
        token_count: Tokens in `content`; 0 until tokenized since tokenization may be deferred.
        original_token_count: Tokens before truncation (0 when not tokenized).
        truncated: Whether `content` was cut down to fit the token ceiling.
        skip_reason: Set when `content` is a sentinel rather than the file text.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    path: Path = Field(..., description="Absolute file path")
    content: str = Field(..., description="File text or skip sentinel")
    token_count: int = Field(default=0, ge=0, description="Tokens in content (0 when deferred)")
    original_token_count: int = Field(default=0, ge=0, description="Tokens before truncation")
    truncated: bool = Field(default=False, description="Whether content was truncated")
    skip_reason: SkipReason | None = Field(default=None, description="Why content was not read")

    @computed_field
    @property
    def is_skipped(self) -> bool:
        """Whether the record carries a sentinel instead of file content."""
        return self.skip_reason is not None
