"""Load ``.contextpack.toml`` files from the home directory and the project root."""

from __future__ import annotations

from pathlib import Path
from typing import Literal, TypeVar

import tomlkit
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from tomlkit.exceptions import TOMLKitError

from context_pack.logging import logger

CONFIG_FILE_NAME = ".contextpack.toml"


class _Table(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


T = TypeVar("T", bound=_Table)


class DefaultsConfig(_Table):
    """``[defaults]`` table."""

    max_tokens: int | None = Field(default=None, ge=0)
    max_files: int | None = Field(default=None, ge=0)
    max_file_size_mb: int | None = Field(default=None, ge=0)
    max_total_tokens: int | None = Field(default=None, ge=0)
    show_tree: bool | None = None
    encoding: str | None = None


class ExcludeConfig(_Table):
    """``[exclude]`` table."""

    directories: list[str] | None = None
    extensions: list[str] | None = None
    patterns: list[str] | None = None


class IncludeConfig(_Table):
    """``[include]`` table."""

    patterns: list[str] | None = None
    types: list[str] | None = None


class OutputConfig(_Table):
    """``[output]`` table."""

    format: Literal["text", "json"] | None = None
    include_tree: bool | None = None


class PerformanceConfig(_Table):
    """``[performance]`` table.

    ``zero-tokenization`` only counts the final document; ``content-aware``
    tokenizes every file and applies the token-limit rules.
    """

    mode: Literal["zero-tokenization", "content-aware"] | None = None


class FileConfig(_Table):
    """Merged content of the configuration files."""

    defaults: DefaultsConfig = Field(default_factory=DefaultsConfig)
    exclude: ExcludeConfig = Field(default_factory=ExcludeConfig)
    include: IncludeConfig = Field(default_factory=IncludeConfig)
    token_limits: dict[str, int] = Field(default_factory=dict)
    output: OutputConfig = Field(default_factory=OutputConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)


def find_project_root(path: Path) -> Path | None:
    """Find the nearest directory holding ``.git``, searching upward from ``path``.

    Args:
        path (Path): Starting file or directory.

    Returns:
        Path | None: The project root, or None outside a repository.
    """
    current = path.resolve()
    if not current.is_dir():
        current = current.parent
    while True:
        if (current / ".git").exists():
            return current
        if current.parent == current:
            return None
        current = current.parent


def load_config_file(path: Path) -> FileConfig | None:
    """Parse one configuration file.

    A missing file gives None. An unreadable or invalid file is logged and
    also gives None so the run continues with the other sources.

    Args:
        path (Path): Location of the TOML file.

    Returns:
        FileConfig | None: The parsed configuration.
    """
    if not path.is_file():
        return None
    try:
        data = tomlkit.parse(path.read_text(encoding="utf-8")).unwrap()
        return FileConfig.model_validate(data)
    except (OSError, UnicodeDecodeError, TOMLKitError, ValidationError) as e:
        logger.warning("ignoring invalid config file", path=str(path), error=str(e))
        return None


def _merge_table(base: T, override: T) -> T:
    return base.model_copy(update=override.model_dump(exclude_none=True))


def merge_configs(base: FileConfig, override: FileConfig) -> FileConfig:
    """Overlay ``override`` on ``base``.

    Values set in ``override`` win, lists included; ``token_limits`` tables
    are merged key by key.

    Args:
        base (FileConfig): Lower priority configuration.
        override (FileConfig): Higher priority configuration.

    Returns:
        FileConfig: The merged configuration.
    """
    return FileConfig(
        defaults=_merge_table(base.defaults, override.defaults),
        exclude=_merge_table(base.exclude, override.exclude),
        include=_merge_table(base.include, override.include),
        token_limits={**base.token_limits, **override.token_limits},
        output=_merge_table(base.output, override.output),
        performance=_merge_table(base.performance, override.performance),
    )


def load_config(base_path: Path, *, home: Path | None = None) -> FileConfig:
    """Load the user configuration, then the project configuration over it.

    Args:
        base_path (Path): Path the project root is searched from; used as
            the project root itself when no repository encloses it.
        home (Path | None): Home directory, ``Path.home()`` by default.

    Returns:
        FileConfig: The merged configuration, empty when no file exists.
    """
    merged = FileConfig()
    user_file = (home or Path.home()) / CONFIG_FILE_NAME
    project_root = find_project_root(base_path) or (base_path if base_path.is_dir() else base_path.parent)
    project_file = project_root / CONFIG_FILE_NAME
    sources = [user_file] if user_file.resolve() == project_file.resolve() else [user_file, project_file]
    for source in sources:
        loaded = load_config_file(source)
        if loaded is not None:
            logger.debug("loaded config file", path=str(source))
            merged = merge_configs(merged, loaded)
    return merged
