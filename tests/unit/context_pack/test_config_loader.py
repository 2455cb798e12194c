from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from context_pack.config_loader import (
    CONFIG_FILE_NAME,
    FileConfig,
    find_project_root,
    load_config,
    load_config_file,
    merge_configs,
)

if TYPE_CHECKING:
    from pathlib import Path

PROJECT_TOML = """
[defaults]
max_tokens = 2000
show_tree = true

[exclude]
directories = ["generated"]
patterns = ["**/*.snap"]

[include]
types = ["*.py"]

[token_limits]
"*.json" = 100
"docs/**" = 0

[performance]
mode = "content-aware"
"""


@pytest.mark.unit
def test_load_config_file_parses_tables(tmp_path: Path) -> None:
    path = tmp_path / CONFIG_FILE_NAME
    path.write_text(PROJECT_TOML, encoding="utf-8")

    cfg = load_config_file(path)

    assert cfg is not None
    assert cfg.defaults.max_tokens == 2000
    assert cfg.defaults.show_tree is True
    assert cfg.defaults.max_files is None
    assert cfg.exclude.directories == ["generated"]
    assert cfg.exclude.patterns == ["**/*.snap"]
    assert cfg.include.types == ["*.py"]
    assert list(cfg.token_limits.items()) == [("*.json", 100), ("docs/**", 0)]
    assert cfg.performance.mode == "content-aware"


@pytest.mark.unit
@pytest.mark.parametrize(
    "content",
    [
        "[defaults\nmax_tokens = 1",
        '[defaults]\nmax_tokens = "many"\n',
        "[performance]\nmode = 'turbo'\n",
    ],
)
def test_invalid_config_file_is_ignored(tmp_path: Path, content: str) -> None:
    path = tmp_path / CONFIG_FILE_NAME
    path.write_text(content, encoding="utf-8")

    assert load_config_file(path) is None


@pytest.mark.unit
def test_missing_config_file(tmp_path: Path) -> None:
    assert load_config_file(tmp_path / CONFIG_FILE_NAME) is None


@pytest.mark.unit
def test_merge_prefers_override_and_merges_token_limits() -> None:
    base = FileConfig.model_validate({
        "defaults": {"max_tokens": 100, "max_files": 5},
        "exclude": {"directories": ["a"]},
        "token_limits": {"*.json": 10, "*.md": 20},
    })
    override = FileConfig.model_validate({
        "defaults": {"max_tokens": 200},
        "exclude": {"directories": ["b"]},
        "token_limits": {"*.json": 30},
    })

    merged = merge_configs(base, override)

    assert merged.defaults.max_tokens == 200
    assert merged.defaults.max_files == 5
    assert merged.exclude.directories == ["b"]
    assert merged.token_limits == {"*.json": 30, "*.md": 20}


@pytest.mark.unit
def test_find_project_root(tmp_path: Path) -> None:
    (tmp_path / "repo" / ".git").mkdir(parents=True)
    nested = tmp_path / "repo" / "src" / "pkg"
    nested.mkdir(parents=True)

    assert find_project_root(nested) == (tmp_path / "repo").resolve()


@pytest.mark.unit
def test_load_config_layers_project_over_home(tmp_path: Path) -> None:
    home = tmp_path / "home"
    home.mkdir()
    (home / CONFIG_FILE_NAME).write_text(
        "[defaults]\nmax_tokens = 1\nencoding = 'o200k_base'\n",
        encoding="utf-8",
    )
    project = tmp_path / "project"
    (project / ".git").mkdir(parents=True)
    (project / CONFIG_FILE_NAME).write_text("[defaults]\nmax_tokens = 2\n", encoding="utf-8")
    (project / "src").mkdir()

    cfg = load_config(project / "src", home=home)

    assert cfg.defaults.max_tokens == 2
    assert cfg.defaults.encoding == "o200k_base"


@pytest.mark.unit
def test_load_config_without_files(tmp_path: Path) -> None:
    assert load_config(tmp_path, home=tmp_path / "nowhere") == FileConfig()
