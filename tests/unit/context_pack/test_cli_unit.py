from __future__ import annotations

import argparse
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from context_pack import __version__, cli
from context_pack.collector import CollectionResult
from context_pack.config_loader import FileConfig
from context_pack.exceptions import GitCommandError, TooManyFilesError
from context_pack.settings import OutputFormat

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


def _args(*argv: str) -> argparse.Namespace:
    return cli.build_parser().parse_args(list(argv))


@pytest.mark.unit
@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("*.json=500", ("*.json", 500)),
        ("resources/lang/**=0", ("resources/lang/**", 0)),
        ("a=b=3", ("a=b", 3)),
    ],
)
def test_parse_token_limit(value: str, expected: tuple[str, int]) -> None:
    assert cli.parse_token_limit(value) == expected


@pytest.mark.unit
@pytest.mark.parametrize("value", ["*.json", "=5", "*.json=lots", "*.json=-1"])
def test_parse_token_limit_rejects_malformed_values(value: str) -> None:
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_token_limit(value)


@pytest.mark.unit
def test_parse_args_version_flag(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.parse_args(["--version"])

    assert exc_info.value.code == 0
    captured = capsys.readouterr()
    assert __version__ in captured.out


@pytest.mark.unit
def test_build_settings_from_flags() -> None:
    args = _args(
        "src",
        "lib/*.py",
        "--max-tokens",
        "500",
        "--token-limit",
        "*.json=50",
        "--max-files",
        "20",
        "--max-file-size-mb",
        "2",
        "--type",
        "*.py",
        "--exclude",
        "fixtures",
        "--stats",
        "--no-git",
        "--json",
        "--tree",
    )

    settings = cli.build_settings(args)

    assert settings.paths == ["src", "lib/*.py"]
    assert settings.max_tokens == 500
    assert settings.token_limits == {"*.json": 50}
    assert settings.limits.max_files == 20
    assert settings.limits.max_file_size == 2 * 1024 * 1024
    assert settings.type_filters == ["*.py"]
    assert settings.exclude_directories == ["fixtures"]
    assert settings.count_tokens is True
    assert settings.use_git is False
    assert settings.format is OutputFormat.JSON
    assert settings.show_tree is True


@pytest.mark.unit
def test_build_settings_precedence() -> None:
    file_config = FileConfig.model_validate({
        "defaults": {"max_tokens": 100, "max_files": 7, "encoding": "p50k_base"},
        "include": {"types": ["*.go"]},
        "token_limits": {"*.json": 10, "*.md": 20},
        "output": {"format": "json"},
        "performance": {"mode": "content-aware"},
    })
    env = {"max_tokens": "300", "format": "text"}

    settings = cli.build_settings(
        _args("--max-files", "9", "--token-limit", "*.md=5"),
        file_config=file_config,
        env=env,
    )

    assert settings.max_tokens == 300
    assert settings.limits.max_files == 9
    assert settings.encoding == "p50k_base"
    assert settings.type_filters == ["*.go"]
    assert list(settings.token_limits.items()) == [("*.md", 5), ("*.json", 10)]
    assert settings.format is OutputFormat.TEXT
    assert settings.count_tokens is True


@pytest.mark.unit
def test_build_settings_rejects_invalid_env() -> None:
    with pytest.raises(ValueError, match="max_tokens"):
        cli.build_settings(_args(), env={"max_tokens": "plenty"})


@pytest.mark.unit
def test_main_writes_output_and_summary(
    tmp_path: Path,
    mocker: MockerFixture,
    capsys: pytest.CaptureFixture[str],
) -> None:
    output = tmp_path / "out.txt"
    result = CollectionResult(base=tmp_path, files=[], total_tokens=42, output="document\n")
    collector = mocker.patch.object(cli, "ContextCollector")
    collector.return_value.collect.return_value = result

    exit_code = cli.main([str(tmp_path), "--no-git", "--output", str(output)])

    assert exit_code == 0
    assert output.read_text(encoding="utf-8") == "document\n"
    settings = collector.call_args.args[0]
    assert settings.use_git is False
    assert "Collected 0 files, ~42 tokens" in capsys.readouterr().err


@pytest.mark.unit
def test_main_prints_to_stdout(tmp_path: Path, mocker: MockerFixture, capsys: pytest.CaptureFixture[str]) -> None:
    collector = mocker.patch.object(cli, "ContextCollector")
    collector.return_value.collect.return_value = CollectionResult(base=tmp_path, output="hello\n")

    assert cli.main([str(tmp_path)]) == 0
    assert capsys.readouterr().out == "hello\n"


@pytest.mark.unit
def test_main_reports_safety_limit_with_suggestion(
    tmp_path: Path,
    mocker: MockerFixture,
    capsys: pytest.CaptureFixture[str],
) -> None:
    collector = mocker.patch.object(cli, "ContextCollector")
    collector.return_value.collect.side_effect = TooManyFilesError(found=15, limit=10)

    exit_code = cli.main([str(tmp_path)])

    assert exit_code == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "Error: Too many files discovered: 15. Maximum is 10." in captured.err
    assert "Suggestion:" in captured.err


@pytest.mark.unit
def test_main_reports_git_failure(tmp_path: Path, mocker: MockerFixture, capsys: pytest.CaptureFixture[str]) -> None:
    collector = mocker.patch.object(cli, "ContextCollector")
    collector.return_value.collect.side_effect = GitCommandError(
        command="ls-files",
        returncode=128,
        stdout="",
        stderr="fatal: bad",
    )

    assert cli.main([str(tmp_path)]) == 1
    err = capsys.readouterr().err
    assert "fatal: bad" in err
    assert "Suggestion:" not in err


@pytest.mark.unit
def test_main_rejects_invalid_settings(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CONTEXT_PACK_WORKERS", "-3")

    assert cli.main([str(tmp_path)]) == 2


@pytest.mark.unit
def test_parse_args_reads_project_config(tmp_path: Path) -> None:
    (tmp_path / ".git").mkdir()
    (tmp_path / ".contextpack.toml").write_text("[defaults]\nmax_tokens = 1234\n", encoding="utf-8")

    settings = cli.parse_args([str(tmp_path)])

    assert settings.max_tokens == 1234
    assert settings.paths == [str(tmp_path)]
    assert isinstance(settings.root, Path)
