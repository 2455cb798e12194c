from __future__ import annotations

import os
import shutil
import subprocess
from typing import TYPE_CHECKING

import pytest

from context_pack.tokenizer import approximate_count, reset_tokenizer_cache

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Sequence
    from pathlib import Path


class CharTokenizer:
    """One token per character; deterministic and offline."""

    name = "chars"

    def __init__(self) -> None:
        self.encode_calls = 0
        self.decode_calls = 0

    def encode(self, text: str) -> list[int]:
        self.encode_calls += 1
        return [ord(c) for c in text]

    def decode(self, tokens: Sequence[int]) -> str:
        self.decode_calls += 1
        return "".join(chr(t) for t in tokens)

    def approximate_count(self, text: str) -> int:
        return approximate_count(text)


class FailingTokenizer(CharTokenizer):
    name = "failing"

    def encode(self, text: str) -> list[int]:
        msg = "encoder unavailable"
        raise RuntimeError(msg)


class DecodeFailingTokenizer(CharTokenizer):
    name = "decode-failing"

    def decode(self, tokens: Sequence[int]) -> str:
        self.decode_calls += 1
        msg = "decoder unavailable"
        raise RuntimeError(msg)


@pytest.fixture
def char_tokenizer() -> CharTokenizer:
    return CharTokenizer()


@pytest.fixture
def failing_tokenizer() -> FailingTokenizer:
    return FailingTokenizer()


@pytest.fixture
def decode_failing_tokenizer() -> DecodeFailingTokenizer:
    return DecodeFailingTokenizer()


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path_factory: pytest.TempPathFactory) -> Iterator[None]:
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for key in list(os.environ):
        if key.startswith("CONTEXT_PACK_"):
            monkeypatch.delenv(key)
    monkeypatch.setattr("context_pack.settings.ENV_FILE", "")
    reset_tokenizer_cache()
    yield
    reset_tokenizer_cache()


@pytest.fixture
def make_tree(tmp_path: Path) -> Callable[[dict[str, str | bytes]], Path]:
    """Write `{relative path: content}` under a fresh directory and return it."""

    def _make(files: dict[str, str | bytes]) -> Path:
        root = tmp_path / "project"
        root.mkdir(exist_ok=True)
        for rel, content in files.items():
            path = root / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(content, bytes):
                path.write_bytes(content)
            else:
                path.write_text(content, encoding="utf-8")
        return root

    return _make


def git(repo: Path, *args: str) -> str:
    out = subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],  # noqa: S607
        cwd=str(repo),
        text=True,
        capture_output=True,
        check=True,
    )
    return out.stdout


@pytest.fixture
def git_repo(make_tree: Callable[[dict[str, str | bytes]], Path]) -> Callable[[dict[str, str | bytes]], Path]:
    """Like `make_tree`, then `git init` and commit everything."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    def _make(files: dict[str, str | bytes]) -> Path:
        root = make_tree(files)
        git(root, "init", "-q")
        git(root, "add", "-A")
        git(root, "commit", "-q", "-m", "initial")
        return root

    return _make


@pytest.fixture
def run_git() -> Callable[..., str]:
    return git
