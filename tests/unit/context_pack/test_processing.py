from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from context_pack.config import SafetyLimits, SkipReason
from context_pack.processing import FileProcessor, FileReader, default_workers
from context_pack.token_limits import TokenLimitResolver

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from pytest_mock import MockerFixture


def _processor(base: Path, **kwargs: Any) -> FileProcessor:
    return FileProcessor(resolver=TokenLimitResolver(kwargs.pop("max_tokens", 100)), base=base, **kwargs)


@pytest.mark.unit
def test_default_workers_is_bounded() -> None:
    assert 1 <= default_workers() <= 32


@pytest.mark.unit
def test_reader_returns_text(make_tree: Callable[..., Path]) -> None:
    root = make_tree({"a.py": "print('é')\n"})

    assert FileReader().read_file(root / "a.py") == "print('é')\n"


@pytest.mark.unit
@pytest.mark.parametrize(
    ("data", "reason"),
    [
        (b"abc\x00def", SkipReason.BINARY),
        (b"caf\xe9 \xff\xfe", SkipReason.INVALID_ENCODING),
    ],
)
def test_reader_sentinels(make_tree: Callable[..., Path], data: bytes, reason: SkipReason) -> None:
    root = make_tree({"blob.py": data})

    record = FileReader().read_file(root / "blob.py")

    assert not isinstance(record, str)
    assert record.skip_reason is reason
    assert record.content == reason.render()
    assert record.is_skipped is True


@pytest.mark.unit
def test_oversized_file_is_skipped_without_reading(make_tree: Callable[..., Path], mocker: MockerFixture) -> None:
    root = make_tree({"big.py": "x" * 64})
    processor = _processor(root, limits=SafetyLimits(max_file_size=10))
    read = mocker.spy(processor.reader, "read_file")

    record = processor.process_file(root / "big.py")

    assert record is not None
    assert record.skip_reason is SkipReason.TOO_LARGE
    assert record.content == "[SKIPPED - File too large: 0MB, limit is 0MB]"
    read.assert_not_called()


@pytest.mark.unit
def test_zero_limit_files_are_pattern_excluded(make_tree: Callable[..., Path]) -> None:
    root = make_tree({"static/app.min.js": "var a=1;"})

    record = _processor(root).process_file(root / "static" / "app.min.js")

    assert record is not None
    assert record.skip_reason is SkipReason.PATTERN_EXCLUDED
    assert record.content == "[SKIPPED - Pattern-excluded file]"


@pytest.mark.unit
def test_zero_tokenization_mode_keeps_full_content(make_tree: Callable[..., Path]) -> None:
    content = "x = 1\n" * 200
    root = make_tree({"a.py": content})

    record = _processor(root, max_tokens=10).process_file(root / "a.py")

    assert record is not None
    assert record.content == content
    assert record.token_count == 0
    assert record.truncated is False


@pytest.mark.unit
def test_stats_mode_truncates_to_the_resolved_limit(make_tree: Callable[..., Path], char_tokenizer: Any) -> None:
    content = "".join(f"row {i:04d}\n" for i in range(100))
    root = make_tree({"a.py": content, "b.py": "short\n"})
    processor = _processor(root, tokenizer=char_tokenizer, count_tokens=True)

    long_record, short_record = processor.process_files([root / "a.py", root / "b.py"])

    assert long_record.truncated is True
    assert long_record.token_count <= 100
    assert long_record.original_token_count == len(content)
    assert "TRUNCATED" in long_record.content
    assert short_record.truncated is False
    assert short_record.token_count == len("short\n")


@pytest.mark.unit
def test_stats_mode_requires_a_tokenizer(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="tokenizer"):
        _processor(tmp_path, count_tokens=True)


@pytest.mark.unit
def test_unreadable_file_is_dropped_and_order_is_kept(make_tree: Callable[..., Path]) -> None:
    root = make_tree({f"f{i}.py": f"# {i}\n" for i in range(6)})
    paths = sorted(root.glob("*.py"))
    paths.insert(3, root / "vanished.py")

    records = _processor(root, max_workers=4).process_files(paths)

    assert [r.path.name for r in records] == [f"f{i}.py" for i in range(6)]
    assert [r.content for r in records] == [f"# {i}\n" for i in range(6)]


@pytest.mark.unit
def test_read_error_on_one_file_does_not_abort(make_tree: Callable[..., Path], mocker: MockerFixture) -> None:
    root = make_tree({"a.py": "a\n", "b.py": "b\n", "c.py": "c\n"})
    processor = _processor(root)
    original = processor.reader.read_file

    def flaky(path: Path) -> Any:
        if path.name == "b.py":
            msg = "permission denied"
            raise PermissionError(msg)
        return original(path)

    mocker.patch.object(processor.reader, "read_file", side_effect=flaky)

    records = processor.process_files([root / "a.py", root / "b.py", root / "c.py"])

    assert [r.path.name for r in records] == ["a.py", "c.py"]


@pytest.mark.unit
def test_process_files_empty(tmp_path: Path) -> None:
    assert _processor(tmp_path).process_files([]) == []
