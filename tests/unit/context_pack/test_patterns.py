from __future__ import annotations

import pytest

from context_pack.patterns import (
    compile_path_pattern,
    has_wildcard,
    is_path_pattern,
    matches_any,
    matches_name,
    matches_path,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    ("name", "pattern", "expected"),
    [
        ("main.py", "*.py", True),
        ("main.pyc", "*.py", False),
        ("app.min.js", "*.min.*", True),
        ("package-lock.json", "*-lock.json", True),
        ("a.c", "?.c", True),
        ("ab.c", "?.c", False),
        ("Makefile", "Makefile", True),
        ("makefile", "Makefile", False),
        ("file[1].txt", "file[1].txt", True),
        ("", "*", False),
    ],
)
def test_matches_name(name: str, pattern: str, *, expected: bool) -> None:
    assert matches_name(name, pattern) is expected


@pytest.mark.unit
def test_matches_path_double_star_under_wildcard_segment() -> None:
    pattern = "instance/*/content/**"

    assert matches_path("instance/site1/content/uploads/x.php", pattern) is True
    assert matches_path("instance/config.php", pattern) is False


@pytest.mark.unit
def test_leading_double_star_matches_root_level_files() -> None:
    assert matches_path("x.generated.ts", "**/*.generated.*") is True
    assert matches_path("a/b/x.generated.ts", "**/*.generated.*") is True


@pytest.mark.unit
def test_single_star_does_not_cross_separator() -> None:
    assert matches_path("lang/en.json", "lang/*.json") is True
    assert matches_path("lang/en/messages.json", "lang/*.json") is False
    assert matches_path("src/a.py", "src/?.py") is True


@pytest.mark.unit
def test_path_without_wildcards_requires_equality() -> None:
    assert matches_path("src/app.py", "src/app.py") is True
    assert matches_path("src/app.pyi", "src/app.py") is False
    assert matches_path("", "**") is False


@pytest.mark.unit
def test_matching_is_case_sensitive() -> None:
    assert matches_path("Vendor/lib.php", "vendor/**") is False
    assert matches_name("README.MD", "*.md") is False


@pytest.mark.unit
def test_regex_metacharacters_are_literal() -> None:
    assert matches_path("a+b/c.d", "a+b/*.d") is True
    assert matches_path("aab/c.d", "a+b/*.d") is False


@pytest.mark.unit
def test_compiled_patterns_are_cached() -> None:
    assert compile_path_pattern("src/**/*.py") is compile_path_pattern("src/**/*.py")


@pytest.mark.unit
def test_pattern_shape_helpers() -> None:
    assert has_wildcard("*.py") is True
    assert has_wildcard("Makefile") is False
    assert is_path_pattern("src/*.py") is True
    assert is_path_pattern("*.py") is False


@pytest.mark.unit
def test_matches_any_routes_by_pattern_shape() -> None:
    assert matches_any("app.py", "src/app.py", ["docs/*.md", "*.py"]) is True
    assert matches_any("app.py", "src/app.py", ["src/*.py"]) is True
    assert matches_any("app.py", "lib/app.py", ["src/*.py"]) is False
