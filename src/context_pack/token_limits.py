from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, computed_field

from context_pack.config import LOW_VALUE_PATTERNS
from context_pack.patterns import is_path_pattern, matches_name, matches_path

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping


class TokenLimitRule(BaseModel):
    """Token ceiling applied to files matching `pattern` (0 skips the file)."""

    model_config = ConfigDict(frozen=True)

    pattern: str = Field(..., min_length=1, description="Filename or path glob")
    limit: int = Field(..., ge=0, description="Token ceiling, 0 means exclude entirely")

    @computed_field
    @property
    def is_path_rule(self) -> bool:
        """Path rules contain a separator and are matched against relative paths."""
        return is_path_pattern(self.pattern)

    @computed_field
    @property
    def segment_count(self) -> int:
        """Number of `/`-separated segments in the pattern."""
        return len(self.pattern.strip("/").split("/"))

    def matches(self, file_name: str, relative_path: str) -> bool:
        """Check whether this rule applies to a file.

        Path rules try the full relative path first, then its trailing
        `segment_count` segments so `lang/*.json` also catches
        `resources/lang/en.json`. Filename rules only look at the base name.

        Args:
            file_name: base name of the file
            relative_path: POSIX path relative to the scan root

        Returns:
            bool: True if the rule applies
        """
        if not self.is_path_rule:
            return matches_name(file_name, self.pattern)
        if matches_path(relative_path, self.pattern):
            return True
        segments = relative_path.split("/")
        if len(segments) <= self.segment_count:
            return False
        return matches_path("/".join(segments[-self.segment_count :]), self.pattern)


def rules_from_mapping(custom_rules: Mapping[str, int] | None) -> list[TokenLimitRule]:
    """Build rules from a `pattern -> limit` table, preserving its order."""
    if not custom_rules:
        return []
    return [TokenLimitRule(pattern=pattern, limit=limit) for pattern, limit in custom_rules.items()]


BUILTIN_RULES: tuple[TokenLimitRule, ...] = tuple(
    TokenLimitRule(pattern=pattern, limit=limit) for pattern, limit in LOW_VALUE_PATTERNS
)


class TokenLimitResolver:
    """Pick exactly one token ceiling per file from layered rules.

    Order: custom path rules, custom filename rules, built-in low-value
    rules, then the default. The first matching rule wins.
    """

    def __init__(
        self,
        default_limit: int,
        custom_rules: Mapping[str, int] | Iterable[TokenLimitRule] | None = None,
    ) -> None:
        if custom_rules is None:
            rules: list[TokenLimitRule] = []
        elif hasattr(custom_rules, "items"):
            rules = rules_from_mapping(custom_rules)  # type: ignore[arg-type]
        else:
            rules = list(custom_rules)
        self.default_limit = default_limit
        self.path_rules = tuple(r for r in rules if r.is_path_rule)
        self.name_rules = tuple(r for r in rules if not r.is_path_rule)

    def matching_rule(self, file_name: str, relative_path: str) -> TokenLimitRule | None:
        """Return the rule that decides the ceiling, or None for the default."""
        for rule in self.path_rules:
            if rule.matches(file_name, relative_path):
                return rule
        for rule in self.name_rules:
            if rule.matches(file_name, relative_path):
                return rule
        for rule in BUILTIN_RULES:
            if rule.matches(file_name, relative_path):
                return rule
        return None

    def resolve(self, file_name: str, relative_path: str) -> int:
        """Return the token ceiling for one file.

        Args:
            file_name: base name of the file
            relative_path: POSIX path relative to the scan root

        Returns:
            int: the ceiling, 0 meaning the file is skipped
        """
        rule = self.matching_rule(file_name, relative_path)
        return self.default_limit if rule is None else rule.limit


def resolve_limit(
    file_name: str,
    relative_path: str,
    default_limit: int,
    custom_rules: Mapping[str, int] | None = None,
) -> int:
    """Resolve a file's token ceiling; see `TokenLimitResolver`.

    Args:
        file_name: base name of the file
        relative_path: POSIX path relative to the scan root
        default_limit: ceiling used when no rule matches
        custom_rules: ordered `pattern -> limit` table from configuration

    Returns:
        int: the selected ceiling
    """
    return TokenLimitResolver(default_limit, custom_rules).resolve(file_name, relative_path)
