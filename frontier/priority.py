from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Pattern, Union

PriorityClassifier = Callable[[str], int]


@dataclass(frozen=True)
class PriorityRule:
    pattern: Pattern[str]
    level: int


class PriorityRules:
    """Regex based URL priority classifier.

    Rules are kept sorted by level, highest first, so a URL gets the level of
    the most urgent rule it matches. Unmatched URLs get ``0``.
    """

    def __init__(self, rules: Iterable[tuple[Union[str, Pattern[str]], int]] = ()) -> None:
        self._rules: list[PriorityRule] = []
        for pattern, level in rules:
            self.add_rule(pattern, level)

    @classmethod
    def from_config(cls, entries: Iterable[Mapping[str, object]]) -> "PriorityRules":
        """Build rules from ``[{"pattern": ..., "level": ...}, ...]``."""
        return cls((str(entry["pattern"]), entry["level"]) for entry in entries)

    def add_rule(self, pattern: Union[str, Pattern[str]], level: int) -> None:
        if isinstance(level, bool) or not isinstance(level, int):
            raise ValueError(f"Priority level must be an integer, got {level!r}")
        if level < 0:
            raise ValueError(f"Priority level must be >= 0, got {level}")

        compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
        self._rules.append(PriorityRule(compiled, level))
        # stable: equal levels keep insertion order
        self._rules.sort(key=lambda rule: rule.level, reverse=True)

    def __len__(self) -> int:
        return len(self._rules)

    def __call__(self, url: str) -> int:
        for rule in self._rules:
            if rule.pattern.search(url):
                return rule.level
        return 0
