# SPDX-License-Identifier: MPL-2.0
# Copyright (c) 2025 Daniel Schmidt

"""Category filtering of test cases.

Test cases carry categories (traits). A run can be limited to the test cases
whose categories match an include pattern and no exclude pattern. Patterns
follow Robot Framework tag pattern syntax: wildcards (``gpio*``), ``AND`` /
``&``, ``OR`` and ``NOT``, compared case-insensitively with underscores
ignored.

    >>> matcher = TagMatcher(include=["gpioORi2c"], exclude=["slow"])
    >>> matcher.should_include(["gpio"])
    True
    >>> matcher.should_include(["gpio", "slow"])
    False
"""

from __future__ import annotations

from collections.abc import Sequence

from robot.model import TagPatterns


class TagMatcher:
    """Include/exclude filter over test case categories."""

    def __init__(
        self,
        include: Sequence[str] | None = None,
        exclude: Sequence[str] | None = None,
    ) -> None:
        self.include = list(include or ())
        self.exclude = list(exclude or ())
        self._included = TagPatterns(self.include)
        self._excluded = TagPatterns(self.exclude)

    @property
    def has_filters(self) -> bool:
        return bool(self.include) or bool(self.exclude)

    def should_include(self, categories: Sequence[str] | None) -> bool:
        """True if a test case with these categories passes the filter.

        Without include patterns every test case that is not excluded passes.
        """
        categories = list(categories or ())
        if self.exclude and self._excluded.match(categories):
            return False
        return not self.include or bool(self._included.match(categories))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(include={self.include!r}, exclude={self.exclude!r})"
