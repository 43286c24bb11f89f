"""
Department classification for student interactions.

Pure, deterministic mapping from interaction content to a departmental agent
id. KeywordDepartmentClassifier is the default; any DepartmentClassifier
subclass can be handed to the orchestrator instead.
"""

import json
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Pattern, Tuple


def interaction_text(content: Any) -> str:
    """Extract the text to classify from a string or an interaction dict."""
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, dict):
        for key in ("content", "message", "text"):
            value = content.get(key)
            if isinstance(value, str):
                return value
    return json.dumps(content, default=str)


class DepartmentClassifier(ABC):
    """Maps content to a department id, or None when nothing applies."""

    @abstractmethod
    def score(self, content: Any) -> Dict[str, float]:
        """Per-department confidence in [0, 1]; departments scoring 0 may be omitted."""

    def determine_department(self, content: Any) -> Optional[str]:
        scores = self.score(content)
        best: Optional[str] = None
        best_score = 0.0
        # Ties go to the first department in insertion order
        for department, value in scores.items():
            if value > best_score:
                best, best_score = department, value
        return best


# Ordered: the first matching row wins
DEFAULT_KEYWORD_TABLE: List[Tuple[str, Tuple[str, ...]]] = [
    ("math", ("math", "calculat")),
    ("science", ("science", "experiment")),
    ("arts", ("art", "creativ", "paint", "draw", "music")),
    ("athletics", ("exercis", "fitness")),
    ("counseling", ("sad", "worr")),
]


class KeywordDepartmentClassifier(DepartmentClassifier):
    """First-match-wins keyword table.

    Keywords are matched as word prefixes, case-insensitively, so "calculate"
    and "calculation" both hit ``calculat`` while "heart" does not hit ``art``.
    """

    def __init__(self, table: Optional[List[Tuple[str, Tuple[str, ...]]]] = None):
        self.table = list(table if table is not None else DEFAULT_KEYWORD_TABLE)
        self._patterns: List[Tuple[str, Pattern[str]]] = [
            (department, re.compile(r"\b(?:" + "|".join(re.escape(k) for k in keywords) + ")",
                                    re.IGNORECASE))
            for department, keywords in self.table
        ]

    def score(self, content: Any) -> Dict[str, float]:
        department = self.determine_department(content)
        return {department: 1.0} if department else {}

    def determine_department(self, content: Any) -> Optional[str]:
        text = interaction_text(content)
        for department, pattern in self._patterns:
            if pattern.search(text):
                return department
        return None


_default_classifier = KeywordDepartmentClassifier()


def determine_department(content: Any) -> Optional[str]:
    return _default_classifier.determine_department(content)
