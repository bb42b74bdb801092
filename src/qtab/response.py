"""
Participant responses and answer-key normalization.

The response export names each answer after the question that produced it,
but two survey features mangle those names:

    Loop and merge:   _2_QID5        →  QID5   (iteration prefix dropped)
                      _2_QID5-1      →  QID5
    Dynamic choices:  QID7_x3_TEXT   →  QID7_3_TEXT

Timer fields inside a loop (_2_QID9_PAGE_SUBMIT, ...) are kept per
iteration. Merging them would make one iteration's timing overwrite
another's.

Normalized keys are what the Question model looks up when rendering.
"""
import re
from datetime import datetime
from types import MappingProxyType
from typing import Dict, Mapping, Optional

from qtab.errors import AnswerConflictError


_LOOP_KEY_RE = re.compile(r"^_\d+_(QID\d+.*?)(?:-\d+)?$")
_DYNAMIC_KEY_RE = re.compile(r"^(QID\d+_)x(\d+)(_TEXT)?$")
_TIMER_RE = re.compile(r"_(CLICK|SUBMIT|COUNT)$")


def normalize_answer_key(key: str) -> str:
    """
    Map a raw answer key onto the key the Question model expects.

    Rules, in order:
        1. _<loop>_<stem>[-<n>] → <stem>; a timer stem keeps the whole key
        2. <QIDn_>x<N>[_TEXT]   → <QIDn_><N>[_TEXT]
        3. anything else is returned unchanged

    Rule 2 also applies to a stem produced by rule 1, so normalizing an
    already-normalized key always returns it unchanged.
    """
    m = _LOOP_KEY_RE.match(key)
    if m:
        stem = m.group(1)
        if _TIMER_RE.search(stem):
            return key
        key = stem

    m = _DYNAMIC_KEY_RE.match(key)
    if m:
        return m.group(1) + m.group(2) + (m.group(3) or "")

    return key


class Response:
    """
    One participant's response.

    Properties:
        id: Record ID (e.g. "R_1dtWhiBDD96nfyk")
        progress: Percent complete, 0-100
        duration: Seconds spent
        finished: True if the participant reached the end
        recorded_on: Timestamp the platform recorded, or None

    Answers are only added through add_answer(), which normalizes the key
    and refuses to overwrite one non-empty value with another.
    """

    def __init__(
        self,
        id: str = "",
        progress: int = 0,
        duration: int = 0,
        finished: bool = False,
        recorded_on: Optional[datetime] = None,
    ):
        self.id = id
        self.progress = progress
        self.duration = duration
        self.finished = finished
        self.recorded_on = recorded_on
        self._answers: Dict[str, str] = {}

    def __repr__(self) -> str:
        return (
            f"Response(id={self.id!r}, progress={self.progress}, "
            f"finished={self.finished}, answers={len(self._answers)})"
        )

    @property
    def answers(self) -> Mapping[str, str]:
        """Read-only view of normalized key → raw value."""
        return MappingProxyType(self._answers)

    def add_answer(self, key: str, value: Optional[str]) -> str:
        """
        Store an answer under its normalized key.

        Args:
            key: Raw answer key as found in the export
            value: Raw answer text (None is treated as empty)

        Returns:
            The normalized key

        Raises:
            AnswerConflictError: If the normalized key already holds a
                non-empty value and value is non-empty too
        """
        value = value or ""
        norm = normalize_answer_key(key)
        existing = self._answers.get(norm, "")

        if existing and value:
            raise AnswerConflictError(norm, existing, value, response_id=self.id)
        if existing:
            return norm

        self._answers[norm] = value
        return norm

    def get(self, key: str) -> str:
        """Answer for a normalized key, or "" if there is none."""
        return self._answers.get(key, "")

    def has_answer(self, key: str) -> bool:
        return bool(self._answers.get(key))


__all__ = ["Response", "normalize_answer_key"]
