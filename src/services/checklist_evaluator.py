"""Derivation of the secondary verification requirement from checklist answers."""

from collections.abc import Iterable
from typing import Protocol

from src.core.config import Constants


class _Answer(Protocol):
    step: int
    answer: bool


def requires_secondary_verification(answers: Iterable[_Answer]) -> bool:
    """Return True iff any answer for a step in {2, 3, 4} is negative.

    Every row is considered, so duplicate steps cannot hide a negative answer.
    An empty answer set never requires verification.
    """
    return any(
        item.step in Constants.SECONDARY_VERIFICATION_STEPS and not item.answer
        for item in answers
    )
