"""
services/sampler.py

Question sampling for a new session.
The bank is shuffled with Fisher-Yates and cut to the round's target size.
"""

import random
from typing import List, Optional, Sequence, TypeVar

from interview_exam.models.question_model import Question

T = TypeVar("T")


def fisher_yates_shuffle(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """
    Return a uniformly shuffled copy of `items`.

    Args:
        items: Sequence to shuffle. Left untouched.
        rng:   Random source (seeded in tests). Defaults to the module RNG.
    """
    randint = (rng or random).randint
    shuffled = list(items)
    for i in range(len(shuffled) - 1, 0, -1):
        j = randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def sample_questions(
    bank: Sequence[Question],
    target_count: Optional[int],
    rng: Optional[random.Random] = None,
) -> List[Question]:
    """
    Pick the questions presented in one session.

    If the bank holds more than `target_count` questions the first
    `target_count` of a full shuffle are returned; otherwise the whole bank
    comes back shuffled. A falsy `target_count` means "use the whole bank".

    Returns:
        A new list of distinct questions drawn from `bank`.
    """
    shuffled = fisher_yates_shuffle(bank, rng)
    if target_count and len(shuffled) > target_count:
        return shuffled[:target_count]
    return shuffled
