"""
services/question_bank.py

Question Bank clients.
Public API:
  - QuestionBank.fetch_round(round_id) -> RoundBank   : round metadata + full question pool

An empty pool is an error (BankUnavailableError), never an empty exam.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List

import httpx
from pydantic import ValidationError

from interview_exam.errors import BankUnavailableError
from interview_exam.models.question_model import Question, RoundBank, RoundMeta
from interview_exam.services.http_base import HttpBackend

logger = logging.getLogger(__name__)

NO_QUESTIONS = "No questions found for this round."
FETCH_FAILED = "Failed to fetch questions for this round."


class QuestionBank(ABC):

    @abstractmethod
    async def fetch_round(self, round_id: str) -> RoundBank:
        """
        Raises:
            BankUnavailableError: no questions, or the bank could not be reached.
        """


def _parse_questions(raw_items: Iterable[dict]) -> List[Question]:
    """Validate bank items, skipping (and logging) malformed ones."""
    questions: List[Question] = []
    for item in raw_items:
        try:
            questions.append(Question.model_validate(item))
        except ValidationError as e:
            label = (item.get("_id") or item.get("id")) if isinstance(item, dict) else repr(item)[:40]
            logger.warning(f"Skipping invalid question {label}: {e.errors()[:1]}")
    return questions


class InMemoryQuestionBank(QuestionBank):
    """Bank backed by a dict of RoundBank objects (demo server, tests)."""

    def __init__(self, banks: Dict[str, RoundBank] = None):
        self._banks: Dict[str, RoundBank] = dict(banks or {})

    def add_round(self, bank: RoundBank) -> None:
        self._banks[bank.meta.round_id] = bank

    async def fetch_round(self, round_id: str) -> RoundBank:
        bank = self._banks.get(round_id)
        if bank is None or not bank.questions:
            raise BankUnavailableError(NO_QUESTIONS)
        return bank.model_copy(deep=True)


class HttpQuestionBank(HttpBackend, QuestionBank):
    """
    Client for `GET /api/questions?roundname=<round_id>`.

    The response is {"questions": [...]} where every question embeds its
    populated round document under "roundname"; the first one supplies the
    round metadata.
    """

    async def fetch_round(self, round_id: str) -> RoundBank:
        try:
            data = await self._request("GET", "/api/questions", params={"roundname": round_id})
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Question bank request failed for round {round_id}: {e}")
            raise BankUnavailableError(FETCH_FAILED) from e

        raw_items = (data.get("questions") or []) if isinstance(data, dict) else []
        questions = _parse_questions(raw_items)
        if not questions:
            raise BankUnavailableError(NO_QUESTIONS)

        first = next((item for item in raw_items if isinstance(item, dict)), {})
        round_info = first.get("roundname")
        if not isinstance(round_info, dict):
            round_info = {}
        try:
            meta = RoundMeta.model_validate({
                **round_info,
                "round_id": round_id,
                "type": round_info.get("type") or questions[0].type,
            })
        except ValidationError as e:
            logger.error(f"Invalid round metadata for {round_id}: {e}")
            raise BankUnavailableError(FETCH_FAILED) from e

        logger.info(f"Loaded {len(questions)} questions for round {round_id}")
        return RoundBank(meta=meta, questions=questions)
