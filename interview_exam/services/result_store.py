"""
services/result_store.py

Result Store and progress-tracker clients.

Result Store:
  - latest_result(candidate_id, round_id) -> ExamResult | None
  - get_result(result_id)                 -> ExamResult | None   (read-back, may carry refined evaluation)
  - save_result(record)                   -> result id
  - freezing_period_days()                -> float

Progress tracker:
  - advance(candidate_id, meta)           : "round N complete", only called after a stored pass
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

import config
from interview_exam.errors import ResultStoreError
from interview_exam.models.question_model import RoundMeta
from interview_exam.models.result_model import ExamResult
from interview_exam.services.http_base import HttpBackend

logger = logging.getLogger(__name__)


def _parse_result(raw: Any) -> Optional[ExamResult]:
    if not isinstance(raw, dict):
        return None
    try:
        result = ExamResult.model_validate(raw)
    except ValidationError as e:
        raise ResultStoreError(f"Malformed result record: {e.errors()[:1]}") from e
    return result.model_copy(update={"provisional": False})


def _sort_key(result: ExamResult) -> datetime:
    ts = result.completed_at or datetime.min.replace(tzinfo=timezone.utc)
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class ResultStore(ABC):

    @abstractmethod
    async def latest_result(self, candidate_id: str, round_id: str) -> Optional[ExamResult]:
        ...

    @abstractmethod
    async def get_result(self, result_id: str, candidate_id: Optional[str] = None) -> Optional[ExamResult]:
        ...

    @abstractmethod
    async def save_result(self, record: Dict[str, Any]) -> str:
        """
        Persist an attempt record (see exam_service.build_attempt_record).

        Raises:
            ResultStoreError: the record was not stored.
        """

    @abstractmethod
    async def freezing_period_days(self) -> float:
        ...


class InMemoryResultStore(ResultStore):
    """Result Store kept in process memory (demo server, tests)."""

    def __init__(self, freezing_days: float = config.FREEZING_PERIOD_DAYS):
        self.freezing_days = freezing_days
        self._results: Dict[str, ExamResult] = {}

    async def latest_result(self, candidate_id: str, round_id: str) -> Optional[ExamResult]:
        attempts = [
            r for r in self._results.values()
            if r.candidate_id == candidate_id and r.round_id == round_id
        ]
        if not attempts:
            return None
        return max(attempts, key=_sort_key)

    async def get_result(self, result_id: str, candidate_id: Optional[str] = None) -> Optional[ExamResult]:
        result = self._results.get(result_id)
        if result is None or (candidate_id is not None and result.candidate_id != candidate_id):
            return None
        return result

    async def save_result(self, record: Dict[str, Any]) -> str:
        result_id = uuid.uuid4().hex
        result = _parse_result({**record, "result_id": result_id})
        if result is None:
            raise ResultStoreError("Empty result record.")
        self._results[result_id] = result
        logger.info(f"Stored result {result_id} for round {result.round_id} (passed={result.passed})")
        return result_id

    async def freezing_period_days(self) -> float:
        return self.freezing_days

    def all_results(self) -> List[ExamResult]:
        return list(self._results.values())


class HttpResultStore(HttpBackend, ResultStore):
    """
    Client for the candidate performance API:
      GET  /api/candidate/performance?roundId=...   newest attempt (or cooldown descriptor)
      GET  /api/candidate/performance?id=...        attempt by id
      POST /api/candidate/performance               store attempt -> {"success": true, "id": ...}
      GET  /api/candidate/performance/freezing-period -> {"days": n}
    """

    async def _get_json(self, path: str, **kwargs) -> Any:
        try:
            return await self._request("GET", path, **kwargs)
        except (httpx.HTTPError, ValueError) as e:
            raise ResultStoreError(f"Result store request failed: {e}") from e

    async def latest_result(self, candidate_id: str, round_id: str) -> Optional[ExamResult]:
        data = await self._get_json(
            "/api/candidate/performance",
            params={"roundId": round_id},
            headers={"X-Candidate-Id": candidate_id},
        )
        # Both the plain answer and the cooldown descriptor embed the attempt under "round"
        return _parse_result(data.get("round")) if isinstance(data, dict) else None

    async def get_result(self, result_id: str, candidate_id: Optional[str] = None) -> Optional[ExamResult]:
        headers = {"X-Candidate-Id": candidate_id} if candidate_id else {}
        data = await self._get_json("/api/candidate/performance", params={"id": result_id}, headers=headers)
        if not isinstance(data, dict) or not data.get("success"):
            return None
        return _parse_result(data.get("round"))

    async def save_result(self, record: Dict[str, Any]) -> str:
        headers = {"X-Candidate-Id": record["candidateId"]} if record.get("candidateId") else {}
        try:
            data = await self._request("POST", "/api/candidate/performance", json=record, headers=headers)
        except (httpx.HTTPError, ValueError) as e:
            raise ResultStoreError(f"Saving the result failed: {e}") from e
        if not isinstance(data, dict) or not data.get("id"):
            raise ResultStoreError(f"Result store did not acknowledge the attempt: {data}")
        return str(data["id"])

    async def freezing_period_days(self) -> float:
        data = await self._get_json("/api/candidate/performance/freezing-period")
        try:
            return float(data["days"])
        except (KeyError, TypeError, ValueError) as e:
            raise ResultStoreError(f"Invalid freezing period payload: {data}") from e


# ── Progress tracking ────────────────────────────────────────────────────────

class ProgressTracker(ABC):

    @abstractmethod
    async def advance(self, candidate_id: str, meta: RoundMeta) -> None:
        """
        Mark `meta` as cleared for the candidate.

        Raises:
            ResultStoreError: the progress update was not recorded.
        """


class InMemoryProgressTracker(ProgressTracker):

    def __init__(self):
        self.progress: Dict[str, Dict[str, Any]] = {}

    async def advance(self, candidate_id: str, meta: RoundMeta) -> None:
        entry = self.progress.setdefault(candidate_id, {"currentround": 0, "cleared_rounds": []})
        if meta.round_id in entry["cleared_rounds"]:
            return
        entry["cleared_rounds"].append(meta.round_id)
        entry["currentround"] += 1
        entry["currentroundname"] = f"Round {entry['currentround']} completed"
        logger.info(f"Candidate {candidate_id} cleared round {meta.round_id}")


class HttpProgressTracker(HttpBackend, ProgressTracker):
    """
    Reads the candidate profile to find the current round index of the active
    work domain, then posts index + 1 to /api/candidate/progress.
    """

    async def advance(self, candidate_id: str, meta: RoundMeta) -> None:
        headers = {"X-Candidate-Id": candidate_id}
        try:
            profile = await self._request("GET", "/api/candidate/getdetail", headers=headers)
            candidate = (profile or {}).get("candidate") or {}
            domain_id = str((candidate.get("workDomain") or {}).get("id") or "")
            current = 0
            for p in candidate.get("progress") or []:
                if str(p.get("domainId") or "") == domain_id:
                    current = int(p.get("currentround") or 0)
                    break
            new_index = current + 1
            await self._request(
                "POST",
                "/api/candidate/progress",
                json={"currentround": new_index, "currentroundname": f"Round {new_index} completed"},
                headers=headers,
            )
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            raise ResultStoreError(f"Progress update failed: {e}") from e
