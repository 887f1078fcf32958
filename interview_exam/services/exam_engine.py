"""
services/exam_engine.py

Session state machine for one candidate and one round.

    Blocked ─┐
             │ (cooldown over)
    open() ──┴─> NotStarted ──start()──> InProgress ──submit()/timeout──> Submitting ──> Completed

Persistence:
  - every answer is written to the session store before the call returns
  - the countdown is written on every tick (cache only, start_time is authoritative)
  - stored fields are cleared only after the Result Store acknowledged the attempt
  - a scored but unsaved attempt is marked completed and reopens as Completed

Every public coroutine returns an ActionResult; failures never escape the engine.
"""

import functools
import logging
import random
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from pydantic import ValidationError

import config
from interview_exam.errors import (
    BankUnavailableError,
    CooldownActiveError,
    ExamError,
    InvalidTransitionError,
    ResultStoreError,
    ResumeInconsistencyError,
    SessionStoreError,
)
from interview_exam.models.question_model import QuestionType, RoundMeta
from interview_exam.models.result_model import ActionResult, Eligibility, ExamResult
from interview_exam.models.session_state import ExamSession, ExamStatus, ProjectAnswer, utcnow
from interview_exam.services import session_store as fields
from interview_exam.services.clock import SessionClock
from interview_exam.services.cooldown import CooldownGate, format_cooldown
from interview_exam.services.exam_service import build_attempt_record, calculate_result
from interview_exam.services.question_bank import QuestionBank
from interview_exam.services.result_store import ProgressTracker, ResultStore
from interview_exam.services.sampler import sample_questions
from interview_exam.services.session_store import SessionStore

logger = logging.getLogger(__name__)

RESUME_INCONSISTENT = "Your saved exam no longer matches this round. Please contact support."
SAVE_FAILED = "Save Failed. There was an error saving your performance."
SAVE_OK = "Performance Saved. Your round performance has been successfully recorded."
PROGRESS_FAILED = "Update Failed. There was an error updating your progress."
UNEXPECTED = "Something went wrong. Please contact support."

# Persisted countdown drifting further than this from start_time is logged
_RESUME_DRIFT_SECONDS = 5


def _guarded(method):
    """Turn ExamError (and anything unexpected) into a failed ActionResult."""

    @functools.wraps(method)
    async def wrapper(self: "ExamEngine", *args, **kwargs) -> ActionResult:
        try:
            return await method(self, *args, **kwargs)
        except ExamError as e:
            return ActionResult(ok=False, status=self.status, message=str(e))
        except Exception:
            logger.exception(f"{method.__name__} failed for round {self.round_id}")
            return ActionResult(ok=False, status=self.status, message=UNEXPECTED)

    return wrapper


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if not isinstance(value, str) or not value:
        return None
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


class ExamEngine:
    """
    Orchestrates one exam attempt.

    Collaborators are injected so the engine runs the same against the HTTP
    backends and the in-memory fakes used by the demo server and tests.
    """

    def __init__(
        self,
        candidate_id: str,
        round_id: str,
        question_bank: QuestionBank,
        result_store: ResultStore,
        session_store: SessionStore,
        progress_tracker: Optional[ProgressTracker] = None,
        gate: Optional[CooldownGate] = None,
        now: Callable[[], datetime] = utcnow,
        rng: Optional[random.Random] = None,
        tick_interval: float = config.TICK_INTERVAL_SECONDS,
    ):
        self.candidate_id = candidate_id
        self.round_id = round_id
        self.question_bank = question_bank
        self.result_store = result_store
        self.session_store = session_store
        self.progress_tracker = progress_tracker
        self.gate = gate or CooldownGate(result_store, now=now)
        self._now = now
        self._rng = rng

        self.clock = SessionClock(self.tick, tick_interval)
        self.session: Optional[ExamSession] = None
        self.status = ExamStatus.NOT_STARTED
        self.eligibility: Optional[Eligibility] = None
        self.result: Optional[ExamResult] = None
        self.saved = False
        self.resumed = False
        self.message = ""
        self.progress_error = ""
        self._opened = False
        self._submit_latch = False
        self._pending_record: Optional[Dict[str, Any]] = None

    # ── Persistence helpers ──────────────────────────────────────────────────

    def _persist(self, field: str, value: Any) -> bool:
        """Best-effort write: one retry, then log and carry on in memory."""
        for attempt in (1, 2):
            try:
                self.session_store.set(self.candidate_id, self.round_id, field, value)
                return True
            except SessionStoreError as e:
                if attempt == 2:
                    logger.warning(f"Could not persist '{field}' for round {self.round_id}: {e}")
        return False

    def _load_persisted(self) -> Dict[str, Any]:
        try:
            return self.session_store.load(self.candidate_id, self.round_id)
        except SessionStoreError as e:
            logger.warning(f"Saved session unreadable for round {self.round_id}, starting fresh: {e}")
            return {}

    def _clear_persisted(self) -> None:
        try:
            self.session_store.clear(self.candidate_id, self.round_id)
        except SessionStoreError as e:
            logger.warning(f"Could not clear saved session for round {self.round_id}: {e}")

    def _require(self, *allowed: ExamStatus) -> ExamSession:
        if self.status == ExamStatus.BLOCKED and self.eligibility is not None:
            raise CooldownActiveError(self.eligibility.message, self.eligibility.retry_at)
        if not self._opened or self.session is None:
            raise InvalidTransitionError("Exam session is not open.")
        if self.status not in allowed:
            raise InvalidTransitionError(f"Not allowed while the exam is {self.status.value}.")
        return self.session

    # ── Entry points ─────────────────────────────────────────────────────────

    @_guarded
    async def open(self) -> ActionResult:
        """
        Gate check, bank load, then either a fresh sample or a resume.

        Calling open() again on an opened engine just reports the state.
        """
        if self._opened:
            return ActionResult(ok=True, status=self.status, message=self.message)

        persisted = self._load_persisted()
        scored = persisted.get(fields.COMPLETED) is True

        # A scored attempt still waiting for its save is reopened as Completed, not re-gated
        if not scored:
            self.eligibility = await self.gate.check_eligibility(self.candidate_id, self.round_id)
        if not scored and not self.eligibility.eligible:
            self.status = ExamStatus.BLOCKED
            self.message = self.eligibility.message
            return ActionResult(
                ok=False,
                status=self.status,
                message=self.message,
                data={"retry_at": self.eligibility.retry_at.isoformat()},
            )

        try:
            bank = await self.question_bank.fetch_round(self.round_id)
            self.session = self._build_session(bank.meta, bank.questions, persisted)
            if scored:
                self._restore_scored(persisted)
        except (BankUnavailableError, ResumeInconsistencyError) as e:
            self.status = ExamStatus.ERROR
            self.message = str(e)
            logger.error(f"Cannot open round {self.round_id} for {self.candidate_id}: {e}")
            return ActionResult(ok=False, status=self.status, message=self.message)

        self._opened = True
        self.status = self.session.status
        if scored:
            return ActionResult(ok=True, status=self.status, message=self.message)

        if self.status == ExamStatus.IN_PROGRESS:
            self.resumed = True
            self.message = "Exam resumed from where you left off!"
            logger.info(
                f"Resumed round {self.round_id} for {self.candidate_id} "
                f"with {self.session.remaining_seconds}s left"
            )
            if self.session.remaining_seconds == 0:
                return await self.submit()
            self.clock.start()
        return ActionResult(ok=True, status=self.status, message=self.message)

    def _build_session(self, meta: RoundMeta, bank_questions, persisted: Dict[str, Any]) -> ExamSession:
        saved_ids = persisted.get(fields.QUESTION_IDS)
        if saved_ids:
            by_id = {q.id: q for q in bank_questions}
            missing = [qid for qid in saved_ids if qid not in by_id]
            if missing:
                logger.error(f"Saved questions {missing} are gone from round {self.round_id}")
                raise ResumeInconsistencyError(RESUME_INCONSISTENT)
            selected = [by_id[qid] for qid in saved_ids]
        else:
            selected = sample_questions(bank_questions, meta.questions_count, self._rng)
            self._persist(fields.QUESTION_IDS, [q.id for q in selected])

        answers = persisted.get(fields.ANSWERS)
        session = ExamSession(
            round_id=self.round_id,
            candidate_id=self.candidate_id,
            round_meta=meta,
            selected_questions=selected,
            answers=answers if isinstance(answers, dict) else {},
            remaining_seconds=meta.duration_seconds,
        )

        started_at = _parse_timestamp(persisted.get(fields.START_TIME))
        if persisted.get(fields.STARTED) is True:
            if started_at is None:
                logger.warning(f"Round {self.round_id} marked started without a start time, showing start screen")
            else:
                session.started_at = started_at
                session.remaining_seconds = session.compute_remaining(self._now())
                session.status = ExamStatus.IN_PROGRESS
                cached = persisted.get(fields.TIME)
                if isinstance(cached, int) and abs(cached - session.remaining_seconds) > _RESUME_DRIFT_SECONDS:
                    logger.info(
                        f"Stored countdown {cached}s replaced by {session.remaining_seconds}s "
                        f"recomputed from start time"
                    )
        return session

    def _restore_scored(self, persisted: Dict[str, Any]) -> None:
        """Rebuild a Completed, unsaved attempt; retry_save() is all it accepts."""
        record = persisted.get(fields.PENDING_RECORD)
        try:
            result = ExamResult.model_validate(record)
        except ValidationError as e:
            logger.error(f"Pending result for round {self.round_id} is unreadable: {e.errors()[:1]}")
            raise ResumeInconsistencyError(RESUME_INCONSISTENT) from e

        self.session.status = ExamStatus.COMPLETED
        self.result = result
        self._pending_record = record
        self._submit_latch = True
        self.saved = False
        self.resumed = True
        self.message = SAVE_FAILED
        logger.info(f"Round {self.round_id} for {self.candidate_id} was scored but not saved, awaiting retry")

    @_guarded
    async def start(self) -> ActionResult:
        session = self._require(ExamStatus.NOT_STARTED)
        session.started_at = self._now()
        session.remaining_seconds = session.duration_seconds
        session.status = self.status = ExamStatus.IN_PROGRESS

        self._persist(fields.START_TIME, session.started_at.isoformat())
        self._persist(fields.TIME, session.remaining_seconds)
        self._persist(fields.STARTED, True)

        self.clock.start()
        self.message = "Exam Started"
        logger.info(f"Round {self.round_id} started by {self.candidate_id}")
        return ActionResult(ok=True, status=self.status, message=self.message)

    @_guarded
    async def answer(self, question_id: str, value: Any) -> ActionResult:
        """Upsert (or, with None, remove) an answer and persist it immediately."""
        session = self._require(ExamStatus.IN_PROGRESS)
        question = session.get_question(question_id)
        if question is None:
            raise InvalidTransitionError(f"Question {question_id} is not part of this exam.")

        if value is None:
            session.answers.pop(question_id, None)
        elif question.type == QuestionType.PROJECT:
            if isinstance(value, ProjectAnswer):
                session.answers[question_id] = value.model_dump()
            elif isinstance(value, dict):
                session.answers[question_id] = ProjectAnswer.model_validate(value).model_dump()
            else:
                raise InvalidTransitionError("Project answers need repo_url and live_url.")
        else:
            session.answers[question_id] = value

        persisted = self._persist(fields.ANSWERS, session.answers)
        return ActionResult(
            ok=True,
            status=self.status,
            data={"answered_count": len(session.answers), "persisted": persisted},
        )

    @_guarded
    async def flag(self, question_id: str) -> ActionResult:
        session = self._require(ExamStatus.IN_PROGRESS)
        if session.get_question(question_id) is None:
            raise InvalidTransitionError(f"Question {question_id} is not part of this exam.")
        if question_id in session.flagged:
            session.flagged.discard(question_id)
        else:
            session.flagged.add(question_id)
        return ActionResult(
            ok=True,
            status=self.status,
            data={"flagged": question_id in session.flagged},
        )

    async def tick(self) -> bool:
        """
        One clock step. Returns False once the clock should stop.

        Reaching zero submits automatically; the submission latch makes a
        duplicate zero-crossing harmless.
        """
        if self.status != ExamStatus.IN_PROGRESS or self.session is None:
            return False
        session = self.session
        session.remaining_seconds = max(0, session.remaining_seconds - 1)
        self._persist(fields.TIME, session.remaining_seconds)
        if session.remaining_seconds == 0:
            logger.info(f"Time is up for round {self.round_id}, submitting")
            await self.submit()
            return False
        return True

    @_guarded
    async def submit(self) -> ActionResult:
        """
        Score locally, then send the attempt to the Result Store.

        Only the first caller gets past the latch; later calls (timer expiry
        racing a manual click) are no-ops.
        """
        if self._submit_latch:
            return ActionResult(ok=False, status=self.status, message="Exam already submitted.")
        session = self._require(ExamStatus.IN_PROGRESS)
        self._submit_latch = True

        self.clock.stop()
        session.status = self.status = ExamStatus.SUBMITTING
        self.result = calculate_result(session, self._now())
        self._pending_record = build_attempt_record(self.result, session.round_meta)
        self._persist(fields.PENDING_RECORD, self._pending_record)
        self._persist(fields.COMPLETED, True)
        logger.info(
            f"Round {self.round_id} scored {self.result.total_score}/{self.result.max_score} "
            f"({self.result.percentage}%) for {self.candidate_id}"
        )

        await self._save()
        session.status = self.status = ExamStatus.COMPLETED
        return ActionResult(ok=self.saved, status=self.status, message=self.message)

    @_guarded
    async def retry_save(self) -> ActionResult:
        """Re-send a locally scored attempt whose first write failed."""
        self._require(ExamStatus.COMPLETED)
        if self.saved or self._pending_record is None:
            return ActionResult(ok=True, status=self.status, message="Result already saved.")
        await self._save()
        return ActionResult(ok=self.saved, status=self.status, message=self.message)

    async def _save(self) -> None:
        try:
            result_id = await self.result_store.save_result(self._pending_record)
        except ResultStoreError as e:
            logger.error(f"Result for round {self.round_id} not saved, keeping local session: {e}")
            self.saved = False
            self.message = SAVE_FAILED
            return

        self.saved = True
        self._pending_record = None
        self.message = SAVE_OK
        self._clear_persisted()
        self.result = self.result.model_copy(update={"result_id": result_id})

        try:
            stored = await self.result_store.get_result(result_id, self.candidate_id)
        except ResultStoreError as e:
            logger.warning(f"Read-back of result {result_id} failed, showing provisional score: {e}")
            stored = None
        if stored is not None:
            self.result = stored

        meta = self.session.round_meta
        if self.result.passed and meta.type != QuestionType.PROJECT and self.progress_tracker:
            try:
                await self.progress_tracker.advance(self.candidate_id, meta)
            except ResultStoreError as e:
                logger.error(f"Progress update failed after storing {result_id}: {e}")
                self.progress_error = PROGRESS_FAILED

    # ── Views ────────────────────────────────────────────────────────────────

    def snapshot(self) -> Dict[str, Any]:
        """JSON-ready view of the engine for the API layer (no correct answers before completion)."""
        data: Dict[str, Any] = {
            "round_id": self.round_id,
            "status": self.status.value,
            "message": self.message,
            "resumed": self.resumed,
            "saved": self.saved,
            "progress_error": self.progress_error,
        }
        if self.eligibility is not None and not self.eligibility.eligible:
            data["cooldown"] = {
                "retry_at": self.eligibility.retry_at.isoformat(),
                "message": self.eligibility.message,
                "time_left": format_cooldown(self.eligibility.retry_at, self._now()),
            }
        if self.session is not None:
            session = self.session
            data.update({
                "round": session.round_meta.model_dump(mode="json"),
                "questions": [q.public_dict() for q in session.selected_questions],
                "answers": session.answers,
                "flagged": sorted(session.flagged),
                "started_at": session.started_at.isoformat() if session.started_at else None,
                "remaining_seconds": session.remaining_seconds,
                "answered_count": len(session.answers),
                "total": len(session.selected_questions),
            })
        if self.result is not None and self.status == ExamStatus.COMPLETED:
            data["result"] = self.result.model_dump(mode="json")
        return data
