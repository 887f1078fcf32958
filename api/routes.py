"""
api/routes.py — FastAPI endpoints
"""

from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

import api.session as session
from interview_exam.errors import ResultStoreError
from interview_exam.models.result_model import ActionResult
from interview_exam.models.session_state import ExamStatus
from interview_exam.services.cooldown import format_cooldown
from interview_exam.services.exam_engine import ExamEngine
from interview_exam.services.exam_service import calculate_type_scores

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class AnswerBody(BaseModel):
    question_id: str
    answer: Optional[Any] = None


class FlagBody(BaseModel):
    question_id: str


# ── Helpers ──────────────────────────────────────────────────────────────────

def _ids(request: Request) -> tuple[str, str]:
    return request.state.session_id, request.state.candidate_id


def _new_engine(request: Request, round_id: str) -> ExamEngine:
    b = request.app.state.backends
    return ExamEngine(
        candidate_id=request.state.candidate_id,
        round_id=round_id,
        question_bank=b.question_bank,
        result_store=b.result_store,
        session_store=b.session_store,
        progress_tracker=b.progress_tracker,
        gate=b.gate,
        tick_interval=b.tick_interval,
    )


def _engine_or_404(request: Request, round_id: str) -> ExamEngine:
    sid, _ = _ids(request)
    engine = session.get_engine(sid, round_id)
    if engine is None:
        raise HTTPException(status_code=404, detail="No exam session for this round. Open it first.")
    return engine


def _reply(engine: ExamEngine, outcome: ActionResult) -> dict:
    if not outcome.ok:
        if engine.status == ExamStatus.BLOCKED:
            raise HTTPException(status_code=423, detail=outcome.message)
        raise HTTPException(status_code=400, detail=outcome.message)
    return {"ok": True, **engine.snapshot(), **(outcome.data or {})}


def _reusable(engine: Optional[ExamEngine]) -> bool:
    if engine is None:
        return False
    if engine.status in (ExamStatus.NOT_STARTED, ExamStatus.IN_PROGRESS, ExamStatus.SUBMITTING):
        return True
    # Keep a completed-but-unsaved attempt around for retry-save
    return engine.status == ExamStatus.COMPLETED and not engine.saved


# ── Endpoints ────────────────────────────────────────────────────────────────

@router.get("/api/freezing-period")
async def freezing_period(request: Request):
    gate = request.app.state.backends.gate
    period = await gate.freezing_period()
    return {"days": period.total_seconds() / 86400}


@router.get("/api/rounds/{round_id}/eligibility")
async def eligibility(round_id: str, request: Request):
    _, candidate_id = _ids(request)
    verdict = await request.app.state.backends.gate.check_eligibility(candidate_id, round_id)
    body = verdict.model_dump(mode="json")
    if verdict.retry_at is not None:
        body["time_left"] = format_cooldown(verdict.retry_at)
    return body


@router.post("/api/exam/{round_id}/open")
async def open_exam(round_id: str, request: Request):
    sid, _ = _ids(request)
    engine = session.get_engine(sid, round_id)
    if not _reusable(engine):
        engine = _new_engine(request, round_id)
        session.put_engine(sid, round_id, engine)

    outcome = await engine.open()
    if not outcome.ok and engine.status == ExamStatus.BLOCKED:
        raise HTTPException(status_code=423, detail=engine.snapshot()["cooldown"])
    if not outcome.ok and engine.status == ExamStatus.ERROR:
        session.drop_engine(sid, round_id)
        raise HTTPException(status_code=404, detail=outcome.message)
    # A resumed session that had already run out of time is submitted during open
    return {"ok": True, **engine.snapshot()}


@router.post("/api/exam/{round_id}/start")
async def start_exam(round_id: str, request: Request):
    engine = _engine_or_404(request, round_id)
    return _reply(engine, await engine.start())


@router.post("/api/exam/{round_id}/answer")
async def save_answer(round_id: str, body: AnswerBody, request: Request):
    engine = _engine_or_404(request, round_id)
    return _reply(engine, await engine.answer(body.question_id, body.answer))


@router.post("/api/exam/{round_id}/flag")
async def flag_question(round_id: str, body: FlagBody, request: Request):
    engine = _engine_or_404(request, round_id)
    return _reply(engine, await engine.flag(body.question_id))


@router.post("/api/exam/{round_id}/submit")
async def submit_exam(round_id: str, request: Request):
    engine = _engine_or_404(request, round_id)
    outcome = await engine.submit()
    if engine.status == ExamStatus.COMPLETED and engine.result is not None:
        # Scored locally even when the Result Store write failed
        return {"ok": outcome.ok, **engine.snapshot()}
    return _reply(engine, outcome)


@router.post("/api/exam/{round_id}/retry-save")
async def retry_save(round_id: str, request: Request):
    engine = _engine_or_404(request, round_id)
    outcome = await engine.retry_save()
    if not outcome.ok and engine.status == ExamStatus.COMPLETED:
        raise HTTPException(status_code=502, detail=outcome.message)
    return _reply(engine, outcome)


@router.get("/api/exam/{round_id}/state")
async def exam_state(round_id: str, request: Request):
    engine = _engine_or_404(request, round_id)
    return engine.snapshot()


@router.get("/api/results/{result_id}")
async def get_result(result_id: str, request: Request):
    _, candidate_id = _ids(request)
    try:
        result = await request.app.state.backends.result_store.get_result(result_id, candidate_id)
    except ResultStoreError as e:
        raise HTTPException(status_code=502, detail=str(e))
    if result is None:
        raise HTTPException(status_code=404, detail="No result found.")
    return {**result.model_dump(mode="json"), "type_scores": calculate_type_scores(result)}
