"""
api/app.py — FastAPI app instance + session middleware + backend wiring + static files
"""

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

import config
from api.routes import router
from api.sample_questions import SAMPLE_ROUNDS
import api.session as session
from interview_exam.services.cooldown import CooldownGate
from interview_exam.services.question_bank import HttpQuestionBank, InMemoryQuestionBank, QuestionBank
from interview_exam.services.result_store import (
    HttpProgressTracker,
    HttpResultStore,
    InMemoryProgressTracker,
    InMemoryResultStore,
    ProgressTracker,
    ResultStore,
)
from interview_exam.services.session_store import JsonFileSessionStore, SessionStore

SESSION_COOKIE = "exam_session"

logger = logging.getLogger(__name__)


@dataclass
class Backends:
    question_bank: QuestionBank
    result_store: ResultStore
    session_store: SessionStore
    progress_tracker: ProgressTracker
    gate: CooldownGate
    tick_interval: float = config.TICK_INTERVAL_SECONDS


def default_backends() -> Backends:
    """HTTP clients when service URLs are configured, bundled in-memory ones otherwise."""
    if config.QUESTION_BANK_URL:
        question_bank = HttpQuestionBank(config.QUESTION_BANK_URL)
    else:
        question_bank = InMemoryQuestionBank({b.meta.round_id: b for b in SAMPLE_ROUNDS})

    if config.RESULT_STORE_URL:
        result_store = HttpResultStore(config.RESULT_STORE_URL)
        progress_tracker = HttpProgressTracker(config.RESULT_STORE_URL)
    else:
        result_store = InMemoryResultStore()
        progress_tracker = InMemoryProgressTracker()

    return Backends(
        question_bank=question_bank,
        result_store=result_store,
        session_store=JsonFileSessionStore(config.SESSION_DIR),
        progress_tracker=progress_tracker,
        gate=CooldownGate(result_store),
    )


def create_app(backends: Optional[Backends] = None, cleanup: bool = True) -> FastAPI:
    app = FastAPI(title="Interview Exam Engine", docs_url=None, redoc_url=None)
    app.state.backends = backends or default_backends()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Session middleware: read the session id from the cookie, issue one if missing
    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        sid = request.cookies.get(SESSION_COOKIE)
        if not sid or session.get_session(sid) is None:
            sid = session.create_session()

        request.state.session_id = sid
        # Authentication is handled upstream; it forwards the candidate id as a header
        request.state.candidate_id = request.headers.get("X-Candidate-Id") or sid
        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            httponly=True,
            samesite="lax",
            max_age=config.SESSION_TTL,
        )
        return response

    app.include_router(router)

    if os.path.isdir(config.STATIC_DIR):
        app.mount("/static", StaticFiles(directory=config.STATIC_DIR), name="static")

    @app.get("/")
    async def serve_index():
        index_path = os.path.join(config.STATIC_DIR, "index.html")
        if os.path.exists(index_path):
            return FileResponse(index_path)
        return {"error": "index.html not found"}

    # Periodically drop expired sessions (every 5 minutes)
    def _cleanup_loop():
        while True:
            time.sleep(300)
            removed = session.cleanup_expired()
            if removed:
                logger.info(f"Removed {removed} expired session(s)")

    if cleanup:
        t = threading.Thread(target=_cleanup_loop, daemon=True)
        t.start()

    return app
