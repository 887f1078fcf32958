import random

import pytest

from interview_exam.models.question_model import Question, RoundBank, RoundMeta
from interview_exam.services.exam_engine import ExamEngine
from interview_exam.services.question_bank import InMemoryQuestionBank
from interview_exam.services.result_store import InMemoryProgressTracker, InMemoryResultStore
from interview_exam.services.session_store import InMemorySessionStore
from tests.helpers import FakeNow, make_mcq


@pytest.fixture
def now():
    return FakeNow()


@pytest.fixture
def mcq_bank():
    return RoundBank(
        meta=RoundMeta(round_id="r1", name="Round One", type="MCQ", duration_minutes=30, questions_count=3),
        questions=[make_mcq(f"q{i}") for i in range(1, 6)],
    )


@pytest.fixture
def project_bank():
    return RoundBank(
        meta=RoundMeta(round_id="p1", name="Project", type="Project", duration_minutes=60, questions_count=1),
        questions=[Question(id="proj-1", type="Project", question="Ship something.")],
    )


@pytest.fixture
def question_bank(mcq_bank, project_bank):
    return InMemoryQuestionBank({"r1": mcq_bank, "p1": project_bank})


@pytest.fixture
def result_store():
    return InMemoryResultStore(freezing_days=1)


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def progress_tracker():
    return InMemoryProgressTracker()


@pytest.fixture
async def make_engine(question_bank, result_store, session_store, progress_tracker, now):
    engines = []

    def factory(**overrides) -> ExamEngine:
        kwargs = dict(
            candidate_id="cand-1",
            round_id="r1",
            question_bank=question_bank,
            result_store=result_store,
            session_store=session_store,
            progress_tracker=progress_tracker,
            now=now,
            rng=random.Random(7),
            tick_interval=3600,
        )
        kwargs.update(overrides)
        engine = ExamEngine(**kwargs)
        engines.append(engine)
        return engine

    yield factory
    for engine in engines:
        engine.clock.stop()
