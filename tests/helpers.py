from datetime import datetime, timedelta, timezone

from interview_exam.models.question_model import Question, RoundMeta
from interview_exam.models.session_state import ExamSession


T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=timezone.utc)


class FakeNow:
    """Callable clock the tests move by hand."""

    def __init__(self, start: datetime = T0):
        self.value = start

    def __call__(self) -> datetime:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += timedelta(seconds=seconds)


def make_mcq(qid: str, correct: str = "B", options=("A", "B", "C"), points: int = 10) -> Question:
    return Question(
        id=qid,
        type="MCQ",
        question=f"Question {qid}?",
        options=list(options),
        correct_answer=correct,
        points=points,
    )


def make_session(questions, answers=None, round_type="MCQ", started_at=None) -> ExamSession:
    return ExamSession(
        round_id="r1",
        candidate_id="cand-1",
        round_meta=RoundMeta(round_id="r1", name="Round One", type=round_type, duration_minutes=30),
        selected_questions=list(questions),
        answers=answers or {},
        started_at=started_at,
    )


def failed_record(completed_at: datetime, candidate_id="cand-1", round_id="r1", passed=False) -> dict:
    return {
        "candidateId": candidate_id,
        "roundId": round_id,
        "roundName": "Round One",
        "startedAt": (completed_at - timedelta(minutes=20)).isoformat(),
        "completedAt": completed_at.isoformat(),
        "questions": [],
        "totalQuestions": 3,
        "correctAnswers": 3 if passed else 0,
        "percentage": 100.0 if passed else 0.0,
        "passed": passed,
    }


