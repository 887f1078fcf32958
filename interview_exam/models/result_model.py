"""
models/result_model.py

Scored attempt, cooldown verdict and engine action outcome models.
"""

from datetime import datetime
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

from interview_exam.models.question_model import QuestionType
from interview_exam.models.session_state import ExamStatus


class QuestionResult(BaseModel):
    """Per-question row of a scored attempt."""

    model_config = {"populate_by_name": True}

    question_id: str = Field(..., validation_alias=AliasChoices("question_id", "questionId"))
    question: str = ""
    type: QuestionType
    options: Optional[List[str]] = None
    candidate_answer: Any = Field(
        None, validation_alias=AliasChoices("candidate_answer", "candidateAnswer")
    )
    correct_answer: Any = Field(
        None, validation_alias=AliasChoices("correct_answer", "correctAnswer")
    )
    is_correct: Optional[bool] = Field(
        None,
        validation_alias=AliasChoices("is_correct", "isCorrect"),
        description="None for questions that are not auto-scored (Project)",
    )
    points_earned: float = Field(0, validation_alias=AliasChoices("points_earned", "score"))
    max_points: float = Field(0, validation_alias=AliasChoices("max_points", "maxScore"))
    code_evaluation: Optional[str] = Field(
        None, validation_alias=AliasChoices("code_evaluation", "codeEvaluation")
    )

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v: Any) -> Any:
        return QuestionType.normalize(v)


class ExamResult(BaseModel):
    """
    Outcome of one attempt.

    `provisional` is True for the locally computed result; a result read back
    from the Result Store may carry a refined evaluation and is not provisional.
    """

    model_config = {"populate_by_name": True}

    result_id: Optional[str] = Field(None, validation_alias=AliasChoices("result_id", "_id", "id"))
    candidate_id: Optional[str] = Field(None, validation_alias=AliasChoices("candidate_id", "candidateId"))
    round_id: str = Field(..., validation_alias=AliasChoices("round_id", "roundId"))
    round_name: str = Field("", validation_alias=AliasChoices("round_name", "roundName"))
    round_type: QuestionType = Field(
        QuestionType.MCQ, validation_alias=AliasChoices("round_type", "roundType")
    )
    total_score: float = Field(0, validation_alias=AliasChoices("total_score", "totalScore"))
    max_score: float = Field(0, validation_alias=AliasChoices("max_score", "maxScore"))
    percentage: float = 0.0
    correct_answers: int = Field(0, validation_alias=AliasChoices("correct_answers", "correctAnswers"))
    total_questions: int = Field(0, validation_alias=AliasChoices("total_questions", "totalQuestions"))
    passed: bool = False
    questions: List[QuestionResult] = Field(default_factory=list)
    started_at: Optional[datetime] = Field(None, validation_alias=AliasChoices("started_at", "startedAt"))
    completed_at: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("completed_at", "completedAt")
    )
    duration_seconds: Optional[int] = Field(
        None, validation_alias=AliasChoices("duration_seconds", "durationSeconds")
    )
    provisional: bool = True

    @field_validator("result_id", "candidate_id", "round_id", mode="before")
    @classmethod
    def coerce_ids(cls, v: Any) -> Any:
        if isinstance(v, dict) and "$oid" in v:
            return v["$oid"]
        if isinstance(v, int):
            return str(v)
        return v

    @field_validator("round_type", mode="before")
    @classmethod
    def coerce_type(cls, v: Any) -> Any:
        return QuestionType.normalize(v)


class Eligibility(BaseModel):
    """Cooldown Gate verdict."""

    eligible: bool
    retry_at: Optional[datetime] = None
    message: str = ""

    @classmethod
    def allowed(cls) -> "Eligibility":
        return cls(eligible=True)

    @classmethod
    def blocked(cls, retry_at: datetime) -> "Eligibility":
        return cls(
            eligible=False,
            retry_at=retry_at,
            message=f"You can retake this round after {retry_at.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}.",
        )


class ActionResult(BaseModel):
    """What every engine entry point returns instead of raising."""

    ok: bool
    status: ExamStatus
    message: str = ""
    data: Optional[dict] = None
