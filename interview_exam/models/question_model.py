from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

import config


class QuestionType(str, Enum):
    MCQ = "MCQ"
    CODING = "Coding"
    PROJECT = "Project"
    SYSTEM_DESIGN = "System Design"
    MIXED = "Mixed"

    @classmethod
    def normalize(cls, value: Any) -> Any:
        """Map loose spellings ("mcq", "SystemDesign", "system design") onto members."""
        if isinstance(value, cls) or not isinstance(value, str):
            return value
        key = value.replace(" ", "").replace("_", "").lower()
        for member in cls:
            if member.value.replace(" ", "").lower() == key:
                return member
        return value


def _to_str_id(value: Any) -> Any:
    if isinstance(value, dict) and "$oid" in value:
        return value["$oid"]
    if isinstance(value, int):
        return str(value)
    return value


class Question(BaseModel):
    """
    A single question as served by the Question Bank.
    Read-only inside the engine.
    """

    model_config = {"frozen": True, "populate_by_name": True}

    id: str = Field(
        ...,
        validation_alias=AliasChoices("id", "_id"),
        description="Question identifier (unique within the bank)",
    )
    type: QuestionType = Field(..., description="Grading rule to apply")
    question: str = Field(..., min_length=1, description="Prompt text")
    options: Optional[List[str]] = Field(
        None,
        description="Ordered option texts (MCQ / Mixed only)",
    )
    correct_answer: Optional[Union[int, str]] = Field(
        None,
        validation_alias=AliasChoices("correct_answer", "correctAnswer"),
        description="Correct option text, or option index",
    )
    points: int = Field(default=config.DEFAULT_POINTS, ge=0)
    description: Optional[str] = None
    starter_code: Optional[str] = Field(
        None, validation_alias=AliasChoices("starter_code", "starterCode")
    )
    expected_output: Optional[str] = Field(
        None, validation_alias=AliasChoices("expected_output", "expectedOutput")
    )

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        return _to_str_id(v)

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v: Any) -> Any:
        return QuestionType.normalize(v)

    @field_validator("points", mode="before")
    @classmethod
    def default_points(cls, v: Any) -> Any:
        # The bank stores 0/None for "use the default"
        return v or config.DEFAULT_POINTS

    @model_validator(mode="after")
    def validate_mcq_answer(self) -> "Question":
        """
        An MCQ must offer at least two options, and a correct answer, when
        present, must point into the option list.
        """
        if self.type != QuestionType.MCQ:
            return self
        if not self.options or len(self.options) < 2:
            raise ValueError("MCQ questions need at least two options.")
        answer = self.correct_answer
        if isinstance(answer, int) and not 0 <= answer < len(self.options):
            raise ValueError(f"Correct answer index {answer} is out of range.")
        if isinstance(answer, str) and answer and answer not in self.options:
            raise ValueError(f"Correct answer '{answer}' is not one of {self.options}.")
        return self

    def public_dict(self) -> dict:
        """Question payload safe to hand to a candidate (no correct answer)."""
        return self.model_dump(mode="json", exclude={"correct_answer", "expected_output"})


class RoundMeta(BaseModel):
    """Round metadata delivered alongside the question pool."""

    model_config = {"populate_by_name": True}

    round_id: str
    name: str = Field(default="Exam", validation_alias=AliasChoices("name", "roundname"))
    type: QuestionType = QuestionType.MCQ
    duration_minutes: int = Field(
        default=config.DEFAULT_DURATION_MINUTES,
        gt=0,
        validation_alias=AliasChoices("duration_minutes", "duration"),
    )
    questions_count: Optional[int] = Field(
        None,
        ge=0,
        validation_alias=AliasChoices("questions_count", "questionsCount"),
        description="Target number of questions; None means the whole bank",
    )
    domain_id: Optional[str] = Field(None, validation_alias=AliasChoices("domain_id", "domainId"))
    domain_name: Optional[str] = Field(None, validation_alias=AliasChoices("domain_name", "domainName"))

    @field_validator("round_id", "domain_id", mode="before")
    @classmethod
    def coerce_ids(cls, v: Any) -> Any:
        return _to_str_id(v)

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v: Any) -> Any:
        return QuestionType.normalize(v)

    @field_validator("duration_minutes", mode="before")
    @classmethod
    def default_duration(cls, v: Any) -> Any:
        return v or config.DEFAULT_DURATION_MINUTES

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60


class RoundBank(BaseModel):
    """Question Bank response: round metadata plus the full question pool."""

    meta: RoundMeta
    questions: List[Question] = Field(default_factory=list)
