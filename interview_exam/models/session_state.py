"""
models/session_state.py

Runtime state of one candidate's attempt at one round.
Pydantic BaseModel based, so it can be dumped for the API layer and
rebuilt from the persistent session store.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import AliasChoices, BaseModel, Field

from interview_exam.models.question_model import Question, RoundMeta


class ExamStatus(str, Enum):
    BLOCKED = "blocked"
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    COMPLETED = "completed"
    ERROR = "error"


class ProjectAnswer(BaseModel):
    """Links submitted for a Project question."""

    model_config = {"populate_by_name": True}

    repo_url: str = Field(default="", validation_alias=AliasChoices("repo_url", "githubUrl", "repoUrl"))
    live_url: str = Field(default="", validation_alias=AliasChoices("live_url", "liveSite", "liveUrl"))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExamSession(BaseModel):
    """
    One candidate's session for one round.

    Attributes:
        round_id:           Round being taken.
        candidate_id:       Owner of the session.
        round_meta:         Name, type, duration and target question count.
        selected_questions: Sampled question sequence. Fixed for the session.
        answers:            {question.id: option index | code text | ProjectAnswer dict}
        flagged:            Question ids marked for review (not scored).
        started_at:         Set once, when the candidate confirms start.
        remaining_seconds:  Countdown cache, never increases while in progress.
        status:             Lifecycle state.
    """

    round_id: str
    candidate_id: str
    round_meta: RoundMeta
    selected_questions: List[Question] = Field(default_factory=list)
    answers: Dict[str, Any] = Field(default_factory=dict)
    flagged: Set[str] = Field(default_factory=set)
    started_at: Optional[datetime] = None
    remaining_seconds: int = Field(default=0, ge=0)
    status: ExamStatus = ExamStatus.NOT_STARTED

    @property
    def duration_seconds(self) -> int:
        return self.round_meta.duration_seconds

    @property
    def question_ids(self) -> List[str]:
        return [q.id for q in self.selected_questions]

    def get_question(self, question_id: str) -> Optional[Question]:
        for q in self.selected_questions:
            if q.id == question_id:
                return q
        return None

    def elapsed_seconds(self, now: Optional[datetime] = None) -> int:
        if self.started_at is None:
            return 0
        now = now or utcnow()
        return max(0, int((now - self.started_at).total_seconds()))

    def compute_remaining(self, now: Optional[datetime] = None) -> int:
        """max(0, duration - elapsed), the authoritative countdown value."""
        if self.started_at is None:
            return self.duration_seconds
        remaining = self.duration_seconds - self.elapsed_seconds(now)
        return max(0, min(self.duration_seconds, remaining))
