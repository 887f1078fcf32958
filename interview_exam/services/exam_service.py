"""
services/exam_service.py

Scoring and result analysis.
Pure functions: no I/O, no engine state changes.

Rules per question type:
  - MCQ / Mixed with options : full points iff the chosen option text equals the correct answer
  - Coding                   : provisional keyword heuristic, refined later by the Result Store
  - System Design            : provisional 0 until evaluated by the Result Store
  - Project                  : not auto-scored, links are recorded only
"""

import json
import math
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import config
from interview_exam.models.question_model import Question, QuestionType, RoundMeta
from interview_exam.models.result_model import ExamResult, QuestionResult
from interview_exam.models.session_state import ExamSession, ProjectAnswer, utcnow

# Heuristic weights in tenths so the arithmetic stays exact
_FUNCTION_MARKERS = ("function", "=>", "def ")
_CONTROL_MARKERS = ("if", "for", "while")
_RETURN_MARKERS = ("return",)
_FUNCTION_WEIGHT = 3
_CONTROL_WEIGHT = 4
_RETURN_WEIGHT = 3


def _selected_index(answer: Any) -> Optional[int]:
    if isinstance(answer, bool):
        return None
    if isinstance(answer, int):
        return answer
    if isinstance(answer, str) and answer.strip().isdigit():
        return int(answer.strip())
    return None


def score_mcq(question: Question, answer: Any) -> Tuple[bool, float]:
    """
    Grade an option selection.

    Args:
        question: Question with `options` and `correct_answer`.
        answer:   Selected option index (None when unanswered).

    Returns:
        (is_correct, points). Unanswered or out-of-range selections are wrong.
    """
    options = question.options or []
    index = _selected_index(answer)
    if index is None or not 0 <= index < len(options):
        return False, 0

    expected = question.correct_answer
    if isinstance(expected, int) and not isinstance(expected, bool):
        if not 0 <= expected < len(options):
            return False, 0
        expected = options[expected]
    if expected is None or expected == "":
        return False, 0

    is_correct = options[index] == expected
    return is_correct, (question.points if is_correct else 0)


def score_coding(question: Question, answer: Any) -> Tuple[bool, float]:
    """
    Provisional score for a code answer.

    Answers of `MIN_CODE_LENGTH` characters or fewer score 0. Otherwise the
    presence of a function definition (0.3), a control-flow keyword (0.4) and
    a return statement (0.3) is summed, multiplied by the point value and
    floored. The answer counts as correct when it earns more than half.
    """
    if not isinstance(answer, str) or len(answer.strip()) <= config.MIN_CODE_LENGTH:
        return False, 0

    weight = 0
    if any(m in answer for m in _FUNCTION_MARKERS):
        weight += _FUNCTION_WEIGHT
    if any(m in answer for m in _CONTROL_MARKERS):
        weight += _CONTROL_WEIGHT
    if any(m in answer for m in _RETURN_MARKERS):
        weight += _RETURN_WEIGHT

    points = math.floor(question.points * weight / 10)
    return points * 2 > question.points, points


def _project_payload(answer: Any) -> Dict[str, str]:
    if isinstance(answer, ProjectAnswer):
        return answer.model_dump()
    if isinstance(answer, dict):
        return ProjectAnswer.model_validate(answer).model_dump()
    return ProjectAnswer().model_dump()


def score_question(question: Question, answer: Any) -> QuestionResult:
    """Grade one question according to its type."""
    is_correct: Optional[bool] = False
    points: float = 0
    candidate_answer = answer

    if question.type == QuestionType.MCQ or (question.type == QuestionType.MIXED and question.options):
        is_correct, points = score_mcq(question, answer)
    elif question.type == QuestionType.CODING:
        is_correct, points = score_coding(question, answer)
    elif question.type == QuestionType.PROJECT:
        is_correct = None
        candidate_answer = _project_payload(answer)
    # System Design and free-text Mixed wait for the server-side evaluation

    return QuestionResult(
        question_id=question.id,
        question=question.question,
        type=question.type,
        options=question.options,
        candidate_answer=candidate_answer,
        correct_answer=question.correct_answer,
        is_correct=is_correct,
        points_earned=points,
        max_points=question.points,
    )


def is_passed(percentage: float, pass_score: float = config.PASS_PERCENTAGE) -> bool:
    """
    Pass verdict.

    Args:
        percentage: calculate_result() percentage (0.0 ~ 100.0).
        pass_score: Threshold, 60.0 by default.
    """
    return percentage >= pass_score


def calculate_result(session: ExamSession, completed_at: Optional[datetime] = None) -> ExamResult:
    """
    Score every selected question of `session` and aggregate.

    Project questions carry no verdict and are left out of `max_score`.
    A Project round is always recorded as passed, so it never starts a
    cooldown; it still does not advance progress (see ExamEngine).

    Returns:
        A provisional ExamResult. `percentage` is rounded to two decimals.
    """
    completed_at = completed_at or utcnow()
    rows = [score_question(q, session.answers.get(q.id)) for q in session.selected_questions]

    graded = [r for r in rows if r.is_correct is not None]
    total_score = sum(r.points_earned for r in rows)
    max_score = sum(r.max_points for r in graded)
    percentage = total_score / max_score * 100 if max_score > 0 else 0.0

    if session.round_meta.type == QuestionType.PROJECT:
        passed = True
    else:
        passed = is_passed(percentage)

    duration = None
    if session.started_at is not None:
        duration = max(0, round((completed_at - session.started_at).total_seconds()))

    return ExamResult(
        candidate_id=session.candidate_id,
        round_id=session.round_id,
        round_name=session.round_meta.name,
        round_type=session.round_meta.type,
        total_score=total_score,
        max_score=max_score,
        percentage=round(percentage, 2),
        correct_answers=sum(1 for r in rows if r.is_correct),
        total_questions=len(rows),
        passed=passed,
        questions=rows,
        started_at=session.started_at,
        completed_at=completed_at,
        duration_seconds=duration,
        provisional=True,
    )


def calculate_type_scores(result: ExamResult) -> List[Dict[str, object]]:
    """
    Per question-type breakdown of a result.

    Returns:
        [{"type": str, "total": int, "correct": int, "incorrect": int,
          "unscored": int, "score": float}, ...] sorted by type name.
    """
    buckets: Dict[str, Dict[str, int]] = defaultdict(
        lambda: {"total": 0, "correct": 0, "incorrect": 0, "unscored": 0}
    )
    for row in result.questions:
        b = buckets[row.type.value]
        b["total"] += 1
        if row.is_correct is None:
            b["unscored"] += 1
        elif row.is_correct:
            b["correct"] += 1
        else:
            b["incorrect"] += 1

    out = []
    for type_name in sorted(buckets):
        b = buckets[type_name]
        scorable = b["correct"] + b["incorrect"]
        score = round(b["correct"] / scorable * 100, 1) if scorable else 0.0
        out.append({"type": type_name, **b, "score": score})
    return out


def build_attempt_record(result: ExamResult, meta: RoundMeta) -> Dict[str, Any]:
    """
    Result Store write payload for `result`.

    Project links travel as a JSON string {"githubUrl", "liveSite"};
    coding and system design rows carry an empty `codeEvaluation` slot for the
    server to fill in.
    """
    questions = []
    for row in result.questions:
        candidate_answer = row.candidate_answer
        if row.type == QuestionType.PROJECT:
            payload = candidate_answer or {}
            candidate_answer = json.dumps({
                "githubUrl": payload.get("repo_url", ""),
                "liveSite": payload.get("live_url", ""),
            })
        item: Dict[str, Any] = {
            "questionId": row.question_id,
            "question": row.question,
            "candidateAnswer": candidate_answer,
            "correctAnswer": row.correct_answer,
            "isCorrect": row.is_correct,
            "type": row.type.value,
            "score": row.points_earned,
            "maxScore": row.max_points,
        }
        if row.type in (QuestionType.MCQ, QuestionType.MIXED) and row.options:
            item["options"] = row.options
        if row.type in (QuestionType.CODING, QuestionType.SYSTEM_DESIGN):
            item["codeEvaluation"] = ""
        questions.append(item)

    return {
        "candidateId": result.candidate_id,
        "domainId": meta.domain_id,
        "domainName": meta.domain_name,
        "roundId": result.round_id,
        "roundName": result.round_name,
        "roundType": result.round_type.value,
        "startedAt": result.started_at.isoformat() if result.started_at else None,
        "completedAt": result.completed_at.isoformat() if result.completed_at else None,
        "durationSeconds": result.duration_seconds,
        "questions": questions,
        "totalQuestions": result.total_questions,
        "correctAnswers": result.correct_answers,
        "totalScore": result.total_score,
        "maxScore": result.max_score,
        "percentage": result.percentage,
        "passed": result.passed,
    }
