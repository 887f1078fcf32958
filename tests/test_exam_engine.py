import asyncio
import random
from datetime import timedelta

import pytest

from interview_exam.errors import CooldownActiveError, ResultStoreError, SessionStoreError
from interview_exam.models.session_state import ExamStatus
from interview_exam.services import exam_engine
from interview_exam.services import session_store as fields
from interview_exam.services.question_bank import NO_QUESTIONS
from interview_exam.services.result_store import InMemoryProgressTracker, InMemoryResultStore
from interview_exam.services.session_store import InMemorySessionStore
from tests.helpers import T0, failed_record


class CountingResultStore(InMemoryResultStore):
    """Counts writes and can be switched into a failing state."""

    def __init__(self, fail=False):
        super().__init__(freezing_days=1)
        self.fail = fail
        self.save_calls = 0

    async def save_result(self, record):
        self.save_calls += 1
        await asyncio.sleep(0)
        if self.fail:
            raise ResultStoreError("503 Service Unavailable")
        return await super().save_result(record)


class BrokenSessionStore(InMemorySessionStore):
    def set(self, candidate_id, round_id, field, value):
        raise SessionStoreError("disk full")


class BrokenProgressTracker(InMemoryProgressTracker):
    async def advance(self, candidate_id, meta):
        raise ResultStoreError("progress service down")


async def answer_all(engine, correct=True):
    for q in engine.session.selected_questions:
        index = q.options.index(q.correct_answer)
        await engine.answer(q.id, index if correct else (index + 1) % len(q.options))


# ── open / start ─────────────────────────────────────────────────────────────

async def test_open_samples_and_persists_question_order(make_engine, session_store):
    engine = make_engine()
    outcome = await engine.open()

    assert outcome.ok
    assert engine.status == ExamStatus.NOT_STARTED
    assert len(engine.session.selected_questions) == 3
    assert engine.session.remaining_seconds == 30 * 60
    assert session_store.get("cand-1", "r1", fields.QUESTION_IDS) == engine.session.question_ids
    assert not engine.clock.running


async def test_open_twice_reports_same_state(make_engine):
    engine = make_engine()
    await engine.open()
    order = engine.session.question_ids
    again = await engine.open()
    assert again.ok
    assert engine.session.question_ids == order


async def test_start_stamps_time_and_persists(make_engine, session_store, now):
    engine = make_engine()
    await engine.open()
    outcome = await engine.start()

    assert outcome.ok
    assert engine.status == ExamStatus.IN_PROGRESS
    assert engine.session.started_at == now()
    assert engine.clock.running
    stored = session_store.load("cand-1", "r1")
    assert stored[fields.STARTED] is True
    assert stored[fields.START_TIME] == now().isoformat()
    assert stored[fields.TIME] == 1800


async def test_start_only_once(make_engine, now):
    engine = make_engine()
    await engine.open()
    await engine.start()
    first_start = engine.session.started_at
    now.advance(30)

    outcome = await engine.start()
    assert not outcome.ok
    assert engine.session.started_at == first_start


async def test_actions_before_open_or_start_are_refused(make_engine):
    engine = make_engine()
    assert not (await engine.start()).ok
    await engine.open()
    qid = engine.session.question_ids[0]

    outcome = await engine.answer(qid, 1)
    assert not outcome.ok
    assert outcome.status == ExamStatus.NOT_STARTED
    assert not (await engine.flag(qid)).ok
    assert not (await engine.submit()).ok


# ── answer / flag ────────────────────────────────────────────────────────────

async def test_answer_is_persisted_immediately(make_engine, session_store):
    engine = make_engine()
    await engine.open()
    await engine.start()
    qid = engine.session.question_ids[0]

    outcome = await engine.answer(qid, 2)
    assert outcome.ok
    assert outcome.data == {"answered_count": 1, "persisted": True}
    assert session_store.get("cand-1", "r1", fields.ANSWERS) == {qid: 2}

    await engine.answer(qid, 1)
    assert session_store.get("cand-1", "r1", fields.ANSWERS) == {qid: 1}

    await engine.answer(qid, None)
    assert session_store.get("cand-1", "r1", fields.ANSWERS) == {}


async def test_answer_for_unknown_question_is_refused(make_engine):
    engine = make_engine()
    await engine.open()
    await engine.start()
    outcome = await engine.answer("not-in-exam", 1)
    assert not outcome.ok
    assert "not part of this exam" in outcome.message


async def test_flag_toggles(make_engine):
    engine = make_engine()
    await engine.open()
    await engine.start()
    qid = engine.session.question_ids[1]

    assert (await engine.flag(qid)).data == {"flagged": True}
    assert qid in engine.session.flagged
    assert (await engine.flag(qid)).data == {"flagged": False}
    assert engine.session.flagged == set()


async def test_persistence_failure_is_not_fatal(make_engine):
    engine = make_engine(session_store=BrokenSessionStore())
    assert (await engine.open()).ok
    assert (await engine.start()).ok
    qid = engine.session.question_ids[0]

    outcome = await engine.answer(qid, 1)
    assert outcome.ok
    assert outcome.data["persisted"] is False
    assert engine.session.answers == {qid: 1}


# ── resume ───────────────────────────────────────────────────────────────────

async def test_resume_restores_questions_answers_and_time(make_engine, now):
    first = make_engine()
    await first.open()
    await first.start()
    ids = first.session.question_ids
    await first.answer(ids[0], 1)
    await first.answer(ids[2], 0)
    first.clock.stop()

    now.advance(125)
    second = make_engine(rng=random.Random(12345))
    outcome = await second.open()

    assert outcome.ok
    assert second.status == ExamStatus.IN_PROGRESS
    assert second.resumed is True
    assert second.session.question_ids == ids
    assert second.session.answers == {ids[0]: 1, ids[2]: 0}
    assert second.session.started_at == first.session.started_at
    assert second.session.remaining_seconds == 1800 - 125
    assert second.clock.running


async def test_resume_recomputes_instead_of_trusting_cached_countdown(make_engine, session_store, now):
    first = make_engine()
    await first.open()
    await first.start()
    first.clock.stop()
    # Stale cache from a tab that was closed long ago
    session_store.set("cand-1", "r1", fields.TIME, 1790)

    now.advance(600)
    second = make_engine()
    await second.open()
    assert second.session.remaining_seconds == 1200


async def test_resume_never_exceeds_duration(make_engine, now):
    first = make_engine()
    await first.open()
    await first.start()
    first.clock.stop()

    now.advance(-300)  # wall clock moved backwards
    second = make_engine()
    await second.open()
    assert second.session.remaining_seconds == 1800


async def test_resume_after_time_ran_out_submits(make_engine, session_store, result_store, now):
    first = make_engine()
    await first.open()
    await first.start()
    await answer_all(first)
    first.clock.stop()

    now.advance(31 * 60)
    second = make_engine()
    await second.open()

    assert second.status == ExamStatus.COMPLETED
    assert second.session.remaining_seconds == 0
    assert second.saved
    assert second.result.passed
    assert session_store.load("cand-1", "r1") == {}
    assert len(result_store.all_results()) == 1


async def test_resume_before_start_keeps_sampled_order(make_engine):
    first = make_engine()
    await first.open()
    ids = first.session.question_ids

    second = make_engine(rng=random.Random(999))
    await second.open()
    assert second.status == ExamStatus.NOT_STARTED
    assert second.session.question_ids == ids


async def test_resume_inconsistency_is_reported(make_engine, session_store):
    session_store.set("cand-1", "r1", fields.QUESTION_IDS, ["q1", "deleted-question"])
    engine = make_engine()
    outcome = await engine.open()

    assert not outcome.ok
    assert engine.status == ExamStatus.ERROR
    assert outcome.message == exam_engine.RESUME_INCONSISTENT


# ── gate / bank errors ───────────────────────────────────────────────────────

async def test_bank_without_questions_is_an_error(make_engine):
    engine = make_engine(round_id="missing")
    outcome = await engine.open()
    assert not outcome.ok
    assert engine.status == ExamStatus.ERROR
    assert outcome.message == NO_QUESTIONS
    assert engine.session is None


async def test_cooldown_blocks_every_entry_point(make_engine, result_store, now):
    await result_store.save_result(failed_record(now() - timedelta(hours=2)))
    engine = make_engine()
    outcome = await engine.open()

    assert not outcome.ok
    assert engine.status == ExamStatus.BLOCKED
    assert outcome.data["retry_at"] == (now() + timedelta(hours=22)).isoformat()
    for action in (engine.start(), engine.answer("q1", 1), engine.flag("q1"), engine.submit()):
        result = await action
        assert not result.ok
        assert "retake" in result.message
    assert engine.snapshot()["cooldown"]["time_left"] == "22h 0m 0s"

    with pytest.raises(CooldownActiveError) as exc:
        engine._require(ExamStatus.IN_PROGRESS)
    assert exc.value.retry_at == now() + timedelta(hours=22)


async def test_cooldown_over_allows_new_attempt(make_engine, result_store, now):
    await result_store.save_result(failed_record(now() - timedelta(days=1)))
    engine = make_engine()
    assert (await engine.open()).ok
    assert engine.status == ExamStatus.NOT_STARTED


# ── clock ────────────────────────────────────────────────────────────────────

async def test_ticks_count_down_and_auto_submit_once(make_engine, session_store):
    store = CountingResultStore()
    engine = make_engine(result_store=store)
    await engine.open()
    await engine.start()
    engine.session.remaining_seconds = 3

    seen = []
    keep_going = True
    while keep_going:
        keep_going = await engine.tick()
        seen.append(engine.session.remaining_seconds)
        if keep_going:
            assert session_store.get("cand-1", "r1", fields.TIME) == engine.session.remaining_seconds

    assert seen == [2, 1, 0]
    assert engine.status == ExamStatus.COMPLETED
    assert store.save_calls == 1
    assert not engine.clock.running

    # A late duplicate zero-crossing changes nothing
    assert await engine.tick() is False
    assert engine.session.remaining_seconds == 0
    assert store.save_calls == 1


async def test_real_clock_drives_countdown(make_engine):
    engine = make_engine(tick_interval=0.01)
    await engine.open()
    await engine.start()
    engine.session.remaining_seconds = 3
    await asyncio.sleep(0.3)

    assert engine.status == ExamStatus.COMPLETED
    assert engine.session.remaining_seconds == 0
    assert not engine.clock.running


async def test_clock_stops_on_manual_submit(make_engine):
    engine = make_engine()
    await engine.open()
    await engine.start()
    assert engine.clock.running
    await engine.submit()
    assert not engine.clock.running
    assert await engine.tick() is False


# ── submit ───────────────────────────────────────────────────────────────────

async def test_concurrent_submits_score_and_write_once(make_engine, monkeypatch):
    store = CountingResultStore()
    engine = make_engine(result_store=store)
    await engine.open()
    await engine.start()

    scored = []
    original = exam_engine.calculate_result

    def counting_calculate(*args, **kwargs):
        scored.append(1)
        return original(*args, **kwargs)

    monkeypatch.setattr(exam_engine, "calculate_result", counting_calculate)
    engine.session.remaining_seconds = 1

    outcomes = await asyncio.gather(engine.tick(), engine.submit())

    assert len(scored) == 1
    assert store.save_calls == 1
    assert outcomes[1].ok is False
    assert outcomes[1].message == "Exam already submitted."
    assert engine.status == ExamStatus.COMPLETED


async def test_submit_twice_is_noop(make_engine, result_store):
    engine = make_engine()
    await engine.open()
    await engine.start()
    first = await engine.submit()
    second = await engine.submit()

    assert first.ok
    assert not second.ok
    assert len(result_store.all_results()) == 1


async def test_pass_advances_progress_and_clears_store(make_engine, session_store, progress_tracker):
    engine = make_engine()
    await engine.open()
    await engine.start()
    await answer_all(engine)
    outcome = await engine.submit()

    assert outcome.ok
    assert outcome.message == exam_engine.SAVE_OK
    assert engine.result.passed
    assert engine.result.percentage == 100.0
    assert engine.result.result_id
    assert engine.result.provisional is False
    assert session_store.load("cand-1", "r1") == {}
    assert progress_tracker.progress["cand-1"]["cleared_rounds"] == ["r1"]
    assert progress_tracker.progress["cand-1"]["currentroundname"] == "Round 1 completed"


async def test_fail_does_not_advance_progress(make_engine, progress_tracker):
    engine = make_engine()
    await engine.open()
    await engine.start()
    await answer_all(engine, correct=False)
    await engine.submit()

    assert engine.result.passed is False
    assert engine.saved
    assert progress_tracker.progress == {}


async def test_project_round_never_advances_progress(make_engine, progress_tracker):
    engine = make_engine(round_id="p1")
    await engine.open()
    await engine.start()
    await engine.answer("proj-1", {"githubUrl": "https://github.com/c/app", "liveSite": "https://app.dev"})
    await engine.submit()

    assert engine.result.passed is True
    assert engine.result.questions[0].is_correct is None
    assert progress_tracker.progress == {}


async def test_project_answer_requires_links(make_engine):
    engine = make_engine(round_id="p1")
    await engine.open()
    await engine.start()
    outcome = await engine.answer("proj-1", "just text")
    assert not outcome.ok


async def test_save_failure_keeps_session_for_retry(make_engine, session_store):
    store = CountingResultStore(fail=True)
    engine = make_engine(result_store=store)
    await engine.open()
    await engine.start()
    await answer_all(engine)
    outcome = await engine.submit()

    assert not outcome.ok
    assert outcome.message == exam_engine.SAVE_FAILED
    assert engine.status == ExamStatus.COMPLETED
    assert engine.result.percentage == 100.0
    assert engine.result.provisional is True
    assert not engine.saved
    assert session_store.get("cand-1", "r1", fields.ANSWERS)

    store.fail = False
    retried = await engine.retry_save()
    assert retried.ok
    assert engine.saved
    assert store.save_calls == 2
    assert session_store.load("cand-1", "r1") == {}

    again = await engine.retry_save()
    assert again.ok
    assert store.save_calls == 2


async def test_unsaved_attempt_reopens_completed(make_engine, session_store):
    store = CountingResultStore(fail=True)
    engine = make_engine(result_store=store)
    await engine.open()
    await engine.start()
    await answer_all(engine)
    await engine.submit()
    assert session_store.get("cand-1", "r1", fields.COMPLETED) is True
    assert session_store.get("cand-1", "r1", fields.PENDING_RECORD)["percentage"] == 100.0

    # Process restart or expired cookie: a fresh engine over the same store
    reloaded = make_engine(result_store=store)
    outcome = await reloaded.open()

    assert outcome.ok
    assert reloaded.status == ExamStatus.COMPLETED
    assert reloaded.resumed
    assert not reloaded.saved
    assert reloaded.message == exam_engine.SAVE_FAILED
    assert reloaded.result.percentage == 100.0
    assert not reloaded.clock.running
    assert not (await reloaded.answer(reloaded.session.question_ids[0], 0)).ok
    assert not (await reloaded.start()).ok
    assert (await reloaded.submit()).message == "Exam already submitted."
    assert store.save_calls == 1

    store.fail = False
    retried = await reloaded.retry_save()
    assert retried.ok
    assert reloaded.saved
    assert store.save_calls == 2
    assert session_store.load("cand-1", "r1") == {}


async def test_progress_failure_is_reported_not_rolled_back(make_engine):
    engine = make_engine(progress_tracker=BrokenProgressTracker())
    await engine.open()
    await engine.start()
    await answer_all(engine)
    outcome = await engine.submit()

    assert outcome.ok
    assert engine.saved
    assert engine.progress_error == exam_engine.PROGRESS_FAILED
    assert engine.snapshot()["progress_error"] == exam_engine.PROGRESS_FAILED


# ── snapshot ─────────────────────────────────────────────────────────────────

async def test_snapshot_hides_answers_until_completed(make_engine):
    engine = make_engine()
    await engine.open()
    await engine.start()
    snap = engine.snapshot()

    assert snap["status"] == "in_progress"
    assert snap["total"] == 3
    assert all("correct_answer" not in q for q in snap["questions"])
    assert "result" not in snap

    await engine.submit()
    assert engine.snapshot()["result"]["total_questions"] == 3


async def test_started_at_is_utc_now(make_engine, now):
    engine = make_engine()
    await engine.open()
    await engine.start()
    assert engine.session.started_at == T0
