"""
services/cooldown.py

Freezing-period gate in front of a round.

A failed attempt blocks the round until completed_at + freezing period.
Passing attempts never block. If the Result Store cannot be reached the gate
fails open: missing cooldown data means "no blocking record".
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import config
from interview_exam.errors import ResultStoreError
from interview_exam.models.result_model import Eligibility
from interview_exam.models.session_state import utcnow
from interview_exam.services.result_store import ResultStore

logger = logging.getLogger(__name__)


def _aware(ts: datetime) -> datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def format_cooldown(retry_at: datetime, now: Optional[datetime] = None) -> str:
    """Remaining wait as "{h}h {m}m {s}s", or a ready message once it is over."""
    now = now or utcnow()
    remaining = int((_aware(retry_at) - _aware(now)).total_seconds())
    if remaining <= 0:
        return "You can now retake the exam!"
    hours, rest = divmod(remaining, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours}h {minutes}m {seconds}s"


class CooldownGate:

    def __init__(
        self,
        result_store: ResultStore,
        now: Callable[[], datetime] = utcnow,
        default_days: float = config.FREEZING_PERIOD_DAYS,
    ):
        self.result_store = result_store
        self._now = now
        self._default_days = default_days
        self._freezing_days: Optional[float] = None

    async def freezing_period(self) -> timedelta:
        """Freezing period, fetched from the Result Store once and cached."""
        if self._freezing_days is None:
            try:
                self._freezing_days = await self.result_store.freezing_period_days()
            except ResultStoreError as e:
                logger.warning(f"Freezing period unavailable, using {self._default_days} day(s): {e}")
                self._freezing_days = self._default_days
        return timedelta(days=self._freezing_days)

    async def check_eligibility(self, candidate_id: str, round_id: str) -> Eligibility:
        try:
            latest = await self.result_store.latest_result(candidate_id, round_id)
        except ResultStoreError as e:
            logger.warning(f"Cooldown check skipped for round {round_id}: {e}")
            return Eligibility.allowed()

        if latest is None or latest.passed or latest.completed_at is None:
            return Eligibility.allowed()

        retry_at = _aware(latest.completed_at) + await self.freezing_period()
        if _aware(self._now()) < retry_at:
            logger.info(f"Round {round_id} blocked for {candidate_id} until {retry_at.isoformat()}")
            return Eligibility.blocked(retry_at)
        return Eligibility.allowed()
