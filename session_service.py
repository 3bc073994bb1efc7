from __future__ import annotations
import datetime
import logging
from typing import Callable, List, Optional

from algorithms import CalendarTools
from db import Repositories
from entities import SessionSummary, WorkoutExercise, WorkoutSession, WorkoutSet
from stats_service import StatisticsService

logger = logging.getLogger(__name__)


class SessionService:
    """Run the log-a-workout flow: start, add exercises and sets, finish.

    The in-progress session is tracked explicitly in ``active_session_id``.
    Open sessions found in the store are only surfaced by
    :meth:`recover_open_sessions`; they never become active implicitly.
    Ordering within a session (and within an exercise) is kept dense and
    1-based: inserts append, removals renumber the remaining records.
    """

    def __init__(
        self,
        repos: Repositories,
        statistics: StatisticsService | None = None,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self.repos = repos
        self.statistics = statistics or StatisticsService(repos, clock=clock)
        self._clock = clock or (
            lambda: datetime.datetime.now(datetime.timezone.utc)
        )
        self.active_session_id: Optional[str] = None

    def _now_iso(self) -> str:
        return CalendarTools.to_iso(self._clock())

    async def start_session(
        self, user_id: str, category_id: str, notes: str | None = None
    ) -> WorkoutSession:
        if self.active_session_id is not None:
            raise ValueError("a session is already in progress")
        session = await self.repos.sessions.create(
            user_id, category_id, started_at=self._now_iso(), notes=notes
        )
        self.active_session_id = session.id
        logger.info("Started session %s for user %s", session.id, user_id)
        return session

    def resume_session(self, session: WorkoutSession) -> None:
        """Make an existing open session the active one."""
        if not session.is_active:
            raise ValueError("session already finished")
        if self.active_session_id not in (None, session.id):
            raise ValueError("a session is already in progress")
        self.active_session_id = session.id

    async def add_exercise(
        self, session_id: str, exercise_id: str, **metadata
    ) -> WorkoutExercise:
        if await self.repos.sessions.get(session_id) is None:
            raise ValueError("session not found")
        order = await self.repos.workout_exercises.next_order(session_id)
        return await self.repos.workout_exercises.create(
            session_id, exercise_id, order, **metadata
        )

    async def remove_exercise(self, workout_exercise_id: str) -> None:
        we = await self.repos.workout_exercises.get(workout_exercise_id)
        if we is None:
            raise ValueError("workout exercise not found")
        await self.repos.workout_exercises.delete(workout_exercise_id)
        await self.repos.workout_exercises.renumber(we.session_id)

    async def add_set(
        self, workout_exercise_id: str, reps: int, weight: float
    ) -> WorkoutSet:
        if await self.repos.workout_exercises.get(workout_exercise_id) is None:
            raise ValueError("workout exercise not found")
        order = await self.repos.sets.next_order(workout_exercise_id)
        return await self.repos.sets.create(workout_exercise_id, reps, weight, order)

    async def remove_set(self, set_id: str) -> None:
        workout_set = await self.repos.sets.get(set_id)
        if workout_set is None:
            raise ValueError("set not found")
        await self.repos.sets.delete(set_id)
        await self.repos.sets.renumber(workout_set.workout_exercise_id)

    async def finish_session(self, session_id: str) -> SessionSummary:
        """Close the session and return its summary, records included."""
        session = await self.repos.sessions.get(session_id)
        if session is None:
            raise ValueError("session not found")
        if session.is_active:
            session = await self.repos.sessions.set_end_time(
                session_id, self._now_iso()
            )
        if self.active_session_id == session_id:
            self.active_session_id = None
        logger.info("Finished session %s", session_id)
        summary = await self.statistics.session_summary(session.user_id, session_id)
        if summary is None:
            raise ValueError("session not found")
        return summary

    async def delete_session(self, session_id: str) -> None:
        await self.repos.sessions.delete(session_id)
        if self.active_session_id == session_id:
            self.active_session_id = None
        logger.info("Deleted session %s", session_id)

    async def recover_open_sessions(self, user_id: str) -> List[WorkoutSession]:
        """List sessions left open in the store, e.g. after a crash."""
        sessions = await self.repos.sessions.list_open(user_id)
        stale = [s for s in sessions if s.id != self.active_session_id]
        if stale:
            logger.warning(
                "Found %d open session(s) for user %s not tracked as active",
                len(stale),
                user_id,
            )
        return sessions
