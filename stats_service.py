from __future__ import annotations
import datetime
import logging
from typing import Callable, Dict, Iterable, List, Optional

from algorithms import CalendarTools, VolumeTools
from entities import (
    ActivityHeatmapDay,
    CategoryVolume,
    ExerciseLog,
    ExerciseProgressPoint,
    ExerciseStats,
    GlobalSummary,
    PeriodSummary,
    PersonalRecord,
    SessionItem,
    SessionSummary,
    TopExercise,
    WeekDataPoint,
    WeeklySeries,
    WorkoutSession,
    WorkoutSet,
)
from repositories import RepositoryBundle
from settings_schema import SettingsSchema

logger = logging.getLogger(__name__)

# session id -> exercise id -> sets logged for that exercise in the session
Breakdown = Dict[str, Dict[str, List[WorkoutSet]]]

FALLBACK_SESSION_NAME = "Workout"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class StatisticsService:
    """Compute workout statistics from a user's session log.

    Every method recomputes from the repositories on each call and keeps no
    state between calls. A missing user id or repository handle yields the
    empty result instead of an error; store failures propagate.
    """

    def __init__(
        self,
        repos: RepositoryBundle | None,
        settings: SettingsSchema | None = None,
        clock: Callable[[], datetime.datetime] | None = None,
    ) -> None:
        self.repos = repos
        self.settings = settings or SettingsSchema()
        self._clock = clock or _utcnow

    def _now(self) -> datetime.datetime:
        now = self._clock()
        if now.tzinfo is None:
            now = now.replace(tzinfo=datetime.timezone.utc)
        return now

    def _ready(self, *required: Optional[str]) -> bool:
        if self.repos is None or not all(required):
            logger.debug("Statistics requested without repositories or identifiers")
            return False
        return True

    def _week_key(self, ts: str) -> str:
        return CalendarTools.week_key(
            ts, self.settings.timezone, self.settings.week_start
        )

    async def _sessions_for_weeks(
        self, user_id: str, weeks: int
    ) -> List[WorkoutSession]:
        start, end = CalendarTools.trailing_range(self._now(), weeks * 7)
        return await self.repos.sessions.list_by_date_range(user_id, start, end)

    async def _breakdown(self, sessions: List[WorkoutSession]) -> Breakdown:
        """Group the sets under ``sessions`` by session and exercise.

        Small histories walk session -> exercises -> sets; beyond
        ``bulk_fetch_threshold`` sessions a single joined read is grouped in
        memory instead. Both paths produce the same mapping.
        """
        result: Breakdown = {s.id: {} for s in sessions}
        if not sessions:
            return result
        if len(sessions) > self.settings.bulk_fetch_threshold:
            logger.debug("Bulk-reading sets for %d sessions", len(sessions))
            rows = await self.repos.sets.fetch_for_sessions([s.id for s in sessions])
            for session_id, exercise_id, workout_set in rows:
                result[session_id].setdefault(exercise_id, []).append(workout_set)
            return result
        for session in sessions:
            for we in await self.repos.workout_exercises.list_for_session(session.id):
                sets = await self.repos.sets.list_for_workout_exercise(we.id)
                if sets:
                    result[session.id].setdefault(we.exercise_id, []).extend(sets)
        return result

    @staticmethod
    def _session_volume(by_exercise: Dict[str, List[WorkoutSet]]) -> float:
        return sum(
            (VolumeTools.total_volume(sets) for sets in by_exercise.values()), 0
        )

    async def _category_name(self, category_id: str, fallback: str) -> str:
        category = await self.repos.categories.get(category_id)
        return category.name if category is not None else fallback

    async def _exercise_name(self, exercise_id: str) -> str:
        exercise = await self.repos.exercises.get(exercise_id)
        return exercise.name if exercise is not None else exercise_id

    # -- global and period summaries ---------------------------------------

    def _period(
        self,
        sessions: Iterable[WorkoutSession],
        breakdown: Breakdown,
        now: datetime.datetime,
    ) -> PeriodSummary:
        sessions = list(sessions)
        volume = sum((self._session_volume(breakdown[s.id]) for s in sessions), 0)
        minutes = sum(VolumeTools.session_duration_mins(s, now) for s in sessions)
        return PeriodSummary(
            sessions=len(sessions), volume=round(volume, 2), minutes=minutes
        )

    async def global_summary(self, user_id: Optional[str]) -> GlobalSummary:
        """Return 7- and 30-day totals plus the current streak."""
        if not self._ready(user_id):
            return GlobalSummary()
        now = self._now()
        week_start, week_end = CalendarTools.trailing_range(now, 7)
        month_start, month_end = CalendarTools.trailing_range(now, 30)
        week_sessions = await self.repos.sessions.list_by_date_range(
            user_id, week_start, week_end
        )
        month_sessions = await self.repos.sessions.list_by_date_range(
            user_id, month_start, month_end
        )
        breakdown = await self._breakdown(month_sessions)
        missing = [s for s in week_sessions if s.id not in breakdown]
        if missing:
            breakdown.update(await self._breakdown(missing))
        return GlobalSummary(
            week=self._period(week_sessions, breakdown, now),
            month=self._period(month_sessions, breakdown, now),
            streak=await self.streak(user_id),
        )

    async def streak(self, user_id: Optional[str]) -> int:
        """Consecutive training days ending today."""
        if not self._ready(user_id):
            return 0
        sessions = await self.repos.sessions.list(
            user_id, descending=True, limit=self.settings.streak_session_limit
        )
        today = self._now().astimezone(
            CalendarTools.zone(self.settings.timezone)
        ).date()
        return CalendarTools.compute_streak(
            [s.started_at for s in sessions], today, self.settings.timezone
        )

    # -- time-bucketed series -----------------------------------------------

    async def weekly_series(self, user_id: Optional[str], weeks: int) -> WeeklySeries:
        """Return per-week volume, session count and minutes.

        Weeks without sessions are left out rather than zero-filled.
        """
        if weeks < 1 or not self._ready(user_id):
            return WeeklySeries()
        now = self._now()
        sessions = await self._sessions_for_weeks(user_id, weeks)
        breakdown = await self._breakdown(sessions)
        buckets: Dict[str, Dict[str, float]] = {}
        for s in sessions:
            entry = buckets.setdefault(
                self._week_key(s.started_at),
                {"sessions": 0, "volume": 0.0, "minutes": 0},
            )
            entry["sessions"] += 1
            entry["volume"] += self._session_volume(breakdown[s.id])
            entry["minutes"] += VolumeTools.session_duration_mins(s, now)
        keys = sorted(buckets)

        def points(field: str) -> List[WeekDataPoint]:
            return [
                WeekDataPoint(
                    label=CalendarTools.week_label(k),
                    value=round(buckets[k][field], 2),
                )
                for k in keys
            ]

        return WeeklySeries(
            volume=points("volume"),
            sessions=points("sessions"),
            minutes=points("minutes"),
        )

    async def volume_by_week(self, user_id: Optional[str], weeks: int) -> List[WeekDataPoint]:
        return (await self.weekly_series(user_id, weeks)).volume

    async def sessions_by_week(self, user_id: Optional[str], weeks: int) -> List[WeekDataPoint]:
        return (await self.weekly_series(user_id, weeks)).sessions

    async def duration_by_week(self, user_id: Optional[str], weeks: int) -> List[WeekDataPoint]:
        return (await self.weekly_series(user_id, weeks)).minutes

    async def activity_heatmap(
        self, user_id: Optional[str], weeks: int
    ) -> List[ActivityHeatmapDay]:
        """Return session count and volume per training day."""
        if weeks < 1 or not self._ready(user_id):
            return []
        sessions = await self._sessions_for_weeks(user_id, weeks)
        breakdown = await self._breakdown(sessions)
        by_day: Dict[str, Dict[str, float]] = {}
        for s in sessions:
            day = CalendarTools.local_date(s.started_at, self.settings.timezone)
            entry = by_day.setdefault(day.isoformat(), {"sessions": 0, "volume": 0.0})
            entry["sessions"] += 1
            entry["volume"] += self._session_volume(breakdown[s.id])
        return [
            ActivityHeatmapDay(
                date=d,
                sessions=int(by_day[d]["sessions"]),
                volume=round(by_day[d]["volume"], 2),
            )
            for d in sorted(by_day)
        ]

    # -- rankings -------------------------------------------------------------

    async def volume_by_category(
        self, user_id: Optional[str], weeks: int
    ) -> List[CategoryVolume]:
        if weeks < 1 or not self._ready(user_id):
            return []
        sessions = await self._sessions_for_weeks(user_id, weeks)
        breakdown = await self._breakdown(sessions)
        volumes: Dict[str, float] = {}
        for s in sessions:
            volumes[s.category_id] = volumes.get(s.category_id, 0.0) + self._session_volume(
                breakdown[s.id]
            )
        result = [
            CategoryVolume(
                category_id=cid,
                category_name=await self._category_name(cid, cid),
                volume=round(vol, 2),
            )
            for cid, vol in volumes.items()
        ]
        return sorted(result, key=lambda x: (-x.volume, x.category_name, x.category_id))

    async def top_exercises(
        self, user_id: Optional[str], weeks: int, limit: int | None = None
    ) -> List[TopExercise]:
        """Rank exercises by volume; session count is distinct sessions, not sets."""
        if weeks < 1 or not self._ready(user_id):
            return []
        if limit is None:
            limit = self.settings.top_exercises_limit
        sessions = await self._sessions_for_weeks(user_id, weeks)
        breakdown = await self._breakdown(sessions)
        volumes: Dict[str, float] = {}
        session_ids: Dict[str, set[str]] = {}
        for session_id, by_exercise in breakdown.items():
            for exercise_id, sets in by_exercise.items():
                volumes[exercise_id] = volumes.get(exercise_id, 0.0) + VolumeTools.total_volume(sets)
                session_ids.setdefault(exercise_id, set()).add(session_id)
        result = [
            TopExercise(
                exercise_id=eid,
                exercise_name=await self._exercise_name(eid),
                volume=round(vol, 2),
                session_count=len(session_ids[eid]),
            )
            for eid, vol in volumes.items()
        ]
        result.sort(key=lambda x: (-x.volume, x.exercise_name, x.exercise_id))
        return result[:limit]

    # -- per-exercise progress and records ----------------------------------------

    async def _sets_by_session(
        self, sets: List[WorkoutSet]
    ) -> Dict[str, List[WorkoutSet]]:
        """Group sets by owning session, dropping sets whose parent is gone."""
        session_of: Dict[str, Optional[str]] = {}
        grouped: Dict[str, List[WorkoutSet]] = {}
        for workout_set in sets:
            weid = workout_set.workout_exercise_id
            if weid not in session_of:
                we = await self.repos.workout_exercises.get(weid)
                session_of[weid] = we.session_id if we is not None else None
            session_id = session_of[weid]
            if session_id is None:
                logger.debug("Skipping set %s without a workout exercise", workout_set.id)
                continue
            grouped.setdefault(session_id, []).append(workout_set)
        return grouped

    async def exercise_progress(
        self,
        user_id: Optional[str],
        exercise_id: Optional[str],
        weeks: int,
    ) -> List[ExerciseProgressPoint]:
        """One point per session: max weight and volume for ``exercise_id``."""
        if weeks < 1 or not self._ready(user_id, exercise_id):
            return []
        start, end = CalendarTools.trailing_range(self._now(), weeks * 7)
        sets = await self.repos.sets.list_for_exercise(user_id, exercise_id, start, end)
        grouped = await self._sets_by_session(sets)
        dated: List[tuple[str, ExerciseProgressPoint]] = []
        for session_id, session_sets in grouped.items():
            session = await self.repos.sessions.get(session_id)
            if session is None:
                logger.debug("Skipping sets of missing session %s", session_id)
                continue
            day = CalendarTools.local_date(session.started_at, self.settings.timezone)
            dated.append(
                (
                    session.started_at,
                    ExerciseProgressPoint(
                        date=day.isoformat(),
                        max_weight=VolumeTools.max_weight(session_sets),
                        volume=round(VolumeTools.total_volume(session_sets), 2),
                    ),
                )
            )
        dated.sort(key=lambda x: (x[1].date, x[0]))
        return [point for _ts, point in dated]

    async def exercise_stats(
        self, user_id: Optional[str], exercise_id: Optional[str]
    ) -> ExerciseStats:
        """All-time max weight and best single-session volume for an exercise."""
        if not self._ready(user_id, exercise_id):
            return ExerciseStats()
        sets = await self.repos.sets.list_for_exercise(user_id, exercise_id)
        best = VolumeTools.best_volume_session(await self._sets_by_session(sets))
        return ExerciseStats(
            max_weight=VolumeTools.max_weight(sets),
            best_volume=round(best[1], 2) if best else 0.0,
        )

    async def session_personal_records(
        self, user_id: Optional[str], session_id: Optional[str]
    ) -> List[PersonalRecord]:
        """Flag exercises whose max weight in the session matches or beats
        every set the user has logged for them, this session included."""
        if not self._ready(user_id, session_id):
            return []
        by_exercise = await self._breakdown_for_session(session_id)
        records: List[PersonalRecord] = []
        for exercise_id, sets in by_exercise.items():
            session_max = VolumeTools.max_weight(sets)
            if session_max == 0:
                continue
            history = await self.repos.sets.list_for_exercise(user_id, exercise_id)
            if session_max >= VolumeTools.max_weight(history):
                records.append(
                    PersonalRecord(
                        exercise_id=exercise_id,
                        exercise_name=await self._exercise_name(exercise_id),
                        weight=session_max,
                    )
                )
        return records

    async def _breakdown_for_session(self, session_id: str) -> Dict[str, List[WorkoutSet]]:
        by_exercise: Dict[str, List[WorkoutSet]] = {}
        for we in await self.repos.workout_exercises.list_for_session(session_id):
            sets = await self.repos.sets.list_for_workout_exercise(we.id)
            if sets:
                by_exercise.setdefault(we.exercise_id, []).extend(sets)
        return by_exercise

    # -- session listings ----------------------------------------------------

    async def session_items(
        self, user_id: Optional[str], limit: int = 100
    ) -> List[SessionItem]:
        """Recent sessions, newest first, with display name, minutes and volume."""
        if not self._ready(user_id):
            return []
        now = self._now()
        sessions = await self.repos.sessions.list(user_id, descending=True, limit=limit)
        breakdown = await self._breakdown(sessions)
        return [
            SessionItem(
                session=s,
                category_name=await self._category_name(
                    s.category_id, FALLBACK_SESSION_NAME
                ),
                duration_mins=VolumeTools.session_duration_mins(s, now),
                volume=round(self._session_volume(breakdown[s.id]), 2),
            )
            for s in sessions
        ]

    async def session_summary(
        self, user_id: Optional[str], session_id: Optional[str]
    ) -> Optional[SessionSummary]:
        """Describe one session: its exercises and sets, totals and new records."""
        if not self._ready(user_id, session_id):
            return None
        session = await self.repos.sessions.get(session_id)
        if session is None:
            return None
        logs: List[ExerciseLog] = []
        total = 0.0
        for we in await self.repos.workout_exercises.list_for_session(session_id):
            sets = await self.repos.sets.list_for_workout_exercise(we.id)
            total += VolumeTools.total_volume(sets)
            logs.append(
                ExerciseLog(
                    workout_exercise=we,
                    exercise_name=await self._exercise_name(we.exercise_id),
                    sets=sets,
                )
            )
        return SessionSummary(
            session=session,
            category_name=await self._category_name(
                session.category_id, FALLBACK_SESSION_NAME
            ),
            duration_mins=VolumeTools.session_duration_mins(session, self._now()),
            total_volume=round(total, 2),
            exercises=logs,
            personal_records=await self.session_personal_records(user_id, session_id),
        )
