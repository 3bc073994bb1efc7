import datetime
from typing import Iterable, Mapping, Optional, Tuple

from entities import WorkoutSession, WorkoutSet
from .calendar_tools import CalendarTools


class VolumeTools:
    """Pure reductions over logged sets and sessions."""

    @staticmethod
    def set_volume(workout_set: WorkoutSet) -> float:
        """Return ``reps * weight`` for a single set."""
        return workout_set.reps * workout_set.weight

    @staticmethod
    def total_volume(sets: Iterable[WorkoutSet]) -> float:
        """Sum of set volumes, ``0`` for no sets."""
        return sum((VolumeTools.set_volume(s) for s in sets), 0)

    @staticmethod
    def max_weight(sets: Iterable[WorkoutSet]) -> float:
        """Heaviest weight lifted, ``0`` for no sets."""
        return max((s.weight for s in sets), default=0)

    @staticmethod
    def session_duration_mins(
        session: WorkoutSession, now: datetime.datetime
    ) -> int:
        """Return session length in whole minutes.

        Sessions that are still open are measured against ``now``.
        """
        start = CalendarTools.parse_timestamp(session.started_at)
        if session.ended_at:
            end = CalendarTools.parse_timestamp(session.ended_at)
        else:
            end = now
        return round((end - start).total_seconds() / 60)

    @staticmethod
    def best_volume_session(
        sets_by_session: Mapping[str, Iterable[WorkoutSet]],
    ) -> Optional[Tuple[str, float]]:
        best: Optional[Tuple[str, float]] = None
        for session_id, sets in sets_by_session.items():
            vol = VolumeTools.total_volume(sets)
            if best is None or vol > best[1]:
                best = (session_id, vol)
        return best

    @staticmethod
    def sessions_in_range(
        sessions: Iterable[WorkoutSession], start: str, end: str
    ) -> int:
        """Count sessions whose start timestamp lies in ``[start, end]``."""
        return sum(1 for s in sessions if start <= s.started_at <= end)
