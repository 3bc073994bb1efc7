"""Read contracts the statistics layer depends on.

``db.py`` provides the SQLite implementation; anything with the same async
methods can be handed to :class:`stats_service.StatisticsService`.
"""

from __future__ import annotations
from typing import List, Optional, Protocol, Sequence, Tuple

from entities import (
    Exercise,
    TrainingCategory,
    WorkoutExercise,
    WorkoutSession,
    WorkoutSet,
)


class SessionReader(Protocol):
    async def get(self, session_id: str) -> Optional[WorkoutSession]: ...

    async def list(
        self,
        user_id: str,
        start: Optional[str] = None,
        end: Optional[str] = None,
        descending: bool = True,
        limit: int | None = None,
        offset: int | None = None,
    ) -> List[WorkoutSession]: ...

    async def list_by_date_range(
        self, user_id: str, start: str, end: str
    ) -> List[WorkoutSession]: ...


class WorkoutExerciseReader(Protocol):
    async def get(self, workout_exercise_id: str) -> Optional[WorkoutExercise]: ...

    async def list_for_session(self, session_id: str) -> List[WorkoutExercise]: ...


class SetReader(Protocol):
    async def list_for_workout_exercise(
        self, workout_exercise_id: str
    ) -> List[WorkoutSet]: ...

    async def list_for_exercise(
        self,
        user_id: str,
        exercise_id: str,
        start: Optional[str] = None,
        end: Optional[str] = None,
    ) -> List[WorkoutSet]: ...

    async def fetch_for_sessions(
        self, session_ids: Sequence[str]
    ) -> List[Tuple[str, str, WorkoutSet]]: ...


class CategoryReader(Protocol):
    async def get(self, category_id: str) -> Optional[TrainingCategory]: ...

    async def list(
        self, user_id: str, limit: int = 100, offset: int = 0
    ) -> List[TrainingCategory]: ...


class ExerciseReader(Protocol):
    async def get(self, exercise_id: str) -> Optional[Exercise]: ...

    async def list(
        self,
        user_id: Optional[str] = None,
        is_built_in: Optional[bool] = None,
        search: Optional[str] = None,
        limit: int = 200,
        offset: int = 0,
    ) -> List[Exercise]: ...


class RepositoryBundle(Protocol):
    sessions: SessionReader
    workout_exercises: WorkoutExerciseReader
    sets: SetReader
    categories: CategoryReader
    exercises: ExerciseReader
