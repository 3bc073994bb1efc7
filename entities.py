"""Persisted records and derived result types.

Records are frozen; repositories hand back a fresh instance after every
mutation instead of changing one in place.
"""

from __future__ import annotations
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict

WeightUnit = Literal["kg", "lb"]


class Record(BaseModel):
    model_config = ConfigDict(frozen=True)


class User(Record):
    id: str
    display_name: str
    weight_unit: WeightUnit = "kg"
    created_at: str
    updated_at: str


class TrainingCategory(Record):
    id: str
    user_id: str
    name: str
    created_at: str
    updated_at: str


class Exercise(Record):
    id: str
    user_id: Optional[str] = None
    name: str
    is_built_in: bool = False
    created_at: str
    updated_at: str


class WorkoutSession(Record):
    id: str
    user_id: str
    category_id: str
    started_at: str
    ended_at: Optional[str] = None
    notes: Optional[str] = None
    created_at: str
    updated_at: str

    @property
    def is_active(self) -> bool:
        return self.ended_at is None


class WorkoutExercise(Record):
    id: str
    session_id: str
    exercise_id: str
    order: int
    machine_name: Optional[str] = None
    seat_height: Optional[str] = None
    bench_angle_deg: Optional[int] = None
    grip: Optional[str] = None


class WorkoutSet(Record):
    id: str
    workout_exercise_id: str
    order: int
    reps: int
    weight: float
    created_at: str
    updated_at: str

    @property
    def volume(self) -> float:
        return self.reps * self.weight


class PeriodSummary(Record):
    sessions: int = 0
    volume: float = 0.0
    minutes: int = 0


class GlobalSummary(Record):
    week: PeriodSummary = PeriodSummary()
    month: PeriodSummary = PeriodSummary()
    streak: int = 0


class WeekDataPoint(Record):
    label: str
    value: float


class WeeklySeries(Record):
    volume: list[WeekDataPoint] = []
    sessions: list[WeekDataPoint] = []
    minutes: list[WeekDataPoint] = []


class CategoryVolume(Record):
    category_id: str
    category_name: str
    volume: float


class TopExercise(Record):
    exercise_id: str
    exercise_name: str
    volume: float
    session_count: int


class ExerciseProgressPoint(Record):
    date: str
    max_weight: float
    volume: float


class ExerciseStats(Record):
    max_weight: float = 0.0
    best_volume: float = 0.0


class ActivityHeatmapDay(Record):
    date: str
    sessions: int
    volume: float


class PersonalRecord(Record):
    exercise_id: str
    exercise_name: str
    weight: float


class SessionItem(Record):
    session: WorkoutSession
    category_name: str
    duration_mins: int
    volume: float


class ExerciseLog(Record):
    workout_exercise: WorkoutExercise
    exercise_name: str
    sets: list[WorkoutSet]


class SessionSummary(Record):
    session: WorkoutSession
    category_name: str
    duration_mins: int
    total_volume: float
    exercises: list[ExerciseLog] = []
    personal_records: list[PersonalRecord] = []
