import os
import sys
import datetime
from types import SimpleNamespace

import pytest
import pytest_asyncio

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from db import Repositories
from settings_schema import SettingsSchema
from stats_service import StatisticsService

# Wednesday; the surrounding week starts on Sunday 2024-03-17.
NOW = datetime.datetime(2024, 3, 20, 12, 0, tzinfo=datetime.timezone.utc)


@pytest.fixture
def repos(tmp_path):
    return Repositories(str(tmp_path / "workout.db"))


@pytest.fixture
def stats(repos):
    return StatisticsService(repos, SettingsSchema(), clock=lambda: NOW)


@pytest_asyncio.fixture
async def athlete(repos):
    user = await repos.users.create("Alex", "kg")
    push = await repos.categories.create(user.id, "Push")
    legs = await repos.categories.create(user.id, "Legs")
    bench = await repos.exercises.create("Bench Press", is_built_in=True)
    squat = await repos.exercises.create("Squat", is_built_in=True)
    curl = await repos.exercises.create("Cable Curl", user_id=user.id)
    return SimpleNamespace(
        user=user, push=push, legs=legs, bench=bench, squat=squat, curl=curl
    )


@pytest.fixture
def log_session(repos):
    async def _log(user_id, category_id, started_at, ended_at=None, exercises=()):
        session = await repos.sessions.create(
            user_id, category_id, started_at=started_at, ended_at=ended_at
        )
        for position, (exercise_id, sets) in enumerate(exercises, start=1):
            we = await repos.workout_exercises.create(session.id, exercise_id, position)
            for order, (reps, weight) in enumerate(sets, start=1):
                await repos.sets.create(we.id, reps, weight, order)
        return session

    return _log
