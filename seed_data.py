import logging

from db import Repositories

logger = logging.getLogger(__name__)

BUILT_IN_EXERCISES = [
    "Bench Press",
    "Squat",
    "Deadlift",
    "Overhead Press",
    "Barbell Row",
    "Dumbbell Row",
    "Lat Pulldown",
    "Leg Press",
    "Leg Curl",
    "Leg Extension",
    "Calf Raise",
    "Bicep Curl",
    "Tricep Pushdown",
    "Lateral Raise",
    "Face Pull",
    "Incline Bench Press",
    "Romanian Deadlift",
    "Pull-up",
    "Push-up",
    "Dips",
]

DEFAULT_CATEGORIES = ["Push", "Pull", "Legs"]


async def seed_built_in_exercises(repos: Repositories) -> int:
    """Insert the shared exercise list once per database. Returns rows added."""
    if await repos.exercises.count_built_in():
        return 0
    for name in BUILT_IN_EXERCISES:
        await repos.exercises.create(name, user_id=None, is_built_in=True)
    logger.info("Seeded %d built-in exercises", len(BUILT_IN_EXERCISES))
    return len(BUILT_IN_EXERCISES)


async def seed_default_categories(repos: Repositories, user_id: str) -> int:
    if await repos.categories.list(user_id, limit=1):
        return 0
    for name in DEFAULT_CATEGORIES:
        await repos.categories.create(user_id, name)
    logger.info("Seeded default categories for user %s", user_id)
    return len(DEFAULT_CATEGORIES)
