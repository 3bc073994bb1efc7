import argparse
import asyncio
import datetime
import logging
import shutil
from typing import Optional

from algorithms import CalendarTools
from config import APP_VERSION, load_settings
from db import Database, Repositories
from entities import User
from seed_data import seed_built_in_exercises, seed_default_categories
from settings_schema import SettingsSchema
from stats_service import StatisticsService

logger = logging.getLogger(__name__)


def backup_db(db_path: str, backup_path: str) -> None:
    shutil.copy(db_path, backup_path)


def restore_db(backup_path: str, db_path: str) -> None:
    shutil.copy(backup_path, db_path)


async def current_user(repos: Repositories) -> Optional[User]:
    users = await repos.users.list(limit=1)
    return users[0] if users else None


async def init_db(db_path: str, name: str, unit: str) -> User:
    """Create the schema, seed built-ins and make sure one user exists."""
    repos = Repositories(db_path)
    await seed_built_in_exercises(repos)
    user = await current_user(repos)
    if user is None:
        user = await repos.users.create(name, unit)
        logger.info("Created user %s", user.id)
    await seed_default_categories(repos, user.id)
    return user


async def demo_data(db_path: str) -> None:
    """Populate the database with a few weeks of sample sessions if empty."""
    repos = Repositories(db_path)
    user = await init_db(db_path, "Demo", "kg")
    if await repos.sessions.list(user.id, limit=1):
        print("Database already contains sessions")
        return
    categories = {c.name: c for c in await repos.categories.list(user.id)}
    exercises = {e.name: e for e in await repos.exercises.list(is_built_in=True)}
    plan = [
        ("Push", [("Bench Press", 60.0), ("Overhead Press", 35.0)]),
        ("Pull", [("Barbell Row", 55.0), ("Lat Pulldown", 45.0)]),
        ("Legs", [("Squat", 80.0), ("Leg Curl", 30.0)]),
    ]
    now = datetime.datetime.now(datetime.timezone.utc).replace(
        hour=18, minute=0, second=0, microsecond=0
    )
    for week in range(4):
        for idx, (category, movements) in enumerate(plan):
            start = now - datetime.timedelta(days=27 - week * 7 - idx * 2)
            session = await repos.sessions.create(
                user.id,
                categories[category].id,
                started_at=CalendarTools.to_iso(start),
                ended_at=CalendarTools.to_iso(start + datetime.timedelta(minutes=55)),
            )
            for position, (exercise, weight) in enumerate(movements, start=1):
                we = await repos.workout_exercises.create(
                    session.id, exercises[exercise].id, position
                )
                for order in range(1, 4):
                    await repos.sets.create(we.id, 8, weight + week * 2.5, order)
    print("Demo data inserted")


def _print_points(title: str, points, unit: str = "") -> None:
    print(title)
    if not points:
        print("  (no data)")
    for p in points:
        print(f"  {p.label}: {p.value:g}{unit}")


async def run_report(cmd: str, args: argparse.Namespace, settings: SettingsSchema) -> None:
    repos = Repositories(settings.db_path)
    stats = StatisticsService(repos, settings)
    user = await current_user(repos)
    if user is None:
        print("No user found; run 'init' first")
        return
    unit = f" {user.weight_unit}"
    weeks = getattr(args, "weeks", None)
    if weeks is None:
        weeks = settings.default_weeks
    if cmd == "summary":
        summary = await stats.global_summary(user.id)
        for label, period in (("Last 7 days", summary.week), ("Last 30 days", summary.month)):
            print(
                f"{label}: {period.sessions} sessions, "
                f"{period.volume:g}{unit}, {period.minutes} min"
            )
        print(f"Streak: {summary.streak} day(s)")
    elif cmd == "weekly":
        series = await stats.weekly_series(user.id, weeks)
        _print_points("Volume per week", series.volume, unit)
        _print_points("Sessions per week", series.sessions)
        _print_points("Minutes per week", series.minutes, " min")
    elif cmd == "categories":
        for item in await stats.volume_by_category(user.id, weeks):
            print(f"{item.category_name}: {item.volume:g}{unit}")
    elif cmd == "top":
        for item in await stats.top_exercises(user.id, weeks, args.limit):
            print(
                f"{item.exercise_name}: {item.volume:g}{unit} "
                f"in {item.session_count} session(s)"
            )
    elif cmd == "progress":
        matches = await repos.exercises.list(user.id, search=args.exercise, limit=1)
        if not matches:
            print(f"No exercise matching '{args.exercise}'")
            return
        exercise = matches[0]
        print(exercise.name)
        for point in await stats.exercise_progress(user.id, exercise.id, weeks):
            print(f"  {point.date}: max {point.max_weight:g}{unit}, volume {point.volume:g}{unit}")
        best = await stats.exercise_stats(user.id, exercise.id)
        print(f"All-time max {best.max_weight:g}{unit}, best session {best.best_volume:g}{unit}")
    elif cmd == "heatmap":
        for day in await stats.activity_heatmap(user.id, weeks):
            print(f"{day.date}: {day.sessions} session(s), {day.volume:g}{unit}")
    elif cmd == "sessions":
        for item in await stats.session_items(user.id, args.limit):
            print(
                f"{item.session.started_at[:16]} {item.category_name}: "
                f"{item.duration_mins} min, {item.volume:g}{unit}"
            )


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Workout log utilities")
    parser.add_argument("--settings", default=None, help="settings YAML file")
    parser.add_argument("--db", default=None, help="database path override")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="cmd", required=True)

    init = sub.add_parser("init")
    init.add_argument("--name", default="Me")
    init.add_argument("--unit", choices=["kg", "lb"], default=None)

    sub.add_parser("demo")
    sub.add_parser("info")
    sub.add_parser("summary")

    for name in ("weekly", "categories", "heatmap"):
        p = sub.add_parser(name)
        p.add_argument("--weeks", type=int, default=None)

    top = sub.add_parser("top")
    top.add_argument("--weeks", type=int, default=None)
    top.add_argument("--limit", type=int, default=None)

    prog = sub.add_parser("progress")
    prog.add_argument("--exercise", required=True)
    prog.add_argument("--weeks", type=int, default=None)

    sess = sub.add_parser("sessions")
    sess.add_argument("--limit", type=int, default=20)

    bkp = sub.add_parser("backup")
    bkp.add_argument("--out", default="backup.db")

    rst = sub.add_parser("restore")
    rst.add_argument("--in", dest="src", default="backup.db")

    args = parser.parse_args(argv)
    settings = load_settings(args.settings)
    if args.db:
        settings = settings.model_copy(update={"db_path": args.db})
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.cmd == "init":
        user = asyncio.run(
            init_db(settings.db_path, args.name, args.unit or settings.weight_unit)
        )
        print(f"Database ready at {settings.db_path} for {user.display_name}")
    elif args.cmd == "demo":
        asyncio.run(demo_data(settings.db_path))
    elif args.cmd == "info":
        meta = Database(settings.db_path).storage_meta()
        print(f"liftlog {APP_VERSION}")
        print(f"{settings.db_path}: {meta['storage_engine']} schema v{meta['schema_version']}")
    elif args.cmd == "backup":
        backup_db(settings.db_path, args.out)
    elif args.cmd == "restore":
        restore_db(args.src, settings.db_path)
    else:
        asyncio.run(run_report(args.cmd, args, settings))


if __name__ == "__main__":
    main()
