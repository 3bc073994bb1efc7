import os
import sys
import logging

import pytest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from conftest import NOW
from entities import ExerciseStats, GlobalSummary, PeriodSummary, WeeklySeries
from settings_schema import SettingsSchema
from stats_service import StatisticsService


async def two_bench_sessions(athlete, log_session):
    first = await log_session(
        athlete.user.id,
        athlete.push.id,
        "2024-03-11T10:00:00Z",
        "2024-03-11T11:00:00Z",
        [(athlete.bench.id, [(10, 50.0), (10, 55.0)])],
    )
    second = await log_session(
        athlete.user.id,
        athlete.push.id,
        "2024-03-18T10:00:00Z",
        "2024-03-18T10:45:00Z",
        [(athlete.bench.id, [(10, 55.0)])],
    )
    return first, second


@pytest.mark.asyncio
async def test_missing_user_returns_empty_results(stats):
    assert await stats.global_summary(None) == GlobalSummary()
    assert await stats.streak("") == 0
    assert await stats.weekly_series(None, 4) == WeeklySeries()
    assert await stats.volume_by_category(None, 4) == []
    assert await stats.top_exercises(None, 4) == []
    assert await stats.exercise_progress("u1", None, 4) == []
    assert await stats.exercise_stats(None, "e1") == ExerciseStats()
    assert await stats.session_personal_records("u1", None) == []
    assert await stats.session_items(None) == []
    assert await stats.session_summary("u1", None) is None


@pytest.mark.asyncio
async def test_missing_repositories_returns_empty_results():
    stats = StatisticsService(None, clock=lambda: NOW)
    assert await stats.global_summary("u1") == GlobalSummary()
    assert await stats.volume_by_week("u1", 4) == []
    assert await stats.activity_heatmap("u1", 4) == []


@pytest.mark.asyncio
async def test_non_positive_weeks_returns_empty(stats, athlete, log_session):
    await two_bench_sessions(athlete, log_session)
    assert await stats.volume_by_week(athlete.user.id, 0) == []
    assert await stats.top_exercises(athlete.user.id, -1) == []
    assert await stats.exercise_progress(athlete.user.id, athlete.bench.id, 0) == []


@pytest.mark.asyncio
async def test_end_to_end_two_sessions(stats, athlete, log_session):
    first, second = await two_bench_sessions(athlete, log_session)
    uid = athlete.user.id

    volume = await stats.volume_by_week(uid, 4)
    assert [(p.label, p.value) for p in volume] == [("03-10", 1050.0), ("03-17", 550.0)]
    sessions = await stats.sessions_by_week(uid, 4)
    assert [p.value for p in sessions] == [1, 1]
    minutes = await stats.duration_by_week(uid, 4)
    assert [p.value for p in minutes] == [60, 45]

    progress = await stats.exercise_progress(uid, athlete.bench.id, 4)
    assert [(p.date, p.max_weight, p.volume) for p in progress] == [
        ("2024-03-11", 55.0, 1050.0),
        ("2024-03-18", 55.0, 550.0),
    ]

    records = await stats.session_personal_records(uid, second.id)
    assert [(r.exercise_name, r.weight) for r in records] == [("Bench Press", 55.0)]
    # Equal to the best ever counts as a record as well.
    assert len(await stats.session_personal_records(uid, first.id)) == 1


@pytest.mark.asyncio
async def test_global_summary(stats, athlete, log_session):
    await two_bench_sessions(athlete, log_session)
    summary = await stats.global_summary(athlete.user.id)
    assert summary.week == PeriodSummary(sessions=1, volume=550.0, minutes=45)
    assert summary.month == PeriodSummary(sessions=2, volume=1600.0, minutes=105)
    assert summary.streak == 0


@pytest.mark.asyncio
async def test_global_summary_counts_open_session_until_now(stats, athlete, log_session):
    await log_session(
        athlete.user.id,
        athlete.push.id,
        "2024-03-20T11:00:00Z",
        exercises=[(athlete.bench.id, [(5, 60.0)])],
    )
    summary = await stats.global_summary(athlete.user.id)
    assert summary.week == PeriodSummary(sessions=1, volume=300.0, minutes=60)
    assert summary.streak == 1


@pytest.mark.asyncio
async def test_streak(stats, athlete, log_session):
    uid = athlete.user.id
    for started in (
        "2024-03-20T07:00:00Z",
        "2024-03-20T18:00:00Z",
        "2024-03-19T07:00:00Z",
        "2024-03-18T07:00:00Z",
        "2024-03-16T07:00:00Z",
    ):
        await log_session(uid, athlete.push.id, started)
    assert await stats.streak(uid) == 3


@pytest.mark.asyncio
async def test_weekly_series_skips_empty_weeks(stats, athlete, log_session):
    uid = athlete.user.id
    await log_session(
        uid, athlete.legs.id, "2024-02-26T10:00:00Z", "2024-02-26T10:30:00Z",
        [(athlete.squat.id, [(5, 100.0)])],
    )
    await log_session(
        uid, athlete.legs.id, "2024-03-18T10:00:00Z", "2024-03-18T10:30:00Z",
        [(athlete.squat.id, [(5, 110.0)])],
    )
    await log_session(
        uid, athlete.push.id, "2024-03-19T10:00:00Z", "2024-03-19T10:20:00Z",
        [(athlete.bench.id, [(10, 40.0)])],
    )
    series = await stats.weekly_series(uid, 8)
    assert [p.label for p in series.volume] == ["02-25", "03-17"]
    assert [p.value for p in series.volume] == [500.0, 950.0]
    assert [p.value for p in series.sessions] == [1, 2]
    assert [p.value for p in series.minutes] == [30, 50]


@pytest.mark.asyncio
async def test_weekly_series_monday_start(repos, athlete, log_session):
    stats = StatisticsService(repos, SettingsSchema(week_start="monday"), clock=lambda: NOW)
    await log_session(
        athlete.user.id, athlete.push.id, "2024-03-17T10:00:00Z", "2024-03-17T11:00:00Z",
        [(athlete.bench.id, [(10, 50.0)])],
    )
    await log_session(
        athlete.user.id, athlete.push.id, "2024-03-18T10:00:00Z", "2024-03-18T11:00:00Z",
        [(athlete.bench.id, [(10, 50.0)])],
    )
    labels = [p.label for p in await stats.sessions_by_week(athlete.user.id, 4)]
    assert labels == ["03-11", "03-18"]


@pytest.mark.asyncio
async def test_sessions_outside_window_are_ignored(stats, athlete, log_session):
    await log_session(
        athlete.user.id, athlete.push.id, "2023-12-01T10:00:00Z", "2023-12-01T11:00:00Z",
        [(athlete.bench.id, [(10, 50.0)])],
    )
    assert await stats.volume_by_week(athlete.user.id, 8) == []
    assert await stats.top_exercises(athlete.user.id, 8) == []


@pytest.mark.asyncio
async def test_top_exercises_counts_sessions_not_sets(stats, athlete, log_session):
    uid = athlete.user.id
    await log_session(
        uid, athlete.push.id, "2024-03-18T10:00:00Z", "2024-03-18T11:00:00Z",
        [
            (athlete.bench.id, [(10, 50.0), (10, 50.0), (10, 50.0)]),
            (athlete.curl.id, [(12, 10.0)]),
        ],
    )
    await log_session(
        uid, athlete.legs.id, "2024-03-19T10:00:00Z", "2024-03-19T11:00:00Z",
        [(athlete.squat.id, [(5, 100.0)]), (athlete.curl.id, [(12, 10.0)])],
    )
    top = await stats.top_exercises(uid, 4)
    assert [(t.exercise_name, t.volume, t.session_count) for t in top] == [
        ("Bench Press", 1500.0, 1),
        ("Squat", 500.0, 1),
        ("Cable Curl", 240.0, 2),
    ]
    limited = await stats.top_exercises(uid, 4, limit=1)
    assert [t.exercise_id for t in limited] == [athlete.bench.id]


@pytest.mark.asyncio
async def test_top_exercises_ignores_exercises_without_sets(stats, athlete, log_session):
    await log_session(
        athlete.user.id, athlete.push.id, "2024-03-18T10:00:00Z", "2024-03-18T11:00:00Z",
        [(athlete.bench.id, [(10, 50.0)]), (athlete.curl.id, [])],
    )
    top = await stats.top_exercises(athlete.user.id, 4)
    assert [t.exercise_id for t in top] == [athlete.bench.id]


@pytest.mark.asyncio
async def test_volume_by_category(stats, repos, athlete, log_session):
    uid = athlete.user.id
    await log_session(
        uid, athlete.push.id, "2024-03-18T10:00:00Z", "2024-03-18T11:00:00Z",
        [(athlete.bench.id, [(10, 50.0)])],
    )
    await log_session(
        uid, athlete.legs.id, "2024-03-19T10:00:00Z", "2024-03-19T11:00:00Z",
        [(athlete.squat.id, [(5, 200.0)])],
    )
    await log_session(
        uid, athlete.legs.id, "2024-03-12T10:00:00Z", "2024-03-12T11:00:00Z",
        [(athlete.squat.id, [(5, 100.0)])],
    )
    result = await stats.volume_by_category(uid, 4)
    assert [(c.category_name, c.volume) for c in result] == [
        ("Legs", 1500.0),
        ("Push", 500.0),
    ]

    await repos.categories.delete(athlete.push.id)
    result = await stats.volume_by_category(uid, 4)
    assert result[1].category_id == athlete.push.id
    assert result[1].category_name == athlete.push.id


@pytest.mark.asyncio
async def test_exercise_progress_is_per_exercise_and_user(stats, repos, athlete, log_session):
    other = await repos.users.create("Sam")
    await log_session(
        athlete.user.id, athlete.push.id, "2024-03-18T10:00:00Z", "2024-03-18T11:00:00Z",
        [(athlete.bench.id, [(8, 60.0)]), (athlete.squat.id, [(5, 120.0)])],
    )
    await log_session(
        other.id, "other-category", "2024-03-18T12:00:00Z", "2024-03-18T13:00:00Z",
        [(athlete.bench.id, [(8, 90.0)])],
    )
    progress = await stats.exercise_progress(athlete.user.id, athlete.bench.id, 4)
    assert [(p.max_weight, p.volume) for p in progress] == [(60.0, 480.0)]


@pytest.mark.asyncio
async def test_exercise_stats(stats, athlete, log_session):
    await two_bench_sessions(athlete, log_session)
    result = await stats.exercise_stats(athlete.user.id, athlete.bench.id)
    assert result == ExerciseStats(max_weight=55.0, best_volume=1050.0)
    assert await stats.exercise_stats(athlete.user.id, athlete.squat.id) == ExerciseStats()


@pytest.mark.asyncio
async def test_no_record_below_previous_best(stats, athlete, log_session):
    uid = athlete.user.id
    await log_session(
        uid, athlete.push.id, "2024-03-11T10:00:00Z", "2024-03-11T11:00:00Z",
        [(athlete.bench.id, [(3, 100.0)])],
    )
    lighter = await log_session(
        uid, athlete.push.id, "2024-03-18T10:00:00Z", "2024-03-18T11:00:00Z",
        [(athlete.bench.id, [(10, 80.0)]), (athlete.curl.id, [(15, 0.0)])],
    )
    assert await stats.session_personal_records(uid, lighter.id) == []


@pytest.mark.asyncio
async def test_activity_heatmap(stats, athlete, log_session):
    uid = athlete.user.id
    await log_session(
        uid, athlete.push.id, "2024-03-18T07:00:00Z", "2024-03-18T08:00:00Z",
        [(athlete.bench.id, [(10, 50.0)])],
    )
    await log_session(
        uid, athlete.legs.id, "2024-03-18T18:00:00Z", "2024-03-18T19:00:00Z",
        [(athlete.squat.id, [(5, 100.0)])],
    )
    await log_session(uid, athlete.legs.id, "2024-03-19T18:00:00Z", "2024-03-19T19:00:00Z")
    days = await stats.activity_heatmap(uid, 1)
    assert [(d.date, d.sessions, d.volume) for d in days] == [
        ("2024-03-18", 2, 1000.0),
        ("2024-03-19", 1, 0.0),
    ]


@pytest.mark.asyncio
async def test_heatmap_uses_configured_timezone(repos, athlete, log_session):
    stats = StatisticsService(
        repos, SettingsSchema(timezone="America/New_York"), clock=lambda: NOW
    )
    await log_session(
        athlete.user.id, athlete.push.id, "2024-03-18T02:00:00Z", "2024-03-18T03:00:00Z"
    )
    days = await stats.activity_heatmap(athlete.user.id, 1)
    assert [d.date for d in days] == ["2024-03-17"]


@pytest.mark.asyncio
async def test_session_items(stats, repos, athlete, log_session):
    uid = athlete.user.id
    older = await log_session(
        uid, athlete.push.id, "2024-03-18T10:00:00Z", "2024-03-18T10:40:00Z",
        [(athlete.bench.id, [(10, 50.0)])],
    )
    newer = await log_session(uid, athlete.legs.id, "2024-03-20T11:15:00Z")
    await repos.categories.delete(athlete.legs.id)
    items = await stats.session_items(uid)
    assert [i.session.id for i in items] == [newer.id, older.id]
    assert [(i.category_name, i.duration_mins, i.volume) for i in items] == [
        ("Workout", 45, 0.0),
        ("Push", 40, 500.0),
    ]


@pytest.mark.asyncio
async def test_session_summary(stats, athlete, log_session):
    first, second = await two_bench_sessions(athlete, log_session)
    summary = await stats.session_summary(athlete.user.id, first.id)
    assert summary.category_name == "Push"
    assert summary.duration_mins == 60
    assert summary.total_volume == 1050.0
    assert [log.exercise_name for log in summary.exercises] == ["Bench Press"]
    assert [s.weight for s in summary.exercises[0].sets] == [50.0, 55.0]
    assert await stats.session_summary(athlete.user.id, "missing") is None


@pytest.mark.asyncio
async def test_results_are_stable_across_calls(stats, athlete, log_session):
    await two_bench_sessions(athlete, log_session)
    uid = athlete.user.id
    assert await stats.weekly_series(uid, 4) == await stats.weekly_series(uid, 4)
    assert await stats.top_exercises(uid, 4) == await stats.top_exercises(uid, 4)
    assert await stats.global_summary(uid) == await stats.global_summary(uid)


@pytest.mark.asyncio
async def test_bulk_and_nested_reads_agree(stats, repos, athlete, log_session, caplog):
    uid = athlete.user.id
    await two_bench_sessions(athlete, log_session)
    await log_session(
        uid, athlete.legs.id, "2024-03-19T10:00:00Z", "2024-03-19T11:00:00Z",
        [(athlete.squat.id, [(5, 100.0), (5, 105.0)]), (athlete.curl.id, [])],
    )
    await log_session(uid, athlete.legs.id, "2024-03-20T09:00:00Z")
    bulk = StatisticsService(
        repos, SettingsSchema(bulk_fetch_threshold=0), clock=lambda: NOW
    )
    with caplog.at_level(logging.DEBUG, logger="stats_service"):
        assert await bulk.weekly_series(uid, 4) == await stats.weekly_series(uid, 4)
    assert "Bulk-reading sets" in caplog.text
    assert await bulk.top_exercises(uid, 4) == await stats.top_exercises(uid, 4)
    assert await bulk.volume_by_category(uid, 4) == await stats.volume_by_category(uid, 4)
    assert await bulk.activity_heatmap(uid, 4) == await stats.activity_heatmap(uid, 4)
    assert await bulk.global_summary(uid) == await stats.global_summary(uid)
    assert await bulk.session_items(uid) == await stats.session_items(uid)
