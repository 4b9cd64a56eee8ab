from collections import namedtuple
from datetime import date, timedelta

import pytest

from progression import (
    DEFAULT_RANK_TIERS,
    Tier,
    calculate_streaks,
    consistency_rate,
    convert_weight,
    evaluate_achievements,
    format_weight,
    group_by_month,
    percent_change,
    rank_ladder,
    rank_progress,
    resolve_rank,
    suggest_exercises,
    summarize_activity,
    total_weight_moved,
    weekly_counts,
    workout_xp,
)

Entry = namedtuple("Entry", "sets reps weight weight_unit")
Row = namedtuple("Row", "id date xp_gained exercises")


# ---------------------------------------------------------
# Rank resolver
# ---------------------------------------------------------
@pytest.mark.parametrize(
    "xp, expected",
    [
        (0, "Runt of the Litter"),
        (100, "Runt of the Litter"),
        (101, "Little Pup"),
        (450, "Packling"),
        (451, "Howler"),
        (1001, "Alpha Wolf"),
        (9999, "Sigma Wolf Elite"),
    ],
)
def test_resolve_rank_picks_highest_reached_tier(xp, expected):
    assert resolve_rank(xp, DEFAULT_RANK_TIERS).rank == expected


def test_resolved_tier_is_unique_for_every_xp():
    tiers = DEFAULT_RANK_TIERS
    for xp in range(0, 3000, 7):
        status = resolve_rank(xp, tiers)
        index = [t.rank for t in tiers].index(status.rank)
        assert tiers[index].min_xp <= xp
        assert index == len(tiers) - 1 or tiers[index + 1].min_xp > xp


def test_next_rank_threshold():
    status = resolve_rank(380, DEFAULT_RANK_TIERS)
    assert status.rank == "Packling"
    assert status.next_rank == "Howler"
    assert status.next_rank_xp == 451


def test_top_tier_next_threshold_adds_headroom():
    status = resolve_rank(5000, DEFAULT_RANK_TIERS)
    assert status.next_rank is None
    assert status.next_rank_xp == 2601


def test_empty_tiers_and_negative_xp_fall_back_to_first_tier():
    assert resolve_rank(50, []).rank == "Runt of the Litter"
    tiers = [Tier("Bronze", 10), Tier("Silver", 20)]
    status = resolve_rank(-5, tiers)
    assert status.rank == "Bronze"
    assert status.next_rank_xp == 20


def test_rank_progress_is_capped():
    assert rank_progress(380, 451) == 84
    assert rank_progress(900, 451) == 100
    assert rank_progress(10, 0) == 0


def test_rank_ladder_marks_reached_and_current():
    ladder = rank_ladder(300, DEFAULT_RANK_TIERS)
    assert [row["reached"] for row in ladder[:4]] == [True, True, True, False]
    current = [row for row in ladder if row["current"]]
    assert len(current) == 1
    assert current[0]["rank"] == "Packling"
    assert current[0]["max_xp"] == 450
    assert current[0]["progress"] == 25
    assert ladder[-1]["max_xp"] is None


def test_workout_xp():
    assert workout_xp(3) == 30
    assert workout_xp(0) == 0


# ---------------------------------------------------------
# Streak calculator
# ---------------------------------------------------------
def test_empty_dates_have_no_streak():
    assert calculate_streaks([], today=date(2023, 4, 10)) == (0, 0)


def test_single_workout_today():
    today = date(2023, 4, 10)
    assert calculate_streaks([today], today=today).current == 1


def test_run_ending_yesterday_counts():
    today = date(2023, 4, 10)
    dates = [today - timedelta(days=n) for n in range(1, 5)]
    assert calculate_streaks(dates, today=today) == (4, 4)


def test_gap_before_today_resets_current_streak():
    today = date(2023, 4, 10)
    dates = [today - timedelta(days=n) for n in range(2, 9)]
    summary = calculate_streaks(dates, today=today)
    assert summary.current == 0
    assert summary.longest == 7


def test_duplicate_days_and_unsorted_input():
    today = date(2023, 4, 10)
    dates = ["2023-04-09", date(2023, 4, 10), "2023-04-10", date(2023, 4, 8)]
    assert calculate_streaks(dates, today=today) == (3, 3)


def test_streak_example_from_history():
    dates = [date(2023, 4, 10), date(2023, 4, 9), date(2023, 4, 7)]
    assert calculate_streaks(dates, today=date(2023, 4, 10)) == (2, 2)


def test_longest_streak_is_not_anchored_to_today():
    dates = [date(2023, 4, 10), date(2023, 3, 1), date(2023, 3, 2), date(2023, 3, 3)]
    assert calculate_streaks(dates, today=date(2023, 4, 10)) == (1, 3)


# ---------------------------------------------------------
# Unit normalizer
# ---------------------------------------------------------
def test_same_unit_conversion_is_a_no_op():
    assert convert_weight(80.0, "kg", "kg") == 80.0
    assert convert_weight(80.0, "lbs", "lbs") == 80.0


def test_kg_and_lbs_conversion():
    assert convert_weight(100, "kg", "lbs") == pytest.approx(220.462)
    assert convert_weight(100, "lbs", "kg") == pytest.approx(45.3592)


def test_total_weight_moved_converts_and_skips_bodyweight():
    entries = [
        Entry(3, 10, 80, "kg"),
        Entry(2, 5, 100, "lbs"),
        Entry(3, 12, None, "kg"),
        Entry(3, 10, 70, "bodyweight"),
    ]
    expected = 80 * 30 + 100 * 0.453592 * 10
    assert total_weight_moved(entries, "kg") == pytest.approx(expected)


def test_format_weight():
    assert format_weight(12540.4, "kg") == "12,540 kg"


# ---------------------------------------------------------
# Month grouper
# ---------------------------------------------------------
def test_group_by_month_is_a_partition_preserving_order():
    rows = [
        Row(1, date(2023, 4, 10), 10, []),
        Row(2, date(2023, 3, 29), 10, []),
        Row(3, date(2023, 4, 2), 10, []),
        Row(4, date(2022, 4, 2), 10, []),
    ]
    groups = group_by_month(rows)

    assert list(groups) == ["April 2023", "March 2023", "April 2022"]
    assert [r.id for r in groups["April 2023"]] == [1, 3]
    flattened = sorted(r.id for bucket in groups.values() for r in bucket)
    assert flattened == [1, 2, 3, 4]


# ---------------------------------------------------------
# Supporting computations
# ---------------------------------------------------------
def test_weekly_counts_start_on_monday():
    today = date(2023, 4, 12)  # Wednesday
    dates = [date(2023, 4, 10), date(2023, 4, 12), date(2023, 4, 9), date(2023, 4, 3)]
    assert weekly_counts(dates, today) == (2, 2)


def test_percent_change():
    assert percent_change(3, 2) == 50
    assert percent_change(1, 2) == -50
    assert percent_change(3, 0) is None


def test_consistency_rate():
    assert consistency_rate(9) == 30
    assert consistency_rate(45) == 100


def test_suggest_exercises():
    assert suggest_exercises("press") == ["Bench Press", "Overhead Press"]
    assert suggest_exercises("") == []


def test_achievements_progress_and_earned():
    statuses = {s.name: s for s in evaluate_achievements(1, 4, 15000, 380)}
    assert statuses["First Blood"].earned
    assert statuses["Hat-trick"].earned
    assert not statuses["Week Warrior"].earned
    assert statuses["Week Warrior"].progress == 57
    assert statuses["Century Club"].earned
    assert statuses["Double Century"].progress == 75
    assert statuses["Alpha Status"].progress == 37


def test_summarize_activity():
    today = date(2023, 4, 10)
    rows = [
        Row(1, date(2023, 4, 10), 30, [Entry(3, 10, 80, "kg")]),
        Row(2, date(2023, 4, 9), 20, [Entry(2, 10, 100, "lbs")]),
        Row(3, date(2023, 4, 7), 10, [Entry(3, 10, None, "bodyweight")]),
    ]
    summary = summarize_activity(rows, DEFAULT_RANK_TIERS, "lbs", today)

    assert summary.xp == 60
    assert summary.rank.rank == "Runt of the Litter"
    assert summary.streaks == (2, 2)
    assert summary.today_xp == 30
    assert summary.total_workouts == 3
    assert summary.total_weight == pytest.approx(80 * 2.20462 * 30 + 100 * 20)
    assert summary.total_weight_kg == pytest.approx(80 * 30 + 100 * 0.453592 * 20)
    assert summary.rank_progress == 59
