# progression.py
"""
Progression & activity engine for MyPack.

Everything here is a pure function over rows already fetched from the
store; nothing touches the database. Rows are duck-typed:

  workouts: objects with date, xp_gained, exercises
  exercise entries: objects with sets, reps, weight, weight_unit
  rank tiers: objects with rank, min_xp (ascending by min_xp)

Pages call summarize_activity() once per request and render the result.
"""

import math
from collections import OrderedDict, namedtuple
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence

Tier = namedtuple("Tier", ["rank", "min_xp"])
RankStatus = namedtuple("RankStatus", ["rank", "min_xp", "next_rank", "next_rank_xp"])
StreakSummary = namedtuple("StreakSummary", ["current", "longest"])

DEFAULT_RANK_TIERS = [
    Tier("Runt of the Litter", 0),
    Tier("Little Pup", 101),
    Tier("Packling", 251),
    Tier("Howler", 451),
    Tier("Beta Wolf", 701),
    Tier("Alpha Wolf", 1001),
    Tier("Sigma Wolf", 1501),
    Tier("Sigma Wolf Elite", 2501),
]

XP_PER_EXERCISE = 10
TOP_TIER_HEADROOM = 100

KG_TO_LBS = 2.20462
LBS_TO_KG = 0.453592
BODYWEIGHT = "bodyweight"

POPULAR_EXERCISES = [
    "Bench Press",
    "Squat",
    "Deadlift",
    "Pull-ups",
    "Push-ups",
    "Overhead Press",
    "Barbell Row",
    "Lunges",
    "Bicep Curls",
    "Tricep Extensions",
]


def _as_date(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


# ---------------------------------------------------------
# XP and ranks
# ---------------------------------------------------------
def workout_xp(exercise_count: int) -> int:
    return XP_PER_EXERCISE * max(exercise_count, 0)


def resolve_rank(xp: int, tiers: Sequence) -> RankStatus:
    """Return the highest tier whose threshold is <= xp.

    An empty tier list falls back to DEFAULT_RANK_TIERS and negative XP
    lands on the first tier. At the top tier the next threshold is the
    tier's own threshold plus TOP_TIER_HEADROOM.
    """
    tiers = list(tiers) or DEFAULT_RANK_TIERS

    index = 0
    for i, tier in enumerate(tiers):
        if xp >= tier.min_xp:
            index = i
        else:
            break

    current = tiers[index]
    if index + 1 < len(tiers):
        upcoming = tiers[index + 1]
        return RankStatus(current.rank, current.min_xp, upcoming.rank, upcoming.min_xp)
    return RankStatus(current.rank, current.min_xp, None, current.min_xp + TOP_TIER_HEADROOM)


def rank_progress(xp: int, next_rank_xp: int) -> int:
    if next_rank_xp <= 0:
        return 0
    return max(0, min(math.floor(xp / next_rank_xp * 100), 100))


def rank_ladder(xp: int, tiers: Sequence) -> List[dict]:
    """Rows for the rank progression table on the profile page."""
    tiers = list(tiers) or DEFAULT_RANK_TIERS
    status = resolve_rank(xp, tiers)

    ladder = []
    for i, tier in enumerate(tiers):
        max_xp = tiers[i + 1].min_xp - 1 if i + 1 < len(tiers) else None
        current = tier.rank == status.rank
        progress = None
        if current:
            if max_xp is None or max_xp <= tier.min_xp:
                progress = 100
            else:
                span = max_xp - tier.min_xp
                progress = max(0, min(round((xp - tier.min_xp) / span * 100), 100))
        ladder.append(
            {
                "rank": tier.rank,
                "min_xp": tier.min_xp,
                "max_xp": max_xp,
                "reached": xp >= tier.min_xp,
                "current": current,
                "progress": progress,
            }
        )
    return ladder


# ---------------------------------------------------------
# Streaks
# ---------------------------------------------------------
def calculate_streaks(dates: Iterable, today: Optional[date] = None) -> StreakSummary:
    """Current and longest runs of consecutive training days.

    The current streak only counts when the latest day is today or
    yesterday. The longest streak scans the whole history.
    """
    today = today or date.today()
    days = sorted({_as_date(d) for d in dates}, reverse=True)
    if not days:
        return StreakSummary(0, 0)

    one_day = timedelta(days=1)

    current = 0
    if days[0] == today or days[0] == today - one_day:
        current = 1
        for newer, older in zip(days, days[1:]):
            if newer - older != one_day:
                break
            current += 1

    longest = run = 1
    for newer, older in zip(days, days[1:]):
        if newer - older == one_day:
            run += 1
        else:
            run = 1
        longest = max(longest, run)

    return StreakSummary(current, longest)


# ---------------------------------------------------------
# Weight units
# ---------------------------------------------------------
def convert_weight(weight: float, from_unit: str, to_unit: str) -> float:
    if from_unit == to_unit or BODYWEIGHT in (from_unit, to_unit):
        return weight
    if from_unit == "kg" and to_unit == "lbs":
        return weight * KG_TO_LBS
    if from_unit == "lbs" and to_unit == "kg":
        return weight * LBS_TO_KG
    raise ValueError(f"Unknown weight unit conversion: {from_unit} -> {to_unit}")


def total_weight_moved(entries: Iterable, preferred_unit: str = "kg") -> float:
    total = 0.0
    for entry in entries:
        unit = entry.weight_unit or "kg"
        if unit == BODYWEIGHT or not entry.weight:
            continue
        weight = convert_weight(float(entry.weight), unit, preferred_unit)
        total += weight * entry.sets * entry.reps
    return total


def format_weight(total: float, unit: str) -> str:
    return f"{round(total):,} {unit}"


def format_entry_weight(entry) -> str:
    if entry.weight_unit == BODYWEIGHT or not entry.weight:
        return "BW"
    return f"{entry.weight:g}{entry.weight_unit}"


# ---------------------------------------------------------
# Grouping and calendar helpers
# ---------------------------------------------------------
def group_by_month(workouts: Iterable) -> "OrderedDict[str, list]":
    """Bucket workouts under "Month Year", keeping their given order."""
    groups = OrderedDict()
    for workout in workouts:
        key = _as_date(workout.date).strftime("%B %Y")
        groups.setdefault(key, []).append(workout)
    return groups


def weekly_counts(dates: Iterable, today: Optional[date] = None):
    """(workouts this week, workouts last week); weeks start on Monday."""
    today = today or date.today()
    week_start = today - timedelta(days=today.weekday())
    last_week_start = week_start - timedelta(days=7)
    next_week_start = week_start + timedelta(days=7)

    this_week = last_week = 0
    for d in dates:
        d = _as_date(d)
        if week_start <= d < next_week_start:
            this_week += 1
        elif last_week_start <= d < week_start:
            last_week += 1
    return this_week, last_week


def percent_change(current: int, previous: int) -> Optional[int]:
    if not previous:
        return None
    return round((current - previous) / previous * 100)


def consistency_rate(workout_days: int, period_days: int = 30) -> int:
    if period_days <= 0:
        return 0
    return min(math.floor(workout_days / period_days * 100), 100)


def suggest_exercises(query: str, limit: int = 5) -> List[str]:
    query = (query or "").strip().lower()
    if not query:
        return []
    matches = [name for name in POPULAR_EXERCISES if query in name.lower()]
    return matches[:limit]


# ---------------------------------------------------------
# Achievements
# ---------------------------------------------------------
ACHIEVEMENTS = [
    # (name, description, metric, goal)
    ("First Blood", "Complete your first workout", "workouts", 1),
    ("Hat-trick", "Complete 3 workouts in 3 consecutive days", "streak", 3),
    ("Week Warrior", "Complete 7 workouts in 7 consecutive days", "streak", 7),
    ("Century Club", "Lift a total of 10,000 kg", "weight_kg", 10000),
    ("Double Century", "Lift a total of 20,000 kg", "weight_kg", 20000),
    ("Month Master", "Complete 30 workouts in 30 consecutive days", "streak", 30),
    ("Alpha Status", "Reach Alpha Wolf rank", "xp", None),
]

AchievementStatus = namedtuple(
    "AchievementStatus", ["name", "description", "earned", "progress"]
)


def _alpha_threshold(tiers):
    for tier in tiers:
        if tier.rank == "Alpha Wolf":
            return tier.min_xp
    return 1001


def evaluate_achievements(
    total_workouts: int,
    longest_streak: int,
    total_weight_kg: float,
    xp: int,
    tiers: Sequence = (),
) -> List[AchievementStatus]:
    metrics = {
        "workouts": total_workouts,
        "streak": longest_streak,
        "weight_kg": total_weight_kg,
        "xp": xp,
    }
    tiers = list(tiers) or DEFAULT_RANK_TIERS

    statuses = []
    for name, description, metric, goal in ACHIEVEMENTS:
        if goal is None:
            goal = _alpha_threshold(tiers)
        value = metrics[metric]
        earned = value >= goal
        progress = 100 if earned else min(math.floor(value / goal * 100), 99)
        statuses.append(AchievementStatus(name, description, earned, progress))
    return statuses


# ---------------------------------------------------------
# Page summary
# ---------------------------------------------------------
@dataclass
class ActivitySummary:
    xp: int
    rank: RankStatus
    streaks: StreakSummary
    total_workouts: int
    total_weight: float
    total_weight_kg: float
    weight_unit: str
    today_xp: int
    workouts_this_week: int
    workouts_last_week: int

    @property
    def rank_progress(self) -> int:
        return rank_progress(self.xp, self.rank.next_rank_xp)

    @property
    def weight_label(self) -> str:
        return format_weight(self.total_weight, self.weight_unit)

    @property
    def weekly_change(self) -> Optional[int]:
        return percent_change(self.workouts_this_week, self.workouts_last_week)


def summarize_activity(
    workouts: Sequence,
    tiers: Sequence,
    preferred_unit: str = "kg",
    today: Optional[date] = None,
) -> ActivitySummary:
    today = today or date.today()
    dates = [_as_date(w.date) for w in workouts]
    entries = [entry for w in workouts for entry in w.exercises]

    xp = sum(w.xp_gained or 0 for w in workouts)
    this_week, last_week = weekly_counts(dates, today)

    return ActivitySummary(
        xp=xp,
        rank=resolve_rank(xp, tiers),
        streaks=calculate_streaks(dates, today),
        total_workouts=len(workouts),
        total_weight=total_weight_moved(entries, preferred_unit),
        total_weight_kg=total_weight_moved(entries, "kg"),
        weight_unit=preferred_unit,
        today_xp=sum(w.xp_gained or 0 for w, d in zip(workouts, dates) if d == today),
        workouts_this_week=this_week,
        workouts_last_week=last_week,
    )
