# store.py
"""
Data access for MyPack.

Every page loads what it needs through these functions on each request;
nothing is cached between requests. Callers own the session and close it.
Database failures are logged and re-raised as StoreError so routes can
show a notification instead of crashing.
"""

import logging
from datetime import date
from functools import wraps

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import contains_eager, joinedload, selectinload

from models import (
    Achievement,
    ExerciseEntry,
    FriendRequest,
    RankTier,
    User,
    UserProfile,
    Workout,
)
from progression import summarize_activity, workout_xp

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """A request to the data store failed."""


class AuthError(StoreError):
    """Sign-up or sign-in was refused."""


def remote(f):
    """Roll back and wrap SQLAlchemy failures raised by a store call."""

    @wraps(f)
    def wrapper(db, *args, **kwargs):
        try:
            return f(db, *args, **kwargs)
        except StoreError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("Store call %s failed", f.__name__)
            raise StoreError(f"{f.__name__} failed: {exc}") from exc

    return wrapper


# ---------------------------------------------------------
# Identity and profiles
# ---------------------------------------------------------
@remote
def sign_up(db, email, password_hash, display_name):
    user = User(email=email.lower(), password_hash=password_hash)
    user.profile = UserProfile(display_name=display_name)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise AuthError("User already registered")
    logger.info("Registered user %s", user.id)
    return user


@remote
def get_user(db, user_id):
    return db.query(User).options(joinedload(User.profile)).filter_by(id=user_id).first()


@remote
def get_user_by_email(db, email):
    return db.query(User).filter_by(email=email.lower()).first()


@remote
def get_profile(db, user_id):
    return db.query(UserProfile).filter_by(user_id=user_id).first()


@remote
def update_profile(db, user_id, form):
    user = db.query(User).filter_by(id=user_id).first()
    if user is None:
        raise StoreError(f"User {user_id} not found")

    clash = (
        db.query(User)
        .filter(User.email == form.email.lower(), User.id != user_id)
        .first()
    )
    if clash:
        raise StoreError("Email already in use")

    profile = get_profile(db, user_id) or UserProfile(user_id=user_id)
    user.email = form.email.lower()
    profile.display_name = form.display_name
    profile.bio = form.bio
    profile.fitness_goal = form.fitness_goal
    profile.weight_unit = form.weight_unit
    user.profile = profile

    db.commit()
    logger.info("Updated profile for user %s", user_id)
    return profile


# ---------------------------------------------------------
# Ranks
# ---------------------------------------------------------
@remote
def list_rank_tiers(db):
    return db.query(RankTier).order_by(RankTier.min_xp).all()


# ---------------------------------------------------------
# Workouts
# ---------------------------------------------------------
def _workouts_query(db, user_id):
    # exercises come back in one extra SELECT ... IN, not one per workout
    return (
        db.query(Workout)
        .options(selectinload(Workout.exercises))
        .filter(Workout.user_id == user_id)
        .order_by(Workout.date.desc(), Workout.id.desc())
    )


@remote
def list_workouts(db, user_id, search=None):
    query = _workouts_query(db, user_id)
    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(
            or_(
                func.lower(Workout.name).like(pattern),
                Workout.exercises.any(func.lower(ExerciseEntry.name).like(pattern)),
            )
        )
    return query.all()


@remote
def list_workouts_between(db, user_id, start, end):
    """Workouts dated start <= date < end."""
    return (
        _workouts_query(db, user_id)
        .filter(and_(Workout.date >= start, Workout.date < end))
        .all()
    )


@remote
def get_workout(db, user_id, workout_id):
    return (
        _workouts_query(db, user_id).filter(Workout.id == workout_id).first()
    )


@remote
def log_workout(db, user_id, form):
    """Insert a workout and its exercises in one transaction."""
    workout = Workout(
        user_id=user_id,
        name=form.title,
        date=form.date,
        notes=form.notes,
        xp_gained=workout_xp(len(form.exercises)),
    )
    db.add(workout)
    db.flush()  # assigns workout.id

    for exercise in form.exercises:
        db.add(
            ExerciseEntry(
                workout_id=workout.id,
                name=exercise.name,
                muscle_group=exercise.muscle_group,
                sets=exercise.sets,
                reps=exercise.reps,
                weight=exercise.weight,
                weight_unit=exercise.weight_unit,
            )
        )

    db.commit()
    logger.info(
        "User %s logged workout %s (%d exercises, +%d XP)",
        user_id,
        workout.id,
        len(form.exercises),
        workout.xp_gained,
    )
    return workout


@remote
def delete_workout(db, user_id, workout_id):
    workout = db.query(Workout).filter_by(id=workout_id, user_id=user_id).first()
    if workout is None:
        return False
    db.delete(workout)
    db.commit()
    logger.info("User %s deleted workout %s", user_id, workout_id)
    return True


@remote
def list_exercise_catalog(db, user_id, query=None):
    """Distinct (name, muscle_group) pairs the user has logged."""
    q = (
        db.query(ExerciseEntry.name, func.max(ExerciseEntry.muscle_group))
        .join(Workout, ExerciseEntry.workout_id == Workout.id)
        .filter(Workout.user_id == user_id)
        .group_by(ExerciseEntry.name)
        .order_by(ExerciseEntry.name)
    )
    if query:
        q = q.filter(func.lower(ExerciseEntry.name).like(f"%{query.strip().lower()}%"))
    return [{"name": name, "muscle_group": group or ""} for name, group in q.all()]


# ---------------------------------------------------------
# Activity
# ---------------------------------------------------------
@remote
def load_activities(db, user_ids, today=None):
    """Activity summaries for several users, keyed by user id.

    Profiles, workouts, exercises and tiers each take one query no matter
    how many users are asked for.
    """
    ids = list(user_ids)
    if not ids:
        return {}
    units = {
        p.user_id: p.weight_unit
        for p in db.query(UserProfile).filter(UserProfile.user_id.in_(ids))
    }
    by_user = {uid: [] for uid in ids}
    workouts = (
        db.query(Workout)
        .options(selectinload(Workout.exercises))
        .filter(Workout.user_id.in_(ids))
        .order_by(Workout.date.desc(), Workout.id.desc())
    )
    for workout in workouts:
        by_user[workout.user_id].append(workout)

    tiers = db.query(RankTier).order_by(RankTier.min_xp).all()
    today = today or date.today()
    return {
        uid: summarize_activity(
            by_user[uid], tiers, preferred_unit=units.get(uid, "kg"), today=today
        )
        for uid in ids
    }


@remote
def load_activity(db, user_id, today=None):
    return load_activities(db, [user_id], today)[user_id]


# ---------------------------------------------------------
# Pack (friends)
# ---------------------------------------------------------
def _friend_ids(db, user_id):
    rows = (
        db.query(FriendRequest)
        .filter(
            FriendRequest.status == "accepted",
            or_(FriendRequest.sender_id == user_id, FriendRequest.receiver_id == user_id),
        )
        .all()
    )
    return {r.receiver_id if r.sender_id == user_id else r.sender_id for r in rows}


@remote
def list_friends(db, user_id, search=None):
    ids = _friend_ids(db, user_id)
    if not ids:
        return []
    query = (
        db.query(User)
        .join(UserProfile)
        .options(contains_eager(User.profile))
        .filter(User.id.in_(ids))
        .order_by(UserProfile.display_name)
    )
    if search:
        query = query.filter(
            func.lower(UserProfile.display_name).like(f"%{search.strip().lower()}%")
        )
    return query.all()


@remote
def are_friends(db, user_id, other_id):
    return other_id in _friend_ids(db, user_id)


@remote
def list_incoming_requests(db, user_id):
    return (
        db.query(FriendRequest)
        .filter_by(receiver_id=user_id, status="pending")
        .order_by(FriendRequest.created_at.desc())
        .all()
    )


@remote
def list_suggestions(db, user_id, search=None, limit=5):
    """Users with no open or accepted request either way, ranked by mutual friends.

    A rejected request does not hide the pair, so it can be sent again.
    """
    linked = db.query(FriendRequest).filter(
        FriendRequest.status != "rejected",
        or_(FriendRequest.sender_id == user_id, FriendRequest.receiver_id == user_id),
    )
    excluded = {user_id}
    mine = set()
    for r in linked:
        other = r.receiver_id if r.sender_id == user_id else r.sender_id
        excluded.add(other)
        if r.status == "accepted":
            mine.add(other)

    query = (
        db.query(User)
        .join(UserProfile)
        .options(contains_eager(User.profile))
        .filter(User.id.notin_(excluded))
    )
    if search:
        query = query.filter(
            func.lower(UserProfile.display_name).like(f"%{search.strip().lower()}%")
        )
    candidates = query.all()

    mutual = {c.id: 0 for c in candidates}
    if mine and candidates:
        ids, friends = list(mutual), list(mine)
        rows = db.query(FriendRequest.sender_id, FriendRequest.receiver_id).filter(
            FriendRequest.status == "accepted",
            or_(
                and_(FriendRequest.sender_id.in_(ids), FriendRequest.receiver_id.in_(friends)),
                and_(FriendRequest.receiver_id.in_(ids), FriendRequest.sender_id.in_(friends)),
            ),
        )
        for sender_id, receiver_id in rows:
            candidate = sender_id if sender_id in mutual else receiver_id
            mutual[candidate] += 1

    suggestions = [{"user": c, "mutual_friends": mutual[c.id]} for c in candidates]
    suggestions.sort(key=lambda s: (-s["mutual_friends"], s["user"].profile.display_name))
    return suggestions[:limit]


@remote
def send_friend_request(db, sender_id, receiver_id):
    if sender_id == receiver_id:
        raise StoreError("You cannot add yourself to your pack")

    existing = (
        db.query(FriendRequest)
        .filter(
            or_(
                and_(FriendRequest.sender_id == sender_id, FriendRequest.receiver_id == receiver_id),
                and_(FriendRequest.sender_id == receiver_id, FriendRequest.receiver_id == sender_id),
            )
        )
        .first()
    )
    if existing and existing.status in ("pending", "accepted"):
        raise StoreError("A pack request already exists")
    if existing:
        # a rejected request can be sent again
        existing.sender_id = sender_id
        existing.receiver_id = receiver_id
        existing.status = "pending"
        request = existing
    else:
        request = FriendRequest(sender_id=sender_id, receiver_id=receiver_id)
        db.add(request)

    db.commit()
    logger.info("User %s sent pack request to %s", sender_id, receiver_id)
    return request


@remote
def respond_to_request(db, user_id, request_id, accept):
    request = (
        db.query(FriendRequest)
        .filter_by(id=request_id, receiver_id=user_id, status="pending")
        .first()
    )
    if request is None:
        raise StoreError("Pack request not found")
    request.status = "accepted" if accept else "rejected"
    db.commit()
    logger.info("User %s %s pack request %s", user_id, request.status, request_id)
    return request


# ---------------------------------------------------------
# Achievements
# ---------------------------------------------------------
@remote
def list_achievements(db, user_id):
    return db.query(Achievement).filter_by(user_id=user_id).order_by(Achievement.id).all()


@remote
def sync_achievements(db, user_id, statuses, today=None):
    """Upsert achievement rows; earned_date is stamped only once."""
    today = today or date.today()
    existing = {a.name: a for a in db.query(Achievement).filter_by(user_id=user_id)}

    for status in statuses:
        row = existing.get(status.name)
        if row is None:
            row = Achievement(user_id=user_id, name=status.name)
            db.add(row)
        if status.earned and not row.earned:
            row.earned_date = today
        row.earned = row.earned or status.earned
        row.progress = 100 if row.earned else status.progress

    db.commit()
    return list_achievements(db, user_id)
