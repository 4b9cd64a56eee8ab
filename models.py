# models.py
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base, SessionLocal, engine
from progression import DEFAULT_RANK_TIERS


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    email = Column(String, unique=True, nullable=False)
    password_hash = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    profile = relationship(
        "UserProfile", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )
    workouts = relationship(
        "Workout", back_populates="user", cascade="all, delete-orphan"
    )
    achievements = relationship(
        "Achievement", back_populates="user", cascade="all, delete-orphan"
    )


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)

    display_name = Column(String, nullable=False)
    bio = Column(Text, nullable=False, default="")
    fitness_goal = Column(String, nullable=False, default="overall")
    # strength / muscle / weight-loss / endurance / overall
    weight_unit = Column(String, nullable=False, default="kg")  # kg / lbs
    avatar_url = Column(String, nullable=True)
    joined_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    user = relationship("User", back_populates="profile")


class Workout(Base):
    __tablename__ = "workouts"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    name = Column(String, nullable=False)
    date = Column(Date, nullable=False, index=True)
    notes = Column(Text, nullable=False, default="")
    # fixed at insert, never recomputed
    xp_gained = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    user = relationship("User", back_populates="workouts")
    exercises = relationship(
        "ExerciseEntry",
        back_populates="workout",
        cascade="all, delete-orphan",
        order_by="ExerciseEntry.id",
    )


class ExerciseEntry(Base):
    __tablename__ = "exercise_entries"

    id = Column(Integer, primary_key=True)
    workout_id = Column(Integer, ForeignKey("workouts.id"), nullable=False, index=True)

    name = Column(String, nullable=False)
    muscle_group = Column(String, nullable=True)
    sets = Column(Integer, nullable=False)
    reps = Column(Integer, nullable=False)
    weight = Column(Float, nullable=True)
    weight_unit = Column(String, nullable=False, default="kg")  # kg / lbs / bodyweight

    workout = relationship("Workout", back_populates="exercises")


class RankTier(Base):
    __tablename__ = "rank_tiers"

    id = Column(Integer, primary_key=True)
    rank = Column(String, unique=True, nullable=False)
    min_xp = Column(Integer, nullable=False)


class FriendRequest(Base):
    __tablename__ = "friend_requests"
    __table_args__ = (UniqueConstraint("sender_id", "receiver_id"),)

    id = Column(Integer, primary_key=True)
    sender_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    receiver_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(String, nullable=False, default="pending")
    # pending / accepted / rejected
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    sender = relationship("User", foreign_keys=[sender_id])
    receiver = relationship("User", foreign_keys=[receiver_id])


class Achievement(Base):
    __tablename__ = "achievements"
    __table_args__ = (UniqueConstraint("user_id", "name"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    name = Column(String, nullable=False)
    earned = Column(Boolean, nullable=False, default=False)
    progress = Column(Integer, nullable=False, default=0)  # 0-100
    earned_date = Column(Date, nullable=True)

    user = relationship("User", back_populates="achievements")


def init_db():
    """Create all tables and seed the rank ladder."""
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        if db.query(RankTier).count() == 0:
            for tier in DEFAULT_RANK_TIERS:
                db.add(RankTier(rank=tier.rank, min_xp=tier.min_xp))
            db.commit()
    finally:
        db.close()
