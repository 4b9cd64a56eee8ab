# forms.py
"""
Form schemas. Every form posted by a page is validated here before
anything is sent to the store.
"""

from datetime import date
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field, ValidationError, field_validator

FITNESS_GOALS = ("strength", "muscle", "weight-loss", "endurance", "overall")
PROFILE_UNITS = ("kg", "lbs")
EXERCISE_UNITS = ("kg", "lbs", "bodyweight")


def _bounded_int(value, low, high, label):
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValueError(f"{label} must be a whole number")
    if not low <= number <= high:
        raise ValueError(f"{label} must be between {low} and {high}")
    return number


def _min_length(value, length, message):
    value = (value or "").strip()
    if len(value) < length:
        raise ValueError(message)
    return value


class RegisterForm(BaseModel):
    email: EmailStr
    password: str
    display_name: str

    @field_validator("password")
    @classmethod
    def _password_length(cls, value):
        if len(value) < 6:
            raise ValueError("Password must be at least 6 characters")
        return value

    @field_validator("display_name", mode="before")
    @classmethod
    def _display_name_length(cls, value):
        return _min_length(value, 3, "Display name must be at least 3 characters")


class LoginForm(BaseModel):
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def _password_required(cls, value):
        if not value:
            raise ValueError("Password is required")
        return value


class ProfileForm(BaseModel):
    display_name: str
    email: EmailStr
    bio: str = ""
    fitness_goal: Literal[FITNESS_GOALS] = "overall"
    weight_unit: Literal[PROFILE_UNITS] = "kg"

    @field_validator("display_name", mode="before")
    @classmethod
    def _display_name_length(cls, value):
        return _min_length(value, 3, "Display name must be at least 3 characters")

    @field_validator("bio", mode="before")
    @classmethod
    def _strip_bio(cls, value):
        return (value or "").strip()


class ExerciseForm(BaseModel):
    name: str
    muscle_group: Optional[str] = None
    sets: int
    reps: int
    weight: Optional[float] = None
    weight_unit: Literal[EXERCISE_UNITS] = "kg"

    @field_validator("name", mode="before")
    @classmethod
    def _name_required(cls, value):
        return _min_length(value, 1, "Exercise name is required")

    @field_validator("muscle_group", mode="before")
    @classmethod
    def _blank_muscle_group(cls, value):
        value = (value or "").strip()
        return value or None

    @field_validator("sets", mode="before")
    @classmethod
    def _sets_range(cls, value):
        return _bounded_int(value, 1, 99, "Sets")

    @field_validator("reps", mode="before")
    @classmethod
    def _reps_range(cls, value):
        return _bounded_int(value, 1, 999, "Reps")

    @field_validator("weight", mode="before")
    @classmethod
    def _weight_positive(cls, value):
        if value is None or str(value).strip() == "":
            return None
        try:
            weight = float(value)
        except (TypeError, ValueError):
            raise ValueError("Weight must be a positive number")
        if weight < 0:
            raise ValueError("Weight must be a positive number")
        return weight


class WorkoutForm(BaseModel):
    name: str = ""
    date: date
    notes: str = ""
    exercises: List[ExerciseForm] = Field(min_length=1)

    @field_validator("name", "notes", mode="before")
    @classmethod
    def _strip(cls, value):
        return (value or "").strip()

    @property
    def title(self) -> str:
        return self.name or self.exercises[0].name


def parse_workout_form(form) -> WorkoutForm:
    """Build a WorkoutForm from repeated exercise fields of an HTML form.

    `form` is a werkzeug MultiDict; exercise fields are posted once per row
    (exercise_name, muscle_group, sets, reps, weight, weight_unit).
    """
    names = form.getlist("exercise_name")
    columns = {
        "muscle_group": form.getlist("muscle_group"),
        "sets": form.getlist("sets"),
        "reps": form.getlist("reps"),
        "weight": form.getlist("weight"),
        "weight_unit": form.getlist("weight_unit"),
    }

    exercises = []
    for i, name in enumerate(names):
        row = {"name": name}
        for key, values in columns.items():
            if i < len(values):
                row[key] = values[i]
        # skip untouched blank rows the page renders for convenience
        if not any(str(v).strip() for k, v in row.items() if k != "weight_unit"):
            continue
        exercises.append(row)

    return WorkoutForm(
        name=form.get("name", ""),
        date=form.get("date") or date.today(),
        notes=form.get("notes", ""),
        exercises=exercises,
    )


def field_errors(exc: ValidationError) -> dict:
    """Map a ValidationError to {"field": "message"} for inline display."""
    errors = {}
    for error in exc.errors():
        field = ".".join(str(part) for part in error["loc"]) or "__all__"
        message = error["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.setdefault(field, message)
    return errors
