# app.py
import calendar
import logging
from datetime import MAXYEAR, MINYEAR, date, timedelta
from functools import wraps
from io import BytesIO

from flask import (
    Flask,
    render_template,
    request,
    redirect,
    url_for,
    flash,
    session,
    send_file,
    jsonify,
)
from flask_bcrypt import Bcrypt
from pydantic import ValidationError
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas
from reportlab.lib import colors
from reportlab.lib.units import mm

import store
from config import load_config
from database import SessionLocal
from forms import (
    FITNESS_GOALS,
    LoginForm,
    ProfileForm,
    RegisterForm,
    field_errors,
    parse_workout_form,
)
from models import init_db
from progression import (
    POPULAR_EXERCISES,
    consistency_rate,
    evaluate_achievements,
    format_entry_weight,
    group_by_month,
    rank_ladder,
    suggest_exercises,
)
from store import AuthError, StoreError

config = load_config()

logging.basicConfig(
    level=config.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.secret_key = config.secret_key
bcrypt = Bcrypt(app)

app.jinja_env.filters["entry_weight"] = format_entry_weight

# Initialize DB
init_db()

AUTH_MESSAGES = {
    "Invalid login credentials": "Invalid email or password.",
    "User already registered": "An account with this email already exists.",
}


# ---------------------------------------------------------
# Helper function: Get currently logged-in user
# ---------------------------------------------------------
def get_current_user():
    user_id = session.get("user_id")
    if not user_id:
        return None
    db = SessionLocal()
    try:
        return store.get_user(db, user_id)
    except StoreError:
        return None
    finally:
        db.close()


@app.context_processor
def inject_globals():
    return dict(current_user=get_current_user())


def login_required(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        user = get_current_user()
        if not user:
            flash("Please log in to continue.", "warning")
            return redirect(url_for("login"))
        return f(user, *args, **kwargs)

    return wrapper


def friendly_auth_message(message):
    for pattern, friendly in AUTH_MESSAGES.items():
        if pattern in message:
            return friendly
    return "Authentication failed. Please try again."


def _sign_in(db, form):
    user = store.get_user_by_email(db, form.email)
    if user is None or not bcrypt.check_password_hash(user.password_hash, form.password):
        logger.warning("Failed sign-in for %s", form.email)
        raise AuthError("Invalid login credentials")
    return user


def _refresh_achievements(db, user_id, activity):
    tiers = store.list_rank_tiers(db)
    statuses = evaluate_achievements(
        activity.total_workouts,
        activity.streaks.longest,
        activity.total_weight_kg,
        activity.xp,
        tiers,
    )
    store.sync_achievements(db, user_id, statuses)
    return statuses


# ---------------------------------------------------------
# Routes
# ---------------------------------------------------------
@app.route("/")
def home():
    if session.get("user_id"):
        return redirect(url_for("dashboard"))
    return render_template("index.html")


@app.route("/register", methods=["GET", "POST"])
def register():
    errors, values = {}, {}
    if request.method == "POST":
        values = request.form.to_dict()
        try:
            form = RegisterForm(**values)
        except ValidationError as exc:
            errors = field_errors(exc)
        else:
            hashed = bcrypt.generate_password_hash(form.password).decode("utf-8")
            db = SessionLocal()
            try:
                user = store.sign_up(db, form.email, hashed, form.display_name)
                session["user_id"] = user.id
                flash("Account created successfully! You're now a member of the Wolf Pack!", "success")
                return redirect(url_for("dashboard"))
            except AuthError as exc:
                flash(friendly_auth_message(str(exc)), "danger")
            except StoreError:
                flash("Registration failed. Please try again later.", "danger")
            finally:
                db.close()
    return render_template("register.html", errors=errors, values=values)


@app.route("/login", methods=["GET", "POST"])
def login():
    errors, values = {}, {}
    if request.method == "POST":
        values = request.form.to_dict()
        try:
            form = LoginForm(**values)
        except ValidationError as exc:
            errors = field_errors(exc)
        else:
            db = SessionLocal()
            try:
                user = _sign_in(db, form)
                session["user_id"] = user.id
                logger.info("User %s logged in", user.id)
                flash("Welcome back to the pack!", "success")
                return redirect(url_for("dashboard"))
            except AuthError as exc:
                flash(friendly_auth_message(str(exc)), "danger")
            except StoreError:
                flash("Login failed. Please try again later.", "danger")
            finally:
                db.close()
    values.pop("password", None)
    return render_template("login.html", errors=errors, values=values)


@app.route("/logout")
def logout():
    session.pop("user_id", None)
    flash("Logged out successfully.", "info")
    return redirect(url_for("home"))


@app.route("/dashboard")
@login_required
def dashboard(user):
    db = SessionLocal()
    try:
        activity = store.load_activity(db, user.id)
        recent = store.list_workouts(db, user.id)[:5]
    except StoreError:
        flash("Could not load your dashboard. Please refresh.", "danger")
        activity, recent = None, []

    try:
        return render_template(
            "dashboard.html",
            user=user,
            activity=activity,
            recent=recent,
            daily_xp_target=config.daily_xp_target,
            today=date.today(),
        )
    finally:
        db.close()


# ---------------------------------------------------------
# Workouts
# ---------------------------------------------------------
def _render_workouts(db, user, errors=None, values=None, status=200):
    search = request.args.get("q", "")
    tab = request.args.get("tab", "history")
    try:
        history = store.list_workouts(db, user.id)
        catalog = store.list_exercise_catalog(db, user.id, search)
    except StoreError:
        flash("Could not load your workouts.", "danger")
        history, catalog = [], []

    return (
        render_template(
            "workouts.html",
            grouped=group_by_month(history),
            catalog=catalog,
            search=search,
            tab="log" if errors else tab,
            errors=errors or {},
            values=values or {},
            popular=POPULAR_EXERCISES,
            today=date.today(),
        ),
        status,
    )


@app.route("/workouts", methods=["GET", "POST"])
@login_required
def workouts(user):
    db = SessionLocal()
    try:
        if request.method == "GET":
            return _render_workouts(db, user)

        try:
            form = parse_workout_form(request.form)
        except ValidationError as exc:
            return _render_workouts(
                db, user, errors=field_errors(exc), values=request.form.to_dict(), status=400
            )

        try:
            workout = store.log_workout(db, user.id, form)
        except StoreError:
            flash("Failed to log workout.", "danger")
            return redirect(url_for("workouts"))

        try:
            _refresh_achievements(db, user.id, store.load_activity(db, user.id))
        except StoreError:
            logger.warning("Achievements not refreshed for user %s", user.id)

        flash(
            f"Workout logged successfully! {workout.name} - "
            f"{len(form.exercises)} exercises, +{workout.xp_gained} XP",
            "success",
        )
        return redirect(url_for("workouts"))
    finally:
        db.close()


@app.route("/workouts/<int:workout_id>/delete", methods=["POST"])
@login_required
def delete_workout(user, workout_id):
    db = SessionLocal()
    try:
        if store.delete_workout(db, user.id, workout_id):
            flash("Workout deleted successfully.", "success")
        else:
            flash("Workout not found.", "warning")
    except StoreError:
        flash("Failed to delete workout.", "danger")
    finally:
        db.close()
    return redirect(url_for("workouts"))


@app.route("/api/exercises/suggest")
@login_required
def exercise_suggestions(user):
    query = request.args.get("q", "")
    suggestions = suggest_exercises(query)

    db = SessionLocal()
    try:
        for entry in store.list_exercise_catalog(db, user.id, query):
            if entry["name"] not in suggestions:
                suggestions.append(entry["name"])
    except StoreError:
        logger.warning("Exercise catalog unavailable, using popular names only")
    finally:
        db.close()

    return jsonify({"query": query, "suggestions": suggestions[:5]})


@app.route("/workouts/export")
@login_required
def export_workouts(user):
    db = SessionLocal()
    try:
        history = store.list_workouts(db, user.id)
        activity = store.load_activity(db, user.id)
    except StoreError:
        flash("Could not export your training log.", "danger")
        return redirect(url_for("workouts"))
    finally:
        db.close()

    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    width, height = A4

    margin_x = 25 * mm
    margin_y = 25 * mm
    header_height = 32

    # HEADER BAR
    c.setFillColorRGB(0.16, 0.12, 0.30)
    c.rect(0, height - header_height - 10, width, header_height + 10, stroke=0, fill=1)
    c.setFillColorRGB(0.55, 0.45, 0.95)
    c.rect(0, height - header_height, width, header_height, stroke=0, fill=1)

    c.setFillColor(colors.white)
    c.setFont("Helvetica-Bold", 15)
    c.drawString(margin_x, height - header_height / 2 - 3, "MyPack")

    c.setFont("Helvetica-Bold", 11)
    c.drawCentredString(width / 2, height - header_height + 4, "Training Log")

    y = height - header_height - 24

    # USER SUMMARY
    c.setFont("Helvetica-Bold", 11)
    c.setFillColor(colors.black)
    c.drawString(margin_x, y, f"Wolf: {user.profile.display_name}")
    y -= 16

    c.setFont("Helvetica", 9.5)
    c.drawString(
        margin_x,
        y,
        f"Rank: {activity.rank.rank}     XP: {activity.xp}/{activity.rank.next_rank_xp}",
    )
    y -= 13
    c.drawString(
        margin_x,
        y,
        f"Workouts: {activity.total_workouts}     Current streak: {activity.streaks.current} days"
        f"     Longest streak: {activity.streaks.longest} days",
    )
    y -= 13
    c.drawString(margin_x, y, f"Total weight lifted: {activity.weight_label}")
    y -= 18

    c.setStrokeColorRGB(0.8, 0.8, 0.9)
    c.line(margin_x, y, width - margin_x, y)
    y -= 18

    # HISTORY
    for month, items in group_by_month(history).items():
        if y < margin_y + 40:
            c.showPage()
            y = height - margin_y

        c.setFont("Helvetica-Bold", 11.5)
        c.setFillColorRGB(0.35, 0.25, 0.75)
        c.drawString(margin_x, y, month)
        y -= 15

        for workout in items:
            if y < margin_y + 20:
                c.showPage()
                y = height - margin_y

            c.setFont("Helvetica-Bold", 9.5)
            c.setFillColor(colors.black)
            c.drawString(
                margin_x,
                y,
                f"{workout.date.strftime('%b %d')} - {workout.name} (+{workout.xp_gained} XP)",
            )
            y -= 13

            c.setFont("Helvetica", 9)
            for entry in workout.exercises:
                if y < 40:
                    c.showPage()
                    y = height - margin_y
                    c.setFont("Helvetica", 9)
                c.drawString(
                    margin_x + 12,
                    y,
                    f"{entry.name}: {entry.sets} sets x {entry.reps} reps - {format_entry_weight(entry)}",
                )
                y -= 12

            if workout.notes:
                c.setFont("Helvetica-Oblique", 8.5)
                c.drawString(margin_x + 12, y, f'"{workout.notes[:100]}"')
                y -= 12
            y -= 6

    if not history:
        c.setFont("Helvetica", 9.5)
        c.drawString(margin_x, y, "No workouts logged yet.")

    c.setFont("Helvetica-Oblique", 8)
    c.setFillColorRGB(0.45, 0.5, 0.6)
    c.drawString(margin_x, 18, f"Generated by MyPack on {date.today().isoformat()}")

    c.showPage()
    c.save()

    buffer.seek(0)
    return send_file(
        buffer,
        as_attachment=True,
        download_name="mypack_training_log.pdf",
        mimetype="application/pdf",
    )


# ---------------------------------------------------------
# Calendar
# ---------------------------------------------------------
def _parse_month(value, today):
    try:
        year, month = (int(part) for part in value.split("-"))
        # neighbouring months must stay inside the date range
        if not MINYEAR < year < MAXYEAR:
            return today.replace(day=1)
        return date(year, month, 1)
    except (AttributeError, ValueError):
        return today.replace(day=1)


@app.route("/calendar")
@login_required
def workout_calendar(user):
    today = date.today()
    first = _parse_month(request.args.get("month"), today)
    next_first = (first + timedelta(days=32)).replace(day=1)
    prev_first = (first - timedelta(days=1)).replace(day=1)

    db = SessionLocal()
    try:
        month_workouts = store.list_workouts_between(db, user.id, first, next_first)
    except StoreError:
        flash("Could not load your calendar.", "danger")
        month_workouts = []

    by_day = {}
    for workout in month_workouts:
        by_day.setdefault(workout.date, []).append(workout)

    selected_day, selected = None, []
    if request.args.get("day"):
        try:
            selected_day = date.fromisoformat(request.args["day"])
            selected = by_day.get(selected_day, [])
        except ValueError:
            selected_day = None

    try:
        return render_template(
            "calendar.html",
            month=first,
            weeks=calendar.Calendar(firstweekday=6).monthdatescalendar(first.year, first.month),
            by_day=by_day,
            prev_month=prev_first.strftime("%Y-%m"),
            next_month=next_first.strftime("%Y-%m"),
            today=today,
            selected_day=selected_day,
            selected=selected,
            workout_days=len(by_day),
            month_xp=sum(w.xp_gained for w in month_workouts),
            consistency=consistency_rate(len(by_day)),
        )
    finally:
        db.close()


# ---------------------------------------------------------
# Pack
# ---------------------------------------------------------
@app.route("/pack")
@login_required
def pack(user):
    search = request.args.get("q", "")
    tab = request.args.get("tab", "friends")

    db = SessionLocal()
    try:
        friend_users = store.list_friends(db, user.id, search)
        activities = store.load_activities(db, [f.id for f in friend_users])
        friends = [
            {"user": friend, "activity": activities[friend.id]}
            for friend in friend_users
        ]
        requests_ = store.list_incoming_requests(db, user.id)
        suggestions = store.list_suggestions(db, user.id, search)
    except StoreError:
        flash("Could not load your pack.", "danger")
        friends, requests_, suggestions = [], [], []

    try:
        return render_template(
            "pack.html",
            tab=tab,
            search=search,
            friends=friends,
            requests=requests_,
            suggestions=suggestions,
        )
    finally:
        db.close()


@app.route("/pack/<int:friend_id>")
@login_required
def friend_profile(user, friend_id):
    db = SessionLocal()
    try:
        if not store.are_friends(db, user.id, friend_id):
            flash("That wolf is not in your pack yet.", "warning")
            return redirect(url_for("pack"))
        friend = store.get_user(db, friend_id)
        activity = store.load_activity(db, friend_id)
        return render_template("friend.html", friend=friend, activity=activity)
    except StoreError:
        flash("Could not load that profile.", "danger")
        return redirect(url_for("pack"))
    finally:
        db.close()


@app.route("/pack/request/<int:receiver_id>", methods=["POST"])
@login_required
def send_pack_request(user, receiver_id):
    db = SessionLocal()
    try:
        receiver = store.get_user(db, receiver_id)
        if receiver is None:
            flash("That wolf could not be found.", "warning")
        else:
            store.send_friend_request(db, user.id, receiver_id)
            flash(f"Friend request sent to {receiver.profile.display_name}", "success")
    except StoreError as exc:
        flash(str(exc) if not exc.__cause__ else "Could not send request.", "danger")
    finally:
        db.close()
    return redirect(url_for("pack", tab="suggestions"))


@app.route("/pack/requests/<int:request_id>/<action>", methods=["POST"])
@login_required
def answer_pack_request(user, request_id, action):
    if action not in ("accept", "reject"):
        flash("Unknown action.", "warning")
        return redirect(url_for("pack", tab="requests"))

    db = SessionLocal()
    try:
        answered = store.respond_to_request(db, user.id, request_id, accept=action == "accept")
        name = answered.sender.profile.display_name
        if answered.status == "accepted":
            flash(f"You are now friends with {name}", "success")
        else:
            flash(f"Friend request from {name} declined", "success")
    except StoreError as exc:
        flash(str(exc) if not exc.__cause__ else "Could not answer request.", "danger")
    finally:
        db.close()
    return redirect(url_for("pack", tab="requests"))


# ---------------------------------------------------------
# Profile
# ---------------------------------------------------------
@app.route("/profile", methods=["GET", "POST"])
@login_required
def profile(user):
    errors, values = {}, {}
    editing = request.args.get("edit") == "1"

    db = SessionLocal()
    try:
        if request.method == "POST":
            values = request.form.to_dict()
            try:
                form = ProfileForm(**values)
            except ValidationError as exc:
                errors = field_errors(exc)
                editing = True
            else:
                try:
                    store.update_profile(db, user.id, form)
                    flash("Profile updated successfully", "success")
                    return redirect(url_for("profile"))
                except StoreError as exc:
                    flash(
                        str(exc) if not exc.__cause__ else "Failed to update profile",
                        "danger",
                    )
                    editing = True

        try:
            fresh = store.get_user(db, user.id)
            activity = store.load_activity(db, user.id)
            statuses = _refresh_achievements(db, user.id, activity)
            earned = {a.name: a for a in store.list_achievements(db, user.id)}
            ladder = rank_ladder(activity.xp, store.list_rank_tiers(db))
        except StoreError:
            flash("Could not load your profile.", "danger")
            fresh, activity, statuses, earned, ladder = user, None, [], {}, []

        if not values:
            values = {
                "display_name": fresh.profile.display_name,
                "email": fresh.email,
                "bio": fresh.profile.bio,
                "fitness_goal": fresh.profile.fitness_goal,
                "weight_unit": fresh.profile.weight_unit,
            }

        return render_template(
            "profile.html",
            user=fresh,
            activity=activity,
            achievements=statuses,
            earned=earned,
            ladder=ladder,
            editing=editing,
            errors=errors,
            values=values,
            fitness_goals=FITNESS_GOALS,
        )
    finally:
        db.close()


if __name__ == "__main__":
    app.run(debug=True)
