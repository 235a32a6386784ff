import os
from datetime import datetime
from flask import abort, current_app, render_template, request, redirect, url_for, session

from . import kettlebell_bp
from .catalog import DIFFICULTY_TIERS, MUSCLE_GROUPS, MUSCLE_GROUP_LABELS
from .generate import (
    DURATION_OPTIONS,
    ENERGY_LEVELS,
    ENERGY_LEVEL_DESCRIPTIONS,
    generate_workout,
)
from .runner import (
    adjust_reps,
    adjust_weight,
    begin_session,
    build_workout_record,
    complete_set,
    current_exercise,
    is_finished,
    move_exercise,
    preview_totals,
    remove_exercise,
    restart_session,
    skip_exercise,
    start_session,
    summarise_session,
    swap_exercise,
)
from .storage import (
    InvalidWorkout,
    WorkoutAccessDenied,
    WorkoutNotFound,
    calc_duration_minutes,
    create_workout,
    delete_workout,
    ensure_data_files,
    get_workout,
    list_workouts,
    load_user_preferences,
    parse_timestamp,
    save_user_preferences,
    summarise_history,
    update_workout,
)
from .units import KETTLEBELL_WEIGHTS_KG, UNIT_OPTIONS, format_duration, format_weight

from kettlebell_core import login_required, log_action

STATE_KEY = "kettlebell_state"
HISTORY_PAGE_SIZE = 20


def _paths():
    data_dir = ensure_data_files(current_app.config["DATA_DIR"])
    settings_path = os.path.join(data_dir, "settings.json")
    workouts_path = os.path.join(data_dir, "workouts.json")
    return settings_path, workouts_path


def _catalog():
    return current_app.config["CATALOG"]


def _get_logged_in_name():
    return session.get("name") or session.get("username") or "User"


def _preferences():
    settings_path, _ = _paths()
    return load_user_preferences(settings_path, session.get("username"))


def _int_arg(value, default):
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _format_timestamp(ts):
    try:
        return parse_timestamp(ts).strftime("%d/%m/%y %H:%M")
    except (TypeError, ValueError):
        return ts or "-"


@kettlebell_bp.app_template_filter("weight")
def _weight_filter(weight_kg, unit="kg"):
    if weight_kg is None:
        return "-"
    return format_weight(weight_kg, unit)


@kettlebell_bp.app_template_filter("duration")
def _duration_filter(minutes):
    return format_duration(int(minutes or 0))


@kettlebell_bp.app_template_filter("timestamp")
def _timestamp_filter(ts):
    return _format_timestamp(ts)


def _render_setup(error=None, form=None):
    return render_template(
        "kettlebell/setup.html",
        user=_get_logged_in_name(),
        muscle_groups=MUSCLE_GROUPS,
        muscle_group_labels=MUSCLE_GROUP_LABELS,
        energy_levels=ENERGY_LEVELS,
        energy_descriptions=ENERGY_LEVEL_DESCRIPTIONS,
        duration_options=DURATION_OPTIONS,
        has_active=bool(session.get(STATE_KEY)),
        form=form or {"energy_level": "medium", "duration": 30, "muscle_groups": []},
        error=error,
    )


@kettlebell_bp.route("/", methods=["GET", "POST"])
@login_required
def setup():
    username = session.get("username")

    if request.method == "POST":
        energy_level = (request.form.get("energy_level") or "medium").lower()
        if energy_level not in ENERGY_LEVELS:
            energy_level = "medium"
        duration = _int_arg(request.form.get("duration"), 30)
        muscle_groups = [g for g in request.form.getlist("muscle_groups") if g in MUSCLE_GROUPS]
        form = {"energy_level": energy_level, "duration": duration, "muscle_groups": muscle_groups}

        if not muscle_groups:
            return _render_setup(error="Pick at least one muscle group.", form=form), 400
        if duration <= 0:
            return _render_setup(error="Duration must be a positive number of minutes.", form=form), 400

        workout = generate_workout(_catalog(), muscle_groups, energy_level, duration)
        prefs = _preferences()
        session[STATE_KEY] = start_session(
            workout,
            energy_level,
            duration,
            muscle_groups,
            user=_get_logged_in_name(),
            default_weight_kg=prefs["default_weight_kg"],
        )

        log_action(username, "kettlebell_generate", {
            "energy_level": energy_level,
            "duration": duration,
            "muscle_groups": muscle_groups,
            "exercises": len(workout),
        })
        return redirect(url_for("kettlebell.preview"))

    log_action(username, "kettlebell_setup_view")
    return _render_setup()


@kettlebell_bp.route("/preview", methods=["GET", "POST"])
@login_required
def preview():
    username = session.get("username")
    state = session.get(STATE_KEY)
    if not state:
        return redirect(url_for("kettlebell.setup"))

    if request.method == "POST":
        action = request.form.get("action")
        index = _int_arg(request.form.get("index"), -1)

        if action in ("up", "down"):
            move_exercise(state, index, action)
        elif action == "remove":
            remove_exercise(state, index)
        elif action == "discard":
            session.pop(STATE_KEY, None)
            log_action(username, "kettlebell_preview_discard")
            return redirect(url_for("kettlebell.setup"))
        elif action == "start" and state.get("exercises"):
            begin_session(state)
            session[STATE_KEY] = state
            log_action(username, "kettlebell_workout_start", {"exercises": len(state["exercises"])})
            return redirect(url_for("kettlebell.workout"))

        session[STATE_KEY] = state
        return redirect(url_for("kettlebell.preview"))

    return render_template(
        "kettlebell/preview.html",
        state=state,
        totals=preview_totals(state),
        catalog=_catalog(),
        muscle_group_labels=MUSCLE_GROUP_LABELS,
    )


@kettlebell_bp.route("/preview/swap/<int:index>", methods=["GET", "POST"])
@login_required
def swap(index):
    username = session.get("username")
    state = session.get(STATE_KEY)
    if not state:
        return redirect(url_for("kettlebell.setup"))

    exercises = state.get("exercises", [])
    if not 0 <= index < len(exercises):
        return redirect(url_for("kettlebell.preview"))

    catalog = _catalog()
    current = catalog.get(exercises[index]["exercise_id"])
    if current is None:
        abort(404)

    if request.method == "POST":
        replacement = catalog.get(request.form.get("exercise_id") or "")
        if replacement is not None:
            swap_exercise(state, index, replacement)
            session[STATE_KEY] = state
            log_action(username, "kettlebell_exercise_swap", {
                "from": current.name,
                "to": replacement.name,
            })
        return redirect(url_for("kettlebell.preview"))

    search = (request.args.get("q") or "").strip()
    return render_template(
        "kettlebell/swap.html",
        index=index,
        current=current,
        search=search,
        alternatives=catalog.alternatives_for(current, search),
        related=catalog.related_for(current, search),
    )


@kettlebell_bp.route("/workout", methods=["GET", "POST"])
@login_required
def workout():
    username = session.get("username")
    state = session.get(STATE_KEY)
    if not state:
        return redirect(url_for("kettlebell.setup"))
    if not state.get("started_at"):
        return redirect(url_for("kettlebell.preview"))
    if is_finished(state):
        return redirect(url_for("kettlebell.complete"))
    if state.get("ended_at"):
        # summary page was opened mid-workout; the session is still running
        state["ended_at"] = None
        session[STATE_KEY] = state

    if request.method == "POST":
        action = request.form.get("action")
        entry = current_exercise(state)

        if action == "complete_set":
            complete_set(state)
            log_action(username, "kettlebell_set_complete", {
                "exercise": entry["name"],
                "reps": entry["current_reps"],
                "weight": entry["weight"],
            })
        elif action == "skip":
            skip_exercise(state)
            log_action(username, "kettlebell_exercise_skip", {"exercise": entry["name"]})
        elif action in ("weight_up", "weight_down"):
            adjust_weight(state, action.split("_")[1])
        elif action in ("reps_up", "reps_down"):
            adjust_reps(state, action.split("_")[1])

        session[STATE_KEY] = state
        if is_finished(state):
            return redirect(url_for("kettlebell.complete"))
        return redirect(url_for("kettlebell.workout"))

    idx = int(state.get("index", 0))
    entry = current_exercise(state)
    return render_template(
        "kettlebell/workout.html",
        state=state,
        entry=entry,
        exercise=_catalog().get(entry["exercise_id"]),
        index=idx,
        total=len(state["exercises"]),
        units=_preferences()["units"],
    )


@kettlebell_bp.route("/complete", methods=["GET", "POST"])
@login_required
def complete():
    username = session.get("username")
    state = session.get(STATE_KEY)
    if not state:
        return redirect(url_for("kettlebell.setup"))
    if not state.get("started_at"):
        return redirect(url_for("kettlebell.preview"))

    if not state.get("ended_at"):
        state["ended_at"] = datetime.now().isoformat()

    if request.method == "POST":
        if request.form.get("action") == "restart":
            restart_session(state)
            session[STATE_KEY] = state
            log_action(username, "kettlebell_workout_restart")
            return redirect(url_for("kettlebell.workout"))

        rating = _int_arg(request.form.get("rating"), None)
        if rating is not None and 1 <= rating <= 5:
            state["rating"] = rating
        if "notes" in request.form:
            state["notes"] = (request.form.get("notes") or "").strip()

        _, workouts_path = _paths()
        if not state.get("logged"):
            record = create_workout(workouts_path, username, build_workout_record(state))
            state["workout_id"] = record["id"]
            state["logged"] = True
            log_action(username, "kettlebell_workout_logged", {
                "workout_id": record["id"],
                "total_volume": record["total_volume"],
            })
        else:
            try:
                update_workout(workouts_path, state["workout_id"], username, {
                    "rating": state.get("rating"),
                    "notes": state.get("notes"),
                })
            except (WorkoutNotFound, WorkoutAccessDenied):
                state["logged"] = False
                state["workout_id"] = None
        session[STATE_KEY] = state
        return redirect(url_for("kettlebell.complete"))

    log_action(username, "kettlebell_complete_view", {"energy_level": state.get("energy_level")})
    session[STATE_KEY] = state
    return render_template(
        "kettlebell/complete.html",
        state=state,
        summary=summarise_session(state),
        units=_preferences()["units"],
    )


@kettlebell_bp.route("/history", methods=["GET"])
@login_required
def history():
    username = session.get("username")
    _, workouts_path = _paths()
    page = max(1, _int_arg(request.args.get("page"), 1))

    workouts = list_workouts(workouts_path, username, limit=HISTORY_PAGE_SIZE, offset=(page - 1) * HISTORY_PAGE_SIZE)
    for record in workouts:
        record["elapsed_minutes"] = calc_duration_minutes(record.get("created_at"), record.get("completed_at"))
    stats = summarise_history(list_workouts(workouts_path, username, limit=None))

    log_action(username, "kettlebell_history_view", {"page": page})
    return render_template(
        "kettlebell/history.html",
        workouts=workouts,
        stats=stats,
        page=page,
        has_next=len(workouts) == HISTORY_PAGE_SIZE,
        units=_preferences()["units"],
    )


def _load_owned_workout(workout_id):
    _, workouts_path = _paths()
    try:
        return get_workout(workouts_path, workout_id, session.get("username"))
    except WorkoutNotFound:
        abort(404)
    except WorkoutAccessDenied:
        abort(403)


@kettlebell_bp.route("/history/<workout_id>", methods=["GET"])
@login_required
def workout_detail(workout_id):
    record = _load_owned_workout(workout_id)
    record["elapsed_minutes"] = calc_duration_minutes(record.get("created_at"), record.get("completed_at"))
    log_action(session.get("username"), "kettlebell_workout_view", {"workout_id": workout_id})
    return render_template(
        "kettlebell/workout_detail.html",
        workout=record,
        units=_preferences()["units"],
        muscle_group_labels=MUSCLE_GROUP_LABELS,
    )


@kettlebell_bp.route("/history/<workout_id>/delete", methods=["POST"])
@login_required
def workout_delete(workout_id):
    username = session.get("username")
    _, workouts_path = _paths()
    try:
        delete_workout(workouts_path, workout_id, username)
    except WorkoutNotFound:
        abort(404)
    except WorkoutAccessDenied:
        abort(403)
    log_action(username, "kettlebell_workout_deleted", {"workout_id": workout_id})
    return redirect(url_for("kettlebell.history"))


@kettlebell_bp.route("/history/<workout_id>/notes", methods=["POST"])
@login_required
def workout_notes(workout_id):
    username = session.get("username")
    _, workouts_path = _paths()
    changes = {"notes": (request.form.get("notes") or "").strip()}
    if request.form.get("rating"):
        changes["rating"] = request.form.get("rating")
    try:
        update_workout(workouts_path, workout_id, username, changes)
    except WorkoutNotFound:
        abort(404)
    except WorkoutAccessDenied:
        abort(403)
    except InvalidWorkout:
        return redirect(url_for("kettlebell.workout_detail", workout_id=workout_id))
    log_action(username, "kettlebell_workout_notes", {"workout_id": workout_id})
    return redirect(url_for("kettlebell.workout_detail", workout_id=workout_id))


@kettlebell_bp.route("/library", methods=["GET"])
@login_required
def library():
    search = (request.args.get("q") or "").strip()
    muscle_group = request.args.get("muscle_group") or ""
    if muscle_group not in MUSCLE_GROUPS:
        muscle_group = ""

    exercises = _catalog().search(search, muscle_group or None)
    log_action(session.get("username"), "kettlebell_library_view", {"q": search, "muscle_group": muscle_group})
    return render_template(
        "kettlebell/library.html",
        exercises=exercises,
        search=search,
        muscle_group=muscle_group,
        muscle_groups=MUSCLE_GROUPS,
        muscle_group_labels=MUSCLE_GROUP_LABELS,
        difficulty_tiers=DIFFICULTY_TIERS,
    )


@kettlebell_bp.route("/settings", methods=["GET", "POST"])
@login_required
def settings():
    username = session.get("username")
    settings_path, _ = _paths()
    prefs = load_user_preferences(settings_path, username)

    if request.method == "POST":
        units = request.form.get("units") or prefs["units"]
        if units not in UNIT_OPTIONS:
            units = prefs["units"]
        weight = _int_arg(request.form.get("default_weight_kg"), prefs["default_weight_kg"])
        if weight not in KETTLEBELL_WEIGHTS_KG:
            weight = prefs["default_weight_kg"]

        save_user_preferences(settings_path, username, {"units": units, "default_weight_kg": weight})
        log_action(username, "kettlebell_settings_updated", {"units": units, "default_weight_kg": weight})
        return redirect(url_for("kettlebell.settings", saved=1))

    return render_template(
        "kettlebell/settings.html",
        prefs=prefs,
        unit_options=UNIT_OPTIONS,
        weights=KETTLEBELL_WEIGHTS_KG,
        saved=bool(request.args.get("saved")),
    )
