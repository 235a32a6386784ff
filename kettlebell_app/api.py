from flask import current_app, jsonify, request, session

from . import kettlebell_bp
from .catalog import DIFFICULTY_TIERS, MUSCLE_GROUPS
from .generate import ENERGY_LEVELS, estimate_workout_minutes, generate_workout
from .routes import _catalog, _paths
from .storage import (
    InvalidWorkout,
    WorkoutAccessDenied,
    WorkoutNotFound,
    create_workout,
    delete_workout,
    get_workout,
    list_workouts,
    update_workout,
)

from kettlebell_core import api_login_required, log_action


def _error(message, status):
    return jsonify({"error": message}), status


@kettlebell_bp.route("/api/exercises", methods=["GET"])
@api_login_required
def api_exercises():
    muscle_group = request.args.get("muscle_group")
    difficulty = request.args.get("difficulty")
    if muscle_group and muscle_group not in MUSCLE_GROUPS:
        return _error(f"Unknown muscle group: {muscle_group}", 400)
    if difficulty and difficulty not in DIFFICULTY_TIERS:
        return _error(f"Unknown difficulty: {difficulty}", 400)

    catalog = _catalog()
    exercises = catalog.search(request.args.get("q") or "", muscle_group)
    if difficulty:
        tier = {e.id for e in catalog.by_difficulty(difficulty)}
        exercises = [e for e in exercises if e.id in tier]
    return jsonify([e.to_dict() for e in exercises])


@kettlebell_bp.route("/api/generate", methods=["POST"])
@api_login_required
def api_generate():
    body = request.get_json(silent=True)
    if body is None:
        body = {}
    if not isinstance(body, dict):
        return _error("Expected a JSON object", 400)

    energy_level = body.get("energy_level", "medium")
    if energy_level not in ENERGY_LEVELS:
        return _error("energy_level must be one of low, medium, high", 400)
    try:
        duration = int(body.get("duration", 30))
    except (TypeError, ValueError):
        return _error("duration must be an integer", 400)
    muscle_groups = body.get("muscle_groups") or []
    if not isinstance(muscle_groups, list):
        return _error("muscle_groups must be a list", 400)

    workout = generate_workout(_catalog(), muscle_groups, energy_level, duration)
    log_action(session.get("username"), "kettlebell_api_generate", {
        "energy_level": energy_level,
        "duration": duration,
        "muscle_groups": muscle_groups,
        "exercises": len(workout),
    })
    return jsonify({
        "energy_level": energy_level,
        "duration": duration,
        "muscle_groups": muscle_groups,
        "estimated_minutes": round(estimate_workout_minutes(workout, energy_level), 1),
        "exercises": [item.to_dict() for item in workout],
    })


@kettlebell_bp.route("/api/workouts", methods=["GET", "POST"])
@api_login_required
def api_workouts():
    username = session.get("username")
    _, workouts_path = _paths()

    if request.method == "GET":
        try:
            limit = int(request.args.get("limit", 20))
            offset = int(request.args.get("offset", 0))
        except ValueError:
            return _error("limit and offset must be integers", 400)
        return jsonify(list_workouts(workouts_path, username, limit=limit, offset=offset))

    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return _error("Expected a JSON object", 400)
    if body.get("user") and body["user"] != username:
        return _error("Forbidden", 403)

    try:
        record = create_workout(workouts_path, username, body)
    except InvalidWorkout as e:
        return _error(str(e), 400)
    except OSError:
        current_app.logger.exception("Error saving workout")
        return _error("Failed to save workout", 500)

    log_action(username, "kettlebell_api_workout_created", {"workout_id": record["id"]})
    return jsonify(record), 201


@kettlebell_bp.route("/api/workouts/<workout_id>", methods=["GET", "PATCH", "DELETE"])
@api_login_required
def api_workout(workout_id):
    username = session.get("username")
    _, workouts_path = _paths()

    try:
        if request.method == "GET":
            return jsonify(get_workout(workouts_path, workout_id, username))

        if request.method == "PATCH":
            body = request.get_json(silent=True)
            if not isinstance(body, dict):
                return _error("Expected a JSON object", 400)
            record = update_workout(workouts_path, workout_id, username, body)
            log_action(username, "kettlebell_api_workout_updated", {"workout_id": workout_id})
            return jsonify(record)

        delete_workout(workouts_path, workout_id, username)
        log_action(username, "kettlebell_api_workout_deleted", {"workout_id": workout_id})
        return jsonify({"success": True})
    except WorkoutNotFound:
        return _error("Workout not found", 404)
    except WorkoutAccessDenied:
        return _error("Forbidden", 403)
    except InvalidWorkout as e:
        return _error(str(e), 400)
    except OSError:
        current_app.logger.exception("Error updating workout %s", workout_id)
        return _error("Failed to update workout", 500)
