import os
import json
from datetime import datetime
from functools import wraps

from flask import current_app, jsonify, request, redirect, session, url_for

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
LOG_FILE = os.environ.get("KETTLEBELL_LOG_FILE", os.path.join(BASE_DIR, "logs.jsonl"))
USERS_FILE = os.environ.get("KETTLEBELL_USERS_FILE", os.path.join(BASE_DIR, "users.json"))
DATA_DIR = os.environ.get("KETTLEBELL_DATA_DIR", os.path.join(BASE_DIR, "kettlebell_app", "data"))


def action_log_path():
    return current_app.config.get("ACTION_LOG_FILE", LOG_FILE)


def log_action(username, action, details=None):
    """Append a single log entry to the action log."""
    entry = {
        "timestamp": datetime.now().strftime("%d/%m/%Y %H:%M"),
        "username": username or "anonymous",
        "action": action,
        "ip": request.remote_addr,
        "path": request.path,
        "details": details or {},
        "user_agent": request.headers.get("User-Agent", ""),
    }

    try:
        with open(action_log_path(), "a") as f:
            f.write(json.dumps(entry) + "\n")
    except OSError:
        # Don't break the app if logging fails
        pass


def load_logs(limit=200):
    """Load the last `limit` log entries, newest first."""
    path = action_log_path()
    if not os.path.exists(path):
        return []

    try:
        with open(path, "r") as f:
            lines = f.readlines()
    except OSError:
        return []

    entries = []
    for line in lines[-limit:]:
        line = line.strip()
        if not line:
            continue
        try:
            entries.append(json.loads(line))
        except json.JSONDecodeError:
            continue

    entries.reverse()
    return entries


def login_required(view_func):
    @wraps(view_func)
    def wrapped_view(*args, **kwargs):
        if not session.get("logged_in"):
            return redirect(url_for("login", next=request.path))
        return view_func(*args, **kwargs)
    return wrapped_view


def api_login_required(view_func):
    @wraps(view_func)
    def wrapped_view(*args, **kwargs):
        if not session.get("logged_in") or not session.get("username"):
            return jsonify({"error": "Unauthorized"}), 401
        return view_func(*args, **kwargs)
    return wrapped_view


def admin_required(view_func):
    @wraps(view_func)
    def wrapped_view(*args, **kwargs):
        if not session.get("logged_in"):
            return redirect(url_for("login", next=request.path))
        if session.get("role") != "admin":
            return redirect(url_for("kettlebell.setup"))
        return view_func(*args, **kwargs)
    return wrapped_view
