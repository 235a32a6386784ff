#!/usr/bin/env python3
import os
import json

from flask import Flask, render_template, request, redirect, url_for, session
from werkzeug.security import check_password_hash

from kettlebell_app import kettlebell_bp
from kettlebell_app.catalog import load_catalog
from kettlebell_core import (
    DATA_DIR,
    LOG_FILE,
    USERS_FILE,
    admin_required,
    load_logs,
    log_action,
    login_required,
)

app = Flask(__name__)
app.register_blueprint(kettlebell_bp, url_prefix="/kettlebell")


# ───────────── Config ─────────────
app.config["SECRET_KEY"] = os.environ.get("FLASK_SECRET_KEY", "change-me-to-something-random")
app.config["USERS_FILE"] = USERS_FILE
app.config["ACTION_LOG_FILE"] = LOG_FILE
app.config["DATA_DIR"] = DATA_DIR

# Built once; a broken catalog file stops start-up here
app.config["CATALOG"] = load_catalog(os.environ.get("KETTLEBELL_CATALOG_FILE"))


# ───────────── User helpers ─────────────
def load_users():
    """Load users from the users file, returns dict like {username: {password_hash: '...', role: 'user'}}"""
    path = app.config["USERS_FILE"]
    if not os.path.exists(path):
        return {}
    with open(path, "r") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError:
            return {}


def get_user(username):
    users = load_users()
    return users.get(username)


def _safe_next(next_url):
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return url_for("home")


# ───────────── Routes ─────────────
@app.route("/login", methods=["GET", "POST"])
def login():
    # If already logged in, skip login page
    if session.get("logged_in"):
        return redirect(url_for("home"))

    error = None

    if request.method == "POST":
        username = request.form.get("username", "").strip()
        password = request.form.get("password", "")

        user = get_user(username)

        if user and check_password_hash(user["password_hash"], password):
            session["logged_in"] = True
            session["username"] = username
            session["role"] = user.get("role", "user")
            session["name"] = user.get("name", username)
            log_action(username, "login", {"role": session["role"]})
            return redirect(_safe_next(request.args.get("next")))
        else:
            error = "Invalid username or password"
            log_action(username or "unknown", "login_failed")

    return render_template("login.html", error=error), (401 if error else 200)


@app.route("/logout")
def logout():
    username = session.get("username")
    log_action(username, "logout")
    session.clear()
    return redirect(url_for("login"))


@app.route("/")
@login_required
def home():
    return redirect(url_for("kettlebell.setup"))


@app.route("/logs")
@admin_required
def view_logs():
    """Admin-only view of the most recent action log entries."""
    username = session.get("username")
    log_action(username, "view_logs")
    return render_template("logs.html", logs=load_logs())


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=8000, debug=True)
