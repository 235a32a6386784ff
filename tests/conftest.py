import json

import pytest
from werkzeug.security import generate_password_hash

from app import app as flask_app
from kettlebell_app.catalog import build_catalog


USERS = {
    "alice": {"password": "swing", "role": "user", "name": "Alice"},
    "bob": {"password": "press", "role": "user", "name": "Bob"},
    "admin": {"password": "halo", "role": "admin", "name": "Admin"},
}


def _record(name, group, difficulty="beginner", sets=3, reps=10, secondary=None, description=""):
    return {
        "name": name,
        "muscle_group": group,
        "secondary_muscles": secondary or [],
        "difficulty": difficulty,
        "equipment": "1 KB",
        "description": description or f"{name} for {group}",
        "instructions": ["Set up", "Move", "Reset"],
        "default_sets": sets,
        "default_reps": reps,
    }


@pytest.fixture
def make_record():
    return _record


@pytest.fixture
def small_catalog():
    return build_catalog([
        _record("Core Curl", "core"),
        _record("Core Twist", "core", difficulty="intermediate", reps=12),
        _record("Core Crawl", "core", difficulty="advanced", reps=8),
        _record("Back Row", "back", secondary=["biceps"]),
        _record("Back Pull", "back", difficulty="intermediate"),
        _record("Curl Row", "biceps", secondary=["back"], description="Row into a curl"),
        _record("Hammer Curl", "biceps", sets=2, reps=12),
    ])


@pytest.fixture
def app(tmp_path):
    users_file = tmp_path / "users.json"
    users_file.write_text(json.dumps({
        username: {
            "password_hash": generate_password_hash(info["password"]),
            "role": info["role"],
            "name": info["name"],
        }
        for username, info in USERS.items()
    }))

    original = dict(flask_app.config)
    flask_app.config.update(
        TESTING=True,
        USERS_FILE=str(users_file),
        ACTION_LOG_FILE=str(tmp_path / "logs.jsonl"),
        DATA_DIR=str(tmp_path / "data"),
    )
    yield flask_app
    flask_app.config.clear()
    flask_app.config.update(original)


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, username):
    return client.post("/login", data={"username": username, "password": USERS[username]["password"]})


@pytest.fixture
def alice(app):
    c = app.test_client()
    login(c, "alice")
    return c


@pytest.fixture
def bob(app):
    c = app.test_client()
    login(c, "bob")
    return c


@pytest.fixture
def admin(app):
    c = app.test_client()
    login(c, "admin")
    return c
