#!/usr/bin/env python3
import os
import json
from getpass import getpass

from werkzeug.security import generate_password_hash

from kettlebell_core import USERS_FILE


def load_users(path=USERS_FILE):
    if not os.path.exists(path):
        return {}
    with open(path, "r") as f:
        try:
            return json.load(f)
        except json.JSONDecodeError:
            return {}


def save_users(users, path=USERS_FILE):
    with open(path, "w") as f:
        json.dump(users, f, indent=2)


def add_user(users, username, password, role="user", name=None):
    """Validate and add a user in place. Returns an error message or None."""
    if not username:
        return "Username cannot be empty."
    if username in users:
        return f"User '{username}' already exists."
    if not password:
        return "Password cannot be empty."
    if role not in ("user", "admin"):
        role = "user"

    users[username] = {
        "password_hash": generate_password_hash(password),
        "role": role,
        "name": name or username,
    }
    return None


def main():
    users = load_users()

    username = input("New username: ").strip()
    name = input("Display name (default: username): ").strip()

    password = getpass("Password: ")
    confirm = getpass("Confirm password: ")

    if password != confirm:
        print("Passwords do not match.")
        return

    role = input("Role [user/admin] (default: user): ").strip().lower() or "user"

    error = add_user(users, username, password, role, name)
    if error:
        print(error)
        return

    save_users(users)
    print(f"User '{username}' added with role '{users[username]['role']}'.")


if __name__ == "__main__":
    main()
