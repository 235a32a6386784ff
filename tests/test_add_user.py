from werkzeug.security import check_password_hash

from add_user import add_user, load_users, save_users


def test_add_user():
    users = {}
    assert add_user(users, "carol", "kb", role="admin", name="Carol") is None
    assert users["carol"]["role"] == "admin"
    assert users["carol"]["name"] == "Carol"
    assert check_password_hash(users["carol"]["password_hash"], "kb")


def test_add_user_validation():
    users = {"carol": {}}
    assert add_user(users, "", "pw") == "Username cannot be empty."
    assert add_user(users, "carol", "pw") == "User 'carol' already exists."
    assert add_user(users, "dave", "") == "Password cannot be empty."


def test_unknown_role_becomes_user():
    users = {}
    add_user(users, "dave", "pw", role="owner")
    assert users["dave"]["role"] == "user"
    assert users["dave"]["name"] == "dave"


def test_users_file_round_trip(tmp_path):
    path = str(tmp_path / "users.json")
    assert load_users(path) == {}
    users = {}
    add_user(users, "erin", "pw")
    save_users(users, path)
    assert load_users(path)["erin"]["role"] == "user"
