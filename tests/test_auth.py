from datetime import datetime, timedelta, timezone

import jwt
import mongomock
import pytest

from moodvibe.agents.config import USERS_COLLECTION
from moodvibe.agents.errors import AuthenticationError, UserExistsError
from moodvibe.app.auth import AuthService
from moodvibe.app.users import UserStore


def test_register_returns_user_and_valid_token(auth_service):
    user, token = auth_service.register_user("ada@example.com", "Ada", "secret123")

    assert user.email == "ada@example.com"
    assert user.name == "Ada"
    assert user.provider == "email"
    assert user.avatar is None
    assert auth_service.verify_token(token) == user.id


def test_password_is_stored_hashed(auth_service, user_store):
    auth_service.register_user("ada@example.com", "Ada", "secret123")

    doc = user_store.find_by_email("ada@example.com")
    assert doc["password"] != "secret123"
    assert auth_service.verify_password("secret123", doc["password"])
    assert doc["email_verified"] is False


def test_register_twice_with_same_email_fails(auth_service):
    auth_service.register_user("ada@example.com", "Ada", "secret123")

    with pytest.raises(UserExistsError, match="User already exists with this email"):
        auth_service.register_user("ada@example.com", "Ada Again", "other-pass")


def test_unique_index_rejects_duplicate_insert(user_store):
    user_store.create_user("ada@example.com", "Ada")
    with pytest.raises(UserExistsError):
        user_store.create_user("ada@example.com", "Ada")


def test_login_with_correct_password(auth_service):
    registered, _ = auth_service.register_user("ada@example.com", "Ada", "secret123")

    user, token = auth_service.login_user("ada@example.com", "secret123")

    assert user == registered
    assert auth_service.verify_token(token) == registered.id


def test_login_failures_share_one_message(auth_service):
    auth_service.register_user("ada@example.com", "Ada", "secret123")

    with pytest.raises(AuthenticationError) as wrong_password:
        auth_service.login_user("ada@example.com", "wrong-pass")
    with pytest.raises(AuthenticationError) as unknown_email:
        auth_service.login_user("nobody@example.com", "secret123")

    assert str(wrong_password.value) == "Invalid email or password"
    assert str(unknown_email.value) == str(wrong_password.value)


def test_google_only_user_cannot_password_login(auth_service):
    auth_service.handle_google_user({"sub": "g-1", "email": "g@example.com", "name": "G"})

    with pytest.raises(AuthenticationError, match="Invalid email or password"):
        auth_service.login_user("g@example.com", "anything")


def test_long_passwords_are_accepted(auth_service):
    password = "p" * 100
    auth_service.register_user("long@example.com", "Long", password)
    user, _ = auth_service.login_user("long@example.com", password)
    assert user.email == "long@example.com"


def test_get_user_from_token(auth_service):
    registered, token = auth_service.register_user("ada@example.com", "Ada", "secret123")
    assert auth_service.get_user_from_token(token) == registered


@pytest.mark.parametrize("token", ["", "not-a-jwt", "a.b.c"])
def test_garbage_tokens_are_rejected(auth_service, token):
    assert auth_service.verify_token(token) is None
    with pytest.raises(AuthenticationError):
        auth_service.get_user_from_token(token)


def test_expired_token_is_rejected(auth_service):
    registered, _ = auth_service.register_user("ada@example.com", "Ada", "secret123")
    past = datetime.now(timezone.utc) - timedelta(days=1)
    expired = jwt.encode(
        {"sub": registered.id, "iat": past - timedelta(days=7), "exp": past},
        "test-secret",
        algorithm="HS256",
    )

    with pytest.raises(AuthenticationError):
        auth_service.get_user_from_token(expired)


def test_token_signed_with_other_secret_is_rejected(auth_service, user_store):
    registered, _ = auth_service.register_user("ada@example.com", "Ada", "secret123")
    other = AuthService(user_store, secret="other-secret", bcrypt_rounds=4)

    with pytest.raises(AuthenticationError):
        auth_service.get_user_from_token(other.generate_token(registered.id))


def test_token_for_deleted_user_is_rejected(auth_service, user_store):
    registered, token = auth_service.register_user("ada@example.com", "Ada", "secret123")
    user_store.collection.delete_many({})

    with pytest.raises(AuthenticationError):
        auth_service.get_user_from_token(token)


def test_google_login_creates_user(auth_service, user_store):
    profile = {
        "sub": "google-42",
        "email": "grace@example.com",
        "name": "Grace",
        "picture": "https://lh3.googleusercontent.com/a/pic",
    }

    user, token = auth_service.handle_google_user(profile)

    assert user.provider == "google"
    assert user.avatar == "https://lh3.googleusercontent.com/a/pic"
    assert user_store.find_by_google_id("google-42")["email_verified"] is True
    assert auth_service.verify_token(token) == user.id


def test_google_login_links_existing_email_account(auth_service, user_store):
    registered, _ = auth_service.register_user("grace@example.com", "Grace", "secret123")

    user, _ = auth_service.handle_google_user(
        {"sub": "google-42", "email": "grace@example.com", "name": "Grace H", "picture": "https://pic"}
    )

    assert user.id == registered.id
    assert user.provider == "email"
    assert user.avatar == "https://pic"
    doc = user_store.find_by_id(registered.id)
    assert doc["google_id"] == "google-42"
    assert doc["email_verified"] is True


def test_repeat_google_login_reuses_account(auth_service, user_store):
    profile = {"sub": "google-42", "email": "grace@example.com", "name": "Grace"}
    first, _ = auth_service.handle_google_user(profile)
    second, _ = auth_service.handle_google_user(profile)

    assert first.id == second.id
    assert user_store.collection.count_documents({}) == 1


def test_find_by_id_ignores_malformed_ids(user_store):
    assert user_store.find_by_id("not-an-object-id") is None


def test_shared_collection_gets_unique_indexes_on_first_use(monkeypatch):
    db = mongomock.MongoClient().db
    monkeypatch.setattr("moodvibe.app.users.get_db_client", lambda: db)
    service = AuthService(UserStore(), secret="test-secret", bcrypt_rounds=4)

    service.register_user("ada@example.com", "Ada", "secret123")
    with pytest.raises(UserExistsError):
        service.register_user("ada@example.com", "Ada Again", "secret456")

    indexes = db[USERS_COLLECTION].index_information()
    assert any(ix.get("unique") and ix["key"] == [("email", 1)] for ix in indexes.values())
    assert db[USERS_COLLECTION].count_documents({}) == 1
