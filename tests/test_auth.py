import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from errors import ConflictError, Unauthenticated, ValidationError
from passwords import hash_password, verify_password
from schemas import PasswordChange, ProfileUpdate, RegisterIn
from services import UserService
from sessions import issue_session_token, read_session_token


def test_hash_format_and_verify() -> None:
    stored = hash_password("password123")
    hashed, salt = stored.split(".")
    assert len(hashed) == 128
    assert len(salt) == 32
    assert verify_password("password123", stored)
    assert not verify_password("password124", stored)


def test_hashes_are_salted() -> None:
    assert hash_password("same") != hash_password("same")


@pytest.mark.parametrize("stored", ["", "nodot", "zz.salt", "abcd.salt", ".salt"])
def test_malformed_stored_password_never_verifies(stored: str) -> None:
    assert not verify_password("anything", stored)


def test_session_token_round_trip_and_tamper() -> None:
    token = issue_session_token(7)
    assert read_session_token(token) == 7
    assert read_session_token(token + "x") is None
    assert read_session_token(None) is None
    assert read_session_token("") is None


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def register(session: Session, username: str, email: str):
    return UserService(session).register(
        RegisterIn(
            username=username,
            password="secret-pass",
            email=email,
            full_name="Some One",
        )
    )


def test_register_and_authenticate() -> None:
    with make_session() as session:
        user = register(session, "demo", "demo@example.com")
        assert user.password != "secret-pass"
        assert user.is_pro is False

        users = UserService(session)
        assert users.authenticate("demo", "secret-pass").id == user.id
        with pytest.raises(Unauthenticated):
            users.authenticate("demo", "wrong")
        with pytest.raises(Unauthenticated):
            users.authenticate("nobody", "secret-pass")


def test_register_rejects_duplicates() -> None:
    with make_session() as session:
        register(session, "demo", "demo@example.com")
        with pytest.raises(ConflictError, match="Username"):
            register(session, "demo", "other@example.com")
        with pytest.raises(ConflictError, match="Email"):
            register(session, "demo2", "demo@example.com")


def test_update_profile_rejects_taken_email() -> None:
    with make_session() as session:
        alice = register(session, "alice", "alice@example.com")
        register(session, "bob", "bob@example.com")
        users = UserService(session)

        with pytest.raises(ConflictError, match="Email already in use"):
            users.update_profile(
                alice.id, ProfileUpdate(full_name="Alice", email="bob@example.com")
            )

        updated = users.update_profile(
            alice.id, ProfileUpdate(full_name="Alice A.", email="alice@example.com")
        )
        assert updated.full_name == "Alice A."


def test_change_password_requires_current_password() -> None:
    with make_session() as session:
        user = register(session, "demo", "demo@example.com")
        users = UserService(session)

        with pytest.raises(ValidationError, match="Current password is incorrect"):
            users.change_password(
                user.id,
                PasswordChange(current_password="nope", new_password="another1"),
            )

        users.change_password(
            user.id,
            PasswordChange(current_password="secret-pass", new_password="another1"),
        )
        assert users.authenticate("demo", "another1").id == user.id
