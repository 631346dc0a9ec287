import threading
from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import InvalidTokenError
from app.core.security import TokenIssuer, verify_password
from app.services import password_reset
from app.services.password_reset import PasswordResetService


@pytest.fixture
def account(user_factory):
    return user_factory(email="a@x.com", password="OldPass1!")


def forgot(client, email="a@x.com"):
    return client.post("/auth/forgot-password", json={"email": email})


def verify(client, code, email="a@x.com"):
    return client.post("/auth/verify-otp", json={"email": email, "otp": code})


def reset(client, token, new_password="NewPass1!"):
    return client.post("/auth/reset-password", json={"resetToken": token, "newPassword": new_password})


def test_full_reset_flow_then_login_with_new_password(client, account, mailer, registry, clock):
    response = forgot(client)
    assert response.status_code == 200
    assert response.json() == {"message": "OTP sent to your email"}

    code = mailer.last_code_for("a@x.com")
    assert mailer.sent[-1]["expires_minutes"] == 5
    entry = registry.peek("a@x.com")
    assert entry.code == code
    assert entry.expires_at == clock.now + 300

    response = verify(client, code)
    assert response.status_code == 200
    reset_token = response.json()["resetToken"]

    response = reset(client, reset_token)
    assert response.status_code == 200
    assert response.json() == {"message": "Password reset successfully"}

    login = client.post("/auth/login", json={"email": "a@x.com", "password": "NewPass1!"})
    assert login.status_code == 200
    old = client.post("/auth/login", json={"email": "a@x.com", "password": "OldPass1!"})
    assert old.status_code == 401


def test_forgot_password_unknown_email(client, mailer):
    response = forgot(client, "ghost@x.com")

    assert response.status_code == 404
    assert mailer.sent == []


def test_forgot_password_google_only_account(client, user_factory, mailer, registry):
    user_factory(email="g@x.com", password=None, google_id="google-sub-1")

    response = forgot(client, "g@x.com")

    assert response.status_code == 404
    assert mailer.sent == []
    assert registry.peek("g@x.com") is None


def test_forgot_password_requires_email(client):
    response = client.post("/auth/forgot-password", json={})
    assert response.status_code == 400


def test_forgot_password_mail_failure_is_500(client, account, mailer):
    mailer.ok = False

    response = forgot(client)

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to send OTP"}


def test_code_is_single_use(client, account, mailer):
    forgot(client)
    code = mailer.last_code_for("a@x.com")

    assert verify(client, code).status_code == 200
    response = verify(client, code)

    assert response.status_code == 400
    assert response.json() == {"error": "OTP not found or expired"}


def test_wrong_code_allows_retry(client, account, mailer):
    forgot(client)
    code = mailer.last_code_for("a@x.com")
    wrong = "100000" if code != "100000" else "100001"

    response = verify(client, wrong)
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid OTP"}

    assert verify(client, code).status_code == 200


def test_expired_code_is_rejected_and_cleared(client, account, mailer, registry, clock):
    forgot(client)
    code = mailer.last_code_for("a@x.com")
    clock.advance(5 * 60 + 1)

    response = verify(client, code)

    assert response.status_code == 400
    assert response.json() == {"error": "OTP expired"}
    assert registry.peek("a@x.com") is None


def test_second_request_invalidates_first_code(client, account, mailer):
    forgot(client)
    first = mailer.last_code_for("a@x.com")
    forgot(client)
    second = mailer.last_code_for("a@x.com")

    if first != second:
        assert verify(client, first).status_code == 400
    assert verify(client, second).status_code == 200


def test_verify_otp_requires_fields(client):
    response = client.post("/auth/verify-otp", json={"email": "a@x.com"})
    assert response.status_code == 400
    assert "otp" in response.json()["error"]


def test_reset_changes_only_the_bound_user(client, user_factory, issuer, password_hash_of):
    user_factory(email="a@x.com", password="OldPass1!")
    user_factory(email="b@x.com", password="OtherPass1!")
    a_before = password_hash_of("a@x.com")
    b_before = password_hash_of("b@x.com")

    response = reset(client, issuer.issue_reset_token("a@x.com"))

    assert response.status_code == 200
    assert password_hash_of("a@x.com") != a_before
    assert password_hash_of("b@x.com") == b_before


def test_reset_rejects_token_with_other_purpose(client, account, issuer, password_hash_of):
    before = password_hash_of("a@x.com")
    token = issuer.issue({"email": "a@x.com", "purpose": "email_change"}, timedelta(minutes=10))

    response = reset(client, token)

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid or expired reset token"}
    assert password_hash_of("a@x.com") == before


def test_reset_rejects_session_token(client, account, issuer):
    response = reset(client, issuer.issue_session_token(account))
    assert response.status_code == 400


def test_reset_rejects_expired_token(client, account):
    past = datetime.now(timezone.utc) - timedelta(minutes=11)
    stale_issuer = TokenIssuer("test-secret-key", clock=lambda: past)
    token = stale_issuer.issue_reset_token("a@x.com")

    response = reset(client, token)

    assert response.status_code == 400


def test_reset_rejects_forged_token(client, account):
    token = TokenIssuer("attacker-secret").issue_reset_token("a@x.com")

    response = reset(client, token)

    assert response.status_code == 400


def test_reset_token_cannot_be_replayed(client, account, issuer):
    token = issuer.issue_reset_token("a@x.com")

    assert reset(client, token, "First1!").status_code == 200
    response = reset(client, token, "Second1!")

    assert response.status_code == 400
    login = client.post("/auth/login", json={"email": "a@x.com", "password": "First1!"})
    assert login.status_code == 200


def test_reset_token_replay_allowed_when_single_use_disabled(client, account, issuer):
    from app.core import dependencies
    from app.main import app

    app.dependency_overrides[dependencies.get_used_token_store] = lambda: None
    token = issuer.issue_reset_token("a@x.com")

    assert reset(client, token, "First1!").status_code == 200
    assert reset(client, token, "Second1!").status_code == 200


def test_concurrent_resets_with_one_token_only_one_wins(
        db_session, account, registry, issuer, mailer, store, monkeypatch, password_hash_of):
    entered = threading.Event()
    release = threading.Event()
    real_update = password_reset.crud.update_password

    def slow_update(db, email, password):
        entered.set()
        release.wait(timeout=5)
        return real_update(db, email=email, password=password)

    monkeypatch.setattr(password_reset.crud, "update_password", slow_update)
    service = PasswordResetService(db_session, registry, issuer, mailer, used_tokens=store)
    token = issuer.issue_reset_token("a@x.com")
    errors = []

    def first():
        try:
            service.reset_password(token, "First1!")
        except Exception as e:
            errors.append(e)

    worker = threading.Thread(target=first)
    worker.start()
    assert entered.wait(timeout=5)

    with pytest.raises(InvalidTokenError):
        service.reset_password(token, "Second1!")

    release.set()
    worker.join(timeout=5)
    assert errors == []

    assert verify_password("First1!", password_hash_of("a@x.com"))


def test_failed_password_write_releases_the_token(
        db_session, account, registry, issuer, mailer, store, monkeypatch):
    def broken_update(db, email, password):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(password_reset.crud, "update_password", broken_update)
    service = PasswordResetService(db_session, registry, issuer, mailer, used_tokens=store)
    token = issuer.issue_reset_token("a@x.com")

    with pytest.raises(RuntimeError):
        service.reset_password(token, "First1!")

    monkeypatch.undo()
    service.reset_password(token, "First1!")


def test_reset_requires_fields(client):
    response = client.post("/auth/reset-password", json={"resetToken": "x"})
    assert response.status_code == 400
    assert "newPassword" in response.json()["error"]
