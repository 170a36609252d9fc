"""Tests for login, password reset and the human check."""

import asyncio
import re
import smtplib
from datetime import datetime, timedelta

import httpx
import pytest

from app.core.errors import InvalidCredentials, TokenAlreadyUsed, TokenExpired, TokenInvalid, ValidationFailed
from app.models.password_reset import PasswordResetToken
from app.models.user import User
from app.services import credentials
from app.services.email import Mailer, send_contact_message
from app.services.recaptcha import verify_human_check
from app.services.security import hash_password, hash_token, verify_password

PASSWORD = "Str0ngP@ss"


@pytest.fixture
def user(db):
    record = User(name="Ann", email="ann@x.com", hashed_password=hash_password(PASSWORD, rounds=4))
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def _issue(db, settings, email="ann@x.com"):
    """Issue a reset and return the plaintext token that would be mailed."""
    issued = credentials.request_password_reset(db, settings, email)
    assert issued is not None
    return issued[1]


def _mailed_token(mailer):
    match = re.search(r"token=([A-Za-z0-9_\-]+)", mailer.sent[-1]["body"])
    return match.group(1)


class TestLogin:
    def test_success(self, db, settings, user):
        token, logged_in = credentials.login(db, settings, "ann@x.com", PASSWORD)
        assert logged_in.id == user.id
        assert token

    def test_wrong_password_and_unknown_email_look_the_same(self, db, settings, user):
        with pytest.raises(InvalidCredentials) as wrong:
            credentials.login(db, settings, "ann@x.com", "Wr0ngP@ss")
        with pytest.raises(InvalidCredentials) as unknown:
            credentials.login(db, settings, "nobody@x.com", PASSWORD)
        assert wrong.value.detail == unknown.value.detail == settings.MESSAGES.AUTH_FAILED

    def test_unknown_email_still_runs_bcrypt(self, db, settings, user, monkeypatch):
        checked = []

        def counting_verify(plain, hashed):
            checked.append(hashed)
            return verify_password(plain, hashed)

        monkeypatch.setattr(credentials, "verify_password", counting_verify)
        with pytest.raises(InvalidCredentials):
            credentials.login(db, settings, "nobody@x.com", PASSWORD)
        with pytest.raises(InvalidCredentials):
            credentials.login(db, settings, "ann@x.com", "Wr0ngP@ss")

        assert len(checked) == 2
        assert checked[0].startswith("$2")
        assert checked[0] != user.hashed_password


class TestPasswordReset:
    def test_unknown_email_issues_nothing(self, db, settings):
        assert credentials.request_password_reset(db, settings, "nobody@x.com") is None
        assert db.query(PasswordResetToken).count() == 0

    def test_issuing_does_not_send_mail(self, db, settings, user):
        # signature takes no mailer: delivery is always the caller's background job
        address, token = credentials.request_password_reset(db, settings, "ann@x.com")
        assert address == "ann@x.com"
        assert token

    def test_only_the_hash_is_stored(self, db, settings, mailer, user):
        address, token = credentials.request_password_reset(db, settings, "ann@x.com")
        asyncio.run(credentials.deliver_password_reset(mailer, address, token))

        assert _mailed_token(mailer) == token
        stored = db.query(PasswordResetToken).one()
        assert stored.token_hash == hash_token(token)
        assert token not in stored.token_hash
        assert mailer.sent[-1]["to"] == "ann@x.com"

    def test_redeem_sets_new_password(self, db, settings, user):
        token = _issue(db, settings)

        credentials.redeem_password_reset(db, settings, token, "N3wP@ssword")

        db.refresh(user)
        assert verify_password("N3wP@ssword", user.hashed_password)
        assert not verify_password(PASSWORD, user.hashed_password)

    def test_second_redeem_fails(self, db, settings, user):
        token = _issue(db, settings)
        credentials.redeem_password_reset(db, settings, token, "N3wP@ssword")

        with pytest.raises(TokenAlreadyUsed):
            credentials.redeem_password_reset(db, settings, token, "An0therP@ss")

    def test_expired_token(self, db, settings, user):
        token = _issue(db, settings)
        stored = db.query(PasswordResetToken).one()
        stored.expires_at = datetime.utcnow() - timedelta(minutes=1)
        db.commit()

        with pytest.raises(TokenExpired):
            credentials.redeem_password_reset(db, settings, token, "N3wP@ssword")

    def test_new_request_supersedes_old_token(self, db, settings, user):
        first = _issue(db, settings)
        second = _issue(db, settings)

        with pytest.raises(TokenExpired):
            credentials.redeem_password_reset(db, settings, first, "N3wP@ssword")
        credentials.redeem_password_reset(db, settings, second, "N3wP@ssword")

    def test_unknown_token(self, db, settings):
        with pytest.raises(TokenInvalid):
            credentials.redeem_password_reset(db, settings, "made-up", "N3wP@ssword")

    def test_weak_new_password_keeps_token_usable(self, db, settings, user):
        token = _issue(db, settings)

        with pytest.raises(ValidationFailed):
            credentials.redeem_password_reset(db, settings, token, "weak")
        credentials.redeem_password_reset(db, settings, token, "N3wP@ssword")

    def test_failed_delivery_is_only_logged(self, mailer):
        mailer.deliver = False
        assert asyncio.run(credentials.deliver_password_reset(mailer, "ann@x.com", "tok")) is None
        assert len(mailer.sent) == 1


class TestHumanCheck:
    def _transport(self, handler):
        return httpx.MockTransport(handler)

    def test_success(self, settings):
        seen = {}

        def handler(request):
            seen["body"] = request.content.decode()
            return httpx.Response(200, json={"success": True})

        assert asyncio.run(verify_human_check(settings, "widget-token", "1.2.3.4", transport=self._transport(handler)))
        assert "response=widget-token" in seen["body"]
        assert "remoteip=1.2.3.4" in seen["body"]

    def test_negative_answer(self, settings):
        transport = self._transport(lambda request: httpx.Response(200, json={"success": False}))
        assert not asyncio.run(verify_human_check(settings, "widget-token", transport=transport))

    def test_server_error_fails_closed(self, settings):
        transport = self._transport(lambda request: httpx.Response(500, text="oops"))
        assert not asyncio.run(verify_human_check(settings, "widget-token", transport=transport))

    def test_network_error_fails_closed(self, settings):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        assert not asyncio.run(verify_human_check(settings, "widget-token", transport=self._transport(handler)))

    def test_missing_secret_or_token(self, settings):
        transport = self._transport(lambda request: httpx.Response(200, json={"success": True}))
        unconfigured = settings.model_copy(update={"RECAPTCHA_SECRET_KEY": None})
        assert not asyncio.run(verify_human_check(unconfigured, "widget-token", transport=transport))
        assert not asyncio.run(verify_human_check(settings, "", transport=transport))


class TestMailer:
    def test_timeout_counts_as_failure(self, settings, monkeypatch):
        mailer = Mailer(settings.model_copy(update={"MAIL_TIMEOUT_SECONDS": 0.05}))

        async def stuck(*args, **kwargs):
            await asyncio.sleep(5)
            return True

        monkeypatch.setattr("app.services.email.run_in_threadpool", stuck)
        assert asyncio.run(mailer.send("ann@x.com", "Hi", "body")) is False

    def test_no_transport_configured(self, settings):
        mailer = Mailer(settings.model_copy(update={"RESEND_API_KEY": None, "SMTP_HOST": None}))
        assert asyncio.run(mailer.send("ann@x.com", "Hi", "body")) is False

    def test_contact_message_goes_to_owner_with_reply_to(self, mailer):
        assert asyncio.run(send_contact_message(mailer, "visitor@x.com", "Prints", "<b>hello</b>"))
        sent = mailer.sent[-1]
        assert sent["to"] == "owner@portfolio.test"
        assert sent["reply_to"] == "visitor@x.com"
        assert "&lt;b&gt;hello&lt;/b&gt;" in sent["body"]

    def test_header_injection_degrades_to_failure(self, settings, monkeypatch):
        mailer = Mailer(
            settings.model_copy(update={"RESEND_API_KEY": None, "SMTP_HOST": "smtp.test", "SMTP_FROM": "site@x.com"})
        )

        def no_connection():
            raise AssertionError("a rejected message must not open a connection")

        monkeypatch.setattr(mailer, "_build_smtp_client", no_connection)

        assert asyncio.run(send_contact_message(mailer, "visitor@x.com", "Hi\nBcc: evil@x.com", "body")) is False
        assert asyncio.run(mailer.send("ann@x.com", "Hi", "body", reply_to="v@x.com\r\nBcc: evil@x.com")) is False

    def test_smtp_connect_error_degrades_to_failure(self, settings, monkeypatch):
        mailer = Mailer(
            settings.model_copy(update={"RESEND_API_KEY": None, "SMTP_HOST": "smtp.test", "SMTP_FROM": "site@x.com"})
        )

        def refused():
            raise smtplib.SMTPConnectError(421, "busy")

        monkeypatch.setattr(mailer, "_build_smtp_client", refused)
        assert asyncio.run(mailer.send("ann@x.com", "Hi", "body")) is False
