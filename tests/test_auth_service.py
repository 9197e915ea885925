"""Unit tests for the auth service.

Tests for:
- Login with uniform failures
- Signup and duplicate-email handling
- Email verification (single use, expiry)
- Password reset and change (single use, session revocation)
"""

from datetime import timedelta

import pytest

from jobboard.service.errors import BadUserInputError, TokenError
from jobboard.storage.models import TokenType

from conftest import DEFAULT_PASSWORD


def _signup_kwargs(email="new@example.com", password=DEFAULT_PASSWORD):
    return dict(
        name="Initech",
        website="https://initech.example",
        headquarter="Austin",
        logo="https://initech.example/logo.png",
        description="Printers and TPS reports",
        email=email,
        password=password,
    )


class TestLogin:
    async def test_valid_credentials(self, runtime, make_company):
        company = make_company(email="acme@example.com")
        assert (await runtime.auth.login("acme@example.com", DEFAULT_PASSWORD)).id == company.id

    async def test_wrong_password_and_unknown_email_fail_identically(self, runtime, make_company):
        company = make_company(email="acme@example.com")
        errors = []
        for email, password in (
            ("acme@example.com", "wrong-password"),
            ("acme@example.com", "another-wrong-one"),
            ("nobody@example.com", DEFAULT_PASSWORD),
        ):
            with pytest.raises(BadUserInputError) as exc_info:
                await runtime.auth.login(email, password)
            errors.append((exc_info.value.message, exc_info.value.status_code, exc_info.value.error_code))

        assert set(errors) == {("Invalid email or password", 400, "bad_user_input")}
        assert runtime.store.list_tokens_for(company.id) == []

    def test_password_is_stored_as_argon2id(self, make_company):
        assert make_company().password_hash.startswith("$argon2id$")


class TestSignup:
    async def test_creates_company_and_emails_verification(self, runtime, outbox):
        company = await runtime.auth.signup(**_signup_kwargs())

        assert company.email == "new@example.com"
        assert not company.is_verified
        assert company.password_hash != DEFAULT_PASSWORD
        ((kind, to, token),) = outbox
        assert (kind, to) == ("verify", "new@example.com")
        row = runtime.tokens.resolve_stateful_token(token, TokenType.EMAIL_VERIFICATION)
        assert row.owner_id == company.id

    async def test_duplicate_email_is_silently_ignored(self, runtime, outbox):
        await runtime.auth.signup(**_signup_kwargs())
        assert await runtime.auth.signup(**_signup_kwargs(password="other-password")) is None
        assert len(outbox) == 1
        # The original password still works.
        await runtime.auth.login("new@example.com", DEFAULT_PASSWORD)


class TestVerifyEmail:
    async def test_token_verifies_once(self, runtime, outbox):
        company = await runtime.auth.signup(**_signup_kwargs())
        token = outbox[0][2]

        verified = await runtime.auth.verify_email(token)
        assert verified.id == company.id
        assert verified.is_verified

        with pytest.raises(TokenError) as exc_info:
            await runtime.auth.verify_email(token)
        assert exc_info.value.message == "Email verification failed"

    async def test_expired_token_fails_and_is_spent(self, runtime, make_company):
        company = make_company(verified=False)
        token = runtime.tokens.issue_stateful_token(
            company.id, TokenType.EMAIL_VERIFICATION, ttl=timedelta(seconds=-1)
        )
        with pytest.raises(TokenError):
            await runtime.auth.verify_email(token)
        assert not runtime.store.get_company(company.id).is_verified
        row = runtime.tokens.resolve_stateful_token(token, TokenType.EMAIL_VERIFICATION)
        assert row.blacklisted

    async def test_wrong_token_type_fails(self, runtime, make_company):
        company = make_company(verified=False)
        reset_token = runtime.tokens.issue_stateful_token(company.id, TokenType.RESET_PASSWORD)
        with pytest.raises(TokenError):
            await runtime.auth.verify_email(reset_token)

    async def test_garbage_token_fails(self, runtime):
        with pytest.raises(TokenError):
            await runtime.auth.verify_email("garbage")


class TestPasswordReset:
    async def test_reset_is_single_use_and_revokes_sessions(self, runtime, make_company, outbox):
        company = make_company(email="acme@example.com")
        runtime.sessions.begin_session(company.id)

        assert await runtime.auth.send_reset_password_email("acme@example.com") is True
        token = outbox[-1][2]
        await runtime.auth.reset_password(token, "brand-new-password")

        await runtime.auth.login("acme@example.com", "brand-new-password")
        assert runtime.store.list_tokens_for(company.id, TokenType.REFRESH) == []
        with pytest.raises(TokenError) as exc_info:
            await runtime.auth.reset_password(token, "yet-another-password")
        assert exc_info.value.message == "Password reset failed"

    async def test_expired_reset_token_is_consumed(self, runtime, make_company):
        company = make_company()
        token = runtime.tokens.issue_stateful_token(
            company.id, TokenType.RESET_PASSWORD, ttl=timedelta(seconds=-1)
        )
        with pytest.raises(TokenError):
            await runtime.auth.reset_password(token, "brand-new-password")
        assert runtime.tokens.resolve_stateful_token(token, TokenType.RESET_PASSWORD) is None

    async def test_unknown_email_sends_nothing(self, runtime, outbox):
        assert await runtime.auth.send_reset_password_email("ghost@example.com") is False
        assert outbox == []


class TestChangePassword:
    async def test_wrong_old_password(self, runtime, make_company):
        company = make_company()
        with pytest.raises(BadUserInputError) as exc_info:
            await runtime.auth.change_password(company.id, "not-my-password", "whatever-new")
        assert exc_info.value.message == "Password change failed"

    async def test_success_revokes_refresh_tokens(self, runtime, make_company):
        company = make_company(email="acme@example.com")
        runtime.sessions.begin_session(company.id)
        runtime.sessions.begin_session(company.id)

        await runtime.auth.change_password(company.id, DEFAULT_PASSWORD, "fresh-password-1")

        assert runtime.store.list_tokens_for(company.id, TokenType.REFRESH) == []
        await runtime.auth.login("acme@example.com", "fresh-password-1")


class TestSendVerificationEmail:
    async def test_skips_verified_company(self, runtime, make_company, outbox):
        assert await runtime.auth.send_verification_email(make_company(verified=True)) is False
        assert outbox == []

    async def test_sends_for_unverified_company(self, runtime, make_company, outbox):
        company = make_company(verified=False)
        assert await runtime.auth.send_verification_email(company) is True
        assert outbox[0][:2] == ("verify", company.email)
