import httpx
import pytest

from codegate.core.exceptions import DeliveryError
from codegate.models.verification_code import VerificationCode
from codegate.schemas.verification import CodePurpose
from codegate.services.code_issuer import CodeIssuer, generate_code


def test_generate_code_is_six_digits():
    """Generated codes are six digits"""
    for _ in range(200):
        code = generate_code()
        assert len(code) == 6
        assert code.isdigit()
        assert 100000 <= int(code) <= 999999


@pytest.mark.asyncio
async def test_issue_stores_and_sends_code(db_session, relay):
    """Issuing stores the code and emails it"""
    issuer = CodeIssuer(db_session, email_service=relay.email_service())

    result = await issuer.issue("  A@X.com ", CodePurpose.signup, {"display_name": "Ada"})

    assert result.email == "a@x.com"
    assert result.superseded == 0
    row = db_session.query(VerificationCode).filter(VerificationCode.id == result.code_id).one()
    assert row.code == relay.last_code("a@x.com")
    assert row.used is False
    assert row.expires_at == result.expires_at

    mail = relay.sent[-1]
    assert mail["body_type"] == "html"
    assert "Welcome, Ada!" in mail["body"]
    assert "15 minutes" in mail["body"]


@pytest.mark.asyncio
async def test_reissue_supersedes_previous_code(db_session, relay):
    """Issuing again supersedes the outstanding code"""
    issuer = CodeIssuer(db_session, email_service=relay.email_service())

    first = await issuer.issue("a@x.com", CodePurpose.signup)
    second = await issuer.issue("a@x.com", CodePurpose.signup)

    assert second.superseded == 1
    live = db_session.query(VerificationCode).filter(
        VerificationCode.email == "a@x.com",
        VerificationCode.used.is_(False)
    ).all()
    assert [row.id for row in live] == [second.code_id]
    assert db_session.get(VerificationCode, first.code_id).used is True


@pytest.mark.asyncio
async def test_issue_per_purpose_is_independent(db_session, relay):
    """Codes for different purposes do not supersede each other"""
    issuer = CodeIssuer(db_session, email_service=relay.email_service())

    await issuer.issue("a@x.com", CodePurpose.signup)
    reset = await issuer.issue("a@x.com", CodePurpose.password_reset)

    assert reset.superseded == 0
    assert "Password Reset" in relay.sent[-1]["subject"]


@pytest.mark.asyncio
async def test_relay_rejection_raises_delivery_error_and_keeps_code(db_session, make_relay):
    """A relay error raises DeliveryError and keeps the stored code"""
    relay = make_relay(status_code=500)
    issuer = CodeIssuer(db_session, email_service=relay.email_service())

    with pytest.raises(DeliveryError):
        await issuer.issue("a@x.com", CodePurpose.signup)

    assert db_session.query(VerificationCode).filter(
        VerificationCode.email == "a@x.com",
        VerificationCode.used.is_(False)
    ).count() == 1


@pytest.mark.asyncio
async def test_relay_timeout_raises_delivery_error(db_session, make_relay):
    """A relay timeout raises DeliveryError"""
    relay = make_relay(error=httpx.ReadTimeout("timed out"))
    issuer = CodeIssuer(db_session, email_service=relay.email_service())

    with pytest.raises(DeliveryError):
        await issuer.issue("a@x.com", CodePurpose.signup)


@pytest.mark.asyncio
async def test_relay_unreachable_raises_delivery_error(db_session, make_relay):
    """An unreachable relay raises DeliveryError"""
    relay = make_relay(error=httpx.ConnectError("connection refused"))
    issuer = CodeIssuer(db_session, email_service=relay.email_service())

    with pytest.raises(DeliveryError):
        await issuer.issue("a@x.com", CodePurpose.password_reset)
