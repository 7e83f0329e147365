import pytest

from codegate.core.auth import verify_password, verify_token
from codegate.core.exceptions import ProvisioningConflict
from codegate.models.user import User
from codegate.models.verification_code import VerificationCode
from codegate.schemas.verification import CodePurpose, PendingRegistration
from codegate.services.identity_service import DatabaseIdentityProvider
from codegate.services.provisioning_service import ProvisioningCoordinator


@pytest.fixture
def coordinator(db_session, relay):
    return ProvisioningCoordinator(db_session, email_service=relay.email_service())


def pending(email="a@x.com"):
    return PendingRegistration(email=email, password="correct-horse", display_name="Ada")


async def verified(coordinator, relay, email, purpose):
    await coordinator.request_code(email, purpose)
    return coordinator.verify(email, relay.last_code(email.lower()), purpose)


@pytest.mark.asyncio
async def test_signup_creates_account(db_session, relay, coordinator):
    """A verified signup creates the account"""
    verification = await verified(coordinator, relay, "a@x.com", CodePurpose.signup)

    identity = coordinator.complete_signup(verification, pending())

    user = db_session.query(User).filter(User.email == "a@x.com").one()
    assert identity.id == user.id
    assert identity.display_name == "Ada"
    assert verify_password("correct-horse", user.hashed_password)
    assert verify_token(identity.access_token)["sub"] == user.id


@pytest.mark.asyncio
async def test_signup_twice_with_one_verification_conflicts(db_session, relay, coordinator):
    """A verification provisions only one account"""
    verification = await verified(coordinator, relay, "a@x.com", CodePurpose.signup)
    coordinator.complete_signup(verification, pending())

    with pytest.raises(ProvisioningConflict):
        coordinator.complete_signup(verification, pending())

    assert db_session.query(User).count() == 1


@pytest.mark.asyncio
async def test_signup_for_registered_email_conflicts_and_spends_code(db_session, relay, coordinator):
    """Signup for a registered email conflicts and spends the verification"""
    DatabaseIdentityProvider(db_session).create_account("a@x.com", "first-password", {"display_name": "First"})
    verification = await verified(coordinator, relay, "a@x.com", CodePurpose.signup)

    with pytest.raises(ProvisioningConflict):
        coordinator.complete_signup(verification, pending())

    row = db_session.get(VerificationCode, verification.code_id)
    assert row.redeemed_at is not None


@pytest.mark.asyncio
async def test_signup_verification_cannot_reset_password(relay, coordinator):
    """A signup verification cannot reset a password"""
    verification = await verified(coordinator, relay, "a@x.com", CodePurpose.signup)

    with pytest.raises(ProvisioningConflict):
        coordinator.complete_reset(verification, "a@x.com", "new-password")


@pytest.mark.asyncio
async def test_verification_is_bound_to_its_email(relay, coordinator):
    """A verification cannot sign up a different email"""
    verification = await verified(coordinator, relay, "a@x.com", CodePurpose.signup)

    with pytest.raises(ProvisioningConflict):
        coordinator.complete_signup(verification, pending("b@x.com"))


@pytest.mark.asyncio
async def test_reset_for_unknown_email_sends_nothing(relay, coordinator):
    """Reset for an unknown email sends nothing"""
    result = await coordinator.request_code("nobody@x.com", CodePurpose.password_reset)

    assert result is None
    assert relay.sent == []


@pytest.mark.asyncio
async def test_reset_updates_password(db_session, relay, coordinator):
    """A verified reset changes the password once"""
    DatabaseIdentityProvider(db_session).create_account("a@x.com", "old-password", {"display_name": "Ada"})
    verification = await verified(coordinator, relay, "A@X.com", CodePurpose.password_reset)

    coordinator.complete_reset(verification, "a@x.com", "new-password")

    user = db_session.query(User).filter(User.email == "a@x.com").one()
    db_session.refresh(user)
    assert verify_password("new-password", user.hashed_password)

    with pytest.raises(ProvisioningConflict):
        coordinator.complete_reset(verification, "a@x.com", "another-password")


@pytest.mark.asyncio
async def test_reset_delivery_failure_looks_like_success(db_session, make_relay):
    """Reset delivery failures are not reported"""
    DatabaseIdentityProvider(db_session).create_account("a@x.com", "old-password", {"display_name": "Ada"})
    relay = make_relay(status_code=503)
    coordinator = ProvisioningCoordinator(db_session, email_service=relay.email_service())

    assert await coordinator.request_code("a@x.com", CodePurpose.password_reset) is None


@pytest.mark.asyncio
async def test_load_verification_requires_a_verified_code(relay, coordinator):
    """Only verified codes load as verifications"""
    issued = await coordinator.request_code("a@x.com", CodePurpose.signup)

    with pytest.raises(ProvisioningConflict):
        coordinator.load_verification(issued.code_id, "a@x.com", CodePurpose.signup)

    coordinator.verify("a@x.com", relay.last_code("a@x.com"), CodePurpose.signup)
    loaded = coordinator.load_verification(issued.code_id, "A@x.com", CodePurpose.signup)
    assert loaded.code_id == issued.code_id

    with pytest.raises(ProvisioningConflict):
        coordinator.load_verification(issued.code_id, "a@x.com", CodePurpose.password_reset)
