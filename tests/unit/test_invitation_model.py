"""Unit tests for the Invitation availability rules."""

from datetime import timedelta

import pytest

from classroll.models.invitation import Invitation, InvitationState
from classroll.utils.datetime import utc_now


def invitation(**overrides) -> Invitation:
    values = {
        "state": InvitationState.ACTIVE.value,
        "max_uses": 2,
        "uses_so_far": 0,
        "expires_at": utc_now() + timedelta(days=1),
    }
    values.update(overrides)
    return Invitation(**values)


@pytest.mark.unit
class TestUnavailableReason:
    """Tests for Invitation.unavailable_reason."""

    def test_usable(self) -> None:
        assert invitation().unavailable_reason() is None
        assert invitation(expires_at=None).unavailable_reason() is None

    def test_active_past_expiry_reports_expired(self) -> None:
        stale = invitation(expires_at=utc_now() - timedelta(seconds=1))

        assert stale.state == InvitationState.ACTIVE.value
        assert stale.unavailable_reason() == "expired"

    def test_stored_states(self) -> None:
        assert invitation(state=InvitationState.EXPIRED.value).unavailable_reason() == "expired"
        assert invitation(state=InvitationState.REVOKED.value).unavailable_reason() == "revoked"
        assert invitation(state=InvitationState.CONSUMED.value).unavailable_reason() == "exhausted"

    def test_active_at_max_uses_reports_exhausted(self) -> None:
        assert invitation(uses_so_far=2).unavailable_reason() == "exhausted"

    def test_exhausted_wins_over_expiry(self) -> None:
        spent = invitation(uses_so_far=2, expires_at=utc_now() - timedelta(days=1))

        assert spent.unavailable_reason() == "exhausted"
