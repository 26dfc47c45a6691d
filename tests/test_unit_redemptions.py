"""Tests for redemption fulfilment, cancellation and listing."""

from datetime import datetime, timedelta, timezone

import pytest

from chorechamp.core.exceptions import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from chorechamp.services.award_service import award_bonus, charge_redemption
from chorechamp.services.ledger_service import get_balance
from chorechamp.services.redemption_service import (
    cancel_redemption,
    fulfill_redemption,
    get_redemption,
    list_redemptions,
)

NOW = datetime(2026, 6, 10, 9, 0, tzinfo=timezone.utc)


@pytest.fixture()
def redeem(db_session, household, make_reward):
    """Give the member points and redeem a reward. Returns the redemption."""

    async def _redeem(point_cost=20, at=NOW):
        hid = household["household_id"]
        await award_bonus(
            db_session, household["admin_id"], hid, household["member_id"], point_cost, now=at,
        )
        reward = await make_reward(hid, point_cost=point_cost)
        result = await charge_redemption(
            db_session, household["member_id"], hid, reward.id, now=at,
        )
        return result.redemption

    return _redeem


class TestFulfill:
    async def test_admin_fulfills_with_notes(self, db_session, household, redeem):
        redemption = await redeem()
        fulfilled = await fulfill_redemption(
            db_session, redemption.id, household["admin_id"], notes=" Sonntag erledigt ",
            now=NOW + timedelta(days=1),
        )
        assert fulfilled.status == "fulfilled"
        assert fulfilled.fulfilled_by == household["admin_id"]
        assert fulfilled.fulfillment_notes == "Sonntag erledigt"
        assert fulfilled.fulfilled_at is not None

    async def test_fulfilment_does_not_touch_balance(self, db_session, household, redeem):
        redemption = await redeem(point_cost=20)
        await fulfill_redemption(db_session, redemption.id, household["admin_id"])
        balance = await get_balance(db_session, household["member_id"], household["household_id"])
        assert balance.current_balance == 0
        assert balance.total_spent == 20

    async def test_member_cannot_fulfill(self, db_session, household, redeem):
        redemption = await redeem()
        with pytest.raises(ForbiddenError):
            await fulfill_redemption(db_session, redemption.id, household["member_id"])

    async def test_admin_of_other_household_forbidden(self, db_session, redeem, make_user):
        from chorechamp.models.household import Household

        redemption = await redeem()
        other = Household(name="Nachbarn")
        db_session.add(other)
        await db_session.flush()
        stranger, _ = await make_user("Dora", household_id=other.id, role="admin")

        with pytest.raises(ForbiddenError):
            await fulfill_redemption(db_session, redemption.id, stranger.id)

    async def test_fulfill_is_terminal(self, db_session, household, redeem):
        redemption = await redeem()
        await fulfill_redemption(db_session, redemption.id, household["admin_id"])

        with pytest.raises(InvalidStateError):
            await fulfill_redemption(db_session, redemption.id, household["admin_id"])
        with pytest.raises(InvalidStateError):
            await cancel_redemption(db_session, redemption.id, household["admin_id"])

    async def test_cancelled_cannot_be_fulfilled(self, db_session, household, redeem):
        redemption = await redeem()
        await cancel_redemption(db_session, redemption.id, household["member_id"])
        with pytest.raises(InvalidStateError):
            await fulfill_redemption(db_session, redemption.id, household["admin_id"])

    async def test_notes_too_long(self, db_session, household, redeem):
        redemption = await redeem()
        with pytest.raises(ValidationError):
            await fulfill_redemption(
                db_session, redemption.id, household["admin_id"], notes="n" * 501,
            )
        assert (await get_redemption(db_session, redemption.id)).status == "pending"

    async def test_unknown_redemption(self, db_session, household):
        import uuid

        with pytest.raises(NotFoundError):
            await fulfill_redemption(db_session, uuid.uuid4(), household["admin_id"])


class TestList:
    async def test_newest_first_and_filters(self, db_session, household, redeem):
        hid = household["household_id"]
        first = await redeem(at=NOW)
        second = await redeem(at=NOW + timedelta(hours=1))
        await fulfill_redemption(db_session, first.id, household["admin_id"])

        items, total = await list_redemptions(db_session, hid)
        assert total == 2
        assert [r.id for r in items] == [second.id, first.id]

        pending, pending_total = await list_redemptions(db_session, hid, status="pending")
        assert pending_total == 1
        assert pending[0].id == second.id

        mine, mine_total = await list_redemptions(db_session, hid, user_id=household["admin_id"])
        assert mine_total == 0 and mine == []

    async def test_pagination(self, db_session, household, redeem):
        hid = household["household_id"]
        for hour in range(3):
            await redeem(at=NOW + timedelta(hours=hour))
        items, total = await list_redemptions(db_session, hid, limit=2, offset=2)
        assert total == 3
        assert len(items) == 1

    @pytest.mark.parametrize("kwargs", [
        {"status": "lost"},
        {"limit": 0},
        {"limit": 101},
        {"offset": -1},
    ])
    async def test_invalid_parameters(self, db_session, household, kwargs):
        with pytest.raises(ValidationError):
            await list_redemptions(db_session, household["household_id"], **kwargs)
