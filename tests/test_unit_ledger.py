"""Tests for the ledger store and balance projection."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from chorechamp.core.exceptions import InsufficientBalanceError, ValidationError
from chorechamp.models.points import PointBalance, PointTransaction
from chorechamp.services.ledger_service import (
    PointTransactionInput,
    append_transaction,
    apply_delta,
    get_balance,
    is_refund,
    ledger_totals,
    list_transactions,
    reconcile_balance,
    sanitize_text,
)


def _entry(ctx, points, tx_type="bonus", **kwargs):
    return PointTransactionInput(
        user_id=ctx["member_id"],
        household_id=ctx["household_id"],
        points=points,
        transaction_type=tx_type,
        **kwargs,
    )


async def _tx_count(db, ctx) -> int:
    result = await db.execute(
        select(func.count(PointTransaction.id)).where(
            PointTransaction.user_id == ctx["member_id"],
            PointTransaction.household_id == ctx["household_id"],
        )
    )
    return result.scalar_one()


class TestSanitize:
    def test_strips_control_characters_and_whitespace(self):
        assert sanitize_text("  Müll\x00 raus\x07 \n") == "Müll raus"

    def test_blank_becomes_none(self):
        assert sanitize_text("   ") is None
        assert sanitize_text(None) is None

    def test_too_long_rejected(self):
        with pytest.raises(ValidationError):
            sanitize_text("x" * 501)

    def test_custom_limit(self):
        assert sanitize_text("x" * 200, max_length=200) == "x" * 200
        with pytest.raises(ValidationError):
            sanitize_text("x" * 201, max_length=200, field="reason")


class TestBalanceProjection:
    async def test_new_user_has_no_balance(self, db_session, household):
        assert await get_balance(db_session, household["member_id"], household["household_id"]) is None

    async def test_apply_delta_creates_row_and_tracks_totals(self, db_session, household):
        uid, hid = household["member_id"], household["household_id"]

        balance = await apply_delta(db_session, uid, hid, 30)
        assert balance.current_balance == 30
        assert balance.total_earned == 30
        assert balance.total_spent == 0

        balance = await apply_delta(db_session, uid, hid, -10)
        assert balance.current_balance == 20
        assert balance.total_earned == 30
        assert balance.total_spent == 10

    async def test_conditional_spend_refused_below_floor(self, db_session, household):
        uid, hid = household["member_id"], household["household_id"]
        await apply_delta(db_session, uid, hid, 30)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await apply_delta(db_session, uid, hid, -50, min_balance=0)
        assert exc_info.value.balance == 30
        assert exc_info.value.required == 50

        balance = await get_balance(db_session, uid, hid)
        assert balance.current_balance == 30
        assert balance.total_spent == 0

    async def test_conditional_spend_without_balance_row(self, db_session, household):
        uid, hid = household["member_id"], household["household_id"]
        with pytest.raises(InsufficientBalanceError):
            await apply_delta(db_session, uid, hid, -5, min_balance=0)
        assert await get_balance(db_session, uid, hid) is None


class TestAppendTransaction:
    async def test_balance_after_is_running_total(self, db_session, household):
        first = await append_transaction(db_session, _entry(household, 10))
        second = await append_transaction(db_session, _entry(household, 25))
        third = await append_transaction(db_session, _entry(household, -5, "reward_redemption"))

        assert [first.balance_after, second.balance_after, third.balance_after] == [10, 35, 30]

    async def test_zero_points_rejected(self, db_session, household):
        with pytest.raises(ValidationError):
            await append_transaction(db_session, _entry(household, 0))
        assert await _tx_count(db_session, household) == 0

    async def test_unknown_type_rejected(self, db_session, household):
        with pytest.raises(ValidationError):
            await append_transaction(db_session, _entry(household, 5, "gift"))

    async def test_oversized_description_rejected(self, db_session, household):
        with pytest.raises(ValidationError):
            await append_transaction(db_session, _entry(household, 5, description="a" * 501))
        assert await get_balance(db_session, household["member_id"], household["household_id"]) is None

    async def test_description_is_sanitised(self, db_session, household):
        tx = await append_transaction(
            db_session, _entry(household, 5, description="\x1b[31m Bonus \x00"),
        )
        assert tx.description == "[31m Bonus"

    async def test_min_balance_spend_writes_nothing(self, db_session, household):
        await append_transaction(db_session, _entry(household, 30))
        with pytest.raises(InsufficientBalanceError):
            await append_transaction(
                db_session, _entry(household, -50, "reward_redemption"), min_balance=0,
            )
        assert await _tx_count(db_session, household) == 1

    async def test_projection_matches_ledger_sum(self, db_session, household):
        for points in (10, 20, -5, 7, -12, 3):
            tx_type = "bonus" if points > 0 else "undo"
            await append_transaction(db_session, _entry(household, points, tx_type))
        total, earned, spent = await ledger_totals(
            db_session, household["member_id"], household["household_id"],
        )
        balance = await get_balance(db_session, household["member_id"], household["household_id"])
        assert balance.current_balance == total == 23
        assert balance.total_earned == earned == 40
        assert balance.total_spent == spent == 17
        assert balance.current_balance == balance.total_earned - balance.total_spent

    async def test_refund_reduces_spent_not_earned(self, db_session, household):
        uid, hid = household["member_id"], household["household_id"]
        await append_transaction(db_session, _entry(household, 30))
        await append_transaction(db_session, _entry(household, -20, "reward_redemption"))
        await append_transaction(db_session, _entry(household, 20, "undo"))

        balance = await get_balance(db_session, uid, hid)
        assert (balance.current_balance, balance.total_earned, balance.total_spent) == (30, 30, 0)
        assert await ledger_totals(db_session, uid, hid) == (30, 30, 0)

        result = await reconcile_balance(db_session, uid, hid)
        assert result.consistent is True

    def test_only_positive_undo_is_refund(self):
        assert is_refund("undo", 20) is True
        assert is_refund("undo", -20) is False
        assert is_refund("bonus", 20) is False


class TestHistory:
    async def _seed(self, db, ctx):
        start = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)
        for i, points in enumerate([10, -4, 20, -6, 5]):
            await append_transaction(
                db, _entry(ctx, points, created_at=start + timedelta(minutes=i)),
            )

    async def test_newest_first_with_total(self, db_session, household):
        await self._seed(db_session, household)
        items, total = await list_transactions(
            db_session, household["member_id"], household["household_id"],
        )
        assert total == 5
        assert [t.points for t in items] == [5, -6, 20, -4, 10]

    async def test_filter_earned_and_spent(self, db_session, household):
        await self._seed(db_session, household)
        earned, earned_total = await list_transactions(
            db_session, household["member_id"], household["household_id"], filter="earned",
        )
        spent, spent_total = await list_transactions(
            db_session, household["member_id"], household["household_id"], filter="spent",
        )
        assert earned_total == 3 and all(t.points > 0 for t in earned)
        assert spent_total == 2 and all(t.points < 0 for t in spent)

    async def test_pagination(self, db_session, household):
        await self._seed(db_session, household)
        page2, total = await list_transactions(
            db_session, household["member_id"], household["household_id"], page=2, limit=2,
        )
        assert total == 5
        assert [t.points for t in page2] == [20, -4]

    @pytest.mark.parametrize("kwargs", [
        {"filter": "bonus"},
        {"page": 0},
        {"limit": 0},
        {"limit": 101},
    ])
    async def test_invalid_parameters(self, db_session, household, kwargs):
        with pytest.raises(ValidationError):
            await list_transactions(
                db_session, household["member_id"], household["household_id"], **kwargs,
            )


class TestReconcile:
    async def test_consistent_balance_untouched(self, db_session, household):
        await append_transaction(db_session, _entry(household, 15))
        result = await reconcile_balance(db_session, household["member_id"], household["household_id"])
        assert result.consistent is True
        assert result.ledger_balance == 15
        assert result.projected_balance == 15

    async def test_drifted_balance_rebuilt(self, db_session, household):
        uid, hid = household["member_id"], household["household_id"]
        await append_transaction(db_session, _entry(household, 15))
        await append_transaction(db_session, _entry(household, -5, "undo"))

        balance = await get_balance(db_session, uid, hid)
        balance.current_balance = 999
        await db_session.flush()

        result = await reconcile_balance(db_session, uid, hid)
        assert result.consistent is False
        assert result.projected_balance == 999

        repaired = await get_balance(db_session, uid, hid)
        assert repaired.current_balance == 10
        assert repaired.total_earned == 15
        assert repaired.total_spent == 5

    async def test_empty_ledger_without_row_is_consistent(self, db_session, household):
        result = await reconcile_balance(db_session, household["member_id"], household["household_id"])
        assert result.consistent is True
        assert result.projected_balance is None
        count = await db_session.execute(select(func.count(PointBalance.id)).where(
            PointBalance.user_id == household["member_id"],
        ))
        assert count.scalar_one() == 0
