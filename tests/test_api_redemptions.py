"""API tests for redeeming rewards and the redemption workflow."""

import uuid

BONUS = "/api/v1/points/bonus"


async def _fund(client, ctx, points):
    resp = await client.post(
        BONUS,
        json={"user_id": str(ctx["member_id"]), "points": points},
        headers=ctx["admin_headers"],
    )
    assert resp.status_code == 201


async def _redeem(client, ctx, reward_id, headers=None):
    return await client.post(
        f"/api/v1/rewards/{reward_id}/redeem", headers=headers or ctx["member_headers"],
    )


class TestRedeem:
    async def test_redeem_reward(self, client, household, make_reward):
        await _fund(client, household, 80)
        reward = await make_reward(household["household_id"], point_cost=50)

        resp = await _redeem(client, household, reward.id)
        assert resp.status_code == 201
        data = resp.json()
        assert data["new_balance"] == 30
        assert data["redemption"]["status"] == "pending"
        assert data["redemption"]["points_spent"] == 50
        assert data["redemption"]["reward_id"] == str(reward.id)

    async def test_insufficient_balance(self, client, household, make_reward):
        await _fund(client, household, 30)
        reward = await make_reward(household["household_id"], point_cost=50)

        resp = await _redeem(client, household, reward.id)
        assert resp.status_code == 400
        assert resp.json()["code"] == "insufficient_balance"

        balance = await client.get("/api/v1/points/balance", headers=household["member_headers"])
        assert balance.json()["current_balance"] == 30
        listing = await client.get("/api/v1/redemptions", headers=household["member_headers"])
        assert listing.json()["total"] == 0

    async def test_sold_out(self, client, household, make_reward):
        await _fund(client, household, 80)
        reward = await make_reward(household["household_id"], point_cost=10, quantity=1)

        assert (await _redeem(client, household, reward.id)).status_code == 201
        resp = await _redeem(client, household, reward.id)
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_state"

    async def test_unknown_reward(self, client, household):
        resp = await _redeem(client, household, uuid.uuid4())
        assert resp.status_code == 404


class TestWorkflow:
    async def _pending(self, client, household, make_reward, cost=40):
        await _fund(client, household, cost)
        reward = await make_reward(household["household_id"], point_cost=cost)
        resp = await _redeem(client, household, reward.id)
        return resp.json()["redemption"]["id"]

    async def test_admin_fulfills(self, client, household, make_reward):
        redemption_id = await self._pending(client, household, make_reward)

        resp = await client.patch(
            f"/api/v1/redemptions/{redemption_id}/fulfill",
            json={"notes": "Samstag Kino"},
            headers=household["admin_headers"],
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "fulfilled"
        assert data["fulfilled_by"] == str(household["admin_id"])
        assert data["fulfillment_notes"] == "Samstag Kino"

    async def test_fulfill_without_body(self, client, household, make_reward):
        redemption_id = await self._pending(client, household, make_reward)
        resp = await client.patch(
            f"/api/v1/redemptions/{redemption_id}/fulfill", headers=household["admin_headers"],
        )
        assert resp.status_code == 200
        assert resp.json()["fulfillment_notes"] is None

    async def test_member_cannot_fulfill(self, client, household, make_reward):
        redemption_id = await self._pending(client, household, make_reward)
        resp = await client.patch(
            f"/api/v1/redemptions/{redemption_id}/fulfill", headers=household["member_headers"],
        )
        assert resp.status_code == 403

    async def test_cancel_refunds(self, client, household, make_reward):
        redemption_id = await self._pending(client, household, make_reward, cost=40)

        resp = await client.post(
            f"/api/v1/redemptions/{redemption_id}/cancel", headers=household["member_headers"],
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"

        balance = await client.get("/api/v1/points/balance", headers=household["member_headers"])
        assert balance.json()["current_balance"] == 40

    async def test_cancel_cycles_keep_level_and_ranking(self, client, household, make_reward):
        await _fund(client, household, 100)
        reward = await make_reward(household["household_id"], point_cost=100)
        for _ in range(3):
            redemption_id = (await _redeem(client, household, reward.id)).json()["redemption"]["id"]
            resp = await client.post(
                f"/api/v1/redemptions/{redemption_id}/cancel", headers=household["member_headers"],
            )
            assert resp.status_code == 200

        balance = (await client.get(
            "/api/v1/points/balance", headers=household["member_headers"],
        )).json()
        assert balance["current_balance"] == 100
        assert balance["total_earned"] == 100
        assert balance["total_spent"] == 0
        assert balance["level"] == 2

        board = await client.get("/api/v1/leaderboard", headers=household["member_headers"])
        assert board.json()["entries"][0]["total_points"] == 100

    async def test_fulfilled_cannot_be_cancelled(self, client, household, make_reward):
        redemption_id = await self._pending(client, household, make_reward)
        await client.patch(
            f"/api/v1/redemptions/{redemption_id}/fulfill", headers=household["admin_headers"],
        )
        resp = await client.post(
            f"/api/v1/redemptions/{redemption_id}/cancel", headers=household["member_headers"],
        )
        assert resp.status_code == 400

    async def test_unknown_redemption(self, client, household):
        resp = await client.post(
            f"/api/v1/redemptions/{uuid.uuid4()}/cancel", headers=household["member_headers"],
        )
        assert resp.status_code == 404


class TestListing:
    async def test_own_and_household_lists(self, client, household, make_reward):
        await _fund(client, household, 60)
        reward = await make_reward(household["household_id"], point_cost=20)
        for _ in range(2):
            await _redeem(client, household, reward.id)

        mine = await client.get("/api/v1/redemptions", headers=household["member_headers"])
        assert mine.status_code == 200
        assert mine.json()["total"] == 2
        assert mine.json()["has_more"] is False

        admin_own = await client.get("/api/v1/redemptions", headers=household["admin_headers"])
        assert admin_own.json()["total"] == 0

        queue = await client.get(
            "/api/v1/redemptions/household", params={"status": "pending", "limit": 1},
            headers=household["admin_headers"],
        )
        assert queue.status_code == 200
        assert queue.json()["total"] == 2
        assert len(queue.json()["items"]) == 1
        assert queue.json()["has_more"] is True

    async def test_household_queue_admin_only(self, client, household):
        resp = await client.get(
            "/api/v1/redemptions/household", headers=household["member_headers"],
        )
        assert resp.status_code == 403

    async def test_invalid_status_filter(self, client, household):
        resp = await client.get(
            "/api/v1/redemptions", params={"status": "lost"}, headers=household["member_headers"],
        )
        assert resp.status_code == 400
