"""API tests for leaderboard, statistics, levels and badges."""

BONUS = "/api/v1/points/bonus"


async def _grant(client, ctx, user_id, points):
    resp = await client.post(
        BONUS, json={"user_id": str(user_id), "points": points}, headers=ctx["admin_headers"],
    )
    assert resp.status_code == 201


class TestLeaderboard:
    async def test_ranking(self, client, household, make_user):
        clara, clara_headers = await make_user("Clara", household_id=household["household_id"])
        await _grant(client, household, household["admin_id"], 80)
        await _grant(client, household, household["member_id"], 50)

        resp = await client.get("/api/v1/leaderboard", headers=household["member_headers"])
        assert resp.status_code == 200
        data = resp.json()
        assert data["period"] == "all_time"
        assert [(e["display_name"], e["total_points"], e["rank"]) for e in data["entries"]] == [
            ("Anna", 80, 1),
            ("Ben", 50, 2),
        ]
        assert data["entries"][1]["is_current_user"] is True

        resp = await client.get("/api/v1/leaderboard", headers=clara_headers)
        names = [e["display_name"] for e in resp.json()["entries"]]
        assert names == ["Anna", "Ben", "Clara"]

    async def test_this_week(self, client, household):
        await _grant(client, household, household["member_id"], 25)
        resp = await client.get(
            "/api/v1/leaderboard", params={"period": "this_week"},
            headers=household["member_headers"],
        )
        assert resp.status_code == 200
        assert resp.json()["entries"][0]["total_points"] == 25

    async def test_invalid_period(self, client, household):
        resp = await client.get(
            "/api/v1/leaderboard", params={"period": "forever"},
            headers=household["member_headers"],
        )
        assert resp.status_code == 400

    async def test_requires_household(self, client, make_user):
        _, headers = await make_user("Solo")
        resp = await client.get("/api/v1/leaderboard", headers=headers)
        assert resp.status_code == 400


class TestStatistics:
    async def test_statistics_shape(self, client, household):
        await _grant(client, household, household["member_id"], 30)
        resp = await client.get("/api/v1/statistics", headers=household["member_headers"])
        assert resp.status_code == 200
        data = resp.json()
        assert data["points_earned_this_week"] == 30
        assert data["total_points_earned"] == 30
        assert data["total_chores_completed"] == 0
        assert data["weekly_points_change"] == 100
        assert data["current_streak"] == 0


class TestLevels:
    async def test_level_info(self, client, household):
        await _grant(client, household, household["member_id"], 50)
        resp = await client.get("/api/v1/levels/me", headers=household["member_headers"])
        assert resp.status_code == 200
        data = resp.json()
        assert data["level"]["level"] == 1
        assert data["next_level"]["points_required"] == 100
        assert data["progress"]["progress_percentage"] == 50
        assert data["progress"]["points_to_next_level"] == 50
        assert len(data["levels"]) == 10


class TestBadges:
    async def test_catalogue(self, client, household, badges):
        resp = await client.get("/api/v1/badges", headers=household["member_headers"])
        assert resp.status_code == 200
        data = resp.json()
        assert len(data) == 11
        first = next(b for b in data if b["id"] == "first_chore")
        assert first["criteria"] == {"type": "chores_completed", "value": 1}

    async def test_catalogue_needs_no_household(self, client, make_user, badges):
        _, headers = await make_user("Solo")
        resp = await client.get("/api/v1/badges", headers=headers)
        assert resp.status_code == 200

    async def test_my_badges(self, client, household, badges, make_chore):
        chore = await make_chore(household["household_id"], points=10)
        await client.post(
            f"/api/v1/chores/{chore.id}/complete", headers=household["member_headers"],
        )

        resp = await client.get("/api/v1/badges/me", headers=household["member_headers"])
        assert resp.status_code == 200
        data = resp.json()
        assert data["stats"]["earned"] == 1
        assert data["stats"]["total_points_from_badges"] == 5
        earned = [b["id"] for b in data["badges"] if b["status"] == "earned"]
        assert earned == ["first_chore"]
