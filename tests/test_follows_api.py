"""
Follow endpoint tests
"""


class TestFollowEndpoints:

    def test_follow_and_unfollow(self, client, make_user, auth_headers):
        alice, bob = make_user(), make_user()

        followed = client.post(f"/api/v1/users/{bob.id}/follow", headers=auth_headers(alice))
        assert followed.status_code == 201
        assert followed.json()["data"]["state"] == "following"

        again = client.post(f"/api/v1/users/{bob.id}/follow", headers=auth_headers(alice))
        assert again.status_code == 409

        status = client.get(f"/api/v1/users/{bob.id}/is-following", headers=auth_headers(alice))
        assert status.json()["data"] == {"isFollowing": True}

        unfollowed = client.delete(f"/api/v1/users/{bob.id}/follow", headers=auth_headers(alice))
        assert unfollowed.status_code == 200
        assert client.delete(f"/api/v1/users/{bob.id}/follow", headers=auth_headers(alice)).status_code == 409

    def test_follow_self(self, client, make_user, auth_headers):
        alice = make_user()

        response = client.post(f"/api/v1/users/{alice.id}/follow", headers=auth_headers(alice))

        assert response.status_code == 400

    def test_follow_unknown(self, client, make_user, auth_headers):
        alice = make_user()

        response = client.post("/api/v1/users/5000/follow", headers=auth_headers(alice))

        assert response.status_code == 404

    def test_followers_pagination(self, client, make_user, auth_headers):
        target = make_user()
        fans = [make_user() for _ in range(3)]
        for fan in fans:
            client.post(f"/api/v1/users/{target.id}/follow", headers=auth_headers(fan))

        response = client.get(
            f"/api/v1/users/{target.id}/followers",
            params={"page": 2, "limit": 2},
            headers=auth_headers(target),
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert [u["id"] for u in data["followers"]] == [fans[2].id]
        assert data["pagination"]["total"] == 3
        assert data["pagination"]["hasPrevPage"] is True
        assert data["pagination"]["hasNextPage"] is False

    def test_out_of_range_pagination_is_clamped(self, client, make_user, auth_headers):
        alice = make_user()

        response = client.get(
            f"/api/v1/users/{alice.id}/following",
            params={"page": 0, "limit": 1000},
            headers=auth_headers(alice),
        )

        pagination = response.json()["data"]["pagination"]
        assert pagination["page"] == 1
        assert pagination["limit"] == 100

    def test_mutual_and_suggestions(self, client, make_user, auth_headers):
        alice, bob, carol = make_user(), make_user(), make_user()
        client.post(f"/api/v1/users/{carol.id}/follow", headers=auth_headers(alice))
        client.post(f"/api/v1/users/{bob.id}/follow", headers=auth_headers(carol))

        mutual = client.get(f"/api/v1/users/{bob.id}/mutual", headers=auth_headers(alice))
        assert [u["id"] for u in mutual.json()["data"]["mutuals"]] == [carol.id]

        suggestions = client.get("/api/v1/users/suggestions", headers=auth_headers(alice))
        assert [s["id"] for s in suggestions.json()["data"]["suggestions"]] == [bob.id]

    def test_oversized_id_is_bad_request(self, client, make_user, auth_headers):
        alice = make_user()

        followed = client.post("/api/v1/users/99999999999999999999/follow", headers=auth_headers(alice))
        followers = client.get("/api/v1/users/99999999999999999999/followers", headers=auth_headers(alice))

        assert followed.status_code == 400
        assert followed.json()["code"] == "INVALID_ARGUMENT"
        assert followers.status_code == 400
