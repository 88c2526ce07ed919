"""HTTP tests for the public and admin comment endpoints."""

from uuid import uuid4

import pytest
from conftest import OPERATOR_EMAIL, make_user, run


@pytest.fixture
def submitted(client, auth_headers, viewer_user, post):
    """A pending comment by the viewer, as returned by the API."""
    response = client.post(
        "/v1/comments",
        json={"post_id": str(post.id), "content": "Very <b>useful</b> post"},
        headers=auth_headers(viewer_user),
    )
    assert response.status_code == 201
    return response.json()


class TestSubmitRoute:
    def test_requires_sign_in(self, client, post) -> None:
        response = client.post(
            "/v1/comments", json={"post_id": str(post.id), "content": "Hi"}
        )

        assert response.status_code == 401
        assert response.json()["message"] == "Please sign in to continue"
        assert response.headers["www-authenticate"] == "Bearer"

    def test_creates_pending_comment(self, submitted, viewer_user) -> None:
        assert submitted["status"] == "PENDING"
        assert submitted["author_id"] == str(viewer_user.id)
        assert submitted["content"] == "Very <b>useful</b> post"

    def test_empty_content_names_field(
        self, client, auth_headers, viewer_user, post
    ) -> None:
        response = client.post(
            "/v1/comments",
            json={"post_id": str(post.id), "content": "  "},
            headers=auth_headers(viewer_user),
        )

        assert response.status_code == 422
        assert response.json()["field"] == "content"

    def test_invalid_parent_names_field(
        self, client, auth_headers, viewer_user, post
    ) -> None:
        response = client.post(
            "/v1/comments",
            json={
                "post_id": str(post.id),
                "content": "Reply",
                "parent_id": str(uuid4()),
            },
            headers=auth_headers(viewer_user),
        )

        assert response.status_code == 422
        assert response.json()["field"] == "parent_id"

    def test_unknown_post(self, client, auth_headers, viewer_user) -> None:
        response = client.post(
            "/v1/comments",
            json={"post_id": str(uuid4()), "content": "Hi"},
            headers=auth_headers(viewer_user),
        )
        assert response.status_code == 404


class TestPublicListing:
    def test_pending_comments_are_hidden(self, client, submitted, post) -> None:
        response = client.get("/v1/comments", params={"post_id": str(post.id)})

        assert response.status_code == 200
        assert response.json()["items"] == []
        assert response.json()["total_pages"] == 0

    def test_status_query_cannot_widen_public_view(
        self, client, submitted
    ) -> None:
        response = client.get("/v1/comments", params={"status": "PENDING"})
        assert response.json()["total"] == 0

    def test_limit_is_bounded(self, client) -> None:
        assert client.get("/v1/comments", params={"limit": 101}).status_code == 422
        assert client.get("/v1/comments", params={"page": 0}).status_code == 422


class TestAdminAuthorization:
    @pytest.mark.parametrize(
        "method,path",
        [
            ("get", "/v1/admin/comments"),
            ("patch", "/v1/admin/comments/{id}"),
            ("delete", "/v1/admin/comments/{id}"),
            ("get", "/v1/admin/comments/{id}/log"),
        ],
    )
    def test_anonymous_gets_401_viewer_gets_403(
        self, client, auth_headers, viewer_user, submitted, method, path
    ) -> None:
        url = path.format(id=submitted["id"])
        kwargs = {"json": {"status": "APPROVED"}} if method == "patch" else {}

        anonymous = client.request(method, url, **kwargs)
        viewer = client.request(
            method, url, headers=auth_headers(viewer_user), **kwargs
        )

        assert anonymous.status_code == 401
        assert viewer.status_code == 403
        assert viewer.json()["message"] == "Admin privileges required"

    def test_admin_lists_every_status(
        self, client, auth_headers, admin_user, submitted
    ) -> None:
        response = client.get("/v1/admin/comments", headers=auth_headers(admin_user))

        assert response.status_code == 200
        assert [item["id"] for item in response.json()["items"]] == [submitted["id"]]

    def test_allow_listed_operator_is_admin(
        self, client, auth_headers, identity_store, submitted
    ) -> None:
        operator = make_user(OPERATOR_EMAIL)
        run(identity_store.insert_user(operator))

        response = client.get(
            "/v1/admin/comments",
            params={"status": "PENDING"},
            headers=auth_headers(operator),
        )

        assert response.status_code == 200
        assert response.json()["total"] == 1


class TestAdminModeration:
    def test_approve_then_public(
        self, client, auth_headers, admin_user, submitted, post
    ) -> None:
        headers = auth_headers(admin_user)

        response = client.patch(
            f"/v1/admin/comments/{submitted['id']}",
            json={"status": "APPROVED"},
            headers=headers,
        )
        public = client.get("/v1/comments", params={"post_id": str(post.id)})

        assert response.status_code == 200
        assert response.json()["status"] == "APPROVED"
        assert [item["id"] for item in public.json()["items"]] == [submitted["id"]]

    def test_unknown_status_rejected(
        self, client, auth_headers, admin_user, submitted
    ) -> None:
        response = client.patch(
            f"/v1/admin/comments/{submitted['id']}",
            json={"status": "ARCHIVED"},
            headers=auth_headers(admin_user),
        )
        assert response.status_code == 422

    def test_unknown_comment_404(self, client, auth_headers, admin_user) -> None:
        response = client.patch(
            f"/v1/admin/comments/{uuid4()}",
            json={"status": "SPAM"},
            headers=auth_headers(admin_user),
        )
        assert response.status_code == 404

    def test_delete_and_log(
        self, client, auth_headers, admin_user, submitted
    ) -> None:
        headers = auth_headers(admin_user)
        url = f"/v1/admin/comments/{submitted['id']}"

        client.patch(url, json={"status": "SPAM", "reason": "ads"}, headers=headers)
        deleted = client.delete(url, headers=headers)
        log = client.get(f"{url}/log", headers=headers)

        assert deleted.status_code == 200
        assert deleted.json()["deleted_ids"] == [submitted["id"]]
        assert [e["action"] for e in log.json()["items"]] == [
            "status_changed",
            "deleted",
        ]
        assert log.json()["items"][0]["actor_id"] == str(admin_user.id)
        assert client.delete(url, headers=headers).status_code == 404


class TestModeratorRoles:
    @pytest.mark.parametrize("moderator", ["admin_user", "super_admin_user"])
    def test_moderate_and_delete(
        self, request, client, auth_headers, submitted, moderator
    ) -> None:
        headers = auth_headers(request.getfixturevalue(moderator))
        url = f"/v1/admin/comments/{submitted['id']}"

        approved = client.patch(url, json={"status": "APPROVED"}, headers=headers)
        deleted = client.delete(url, headers=headers)

        assert approved.status_code == 200
        assert approved.json()["status"] == "APPROVED"
        assert deleted.status_code == 200
        assert deleted.json()["deleted_ids"] == [submitted["id"]]
