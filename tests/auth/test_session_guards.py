"""Tests for session resolution and the admin guards."""

from datetime import UTC, datetime, timedelta

import pytest
from conftest import OPERATOR_EMAIL, make_user

from consultancy_cms.auth.models import Session
from consultancy_cms.auth.permissions import Role, UserStatus
from consultancy_cms.core.exceptions import ForbiddenError, UnauthenticatedError


async def _login(identity_store, user) -> str:
    token = f"tok-{user.id}"
    await identity_store.insert_session(
        Session(
            session_token=token,
            user_id=user.id,
            expires=datetime.now(UTC) + timedelta(hours=1),
        )
    )
    return token


class TestGetSession:
    @pytest.mark.asyncio
    async def test_missing_token_is_anonymous(self, session_service) -> None:
        assert await session_service.get_session(None) is None
        assert await session_service.get_session("") is None

    @pytest.mark.asyncio
    async def test_unknown_token_is_anonymous(self, session_service) -> None:
        assert await session_service.get_session("nope") is None

    @pytest.mark.asyncio
    async def test_session_carries_role(
        self, session_service, identity_store, viewer_user
    ) -> None:
        token = await _login(identity_store, viewer_user)

        session = await session_service.get_session(token)

        assert session.user.id == str(viewer_user.id)
        assert session.user.role == Role.VIEWER

    @pytest.mark.asyncio
    async def test_current_user(
        self, session_service, identity_store, viewer_user
    ) -> None:
        token = await _login(identity_store, viewer_user)

        user = await session_service.get_current_user(token)

        assert user.email == viewer_user.email
        assert await session_service.get_current_user(None) is None

    @pytest.mark.asyncio
    async def test_start_and_end_session(self, session_service, viewer_user) -> None:
        issued = await session_service.start_session(str(viewer_user.id))

        assert await session_service.get_session(issued.session_token) is not None
        await session_service.end_session(issued.session_token)
        assert await session_service.get_session(issued.session_token) is None


class TestRequireAdmin:
    @pytest.mark.asyncio
    async def test_anonymous_is_unauthenticated(self, session_service) -> None:
        with pytest.raises(UnauthenticatedError):
            await session_service.require_admin(None)

    @pytest.mark.asyncio
    async def test_viewer_is_forbidden(
        self, session_service, identity_store, viewer_user
    ) -> None:
        token = await _login(identity_store, viewer_user)
        with pytest.raises(ForbiddenError):
            await session_service.require_admin(token)

    @pytest.mark.asyncio
    async def test_admin_passes(
        self, session_service, identity_store, admin_user
    ) -> None:
        token = await _login(identity_store, admin_user)
        session = await session_service.require_admin(token)
        assert session.user.email == admin_user.email

    @pytest.mark.asyncio
    async def test_super_admin_passes_admin_gate(
        self, session_service, identity_store, super_admin_user
    ) -> None:
        token = await _login(identity_store, super_admin_user)

        session = await session_service.require_admin(token)

        assert session.user.role == Role.SUPER_ADMIN

    @pytest.mark.asyncio
    async def test_allow_listed_operator_passes(
        self, session_service, identity_store
    ) -> None:
        operator = make_user(OPERATOR_EMAIL, Role.VIEWER)
        await identity_store.insert_user(operator)
        token = await _login(identity_store, operator)

        session = await session_service.require_admin(token)

        assert session.user.role == Role.VIEWER

    @pytest.mark.asyncio
    async def test_suspended_admin_is_forbidden(
        self, session_service, identity_store
    ) -> None:
        suspended = make_user("gone@example.com", Role.ADMIN, UserStatus.SUSPENDED)
        await identity_store.insert_user(suspended)
        token = await _login(identity_store, suspended)

        with pytest.raises(ForbiddenError):
            await session_service.require_admin(token)


class TestRequireSuperAdmin:
    @pytest.mark.asyncio
    async def test_admin_is_not_super_admin(
        self, session_service, identity_store, admin_user
    ) -> None:
        token = await _login(identity_store, admin_user)
        with pytest.raises(ForbiddenError):
            await session_service.require_super_admin(token)

    @pytest.mark.asyncio
    async def test_operator_allow_list_does_not_grant_super_admin(
        self, session_service, identity_store
    ) -> None:
        operator = make_user(OPERATOR_EMAIL, Role.ADMIN)
        await identity_store.insert_user(operator)
        token = await _login(identity_store, operator)

        with pytest.raises(ForbiddenError):
            await session_service.require_super_admin(token)

    @pytest.mark.asyncio
    async def test_super_admin_passes(
        self, session_service, identity_store, super_admin_user
    ) -> None:
        token = await _login(identity_store, super_admin_user)
        session = await session_service.require_super_admin(token)
        assert session.user.role == Role.SUPER_ADMIN


class TestSessionRoutes:
    def test_read_session_signed_out(self, client) -> None:
        response = client.get("/v1/auth/session")
        assert response.status_code == 200
        assert response.json() is None

    def test_read_session_signed_in(self, client, auth_headers, viewer_user) -> None:
        response = client.get("/v1/auth/session", headers=auth_headers(viewer_user))

        assert response.status_code == 200
        assert response.json()["user"]["email"] == viewer_user.email

    def test_sign_out_requires_session(self, client) -> None:
        assert client.delete("/v1/auth/session").status_code == 401

    def test_sign_out(self, client, auth_headers, viewer_user) -> None:
        headers = auth_headers(viewer_user)

        assert client.delete("/v1/auth/session", headers=headers).status_code == 204
        assert client.get("/v1/auth/session", headers=headers).json() is None
