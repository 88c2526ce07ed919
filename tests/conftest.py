"""Shared fixtures: in-memory stores, a recording mail transport and the app."""

import asyncio
import os
from collections.abc import Coroutine, Iterator
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient


# Must be set before the application module configures logging
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("ENVIRONMENT", "testing")

from consultancy_cms.auth.adapter import IdentityAdapter  # noqa: E402
from consultancy_cms.auth.models import Session, User, create_user  # noqa: E402
from consultancy_cms.auth.permissions import Role, UserStatus  # noqa: E402
from consultancy_cms.auth.schemas import SessionUser  # noqa: E402
from consultancy_cms.auth.session import SessionService  # noqa: E402
from consultancy_cms.auth.store import InMemoryIdentityStore  # noqa: E402
from consultancy_cms.comments.models import PostRef  # noqa: E402
from consultancy_cms.comments.service import ModerationService  # noqa: E402
from consultancy_cms.comments.store import (  # noqa: E402
    InMemoryCommentStore,
    InMemoryPostDirectory,
)
from consultancy_cms.config import Settings  # noqa: E402
from consultancy_cms.email import LoggingTransport  # noqa: E402
from consultancy_cms.main import AppServices, build_services, create_app  # noqa: E402
from consultancy_cms.notifications import NotificationDispatcher  # noqa: E402
from consultancy_cms.users.service import UserAdminService  # noqa: E402


OPERATOR_EMAIL = "operator@example.com"


def run(coro: Coroutine[Any, Any, Any]) -> Any:
    """Run a coroutine from a synchronous test or fixture."""
    return asyncio.run(coro)


def make_user(
    email: str,
    role: Role = Role.VIEWER,
    status: UserStatus = UserStatus.ACTIVE,
    name: str | None = None,
) -> User:
    return create_user(email=email, name=name, role=role, status=status)


def session_user(user: User) -> SessionUser:
    return SessionUser(
        id=str(user.id),
        email=user.email,
        name=user.name,
        role=user.role,
        status=user.status,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="testing",
        storage_backend="memory",
        log_to_file=False,
        log_requests=False,
        admin_emails=[OPERATOR_EMAIL],
        email_enabled=False,
        email_max_retries=2,
        email_retry_backoff_seconds=0,
        comment_notify_admins=True,
        comment_notify_rejections=False,
        site_url="https://cms.example.com",
    )


@pytest.fixture
def admin_user() -> User:
    return make_user("admin@example.com", Role.ADMIN, name="Ada Admin")


@pytest.fixture
def super_admin_user() -> User:
    return make_user("root@example.com", Role.SUPER_ADMIN, name="Root")


@pytest.fixture
def viewer_user() -> User:
    return make_user("reader@example.com", Role.VIEWER, name="Rita Reader")


@pytest.fixture
def other_viewer() -> User:
    return make_user("second@example.com", Role.VIEWER, name="Sam Second")


@pytest.fixture
def post() -> PostRef:
    return PostRef(id=uuid4(), title="Scaling Consultancies", slug="scaling")


@pytest.fixture
def other_post() -> PostRef:
    return PostRef(id=uuid4(), title="Pricing Retainers", slug="pricing")


@pytest.fixture
def identity_store(
    admin_user: User, super_admin_user: User, viewer_user: User, other_viewer: User
) -> InMemoryIdentityStore:
    return InMemoryIdentityStore(
        users=[admin_user, super_admin_user, viewer_user, other_viewer]
    )


@pytest.fixture
def adapter(identity_store: InMemoryIdentityStore) -> IdentityAdapter:
    return IdentityAdapter(identity_store)


@pytest.fixture
def comment_store() -> InMemoryCommentStore:
    return InMemoryCommentStore()


@pytest.fixture
def post_directory(post: PostRef, other_post: PostRef) -> InMemoryPostDirectory:
    return InMemoryPostDirectory([post, other_post])


@pytest.fixture
def transport() -> LoggingTransport:
    return LoggingTransport()


@pytest.fixture
def dispatcher(
    transport: LoggingTransport, settings: Settings
) -> NotificationDispatcher:
    return NotificationDispatcher(
        transport,
        site_url=settings.site_url,
        max_retries=settings.email_max_retries,
        retry_backoff_seconds=0,
    )


@pytest.fixture
def moderation_service(
    comment_store: InMemoryCommentStore,
    post_directory: InMemoryPostDirectory,
    identity_store: InMemoryIdentityStore,
    settings: Settings,
    dispatcher: NotificationDispatcher,
) -> ModerationService:
    return ModerationService(
        comment_store,
        post_directory,
        identity_store,
        settings,
        notifier=dispatcher,
    )


@pytest.fixture
def session_service(adapter: IdentityAdapter, settings: Settings) -> SessionService:
    return SessionService(adapter, admin_emails=settings.admin_emails)


@pytest.fixture
def user_admin_service(
    identity_store: InMemoryIdentityStore, settings: Settings
) -> UserAdminService:
    return UserAdminService(identity_store, admin_emails=settings.admin_emails)


# ==============================================================================
# HTTP
# ==============================================================================


@pytest.fixture
def services(
    settings: Settings,
    identity_store: InMemoryIdentityStore,
    comment_store: InMemoryCommentStore,
    post_directory: InMemoryPostDirectory,
    transport: LoggingTransport,
) -> AppServices:
    return build_services(
        settings, identity_store, comment_store, post_directory, transport
    )


@pytest.fixture
def client(settings: Settings, services: AppServices) -> Iterator[TestClient]:
    app = create_app(settings, services)
    with TestClient(app) as test_client:
        yield test_client


def issue_token(store: InMemoryIdentityStore, user_id: UUID) -> str:
    """Store a fresh session for ``user_id`` and return its token."""
    token = f"token-{uuid4()}"
    run(
        store.insert_session(
            Session(
                session_token=token,
                user_id=user_id,
                expires=datetime.now(UTC) + timedelta(days=1),
            )
        )
    )
    return token


@pytest.fixture
def auth_headers(identity_store: InMemoryIdentityStore):
    """Factory for ``Authorization`` headers of a stored user."""

    def _headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {issue_token(identity_store, user.id)}"}

    return _headers
