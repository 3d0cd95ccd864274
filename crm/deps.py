"""Shared FastAPI dependencies."""

from fastapi import Request

from crm.core.exceptions import ForbiddenError, UnauthorizedError
from crm.core.security import load_session_token
from crm.models.user import User
from crm.runtime import Runtime
from crm.services.campaigns import CampaignService
from crm.stores.ids import to_object_id
from crm.stores.jobs import JobLogStore
from crm.stores.notifications import NotificationStore

SESSION_COOKIE_NAME = "crm_session"


def _session_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return request.cookies.get(SESSION_COOKIE_NAME)


async def get_current_agent(request: Request) -> User:
    """Dependency: resolve the signed session (bearer header or cookie) to an active agent."""
    token = _session_token(request)
    if not token:
        raise UnauthorizedError("Not authenticated")
    payload = load_session_token(token)
    if not payload:
        raise UnauthorizedError("Invalid or expired session")
    user_id = to_object_id(payload.get("user_id"))
    if user_id is None:
        raise UnauthorizedError("Invalid session")
    user = await User.get(user_id)
    if not user or not user.is_active:
        raise UnauthorizedError("User not found")
    if payload.get("session_version") != user.session_version:
        raise UnauthorizedError("Session invalidated")
    if not user.organization_id:
        raise ForbiddenError("Agent is not attached to an organization")
    return user


def get_runtime(request: Request) -> Runtime:
    return request.app.state.runtime


def get_campaign_service(request: Request) -> CampaignService:
    return get_runtime(request).campaign_service


def get_job_store(request: Request) -> JobLogStore:
    return get_runtime(request).jobs


def get_notification_store(request: Request) -> NotificationStore:
    return get_runtime(request).notification_store
