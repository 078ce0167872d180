"""Lightweight Matomo API probes used by health checks and diagnostics."""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from matomo_access.errors import (
    MatomoApiError,
    MatomoClientError,
    MatomoPermissionError,
)
from matomo_access.fetch import MatomoHttpClient


VersionMethod = Literal["API.getMatomoVersion", "API.getVersion"]
UserMethod = Literal["UsersManager.getUserByTokenAuth", "API.getLoggedInUser"]

USERS_MANAGER_PERMISSION_MESSAGE = (
    "Matomo token lacks permission to call UsersManager.getUserByTokenAuth. "
    "Enable the UsersManager plugin and grant the token user at least view "
    "access to the required sites."
)
LOGGED_IN_USER_UNAVAILABLE_MESSAGE = (
    "Matomo instance does not expose API.getLoggedInUser. Upgrade Matomo or "
    "enable the API plugin, or rely on UsersManager.getUserByTokenAuth with "
    "the appropriate permissions."
)


class VersionProbe(BaseModel):
    """Outcome of a version lookup."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: VersionMethod
    version: str | None = None


class UserProbe(BaseModel):
    """Outcome of a token owner lookup."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: UserMethod
    login: str | None = None


def is_method_unavailable(error: Exception, method: str) -> bool:
    """Check whether Matomo rejected a call because the method does not exist.

    Args:
        error: Raised error.
        method: Method name fragment, matched case-insensitively.

    Returns:
        True for a client error naming the missing method.
    """
    if not isinstance(error, MatomoClientError):
        return False
    normalized = error.message.lower()
    if method.lower() not in normalized:
        return False
    return "method" in normalized and "does not exist" in normalized


def extract_version(payload: Any) -> str | None:
    """Read a version from a bare string or ``{"value"|"version": ...}``."""
    if isinstance(payload, str):
        return payload
    if isinstance(payload, dict):
        for key in ("version", "value"):
            value = payload.get(key)
            if isinstance(value, str):
                return value
    return None


def extract_login(payload: Any) -> str | None:
    """Read a login from a string, an object, or the first object in a list."""
    if not payload:
        return None
    if isinstance(payload, str):
        return payload
    if isinstance(payload, list):
        for entry in payload:
            if isinstance(entry, dict) and isinstance(entry.get("login"), str):
                return entry["login"]
        return None
    if isinstance(payload, dict):
        login = payload.get("login")
        if isinstance(login, str):
            return login
    return None


def _rewrap(
    error_cls: type[MatomoApiError], message: str, cause: MatomoApiError
) -> MatomoApiError:
    return error_cls(
        message,
        status=cause.status,
        code=cause.code,
        body=cause.body,
        endpoint=cause.endpoint,
        payload=cause.payload,
        rate_limit=cause.rate_limit,
    )


async def fetch_version(http: MatomoHttpClient) -> VersionProbe:
    """Ask Matomo for its version.

    Tries API.getMatomoVersion and falls back to API.getVersion on
    installations that lack it.

    Raises:
        MatomoApiError: If neither method answers.
    """
    try:
        payload = await http.get_data("API.getMatomoVersion")
    except MatomoApiError as e:
        if not is_method_unavailable(e, "getmatomoversion"):
            raise
        payload = await http.get_data("API.getVersion")
        return VersionProbe(method="API.getVersion", version=extract_version(payload))
    return VersionProbe(method="API.getMatomoVersion", version=extract_version(payload))


async def fetch_token_user(http: MatomoHttpClient) -> UserProbe:
    """Resolve the login owning the configured token.

    Tries UsersManager.getUserByTokenAuth and falls back to
    API.getLoggedInUser.

    Raises:
        MatomoPermissionError: If the token may not query UsersManager.
        MatomoClientError: If neither method exists.
        MatomoApiError: For any other failure.
    """
    try:
        payload = await http.get_data("UsersManager.getUserByTokenAuth")
        return UserProbe(
            method="UsersManager.getUserByTokenAuth", login=extract_login(payload)
        )
    except MatomoPermissionError as e:
        raise _rewrap(MatomoPermissionError, USERS_MANAGER_PERMISSION_MESSAGE, e) from e
    except MatomoApiError as e:
        if not is_method_unavailable(e, "getuserbytokenauth"):
            raise

    try:
        payload = await http.get_data("API.getLoggedInUser")
    except MatomoApiError as e:
        if is_method_unavailable(e, "getloggedinuser"):
            raise _rewrap(MatomoClientError, LOGGED_IN_USER_UNAVAILABLE_MESSAGE, e) from e
        raise
    return UserProbe(method="API.getLoggedInUser", login=extract_login(payload))
