"""Step-by-step connectivity diagnostics for a Matomo configuration."""

from collections.abc import Awaitable, Callable
from typing import Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict

from matomo_access.errors import MatomoApiError, MatomoNetworkError
from matomo_access.fetch import MatomoHttpClient
from matomo_access.health.probes import fetch_token_user, fetch_version


logger = structlog.get_logger()

DiagnosticCheckId = Literal["base-url", "token-auth", "site-access"]
DiagnosticStatus = Literal["ok", "error", "skipped"]

BASE_URL_LABEL = "Matomo base URL reachability"
TOKEN_AUTH_LABEL = "Token authentication"
SITE_ACCESS_LABEL = "Site access permissions"

UNREACHABLE_REASON = "Matomo base URL could not be reached."
AUTH_FAILED_REASON = "Authentication failed, unable to verify site permissions."


class DiagnosticError(BaseModel):
    """Error attached to a failed diagnostic step."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: Literal["network", "matomo", "unknown"]
    message: str
    guidance: str | None = None
    code: str | None = None


class DiagnosticCheck(BaseModel):
    """One diagnostic step."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    id: DiagnosticCheckId
    label: str
    status: DiagnosticStatus
    error: DiagnosticError | None = None
    details: dict[str, Any] | None = None
    skipped_reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Render with camelCase keys."""
        data = self.model_dump(mode="json", exclude_none=True)
        if "skipped_reason" in data:
            data["skippedReason"] = data.pop("skipped_reason")
        return data


class DiagnosticsResult(BaseModel):
    """Ordered diagnostic steps."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    checks: list[DiagnosticCheck]

    @property
    def ok(self) -> bool:
        """True when every step succeeded."""
        return all(check.status == "ok" for check in self.checks)

    def to_dict(self) -> dict[str, Any]:
        """Render for display."""
        return {"checks": [check.to_dict() for check in self.checks]}


def to_diagnostic_error(error: Exception) -> DiagnosticError:
    """Describe an exception for a diagnostic step."""
    if isinstance(error, MatomoApiError):
        return DiagnosticError(
            type="network" if isinstance(error, MatomoNetworkError) else "matomo",
            message=error.message,
            guidance=error.guidance,
            code=error.code,
        )
    return DiagnosticError(type="unknown", message=str(error) or "Unknown error")


StepHandler = Callable[[], Awaitable[dict[str, Any] | None]]


async def _perform(
    check_id: DiagnosticCheckId, label: str, handler: StepHandler
) -> DiagnosticCheck:
    try:
        details = await handler()
    except MatomoApiError as e:
        return DiagnosticCheck(
            id=check_id, label=label, status="error", error=to_diagnostic_error(e)
        )
    return DiagnosticCheck(id=check_id, label=label, status="ok", details=details or None)


async def run_diagnostics(
    http: MatomoHttpClient,
    resolve_site_id: Callable[[], int],
) -> DiagnosticsResult:
    """Verify reachability, then authentication, then site access.

    Each step only runs when the previous one succeeded; later steps are
    reported as skipped with the reason.

    Args:
        http: Request client to probe.
        resolve_site_id: Returns the site to check; may raise ValueError.

    Returns:
        DiagnosticsResult with exactly three steps.
    """
    log = logger.bind(component="health")

    async def check_base_url() -> dict[str, Any] | None:
        probe = await fetch_version(http)
        return {"version": probe.version} if probe.version else None

    async def check_token() -> dict[str, Any] | None:
        probe = await fetch_token_user(http)
        return {"login": probe.login} if probe.login else None

    checks = [await _perform("base-url", BASE_URL_LABEL, check_base_url)]
    if checks[-1].status != "ok":
        checks.append(_skipped("token-auth", TOKEN_AUTH_LABEL, UNREACHABLE_REASON))
        checks.append(_skipped("site-access", SITE_ACCESS_LABEL, UNREACHABLE_REASON))
        return _finish(checks, log)

    checks.append(await _perform("token-auth", TOKEN_AUTH_LABEL, check_token))
    if checks[-1].status != "ok":
        checks.append(_skipped("site-access", SITE_ACCESS_LABEL, AUTH_FAILED_REASON))
        return _finish(checks, log)

    try:
        site_id = resolve_site_id()
    except ValueError as e:
        checks.append(
            DiagnosticCheck(
                id="site-access",
                label=SITE_ACCESS_LABEL,
                status="error",
                error=to_diagnostic_error(e),
            )
        )
        return _finish(checks, log)

    async def check_site() -> dict[str, Any] | None:
        payload = await http.get_data("SitesManager.getSiteFromId", {"idSite": site_id})
        if not isinstance(payload, dict):
            return None
        details: dict[str, Any] = {}
        if isinstance(payload.get("idsite"), str | int):
            details["idsite"] = payload["idsite"]
        if isinstance(payload.get("name"), str):
            details["name"] = payload["name"]
        return details

    checks.append(await _perform("site-access", SITE_ACCESS_LABEL, check_site))
    return _finish(checks, log)


def _skipped(check_id: DiagnosticCheckId, label: str, reason: str) -> DiagnosticCheck:
    return DiagnosticCheck(id=check_id, label=label, status="skipped", skipped_reason=reason)


def _finish(
    checks: list[DiagnosticCheck], log: structlog.stdlib.BoundLogger
) -> DiagnosticsResult:
    result = DiagnosticsResult(checks=checks)
    log.info(
        "diagnostics_complete",
        ok=result.ok,
        statuses={check.id: check.status for check in checks},
    )
    return result
