"""WeWe RSS platform API client with classified failures and retries."""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

from .errors import CredentialFormatError, ErrorKind, WeReadApiError, classify_status
from .models import (
    ApiRequest,
    Credential,
    LoginResult,
    LoginUrl,
    MpArticle,
    MpInfo,
    RetryPolicy,
)

logger = logging.getLogger(__name__)

_HEALTH_PATHS = ("/health", "/api/health", "/api/v2/health")

_KIND_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.SERVER: "The platform is temporarily unavailable",
    ErrorKind.RATE_LIMITED: "Account is rate limited by the platform",
    ErrorKind.UNAUTHORIZED: "Account authentication expired",
    ErrorKind.BAD_REQUEST: "Invalid request parameters",
    ErrorKind.UNEXPECTED: "Unexpected platform response",
}


class WeReadClient:
    """Client for the WeWe RSS platform (WeChat Reading bridge).

    Every call goes through :meth:`call`, which classifies failures into
    :class:`ErrorKind` values. Network errors and 5xx responses are retried
    sequentially with exponential backoff; every other failure is raised on
    first occurrence so the caller can update the account's state.
    """

    DEFAULT_TIMEOUT = 15.0
    LOGIN_POLL_TIMEOUT = 120.0
    HEALTH_TIMEOUT = 5.0

    def __init__(
        self,
        base_url: str,
        *,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Platform base URL, e.g. ``https://weread.111965.xyz``.
            retry_policy: Default retry policy for calls that do not pass one.
        """
        if not base_url:
            raise ValueError("Platform URL is required")
        self.base_url = base_url.rstrip("/")
        self.retry_policy = retry_policy or RetryPolicy(timeout=self.DEFAULT_TIMEOUT)

    def call(
        self,
        request: ApiRequest,
        credential: Credential | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> Any:
        """Execute a request and return the decoded JSON body.

        Args:
            request: The request to send.
            credential: Account credential; required when the request is
                authenticated.
            retry_policy: Overrides the client's default policy.

        Returns:
            Decoded JSON payload, or None for empty bodies.

        Raises:
            CredentialFormatError: Credential missing or incomplete (no I/O made).
            WeReadApiError: Any classified failure, after retries for
                transient kinds are exhausted.
        """
        policy = retry_policy or self.retry_policy
        headers = {"Accept": "application/json", **dict(request.headers)}

        if request.authenticated:
            if credential is None:
                raise CredentialFormatError("An account credential is required for this request.")
            if not isinstance(credential, Credential):
                raise TypeError(
                    f"credential must be a Credential, got {type(credential).__name__}"
                )
            credential.validate()
            headers.update(credential.headers())

        url = f"{self.base_url}{request.path}"

        for attempt in range(1, policy.max_attempts + 1):
            logger.debug(
                "API request %s %s (attempt %d/%d)",
                request.method,
                url,
                attempt,
                policy.max_attempts,
            )
            try:
                return self._send(request, url, headers, policy.timeout)
            except WeReadApiError as exc:
                if not exc.retryable or attempt >= policy.max_attempts:
                    logger.error(
                        "API request %s %s failed (%s, attempt %d/%d): %s",
                        request.method,
                        url,
                        exc.kind.value,
                        attempt,
                        policy.max_attempts,
                        exc,
                    )
                    raise

                delay = policy.delay_for(attempt)
                logger.warning(
                    "Transient %s error (attempt %d/%d). Retrying in %.1f seconds.",
                    exc.kind.value,
                    attempt,
                    policy.max_attempts,
                    delay,
                )
                time.sleep(delay)

        # max_attempts >= 1, so the loop either returned or raised
        raise WeReadApiError(ErrorKind.UNEXPECTED, "Request failed unexpectedly")

    def _send(
        self,
        request: ApiRequest,
        url: str,
        headers: dict[str, str],
        timeout: float,
    ) -> Any:
        try:
            response = requests.request(
                request.method,
                url,
                params=dict(request.params) if request.params else None,
                json=dict(request.json_body) if request.json_body is not None else None,
                headers=headers,
                timeout=timeout,
            )
        except requests.Timeout as exc:
            raise WeReadApiError(
                ErrorKind.NETWORK, f"Request to {url} timed out after {timeout:.0f}s"
            ) from exc
        except requests.RequestException as exc:
            raise WeReadApiError(ErrorKind.NETWORK, f"Failed to reach platform: {exc}") from exc

        status = response.status_code
        if not 200 <= status < 300:
            body = response.text or ""
            kind = classify_status(status, body)
            raise WeReadApiError(
                kind,
                self._build_error_message(kind, status, body),
                status_code=status,
            )

        if request.method.upper() == "HEAD" or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise WeReadApiError(
                ErrorKind.UNEXPECTED, f"Invalid JSON response: {exc}", status_code=status
            ) from exc

    def _build_error_message(self, kind: ErrorKind, status: int, body: str) -> str:
        summary = _KIND_MESSAGES.get(kind, "Platform request failed")
        detail = body.strip()[:200]
        message = f"{summary} (HTTP {status})"
        if detail:
            message = f"{message}: {detail}"
        return message

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    def create_login_url(self) -> LoginUrl:
        """Start a login handshake and return its id and scan prompt."""
        data = self.call(ApiRequest("GET", "/api/v2/login/platform", authenticated=False))
        try:
            return LoginUrl(uuid=str(data["uuid"]), scan_url=str(data["scanUrl"]))
        except (KeyError, TypeError) as exc:
            raise WeReadApiError(ErrorKind.UNEXPECTED, "Unexpected login URL payload") from exc

    def get_login_result(self, uuid: str) -> LoginResult:
        """Long-poll the handshake identified by ``uuid``."""
        policy = RetryPolicy(max_attempts=3, base_delay=2.0, timeout=self.LOGIN_POLL_TIMEOUT)
        data = self.call(
            ApiRequest("GET", f"/api/v2/login/platform/{uuid}", authenticated=False),
            retry_policy=policy,
        )
        if not isinstance(data, dict):
            raise WeReadApiError(ErrorKind.UNEXPECTED, "Unexpected login result payload")
        result = LoginResult.from_api_payload(data)
        if result.completed:
            logger.info("Login completed for %s", result.username or result.vid)
        else:
            logger.debug("Login pending: %s", result.message)
        return result

    def get_mp_info(self, share_link: str, credential: Credential) -> list[MpInfo]:
        """Resolve a share link into public account info."""
        data = self.call(
            ApiRequest(
                "POST",
                "/api/v2/platform/wxs2mp",
                json_body={"url": share_link.strip()},
                headers={"Content-Type": "application/json"},
            ),
            credential,
        )
        try:
            return [MpInfo.from_api_payload(item) for item in data or []]
        except (KeyError, TypeError, ValueError) as exc:
            raise WeReadApiError(ErrorKind.UNEXPECTED, "Unexpected MP info payload") from exc

    def get_mp_articles(
        self,
        mp_id: str,
        credential: Credential,
        page: int = 1,
    ) -> list[MpArticle]:
        """Fetch one page of a public account's articles, newest first."""
        data = self.call(
            ApiRequest(
                "GET",
                f"/api/v2/platform/mps/{mp_id}/articles",
                params={"page": str(page)},
            ),
            credential,
        )
        try:
            articles = [MpArticle.from_api_payload(item) for item in data or []]
        except (KeyError, TypeError, ValueError) as exc:
            raise WeReadApiError(ErrorKind.UNEXPECTED, "Unexpected article list payload") from exc
        logger.info("Retrieved %d articles for %s, page %d", len(articles), mp_id, page)
        return articles

    def check_health(self) -> bool:
        """Return True if the platform answers on a health endpoint or its base URL."""
        single = RetryPolicy(max_attempts=1, timeout=self.HEALTH_TIMEOUT)
        for path in _HEALTH_PATHS:
            try:
                data = self.call(ApiRequest("GET", path, authenticated=False), retry_policy=single)
            except WeReadApiError:
                continue
            if isinstance(data, dict) and data.get("status") in ("ok", "degraded"):
                logger.info("API health check passed: %s", path)
                return True

        try:
            self.call(ApiRequest("HEAD", "", authenticated=False), retry_policy=single)
        except WeReadApiError as exc:
            logger.warning("API health check failed: %s", exc)
            return False
        logger.info("Base URL reachable (no health endpoint found)")
        return True
