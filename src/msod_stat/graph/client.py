"""Microsoft Graph API client with MSAL authentication."""

from __future__ import annotations

import http.client
import json
import logging
from typing import TYPE_CHECKING, Any
from urllib import request as urllib_request
from urllib.error import HTTPError, URLError

import msal
import requests

if TYPE_CHECKING:
    from msod_stat.config import AppConfig

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"
GRAPH_SCOPES = ["https://graph.microsoft.com/.default"]
AUTHORITY_BASE_URL = "https://login.microsoftonline.com"

DEFAULT_REQUEST_TIMEOUT = 30.0

# Status codes the Graph throttling and availability guidance says to retry
TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


class GraphAuthError(Exception):
    """Raised when MSAL token acquisition fails."""


class GraphApiError(Exception):
    """Raised when the Graph API returns a non-2xx response."""

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(f"Graph API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message


class GraphTransientError(GraphApiError):
    """Raised for failures worth retrying: throttling, 5xx and network errors.

    Network errors carry status_code 0. retry_after holds the server's
    Retry-After value in seconds when one was sent.
    """

    def __init__(self, status_code: int, message: str, retry_after: float | None = None) -> None:
        super().__init__(status_code, message)
        self.retry_after = retry_after


def _parse_retry_after(value: str | None) -> float | None:
    """Parse a Retry-After header given in seconds; HTTP dates are ignored."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class GraphClient:
    """Authenticated client for Microsoft Graph API."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        tenant_id: str,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
    ) -> None:
        """Initialise the MSAL confidential client application.

        Args:
            client_id: Azure AD application (client) ID.
            client_secret: Azure AD application client secret.
            tenant_id: Azure AD tenant ID.
            timeout: Socket timeout in seconds for each request.
        """
        authority = f"{AUTHORITY_BASE_URL}/{tenant_id}"
        self._app = msal.ConfidentialClientApplication(
            client_id=client_id,
            client_credential=client_secret,
            authority=authority,
        )
        self._timeout = timeout

    def _acquire_token(self) -> str:
        """Acquire a Bearer token using client credentials flow.

        MSAL caches the token in memory, so repeated calls only reach the
        identity platform when the cached token is close to expiry.

        Returns:
            Access token string.

        Raises:
            GraphAuthError: If MSAL cannot acquire a token.
        """
        try:
            result: dict[str, Any] = (
                self._app.acquire_token_for_client(scopes=GRAPH_SCOPES) or {}
            )
        except requests.exceptions.RequestException as exc:
            logger.error("[_acquire_token] identity platform unreachable; error:%s", exc)
            raise GraphAuthError(f"Token acquisition failed: {exc}") from exc
        if "access_token" not in result:
            error = result.get("error", "unknown_error")
            description = result.get("error_description", "No description provided")
            logger.error("[_acquire_token] MSAL token acquisition failed; error:%s", error)
            raise GraphAuthError(f"Token acquisition failed: {error} — {description}")
        return str(result["access_token"])

    def check_auth(self) -> None:
        """Acquire a token up front so credential problems surface before crawling.

        Raises:
            GraphAuthError: If MSAL cannot acquire a token.
        """
        self._acquire_token()
        logger.info("[check_auth] acquired Graph access token")

    def get(self, path: str) -> dict[str, Any]:
        """Perform an authenticated GET request to the Graph API.

        Args:
            path: URL path relative to GRAPH_BASE_URL (must start with '/').

        Returns:
            Parsed JSON response body as a dict.

        Raises:
            GraphAuthError: If token acquisition fails.
            GraphTransientError: On throttling, 5xx responses or network failure.
            GraphApiError: If the API returns any other non-2xx status code.
        """
        token = self._acquire_token()
        url = f"{GRAPH_BASE_URL}{path}"
        req = urllib_request.Request(
            url,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            },
            method="GET",
        )
        try:
            with urllib_request.urlopen(req, timeout=self._timeout) as resp:
                body = resp.read()
                return json.loads(body)  # type: ignore[no-any-return]
        except HTTPError as exc:
            raw = exc.read()
            try:
                detail = json.loads(raw).get("error", {}).get("message", exc.reason)
            except Exception:
                detail = exc.reason
            if exc.code in TRANSIENT_STATUS_CODES:
                header = exc.headers.get("Retry-After") if exc.headers else None
                retry_after = _parse_retry_after(header)
                logger.warning(
                    "[get] transient Graph error; status:%d;retry_after:%s;path:%s",
                    exc.code,
                    retry_after,
                    path,
                )
                raise GraphTransientError(exc.code, str(detail), retry_after) from exc
            raise GraphApiError(exc.code, str(detail)) from exc
        except (URLError, TimeoutError, ConnectionError) as exc:
            logger.warning("[get] network error; path:%s;error:%s", path, exc)
            raise GraphTransientError(0, str(exc)) from exc
        except (http.client.HTTPException, json.JSONDecodeError) as exc:
            # Truncated or garbled body; the same request can be repeated.
            logger.warning("[get] incomplete response; path:%s;error:%s", path, exc)
            raise GraphTransientError(0, f"incomplete response: {exc}") from exc


def graph_client_from_config(config: AppConfig) -> GraphClient:
    """Construct a GraphClient from application configuration.

    Args:
        config: Application configuration instance.

    Returns:
        Configured GraphClient instance.
    """
    return GraphClient(
        client_id=config.client_id,
        client_secret=config.client_secret,
        tenant_id=config.tenant_id,
        timeout=config.request_timeout,
    )
