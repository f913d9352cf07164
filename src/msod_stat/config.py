"""Application configuration loaded from environment variables."""

import os
from collections.abc import Mapping
from dataclasses import dataclass


@dataclass(frozen=True)
class AppConfig:
    """Centralized application configuration.

    Required fields have no defaults and will cause a KeyError at startup
    if the corresponding environment variable is missing. Crawl tuning
    values have sensible defaults but can be overridden via environment
    variables.
    """

    # Required — no defaults, fail at startup if missing
    client_id: str
    client_secret: str
    tenant_id: str

    # Required unless drive_id is set; only used to list the user's drives
    drive_user: str = ""

    # Optional — None means every drive of drive_user is reported
    drive_id: str | None = None

    # Crawl tuning — defaults provided, overridable via env
    max_workers: int = 4
    page_size: int = 200
    max_retries: int = 3
    retry_delay: float = 1.0
    request_timeout: float = 30.0


def load_config(environ: Mapping[str, str] | None = None) -> AppConfig:
    """Construct an AppConfig from environment variables.

    Required environment variables:
        MSOD_CLIENT_ID: Azure AD application (client) ID.
        MSOD_CLIENT_SECRET: Azure AD application client secret.
        MSOD_TENANT_ID: Azure AD tenant ID.
        MSOD_DRIVE_USER: UPN or object ID of the user whose drives are reported.
            Not needed when MSOD_DRIVE_ID is set.

    Optional environment variables (with defaults):
        MSOD_DRIVE_ID: Report only this drive (default: all drives of the user).
        MSOD_MAX_WORKERS: Concurrent listing requests (default: 4).
        MSOD_PAGE_SIZE: Items requested per listing page (default: 200).
        MSOD_MAX_RETRIES: Retry attempts for transient Graph errors (default: 3).
        MSOD_RETRY_DELAY: Initial backoff delay in seconds (default: 1.0).
        MSOD_REQUEST_TIMEOUT: HTTP socket timeout in seconds (default: 30.0).

    Args:
        environ: Mapping to read instead of os.environ.

    Returns:
        Configured AppConfig instance.
    """
    env = os.environ if environ is None else environ
    drive_id = env.get("MSOD_DRIVE_ID") or None
    drive_user = env.get("MSOD_DRIVE_USER", "") if drive_id else env["MSOD_DRIVE_USER"]
    return AppConfig(
        client_id=env["MSOD_CLIENT_ID"],
        client_secret=env["MSOD_CLIENT_SECRET"],
        tenant_id=env["MSOD_TENANT_ID"],
        drive_user=drive_user,
        drive_id=drive_id,
        max_workers=int(env.get("MSOD_MAX_WORKERS", "4")),
        page_size=int(env.get("MSOD_PAGE_SIZE", "200")),
        max_retries=int(env.get("MSOD_MAX_RETRIES", "3")),
        retry_delay=float(env.get("MSOD_RETRY_DELAY", "1.0")),
        request_timeout=float(env.get("MSOD_REQUEST_TIMEOUT", "30.0")),
    )
