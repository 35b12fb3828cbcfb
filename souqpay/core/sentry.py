"""
Sentry initialization for the API and the poller. Read SENTRY_DSN from env via Settings.

Explorer calls carry the Etherscan API key in their query string, so events
and breadcrumbs are passed through the log sanitizer before they are sent.
"""
import re

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from souqpay import __version__
from souqpay.core.config import settings
from souqpay.utils.redact import sanitize

APIKEY_IN_URL = re.compile(r"(apikey=)[^&\s]+", re.IGNORECASE)


def _scrub_url(value):
    if isinstance(value, str):
        return APIKEY_IN_URL.sub(r"\1***", value)
    return value


def scrub_breadcrumb(crumb, hint=None):
    data = crumb.get("data")
    if data:
        data = sanitize(data)
        if "url" in data:
            data["url"] = _scrub_url(data["url"])
        crumb["data"] = data
    if "message" in crumb:
        crumb["message"] = _scrub_url(crumb["message"])
    return crumb


def scrub_event(event, hint=None):
    request = event.get("request")
    if request:
        for field in ("url", "query_string"):
            if field in request:
                request[field] = _scrub_url(request[field])
    if event.get("extra"):
        event["extra"] = sanitize(event["extra"])
    crumbs = event.get("breadcrumbs")
    if isinstance(crumbs, dict):
        crumbs = crumbs.get("values")
    for crumb in crumbs or []:
        scrub_breadcrumb(crumb)
    return event


def init_sentry() -> bool:
    dsn = getattr(settings, "SENTRY_DSN", None)
    if not dsn:
        return False
    sentry_logging = LoggingIntegration(
        level=None,
        event_level="ERROR",
    )
    sentry_sdk.init(
        dsn,
        integrations=[sentry_logging],
        traces_sample_rate=0.0,
        release=f"souqpay@{__version__}",
        environment=settings.SENTRY_ENVIRONMENT,
        before_send=scrub_event,
        before_breadcrumb=scrub_breadcrumb,
    )
    return True
