"""
Webhook token authentication
"""
import hmac
from typing import Optional

import structlog

from leadsync.core.config import Settings
from leadsync.core.errors import AuthError

logger = structlog.get_logger(__name__)


def is_authorized(expected: str, supplied: Optional[str]) -> bool:
    """Plain equality check; an unset secret rejects everything"""
    if not expected or not supplied:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))


def verify_webhook_token(settings: Settings, channel: str, token: Optional[str]) -> None:
    expected = settings.webhook_token_for(channel)
    if is_authorized(expected, token):
        return

    logger.warning(
        "webhook_token_rejected",
        channel=channel,
        token_supplied=bool(token),
        secret_configured=bool(expected),
    )
    raise AuthError("invalid or missing token")
