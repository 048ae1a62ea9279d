"""
Shared API dependencies
"""
from typing import Any, Dict, Optional, Tuple

from fastapi import Depends, Query, Request
from fastapi.responses import JSONResponse

from leadsync.core.config import Settings, get_settings
from leadsync.core.errors import NotFoundError, ValidationError
from leadsync.core.security import verify_webhook_token

CHANNELS = ("tradicional", "digital")


class WebhookContext:
    """Authenticated webhook call: channel, settings and the decoded JSON body"""

    def __init__(self, channel: str, settings: Settings, body: Dict[str, Any]):
        self.channel = channel
        self.settings = settings
        self.body = body


async def read_json_object(request: Request) -> Dict[str, Any]:
    try:
        body = await request.json()
    except ValueError:
        raise ValidationError("invalid payload format")
    if not isinstance(body, dict):
        raise ValidationError("invalid payload format")
    return body


async def webhook_context(
    channel: str,
    request: Request,
    token: Optional[str] = Query(default=None),
    settings: Settings = Depends(get_settings),
) -> WebhookContext:
    """Resolve the channel, check ?token= before reading the body"""
    if channel not in CHANNELS:
        raise NotFoundError(f"unknown channel {channel}")
    verify_webhook_token(settings, channel, token)
    body = await read_json_object(request)
    return WebhookContext(channel, settings, body)


def respond(result: Tuple[int, Dict[str, Any]]) -> JSONResponse:
    status_code, content = result
    return JSONResponse(status_code=status_code, content=content)
