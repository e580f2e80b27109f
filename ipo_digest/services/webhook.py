"""
Webhook Delivery

- post_digest: the agent's POST of the weekly digest to the delivery server
- forward_to_webhook: the server's optional forward of a digest (e.g. Zapier)
"""

import logging
import os
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT = 30  # seconds
AUTH_HEADER = 'X-Auth-Token'


class WebhookError(Exception):
    """Webhook answered with a non-2xx status."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Webhook POST failed: {status_code} {body}")
        self.status_code = status_code
        self.body = body


def _post_json(url: str, payload: dict, headers: Optional[dict] = None) -> httpx.Response:
    response = httpx.post(url, json=payload, headers=headers or {}, timeout=WEBHOOK_TIMEOUT)
    if not response.is_success:
        raise WebhookError(response.status_code, response.text)
    return response


def post_digest(payload: dict, url: Optional[str] = None, secret: Optional[str] = None) -> httpx.Response:
    """
    POST the digest to the delivery server.

    Args:
        payload: Digest payload
        url: Endpoint (defaults to WEBHOOK_URL)
        secret: Shared secret sent as X-Auth-Token (defaults to SHARED_SECRET)

    Raises:
        WebhookError: On a non-2xx response
    """
    url = url or os.environ.get('WEBHOOK_URL')
    if not url:
        raise ValueError("WEBHOOK_URL environment variable not set")
    secret = secret if secret is not None else os.environ.get('SHARED_SECRET', '')

    response = _post_json(url, payload, headers={AUTH_HEADER: secret})
    logger.info(f"Digest posted: {response.status_code} ({len(payload.get('items', []))} items)")
    return response


def forward_to_webhook(payload: dict, url: str) -> httpx.Response:
    """
    Forward a validated digest as JSON to an external webhook.

    Raises:
        WebhookError: On a non-2xx response
    """
    response = _post_json(url, payload)
    logger.info(f"Digest forwarded to webhook: {response.status_code}")
    return response
