"""
Flask Routes for the IPO Digest delivery server

Includes:
- Shared-secret guard (X-Auth-Token) for every request
- POST /monthly: validate, render, email and forward a digest
- Health check endpoint
"""

import hmac
import json
import logging
import os

from flask import Blueprint, request, jsonify
from pydantic import ValidationError

from ipo_digest.models import DeliveryStatus
from ipo_digest.schemas import DigestPayload, flatten_errors
from ipo_digest.services.email import build_subject, render_digest_html, send_digest_email
from ipo_digest.services.history import record_delivery
from ipo_digest.services.webhook import forward_to_webhook, AUTH_HEADER

logger = logging.getLogger(__name__)

# Create blueprint
main = Blueprint('main', __name__)


class DeliveryError(Exception):
    """Digest could not be delivered."""


@main.before_app_request
def require_shared_secret():
    """Reject requests without the shared secret (disabled when SHARED_SECRET is unset)."""
    required = os.environ.get('SHARED_SECRET')
    if not required:
        return None
    provided = request.headers.get(AUTH_HEADER, '')
    if not hmac.compare_digest(provided.encode(), required.encode()):
        return jsonify({'error': 'Unauthorized'}), 401
    return None


@main.route('/health')
def health_check():
    """Health check endpoint."""
    return jsonify({'ok': True})


@main.route('/monthly', methods=['POST'])
def receive_digest():
    """
    Receive an IPO digest.

    1. Validate the JSON body
    2. Render the HTML email
    3. Email it via the configured provider (skipped if not configured)
    4. Forward the JSON to ZAPIER_HOOK_URL (if set)
    """
    body = request.get_json(silent=True)
    try:
        digest = DigestPayload.model_validate(body)
    except ValidationError as e:
        errors = flatten_errors(e)
        logger.error(f"Validation error: {json.dumps(errors, indent=2)}")
        return jsonify({'error': errors}), 400

    payload = digest.to_payload()
    html = render_digest_html(payload)
    delivery = {
        'provider': None,
        'recipients': [],
        'subject': build_subject(payload['as_of_date']),
        'status': DeliveryStatus.SKIPPED,
    }
    webhook_forwarded = False

    try:
        delivery = send_digest_email(payload, html)
        if delivery['status'] == DeliveryStatus.FAILED:
            raise DeliveryError(delivery['error'])

        hook_url = os.environ.get('ZAPIER_HOOK_URL')
        if hook_url:
            forward_to_webhook(payload, hook_url)
            webhook_forwarded = True

    except Exception as e:
        logger.error(f"Delivery error: {e}")
        _record(payload, delivery, DeliveryStatus.FAILED, webhook_forwarded, str(e))
        return jsonify({'error': 'delivery_failed'}), 500

    _record(payload, delivery, delivery['status'], webhook_forwarded)
    logger.info(f"Digest {payload['as_of_date']} handled: {len(payload['items'])} items, email {delivery['status'].value}")
    return jsonify({'ok': True})


def _record(payload: dict, delivery: dict, status: DeliveryStatus, webhook_forwarded: bool, error=None):
    """Log the delivery to the database; never fails the request."""
    try:
        record_delivery(
            payload,
            subject=delivery['subject'],
            status=status,
            provider=delivery.get('provider'),
            recipients=delivery.get('recipients'),
            webhook_forwarded=webhook_forwarded,
            error_message=error,
        )
    except Exception as e:
        logger.warning(f"Could not record delivery: {e}")
