"""
Email Delivery Service

Renders the IPO digest and sends it through one of several interchangeable
providers (SendGrid, SMTP, Resend). Handles retry logic for transient
failures; client errors are not retried.
"""

import logging
import os
import smtplib
import time
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional

import resend
from bs4 import BeautifulSoup
from jinja2 import Environment, FileSystemLoader, select_autoescape
from sendgrid import SendGridAPIClient
from sendgrid.helpers.mail import Mail, From, To, Subject, HtmlContent

from ipo_digest.models import DeliveryStatus

logger = logging.getLogger(__name__)

# Configuration
MAX_RETRIES = 3
RETRY_DELAYS = [30, 60, 120]  # seconds
SMTP_TIMEOUT = 30  # seconds
SENDER_NAME = os.environ.get('FROM_NAME', 'IPO Digest')
TEMPLATE_NAME = 'email/ipo_digest.html'

# Provider -> env var that must be set for it to be usable, in fallback order
PROVIDER_KEYS = {
    'sendgrid': 'SENDGRID_API_KEY',
    'smtp': 'SMTP_HOST',
    'resend': 'RESEND_API_KEY',
}


class EmailClientError(Exception):
    """Provider rejected the message; retrying will not help."""


def format_issue_size(value) -> str:
    """Render an issue size without a trailing .0 for whole crores."""
    if value is None or value == '':
        return ''
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def get_template_env() -> Environment:
    """Get Jinja2 environment for email templates."""
    template_dir = os.path.join(os.path.dirname(os.path.dirname(__file__)), 'templates')
    env = Environment(
        loader=FileSystemLoader(template_dir),
        autoescape=select_autoescape(['html', 'xml'])
    )
    env.filters['issue_size'] = format_issue_size
    return env


def render_digest_html(payload: dict) -> str:
    """
    Render the IPO digest email HTML.

    Args:
        payload: Validated digest payload dict

    Returns:
        Rendered HTML string
    """
    template = get_template_env().get_template(TEMPLATE_NAME)
    return template.render(
        as_of_date=payload.get('as_of_date', ''),
        changes=payload.get('changes_since_last_run'),
        items=payload.get('items') or [],
        source_notes=payload.get('source_notes') or [],
    )


def build_subject(as_of_date: str) -> str:
    return f"Upcoming India IPOs — {as_of_date}"


def parse_recipients(csv: Optional[str]) -> list[str]:
    """Split a comma-separated address list, dropping blanks."""
    return [email.strip() for email in (csv or '').split(',') if email.strip()]


def html_to_text(html: str) -> str:
    """Plain-text alternative body for providers that send multipart mail."""
    return BeautifulSoup(html, 'html.parser').get_text(separator='\n', strip=True)


def select_provider() -> Optional[str]:
    """
    Pick the email provider.

    EMAIL_PROVIDER wins when set; otherwise the first provider whose
    credentials are present.

    Returns:
        Provider name, or None if none is configured
    """
    explicit = os.environ.get('EMAIL_PROVIDER', '').strip().lower()
    if explicit:
        if explicit not in PROVIDER_KEYS:
            raise ValueError(f"Unknown EMAIL_PROVIDER '{explicit}' (expected one of {', '.join(PROVIDER_KEYS)})")
        return explicit

    for provider, env_var in PROVIDER_KEYS.items():
        if os.environ.get(env_var):
            return provider
    return None


def is_provider_configured(provider: Optional[str]) -> bool:
    return bool(provider) and bool(os.environ.get(PROVIDER_KEYS[provider]))


# ============================================================================
# Providers
# ============================================================================

def _raise_if_client_error(provider_label: str, code, error: Exception):
    """Turn a 4xx (other than 429) from a provider SDK into EmailClientError."""
    try:
        code = int(code)
    except (TypeError, ValueError):
        return
    if 400 <= code < 500 and code != 429:
        raise EmailClientError(f"{provider_label} client error: {code} - {error}") from error


def get_sendgrid_client() -> SendGridAPIClient:
    """Get SendGrid client with API key from environment."""
    api_key = os.environ.get('SENDGRID_API_KEY')
    if not api_key:
        raise ValueError("SENDGRID_API_KEY environment variable not set")
    return SendGridAPIClient(api_key=api_key)


def _send_via_sendgrid(recipients: list[str], subject: str, html_content: str, from_email: str) -> int:
    message = Mail(
        from_email=From(from_email, SENDER_NAME),
        to_emails=[To(email) for email in recipients],
        subject=Subject(subject),
        html_content=HtmlContent(html_content)
    )
    try:
        response = get_sendgrid_client().send(message)
    except Exception as e:
        _raise_if_client_error('SendGrid', getattr(e, 'status_code', None), e)
        raise
    if 400 <= response.status_code < 500:
        raise EmailClientError(f"SendGrid client error: {response.status_code} - {response.body}")
    return response.status_code


def _send_via_smtp(recipients: list[str], subject: str, html_content: str, from_email: str) -> int:
    host = os.environ.get('SMTP_HOST')
    if not host:
        raise ValueError("SMTP_HOST environment variable not set")
    port = int(os.environ.get('SMTP_PORT', '587'))
    username = os.environ.get('SMTP_USERNAME')
    password = os.environ.get('SMTP_PASSWORD')
    starttls = os.environ.get('SMTP_STARTTLS', 'true').lower() not in ('0', 'false', 'no', '')

    message = MIMEMultipart('alternative')
    message['Subject'] = subject
    message['From'] = formataddr((SENDER_NAME, from_email))
    message['To'] = ', '.join(recipients)
    message.attach(MIMEText(html_to_text(html_content), 'plain', 'utf-8'))
    message.attach(MIMEText(html_content, 'html', 'utf-8'))

    smtp_class = smtplib.SMTP_SSL if port == 465 else smtplib.SMTP
    try:
        with smtp_class(host, port, timeout=SMTP_TIMEOUT) as server:
            if starttls and smtp_class is smtplib.SMTP:
                server.starttls()
            if username:
                server.login(username, password or '')
            server.sendmail(from_email, recipients, message.as_string())
    except (smtplib.SMTPAuthenticationError, smtplib.SMTPRecipientsRefused, smtplib.SMTPSenderRefused) as e:
        raise EmailClientError(f"SMTP client error: {e}") from e

    return 250


def _send_via_resend(recipients: list[str], subject: str, html_content: str, from_email: str) -> int:
    api_key = os.environ.get('RESEND_API_KEY')
    if not api_key:
        raise ValueError("RESEND_API_KEY environment variable not set")
    resend.api_key = api_key

    try:
        result = resend.Emails.send({
            "from": formataddr((SENDER_NAME, from_email)),
            "to": recipients,
            "subject": subject,
            "html": html_content,
        })
    except Exception as e:
        _raise_if_client_error('Resend', getattr(e, 'code', None), e)
        raise

    logger.debug(f"Resend accepted message {result.get('id') if isinstance(result, dict) else result}")
    return 200


def _get_sender(provider: str):
    senders = {
        'sendgrid': _send_via_sendgrid,
        'smtp': _send_via_smtp,
        'resend': _send_via_resend,
    }
    return senders[provider]


# ============================================================================
# Sending
# ============================================================================

def send_email(
    to_email: str,
    subject: str,
    html_content: str,
    from_email: Optional[str] = None,
    provider: Optional[str] = None
) -> tuple[bool, Optional[str]]:
    """
    Send an email with retry logic.

    Args:
        to_email: Recipient email address (comma-separated for multiple)
        subject: Email subject line
        html_content: HTML body content
        from_email: Sender email (defaults to FROM_EMAIL)
        provider: Provider name (defaults to select_provider())

    Returns:
        Tuple of (success: bool, error_message: Optional[str])
    """
    from_email = from_email or os.environ.get('FROM_EMAIL', 'noreply@example.com')
    provider = provider or select_provider()
    if not provider:
        return False, "No email provider configured"

    recipients = parse_recipients(to_email)
    if not recipients:
        return False, "No recipients"

    sender = _get_sender(provider)
    last_error = None

    for attempt in range(MAX_RETRIES):
        try:
            status_code = sender(recipients, subject, html_content, from_email)

            if 200 <= status_code < 300:
                logger.info(f"Email sent via {provider} to {to_email}: {status_code}")
                return True, None

            last_error = f"{provider} server error: {status_code}"
            logger.warning(f"{last_error} (attempt {attempt + 1}/{MAX_RETRIES})")

        except EmailClientError as e:
            logger.error(str(e))
            return False, str(e)

        except Exception as e:
            last_error = f"{provider} exception: {str(e)}"
            logger.error(f"{last_error} (attempt {attempt + 1}/{MAX_RETRIES})")

        # Wait before retry (if not last attempt)
        if attempt < MAX_RETRIES - 1:
            delay = RETRY_DELAYS[attempt]
            logger.info(f"Retrying in {delay} seconds...")
            time.sleep(delay)

    return False, last_error


def send_digest_email(payload: dict, html_content: Optional[str] = None) -> dict:
    """
    Email a digest if a provider, FROM_EMAIL and TO_EMAIL are configured.

    Args:
        payload: Validated digest payload dict
        html_content: Pre-rendered HTML (rendered from payload if omitted)

    Returns:
        Result dict with provider, recipients, subject, status (DeliveryStatus) and error
    """
    subject = build_subject(payload.get('as_of_date', ''))
    from_email = os.environ.get('FROM_EMAIL')
    to_email = os.environ.get('TO_EMAIL')
    provider = select_provider()
    recipients = parse_recipients(to_email)

    result = {
        'provider': provider,
        'recipients': recipients,
        'subject': subject,
        'status': DeliveryStatus.SKIPPED,
        'error': None,
    }

    if not is_provider_configured(provider) or not from_email or not recipients:
        logger.warning("Email not configured (provider credentials, FROM_EMAIL, TO_EMAIL); skipping send")
        return result

    html_content = html_content or render_digest_html(payload)
    success, error = send_email(to_email, subject, html_content, from_email=from_email, provider=provider)

    result['status'] = DeliveryStatus.SENT if success else DeliveryStatus.FAILED
    result['error'] = error
    if success:
        logger.info(f"Digest email sent: {len(payload.get('items') or [])} items to {len(recipients)} recipient(s)")
    else:
        logger.error(f"Digest email failed: {error}")
    return result
