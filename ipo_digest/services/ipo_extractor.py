"""
IPO Extraction Service

Turns one news article into one structured India IPO record using Claude
with structured outputs. One API call per article, sequential, with a
short pause between calls.
"""

import json
import logging
import os
import re
import time
from typing import Optional

from anthropic import Anthropic

from ipo_digest.services.sanitizer import parse_issue_size

logger = logging.getLogger(__name__)

# Configuration
# NOTE: Model name is an Anthropic API identifier, not a date.
MODEL = os.environ.get("AI_MODEL", "claude-sonnet-4-5")
MAX_TOKENS = 1024
TEMPERATURE = 0.2
STRUCTURED_OUTPUTS_BETA = os.environ.get(
    "ANTHROPIC_STRUCTURED_OUTPUTS_BETA",
    "structured-outputs-2025-11-13"
)
MAX_RETRIES = 3
RETRY_BASE_DELAY = 2.0  # seconds
EXTRACT_DELAY = 0.2     # seconds between articles

STATUS_LABELS = ["rumor", "DRHP", "RHP", "approved"]

# JSON Schema for structured output; unknown fields are simply omitted
IPO_RECORD_SCHEMA = {
    "type": "object",
    "properties": {
        "company": {"type": "string"},
        "sector": {"type": "string"},
        "issue_size_cr": {"type": "number"},
        "status": {"type": "string", "enum": STATUS_LABELS},
        "expected_window": {"type": "string"},
        "lead_banks": {"type": "array", "items": {"type": "string"}},
        "links": {
            "type": "object",
            "properties": {
                "drhp": {"type": "string"},
                "rhp": {"type": "string"},
                "exchange_notice": {"type": "string"},
                "news": {"type": "string"}
            },
            "additionalProperties": False
        },
        "notes": {"type": "string"}
    },
    "required": ["company", "status"],
    "additionalProperties": False
}

SYSTEM_PROMPT = """You convert one article into ONE India IPO record.
Return JSON object with keys:
- company (string, required)
- sector (string, optional)
- issue_size_cr (number, optional) - issue size in crore rupees
- status ("rumor"|"DRHP"|"RHP"|"approved", required)
- expected_window (string, optional) - e.g. "Q3 FY26" or "November 2025"
- lead_banks (array<string>, optional) - book running lead managers
- links (object: drhp?, rhp?, exchange_notice?, news?)
- notes (string, optional) - one sentence of context
If unknown, omit the field. Use only the article's information."""

USER_PROMPT_TEMPLATE = """Article:
TITLE: {title}
DESC: {description}
URL: {url}
SOURCE: {source}
DATE: {published_at}

Return strictly one JSON object. Include "news" inside links."""

CODE_FENCE = re.compile(r'^```(?:json)?\s*|\s*```$', re.IGNORECASE)


class ExtractionError(Exception):
    """Claude call failed for an article."""


def get_anthropic_client() -> Anthropic:
    """Get Anthropic client with API key from environment."""
    api_key = os.environ.get('ANTHROPIC_API_KEY')
    if not api_key:
        raise ValueError("ANTHROPIC_API_KEY environment variable not set")
    return Anthropic(api_key=api_key)


def parse_llm_json(text) -> dict:
    """
    Best-effort parse of a model response into a JSON object.

    Tries strict JSON, then JSON inside Markdown code fences, then the
    outermost {...} span. Anything that is not an object yields {}.
    """
    if not text or not isinstance(text, str):
        return {}

    candidates = [text, CODE_FENCE.sub('', text.strip())]
    start, end = text.find('{'), text.rfind('}')
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, TypeError):
            continue
        if isinstance(parsed, dict):
            return parsed

    return {}


def build_user_prompt(article: dict) -> str:
    return USER_PROMPT_TEMPLATE.format(
        title=article.get('title') or '',
        description=article.get('description') or '',
        url=article.get('url') or '',
        source=article.get('source') or '',
        published_at=article.get('published_at') or '',
    )


def _call_claude(client: Anthropic, article: dict) -> str:
    """Call Claude for one article, retrying on rate limits only."""
    user_message = build_user_prompt(article)

    for attempt in range(MAX_RETRIES):
        try:
            response = client.beta.messages.create(
                model=MODEL,
                max_tokens=MAX_TOKENS,
                temperature=TEMPERATURE,
                betas=[STRUCTURED_OUTPUTS_BETA],
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": user_message}],
                output_format={
                    "type": "json_schema",
                    "schema": IPO_RECORD_SCHEMA
                }
            )
            if not response.content:
                return ''
            return response.content[0].text

        except Exception as e:
            error_str = str(e).lower()
            if ('429' in error_str or 'rate limit' in error_str) and attempt < MAX_RETRIES - 1:
                delay = RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(f"Claude rate limit, waiting {delay}s (attempt {attempt + 1}/{MAX_RETRIES})")
                time.sleep(delay)
                continue
            raise ExtractionError(f"Claude API error for {article.get('url')}: {e}") from e

    raise ExtractionError(f"Claude retries exhausted for {article.get('url')}")


def extract_item_from_article(article: dict, client: Optional[Anthropic] = None) -> Optional[dict]:
    """
    Extract one IPO record from an article.

    Args:
        article: Article dict (title, description, url, source, published_at)
        client: Optional Anthropic client (created from env if omitted)

    Returns:
        Item dict, or None when the model found no company or status

    Raises:
        ExtractionError: If the Claude call fails
    """
    client = client or get_anthropic_client()
    item = parse_llm_json(_call_claude(client, article))

    if not str(item.get('company') or '').strip() or not str(item.get('status') or '').strip():
        return None

    if isinstance(item.get('issue_size_cr'), str):
        issue_size = parse_issue_size(item['issue_size_cr'])
        if issue_size is None:
            del item['issue_size_cr']
        else:
            item['issue_size_cr'] = issue_size

    links = item.get('links') if isinstance(item.get('links'), dict) else {}
    item['links'] = {**links, 'news': links.get('news') or article.get('url')}

    return item


def extract_items(articles: list[dict]) -> tuple[list[dict], dict]:
    """
    Extract IPO records from all articles, one at a time.

    A failure on one article is logged and skipped.

    Returns:
        Tuple of (items list, stats dict)
    """
    client = get_anthropic_client()
    items = []
    stats = {
        'articles_total': len(articles),
        'items_extracted': 0,
        'articles_skipped': 0,
        'articles_failed': 0,
    }

    for idx, article in enumerate(articles):
        try:
            item = extract_item_from_article(article, client=client)
        except ExtractionError as e:
            logger.error(f"extract failed: {e}")
            stats['articles_failed'] += 1
            continue

        if item:
            items.append(item)
            stats['items_extracted'] += 1
            logger.info(f"[{idx + 1}/{len(articles)}] {item['company']} ({item['status']})")
        else:
            stats['articles_skipped'] += 1
            logger.debug(f"[{idx + 1}/{len(articles)}] no IPO record in '{article.get('title')}'")

        time.sleep(EXTRACT_DELAY)

    logger.info(
        f"Extraction complete: {stats['items_extracted']} items from {len(articles)} articles "
        f"({stats['articles_skipped']} skipped, {stats['articles_failed']} failed)"
    )
    return items, stats
