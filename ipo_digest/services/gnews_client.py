"""
GNews Fetcher Service

Fetches India business headlines and IPO searches from the GNews API.
Handles rate limits (429) with exponential backoff and server errors (5xx)
with linear backoff. Calls are sequential with a fixed pause between pages
to stay inside the free-tier rate limit.
"""

import logging
import math
import os
import random
import re
import time
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

# Configuration
GNEWS_BASE_URL = os.environ.get('GNEWS_BASE_URL', 'https://gnews.io/api/v4')
GNEWS_TIMEOUT = 30  # seconds
MAX_ARTICLES = max(5, int(os.environ.get('MAX_ARTICLES', '20')))
COUNTRY = os.environ.get('COUNTRY', 'in')
NEWS_LANG = os.environ.get('NEWS_LANG', 'en')

MAX_TRIES = 5
PAGE_SIZE_LIMIT = 10      # GNews caps `max` at 10 per page
MAX_HEADLINE_PAGES = 3
MAX_SEARCH_PAGES = 2
PAGE_DELAY = 2.5          # seconds between GNews calls, also the 429 backoff base
BACKOFF_FACTOR = 1.8
BACKOFF_JITTER = 0.4      # seconds
SERVER_ERROR_DELAY = 1.0  # seconds, multiplied by attempt number

SEARCH_QUERIES = ['India IPO', 'DRHP India']

IPO_PATTERN = re.compile(
    r'\b(ipo|drhp|rhp|public\s+issue|initial\s+public\s+offering)\b',
    re.IGNORECASE
)


class GNewsError(Exception):
    """GNews request failed permanently."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def get_gnews_api_key() -> str:
    """Get GNews API key from environment."""
    api_key = os.environ.get('GNEWS_API_KEY')
    if not api_key:
        raise ValueError("GNEWS_API_KEY environment variable not set")
    return api_key


def gnews_fetch(path: str, params: dict, tries: int = MAX_TRIES) -> dict:
    """
    GET a GNews endpoint with retry.

    Args:
        path: Endpoint path relative to the API base (e.g. 'search')
        params: Query parameters, including the token
        tries: Maximum number of attempts

    Returns:
        Parsed JSON body

    Raises:
        GNewsError: On a non-retryable status or when retries run out
    """
    url = f"{GNEWS_BASE_URL.rstrip('/')}/{path.lstrip('/')}"

    for attempt in range(tries):
        response = httpx.get(url, params=params, timeout=GNEWS_TIMEOUT)

        if response.is_success:
            return response.json()

        if response.status_code == 429:
            delay = PAGE_DELAY * (BACKOFF_FACTOR ** attempt) + random.uniform(0, BACKOFF_JITTER)
            logger.warning(f"[gnews] 429; backoff {delay:.1f}s (attempt {attempt + 1}/{tries})")
            time.sleep(delay)
            continue

        if response.status_code >= 500:
            delay = SERVER_ERROR_DELAY * (attempt + 1)
            logger.warning(f"[gnews] {response.status_code}; retry in {delay:.1f}s (attempt {attempt + 1}/{tries})")
            time.sleep(delay)
            continue

        raise GNewsError(
            f"GNews {response.status_code}: {response.text}",
            status_code=response.status_code,
            body=response.text,
        )

    raise GNewsError("GNews retries exhausted")


def _parse_article(item: dict) -> dict:
    """Map a GNews article object into our article format."""
    source = item.get('source') or {}
    return {
        'title': item.get('title'),
        'description': item.get('description'),
        'url': item.get('url'),
        'source': source.get('name') if isinstance(source, dict) else None,
        'published_at': item.get('publishedAt'),
    }


def _page_params(page: int, per_page: int) -> dict:
    return {
        'lang': NEWS_LANG,
        'country': COUNTRY,
        'max': str(min(per_page, PAGE_SIZE_LIMIT)),
        'page': str(page),
        'token': get_gnews_api_key(),
    }


def fetch_top_headlines(page: int = 1, per_page: int = PAGE_SIZE_LIMIT) -> list[dict]:
    """
    Fetch one page of business top headlines.

    Returns:
        List of article dicts with keys: title, description, url, source, published_at
    """
    params = {'topic': 'business', **_page_params(page, per_page)}
    data = gnews_fetch('top-headlines', params)
    return [_parse_article(item) for item in data.get('articles') or []]


def fetch_search(query: str, page: int = 1, per_page: int = PAGE_SIZE_LIMIT) -> list[dict]:
    """Fetch one page of search results for a query."""
    params = {'q': query, **_page_params(page, per_page)}
    data = gnews_fetch('search', params)
    return [_parse_article(item) for item in data.get('articles') or []]


def is_ipo_related(article: dict) -> bool:
    text = f"{article.get('title') or ''} {article.get('description') or ''}"
    return bool(IPO_PATTERN.search(text))


def deduplicate_by_url(articles: list[dict]) -> tuple[list[dict], int]:
    """
    Deduplicate articles by URL, keeping the first occurrence.

    Articles without a URL are dropped (and not counted as duplicates).

    Returns:
        Tuple of (deduplicated articles, duplicate count)
    """
    seen_urls = set()
    unique_articles = []
    duplicates = 0

    for article in articles:
        url = (article.get('url') or '').strip()
        if not url:
            continue
        if url in seen_urls:
            duplicates += 1
            logger.debug(f"Duplicate URL skipped: {url}")
            continue
        seen_urls.add(url)
        unique_articles.append(article)

    return unique_articles, duplicates


def get_articles(max_articles: Optional[int] = None) -> list[dict]:
    """
    Collect IPO-related articles.

    Top headlines are fetched first and filtered by the IPO pattern; if
    that yields fewer than max_articles, the IPO search queries fill the
    gap (search results are already on-topic and are not filtered).

    Args:
        max_articles: Upper bound on returned articles (defaults to MAX_ARTICLES)

    Returns:
        Deduplicated article dicts, at most max_articles long
    """
    max_articles = max_articles or MAX_ARTICLES
    per_page = min(PAGE_SIZE_LIMIT, max_articles)
    headline_pages = min(MAX_HEADLINE_PAGES, math.ceil(max_articles / per_page))

    articles = []
    for page in range(1, headline_pages + 1):
        articles.extend(fetch_top_headlines(page, per_page))
        time.sleep(PAGE_DELAY)

    headline_count = len(articles)
    articles = [a for a in articles if is_ipo_related(a)]
    logger.info(f"Top headlines: {len(articles)}/{headline_count} IPO-related")

    if len(articles) < max_articles:
        needed = max_articles - len(articles)
        pages_needed = min(MAX_SEARCH_PAGES, math.ceil(needed / per_page))
        for query in SEARCH_QUERIES:
            for page in range(1, pages_needed + 1):
                results = fetch_search(query, page, per_page)
                logger.info(f"Search '{query}' page {page}: {len(results)} articles")
                articles.extend(results)
                time.sleep(PAGE_DELAY)

    unique_articles, duplicates = deduplicate_by_url(articles)
    logger.info(f"Deduplication: {len(articles)} -> {len(unique_articles)} ({duplicates} duplicates removed)")

    return unique_articles[:max_articles]
