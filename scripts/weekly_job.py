#!/usr/bin/env python
"""
Weekly IPO Digest Job

Runs weekly via cron to:
1. Fetch IPO news from GNews
2. Extract IPO records with Claude
3. Merge and validate records
4. POST the digest to the delivery server

Usage:
    python scripts/weekly_job.py

Exit codes:
    0 - Success
    1 - Failure
    2 - Missing configuration
"""

import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

from ipo_digest.services.agent import run_weekly_digest
from ipo_digest.services.webhook import WebhookError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger('weekly_job')

REQUIRED_VARS = [
    ('WEBHOOK_URL', 'SHARED_SECRET'),
    ('ANTHROPIC_API_KEY',),
    ('GNEWS_API_KEY',),
]


def missing_config() -> list[str]:
    """Return the names of required environment variables that are unset."""
    missing = []
    for group in REQUIRED_VARS:
        if not all(os.environ.get(var) for var in group):
            missing.append(' or '.join(group))
    return missing


def main():
    """Main entry point for the weekly digest job."""
    missing = missing_config()
    if missing:
        for group in missing:
            logger.error(f"Missing {group}")
        return 2

    logger.info("=" * 60)
    logger.info("WEEKLY IPO DIGEST JOB STARTING")
    logger.info("=" * 60)

    try:
        result = run_weekly_digest()

        # Log summary
        logger.info("=" * 60)
        logger.info("JOB SUMMARY")
        logger.info("=" * 60)
        logger.info(f"As of:             {result.get('as_of_date')}")
        logger.info(f"Articles:          {result.get('articles', 0)}")
        logger.info(f"Extracted:         {result.get('extracted', 0)}")
        logger.info(f"Extract failures:  {result.get('extract_failed', 0)}")
        logger.info(f"Companies:         {result.get('merged', 0)}")
        logger.info(f"Dropped invalid:   {result.get('dropped', 0)}")
        logger.info(f"Changes:           {result.get('changes')}")
        logger.info(f"Duration:          {result.get('duration_seconds', 0):.1f}s")

        if result.get('errors'):
            logger.warning(f"Errors: {result['errors']}")

        logger.info(f"Sent {result.get('sent', 0)} items to webhook OK")
        return 0

    except WebhookError as e:
        logger.error(f"Webhook POST failed: {e.status_code} {e.body}")
        return 1

    except Exception as e:
        logger.error(f"Agent error: {e}", exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())
