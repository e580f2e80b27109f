#!/usr/bin/env python
"""
Delivery server (development)

Usage:
    python scripts/serve.py

In production run the WSGI app instead, e.g. `flask --app ipo_digest run`
behind a process manager.
"""

import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv
load_dotenv()

from ipo_digest import create_app

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger('serve')


def main():
    port = int(os.environ.get('PORT', '8080'))
    app = create_app()
    logger.info(f"Listening on http://localhost:{port}")
    app.run(host='0.0.0.0', port=port, debug=os.environ.get('FLASK_DEBUG', 'False') == 'True')


if __name__ == '__main__':
    main()
