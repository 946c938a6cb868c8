"""Entry point for python -m liveblog"""
import logging
import os

import uvicorn

from .main import app

# Configure logging level from environment variable
log_level = getattr(logging, os.environ.get('LOG_LEVEL', 'INFO').upper(), logging.INFO)
logging.basicConfig(level=log_level)
logger = logging.getLogger(__name__)

if __name__ == "__main__":
    port = int(os.getenv("PORT", 8080))
    production = os.getenv("PRODUCTION", "false").lower() == "true"

    if production:
        logger.info(f"Starting production server on 0.0.0.0:{port}")
        uvicorn.run(app, host="0.0.0.0", port=port,
                    log_level="info", access_log=False,
                    server_header=False, date_header=False)
    else:
        logger.info(f"Starting development server on 0.0.0.0:{port}")
        uvicorn.run("liveblog.main:app", host="0.0.0.0", port=port,
                    reload=True, reload_dirs=["liveblog"],
                    reload_excludes=["data/*", "*.db", "__pycache__/*"])
