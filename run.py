#!/usr/bin/env python3
"""
Loan Engine Entry Point

Starts the FastAPI server with the loan engine.
"""

import sys

from loan_engine.api import run_server
from loan_engine.config import get_config
from loan_engine.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, config.log_format)

    logger.info(
        f"Starting loan engine on {config.api_host}:{config.api_port} "
        f"(storage={config.storage_backend}, gateway={config.gateway_mode})"
    )

    try:
        run_server(host=config.api_host, port=config.api_port, debug=False)
    except KeyboardInterrupt:
        logger.info("Shutting down loan engine")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)
