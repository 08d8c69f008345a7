#!/usr/bin/env python3
"""
Currency Bank Entry Point

Starts the interest scheduler and the FastAPI server with settings taken
from BANK_* environment variables.
"""

import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from currency_bank.api import BankSystem, run_server
from currency_bank.config import get_config
from currency_bank.logging_config import setup_logging


if __name__ == "__main__":
    config = get_config()
    logger = setup_logging(config.log_level, log_format=config.log_format, log_file=config.log_file)
    logger.info(f"Starting Currency Bank on {config.api_host}:{config.api_port}")
    logger.info(f"Interest rule files: {config.interest_config_dir}")

    try:
        run_server(host=config.api_host, port=config.api_port, system=BankSystem(config))
    except KeyboardInterrupt:
        logger.info("Shutting down Currency Bank")
    except Exception as e:
        logger.error(f"Error starting server: {e}", exc_info=True)
        sys.exit(1)
