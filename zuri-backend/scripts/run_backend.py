#!/usr/bin/env python3
"""
Run the payment coordinator backend.

Loads configuration (environment plus zuri-backend/.env), configures logging and
serves the API with uvicorn. The payment processor and solver loops start with
the application.

Usage:
    python scripts/run_backend.py
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import uvicorn

from api.main import create_app
from settings import ConfigurationError, configure_logging, load_settings

logger = logging.getLogger("zuri.backend")


def main() -> int:
    try:
        settings = load_settings()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    configure_logging(settings)
    logger.info(
        "Starting backend on port %d (live providers: %s, burn policy: %s, payout mode: %s)",
        settings.port, settings.live_providers, settings.burn_policy.value, settings.payout_mode.value,
    )

    app = create_app(settings)
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
