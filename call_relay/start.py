#!/usr/bin/env python3
"""
Startup script for the call relay
"""

import logging
import sys

import uvicorn

from .config import Settings

logger = logging.getLogger("call_relay")


def main():
    """Main startup function"""
    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level.upper())

    logger.info("Starting Call Relay...")
    logger.info(f"Server will run on {settings.host}:{settings.port}")
    logger.info(f"Auto-reload: {'enabled' if settings.reload else 'disabled'}")
    logger.info(f"WebSocket endpoint: ws://{settings.host}:{settings.port}/ws")
    logger.info(f"Admission: {settings.admission.value}, creator leaves: {settings.creator_leaves.value}")

    try:
        uvicorn.run(
            "call_relay.main:app",
            host=settings.host,
            port=settings.port,
            reload=settings.reload,
            log_level=settings.log_level,
        )
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except Exception as e:
        logger.error(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
