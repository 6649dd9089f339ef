#!/usr/bin/env python3
"""
Server startup wrapper for the membership service.
"""
import logging
import os
import sys

import uvicorn


def main() -> None:
    logger = logging.getLogger("membership")
    port = int(os.getenv("PORT", "8000"))
    try:
        uvicorn.run(
            "membership.main:app",
            host="0.0.0.0",
            port=port,
            reload=False,
            log_level="info",
            access_log=True,
        )
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        sys.exit(0)


if __name__ == "__main__":
    main()
