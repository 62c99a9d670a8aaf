"""SiteDrop - service entry point."""

import logging
import os
import sys

import uvicorn

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

_LOG = logging.getLogger("sitedrop")


def main() -> None:
    """Main entry point."""
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "3000"))
    _LOG.info("Starting SiteDrop on %s:%d", host, port)
    uvicorn.run("sitedrop.main:app", host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
