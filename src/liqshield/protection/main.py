"""
Protection service entry point.
"""

import uvicorn

from ..config import settings
from ..logging import setup_logging
from .api import app


def main():
    """Run the Protection service."""
    setup_logging("liqshield-protection")

    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.protection.service_port,
        log_level="info"
    )


if __name__ == "__main__":
    main()
