"""Entry point for running the authentication server."""

import uvicorn

from authcore.config import get_config
from authcore.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


def main() -> None:
    """Entry point for running the server."""
    config = get_config()
    configure_logging(config.log_level)

    logger.info("Starting server", host=config.server_host, port=config.port)

    uvicorn.run(
        "authcore.server:app",
        host=config.server_host,
        port=config.port,
        log_config=None,  # Use our structlog configuration
        access_log=False,
    )


if __name__ == "__main__":
    main()
