"""Application entry point for the ID Scanner API server."""

import uvicorn

from id_scanner.utils.config import AppConfig, load_config
from id_scanner.utils.logger import setup_logging


def serve(config: AppConfig) -> None:
    """Run the FastAPI application with uvicorn."""
    setup_logging(config.log_level)
    uvicorn.run(
        "id_scanner.api.app:app",
        host=config.server.host,
        port=config.server.port,
        log_config=None,
    )


def main() -> None:
    """Start the API server with the default configuration."""
    serve(load_config())


if __name__ == "__main__":
    main()
