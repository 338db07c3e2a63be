import uvicorn

from lobby.core.config import get_settings
from lobby.core.logging_config import get_logger, setup_logging


def run() -> None:
    settings = get_settings()
    # Setup logging before importing app
    setup_logging(log_level=settings.log_level, log_file=settings.log_file)
    logger = get_logger(__name__)

    from lobby.main import app

    logger.info(f"Multiplayer lobby listening on {settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
