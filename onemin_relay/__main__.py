"""Run the relay with uvicorn: ``python -m onemin_relay``."""

import uvicorn

from .config_loader import get_server_address, load_config
from .logging import setup_logging
from .main import create_app


def main() -> None:
    logger = setup_logging()
    config = load_config()
    host, port = get_server_address(config)
    logger.info("Configured bind address %s:%s", host, port)
    uvicorn.run(create_app(config), host=host, port=port)


if __name__ == "__main__":
    main()
