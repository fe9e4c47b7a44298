"""Run the relay with uvicorn: ``python -m relay``."""

from __future__ import annotations

import uvicorn

from relay.config import load_config


def main() -> None:
    config = load_config()
    uvicorn.run(
        "relay.main:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
