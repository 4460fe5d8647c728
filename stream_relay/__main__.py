"""Run the relay gateway: ``python -m stream_relay``."""

import uvicorn

from stream_relay.gateway.app import create_app
from stream_relay.settings import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        create_app(settings),
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
