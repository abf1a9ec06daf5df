"""Command-line entry point: serve the app with uvicorn."""

import logging

import uvicorn

from id100.config import settings


def main() -> None:
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    uvicorn.run(
        "id100.main:app",
        host=settings.host,
        port=settings.port,
        proxy_headers=True,
        log_level="debug" if settings.debug else "info",
    )


if __name__ == "__main__":
    main()
