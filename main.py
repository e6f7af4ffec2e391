"""Run the hardened static site server under uvicorn."""
from __future__ import annotations

import uvicorn

from secure_site import configure_logging, create_app, get_settings

configure_logging()

settings = get_settings()
app = create_app(settings)


def run() -> None:
    """Serve until SIGINT/SIGTERM, letting in-flight responses finish."""

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        access_log=False,
        server_header=False,
        log_config=None,
    )


if __name__ == "__main__":
    run()
