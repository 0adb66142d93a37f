# flowbot/__main__.py
"""Run the HTTP application: python -m flowbot"""
import uvicorn

from flowbot.config import settings


if __name__ == "__main__":
    uvicorn.run(
        "flowbot.transport.http_app:app",
        host=settings.http_host,
        port=settings.http_port,
        log_level=settings.log_level.lower(),
        access_log=not settings.is_production,
        server_header=False,
        date_header=False,
    )
