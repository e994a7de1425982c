"""Entrypoint: python -m eventro_chat"""
from __future__ import annotations

import uvicorn

from eventro_chat.config import settings
from eventro_chat.logging_config import configure_logging


def main() -> None:
    configure_logging(settings.LOG_LEVEL)
    uvicorn.run(
        "eventro_chat.app:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
        log_config=None,
    )


if __name__ == "__main__":
    main()
