"""Entry point for running the application with uvicorn."""

import uvicorn

from shift_billing.api.app import create_app
from shift_billing.config import get_settings
from shift_billing.logging_config import configure_logging


def main() -> None:
    """Run the application."""
    settings = get_settings()
    configure_logging(level=settings.log_level, fmt=settings.log_format)
    uvicorn.run(
        create_app(settings),
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
    )


if __name__ == "__main__":
    main()
