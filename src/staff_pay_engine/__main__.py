"""Entry point for running the application with uvicorn."""

import logging

import uvicorn

from staff_pay_engine.config import settings


def main() -> None:
    """Run the application."""
    logging.basicConfig(level=settings.log_level)
    uvicorn.run(
        "staff_pay_engine.api.app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    main()
