"""Entry point for running the application with uvicorn."""

import uvicorn

from payroll_ledger.config import configure_logging, get_settings


def main() -> None:
    """Run the application."""
    settings = get_settings()
    configure_logging(settings)
    uvicorn.run(
        "payroll_ledger.api.app:create_app",
        factory=True,
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
