"""Flask application factory and entry point."""

from typing import Optional

import structlog
from flask import Flask

from family_ledger.api.routes import EXTENSION_KEY, bp
from family_ledger.audit import configure_logging
from family_ledger.config import get_settings
from family_ledger.orchestrator import AppComponents, create_app_components


logger = structlog.get_logger(__name__)


def create_app(components: Optional[AppComponents] = None) -> Flask:
    """
    Create the Flask application.

    Args:
        components: Prebuilt flows (tests pass an in-memory set);
                    built from settings when omitted
    """
    app = Flask(__name__)
    app.json.ensure_ascii = False
    app.json.sort_keys = False

    app.extensions[EXTENSION_KEY] = components or create_app_components()
    app.register_blueprint(bp)
    return app


def main() -> None:
    """Run the API server (and the daily scheduler when enabled)."""
    settings = get_settings().app
    configure_logging(settings.log_level)

    components = create_app_components(settings=settings)
    app = create_app(components)

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = components.create_scheduler()
        scheduler.start()

    logger.info("api_starting", host=settings.api_host, port=settings.api_port)
    try:
        # The reloader would start a second scheduler in the child process
        app.run(
            host=settings.api_host,
            port=settings.api_port,
            debug=settings.debug_mode,
            use_reloader=False,
        )
    finally:
        if scheduler is not None:
            scheduler.stop()


__all__ = ["create_app", "main"]
