import logging

import uvicorn

from bootstrap import build_core
from config import configure_logging, load_settings
from interfaces.http.webhook import create_webhook_app


logger = logging.getLogger(__name__)


def main() -> None:
    settings = load_settings()
    configure_logging(settings)

    if not settings.webhook_secret:
        logger.warning("WEBHOOK_SECRET is not set; deposit webhooks are not authenticated.")

    app = create_webhook_app(
        build_core(settings),
        secret=settings.webhook_secret,
        signature_header=settings.webhook_signature_header,
    )

    uvicorn.run(app, host=settings.webhook_host, port=settings.webhook_port)


if __name__ == "__main__":
    main()
