import logging

from bootstrap import build_core
from config import configure_logging, load_settings
from interfaces.telegram.handlers import create_telegram_bot


logger = logging.getLogger(__name__)


def main() -> None:
    settings = load_settings()
    configure_logging(settings)

    if not settings.telegram_token:
        raise RuntimeError("TELEGRAM_TOKEN environment variable is not set.")

    core = build_core(settings)
    recovered = core.recover_unsettled_bets()
    if recovered:
        logger.warning("Recovered %s unsettled bets on startup.", len(recovered))

    bot = create_telegram_bot(settings.telegram_token, core)
    logger.info("Telegram bot polling.")
    bot.infinity_polling()


if __name__ == "__main__":
    main()
