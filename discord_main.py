import logging

from bootstrap import build_core
from config import configure_logging, load_settings
from interfaces.discord.handlers import create_discord_bot


logger = logging.getLogger(__name__)


def main() -> None:
    settings = load_settings()
    configure_logging(settings)

    if not settings.discord_token:
        raise RuntimeError("DISCORD_TOKEN environment variable is not set.")

    core = build_core(settings)
    recovered = core.recover_unsettled_bets()
    if recovered:
        logger.warning("Recovered %s unsettled bets on startup.", len(recovered))

    bot = create_discord_bot(core)
    bot.run(settings.discord_token, log_handler=None)


if __name__ == "__main__":
    main()
