from src.app import AppSettings, run_bot
from src.bot.agent import HanjaStepAgent

__all__ = ["main", "HanjaStepAgent"]


def main() -> None:
    """Entry point for the application."""
    settings = AppSettings.from_env()
    run_bot(settings)


if __name__ == "__main__":
    main()
