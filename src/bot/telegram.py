"""Telegram application wiring for the Hanja Step bot."""

from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    MessageHandler,
    filters,
)

from .agent import HanjaStepAgent


def build_application(bot_token: str, agent: HanjaStepAgent) -> Application:
    """Configure the Telegram application instance."""
    application = ApplicationBuilder().token(bot_token).post_init(agent.on_startup).build()
    application.add_handler(CommandHandler("start", agent.handle_start))
    application.add_handler(CommandHandler("study", agent.handle_study))
    application.add_handler(CommandHandler("quiz", agent.handle_quiz))
    application.add_handler(CommandHandler("stats", agent.handle_stats))
    application.add_handler(CommandHandler("lookup", agent.handle_lookup))
    application.add_handler(CommandHandler("export", agent.handle_export))
    application.add_handler(CommandHandler("speech", agent.handle_speech_toggle))
    application.add_handler(CallbackQueryHandler(agent.handle_select_grade, pattern=r"^grade:"))
    application.add_handler(CallbackQueryHandler(agent.handle_show_card, pattern=r"^study:show:"))
    application.add_handler(CallbackQueryHandler(agent.handle_speak, pattern=r"^study:speak:"))
    application.add_handler(
        CallbackQueryHandler(agent.handle_study_action, pattern=r"^study:(known|retry):")
    )
    application.add_handler(CallbackQueryHandler(agent.handle_quiz_answer, pattern=r"^quiz:"))
    application.add_handler(
        MessageHandler(filters.Document.FileExtension("csv"), agent.handle_import_document)
    )
    return application
