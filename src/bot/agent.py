"""Telegram handlers for the Hanja Step study bot."""

from __future__ import annotations

import logging
import random
from contextlib import suppress
from datetime import datetime, timezone, tzinfo
from html import escape
from typing import Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Message, Update
from telegram.constants import ParseMode
from telegram.ext import Application, ContextTypes

from src.bot.quiz import (
    DEFAULT_QUESTION_COUNT,
    QuizMode,
    QuizQuestion,
    QuizResult,
    QuizRun,
    generate_questions,
)
from src.db import HanjaChar
from src.db.learning_state import (
    LearningStateImportError,
    build_learning_state_csv,
    import_learning_state_csv,
)
from src.db.progress import (
    DEFAULT_MAX_ITEMS,
    DEFAULT_NEW_LIMIT,
    DashboardStats,
    ReviewListItem,
    apply_study_action,
    get_chars_by_grade,
    get_dashboard_stats,
    get_study_queue,
    get_upcoming_reviews,
    lookup_char,
    save_quiz_outcome,
)
from src.db.seed import SUPPORTED_GRADES, ensure_grade_progress, seed_base_data
from src.db.users import get_user_preferences, set_selected_grade, toggle_speech, upsert_user
from src.services.analytics import EventTracker
from src.services.narration import Narrator
from src.srs import Outcome, QueueEntry, StudyQueue
from src.srs.dates import learner_timezone


LOGGER = logging.getLogger(__name__)

MAX_IMPORT_BYTES = 1024 * 1024


class HanjaStepAgent:
    """Runs study sessions and quizzes for Telegram learners.

    The selected grade is read from the learner's stored preferences and passed
    explicitly into every storage and scheduling call, together with the current
    time in the learner's timezone.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        narrator: Optional[Narrator] = None,
        tracker: Optional[EventTracker] = None,
        new_item_limit: int = DEFAULT_NEW_LIMIT,
        max_queue_items: int = DEFAULT_MAX_ITEMS,
        quiz_question_count: int = DEFAULT_QUESTION_COUNT,
        rng: Optional[random.Random] = None,
        learner_tz: Optional[tzinfo] = None,
    ) -> None:
        self._session_factory = session_factory
        self._narrator = narrator
        self._tracker = tracker or EventTracker(enabled=False)
        self._new_item_limit = new_item_limit
        self._max_queue_items = max_queue_items
        self._quiz_question_count = quiz_question_count
        self._rng = rng or random.Random()
        self._learner_tz = learner_tz or learner_timezone()
        self._study_queues: Dict[int, StudyQueue] = {}
        self._quizzes: Dict[int, QuizRun] = {}

    def _now(self) -> datetime:
        """Current time on the learner's calendar; every scheduling call uses it."""
        return datetime.now(self._learner_tz)

    async def on_startup(self, application: Application) -> None:
        """Seed the character catalogue before the bot starts polling."""
        async with self._session_factory() as session:
            async with session.begin():
                await seed_base_data(session)

    async def _store_user_profile(
        self,
        chat_id: int,
        first_name: Optional[str],
        last_name: Optional[str],
    ) -> None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await upsert_user(session, chat_id, first_name, last_name)
        except Exception:  # pragma: no cover - guardrail against database issues
            LOGGER.exception("Failed to upsert Telegram user record for chat %s.", chat_id)

    async def _selected_grade(self, chat_id: int) -> Optional[int]:
        async with self._session_factory() as session:
            preferences = await get_user_preferences(session, chat_id)
        if preferences is None:
            return None
        return preferences.selected_grade

    async def _speech_enabled(self, chat_id: int) -> bool:
        if self._narrator is None:
            return False
        async with self._session_factory() as session:
            preferences = await get_user_preferences(session, chat_id)
        return preferences is None or preferences.speech_enabled

    @staticmethod
    def _build_grade_markup() -> InlineKeyboardMarkup:
        buttons = [
            InlineKeyboardButton(f"{grade}급", callback_data=f"grade:{grade}")
            for grade in SUPPORTED_GRADES
        ]
        return InlineKeyboardMarkup([buttons[:4], buttons[4:]])

    async def _ask_for_grade(self, message: Message) -> None:
        await message.reply_text(
            "먼저 공부할 급수를 골라 주세요.",
            reply_markup=self._build_grade_markup(),
        )

    async def handle_start(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Greet the learner and offer the grade keyboard."""
        if not update.message:
            return

        chat = update.effective_chat
        if chat is None:
            return

        user = update.effective_user
        if user is not None:
            await self._store_user_profile(
                chat.id,
                getattr(user, "first_name", None),
                getattr(user, "last_name", None),
            )

        greeting = (
            "<b>한자 스텝</b>에 오신 것을 환영합니다!\n"
            "/study 오늘의 학습 카드\n"
            "/quiz 객관식 퀴즈 (meaning, reading, character, mixed)\n"
            "/stats 학습 현황\n"
            "/lookup 한자 찾기\n"
            "/export 학습 기록 내보내기 (CSV 파일을 보내면 가져오기)\n"
            "/speech 음성 읽기 켜기/끄기"
        )
        await update.message.reply_text(
            greeting,
            parse_mode=ParseMode.HTML,
            reply_markup=self._build_grade_markup(),
        )

    async def handle_select_grade(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        query = update.callback_query
        if query is None or query.data is None:
            return

        try:
            grade = int(query.data.split(":", 1)[1])
        except (IndexError, ValueError):
            await query.answer("잘못된 요청입니다.", show_alert=True)
            return

        if grade not in SUPPORTED_GRADES:
            await query.answer("지원하지 않는 급수입니다.", show_alert=True)
            return

        message = query.message
        if message is None or message.chat is None:
            await query.answer()
            return

        chat_id = message.chat.id
        now = self._now()
        async with self._session_factory() as session:
            async with session.begin():
                await set_selected_grade(session, chat_id, grade)
                await ensure_grade_progress(session, chat_id, grade, today=now)
                stats = await get_dashboard_stats(session, chat_id, grade, today=now)

        self._study_queues.pop(chat_id, None)
        self._quizzes.pop(chat_id, None)
        self._tracker.track("grade_selected", {"chat_id": chat_id, "grade": grade})

        await query.answer()
        with suppress(Exception):
            await query.edit_message_reply_markup(reply_markup=None)

        if stats.total == 0:
            await message.reply_text(f"{grade}급 한자는 아직 준비 중입니다.")
            return

        await message.reply_text(
            self._format_dashboard(grade, stats, []),
            parse_mode=ParseMode.HTML,
        )

    async def handle_study(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Build today's queue for the selected grade and show the first card."""
        message = update.message
        chat = update.effective_chat
        if message is None or chat is None:
            return

        grade = await self._selected_grade(chat.id)
        if grade is None:
            await self._ask_for_grade(message)
            return

        now = self._now()
        async with self._session_factory() as session:
            async with session.begin():
                await ensure_grade_progress(session, chat.id, grade, today=now)
            cards = await get_study_queue(
                session,
                chat.id,
                grade,
                new_limit=self._new_item_limit,
                max_items=self._max_queue_items,
                today=now,
            )

        if not cards:
            self._study_queues.pop(chat.id, None)
            await message.reply_text("오늘 학습할 카드가 없습니다. 내일 다시 만나요!")
            return

        queue = StudyQueue(QueueEntry(card.progress, card.char) for card in cards)
        self._study_queues[chat.id] = queue
        self._tracker.track("study_started", {"chat_id": chat.id, "grade": grade, "size": len(queue)})

        await message.reply_text(f"오늘의 카드 {len(queue)}장을 시작합니다.")
        await self._present_card(message, queue)

    @staticmethod
    def _build_reveal_keyboard(char: str, with_speech: bool) -> InlineKeyboardMarkup:
        row = [InlineKeyboardButton("뜻·음 보기", callback_data=f"study:show:{char}")]
        if with_speech:
            row.append(InlineKeyboardButton("🔊 듣기", callback_data=f"study:speak:{char}"))
        return InlineKeyboardMarkup([row])

    @staticmethod
    def _build_outcome_keyboard(char: str) -> InlineKeyboardMarkup:
        return InlineKeyboardMarkup(
            [
                [
                    InlineKeyboardButton("알아요", callback_data=f"study:known:{char}"),
                    InlineKeyboardButton("다시", callback_data=f"study:retry:{char}"),
                ]
            ]
        )

    async def _present_card(self, message: Message, queue: StudyQueue) -> None:
        entry = queue.current
        if entry is None:
            return
        char_info: HanjaChar = entry.payload
        await message.reply_text(
            self._format_card_question(char_info, len(queue)),
            parse_mode=ParseMode.HTML,
            reply_markup=self._build_reveal_keyboard(
                char_info.char, await self._speech_enabled(message.chat.id)
            ),
        )

    def _front_entry(self, chat_id: int, char: str) -> Optional[QueueEntry]:
        queue = self._study_queues.get(chat_id)
        entry = queue.current if queue is not None else None
        if entry is None or entry.record.item_id != char:
            return None
        return entry

    @staticmethod
    def _parse_study_callback(data: Optional[str]) -> Optional[tuple[str, str]]:
        if not data:
            return None
        parts = data.split(":", 2)
        if len(parts) != 3 or parts[0] != "study" or not parts[2]:
            return None
        return parts[1], parts[2]

    async def handle_show_card(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        query = update.callback_query
        if query is None:
            return

        parsed = self._parse_study_callback(query.data)
        message = query.message
        if parsed is None or message is None or message.chat is None:
            await query.answer()
            return

        chat_id = message.chat.id
        entry = self._front_entry(chat_id, parsed[1])
        if entry is None:
            await query.answer("이미 지나간 카드입니다. /study 로 다시 시작하세요.", show_alert=True)
            return

        char_info: HanjaChar = entry.payload
        text = self._format_card_answer(char_info)
        markup = self._build_outcome_keyboard(char_info.char)
        try:
            await query.edit_message_text(text, parse_mode=ParseMode.HTML, reply_markup=markup)
        except Exception:  # pragma: no cover - best effort update
            LOGGER.debug("Could not reveal study card.", exc_info=True)
            await message.reply_text(text, parse_mode=ParseMode.HTML, reply_markup=markup)

        await query.answer()

        if await self._speech_enabled(chat_id):
            await self._send_narration(message, char_info)

    async def handle_speak(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        query = update.callback_query
        if query is None:
            return

        parsed = self._parse_study_callback(query.data)
        message = query.message
        if parsed is None or message is None or message.chat is None:
            await query.answer()
            return

        if self._narrator is None:
            await query.answer("음성 읽기를 사용할 수 없습니다.", show_alert=True)
            return

        if not await self._speech_enabled(message.chat.id):
            await query.answer("음성 읽기가 꺼져 있습니다. /speech 로 켤 수 있습니다.", show_alert=True)
            return

        entry = self._front_entry(message.chat.id, parsed[1])
        if entry is None:
            await query.answer("이미 지나간 카드입니다.", show_alert=True)
            return

        await query.answer()
        await self._send_narration(message, entry.payload)

    async def _send_narration(self, message: Message, char_info: HanjaChar) -> None:
        if self._narrator is None:
            return
        try:
            audio = await self._narrator.narrate_char(char_info.meaning, char_info.reading)
        except Exception:
            LOGGER.exception("Narration failed for %s.", char_info.char)
            return
        await message.reply_voice(voice=audio)

    async def handle_study_action(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        """Persist a known/retry outcome and move on to the next card."""
        query = update.callback_query
        if query is None:
            return

        parsed = self._parse_study_callback(query.data)
        message = query.message
        if parsed is None or message is None or message.chat is None:
            await query.answer()
            return

        action, char = parsed
        try:
            outcome = Outcome(action)
        except ValueError:
            await query.answer("잘못된 요청입니다.", show_alert=True)
            return

        chat_id = message.chat.id
        entry = self._front_entry(chat_id, char)
        if entry is None:
            await query.answer("이미 지나간 카드입니다. /study 로 다시 시작하세요.", show_alert=True)
            return

        async with self._session_factory() as session:
            async with session.begin():
                updated = await apply_study_action(
                    session,
                    chat_id,
                    char,
                    entry.record.collection_id,
                    outcome,
                    today=self._now(),
                )

        if updated is None:
            self._study_queues.pop(chat_id, None)
            await query.answer("학습 기록을 찾을 수 없습니다.", show_alert=True)
            return

        queue = self._study_queues[chat_id]
        queue.advance(updated, outcome)
        self._tracker.track(
            "study_action",
            {"chat_id": chat_id, "char": char, "action": outcome.value, "state": updated.state.value},
        )

        await query.answer()
        with suppress(Exception):
            await query.edit_message_reply_markup(reply_markup=None)

        if queue.is_empty:
            self._study_queues.pop(chat_id, None)
            self._tracker.track(
                "study_completed",
                {"chat_id": chat_id, "known": queue.known_count, "retry": queue.retry_count},
            )
            await message.reply_text(
                f"오늘의 학습을 마쳤습니다! 알아요 {queue.known_count}번, 다시 {queue.retry_count}번."
            )
            return

        await self._present_card(message, queue)

    async def handle_speech_toggle(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        message = update.message
        chat = update.effective_chat
        if message is None or chat is None:
            return

        async with self._session_factory() as session:
            async with session.begin():
                enabled = await toggle_speech(session, chat.id)

        if self._narrator is None:
            await message.reply_text("이 봇에서는 음성 읽기가 설정되어 있지 않습니다.")
            return
        await message.reply_text("음성 읽기를 켰습니다." if enabled else "음성 읽기를 껐습니다.")

    async def handle_quiz(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        message = update.message
        chat = update.effective_chat
        if message is None or chat is None:
            return

        args: Sequence[str] = getattr(context, "args", None) or []
        try:
            mode = QuizMode(args[0].lower()) if args else QuizMode.MIXED
        except ValueError:
            await message.reply_text("퀴즈 유형은 meaning, reading, character, mixed 중 하나입니다.")
            return

        grade = await self._selected_grade(chat.id)
        if grade is None:
            await self._ask_for_grade(message)
            return

        async with self._session_factory() as session:
            async with session.begin():
                await ensure_grade_progress(session, chat.id, grade, today=self._now())
            chars = await get_chars_by_grade(session, grade)

        questions = generate_questions(chars, self._quiz_question_count, mode, self._rng)
        if not questions:
            await message.reply_text(f"{grade}급 한자는 아직 준비 중입니다.")
            return

        run = QuizRun(grade=grade, mode=mode, questions=questions)
        self._quizzes[chat.id] = run
        self._tracker.track("quiz_started", {"chat_id": chat.id, "grade": grade, "mode": mode.value})
        await self._present_question(message, run)

    async def _present_question(self, message: Message, run: QuizRun) -> None:
        question = run.current
        if question is None:
            return
        index = len(run.answers)
        buttons = [
            [InlineKeyboardButton(option, callback_data=f"quiz:{index}:{option_index}")]
            for option_index, option in enumerate(question.options)
        ]
        await message.reply_text(
            f"<b>문제 {index + 1}/{len(run.questions)}</b>\n{escape(question.prompt, quote=False)}",
            parse_mode=ParseMode.HTML,
            reply_markup=InlineKeyboardMarkup(buttons),
        )

    async def handle_quiz_answer(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        query = update.callback_query
        if query is None or query.data is None:
            return

        message = query.message
        if message is None or message.chat is None:
            await query.answer()
            return

        parts = query.data.split(":")
        try:
            question_index = int(parts[1])
            option_index = int(parts[2])
        except (IndexError, ValueError):
            await query.answer("잘못된 요청입니다.", show_alert=True)
            return

        chat_id = message.chat.id
        run = self._quizzes.get(chat_id)
        if run is None or run.is_finished or question_index != len(run.answers):
            await query.answer("이미 끝난 문제입니다.", show_alert=True)
            return

        try:
            answer = run.answer(option_index)
        except ValueError:
            await query.answer("잘못된 선택입니다.", show_alert=True)
            return

        await query.answer("정답!" if answer.is_correct else f"오답: {answer.question.correct_answer}")
        with suppress(Exception):
            await query.edit_message_reply_markup(reply_markup=None)

        if not run.is_finished:
            await self._present_question(message, run)
            return

        self._quizzes.pop(chat_id, None)
        now = self._now()
        ended_at = now.astimezone(timezone.utc)
        result = run.result(ended_at)
        async with self._session_factory() as session:
            async with session.begin():
                await save_quiz_outcome(
                    session,
                    chat_id,
                    run.grade,
                    run.mode.value,
                    run.started_at,
                    ended_at,
                    [(item.question.char, item.is_correct) for item in run.answers],
                    today=now,
                )

        self._tracker.track(
            "quiz_completed",
            {"chat_id": chat_id, "score": result.score, "total": result.total},
        )
        await message.reply_text(self._format_quiz_result(result), parse_mode=ParseMode.HTML)

    async def handle_stats(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        message = update.message
        chat = update.effective_chat
        if message is None or chat is None:
            return

        grade = await self._selected_grade(chat.id)
        if grade is None:
            await self._ask_for_grade(message)
            return

        async with self._session_factory() as session:
            now = self._now()
            stats = await get_dashboard_stats(session, chat.id, grade, today=now)
            upcoming = await get_upcoming_reviews(session, chat.id, grade, today=now)

        await message.reply_text(
            self._format_dashboard(grade, stats, upcoming),
            parse_mode=ParseMode.HTML,
        )

    async def handle_lookup(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        message = update.message
        if message is None:
            return

        query_text = " ".join(getattr(context, "args", None) or [])
        if not query_text.strip():
            await message.reply_text("찾을 한자를 함께 보내 주세요. 예: /lookup 山")
            return

        async with self._session_factory() as session:
            found = await lookup_char(session, query_text)

        if found is None:
            await message.reply_text("등록된 한자가 아닙니다.")
            return

        await message.reply_text(self._format_card_answer(found), parse_mode=ParseMode.HTML)

    async def handle_export(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        message = update.message
        chat = update.effective_chat
        if message is None or chat is None:
            return

        async with self._session_factory() as session:
            export = await build_learning_state_csv(session, chat.id, now=self._now())

        self._tracker.track("learning_state_exported", {"chat_id": chat.id, "rows": export.row_count})
        await message.reply_document(
            document=export.content,
            filename=export.file_name,
            caption=f"학습 기록 {export.row_count}건을 내보냈습니다.",
        )

    async def handle_import_document(
        self,
        update: Update,
        context: ContextTypes.DEFAULT_TYPE,
    ) -> None:
        message = update.message
        chat = update.effective_chat
        if message is None or chat is None or message.document is None:
            return

        document = message.document
        if document.file_size and document.file_size > MAX_IMPORT_BYTES:
            await message.reply_text("파일이 너무 큽니다.")
            return

        telegram_file = await document.get_file()
        raw = await telegram_file.download_as_bytearray()
        try:
            text = bytes(raw).decode("utf-8-sig")
        except UnicodeDecodeError:
            await message.reply_text("UTF-8 CSV 파일만 가져올 수 있습니다.")
            return

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    result = await import_learning_state_csv(
                        session, chat.id, text, today=self._now()
                    )
        except LearningStateImportError as exc:
            await message.reply_text(f"가져오기에 실패했습니다: {exc}")
            return

        self._study_queues.pop(chat.id, None)
        self._tracker.track(
            "learning_state_imported",
            {"chat_id": chat.id, "imported": result.imported_count, "skipped": result.skipped_count},
        )
        await message.reply_text(
            f"전체 {result.total_rows}행 중 {result.imported_count}행을 가져왔습니다"
            f" (건너뜀 {result.skipped_count}행)."
        )

    @staticmethod
    def _format_card_question(char_info: HanjaChar, remaining: int) -> str:
        return "\n".join(
            [
                f"<b>{escape(char_info.char, quote=False)}</b>",
                "",
                f"<i>남은 카드: {remaining}</i>",
                "<i>뜻과 음을 떠올린 뒤 «뜻·음 보기»를 누르세요.</i>",
            ]
        )

    @staticmethod
    def _format_card_answer(char_info: HanjaChar) -> str:
        lines = [
            f"<b>{escape(char_info.char, quote=False)}</b> {escape(char_info.meaning, quote=False)} "
            f"{escape(char_info.reading, quote=False)}",
            f"<i>{char_info.grade}급</i>",
        ]
        if char_info.examples:
            lines.append("")
            lines.extend(f"• {escape(example, quote=False)}" for example in char_info.examples)
        return "\n".join(lines)

    @staticmethod
    def _describe_days(days: int) -> str:
        if days < 0:
            return f"{-days}일 지남"
        if days == 0:
            return "오늘"
        if days == 1:
            return "내일"
        return f"{days}일 후"

    def _format_dashboard(
        self,
        grade: int,
        stats: DashboardStats,
        upcoming: List[ReviewListItem],
    ) -> str:
        lines = [
            f"📊 <b>{grade}급 학습 현황</b>",
            f"전체: {stats.total}",
            f"복습 대기: {stats.review_due}",
            f"새 한자: {stats.new_count}",
            f"완전히 익힘: {stats.mastered}",
        ]
        if upcoming:
            lines.append("")
            lines.append("<b>다가오는 복습</b>")
            lines.extend(
                f"{escape(item.char, quote=False)} · {item.due_date} ({self._describe_days(item.days_until)})"
                for item in upcoming
            )
        return "\n".join(lines)

    @staticmethod
    def _format_quiz_result(result: QuizResult) -> str:
        lines = [
            "<b>퀴즈 결과</b>",
            f"점수: {result.score}점 ({result.correct_count}/{result.total})",
            f"걸린 시간: {result.duration_sec}초",
        ]
        wrong: List[QuizQuestion] = result.wrong_questions
        if wrong:
            lines.append("")
            lines.append("<b>틀린 문제</b>")
            lines.extend(
                f"• {escape(question.prompt, quote=False)} → {escape(question.correct_answer, quote=False)}"
                for question in wrong
            )
        return "\n".join(lines)
