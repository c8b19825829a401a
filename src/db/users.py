from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from . import User


@dataclass(slots=True)
class UserPreferences:
    """Study preferences that the bot resolves before calling the scheduler."""

    chat_id: int
    selected_grade: Optional[int]
    speech_enabled: bool


async def upsert_user(
    session: AsyncSession,
    chat_id: int,
    first_name: Optional[str],
    last_name: Optional[str],
) -> User:
    """Create or update a user record based on the latest Telegram payload."""
    user = await session.get(User, chat_id)

    if user is None:
        now = datetime.now(timezone.utc)
        user = User(
            chat_id=chat_id,
            first_name=first_name,
            last_name=last_name,
            speech_enabled=True,
            created_at=now,
            updated_at=now,
        )
        session.add(user)
        return user

    has_changes = False

    if user.first_name != first_name:
        user.first_name = first_name
        has_changes = True

    if user.last_name != last_name:
        user.last_name = last_name
        has_changes = True

    if has_changes:
        user.updated_at = datetime.now(timezone.utc)
        await session.flush()

    return user


async def get_user_preferences(session: AsyncSession, chat_id: int) -> Optional[UserPreferences]:
    user = await session.get(User, chat_id)
    if user is None:
        return None
    return UserPreferences(
        chat_id=user.chat_id,
        selected_grade=user.selected_grade,
        speech_enabled=bool(user.speech_enabled),
    )


async def set_selected_grade(session: AsyncSession, chat_id: int, grade: Optional[int]) -> User:
    """Remember which grade the learner studies; ``None`` clears the choice."""
    user = await session.get(User, chat_id)
    if user is None:
        user = await upsert_user(session, chat_id, None, None)
    user.selected_grade = grade
    user.updated_at = datetime.now(timezone.utc)
    await session.flush()
    return user


async def toggle_speech(session: AsyncSession, chat_id: int) -> bool:
    """Flip the narration preference and return the new value."""
    user = await session.get(User, chat_id)
    if user is None:
        user = await upsert_user(session, chat_id, None, None)
    user.speech_enabled = not bool(user.speech_enabled)
    user.updated_at = datetime.now(timezone.utc)
    await session.flush()
    return user.speech_enabled
