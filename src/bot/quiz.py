"""Multiple-choice quiz generation over a grade's characters."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Protocol, Sequence

from src.db.progress import quiz_score


OPTION_COUNT = 4
DEFAULT_QUESTION_COUNT = 10


class QuizMode(str, Enum):
    MEANING = "meaning"
    READING = "reading"
    CHARACTER = "character"
    MIXED = "mixed"


QUESTION_TYPES = (QuizMode.MEANING, QuizMode.READING, QuizMode.CHARACTER)


class CharInfo(Protocol):
    char: str
    reading: str
    meaning: str


@dataclass(frozen=True, slots=True)
class QuizQuestion:
    id: str
    char: str
    type: QuizMode
    prompt: str
    options: tuple[str, ...]
    correct_answer: str


@dataclass(frozen=True, slots=True)
class QuizAnswer:
    question: QuizQuestion
    selected_answer: str

    @property
    def is_correct(self) -> bool:
        return self.selected_answer == self.question.correct_answer


@dataclass(slots=True)
class QuizResult:
    mode: QuizMode
    score: int
    total: int
    correct_count: int
    wrong_count: int
    duration_sec: int
    answers: List[QuizAnswer]
    wrong_questions: List[QuizQuestion]


def _make_options(
    correct: str,
    pool: Sequence[str],
    rng: random.Random,
    option_count: int = OPTION_COUNT,
) -> tuple[str, ...]:
    distractors = list(dict.fromkeys(value for value in pool if value != correct))
    rng.shuffle(distractors)
    options = [correct, *distractors[: option_count - 1]]
    rng.shuffle(options)
    return tuple(options)


def _create_question(
    char: CharInfo,
    all_chars: Sequence[CharInfo],
    question_type: QuizMode,
    index: int,
    rng: random.Random,
) -> QuizQuestion:
    if question_type is QuizMode.MEANING:
        prompt = f"{char.char}의 뜻(훈)은?"
        correct = char.meaning
        pool = [item.meaning for item in all_chars]
    elif question_type is QuizMode.READING:
        prompt = f"{char.char}의 음은?"
        correct = char.reading
        pool = [item.reading for item in all_chars]
    else:
        prompt = f'"{char.meaning}" 뜻을 가진 한자는?'
        correct = char.char
        pool = [item.char for item in all_chars]

    return QuizQuestion(
        id=f"{char.char}-{question_type.value}-{index}",
        char=char.char,
        type=question_type,
        prompt=prompt,
        options=_make_options(correct, pool, rng),
        correct_answer=correct,
    )


def generate_questions(
    chars: Sequence[CharInfo],
    count: int,
    mode: QuizMode,
    rng: Optional[random.Random] = None,
) -> List[QuizQuestion]:
    """Build up to ``count`` questions, each about a different character."""
    rng = rng or random.Random()
    mode = QuizMode(mode)

    sampled = rng.sample(list(chars), min(max(0, count), len(chars)))
    questions: List[QuizQuestion] = []
    for index, char in enumerate(sampled):
        question_type = rng.choice(QUESTION_TYPES) if mode is QuizMode.MIXED else mode
        questions.append(_create_question(char, chars, question_type, index, rng))
    return questions


@dataclass(slots=True)
class QuizRun:
    """Progress through one quiz; answers arrive in question order."""

    grade: int
    mode: QuizMode
    questions: List[QuizQuestion]
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    answers: List[QuizAnswer] = field(default_factory=list)

    @property
    def current(self) -> Optional[QuizQuestion]:
        if len(self.answers) < len(self.questions):
            return self.questions[len(self.answers)]
        return None

    @property
    def is_finished(self) -> bool:
        return self.current is None

    def answer(self, option_index: int) -> QuizAnswer:
        question = self.current
        if question is None:
            raise IndexError("The quiz is already finished.")
        if option_index < 0 or option_index >= len(question.options):
            raise ValueError(f"Option {option_index} does not exist.")
        answer = QuizAnswer(question=question, selected_answer=question.options[option_index])
        self.answers.append(answer)
        return answer

    def result(self, ended_at: Optional[datetime] = None) -> QuizResult:
        if ended_at is None:
            ended_at = datetime.now(timezone.utc)
        total = len(self.answers)
        correct = sum(1 for answer in self.answers if answer.is_correct)
        return QuizResult(
            mode=self.mode,
            score=quiz_score(correct, total),
            total=total,
            correct_count=correct,
            wrong_count=total - correct,
            duration_sec=max(0, int((ended_at - self.started_at).total_seconds())),
            answers=list(self.answers),
            wrong_questions=[answer.question for answer in self.answers if not answer.is_correct],
        )
