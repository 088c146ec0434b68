"""Typed lesson configurations.

Each lesson type owns exactly one configuration model. The models form a
tagged union on ``type`` so a stored payload always parses into the variant
that matches its lesson.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Annotated, Literal, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator

from lessonhub.db.models import Lesson
from lessonhub.errors import NotFound, ValidationError
from lessonhub.lessons.composer import extract_sentence_words, normalize_composer_text

DEFAULT_FLIPPER_PENALTY_THRESHOLD = 3


class _Config(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


def _ensure_unique_ids(items: list, label: str) -> None:
    ids = [item.id for item in items]
    if len(ids) != len(set(ids)):
        raise ValueError(f"{label} ids must be unique")


# --- Standard ---


class StandardConfig(_Config):
    type: Literal["STANDARD"] = "STANDARD"
    questions: list[str] = Field(default_factory=list)


# --- Multi choice ---


class MultiChoiceOption(_Config):
    id: str
    text: str
    is_correct: bool = False


class MultiChoiceQuestion(_Config):
    id: str
    prompt: str
    options: list[MultiChoiceOption] = Field(min_length=2)

    @model_validator(mode="after")
    def _has_correct_option(self) -> MultiChoiceQuestion:
        _ensure_unique_ids(self.options, "Option")
        if not any(option.is_correct for option in self.options):
            raise ValueError(f"Question {self.id} needs at least one correct option")
        return self

    def option_ids(self) -> set[str]:
        return {option.id for option in self.options}

    def is_correct(self, option_id: str) -> bool:
        return any(option.id == option_id and option.is_correct for option in self.options)


class MultiChoiceConfig(_Config):
    type: Literal["MULTI_CHOICE"] = "MULTI_CHOICE"
    questions: list[MultiChoiceQuestion] = Field(min_length=1)

    @model_validator(mode="after")
    def _unique_questions(self) -> MultiChoiceConfig:
        _ensure_unique_ids(self.questions, "Question")
        return self


# --- Flashcards ---


class FlashcardCard(_Config):
    id: str
    term: str
    definition: str


class FlashcardConfig(_Config):
    type: Literal["FLASHCARD"] = "FLASHCARD"
    cards: list[FlashcardCard] = Field(min_length=1)

    @model_validator(mode="after")
    def _unique_cards(self) -> FlashcardConfig:
        _ensure_unique_ids(self.cards, "Card")
        return self


# --- Composer ---


class ComposerQuestion(_Config):
    id: str
    prompt: str
    answer: str = Field(min_length=1)
    max_tries: int | None = Field(default=None, ge=1)


class ComposerConfig(_Config):
    type: Literal["COMPOSER"] = "COMPOSER"
    hidden_sentence: str = Field(min_length=1)
    questions: list[ComposerQuestion] = Field(min_length=1)
    max_tries: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _every_word_has_a_question(self) -> ComposerConfig:
        _ensure_unique_ids(self.questions, "Question")
        words = extract_sentence_words(self.hidden_sentence)
        if not words:
            raise ValueError("Hidden sentence has no words")
        answers = {normalize_composer_text(q.answer) for q in self.questions}
        missing = [word for word in words if word not in answers]
        if missing:
            raise ValueError(f"Missing questions for words: {', '.join(missing)}")
        return self

    def effective_max_tries(self, question: ComposerQuestion) -> int:
        return question.max_tries or self.max_tries


# --- Flipper ---


class FlipperTile(_Config):
    word: str
    translation: str


class FlipperConfig(_Config):
    type: Literal["FLIPPER"] = "FLIPPER"
    tiles: list[FlipperTile] = Field(min_length=1)
    attempts_before_penalty: int | None = Field(default=DEFAULT_FLIPPER_PENALTY_THRESHOLD, ge=1)

    @property
    def penalty_threshold(self) -> int:
        return max(DEFAULT_FLIPPER_PENALTY_THRESHOLD, self.attempts_before_penalty or DEFAULT_FLIPPER_PENALTY_THRESHOLD)


# --- News article ---


class NewsArticleConfig(_Config):
    type: Literal["NEWS_ARTICLE"] = "NEWS_ARTICLE"
    markdown: str
    max_word_taps: int | None = Field(default=None, ge=0)

    @property
    def tap_cap(self) -> int | None:
        """The cap in force, or None when taps are unlimited (unset or 0)."""
        if self.max_word_taps is None or self.max_word_taps <= 0:
            return None
        return self.max_word_taps


# --- ArkanING ---


class ArkaningQuestion(_Config):
    prompt: str
    answer: str


class ArkaningConfig(_Config):
    type: Literal["ARKANING"] = "ARKANING"
    points_per_correct: int = Field(default=10, ge=0)
    euros_per_correct: Decimal = Field(default=Decimal("0"), ge=0)
    lives: int = Field(default=3, ge=1)
    questions: list[ArkaningQuestion] = Field(default_factory=list)


# --- Learning session ---


class LearningSessionCard(_Config):
    title: str
    content: str


class LearningSessionConfig(_Config):
    type: Literal["LEARNING_SESSION"] = "LEARNING_SESSION"
    cards: list[LearningSessionCard] = Field(min_length=1)


# --- Lyric ---


class LyricLine(_Config):
    text: str
    start_seconds: float = Field(ge=0)
    end_seconds: float = Field(ge=0)
    hidden_words: list[str] = Field(default_factory=list)

    @field_validator("end_seconds")
    @classmethod
    def _ends_after_start(cls, value: float, info: pydantic.ValidationInfo) -> float:
        start = info.data.get("start_seconds")
        if start is not None and value < start:
            raise ValueError("end_seconds must not be before start_seconds")
        return value


class LyricConfig(_Config):
    type: Literal["LYRIC"] = "LYRIC"
    audio_url: str
    lines: list[LyricLine] = Field(min_length=1)


LessonConfig = Annotated[
    Union[
        StandardConfig,
        MultiChoiceConfig,
        FlashcardConfig,
        ComposerConfig,
        FlipperConfig,
        NewsArticleConfig,
        ArkaningConfig,
        LearningSessionConfig,
        LyricConfig,
    ],
    Field(discriminator="type"),
]

_ADAPTER: TypeAdapter[LessonConfig] = TypeAdapter(LessonConfig)


def validate_config(data: object) -> LessonConfig:
    """Parse an incoming payload. Raises ValidationError (400) on bad input."""
    try:
        return _ADAPTER.validate_python(data)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ValidationError(f"Invalid lesson configuration ({location}): {first['msg']}") from e


def dump_config(config: LessonConfig) -> dict:
    return config.model_dump(mode="json")


def parse_lesson_config(lesson: Lesson) -> LessonConfig:
    """Parse a stored lesson's configuration.

    A missing or unreadable configuration is reported as NotFound.
    """
    data = dict(lesson.config or {})
    data.setdefault("type", lesson.type)
    try:
        config = _ADAPTER.validate_python(data)
    except pydantic.ValidationError as e:
        raise NotFound("Lesson configuration not found.") from e
    if config.type != lesson.type:
        raise NotFound("Lesson configuration not found.")
    return config
