"""Per-lesson-type submission handlers.

Each handler validates its payload against the lesson's configuration before
touching the assignment. Nothing is written until every check has passed.
"""

from __future__ import annotations

from lessonhub.assignments.lifecycle import ensure_submittable, transition
from lessonhub.db.models import AssignmentStatus, LyricLessonAttempt
from lessonhub.errors import ValidationError
from lessonhub.lessons.catalog import ComposerConfig, FlashcardConfig, MultiChoiceConfig, StandardConfig
from lessonhub.lessons.composer import extract_sentence_words, normalize_composer_text
from lessonhub.submissions.base import SubmissionContext, complete
from lessonhub.submissions.schemas import (
    ArkaningSubmission,
    ComposerSubmission,
    FlashcardSubmission,
    FlipperSubmission,
    LearningSessionSubmission,
    LyricSubmission,
    MultiChoiceSubmission,
    NewsArticleSubmission,
    StandardSubmission,
)

GAME_COMPLETED_SCORE = 10.0
GAME_LOST_SCORE = -1.0


async def submit_standard(ctx: SubmissionContext, payload: StandardSubmission) -> None:
    config: StandardConfig = ctx.config  # type: ignore[assignment]
    if config.questions and len(payload.answers) != len(config.questions):
        raise ValidationError(f"Expected {len(config.questions)} answers, got {len(payload.answers)}.")
    if not payload.answers or any(not answer.strip() for answer in payload.answers):
        raise ValidationError("Please answer every question before submitting.")
    complete(ctx, answers=payload.answers)
    ctx.assignment.student_notes = payload.student_notes


async def submit_multi_choice(ctx: SubmissionContext, payload: MultiChoiceSubmission) -> None:
    config: MultiChoiceConfig = ctx.config  # type: ignore[assignment]
    recorded = []
    for question in config.questions:
        option_id = payload.answers.get(question.id)
        if option_id is None:
            raise ValidationError("Please answer every question before submitting.")
        if option_id not in question.option_ids():
            raise ValidationError(f"Unknown option {option_id} for question {question.id}.")
        recorded.append({
            "questionId": question.id,
            "optionId": option_id,
            "isCorrect": question.is_correct(option_id),
        })
    known = {q.id for q in config.questions}
    unknown = sorted(set(payload.answers) - known)
    if unknown:
        raise ValidationError(f"Unknown questions: {', '.join(unknown)}.")
    complete(ctx, answers=recorded)


async def submit_flashcard(ctx: SubmissionContext, payload: FlashcardSubmission) -> None:
    config: FlashcardConfig = ctx.config  # type: ignore[assignment]
    known = {card.id for card in config.cards}
    unknown = sorted(set(payload.results) - known)
    if unknown:
        raise ValidationError(f"Unknown cards: {', '.join(unknown)}.")
    complete(ctx, answers=payload.results)


async def submit_composer(ctx: SubmissionContext, payload: ComposerSubmission) -> None:
    """Every word of the hidden sentence must be solved by a correct answer.

    Tries beyond a question's limit are counted as extra tries.
    """
    config: ComposerConfig = ctx.config  # type: ignore[assignment]
    questions = {q.id: q for q in config.questions}

    solved: set[str] = set()
    extra_tries = 0
    recorded = []
    for item in payload.answers:
        question = questions.get(item.question_id)
        if question is None:
            raise ValidationError(f"Unknown question {item.question_id}.")
        is_correct = normalize_composer_text(item.answer) == normalize_composer_text(question.answer)
        if is_correct:
            solved.add(normalize_composer_text(question.answer))
        extra_tries += max(0, item.tries - config.effective_max_tries(question))
        recorded.append({
            "questionId": item.question_id,
            "answer": item.answer,
            "tries": item.tries,
            "isCorrect": is_correct,
        })

    missing = [word for word in extract_sentence_words(config.hidden_sentence) if word not in solved]
    if missing:
        raise ValidationError("The hidden sentence is not complete yet.")

    complete(ctx, answers=recorded)
    ctx.assignment.composer_extra_tries = extra_tries


async def submit_learning_session(ctx: SubmissionContext, payload: LearningSessionSubmission) -> None:
    complete(ctx)
    ctx.assignment.student_notes = payload.notes


async def submit_news_article(ctx: SubmissionContext, payload: NewsArticleSubmission) -> None:
    complete(ctx)
    ctx.assignment.student_notes = payload.summary


async def submit_flipper(ctx: SubmissionContext, payload: FlipperSubmission) -> None:
    complete(ctx, score=GAME_COMPLETED_SCORE)


async def submit_arkaning(ctx: SubmissionContext, payload: ArkaningSubmission) -> None:
    if payload.outcome == "win":
        complete(ctx, score=GAME_COMPLETED_SCORE)
        return
    transition(ctx.assignment, AssignmentStatus.FAILED)
    ctx.assignment.score = GAME_LOST_SCORE
    ctx.assignment.submitted_at = ctx.now


async def submit_lyric(ctx: SubmissionContext, payload: LyricSubmission) -> None:
    """Store the attempt; a scored attempt on a PENDING assignment also completes it.

    Replays after completion are still recorded as practice attempts.
    """
    assignment = ctx.assignment
    completes = payload.score_percent is not None and assignment.status == AssignmentStatus.PENDING.value
    if completes:
        ensure_submittable(assignment, ctx.now)

    ctx.db.add(LyricLessonAttempt(
        lesson_id=assignment.lesson_id,
        student_id=ctx.student_id,
        assignment_id=assignment.id,
        score_percent=payload.score_percent,
        time_taken_seconds=payload.time_taken_seconds,
        answers=payload.answers,
        created_at=ctx.now,
    ))
    if completes:
        complete(ctx, answers=payload.answers, score=payload.score_percent)
