"""
Round-based quiz retries.

    ANSWERING -> ROUND_SUMMARY -> ANSWERING (retry wrong set, reshuffled)
                               -> FINISHED
    ANSWERING -> FINISHED      (round answered with no mistakes)

Only round-1 answers count toward the score; retries are for practice.
"""

import logging
import random

from cadence.domain.constants import QUIZ_PASSING_SCORE
from cadence.domain.errors import InvalidTransitionError
from cadence.domain.sessions import (
    QuizAnswer,
    QuizPhase,
    QuizQuestion,
    QuizRoundState,
    QuizSessionResult,
    RoundSummary,
)

logger = logging.getLogger(__name__)


def normalise_answer(text: str) -> str:
    return text.strip().lower()


def is_passing(correct: int, total: int, passing_score: int = QUIZ_PASSING_SCORE) -> bool:
    """A quiz passes when first-attempt accuracy, in whole percent, reaches passing_score."""
    return total > 0 and round(correct / total * 100) >= passing_score



def result_from_counts(
    correct: int,
    total: int,
    passing_score: int = QUIZ_PASSING_SCORE,
    rounds_played: int = 1,
) -> QuizSessionResult:
    """Summarise a quiz that was run elsewhere from its first-attempt counts."""
    if not 0 <= correct <= total:
        raise ValueError(f"correct must be within 0..{total}, got {correct}")
    return QuizSessionResult(
        score=correct / total if total else 0.0,
        results=(),
        rounds_played=rounds_played,
        first_attempt_correct=correct,
        first_attempt_total=total,
        passed=is_passing(correct, total, passing_score),
    )


class QuizRoundEngine:
    """
    Single-owner quiz state machine.

    Args:
        rng: Source of shuffles for retry rounds. Inject a seeded
            random.Random for reproducible orderings.
        passing_score: First-attempt percentage needed to pass.
    """

    def __init__(self, rng: random.Random | None = None, passing_score: int = QUIZ_PASSING_SCORE):
        self._rng = rng or random.Random()
        self.passing_score = passing_score
        self._questions: tuple[QuizQuestion, ...] = ()
        self._round: QuizRoundState | None = None
        self._results: list[QuizAnswer] = []
        self._phase = QuizPhase.FINISHED

    @property
    def phase(self) -> QuizPhase:
        return self._phase

    @property
    def round_number(self) -> int:
        return self._round.round_number if self._round else 0

    def start(self, questions: list[QuizQuestion]) -> None:
        """Begin round 1 in the given order. An empty quiz is finished immediately."""
        self._questions = tuple(questions)
        self._results = []
        self._round = QuizRoundState(round_number=1, pending_questions=self._questions)
        self._phase = QuizPhase.ANSWERING if self._questions else QuizPhase.FINISHED
        logger.debug(f"Quiz started with {len(self._questions)} question(s)")

    def current_question(self) -> QuizQuestion | None:
        if self._phase is not QuizPhase.ANSWERING or self._round is None:
            return None
        return self._round.pending_questions[self._round.answered]

    def answer(self, correct: bool) -> QuizAnswer:
        """Record the outcome for the current question."""
        round_ = self._require(QuizPhase.ANSWERING, "answer")
        question = round_.pending_questions[round_.answered]

        result = QuizAnswer(
            question_id=question.id,
            correct=bool(correct),
            attempt_index=round_.round_number,
        )
        self._results.append(result)
        self._round = QuizRoundState(
            round_number=round_.round_number,
            pending_questions=round_.pending_questions,
            results_this_round=round_.results_this_round + (result,),
        )
        if self._round.is_over:
            if all(r.correct for r in self._round.results_this_round):
                self._phase = QuizPhase.FINISHED
                logger.debug(f"Quiz round {self._round.round_number} perfect, finished")
            else:
                self._phase = QuizPhase.ROUND_SUMMARY
        return result

    def submit(self, answer_text: str) -> QuizAnswer:
        """Check free text against the current question's answer (trimmed, case-insensitive)."""
        question = self.current_question()
        if question is None:
            raise InvalidTransitionError("quiz", self._phase.value, QuizPhase.ANSWERING.value)
        if question.correct_answer is None:
            raise ValueError(f"Question {question.id} has no answer to check against")
        return self.answer(normalise_answer(answer_text) == normalise_answer(question.correct_answer))

    def round_summary(self) -> RoundSummary:
        round_ = self._require(QuizPhase.ROUND_SUMMARY, "round_summary")
        correct = sum(1 for r in round_.results_this_round if r.correct)
        return RoundSummary(
            round_number=round_.round_number,
            correct_count=correct,
            wrong_count=round_.answered - correct,
        )

    def retry(self) -> None:
        """Start the next round with this round's wrong answers, shuffled."""
        round_ = self._require(QuizPhase.ROUND_SUMMARY, "retry")
        wrong_ids = {r.question_id for r in round_.results_this_round if not r.correct}
        if not wrong_ids:
            raise InvalidTransitionError(
                "quiz", self._phase.value, QuizPhase.ANSWERING.value, "no wrong answers to retry"
            )

        pending = [q for q in round_.pending_questions if q.id in wrong_ids]
        self._rng.shuffle(pending)
        self._round = QuizRoundState(
            round_number=round_.round_number + 1,
            pending_questions=tuple(pending),
        )
        self._phase = QuizPhase.ANSWERING
        logger.debug(f"Quiz round {self._round.round_number}: retrying {len(pending)} question(s)")

    def finish(self) -> QuizSessionResult:
        """End the quiz. Allowed mid-round; unanswered round-1 questions count as wrong."""
        if self._phase is QuizPhase.FINISHED and self._round is None:
            raise InvalidTransitionError("quiz", "idle", QuizPhase.FINISHED.value, "quiz not started")
        self._phase = QuizPhase.FINISHED
        return self.result()

    def result(self) -> QuizSessionResult:
        self._require(QuizPhase.FINISHED, "result")
        first = [r for r in self._results if r.attempt_index == 1]
        correct = sum(1 for r in first if r.correct)
        total = len(self._questions)
        score = correct / total if total else 0.0

        missed = {q.id for q in self._questions} - {r.question_id for r in first if r.correct}
        relearn = dict.fromkeys(
            card_id
            for q in self._questions
            if q.id in missed
            for card_id in q.related_card_ids
        )

        return QuizSessionResult(
            score=score,
            results=tuple(self._results),
            rounds_played=self.round_number,
            first_attempt_correct=correct,
            first_attempt_total=total,
            passed=is_passing(correct, total, self.passing_score),
            cards_for_relearning=tuple(relearn),
        )

    def _require(self, phase: QuizPhase, action: str) -> QuizRoundState:
        """Return the active round, raising unless the quiz is in `phase`."""
        if self._phase is not phase or self._round is None:
            raise InvalidTransitionError(
                "quiz", self._phase.value, phase.value, f"{action} not allowed"
            )
        return self._round
