"""
Exam Session Engine: in-flight attempt state, practice feedback and scoring.
Positions are what the user sees ("question 3 of 10"); every stored structure
is keyed by the underlying bank index, reached through the question order.
"""
import logging
import random
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence
from uuid import uuid4

from examportal.models import (
    EXAM_MODE,
    MODES,
    PRACTICE_MODE,
    ExamAttempt,
    Question,
    QuestionBank,
    UserAnswer,
    answers_from_json,
    answers_to_json,
    index_set_from_json,
    index_set_to_json,
    option_orders_from_json,
    option_orders_to_json,
    parse_iso,
    utcnow_iso,
)
from examportal.ordering import generate_option_orders, generate_question_order, should_shuffle_questions
from examportal.scoring import (
    calculate_section_scores,
    calculate_weighted_score,
    check_answer,
    correct_answers_display,
    is_passed,
    parse_correct_answers,
    round_half_up,
)

logger = logging.getLogger(__name__)


class ExamSession:
    """Manages a single exam or practice run over one question bank."""

    def __init__(
        self,
        bank: QuestionBank,
        mode: str,
        question_order: Optional[List[int]] = None,
        option_orders: Optional[Dict[int, List[int]]] = None,
        session_id: Optional[str] = None,
        started_at: Optional[str] = None,
    ):
        """
        Args:
            bank: Question bank being attempted
            mode: "exam" or "practice"
            question_order: Permutation of bank indices (identity when omitted)
            option_orders: Option permutations keyed by bank index
            session_id: Reused as the attempt id on submit
            started_at: ISO start time (now when omitted)
        """
        if mode not in MODES:
            raise ValueError(f"Unknown mode: {mode!r}")
        self.bank = bank
        self.mode = mode
        self.session_id = session_id or str(uuid4())
        self.started_at = started_at or utcnow_iso()
        self.time_limit = bank.time_limit

        self.question_order: List[int] = list(question_order) if question_order else list(range(len(bank.questions)))
        self.option_orders: Dict[int, List[int]] = dict(option_orders or {})

        self.current_index = 0
        self.answers: Dict[int, List[str]] = {}  # {bank_index: [option text, ...]}
        self.flagged = set()
        self.hints_used = set()
        self.locked = set()  # practice questions already checked

    @classmethod
    def start(cls, bank: QuestionBank, mode: str, rng: Optional[random.Random] = None) -> "ExamSession":
        """Create a fresh session with new orderings for the bank."""
        order = generate_question_order(len(bank.questions), should_shuffle_questions(bank, mode), rng)
        session = cls(bank, mode, question_order=order, option_orders=generate_option_orders(bank, rng))
        logger.info(f"Session {session.session_id}: started {mode} on bank {bank.id} ({len(order)} questions)")
        return session

    def matches(self, bank_id: str, mode: str) -> bool:
        return self.bank.id == bank_id and self.mode == mode

    # ============= Positions =============

    @property
    def total_questions(self) -> int:
        return len(self.question_order)

    @property
    def is_practice(self) -> bool:
        return self.mode == PRACTICE_MODE

    def _position(self, position: Optional[int]) -> int:
        return self.current_index if position is None else position

    def question_index(self, position: Optional[int] = None) -> int:
        """Translate a session position into the underlying bank index."""
        return self.question_order[self._position(position)]

    def current_question(self) -> Question:
        return self.bank.questions[self.question_index()]

    def go_to(self, position: int) -> bool:
        if 0 <= position < self.total_questions:
            self.current_index = position
            return True
        return False

    def next(self) -> bool:
        return self.go_to(self.current_index + 1)

    def previous(self) -> bool:
        return self.go_to(self.current_index - 1)

    # ============= Answers =============

    def display_options(self, position: Optional[int] = None) -> List[str]:
        idx = self.question_index(position)
        options = self.bank.questions[idx].options
        order = self.option_orders.get(idx)
        if not order:
            return list(options)
        return [options[i] for i in order]

    def selected_options(self, position: Optional[int] = None) -> List[str]:
        return list(self.answers.get(self.question_index(position), []))

    def is_locked(self, position: Optional[int] = None) -> bool:
        return self.question_index(position) in self.locked

    def select_option(self, option: str, position: Optional[int] = None) -> bool:
        """
        Record a single-select answer. In practice mode the first answer locks
        the question.

        Returns:
            False when the question is locked and nothing changed
        """
        idx = self.question_index(position)
        if idx in self.locked:
            logger.debug(f"Question {idx} is locked, ignoring selection")
            return False
        self.answers[idx] = [option]
        if self.is_practice:
            self.locked.add(idx)
        return True

    def toggle_option(self, option: str, checked: bool, position: Optional[int] = None) -> bool:
        """Add or remove one option of a multi-select answer."""
        idx = self.question_index(position)
        if idx in self.locked:
            return False
        selected = [o for o in self.answers.get(idx, []) if o != option]
        if checked:
            selected.append(option)
        if selected:
            self.answers[idx] = selected
        else:
            self.answers.pop(idx, None)
        return True

    def check_answer(self, position: Optional[int] = None) -> Optional[bool]:
        """
        Explicit "check answer" for practice mode. Locks the question.

        Returns:
            Correctness, or None in exam mode / with nothing selected
        """
        if not self.is_practice:
            return None
        idx = self.question_index(position)
        selected = self.answers.get(idx)
        if not selected:
            return None
        self.locked.add(idx)
        return check_answer(self.bank.questions[idx], selected)

    def feedback(self, position: Optional[int] = None) -> Optional[Dict]:
        """Per-option verdicts and explanation for a locked practice question."""
        if not self.is_practice or not self.is_locked(position):
            return None
        idx = self.question_index(position)
        question = self.bank.questions[idx]
        selected = self.answers.get(idx, [])
        correct = set(parse_correct_answers(question.correct_answer))
        chosen = {s.strip().lower() for s in selected}

        options = []
        for text in self.display_options(position):
            key = text.strip().lower()
            if key in correct:
                state = "correct"
            elif key in chosen:
                state = "wrong"
            else:
                state = None
            options.append({"text": text, "state": state, "selected": key in chosen})

        return {
            "is_correct": check_answer(question, selected),
            "correct_answers": correct_answers_display(question),
            "selected": list(selected),
            "options": options,
            "explanation": question.explanation,
        }

    @property
    def answered_count(self) -> int:
        return sum(1 for selected in self.answers.values() if selected)

    # ============= Flags & hints =============

    def toggle_flag(self, position: Optional[int] = None) -> bool:
        idx = self.question_index(position)
        if idx in self.flagged:
            self.flagged.discard(idx)
            return False
        self.flagged.add(idx)
        return True

    def is_flagged(self, position: Optional[int] = None) -> bool:
        return self.question_index(position) in self.flagged

    def reveal_hint(self, position: Optional[int] = None) -> Optional[str]:
        idx = self.question_index(position)
        hint = self.bank.questions[idx].hint
        if hint:
            self.hints_used.add(idx)
        return hint

    def hint_revealed(self, position: Optional[int] = None) -> bool:
        return self.question_index(position) in self.hints_used

    # ============= Timing =============

    def elapsed_seconds(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        return max(0, int((now - parse_iso(self.started_at)).total_seconds()))

    def remaining_seconds(self, now: Optional[datetime] = None) -> Optional[int]:
        """Countdown for display only; running out never submits the session."""
        if not self.time_limit:
            return None
        return max(0, self.time_limit * 60 - self.elapsed_seconds(now))

    def get_session_summary(self, now: Optional[datetime] = None) -> Dict:
        """Get real-time summary for display during the run."""
        return {
            "session_id": self.session_id,
            "current_question": self.current_index + 1,
            "total_questions": self.total_questions,
            "questions_answered": self.answered_count,
            "questions_flagged": len(self.flagged),
            "time_elapsed_sec": self.elapsed_seconds(now),
            "time_remaining_sec": self.remaining_seconds(now),
        }

    # ============= Submission =============

    def build_answers(self) -> List[UserAnswer]:
        """UserAnswers for every bank question; unanswered ones are skipped."""
        answers = []
        for idx, question in enumerate(self.bank.questions):
            selected = self.answers.get(idx, [])
            is_correct = check_answer(question, selected)
            answers.append(UserAnswer(
                question_index=idx,
                selected_options=list(selected),
                is_correct=is_correct,
                points_earned=question.points if is_correct else 0,
                points_possible=question.points,
                section=question.section,
                used_hint=idx in self.hints_used,
            ))
        return answers

    def build_attempt(self, ended_at: Optional[str] = None) -> ExamAttempt:
        """
        Finalize the run into an ExamAttempt.

        Returns:
            Attempt keyed by this session's id
        """
        answers = self.build_answers()
        correct = sum(1 for a in answers if a.is_correct)
        skipped = sum(1 for a in answers if a.is_skipped)
        wrong = len(answers) - correct - skipped

        total_points, earned_points, score = calculate_weighted_score(answers, self.bank.questions)
        attempt = ExamAttempt(
            id=self.session_id,
            question_bank_id=self.bank.id,
            question_bank_name=self.bank.name,
            mode=self.mode,
            start_time=self.started_at,
            end_time=ended_at or utcnow_iso(),
            answers=answers,
            total_questions=len(answers),
            correct_count=correct,
            wrong_count=wrong,
            skipped_count=skipped,
            score=score,
            completed=True,
            total_points=total_points,
            earned_points=earned_points,
            section_scores=calculate_section_scores(answers, self.bank.questions, self.bank.sections),
            passed=is_passed(score, self.bank.passing_score),
        )
        logger.info(f"Session {self.session_id} completed: Score={score}% ({earned_points}/{total_points}), Pass={attempt.passed}")
        return attempt

    # ============= Snapshot =============

    def to_dict(self) -> Dict:
        return {
            "id": self.session_id,
            "questionBankId": self.bank.id,
            "questionBankName": self.bank.name,
            "mode": self.mode,
            "currentQuestionIndex": self.current_index,
            "answers": answers_to_json(self.answers),
            "flaggedQuestions": index_set_to_json(self.flagged),
            "hintsUsed": index_set_to_json(self.hints_used),
            "lockedQuestions": index_set_to_json(self.locked),
            "startTime": self.started_at,
            "timeLimit": self.time_limit,
            "questionOrder": list(self.question_order),
            "optionOrders": option_orders_to_json(self.option_orders),
        }

    @classmethod
    def from_dict(cls, data: Dict, bank: QuestionBank) -> "ExamSession":
        """Rebuild a session snapshot against its bank.

        Raises:
            ValueError: when the snapshot does not fit the bank
        """
        if str(data.get("questionBankId")) != bank.id:
            raise ValueError(f"Session belongs to bank {data.get('questionBankId')}, not {bank.id}")
        order = [int(i) for i in data.get("questionOrder") or []]
        if order and sorted(order) != list(range(len(bank.questions))):
            raise ValueError("Stored question order does not match the bank")
        option_orders = option_orders_from_json(data.get("optionOrders"))
        for idx, opt_order in option_orders.items():
            if not 0 <= idx < len(bank.questions) or sorted(opt_order) != list(range(len(bank.questions[idx].options))):
                raise ValueError(f"Stored option order for question {idx} does not match the bank")

        session = cls(
            bank,
            data.get("mode", EXAM_MODE),
            question_order=order or None,
            option_orders=option_orders,
            session_id=data.get("id"),
            started_at=data.get("startTime"),
        )
        session.answers = answers_from_json(data.get("answers"))
        session.flagged = index_set_from_json(data.get("flaggedQuestions"))
        session.hints_used = index_set_from_json(data.get("hintsUsed"))
        session.locked = index_set_from_json(data.get("lockedQuestions"))
        session.go_to(int(data.get("currentQuestionIndex", 0)))
        return session


def calculate_history_statistics(
    attempts: Sequence[ExamAttempt],
    bank_id: Optional[str] = None,
    mode: Optional[str] = None,
    recent: int = 10,
) -> Dict:
    """
    Summarize completed attempts (newest first), optionally filtered by bank and mode.

    Returns:
        count, average/best score, the most recent attempts, a chart series
        (oldest to newest) and sections ranked weakest first
    """
    filtered = [
        a for a in attempts
        if a.completed
        and (bank_id is None or a.question_bank_id == bank_id)
        and (mode is None or a.mode == mode)
    ]
    recent_attempts = filtered[:recent]

    section_totals: Dict[str, List[int]] = {}
    for attempt in filtered:
        for s in attempt.section_scores:
            section_totals.setdefault(s.section, []).append(s.score)
    sections = sorted(
        ((name, round_half_up(sum(scores) / len(scores))) for name, scores in section_totals.items()),
        key=lambda item: item[1],
    )

    return {
        "count": len(filtered),
        "average_score": round_half_up(sum(a.score for a in filtered) / len(filtered)) if filtered else 0,
        "best_score": max((a.score for a in filtered), default=0),
        "recent": recent_attempts,
        "chart": [
            {"label": f"#{i + 1}", "score": a.score, "bank": a.question_bank_name}
            for i, a in enumerate(reversed(recent_attempts))
        ],
        "weak_sections": sections[:5],
    }
