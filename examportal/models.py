"""
Domain types for the exam portal: questions, banks, attempts, stats.
Persisted JSON keeps the camelCase keys of exported portal documents.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set, Union

EXAM_MODE = "exam"
PRACTICE_MODE = "practice"
MODES = (EXAM_MODE, PRACTICE_MODE)

DEFAULT_WEIGHT = 1
DIFFICULTIES = ("easy", "medium", "hard")


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(value: str) -> datetime:
    """Parse an ISO timestamp ('Z' suffix allowed). Naive values are taken as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _drop_none(data: Dict) -> Dict:
    return {k: v for k, v in data.items() if v is not None}


@dataclass
class Question:
    question: str
    options: List[str]
    correct_answer: Union[str, List[str]]
    explanation: Optional[str] = None
    hint: Optional[str] = None
    section: Optional[str] = None
    weight: Optional[float] = None
    difficulty: Optional[str] = None
    references: List[str] = field(default_factory=list)

    @property
    def points(self) -> float:
        # A weight of 0 or missing counts as the default weight
        return self.weight or DEFAULT_WEIGHT

    def to_dict(self) -> Dict:
        data = _drop_none({
            "question": self.question,
            "options": list(self.options),
            "correct_answer": list(self.correct_answer) if isinstance(self.correct_answer, list) else self.correct_answer,
            "explanation": self.explanation,
            "hint": self.hint,
            "section": self.section,
            "weight": self.weight,
            "difficulty": self.difficulty,
        })
        if self.references:
            data["references"] = list(self.references)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> "Question":
        return cls(
            question=data["question"],
            options=list(data["options"]),
            correct_answer=data["correct_answer"],
            explanation=data.get("explanation"),
            hint=data.get("hint"),
            section=data.get("section"),
            weight=data.get("weight"),
            difficulty=data.get("difficulty"),
            references=list(data.get("references") or []),
        )


@dataclass
class ExamSection:
    name: str
    weight: float = 0
    description: Optional[str] = None
    question_count: Optional[int] = None

    def to_dict(self) -> Dict:
        return _drop_none({
            "name": self.name,
            "description": self.description,
            "weight": self.weight,
            "questionCount": self.question_count,
        })

    @classmethod
    def from_dict(cls, data: Dict) -> "ExamSection":
        return cls(
            name=data["name"],
            weight=data.get("weight", 0),
            description=data.get("description"),
            question_count=data.get("questionCount"),
        )


@dataclass
class QuestionBank:
    id: str
    name: str
    questions: List[Question]
    date_added: str
    description: Optional[str] = None
    sections: List[ExamSection] = field(default_factory=list)
    shuffle_questions: bool = False
    shuffle_options: bool = False
    passing_score: Optional[float] = None
    time_limit: Optional[int] = None  # minutes

    def to_dict(self) -> Dict:
        data = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "questions": [q.to_dict() for q in self.questions],
            "dateAdded": self.date_added,
            "passingScore": self.passing_score,
            "timeLimit": self.time_limit,
        }
        if self.sections:
            data["sections"] = [s.to_dict() for s in self.sections]
        if self.shuffle_questions:
            data["shuffleQuestions"] = True
        if self.shuffle_options:
            data["shuffleOptions"] = True
        return _drop_none(data)

    @classmethod
    def from_dict(cls, data: Dict) -> "QuestionBank":
        return cls(
            id=str(data["id"]),
            name=data["name"],
            questions=[Question.from_dict(q) for q in data["questions"]],
            date_added=data.get("dateAdded") or utcnow_iso(),
            description=data.get("description"),
            sections=[ExamSection.from_dict(s) for s in data.get("sections") or []],
            shuffle_questions=bool(data.get("shuffleQuestions", False)),
            shuffle_options=bool(data.get("shuffleOptions", False)),
            passing_score=data.get("passingScore"),
            time_limit=data.get("timeLimit"),
        )


@dataclass
class UserAnswer:
    question_index: int
    selected_options: List[str]
    is_correct: bool
    points_earned: float = 0
    points_possible: float = DEFAULT_WEIGHT
    section: Optional[str] = None
    used_hint: bool = False

    @property
    def is_skipped(self) -> bool:
        return len(self.selected_options) == 0

    def to_dict(self) -> Dict:
        return _drop_none({
            "questionIndex": self.question_index,
            "selectedOptions": list(self.selected_options),
            "isCorrect": self.is_correct,
            "pointsEarned": self.points_earned,
            "pointsPossible": self.points_possible,
            "section": self.section,
            "usedHint": self.used_hint,
        })

    @classmethod
    def from_dict(cls, data: Dict) -> "UserAnswer":
        return cls(
            question_index=int(data["questionIndex"]),
            selected_options=list(data.get("selectedOptions") or []),
            is_correct=bool(data["isCorrect"]),
            points_earned=data.get("pointsEarned", 0),
            points_possible=data.get("pointsPossible", DEFAULT_WEIGHT),
            section=data.get("section"),
            used_hint=bool(data.get("usedHint", False)),
        )


@dataclass
class SectionScore:
    section: str
    score: int
    weight: float

    def to_dict(self) -> Dict:
        return {"section": self.section, "score": self.score, "weight": self.weight}

    @classmethod
    def from_dict(cls, data: Dict) -> "SectionScore":
        return cls(section=data["section"], score=int(data["score"]), weight=data.get("weight", 0))


@dataclass(frozen=True)
class ExamAttempt:
    """One completed run. Never mutated once saved."""

    id: str
    question_bank_id: str
    question_bank_name: str
    mode: str
    start_time: str
    end_time: Optional[str]
    answers: List[UserAnswer]
    total_questions: int
    correct_count: int
    wrong_count: int
    skipped_count: int
    score: int
    completed: bool = True
    total_points: float = 0
    earned_points: float = 0
    section_scores: List[SectionScore] = field(default_factory=list)
    passed: Optional[bool] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if not self.start_time or not self.end_time:
            return None
        return (parse_iso(self.end_time) - parse_iso(self.start_time)).total_seconds()

    def to_dict(self) -> Dict:
        return _drop_none({
            "id": self.id,
            "questionBankId": self.question_bank_id,
            "questionBankName": self.question_bank_name,
            "mode": self.mode,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "answers": [a.to_dict() for a in self.answers],
            "totalQuestions": self.total_questions,
            "correctCount": self.correct_count,
            "wrongCount": self.wrong_count,
            "skippedCount": self.skipped_count,
            "score": self.score,
            "completed": self.completed,
            "totalPoints": self.total_points,
            "earnedPoints": self.earned_points,
            "sectionScores": [s.to_dict() for s in self.section_scores],
            "passed": self.passed,
        })

    @classmethod
    def from_dict(cls, data: Dict) -> "ExamAttempt":
        return cls(
            id=str(data["id"]),
            question_bank_id=str(data["questionBankId"]),
            question_bank_name=data.get("questionBankName", ""),
            mode=data.get("mode", EXAM_MODE),
            start_time=data["startTime"],
            end_time=data.get("endTime"),
            answers=[UserAnswer.from_dict(a) for a in data.get("answers") or []],
            total_questions=int(data["totalQuestions"]),
            correct_count=int(data["correctCount"]),
            wrong_count=int(data["wrongCount"]),
            skipped_count=int(data["skippedCount"]),
            score=int(data["score"]),
            completed=bool(data.get("completed", True)),
            total_points=data.get("totalPoints", 0),
            earned_points=data.get("earnedPoints", 0),
            section_scores=[SectionScore.from_dict(s) for s in data.get("sectionScores") or []],
            passed=data.get("passed"),
        )


@dataclass
class UserStats:
    total_attempts: int = 0
    total_questions_answered: int = 0
    total_correct: int = 0
    average_score: int = 0
    last_attempt_date: Optional[str] = None

    def to_dict(self) -> Dict:
        return _drop_none({
            "totalAttempts": self.total_attempts,
            "totalQuestionsAnswered": self.total_questions_answered,
            "totalCorrect": self.total_correct,
            "averageScore": self.average_score,
            "lastAttemptDate": self.last_attempt_date,
        })

    @classmethod
    def from_dict(cls, data: Dict) -> "UserStats":
        return cls(
            total_attempts=int(data.get("totalAttempts", 0)),
            total_questions_answered=int(data.get("totalQuestionsAnswered", 0)),
            total_correct=int(data.get("totalCorrect", 0)),
            average_score=int(data.get("averageScore", 0)),
            last_attempt_date=data.get("lastAttemptDate"),
        )


# ============= Session field boundaries =============
# JSON objects only have string keys and no sets, so each structured
# session field crosses the storage boundary through its own pair.

def answers_to_json(answers: Dict[int, List[str]]) -> Dict[str, List[str]]:
    return {str(idx): list(selected) for idx, selected in answers.items()}


def answers_from_json(data: Optional[Dict]) -> Dict[int, List[str]]:
    return {int(idx): list(selected) for idx, selected in (data or {}).items()}


def index_set_to_json(indices: Set[int]) -> List[int]:
    return sorted(indices)


def index_set_from_json(data: Optional[List]) -> Set[int]:
    return {int(idx) for idx in (data or [])}


def option_orders_to_json(orders: Dict[int, List[int]]) -> Dict[str, List[int]]:
    return {str(idx): list(order) for idx, order in orders.items()}


def option_orders_from_json(data: Optional[Dict]) -> Dict[int, List[int]]:
    return {int(idx): [int(i) for i in order] for idx, order in (data or {}).items()}
