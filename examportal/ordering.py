"""Question and option orderings. Everything here works on index permutations."""
import random
from typing import Dict, List, Optional

from examportal.models import EXAM_MODE, QuestionBank

_system_random = random.SystemRandom()


def shuffle_indices(n: int, rng: Optional[random.Random] = None) -> List[int]:
    """Fisher-Yates shuffle of [0..n-1]."""
    rng = rng or _system_random
    order = list(range(n))
    for i in range(n - 1, 0, -1):
        j = rng.randint(0, i)
        order[i], order[j] = order[j], order[i]
    return order


def generate_question_order(count: int, shuffle: bool, rng: Optional[random.Random] = None) -> List[int]:
    return shuffle_indices(count, rng) if shuffle else list(range(count))


def generate_option_order(count: int, shuffle: bool, rng: Optional[random.Random] = None) -> List[int]:
    return shuffle_indices(count, rng) if shuffle else list(range(count))


def should_shuffle_questions(bank: QuestionBank, mode: str) -> bool:
    # Practice mode always walks the bank in order
    return mode == EXAM_MODE and bank.shuffle_questions


def generate_option_orders(bank: QuestionBank, rng: Optional[random.Random] = None) -> Dict[int, List[int]]:
    """Per-question option permutations keyed by bank index, regardless of mode."""
    if not bank.shuffle_options:
        return {}
    return {
        idx: generate_option_order(len(q.options), True, rng)
        for idx, q in enumerate(bank.questions)
    }
