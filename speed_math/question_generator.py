"""
Question generation for the Speed Math drill game.
Builds one arithmetic problem per call plus two distractors that look like
common calculation slips.
"""
import random
import logging
from typing import List, Optional, Set

from .models import Mode, Question

logger = logging.getLogger(__name__)

# Digit-alignment slips and carry/borrow slips
ADDITIVE_ALIGNMENT_OFFSETS = [10, -10, 20, -20]
ADDITIVE_CARRY_OFFSETS = [1, -1, 9, -9, 11, -11]

FALLBACK_OFFSET_RANGE = (-10, 10)
FALLBACK_ZERO_SUBSTITUTE = 5

OPERATOR_SYMBOLS = {
    Mode.ADDITION: "+",
    Mode.SUBTRACTION: "-",
    Mode.MULTIPLICATION: "×",
    Mode.DIVISION: "÷",
}


class GenerationError(RuntimeError):
    """Raised when distractor generation exhausts its attempt cap."""
    pass


class QuestionGenerator:
    """
    Generates arithmetic questions for a given mode.

    All draws and shuffles go through the injected random source, so two
    generators built from the same seed produce identical questions.
    """

    OPTION_COUNT = 3

    def __init__(self, rng: Optional[random.Random] = None, max_attempts: int = 300):
        """
        Initialize the generator.

        Args:
            rng: Random source used for every draw; a fresh unseeded one if None
            max_attempts: Iteration cap for the fallback distractor loop
        """
        self.rng = rng if rng is not None else random.Random()
        self.max_attempts = max_attempts

    def generate(self, mode: Mode) -> Question:
        """
        Generate a new question for the given mode.

        Args:
            mode: Operation family to draw the problem from

        Returns:
            Question with exactly three options, one of them correct

        Raises:
            GenerationError: If the fallback loop hits its attempt cap
        """
        mode = Mode(mode)
        a, b, answer = self._draw_operands(mode)
        problem_text = f"{a} {OPERATOR_SYMBOLS[mode]} {b}"

        members = self._build_options(mode, a, b, answer)
        options = sorted(members)
        self.rng.shuffle(options)

        return Question(
            problem_text=problem_text,
            correct_answer=answer,
            options=tuple(options),
            operand_a=a,
            operand_b=b
        )

    def _draw_operands(self, mode: Mode):
        """Draw the operands for a mode and compute the exact answer."""
        if mode == Mode.ADDITION:
            a = self.rng.randint(1, 99)
            b = self.rng.randint(1, 99)
            return a, b, a + b

        if mode == Mode.SUBTRACTION:
            a = self.rng.randint(1, 99)
            b = self.rng.randint(1, 99)
            if a < b:
                a, b = b, a
            return a, b, a - b

        if mode == Mode.MULTIPLICATION:
            a = self.rng.randint(2, 13)
            b = self.rng.randint(2, 13)
            return a, b, a * b

        # Division: build the dividend from divisor and quotient so it divides exactly
        b = self.rng.randint(2, 12)
        quotient = self.rng.randint(2, 12)
        return quotient * b, b, quotient

    def _strategy_passes(self, mode: Mode, a: int, b: int) -> List[List[int]]:
        """
        Get the ordered near-miss offset passes for a mode.

        Each pass contributes at most one distractor.
        """
        if mode in (Mode.ADDITION, Mode.SUBTRACTION):
            return [list(ADDITIVE_ALIGNMENT_OFFSETS), list(ADDITIVE_CARRY_OFFSETS)]

        if mode == Mode.MULTIPLICATION:
            factor = self.rng.choice([a, b])
            return [
                [factor, -factor, factor * 2, -factor * 2],
                [a, -a, b, -b, 1, -1],
            ]

        return [[1, -1, 2, -2, b, -b]]

    def _build_options(self, mode: Mode, a: int, b: int, answer: int) -> Set[int]:
        """
        Collect the answer plus two distinct positive distractors.

        Args:
            mode: Operation family of the question
            a: First operand as shown in the problem text
            b: Second operand as shown in the problem text
            answer: Correct answer

        Returns:
            Set of exactly three option values
        """
        members = {answer}

        def add_option(value: int) -> bool:
            if value > 0 and value != answer and value not in members:
                members.add(value)
                return True
            return False

        for offsets in self._strategy_passes(mode, a, b):
            self.rng.shuffle(offsets)
            for offset in offsets:
                if len(members) >= self.OPTION_COUNT:
                    break
                if add_option(answer + offset):
                    break

        attempts = 0
        while len(members) < self.OPTION_COUNT:
            if attempts >= self.max_attempts:
                logger.error(
                    f"Distractor fallback exhausted {self.max_attempts} attempts for {mode.value} answer {answer}",
                    extra={
                        'event_type': 'generation_cap_exhausted',
                        'mode': mode.value,
                        'answer': answer,
                        'members': sorted(members)
                    }
                )
                raise GenerationError(
                    f"Could not build {self.OPTION_COUNT} options for answer {answer} "
                    f"after {self.max_attempts} attempts"
                )
            attempts += 1
            offset = self.rng.randint(*FALLBACK_OFFSET_RANGE)
            add_option(answer + (offset if offset != 0 else FALLBACK_ZERO_SUBSTITUTE))

        if attempts:
            logger.debug(f"Fallback distractors used {attempts} draws for {mode.value} answer {answer}")

        return members
