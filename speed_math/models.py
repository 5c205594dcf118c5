"""
Core data models for the Speed Math drill game.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple
from datetime import datetime


class Mode(str, Enum):
    """Arithmetic operation family a session draws its problems from."""
    ADDITION = "addition"
    SUBTRACTION = "subtraction"
    MULTIPLICATION = "multiplication"
    DIVISION = "division"


class SessionState(Enum):
    """Enumeration of possible game session states."""
    MENU = "menu"
    PLAYING = "playing"
    PAUSED = "paused"
    GAME_OVER = "game_over"


class AnswerOutcome(Enum):
    """Result of feeding one answer into the session."""
    CORRECT = "correct"
    INCORRECT = "incorrect"
    IGNORED = "ignored"


@dataclass(frozen=True)
class Question:
    """A single generated arithmetic problem with its answer options."""
    problem_text: str
    correct_answer: int
    options: Tuple[int, ...]
    operand_a: int = 0
    operand_b: int = 0


@dataclass
class GameSettings:
    """Tunable parameters for the timer, lives and difficulty model."""
    tick_interval: float = 0.05
    base_decay_rate: float = 0.8
    starting_lives: int = 5
    difficulty_step: float = 0.05
    max_difficulty: float = 3.0
    max_time: float = 100.0
    max_generation_attempts: int = 300


@dataclass
class GameSession:
    """The single live play-through owned by a GameController."""
    session_id: int
    mode: Mode = Mode.ADDITION
    state: SessionState = SessionState.MENU
    score: int = 0
    lives: int = 5
    difficulty_scale: float = 1.0
    time_remaining: float = 100.0
    current_question: Optional[Question] = None
    best_score: int = 0
    last_forwarded: Optional[Tuple[int, Mode]] = None
    started_at: Optional[datetime] = None


@dataclass(frozen=True)
class GameOverResult:
    """Final score of a finished session, handed to the persistence boundary."""
    player_id: str
    display_name: str
    mode: Mode
    score: int
    previous_best: int

    @property
    def is_new_best(self) -> bool:
        return self.score > self.previous_best


@dataclass(frozen=True)
class ScoreEntry:
    """One submitted score as recorded by a score store."""
    player_id: str
    display_name: str
    score: int
    mode: Mode
    created_at: datetime = field(default_factory=datetime.now)
