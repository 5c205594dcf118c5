"""
Game session controller for the Speed Math drill game.
Owns the single live session and applies player input and clock ticks to it.
"""
import itertools
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from .models import (
    AnswerOutcome,
    GameOverResult,
    GameSession,
    GameSettings,
    Mode,
    SessionState,
)
from .question_generator import QuestionGenerator
from .game_clock import AsyncTicker, Countdown, DifficultyController, TimerLifecycleLogger
from .data_manager import BestScoreCache, PersistenceError, ScoreReporter, ScoreStore

GameListener = Callable[[str, GameSession], Any]


class GameController:
    """
    State machine for one player's drill sessions.

    Sessions move through Menu -> Playing <-> Paused -> GameOver. Every
    operation is synchronous and completes before the next one starts, so
    ticks and answers never interleave. Input that is not valid for the
    current state is ignored.
    """

    def __init__(
        self,
        settings: Optional[GameSettings] = None,
        player_id: str = "local",
        display_name: str = "Player",
        generator: Optional[QuestionGenerator] = None,
        ticker=None,
        best_cache: Optional[BestScoreCache] = None,
        score_store: Optional[ScoreStore] = None
    ):
        """
        Initialize the game controller.

        Args:
            settings: Timer, lives and difficulty parameters
            player_id: Identity used when forwarding scores
            display_name: Name shown next to forwarded scores
            generator: Question source; a fresh unseeded one if None
            ticker: Tick source with start/stop; an AsyncTicker if None
            best_cache: Local per-mode best scores
            score_store: Persistence collaborator for finished games
        """
        self.logger = logging.getLogger(__name__)
        self.settings = settings or GameSettings()
        self.player_id = player_id
        self.display_name = display_name

        self.generator = generator or QuestionGenerator(max_attempts=self.settings.max_generation_attempts)
        self.ticker = ticker if ticker is not None else AsyncTicker(owner=player_id)
        self.best_cache = best_cache if best_cache is not None else BestScoreCache()
        self.score_store = score_store
        self.reporter = ScoreReporter(score_store)

        self.difficulty = DifficultyController(self.settings.difficulty_step, self.settings.max_difficulty)
        self.countdown = Countdown(self.settings.max_time, self.settings.base_decay_rate)

        self._session_ids = itertools.count(1)
        self._listeners: List[GameListener] = []
        self._last_result: Optional[GameOverResult] = None
        self._session = self._new_menu_session(Mode.ADDITION)

    @property
    def session(self) -> GameSession:
        return self._session

    @property
    def state(self) -> SessionState:
        return self._session.state

    @property
    def last_result(self) -> Optional[GameOverResult]:
        return self._last_result

    def add_listener(self, callback: GameListener) -> None:
        """
        Register a callback for session events.

        Callbacks receive the event name ("question", "miss", "state" or
        "game_over") and the live session.
        """
        self._listeners.append(callback)

    def select_mode(self, mode: Mode) -> bool:
        """
        Choose the operation family for the next session.

        Args:
            mode: Mode to select

        Returns:
            True if the mode was selected, False while a session is in progress
        """
        if self._session.state in (SessionState.PLAYING, SessionState.PAUSED):
            self.logger.debug(f"Ignoring mode change for player {self.player_id}: session in progress")
            return False

        self._session.mode = Mode(mode)
        self._session.best_score = self.best_cache.get(self._session.mode)
        self._notify("state")
        return True

    def start(self, mode: Optional[Mode] = None) -> bool:
        """
        Start a new session from the menu or after a game over.

        Args:
            mode: Mode to play; keeps the selected mode if None

        Returns:
            True if a session started, False if one is already in progress
        """
        if self._session.state in (SessionState.PLAYING, SessionState.PAUSED):
            self.logger.warning(
                f"Cannot start session for player {self.player_id}: session already in progress",
                extra={
                    'event_type': 'session_start_rejected',
                    'player_id': self.player_id,
                    'state': self._session.state.value,
                    'timestamp': time.time()
                }
            )
            return False

        self.ticker.stop("restart")
        mode = Mode(mode) if mode is not None else self._session.mode

        self.difficulty.reset()
        self.countdown.reset()
        self._last_result = None
        self._session = GameSession(
            session_id=next(self._session_ids),
            mode=mode,
            state=SessionState.PLAYING,
            score=0,
            lives=self.settings.starting_lives,
            difficulty_scale=self.difficulty.scale,
            time_remaining=self.countdown.remaining,
            current_question=self.generator.generate(mode),
            best_score=self.best_cache.get(mode),
            last_forwarded=None,
            started_at=datetime.now()
        )
        self._start_ticker()

        self.logger.info(
            f"Started session {self._session.session_id} for player {self.player_id}: mode={mode.value}",
            extra={
                'event_type': 'session_started',
                'player_id': self.player_id,
                'session_id': self._session.session_id,
                'mode': mode.value,
                'timestamp': time.time()
            }
        )
        self._notify("state")
        self._notify("question")
        return True

    def answer(self, choice: int) -> AnswerOutcome:
        """
        Submit an answer value for the current question.

        Args:
            choice: Value the player picked

        Returns:
            Outcome of the answer; IGNORED unless a session is playing
        """
        session = self._session
        if session.state != SessionState.PLAYING or session.current_question is None:
            self.logger.debug(f"Ignoring answer from player {self.player_id} in state {session.state.value}")
            return AnswerOutcome.IGNORED

        if choice == session.current_question.correct_answer:
            session.score += 1
            session.difficulty_scale = self.difficulty.record_correct()
            self.countdown.reset()
            session.time_remaining = self.countdown.remaining
            session.current_question = self.generator.generate(session.mode)
            self.best_cache.update(session.mode, session.score)
            self._notify("question")
            return AnswerOutcome.CORRECT

        self._register_miss("incorrect answer")
        return AnswerOutcome.INCORRECT

    def select(self, option_index: int) -> AnswerOutcome:
        """
        Submit the option at a position of the current question.

        Args:
            option_index: 0, 1 or 2

        Returns:
            Outcome of the answer; IGNORED for an invalid index or state
        """
        question = self._session.current_question
        if self._session.state != SessionState.PLAYING or question is None:
            return AnswerOutcome.IGNORED
        if isinstance(option_index, bool) or not isinstance(option_index, int):
            return AnswerOutcome.IGNORED
        if not 0 <= option_index < len(question.options):
            self.logger.debug(f"Ignoring out-of-range option {option_index} from player {self.player_id}")
            return AnswerOutcome.IGNORED
        return self.answer(question.options[option_index])

    def tick(self, session_id: Optional[int] = None) -> bool:
        """
        Advance the countdown by one tick.

        Args:
            session_id: Session the tick was scheduled for; ticks for any
                other session are dropped

        Returns:
            True if the tick expired the countdown and cost a life
        """
        session = self._session
        if session_id is not None and session_id != session.session_id:
            TimerLifecycleLogger.log_stale_tick(self.player_id, session.session_id, session_id)
            return False

        if session.state != SessionState.PLAYING:
            return False

        timed_out = self.countdown.advance(self.difficulty.scale)
        session.time_remaining = self.countdown.remaining
        if not timed_out:
            return False

        TimerLifecycleLogger.log_timeout(self.player_id, session.session_id, self.difficulty.scale)
        self._register_miss("timeout")
        return True

    def pause(self) -> bool:
        """
        Pause a playing session; the countdown freezes.

        Returns:
            True if the session was paused, False otherwise
        """
        if self._session.state != SessionState.PLAYING:
            return False

        self._session.state = SessionState.PAUSED
        self.ticker.stop("pause")
        self.logger.info(
            f"Paused session {self._session.session_id} for player {self.player_id}",
            extra={
                'event_type': 'session_paused',
                'player_id': self.player_id,
                'session_id': self._session.session_id,
                'time_remaining': self._session.time_remaining,
                'timestamp': time.time()
            }
        )
        self._notify("state")
        return True

    def resume(self) -> bool:
        """
        Resume a paused session from the retained countdown.

        Returns:
            True if the session was resumed, False otherwise
        """
        if self._session.state != SessionState.PAUSED:
            return False

        self._session.state = SessionState.PLAYING
        self._start_ticker()
        self.logger.info(
            f"Resumed session {self._session.session_id} for player {self.player_id}",
            extra={
                'event_type': 'session_resumed',
                'player_id': self.player_id,
                'session_id': self._session.session_id,
                'timestamp': time.time()
            }
        )
        self._notify("state")
        return True

    def abandon(self) -> bool:
        """
        Discard the current session and return to the menu.

        Returns:
            True if a session was discarded, False if already at the menu
        """
        if self._session.state == SessionState.MENU:
            return False

        abandoned_id = self._session.session_id
        self.ticker.stop("abandon")
        self._session = self._new_menu_session(self._session.mode)
        self.logger.info(
            f"Abandoned session {abandoned_id} for player {self.player_id}",
            extra={
                'event_type': 'session_abandoned',
                'player_id': self.player_id,
                'session_id': abandoned_id,
                'timestamp': time.time()
            }
        )
        self._notify("state")
        return True

    def forward_result(self) -> bool:
        """
        Send the finished session's score to the score store.

        Only a new best is forwarded, and a given (score, mode) pair is
        forwarded at most once per session.

        Returns:
            True if a submission was issued, False otherwise
        """
        result = self._last_result
        session = self._session
        if result is None or session.state != SessionState.GAME_OVER:
            return False
        if not result.is_new_best:
            return False

        key = (result.score, result.mode)
        if session.last_forwarded == key:
            self.logger.debug(f"Suppressing duplicate score submission {key} for player {self.player_id}")
            return False

        session.last_forwarded = key
        return self.reporter.report(result)

    def sync_best_score(self, mode: Optional[Mode] = None) -> int:
        """
        Pull the stored best for a mode into the local cache.

        Args:
            mode: Mode to refresh; the selected mode if None

        Returns:
            Best score known locally after the refresh
        """
        mode = Mode(mode) if mode is not None else self._session.mode
        remote_best = 0
        if self.score_store is not None:
            try:
                remote_best = self.score_store.query_best_score(self.player_id, mode)
            except PersistenceError as e:
                self.logger.error(f"Failed to query best score for player {self.player_id}: {e}")
            except Exception as e:
                self.logger.error(f"Unexpected error querying best score for player {self.player_id}: {e}")
        return self.apply_best_score(mode, remote_best)

    def apply_best_score(self, mode: Mode, remote_best: int) -> int:
        """
        Merge a best score fetched elsewhere into the local cache.

        Args:
            mode: Mode the score belongs to
            remote_best: Best score reported by the score store

        Returns:
            Best score known locally after the merge
        """
        mode = Mode(mode)
        self.best_cache.update(mode, remote_best)
        best = self.best_cache.get(mode)
        if self._session.state in (SessionState.MENU, SessionState.GAME_OVER) and self._session.mode == mode:
            self._session.best_score = max(self._session.best_score, best)
        return best

    def snapshot(self) -> Dict[str, Any]:
        """
        Get a status summary of the live session.

        Returns:
            Dictionary describing state, score, lives, timer and question
        """
        session = self._session
        question = session.current_question
        return {
            'session_id': session.session_id,
            'state': session.state.value,
            'mode': session.mode.value,
            'score': session.score,
            'lives': session.lives,
            'max_lives': self.settings.starting_lives,
            'difficulty_scale': session.difficulty_scale,
            'time_remaining': session.time_remaining,
            'problem': question.problem_text if question else None,
            'options': list(question.options) if question else [],
            'best_score': max(session.best_score, self.best_cache.get(session.mode)),
            'new_best': self._last_result is not None and self._last_result.is_new_best,
        }

    def _register_miss(self, reason: str) -> None:
        """Take a life for a wrong answer or timeout."""
        session = self._session
        session.lives = max(0, session.lives - 1)
        self.logger.debug(
            f"Player {self.player_id} missed ({reason}), lives left: {session.lives}",
            extra={
                'event_type': 'session_miss',
                'player_id': self.player_id,
                'session_id': session.session_id,
                'reason': reason,
                'lives': session.lives,
                'timestamp': time.time()
            }
        )

        if session.lives == 0:
            self._enter_game_over()
            return

        self.countdown.reset()
        session.time_remaining = self.countdown.remaining
        session.current_question = self.generator.generate(session.mode)
        self._notify("miss")
        self._notify("question")

    def _enter_game_over(self) -> None:
        session = self._session
        session.state = SessionState.GAME_OVER
        self.ticker.stop("game over")

        self._last_result = GameOverResult(
            player_id=self.player_id,
            display_name=self.display_name,
            mode=session.mode,
            score=session.score,
            previous_best=session.best_score
        )
        self.best_cache.update(session.mode, session.score)

        self.logger.info(
            f"Game over for player {self.player_id}: score={session.score}, mode={session.mode.value}",
            extra={
                'event_type': 'session_game_over',
                'player_id': self.player_id,
                'session_id': session.session_id,
                'mode': session.mode.value,
                'score': session.score,
                'new_best': self._last_result.is_new_best,
                'timestamp': time.time()
            }
        )
        self.forward_result()
        self._notify("game_over")

    def _start_ticker(self) -> None:
        self.ticker.start(self.tick, self.settings.tick_interval, self._session.session_id)

    def _new_menu_session(self, mode: Mode) -> GameSession:
        return GameSession(
            session_id=next(self._session_ids),
            mode=mode,
            state=SessionState.MENU,
            lives=self.settings.starting_lives,
            difficulty_scale=1.0,
            time_remaining=self.settings.max_time,
            best_score=self.best_cache.get(mode)
        )

    def _notify(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, self._session)
            except Exception as e:
                self.logger.error(f"Game listener failed on '{event}' for player {self.player_id}: {e}")
