"""
Configuration manager for Speed Math game settings and parameters.
"""
import logging
from dataclasses import replace
from typing import Optional, Dict, Any, List

from .models import GameSettings


class ConfigManager:
    """Manages game configuration settings and storage paths."""

    # Default configuration values
    DEFAULT_TICK_INTERVAL = 0.05
    DEFAULT_BASE_DECAY_RATE = 0.8
    DEFAULT_STARTING_LIVES = 5
    DEFAULT_DIFFICULTY_STEP = 0.05
    DEFAULT_MAX_DIFFICULTY = 3.0
    DEFAULT_SCORES_FILE = "./data/scores.json"

    # Validation limits
    MIN_TICK_INTERVAL = 0.01
    MAX_TICK_INTERVAL = 1.0
    MIN_DECAY_RATE = 0.1
    MAX_DECAY_RATE = 10.0
    MIN_LIVES = 1
    MAX_LIVES = 5
    MIN_DIFFICULTY_STEP = 0.0
    MAX_DIFFICULTY_STEP = 0.5
    MIN_MAX_DIFFICULTY = 1.0
    MAX_MAX_DIFFICULTY = 3.0

    def __init__(self):
        """Initialize ConfigManager with default settings."""
        self.logger = logging.getLogger(__name__)
        self._game_settings = GameSettings()
        self._scores_file = self.DEFAULT_SCORES_FILE

    def get_game_settings(self) -> GameSettings:
        """
        Get current game settings.

        Returns:
            Copy of the current GameSettings
        """
        return replace(self._game_settings)

    def _set_number(
        self,
        attribute: str,
        label: str,
        value: Any,
        minimum: float,
        maximum: float,
        integer: bool = False
    ) -> Dict[str, Any]:
        """
        Validate and store one numeric setting.

        Args:
            attribute: GameSettings field name
            label: Human-readable setting name
            value: Requested value
            minimum: Smallest accepted value
            maximum: Largest accepted value
            integer: Require an int rather than any real number

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        try:
            expected = (int,) if integer else (int, float)
            if isinstance(value, bool) or not isinstance(value, expected):
                error_msg = f"{label} must be {'an integer' if integer else 'a number'}, got {type(value).__name__}"
                self.logger.error(error_msg)
                return {
                    'success': False,
                    'error': error_msg,
                    'user_message': f"❌ Invalid input: Expected a number, got {type(value).__name__}"
                }

            if value < minimum or value > maximum:
                error_msg = f"{label} must be between {minimum} and {maximum}, got {value}"
                self.logger.error(error_msg)
                return {
                    'success': False,
                    'error': error_msg,
                    'user_message': f"❌ {label} out of range: use a value between {minimum} and {maximum}"
                }

            setattr(self._game_settings, attribute, value if integer else float(value))
            self.logger.info(f"{label} set to {value}")
            return {
                'success': True,
                'message': f"{label} set to {value}",
                'user_message': f"✅ {label} set to {value}"
            }

        except Exception as e:
            error_msg = f"Unexpected error setting {label.lower()}: {e}"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': f"❌ An unexpected error occurred while setting {label.lower()}"
            }

    def set_tick_interval(self, seconds: float) -> Dict[str, Any]:
        """Set the time between countdown ticks."""
        return self._set_number(
            'tick_interval', "Tick interval", seconds,
            self.MIN_TICK_INTERVAL, self.MAX_TICK_INTERVAL
        )

    def set_base_decay_rate(self, rate: float) -> Dict[str, Any]:
        """Set how much of the countdown one tick removes at difficulty 1.0."""
        return self._set_number(
            'base_decay_rate', "Decay rate", rate,
            self.MIN_DECAY_RATE, self.MAX_DECAY_RATE
        )

    def set_starting_lives(self, lives: int) -> Dict[str, Any]:
        """Set the number of lives a new session starts with."""
        return self._set_number(
            'starting_lives', "Starting lives", lives,
            self.MIN_LIVES, self.MAX_LIVES, integer=True
        )

    def set_difficulty_step(self, step: float) -> Dict[str, Any]:
        """Set how much each correct answer speeds up the countdown."""
        return self._set_number(
            'difficulty_step', "Difficulty step", step,
            self.MIN_DIFFICULTY_STEP, self.MAX_DIFFICULTY_STEP
        )

    def set_max_difficulty(self, ceiling: float) -> Dict[str, Any]:
        """Set the ceiling of the difficulty multiplier."""
        return self._set_number(
            'max_difficulty', "Maximum difficulty", ceiling,
            self.MIN_MAX_DIFFICULTY, self.MAX_MAX_DIFFICULTY
        )

    def set_scores_file(self, path: str) -> Dict[str, Any]:
        """
        Set the JSON file used by the score store.

        Args:
            path: File path for stored scores

        Returns:
            Dictionary with success status, error message, and user-friendly message
        """
        if not isinstance(path, str) or not path.strip():
            error_msg = "Scores file must be a non-empty path string"
            self.logger.error(error_msg)
            return {
                'success': False,
                'error': error_msg,
                'user_message': "❌ Scores file path cannot be empty"
            }

        self._scores_file = path
        self.logger.info(f"Scores file set to {path}")
        return {
            'success': True,
            'message': f"Scores file set to {path}",
            'user_message': f"✅ Scores will be stored in {path}"
        }

    def get_scores_file(self) -> str:
        """Get the score store file path."""
        return self._scores_file

    def apply_config(self, config: Optional[Dict[str, Any]]) -> List[str]:
        """
        Apply the 'game' and 'storage' sections of a loaded config.json.

        Invalid values are logged and skipped; defaults stay in effect.

        Args:
            config: Parsed configuration dictionary

        Returns:
            List of error messages for rejected values
        """
        errors = []
        if not config:
            return errors

        game_config = config.get('game', {})
        setters = {
            'tick_interval': self.set_tick_interval,
            'base_decay_rate': self.set_base_decay_rate,
            'starting_lives': self.set_starting_lives,
            'difficulty_step': self.set_difficulty_step,
            'max_difficulty': self.set_max_difficulty,
        }
        for key, setter in setters.items():
            if key in game_config:
                result = setter(game_config[key])
                if not result['success']:
                    errors.append(result['error'])

        scores_file = config.get('storage', {}).get('scores_file')
        if scores_file is not None:
            result = self.set_scores_file(scores_file)
            if not result['success']:
                errors.append(result['error'])

        if errors:
            self.logger.warning(f"Configuration applied with {len(errors)} rejected values")
        else:
            self.logger.info("Configuration applied successfully")
        return errors

    def reset_to_defaults(self) -> None:
        """Reset all settings to their default values."""
        self._game_settings = GameSettings(
            tick_interval=self.DEFAULT_TICK_INTERVAL,
            base_decay_rate=self.DEFAULT_BASE_DECAY_RATE,
            starting_lives=self.DEFAULT_STARTING_LIVES,
            difficulty_step=self.DEFAULT_DIFFICULTY_STEP,
            max_difficulty=self.DEFAULT_MAX_DIFFICULTY
        )
        self._scores_file = self.DEFAULT_SCORES_FILE
        self.logger.info("All settings reset to default values")

    def validate_settings(self) -> Dict[str, Any]:
        """
        Validate current settings and return validation results.

        Returns:
            Dictionary with validation results and any issues found
        """
        validation_result = {
            "valid": True,
            "issues": []
        }
        settings = self._game_settings

        checks = [
            ("tick interval", settings.tick_interval, self.MIN_TICK_INTERVAL, self.MAX_TICK_INTERVAL),
            ("decay rate", settings.base_decay_rate, self.MIN_DECAY_RATE, self.MAX_DECAY_RATE),
            ("starting lives", settings.starting_lives, self.MIN_LIVES, self.MAX_LIVES),
            ("difficulty step", settings.difficulty_step, self.MIN_DIFFICULTY_STEP, self.MAX_DIFFICULTY_STEP),
            ("maximum difficulty", settings.max_difficulty, self.MIN_MAX_DIFFICULTY, self.MAX_MAX_DIFFICULTY),
        ]
        for name, value, minimum, maximum in checks:
            if not isinstance(value, (int, float)) or value < minimum or value > maximum:
                validation_result["valid"] = False
                validation_result["issues"].append(f"Invalid {name}: {value}")

        if not isinstance(self._scores_file, str) or not self._scores_file.strip():
            validation_result["valid"] = False
            validation_result["issues"].append(f"Invalid scores file: {self._scores_file}")

        return validation_result

    def get_settings_summary(self) -> str:
        """
        Get a formatted summary of current settings.

        Returns:
            Human-readable string describing current settings
        """
        settings = self._game_settings
        seconds_per_question = (
            settings.max_time / settings.base_decay_rate * settings.tick_interval
        )
        return (
            f"Game Settings:\n"
            f"• Lives: {settings.starting_lives}\n"
            f"• Tick: {settings.tick_interval * 1000:.0f} ms, decay {settings.base_decay_rate} per tick\n"
            f"• Time per question at start: {seconds_per_question:.1f} seconds\n"
            f"• Speed-up: +{settings.difficulty_step} per correct answer, up to x{settings.max_difficulty}\n"
            f"• Scores File: {self._scores_file}"
        )
