"""
Unit tests for ConfigManager class.
"""
import unittest
import logging

from speed_math.config_manager import ConfigManager
from speed_math.models import GameSettings


class TestConfigManager(unittest.TestCase):
    """Test cases for ConfigManager functionality."""

    def setUp(self):
        """Set up test fixtures before each test method."""
        self.config_manager = ConfigManager()

        # Suppress logging during tests
        logging.disable(logging.CRITICAL)

    def tearDown(self):
        """Clean up after each test method."""
        logging.disable(logging.NOTSET)

    def test_initialization_with_defaults(self):
        """Test that ConfigManager initializes with correct default values."""
        settings = self.config_manager.get_game_settings()

        self.assertIsInstance(settings, GameSettings)
        self.assertEqual(settings.tick_interval, 0.05)
        self.assertEqual(settings.base_decay_rate, 0.8)
        self.assertEqual(settings.starting_lives, 5)
        self.assertEqual(settings.difficulty_step, 0.05)
        self.assertEqual(settings.max_difficulty, 3.0)
        self.assertEqual(self.config_manager.get_scores_file(), "./data/scores.json")

    def test_get_game_settings_returns_copy(self):
        """Test that callers cannot mutate the managed settings."""
        settings = self.config_manager.get_game_settings()
        settings.starting_lives = 1

        self.assertEqual(self.config_manager.get_game_settings().starting_lives, 5)

    def test_set_tick_interval_valid_values(self):
        """Test setting valid tick intervals, including the bounds."""
        for value in (0.01, 0.1, 1.0):
            result = self.config_manager.set_tick_interval(value)
            self.assertTrue(result['success'])
            self.assertEqual(self.config_manager.get_game_settings().tick_interval, value)

    def test_set_tick_interval_invalid_values(self):
        """Test that out-of-range tick intervals are rejected."""
        for value in (0.0, 0.005, 1.5, -1):
            result = self.config_manager.set_tick_interval(value)
            self.assertFalse(result['success'])
            self.assertIn('out of range', result['user_message'])

        self.assertEqual(self.config_manager.get_game_settings().tick_interval, 0.05)

    def test_set_base_decay_rate(self):
        """Test setting the decay rate accepts ints and stores floats."""
        result = self.config_manager.set_base_decay_rate(2)

        self.assertTrue(result['success'])
        self.assertEqual(self.config_manager.get_game_settings().base_decay_rate, 2.0)
        self.assertIsInstance(self.config_manager.get_game_settings().base_decay_rate, float)

        self.assertFalse(self.config_manager.set_base_decay_rate(0.01)['success'])
        self.assertFalse(self.config_manager.set_base_decay_rate(11)['success'])

    def test_set_starting_lives(self):
        """Test lives must be an integer between one and five."""
        self.assertTrue(self.config_manager.set_starting_lives(3)['success'])
        self.assertEqual(self.config_manager.get_game_settings().starting_lives, 3)

        for value in (0, 6, 2.5):
            self.assertFalse(self.config_manager.set_starting_lives(value)['success'])
        self.assertEqual(self.config_manager.get_game_settings().starting_lives, 3)

    def test_set_difficulty_values(self):
        """Test difficulty step and ceiling bounds."""
        self.assertTrue(self.config_manager.set_difficulty_step(0.0)['success'])
        self.assertTrue(self.config_manager.set_difficulty_step(0.5)['success'])
        self.assertFalse(self.config_manager.set_difficulty_step(0.6)['success'])

        self.assertTrue(self.config_manager.set_max_difficulty(2.0)['success'])
        self.assertFalse(self.config_manager.set_max_difficulty(0.5)['success'])
        self.assertFalse(self.config_manager.set_max_difficulty(3.5)['success'])
        self.assertEqual(self.config_manager.get_game_settings().max_difficulty, 2.0)

    def test_invalid_types_rejected(self):
        """Test that non-numeric input is rejected with a type message."""
        for value in ("fast", None, True, [1]):
            result = self.config_manager.set_tick_interval(value)
            self.assertFalse(result['success'])
            self.assertIn('Expected a number', result['user_message'])

    def test_set_scores_file(self):
        """Test setting the scores file path."""
        result = self.config_manager.set_scores_file("/tmp/scores.json")

        self.assertTrue(result['success'])
        self.assertEqual(self.config_manager.get_scores_file(), "/tmp/scores.json")

        for value in ("", "   ", None, 5):
            self.assertFalse(self.config_manager.set_scores_file(value)['success'])
        self.assertEqual(self.config_manager.get_scores_file(), "/tmp/scores.json")

    def test_apply_config(self):
        """Test applying the game and storage sections of config.json."""
        errors = self.config_manager.apply_config({
            'game': {
                'tick_interval': 0.1,
                'base_decay_rate': 1.6,
                'starting_lives': 3
            },
            'storage': {'scores_file': './scores/test.json'}
        })

        settings = self.config_manager.get_game_settings()
        self.assertEqual(errors, [])
        self.assertEqual(settings.tick_interval, 0.1)
        self.assertEqual(settings.base_decay_rate, 1.6)
        self.assertEqual(settings.starting_lives, 3)
        self.assertEqual(settings.difficulty_step, 0.05)
        self.assertEqual(self.config_manager.get_scores_file(), './scores/test.json')

    def test_apply_config_reports_rejected_values(self):
        """Test that invalid entries are reported and defaults kept."""
        errors = self.config_manager.apply_config({
            'game': {'starting_lives': 9, 'max_difficulty': 2.5}
        })

        self.assertEqual(len(errors), 1)
        self.assertIn("Starting lives", errors[0])
        self.assertEqual(self.config_manager.get_game_settings().starting_lives, 5)
        self.assertEqual(self.config_manager.get_game_settings().max_difficulty, 2.5)

    def test_apply_empty_config(self):
        """Test that an empty config changes nothing."""
        self.assertEqual(self.config_manager.apply_config(None), [])
        self.assertEqual(self.config_manager.apply_config({}), [])
        self.assertEqual(self.config_manager.get_game_settings(), GameSettings())

    def test_reset_to_defaults(self):
        """Test resetting all settings to defaults."""
        self.config_manager.set_starting_lives(2)
        self.config_manager.set_tick_interval(0.5)
        self.config_manager.set_scores_file("/tmp/other.json")

        self.config_manager.reset_to_defaults()

        settings = self.config_manager.get_game_settings()
        self.assertEqual(settings.starting_lives, 5)
        self.assertEqual(settings.tick_interval, 0.05)
        self.assertEqual(self.config_manager.get_scores_file(), "./data/scores.json")

    def test_validate_settings_valid(self):
        """Test validation with valid settings."""
        result = self.config_manager.validate_settings()

        self.assertTrue(result['valid'])
        self.assertEqual(result['issues'], [])

    def test_validate_settings_invalid(self):
        """Test validation catches values set behind the setters."""
        self.config_manager._game_settings.starting_lives = 0
        self.config_manager._game_settings.tick_interval = 5.0

        result = self.config_manager.validate_settings()

        self.assertFalse(result['valid'])
        self.assertEqual(len(result['issues']), 2)

    def test_get_settings_summary(self):
        """Test the settings summary text."""
        summary = self.config_manager.get_settings_summary()

        self.assertTrue(summary.startswith("Game Settings:\n"))
        self.assertIn("Lives: 5", summary)
        self.assertIn("Time per question at start", summary)
        self.assertIn("./data/scores.json", summary)


if __name__ == '__main__':
    unittest.main()
