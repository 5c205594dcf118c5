#!/usr/bin/env python3
"""
Simple integration test for ConfigManager and GameController.
"""
import random

from speed_math.config_manager import ConfigManager
from speed_math.game_clock import ManualTicker
from speed_math.game_controller import GameController
from speed_math.models import GameSettings, Mode, SessionState
from speed_math.question_generator import QuestionGenerator


def main():
    print("Testing ConfigManager integration...")

    config = ConfigManager()
    print("✓ ConfigManager initialized successfully")

    settings = config.get_game_settings()
    assert isinstance(settings, GameSettings)
    assert settings.starting_lives == 5
    assert settings.tick_interval == 0.05
    print("✓ Default settings are correct")

    assert config.set_starting_lives(3)['success'] is True
    assert config.set_base_decay_rate(25)['success'] is True
    print("✓ Configuration settings work correctly")

    validation = config.validate_settings()
    assert validation["valid"] is True
    assert len(validation["issues"]) == 0
    print("✓ Settings validation works correctly")

    ticker = ManualTicker()
    controller = GameController(
        settings=config.get_game_settings(),
        generator=QuestionGenerator(random.Random(1)),
        ticker=ticker
    )
    controller.start(Mode.DIVISION)
    assert controller.session.lives == 3

    # 100 / 25 = 4 ticks to empty, the fifth times out
    ticker.fire(5)
    assert controller.session.lives == 2
    ticker.fire(100)
    assert controller.state == SessionState.GAME_OVER
    print("✓ Configured settings drive the game clock")

    print("\n🎉 All integration tests passed!")


if __name__ == "__main__":
    main()
