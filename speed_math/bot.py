import discord
from discord import app_commands
from discord.ext import commands
import logging
import asyncio
import os
from typing import Callable, Dict, Optional, Set

from .config_manager import ConfigManager
from .data_manager import JsonScoreStore, PersistenceError
from .game_clock import AsyncTicker
from .game_controller import GameController
from .models import GameSession, Mode, Question, SessionState

logger = logging.getLogger(__name__)

MODE_CHOICES = [
    app_commands.Choice(name=mode.value.capitalize(), value=mode.value)
    for mode in Mode
]

COLOR_PLAYING = 0x00ff00
COLOR_PAUSED = 0xffaa00
COLOR_GAME_OVER = 0xff0000
COLOR_INFO = 0x6699ff


def render_time_bar(time_remaining: float, max_time: float = 100.0, width: int = 10) -> str:
    """Render the countdown as a text bar."""
    filled = int(round(width * max(0.0, min(time_remaining, max_time)) / max_time))
    return "█" * filled + "░" * (width - filled)


def render_lives(lives: int, max_lives: int) -> str:
    return "❤️" * lives + "🖤" * max(0, max_lives - lives)


def build_board_embed(snapshot: dict) -> discord.Embed:
    """
    Build the game board embed for a session snapshot.

    Args:
        snapshot: Output of GameController.snapshot()

    Returns:
        Embed showing the question, lives, score and timer
    """
    state = snapshot['state']
    mode_name = snapshot['mode'].capitalize()

    if state == SessionState.GAME_OVER.value:
        embed = discord.Embed(
            title="💥 Game Over",
            description=f"Final score: **{snapshot['score']}**",
            color=COLOR_GAME_OVER
        )
        if snapshot.get('new_best'):
            embed.add_field(name="🏆 New Personal Best!", value=f"{mode_name}: {snapshot['score']}", inline=False)
        embed.set_footer(text="Use /play to try again or /quit to return to the menu")
        return embed

    if state == SessionState.MENU.value:
        embed = discord.Embed(
            title="🧮 Speed Math",
            description="How fast can you calculate? Use `/play` to start.",
            color=COLOR_INFO
        )
        embed.add_field(name="Mode", value=mode_name, inline=True)
        embed.add_field(name="🏆 Best", value=str(snapshot['best_score']), inline=True)
        return embed

    paused = state == SessionState.PAUSED.value
    embed = discord.Embed(
        title=f"{'⏸️ Paused' if paused else '🧮 Speed Math'} - {mode_name}",
        description=f"# {snapshot['problem']}",
        color=COLOR_PAUSED if paused else COLOR_PLAYING
    )
    embed.add_field(name="Score", value=str(snapshot['score']), inline=True)
    embed.add_field(name="Lives", value=render_lives(snapshot['lives'], snapshot['max_lives']), inline=True)
    embed.add_field(name="🏆 Best", value=str(snapshot['best_score']), inline=True)
    embed.add_field(name="⏱️ Time", value=render_time_bar(snapshot['time_remaining']), inline=False)
    embed.set_footer(text="Use /resume to continue" if paused else f"Speed x{snapshot['difficulty_scale']:.2f}")
    return embed


class AnswerButton(discord.ui.Button):
    """One answer option on the game board."""

    def __init__(self, bot: "SpeedMathBot", owner_id: int, session_id: int, question: Question, index: int):
        super().__init__(label=str(question.options[index]), style=discord.ButtonStyle.primary, row=0)
        self.bot = bot
        self.owner_id = owner_id
        self.session_id = session_id
        self.question = question
        self.index = index

    async def callback(self, interaction: discord.Interaction):
        await self.bot.handle_answer(interaction, self.owner_id, self.session_id, self.question, self.index)


class AnswerView(discord.ui.View):
    """Three answer buttons for the current question."""

    def __init__(self, bot: "SpeedMathBot", owner_id: int, session: GameSession):
        super().__init__(timeout=None)
        question = session.current_question
        if question is None:
            return
        for index in range(len(question.options)):
            self.add_item(AnswerButton(bot, owner_id, session.session_id, question, index))


class SpeedMathBot(commands.Bot):
    """Discord bot for playing Speed Math drills"""

    def __init__(self, config=None, ticker_factory: Callable[[str], object] = AsyncTicker):
        intents = discord.Intents.none()
        intents.guilds = True

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}
        self.ticker_factory = ticker_factory

        self.config_manager: ConfigManager = ConfigManager()
        self.score_store: Optional[JsonScoreStore] = None

        # One controller and one board message per Discord user
        self.controllers: Dict[int, GameController] = {}
        self.boards: Dict[int, discord.Message] = {}
        self._pending_refresh: Set[int] = set()

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")
            self.config_manager.apply_config(self.app_config)
            self.score_store = JsonScoreStore(self.config_manager.get_scores_file())
            await self.setup_commands()
            logger.info("Bot setup completed successfully")
        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def setup_commands(self):
        """Register all slash commands"""
        @self.tree.command(name="help", description="Display available commands and game rules")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="play", description="Start a Speed Math game")
        @app_commands.choices(mode=MODE_CHOICES)
        async def play_command(interaction: discord.Interaction, mode: app_commands.Choice[str]):
            await self.handle_play(interaction, mode.value)

        @self.tree.command(name="pause", description="Pause your game")
        async def pause_command(interaction: discord.Interaction):
            await self.handle_pause(interaction)

        @self.tree.command(name="resume", description="Resume your paused game")
        async def resume_command(interaction: discord.Interaction):
            await self.handle_resume(interaction)

        @self.tree.command(name="quit", description="Abandon your game and return to the menu")
        async def quit_command(interaction: discord.Interaction):
            await self.handle_quit(interaction)

        @self.tree.command(name="status", description="Show your current game")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="best", description="Show your best score for a mode")
        @app_commands.choices(mode=MODE_CHOICES)
        async def best_command(interaction: discord.Interaction, mode: app_commands.Choice[str]):
            await self.handle_best(interaction, mode.value)

        @self.tree.command(name="leaderboard", description="Show the top scores")
        @app_commands.choices(mode=MODE_CHOICES)
        async def leaderboard_command(interaction: discord.Interaction, mode: Optional[app_commands.Choice[str]] = None):
            await self.handle_leaderboard(interaction, mode.value if mode else None)

        @self.tree.command(name="history", description="Show your score history for a mode")
        @app_commands.choices(mode=MODE_CHOICES)
        async def history_command(interaction: discord.Interaction, mode: app_commands.Choice[str]):
            await self.handle_history(interaction, mode.value)

        logger.info("Slash commands registered successfully")

    async def on_ready(self):
        """Called when the bot has successfully connected to Discord"""
        logger.info(f"Bot is ready! Logged in as {self.user}")
        try:
            synced = await self.tree.sync()
            logger.info(f"Synced {len(synced)} slash commands")
        except discord.HTTPException as e:
            logger.error(f"Failed to sync slash commands: {e}")

    async def on_error(self, event, *args, **kwargs):
        """Handle general bot errors"""
        logger.error(f"An error occurred in event {event}", exc_info=True)

    def get_controller(self, user: discord.abc.User) -> GameController:
        """
        Get the game controller for a user, creating it on first use.

        Args:
            user: Discord user who owns the game

        Returns:
            That user's GameController
        """
        controller = self.controllers.get(user.id)
        if controller is None:
            controller = GameController(
                settings=self.config_manager.get_game_settings(),
                player_id=str(user.id),
                display_name=getattr(user, 'display_name', None) or str(user),
                ticker=self.ticker_factory(str(user.id)),
                score_store=self.score_store
            )
            controller.add_listener(
                lambda event, session, user_id=user.id: self._on_game_event(user_id, event, session)
            )
            self.controllers[user.id] = controller
        return controller

    def _on_game_event(self, user_id: int, event: str, session: GameSession) -> None:
        """Schedule a board refresh; bursts of events collapse into one edit."""
        if user_id in self._pending_refresh or user_id not in self.boards:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._pending_refresh.add(user_id)
        loop.create_task(self._refresh_board(user_id))

    async def _refresh_board(self, user_id: int) -> None:
        try:
            message = self.boards.get(user_id)
            controller = self.controllers.get(user_id)
            if message is None or controller is None:
                return
            await message.edit(**self._board_payload(user_id, controller))
        except discord.HTTPException as e:
            logger.error(f"Failed to refresh game board for user {user_id}: {e}")
        finally:
            self._pending_refresh.discard(user_id)

    def _board_payload(self, user_id: int, controller: GameController) -> dict:
        view = None
        if controller.state == SessionState.PLAYING:
            view = AnswerView(self, user_id, controller.session)
        return {'embed': build_board_embed(controller.snapshot()), 'view': view}

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            embed = discord.Embed(
                title="🧮 Speed Math Commands",
                description="Answer as many problems as you can before your lives run out.",
                color=COLOR_PLAYING
            )
            embed.add_field(
                name="🎮 Game",
                value=(
                    "`/play <mode>` - Start a game (addition, subtraction, multiplication, division)\n"
                    "`/pause` - Pause your game\n"
                    "`/resume` - Resume your game\n"
                    "`/quit` - Abandon your game\n"
                    "`/status` - Show your current game"
                ),
                inline=False
            )
            embed.add_field(
                name="🏆 Scores",
                value=(
                    "`/best <mode>` - Your best score\n"
                    "`/leaderboard [mode]` - Top players\n"
                    "`/history <mode>` - Your past scores"
                ),
                inline=False
            )
            embed.add_field(
                name="⚙️ Rules",
                value=f"```\n{self.config_manager.get_settings_summary()}\n```",
                inline=False
            )
            await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Error in help command: {e}")

    async def handle_play(self, interaction: discord.Interaction, mode: str):
        """Handle /play command"""
        try:
            try:
                selected_mode = Mode(mode)
            except ValueError:
                await self.send_error_response(interaction, f"Unknown mode: {mode}", "❌ Invalid Mode")
                return

            controller = self.get_controller(interaction.user)
            if controller.state in (SessionState.PLAYING, SessionState.PAUSED):
                await self.send_warning_response(
                    interaction,
                    "You already have a game in progress. Use `/resume` or `/quit` first.",
                    "⚠️ Game In Progress"
                )
                return

            user_id = interaction.user.id
            best = await self.fetch_best_score(controller, selected_mode)
            self.boards.pop(user_id, None)

            # The await above lets another /play from the same user get in first
            if not controller.select_mode(selected_mode) or not controller.start(selected_mode):
                await self.send_warning_response(
                    interaction,
                    "You already have a game in progress. Use `/resume` or `/quit` first.",
                    "⚠️ Game In Progress"
                )
                return
            logger.debug(f"Starting {selected_mode.value} for user {user_id} with best {best}")

            payload = self._board_payload(user_id, controller)
            if payload['view'] is None:
                del payload['view']
            await interaction.response.send_message(**payload)
            self.boards[user_id] = await interaction.original_response()

        except discord.HTTPException as e:
            logger.error(f"Discord API error in play command: {e}")
            controller = self.controllers.get(interaction.user.id)
            if controller is not None:
                controller.abandon()
        except Exception as e:
            logger.error(f"Error in play command: {e}")
            await self.send_error_response(interaction, "Failed to start game", "❌ Game Start Error")

    async def handle_answer(
        self,
        interaction: discord.Interaction,
        owner_id: int,
        session_id: int,
        question: Question,
        index: int
    ):
        """Handle a press on one of the answer buttons"""
        try:
            if interaction.user.id != owner_id:
                await self.send_warning_response(interaction, "This isn't your game. Use `/play` to start your own.")
                return

            controller = self.controllers.get(owner_id)
            if controller is None or controller.session.session_id != session_id:
                await self.send_info_response(interaction, "That game has ended.")
                return

            # The pressed board may still show a question that has been replaced
            if controller.session.current_question is not question:
                logger.debug(f"Ignoring press on a replaced question from user {owner_id}")
                await self.send_info_response(interaction, "Too late, that question has moved on.")
                return

            outcome = controller.select(index)
            logger.debug(f"Answer from user {owner_id}: option {index} -> {outcome.value}")
            await interaction.response.defer()

        except discord.HTTPException as e:
            logger.error(f"Failed to acknowledge answer from user {owner_id}: {e}")

    async def handle_pause(self, interaction: discord.Interaction):
        """Handle /pause command"""
        controller = self.controllers.get(interaction.user.id)
        if controller is None or not controller.pause():
            await self.send_info_response(interaction, "You have no running game to pause.", "ℹ️ Nothing To Pause")
            return
        await self.send_info_response(interaction, "Game paused. Use `/resume` to continue.", "⏸️ Paused")

    async def handle_resume(self, interaction: discord.Interaction):
        """Handle /resume command"""
        controller = self.controllers.get(interaction.user.id)
        if controller is None or not controller.resume():
            await self.send_info_response(interaction, "You have no paused game.", "ℹ️ Nothing To Resume")
            return
        await self.send_info_response(interaction, "Game resumed!", "▶️ Resumed")

    async def handle_quit(self, interaction: discord.Interaction):
        """Handle /quit command"""
        controller = self.controllers.get(interaction.user.id)
        if controller is None or not controller.abandon():
            await self.send_info_response(interaction, "You are already at the menu.", "ℹ️ No Game")
            return
        await self.send_info_response(interaction, "Game abandoned. Use `/play` to start again.", "🛑 Game Abandoned")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        try:
            controller = self.get_controller(interaction.user)
            await interaction.response.send_message(
                embed=build_board_embed(controller.snapshot()),
                ephemeral=True
            )
        except discord.HTTPException as e:
            logger.error(f"Error in status command: {e}")

    async def fetch_best_score(self, controller: GameController, mode: Mode) -> int:
        """
        Query the stored best off the event loop and merge it into the controller.

        Storage failures are logged; the locally cached best is used instead.

        Args:
            controller: Controller of the player to refresh
            mode: Mode to refresh

        Returns:
            Best score known after the refresh
        """
        remote_best = 0
        if controller.score_store is not None:
            try:
                remote_best = await asyncio.to_thread(
                    controller.score_store.query_best_score, controller.player_id, mode
                )
            except PersistenceError as e:
                logger.error(f"Failed to query best score for user {controller.player_id}: {e}")
            except Exception as e:
                logger.error(f"Unexpected error querying best score for user {controller.player_id}: {e}")
        return controller.apply_best_score(mode, remote_best)

    async def handle_best(self, interaction: discord.Interaction, mode: str):
        """Handle /best command"""
        selected_mode = Mode(mode)
        controller = self.get_controller(interaction.user)
        best = await self.fetch_best_score(controller, selected_mode)
        await self.send_info_response(
            interaction,
            f"Your best {selected_mode.value} score is **{best}**.",
            "🏆 Personal Best"
        )

    async def handle_leaderboard(self, interaction: discord.Interaction, mode: Optional[str] = None):
        """Handle /leaderboard command"""
        try:
            entries = await asyncio.to_thread(
                self.score_store.get_leaderboard, Mode(mode) if mode else None, 20
            )
        except PersistenceError as e:
            logger.error(f"Failed to load leaderboard: {e}")
            await self.send_error_response(interaction, "Leaderboard is unavailable right now.", "❌ Leaderboard Error")
            return

        title = f"🏆 Leaderboard - {mode.capitalize() if mode else 'All Modes'}"
        if not entries:
            await self.send_info_response(interaction, "No scores yet. Be the first!", title)
            return

        lines = []
        for rank, entry in enumerate(entries, start=1):
            crown = "👑 " if rank == 1 else f"{rank}. "
            suffix = "" if mode else f" ({entry.mode.value})"
            lines.append(f"{crown}**{entry.display_name}** - {entry.score}{suffix}")

        embed = discord.Embed(title=title, description="\n".join(lines), color=COLOR_INFO)
        try:
            await interaction.response.send_message(embed=embed)
        except discord.HTTPException as e:
            logger.error(f"Failed to send leaderboard: {e}")

    async def handle_history(self, interaction: discord.Interaction, mode: str):
        """Handle /history command"""
        selected_mode = Mode(mode)
        try:
            history = await asyncio.to_thread(
                self.score_store.query_history, str(interaction.user.id), selected_mode
            )
        except PersistenceError as e:
            logger.error(f"Failed to load score history: {e}")
            await self.send_error_response(interaction, "Score history is unavailable right now.", "❌ History Error")
            return

        title = f"📈 Score History - {selected_mode.value.capitalize()}"
        if not history:
            await self.send_info_response(interaction, "No games recorded yet for this mode.", title)
            return

        recent = history[-10:]
        lines = [
            f"Game {len(history) - len(recent) + number}: **{entry.score}** ({entry.created_at:%b %d, %Y})"
            for number, entry in enumerate(recent, start=1)
        ]
        embed = discord.Embed(title=title, description="\n".join(lines), color=COLOR_INFO)
        embed.add_field(name="Best", value=str(max(entry.score for entry in history)), inline=True)
        embed.add_field(name="Games", value=str(len(history)), inline=True)
        try:
            await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Failed to send score history: {e}")

    async def _send_embed(self, interaction: discord.Interaction, message: str, title: str, color: int):
        try:
            embed = discord.Embed(title=title, description=message, color=color)
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error(f"Failed to send response to user: {title}")

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        await self._send_embed(interaction, message, title, COLOR_GAME_OVER)

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        await self._send_embed(interaction, message, title, COLOR_INFO)

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send formatted warning response to user"""
        await self._send_embed(interaction, message, title, COLOR_PAUSED)

    async def close(self):
        for controller in self.controllers.values():
            controller.ticker.stop("shutdown")
        await super().close()


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = SpeedMathBot(config)

    try:
        logger.info("Starting Speed Math bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
