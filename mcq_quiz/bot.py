import discord
from discord import app_commands
from discord.ext import commands
import logging
import asyncio
from typing import Dict, List, Optional, Set
import os

from .data_manager import DataManager
from .config_manager import ConfigManager
from .exceptions import EmptyQuestionBankError, MalformedQuestionError
from .models import MAX_USER_NAME_LENGTH, AttemptRecord, Question
from .quiz_controller import (
    QuizController,
    QuizNotFoundError,
    SessionConflictError,
    SessionNotFoundError,
)
from .quiz_session import QuizSession, SessionPhase
from . import scoring

logger = logging.getLogger(__name__)

DEFAULT_COLOR = 0x667eea

# Discord embed limits
EMBED_TITLE_LIMIT = 256
EMBED_FIELD_LIMIT = 1024


def format_time(seconds: int) -> str:
    """Format seconds as m:ss."""
    minutes, secs = divmod(max(0, seconds), 60)
    return f"{minutes}:{secs:02d}"


def timer_color(remaining: int, time_limit: int) -> int:
    """Embed colour for the countdown: green above half, orange above a quarter, red below."""
    if time_limit <= 0:
        return DEFAULT_COLOR
    fraction = remaining / time_limit * 100
    if fraction > 50:
        return 0x4caf50
    if fraction > 25:
        return 0xff9800
    return 0xf44336


def clip(text: str, limit: int) -> str:
    """Shorten text to at most limit characters, ending with an ellipsis when cut."""
    if len(text) <= limit:
        return text
    return text[:limit - 1] + "…"


def join_within_limit(lines: List[str], limit: int) -> str:
    """
    Join whole lines with newlines, dropping trailing lines that do not fit.

    A final "…and N more" line counts toward the limit.
    """
    for kept in range(len(lines), 0, -1):
        text = "\n".join(lines[:kept])
        if kept < len(lines):
            text += f"\n…and {len(lines) - kept} more"
        if len(text) <= limit:
            return text
    return clip(lines[0], limit) if lines else ""


def option_letter(index: int) -> str:
    return chr(ord('A') + index)


def parse_option(option: str, option_count: int) -> Optional[int]:
    """
    Convert a letter (A, b, ...) or 1-based number to an option index.

    Returns:
        Zero-based index, or None if the input names no option
    """
    option = (option or "").strip()
    if not option:
        return None
    if option.isdigit():
        index = int(option) - 1
    elif len(option) == 1 and option.isalpha():
        index = ord(option.upper()) - ord('A')
    else:
        return None
    return index if 0 <= index < option_count else None


def build_question_embed(session: QuizSession, quiz_title: str) -> discord.Embed:
    """Render the current question with options, difficulty and countdown."""
    question = session.current_question
    remaining = session.timer_remaining

    if session.answered:
        color = 0x4caf50 if session.last_answer_correct() else 0xf44336
    else:
        color = timer_color(remaining, question.time_limit_seconds)

    embed = discord.Embed(
        title=f"🎯 Question {session.current_index + 1} of {session.total_questions}",
        description=question.text,
        color=color
    )
    embed.add_field(name="📚 Quiz", value=quiz_title, inline=True)
    embed.add_field(name="📊 Difficulty", value=question.difficulty.value.capitalize(), inline=True)
    embed.add_field(
        name="⏱️ Time Remaining",
        value=format_time(remaining) if session.timer_active else "Locked",
        inline=True
    )
    embed.add_field(
        name="Options",
        value="\n".join(
            _render_option(session, question, index) for index in range(len(question.options))
        ),
        inline=False
    )

    if session.answered:
        embed.add_field(name="Result", value=answer_feedback(session), inline=False)
        footer = "Use /next to finish the quiz" if session.is_last_question else "Use /next for the next question"
    else:
        footer = "Use /answer <letter> to lock in your answer"
    embed.set_footer(text=footer)
    return embed


def _render_option(session: QuizSession, question: Question, index: int) -> str:
    line = f"**{option_letter(index)}.** {question.options[index]}"
    if not session.answered:
        return line
    if index == question.correct_answer_index:
        return f"✅ {line}"
    if index == session.selected_answer:
        return f"❌ {line}"
    return line


def answer_feedback(session: QuizSession) -> str:
    """Verdict shown once a question is locked."""
    question = session.current_question
    if session.last_answer_correct():
        return "✅ Correct! Well done!"
    if session.timed_out:
        return f"⏰ Time's up! The correct answer is: **{question.correct_option}**"
    return f"❌ Incorrect. The correct answer is: **{question.correct_option}**"


def build_result_embed(attempt: AttemptRecord, quiz_title: str) -> discord.Embed:
    """Render the completion screen for a finished attempt."""
    embed = discord.Embed(
        title=clip(f"🎉 Quiz Completed, {attempt.user_name}!", EMBED_TITLE_LIMIT),
        description=f"**{quiz_title}**\n{scoring.performance_label(attempt.score, attempt.total_questions)}",
        color=0x00ff00
    )
    embed.add_field(
        name="Score",
        value=f"{attempt.score} / {attempt.total_questions} ({attempt.percentage}%)",
        inline=True
    )
    embed.add_field(
        name="Date Completed",
        value=attempt.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
        inline=True
    )
    embed.add_field(
        name="By Difficulty",
        value="\n".join(
            f"{difficulty.capitalize()}: {stats.correct}/{stats.total}"
            for difficulty, stats in attempt.difficulty_breakdown.items()
            if stats.total
        ) or "No questions",
        inline=False
    )
    embed.set_footer(text="Use /restart to try again or /history to see past results")
    return embed


def build_history_embed(attempts: List[AttemptRecord], stats: Dict[str, int]) -> discord.Embed:
    """Render the attempt history with aggregate statistics."""
    embed = discord.Embed(title="📊 Exam Results History", color=0x6699ff)

    if not attempts:
        embed.description = "No attempts yet. Complete a quiz to see your results here!"
        return embed

    embed.add_field(name="Total Attempts", value=str(stats['count']), inline=True)
    embed.add_field(name="Best Score", value=str(stats['best_score']), inline=True)
    embed.add_field(name="Average", value=f"{stats['average_percentage']}%", inline=True)

    lines = []
    for position, attempt in enumerate(attempts):
        badge = " 🆕 Latest" if position == 0 else ""
        lines.append(
            f"**{clip(attempt.user_name, MAX_USER_NAME_LENGTH)}** - {attempt.score}/{attempt.total_questions} "
            f"({attempt.percentage}%) {scoring.performance_label(attempt.score, attempt.total_questions)}"
            f" · {attempt.timestamp.strftime('%Y-%m-%d %H:%M')}{badge}"
        )
    embed.add_field(name="Recent Attempts", value=join_within_limit(lines, EMBED_FIELD_LIMIT), inline=False)
    embed.set_footer(text="Use /clear_history to remove all attempts")
    return embed


class QuizBot(commands.Bot):
    """Discord bot for timed multiple-choice quizzes"""

    def __init__(self, config=None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,  # Fallback prefix, mainly using slash commands
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}

        self.data_manager: Optional[DataManager] = None
        self.config_manager: Optional[ConfigManager] = None
        self.quiz_controller: Optional[QuizController] = None

        # Question message per player, edited as the countdown runs
        self._question_messages: Dict[int, discord.Message] = {}
        # Pending message edits, held until they finish
        self._edit_tasks: Set[asyncio.Task] = set()

    async def setup_hook(self):
        """Called when the bot is starting up"""
        try:
            logger.info("Setting up bot components...")

            self.config_manager = ConfigManager()
            if self.app_config:
                self.config_manager.apply_config(self.app_config)

            self.data_manager = DataManager(
                self.config_manager.get_quiz_directory(),
                default_time_limit=self.config_manager.get_default_time_limit()
            )
            await self.load_quiz_data()

            self.quiz_controller = QuizController(self.data_manager, self.config_manager)

            await self.setup_commands()

            logger.info("Bot setup completed successfully")

        except Exception as e:
            logger.error(f"Error during bot setup: {e}")
            raise

    async def load_quiz_data(self):
        """Load quiz files from the quizzes directory"""
        loaded_quizzes = self.data_manager.load_quiz_files()
        logger.info(f"Loaded {len(loaded_quizzes)} quiz files from {self.data_manager.quiz_directory}")
        for error in self.data_manager.get_load_errors():
            logger.warning(f"Quiz loading issue: {error}")

    async def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="quizzes", description="List the available quizzes")
        async def quizzes_command(interaction: discord.Interaction):
            await self.handle_quizzes(interaction)

        @self.tree.command(name="start", description="Start a timed quiz")
        async def start_command(
            interaction: discord.Interaction,
            quiz: str,
            name: Optional[app_commands.Range[str, 1, MAX_USER_NAME_LENGTH]] = None
        ):
            await self.handle_start(interaction, quiz, name)

        @self.tree.command(name="answer", description="Answer the current question (letter or number)")
        async def answer_command(interaction: discord.Interaction, option: str):
            await self.handle_answer(interaction, option)

        @self.tree.command(name="next", description="Go to the next question or finish the quiz")
        async def next_command(interaction: discord.Interaction):
            await self.handle_next(interaction)

        @self.tree.command(name="restart", description="Reset your quiz so you can start again")
        async def restart_command(interaction: discord.Interaction):
            await self.handle_restart(interaction)

        @self.tree.command(name="status", description="Show your quiz progress")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="stop", description="Stop your current quiz")
        async def stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        @self.tree.command(name="history", description="Show recent quiz results")
        async def history_command(interaction: discord.Interaction):
            await self.handle_history(interaction)

        @self.tree.command(name="clear_history", description="Delete all saved quiz results")
        async def clear_history_command(interaction: discord.Interaction):
            await self.handle_clear_history(interaction)

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

    async def close(self):
        if self.quiz_controller is not None:
            self.quiz_controller.shutdown()
        await super().close()

    # Command handlers

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        try:
            embed = discord.Embed(
                title="🎯 Quiz Bot Commands",
                description="Answer each question before its timer runs out",
                color=0x00ff00
            )
            embed.add_field(
                name="🎮 Quiz",
                value=(
                    "`/quizzes` - List available quizzes\n"
                    "`/start <quiz> [name]` - Start a quiz\n"
                    "`/answer <option>` - Answer with a letter (A-D) or number\n"
                    "`/next` - Next question, or finish after the last one\n"
                    "`/status` - Show your progress\n"
                    "`/restart` - Reset your quiz\n"
                    "`/stop` - Stop your quiz"
                ),
                inline=False
            )
            embed.add_field(
                name="📊 Results",
                value=(
                    "`/history` - Recent attempts and statistics\n"
                    "`/clear_history` - Delete all saved attempts"
                ),
                inline=False
            )
            embed.add_field(
                name="⚙️ Current Settings",
                value=f"```\n{self.config_manager.get_settings_summary()}\n```",
                inline=False
            )
            await interaction.response.send_message(embed=embed)

        except Exception as e:
            logger.error(f"Error in help command: {e}")
            await self.send_error_response(interaction, "Failed to display help", "❌ Help Error")

    async def handle_quizzes(self, interaction: discord.Interaction):
        """Handle /quizzes command"""
        try:
            available_quizzes = self.data_manager.get_available_quizzes()
            embed = discord.Embed(title="📚 Available Quizzes", color=0x6699ff)

            if not available_quizzes:
                embed.description = "No quiz files found. Add JSON files to the quizzes directory."
            for quiz_name in available_quizzes[:25]:
                bank = self.data_manager.get_quiz(quiz_name)
                counts = self.data_manager.get_difficulty_counts(quiz_name)
                embed.add_field(
                    name=f"{bank.title} (`{quiz_name}`)",
                    value=(
                        f"{len(bank.questions)} questions · "
                        f"Easy {counts['easy']} · Medium {counts['medium']} · Hard {counts['hard']}"
                    ),
                    inline=False
                )

            if self.data_manager.has_load_errors():
                embed.set_footer(text="Some quiz files had loading errors. Check logs for details.")

            await interaction.response.send_message(embed=embed)

        except Exception as e:
            logger.error(f"Error in quizzes command: {e}")
            await self.send_error_response(interaction, "Failed to list quizzes", "❌ Quiz List Error")

    async def handle_start(self, interaction: discord.Interaction, quiz_name: str, name: Optional[str] = None):
        """Handle /start command"""
        player_id = interaction.user.id
        try:
            session = self.quiz_controller.create_session(
                player_id,
                quiz_name,
                on_tick=lambda s, remaining: self._on_tick(player_id, s, remaining),
                on_time_up=lambda s: self._on_time_up(player_id, s)
            )
            user_name = name if name is not None else getattr(interaction.user, 'display_name', '')
            self.quiz_controller.start_session(player_id, user_name)

        except SessionConflictError:
            await self.send_warning_response(
                interaction,
                "You already have a quiz in progress. Use `/stop` or `/restart` first.",
                "⚠️ Quiz Already Running"
            )
            return
        except QuizNotFoundError as e:
            await self.send_error_response(interaction, str(e), "❌ Quiz Not Found")
            return
        except (EmptyQuestionBankError, MalformedQuestionError) as e:
            self.quiz_controller.end_session(player_id)
            await self.send_error_response(interaction, f"This quiz cannot be started: {e}", "❌ Invalid Quiz")
            return
        except Exception as e:
            logger.error(f"Error in start command: {e}", exc_info=True)
            await self.send_error_response(interaction, "Failed to start quiz", "❌ Start Error")
            return

        try:
            await interaction.response.send_message(
                embed=build_question_embed(session, self._quiz_title(player_id))
            )
            self._question_messages[player_id] = await interaction.original_response()
        except discord.HTTPException as e:
            logger.error(f"Failed to send first question for player {player_id}: {e}")

    async def handle_answer(self, interaction: discord.Interaction, option: str):
        """Handle /answer command"""
        player_id = interaction.user.id
        session = self.quiz_controller.get_session(player_id)
        if session is None or session.phase is not SessionPhase.IN_PROGRESS:
            await self.send_info_response(interaction, "No quiz in progress. Start one with `/start`.")
            return

        index = parse_option(option, len(session.current_question.options))
        if index is None:
            await self.send_warning_response(
                interaction,
                f"`{option}` is not an option. Use a letter from A to "
                f"{option_letter(len(session.current_question.options) - 1)}.",
                "⚠️ Unknown Option"
            )
            return

        if not self.quiz_controller.select_answer(player_id, index):
            await self.send_warning_response(
                interaction,
                "This question is already locked. Use `/next` to continue.",
                "⚠️ Answer Locked"
            )
            return

        try:
            embed = build_question_embed(session, self._quiz_title(player_id))
            await interaction.response.send_message(embed=embed)
            self._question_messages[player_id] = await interaction.original_response()
        except discord.HTTPException as e:
            logger.error(f"Failed to send answer feedback for player {player_id}: {e}")

    async def handle_next(self, interaction: discord.Interaction):
        """Handle /next command"""
        player_id = interaction.user.id
        session = self.quiz_controller.get_session(player_id)
        if session is None or session.phase is not SessionPhase.IN_PROGRESS:
            await self.send_info_response(interaction, "No quiz in progress. Start one with `/start`.")
            return

        if not self.quiz_controller.next_question(player_id):
            await self.send_warning_response(
                interaction,
                "Answer the current question first (or wait for the timer).",
                "⚠️ Question Still Open"
            )
            return

        try:
            if session.phase is SessionPhase.COMPLETED:
                self._question_messages.pop(player_id, None)
                await interaction.response.send_message(
                    embed=build_result_embed(session.last_attempt, self._quiz_title(player_id))
                )
            else:
                await interaction.response.send_message(
                    embed=build_question_embed(session, self._quiz_title(player_id))
                )
                self._question_messages[player_id] = await interaction.original_response()
        except discord.HTTPException as e:
            logger.error(f"Failed to send next step for player {player_id}: {e}")

    async def handle_restart(self, interaction: discord.Interaction):
        """Handle /restart command"""
        player_id = interaction.user.id
        try:
            self.quiz_controller.restart_session(player_id)
        except SessionNotFoundError:
            await self.send_info_response(interaction, "Nothing to restart. Start a quiz with `/start`.")
            return

        self._question_messages.pop(player_id, None)
        quiz_name = self.quiz_controller.get_quiz_name(player_id)
        await self.send_info_response(
            interaction,
            f"Your quiz has been reset. Use `/start {quiz_name}` to begin again.",
            "🔄 Quiz Reset"
        )

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        player_id = interaction.user.id
        self._question_messages.pop(player_id, None)
        if self.quiz_controller.end_session(player_id):
            await self.send_info_response(interaction, "Your quiz has been stopped.", "⏹️ Quiz Stopped")
        else:
            await self.send_info_response(interaction, "You have no quiz to stop.")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        try:
            progress = self.quiz_controller.get_session_progress(interaction.user.id)
            if progress is None:
                await self.send_info_response(interaction, "No quiz session. Start one with `/start`.")
                return

            embed = discord.Embed(
                title=f"Quiz Status - {progress['phase'].replace('_', ' ').title()}",
                description=f"**{progress['quiz_title']}**",
                color=0x00ff00 if progress['phase'] == SessionPhase.IN_PROGRESS.value else 0x6699ff
            )
            embed.add_field(
                name="📊 Progress",
                value=(
                    f"Question: {progress['current_question']}/{progress['total_questions']}\n"
                    f"Score: {progress['score']}"
                ),
                inline=True
            )
            if progress['timer_active']:
                embed.add_field(
                    name="⏰ Current Timer",
                    value=f"{format_time(progress['timer_remaining'])} remaining",
                    inline=True
                )
            await interaction.response.send_message(embed=embed, ephemeral=True)

        except Exception as e:
            logger.error(f"Error in status command: {e}")
            await self.send_error_response(interaction, "Failed to get quiz status", "❌ Status Error")

    async def handle_history(self, interaction: discord.Interaction):
        """Handle /history command"""
        try:
            embed = build_history_embed(
                self.quiz_controller.get_history(),
                self.quiz_controller.get_history_stats()
            )
            if not self.quiz_controller.attempt_store.is_durable:
                embed.add_field(
                    name="⚠️ Not Saved",
                    value="History could not be written to disk and will be lost on restart.",
                    inline=False
                )
            await interaction.response.send_message(embed=embed)

        except Exception as e:
            logger.error(f"Error in history command: {e}")
            await self.send_error_response(interaction, "Failed to load history", "❌ History Error")

    async def handle_clear_history(self, interaction: discord.Interaction):
        """Handle /clear_history command"""
        self.quiz_controller.clear_history()
        await self.send_info_response(interaction, "All saved attempts were deleted.", "🗑️ History Cleared")

    # Session hooks, called synchronously from timer ticks

    def _on_tick(self, player_id: int, session: QuizSession, remaining: int) -> None:
        # Expiry is refreshed by _on_time_up
        if remaining > 0 and (remaining % 5 == 0 or remaining <= 5):
            self._schedule_message_refresh(player_id, session)

    def _on_time_up(self, player_id: int, session: QuizSession) -> None:
        self._schedule_message_refresh(player_id, session)

    def _schedule_message_refresh(self, player_id: int, session: QuizSession) -> None:
        message = self._question_messages.get(player_id)
        if message is None:
            return
        embed = build_question_embed(session, self._quiz_title(player_id))
        task = asyncio.get_running_loop().create_task(self._edit_message(player_id, message, embed))
        self._edit_tasks.add(task)
        task.add_done_callback(self._edit_tasks.discard)

    async def _edit_message(self, player_id: int, message: discord.Message, embed: discord.Embed) -> None:
        try:
            await message.edit(embed=embed)
        except discord.HTTPException as e:
            logger.warning(f"Failed to update question message for player {player_id}: {e}")

    def _quiz_title(self, player_id: int) -> str:
        quiz_name = self.quiz_controller.get_quiz_name(player_id)
        bank = self.data_manager.get_quiz(quiz_name) if quiz_name else None
        return bank.title if bank else (quiz_name or "Quiz")

    # Responses

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        await self._send_ephemeral(interaction, message, title, 0xff0000)

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        await self._send_ephemeral(interaction, message, title, 0x6699ff)

    async def send_warning_response(self, interaction: discord.Interaction, message: str, title: str = "⚠️ Warning"):
        """Send formatted warning response to user"""
        await self._send_ephemeral(interaction, message, title, 0xffaa00)

    async def _send_ephemeral(self, interaction: discord.Interaction, message: str, title: str, color: int):
        try:
            embed = discord.Embed(title=title, description=message, color=color)
            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error(f"Failed to send response to user: {title}")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting MCQ Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
