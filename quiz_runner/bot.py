"""
Discord front end for the quiz runner.

Slash commands configure and control quizzes; questions are posted as embeds
with one button per option. Everything shown here is rendered from session
snapshots and summaries handed over by the QuizController.
"""
import discord
from discord.ext import commands
import logging
import os
from typing import Any, Dict, List, Optional

from .config_manager import ConfigManager
from .data_manager import DataManager, DEFAULT_QUESTION_DIRECTORY, DEFAULT_QUESTION_SOURCES
from .models import AnswerRecord, QuizSummary, SessionSnapshot, TimerLevel
from .quiz_controller import DEFAULT_ADVANCE_DELAY, QuizController, QuizPresenter
from .scorer import review_options

logger = logging.getLogger(__name__)

OPTION_LETTERS = "ABCDEFGHIJ"
REVIEW_QUESTIONS_PER_EMBED = 10
MAX_EMBEDS_PER_MESSAGE = 10
MAX_FIELD_LENGTH = 1024

TIMER_COLORS = {
    TimerLevel.NORMAL: 0x00ff00,
    TimerLevel.WARNING: 0xffaa00,
    TimerLevel.DANGER: 0xff0000,
}
TIMER_EMOJI = {
    TimerLevel.NORMAL: "⏱️",
    TimerLevel.WARNING: "⚠️",
    TimerLevel.DANGER: "🚨",
}


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit - 1] + "…"


def build_question_embed(snapshot: SessionSnapshot, remaining_seconds: Optional[int] = None,
                         level: Optional[TimerLevel] = None) -> discord.Embed:
    """Render the open question with its options and countdown."""
    question = snapshot.current_question
    remaining = snapshot.remaining_seconds if remaining_seconds is None else remaining_seconds
    level = level or snapshot.timer_level

    embed = discord.Embed(
        title=f"🎯 Question {snapshot.question_number} of {snapshot.total_questions}",
        description=question.text,
        color=TIMER_COLORS[level]
    )
    embed.add_field(name="📚 Category", value=question.category, inline=True)
    embed.add_field(
        name=f"{TIMER_EMOJI[level]} Time Remaining",
        value=f"{remaining} second{'s' if remaining != 1 else ''}",
        inline=True
    )
    embed.add_field(
        name="Options",
        value="\n".join(
            f"**{OPTION_LETTERS[i]}.** {option}"
            for i, option in enumerate(question.shuffled_options)
        ),
        inline=False
    )
    if level == TimerLevel.DANGER:
        embed.set_footer(text="⚡ Time running out!")
    else:
        embed.set_footer(text=f"Score: {snapshot.score}/{snapshot.answered}")
    return embed


def build_settled_embed(record: AnswerRecord, snapshot: SessionSnapshot) -> discord.Embed:
    """Render a question after it closed."""
    if record.user_answer is None:
        title, color = "⏰ Time's Up!", 0xff6600
    elif record.is_correct:
        title, color = "✅ Correct!", 0x00ff00
    else:
        title, color = "❌ Incorrect", 0xff0000

    embed = discord.Embed(title=title, description=record.question_text, color=color)
    if record.user_answer is not None:
        embed.add_field(name="Your Answer", value=record.user_answer, inline=True)
    embed.add_field(name="Correct Answer", value=f"**{record.correct_answer}**", inline=True)
    embed.set_footer(text=f"Score: {snapshot.score}/{snapshot.answered}")
    return embed


def build_results_embed(summary: QuizSummary) -> discord.Embed:
    """Render the final score of a quiz."""
    embed = discord.Embed(
        title="🎉 Quiz Complete!",
        description=f"You scored **{summary.percentage}%** ({summary.fraction})",
        color=0x00ff00 if summary.percentage >= 50 else 0xffaa00
    )
    embed.add_field(name="✅ Correct", value=str(summary.correct_count), inline=True)
    embed.add_field(name="❌ Incorrect", value=str(summary.incorrect_count), inline=True)
    embed.set_footer(text="Use /review to go through your answers or /start for a new quiz.")
    return embed


def format_review_entry(record: AnswerRecord) -> str:
    """Render one reviewed question's options with correctness marks."""
    lines = [f"*{record.category}*"]
    for option in review_options(record):
        if option.mark == "correct":
            icon = "✅"
        elif option.mark == "wrong":
            icon = "❌"
        else:
            icon = "▫️"
        suffix = " ← your answer" if option.is_user_answer else ""
        lines.append(f"{icon} {option.text}{suffix}")
    if record.user_answer is None:
        lines.append("⏰ No answer given")
    return _clip("\n".join(lines), MAX_FIELD_LENGTH)


def build_review_embeds(summary: QuizSummary) -> List[discord.Embed]:
    """Render the per-question review, split across embeds."""
    embeds = []
    for start in range(0, len(summary.review), REVIEW_QUESTIONS_PER_EMBED):
        chunk = summary.review[start:start + REVIEW_QUESTIONS_PER_EMBED]
        embed = discord.Embed(
            title="📝 Answer Review" if start == 0 else "📝 Answer Review (continued)",
            color=0x6699ff
        )
        for offset, record in enumerate(chunk):
            status = "Correct" if record.is_correct else "Incorrect"
            embed.add_field(
                name=_clip(f"Question {start + offset + 1} ({status}): {record.question_text}", 256),
                value=format_review_entry(record),
                inline=False
            )
        embeds.append(embed)
    return embeds[:MAX_EMBEDS_PER_MESSAGE]


class AnswerView(discord.ui.View):
    """One button per option of the open question."""

    def __init__(self, controller: QuizController, channel_id: int, question_index: int,
                 options: List[str], timeout: Optional[float] = None):
        super().__init__(timeout=timeout)
        self.controller = controller
        self.channel_id = channel_id
        self.question_index = question_index
        for i, option in enumerate(options):
            button = discord.ui.Button(
                label=_clip(f"{OPTION_LETTERS[i]}. {option}", 80),
                style=discord.ButtonStyle.primary,
                custom_id=f"quiz:{channel_id}:{question_index}:{i}"
            )
            button.callback = self._make_callback(option)
            self.add_item(button)

    def _make_callback(self, option: str):
        async def callback(interaction: discord.Interaction) -> None:
            await self.handle_choice(interaction, option)
        return callback

    async def handle_choice(self, interaction: discord.Interaction, option: str) -> None:
        """Forward a click to the controller and acknowledge it."""
        accepted = self.controller.submit_answer(
            self.channel_id,
            option,
            user_id=interaction.user.id,
            question_index=self.question_index
        )
        try:
            if accepted:
                await interaction.response.defer()
            else:
                await interaction.response.send_message(
                    "This question is closed or the quiz belongs to someone else.",
                    ephemeral=True
                )
        except discord.HTTPException as e:
            logger.error(f"Failed to acknowledge answer click: {e}")

    def disable_all(self) -> None:
        for item in self.children:
            item.disabled = True


class ChannelPresenter(QuizPresenter):
    """Shows one quiz run in a Discord channel."""

    def __init__(self, channel: discord.abc.Messageable, controller: QuizController, channel_id: int):
        self.channel = channel
        self.controller = controller
        self.channel_id = channel_id
        self.message: Optional[discord.Message] = None
        self.view: Optional[AnswerView] = None
        self._snapshot: Optional[SessionSnapshot] = None

    async def show_question(self, snapshot: SessionSnapshot) -> None:
        self._snapshot = snapshot
        self.view = AnswerView(
            self.controller,
            self.channel_id,
            snapshot.current_index,
            list(snapshot.current_question.shuffled_options)
        )
        self.message = await self.channel.send(embed=build_question_embed(snapshot), view=self.view)

    async def update_timer(self, remaining_seconds: int, level: TimerLevel) -> None:
        if self.message is None or self._snapshot is None:
            return
        try:
            await self.message.edit(embed=build_question_embed(self._snapshot, remaining_seconds, level))
        except discord.HTTPException as e:
            logger.error(f"Failed to update timer message: {e}")

    async def show_answer_recorded(self, record: AnswerRecord, snapshot: SessionSnapshot) -> None:
        if self.message is None:
            return
        if self.view is not None:
            self.view.disable_all()
            self.view.stop()
        try:
            await self.message.edit(embed=build_settled_embed(record, snapshot), view=self.view)
        except discord.HTTPException as e:
            logger.error(f"Failed to show settled question: {e}")

    async def show_results(self, summary: QuizSummary) -> None:
        await self.channel.send(embed=build_results_embed(summary))


class QuizBot(commands.Bot):
    """Discord bot for running timed quizzes"""

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        intents = discord.Intents.none()
        intents.guilds = True  # Required for slash commands

        command_prefix = '!'
        if config and 'bot' in config:
            command_prefix = config['bot'].get('command_prefix', '!')

        super().__init__(
            command_prefix=command_prefix,
            intents=intents,
            help_command=None
        )

        self.app_config = config or {}
        self.data_manager: Optional[DataManager] = None
        self.config_manager: Optional[ConfigManager] = None
        self.quiz_controller: Optional[QuizController] = None

    async def setup_hook(self):
        """Called when the bot is starting up"""
        logger.info("Setting up bot components...")
        quiz_config = self.app_config.get('quiz', {})

        self.data_manager = DataManager(
            question_directory=quiz_config.get('question_directory', DEFAULT_QUESTION_DIRECTORY),
            sources=quiz_config.get('question_sources', DEFAULT_QUESTION_SOURCES),
            allow_partial=quiz_config.get('allow_partial_loads', False)
        )
        self.config_manager = ConfigManager()

        self.load_question_bank()
        self.config_manager.apply_config_dict(quiz_config)

        self.quiz_controller = QuizController(
            self.data_manager,
            self.config_manager,
            advance_delay=quiz_config.get('advance_delay', DEFAULT_ADVANCE_DELAY)
        )

        self.setup_commands()
        logger.info("Bot setup completed successfully")

    def load_question_bank(self) -> None:
        """Load questions and publish their difficulties to the config layer."""
        questions = self.data_manager.load_all()
        self.config_manager.set_known_difficulties(self.data_manager.available_difficulties())
        if self.data_manager.has_load_errors():
            logger.warning(f"Question bank loaded with errors: {self.data_manager.get_load_errors()}")
        logger.info(f"Question bank ready with {len(questions)} questions")

    def setup_commands(self):
        """Register all slash commands"""

        @self.tree.command(name="help", description="Display available commands")
        async def help_command(interaction: discord.Interaction):
            await self.handle_help(interaction)

        @self.tree.command(name="set_questions", description="Set the number of questions for the next quiz")
        async def set_questions_command(interaction: discord.Interaction, number: int):
            await self.handle_set_questions(interaction, number)

        @self.tree.command(name="set_timer", description="Set the time per question (5-120 seconds)")
        async def set_timer_command(interaction: discord.Interaction, seconds: int):
            await self.handle_set_timer(interaction, seconds)

        @self.tree.command(name="set_difficulty", description="Set the question difficulty, or 'all'")
        async def set_difficulty_command(interaction: discord.Interaction, difficulty: str):
            await self.handle_set_difficulty(interaction, difficulty)

        @self.tree.command(name="settings", description="Show the settings for the next quiz")
        async def settings_command(interaction: discord.Interaction):
            await self.handle_settings(interaction)

        @self.tree.command(name="start", description="Start a quiz with the current settings")
        async def start_command(interaction: discord.Interaction):
            await self.handle_start(interaction)

        @self.tree.command(name="finish", description="End the current quiz now and show results")
        async def finish_command(interaction: discord.Interaction):
            await self.handle_finish(interaction)

        @self.tree.command(name="stop", description="Abandon the current quiz")
        async def stop_command(interaction: discord.Interaction):
            await self.handle_stop(interaction)

        @self.tree.command(name="status", description="Show current quiz progress")
        async def status_command(interaction: discord.Interaction):
            await self.handle_status(interaction)

        @self.tree.command(name="results", description="Show the results of the last quiz")
        async def results_command(interaction: discord.Interaction):
            await self.handle_results(interaction)

        @self.tree.command(name="review", description="Review the answers of the last quiz")
        async def review_command(interaction: discord.Interaction):
            await self.handle_review(interaction)

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
            await self.quiz_controller.shutdown()
        await super().close()

    async def handle_help(self, interaction: discord.Interaction):
        """Handle /help command"""
        embed = discord.Embed(
            title="🎯 Quiz Bot Commands",
            description="Configure a quiz, then answer each question before the timer runs out.",
            color=0x00ff00
        )
        embed.add_field(
            name="📋 Settings",
            value=(
                "`/set_questions <number>` - Number of questions\n"
                "`/set_timer <seconds>` - Time per question\n"
                "`/set_difficulty <difficulty>` - Difficulty, or `all`\n"
                "`/settings` - Show current settings"
            ),
            inline=False
        )
        embed.add_field(
            name="🎮 Quiz",
            value=(
                "`/start` - Start a quiz\n"
                "`/finish` - End now and see results\n"
                "`/stop` - Abandon the quiz\n"
                "`/status` - Show progress\n"
                "`/results` - Show the last score\n"
                "`/review` - Review the last quiz's answers"
            ),
            inline=False
        )
        try:
            await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Failed to send help message: {e}")

    async def handle_set_questions(self, interaction: discord.Interaction, number: int):
        """Handle /set_questions command"""
        await self._respond_to_setting(interaction, self.config_manager.set_question_count(number))

    async def handle_set_timer(self, interaction: discord.Interaction, seconds: int):
        """Handle /set_timer command"""
        await self._respond_to_setting(interaction, self.config_manager.set_time_per_question(seconds))

    async def handle_set_difficulty(self, interaction: discord.Interaction, difficulty: str):
        """Handle /set_difficulty command"""
        await self._respond_to_setting(interaction, self.config_manager.set_difficulty(difficulty))

    async def _respond_to_setting(self, interaction: discord.Interaction, result: Dict[str, Any]):
        if result['success']:
            await self.send_info_response(interaction, result['user_message'], "⚙️ Settings Updated")
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Invalid Setting")

    async def handle_settings(self, interaction: discord.Interaction):
        """Handle /settings command"""
        summary = self.config_manager.get_settings_summary()
        choices = ", ".join(self.config_manager.get_difficulty_choices())
        await self.send_info_response(interaction, f"{summary}\n\nDifficulties: {choices}", "⚙️ Quiz Settings")

    async def handle_start(self, interaction: discord.Interaction):
        """Handle /start command"""
        channel_id = interaction.channel_id
        presenter = ChannelPresenter(interaction.channel, self.quiz_controller, channel_id)
        result = await self.quiz_controller.start_quiz(
            channel_id,
            presenter,
            owner_id=interaction.user.id
        )

        if not result['success']:
            await self.send_error_response(interaction, result['user_message'], "❌ Quiz Start Failed")
            return

        info = result['session_info']
        settings = info['settings']
        embed = discord.Embed(
            title="🎯 Quiz Started!",
            description=f"{info['total_questions']} questions, {settings['time_per_question_seconds']} seconds each",
            color=0x00ff00
        )
        embed.add_field(name="Difficulty", value=settings['difficulty'], inline=True)
        if info['total_questions'] < settings['num_questions']:
            embed.add_field(
                name="ℹ️ Note",
                value=f"Only {info['total_questions']} questions match these settings.",
                inline=False
            )
        embed.set_footer(text="Use /finish to end early or /stop to abandon the quiz")
        try:
            await interaction.response.send_message(embed=embed)
        except discord.HTTPException as e:
            logger.error(f"Failed to announce quiz start: {e}")

    async def handle_finish(self, interaction: discord.Interaction):
        """Handle /finish command"""
        result = await self.quiz_controller.finish_quiz(interaction.channel_id)
        if result['success']:
            await self.send_info_response(interaction, "Quiz ended. Results are posted below.", "🏁 Quiz Finished")
        else:
            await self.send_error_response(interaction, result['user_message'], "❌ Finish Failed")

    async def handle_stop(self, interaction: discord.Interaction):
        """Handle /stop command"""
        result = await self.quiz_controller.stop_quiz(interaction.channel_id)
        if result['success']:
            await self.send_info_response(interaction, "The quiz was abandoned.", "🛑 Quiz Stopped")
        else:
            await self.send_error_response(interaction, result['user_message'], "ℹ️ Nothing to Stop")

    async def handle_status(self, interaction: discord.Interaction):
        """Handle /status command"""
        status = self.quiz_controller.get_session_status_summary(interaction.channel_id)
        await self.send_info_response(interaction, status, "📊 Quiz Status")

    async def handle_results(self, interaction: discord.Interaction):
        """Handle /results command"""
        summary = self.quiz_controller.get_last_summary(interaction.channel_id)
        if summary is None:
            await self.send_error_response(interaction, "No finished quiz in this channel yet.", "ℹ️ No Results")
            return
        try:
            await interaction.response.send_message(embed=build_results_embed(summary))
        except discord.HTTPException as e:
            logger.error(f"Failed to send results: {e}")

    async def handle_review(self, interaction: discord.Interaction):
        """Handle /review command"""
        summary = self.quiz_controller.get_last_summary(interaction.channel_id)
        if summary is None:
            await self.send_error_response(interaction, "No finished quiz in this channel yet.", "ℹ️ No Review")
            return
        try:
            await interaction.response.send_message(embeds=build_review_embeds(summary), ephemeral=True)
        except discord.HTTPException as e:
            logger.error(f"Failed to send review: {e}")

    async def send_error_response(self, interaction: discord.Interaction, message: str, title: str = "❌ Error"):
        """Send formatted error response to user"""
        try:
            embed = discord.Embed(title=title, description=message, color=0xff0000)
            embed.set_footer(text="Use /help for available commands")

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send error response to user")

    async def send_info_response(self, interaction: discord.Interaction, message: str, title: str = "ℹ️ Information"):
        """Send formatted info response to user"""
        try:
            embed = discord.Embed(title=title, description=message, color=0x6699ff)

            if interaction.response.is_done():
                await interaction.followup.send(embed=embed, ephemeral=True)
            else:
                await interaction.response.send_message(embed=embed, ephemeral=True)
        except discord.HTTPException:
            logger.error("Failed to send info response to user")


async def run_bot(token=None, config=None):
    """Run the bot with proper error handling"""
    if not token:
        token = os.getenv('DISCORD_BOT_TOKEN')

    if not token:
        logger.error("No Discord bot token provided")
        return

    bot = QuizBot(config)

    try:
        logger.info("Starting Discord Quiz Bot...")
        await bot.start(token)
    except discord.LoginFailure:
        logger.error("Invalid bot token provided")
    except discord.HTTPException as e:
        logger.error(f"HTTP error occurred: {e}")
    finally:
        if not bot.is_closed():
            await bot.close()
