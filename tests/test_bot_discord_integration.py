"""
Unit tests for Discord bot integration and API interactions.
"""
import shutil
import tempfile
import unittest
from unittest.mock import Mock, AsyncMock
import discord

from quiz_runner.bot import (
    AnswerView, ChannelPresenter, QuizBot, build_question_embed, build_results_embed,
    build_review_embeds, build_settled_embed
)
from quiz_runner.config_manager import ConfigManager
from quiz_runner.models import TimerLevel
from quiz_runner.quiz_controller import QuizController
from quiz_runner.quiz_session import QuizSession
from tests.test_fixtures import FakeClock, MockDiscordObjects, TestFixtures


def open_session_snapshot(seconds=30):
    session = QuizSession(clock=FakeClock())
    session.start(TestFixtures.create_prepared_questions(), seconds)
    return session.snapshot()


class TestEmbeds(unittest.TestCase):
    """Test rendering of quiz state into embeds."""

    def test_question_embed(self):
        snapshot = open_session_snapshot()

        embed = build_question_embed(snapshot)

        self.assertEqual(embed.title, "🎯 Question 1 of 5")
        self.assertEqual(embed.description, "What is 2+2?")
        self.assertEqual(embed.color.value, 0x00ff00)
        self.assertIn("**B.** 4", embed.fields[2].value)

    def test_question_embed_danger_level(self):
        embed = build_question_embed(open_session_snapshot(), 3, TimerLevel.DANGER)

        self.assertEqual(embed.color.value, 0xff0000)
        self.assertEqual(embed.fields[1].value, "3 seconds")
        self.assertIn("Time running out", embed.footer.text)

    def test_settled_embed(self):
        snapshot = open_session_snapshot()

        self.assertEqual(build_settled_embed(TestFixtures.create_answer_record("4"), snapshot).title, "✅ Correct!")
        self.assertEqual(build_settled_embed(TestFixtures.create_answer_record("5"), snapshot).title, "❌ Incorrect")
        self.assertEqual(build_settled_embed(TestFixtures.create_answer_record(None), snapshot).title,
                         "⏰ Time's Up!")

    def test_results_embed(self):
        embed = build_results_embed(TestFixtures.create_summary())

        self.assertIn("33%", embed.description)
        self.assertIn("(1/3)", embed.description)
        self.assertEqual(embed.fields[0].value, "1")
        self.assertEqual(embed.fields[1].value, "2")

    def test_review_embeds(self):
        """Test review marks and splitting across embeds."""
        records = [TestFixtures.create_answer_record("5")] * 12
        embeds = build_review_embeds(TestFixtures.create_summary(records))

        self.assertEqual(len(embeds), 2)
        self.assertEqual(len(embeds[0].fields), 10)
        self.assertEqual(len(embeds[1].fields), 2)
        value = embeds[0].fields[0].value
        self.assertIn("✅ 4", value)
        self.assertIn("❌ 5 ← your answer", value)
        self.assertTrue(embeds[1].fields[0].name.startswith("Question 11"))


class TestChannelPresenter(unittest.IsolatedAsyncioTestCase):
    """Test the presenter against a mocked channel."""

    async def asyncSetUp(self):
        self.channel = MockDiscordObjects.create_mock_channel()
        self.controller = Mock(spec=QuizController)
        self.presenter = ChannelPresenter(self.channel, self.controller, 12345)

    async def test_show_question_posts_buttons(self):
        snapshot = open_session_snapshot()

        await self.presenter.show_question(snapshot)

        kwargs = self.channel.send.await_args.kwargs
        self.assertIsInstance(kwargs['view'], AnswerView)
        self.assertEqual(len(kwargs['view'].children), 4)
        self.assertEqual(kwargs['view'].question_index, 0)
        self.assertIs(self.presenter.message, self.channel.send.return_value)

    async def test_update_timer_edits_message(self):
        await self.presenter.show_question(open_session_snapshot())

        await self.presenter.update_timer(8, TimerLevel.WARNING)

        embed = self.presenter.message.edit.await_args.kwargs['embed']
        self.assertEqual(embed.color.value, 0xffaa00)
        self.assertEqual(embed.fields[1].value, "8 seconds")

    async def test_update_timer_before_question_is_noop(self):
        await self.presenter.update_timer(8, TimerLevel.WARNING)
        self.channel.send.assert_not_awaited()

    async def test_show_answer_recorded_disables_buttons(self):
        snapshot = open_session_snapshot()
        await self.presenter.show_question(snapshot)

        await self.presenter.show_answer_recorded(TestFixtures.create_answer_record("4"), snapshot)

        view = self.presenter.message.edit.await_args.kwargs['view']
        self.assertTrue(all(item.disabled for item in view.children))

    async def test_http_errors_are_logged_not_raised(self):
        await self.presenter.show_question(open_session_snapshot())
        self.presenter.message.edit.side_effect = discord.HTTPException(Mock(status=500), "boom")

        await self.presenter.update_timer(5, TimerLevel.DANGER)

    async def test_show_results(self):
        await self.presenter.show_results(TestFixtures.create_summary())

        embed = self.channel.send.await_args.kwargs['embed']
        self.assertEqual(embed.title, "🎉 Quiz Complete!")


class TestAnswerView(unittest.IsolatedAsyncioTestCase):
    """Test option buttons forwarding clicks."""

    async def asyncSetUp(self):
        self.controller = Mock(spec=QuizController)
        self.view = AnswerView(self.controller, 12345, 2, ["Paris", "Rome"])

    async def test_accepted_click_is_deferred(self):
        self.controller.submit_answer.return_value = True
        interaction = MockDiscordObjects.create_mock_interaction(user_id=5)

        await self.view.handle_choice(interaction, "Paris")

        self.controller.submit_answer.assert_called_once_with(12345, "Paris", user_id=5, question_index=2)
        interaction.response.defer.assert_awaited_once()

    async def test_rejected_click_gets_ephemeral_reply(self):
        self.controller.submit_answer.return_value = False
        interaction = MockDiscordObjects.create_mock_interaction()

        await self.view.handle_choice(interaction, "Rome")

        self.assertTrue(interaction.response.send_message.await_args.kwargs['ephemeral'])
        interaction.response.defer.assert_not_awaited()

    async def test_button_labels(self):
        labels = [item.label for item in self.view.children]
        self.assertEqual(labels, ["A. Paris", "B. Rome"])


class TestQuizBotCommands(unittest.IsolatedAsyncioTestCase):
    """Test slash command handlers with mocked Discord objects."""

    async def asyncSetUp(self):
        self.bot = QuizBot()
        self.bot.config_manager = ConfigManager()
        self.bot.quiz_controller = Mock(spec=QuizController)
        self.bot.quiz_controller.start_quiz = AsyncMock()
        self.bot.quiz_controller.finish_quiz = AsyncMock()
        self.bot.quiz_controller.stop_quiz = AsyncMock()
        self.interaction = MockDiscordObjects.create_mock_interaction()

    def sent_embed(self):
        return self.interaction.response.send_message.await_args.kwargs['embed']

    async def test_set_questions(self):
        await self.bot.handle_set_questions(self.interaction, 5)

        self.assertEqual(self.sent_embed().title, "⚙️ Settings Updated")
        self.assertEqual(self.bot.config_manager.get_quiz_config().num_questions, 5)

    async def test_set_timer_invalid(self):
        await self.bot.handle_set_timer(self.interaction, 1)

        self.assertEqual(self.sent_embed().title, "❌ Invalid Setting")

    async def test_set_difficulty(self):
        await self.bot.handle_set_difficulty(self.interaction, "Hard")

        self.assertEqual(self.bot.config_manager.get_quiz_config().difficulty, "hard")

    async def test_settings(self):
        await self.bot.handle_settings(self.interaction)

        self.assertIn("Questions: 10", self.sent_embed().description)

    async def test_start_success(self):
        self.bot.quiz_controller.start_quiz.return_value = {
            'success': True,
            'session_info': {
                'total_questions': 2,
                'settings': {'num_questions': 5, 'time_per_question_seconds': 30, 'difficulty': 'all'}
            }
        }

        await self.bot.handle_start(self.interaction)

        args = self.bot.quiz_controller.start_quiz.await_args
        self.assertEqual(args.args[0], 12345)
        self.assertIsInstance(args.args[1], ChannelPresenter)
        self.assertEqual(args.kwargs['owner_id'], 67890)
        embed = self.sent_embed()
        self.assertEqual(embed.title, "🎯 Quiz Started!")
        self.assertIn("Only 2 questions", embed.fields[1].value)

    async def test_start_failure(self):
        self.bot.quiz_controller.start_quiz.return_value = {
            'success': False, 'error': 'x', 'user_message': "❌ No questions are available."
        }

        await self.bot.handle_start(self.interaction)

        embed = self.sent_embed()
        self.assertEqual(embed.title, "❌ Quiz Start Failed")
        self.assertIn("No questions are available", embed.description)

    async def test_stop_without_quiz(self):
        self.bot.quiz_controller.stop_quiz.return_value = {
            'success': False, 'user_message': "ℹ️ No active quiz found in this channel"
        }

        await self.bot.handle_stop(self.interaction)

        self.assertEqual(self.sent_embed().title, "ℹ️ Nothing to Stop")

    async def test_finish(self):
        self.bot.quiz_controller.finish_quiz.return_value = {'success': True, 'summary': TestFixtures.create_summary()}

        await self.bot.handle_finish(self.interaction)

        self.bot.quiz_controller.finish_quiz.assert_awaited_once_with(12345)
        self.assertEqual(self.sent_embed().title, "🏁 Quiz Finished")

    async def test_results_and_review(self):
        self.bot.quiz_controller.get_last_summary.return_value = TestFixtures.create_summary()

        await self.bot.handle_results(self.interaction)
        self.assertEqual(self.sent_embed().title, "🎉 Quiz Complete!")

        await self.bot.handle_review(self.interaction)
        embeds = self.interaction.response.send_message.await_args.kwargs['embeds']
        self.assertEqual(len(embeds[0].fields), 3)

    async def test_results_without_quiz(self):
        self.bot.quiz_controller.get_last_summary.return_value = None

        await self.bot.handle_results(self.interaction)

        self.assertEqual(self.sent_embed().title, "ℹ️ No Results")

    async def test_error_response_uses_followup_when_responded(self):
        self.interaction.response.is_done.return_value = True

        await self.bot.send_error_response(self.interaction, "nope")

        self.interaction.followup.send.assert_awaited_once()
        self.interaction.response.send_message.assert_not_awaited()


class TestQuizBotSetup(unittest.IsolatedAsyncioTestCase):
    """Test component wiring from configuration."""

    async def asyncSetUp(self):
        self.temp_dir = tempfile.mkdtemp()
        TestFixtures.write_source(self.temp_dir, "bank.json", [
            TestFixtures.create_record("Q1?", difficulty="easy"),
            TestFixtures.create_record("Q2?", difficulty="hard"),
        ])

    async def asyncTearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    async def test_setup_hook_builds_components(self):
        bot = QuizBot({
            'quiz': {
                'question_directory': self.temp_dir,
                'question_sources': ["bank.json"],
                'default_question_count': 4,
                'default_difficulty': 'hard',
                'advance_delay': 0
            }
        })

        await bot.setup_hook()

        self.assertEqual(len(bot.data_manager.get_questions()), 2)
        self.assertEqual(bot.config_manager.get_difficulty_choices(), ["all", "easy", "hard"])
        config = bot.config_manager.get_quiz_config()
        self.assertEqual(config.num_questions, 4)
        self.assertEqual(config.difficulty, "hard")
        self.assertEqual(bot.quiz_controller.advance_delay, 0)
        self.assertIsNotNone(bot.tree.get_command("start"))
        self.assertIsNotNone(bot.tree.get_command("review"))


if __name__ == '__main__':
    unittest.main()
