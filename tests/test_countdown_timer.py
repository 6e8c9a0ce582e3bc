import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import nextcord
import pytest
import pytest_asyncio

from countdown_bot.countdown.countdown_timer import (
    CountdownState,
    CountdownTimer,
    EVERY_MINUTE,
    is_unknown_message,
)
from countdown_bot.utils.utils import ATTACHMENT_NAME
from tests.conftest import FIXED_NOW, http_error, unknown_message_error


@pytest.fixture
def timer(mock_bot, mock_channel, mock_generator, fixed_clock):
    return CountdownTimer(mock_bot, mock_channel, mock_generator, clock=fixed_clock)


@pytest_asyncio.fixture
async def tracking_timer(timer):
    await timer.post_fresh_message()
    timer.channel.send.reset_mock()
    return timer


def sent_file(call):
    return call.kwargs['file']


class TestSchedule:
    def test_fires_on_every_minute_boundary(self):
        assert len(EVERY_MINUTE) == 24 * 60
        assert all(moment.second == 0 and moment.microsecond == 0 for moment in EVERY_MINUTE)

    def test_error_classification(self):
        assert is_unknown_message(unknown_message_error())
        assert not is_unknown_message(http_error(404, 10003, "Unknown Channel"))
        assert not is_unknown_message(http_error(500))


class TestStartup:
    @pytest.mark.asyncio
    async def test_starts_without_a_message(self, timer):
        assert timer.state is CountdownState.NO_MESSAGE
        assert timer.message_id is None

    @pytest.mark.asyncio
    async def test_start_posts_and_tracks(self, timer, mock_channel, mock_generator):
        with patch.object(CountdownTimer, 'update_countdown_task') as loop:
            await timer.start()

        mock_generator.generate.assert_called_once_with(FIXED_NOW)
        mock_channel.send.assert_awaited_once()
        assert sent_file(mock_channel.send.await_args).filename == ATTACHMENT_NAME
        assert timer.state is CountdownState.TRACKING
        assert timer.message_id == 1001
        loop.start.assert_called_once()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, timer, mock_channel):
        with patch.object(CountdownTimer, 'update_countdown_task') as loop:
            await timer.start()
            await timer.start()

        assert mock_channel.send.await_count == 1
        loop.start.assert_called_once()

    @pytest.mark.asyncio
    async def test_start_failure_propagates(self, timer, mock_channel):
        mock_channel.send.side_effect = http_error(403, 50013, "Missing Permissions")

        with patch.object(CountdownTimer, 'update_countdown_task') as loop:
            with pytest.raises(nextcord.HTTPException):
                await timer.start()

        loop.start.assert_not_called()
        assert timer.state is CountdownState.NO_MESSAGE


class TestTick:
    @pytest.mark.asyncio
    async def test_edits_tracked_message(self, tracking_timer, mock_channel):
        await tracking_timer.tick()

        mock_channel.fetch_message.assert_awaited_once_with(1001)
        edit = mock_channel.existing_message.edit
        edit.assert_awaited_once()
        assert edit.await_args.kwargs['attachments'] == []
        assert sent_file(edit.await_args).filename == ATTACHMENT_NAME
        mock_channel.send.assert_not_awaited()
        assert tracking_timer.state is CountdownState.TRACKING
        assert tracking_timer.message_id == 1001

    @pytest.mark.asyncio
    async def test_deleted_message_is_replaced_once(self, tracking_timer, mock_channel):
        mock_channel.fetch_message.side_effect = unknown_message_error()

        await tracking_timer.tick()

        mock_channel.send.assert_awaited_once()
        assert tracking_timer.state is CountdownState.TRACKING
        assert tracking_timer.message_id == 1002

    @pytest.mark.asyncio
    async def test_message_deleted_during_edit_is_replaced(self, tracking_timer, mock_channel):
        mock_channel.existing_message.edit.side_effect = unknown_message_error()

        await tracking_timer.tick()

        mock_channel.send.assert_awaited_once()
        assert tracking_timer.message_id == 1002

    @pytest.mark.asyncio
    async def test_replacement_is_tracked_on_next_tick(self, tracking_timer, mock_channel):
        mock_channel.fetch_message.side_effect = [unknown_message_error(), mock_channel.existing_message]

        await tracking_timer.tick()
        await tracking_timer.tick()

        assert mock_channel.fetch_message.await_args.args == (1002,)
        assert mock_channel.send.await_count == 1

    @pytest.mark.asyncio
    async def test_generic_failure_keeps_handle(self, tracking_timer, mock_channel):
        mock_channel.existing_message.edit.side_effect = http_error(500, 0, "Internal Server Error")

        await tracking_timer.tick()

        mock_channel.send.assert_not_awaited()
        assert tracking_timer.state is CountdownState.TRACKING
        assert tracking_timer.message_id == 1001

    @pytest.mark.asyncio
    async def test_other_not_found_keeps_handle(self, tracking_timer, mock_channel):
        mock_channel.fetch_message.side_effect = http_error(404, 10003, "Unknown Channel")

        await tracking_timer.tick()

        mock_channel.send.assert_not_awaited()
        assert tracking_timer.message_id == 1001

    @pytest.mark.asyncio
    async def test_network_error_keeps_handle(self, tracking_timer, mock_channel):
        mock_channel.fetch_message.side_effect = OSError("connection reset")

        await tracking_timer.tick()

        mock_channel.send.assert_not_awaited()
        assert tracking_timer.message_id == 1001

    @pytest.mark.asyncio
    async def test_failed_replacement_forgets_message(self, tracking_timer, mock_channel):
        mock_channel.fetch_message.side_effect = unknown_message_error()
        mock_channel.send.side_effect = http_error(503, 0, "Service Unavailable")

        await tracking_timer.tick()

        assert tracking_timer.state is CountdownState.NO_MESSAGE
        assert tracking_timer.message_id is None

    @pytest.mark.asyncio
    async def test_no_message_tick_posts_fresh(self, timer, mock_channel):
        await timer.tick()

        mock_channel.send.assert_awaited_once()
        mock_channel.fetch_message.assert_not_awaited()
        assert timer.state is CountdownState.TRACKING
        assert timer.message_id == 1001

    @pytest.mark.asyncio
    async def test_render_failure_skips_publish(self, tracking_timer, mock_channel, mock_generator):
        mock_generator.generate.side_effect = OSError("disk gone")

        await tracking_timer.tick()

        mock_channel.fetch_message.assert_not_awaited()
        mock_channel.send.assert_not_awaited()
        assert tracking_timer.message_id == 1001

    @pytest.mark.asyncio
    async def test_each_tick_renders_a_fresh_image(self, tracking_timer, mock_generator):
        mock_generator.generate.reset_mock()

        await tracking_timer.tick()
        await tracking_timer.tick()

        assert mock_generator.generate.call_count == 2


class TestStop:
    def test_stop_cancels_running_loop(self, timer):
        loop = MagicMock()
        loop.is_running.return_value = True
        with patch.object(CountdownTimer, 'update_countdown_task', loop):
            timer.initialized = True
            timer.stop()

        loop.cancel.assert_called_once()
        assert timer.initialized is False


@pytest.mark.asyncio
async def test_loop_waits_for_session(timer, mock_bot):
    await timer.before_update_countdown()
    mock_bot.wait_until_ready.assert_awaited_once()


@pytest.mark.asyncio
async def test_loop_body_runs_tick(timer):
    timer.tick = AsyncMock()
    await timer.update_countdown_task()
    timer.tick.assert_awaited_once()


class TestOverdueTicks:
    def test_scheduled_minute_is_one_before_next_iteration(self, timer):
        loop = MagicMock()
        loop.next_iteration = FIXED_NOW.replace(second=0) + datetime.timedelta(minutes=1)
        with patch.object(CountdownTimer, 'update_countdown_task', loop):
            assert timer.scheduled_minute() == FIXED_NOW.replace(second=0)

    def test_scheduled_minute_outside_running_loop(self, timer):
        assert timer.scheduled_minute() is None

    @pytest.mark.asyncio
    async def test_on_time_tick_runs(self, timer):
        timer.tick = AsyncMock()
        timer.scheduled_minute = MagicMock(return_value=FIXED_NOW - datetime.timedelta(seconds=1))

        await timer.update_countdown_task()

        timer.tick.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_tick_queued_behind_a_long_tick_is_skipped(self, timer):
        # FIXED_NOW is 12:30:15, so a run for the 12:30 boundary starts 15s late
        timer.tick = AsyncMock()
        timer.scheduled_minute = MagicMock(return_value=FIXED_NOW.replace(second=0))

        await timer.update_countdown_task()

        timer.tick.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_skipped_boundary_does_not_block_the_next_one(self, timer):
        timer.tick = AsyncMock()
        timer.scheduled_minute = MagicMock(side_effect=[
            FIXED_NOW - datetime.timedelta(minutes=2),
            FIXED_NOW - datetime.timedelta(seconds=2),
        ])

        await timer.update_countdown_task()
        await timer.update_countdown_task()

        timer.tick.assert_awaited_once()
