# Countdown Timer
import datetime
from datetime import timezone
from enum import Enum
from io import BytesIO

# Nextcord
import nextcord
from nextcord.ext import tasks

# Local imports
from countdown_bot.utils.utils import logger, log_exception, utc_now, ATTACHMENT_NAME, UNKNOWN_MESSAGE, ONE_MINUTE

# One entry per wall-clock minute so the loop fires on minute boundaries.
EVERY_MINUTE = [datetime.time(hour=hour, minute=minute, tzinfo=timezone.utc) for hour in range(24) for minute in range(60)]

# nextcord runs a boundary that passed during a long tick as soon as that
# tick returns. Runs starting later than this after their boundary are dropped.
OVERDUE_GRACE = datetime.timedelta(seconds=10)


class CountdownState(Enum):
    NO_MESSAGE = "no_message"
    TRACKING = "tracking"


def is_unknown_message(error):
    return isinstance(error, nextcord.NotFound) and error.code == UNKNOWN_MESSAGE


# Countdown Timer class
# Owns the countdown message in the target channel and refreshes its image
# every minute with Nextcord's tasks loop. If someone deletes the message,
# the next tick posts a replacement and tracks that one instead.
class CountdownTimer:
    def __init__(self, bot, channel, image_generator, clock=utc_now):
        self.bot = bot
        self.channel = channel
        self.image_generator = image_generator
        self.clock = clock
        self.state = CountdownState.NO_MESSAGE
        self.message_id = None
        self.initialized = False

    def _track(self, message_id):
        self.state = CountdownState.TRACKING
        self.message_id = message_id

    def _forget(self):
        self.state = CountdownState.NO_MESSAGE
        self.message_id = None

    def render(self):
        return self.image_generator.generate(self.clock())

    @staticmethod
    def as_file(image):
        return nextcord.File(BytesIO(image), filename=ATTACHMENT_NAME)

    async def post_fresh_message(self, image=None):
        """Send a new countdown message and start tracking it"""
        if image is None:
            image = self.render()
        message = await self.channel.send(file=self.as_file(image))
        self._track(message.id)
        logger.info(f'Posted countdown message {message.id} in channel {self.channel.id}')
        return message

    async def start(self):
        """Post the first countdown message and start the minute loop"""
        if self.initialized:
            return
        await self.post_fresh_message()
        self.update_countdown_task.start()
        self.initialized = True
        logger.info("Countdown started...")

    def stop(self):
        try:
            if self.update_countdown_task.is_running():
                self.update_countdown_task.cancel()
            self.initialized = False
            logger.info("CountdownTimer stopped successfully")
        except Exception as e:
            logger.error(f"Error stopping CountdownTimer: {e}")
            raise

    async def tick(self):
        try:
            image = self.render()
        except Exception as e:
            log_exception('Error generating countdown image', e)
            return

        if self.state is CountdownState.NO_MESSAGE:
            logger.info('No countdown message tracked, posting a new one')
            await self._post_replacement(image)
            return

        try:
            message = await self.channel.fetch_message(self.message_id)
            await message.edit(file=self.as_file(image), attachments=[])
            logger.info("Updated.")
        except nextcord.NotFound as e:
            if not is_unknown_message(e):
                logger.error(f'Failed to update countdown message {self.message_id}: {e}')
                return
            logger.warning("Countdown message was deleted. Posting a new one.")
            if await self._post_replacement(image):
                logger.info("Posted replacement countdown message.")
        except Exception as e:
            log_exception(f'Failed to update countdown message {self.message_id}', e)

    async def _post_replacement(self, image):
        try:
            await self.post_fresh_message(image)
            return True
        except Exception as e:
            self._forget()
            log_exception('Failed to post countdown message', e)
            return False

    def scheduled_minute(self):
        """Boundary the running loop iteration belongs to, or None outside the loop"""
        upcoming = self.update_countdown_task.next_iteration
        if upcoming is None:
            return None
        # next_iteration already points at the boundary after this one
        return upcoming - ONE_MINUTE

    def is_overdue(self, scheduled):
        return scheduled is not None and self.clock() - scheduled > OVERDUE_GRACE

    @tasks.loop(time=EVERY_MINUTE)
    async def update_countdown_task(self):
        scheduled = self.scheduled_minute()
        if self.is_overdue(scheduled):
            logger.warning(f"Skipping the {scheduled:%H:%M} countdown tick, the previous tick overran")
            return
        await self.tick()

    @update_countdown_task.before_loop
    async def before_update_countdown(self):
        await self.bot.wait_until_ready()
