# countdownBot.py
import asyncio
import signal
import sys
import traceback

# Nextcord
import nextcord

# Local imports
from countdown_bot.utils.utils import logger, exit_on_config_error
from countdown_bot.render.backgrounds import BackgroundLibrary
from countdown_bot.render.countdown_image import CountdownImageGenerator
from countdown_bot.countdown.countdown_timer import CountdownTimer

BANNER = r"""
   ____ _____  _       __     _____
  / ___|_   _|/ \      \ \   / /_ _|
 | |  _  | | / _ \      \ \ / / | |
 | |_| | | |/ ___ \      \ V /  | |
  \____| |_/_/   \_\      \_/  |___|
        CINEMATIC COUNTDOWN
"""


class CountdownBot(nextcord.Client):
    """Discord client that keeps one countdown message alive in a single channel."""

    def __init__(self, config, image_generator):
        intents = nextcord.Intents.none()
        intents.guilds = True
        super().__init__(intents=intents)
        self.config = config
        self.image_generator = image_generator
        self.countdown_timer = None
        self.startup_error = None
        self.shutdown_task = None

    async def on_ready(self):
        logger.info(f"Logged in as {self.user}")

        # on_ready fires again after reconnects; keep the existing message and loop
        if self.countdown_timer is not None:
            logger.info("Session ready again, countdown already running")
            return

        try:
            channel = await self.fetch_channel(self.config['channel_id'])
            self.countdown_timer = CountdownTimer(self, channel, self.image_generator)
            await self.countdown_timer.start()
        except Exception as e:
            logger.critical(f"Failed to start countdown in channel {self.config['channel_id']}: {e}")
            logger.critical(traceback.format_exc())
            self.startup_error = e
            await self.close_bot()

    async def on_error(self, event, *args, **kwargs):
        error = sys.exc_info()
        logger.error(f"Error in {event}: {error[0].__name__}: {error[1]}")
        logger.error(traceback.format_exc())

    async def close_bot(self):
        """Stop the countdown loop and close the Discord connection"""
        logger.info("Starting graceful shutdown...")
        try:
            if self.countdown_timer is not None:
                self.countdown_timer.stop()
            await self.close()
            logger.info("Graceful shutdown completed")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")
            logger.error(traceback.format_exc())

    def request_shutdown(self):
        """Signal handler entry point; schedules close_bot once"""
        if self.shutdown_task is None:
            logger.info("Termination signal received")
            self.shutdown_task = asyncio.ensure_future(self.close_bot())
        return self.shutdown_task


def build_bot(config):
    backgrounds = BackgroundLibrary(config['background_dir'])
    image_generator = CountdownImageGenerator(backgrounds)
    return CountdownBot(config, image_generator)


async def run_bot(config):
    # Build the client inside the running loop so nextcord binds to it
    bot = build_bot(config)
    loop = asyncio.get_running_loop()
    handled = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, bot.request_shutdown)
            handled.append(sig)
        except NotImplementedError:
            # Signal handlers are not available on Windows event loops
            pass
    try:
        await bot.start(config['discord_token'])
    finally:
        for sig in handled:
            loop.remove_signal_handler(sig)
        if bot.shutdown_task is not None:
            await bot.shutdown_task
        elif not bot.is_closed():
            await bot.close_bot()
    return bot


def main():
    logger.info(BANNER)
    config = exit_on_config_error()
    if not config['discord_token']:
        logger.critical("TOKEN is not set. Add it to the environment or a .env file.")
        sys.exit(1)

    try:
        bot = asyncio.run(run_bot(config))
    except nextcord.LoginFailure as e:
        logger.critical(f"Failed to log in: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Termination signal received")
        return

    if bot.startup_error is not None:
        logger.critical("Countdown could not start, exiting")
        sys.exit(1)


if __name__ == "__main__":
    main()
