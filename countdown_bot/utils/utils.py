# Utils.py
import traceback
import datetime
from datetime import timezone
import logging
import os
import sys

from dotenv import load_dotenv

# Get the base directory (parent of countdown_bot)
BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(os.path.dirname(__file__)), '..'))
ASSETS_DIR = os.path.join(BASE_DIR, 'assets')

load_dotenv(os.path.join(BASE_DIR, '.env'))

# Set up logging before anything else
log_dir = os.path.join(BASE_DIR, 'logs')
log_format = '%(asctime)s - %(levelname)s - %(message)s'


def parse_log_level(value):
    level = getattr(logging, (value or 'INFO').upper(), None)
    return level if isinstance(level, int) else logging.INFO


def setup_logger(name='countdown_bot', directory=log_dir, level=logging.INFO):
    new_logger = logging.getLogger(name)
    new_logger.setLevel(level)
    if new_logger.handlers:
        return new_logger

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(log_format))
    new_logger.addHandler(console_handler)
    try:
        os.makedirs(directory, exist_ok=True)
        log_file_name = os.path.join(directory, f'countdownBot-{datetime.datetime.now().strftime("%Y-%m-%d")}.log')
        file_handler = logging.FileHandler(log_file_name)
        file_handler.setFormatter(logging.Formatter(log_format))
        new_logger.addHandler(file_handler)
        new_logger.info(f"Logging initialized. Logging to {log_file_name}")
    except OSError as e:
        new_logger.warning(f"Failed to create log file in {directory}, logging to console only: {e}")
    return new_logger


log_level = parse_log_level(os.getenv('LOG_LEVEL'))
logger = setup_logger(level=log_level)

# Countdown constants
RELEASE_DATE = datetime.datetime(2026, 11, 19, 0, 0, 0, tzinfo=timezone.utc)
DEFAULT_CHANNEL_ID = "1476993433594757192"
DEFAULT_BACKGROUND_DIR = "backgrounds"
DEFAULT_BACKGROUND_PATH = os.path.join(ASSETS_DIR, 'bg.png')
FONT_PATH = os.path.join(ASSETS_DIR, 'pricedown.ttf')
ATTACHMENT_NAME = 'countdown.png'

# Discord JSON error code for a deleted/unknown message
UNKNOWN_MESSAGE = 10008

EPOCH = datetime.datetime(1970, 1, 1, tzinfo=timezone.utc)
ONE_DAY = datetime.timedelta(days=1)
ONE_HOUR = datetime.timedelta(hours=1)
ONE_MINUTE = datetime.timedelta(minutes=1)


class ConfigError(Exception):
    """Raised when the environment holds an unusable configuration value."""
    pass


def get_config():
    """
    Load configuration from the environment (and a .env file, if present).
    Returns:
        dict: Configuration dictionary
    Raises:
        ConfigError: If CHANNEL_ID is not a valid Discord snowflake
    """
    channel_id = os.getenv('CHANNEL_ID') or DEFAULT_CHANNEL_ID
    try:
        channel_id = int(channel_id)
    except ValueError:
        raise ConfigError(f"CHANNEL_ID must be numeric, got {channel_id!r}")

    background_dir = os.getenv('BACKGROUND_DIR') or DEFAULT_BACKGROUND_DIR
    if not os.path.isabs(background_dir):
        background_dir = os.path.join(BASE_DIR, background_dir)

    return {
        'discord_token': os.getenv('TOKEN'),
        'channel_id': channel_id,
        'background_dir': background_dir,
        'log_level': logging.getLevelName(parse_log_level(os.getenv('LOG_LEVEL'))),
    }


def utc_now():
    return datetime.datetime.now(timezone.utc)


def as_utc(moment):
    # Naive datetimes are treated as UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def minute_bucket(moment):
    """Whole minutes elapsed since the Unix epoch (floor of epoch_ms / 60000)."""
    return (as_utc(moment) - EPOCH) // ONE_MINUTE


def split_remaining(target, now):
    """
    Break the time left until target into whole days, hours and minutes.
    Args:
        target (datetime): Countdown target
        now (datetime): Current time
    Returns:
        tuple: (days, hours, minutes), all zero once target has passed
    """
    remaining = max(as_utc(target) - as_utc(now), datetime.timedelta(0))
    days = remaining // ONE_DAY
    hours = (remaining // ONE_HOUR) % 24
    minutes = (remaining // ONE_MINUTE) % 60
    return days, hours, minutes


def format_countdown(days, hours, minutes):
    return f"{days:03d}", f"{hours:02d}", f"{minutes:02d}"


def countdown_values(target, now):
    return format_countdown(*split_remaining(target, now))


def log_exception(message, error):
    tb = traceback.format_exc()
    logger.error(f'{message}: {error}\n{tb}')


def exit_on_config_error():
    try:
        return get_config()
    except ConfigError as e:
        logger.critical(f"Failed to load config: {e}")
        sys.exit(1)
