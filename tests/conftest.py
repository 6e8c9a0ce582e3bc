"""
Shared pytest fixtures for the countdown bot tests

Provides:
- Background directories filled with small generated images
- Fake Discord channel/message doubles
- A stub image generator and a fixed clock
"""

import datetime
from datetime import timezone
from itertools import count
from unittest.mock import AsyncMock, MagicMock

import nextcord
import pytest
from PIL import Image

from countdown_bot.utils.utils import UNKNOWN_MESSAGE


FIXED_NOW = datetime.datetime(2026, 10, 19, 12, 30, 15, tzinfo=timezone.utc)
FAKE_PNG = b"\x89PNG\r\n\x1a\nfake-countdown"


def make_image(path, color=(200, 40, 40), size=(64, 36)):
    Image.new("RGB", size, color).save(path)
    return str(path)


def http_error(status, code=0, text="error"):
    response = MagicMock(status=status, reason="Error")
    payload = {"code": code, "message": text}
    if status == 404:
        return nextcord.NotFound(response, payload)
    return nextcord.HTTPException(response, payload)


def unknown_message_error():
    return http_error(404, UNKNOWN_MESSAGE, "Unknown Message")


# ============================================================================
# Backgrounds
# ============================================================================

@pytest.fixture
def background_dir(tmp_path):
    """Directory with three usable backgrounds and one file that is not an image"""
    folder = tmp_path / "backgrounds"
    folder.mkdir()
    make_image(folder / "c_night.png", (20, 20, 80))
    make_image(folder / "a_beach.jpg", (240, 200, 120))
    make_image(folder / "b_city.JPEG", (90, 90, 90))
    (folder / "notes.txt").write_text("not a background")
    return folder


@pytest.fixture
def default_background(tmp_path):
    return make_image(tmp_path / "bg.png", (10, 120, 60))


# ============================================================================
# Discord doubles
# ============================================================================

@pytest.fixture
def mock_channel():
    """Channel whose send() hands out messages with increasing ids"""
    ids = count(1001)
    channel = MagicMock()
    channel.id = 42
    channel.sent_messages = []

    async def send(*args, **kwargs):
        message = MagicMock()
        message.id = next(ids)
        message.edit = AsyncMock()
        channel.sent_messages.append(message)
        return message

    channel.send = AsyncMock(side_effect=send)
    channel.existing_message = MagicMock()
    channel.existing_message.edit = AsyncMock()
    channel.fetch_message = AsyncMock(return_value=channel.existing_message)
    return channel


@pytest.fixture
def mock_bot():
    bot = MagicMock()
    bot.wait_until_ready = AsyncMock()
    return bot


@pytest.fixture
def mock_generator():
    generator = MagicMock()
    generator.generate = MagicMock(return_value=FAKE_PNG)
    return generator


@pytest.fixture
def fixed_clock():
    return lambda: FIXED_NOW
