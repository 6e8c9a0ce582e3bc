"""
Countdown image generation for the GTA VI countdown bot.
Composes the 1280x720 panel: background photo, tint overlays, the frame with
the title block, and the three days/hours/minutes tiles.
"""
import math
import os
import sys
from io import BytesIO
from typing import Dict, List, Optional, Tuple

import numpy as np
from PIL import Image, ImageChops, ImageDraw, ImageFilter, ImageFont

from countdown_bot.utils.utils import logger, countdown_values, get_config, utc_now, RELEASE_DATE, FONT_PATH
from countdown_bot.render.backgrounds import BackgroundLibrary

Color = Tuple[int, int, int, int]
Stops = List[Tuple[float, Color]]
Box = Tuple[int, int, int, int]
Size = Tuple[int, int]
Point = Tuple[int, int]


def rgba(r: int, g: int, b: int, a: float = 1.0) -> Color:
    return (r, g, b, round(a * 255))


def hex_color(value: str) -> Color:
    value = value.lstrip('#')
    return (int(value[0:2], 16), int(value[2:4], 16), int(value[4:6], 16), 255)


# Canvas
WIDTH, HEIGHT = 1280, 720
CANVAS_SIZE = (WIDTH, HEIGHT)
CENTER = (WIDTH / 2, HEIGHT / 2)
EMPTY_FILL = rgba(10, 11, 22)

# Frame
FRAME_X, FRAME_Y = 90, 136
FRAME_W, FRAME_H = 1100, 430
FRAME_RADIUS = 34
FRAME_INSET = 9
INSET_RADIUS = 26

# Tiles
TILE_COUNT = 3
TILE_GAP = 22
TILE_W = (FRAME_W - TILE_GAP * (TILE_COUNT + 1)) // TILE_COUNT
TILE_H = 220
TILE_Y = FRAME_Y + 165
TILE_RADIUS = 20
SHINE_RADIUS = 18
TILE_LABELS = ("DAYS", "HOURS", "MINUTES")

# Text
TITLE_TEXT = "GTA VI"
SUBTITLE_TEXT = "OFFICIAL LAUNCH COUNTDOWN"
DATE_TEXT = "19 NOV 2026"
TITLE_SIZE = 50
SUBTITLE_SIZE = 24
DATE_SIZE = 30
NUMBER_SIZE = 92
LABEL_SIZE = 29
NUMBER_SHADOW_BLUR = 4
SHADOW_PAD = NUMBER_SHADOW_BLUR * 3

# Colours
DIMMER_STOPS = [(0.0, rgba(8, 10, 18, 0.28)), (1.0, rgba(4, 5, 10, 0.58))]
AMBIENT_STOPS = [
    (0.0, rgba(255, 99, 165, 0.14)),
    (0.48, rgba(255, 164, 92, 0.10)),
    (1.0, rgba(101, 221, 255, 0.11)),
]
VIGNETTE_STOPS = [(0.0, rgba(0, 0, 0, 0)), (1.0, rgba(0, 0, 0, 0.26))]
VIGNETTE_RADII = (120, 700)
FRAME_STOPS = [(0.0, rgba(18, 19, 32, 0.60)), (1.0, rgba(10, 11, 22, 0.68))]
FRAME_BORDER = rgba(255, 211, 155, 0.22)
INSET_BORDER = rgba(255, 255, 255, 0.06)
TITLE_STOPS = [(0.0, hex_color("#ffd7a1")), (1.0, hex_color("#ff9c68"))]
SUBTITLE_COLOR = rgba(240, 226, 205, 0.90)
DATE_COLOR = rgba(255, 215, 145, 0.96)
SEPARATOR_COLOR = rgba(255, 198, 122, 0.28)
TILE_SHADOW = rgba(0, 0, 0, 0.35)
TILE_STOPS = [(0.0, rgba(10, 15, 36, 0.74)), (1.0, rgba(5, 9, 26, 0.80))]
TILE_BORDER = rgba(123, 156, 222, 0.22)
SHINE_STOPS = [(0.0, rgba(255, 255, 255, 0.08)), (1.0, rgba(255, 255, 255, 0))]
NUMBER_STOPS = [(0.0, hex_color("#fff2de")), (1.0, hex_color("#ffcf8d"))]
NUMBER_SHADOW = rgba(0, 0, 0, 0.72)
LABEL_COLOR = hex_color("#aec0ea")


def _gradient_image(t: np.ndarray, stops: Stops) -> Image.Image:
    """Map a field of gradient positions onto colour stops."""
    t = np.clip(t, 0.0, 1.0)
    offsets = [offset for offset, _ in stops]
    channels = [np.interp(t, offsets, [color[i] for _, color in stops]) for i in range(4)]
    pixels = np.stack(channels, axis=-1).round().astype(np.uint8)
    return Image.fromarray(pixels)


def _grid(size: Size, origin: Point):
    (w, h), (ox, oy) = size, origin
    xs = np.arange(w, dtype=np.float64) + ox + 0.5
    ys = np.arange(h, dtype=np.float64)[:, None] + oy + 0.5
    return xs, ys


def linear_gradient(start: Tuple[float, float], end: Tuple[float, float], stops: Stops,
                    size: Size = CANVAS_SIZE, origin: Point = (0, 0)) -> Image.Image:
    """
    Layer with a linear gradient running from start to end.
    Start and end are canvas coordinates; the layer covers `size` pixels whose
    top-left corner sits at `origin` on the canvas.
    """
    (x0, y0), (x1, y1) = start, end
    dx, dy = x1 - x0, y1 - y0
    length_sq = (dx * dx + dy * dy) or 1.0
    xs, ys = _grid(size, origin)
    t = ((xs - x0) * dx + (ys - y0) * dy) / length_sq
    return _gradient_image(t, stops)


def radial_gradient(center: Tuple[float, float], inner: float, outer: float, stops: Stops,
                    size: Size = CANVAS_SIZE, origin: Point = (0, 0)) -> Image.Image:
    """Layer with a radial gradient between two concentric circles."""
    cx, cy = center
    xs, ys = _grid(size, origin)
    distance = np.sqrt((xs - cx) ** 2 + (ys - cy) ** 2)
    t = (distance - inner) / max(outer - inner, 1e-6)
    return _gradient_image(t, stops)


def _box_size(box: Box) -> Size:
    # Pillow rectangles include their end coordinates
    _, _, w, h = box
    return (w + 1, h + 1)


def rounded_mask(box: Box, radius: int) -> Image.Image:
    """Mask the size of the box, to be composited at the box's top-left corner."""
    mask = Image.new('L', _box_size(box), 0)
    ImageDraw.Draw(mask).rounded_rectangle((0, 0, box[2], box[3]), radius=radius, fill=255)
    return mask


def paint(canvas: Image.Image, layer: Image.Image, mask: Optional[Image.Image] = None, dest: Point = (0, 0)) -> None:
    """Composite an RGBA layer at dest, optionally clipped to a mask of the same size."""
    if mask is not None:
        layer.putalpha(ImageChops.multiply(layer.getchannel('A'), mask))
    canvas.alpha_composite(layer, dest)


def paint_linear(canvas: Image.Image, mask: Image.Image, dest: Point, start, end, stops: Stops) -> None:
    paint(canvas, linear_gradient(start, end, stops, mask.size, dest), mask, dest)


def fill(canvas: Image.Image, color: Color, mask: Image.Image, dest: Point = (0, 0)) -> None:
    paint(canvas, Image.new('RGBA', mask.size, color), mask, dest)


def stroke_rounded(canvas: Image.Image, box: Box, radius: int, color: Color, width: int = 1) -> None:
    x, y, w, h = box
    layer = Image.new('RGBA', _box_size(box), (0, 0, 0, 0))
    ImageDraw.Draw(layer).rounded_rectangle((0, 0, w, h), radius=radius, outline=color, width=width)
    canvas.alpha_composite(layer, (x, y))


class CountdownImageGenerator:
    """Renders the countdown panel as PNG bytes."""

    def __init__(self, backgrounds: BackgroundLibrary, target=RELEASE_DATE, font_path: str = FONT_PATH):
        self.backgrounds = backgrounds
        self.target = target
        self.font_path = font_path
        self._fonts: Dict[int, ImageFont.ImageFont] = {}
        self._measure = ImageDraw.Draw(Image.new('L', (1, 1)))
        self._overlay: Optional[Image.Image] = None
        self.font_available = os.path.exists(font_path)
        if not self.font_available:
            logger.warning(f"{os.path.basename(font_path)} not found. Falling back to the default font.")

    def _font(self, size: int):
        font = self._fonts.get(size)
        if font is None:
            if self.font_available:
                try:
                    font = ImageFont.truetype(self.font_path, size)
                except OSError as e:
                    logger.warning(f"Could not load font {self.font_path}: {e}. Falling back to the default font.")
                    self.font_available = False
            if font is None:
                font = ImageFont.load_default(size=size)
            self._fonts[size] = font
        return font

    def _text_mask(self, xy, text: str, size: int, anchor: str, pad: int = 0) -> Tuple[Image.Image, Point]:
        """Text mask cropped to the text bounds plus pad, with its position on the canvas."""
        font = self._font(size)
        bounds = self._measure.textbbox(xy, text, font=font, anchor=anchor)
        left, top = math.floor(bounds[0]) - pad, math.floor(bounds[1]) - pad
        right, bottom = math.ceil(bounds[2]) + pad + 1, math.ceil(bounds[3]) + pad + 1
        mask = Image.new('L', (right - left, bottom - top), 0)
        ImageDraw.Draw(mask).text((xy[0] - left, xy[1] - top), text, font=font, fill=255, anchor=anchor)
        return mask, (left, top)

    def generate(self, now=None) -> bytes:
        """
        Render the countdown for the given moment.

        Args:
            now: Moment to count down from (defaults to the current UTC time)

        Returns:
            PNG-encoded 1280x720 image
        """
        now = now or utc_now()
        values = countdown_values(self.target, now)

        canvas = Image.new('RGBA', CANVAS_SIZE, EMPTY_FILL)
        self._draw_background(canvas, now)
        canvas.alpha_composite(self._overlays())
        self._draw_frame(canvas)
        self._draw_title(canvas)
        for index, (value, label) in enumerate(zip(values, TILE_LABELS)):
            self._draw_tile(canvas, index, value, label)

        buffer = BytesIO()
        canvas.convert('RGB').save(buffer, 'PNG')
        return buffer.getvalue()

    def _draw_background(self, canvas: Image.Image, now) -> None:
        path = self.backgrounds.pick(now)
        try:
            with Image.open(path) as source:
                background = source.convert('RGBA').resize(CANVAS_SIZE, Image.Resampling.LANCZOS)
        except OSError as e:
            logger.warning(f"Could not load background {path}: {e}")
            return
        canvas.alpha_composite(background)

    def _overlays(self) -> Image.Image:
        # The tint layers never change, so they are flattened once and reused
        if self._overlay is None:
            overlay = Image.new('RGBA', CANVAS_SIZE, (0, 0, 0, 0))
            overlay.alpha_composite(linear_gradient((0, 0), (0, HEIGHT), DIMMER_STOPS))
            overlay.alpha_composite(linear_gradient((0, 0), (WIDTH, 0), AMBIENT_STOPS))
            overlay.alpha_composite(radial_gradient(CENTER, *VIGNETTE_RADII, VIGNETTE_STOPS))
            self._overlay = overlay
        return self._overlay

    def _draw_frame(self, canvas: Image.Image) -> None:
        frame = (FRAME_X, FRAME_Y, FRAME_W, FRAME_H)
        paint_linear(canvas, rounded_mask(frame, FRAME_RADIUS), (FRAME_X, FRAME_Y),
                     (FRAME_X, FRAME_Y), (FRAME_X, FRAME_Y + FRAME_H), FRAME_STOPS)
        stroke_rounded(canvas, frame, FRAME_RADIUS, FRAME_BORDER)

        inset = (FRAME_X + FRAME_INSET, FRAME_Y + FRAME_INSET, FRAME_W - 2 * FRAME_INSET, FRAME_H - 2 * FRAME_INSET)
        stroke_rounded(canvas, inset, INSET_RADIUS, INSET_BORDER)

    def _draw_title(self, canvas: Image.Image) -> None:
        title, at = self._text_mask((FRAME_X + 38, FRAME_Y + 70), TITLE_TEXT, TITLE_SIZE, 'ls')
        paint_linear(canvas, title, at, (FRAME_X + 40, 0), (FRAME_X + 360, 0), TITLE_STOPS)

        fill(canvas, SUBTITLE_COLOR, *self._text_mask((FRAME_X + 40, FRAME_Y + 102), SUBTITLE_TEXT, SUBTITLE_SIZE, 'ls'))
        fill(canvas, DATE_COLOR, *self._text_mask((FRAME_X + FRAME_W - 38, FRAME_Y + 76), DATE_TEXT, DATE_SIZE, 'rs'))

        # Separator under the title block
        length = FRAME_W - 72
        layer = Image.new('RGBA', (length + 1, 1), (0, 0, 0, 0))
        ImageDraw.Draw(layer).line([(0, 0), (length, 0)], fill=SEPARATOR_COLOR, width=1)
        canvas.alpha_composite(layer, (FRAME_X + 36, FRAME_Y + 120))

    def _draw_tile(self, canvas: Image.Image, index: int, value: str, label: str) -> None:
        tile_x = FRAME_X + TILE_GAP + index * (TILE_W + TILE_GAP)
        tile = (tile_x, TILE_Y, TILE_W, TILE_H)

        shadow = (tile_x, TILE_Y + 6, TILE_W, TILE_H)
        fill(canvas, TILE_SHADOW, rounded_mask(shadow, TILE_RADIUS), (tile_x, TILE_Y + 6))

        paint_linear(canvas, rounded_mask(tile, TILE_RADIUS), (tile_x, TILE_Y),
                     (tile_x, TILE_Y), (tile_x, TILE_Y + TILE_H), TILE_STOPS)
        stroke_rounded(canvas, tile, TILE_RADIUS, TILE_BORDER)

        shine = (tile_x + 2, TILE_Y + 2, TILE_W - 4, TILE_H // 2)
        paint_linear(canvas, rounded_mask(shine, SHINE_RADIUS), (tile_x + 2, TILE_Y + 2),
                     (tile_x, TILE_Y), (tile_x, TILE_Y + TILE_H * 0.56), SHINE_STOPS)

        center_x = tile_x + TILE_W / 2
        number, at = self._text_mask((center_x, TILE_Y + 86), value, NUMBER_SIZE, 'mm', pad=SHADOW_PAD)
        fill(canvas, NUMBER_SHADOW, number.filter(ImageFilter.GaussianBlur(NUMBER_SHADOW_BLUR)), at)
        paint_linear(canvas, number, at, (tile_x, TILE_Y + 38), (tile_x, TILE_Y + 140), NUMBER_STOPS)

        fill(canvas, LABEL_COLOR, *self._text_mask((center_x, TILE_Y + 175), label, LABEL_SIZE, 'mm'))


def save_preview(output_path: str, now=None) -> str:
    """Render the current countdown to a local file without touching Discord."""
    config = get_config()
    generator = CountdownImageGenerator(BackgroundLibrary(config['background_dir']))
    with open(output_path, 'wb') as f:
        f.write(generator.generate(now))
    logger.info(f"Countdown preview written to {output_path}")
    return output_path


if __name__ == "__main__":
    save_preview(sys.argv[1] if len(sys.argv) > 1 else 'countdown.png')
