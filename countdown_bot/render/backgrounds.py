# Backgrounds
import os

from countdown_bot.utils.utils import logger, minute_bucket, DEFAULT_BACKGROUND_PATH

ALLOWED_EXTENSIONS = {'.png', '.jpg', '.jpeg', '.webp'}


# BackgroundLibrary class
# Lists the background images once and rotates through them one per minute.
# The rotation is derived from the clock, so every render inside the same
# minute gets the same picture.
class BackgroundLibrary:
    def __init__(self, directory, default_path=DEFAULT_BACKGROUND_PATH):
        self.directory = directory
        self.default_path = default_path
        self._paths = None

    @property
    def paths(self):
        """Sorted background paths, computed on first use and cached afterwards"""
        if self._paths is None:
            self._paths = self._scan()
        return self._paths

    def _scan(self):
        backgrounds = set()
        if os.path.isdir(self.directory):
            for name in os.listdir(self.directory):
                full_path = os.path.join(self.directory, name)
                extension = os.path.splitext(name)[1].lower()
                if extension in ALLOWED_EXTENSIONS and os.path.isfile(full_path):
                    backgrounds.add(full_path)
        else:
            logger.warning(f'Background directory {self.directory} not found')

        if not backgrounds:
            logger.warning(f'No backgrounds found in {self.directory}, using default {self.default_path}')
            return [self.default_path]

        logger.info(f'Loaded {len(backgrounds)} backgrounds from {self.directory}')
        return sorted(backgrounds)

    def pick(self, now):
        paths = self.paths
        return paths[minute_bucket(now) % len(paths)]
