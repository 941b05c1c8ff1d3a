# Image upload ingestion for post images and profile pictures
import logging
import os
import shutil
import time

from errors import FileTooLarge, InvalidFileType, StorageWriteError

logger = logging.getLogger(__name__)

ALLOWED_TYPES = {'jpeg', 'jpg', 'png'}
POSTS_DIR = 'posts'
PROFILES_DIR = 'profiles'
URL_PREFIX = '/uploads'


def allowed_extension(filename):
    ext = os.path.splitext(filename or '')[1]
    return ext[1:].lower() in ALLOWED_TYPES


def allowed_mimetype(mimetype):
    major, _, minor = (mimetype or '').lower().partition('/')
    return major == 'image' and minor in ALLOWED_TYPES


def stream_size(stream):
    position = stream.tell()
    stream.seek(0, os.SEEK_END)
    size = stream.tell()
    stream.seek(position)
    return size


class ImageStore:
    """Stores validated image uploads under ``root/<subdir>``.

    Files are named ``<prefix>-<nanosecond timestamp><ext>`` and exposed as
    ``/uploads/<subdir>/<filename>``.
    """

    def __init__(self, root, max_size):
        self.root = root
        self.max_size = max_size

    def ensure_directories(self):
        for subdir in (POSTS_DIR, PROFILES_DIR):
            path = os.path.join(self.root, subdir)
            os.makedirs(path, exist_ok=True)
            logger.debug('Upload directory ready: %s', path)

    def validate(self, file):
        if not (allowed_extension(file.filename) and allowed_mimetype(file.mimetype)):
            raise InvalidFileType()
        if stream_size(file.stream) > self.max_size:
            raise FileTooLarge()

    def ingest(self, file, subdir, prefix):
        """Validate ``file`` and write it to disk, returning its relative URL."""
        self.validate(file)
        ext = os.path.splitext(file.filename)[1]
        directory = os.path.join(self.root, subdir)
        try:
            os.makedirs(directory, exist_ok=True)
            filename, handle = self._open_unique(directory, prefix, ext)
            with handle:
                file.stream.seek(0)
                shutil.copyfileobj(file.stream, handle)
        except OSError as exc:
            logger.error('Could not write upload to %s: %s', directory, exc)
            raise StorageWriteError() from exc

        url = f'{URL_PREFIX}/{subdir}/{filename}'
        logger.info('Stored upload %s', url)
        return url

    def discard(self, url):
        """Remove a file previously returned by ``ingest``."""
        if not url or not url.startswith(URL_PREFIX + '/'):
            return
        path = os.path.join(self.root, *url[len(URL_PREFIX) + 1:].split('/'))
        try:
            os.remove(path)
        except FileNotFoundError:
            pass

    @staticmethod
    def _open_unique(directory, prefix, ext):
        while True:
            filename = f'{prefix}-{time.time_ns()}{ext}'
            try:
                return filename, open(os.path.join(directory, filename), 'xb')
            except FileExistsError:
                continue
