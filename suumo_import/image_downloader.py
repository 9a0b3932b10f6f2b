"""
Download SUUMO images and attach them to buildings or rooms.

download_and_attach() never raises: every failure is logged and
reported as False. Checking whether a source URL was already attached
is left to the caller.
"""
import logging
import os
import posixpath
import re
import secrets
import tempfile
from urllib.parse import urlparse

import requests
from PIL import Image, UnidentifiedImageError

from .config import ScraperConfig

logger = logging.getLogger(__name__)

EXTENSION_CONTENT_TYPES = {
    '.jpg': 'image/jpeg',
    '.jpeg': 'image/jpeg',
    '.png': 'image/png',
    '.gif': 'image/gif',
    '.webp': 'image/webp',
}
DEFAULT_CONTENT_TYPE = 'image/jpeg'
CHUNK_SIZE = 8192


def generate_filename(url) -> str:
    """Sanitized basename of the URL path, or a random suumo_<hex>.jpg"""
    basename = posixpath.basename(urlparse(url or '').path)
    if basename and '.' in basename:
        return re.sub(r'[^a-zA-Z0-9._-]', '_', basename)
    return f"suumo_{secrets.token_hex(8)}.jpg"


def detect_content_type(fileobj, filename) -> str:
    """Sniff the image format with Pillow, falling back to the file extension"""
    try:
        position = fileobj.tell()
        with Image.open(fileobj) as img:
            mime = Image.MIME.get(img.format)
        fileobj.seek(position)
        if mime:
            return mime
    except (UnidentifiedImageError, OSError, ValueError):
        fileobj.seek(0)

    extension = os.path.splitext(filename or '')[1].lower()
    return EXTENSION_CONTENT_TYPES.get(extension, DEFAULT_CONTENT_TYPE)


def create_session(config: ScraperConfig) -> requests.Session:
    session = requests.Session()
    session.headers.update(config.image_headers())
    return session


class ImageDownloader:

    def __init__(self, config: ScraperConfig, store, session=None):
        self.config = config
        self.store = store
        self.session = session or create_session(config)

    def download_and_attach(self, url, owner, photo_type, display_order=0, source_url=None) -> bool:
        """
        Download url into a temporary file and attach it to owner.

        Args:
            url: image URL
            owner: building or room record from the store
            photo_type: photo type stored with the record
            display_order: position among the owner's photos
            source_url: dedup key stored with the photo, defaults to url

        Returns:
            True if the photo was stored
        """
        logger.info(f"Downloading photo: {url}")
        try:
            response = self.session.get(
                url,
                headers=self.config.image_headers(),
                timeout=self.config.image_timeout,
                stream=True,
            )
            try:
                if not 200 <= response.status_code < 300:
                    logger.warning(f"Failed to download {url}: HTTP {response.status_code}")
                    return False

                content_type = response.headers.get('Content-Type', '')
                if not content_type.startswith('image/'):
                    logger.warning(f"Not an image: {url} ({content_type or 'no content type'})")
                    return False

                filename = generate_filename(url)
                suffix = os.path.splitext(filename)[1] or '.jpg'
                with tempfile.NamedTemporaryFile(prefix='suumo_image', suffix=suffix) as tmp:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if chunk:
                            tmp.write(chunk)
                    tmp.flush()
                    tmp.seek(0)

                    result = self.store.attach_photo(
                        owner,
                        tmp,
                        filename,
                        detect_content_type(tmp, filename),
                        photo_type,
                        display_order=display_order,
                        source_url=source_url or url,
                    )
            finally:
                response.close()

            if not result.ok:
                logger.error(f"Failed to save photo {url}: {', '.join(result.errors)}")
                return False

            logger.info(f"Attached {photo_type} photo: {filename}")
            return True

        except Exception as e:
            logger.error(f"Error attaching photo {url}: {e}")
            return False
