import base64
import binascii
from pathlib import Path

from loguru import logger

DATA_URI_PREFIX = "data:image/jpeg;base64,"


def encode_photo(photo: bytes | str) -> str:
    """Returns camera output as a base64 string. Strings are taken as already encoded."""
    if isinstance(photo, bytes):
        return base64.b64encode(photo).decode("ascii")
    return photo


class PhotoStore:
    """Keeps unlock-attempt photos as JPEG files next to the record ledger."""

    def __init__(self, photos_dir: Path):
        self.photos_dir = photos_dir

    def save(self, record_id: str, success: bool, photo_data: str) -> Path:
        """Writes base64 (or data URI) photo data to disk and returns the file path."""
        raw = photo_data.removeprefix(DATA_URI_PREFIX)
        try:
            content = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"Photo data is not valid base64: {e}") from e

        self.photos_dir.mkdir(parents=True, exist_ok=True)
        outcome = "success" if success else "fail"
        path = self.photos_dir / f"unlock-{record_id}-{outcome}.jpg"
        path.write_bytes(content)
        logger.debug(f"Photo saved: {path}")
        return path

    def load(self, photo_path: str | None) -> str | None:
        """Returns the photo as a data URI, or None if the file is gone."""
        if not photo_path:
            return None
        path = Path(photo_path)
        if not path.exists():
            return None
        try:
            return DATA_URI_PREFIX + base64.b64encode(path.read_bytes()).decode("ascii")
        except OSError as e:
            logger.error(f"Failed to read photo {path}: {e}")
            return None

    def delete(self, photo_path: str | None):
        if not photo_path:
            return
        path = Path(photo_path)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to delete photo file {path}: {e}")
