"""Upload contract for prescriptions and profile images."""

import logging
import uuid
from pathlib import Path

from telemed.scheduling.errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_UPLOAD_EXTENSIONS = {'.pdf', '.jpg', '.jpeg', '.png', '.webp'}
UPLOAD_SIZE_LIMITS = {
    'profile_image': 2 * 1024 * 1024,
    'prescription': 10 * 1024 * 1024,
}


def validate_upload(filename: str, size: int, upload_class: str) -> str:
    if upload_class not in UPLOAD_SIZE_LIMITS:
        raise ValidationError(f'Unknown upload class: {upload_class}.')

    extension = Path(filename or '').suffix.lower()
    if extension not in ALLOWED_UPLOAD_EXTENSIONS:
        raise ValidationError('Only PDF, JPG, JPEG, PNG and WEBP files are allowed.')

    if size <= 0:
        raise ValidationError('Uploaded file is empty.')

    limit = UPLOAD_SIZE_LIMITS[upload_class]
    if size > limit:
        raise ValidationError(f'File exceeds the {limit // (1024 * 1024)} MB limit.')

    return extension


class LocalFileStorage:
    def __init__(self, root: str) -> None:
        self.root = Path(root)

    def save(self, content: bytes, filename: str, upload_class: str) -> str:
        extension = validate_upload(filename, len(content), upload_class)

        target_dir = self.root / upload_class
        target_dir.mkdir(parents=True, exist_ok=True)
        target = target_dir / f'{uuid.uuid4().hex}{extension}'
        target.write_bytes(content)

        logger.info('Stored %s upload at %s', upload_class, target)
        return f'{upload_class}/{target.name}'
