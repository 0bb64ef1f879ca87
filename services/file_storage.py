"""
Database-backed file buckets.

Each upload type maps to a bucket with its own MIME allow-list and size
limit. Profile images are normalised to a 300x300 JPEG before storage.
"""
import logging
import os
import secrets
import time
from io import BytesIO
from PIL import Image, ImageOps, UnidentifiedImageError
from models import db
from models.stored_file import StoredFile
from services.auth_services import formatting_id
from services.errors import APIError

logger = logging.getLogger(__name__)

MB = 1024 * 1024

DOC_TYPES = (
    'application/pdf',
    'application/msword',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document',
)
IMAGE_TYPES = ('image/jpeg', 'image/jpg', 'image/png', 'image/webp')

UPLOAD_TYPES = {
    'research-papers': {
        'bucket': 'research_papers',
        'mime_types': DOC_TYPES,
        'max_size': 25 * MB,
    },
    'profile-images': {
        'bucket': 'profile_images',
        'mime_types': IMAGE_TYPES,
        'max_size': 5 * MB,
    },
    'documents': {
        'bucket': 'documents',
        'mime_types': DOC_TYPES + ('text/plain',),
        'max_size': 10 * MB,
    },
    # figures attached to a paper submission live beside the manuscripts
    'figures': {
        'bucket': 'research_papers',
        'mime_types': IMAGE_TYPES + ('image/gif', 'image/svg+xml'),
        'max_size': 10 * MB,
    },
}

AVATAR_SIZE = (300, 300)
AVATAR_QUALITY = 85


def upload_config(file_type):
    config = UPLOAD_TYPES.get(file_type)
    if config is None:
        raise APIError(f"Unknown file type '{file_type}'", 400)
    return config


def bucket_for(file_type):
    return upload_config(file_type)['bucket']


def generate_filename(file_type, user_id, original_name):
    ext = os.path.splitext(original_name or '')[1].lower()
    prefix = file_type.replace('-', '_')
    return f"{prefix}_{user_id or 'anonymous'}_{int(time.time() * 1000)}_{secrets.token_hex(6)}{ext}"


def resize_profile_image(data):
    """Crop and scale to a 300x300 JPEG."""
    try:
        with Image.open(BytesIO(data)) as image:
            image = ImageOps.exif_transpose(image)
            image = ImageOps.fit(image.convert('RGB'), AVATAR_SIZE, Image.LANCZOS)
            output = BytesIO()
            image.save(output, format='JPEG', quality=AVATAR_QUALITY, optimize=True)
            return output.getvalue()
    except (UnidentifiedImageError, OSError) as e:
        raise APIError(f"Invalid image file: {e}", 400)


def read_upload(file_storage, file_type):
    """Check an uploaded werkzeug FileStorage against its bucket rules; returns the bytes."""
    config = upload_config(file_type)
    if file_storage is None or not file_storage.filename:
        raise APIError("No file uploaded", 400)

    mimetype = (file_storage.mimetype or '').lower()
    if mimetype not in config['mime_types']:
        raise APIError(
            f"Invalid file type. Allowed types: {', '.join(config['mime_types'])}", 400
        )

    data = file_storage.read()
    if len(data) > config['max_size']:
        raise APIError(f"File too large. Maximum size is {config['max_size'] // MB}MB", 400)
    if not data:
        raise APIError("Uploaded file is empty", 400)
    return data


def store_file(file_storage, file_type, owner_id, metadata=None):
    """Validate and persist an upload. The caller commits."""
    data = read_upload(file_storage, file_type)
    original_name = file_storage.filename
    content_type = file_storage.mimetype

    if file_type == 'profile-images':
        data = resize_profile_image(data)
        content_type = 'image/jpeg'
        original_name = os.path.splitext(original_name)[0] + '.jpg'

    stored = StoredFile(
        file_id=formatting_id('FL', StoredFile, 'file_id'),
        bucket=bucket_for(file_type),
        filename=generate_filename(file_type, owner_id, original_name),
        original_name=file_storage.filename,
        content_type=content_type,
        size=len(data),
        data=data,
        owner_id=owner_id,
        file_metadata=dict(metadata or {}, upload_type=file_type)
    )
    db.session.add(stored)
    db.session.flush()
    logger.info(f"Stored {stored.bucket}/{stored.filename} ({stored.size} bytes) for {owner_id}")
    return stored


def get_file(file_id, bucket=None):
    stored = StoredFile.get(file_id)
    if stored is None or (bucket and stored.bucket != bucket):
        raise APIError("File not found", 404)
    return stored


def delete_file(file_id):
    """Remove a stored file if it exists. The caller commits."""
    stored = StoredFile.get(file_id)
    if stored is not None:
        db.session.delete(stored)
        return True
    return False


def file_info(stored):
    return {
        "file_id": stored.file_id,
        "filename": stored.filename,
        "original_name": stored.original_name,
        "content_type": stored.content_type,
        "size": stored.size,
        "bucket": stored.bucket,
        "owner_id": stored.owner_id,
        "upload_date": stored.upload_date.isoformat() if stored.upload_date else None,
        "metadata": stored.file_metadata or {},
    }
