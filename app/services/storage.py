"""
File storage for consent forms and absence evidence.

Files live in per-bucket folders under STORAGE_ROOT and are named
``<owner id>/<random hex>.<ext>``. They are only reachable through
time-limited signed URLs, never by a guessable path.
"""

import os
import re
import uuid

from flask import current_app, url_for
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from app.errors import NotFound, UpstreamFailure, ValidationError

CONSENT_BUCKET = 'consent-files'
ABSENCE_BUCKET = 'absence-files'
BUCKETS = (CONSENT_BUCKET, ABSENCE_BUCKET)

CONSENT_MAX_BYTES = 5 * 1024 * 1024
EVIDENCE_MAX_BYTES = 10 * 1024 * 1024

ALLOWED_CONTENT_TYPES = {
    'application/pdf': 'pdf',
    'image/jpeg': 'jpg',
    'image/png': 'png',
    'image/webp': 'webp',
}

_OBJECT_PATH = re.compile(r'^\d+/[0-9a-f]{32}\.(pdf|jpg|png|webp)$')
_SIGNING_SALT = 'file-download'
DEFAULT_SIGNED_URL_EXPIRY = 3600


def validate_upload(file_storage, max_bytes):
    """
    Read an uploaded werkzeug FileStorage and check its type and size.

    Returns:
        tuple: (data bytes, content type, extension)
    """
    if file_storage is None or not file_storage.filename:
        raise ValidationError("No file provided.")

    content_type = (file_storage.mimetype or '').lower()
    extension = ALLOWED_CONTENT_TYPES.get(content_type)
    if extension is None:
        raise ValidationError("Unsupported file type. Allowed: PDF, JPEG, PNG, WEBP.")

    data = file_storage.read(max_bytes + 1)
    if len(data) > max_bytes:
        raise ValidationError(f"File is too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")
    if not data:
        raise ValidationError("Uploaded file is empty.")
    return data, content_type, extension


def build_object_path(owner_id, extension):
    return f"{owner_id}/{uuid.uuid4().hex}.{extension}"


class LocalFileStorage:
    """Bucketed file storage on the local filesystem."""

    def __init__(self, root):
        self.root = root

    def _full_path(self, bucket, path):
        if bucket not in BUCKETS or not _OBJECT_PATH.match(path or ''):
            raise NotFound()
        return os.path.join(self.root, bucket, path)

    def upload(self, bucket, path, data):
        full_path = self._full_path(bucket, path)
        try:
            os.makedirs(os.path.dirname(full_path), exist_ok=True)
            with open(full_path, 'wb') as fh:
                fh.write(data)
        except OSError:
            current_app.logger.exception(f"Storage upload failed: {bucket}/{path}")
            raise UpstreamFailure("File upload failed. Please try again.")
        current_app.logger.info(f"Stored {bucket}/{path} ({len(data)} bytes)")

    def remove(self, bucket, paths):
        """
        Delete objects. Missing objects are ignored.

        Returns:
            bool: False if any object could not be removed (logged for manual cleanup).
        """
        ok = True
        for path in paths:
            try:
                os.remove(self._full_path(bucket, path))
            except FileNotFoundError:
                continue
            except OSError:
                ok = False
                current_app.logger.exception(f"Storage cleanup failed, orphaned object: {bucket}/{path}")
        return ok

    def open_path(self, bucket, path):
        full_path = self._full_path(bucket, path)
        if not os.path.isfile(full_path):
            raise NotFound()
        return full_path

    # -------------------- SIGNED URLS --------------------

    def _serializer(self):
        return URLSafeTimedSerializer(current_app.config['SECRET_KEY'], salt=_SIGNING_SALT)

    def create_signed_url(self, bucket, path, download_name=None):
        """Return a URL for ``bucket/path`` valid for SIGNED_URL_EXPIRY_SECONDS."""
        self._full_path(bucket, path)
        token = self._serializer().dumps({'b': bucket, 'p': path, 'n': download_name})
        return url_for('files.download', token=token)

    def verify_token(self, token):
        """
        Return (bucket, path, download_name) for a valid unexpired token.

        Raises:
            NotFound: token is tampered with or expired.
        """
        max_age = current_app.config.get('SIGNED_URL_EXPIRY_SECONDS', DEFAULT_SIGNED_URL_EXPIRY)
        try:
            payload = self._serializer().loads(token, max_age=max_age)
        except SignatureExpired:
            raise NotFound("This link has expired.")
        except BadSignature:
            raise NotFound()
        return payload.get('b'), payload.get('p'), payload.get('n')


def get_storage():
    """Return the storage backend configured for the current app."""
    return LocalFileStorage(current_app.config['STORAGE_ROOT'])
