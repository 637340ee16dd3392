"""
Signed file downloads. The token carries the bucket and object path and
expires after SIGNED_URL_EXPIRY_SECONDS.
"""

from flask import Blueprint, send_file

from app.services.storage import get_storage

files_bp = Blueprint('files', __name__, url_prefix='/files')


@files_bp.route('/<token>', methods=['GET'])
def download(token):
    storage = get_storage()
    bucket, path, download_name = storage.verify_token(token)
    full_path = storage.open_path(bucket, path)
    return send_file(full_path, as_attachment=bool(download_name), download_name=download_name)
