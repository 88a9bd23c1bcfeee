import os
import uuid

from flask import current_app, request
from werkzeug.utils import secure_filename

ALLOWED_EXTS = {".jpg", ".jpeg", ".png", ".webp", ".pdf"}


def request_data() -> dict:
    """JSON body, or the form fields of a multipart request."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict() if request.form else {}


def save_upload(file_storage, folder: str, owner_id=None) -> str | None:
    """
    Store an uploaded file under UPLOAD_DIR/<folder> and return the
    relative path kept on the row. Unsupported extensions are ignored.
    """
    if file_storage is None or not file_storage.filename:
        return None
    ext = os.path.splitext(secure_filename(file_storage.filename))[1].lower()
    if ext not in ALLOWED_EXTS:
        current_app.logger.warning("upload rejected: %s (%s)", file_storage.filename, folder)
        return None

    rel_dir = f"{current_app.config['UPLOAD_DIR'].rstrip('/')}/{folder}"
    base_dir = os.path.join(current_app.root_path, rel_dir)
    os.makedirs(base_dir, exist_ok=True)
    prefix = f"{owner_id}_" if owner_id is not None else ""
    filename = f"{prefix}{uuid.uuid4().hex}{ext}"
    file_storage.save(os.path.join(base_dir, filename))
    return f"{rel_dir}/{filename}"


def save_request_file(field: str, folder: str, owner_id=None) -> str | None:
    return save_upload(request.files.get(field), folder, owner_id)
