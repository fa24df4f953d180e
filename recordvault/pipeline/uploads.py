import mimetypes
from pathlib import Path

from recordvault.pipeline.models import UploadedFile

DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024

ALLOWED_UPLOAD_TYPES: dict[str, frozenset[str]] = {
    ".pdf": frozenset({"application/pdf"}),
    ".jpg": frozenset({"image/jpeg"}),
    ".jpeg": frozenset({"image/jpeg"}),
    ".png": frozenset({"image/png"}),
    ".doc": frozenset({"application/msword"}),
    ".docx": frozenset(
        {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"}
    ),
}


def check_upload(upload: UploadedFile, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> None:
    """Reject empty, oversized, or non-document uploads.

    Raises:
        ValueError: describing the first rule the upload breaks.
    """
    if not upload.file_name.strip():
        raise ValueError("file name is required")
    if upload.size == 0:
        raise ValueError("file is empty")
    if upload.size > max_bytes:
        raise ValueError(
            f"file of {upload.size} bytes exceeds the {max_bytes}-byte upload limit"
        )
    extension = Path(upload.file_name).suffix.lower()
    mime_types = ALLOWED_UPLOAD_TYPES.get(extension)
    if mime_types is None:
        raise ValueError(
            f"file type '{extension or upload.file_name}' is not allowed. "
            f"Choose from: {sorted(ALLOWED_UPLOAD_TYPES)}"
        )
    if upload.mime_type.lower() not in mime_types:
        raise ValueError(
            f"MIME type '{upload.mime_type}' does not match a {extension} document"
        )


class UploadLoader:
    """Reads an upload from disk for the command-line entry point."""

    def load(self, path: Path, mime_type: str | None = None) -> UploadedFile:
        """Read file bytes and resolve its MIME type from the extension if not given.

        Raises:
            FileNotFoundError: if the path is not a regular file.
        """
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {path}")
        resolved = mime_type or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return UploadedFile(file_name=path.name, mime_type=resolved, content=path.read_bytes())
