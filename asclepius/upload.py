from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional

import structlog
from starlette.datastructures import UploadFile
from starlette.requests import Request

from .errors import BadRequest, InternalError, PayloadTooLarge

log = structlog.get_logger()

FIELD_NAME = "image"
# Room for multipart boundaries and part headers on top of the file itself.
ENVELOPE_ALLOWANCE = 64 * 1024


@dataclass
class UploadedImage:
    content: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return PurePath(self.filename).suffix.lower() if self.filename else ""


def _declared_length(request: Request) -> Optional[int]:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


async def read_upload(request: Request, max_bytes: int) -> UploadedImage:
    """
    Pull the single ``image`` file out of a multipart request.

    Raises PayloadTooLarge above ``max_bytes``, BadRequest when the file is
    missing or repeated, and InternalError for any other upload failure.
    """
    declared = _declared_length(request)
    if declared is not None and declared > max_bytes + ENVELOPE_ALLOWANCE:
        log.info("upload_rejected", reason="content_length", declared=declared)
        raise PayloadTooLarge(max_bytes)

    try:
        form = await request.form()
    except Exception as exc:
        log.error("upload_failed", err=str(exc))
        raise InternalError() from exc

    try:
        files = [f for f in form.getlist(FIELD_NAME) if isinstance(f, UploadFile)]
        if not files:
            log.info("upload_rejected", reason="missing_file")
            raise BadRequest()
        if len(files) > 1:
            log.info("upload_rejected", reason="multiple_files", count=len(files))
            raise BadRequest("Only one image file may be uploaded.")

        upload = files[0]
        try:
            content = await upload.read(max_bytes + 1)
        except Exception as exc:
            log.error("upload_failed", err=str(exc))
            raise InternalError() from exc

        if len(content) > max_bytes:
            log.info("upload_rejected", reason="file_size", limit=max_bytes)
            raise PayloadTooLarge(max_bytes)

        return UploadedImage(
            content=content,
            filename=upload.filename,
            content_type=upload.content_type,
        )
    finally:
        await form.close()
