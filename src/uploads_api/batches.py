"""
Upload batch handling: stage, rename, clear.
"""
import asyncio
import logging
import os
import uuid
from typing import BinaryIO, List, Optional

from fastapi.concurrency import run_in_threadpool

from .errors import BadRequest, InternalError, PayloadTooLarge
from .storage import check_name

logger = logging.getLogger(__name__)

STAGING_PREFIX = ".tmp-"


class UploadResult:
    """Outcome of one stored batch"""

    def __init__(self, base_name: str, files: List[str], missing: Optional[List[str]] = None):
        self.base_name = base_name
        self.files = files
        self.missing = missing or []

    def to_dict(self) -> dict:
        return {
            "message": "Files uploaded and renamed successfully",
            "baseName": self.base_name,
            "files": self.files,
            "missing": self.missing,
        }


def file_extension(filename: Optional[str]) -> str:
    """Extension of the client-side filename, including the dot ('' if none)."""
    if not filename:
        return ""
    return os.path.splitext(filename.replace("\\", "/"))[1]


def target_name(base_name: str, index: int, filename: Optional[str]) -> str:
    return f"{base_name}-{index + 1}{file_extension(filename)}"


def staging_name(filename: Optional[str]) -> str:
    return f"{STAGING_PREFIX}{uuid.uuid4().hex}{file_extension(filename)}"


def part_size(upload) -> int:
    size = getattr(upload, "size", None)
    if size is not None:
        return size
    f: BinaryIO = upload.file
    pos = f.tell()
    f.seek(0, os.SEEK_END)
    size = f.tell()
    f.seek(pos)
    return size


def validate_batch(base_name: Optional[str], files, max_files: int, max_file_size: int) -> list:
    """
    Check an upload request before anything is written.

    Returns the file parts that carry a filename; empty file inputs are dropped.
    """
    if not base_name:
        raise BadRequest("Base name is required")
    try:
        check_name(base_name)
    except ValueError:
        raise BadRequest("Base name is not a valid file name")

    parts = [f for f in (files or []) if f.filename]
    if not parts:
        raise BadRequest("No files uploaded")

    if len(parts) > max_files:
        raise PayloadTooLarge(f"Too many files: at most {max_files} per upload")
    for part in parts:
        if part_size(part) > max_file_size:
            raise PayloadTooLarge(f"File too large: {part.filename} exceeds {max_file_size} bytes")
    return parts


def store_batch(storage, base_name: str, files) -> UploadResult:
    """
    Stage every file under a generated name, then rename each one in
    submission order to ``<base_name>-<n><ext>``.

    A staged file that is gone by rename time is skipped and logged; its target
    name is still returned in ``files`` and also listed in ``missing``.
    """
    staged = []
    renamed: List[str] = []
    missing: List[str] = []
    try:
        for upload in files:
            name = staging_name(upload.filename)
            staged.append((name, upload.filename))
            upload.file.seek(0)
            storage.put(name, upload.file)

        for index, (tmp, filename) in enumerate(staged):
            new_name = target_name(base_name, index, filename)
            if storage.exists(tmp):
                storage.rename(tmp, new_name)
            else:
                logger.error(f"action=rename_skipped reason=not_found staged={tmp} target={new_name}")
                missing.append(new_name)
            renamed.append(new_name)
    except Exception:
        _discard_staged(storage, [tmp for tmp, _ in staged[len(renamed):]])
        raise

    logger.info(
        f"action=upload base_name={base_name} files={len(renamed)} missing={len(missing)}"
    )
    return UploadResult(base_name, renamed, missing)


def _discard_staged(storage, names: List[str]) -> None:
    for name in names:
        try:
            if storage.exists(name):
                storage.delete(name)
        except Exception as e:
            logger.warning(f"action=discard_staged staged={name} error={e}")


async def clear_storage(storage) -> int:
    """
    Delete every entry in the storage area concurrently.
    Returns the number of entries removed.
    """
    try:
        names = await run_in_threadpool(storage.list)
    except Exception as e:
        logger.error(f"action=clear status=error stage=list error={e}")
        raise InternalError("Failed to read uploads directory")

    results = await asyncio.gather(
        *(run_in_threadpool(storage.delete, name) for name in names),
        return_exceptions=True,
    )
    failures = [(name, r) for name, r in zip(names, results) if isinstance(r, Exception)]
    if failures:
        for name, err in failures:
            logger.error(f"action=clear status=error entry={name} error={err}")
        raise InternalError("Failed to delete files")

    logger.info(f"action=clear entries={len(names)}")
    return len(names)
