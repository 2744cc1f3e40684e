"""
File Upload Handler
===================

Async upload handling with format and size validation, plus temp file
cleanup for background jobs.
"""

import logging
import tempfile
from pathlib import Path
from typing import Optional

import aiofiles
from fastapi import UploadFile

from config import Settings, get_settings
from exceptions import AudioError, AudioTooLargeError, UnsupportedAudioFormatError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192


class FileHandler:
    """Handle audio uploads and temporary file management."""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.temp_dir = Path(self.settings.temp_file_dir or tempfile.gettempdir())
        self.max_size_bytes = self.settings.max_upload_size_mb * 1024 * 1024
        self.allowed_formats = self.settings.supported_audio_formats

    def validate_filename(self, filename: Optional[str]) -> str:
        """
        Check the upload has a name with a supported extension.

        Returns:
            The lowercase extension without the dot

        Raises:
            AudioError: no filename
            UnsupportedAudioFormatError: extension not in supported_audio_formats
        """
        if not filename:
            raise AudioError("Audio file is required")
        extension = Path(filename).suffix.lower().lstrip(".")
        if extension not in self.allowed_formats:
            raise UnsupportedAudioFormatError(filename, extension, self.allowed_formats)
        return extension

    async def read_upload_bytes(self, upload_file: UploadFile) -> bytes:
        """
        Read an upload into memory, enforcing the size limit while reading.

        Raises:
            AudioError, UnsupportedAudioFormatError, AudioTooLargeError
        """
        self.validate_filename(upload_file.filename)
        chunks = []
        total_size = 0
        while True:
            chunk = await upload_file.read(CHUNK_SIZE)
            if not chunk:
                break
            total_size += len(chunk)
            if total_size > self.max_size_bytes:
                raise AudioTooLargeError(upload_file.filename, total_size, self.max_size_bytes)
            chunks.append(chunk)

        if total_size == 0:
            raise AudioError("Audio file is empty", details={"file_path": upload_file.filename})
        return b"".join(chunks)

    async def save_upload_file(self, upload_file: UploadFile, job_id: str) -> Path:
        """
        Save an upload to the temp directory as `{job_id}.{ext}`.

        Raises:
            AudioError, UnsupportedAudioFormatError, AudioTooLargeError
        """
        extension = self.validate_filename(upload_file.filename)
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        temp_file_path = self.temp_dir / f"{job_id}.{extension}"

        total_size = 0
        try:
            async with aiofiles.open(temp_file_path, "wb") as f:
                while True:
                    chunk = await upload_file.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    total_size += len(chunk)
                    if total_size > self.max_size_bytes:
                        raise AudioTooLargeError(upload_file.filename, total_size, self.max_size_bytes)
                    await f.write(chunk)
        except Exception:
            temp_file_path.unlink(missing_ok=True)
            raise

        logger.info(f"Saved upload {upload_file.filename} to {temp_file_path} ({total_size} bytes)")
        return temp_file_path

    def cleanup_file(self, file_path: Path | str) -> None:
        """Delete a temp file; failures are logged, not raised."""
        try:
            Path(file_path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not delete temp file {file_path}: {e}")
