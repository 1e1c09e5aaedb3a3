"""Final and staging directories for record images."""
import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

from vocab_curator.errors import DataIntegrityError, NotFoundError
from vocab_curator.models import Record, StagedImage

logger = logging.getLogger(__name__)

DEFAULT_FINAL_PATTERN = "{record_id}{extension}"
DEFAULT_STAGING_PATTERN = "{record_id}-{attempt}{extension}"


class AssetManager(Protocol):
    def stage_existing_for_edit(self, record: Record) -> Optional[StagedImage]: ...

    def save_candidate(
        self, record: Record, data: bytes, extension: str, attempt: int,
        context: Optional[str], generated_at: datetime, prompt: Optional[str],
    ) -> StagedImage: ...

    def finalize(self, record: Record, staged: StagedImage) -> str: ...

    def staged_path(self, staged: StagedImage) -> Path: ...

    def final_path(self, relative_path: str) -> Path: ...

    def delete_final(self, record: Record) -> None: ...

    def cleanup(self, record_id: Optional[str] = None) -> None: ...


class ImageAssets:
    """Images live in ``final_directory``; candidates are staged beside it.

    Records store the final image path relative to ``final_directory``.
    """

    def __init__(
        self,
        final_directory,
        staging_directory,
        final_pattern: str = DEFAULT_FINAL_PATTERN,
        staging_pattern: str = DEFAULT_STAGING_PATTERN,
    ):
        self.final_directory = Path(final_directory)
        self.staging_directory = Path(staging_directory)
        self.final_pattern = final_pattern
        self.staging_pattern = staging_pattern

    def final_path(self, relative_path: str) -> Path:
        return self.final_directory / relative_path

    def staged_path(self, staged: StagedImage) -> Path:
        return self.staging_directory / staged.relative_path

    def _staging_name(self, record: Record, attempt: int, extension: str) -> str:
        return self.staging_pattern.format(record_id=record.id, attempt=attempt, extension=extension)

    def stage_existing_for_edit(self, record: Record) -> Optional[StagedImage]:
        """Copy the record's current image into staging as attempt 0."""
        if not record.image_file or not record.image_file.strip():
            return None
        source = self.final_path(record.image_file)
        if not source.is_file():
            raise DataIntegrityError(f"Final image file not found: {source}")
        if record.image_generated_at_utc is None:
            raise DataIntegrityError(f"Record {record.id} has an image but no image timestamp.")

        self.staging_directory.mkdir(parents=True, exist_ok=True)
        target = self.staging_directory / self._staging_name(record, 0, source.suffix)
        shutil.copyfile(source, target)
        return StagedImage(
            relative_path=os.path.relpath(target, self.staging_directory),
            context=record.image_context,
            generated_at_utc=record.image_generated_at_utc,
            prompt=record.image_prompt,
        )

    def save_candidate(
        self, record: Record, data: bytes, extension: str, attempt: int,
        context: Optional[str], generated_at: datetime, prompt: Optional[str],
    ) -> StagedImage:
        self.staging_directory.mkdir(parents=True, exist_ok=True)
        target = self.staging_directory / self._staging_name(record, attempt, extension)
        target.write_bytes(data)
        return StagedImage(
            relative_path=os.path.relpath(target, self.staging_directory),
            context=context,
            generated_at_utc=generated_at,
            prompt=prompt,
        )

    def finalize(self, record: Record, staged: StagedImage) -> str:
        """Move a staged image into the final directory and return its relative path."""
        source = self.staged_path(staged)
        if not source.is_file():
            raise NotFoundError(f"Staged image file not found: {source}")
        self.final_directory.mkdir(parents=True, exist_ok=True)
        name = self.final_pattern.format(record_id=record.id, extension=source.suffix)
        target = self.final_directory / name
        previous = self.final_path(record.image_file) if record.image_file and record.image_file.strip() else None
        os.replace(source, target)
        # a new extension gives a new name; drop the file it replaces
        if previous is not None and previous.resolve() != target.resolve() and previous.exists():
            try:
                previous.unlink()
            except OSError as e:
                logger.warning("Could not delete replaced image %s: %s", previous, e)
        return os.path.relpath(target, self.final_directory)

    def delete_final(self, record: Record) -> None:
        if not record.image_file or not record.image_file.strip():
            return
        path = self.final_path(record.image_file)
        if path.exists():
            path.unlink()

    def cleanup(self, record_id: Optional[str] = None) -> None:
        """Best-effort removal of staged files, for one record or all of them."""
        if not self.staging_directory.is_dir():
            return
        files = [p for p in self.staging_directory.iterdir() if p.is_file()]
        if record_id:
            prefix = record_id.lower()
            files = [p for p in files if p.name.lower().startswith(prefix)]
        for path in files:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except PermissionError as e:
                logger.debug("Could not delete staged file %s: %s", path, e)
            except OSError as e:
                # typically held open by an image viewer; a later cleanup retries
                logger.debug("Could not delete staged file %s: %s", path, e)
