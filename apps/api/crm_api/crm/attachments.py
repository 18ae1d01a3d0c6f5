from __future__ import annotations

import logging
import uuid
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from crm_api.core.config import get_settings
from crm_api.core.errors import ConflictIgnorable, DependencyError, FieldError, NotFoundError, ValidationError, ignore_conflicts
from crm_api.metrics import observe_attachment_rollback, observe_blob_delete_failure
from crm_api.storage import BlobStore, StoredBlob

logger = logging.getLogger("crm_api.attachments")

MAX_APPEND_ATTEMPTS = 3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class UploadedFile:
    file_name: str
    content: bytes
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def extension(self) -> str:
        return PurePath(self.file_name).suffix.lower().lstrip(".")


def safe_file_name(file_name: str) -> str:
    name = PurePath(file_name.replace("\\", "/")).name.strip()
    return name or "file"


def validate_uploads(files: Sequence[UploadedFile]) -> None:
    settings = get_settings()
    if not files:
        raise ValidationError.single("files", "at least one file is required")

    errors: list[FieldError] = []
    if len(files) > settings.upload_max_files:
        errors.append(FieldError(field="files", message=f"at most {settings.upload_max_files} files per upload"))

    allowed = settings.allowed_upload_extensions
    for index, item in enumerate(files):
        field = f"files[{index}]"
        if item.size > settings.upload_max_bytes:
            errors.append(FieldError(field=field, message=f"{item.file_name} exceeds {settings.upload_max_bytes} bytes"))
        if item.extension not in allowed:
            errors.append(FieldError(field=field, message=f"{item.file_name} has a file type that is not allowed"))
    if errors:
        raise ValidationError(errors)


class AttachmentManager:
    """Moves file bytes into the blob store and keeps entity attachment lists in step.

    Attachment lists live on the entity row. Every mutation is a conditional
    update on ``row_version`` retried a bounded number of times, so concurrent
    uploads against one entity never overwrite each other.
    """

    def __init__(self, store: BlobStore, *, max_workers: int = 4, max_attempts: int = MAX_APPEND_ATTEMPTS) -> None:
        self.store = store
        self.max_workers = max_workers
        self.max_attempts = max_attempts

    def attach(
        self,
        session: Session,
        model: Any,
        entity_id: uuid.UUID,
        files: Sequence[UploadedFile],
        *,
        resource: str,
    ) -> list[dict[str, Any]]:
        validate_uploads(files)
        self._require_entity(session, model, entity_id)

        records = self._upload_all(files, resource=resource, entity_id=entity_id)
        try:
            return self._mutate_list(session, model, entity_id, lambda current: [*current, *records])
        except (NotFoundError, DependencyError):
            self._rollback_uploads(records, resource)
            raise

    def detach(
        self,
        session: Session,
        model: Any,
        entity_id: uuid.UUID,
        attachment_id: str,
    ) -> tuple[dict[str, Any], list[dict[str, Any]]]:
        removed: dict[str, Any] = {}

        def remove(current: list[dict[str, Any]]) -> list[dict[str, Any]]:
            match = next((item for item in current if item.get("id") == attachment_id), None)
            if match is None:
                raise NotFoundError("attachment not found")
            removed.clear()
            removed.update(match)
            return [item for item in current if item.get("id") != attachment_id]

        remaining = self._mutate_list(session, model, entity_id, remove)
        self.delete_blob(removed.get("storage_id"))
        logger.info(
            "attachment.detached",
            extra={"entity_id": str(entity_id), "attachment_id": attachment_id},
        )
        return removed, remaining

    def get(self, session: Session, model: Any, entity_id: uuid.UUID, attachment_id: str) -> dict[str, Any]:
        attachments = self._require_entity(session, model, entity_id)
        match = next((item for item in attachments if item.get("id") == attachment_id), None)
        if match is None:
            raise NotFoundError("attachment not found")
        return match

    def download_url(self, attachment: dict[str, Any]) -> str:
        return self.store.url_for(attachment["storage_id"])

    def set_logo(self, session: Session, model: Any, entity_id: uuid.UUID, file: UploadedFile, *, resource: str) -> dict[str, Any]:
        validate_uploads([file])
        self._require_entity(session, model, entity_id)
        (record,) = self._upload_all([file], resource=f"{resource}-logo", entity_id=entity_id)
        try:
            previous = self._swap_logo(session, model, entity_id, record)
        except (NotFoundError, DependencyError):
            self._rollback_uploads([record], resource)
            raise
        if previous:
            self.delete_blob(previous.get("storage_id"))
        return record

    def clear_logo(self, session: Session, model: Any, entity_id: uuid.UUID) -> None:
        self._require_entity(session, model, entity_id)
        previous = self._swap_logo(session, model, entity_id, None)
        if previous is None:
            raise NotFoundError("logo not found")
        self.delete_blob(previous.get("storage_id"))

    def purge(self, attachments: Sequence[dict[str, Any]]) -> None:
        """Best-effort deletion of every blob behind ``attachments``."""
        for item in attachments:
            self.delete_blob(item.get("storage_id"))

    def delete_blob(self, storage_id: str | None) -> None:
        if not storage_id:
            return
        with ignore_conflicts(logger, "attachment.blob_delete_failed", storage_id=storage_id):
            try:
                self.store.delete(storage_id)
            except DependencyError as exc:
                observe_blob_delete_failure("delete")
                raise ConflictIgnorable(exc.message) from exc

    def _require_entity(self, session: Session, model: Any, entity_id: uuid.UUID) -> list[dict[str, Any]]:
        attachments = session.scalar(select(model.attachments).where(model.id == entity_id))
        if attachments is None:
            raise NotFoundError(f"{model.__tablename__.removeprefix('crm_')} not found")
        return list(attachments)

    def _upload_one(self, item: UploadedFile, key: str) -> StoredBlob:
        return self.store.put(key, item.content, item.content_type)

    def _upload_all(self, files: Sequence[UploadedFile], *, resource: str, entity_id: uuid.UUID) -> list[dict[str, Any]]:
        planned: list[tuple[UploadedFile, str, str]] = []
        for item in files:
            attachment_id = str(uuid.uuid4())
            key = f"{resource}/{entity_id}/{attachment_id}-{safe_file_name(item.file_name)}"
            planned.append((item, attachment_id, key))

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(planned))) as pool:
            futures = [pool.submit(self._upload_one, item, key) for item, _, key in planned]

        records: list[dict[str, Any]] = []
        first_error: Exception | None = None
        for (item, attachment_id, _), future in zip(planned, futures):
            error = future.exception()
            if error is not None:
                first_error = first_error or error
                continue
            blob = future.result()
            records.append(
                {
                    "id": attachment_id,
                    "file_name": safe_file_name(item.file_name),
                    "storage_url": blob.url,
                    "storage_id": blob.storage_id,
                    "file_type": item.content_type,
                    "file_size": item.size,
                    "uploaded_at": utcnow().isoformat(),
                }
            )

        if first_error is not None:
            self._rollback_uploads(records, resource)
            if isinstance(first_error, DependencyError):
                raise first_error
            raise DependencyError(f"attachment upload failed: {first_error}") from first_error

        logger.info(
            "attachment.uploaded",
            extra={"entity_type": resource, "entity_id": str(entity_id), "file_count": len(records)},
        )
        return records

    def _rollback_uploads(self, records: Sequence[dict[str, Any]], resource: str) -> None:
        observe_attachment_rollback(resource)
        logger.warning("attachment.upload_rolled_back", extra={"entity_type": resource, "file_count": len(records)})
        self.purge(records)

    def _mutate_list(self, session: Session, model: Any, entity_id: uuid.UUID, mutate) -> list[dict[str, Any]]:  # type: ignore[no-untyped-def]
        for attempt in range(1, self.max_attempts + 1):
            try:
                row = session.execute(
                    select(model.attachments, model.row_version).where(model.id == entity_id)
                ).one_or_none()
                if row is None:
                    raise NotFoundError(f"{model.__tablename__.removeprefix('crm_')} not found")

                updated = mutate(list(row.attachments or []))
                result = session.execute(
                    update(model)
                    .where(model.id == entity_id, model.row_version == row.row_version)
                    .values(attachments=updated, row_version=row.row_version + 1, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    session.commit()
                    return updated
            except SQLAlchemyError as exc:
                session.rollback()
                raise DependencyError(f"attachment list update failed: {exc}") from exc
            session.rollback()
            logger.info("attachment.list_conflict", extra={"entity_id": str(entity_id), "attempt": attempt})
        raise DependencyError("attachment list was modified concurrently, retries exhausted")

    def _swap_logo(self, session: Session, model: Any, entity_id: uuid.UUID, record: dict[str, Any] | None) -> dict[str, Any] | None:
        for attempt in range(1, self.max_attempts + 1):
            try:
                row = session.execute(
                    select(model.company_logo, model.row_version).where(model.id == entity_id)
                ).one_or_none()
                if row is None:
                    raise NotFoundError(f"{model.__tablename__.removeprefix('crm_')} not found")
                result = session.execute(
                    update(model)
                    .where(model.id == entity_id, model.row_version == row.row_version)
                    .values(company_logo=record, row_version=row.row_version + 1, updated_at=utcnow())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 1:
                    session.commit()
                    return row.company_logo
            except SQLAlchemyError as exc:
                session.rollback()
                raise DependencyError(f"logo update failed: {exc}") from exc
            session.rollback()
            logger.info("attachment.logo_conflict", extra={"entity_id": str(entity_id), "attempt": attempt})
        raise DependencyError("logo was modified concurrently, retries exhausted")
