"""
API routes for the user directory.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Any, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from src.backend.errors import UserError, ValidationError
from src.backend.fs.naming import AvatarSlot
from src.backend.fs.uploads import (
    MAX_AVATAR_BYTES,
    MAX_SPREADSHEET_BYTES,
    AvatarUpload,
    check_spreadsheet_upload,
    collect_avatars,
)
from src.backend.imports.pipeline import ImportReport, import_spreadsheet_file, store_spreadsheet_upload
from src.backend.settings.models import AppSettings

from .manager import BulkResult, UserRecordManager
from .models import UserQuery
from .shaping import CamelModel, UserOut, shape_user

logger = logging.getLogger(__name__)


class UserListOut(CamelModel):
    data: list[UserOut]
    page: int
    limit: int
    total_pages: int
    total_users: int


class UserMutationOut(CamelModel):
    success: bool = True
    message: str
    data: UserOut


class PatchAvatarOut(UserMutationOut):
    updated_field: str
    user_folder: str


class UpdateUserOut(UserMutationOut):
    files_uploaded: int
    user_folder: str


class DeletedUserOut(CamelModel):
    key: str
    sequential_id: int
    first_name: str
    last_name: str


class DeleteUserOut(CamelModel):
    message: str
    deleted_user: DeletedUserOut


class BatchSummaryOut(CamelModel):
    total: int
    successful: int
    failed: int


class BulkCreatedOut(CamelModel):
    success: bool = True
    index: int
    user: UserOut


class BulkFailedOut(CamelModel):
    index: int
    user: Any = None
    error: str
    errors: list[dict[str, str]] = []


class BulkCreateOut(CamelModel):
    success: bool
    message: str
    created: list[BulkCreatedOut]
    failed: list[BulkFailedOut]
    summary: BatchSummaryOut


class ImportedUserOut(CamelModel):
    key: str
    sequential_id: int
    first_name: str
    last_name: str
    email: str
    row_index: int


class ImportFailureOut(CamelModel):
    row_index: int
    kind: str
    user_data: dict[str, Any]
    error: str
    errors: list[str]


class ImportSummaryOut(CamelModel):
    total_rows: int
    successful: int
    failed: int


class ImportOut(CamelModel):
    success: bool
    message: str
    file_name: str
    summary: ImportSummaryOut
    created_users: list[ImportedUserOut]
    failed_users: list[ImportFailureOut]
    errors: list[str]


def _http_error(exc: UserError) -> HTTPException:
    if exc.status_code >= 500:
        logger.error("Request failed: %s", exc)
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())


def _origin(request: Request) -> str:
    return str(request.base_url).rstrip("/")


def _truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("true", "1", "yes", "on")


def _dump(model: CamelModel, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=model.model_dump(mode="json", by_alias=True))


async def _read_upload(upload: UploadFile, limit: int) -> bytes:
    # One byte past the limit is enough to reject oversize files
    return await upload.read(limit + 1)


async def _read_form(request: Request) -> tuple[dict[str, Any], dict[AvatarSlot, AvatarUpload]]:
    """Split a multipart form into plain fields and accepted avatar files."""
    form = await request.form()
    try:
        fields: dict[str, Any] = {}
        files: list[tuple[str, str, str, bytes]] = []
        for name, value in form.multi_items():
            if isinstance(value, UploadFile):
                if not value.filename:
                    # Empty file input
                    continue
                data = await _read_upload(value, MAX_AVATAR_BYTES)
                files.append((name, value.filename, value.content_type or "", data))
            else:
                fields[name] = value
    finally:
        await form.close()

    return fields, collect_avatars(files)


async def _read_payload(request: Request) -> tuple[Any, dict[AvatarSlot, AvatarUpload]]:
    """JSON bodies carry no files; anything else is read as a form."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/json"):
        try:
            return await request.json(), {}
        except ValueError as exc:
            raise _http_error(ValidationError.single("body", "Invalid JSON body")) from exc
    return await _read_form(request)


def _bulk_out(result: BulkResult, *, origin: str, url_prefix: str) -> BulkCreateOut:
    return BulkCreateOut(
        success=bool(result.created),
        message=(
            f"Processed {result.total} users: {len(result.created)} created, "
            f"{len(result.failed)} failed"
        ),
        created=[
            BulkCreatedOut(index=index, user=shape_user(record, origin=origin, url_prefix=url_prefix))
            for index, record in result.created
        ],
        failed=[
            BulkFailedOut(
                index=failure.index,
                user=failure.data,
                error=failure.error.message,
                errors=[e.to_dict() for e in getattr(failure.error, "errors", [])],
            )
            for failure in result.failed
        ],
        summary=BatchSummaryOut(total=result.total, successful=len(result.created), failed=len(result.failed)),
    )


def _import_out(report: ImportReport, *, file_name: str) -> ImportOut:
    validation_messages = [m for f in report.validation_failures for m in f.messages]
    if report.failed and not report.created and report.validation_failures:
        message = "Validation errors found in Excel data"
    else:
        message = (
            f"Excel processing complete: {report.succeeded} users created, {report.failed} failed"
        )
    return ImportOut(
        success=bool(report.created),
        message=message,
        file_name=file_name,
        summary=ImportSummaryOut(total_rows=report.total_rows, successful=report.succeeded, failed=report.failed),
        created_users=[
            ImportedUserOut(
                key=record.key,
                sequential_id=record.sequential_id,
                first_name=record.first_name,
                last_name=record.last_name,
                email=record.email,
                row_index=row_index,
            )
            for row_index, record in report.created
        ],
        failed_users=[
            ImportFailureOut(
                row_index=failure.row_index,
                kind=failure.kind.value,
                user_data=failure.data,
                error=failure.error.message,
                errors=failure.messages,
            )
            for failure in report.failures
        ],
        errors=validation_messages,
    )


def create_users_router(*, manager: UserRecordManager, settings: AppSettings, excel_dir: Path) -> APIRouter:
    """
    Create the users API router.

    Args:
        manager: The user record manager.
        settings: Application settings (page limits, uploads URL prefix).
        excel_dir: Directory spreadsheets are stored in while imported.

    Returns:
        FastAPI router with user endpoints.
    """
    router = APIRouter(prefix="/api/users", tags=["users"])
    url_prefix = settings.uploads_url_prefix

    def shape(record, request: Request) -> UserOut:
        return shape_user(record, origin=_origin(request), url_prefix=url_prefix)

    @router.get("", response_model=UserListOut)
    def list_users(
        request: Request,
        page: int = Query(1, ge=1),
        limit: Optional[int] = Query(None, ge=1),
        sort_by: str = Query("sequentialId", alias="sortBy"),
        order: str = Query("asc"),
        first_name: Optional[str] = Query(None, alias="firstName"),
        last_name: Optional[str] = Query(None, alias="lastName"),
        email: Optional[str] = Query(None),
        phone: Optional[str] = Query(None),
    ) -> UserListOut:
        query = UserQuery(
            page=page,
            limit=settings.clamp_limit(limit),
            sort_by=sort_by,
            order="desc" if order.lower() == "desc" else "asc",
            filters={
                "firstName": first_name or "",
                "lastName": last_name or "",
                "email": email or "",
                "phone": phone or "",
            },
        )
        result = manager.list_users(query)
        return UserListOut(
            data=[shape(u, request) for u in result.users],
            page=result.page,
            limit=result.limit,
            total_pages=result.total_pages,
            total_users=result.total,
        )

    @router.get("/{key}", response_model=UserOut)
    def get_user(key: str, request: Request) -> UserOut:
        try:
            record = manager.get(key)
        except UserError as exc:
            raise _http_error(exc) from exc
        return shape(record, request)

    @router.post("", response_model=UserMutationOut, status_code=201)
    async def create_user(request: Request):
        """
        Create one user (form or JSON object) or several (JSON array).

        Avatar files are only accepted together with isNewUser=true.
        """
        try:
            body, avatars = await _read_payload(request)
        except UserError as exc:
            raise _http_error(exc) from exc

        if isinstance(body, list):
            result = await run_in_threadpool(manager.create_many, body)
            return _dump(
                _bulk_out(result, origin=_origin(request), url_prefix=url_prefix),
                result.status_code,
            )

        if not isinstance(body, dict):
            raise _http_error(ValidationError.single("body", "Expected a user object or an array of users"))

        try:
            record = await run_in_threadpool(
                manager.create, body, avatars, is_new_user=_truthy(body.get("isNewUser"))
            )
        except UserError as exc:
            raise _http_error(exc) from exc

        return UserMutationOut(message="User created successfully", data=shape(record, request))

    @router.post("/upload-excel", response_model=ImportOut, status_code=201)
    async def upload_users_from_excel(request: Request):
        form = await request.form()
        try:
            upload = form.get("excelFile")
            if not isinstance(upload, UploadFile) or not upload.filename:
                raise _http_error(ValidationError.single(
                    "excelFile", "No Excel file uploaded. Please upload a .xlsx or .xls file"
                ))
            data = await _read_upload(upload, MAX_SPREADSHEET_BYTES)
            file_name = upload.filename
            content_type = upload.content_type
        finally:
            await form.close()

        try:
            check_spreadsheet_upload(file_name, content_type, len(data))
            path = await run_in_threadpool(store_spreadsheet_upload, excel_dir, file_name, io.BytesIO(data))
            report = await run_in_threadpool(import_spreadsheet_file, manager, path)
        except UserError as exc:
            raise _http_error(exc) from exc

        return _dump(_import_out(report, file_name=file_name), report.status_code)

    @router.put("/{key}", response_model=UpdateUserOut)
    async def update_user(key: str, request: Request) -> UpdateUserOut:
        try:
            body, avatars = await _read_payload(request)
            if not isinstance(body, dict):
                raise ValidationError.single("body", "Expected a user object")
            record = await run_in_threadpool(manager.update, key, body, avatars)
        except UserError as exc:
            raise _http_error(exc) from exc

        return UpdateUserOut(
            message="User updated successfully",
            data=shape(record, request),
            files_uploaded=len(avatars),
            user_folder=manager.media.folder_name(record.sequential_id),
        )

    @router.patch("/{key}", response_model=PatchAvatarOut)
    async def patch_user_avatar(key: str, request: Request) -> PatchAvatarOut:
        try:
            fields, avatars = await _read_form(request)
            record, slot = await run_in_threadpool(
                manager.patch_avatar, key, fields.get("avatarField"), avatars
            )
        except UserError as exc:
            raise _http_error(exc) from exc

        return PatchAvatarOut(
            message=f"{slot.value} updated successfully",
            data=shape(record, request),
            updated_field=slot.value,
            user_folder=manager.media.folder_name(record.sequential_id),
        )

    @router.delete("/{key}", response_model=DeleteUserOut)
    def delete_user(key: str) -> DeleteUserOut:
        try:
            record = manager.delete(key)
        except UserError as exc:
            raise _http_error(exc) from exc

        return DeleteUserOut(
            message="User deleted successfully",
            deleted_user=DeletedUserOut(
                key=record.key,
                sequential_id=record.sequential_id,
                first_name=record.first_name,
                last_name=record.last_name,
            ),
        )

    return router


__all__ = ["create_users_router"]
