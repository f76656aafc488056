"""FastAPI service for publishing and resolving content packs."""

from __future__ import annotations

import logging
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import aiofiles
from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .common.types import PointerState
from .service import PackService
from .utils import (
    ConflictError,
    EnumerationError,
    HashError,
    PackBuilderError,
    PointerSyncError,
    PublishError,
    RecordNotFound,
    SerializationError,
    StoreError,
)

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 1024 * 1024
_SERVICE: Optional[PackService] = None


class PackSummaryOut(BaseModel):
    pack_id: str
    version: int
    asset_count: int
    created_at: Optional[datetime] = None


class AssetOut(BaseModel):
    key: str
    filename: str
    sha256: Optional[str] = None
    size: Optional[int] = None


class PackOut(BaseModel):
    pack_id: str
    version: int
    assets: List[AssetOut]
    custom_urls: List[str]
    created_at: Optional[datetime] = None


class PublishOut(BaseModel):
    pack_id: str
    version: int
    asset_count: int


class DeleteOut(BaseModel):
    pack_id: str
    head_id: Optional[str] = None
    head_version: Optional[int] = None


class BootstrapOut(BaseModel):
    pack_id: Optional[str] = None
    version: int
    link: str


app = FastAPI(title="Pack Builder API")


def get_service() -> PackService:
    global _SERVICE
    if _SERVICE is None:
        _SERVICE = PackService.from_config()
    return _SERVICE


@app.on_event("shutdown")
async def _shutdown() -> None:
    global _SERVICE
    if _SERVICE is not None:
        await _SERVICE.close()
        _SERVICE = None


def _status_for(exc: PackBuilderError) -> int:
    if isinstance(exc, PublishError) and exc.__cause__ is not None:
        cause = exc.__cause__
        if isinstance(cause, PackBuilderError):
            return _status_for(cause)
        return 400
    if isinstance(exc, RecordNotFound):
        return 404
    if isinstance(exc, ConflictError):
        return 409
    if isinstance(exc, (StoreError, PointerSyncError)):
        return 502
    if isinstance(exc, (EnumerationError, HashError, SerializationError, PublishError)):
        return 400
    return 500


@app.exception_handler(PackBuilderError)
async def _handle_error(request: Request, exc: PackBuilderError) -> JSONResponse:
    status = _status_for(exc)
    content: Dict[str, object] = {"detail": str(exc)}
    if isinstance(exc, PointerSyncError) and exc.pack_id:
        content["pack_id"] = exc.pack_id
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content=content)


def _bootstrap_out(service: PackService, state: PointerState) -> BootstrapOut:
    return BootstrapOut(pack_id=state.pack_id, version=state.version, link=service.bootstrap_link())


@app.get("/api/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/api/packs", response_model=List[PackSummaryOut])
async def api_list_packs(
    limit: Optional[int] = Query(None, ge=0),
    service: PackService = Depends(get_service),
) -> List[PackSummaryOut]:
    packs = await service.list_packs(limit)
    return [PackSummaryOut(**item.to_dict()) for item in packs]


@app.get("/api/packs/{pack_id}", response_model=PackOut)
async def api_get_pack(pack_id: str, service: PackService = Depends(get_service)) -> PackOut:
    pack = await service.get_pack(pack_id)
    return PackOut(
        pack_id=pack.pack_id,
        version=pack.version,
        assets=[
            AssetOut(
                key=entry.key,
                filename=entry.filename,
                sha256=entry.sha256,
                size=entry.asset.size if entry.asset else None,
            )
            for entry in pack.assets
        ],
        custom_urls=pack.custom_urls,
        created_at=pack.created_at,
    )


@app.post("/api/packs", response_model=PublishOut)
async def api_publish(
    version: int = Form(...),
    files: List[UploadFile] = File(default=[]),
    custom_urls: List[str] = Form(default=[]),
    service: PackService = Depends(get_service),
) -> PublishOut:
    if version < 0:
        raise HTTPException(status_code=400, detail="Version must not be negative.")
    upload_root = Path(tempfile.mkdtemp(prefix="pack_upload_"))
    try:
        paths: List[Path] = []
        for index, upload_file in enumerate(files):
            name = Path((upload_file.filename or "").replace("\\", "/")).name
            if not name:
                raise HTTPException(status_code=400, detail="Uploaded file has no name.")
            target_path = upload_root / str(index) / name
            target_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(target_path, "wb") as outfile:
                while True:
                    chunk = await upload_file.read(UPLOAD_CHUNK_SIZE)
                    if not chunk:
                        break
                    await outfile.write(chunk)
            await upload_file.close()
            paths.append(target_path)

        urls = [url.strip() for url in custom_urls if url.strip()]
        result = await service.publish(None, version, custom_urls=urls, extra_files=paths)
    finally:
        shutil.rmtree(upload_root, ignore_errors=True)
    return PublishOut(pack_id=result.pack_id, version=result.version, asset_count=result.asset_count)


@app.delete("/api/packs/{pack_id}", response_model=DeleteOut)
async def api_delete_pack(pack_id: str, service: PackService = Depends(get_service)) -> DeleteOut:
    outcome = await service.delete_pack(pack_id)
    return DeleteOut(
        pack_id=outcome.pack_id, head_id=outcome.head_id, head_version=outcome.head_version
    )


@app.get("/api/bootstrap", response_model=BootstrapOut)
async def api_bootstrap(service: PackService = Depends(get_service)) -> BootstrapOut:
    state = await service.pointer_state()
    return _bootstrap_out(service, state)


@app.post("/api/bootstrap/repair", response_model=BootstrapOut)
async def api_repair(service: PackService = Depends(get_service)) -> BootstrapOut:
    state = await service.repair_pointer()
    return _bootstrap_out(service, state)
