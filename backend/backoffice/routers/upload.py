"""
图片上传路由
"""
import logging
from typing import Optional
from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from backoffice.security.auth import get_current_user
from backoffice.services.storage import ImageStorage, get_image_storage, normalize_folder
from backoffice_core.envelope import build_response
from backoffice_core.errors import ValidationFailedError
from backoffice_core.router import started_at

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["图片上传"], dependencies=[Depends(get_current_user)])


@router.post("/upload-image", status_code=201)
async def upload_image(
    request: Request,
    file: Optional[UploadFile] = File(None),
    folder: Optional[str] = Form(None),
    storage: ImageStorage = Depends(get_image_storage),
):
    """压缩并上传图片"""
    folder = normalize_folder(folder)
    if file is None or not file.filename:
        raise ValidationFailedError("Invalid file upload", ["Please upload a valid file"])

    raw = await file.read()
    if not raw:
        raise ValidationFailedError("Invalid file upload", ["Please upload a valid file"])

    data = storage.upload_image(folder, file.filename, raw)
    return build_response(
        code=201,
        message="Image uploaded successfully",
        data=data,
        started_at=started_at(request),
    )
