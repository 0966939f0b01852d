import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import ValidationError as PydanticValidationError
from starlette.datastructures import UploadFile

from kanjisheet.core.deps import get_upload_relay
from kanjisheet.core.security import get_signature_header
from kanjisheet.models.upload import UploadJsonRequest, UploadResponse
from kanjisheet.services.relay import UploadRelay, ValidationError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["upload"])


@router.post("/upload", response_model=UploadResponse, response_model_exclude_none=True)
async def upload(
    request: Request,
    relay: UploadRelay = Depends(get_upload_relay),
    header_signature: Optional[str] = Depends(get_signature_header),
):
    """
    Relais d'upload. Accepte :
      - multipart/form-data : filename, mimeType, file (+ signature)
      - application/json    : {filename, mimeType, dataUrl, signature?}
    """
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("multipart/form-data"):
        raw_body = None  # X-Signature : JSON uniquement
        form = await request.form()
        file = form.get("file")
        if not isinstance(file, UploadFile):
            raise ValidationError("champ 'file' manquant")
        filename = str(form.get("filename") or file.filename or "")
        mime_type = str(form.get("mimeType") or file.content_type or "")
        signature = form.get("signature")
        data: Optional[bytes] = await file.read()
        data_url = None
    else:
        raw_body = await request.body()
        try:
            body = UploadJsonRequest.model_validate_json(raw_body or b"{}")
        except PydanticValidationError as e:
            raise ValidationError(f"JSON invalide: {e.errors()[0].get('msg', '')}") from e
        filename = body.filename
        mime_type = body.mimeType
        signature = body.signature
        data = None
        data_url = body.dataUrl

    relay.check_signature(
        filename,
        signature=str(signature) if signature else None,
        header_signature=header_signature,
        raw_body=raw_body,
    )

    result = await run_in_threadpool(relay.handle, filename, mime_type or None, data_url, data)
    logger.info("upload relayé: %s -> %s", filename, result.id)
    return UploadResponse(ok=True, id=result.id, name=result.name, webViewLink=result.web_view_link)
