import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import Response
from starlette.status import HTTP_400_BAD_REQUEST

from kanjisheet.core.config import Settings
from kanjisheet.core.deps import get_page_size, get_settings_dep, get_upload_relay, get_worksheet_state
from kanjisheet.core.security import get_signature_header
from kanjisheet.models.upload import UploadResponse
from kanjisheet.models.worksheet import DocumentSummary, FieldsUpdate, GenerateMessage
from kanjisheet.services.document import (
    EXPORT_FILENAME,
    PNG_FILENAME,
    DocumentError,
    WorksheetState,
    apply_message,
    export_json,
    load_text,
    parse_params,
    update_fields,
)
from kanjisheet.services.layout import PageSize
from kanjisheet.services.relay import UploadRelay
from kanjisheet.services.renderer import Surface, render_sheet, render_words

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/worksheet", tags=["worksheet"])


def _content_disposition(filename: str) -> str:
    """
    Les en-têtes sont encodés en latin-1 : un nom japonais (漢字テスト.png)
    passe par filename* (RFC 6266), avec un nom ASCII de repli.
    """
    if filename.isascii() and filename.isprintable() and '"' not in filename and "\\" not in filename:
        return f'inline; filename="{filename}"'
    return f"inline; filename=\"{PNG_FILENAME}\"; filename*=UTF-8''{quote(filename, safe='')}"


def _png_response(surface: Surface, filename: str = PNG_FILENAME) -> Response:
    return Response(
        content=surface.to_png(),
        media_type="image/png",
        headers={"Content-Disposition": _content_disposition(filename)},
    )


def _render_current(
    state: WorksheetState,
    page: PageSize,
    settings: Settings,
    scale: Optional[float],
    answers: bool,
) -> Surface:
    return render_sheet(
        state.questions,
        state.words,
        state.cols,
        filename=state.source_filename,
        page=page,
        scale=scale or settings.CANVAS_SCALE,
        answers=answers,
        font_path=settings.FONT_PATH,
    )


def _sheet_filename(state: WorksheetState, answers: bool) -> str:
    stem = Path(state.source_filename).stem if state.source_filename.strip() else Path(PNG_FILENAME).stem
    return f"{stem}-answers.png" if answers else f"{stem}.png"


@router.get("", response_model=DocumentSummary)
def get_summary(state: WorksheetState = Depends(get_worksheet_state)):
    return state.summary()


@router.get("/sheet.png")
def sheet_from_params(
    request: Request,
    scale: Optional[float] = Query(None, gt=0, le=4),
    state: WorksheetState = Depends(get_worksheet_state),
    page: PageSize = Depends(get_page_size),
    settings: Settings = Depends(get_settings_dep),
):
    """
    Rendu direct depuis l'URL (?words=犬,猫&cols=2&auto=1).
    """
    params = parse_params(state, request.query_params)
    surface = render_words(
        params["words"],
        params["cols"],
        page=page,
        scale=scale or settings.CANVAS_SCALE,
        font_path=settings.FONT_PATH,
    )
    return _png_response(surface)


@router.post("/load", response_model=DocumentSummary)
async def load_json(
    request: Request,
    filename: Optional[str] = Query(None, description="Nom affiché en pied de page"),
    state: WorksheetState = Depends(get_worksheet_state),
):
    raw = await request.body()
    try:
        load_text(state, raw.decode("utf-8"), filename=filename)
    except UnicodeDecodeError:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail="ファイル読み込みに失敗しました")
    except DocumentError as e:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail=f"JSON読込エラー: {e}")
    return state.summary()


@router.post("/import", response_model=DocumentSummary)
async def import_json_file(
    file: UploadFile = File(...),
    state: WorksheetState = Depends(get_worksheet_state),
):
    contents = await file.read()
    try:
        text = contents.decode("utf-8")
    except UnicodeDecodeError:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail="ファイル読み込みに失敗しました")

    try:
        load_text(state, text, filename=file.filename or "")
    except DocumentError as e:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail=f"JSON読込エラー: {e}")
    return state.summary()


@router.post("/message", response_model=DocumentSummary)
def post_message(
    message: GenerateMessage,
    state: WorksheetState = Depends(get_worksheet_state),
):
    try:
        apply_message(state, message)
    except DocumentError as e:
        raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail=str(e))
    return state.summary()


@router.put("/fields", response_model=DocumentSummary)
def put_fields(
    body: FieldsUpdate,
    state: WorksheetState = Depends(get_worksheet_state),
):
    update_fields(state, body.words, body.cols)
    return state.summary()


@router.get("/render.png")
def render_png(
    answers: bool = Query(False, description="Corrigé (cases remplies)"),
    scale: Optional[float] = Query(None, gt=0, le=4),
    state: WorksheetState = Depends(get_worksheet_state),
    page: PageSize = Depends(get_page_size),
    settings: Settings = Depends(get_settings_dep),
):
    surface = _render_current(state, page, settings, scale, answers)
    return _png_response(surface, _sheet_filename(state, answers))


@router.get("/export")
def export(state: WorksheetState = Depends(get_worksheet_state)):
    return Response(
        content=export_json(state).encode("utf-8"),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )


@router.post("/upload", response_model=UploadResponse)
async def upload_sheet(
    answers: bool = Query(False),
    scale: Optional[float] = Query(None, gt=0, le=4),
    signature: Optional[str] = Query(None, description="HMAC du nom de fichier envoyé"),
    state: WorksheetState = Depends(get_worksheet_state),
    page: PageSize = Depends(get_page_size),
    settings: Settings = Depends(get_settings_dep),
    relay: UploadRelay = Depends(get_upload_relay),
    header_signature: Optional[str] = Depends(get_signature_header),
):
    """
    Rend la feuille courante et l'envoie au stockage configuré.
    Pas de corps : `?signature=` ou X-Signature signent le nom de fichier
    (unit3.png, unit3-answers.png...), vérifié avant le rendu.
    """
    filename = _sheet_filename(state, answers)
    relay.check_signature(filename, signature=signature or header_signature)

    surface = _render_current(state, page, settings, scale, answers)
    result = await run_in_threadpool(relay.handle, filename, "image/png", None, surface.to_png())
    return UploadResponse(ok=True, id=result.id, name=result.name, webViewLink=result.web_view_link)
