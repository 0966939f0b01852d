from fastapi import Depends, Request

from kanjisheet.core.config import Settings, get_settings
from kanjisheet.services.document import WorksheetState
from kanjisheet.services.layout import PageSize
from kanjisheet.services.relay import ConfigurationError, UploadRelay
from kanjisheet.services.storage import StorageBackend, StorageConfigError, build_backend


def get_settings_dep() -> Settings:
    return get_settings()


def get_worksheet_state(request: Request) -> WorksheetState:
    """
    État unique de l'application, créé par create_app (app.state.worksheet).
    """
    return request.app.state.worksheet


def get_page_size(settings: Settings = Depends(get_settings_dep)) -> PageSize:
    return PageSize.for_orientation(settings.CANVAS_ORIENTATION)


def get_storage_backend(settings: Settings = Depends(get_settings_dep)) -> StorageBackend:
    """
    Fournit le backend de stockage en dépendance (DI).
    """
    try:
        return build_backend(settings)
    except StorageConfigError as e:
        raise ConfigurationError(str(e)) from e


def get_upload_relay(
    backend: StorageBackend = Depends(get_storage_backend),
    settings: Settings = Depends(get_settings_dep),
) -> UploadRelay:
    return UploadRelay(backend, secret=settings.UPLOAD_SECRET, max_upload_mb=settings.MAX_UPLOAD_MB)
