import base64
import hashlib
import hmac
import logging
from typing import Optional

from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    HTTP_500_INTERNAL_SERVER_ERROR,
    HTTP_502_BAD_GATEWAY,
)

from kanjisheet.services.storage import StorageBackend, StorageConfigError, StorageError, UploadResult
from kanjisheet.utils.data_url import decode_data_url

logger = logging.getLogger(__name__)


class RelayError(Exception):
    status_code: int = HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "upload failed"

    def __init__(self, detail: str = "", status_code: Optional[int] = None):
        super().__init__(detail or self.error)
        self.detail = detail
        if status_code is not None:
            self.status_code = status_code


class ValidationError(RelayError):
    status_code = HTTP_400_BAD_REQUEST
    error = "invalid payload"


class AuthorizationError(RelayError):
    status_code = HTTP_401_UNAUTHORIZED
    error = "invalid signature"


class ConfigurationError(RelayError):
    status_code = HTTP_500_INTERNAL_SERVER_ERROR
    error = "missing configuration"


class TransportError(RelayError):
    status_code = HTTP_502_BAD_GATEWAY
    error = "upload rejected"


def sign(secret: str, message: bytes) -> str:
    """base64(HMAC-SHA256(secret, message))"""
    digest = hmac.new(secret.encode("utf-8"), message, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def verify_signature(secret: str, message: bytes, signature: Optional[str]) -> bool:
    if not signature:
        return False
    return hmac.compare_digest(sign(secret, message), signature.strip())


class UploadRelay:
    """
    Reçoit un nom de fichier + contenu (data URL ou binaire), vérifie la
    signature si UPLOAD_SECRET est défini, puis transmet au backend.
    """

    def __init__(self, backend: StorageBackend, secret: str = "", max_upload_mb: int = 10):
        self.backend = backend
        self.secret = secret
        self.max_upload_bytes = max_upload_mb * 1024 * 1024

    def check_signature(
        self,
        filename: str,
        signature: Optional[str] = None,
        header_signature: Optional[str] = None,
        raw_body: Optional[bytes] = None,
    ) -> None:
        """
        X-Signature signe le corps brut ; le champ `signature` signe le filename.
        Sans secret configuré, rien n'est vérifié.
        """
        if not self.secret:
            return
        if header_signature and raw_body is not None:
            if verify_signature(self.secret, raw_body, header_signature):
                return
        elif signature:
            if verify_signature(self.secret, filename.encode("utf-8"), signature):
                return
        raise AuthorizationError("signature absente ou incorrecte")

    def handle(
        self,
        filename: str,
        mime_type: Optional[str] = None,
        data_url: Optional[str] = None,
        data: Optional[bytes] = None,
    ) -> UploadResult:
        filename = (filename or "").strip()
        if not filename:
            raise ValidationError("filename manquant")

        if data is None:
            try:
                detected_mime, data = decode_data_url(data_url or "")
            except ValueError as e:
                raise ValidationError(str(e)) from e
            mime_type = mime_type or detected_mime

        if not data:
            raise ValidationError("contenu vide")
        if len(data) > self.max_upload_bytes:
            raise ValidationError(
                f"Fichier trop volumineux (max {self.max_upload_bytes // (1024 * 1024)} MB)",
                status_code=HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            )

        mime_type = mime_type or "application/octet-stream"
        try:
            result = self.backend.upload(filename, data, mime_type)
        except StorageConfigError as e:
            logger.error("backend mal configuré: %s", e)
            raise ConfigurationError(str(e)) from e
        except StorageError as e:
            logger.warning("upload refusé (%s): %s", filename, e)
            raise TransportError(str(e)) from e

        return result
