import base64
import io
import json
import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

import httplib2
import requests
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

logger = logging.getLogger(__name__)

DRIVE_SCOPES = ["https://www.googleapis.com/auth/drive.file"]
SCRIPT_ENCODINGS = ("json", "form", "multipart")


class StorageError(Exception):
    """Erreur côté stockage distant (réponse refusée, réseau...)."""


class StorageConfigError(StorageError):
    """Backend mal configuré (variables d'env manquantes, credentials illisibles)."""


@dataclass
class UploadResult:
    id: str
    name: str
    web_view_link: Optional[str] = None


class StorageBackend(Protocol):
    def upload(self, filename: str, data: bytes, mime_type: str) -> UploadResult:
        ...


class LocalStorageBackend:
    """
    Stockage sur disque local (développement / tests).
    Les fichiers sont préfixés par un uuid pour éviter les collisions.
    """

    def __init__(self, base_path: str = "./storage"):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def upload(self, filename: str, data: bytes, mime_type: str) -> UploadResult:
        file_id = uuid.uuid4().hex
        dest_path = self.base_path / f"{file_id}_{_safe_name(filename)}"

        with open(dest_path, "wb") as f:
            f.write(data)

        logger.info("fichier stocké localement: %s (%d octets, %s)", dest_path, len(data), mime_type)
        return UploadResult(id=file_id, name=filename, web_view_link=dest_path.resolve().as_uri())


class DriveStorageBackend:
    """
    Upload direct vers Google Drive avec un compte de service.
    google-auth signe le JWT (RS256) et l'échange contre un token OAuth ;
    l'upload est un multipart Drive v3 dans le dossier cible.
    """

    def __init__(self, credentials_json: str, folder_id: str, service: Any = None):
        if not folder_id:
            raise StorageConfigError("DRIVE_FOLDER_ID manquant")
        self.folder_id = folder_id

        if service is None:
            if not credentials_json:
                raise StorageConfigError("GOOGLE_CREDENTIALS manquant")
            try:
                info = json.loads(credentials_json)
                creds = service_account.Credentials.from_service_account_info(info, scopes=DRIVE_SCOPES)
            except (ValueError, KeyError) as e:
                raise StorageConfigError(f"GOOGLE_CREDENTIALS illisible: {e}") from e
            service = build("drive", "v3", credentials=creds, cache_discovery=False)
        self._service = service

    def upload(self, filename: str, data: bytes, mime_type: str) -> UploadResult:
        metadata = {"name": filename, "parents": [self.folder_id]}
        media = MediaIoBaseUpload(io.BytesIO(data), mimetype=mime_type, resumable=False)
        try:
            created = (
                self._service.files()
                .create(body=metadata, media_body=media, fields="id,name,webViewLink")
                .execute()
            )
        except HttpError as e:
            raise StorageError(f"Drive upload failed: {e}") from e
        except GoogleAuthError as e:
            # échange du token refusé (RefreshError: invalid_grant, clé révoquée...)
            raise StorageError(f"Drive auth failed: {e}") from e
        except (httplib2.HttpLib2Error, OSError) as e:
            raise StorageError(f"Drive unreachable: {e}") from e

        logger.info("fichier envoyé sur Drive: %s (%s)", created.get("id"), filename)
        return UploadResult(
            id=created["id"],
            name=created.get("name", filename),
            web_view_link=created.get("webViewLink"),
        )


class ScriptRelayBackend:
    """
    Relais via un script hébergé ailleurs (ex: Apps Script), qui détient
    ses propres credentials. Trois encodages possibles :
      - json      : {filename, mimeType, data(base64)}
      - form      : x-www-form-urlencoded, mêmes champs
      - multipart : filename / mimeType + fichier binaire "file"
    Le script doit répondre un JSON {ok, id, name, url}.
    """

    def __init__(
        self,
        endpoint_url: str,
        encoding: str = "json",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        if not endpoint_url:
            raise StorageConfigError("SCRIPT_ENDPOINT_URL manquant")
        if encoding not in SCRIPT_ENCODINGS:
            raise StorageConfigError(f"SCRIPT_ENCODING inconnu: {encoding}")
        self.endpoint_url = endpoint_url
        self.encoding = encoding
        self.timeout = timeout
        self._session = session or requests.Session()

    def _request_kwargs(self, filename: str, data: bytes, mime_type: str) -> Dict[str, Any]:
        if self.encoding == "multipart":
            return {
                "data": {"filename": filename, "mimeType": mime_type},
                "files": {"file": (filename, data, mime_type)},
            }
        fields = {
            "filename": filename,
            "mimeType": mime_type,
            "data": base64.b64encode(data).decode("ascii"),
        }
        if self.encoding == "form":
            return {"data": fields}
        return {"json": fields}

    def upload(self, filename: str, data: bytes, mime_type: str) -> UploadResult:
        try:
            resp = self._session.post(
                self.endpoint_url,
                timeout=self.timeout,
                **self._request_kwargs(filename, data, mime_type),
            )
        except requests.RequestException as e:
            raise StorageError(f"relay unreachable: {e}") from e

        if not resp.ok:
            raise StorageError(f"relay HTTP {resp.status_code}: {resp.text[:500]}")

        try:
            body = resp.json()
        except ValueError as e:
            raise StorageError(f"relay returned non-JSON: {resp.text[:200]}") from e

        if not isinstance(body, dict):
            raise StorageError(f"relay returned unexpected JSON: {resp.text[:200]}")
        if not body.get("ok"):
            raise StorageError(f"relay error: {body.get('error') or body}")

        logger.info("fichier relayé: %s (%s)", body.get("id"), filename)
        return UploadResult(
            id=str(body.get("id", "")),
            name=body.get("name") or filename,
            web_view_link=body.get("url") or body.get("webViewLink"),
        )


def _safe_name(filename: str) -> str:
    name = Path(filename).name
    return re.sub(r"[^\w.\-]+", "_", name) or "upload"


def build_backend(settings) -> StorageBackend:
    """
    Choisit le backend selon STORAGE_BACKEND (local | drive | script).
    """
    kind = (settings.STORAGE_BACKEND or "local").lower()
    if kind == "drive":
        return DriveStorageBackend(settings.GOOGLE_CREDENTIALS, settings.DRIVE_FOLDER_ID)
    if kind == "script":
        return ScriptRelayBackend(
            settings.SCRIPT_ENDPOINT_URL,
            encoding=settings.SCRIPT_ENCODING,
            timeout=settings.UPLOAD_TIMEOUT_S,
        )
    if kind == "local":
        return LocalStorageBackend(settings.STORAGE_PATH)
    raise StorageConfigError(f"STORAGE_BACKEND inconnu: {kind}")
