import base64
import json
from types import SimpleNamespace

import pytest
import requests
from google.auth.exceptions import RefreshError

from kanjisheet.services.relay import (
    AuthorizationError,
    ConfigurationError,
    TransportError,
    UploadRelay,
    ValidationError,
    sign,
    verify_signature,
)
from kanjisheet.services.storage import (
    DriveStorageBackend,
    LocalStorageBackend,
    ScriptRelayBackend,
    StorageConfigError,
    StorageError,
    UploadResult,
    build_backend,
)
from kanjisheet.utils.data_url import decode_data_url, encode_data_url

PNG = b"\x89PNG\r\n\x1a\nfake"


class RecordingBackend:
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def upload(self, filename, data, mime_type):
        if self.error:
            raise self.error
        self.calls.append((filename, data, mime_type))
        return UploadResult(id="f1", name=filename, web_view_link="https://example.test/f1")


class FakeResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self._body = body
        self.text = text if text is not None else json.dumps(body)

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    def __init__(self, response=None, exc=None):
        self.response = response
        self.exc = exc
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.exc:
            raise self.exc
        return self.response


# ---------- data URL ----------

def test_decode_data_url():
    mime, data = decode_data_url(encode_data_url(PNG, "image/png"))
    assert (mime, data) == ("image/png", PNG)


@pytest.mark.parametrize("bad", ["", "image/png;base64,AAAA", "data:image/png;base64", "data:text/plain,hello", "data:image/png;base64,@@@"])
def test_decode_data_url_rejects(bad):
    with pytest.raises(ValueError):
        decode_data_url(bad)


# ---------- relay ----------

def test_relay_decodes_data_url_and_forwards():
    backend = RecordingBackend()
    relay = UploadRelay(backend)
    result = relay.handle("sheet.png", None, data_url=encode_data_url(PNG, "image/png"))
    assert result.id == "f1"
    assert backend.calls == [("sheet.png", PNG, "image/png")]


def test_relay_explicit_mime_wins():
    backend = RecordingBackend()
    UploadRelay(backend).handle("a.jpg", "image/jpeg", data_url=encode_data_url(PNG, "image/png"))
    assert backend.calls[0][2] == "image/jpeg"


def test_relay_binary_payload():
    backend = RecordingBackend()
    UploadRelay(backend).handle("a.bin", None, data=b"xyz")
    assert backend.calls == [("a.bin", b"xyz", "application/octet-stream")]


@pytest.mark.parametrize("filename, data_url, data", [
    ("", encode_data_url(PNG), None),
    ("   ", encode_data_url(PNG), None),
    ("a.png", "not-a-data-url", None),
    ("a.png", None, None),
    ("a.png", None, b""),
])
def test_relay_validation_errors(filename, data_url, data):
    backend = RecordingBackend()
    with pytest.raises(ValidationError) as exc:
        UploadRelay(backend).handle(filename, None, data_url=data_url, data=data)
    assert exc.value.status_code == 400
    assert backend.calls == []


def test_relay_too_large():
    relay = UploadRelay(RecordingBackend(), max_upload_mb=1)
    with pytest.raises(ValidationError) as exc:
        relay.handle("big.png", "image/png", data=b"x" * (1024 * 1024 + 1))
    assert exc.value.status_code == 413


def test_relay_transport_error():
    relay = UploadRelay(RecordingBackend(error=StorageError("HTTP 403")))
    with pytest.raises(TransportError) as exc:
        relay.handle("a.png", "image/png", data=PNG)
    assert exc.value.status_code == 502
    assert "403" in exc.value.detail


def test_relay_configuration_error():
    relay = UploadRelay(RecordingBackend(error=StorageConfigError("no creds")))
    with pytest.raises(ConfigurationError):
        relay.handle("a.png", "image/png", data=PNG)


# ---------- signature ----------

def test_sign_and_verify():
    sig = sign("s3cret", b"sheet.png")
    assert base64.b64decode(sig)
    assert verify_signature("s3cret", b"sheet.png", sig)
    assert not verify_signature("s3cret", b"other.png", sig)
    assert not verify_signature("s3cret", b"sheet.png", None)


def test_signature_not_checked_without_secret():
    UploadRelay(RecordingBackend()).check_signature("a.png")


def test_signature_field_over_filename():
    relay = UploadRelay(RecordingBackend(), secret="s3cret")
    relay.check_signature("a.png", signature=sign("s3cret", b"a.png"))
    with pytest.raises(AuthorizationError):
        relay.check_signature("a.png", signature=sign("s3cret", b"b.png"))
    with pytest.raises(AuthorizationError):
        relay.check_signature("a.png")


def test_signature_header_over_raw_body():
    relay = UploadRelay(RecordingBackend(), secret="s3cret")
    body = b'{"filename": "a.png"}'
    relay.check_signature("a.png", header_signature=sign("s3cret", body), raw_body=body)
    with pytest.raises(AuthorizationError) as exc:
        relay.check_signature("a.png", header_signature=sign("s3cret", b"{}"), raw_body=body)
    assert exc.value.status_code == 401


# ---------- backends ----------

def test_local_backend_writes_file(tmp_path):
    backend = LocalStorageBackend(str(tmp_path / "store"))
    result = backend.upload("../sheet 1.png", PNG, "image/png")
    files = sorted((tmp_path / "store").iterdir())
    assert len(files) == 1
    assert files[0].read_bytes() == PNG
    assert files[0].name.endswith("sheet_1.png")
    assert result.name == "../sheet 1.png"
    assert result.web_view_link.startswith("file://")


@pytest.mark.parametrize("encoding", ["json", "form"])
def test_script_backend_encodes_base64(encoding):
    session = FakeSession(FakeResponse(body={"ok": True, "id": "abc", "name": "a.png", "url": "https://x/abc"}))
    backend = ScriptRelayBackend("https://script.test/exec", encoding=encoding, session=session)
    result = backend.upload("a.png", PNG, "image/png")

    assert result == UploadResult(id="abc", name="a.png", web_view_link="https://x/abc")
    url, kwargs = session.calls[0]
    assert url == "https://script.test/exec"
    fields = kwargs["json"] if encoding == "json" else kwargs["data"]
    assert fields["filename"] == "a.png"
    assert fields["mimeType"] == "image/png"
    assert base64.b64decode(fields["data"]) == PNG


def test_script_backend_multipart():
    session = FakeSession(FakeResponse(body={"ok": True, "id": "abc"}))
    backend = ScriptRelayBackend("https://script.test/exec", encoding="multipart", session=session)
    result = backend.upload("a.png", PNG, "image/png")
    _, kwargs = session.calls[0]
    assert kwargs["files"]["file"] == ("a.png", PNG, "image/png")
    assert kwargs["data"] == {"filename": "a.png", "mimeType": "image/png"}
    assert result.name == "a.png"


@pytest.mark.parametrize("session", [
    FakeSession(FakeResponse(status_code=500, body=None, text="boom")),
    FakeSession(FakeResponse(body=None, text="<html>")),
    FakeSession(FakeResponse(body={"ok": False, "error": "quota"})),
    FakeSession(exc=requests.ConnectionError("down")),
    FakeSession(FakeResponse(body=[])),
    FakeSession(FakeResponse(body="ok")),
])
def test_script_backend_failures(session):
    backend = ScriptRelayBackend("https://script.test/exec", session=session)
    with pytest.raises(StorageError):
        backend.upload("a.png", PNG, "image/png")


def test_script_backend_config():
    with pytest.raises(StorageConfigError):
        ScriptRelayBackend("")
    with pytest.raises(StorageConfigError):
        ScriptRelayBackend("https://script.test/exec", encoding="xml")


class FakeDriveFiles:
    def __init__(self):
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        return SimpleNamespace(execute=lambda: {"id": "d1", "name": kwargs["body"]["name"], "webViewLink": "https://drive/d1"})


def test_drive_backend_uploads_into_folder():
    files = FakeDriveFiles()
    service = SimpleNamespace(files=lambda: files)
    backend = DriveStorageBackend("", "folder123", service=service)
    result = backend.upload("a.png", PNG, "image/png")

    assert result == UploadResult(id="d1", name="a.png", web_view_link="https://drive/d1")
    assert files.kwargs["body"] == {"name": "a.png", "parents": ["folder123"]}
    assert files.kwargs["fields"] == "id,name,webViewLink"
    assert files.kwargs["media_body"].mimetype() == "image/png"


def test_drive_backend_config():
    with pytest.raises(StorageConfigError):
        DriveStorageBackend("{}", "")
    with pytest.raises(StorageConfigError):
        DriveStorageBackend("", "folder")
    with pytest.raises(StorageConfigError):
        DriveStorageBackend("not json", "folder")


def test_build_backend(tmp_path):
    settings = SimpleNamespace(
        STORAGE_BACKEND="local", STORAGE_PATH=str(tmp_path), GOOGLE_CREDENTIALS="", DRIVE_FOLDER_ID="",
        SCRIPT_ENDPOINT_URL="https://script.test/exec", SCRIPT_ENCODING="form", UPLOAD_TIMEOUT_S=5,
    )
    assert isinstance(build_backend(settings), LocalStorageBackend)

    settings.STORAGE_BACKEND = "script"
    backend = build_backend(settings)
    assert isinstance(backend, ScriptRelayBackend) and backend.encoding == "form"

    settings.STORAGE_BACKEND = "drive"
    with pytest.raises(StorageConfigError):
        build_backend(settings)

    settings.STORAGE_BACKEND = "ftp"
    with pytest.raises(StorageConfigError):
        build_backend(settings)


class FailingDriveFiles:
    def __init__(self, exc):
        self.exc = exc

    def create(self, **kwargs):
        def execute():
            raise self.exc
        return SimpleNamespace(execute=execute)


@pytest.mark.parametrize("exc", [
    RefreshError("invalid_grant: Invalid JWT Signature."),
    ConnectionResetError("reset by peer"),
])
def test_drive_backend_auth_and_network_errors(exc):
    files = FailingDriveFiles(exc)
    backend = DriveStorageBackend("", "folder123", service=SimpleNamespace(files=lambda: files))
    with pytest.raises(StorageError):
        backend.upload("a.png", PNG, "image/png")

    with pytest.raises(TransportError) as relay_exc:
        UploadRelay(backend).handle("a.png", "image/png", data=PNG)
    assert relay_exc.value.status_code == 502
