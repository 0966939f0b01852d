import copy

import pytest
from fastapi.testclient import TestClient

from kanjisheet.core.config import get_settings
from kanjisheet.core.deps import get_storage_backend
from kanjisheet.main import create_app
from kanjisheet.services.storage import LocalStorageBackend


@pytest.fixture
def settings_env(tmp_path, monkeypatch):
    """
    Variables d'env isolées pour les settings (stockage local temporaire).
    """
    monkeypatch.setenv("APP_ENV", "test")
    monkeypatch.setenv("APP_NAME", "Kanji Sheet API (tests)")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_PATH", str(tmp_path / "storage"))
    monkeypatch.setenv("MAX_UPLOAD_MB", "1")  # limite faible pour tests
    monkeypatch.setenv("CORS_ORIGINS", "http://localhost")
    monkeypatch.setenv("UPLOAD_SECRET", "")
    monkeypatch.setenv("CANVAS_ORIENTATION", "landscape")
    monkeypatch.setenv("CANVAS_SCALE", "1")

    # IMPORTANT: vider le cache des settings pour prendre en compte les env
    get_settings.cache_clear()
    yield tmp_path
    get_settings.cache_clear()


@pytest.fixture
def test_client(settings_env):
    app = create_app()
    return TestClient(app)


@pytest.fixture
def local_backend(settings_env):
    return LocalStorageBackend(str(settings_env / "storage"))


@pytest.fixture
def client_with_backend(settings_env):
    """
    Client dont le backend de stockage est remplacé par celui passé.
    """
    def _make(backend):
        app = create_app()
        app.dependency_overrides[get_storage_backend] = lambda: backend
        return TestClient(app)
    return _make


QUESTIONS_DOC = {
    "questions": [
        {"fullText": "犬が走る。", "targetKanji": "走", "yomigana": "はし", "questionType": "kaki"},
        {"fullText": "学校に行く", "targetKanji": "学校", "yomigana": "がっこう", "questionType": "kaki"},
        {"fullText": "空が青い", "targetKanji": "海", "yomigana": "うみ", "questionType": "yomi"},
    ]
}


@pytest.fixture
def questions_doc():
    return copy.deepcopy(QUESTIONS_DOC)
