"""Test fixtures for codeseek."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Isolate settings and environment between tests."""
    for key in list(os.environ):
        if key.startswith("CODESEEK_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("CODESEEK_CONFIG", str(tmp_path / "missing-config.yaml"))

    from codeseek.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    from codeseek.core.config import Settings

    return Settings(embedding_model="hashed", index_workers=2, max_tokens=64, overlap_tokens=8)


@pytest.fixture
def provider():
    from codeseek.ingest.embeddings import HashedEmbeddingModel

    return HashedEmbeddingModel(dim=256)


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    """Small mixed-language tree with an ignored directory."""
    root = tmp_path / "repo"
    (root / "src").mkdir(parents=True)
    (root / "docs").mkdir()
    (root / "node_modules" / "dep").mkdir(parents=True)
    (root / "src" / "auth.py").write_text(
        "import hashlib\n"
        "\n"
        "\n"
        "def hash_password(password):\n"
        "    return hashlib.sha256(password.encode()).hexdigest()\n"
        "\n"
        "\n"
        "class SessionStore:\n"
        "    def __init__(self):\n"
        "        self.sessions = {}\n"
        "\n"
        "    def login(self, user):\n"
        "        self.sessions[user] = True\n"
    )
    (root / "src" / "server.rs").write_text(
        "use std::net::TcpListener;\n"
        "\n"
        "fn start_server(port: u16) {\n"
        "    let listener = TcpListener::bind((\"0.0.0.0\", port)).unwrap();\n"
        "    for stream in listener.incoming() {\n"
        "        handle(stream.unwrap());\n"
        "    }\n"
        "}\n"
    )
    (root / "docs" / "guide.md").write_text(
        "# Guide\n"
        "\n"
        "Install the package.\n"
        "\n"
        "## Deployment\n"
        "\n"
        "Run the server on a port of your choice.\n"
    )
    (root / "node_modules" / "dep" / "index.js").write_text("function hash_password() {}\n")
    return root
