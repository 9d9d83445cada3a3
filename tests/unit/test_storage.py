"""Unit tests for attachment storage."""

from __future__ import annotations

import time
from pathlib import Path
from urllib.parse import parse_qs, unquote, urlsplit

import pytest

from workboard.config import StorageConfig
from workboard.storage import LocalStorageProvider, normalize_filename


@pytest.fixture
def provider(tmp_path: Path) -> LocalStorageProvider:
    return LocalStorageProvider(
        StorageConfig(
            base_dir=tmp_path / "objects",
            public_base_url="https://files.example.com/",
            signing_secret="secret",
        )
    )


def _link_parts(url: str) -> tuple[str, int, str]:
    parts = urlsplit(url)
    query = parse_qs(parts.query)
    key = unquote(parts.path.removeprefix("/files/"))
    return key, int(query["expires"][0]), query["signature"][0]


class TestNormalizeFilename:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("report.pdf", "report.pdf"),
            ("b%C3%A1o%20c%C3%A1o.pdf", "báo cáo.pdf"),
            # UTF-8 bytes decoded as Latin-1 by the multipart parser
            ("bÃ¡o cÃ¡o.pdf", "báo cáo.pdf"),
            ("../../etc/passwd", ".._.._etc_passwd"),
            ("dir\\file.txt", "dir_file.txt"),
            ("   ", "file"),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_filename(raw) == expected

    def test_nfc_normalization(self):
        decomposed = "ba\u0301o.txt"
        assert normalize_filename(decomposed) == "b\u00e1o.txt"


class TestLocalStorageProvider:
    @pytest.mark.asyncio
    async def test_put_and_delete(self, provider: LocalStorageProvider, tmp_path: Path):
        key = await provider.put("kanban/card-1/notes.txt", b"hello")

        stored = provider.open_path(key)
        assert stored is not None
        assert stored.read_bytes() == b"hello"

        await provider.delete(key)
        assert provider.open_path(key) is None

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, provider: LocalStorageProvider):
        await provider.delete("kanban/missing.txt")

    @pytest.mark.asyncio
    async def test_keys_cannot_escape_base_dir(self, provider: LocalStorageProvider, tmp_path: Path):
        await provider.put("../outside.txt", b"x")

        assert not (tmp_path / "outside.txt").exists()
        assert provider.open_path("../outside.txt") is not None

    @pytest.mark.asyncio
    async def test_presigned_url_verifies(self, provider: LocalStorageProvider):
        url = await provider.presigned_url("kanban/card 1/báo cáo.pdf", ttl_seconds=600)

        assert url.startswith("https://files.example.com/files/")
        key, expires, signature = _link_parts(url)
        assert key == "kanban/card 1/báo cáo.pdf"
        assert expires > time.time()
        assert provider.verify(key, expires, signature) is True

    @pytest.mark.asyncio
    async def test_tampered_or_expired_link(self, provider: LocalStorageProvider):
        key, expires, signature = _link_parts(
            await provider.presigned_url("kanban/a.txt", ttl_seconds=600)
        )

        assert provider.verify("kanban/b.txt", expires, signature) is False
        assert provider.verify(key, expires + 1, signature) is False
        assert provider.verify(key, int(time.time()) - 1, signature) is False
