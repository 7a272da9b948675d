"""
Tests for the fieldvault command line.
"""
import asyncio
import base64

import pytest

from conftest import legacy_record, wrapped_record
from fieldvault import cli, conf
from fieldvault.vault.codec import is_encrypted

NEW_SECRET_B64 = base64.b64encode(bytes(range(100, 132))).decode("ascii")


@pytest.fixture
def env(monkeypatch, master_b64):
    monkeypatch.setenv("MASTER_SECRET", master_b64)
    return monkeypatch


def _run(store, *argv):
    return cli.main(list(argv), store_factory=lambda: store)


class TestGenerateKey:

    def test_prints_32_byte_key(self, capsys):
        assert cli.main(["generate-key"]) == 0
        key = capsys.readouterr().out.strip()
        assert len(base64.b64decode(key, validate=True)) == 32


class TestMigrateCommand:

    def test_dry_run(self, env, store, capsys):
        store.add("messages", {"text": "a"})
        store.add("messages", {"text": "b"})
        before = store.snapshot()
        assert _run(store, "migrate", "--dry-run", "--collection", "messages") == 0
        out = capsys.readouterr().out
        assert "Migration Summary" in out
        assert "Migrated: 2" in out
        assert store.snapshot() == before

    def test_live_run(self, env, store):
        store.add("messages", {"text": "a"})
        assert _run(store, "migrate", "--yes", "--collection", "messages") == 0
        assert is_encrypted(store.get("messages", "messages-1")["encrypted"])

    def test_missing_secret(self, store, monkeypatch):
        monkeypatch.delenv("MASTER_SECRET", raising=False)
        assert _run(store, "migrate", "--dry-run") == 1

    def test_unknown_collection(self, env, store):
        assert _run(store, "migrate", "--dry-run", "--collection", "nope") == 1

    def test_invalid_batch_size(self, env, store):
        assert _run(store, "migrate", "--dry-run", "--batch-size", "0") == 1


class TestRotateCommand:

    def test_preview(self, env, store, old_secret, capsys):
        env.setenv("NEW_MASTER_SECRET", NEW_SECRET_B64)
        store.add("messages", {"encrypted": wrapped_record("a", old_secret)})
        store.add("messages", {"encrypted": legacy_record("b", old_secret)})
        before = store.snapshot()
        assert _run(store, "rotate", "--preview", "--collection", "messages") == 0
        out = capsys.readouterr().out
        assert "Rotated: 1" in out
        assert "Legacy (needs re-encryption): 1" in out
        assert "Remember to set MASTER_SECRET" not in out
        assert store.snapshot() == before

    def test_live(self, env, store, old_secret, new_secret, capsys):
        env.setenv("NEW_MASTER_SECRET", NEW_SECRET_B64)
        store.add("messages", {"encrypted": wrapped_record("a", old_secret)})
        assert _run(store, "rotate", "--yes", "--collection", "messages") == 0
        assert store.get("messages", "messages-1")["encrypted"]["kid"] == new_secret.key_id
        assert "Remember to set MASTER_SECRET" in capsys.readouterr().out

    def test_missing_new_secret(self, env, store):
        assert _run(store, "rotate", "--preview") == 1


class TestVerifyCommand:

    def test_ok(self, env, store, old_secret):
        store.add("messages", {"encrypted": wrapped_record("a", old_secret)})
        assert _run(store, "verify", "--collection", "messages") == 0

    def test_nothing_to_verify(self, env, store):
        assert _run(store, "verify", "--collection", "messages") == 1


class TestCountdown:

    @pytest.mark.asyncio
    async def test_cancelled(self):
        stop = asyncio.Event()
        stop.set()
        assert await cli._countdown(stop) is False

    @pytest.mark.asyncio
    async def test_elapsed(self, monkeypatch):
        monkeypatch.setattr(conf, "LIVE_RUN_DELAY", 0)
        assert await cli._countdown(asyncio.Event()) is True
