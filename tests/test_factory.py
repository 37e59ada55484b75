"""
Tests for UploadConfig, EncryptedFileItemFactory and CleanupTracker.
"""
import os

import pytest
from pydantic import ValidationError

from encrypted_upload.config import DEFAULT_SIZE_THRESHOLD, UploadConfig
from encrypted_upload.crypto import KEY_SIZES
from encrypted_upload.exceptions import StorageIOError
from encrypted_upload.factory import EncryptedFileItemFactory
from encrypted_upload.item import EncryptedFileItem
from encrypted_upload.tracker import CleanupTracker


# --- Config ---

class TestUploadConfig:
    """Tests for configuration validation."""

    def test_defaults(self):
        config = UploadConfig()
        assert config.size_threshold == DEFAULT_SIZE_THRESHOLD == 10240
        assert config.repository is None
        assert config.default_charset is None
        assert config.key_size is None

    def test_negative_threshold_rejected(self):
        with pytest.raises(ValidationError):
            UploadConfig(size_threshold=-1)

    def test_missing_repository_rejected(self, tmp_path):
        with pytest.raises(ValidationError):
            UploadConfig(repository=tmp_path / "nope")

    def test_unknown_charset_rejected(self):
        with pytest.raises(ValidationError):
            UploadConfig(default_charset="klingon-8")

    def test_bad_key_size_rejected(self):
        with pytest.raises(ValidationError):
            UploadConfig(key_size=64)

    def test_resolved_key_size_probes(self):
        assert UploadConfig().resolved_key_size() in KEY_SIZES
        assert UploadConfig(key_size=192).resolved_key_size() == 192

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv("UPLOAD_SIZE_THRESHOLD", "64")
        monkeypatch.setenv("UPLOAD_REPOSITORY", str(tmp_path))
        monkeypatch.setenv("UPLOAD_DEFAULT_CHARSET", "utf-8")
        monkeypatch.setenv("UPLOAD_KEY_SIZE", "128")
        config = UploadConfig.from_env()
        assert config.size_threshold == 64
        assert config.repository == tmp_path
        assert config.default_charset == "utf-8"
        assert config.key_size == 128

    def test_from_env_empty(self, monkeypatch):
        for name in (
            "UPLOAD_SIZE_THRESHOLD", "UPLOAD_REPOSITORY",
            "UPLOAD_DEFAULT_CHARSET", "UPLOAD_KEY_SIZE",
        ):
            monkeypatch.delenv(name, raising=False)
        assert UploadConfig.from_env() == UploadConfig()


# --- Factory ---

class TestFactory:
    """Tests for item creation."""

    def test_default_threshold(self):
        factory = EncryptedFileItemFactory()
        assert factory.size_threshold == 10240
        assert factory.repository is None
        assert factory.key_size in KEY_SIZES

    def test_create_item(self, tmp_path):
        factory = EncryptedFileItemFactory(32, tmp_path, key_size=128)
        item = factory.create_item("doc", "text/plain", False, "doc.txt")
        assert isinstance(item, EncryptedFileItem)
        assert item.field_name == "doc"
        assert item.content_type == "text/plain"
        assert item.is_form_field is False
        assert item.name == "doc.txt"
        assert len(item._key) == 16

    def test_encrypts_upload(self, tmp_path):
        """Test an upload one byte over the default threshold lands encrypted on disk."""
        factory = EncryptedFileItemFactory(repository=tmp_path)
        data = os.urandom(factory.size_threshold + 1)
        item = factory.create_item("test", "text/plain", True, "test.txt")
        with item.get_output_stream() as sink:
            sink.write(data)
        assert item.is_in_memory() is False
        with open(item._store.path, "rb") as handle:
            stored = handle.read()
        assert stored != data
        assert data[:64] not in stored
        assert item.get() == data

    def test_settings_apply_to_new_items(self, tmp_path):
        factory = EncryptedFileItemFactory(key_size=128)
        factory.size_threshold = 4
        factory.repository = tmp_path
        factory.default_charset = "utf-8"
        item = factory.create_item("f", "text/plain", True, None)
        with item.get_output_stream() as sink:
            sink.write("ünïcode".encode("utf-8"))
        assert item.is_in_memory() is False
        assert os.listdir(tmp_path)
        assert item.default_charset == "utf-8"
        assert item.get_string() == "ünïcode"

    def test_items_have_independent_keys(self):
        factory = EncryptedFileItemFactory(key_size=128)
        first = factory.create_item("a", None, True, None)
        second = factory.create_item("b", None, True, None)
        assert first._key != second._key

    def test_from_config(self, tmp_path):
        config = UploadConfig(
            size_threshold=8, repository=tmp_path,
            default_charset="utf-8", key_size=256,
        )
        tracker = CleanupTracker()
        factory = EncryptedFileItemFactory.from_config(config, tracker)
        assert factory.size_threshold == 8
        assert factory.repository == tmp_path
        assert factory.default_charset == "utf-8"
        assert factory.key_size == 256
        assert factory.tracker is tracker


# --- Tracker ---

class TestCleanupTracker:
    """Tests for deterministic cleanup."""

    def test_tracks_created_items(self, tmp_path):
        tracker = CleanupTracker()
        factory = EncryptedFileItemFactory(4, tmp_path, key_size=128, tracker=tracker)
        factory.create_item("a", None, True, None)
        factory.create_item("b", None, True, None)
        assert len(tracker) == 2

    def test_cleanup_removes_temp_files(self, tmp_path):
        with CleanupTracker() as tracker:
            factory = EncryptedFileItemFactory(
                4, tmp_path, key_size=128, tracker=tracker,
            )
            for name in ("a", "b", "c"):
                item = factory.create_item(name, None, False, name + ".bin")
                with item.get_output_stream() as sink:
                    sink.write(b"x" * 100)
            assert len(os.listdir(tmp_path)) == 3
        assert os.listdir(tmp_path) == []
        assert len(tracker) == 0

    def test_cleanup_destroys_keys(self, tmp_path):
        tracker = CleanupTracker()
        factory = EncryptedFileItemFactory(4, tmp_path, key_size=128, tracker=tracker)
        item = factory.create_item("a", None, True, None)
        tracker.cleanup()
        assert item._key == bytearray(16)

    def test_cleanup_continues_past_failures(self, tmp_path):
        class BrokenItem:
            field_name = "broken"

            def destroy(self):
                raise StorageIOError("Storage unavailable")

        tracker = CleanupTracker()
        factory = EncryptedFileItemFactory(4, tmp_path, key_size=128)
        item = factory.create_item("ok", None, False, "ok.bin")
        with item.get_output_stream() as sink:
            sink.write(b"x" * 100)
        tracker.track(BrokenItem())
        tracker.track(item)
        with pytest.raises(StorageIOError):
            tracker.cleanup()
        assert os.listdir(tmp_path) == []

    def test_cleanup_is_repeatable(self):
        tracker = CleanupTracker()
        tracker.cleanup()
        tracker.cleanup()
        assert len(tracker) == 0
