"""Test the settings file and the bookmark store."""

import json
import os
import stat

import pytest

import webbyt
from webbyt import Config, ConfigError


@pytest.fixture(autouse=True)
def no_overrides(monkeypatch):
    monkeypatch.delenv("WEBBYT_SERVER", raising=False)
    monkeypatch.delenv("WEBBYT_TOKEN", raising=False)


class TestConfigPath:
    """Test settings file location."""

    def test_home_without_config_dir(self, tmp_path, monkeypatch):
        """Test home without config dir."""
        monkeypatch.setenv("HOME", str(tmp_path))
        assert webbyt.config_path() == str(tmp_path / ".webbyt.json")

    def test_home_with_config_dir(self, tmp_path, monkeypatch):
        """Test home with config dir."""
        monkeypatch.setenv("HOME", str(tmp_path))
        (tmp_path / ".config").mkdir()
        assert webbyt.config_path() == str(tmp_path / ".config" / "webbyt" / "config.json")


class TestConfig:
    """Test loading and saving settings."""

    def test_defaults(self, tmp_path):
        """Test defaults."""
        config = Config.load(str(tmp_path / "missing.json"))
        assert config.server_url() == webbyt.DEFAULT_SERVER_URL
        assert config.token() is None
        assert config.get_text_scale() == 1.0
        assert config.theme_name() == "dark"
        assert config.recently_read() == []

    def test_saved_settings_are_reloaded(self, tmp_path):
        """Test saved settings are reloaded."""
        path = str(tmp_path / "webbyt" / "config.json")
        config = Config(path)
        config.set_server_url("http://books.local:9000/")
        config.set_token("abc", "alice")
        config.set_text_scale(1.5)
        config.set_theme_name("light")

        config = Config.load(path)
        assert config.server_url() == "http://books.local:9000"
        assert config.token() == "abc"
        assert config.data["username"] == "alice"
        assert config.get_text_scale() == 1.5
        assert config.theme_name() == "light"

    def test_file_is_private(self, config):
        """Test file is private."""
        config.set_token("abc")
        assert stat.S_IMODE(os.stat(config.path).st_mode) == 0o600

    def test_environment_overrides(self, config, monkeypatch):
        """Test environment overrides."""
        config.set_server_url("http://stored")
        config.set_token("stored")
        monkeypatch.setenv("WEBBYT_SERVER", "http://env")
        monkeypatch.setenv("WEBBYT_TOKEN", "env")
        assert config.server_url() == "http://env"
        assert config.token() == "env"

    def test_clear_token(self, config):
        """Test clear token."""
        config.set_token("abc", "alice")
        config.clear_token()
        assert config.token() is None
        assert "username" not in Config.load(config.path).data

    def test_corrupt_file(self, tmp_path):
        """Test corrupt file."""
        path = tmp_path / "config.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError):
            Config.load(str(path))

    def test_not_a_mapping(self, tmp_path):
        """Test not a mapping."""
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigError):
            Config.load(str(path))

    def test_bad_text_scale_falls_back(self, config):
        """Test bad text scale falls back."""
        config.data["text_scale"] = 9
        assert config.get_text_scale() == 1.0
        config.data["text_scale"] = "big"
        assert config.get_text_scale() == 1.0

    def test_devnull_is_never_written(self):
        """Test devnull is never written."""
        config = Config(os.devnull)
        config.set_token("abc")
        assert config.token() == "abc"


class TestRecentlyRead:
    """Test the recently read book list."""

    def test_most_recent_first(self, config):
        """Test most recent first."""
        config.add_recently_read("b1", "One")
        config.add_recently_read("b2", "Two")
        assert [e["book_id"] for e in config.recently_read()] == ["b2", "b1"]

    def test_reopening_moves_to_front(self, config):
        """Test reopening moves to front."""
        for book_id in ("b1", "b2", "b3"):
            config.add_recently_read(book_id, book_id)
        config.add_recently_read("b1", "b1")
        assert [e["book_id"] for e in config.recently_read()] == ["b1", "b3", "b2"]

    def test_capped(self, config):
        """Test that the list is capped."""
        for n in range(12):
            config.add_recently_read("b{}".format(n), "")
        entries = config.recently_read()
        assert len(entries) == webbyt.MAX_RECENTLY_READ
        assert entries[0]["book_id"] == "b11"


class TestBookmarkStore:
    """Test bookmark creation and management."""

    def test_add_and_list(self, config):
        """Test add and list."""
        config.add_bookmark("b1", 2, 0.25, "Habitat")
        config.add_bookmark("b2", 0, 0.5, "")
        [bookmark] = config.list_bookmarks("b1")
        assert bookmark.chapter == 2
        assert bookmark.fraction == 0.25
        assert bookmark.label == "Habitat"

    def test_persisted(self, config):
        """Test that bookmarks survive a reload."""
        config.add_bookmark("b1", 1, 0.5, "x")
        with open(config.path, encoding="utf-8") as f:
            data = json.load(f)
        assert data["bookmarks"][0]["book_id"] == "b1"
        assert Config.load(config.path).list_bookmarks("b1")[0].chapter == 1

    def test_delete(self, config):
        """Test deleting a bookmark."""
        bookmark_id = config.add_bookmark("b1", 1, 0.5, "x")
        config.delete_bookmark(bookmark_id)
        assert config.list_bookmarks("b1") == []
