"""
Tests for the comicfs command line.

Commands are run through typer's CliRunner against a temporary library.
"""

import json
import zipfile
from io import BytesIO
from unittest.mock import patch

import pytest
from PIL import Image
from typer.testing import CliRunner

from comicfs import config
from comicfs.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def config_path(tmp_path):
    """Keep every command away from the user's real configuration."""
    path = tmp_path / "config" / "config.json"
    with patch.object(config, 'get_config_path', return_value=path):
        yield path


@pytest.fixture
def library(tmp_path):
    """Create a library with one comic.

    comics/
    ├── readme.txt
    └── issue-1.cbz   page1.webp, notes.txt
    """
    base = tmp_path / "comics"
    base.mkdir()
    (base / "readme.txt").write_text("hello")

    buffer = BytesIO()
    Image.new("RGB", (10, 10), (0, 128, 255)).save(buffer, format="WEBP")
    with zipfile.ZipFile(base / "issue-1.cbz", "w") as zf:
        zf.writestr("page1.webp", buffer.getvalue())
        zf.writestr("notes.txt", b"0123456789abcde")

    return base


# ============================================================================
# LS / STAT
# ============================================================================

class TestLsCommand:

    def test_ls_root(self, library):
        result = runner.invoke(app, ["ls", str(library)])
        assert result.exit_code == 0
        assert "issue-1.cbz/" in result.stdout
        assert "readme.txt" in result.stdout

    def test_ls_archive(self, library):
        result = runner.invoke(app, ["ls", str(library), "/issue-1.cbz"])
        assert result.exit_code == 0
        assert "page1.webp" in result.stdout
        assert "notes.txt" in result.stdout

    def test_ls_with_extension_override(self, library):
        result = runner.invoke(app, ["ls", str(library), "--ext", ".zip"])
        assert result.exit_code == 0
        assert "issue-1.cbz/" not in result.stdout

    def test_ls_multi_segment_extension(self, library):
        result = runner.invoke(app, ["ls", str(library), "--ext", ".cbr.zip"])
        assert result.exit_code == 1

    def test_ls_missing_path(self, library):
        result = runner.invoke(app, ["ls", str(library), "/nope"])
        assert result.exit_code == 1

    def test_ls_file_is_not_a_directory(self, library):
        result = runner.invoke(app, ["ls", str(library), "/readme.txt"])
        assert result.exit_code == 1

    def test_ls_missing_base_dir(self, tmp_path):
        result = runner.invoke(app, ["ls", str(tmp_path / "missing")])
        assert result.exit_code == 1


class TestStatCommand:

    def test_stat_member(self, library):
        result = runner.invoke(app, ["stat", str(library), "/issue-1.cbz/notes.txt"])
        assert result.exit_code == 0
        assert "ArchiveMemberNode" in result.stdout
        assert "15" in result.stdout

    def test_stat_archive_is_directory(self, library):
        result = runner.invoke(app, ["stat", str(library), "/issue-1.cbz"])
        assert result.exit_code == 0
        assert "directory" in result.stdout
        assert "dr-xr-xr-x" in result.stdout

    def test_stat_missing(self, library):
        result = runner.invoke(app, ["stat", str(library), "/issue-1.cbz/page9.webp"])
        assert result.exit_code == 1


# ============================================================================
# CAT
# ============================================================================

class TestCatCommand:

    def test_cat_to_stdout(self, library):
        result = runner.invoke(app, ["cat", str(library), "/issue-1.cbz/notes.txt"])
        assert result.exit_code == 0
        assert b"0123456789abcde" in result.stdout_bytes

    def test_cat_to_file(self, library, tmp_path):
        output = tmp_path / "notes.txt"
        result = runner.invoke(app, ["cat", str(library), "/issue-1.cbz/notes.txt", "-o", str(output)])
        assert result.exit_code == 0
        assert output.read_bytes() == b"0123456789abcde"

    def test_cat_converted_page(self, library, tmp_path):
        output = tmp_path / "page1.png"
        result = runner.invoke(app, ["cat", str(library), "/issue-1.cbz/page1.webp.png", "-o", str(output)])
        assert result.exit_code == 0
        assert Image.open(output).format == "PNG"

    def test_cat_directory_fails(self, library):
        result = runner.invoke(app, ["cat", str(library), "/issue-1.cbz"])
        assert result.exit_code == 1

    def test_cat_unsupported_conversion(self, library):
        result = runner.invoke(app, ["cat", str(library), "/issue-1.cbz/page1.webp.bmp"])
        assert result.exit_code == 1


# ============================================================================
# CONFIG / OPTIONS
# ============================================================================

class TestConfigCommand:

    def test_init(self, config_path):
        result = runner.invoke(app, ["config", "--init"])
        assert result.exit_code == 0
        assert config_path.exists()

    def test_set_extensions(self, config_path):
        result = runner.invoke(app, ["config", "--ext", ".cbz", "--encode", ".png"])
        assert result.exit_code == 0

        data = json.loads(config_path.read_text())
        assert data["containers"]["extensions"] == [".cbz"]
        assert data["conversion"]["encode"] == [".png"]

    def test_set_allow_other(self, config_path):
        result = runner.invoke(app, ["config", "--allow-other"])
        assert result.exit_code == 0
        assert json.loads(config_path.read_text())["mount"]["allow_other"] is True

    def test_show(self):
        result = runner.invoke(app, ["config", "--show"])
        assert result.exit_code == 0
        assert ".cbz" in result.stdout

    def test_invalid_log_level_setting(self, config_path):
        result = runner.invoke(app, ["config", "--set-log-level", "loud"])
        assert result.exit_code != 0
        assert not config_path.exists()

    def test_configured_extensions_used_by_ls(self, library):
        runner.invoke(app, ["config", "--ext", ".zip"])
        result = runner.invoke(app, ["ls", str(library)])
        assert result.exit_code == 0
        assert "issue-1.cbz/" not in result.stdout


class TestGlobalOptions:

    def test_invalid_log_level(self, library):
        result = runner.invoke(app, ["--log-level", "loud", "ls", str(library)])
        assert result.exit_code != 0

    def test_verbose(self, library):
        result = runner.invoke(app, ["-v", "ls", str(library)])
        assert result.exit_code == 0

    def test_mount_missing_base_dir(self, tmp_path):
        mountpoint = tmp_path / "mnt"
        mountpoint.mkdir()
        result = runner.invoke(app, ["mount", str(tmp_path / "missing"), str(mountpoint)])
        assert result.exit_code == 1
