"""Tests for best-effort archival."""

from exchange.archive import ArchivalWarning, ArchiveManager


class TestArchiveManager:

    def test_move(self, tmp_path):
        source = tmp_path / "in.txt"
        source.write_text("payload")
        archive = tmp_path / "archive" / "in.txt"
        archive.parent.mkdir()

        result = ArchiveManager().move(source, archive)

        assert result.moved
        assert result.warning is None
        assert archive.read_text() == "payload"
        assert not source.exists()

    def test_existing_target_not_overwritten(self, tmp_path, caplog):
        source = tmp_path / "in.txt"
        source.write_text("new")
        archive = tmp_path / "archived.txt"
        archive.write_text("old")

        result = ArchiveManager().move(source, archive)

        assert not result.moved
        assert isinstance(result.warning, ArchivalWarning)
        assert isinstance(result.warning.cause, FileExistsError)
        assert archive.read_text() == "old"
        assert source.read_text() == "new"
        assert "Please perform archiving manually" in caplog.text

    def test_missing_source(self, tmp_path):
        result = ArchiveManager().move(tmp_path / "gone.txt", tmp_path / "archived.txt")

        assert not result.moved
        assert result.warning is not None

    def test_missing_archive_folder(self, tmp_path):
        source = tmp_path / "in.txt"
        source.write_text("payload")

        result = ArchiveManager().move(source, tmp_path / "no" / "such" / "dir" / "in.txt")

        assert not result.moved
        assert source.exists()

    def test_invalid_archive_path_is_a_warning(self, tmp_path):
        source = tmp_path / "in.txt"
        source.write_text("payload")

        result = ArchiveManager().move(source, tmp_path / "arch\x00ive.txt")

        assert not result.moved
        assert isinstance(result.warning.cause, ValueError)
        assert source.read_text() == "payload"

    def test_unusable_archive_argument_is_a_warning(self, tmp_path):
        source = tmp_path / "in.txt"
        source.write_text("payload")

        result = ArchiveManager().move(source, None)

        assert not result.moved
        assert isinstance(result.warning.cause, TypeError)
        assert source.exists()
