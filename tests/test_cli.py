"""Tests for the pyramid builder command line interface."""

from __future__ import annotations

from pathlib import Path

import pytest
from click.testing import CliRunner

from zoomstack.preprocess.__main__ import find_image_files, main, manifest_path_for
from zoomstack.preprocess.metadata import PyramidStatus, check_pyramid_status

from conftest import noise_rgba


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestHelpers:
    """Tests for input discovery and output naming."""

    def test_find_image_files(self, temp_dir: Path, write_image):
        write_image(noise_rgba(4, 4), "b.png")
        write_image(noise_rgba(4, 4), "a.jpg")
        (temp_dir / "notes.txt").write_text("not an image")

        assert [p.name for p in find_image_files(temp_dir)] == ["a.jpg", "b.png"]
        assert find_image_files(temp_dir / "notes.txt") == []

    def test_manifest_beside_source_by_default(self, temp_dir: Path):
        assert manifest_path_for(temp_dir / "photo.jpg", None, batch=False) == temp_dir / "photo.dzi"

    def test_manifest_in_batch_directory(self, temp_dir: Path):
        out = temp_dir / "out"
        assert manifest_path_for(Path("x/photo.png"), out, batch=True) == out / "photo.dzi"

    def test_single_output_keeps_xml_suffix(self, temp_dir: Path):
        target = temp_dir / "viewer.xml"
        assert manifest_path_for(Path("photo.png"), target, batch=False) == target

    def test_single_output_rejects_other_suffix(self, temp_dir: Path):
        with pytest.raises(ValueError):
            manifest_path_for(Path("photo.png"), temp_dir / "viewer.json", batch=False)


class TestMain:
    """Tests for running the CLI end to end."""

    def test_single_image(self, runner: CliRunner, temp_dir: Path, write_image):
        source = write_image(noise_rgba(300, 200), "photo.png")
        manifest = temp_dir / "out" / "photo.dzi"

        result = runner.invoke(main, [str(source), "-o", str(manifest), "--format", "png"])

        assert result.exit_code == 0, result.output
        assert "1 built" in result.output
        assert check_pyramid_status(manifest) == PyramidStatus.COMPLETE
        assert (temp_dir / "out" / "photo_files" / "9" / "1_0.png").exists()

    def test_second_run_is_skipped(self, runner: CliRunner, temp_dir: Path, write_image):
        source = write_image(noise_rgba(40, 40), "photo.jpg")
        args = [str(source), "-w", "1"]

        assert runner.invoke(main, args).exit_code == 0
        assert (temp_dir / "photo_files" / "6" / "0_0.jpg").exists()

        result = runner.invoke(main, args)
        assert result.exit_code == 0
        assert "1 skipped" in result.output

        forced = runner.invoke(main, [*args, "--force"])
        assert forced.exit_code == 0
        assert "1 built" in forced.output

    def test_format_change_is_rebuilt(self, runner: CliRunner, temp_dir: Path, write_image):
        source = write_image(noise_rgba(40, 40), "photo.png")

        assert runner.invoke(main, [str(source), "-f", "jpg"]).exit_code == 0
        result = runner.invoke(main, [str(source), "-f", "png"])

        assert result.exit_code == 0, result.output
        assert "1 built" in result.output
        assert (temp_dir / "photo_files" / "6" / "0_0.png").exists()
        assert not (temp_dir / "photo_files" / "6" / "0_0.jpg").exists()

    def test_bad_output_extension(self, runner: CliRunner, temp_dir: Path, write_image):
        source = write_image(noise_rgba(10, 10), "photo.png")
        result = runner.invoke(main, [str(source), "-o", str(temp_dir / "photo.json")])

        assert result.exit_code == 2
        assert not (temp_dir / "photo_files").exists()

    def test_no_images(self, runner: CliRunner, temp_dir: Path):
        result = runner.invoke(main, [str(temp_dir)])
        assert result.exit_code == 1
        assert "No PNG/JPEG images found" in result.output

    def test_unreadable_image_fails(self, runner: CliRunner, temp_dir: Path):
        source = temp_dir / "broken.png"
        source.write_bytes(b"not a png")

        result = runner.invoke(main, [str(source)])
        assert result.exit_code == 1
        assert "broken.png" in result.output
        assert not (temp_dir / "broken.dzi").exists()

    def test_directory_batch(self, runner: CliRunner, temp_dir: Path, write_image):
        write_image(noise_rgba(300, 200, seed=1), "first.png")
        write_image(noise_rgba(120, 80, seed=2), "second.jpg")
        out = temp_dir / "pyramids"

        result = runner.invoke(main, [str(temp_dir), "-o", str(out), "-p", "1", "-f", "png"])

        assert result.exit_code == 0, result.output
        assert "2 built" in result.output
        for name in ("first", "second"):
            assert check_pyramid_status(out / f"{name}.dzi") == PyramidStatus.COMPLETE
