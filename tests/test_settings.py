"""
Tests for settings persistence and per-job effective values.
"""
import json
from pathlib import Path

from x3fq.models.job import ColorProfile, Job, OutputFormat
from x3fq.utils.settings import (
    DEFAULT_OPCODES_DIR, DEFAULT_SETTINGS, ConversionSettings, load_settings, save_settings, settings_path,
)


class TestPersistence:
    """JSON settings file."""

    def test_first_run_writes_defaults(self, tmp_path):
        p = tmp_path / "s.json"
        assert load_settings(p) == DEFAULT_SETTINGS
        assert json.loads(p.read_text()) == DEFAULT_SETTINGS

    def test_partial_file_is_merged(self, tmp_path):
        p = tmp_path / "s.json"
        p.write_text(json.dumps({"output_format": "tiff"}))
        data = load_settings(p)
        assert data["output_format"] == "tiff"
        assert data["denoise"] is True

    def test_broken_file_falls_back(self, tmp_path):
        p = tmp_path / "s.json"
        p.write_text("{not json")
        assert load_settings(p) == DEFAULT_SETTINGS

    def test_round_trip(self, tmp_path):
        p = tmp_path / "s.json"
        s = ConversionSettings(output_format=OutputFormat.JPG, color_profile=ColorProfile.ADOBE_RGB,
                               output_directory="/x")
        save_settings(s.to_dict(), p)
        assert ConversionSettings.from_dict(load_settings(p)) == s

    def test_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("X3FQ_SETTINGS", str(tmp_path / "env.json"))
        assert settings_path() == tmp_path / "env.json"


class TestConversionSettings:
    """Typed view over the settings dict."""

    def test_unknown_enum_values_fall_back(self):
        s = ConversionSettings.from_dict({"output_format": "png", "color_profile": "CMYK"})
        assert s.output_format is OutputFormat.DNG
        assert s.color_profile is ColorProfile.SRGB

    def test_empty_output_directory_means_next_to_source(self):
        s = ConversionSettings.from_dict({"output_directory": ""})
        assert s.output_directory is None
        assert s.effective_output_directory(Path("/a/b/c.X3F")) == Path("/a/b")
        assert s.is_output_directory_valid()

    def test_output_directory_validity(self, tmp_path):
        assert ConversionSettings(output_directory=str(tmp_path)).is_output_directory_valid()
        assert not ConversionSettings(output_directory=str(tmp_path / "missing")).is_output_directory_valid()

    def test_effective_for_job(self):
        s = ConversionSettings(compress=True, denoise=True, color_profile=ColorProfile.SRGB)
        job = Job(source_path="/p/a.X3F", compress=False, color_profile=ColorProfile.PROPHOTO_RGB)
        eff = s.effective_for(job)
        assert eff.compress is False
        assert eff.denoise is True
        assert eff.color_profile is ColorProfile.PROPHOTO_RGB
        assert eff.output_format is OutputFormat.DNG
        assert eff.output_dir == Path("/p")

    def test_default_opcodes_dir_not_persisted(self, tmp_path):
        p = tmp_path / "s.json"
        data = load_settings(p)
        assert data["opcodes_dir"] is None
        assert ConversionSettings.from_dict(data).opcodes_dir == str(DEFAULT_OPCODES_DIR)

        save_settings(ConversionSettings.from_dict(data).to_dict(), p)
        assert json.loads(p.read_text())["opcodes_dir"] is None
        custom = ConversionSettings(opcodes_dir="/data/opcodes").to_dict()
        assert custom["opcodes_dir"] == "/data/opcodes"
