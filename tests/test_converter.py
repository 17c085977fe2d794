"""
Tests for x3f_extract argument construction and invocation.
"""
import sys
from pathlib import Path

import pytest

from x3fq.models.errors import ConversionFailed, MissingBinary
from x3fq.models.job import ColorProfile, Job, OutputFormat
from x3fq.utils.settings import ConversionSettings, EffectiveSettings
from x3fq.workers.converter import X3FConverter, build_x3f_arguments
from x3fq.workers.process_runner import ProcessRunner


def _eff(**kw) -> EffectiveSettings:
    base = dict(
        output_format=OutputFormat.DNG,
        compress=False,
        denoise=True,
        faster_processing=False,
        color_profile=ColorProfile.SRGB,
        output_dir=Path("/out"),
    )
    base.update(kw)
    return EffectiveSettings(**base)


class TestBuildArguments:
    """Settings → command-line flags."""

    def test_defaults(self):
        assert build_x3f_arguments(_eff()) == ["-o", "/out"]

    def test_dng_no_denoise_compress(self):
        args = build_x3f_arguments(_eff(denoise=False, compress=True))
        assert "-no-denoise" in args
        assert "-compress" in args
        assert "-jpg" not in args and "-tiff" not in args

    def test_jpg_never_compressed(self):
        args = build_x3f_arguments(_eff(output_format=OutputFormat.JPG, compress=True))
        assert "-jpg" in args
        assert "-compress" not in args

    def test_tiff_compressed(self):
        args = build_x3f_arguments(_eff(output_format=OutputFormat.TIFF, compress=True))
        assert "-tiff" in args
        assert "-compress" in args

    def test_ocl(self):
        assert "-ocl" in build_x3f_arguments(_eff(faster_processing=True))

    @pytest.mark.parametrize("profile", [ColorProfile.ADOBE_RGB, ColorProfile.PROPHOTO_RGB, ColorProfile.NONE])
    def test_color_profile(self, profile):
        args = build_x3f_arguments(_eff(color_profile=profile))
        i = args.index("-color")
        assert args[i + 1] == profile.value

    def test_srgb_has_no_color_flag(self):
        assert "-color" not in build_x3f_arguments(_eff(color_profile=ColorProfile.SRGB))

    def test_job_overrides_global(self):
        settings = ConversionSettings(output_format=OutputFormat.DNG, denoise=True, output_directory="/g")
        job = Job(source_path=Path("/src/a.X3F"), output_format=OutputFormat.JPG, denoise=False)
        args = build_x3f_arguments(settings.effective_for(job))
        assert args[:2] == ["-o", "/g"]
        assert "-jpg" in args and "-no-denoise" in args

    def test_output_dir_defaults_to_source_dir(self):
        job = Job(source_path=Path("/photos/trip/a.X3F"))
        assert build_x3f_arguments(ConversionSettings().effective_for(job))[:2] == ["-o", "/photos/trip"]


@pytest.mark.skipif(sys.platform == "win32", reason="fake tools are POSIX shell scripts")
class TestConvert:
    """Running the (fake) converter."""

    def test_success_writes_output(self, tools, make_x3f, out_dir):
        out_dir.mkdir()
        src = make_x3f("a.X3F")
        conv = X3FConverter(ProcessRunner(), tools.x3f_extract)
        conv.convert(Job(source_path=src), _eff(output_dir=out_dir))
        assert (out_dir / "a.X3F.dng").read_text() == "converted from a.X3F"
        assert tools.x3f_calls()[0].endswith(str(src))

    def test_nonzero_exit(self, tools, make_x3f, out_dir, monkeypatch):
        out_dir.mkdir()
        monkeypatch.setenv("FAKE_X3F_EXIT", "3")
        conv = X3FConverter(ProcessRunner(), tools.x3f_extract)
        with pytest.raises(ConversionFailed) as exc:
            conv.convert(Job(source_path=make_x3f("a.X3F")), _eff(output_dir=out_dir))
        assert exc.value.returncode == 3
        assert "cannot decode" in exc.value.stderr
        assert str(exc.value).startswith("Conversion failed: x3f_extract failed with exit code 3")

    def test_missing_binary(self, tmp_path, make_x3f):
        conv = X3FConverter(ProcessRunner(), str(tmp_path / "no" / "x3f_extract"))
        with pytest.raises(MissingBinary):
            conv.convert(Job(source_path=make_x3f("a.X3F")), _eff(output_dir=tmp_path))
