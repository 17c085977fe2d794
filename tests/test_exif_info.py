"""
Tests for exiftool output parsing and the add-time header scan.
"""
import json
from datetime import datetime

import pytest

from x3fq.parsers.exif_info import guess_from_filename, parse_exiftool_json, scan_capture_date


class TestParseExiftoolJson:
    """`exiftool -json` output."""

    def test_full_record(self):
        out = json.dumps([{"SourceFile": "a.X3F", "Model": "SIGMA SD1 Merrill", "LensID": 32776, "Aperture": 5.6}])
        info = parse_exiftool_json(out)
        assert info.camera_model == "SIGMA SD1 Merrill"
        assert info.lens_id == "Unknown_(32776)_30mm"
        assert info.aperture == "5.6"
        assert info.raw["SourceFile"] == "a.X3F"

    def test_integer_aperture_gets_one_decimal(self):
        assert parse_exiftool_json('[{"Aperture": 8}]').aperture == "8.0"

    def test_missing_fields(self):
        info = parse_exiftool_json('[{"SourceFile": "a.X3F"}]')
        assert (info.camera_model, info.lens_id, info.aperture) == (None, None, None)

    def test_string_lens_kept(self):
        assert parse_exiftool_json('[{"LensID": " Sigma 30mm "}]').lens_id == "Sigma 30mm"

    @pytest.mark.parametrize("junk", ["", "not json", "[]", "{}", "[1]"])
    def test_junk_raises(self, junk):
        with pytest.raises(ValueError):
            parse_exiftool_json(junk)


class TestGuessFromFilename:
    """Fallback when exiftool cannot read the file."""

    def test_dp_models(self):
        assert guess_from_filename("DP3_0042.X3F").camera_model == "SIGMA DP3 Merrill"
        assert guess_from_filename("DP3_0042.X3F").lens_id is None

    def test_sd1_gets_default_lens(self):
        info = guess_from_filename("sd1_0001.x3f")
        assert info.camera_model == "SIGMA SD1 Merrill"
        assert info.lens_id == "Unknown_(32776)_30mm"
        assert info.aperture is None

    def test_no_hint(self):
        assert guess_from_filename("IMG_0001.X3F").camera_model is None


class TestScanCaptureDate:
    """EXIF date stamp in the first 64 KiB."""

    def test_found(self, tmp_path):
        p = tmp_path / "a.X3F"
        p.write_bytes(b"\x00" * 100 + b"2012:11:30 08:09:10" + b"\x00")
        assert scan_capture_date(p) == datetime(2012, 11, 30, 8, 9, 10)

    def test_beyond_header_ignored(self, tmp_path):
        p = tmp_path / "a.X3F"
        p.write_bytes(b"\x00" * 70000 + b"2012:11:30 08:09:10")
        assert scan_capture_date(p) is None

    def test_invalid_date(self, tmp_path):
        p = tmp_path / "a.X3F"
        p.write_bytes(b"2012:13:45 99:00:00")
        assert scan_capture_date(p) is None

    def test_unreadable(self, tmp_path):
        assert scan_capture_date(tmp_path / "missing.X3F") is None
