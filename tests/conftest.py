"""
Shared fixtures: a QCoreApplication, fake x3f_extract / exiftool scripts,
and a few queued X3F files.
"""
import os
import stat
from pathlib import Path
from types import SimpleNamespace

import pytest
from PySide6.QtCore import QCoreApplication

from x3fq.models.queue import ConversionQueue
from x3fq.utils.settings import ConversionSettings

FAKE_X3F_EXTRACT = """#!/bin/sh
printf '%s\\n' "$*" >> "@LOG@"
out="."
ext=".dng"
src=""
while [ $# -gt 0 ]; do
  case "$1" in
    -o) out="$2"; shift ;;
    -jpg) ext=".jpg" ;;
    -tiff) ext=".tif" ;;
    -color) shift ;;
    -*) ;;
    *) src="$1" ;;
  esac
  shift
done
name=$(basename "$src")
if [ -n "$FAKE_X3F_EXIT" ]; then
  echo "x3f_extract: cannot decode $name" >&2
  exit "$FAKE_X3F_EXIT"
fi
if [ -n "$FAKE_X3F_FAIL" ] && [ "$name" = "$FAKE_X3F_FAIL" ]; then
  echo "x3f_extract: cannot decode $name" >&2
  exit 1
fi
if [ -n "$FAKE_X3F_HANG" ] && [ "$name" = "$FAKE_X3F_HANG" ]; then
  printf 'partial' > "$out/$name$ext"
  : > "@HANG@"
  exec sleep 30
fi
if [ "$FAKE_X3F_EMPTY" = "1" ]; then
  : > "$out/$name$ext"
else
  printf 'converted from %s' "$name" > "$out/$name$ext"
fi
exit 0
"""

FAKE_EXIFTOOL = """#!/bin/sh
printf '%s\\n' "$*" >> "@LOG@"
for a in "$@"; do
  if [ "$a" = "-json" ]; then
    if [ "$FAKE_EXIF_READ_FAIL" = "1" ]; then
      echo "Error: File format error" >&2
      exit 1
    fi
    if [ -n "$FAKE_EXIF_JSON" ]; then
      printf '%s\\n' "$FAKE_EXIF_JSON"
    else
      cat "@DEFAULT@"
    fi
    exit 0
  fi
done
if [ "$FAKE_EXIF_WRITE_FAIL" = "1" ]; then
  echo "Error: write failed" >&2
  exit 1
fi
echo "    1 image files updated"
exit 0
"""

DEFAULT_EXIF_JSON = '[{"SourceFile": "x.X3F", "Model": "SIGMA DP2 Merrill", "Aperture": 2.8}]'


def _script(path: Path, body: str) -> Path:
    path.write_text(body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture(scope="session", autouse=True)
def qapp():
    app = QCoreApplication.instance() or QCoreApplication([])
    yield app


@pytest.fixture
def tools(tmp_path):
    """Fake x3f_extract and exiftool; every invocation is appended to a log."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    x3f_log = tmp_path / "x3f_extract.log"
    exif_log = tmp_path / "exiftool.log"
    hang_marker = tmp_path / "hang.started"
    default_json = tmp_path / "exif_default.json"
    default_json.write_text(DEFAULT_EXIF_JSON)

    x3f = _script(bin_dir / "x3f_extract",
                  FAKE_X3F_EXTRACT.replace("@LOG@", str(x3f_log)).replace("@HANG@", str(hang_marker)))
    exif = _script(bin_dir / "exiftool",
                   FAKE_EXIFTOOL.replace("@LOG@", str(exif_log)).replace("@DEFAULT@", str(default_json)))

    def calls(log: Path) -> list[str]:
        return log.read_text().splitlines() if log.exists() else []

    return SimpleNamespace(
        x3f_extract=str(x3f),
        exiftool=str(exif),
        x3f_calls=lambda: calls(x3f_log),
        exif_calls=lambda: calls(exif_log),
        hang_marker=hang_marker,
    )


@pytest.fixture
def opcodes_dir(tmp_path):
    d = tmp_path / "opcodes"
    d.mkdir()
    for name in (
        "DP2M_FF_DNG_Opcodelist3_2.8",
        "DP1M_FF_DNG_Opcodelist3_4.0",
        "SD1M_Unknown_(32776)_30mm_FF_DNG_Opcodelist3_5.6",
    ):
        (d / name).write_bytes(b"\x00\x00\x00\x01")
    return d


@pytest.fixture
def src_dir(tmp_path):
    d = tmp_path / "src"
    d.mkdir()
    return d


@pytest.fixture
def out_dir(tmp_path):
    return tmp_path / "out"


@pytest.fixture
def make_x3f(src_dir):
    def _make(name: str, payload: bytes = b"FOVb\x00\x00 2013:05:04 10:11:12 rest") -> Path:
        p = src_dir / name
        p.write_bytes(payload)
        return p
    return _make


@pytest.fixture
def settings(tools, opcodes_dir, out_dir, tmp_path):
    return ConversionSettings(
        output_directory=str(out_dir),
        x3f_extract_path=tools.x3f_extract,
        exiftool_path=tools.exiftool,
        opcodes_dir=str(opcodes_dir),
        log_dir=str(tmp_path / "logs"),
    )


@pytest.fixture
def queue():
    return ConversionQueue()


@pytest.fixture(autouse=True)
def _clean_fake_env(monkeypatch):
    for var in list(os.environ):
        if var.startswith("FAKE_"):
            monkeypatch.delenv(var)
