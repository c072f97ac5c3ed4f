import gzip
import io

import pytest

from dbrestore.errors import InputNotFoundError, UnrecognizedFormatError
from dbrestore.models import DumpFormat
from dbrestore.services.format_detector import FormatDetector


def _tar_header() -> bytes:
    header = bytearray(512)
    header[257:262] = b"ustar"
    return bytes(header)


@pytest.fixture
def detector():
    return FormatDetector()


def test_explicit_format_wins_over_content(detector, tmp_path):
    dump = tmp_path / "backup.sql"
    dump.write_bytes(b"PGDMP\x01\x0e")

    assert detector.detect(str(dump), explicit_format="Plain") is DumpFormat.PLAIN


def test_explicit_format_accepts_plain_gz_alias(detector, tmp_path):
    assert detector.detect("-", explicit_format="plain.gz") is DumpFormat.PLAIN_COMPRESSED


def test_unknown_explicit_format_is_rejected(detector):
    with pytest.raises(UnrecognizedFormatError, match="Unsupported dump format: zip"):
        detector.detect("backup.zip", explicit_format="zip")


def test_magic_bytes_take_priority_over_extension(detector, tmp_path):
    dump = tmp_path / "backup.sql"
    dump.write_bytes(b"PGDMP" + b"\x00" * 20)

    assert detector.detect(str(dump)) is DumpFormat.CUSTOM


def test_gzip_magic_is_detected(detector, tmp_path):
    dump = tmp_path / "backup.bin"
    dump.write_bytes(gzip.compress(b"SELECT 1;"))

    assert detector.detect(str(dump)) is DumpFormat.PLAIN_COMPRESSED


def test_tar_magic_is_detected_at_offset(detector, tmp_path):
    dump = tmp_path / "backup.bin"
    dump.write_bytes(_tar_header())

    assert detector.detect(str(dump)) is DumpFormat.TAR


@pytest.mark.parametrize(
    "name, expected",
    [
        ("schema.sql", DumpFormat.PLAIN),
        ("schema.SQL.GZ", DumpFormat.PLAIN_COMPRESSED),
        ("archive.tar", DumpFormat.TAR),
        ("nightly.dump", DumpFormat.CUSTOM),
        ("nightly.backup", DumpFormat.CUSTOM),
        ("notes.txt", DumpFormat.PLAIN),
    ],
)
def test_extension_is_used_when_content_is_inconclusive(detector, tmp_path, name, expected):
    dump = tmp_path / name
    dump.write_text("-- comment\n", encoding="utf-8")

    assert detector.detect(str(dump)) is expected


def test_directory_with_toc_is_directory_format(detector, tmp_path):
    (tmp_path / "toc.dat").write_bytes(b"PGDMP")

    assert detector.detect(str(tmp_path)) is DumpFormat.DIRECTORY


def test_directory_without_toc_is_rejected(detector, tmp_path):
    with pytest.raises(UnrecognizedFormatError, match="toc.dat"):
        detector.detect(str(tmp_path))


def test_missing_file_raises_input_not_found(detector, tmp_path):
    with pytest.raises(InputNotFoundError):
        detector.detect(str(tmp_path / "missing.dump"))


def test_stdin_header_is_sniffed_without_consuming(detector):
    stream = io.BufferedReader(io.BytesIO(b"PGDMP" + b"\x00" * 100))

    assert detector.detect("-", stream=stream) is DumpFormat.CUSTOM
    assert stream.read(5) == b"PGDMP"


def test_stdin_without_peek_defaults_to_plain(detector):
    assert detector.detect("-", stream=io.BytesIO(b"PGDMP")) is DumpFormat.PLAIN
    assert detector.detect("-") is DumpFormat.PLAIN
