"""
Tests for the MP4 movie-header creation time parser.
"""

import io
import os
import shutil
import struct
import tempfile
import unittest
from datetime import datetime, timezone

from podhost.mp4 import MP4_EPOCH, extract_creation_time, read_creation_time

# 2024-01-15T10:30:00Z expressed in seconds since 1904-01-01
CREATED = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
CREATED_SECONDS = int((CREATED - MP4_EPOCH).total_seconds())


def box(box_type: bytes, payload: bytes) -> bytes:
    """Build a box with a 32-bit size header."""
    return struct.pack(">I4s", 8 + len(payload), box_type) + payload


def large_box(box_type: bytes, payload: bytes) -> bytes:
    """Build a box using the 64-bit extended size."""
    return struct.pack(">I4sQ", 1, box_type, 16 + len(payload)) + payload


def mvhd_v0(seconds: int) -> bytes:
    """Version 0 movie header: 32-bit times."""
    return box(b"mvhd", b"\x00\x00\x00\x00" + struct.pack(">II", seconds, seconds) + b"\x00" * 88)


def mvhd_v1(seconds: int) -> bytes:
    """Version 1 movie header: 64-bit times."""
    return box(b"mvhd", b"\x01\x00\x00\x00" + struct.pack(">QQ", seconds, seconds) + b"\x00" * 88)


def parse(data: bytes):
    """Run the parser over in-memory bytes."""
    return read_creation_time(io.BytesIO(data), len(data))


class TestReadCreationTime(unittest.TestCase):
    """Test creation time extraction from synthetic containers."""

    def test_version_0(self) -> None:
        """Test 32-bit creation time."""
        data = box(b"ftyp", b"M4A \x00\x00\x00\x00") + box(b"moov", mvhd_v0(CREATED_SECONDS))
        self.assertEqual(parse(data), CREATED)

    def test_version_1(self) -> None:
        """Test 64-bit creation time."""
        data = box(b"moov", box(b"udta", b"") + mvhd_v1(CREATED_SECONDS))
        self.assertEqual(parse(data), CREATED)

    def test_version_1_truncated_to_32_bits(self) -> None:
        """Test the upper 32 bits of a 64-bit time are discarded."""
        data = box(b"moov", mvhd_v1((1 << 32) + CREATED_SECONDS))
        self.assertEqual(parse(data), CREATED)

    def test_extended_size_box(self) -> None:
        """Test boxes using the 64-bit size field are walked."""
        data = large_box(b"mdat", b"\x00" * 32) + large_box(b"moov", mvhd_v0(CREATED_SECONDS))
        self.assertEqual(parse(data), CREATED)

    def test_zero_seconds_is_epoch(self) -> None:
        """Test an unset creation time yields the 1904 epoch."""
        data = box(b"moov", mvhd_v0(0))
        self.assertEqual(parse(data), MP4_EPOCH)

    def test_missing_moov(self) -> None:
        """Test files without a movie box yield None."""
        self.assertIsNone(parse(box(b"ftyp", b"isom") + box(b"mdat", b"\x00" * 16)))

    def test_missing_mvhd(self) -> None:
        """Test a movie box without a header yields None."""
        self.assertIsNone(parse(box(b"moov", box(b"trak", b"\x00" * 8))))

    def test_unknown_version(self) -> None:
        """Test unsupported header versions yield None."""
        payload = b"\x02\x00\x00\x00" + b"\x00" * 96
        self.assertIsNone(parse(box(b"moov", box(b"mvhd", payload))))

    def test_box_size_smaller_than_header(self) -> None:
        """Test corrupt box sizes stop the walk."""
        data = struct.pack(">I4s", 4, b"free") + box(b"moov", mvhd_v0(CREATED_SECONDS))
        self.assertIsNone(parse(data))

    def test_box_overrunning_parent(self) -> None:
        """Test a box claiming more bytes than exist yields None."""
        data = struct.pack(">I4s", 1000, b"moov") + mvhd_v0(CREATED_SECONDS)
        self.assertIsNone(parse(data))

    def test_truncated_mvhd(self) -> None:
        """Test a header too short for its timestamp yields None."""
        data = box(b"moov", box(b"mvhd", b"\x01\x00\x00\x00\x00\x00"))
        self.assertIsNone(parse(data))

    def test_empty_input(self) -> None:
        """Test empty input yields None."""
        self.assertIsNone(parse(b""))


class TestExtractCreationTime(unittest.TestCase):
    """Test the file-based entry point."""

    def setUp(self) -> None:
        """Set up test fixtures."""
        self.test_dir = tempfile.mkdtemp()

    def tearDown(self) -> None:
        """Clean up test fixtures."""
        shutil.rmtree(self.test_dir)

    def test_reads_file(self) -> None:
        """Test extraction from a file on disk."""
        path = os.path.join(self.test_dir, "show.m4a")
        with open(path, "wb") as f:
            f.write(box(b"moov", mvhd_v0(CREATED_SECONDS)))
        self.assertEqual(extract_creation_time(path), CREATED)

    def test_missing_file(self) -> None:
        """Test a missing file yields None rather than raising."""
        self.assertIsNone(extract_creation_time(os.path.join(self.test_dir, "none.m4a")))


if __name__ == "__main__":
    unittest.main()
