"""
Minimal ISO base media (MP4/M4A) parser for the movie creation time.

Only the top level and the inside of the 'moov' box are scanned; the
timestamp comes from the 'mvhd' (movie header) box. Any malformed input
yields None.
"""

import logging
import os
import struct
from datetime import datetime, timedelta, timezone
from typing import BinaryIO, Optional, Tuple

MP4_EPOCH = datetime(1904, 1, 1, tzinfo=timezone.utc)

_BOX_HEADER = struct.Struct(">I4s")
_UINT32 = struct.Struct(">I")
_UINT64 = struct.Struct(">Q")

logger = logging.getLogger(__name__)


def _find_box(
    stream: BinaryIO, start: int, end: int, wanted: bytes
) -> Optional[Tuple[int, int]]:
    """Find a child box between start and end.

    Returns (payload_start, box_end) of the first box of type wanted, or
    None when it is absent or the box list is corrupt.
    """
    position = start
    while end - position >= _BOX_HEADER.size:
        stream.seek(position)
        header = stream.read(_BOX_HEADER.size)
        if len(header) < _BOX_HEADER.size:
            return None
        size, box_type = _BOX_HEADER.unpack(header)
        header_size = _BOX_HEADER.size

        if size == 1:
            extended = stream.read(_UINT64.size)
            if len(extended) < _UINT64.size:
                return None
            size = _UINT64.unpack(extended)[0]
            header_size += _UINT64.size

        if size < header_size:
            logger.debug("Corrupt %r box at offset %d", box_type, position)
            return None

        box_end = position + size
        if box_end > end:
            return None

        if box_type == wanted:
            return position + header_size, box_end
        position = box_end
    return None


def _read_creation_seconds(
    stream: BinaryIO, payload_start: int, box_end: int
) -> Optional[int]:
    stream.seek(payload_start)
    version_and_flags = stream.read(4)
    if len(version_and_flags) < 4:
        return None
    version = version_and_flags[0]

    if version == 1:
        field = _UINT64
    elif version == 0:
        field = _UINT32
    else:
        return None

    if payload_start + 4 + field.size > box_end:
        return None
    raw = stream.read(field.size)
    if len(raw) < field.size:
        return None
    # 64-bit values are truncated to 32 bits
    return field.unpack(raw)[0] & 0xFFFFFFFF


def read_creation_time(stream: BinaryIO, length: int) -> Optional[datetime]:
    """Read the mvhd creation time from an open binary stream."""
    moov = _find_box(stream, 0, length, b"moov")
    if moov is None:
        return None
    mvhd = _find_box(stream, moov[0], moov[1], b"mvhd")
    if mvhd is None:
        return None
    seconds = _read_creation_seconds(stream, mvhd[0], mvhd[1])
    if seconds is None:
        return None
    return MP4_EPOCH + timedelta(seconds=seconds)


def extract_creation_time(file_path: str) -> Optional[datetime]:
    """Extract the container creation time (UTC) from an MP4/M4A file."""
    try:
        with open(file_path, "rb") as stream:
            length = os.fstat(stream.fileno()).st_size
            return read_creation_time(stream, length)
    except (OSError, struct.error, OverflowError, ValueError) as e:
        logger.debug("Could not parse container metadata of %s: %s", file_path, e)
        return None
