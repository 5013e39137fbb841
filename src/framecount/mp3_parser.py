"""
MPEG-1 Layer III frame scanner.

Walks an in-memory MP3 buffer and counts the complete, valid frames it holds:
  - skips an ID3v2 tag at the start
  - excludes an ID3v1 tag at the end
  - does not count a frame that ends at or past the end boundary
"""
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

import numpy as np

from .constants import (
    BITRATES_V1_L3, SAMPLE_RATES_V1,
    FRAME_HEADER_SIZE, FRAME_SYNC, MPEG_VERSION_1, LAYER_III,
    FREE_FORMAT_BITRATE, RESERVED_BITRATE, RESERVED_SAMPLE_RATE,
    FRAME_LENGTH_MULTIPLIER, KBPS_TO_BPS,
    ID3V2_IDENTIFIER, ID3V2_HEADER_SIZE, ID3V1_IDENTIFIER, ID3V1_TAG_SIZE,
)
from .errors import BufferBoundsError


@dataclass(frozen=True)
class FrameHeader:
    frame_sync: int
    version: int
    layer: int
    bitrate_index: int
    sample_rate_index: int
    padding: int


@dataclass(frozen=True)
class Frame:
    offset: int
    length: int
    header: FrameHeader


def _as_buffer(buffer):
    if isinstance(buffer, memoryview) and (buffer.format != "B" or not buffer.c_contiguous):
        # scanning assumes one contiguous run of unsigned bytes
        return buffer.tobytes()
    if isinstance(buffer, (bytes, bytearray, memoryview)):
        return buffer
    raise TypeError(f"expected a bytes-like buffer, got {type(buffer).__name__}")


def parse_frame_header(buffer, offset: int) -> FrameHeader:
    """Decode the 4-byte big-endian frame header at ``offset``."""
    if offset < 0 or offset + FRAME_HEADER_SIZE > len(buffer):
        raise BufferBoundsError(
            f"Cannot read frame header: offset {offset} + {FRAME_HEADER_SIZE} "
            f"exceeds buffer length {len(buffer)}"
        )
    word, = struct.unpack_from(">I", buffer, offset)
    return FrameHeader(
        frame_sync=(word >> 21) & 0x7FF,
        version=(word >> 19) & 0b11,
        layer=(word >> 17) & 0b11,
        bitrate_index=(word >> 12) & 0b1111,
        sample_rate_index=(word >> 10) & 0b11,
        padding=(word >> 9) & 0b1,
    )


def is_valid_frame(header: FrameHeader) -> bool:
    if header.frame_sync != FRAME_SYNC:
        return False
    if header.version != MPEG_VERSION_1 or header.layer != LAYER_III:
        return False
    if header.bitrate_index in (FREE_FORMAT_BITRATE, RESERVED_BITRATE):
        return False
    return header.sample_rate_index != RESERVED_SAMPLE_RATE


def calculate_frame_length(header: FrameHeader) -> int:
    """Frame length in bytes: floor(144 * bitrate / sample_rate) + padding."""
    if not is_valid_frame(header):
        raise ValueError(f"not an MPEG-1 Layer III frame header: {header}")
    bitrate = BITRATES_V1_L3[header.bitrate_index] * KBPS_TO_BPS
    sample_rate = SAMPLE_RATES_V1[header.sample_rate_index]
    return (FRAME_LENGTH_MULTIPLIER * bitrate) // sample_rate + header.padding


def skip_id3v2_tag(buffer, position: int = 0) -> int:
    """Return the position just past an ID3v2 tag at ``position``, or ``position`` itself."""
    if position + ID3V2_HEADER_SIZE > len(buffer):
        return position
    if bytes(buffer[position:position + 3]) != ID3V2_IDENTIFIER:
        return position
    # synchsafe: 7 significant bits per byte
    b6, b7, b8, b9 = buffer[position + 6:position + 10]
    size = ((b6 & 0x7F) << 21) | ((b7 & 0x7F) << 14) | ((b8 & 0x7F) << 7) | (b9 & 0x7F)
    return position + ID3V2_HEADER_SIZE + size


def get_end_position(buffer) -> int:
    n = len(buffer)
    if n >= ID3V1_TAG_SIZE and bytes(buffer[n - ID3V1_TAG_SIZE:n - ID3V1_TAG_SIZE + 3]) == ID3V1_IDENTIFIER:
        return n - ID3V1_TAG_SIZE
    return n


def _sync_candidates(buffer) -> np.ndarray:
    # Offsets whose first two bytes can open an MPEG-1 Layer III header:
    # 0xFF, then 111 (sync) 11 (version 1) 01 (layer III) x (protection).
    if len(buffer) < 2:
        return np.empty(0, dtype=np.intp)
    data = np.frombuffer(buffer, dtype=np.uint8)
    idx = np.flatnonzero(data[:-1] == 0xFF)
    return idx[(data[idx + 1] & 0xFE) == 0xFA]


def iter_frames(buffer) -> Iterator[Frame]:
    """Yield every complete, valid frame in scan order."""
    buffer = _as_buffer(buffer)
    position = skip_id3v2_tag(buffer)
    end = get_end_position(buffer)
    candidates = None  # built on the first resync

    while position < end - FRAME_HEADER_SIZE:
        header = parse_frame_header(buffer, position)
        if not is_valid_frame(header):
            # offsets before the next candidate cannot hold a valid header
            if candidates is None:
                candidates = _sync_candidates(buffer)
            idx = int(np.searchsorted(candidates, position + 1))
            position = int(candidates[idx]) if idx < candidates.size else end
            continue
        length = calculate_frame_length(header)
        next_position = position + length
        # a frame that reaches the boundary is treated as truncated
        if next_position >= end:
            return
        yield Frame(offset=position, length=length, header=header)
        position = next_position


def count_frames(buffer) -> int:
    """Count complete MPEG-1 Layer III frames; 0 for empty, corrupt or non-MP3 data."""
    buffer = _as_buffer(buffer)
    try:
        return sum(1 for _ in iter_frames(buffer))
    except BufferBoundsError:
        return 0


def count_frames_for_file(path: str) -> int:
    return count_frames(Path(path).read_bytes())
