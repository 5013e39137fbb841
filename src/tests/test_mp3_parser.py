import os
import sys
import tempfile
import unittest
from pathlib import Path

import numpy as np

# Add src directory to path for imports
BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from framecount.errors import BufferBoundsError
from framecount.mp3_parser import (
    FrameHeader,
    calculate_frame_length,
    count_frames,
    count_frames_for_file,
    get_end_position,
    is_valid_frame,
    iter_frames,
    parse_frame_header,
    skip_id3v2_tag,
)
from mp3_fixtures import frame, frame_header, id3v1_tag, id3v2_tag, stream


def _header(**overrides) -> FrameHeader:
    fields = dict(frame_sync=0x7FF, version=3, layer=1, bitrate_index=5,
                  sample_rate_index=1, padding=0)
    fields.update(overrides)
    return FrameHeader(**fields)


def _byte_by_byte_count(buffer) -> int:
    """Straightforward scan loop, used to check the vectorised resync."""
    position = skip_id3v2_tag(buffer)
    end = get_end_position(buffer)
    count = 0
    while position < end - 4:
        header = parse_frame_header(buffer, position)
        if not is_valid_frame(header):
            position += 1
            continue
        next_position = position + calculate_frame_length(header)
        if next_position >= end:
            break
        count += 1
        position = next_position
    return count


class TestFrameLength(unittest.TestCase):

    def test_known_lengths(self):
        cases = [
            (dict(bitrate_index=5, sample_rate_index=1), 192),   # 64 kbps, 48 kHz
            (dict(bitrate_index=5, sample_rate_index=1, padding=1), 193),
            (dict(bitrate_index=9, sample_rate_index=0), 417),   # 128 kbps, 44.1 kHz
            (dict(bitrate_index=5, sample_rate_index=0), 208),   # 64 kbps, 44.1 kHz
            (dict(bitrate_index=14, sample_rate_index=1), 960),  # 320 kbps, 48 kHz
            (dict(bitrate_index=1, sample_rate_index=2), 144),   # 32 kbps, 32 kHz
        ]
        for fields, expected in cases:
            with self.subTest(**fields):
                self.assertEqual(calculate_frame_length(_header(**fields)), expected)

    def test_rejects_invalid_header(self):
        with self.assertRaises(ValueError):
            calculate_frame_length(_header(bitrate_index=0))


class TestHeaderDecoding(unittest.TestCase):

    def test_fields_are_decoded_msb_first(self):
        raw = frame_header(bitrate_index=9, sample_rate_index=2, padding=1, channel_mode=1)
        h = parse_frame_header(b"\x00\x00" + raw, 2)
        self.assertEqual(h.frame_sync, 0x7FF)
        self.assertEqual(h.version, 3)
        self.assertEqual(h.layer, 1)
        self.assertEqual(h.bitrate_index, 9)
        self.assertEqual(h.sample_rate_index, 2)
        self.assertEqual(h.padding, 1)

    def test_top_bits_do_not_sign_extend(self):
        h = parse_frame_header(b"\xff\xff\xff\xff", 0)
        self.assertEqual(h.frame_sync, 0x7FF)
        self.assertEqual(h.bitrate_index, 15)

    def test_out_of_bounds_offset(self):
        buf = frame_header() + b"\x00"
        for offset in (2, 5, -1):
            with self.subTest(offset=offset):
                with self.assertRaises(BufferBoundsError):
                    parse_frame_header(buf, offset)

    def test_validity_rules(self):
        self.assertTrue(is_valid_frame(_header()))
        invalid = [
            dict(frame_sync=0x7FE),
            dict(version=0), dict(version=1), dict(version=2),
            dict(layer=0), dict(layer=2), dict(layer=3),
            dict(bitrate_index=0), dict(bitrate_index=15),
            dict(sample_rate_index=3),
        ]
        for fields in invalid:
            with self.subTest(**fields):
                self.assertFalse(is_valid_frame(_header(**fields)))


class TestTags(unittest.TestCase):

    def test_id3v2_size_is_synchsafe(self):
        tag = b"ID3\x04\x00\x00" + bytes([0x00, 0x00, 0x02, 0x2C])
        self.assertEqual(skip_id3v2_tag(tag), 10 + 300)

    def test_id3v2_size_ignores_guard_bits(self):
        tag = b"ID3\x04\x00\x00" + bytes([0x80, 0x80, 0x82, 0xAC])
        self.assertEqual(skip_id3v2_tag(tag), 10 + 300)

    def test_id3v2_needs_full_header(self):
        self.assertEqual(skip_id3v2_tag(b"ID3\x04\x00\x00\x00\x00"), 0)
        self.assertEqual(skip_id3v2_tag(b"XYZ" + bytes(20)), 0)

    def test_end_position(self):
        self.assertEqual(get_end_position(bytes(300)), 300)
        self.assertEqual(get_end_position(bytes(172) + id3v1_tag()), 172)
        self.assertEqual(get_end_position(id3v1_tag()), 0)
        self.assertEqual(get_end_position(b"TAG"), 3)


class TestCountFrames(unittest.TestCase):

    def test_empty_and_tiny_buffers(self):
        for buf in (b"", b"\xff", b"\xff\xfb\x54"):
            with self.subTest(buf=buf):
                self.assertEqual(count_frames(buf), 0)

    def test_all_zero_buffer(self):
        self.assertEqual(count_frames(bytes(10_000)), 0)

    def test_single_frame_with_trailing_bytes(self):
        self.assertEqual(count_frames(frame() + bytes(5)), 1)

    def test_frame_ending_at_boundary_is_not_counted(self):
        self.assertEqual(count_frames(frame()), 0)
        self.assertEqual(count_frames(stream(4)), 3)

    def test_stream_of_frames(self):
        self.assertEqual(count_frames(stream(10) + bytes(8)), 10)

    def test_padded_frames(self):
        buf = stream(6, length=193, padding=1) + bytes(8)
        self.assertEqual(count_frames(buf), 6)
        self.assertEqual([f.length for f in iter_frames(buf)], [193] * 6)

    def test_mixed_bitrates(self):
        buf = (frame(length=417, bitrate_index=9, sample_rate_index=0)
               + frame(length=960, bitrate_index=14)
               + frame() + bytes(8))
        self.assertEqual([f.offset for f in iter_frames(buf)], [0, 417, 1377])

    def test_leading_tag_is_transparent(self):
        body = frame() + bytes(108)  # a frame-like pattern inside the tag body
        plain = stream(3) + bytes(8)
        self.assertEqual(count_frames(plain), 3)
        self.assertEqual(count_frames(id3v2_tag(body) + plain), 3)

    def test_leading_tag_larger_than_buffer(self):
        buf = b"ID3\x04\x00\x00" + bytes([0x7F, 0x7F, 0x7F, 0x7F]) + stream(3)
        self.assertEqual(count_frames(buf), 0)

    def test_trailing_tag_is_transparent(self):
        plain = stream(3) + bytes(8)
        self.assertEqual(count_frames(plain + id3v1_tag()), 3)

    def test_trailing_tag_moves_the_boundary(self):
        self.assertEqual(count_frames(stream(3) + id3v1_tag()), 2)
        corrupted = b"TAX" + id3v1_tag()[3:]
        self.assertEqual(count_frames(stream(3) + corrupted), 3)

    def test_garbage_before_and_between_frames(self):
        buf = b"\x12\xff\x00\xff" + frame() + b"\xff\xfa\x00" + frame() + bytes(8)
        self.assertEqual([f.offset for f in iter_frames(buf)], [4, 199])

    def test_invalid_header_advances_one_byte(self):
        # 0xFF 0xFF 0xFB ... is a layer I header at 0, a valid one at 1
        buf = b"\xff" + frame() + bytes(8)
        self.assertEqual([f.offset for f in iter_frames(buf)], [1])

    def test_each_rejected_field_resyncs(self):
        bad_fields = [
            dict(sync=0x7FE), dict(version=0), dict(version=1), dict(version=2),
            dict(layer=0), dict(layer=2), dict(layer=3),
            dict(bitrate_index=0), dict(bitrate_index=15), dict(sample_rate_index=3),
        ]
        for fields in bad_fields:
            with self.subTest(**fields):
                buf = frame_header(**fields) + frame() + bytes(8)
                self.assertEqual([f.offset for f in iter_frames(buf)], [4])
                self.assertEqual(count_frames(frame_header(**fields) + bytes(300)), 0)

    def test_bytes_like_inputs(self):
        buf = stream(5) + bytes(8)
        self.assertEqual(count_frames(bytearray(buf)), 5)
        self.assertEqual(count_frames(memoryview(buf)), 5)

    def test_strided_and_wide_memoryviews(self):
        buf = id3v2_tag(bytes(40)) + stream(5) + bytes(10)
        strided = memoryview(bytes(b for byte in buf for b in (byte, 0xAA)))[::2]
        self.assertFalse(strided.c_contiguous)
        wide = memoryview(buf).cast("I")
        self.assertEqual(count_frames(strided), 5)
        self.assertEqual(count_frames(wide), 5)
        self.assertEqual([f.offset for f in iter_frames(wide)], [50, 242, 434, 626, 818])

    def test_rejects_non_buffers(self):
        for bad in (None, "ID3", 42):
            with self.subTest(bad=bad):
                with self.assertRaises(TypeError):
                    count_frames(bad)

    def test_random_data_matches_byte_by_byte_scan(self):
        rng = np.random.default_rng(1234)
        for seed in range(20):
            with self.subTest(seed=seed):
                noise = rng.integers(0, 256, size=4000, dtype=np.uint8)
                # bias towards 0xFF so candidate syncs are common
                noise[rng.random(4000) < 0.2] = 0xFF
                parts = [noise[:1500].tobytes(), stream(3), noise[1500:].tobytes(),
                         frame(length=417, bitrate_index=9, sample_rate_index=0)]
                buf = b"".join(parts)
                count = count_frames(buf)
                self.assertEqual(count, _byte_by_byte_count(buf))
                self.assertEqual(count, count_frames(buf))
                self.assertGreaterEqual(count, 0)


class TestCountFramesForFile(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_reads_file(self):
        path = os.path.join(self.tmpdir.name, "clip.mp3")
        Path(path).write_bytes(id3v2_tag(bytes(64)) + stream(7) + bytes(16) + id3v1_tag())
        self.assertEqual(count_frames_for_file(path), 7)


CORPUS_DIR = os.environ.get("MP3_CORPUS_DIR", str(BASE_DIR / "tests" / "fixtures"))
CORPUS = {
    "valid_1.mp3": 6089,
    "valid_2.mp3": 1610,
    "valid_3.mp3": 2221,
    "valid_4.mp3": 2065,
    "valid_5.mp3": 5090,
}


@unittest.skipUnless(all(os.path.isfile(os.path.join(CORPUS_DIR, n)) for n in CORPUS),
                     "reference MP3 corpus not available")
class TestReferenceCorpus(unittest.TestCase):

    def test_expected_counts(self):
        for name, expected in CORPUS.items():
            with self.subTest(file=name):
                self.assertEqual(count_frames_for_file(os.path.join(CORPUS_DIR, name)), expected)


if __name__ == "__main__":
    unittest.main()
