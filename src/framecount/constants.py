"""MPEG-1 Layer III and ID3 constants used by the frame scanner."""

# MPEG-1 Layer III bitrates in kbps, indexed by the 4-bit bitrate field.
# 0 is free format, 15 is reserved; neither is accepted by the scanner.
BITRATES_V1_L3 = (
    0, 32, 40, 48, 56, 64, 80, 96,
    112, 128, 160, 192, 224, 256, 320, -1,
)

# MPEG-1 sample rates in Hz, indexed by the 2-bit sample-rate field (3 is reserved).
SAMPLE_RATES_V1 = (44100, 48000, 32000, -1)

FRAME_HEADER_SIZE = 4
FRAME_SYNC = 0x7FF
MPEG_VERSION_1 = 0b11
LAYER_III = 0b01
FREE_FORMAT_BITRATE = 0b0000
RESERVED_BITRATE = 0b1111
RESERVED_SAMPLE_RATE = 0b11

# 1152 samples per frame / 8 bits per byte
FRAME_LENGTH_MULTIPLIER = 144
KBPS_TO_BPS = 1000

ID3V2_IDENTIFIER = b"ID3"
ID3V2_HEADER_SIZE = 10
ID3V1_IDENTIFIER = b"TAG"
ID3V1_TAG_SIZE = 128

MP3_MIME_TYPES = ("audio/mpeg", "audio/mp3")
MP3_EXTENSION = ".mp3"
BYTES_PER_MB = 1024 * 1024
