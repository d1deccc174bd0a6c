from enum import Enum

from marcconv.errors import FormatUnknownError

SNIFF_SIZE = 64

_WHITESPACE = b'\t\n\x0c\r '


class Format(Enum):
    UNKNOWN = 0
    MARC = 1
    LINE_MARC = 2
    MARCXML = 3

    def __str__(self) -> str:
        match self:
            case Format.UNKNOWN:
                return "Unknown MARC format"
            case Format.MARC:
                return "Standard MARC (ISO2709)"
            case Format.LINE_MARC:
                return "Line-MARC"
            case Format.MARCXML:
                return "MarcXchange (ISO25577)"


def detect_format(sample: bytes) -> Format:
    """Classify a sample by its first non-whitespace byte."""
    sample = sample.lstrip(_WHITESPACE)
    if not sample:
        return Format.UNKNOWN

    first = sample[:1]
    if first == b'<':
        return Format.MARCXML
    if first == b'*':
        return Format.LINE_MARC
    if first.isdigit():
        return Format.MARC
    return Format.UNKNOWN


def detect_stream_format(f) -> Format:
    """Sniff the format of a seekable binary stream, leaving its position unchanged."""
    pos = f.tell()
    sample = f.read(SNIFF_SIZE)
    f.seek(pos)

    fmt = detect_format(sample)
    if fmt is Format.UNKNOWN:
        raise FormatUnknownError(f"unknown MARC format (starts with {sample[:16]!r})")
    return fmt
