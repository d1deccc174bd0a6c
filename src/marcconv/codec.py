import logging
from typing import Iterable

from marcconv.constants import MARCXML_NAMESPACE
from marcconv.errors import FormatUnknownError
from marcconv.formats import Format, detect_stream_format
from marcconv.marc import Record
from marcconv.reader import MarcLineReader, MarcReader, MarcStreamReader, MarcXmlReader
from marcconv.writer import MarcLineWriter, MarcStreamWriter, MarcWriter, MarcXmlWriter

logger = logging.getLogger(__name__)

_READERS = {
    Format.MARC: MarcStreamReader,
    Format.LINE_MARC: MarcLineReader,
    Format.MARCXML: MarcXmlReader,
}

_WRITERS = {
    Format.MARC: MarcStreamWriter,
    Format.LINE_MARC: MarcLineWriter,
    Format.MARCXML: MarcXmlWriter,
}


def new_decoder(f, fmt: Format, **options) -> MarcReader:
    if fmt not in _READERS:
        raise FormatUnknownError(f"no decoder for {fmt}")
    return _READERS[fmt](f, **options)


def new_encoder(f, fmt: Format, **options) -> MarcWriter:
    if fmt not in _WRITERS:
        raise FormatUnknownError(f"no encoder for {fmt}")
    return _WRITERS[fmt](f, **options)


def read_marc_from_path(path: str, fmt: Format | None = None, **options) -> list[Record]:
    with open(path, "rb") as f:
        if fmt is None:
            fmt = detect_stream_format(f)
            logger.debug("%s: detected %s", path, fmt)
        return new_decoder(f, fmt, **options).decode_all()


def write_marc_to_path(path: str, records: Iterable[Record] | Record, fmt: Format, **options) -> None:
    if isinstance(records, Record):
        records = [records]

    with open(path, "wb") as f:
        writer = new_encoder(f, fmt, **options)
        if fmt is Format.MARCXML:
            f.write(f'<?xml version="1.0" encoding="UTF-8"?>\n<collection xmlns="{MARCXML_NAMESPACE}">\n'.encode('utf-8'))
        writer.encode_all(records)
        writer.flush()
        if fmt is Format.MARCXML:
            f.write(b'</collection>\n')
