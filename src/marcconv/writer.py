import io
import json
import logging
import re
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from typing import Iterable

import yaml

from marcconv.constants import (FT, LEADER_LENGTH, LEADER_TEMPLATE, LINE_SUBFIELD, LINE_TAG,
                                LINE_TERMINATOR, MARCXML_NAMESPACE, MAX_FIELD_LENGTH,
                                MAX_RECORD_LENGTH, RT, US)
from marcconv.errors import EncodeError, SizeOverflowError
from marcconv.marc import Leader, Record

logger = logging.getLogger(__name__)

# characters outside the XML 1.0 Char production
_XML_INVALID = re.compile("[^\t\n\r\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")


def _xml_text(value: str) -> str:
    return _XML_INVALID.sub("\ufffd", value)


class MarcWriter(ABC):
    """Stages encoded records in memory until `flush` hands them to the stream."""

    def __init__(self, f) -> None:
        self.f = f
        self._buf = io.BytesIO()

    @abstractmethod
    def _serialize(self, record: Record) -> bytes:
        pass

    def encode(self, record: Record) -> None:
        # serialized in full before touching the buffer, so a failure
        # leaves earlier records intact
        data = self._serialize(record)
        self._buf.write(data)
        logger.debug("encoded record of %d bytes with %s", len(data), type(self).__name__)

    def encode_all(self, records: Iterable[Record]) -> None:
        for record in records:
            self.encode(record)

    def flush(self) -> None:
        self.f.write(self._buf.getvalue())
        self._buf = io.BytesIO()
        if hasattr(self.f, 'flush'):
            self.f.flush()


class MarcStreamWriter(MarcWriter):
    """Writes ISO2709 records."""

    def __init__(self, f, encoding: str | None = None) -> None:
        super().__init__(f)
        # None picks the encoding per record from leader/09
        self.encoding = encoding

    @staticmethod
    def __bytes(value: str, encoding: str, what: str, width: int | None = None) -> bytes:
        try:
            data = value.encode(encoding)
        except UnicodeEncodeError as e:
            raise EncodeError(f"{what} {value!r} cannot be written as {encoding}") from e
        if width is not None and len(data) != width:
            raise EncodeError(f"{what} {value!r} is {len(data)} bytes in {encoding}, expected {width}")
        return data

    def _serialize(self, record: Record) -> bytes:
        ldr = record.leader if record.leader is not None else LEADER_TEMPLATE
        encoding = self.encoding or Leader.text_encoding(ldr)

        dir_buf = io.BytesIO()
        data_buf = io.BytesIO()

        def add_entry(tag: str, start: int) -> None:
            length = data_buf.tell() - start
            if length > MAX_FIELD_LENGTH:
                raise SizeOverflowError(f"field {tag}", length, MAX_FIELD_LENGTH)
            dir_buf.write(self.__bytes(tag, 'ascii', "tag", 3))
            dir_buf.write(f"{length:04d}{start:05d}".encode('ascii'))

        for field in record.control_fields:
            start = data_buf.tell()
            data_buf.write(self.__bytes(field.value, encoding, f"control field {field.tag}"))
            data_buf.write(FT)
            add_entry(field.tag, start)

        for field in record.data_fields:
            start = data_buf.tell()
            data_buf.write(self.__bytes(field.indicator1, encoding, f"indicator of {field.tag}", 1))
            data_buf.write(self.__bytes(field.indicator2, encoding, f"indicator of {field.tag}", 1))
            for subfield in field.subfields:
                data_buf.write(US)
                data_buf.write(self.__bytes(subfield.code, encoding, f"subfield code in {field.tag}", 1))
                data_buf.write(self.__bytes(subfield.value, encoding, f"subfield {field.tag}${subfield.code}"))
            data_buf.write(FT)
            add_entry(field.tag, start)

        dir_buf.write(FT)
        data_buf.write(RT)

        base_address = LEADER_LENGTH + dir_buf.tell()
        record_len = base_address + data_buf.tell()
        if record_len > MAX_RECORD_LENGTH:
            raise SizeOverflowError("record", record_len, MAX_RECORD_LENGTH)

        leader = f"{record_len:05d}{ldr[5:12]}{base_address:05d}{ldr[17:24]}"

        return self.__bytes(leader, 'latin-1', "leader") + dir_buf.getvalue() + data_buf.getvalue()


class MarcLineWriter(MarcWriter):
    """Writes records of the line dialect, each closed by a `^` line."""

    def __init__(self, f, encoding: str = 'utf-8') -> None:
        super().__init__(f)
        self.encoding = encoding

    @staticmethod
    def __check(value: str, what: str, forbidden: str = '\n') -> str:
        for ch in forbidden:
            if ch in value:
                raise EncodeError(f"{what} contains {ch!r}, which the line format cannot represent")
        # the reader drops a carriage return before a line break or delimiter
        if value.endswith('\r'):
            raise EncodeError(f"{what} ends with '\\r', which the line format cannot represent")
        return value

    @staticmethod
    def __tag(tag: str) -> str:
        if not (tag.isascii() and tag.isdigit()):
            raise EncodeError(f"tag {tag!r} is not 3 digits, which the line format requires")
        return tag

    def _serialize(self, record: Record) -> bytes:
        lines = []
        if record.leader is not None:
            lines.append(f"{LINE_TAG}000{self.__check(record.leader, 'leader')}")

        for field in record.control_fields:
            lines.append(f"{LINE_TAG}{self.__tag(field.tag)}{self.__check(field.value, f'control field {field.tag}')}")

        for field in record.data_fields:
            line = f"{LINE_TAG}{self.__tag(field.tag)}"
            for ind in (field.indicator1, field.indicator2):
                line += self.__check(ind, f"indicator of {field.tag}", '\r\n' + LINE_SUBFIELD)
            for subfield in field.subfields:
                code = self.__check(subfield.code, f"subfield code in {field.tag}", '\r\n')
                value = self.__check(subfield.value, f"subfield {field.tag}${code}", '\n' + LINE_SUBFIELD)
                line += f"{LINE_SUBFIELD}{code}{value}"
            lines.append(line)

        lines.append(LINE_TERMINATOR)
        return ('\n'.join(lines) + '\n').encode(self.encoding)


class MarcXmlWriter(MarcWriter):
    """Writes bare `record` elements; any enclosing collection is up to the caller.

    Characters XML 1.0 cannot carry, such as the ESC of MARC-8 escapes, are
    written as U+FFFD.
    """

    def __init__(self, f, indent: int | None = None, use_marc_namespace=False) -> None:
        super().__init__(f)
        self.indent = indent
        self.use_marc_namespace = use_marc_namespace

    def _serialize(self, record: Record) -> bytes:
        record_tag = ET.Element('record')
        if self.use_marc_namespace:
            record_tag.attrib['xmlns'] = MARCXML_NAMESPACE

        if record.leader is not None:
            leader_tag = ET.SubElement(record_tag, 'leader')
            leader_tag.text = _xml_text(record.leader)

        for field in record.control_fields:
            field_tag = ET.SubElement(record_tag, 'controlfield')
            field_tag.attrib['tag'] = _xml_text(field.tag)
            field_tag.text = _xml_text(field.value)

        for field in record.data_fields:
            field_tag = ET.SubElement(record_tag, 'datafield')
            field_tag.attrib['tag'] = _xml_text(field.tag)
            field_tag.attrib['ind1'] = _xml_text(field.indicator1)
            field_tag.attrib['ind2'] = _xml_text(field.indicator2)

            for subfield in field.subfields:
                subfield_tag = ET.SubElement(field_tag, 'subfield')
                subfield_tag.attrib['code'] = _xml_text(subfield.code)
                subfield_tag.text = _xml_text(subfield.value)

        if self.indent is not None:
            ET.indent(record_tag, space=' ' * self.indent)

        return (ET.tostring(record_tag, encoding='unicode') + '\n').encode('utf-8')


class MarcJsonWriter(MarcWriter):
    """Writes one MARC-in-JSON document per line."""

    def __init__(self, f, indent: int | None = None) -> None:
        super().__init__(f)
        self.indent = indent

    def _serialize(self, record: Record) -> bytes:
        return (json.dumps(record.as_dict(), indent=self.indent, ensure_ascii=False) + '\n').encode('utf-8')


class MarcYamlWriter(MarcWriter):
    """Writes one YAML document per record."""

    def __init__(self, f, indent: int | None = None) -> None:
        super().__init__(f)
        self.indent = indent

    def _serialize(self, record: Record) -> bytes:
        text = yaml.safe_dump(record.as_dict(), indent=self.indent, sort_keys=False,
                              allow_unicode=True, explicit_start=True)
        return text.encode('utf-8')
