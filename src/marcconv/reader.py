import logging
import xml.etree.ElementTree as ET
from abc import ABC, abstractmethod
from collections import deque
from typing import Iterator

from marcconv.constants import (DIRECTORY_ENTRY_LENGTH, FT, LEADER_LENGTH, RT, US)
from marcconv.errors import (InvalidEncodingError, LengthMismatchError, LexError,
                             NonNumericFieldError, OutOfBoundsError, TruncatedError,
                             XMLStructuralError)
from marcconv.lexer import LineLexer, Token, TokenType
from marcconv.marc import DataField, Leader, Record
from marcconv.stream import ByteSource

logger = logging.getLogger(__name__)


class MarcReader(ABC):
    """A decoder over one binary stream. Not safe to share between callers."""

    @abstractmethod
    def decode(self) -> Record | None:
        """Decode the next record, or return None at end of stream."""

    def decode_all(self) -> list[Record]:
        """Decode every remaining record. Holds the whole collection in memory."""
        return list(self)

    def __iter__(self) -> Iterator[Record]:
        while True:
            record = self.decode()
            if record is None:
                return
            yield record


class MarcStreamReader(MarcReader):
    """Reads ISO2709 records."""

    def __init__(self, f, encoding: str | None = None, chunk_size: int = 8192) -> None:
        self.__source = ByteSource(f, chunk_size)
        # None picks the encoding per record from leader/09
        self.encoding = encoding
        self.__record_encoding = encoding or 'utf-8'
        self.__offset = 0

    def __text(self, data: bytes, what: str) -> str:
        try:
            return data.decode(self.__record_encoding)
        except UnicodeDecodeError as e:
            raise InvalidEncodingError(f"{what} is not valid {self.__record_encoding}: {e}") from e

    def __number(self, rec: bytes, start: int, end: int, name: str) -> int:
        raw = rec[start:end]
        if len(raw) != end - start or not raw.isdigit():
            raise NonNumericFieldError(name, raw.decode('latin-1'), self.__offset + start)
        return int(raw)

    def __parse_data_field(self, record: Record, tag: str, content: bytes) -> DataField:
        field = record.add_data_field(tag,
                                      self.__text(content[0:1], f"indicator of {tag}"),
                                      self.__text(content[1:2], f"indicator of {tag}"))

        for chunk in content[2:].split(US):
            if len(chunk) > 1:
                field.add_subfield(self.__text(chunk[:1], f"subfield code in {tag}"),
                                   self.__text(chunk[1:], f"subfield of {tag}"))

        return field

    def __parse_record(self, rec: bytes) -> Record:
        leader = Leader(rec[:LEADER_LENGTH].decode('latin-1'))
        size = leader.record_length
        if size != len(rec):
            raise LengthMismatchError(size, len(rec))

        base = leader.base_address_of_data
        if base > size or base < LEADER_LENGTH + 1:
            raise OutOfBoundsError(f"base address of data {base} outside record of {size} bytes")
        if rec[base - 1:base] != FT:
            raise OutOfBoundsError(f"directory is not terminated at base address {base}")

        record = Record(leader.raw)
        self.__record_encoding = self.encoding or Leader.text_encoding(leader.raw)

        p = LEADER_LENGTH
        while p < base - 1:
            if p + DIRECTORY_ENTRY_LENGTH > base - 1:
                raise OutOfBoundsError(f"directory entry at offset {p} overruns the base address {base}")

            tag = rec[p:p + 3].decode('latin-1')
            length = self.__number(rec, p + 3, p + 7, f"length of directory entry {tag}")
            start = self.__number(rec, p + 7, p + 12, f"start of directory entry {tag}")

            # last byte of the span is the field terminator
            end = base + start + length - 1
            if length < 1 or end >= size or rec[end:end + 1] != FT:
                raise OutOfBoundsError(f"field {tag} (start {start}, length {length}) "
                                       f"does not end on a field terminator within {size} bytes")

            content = rec[base + start:end]
            if tag.startswith('00'):
                record.add_control_field(tag, self.__text(content, f"control field {tag}"))
            else:
                self.__parse_data_field(record, tag, content)

            p += DIRECTORY_ENTRY_LENGTH

        return record

    def decode(self) -> Record | None:
        rec = self.__source.read_until(RT)
        if not rec.endswith(RT):
            if not rec.strip():
                return None
            raise TruncatedError(f"record at offset {self.__offset} ends after {len(rec)} bytes without a record terminator")

        try:
            if len(rec) - 1 < LEADER_LENGTH:
                raise TruncatedError(f"record at offset {self.__offset} is {len(rec)} bytes, shorter than a leader")
            record = self.__parse_record(rec)
        finally:
            self.__offset += len(rec)

        logger.debug("decoded ISO2709 record of %d bytes", len(rec))
        return record


class MarcLineReader(MarcReader):
    """Reads records of the line dialect, one per `^` terminator."""

    def __init__(self, f, encoding: str = 'utf-8', chunk_size: int = 8192) -> None:
        self.__lexer = LineLexer(f, encoding, chunk_size)

    def __fail(self, tok: Token, message: str) -> LexError:
        self.__lexer.skip_record()
        return LexError(message, tok.line, tok.column, tok.value)

    def __expect_value(self) -> str:
        tok = self.__lexer.next_token()
        if tok.type is not TokenType.VALUE:
            raise self.__fail(tok, f"expected value, got {tok.type.name}")
        return tok.value

    def decode(self) -> Record | None:
        record: Record | None = None
        field: DataField | None = None

        while True:
            tok = self.__lexer.next_token()

            match tok.type:
                case TokenType.CTRL_TAG:
                    value = self.__expect_value()
                    if record is None:
                        record = Record()
                    if tok.value == '000':
                        record.leader = Leader.from_partial(value)
                    else:
                        record.add_control_field(tok.value, value)
                    field = None
                case TokenType.TAG:
                    if record is None:
                        record = Record()
                    field = record.add_data_field(tok.value[:3], tok.value[3], tok.value[4])
                case TokenType.SUBFIELD_CODE:
                    if field is None:
                        raise self.__fail(tok, "subfield outside of a data field")
                    field.add_subfield(tok.value, self.__expect_value())
                case TokenType.VALUE:
                    raise self.__fail(tok, "value outside of a field")
                case TokenType.TERMINATOR:
                    logger.debug("decoded line record ending at line %d", tok.line)
                    return record if record is not None else Record()
                case TokenType.EOF:
                    if record is not None:
                        logger.warning("line record at end of stream has no terminator")
                    return record
                case TokenType.ERROR:
                    raise self.__fail(tok, tok.message)


def _local_name(tag: str) -> str:
    return tag.rsplit('}', 1)[-1]


def _find(elem: ET.Element, name: str) -> ET.Element | None:
    for child in elem:
        if _local_name(child.tag) == name:
            return child
    return None


def _findall(elem: ET.Element, name: str) -> list[ET.Element]:
    return [child for child in elem if _local_name(child.tag) == name]


class MarcXmlReader(MarcReader):
    """Pulls `record` elements out of a MARCXML stream one at a time.

    Elements of a record are dropped from the tree as soon as the record is
    decoded, so collections of any size can be read.
    """

    def __init__(self, f, chunk_size: int = 65536) -> None:
        self.f = f
        self.chunk_size = chunk_size
        self.__parser = ET.XMLPullParser(events=('start', 'end'))
        self.__stack: list[ET.Element] = []
        self.__records: deque[Record] = deque()
        self.__depth = 0  # nesting inside the current record element
        self.__started = False
        self.__done = False

    def __next(self, elem: ET.Element) -> Record:
        leader_tag = _find(elem, 'leader')
        record = Record(leader_tag.text if leader_tag is not None and leader_tag.text else None)

        for ctrl_field_tag in _findall(elem, 'controlfield'):
            record.add_control_field(ctrl_field_tag.get('tag', ''), ctrl_field_tag.text or '')

        for data_field_tag in _findall(elem, 'datafield'):
            field = record.add_data_field(data_field_tag.get('tag', ''),
                                          data_field_tag.get('ind1'),
                                          data_field_tag.get('ind2'))

            for subfield_tag in _findall(data_field_tag, 'subfield'):
                field.add_subfield(subfield_tag.get('code', ''), subfield_tag.text or '')

        return record

    def __handle(self, event: str, elem: ET.Element) -> None:
        if event == 'start':
            self.__started = True
            if self.__depth > 0 or _local_name(elem.tag) == 'record':
                self.__depth += 1
            self.__stack.append(elem)
            return

        self.__stack.pop()
        if self.__depth == 0:
            return
        self.__depth -= 1
        if self.__depth == 0:
            self.__records.append(self.__next(elem))
            if self.__stack:
                self.__stack[-1].remove(elem)
            elem.clear()

    def __pull(self) -> None:
        # feed queues parse errors behind the events that preceded them
        try:
            for event, elem in self.__parser.read_events():
                self.__handle(event, elem)
        except ET.ParseError as e:
            self.__done = True
            raise XMLStructuralError(str(e), *e.position) from e

    def decode(self) -> Record | None:
        while not self.__records:
            if self.__done:
                return None

            data = self.f.read(self.chunk_size)
            try:
                if data:
                    self.__parser.feed(data)
                else:
                    self.__done = True
                    if self.__started:
                        self.__parser.close()
            except ET.ParseError as e:
                self.__done = True
                raise XMLStructuralError(str(e), *e.position) from e
            self.__pull()

        logger.debug("decoded MARCXML record")
        return self.__records.popleft()
