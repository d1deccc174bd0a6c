"""Tokenizer for the line oriented MARC dialect (NORMARC style).

    *000     c
    *0010010463
    *008871001^^^^^^^^^^^^^^^^a^^^^^^^^^^0^nob^r
    *100 0$aKarlén, Barbro$d1954-
    ^

The dialect has no escapes, so `^` may occur as data inside fixed width
fields. Only a `^` at the start of a line ends a record. Input is pulled one
record at a time: the lexer reads to the next `^`, and when that `^` is not
preceded by a line break it reads on to the end of the line and looks again.
"""

from dataclasses import dataclass
from enum import Enum, auto

from marcconv.constants import LINE_SUBFIELD, LINE_TAG, LINE_TERMINATOR
from marcconv.stream import ByteSource


class TokenType(Enum):
    CTRL_TAG = auto()       # 3 digits starting with 00
    TAG = auto()            # 3 digit tag + 2 indicators
    SUBFIELD_CODE = auto()  # 1 char
    VALUE = auto()
    TERMINATOR = auto()
    EOF = auto()
    ERROR = auto()


class LexState(Enum):
    AWAITING_TOKEN = auto()
    CONTROL_FIELD = auto()
    DATA_FIELD = auto()
    SUBFIELD = auto()


@dataclass(frozen=True)
class Token:
    type: TokenType
    value: str = ''
    line: int = 0
    column: int = 0
    message: str = ''


_TERMINATOR = LINE_TERMINATOR.encode('ascii')


class LineLexer:
    def __init__(self, f, encoding: str = 'utf-8', chunk_size: int = 8192) -> None:
        self.__source = ByteSource(f, chunk_size)
        self.encoding = encoding
        self.state = LexState.AWAITING_TOKEN
        self.__input = ''
        self.__pos = 0
        self.__line = 1
        # index in __input where the current line starts; negative when the
        # line began in the previous record's input
        self.__line_start = 0

    def next_token(self) -> Token:
        while True:
            if self.__pos >= len(self.__input):
                match self.state:
                    case LexState.CONTROL_FIELD | LexState.SUBFIELD:
                        return self.__value('')
                    case LexState.DATA_FIELD:
                        self.state = LexState.AWAITING_TOKEN

                error = self.__fill()
                if error is not None:
                    return error
                if not self.__input:
                    return self.__token(TokenType.EOF, self.__pos)
                continue

            ch = self.__input[self.__pos]
            match self.state:
                case LexState.AWAITING_TOKEN:
                    tok = self.__lex_awaiting(ch)
                case LexState.CONTROL_FIELD:
                    tok = self.__value('\n')
                case LexState.DATA_FIELD:
                    tok = self.__lex_data_field(ch)
                case LexState.SUBFIELD:
                    tok = self.__value(LINE_SUBFIELD + '\n')

            if tok is not None:
                return tok

    def skip_record(self) -> None:
        """Discard what is left of the record currently being lexed."""
        rest = self.__input[self.__pos:]
        newlines = rest.count('\n')
        if newlines:
            self.__line += newlines
            self.__line_start = self.__input.rindex('\n') + 1
        self.__pos = len(self.__input)
        self.state = LexState.AWAITING_TOKEN

    def __lex_awaiting(self, ch: str) -> Token | None:
        match ch:
            case '\n':
                self.__newline()
                return None
            case '\r':
                self.__pos += 1
                return None
            case _ if ch == LINE_TERMINATOR:
                start = self.__pos
                self.__pos += 1
                return self.__token(TokenType.TERMINATOR, start)
            case _ if ch == LINE_TAG:
                return self.__lex_tag()
            case _ if ch == LINE_SUBFIELD:
                start = self.__pos
                self.__pos += 1
                return self.__error(start, 'subfield outside of a data field')
            case _:
                return self.__value(LINE_SUBFIELD + '\n')

    def __lex_tag(self) -> Token:
        self.__pos += 1
        start = self.__pos
        digits = self.__input[start:start + 3]
        if len(digits) < 3 or not (digits.isascii() and digits.isdigit()):
            return self.__error(start, 'non-digit tag', self.__skip_line(start))
        self.__pos += 3

        if digits.startswith('00'):
            self.state = LexState.CONTROL_FIELD
            return self.__token(TokenType.CTRL_TAG, start, digits)

        indicators = ''
        while len(indicators) < 2 and self.__pos < len(self.__input):
            ch = self.__input[self.__pos]
            if ch in '\r\n' or ch == LINE_SUBFIELD:
                break
            indicators += ch
            self.__pos += 1

        self.state = LexState.DATA_FIELD
        return self.__token(TokenType.TAG, start, digits + indicators.ljust(2))

    def __lex_data_field(self, ch: str) -> Token | None:
        match ch:
            case '\n':
                self.__newline()
                self.state = LexState.AWAITING_TOKEN
                return None
            case '\r':
                self.__pos += 1
                return None
            case _ if ch == LINE_SUBFIELD:
                start = self.__pos + 1
                code = self.__input[start:start + 1]
                if code == '' or code in '\r\n':
                    self.__pos += 1
                    return self.__error(start, 'missing subfield code')
                self.__pos += 2
                self.state = LexState.SUBFIELD
                return self.__token(TokenType.SUBFIELD_CODE, start, code)
            case _:
                start = self.__pos
                return self.__error(start, 'expected subfield delimiter', self.__skip_line(start))

    def __value(self, stops: str) -> Token:
        start = self.__pos
        while self.__pos < len(self.__input) and self.__input[self.__pos] not in stops:
            self.__pos += 1

        value = self.__input[start:self.__pos]
        if value.endswith('\r'):
            value = value[:-1]

        match self.state:
            case LexState.CONTROL_FIELD:
                self.state = LexState.AWAITING_TOKEN
            case LexState.SUBFIELD:
                self.state = LexState.DATA_FIELD
        return self.__token(TokenType.VALUE, start, value)

    def __newline(self) -> None:
        self.__pos += 1
        self.__line += 1
        self.__line_start = self.__pos

    def __skip_line(self, start: int) -> str:
        """Move to the end of the current line and return the text skipped."""
        end = self.__input.find('\n', start)
        if end < 0:
            end = len(self.__input)
        self.__pos = end
        return self.__input[start:end]

    def __token(self, typ: TokenType, start: int, value: str = '') -> Token:
        return Token(typ, value, self.__line, start - self.__line_start + 1)

    def __error(self, start: int, message: str, text: str = '') -> Token:
        return Token(TokenType.ERROR, text, self.__line, start - self.__line_start + 1, message)

    def __read_record(self) -> bytes:
        data = bytearray()
        while True:
            part = self.__source.read_until(_TERMINATOR)
            if not part:
                return bytes(data)
            data += part
            if not part.endswith(_TERMINATOR):
                return bytes(data)
            if len(data) == 1 or data[-2:-1] == b'\n':
                return bytes(data)
            # literal ^ inside a line
            data += self.__source.read_until(b'\n')

    def __fill(self) -> Token | None:
        carried = len(self.__input) - self.__line_start
        raw = self.__read_record()
        self.__pos = 0
        self.__line_start = -carried

        try:
            self.__input = raw.decode(self.encoding)
        except UnicodeDecodeError as e:
            head = raw[:e.start]
            line = self.__line + head.count(b'\n')
            nl = head.rfind(b'\n')
            column = len(head) - nl if nl >= 0 else len(head) + carried + 1
            self.__input = ''
            self.__line += raw.count(b'\n')
            tail_nl = raw.rfind(b'\n')
            self.__line_start = -(len(raw) - tail_nl - 1) if tail_nl >= 0 else -(len(raw) + carried)
            return Token(TokenType.ERROR, raw[e.start:e.end].hex(), line, column, f"invalid {self.encoding} encoding")
        return None
