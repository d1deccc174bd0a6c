class MarcError(Exception):
    """Base class for every failure raised by the codecs."""


class FormatUnknownError(MarcError):
    pass


class TruncatedError(MarcError):
    pass


class LengthMismatchError(MarcError):
    def __init__(self, declared: int, actual: int) -> None:
        super().__init__(f"leader reports size {declared}; actual size is {actual}")
        self.declared = declared
        self.actual = actual


class NonNumericFieldError(MarcError):
    def __init__(self, name: str, raw: str, offset: int) -> None:
        super().__init__(f"{name} at offset {offset} is not a number: {raw!r}")
        self.name = name
        self.raw = raw
        self.offset = offset


class OutOfBoundsError(MarcError):
    pass


class LexError(MarcError):
    def __init__(self, message: str, line: int, column: int, text: str = "") -> None:
        super().__init__(f"{line}:{column}: {message}" + (f": {text!r}" if text else ""))
        self.message = message
        self.line = line
        self.column = column
        self.text = text


class EncodeError(MarcError):
    pass


class SizeOverflowError(EncodeError):
    def __init__(self, what: str, size: int, limit: int) -> None:
        super().__init__(f"{what} of {size} bytes exceeds the maximum of {limit}")
        self.size = size
        self.limit = limit


class XMLStructuralError(MarcError):
    def __init__(self, message: str, line: int = 0, column: int = 0) -> None:
        super().__init__(message)
        self.line = line
        self.column = column


class InvalidEncodingError(MarcError):
    pass


class InvalidFieldError(MarcError, ValueError):
    pass
