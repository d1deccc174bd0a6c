import io


class ByteSource:
    """Buffered reader over a binary stream that hands out delimited chunks.

    Only the bytes of the chunk being assembled plus one read of lookahead
    are held in memory.
    """

    def __init__(self, f: io.RawIOBase | io.BufferedIOBase, chunk_size: int = 8192) -> None:
        self.f = f
        self.chunk_size = chunk_size
        self.__buf = bytearray()
        self.__eof = False

    def read_until(self, delim: bytes) -> bytes:
        """Return bytes up to and including `delim`.

        At end of stream the remaining bytes are returned without the
        delimiter, and an empty result means nothing was left.
        """
        start = 0
        while True:
            idx = self.__buf.find(delim, start)
            if idx >= 0:
                end = idx + len(delim)
                res = bytes(self.__buf[:end])
                del self.__buf[:end]
                return res

            if self.__eof:
                res = bytes(self.__buf)
                self.__buf.clear()
                return res

            start = max(0, len(self.__buf) - len(delim) + 1)
            chunk = self.f.read(self.chunk_size)
            if not chunk:
                self.__eof = True
            else:
                self.__buf += chunk
