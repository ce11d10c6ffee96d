"""
Captured stream buffering for pipeproc

Accumulates the raw bytes drained from a child's output pipe and hands them
out as text.
"""

import codecs


class StreamBuffer:
    """Byte accumulator for one captured output stream.
    
    Undecodable bytes are kept as lone surrogates (``surrogateescape``), so
    ``text.encode(encoding, "surrogateescape")`` gives back exactly what the
    child wrote.
    
    The buffer holds no lock of its own: a process handle drains stdout and
    stderr together, so both of its buffers are guarded by the handle's lock.
    """
    
    def __init__(self, encoding: str = "utf-8", errors: str = "surrogateescape"):
        self.encoding = encoding
        self.errors = errors
        self._data = bytearray()
        self._decoder = codecs.getincrementaldecoder(encoding)(errors=errors)
    
    def append(self, data: bytes) -> None:
        """Add drained bytes to the buffer"""
        if data:
            self._data.extend(data)
    
    def take(self, final: bool = False) -> str:
        """Return the accumulated text and clear the buffer.
        
        Bytes of an incomplete multi-byte sequence stay in the decoder until
        the rest arrives, unless ``final`` is set.
        """
        data = bytes(self._data)
        self._data.clear()
        return self._decoder.decode(data, final=final)
    
    def take_bytes(self) -> bytes:
        """Return the accumulated raw bytes and clear the buffer.
        
        Bytes held back by the decoder for an unfinished character are
        returned first.
        """
        held, _ = self._decoder.getstate()
        self._decoder.reset()
        data = bytes(held) + bytes(self._data)
        self._data.clear()
        return data
    
    @property
    def pending(self) -> int:
        """Number of bytes waiting to be taken"""
        return len(self._data)
