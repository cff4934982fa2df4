"""
Copyright (c) Microsoft Corporation.
Licensed under the MIT license.
This module converts text between Python strings and the fixed-size character
buffers used by the ODBC driver manager, and provides NativeBuffer, a bounded
buffer that travels together with its length/NULL indicator.
"""

import codecs
import ctypes
from typing import List, Optional, Union

from omnidb_python.constants import ConstantsODBC

# Buffer caps in bytes
IDENTIFIER_CAP = 256
REMARKS_CAP = 1024
TEXT_CAP = 4096
GENERIC_TEXT_CAP = 8192

SQLLEN = ctypes.c_ssize_t

_SCALAR_STORAGE = {
    ConstantsODBC.SQL_C_DOUBLE.value: ctypes.c_double,
    ConstantsODBC.SQL_C_SSHORT.value: ctypes.c_short,
    ConstantsODBC.SQL_C_SLONG.value: ctypes.c_int32,
    ConstantsODBC.SQL_C_SBIGINT.value: ctypes.c_int64,
    ConstantsODBC.SQL_C_STINYINT.value: ctypes.c_int8,
}

_TEXT_C_TYPES = (ConstantsODBC.SQL_C_CHAR.value, ConstantsODBC.SQL_C_WCHAR.value)


def char_width(encoding: str) -> int:
    """Size in bytes of one code unit (and of the terminator) for encoding."""
    name = codecs.lookup(encoding).name
    if name.startswith("utf-16"):
        return 2
    if name.startswith("utf-32"):
        return 4
    return 1


def _decode(data: bytes, encoding: str, final: bool = True) -> str:
    # A non-final decode drops an incomplete trailing sequence instead of
    # turning it into a replacement character.
    decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
    return decoder.decode(data, final=final)


def _until_terminator(data: bytes, unit: int) -> bytes:
    terminator = b"\0" * unit
    for offset in range(0, len(data) - unit + 1, unit):
        if data[offset:offset + unit] == terminator:
            return data[:offset]
    return data


def to_native(text: str, encoding: str = "utf-8") -> ctypes.Array:
    """
    Encode text into a NUL-terminated native character buffer.

    Args:
        text: The string to encode.
        encoding: Narrow encoding, or a UTF-16/UTF-32 encoding for the wide API.

    Returns:
        A ctypes char array holding the encoded text and its terminator.
    """
    data = text.encode(encoding) + b"\0" * char_width(encoding)
    return ctypes.create_string_buffer(data, len(data))


def from_native(raw: bytes, declared_length: Optional[int], encoding: str = "utf-8") -> str:
    """
    Decode a native character buffer.

    Args:
        raw: The whole buffer as returned by the driver.
        declared_length: Length in bytes reported by the driver. None or a
            non-positive value (NULL, no data) decodes to "".
        encoding: Encoding the buffer was filled with.

    Returns:
        The decoded text, cut at the buffer cap when the driver reported more
        data than the buffer could hold.
    """
    if declared_length is None or declared_length <= 0:
        return ""
    unit = char_width(encoding)
    limit = max(len(raw) - unit, 0)
    truncated = declared_length > limit
    length = min(declared_length, limit)
    length -= length % unit
    data = _until_terminator(raw[:length], unit)
    return _decode(data, encoding, final=not truncated)


def trim_padding(text: Optional[str]) -> str:
    """Strip blank and NUL padding from a fixed-width text field."""
    if not text:
        return ""
    return text.strip(" \t\r\n\x00")


def split_attribute_list(raw: bytes, declared_length: Optional[int], encoding: str = "utf-8") -> List[str]:
    """
    Split a NUL separated key=value list (as returned by SQLDrivers) into items.
    """
    if declared_length is None or declared_length <= 0:
        return []
    unit = char_width(encoding)
    length = min(declared_length, len(raw))
    length -= length % unit
    text = _decode(raw[:length], encoding, final=False)
    return [item for item in text.split("\0") if item]


class NativeBuffer:
    """
    A bounded retrieval buffer paired with its length/NULL indicator.

    One instance is handed to SQLGetData (or any call that fills a buffer
    plus an indicator); value() then reads both together, so a NULL or a
    truncated value can never surface stale buffer content.
    """

    def __init__(self, c_type: int, capacity: int = 0, encoding: str = "utf-8") -> None:
        self.c_type = c_type
        self.encoding = encoding
        scalar = _SCALAR_STORAGE.get(c_type)
        if scalar is not None:
            self._storage = scalar()
        elif c_type in _TEXT_C_TYPES:
            if capacity <= 0:
                raise ValueError("Text buffers need a positive capacity")
            self._storage = ctypes.create_string_buffer(capacity)
        else:
            raise ValueError(f"Unsupported C type for NativeBuffer: {c_type}")
        self.indicator = SQLLEN(0)

    @property
    def is_text(self) -> bool:
        return self.c_type in _TEXT_C_TYPES

    @property
    def capacity(self) -> int:
        """Buffer size in bytes, terminator included."""
        return ctypes.sizeof(self._storage)

    @property
    def storage(self):
        """The underlying ctypes object the driver writes into."""
        return self._storage

    def target(self):
        return ctypes.byref(self._storage)

    def indicator_ref(self):
        return ctypes.byref(self.indicator)

    def reset(self) -> None:
        """Zero the buffer and the indicator before the next native call."""
        ctypes.memset(ctypes.addressof(self._storage), 0, self.capacity)
        self.indicator.value = 0

    @property
    def is_null(self) -> bool:
        return self.indicator.value == ConstantsODBC.SQL_NULL_DATA.value

    @property
    def truncated(self) -> bool:
        if not self.is_text or self.is_null:
            return False
        length = self.indicator.value
        if length == ConstantsODBC.SQL_NO_TOTAL.value:
            return True
        return length > self.capacity - char_width(self.encoding)

    def value(self) -> Union[None, str, int, float]:
        """Decoded value: None for NULL, str for text, int/float otherwise."""
        if self.is_null:
            return None
        if not self.is_text:
            return self._storage.value
        length = self.indicator.value
        if length == ConstantsODBC.SQL_NO_TOTAL.value:
            length = self.capacity
        return from_native(self._storage.raw, length, self.encoding)
