"""
Scoped holders for seeds and private keys.

Python cannot guarantee that no copy of a secret survives (bytes objects are
immutable and may be interned or copied by libraries), but keeping the
canonical copy in a bytearray that is zeroed on exit bounds how long it
lives in our own buffers.
"""

from __future__ import annotations

from types import TracebackType


class SecretBytes:
    """Mutable secret buffer that is zeroed by ``wipe()`` or on context exit."""

    __slots__ = ("_buf",)

    def __init__(self, data: bytes | bytearray):
        self._buf = bytearray(data)

    def __enter__(self) -> SecretBytes:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.wipe()

    def __len__(self) -> int:
        return len(self._buf)

    def __repr__(self) -> str:
        state = "wiped" if self.wiped else f"{len(self._buf)} bytes"
        return f"SecretBytes(<{state}>)"

    __str__ = __repr__

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SecretBytes):
            return self._buf == other._buf
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    @property
    def wiped(self) -> bool:
        return not self._buf

    def reveal(self) -> bytes:
        """Return an immutable copy for APIs that require ``bytes``."""
        if self.wiped:
            raise ValueError("Secret has been wiped")
        return bytes(self._buf)

    def wipe(self) -> None:
        for i in range(len(self._buf)):
            self._buf[i] = 0
        self._buf.clear()
