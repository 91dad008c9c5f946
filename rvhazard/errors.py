# errors.py
# Construction-time error taxonomy for encoding, sequences and configuration.

from __future__ import annotations
from typing import Optional


class EncodingError(ValueError):
    """Raised while turning instructions into machine words."""

    def __init__(self, msg: str, field: Optional[str] = None,
                 value: Optional[object] = None, index: Optional[int] = None):
        super().__init__(msg)
        self.msg = msg
        self.field = field
        self.value = value
        self.index = index

    def __str__(self):
        where = f"insn #{self.index}: " if self.index is not None else ""
        return where + self.msg


class FieldOverflow(EncodingError):
    pass

class InvalidRegister(EncodingError):
    pass

class UnresolvedLabel(EncodingError):
    pass

class Misaligned(EncodingError):
    pass

class UnknownMnemonic(EncodingError):
    pass

class ImageOverflow(EncodingError):
    pass


class SequenceError(ValueError):
    """Raised when a test sequence is structurally invalid."""

    def __init__(self, msg: str, sequence: Optional[str] = None,
                 index: Optional[int] = None):
        super().__init__(msg)
        self.msg = msg
        self.sequence = sequence
        self.index = index

    def __str__(self):
        parts = []
        if self.sequence:
            parts.append(f"sequence '{self.sequence}'")
        if self.index is not None:
            parts.append(f"item #{self.index}")
        prefix = ", ".join(parts)
        return f"{prefix}: {self.msg}" if prefix else self.msg


class DuplicateLabel(SequenceError):
    pass

class UnreachableTerminal(SequenceError):
    pass

class InvalidExpectation(SequenceError):
    pass


class ConfigError(ValueError):
    pass


class ExecutionError(RuntimeError):
    """Raised by the reference executor."""

    def __init__(self, msg: str, pc: Optional[int] = None):
        super().__init__(msg)
        self.msg = msg
        self.pc = pc

    def __str__(self):
        return f"PC={self.pc:08x}: {self.msg}" if self.pc is not None else self.msg
