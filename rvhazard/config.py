# config.py
# Build-time configuration shared by the boot sequencer, sequences and checkers.

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional, Tuple

from .errors import ConfigError

HALT_IDIOMS = ("self-loop", "nop-loop")
DATA_WINDOW = 0x100   # bytes of load/store scratch data just below the stack top


@dataclass(frozen=True)
class Config:
    """Target conventions for one test suite.

    stack_top defaults to the end of memory (base + mem_size).
    """
    base: int = 0x0
    mem_size: int = 0x2000
    stack_top: Optional[int] = None
    result_reg: int = 31
    sp_reg: int = 2
    halt: str = "self-loop"
    entry_label: str = "main"
    scratch: Tuple[int, int] = field(default=(28, 29))

    def __post_init__(self):
        if self.stack_top is None:
            object.__setattr__(self, "stack_top", self.base + self.mem_size)
        self.validate()

    @property
    def mem_end(self) -> int:
        return self.base + self.mem_size

    @property
    def data_base(self) -> int:
        return self.stack_top - DATA_WINDOW

    def validate(self):
        if self.base < 0 or self.base % 4:
            raise ConfigError(f"load address 0x{self.base:x} must be non-negative and word aligned")
        if self.mem_size <= 0 or self.mem_size % 4:
            raise ConfigError(f"memory size {self.mem_size} must be a positive multiple of 4")
        if not self.base < self.stack_top <= self.mem_end:
            raise ConfigError(f"stack top 0x{self.stack_top:x} outside memory "
                              f"[0x{self.base:x}, 0x{self.mem_end:x}]")
        if self.stack_top % 16:
            raise ConfigError(f"stack top 0x{self.stack_top:x} must be 16-byte aligned")
        for name in ("result_reg", "sp_reg"):
            r = getattr(self, name)
            if not 1 <= r <= 31:
                raise ConfigError(f"{name}=x{r} must name a writable register (x1..x31)")
        if self.result_reg == self.sp_reg:
            raise ConfigError(f"result register x{self.result_reg} collides with the stack pointer")
        if self.halt not in HALT_IDIOMS:
            raise ConfigError(f"unknown halt idiom '{self.halt}' (choose from {', '.join(HALT_IDIOMS)})")
        if not self.entry_label:
            raise ConfigError("entry label must not be empty")
        if len(self.scratch) != 2 or len(set(self.scratch)) != 2:
            raise ConfigError(f"need two distinct scratch registers, got {self.scratch}")
        for r in self.scratch:
            if not 1 <= r <= 31 or r in (self.result_reg, self.sp_reg):
                raise ConfigError(f"scratch register x{r} must be x1..x31 and not the result or stack register")

    @classmethod
    def from_args(cls, args) -> "Config":
        """Build from parsed CLI arguments; unset options keep their defaults."""
        changes = {}
        for name in ("base", "mem_size", "stack_top", "result_reg", "halt", "entry_label"):
            v = getattr(args, name, None)
            if v is not None:
                changes[name] = v
        return cls(**changes)
