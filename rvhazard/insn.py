# insn.py
# Instruction values: standard ops, raw bit-field forms, labels and the terminal.

from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple, Union

from .errors import FieldOverflow, InvalidRegister

# -------------------------
# Field checks
# -------------------------
def check_reg(r, field: str = "reg") -> int:
    if isinstance(r, bool) or not isinstance(r, int) or not 0 <= r <= 31:
        raise InvalidRegister(f"{field}={r!r} is not a register in x0..x31", field, r)
    return r

def check_uimm(v: int, bits: int, field: str) -> int:
    if not 0 <= v < (1 << bits):
        raise FieldOverflow(f"{field}={v:#x} does not fit in {bits} unsigned bits", field, v)
    return v

def check_simm(v: int, bits: int, field: str) -> int:
    lo, hi = -(1 << (bits - 1)), (1 << (bits - 1)) - 1
    if not lo <= v <= hi:
        raise FieldOverflow(f"{field}={v} outside signed {bits}-bit range [{lo}, {hi}]", field, v)
    return v

def x(r: int) -> str:
    return f"x{r}"


# -------------------------
# Instruction variants
# -------------------------
@dataclass(frozen=True)
class Op:
    """Standard form: mnemonic plus operands in assembler order.

    Branch and jump targets are label names; decoded words carry
    numeric byte offsets instead.
    """
    mnemonic: str
    operands: Tuple[Union[int, str], ...] = ()

    def __str__(self):
        from .isa import disasm_op
        return disasm_op(self)


@dataclass(frozen=True)
class Raw:
    """R-type bit fields for an operation with no mnemonic."""
    opcode: int
    funct3: int
    funct7: int
    rd: int
    rs1: int
    rs2: int

    def __post_init__(self):
        check_uimm(self.opcode, 7, "opcode")
        check_uimm(self.funct3, 3, "funct3")
        check_uimm(self.funct7, 7, "funct7")
        check_reg(self.rd, "rd")
        check_reg(self.rs1, "rs1")
        check_reg(self.rs2, "rs2")

    def __str__(self):
        return (f".insn r 0x{self.opcode:x}, 0x{self.funct3:x}, 0x{self.funct7:x}, "
                f"{x(self.rd)}, {x(self.rs1)}, {x(self.rs2)}")


@dataclass(frozen=True)
class Label:
    name: str

    def __str__(self):
        return f"{self.name}:"


@dataclass(frozen=True)
class Terminal:
    """End of meaningful execution; assembled as the configured halt idiom."""

    def __str__(self):
        return "<terminal>"


Instruction = Union[Op, Raw]
Item = Union[Op, Raw, Label, Terminal]
