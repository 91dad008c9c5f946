# patterns.py
# Construction helpers for the hazard categories.  Each helper appends
# instructions to a Seq and records the register values they must produce.

from __future__ import annotations
from typing import Optional, Sequence, Union

from .errors import InvalidExpectation
from .insn import Raw
from .isa import M64, raw_semantics, u64, zba
from .result import Category, Kind
from .sequence import Seq


def _uniq(s: Seq, stem: str) -> str:
    return f"{stem}_{len(s.items)}"

def data_addr(s: Seq, slot: int = 0) -> int:
    """A doubleword in the data window just below the stack top."""
    return s.cfg.data_base + 8 * slot

def _distinct(s: Seq, what: str, **regs: int):
    seen = {}
    for name, r in regs.items():
        if r in seen:
            raise InvalidExpectation(f"{what}: {name} and {seen[r]} are both x{r}", s.name)
        seen[r] = name


def load_use(s: Seq, value: int, addr: Optional[int] = None,
             addr_reg: int = 1, dst: int = 2, use: int = 3):
    """ld dst,0(addr_reg) immediately consumed by add use,dst,addr_reg.

    dst is overwritten with a different value right before the load, so a
    missing stall/forward is visible in `use`.
    """
    _distinct(s, "load-use", dst=dst, addr_reg=addr_reg)
    if addr is None:
        addr = data_addr(s)
    if addr % 8:
        raise InvalidExpectation(f"load-use address 0x{addr:x} must be doubleword aligned", s.name)
    s.li(addr_reg, addr)
    s.li(dst, value)
    s.sd(dst, addr_reg, 0)
    s.addi(dst, 0, 0 if u64(value) == M64 else -1)
    s.ld(dst, addr_reg, 0)
    s.add(use, dst, addr_reg)
    s.expect(use, u64(value + addr), Category.LOAD_USE,
             note=f"ld x{dst},0(x{addr_reg}); add x{use},x{dst},x{addr_reg}")


def load_branch(s: Seq, value: int, out: int, addr: Optional[int] = None,
                addr_reg: int = 1, dst: int = 2, cmp: int = 4):
    """Loaded value feeds a branch on the very next instruction."""
    _distinct(s, "load-branch", addr_reg=addr_reg, dst=dst, cmp=cmp)
    if addr is None:
        addr = data_addr(s, 1)
    ok, end = _uniq(s, "ldbr_ok"), _uniq(s, "ldbr_end")
    s.li(addr_reg, addr)
    s.li(cmp, value)
    s.sd(cmp, addr_reg, 0)
    s.ld(dst, addr_reg, 0)
    s.beq(dst, cmp, ok)
    s.addi(out, 0, 0x0BD)
    s.j(end)
    s.label(ok)
    s.addi(out, 0, 0x600)
    s.label(end)
    s.expect(out, 0x600, Category.LOAD_USE, note="load feeding beq")


def control_flush(s: Seq, shadows: Sequence[int] = (10, 11), leak_from: Optional[int] = None,
                  via: str = "branch"):
    """Taken branch/jump with one shadow write per register right behind it.

    Shadows before index `leak_from` are expected to keep their pre-branch
    value (RETAIN); from `leak_from` on they are expected to be corrupted
    by a pipeline that flushes too few slots (LEAK).
    """
    if via not in ("branch", "jal"):
        raise ValueError(f"unknown control transfer '{via}'")
    target = _uniq(s, "flush")
    pre = [0x10 * (i + 1) for i in range(len(shadows))]
    for r, v in zip(shadows, pre):
        s.addi(r, 0, v)
    if via == "branch":
        s.beq(0, 0, target)
    else:
        s.jal(0, target)
    for i, r in enumerate(shadows):
        s.addi(r, 0, -(i + 1))
    s.label(target)
    for i, (r, v) in enumerate(zip(shadows, pre)):
        if leak_from is not None and i >= leak_from:
            s.expect(r, -(i + 1), Category.CONTROL_FLUSH, Kind.LEAK,
                     note=f"shadow {i + 1} will leak")
        else:
            s.expect(r, v, Category.CONTROL_FLUSH, Kind.RETAIN,
                     note=f"shadow {i + 1} flushed")


def forwarding_priority(s: Seq, reg: int, values: Sequence[int], reader: int, gap: int = 0):
    """Back-to-back writes to reg, then a read: the youngest write wins.

    Writes are single addi instructions so they stay adjacent; each value
    must fit a 12-bit signed immediate.
    """
    if not values:
        raise ValueError("need at least one write")
    for v in values:
        s.addi(reg, 0, v)
    for _ in range(gap):
        s.nop()
    s.addi(reader, reg, 0)
    s.expect(reader, values[-1], Category.FORWARDING,
             note=f"youngest of {len(values)} writes to x{reg}, read after {gap} nop(s)")


def extension_op(s: Seq, op: Union[str, Raw], a: int, b: int,
                 rd: int = 9, rs1: int = 5, rs2: int = 6, expected: Optional[int] = None):
    """Execute one raw-form instruction and check only its destination."""
    raw = zba(op, rd, rs1, rs2) if isinstance(op, str) else op
    _distinct(s, "extension op", rs1=raw.rs1, rs2=raw.rs2)
    if expected is None:
        fn = raw_semantics(raw)
        if fn is None:
            raise InvalidExpectation(f"no known result for {raw}; pass expected=", s.name)
        expected = fn(u64(a), u64(b))
    s.li(raw.rs1, a)
    s.li(raw.rs2, b)
    s.emit(raw)
    s.expect(raw.rd, u64(expected), Category.EXTENSION, note=str(raw))
