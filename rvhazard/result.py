# result.py
# Result protocol: the PASS sentinel, per-register expectations, and the
# comparison of a final register file against them.

from __future__ import annotations
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import InvalidExpectation
from .isa import M64, u64

PASS = 0x7FF


class Kind(Enum):
    EXACT = "exact"
    RETAIN = "retain"   # shadow register keeps its pre-branch value
    LEAK = "leak"       # shadow write expected to escape a deficient flush


class Category(Enum):
    LOAD_USE = "load-use"
    CONTROL_FLUSH = "control-flush"
    FORWARDING = "forwarding"
    EXTENSION = "extension"
    RESULT = "result"
    GENERAL = "general"


@dataclass(frozen=True)
class Expectation:
    reg: int
    value: int
    kind: Kind = Kind.EXACT
    category: Category = Category.GENERAL
    note: str = ""

    def __post_init__(self):
        if isinstance(self.reg, bool) or not isinstance(self.reg, int) or not 1 <= self.reg <= 31:
            raise InvalidExpectation(f"cannot expect a value in x{self.reg}; only x1..x31 hold values")
        if not -(1 << 63) <= self.value <= M64:
            raise InvalidExpectation(f"expected value {self.value:#x} for x{self.reg} does not fit in 64 bits")
        object.__setattr__(self, "value", u64(self.value))

    def __str__(self):
        s = f"x{self.reg:02d} = 0x{self.value:016x}  [{self.category.value}/{self.kind.value}]"
        return f"{s}  {self.note}" if self.note else s


@dataclass(frozen=True)
class Finding:
    expectation: Expectation
    actual: Optional[int]
    ok: bool

    def __str__(self):
        e = self.expectation
        got = "missing" if self.actual is None else f"0x{self.actual:016x}"
        status = "ok  " if self.ok else "FAIL"
        return (f"{status} x{e.reg:02d} expected 0x{e.value:016x} got {got} "
                f"[{e.category.value}/{e.kind.value}]" + (f" {e.note}" if e.note else ""))


@dataclass(frozen=True)
class Verdict:
    passed: bool
    code: Optional[int]

    def __str__(self):
        if self.code is None:
            return "FAIL (result register not reported)"
        return "PASS" if self.passed else f"FAIL (status 0x{self.code:x})"


Regs = Union[Mapping[int, int], Sequence[int]]

def _read(regs: Regs, r: int) -> Optional[int]:
    if isinstance(regs, Mapping):
        v = regs.get(r)
    else:
        v = regs[r] if r < len(regs) else None
    return None if v is None else u64(v)


def evaluate(expectations: Iterable[Expectation], regs: Regs,
             reference: bool = False) -> List[Finding]:
    """Compare a final register file against expectations.

    With reference=True the register file comes from the architectural
    reference executor; LEAK expectations then describe a value the
    architecture must NOT produce, so they hold when the values differ.
    """
    out = []
    for e in expectations:
        actual = _read(regs, e.reg)
        if actual is None:
            ok = False
        elif reference and e.kind is Kind.LEAK:
            ok = actual != e.value
        else:
            ok = actual == e.value
        out.append(Finding(e, actual, ok))
    return out


def summarize(findings: Iterable[Finding]) -> Dict[Category, Tuple[int, int]]:
    """(passed, total) per category, in first-seen order."""
    acc: Dict[Category, List[int]] = OrderedDict()
    for f in findings:
        p = acc.setdefault(f.expectation.category, [0, 0])
        p[0] += int(f.ok)
        p[1] += 1
    return OrderedDict((k, (v[0], v[1])) for k, v in acc.items())


def verdict(regs: Regs, result_reg: int) -> Verdict:
    code = _read(regs, result_reg)
    return Verdict(code == PASS, code)
