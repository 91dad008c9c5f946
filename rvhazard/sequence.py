# sequence.py
# Hazard test sequences: an immutable, validated instruction list plus the
# register values it must leave behind, and the Seq builder that writes one.

from __future__ import annotations
from collections import deque
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from .config import Config
from .errors import (DuplicateLabel, EncodingError, InvalidExpectation,
                     UnreachableTerminal, UnresolvedLabel)
from .insn import Item, Label, Op, Raw, Terminal
from .isa import BRANCHES, encode, li_ops, zba
from .result import PASS, Category, Expectation, Kind

_END = -1   # successor marker: control runs past the last item


def _target_of(op: Op):
    if op.mnemonic in BRANCHES:
        return op.operands[2]
    if op.mnemonic == "jal":
        return op.operands[1]
    return None


def _check_flow(name: str, items: Tuple[Item, ...]):
    """Exactly one terminal, reachable from every path; no path runs off the end."""
    labels: Dict[str, int] = {}
    for i, it in enumerate(items):
        if isinstance(it, Label):
            if it.name in labels:
                raise DuplicateLabel(f"label '{it.name}' already defined at item #{labels[it.name]}",
                                     name, i)
            labels[it.name] = i

    terminals = [i for i, it in enumerate(items) if isinstance(it, Terminal)]
    if len(terminals) != 1:
        raise UnreachableTerminal(f"expected exactly one terminal, found {len(terminals)}", name)
    term = terminals[0]

    nodes = [i for i, it in enumerate(items) if not isinstance(it, Label)]
    # next instruction at or after each position
    nxt = [_END] * (len(items) + 1)
    for i in range(len(items) - 1, -1, -1):
        nxt[i] = i if not isinstance(items[i], Label) else nxt[i + 1]

    def after(i: int) -> int:
        return nxt[i + 1]

    def target(i: int, op: Op) -> int:
        t = _target_of(op)
        if not isinstance(t, str):
            raise UnresolvedLabel(f"{op.mnemonic} target must be a label, got {t!r}", "target", t, i)
        if t not in labels:
            raise UnresolvedLabel(f"undefined label '{t}'", "target", t, i)
        return nxt[labels[t]]

    return_sites = [after(i) for i in nodes
                    if isinstance(items[i], Op) and items[i].mnemonic == "jal" and items[i].operands[0] != 0]

    succ: Dict[int, List[int]] = {}
    for i in nodes:
        it = items[i]
        if isinstance(it, Terminal):
            succ[i] = []
        elif isinstance(it, Op) and it.mnemonic in BRANCHES:
            succ[i] = [after(i), target(i, it)]
        elif isinstance(it, Op) and it.mnemonic == "jal":
            succ[i] = [target(i, it)]
        elif isinstance(it, Op) and it.mnemonic == "jalr":
            succ[i] = list(return_sites)
        else:
            succ[i] = [after(i)]

    entry = nodes[0]
    seen: Set[int] = {entry}
    todo = deque([entry])
    while todo:
        i = todo.popleft()
        for s in succ[i]:
            if s == _END:
                raise UnreachableTerminal("control falls off the end of the sequence", name, i)
            if s not in seen:
                seen.add(s)
                todo.append(s)

    pred: Dict[int, List[int]] = {i: [] for i in seen}
    for i in seen:
        for s in succ[i]:
            pred[s].append(i)
    live: Set[int] = {term} if term in seen else set()
    todo = deque(live)
    while todo:
        for p in pred[todo.popleft()]:
            if p not in live:
                live.add(p)
                todo.append(p)
    stuck = sorted(seen - live)
    if stuck:
        raise UnreachableTerminal("no path from here reaches the terminal", name, stuck[0])


@dataclass(frozen=True)
class TestSequence:
    """One hazard scenario as data.

    Validated on construction; see _check_flow for the control-flow rules.
    """
    __test__ = False   # not a pytest class

    name: str
    items: Tuple[Item, ...]
    expectations: Tuple[Expectation, ...] = ()
    description: str = ""
    result_reg: int = 31

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))
        object.__setattr__(self, "expectations", tuple(self.expectations))
        _check_flow(self.name, self.items)
        seen: Dict[int, Expectation] = {}
        for e in self.expectations:
            if e.reg in seen:
                raise InvalidExpectation(f"x{e.reg} expected twice ({seen[e.reg]} / {e})", self.name)
            seen[e.reg] = e

    @property
    def expected(self) -> Dict[int, int]:
        return {e.reg: e.value for e in self.expectations}

    def expectations_for(self, category: Category) -> List[Expectation]:
        return [e for e in self.expectations if e.category is category]

    @property
    def instructions(self) -> List[Item]:
        return [it for it in self.items if not isinstance(it, Label)]


# -------------------------
# Builder
# -------------------------
def _probe(op: Op) -> Op:
    """Same op with label targets replaced by 0, for field checks before layout."""
    return Op(op.mnemonic, tuple(0 if isinstance(o, str) else o for o in op.operands))


class Seq:
    """Mutable builder for a TestSequence.

    Instruction methods follow assembler operand order; stores take
    (rs2, rs1, imm) like `sd rs2, imm(rs1)`.
    """

    def __init__(self, name: str, description: str = "", cfg: Optional[Config] = None):
        self.name = name
        self.description = description
        self.cfg = cfg or Config()
        self.items: List[Item] = []
        self.expectations: List[Expectation] = []
        self._fail_labels: Dict[int, str] = {}

    @property
    def result_reg(self) -> int:
        return self.cfg.result_reg

    def emit(self, item: Item):
        if isinstance(item, Op):
            try:
                encode(_probe(item))
            except EncodingError as e:
                e.index = len(self.items)
                raise
        self.items.append(item)

    def label(self, name: str):
        self.emit(Label(name))

    def expect(self, reg: int, value: int, category: Category = Category.GENERAL,
               kind: Kind = Kind.EXACT, note: str = ""):
        self.expectations.append(Expectation(reg, value, kind, category, note))

    def _op(self, mn, *ops):
        self.emit(Op(mn, ops))

    # U / J
    def lui(self, rd, imm20):      self._op("lui", rd, imm20)
    def auipc(self, rd, imm20):    self._op("auipc", rd, imm20)
    def jal(self, rd, label):      self._op("jal", rd, label)
    def jalr(self, rd, rs1, imm):  self._op("jalr", rd, rs1, imm)

    # Branches
    def beq(self, rs1, rs2, label):  self._op("beq", rs1, rs2, label)
    def bne(self, rs1, rs2, label):  self._op("bne", rs1, rs2, label)
    def blt(self, rs1, rs2, label):  self._op("blt", rs1, rs2, label)
    def bge(self, rs1, rs2, label):  self._op("bge", rs1, rs2, label)
    def bltu(self, rs1, rs2, label): self._op("bltu", rs1, rs2, label)
    def bgeu(self, rs1, rs2, label): self._op("bgeu", rs1, rs2, label)

    # Loads / stores
    def lb(self, rd, rs1, imm):  self._op("lb", rd, rs1, imm)
    def lh(self, rd, rs1, imm):  self._op("lh", rd, rs1, imm)
    def lw(self, rd, rs1, imm):  self._op("lw", rd, rs1, imm)
    def ld(self, rd, rs1, imm):  self._op("ld", rd, rs1, imm)
    def lbu(self, rd, rs1, imm): self._op("lbu", rd, rs1, imm)
    def lhu(self, rd, rs1, imm): self._op("lhu", rd, rs1, imm)
    def lwu(self, rd, rs1, imm): self._op("lwu", rd, rs1, imm)
    def sb(self, rs2, rs1, imm): self._op("sb", rs2, rs1, imm)
    def sh(self, rs2, rs1, imm): self._op("sh", rs2, rs1, imm)
    def sw(self, rs2, rs1, imm): self._op("sw", rs2, rs1, imm)
    def sd(self, rs2, rs1, imm): self._op("sd", rs2, rs1, imm)

    # I-type ALU
    def addi(self, rd, rs1, imm):  self._op("addi", rd, rs1, imm)
    def slti(self, rd, rs1, imm):  self._op("slti", rd, rs1, imm)
    def sltiu(self, rd, rs1, imm): self._op("sltiu", rd, rs1, imm)
    def xori(self, rd, rs1, imm):  self._op("xori", rd, rs1, imm)
    def ori(self, rd, rs1, imm):   self._op("ori", rd, rs1, imm)
    def andi(self, rd, rs1, imm):  self._op("andi", rd, rs1, imm)
    def slli(self, rd, rs1, sh):   self._op("slli", rd, rs1, sh)
    def srli(self, rd, rs1, sh):   self._op("srli", rd, rs1, sh)
    def srai(self, rd, rs1, sh):   self._op("srai", rd, rs1, sh)
    def addiw(self, rd, rs1, imm): self._op("addiw", rd, rs1, imm)
    def slliw(self, rd, rs1, sh):  self._op("slliw", rd, rs1, sh)
    def srliw(self, rd, rs1, sh):  self._op("srliw", rd, rs1, sh)
    def sraiw(self, rd, rs1, sh):  self._op("sraiw", rd, rs1, sh)

    # R-type ALU
    def add(self, rd, rs1, rs2):  self._op("add", rd, rs1, rs2)
    def sub(self, rd, rs1, rs2):  self._op("sub", rd, rs1, rs2)
    def sll(self, rd, rs1, rs2):  self._op("sll", rd, rs1, rs2)
    def slt(self, rd, rs1, rs2):  self._op("slt", rd, rs1, rs2)
    def sltu(self, rd, rs1, rs2): self._op("sltu", rd, rs1, rs2)
    def _xor(self, rd, rs1, rs2): self._op("xor", rd, rs1, rs2)
    def srl(self, rd, rs1, rs2):  self._op("srl", rd, rs1, rs2)
    def sra(self, rd, rs1, rs2):  self._op("sra", rd, rs1, rs2)
    def _or(self, rd, rs1, rs2):  self._op("or", rd, rs1, rs2)
    def _and(self, rd, rs1, rs2): self._op("and", rd, rs1, rs2)
    def addw(self, rd, rs1, rs2): self._op("addw", rd, rs1, rs2)
    def subw(self, rd, rs1, rs2): self._op("subw", rd, rs1, rs2)
    def sllw(self, rd, rs1, rs2): self._op("sllw", rd, rs1, rs2)
    def srlw(self, rd, rs1, rs2): self._op("srlw", rd, rs1, rs2)
    def sraw(self, rd, rs1, rs2): self._op("sraw", rd, rs1, rs2)

    # Pseudo-instructions
    def nop(self):           self._op("addi", 0, 0, 0)
    def mv(self, rd, rs1):   self._op("addi", rd, rs1, 0)
    def j(self, label):      self._op("jal", 0, label)

    def li(self, rd: int, value: int):
        """Load a 64-bit constant (one to eight instructions)."""
        try:
            ops = li_ops(rd, value)
        except EncodingError as e:
            e.index = len(self.items)
            raise
        for op in ops:
            self.emit(op)

    # Raw forms
    def raw(self, opcode: int, funct3: int, funct7: int, rd: int, rs1: int, rs2: int):
        try:
            r = Raw(opcode, funct3, funct7, rd, rs1, rs2)
        except EncodingError as e:
            e.index = len(self.items)
            raise
        self.emit(r)

    def zba(self, name: str, rd: int, rs1: int, rs2: int):
        try:
            r = zba(name, rd, rs1, rs2)
        except EncodingError as e:
            e.index = len(self.items)
            raise
        self.emit(r)

    # -------------------------
    # Result protocol
    # -------------------------
    def check(self, reg: int, expected: int, code: int):
        """Self-check: if reg != expected, finish with status `code`.

        Clobbers the first scratch register, or the second one when reg
        is the first.
        """
        if code == PASS:
            raise InvalidExpectation(f"failure code 0x{code:x} is the PASS sentinel", self.name)
        first, second = self.cfg.scratch
        scratch = second if reg == first else first
        label = self._fail_labels.setdefault(code, f"__fail_{code:x}")
        self.li(scratch, expected)
        self.bne(reg, scratch, label)

    def terminal(self):
        self.emit(Terminal())

    def finish(self, status: int = PASS):
        """Write status to the result register and enter the terminal loop.

        Self-check failure stubs are placed after the success path and
        join it at the single terminal.
        """
        rr = self.result_reg
        self.li(rr, status)
        if self._fail_labels:
            self.j("__done")
            for code, label in self._fail_labels.items():
                self.label(label)
                self.li(rr, code)
                self.j("__done")
            self.label("__done")
        self.terminal()
        self.expect(rr, status, Category.RESULT)

    def build(self) -> TestSequence:
        return TestSequence(self.name, tuple(self.items), tuple(self.expectations),
                            self.description, self.result_reg)
