# golden.py
# Architectural reference executor (RV64I + Zba), one instruction at a time.
#
# This is what the core must match at commit, not a model of its
# pipeline.  It confirms that a program reaches its terminal and that
# the expectations written by the author are architecturally consistent.

from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Tuple

from .config import Config
from .errors import ExecutionError
from .insn import Raw
from .isa import BRANCHES, decode, disasm, raw_semantics, s32, s64, sext, u32, u64
from .program import Image, Program
from .result import Finding, evaluate

MAX_STEPS = 100000

_ALU_IMM = {
    "addi":  lambda a, i: a + i,
    "slti":  lambda a, i: int(s64(a) < i),
    "sltiu": lambda a, i: int(a < u64(i)),
    "xori":  lambda a, i: a ^ u64(i),
    "ori":   lambda a, i: a | u64(i),
    "andi":  lambda a, i: a & u64(i),
    "slli":  lambda a, i: a << i,
    "srli":  lambda a, i: a >> i,
    "srai":  lambda a, i: s64(a) >> i,
    "addiw": lambda a, i: s32(a + i),
    "slliw": lambda a, i: s32(a << i),
    "srliw": lambda a, i: s32(u32(a) >> i),
    "sraiw": lambda a, i: s32(s32(a) >> i),
}

_ALU_REG = {
    "add":  lambda a, b: a + b,
    "sub":  lambda a, b: a - b,
    "sll":  lambda a, b: a << (b & 0x3F),
    "slt":  lambda a, b: int(s64(a) < s64(b)),
    "sltu": lambda a, b: int(a < b),
    "xor":  lambda a, b: a ^ b,
    "srl":  lambda a, b: a >> (b & 0x3F),
    "sra":  lambda a, b: s64(a) >> (b & 0x3F),
    "or":   lambda a, b: a | b,
    "and":  lambda a, b: a & b,
    "addw": lambda a, b: s32(a + b),
    "subw": lambda a, b: s32(a - b),
    "sllw": lambda a, b: s32(a << (b & 0x1F)),
    "srlw": lambda a, b: s32(u32(a) >> (b & 0x1F)),
    "sraw": lambda a, b: s32(s32(a) >> (b & 0x1F)),
}

_TAKEN = {
    "beq":  lambda a, b: a == b,
    "bne":  lambda a, b: a != b,
    "blt":  lambda a, b: s64(a) < s64(b),
    "bge":  lambda a, b: s64(a) >= s64(b),
    "bltu": lambda a, b: a < b,
    "bgeu": lambda a, b: a >= b,
}

# name -> (bytes, signed)
_LOADS = {"lb": (1, True), "lh": (2, True), "lw": (4, True), "ld": (8, False),
          "lbu": (1, False), "lhu": (2, False), "lwu": (4, False)}
_STORES = {"sb": 1, "sh": 2, "sw": 4, "sd": 8}


@dataclass
class CommitEntry:
    """Golden reference commit entry"""
    step: int
    pc: int
    inst: int
    rd: int            # 0 when nothing architectural is written
    rd_data: int
    asm: str

    def __str__(self):
        return (f"[{self.step:6d}] PC={self.pc:08x} inst={self.inst:08x} "
                f"rd=x{self.rd:02d} data={self.rd_data:016x}  # {self.asm}")


class Machine:
    """Register file and memory for one reference run.

    With strict=True a read of a register that nothing has written yet is
    an error: tests may not rely on reset values.
    """

    def __init__(self, image: Image, cfg: Config, strict: bool = True):
        self.image = image
        self.cfg = cfg
        self.strict = strict
        self.regs = [0] * 32
        self.written = {0}
        self.mem = bytearray(cfg.mem_size)
        code = image.to_bytes()
        off = image.base - cfg.base
        self.mem[off:off + len(code)] = code
        self.pc = image.entry

    def r(self, i: int) -> int:
        if self.strict and i not in self.written:
            raise ExecutionError(f"x{i} read before any write", self.pc)
        return self.regs[i]

    def _offset(self, addr: int, size: int) -> int:
        off = addr - self.cfg.base
        if off < 0 or off + size > self.cfg.mem_size:
            raise ExecutionError(f"{size}-byte access at 0x{addr:x} outside memory "
                                 f"[0x{self.cfg.base:x}, 0x{self.cfg.mem_end:x})", self.pc)
        return off

    def load(self, addr: int, size: int, signed: bool) -> int:
        off = self._offset(addr, size)
        v = int.from_bytes(self.mem[off:off + size], "little")
        return u64(sext(v, 8 * size)) if signed else v

    def store(self, addr: int, size: int, val: int):
        off = self._offset(addr, size)
        self.mem[off:off + size] = (val & ((1 << (8 * size)) - 1)).to_bytes(size, "little")

    def fetch(self) -> int:
        if self.pc % 4 or not self.image.base <= self.pc < self.image.end:
            raise ExecutionError("PC left the program image", self.pc)
        return int.from_bytes(self.mem[self.pc - self.cfg.base:self.pc - self.cfg.base + 4], "little")

    def step(self, n: int) -> CommitEntry:
        pc = self.pc
        w = self.fetch()
        insn = decode(w)
        next_pc = pc + 4
        rd, val = 0, None

        if isinstance(insn, Raw):
            fn = raw_semantics(insn)
            if fn is None:
                raise ExecutionError(f"no reference semantics for {insn}", pc)
            rd, val = insn.rd, fn(self.r(insn.rs1), self.r(insn.rs2))
        else:
            mn, ops = insn.mnemonic, insn.operands
            if mn in _ALU_IMM:
                rd, val = ops[0], _ALU_IMM[mn](self.r(ops[1]), ops[2])
            elif mn in _ALU_REG:
                rd, val = ops[0], _ALU_REG[mn](self.r(ops[1]), self.r(ops[2]))
            elif mn == "lui":
                rd, val = ops[0], s32(ops[1] << 12)
            elif mn == "auipc":
                rd, val = ops[0], pc + s32(ops[1] << 12)
            elif mn == "jal":
                rd, val = ops[0], pc + 4
                next_pc = pc + ops[1]
            elif mn == "jalr":
                base = self.r(ops[1])
                rd, val = ops[0], pc + 4
                next_pc = u64(base + ops[2]) & ~1
            elif mn in BRANCHES:
                if _TAKEN[mn](self.r(ops[0]), self.r(ops[1])):
                    next_pc = pc + ops[2]
            elif mn in _LOADS:
                size, signed = _LOADS[mn]
                rd, val = ops[0], self.load(u64(self.r(ops[1]) + ops[2]), size, signed)
            elif mn in _STORES:
                self.store(u64(self.r(ops[1]) + ops[2]), _STORES[mn], self.r(ops[0]))
            else:
                raise ExecutionError(f"no reference semantics for {mn}", pc)

        if val is not None and rd != 0:
            self.regs[rd] = u64(val)
            self.written.add(rd)
        else:
            rd = 0
        self.pc = next_pc
        return CommitEntry(n, pc, w, rd, self.regs[rd], disasm(insn))


def run(image: Image, cfg: Config, max_steps: int = MAX_STEPS,
        strict: bool = True) -> Tuple[List[CommitEntry], List[int]]:
    """Execute from the entry point until the terminal address is reached.

    Returns:
        trace: commit entries in program order
        regs:  final architectural register file
    """
    if image.terminal_pc is None:
        raise ExecutionError("image has no terminal")
    m = Machine(image, cfg, strict)
    trace: List[CommitEntry] = []
    while m.pc != image.terminal_pc:
        if len(trace) >= max_steps:
            raise ExecutionError(f"terminal not reached within {max_steps} steps", m.pc)
        trace.append(m.step(len(trace)))
    return trace, list(m.regs)


@dataclass
class Report:
    image: Image
    trace: List[CommitEntry]
    regs: List[int]
    findings: List[Finding]

    @property
    def ok(self) -> bool:
        return all(f.ok for f in self.findings)

    @property
    def failures(self) -> List[Finding]:
        return [f for f in self.findings if not f.ok]


def check_program(program: Program, max_steps: int = MAX_STEPS,
                  image: Optional[Image] = None) -> Report:
    """Assemble (unless given an image), run, and check every expectation."""
    if image is None:
        image = program.assemble()
    trace, regs = run(image, program.cfg, max_steps)
    findings = evaluate(program.sequence.expectations, regs, reference=True)
    return Report(image, trace, regs, findings)
