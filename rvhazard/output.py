# output.py
# Artifact writers (hex, binary, listing, source, expectations, commit
# trace, register file) and the readers for hex images and register dumps.

from __future__ import annotations
import re
from typing import Dict, Iterable, List, Sequence

from .golden import CommitEntry
from .insn import Label, Terminal
from .isa import disasm
from .program import Image, Program, halt_idiom

# -------------------------
# Image formats
# -------------------------
def write_hex(path: str, words: Sequence[int]):
    """Pure readmemh content: one 32-bit word per line."""
    with open(path, "w") as f:
        for w in words:
            f.write(f"{w & 0xFFFFFFFF:08x}\n")

def write_bin(path: str, image: Image):
    with open(path, "wb") as f:
        f.write(image.to_bytes())

def write_asm(path: str, image: Image):
    """PC + word + text listing for debug."""
    with open(path, "w") as f:
        for i, (w, a) in enumerate(zip(image.words, image.text)):
            f.write(f"{image.pc(i):08x}: {w:08x}    {a}\n")

def render_source(program: Program) -> str:
    """Assembler source with labels; raw forms stay as .insn directives."""
    out = ["    .section .text.init", "    .globl _start"]
    for it in program.items:
        if isinstance(it, Label):
            out.append(f"{it.name}:")
        elif isinstance(it, Terminal):
            for op in halt_idiom(program.cfg):
                out.append(f"    {disasm(op)}")
        else:
            out.append(f"    {disasm(it)}")
    return "\n".join(out) + "\n"

def write_source(path: str, program: Program):
    with open(path, "w") as f:
        f.write(render_source(program))

def load_hex_words(path: str) -> List[int]:
    words = []
    with open(path, "r") as f:
        for line in f:
            line = line.split("#", 1)[0].split("//", 1)[0].strip()
            if not line:
                continue
            if line.startswith("@"):
                raise ValueError(f"{path}: address directives are not supported: {line!r}")
            words.append(int(line, 16) & 0xFFFFFFFF)
    return words

# -------------------------
# Expectations, trace, register file
# -------------------------
def write_expect(path: str, program: Program):
    seq = program.sequence
    with open(path, "w") as f:
        f.write(f"# {seq.name}: {seq.description}\n" if seq.description else f"# {seq.name}\n")
        f.write(f"# result register x{program.cfg.result_reg}, PASS = 0x7ff\n")
        f.write("# reg  value               kind    category  note\n")
        for e in seq.expectations:
            f.write(f"x{e.reg:02d}  0x{e.value:016x}  {e.kind.value:<6s}  "
                    f"{e.category.value:<13s} {e.note}".rstrip() + "\n")

def write_commit_trace(path: str, commit_trace: Iterable[CommitEntry]):
    """
    Write golden commit trace to a text file.
    This is what the core must match at commit.
    """
    with open(path, "w") as f:
        f.write("# Golden Commit Trace\n")
        f.write("# step   pc        inst       rd  data              asm\n")
        f.write("# ------------------------------------------------------------\n")
        for e in commit_trace:
            f.write(
                f"{e.step:6d}  "
                f"{e.pc:08x}  "
                f"{e.inst:08x}  "
                f"x{e.rd:02d}  "
                f"{e.rd_data:016x}  "
                f"{e.asm}\n"
            )

def format_regfile(regs: Sequence[int]) -> str:
    return "".join(f"x{i:02d} = 0x{regs[i]:016x}\n" for i in range(len(regs)))

def write_regfile(path: str, regs: Sequence[int]):
    with open(path, "w") as f:
        f.write("# FINAL REGFILE (x0..x31)\n")
        f.write(format_regfile(regs))

REG_LINE_RE = re.compile(r"^\s*x(\d{1,2})\s*[=:]\s*(0[xX][0-9a-fA-F_]+|\d+)\s*$")

def parse_regdump(path: str) -> Dict[int, int]:
    """Read `xNN = 0x...` lines from a testbench register dump."""
    regs: Dict[int, int] = {}
    with open(path, "r") as f:
        for line in f:
            line = line.split("#", 1)[0]
            m = REG_LINE_RE.match(line)
            if not m:
                continue
            r = int(m.group(1))
            if r > 31:
                raise ValueError(f"{path}: no register x{r}")
            v = m.group(2).replace("_", "")
            regs[r] = int(v, 16) if v[:2].lower() == "0x" else int(v)
    return regs
