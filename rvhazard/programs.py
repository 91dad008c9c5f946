# programs.py
# Named hazard scenarios.  Each prog_* function writes one sequence into
# a Seq; TESTS maps the CLI name to (description, function).

from __future__ import annotations
from typing import Callable, Dict, Optional, Tuple

from .config import Config
from .insn import Raw
from .patterns import (control_flush, data_addr, extension_op, forwarding_priority,
                       load_branch, load_use)
from .result import Category
from .sequence import Seq, TestSequence


def prog_arith_basic(s: Seq):
    """Smallest useful program: two constants and their sum."""
    s.li(5, 10)
    s.li(6, 20)
    s.add(7, 5, 6)
    s.expect(7, 30)
    s.finish()

def prog_zba_sh1add(s: Seq):
    # sh1add x9, x5, x6 as a raw R-type word: (10 << 1) + 20 = 40
    extension_op(s, Raw(opcode=0x33, funct3=0x2, funct7=0x10, rd=9, rs1=5, rs2=6), 10, 20)
    s.finish()

def prog_zba_all(s: Seq):
    """Every Zba R-type op; rs1 has garbage in the upper word to expose .uw."""
    a = 0xFFFFFFFF00000003
    for rd, name in zip(range(7, 14), ("sh1add", "sh2add", "sh3add", "add.uw",
                                        "sh1add.uw", "sh2add.uw", "sh3add.uw")):
        extension_op(s, name, a, 100, rd=rd, rs1=5, rs2=6)
    s.finish()

def prog_load_use(s: Seq):
    """ld x2,0(x1); add x3,x2,x1 back to back."""
    load_use(s, 0x1234)
    s.finish()

def prog_load_use_chain(s: Seq):
    """Load-use with a negative value, load-load-use, and load feeding a branch."""
    load_use(s, -5, addr_reg=1, dst=2, use=3)
    base = data_addr(s, 2)
    s.li(20, base)
    s.li(12, 0x11)
    s.sd(12, 20, 0)
    s.li(13, 0x22)
    s.sd(13, 20, 8)
    s.ld(14, 20, 0)
    s.ld(15, 20, 8)
    s.add(16, 14, 15)
    s.expect(16, 0x33, Category.LOAD_USE, note="ld; ld; add")
    load_branch(s, 42, out=17, addr_reg=21, dst=22, cmp=23)
    s.finish()

def prog_flush_branch(s: Seq):
    """Taken beq with two shadow writes; both must be flushed."""
    control_flush(s, (10, 11))
    s.finish()

def prog_flush_branch_leak(s: Seq):
    """Same branch, probing a flush that only kills one slot: shadow 2 will leak."""
    control_flush(s, (10, 11), leak_from=1)
    s.finish()

def prog_flush_jal(s: Seq):
    """Unconditional jal with three shadow writes."""
    control_flush(s, (12, 13, 14), via="jal")
    s.finish()

def prog_fwd_priority(s: Seq):
    """Three writes to x5 in consecutive stages, then a read: youngest wins."""
    forwarding_priority(s, 5, (1, 2, 3), reader=6)
    s.finish()

def prog_fwd_distance(s: Seq):
    """Producer/consumer distance 0..3 covers each bypass path and the regfile."""
    for gap in range(4):
        forwarding_priority(s, 5 + 2 * gap, (0x100 + gap, 0x200 + gap), reader=6 + 2 * gap, gap=gap)
    s.finish()

def prog_rv64_word_ops(s: Seq):
    """32-bit word ops must sign-extend into the upper half."""
    s.li(5, 0x7FFFFFFF)
    s.addiw(6, 5, 1)
    s.expect(6, 0xFFFFFFFF80000000)
    s.li(7, 0x123456789ABCDEF0)
    s.sraiw(8, 7, 4)
    s.expect(8, 0xFFFFFFFFF9ABCDEF)
    s.srli(9, 7, 36)
    s.expect(9, 0x1234567)
    s.finish()

def prog_selfcheck_hazards(s: Seq):
    """Hazards checked in-program; a failing check reports its own code in x31."""
    s.li(1, data_addr(s))
    s.li(2, 77)
    s.sd(2, 1, 0)
    s.ld(3, 1, 0)
    s.add(4, 3, 3)
    s.check(4, 154, 0x1)
    s.addi(5, 0, 1)
    s.addi(5, 0, 2)
    s.add(6, 5, 5)
    s.check(6, 4, 0x2)
    s.li(7, 10)
    s.li(8, 20)
    s.zba("sh2add", 9, 7, 8)
    s.check(9, 60, 0x3)
    s.finish()


TESTS: Dict[str, Tuple[str, Callable[[Seq], None]]] = {
    "arith_basic":       ("li/li/add with PASS in the result register", prog_arith_basic),
    "zba_sh1add":        ("Raw-form sh1add (Zba)", prog_zba_sh1add),
    "zba_all":           ("All Zba R-type operations", prog_zba_all),
    "load_use":          ("Load-use hazard: ld then dependent add", prog_load_use),
    "load_use_chain":    ("Load-use variants: negative value, ld/ld/add, load->branch", prog_load_use_chain),
    "flush_branch":      ("Taken branch, both shadow writes flushed", prog_flush_branch),
    "flush_branch_leak": ("Taken branch, second shadow write expected to leak", prog_flush_branch_leak),
    "flush_jal":         ("jal with three shadow writes flushed", prog_flush_jal),
    "fwd_priority":      ("Forwarding priority: youngest of three writes wins", prog_fwd_priority),
    "fwd_distance":      ("Forwarding at producer/consumer distance 0..3", prog_fwd_distance),
    "rv64_word_ops":     ("RV64 word ops and 64-bit constants", prog_rv64_word_ops),
    "selfcheck_hazards": ("In-program checks with per-hazard failure codes", prog_selfcheck_hazards),
}


def build_sequence(name: str, cfg: Optional[Config] = None) -> TestSequence:
    if name not in TESTS:
        raise KeyError(name)
    desc, fn = TESTS[name]
    s = Seq(name, desc, cfg)
    fn(s)
    return s.build()
