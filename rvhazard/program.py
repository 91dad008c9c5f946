# program.py
# Boot preamble + one test sequence, laid out at the load address.
#
# Assembly is two-pass: the first pass assigns an address to every item
# and label, the second encodes with all targets known.  Nothing is
# patched after it has been emitted.

from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Optional, Tuple

from .boot import boot_preamble
from .config import Config
from .errors import ConfigError, DuplicateLabel, EncodingError, ImageOverflow
from .insn import Item, Label, Op, Terminal
from .isa import disasm, encode
from .sequence import TestSequence


def halt_idiom(cfg: Config) -> List[Op]:
    """Words the terminal assembles to; the first one is the terminal address."""
    if cfg.halt == "nop-loop":
        return [Op("addi", (0, 0, 0)), Op("jal", (0, -4))]
    return [Op("jal", (0, 0))]


@dataclass(frozen=True)
class Image:
    base: int
    words: Tuple[int, ...]
    text: Tuple[str, ...]
    labels: Mapping[str, int]
    terminal_pc: int

    @property
    def entry(self) -> int:
        return self.base

    @property
    def end(self) -> int:
        return self.base + 4 * len(self.words)

    def pc(self, i: int) -> int:
        return self.base + 4 * i

    def to_bytes(self) -> bytes:
        return b"".join(w.to_bytes(4, "little") for w in self.words)

    def padded(self, n: int) -> "Image":
        """Same image followed by n NOP words (never executed: they sit after the terminal)."""
        nop = encode(Op("addi", (0, 0, 0)))
        return replace(self, words=self.words + (nop,) * n, text=self.text + ("nop  # pad",) * n)


class Program:
    def __init__(self, sequence: TestSequence, cfg: Optional[Config] = None):
        self.cfg = cfg or Config()
        if sequence.result_reg != self.cfg.result_reg:
            raise ConfigError(f"sequence '{sequence.name}' reports through x{sequence.result_reg}, "
                              f"configuration expects x{self.cfg.result_reg}")
        self.sequence = sequence
        self.boot = boot_preamble(self.cfg)

    @property
    def items(self) -> List[Item]:
        return self.boot + [Label(self.cfg.entry_label)] + list(self.sequence.items)

    def layout(self) -> Tuple[Dict[str, int], List[int]]:
        """First pass: label addresses and the address of every item."""
        labels: Dict[str, int] = {}
        pcs: List[int] = []
        pc = self.cfg.base
        nhalt = len(halt_idiom(self.cfg))
        for i, it in enumerate(self.items):
            pcs.append(pc)
            if isinstance(it, Label):
                if it.name in labels:
                    raise DuplicateLabel(f"label '{it.name}' defined twice", self.sequence.name, i)
                labels[it.name] = pc
            elif isinstance(it, Terminal):
                pc += 4 * nhalt
            else:
                pc += 4
        if pc > self.cfg.data_base:
            raise ImageOverflow(f"image ends at 0x{pc:x}, past the data window at 0x{self.cfg.data_base:x} "
                                f"(stack top 0x{self.cfg.stack_top:x})", "size", pc - self.cfg.base)
        return labels, pcs

    def assemble(self) -> Image:
        labels, pcs = self.layout()
        words: List[int] = []
        text: List[str] = []
        terminal_pc = None
        for i, (it, pc) in enumerate(zip(self.items, pcs)):
            if isinstance(it, Label):
                continue
            try:
                if isinstance(it, Terminal):
                    terminal_pc = pc
                    for k, op in enumerate(halt_idiom(self.cfg)):
                        words.append(encode(op, pc + 4 * k, labels))
                        text.append(f"{disasm(op)}  # terminal")
                else:
                    words.append(encode(it, pc, labels))
                    text.append(disasm(it))
            except EncodingError as e:
                e.index = i
                raise
        return Image(self.cfg.base, tuple(words), tuple(text), dict(labels), terminal_pc)
