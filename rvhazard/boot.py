# boot.py
# Minimal startup: set the stack pointer, then jump to the test body.

from __future__ import annotations
from typing import List

from .config import Config
from .insn import Item, Label, Op
from .isa import li_ops

START_LABEL = "_start"


def boot_preamble(cfg: Config) -> List[Item]:
    """Instructions that run before any test logic.

    Only the stack pointer is initialized; every other register, the
    result register included, is left for the test body to write.
    """
    items: List[Item] = [Label(START_LABEL)]
    items += li_ops(cfg.sp_reg, cfg.stack_top)
    items.append(Op("jal", (0, cfg.entry_label)))
    return items
