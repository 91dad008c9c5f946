"""Hazard test programs for a pipelined RV64 core."""

from .config import Config
from .errors import (ConfigError, DuplicateLabel, EncodingError, ExecutionError, FieldOverflow,
                     ImageOverflow, InvalidExpectation, InvalidRegister, Misaligned,
                     SequenceError, UnknownMnemonic, UnreachableTerminal, UnresolvedLabel)
from .insn import Label, Op, Raw, Terminal
from .isa import decode, disasm, encode, zba
from .program import Image, Program
from .result import PASS, Category, Expectation, Kind
from .sequence import Seq, TestSequence

__version__ = "0.1.0"
