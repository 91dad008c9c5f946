# isa.py
# RV64I + Zba instruction encoders, decoder and disassembler.
#
# Every 32-bit word decodes to something: words matching a supported
# standard encoding become Op values, everything else becomes a Raw value
# holding the R-type fields, so decode -> encode is bit-exact.

from __future__ import annotations
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

from .errors import EncodingError, FieldOverflow, Misaligned, UnknownMnemonic, UnresolvedLabel
from .insn import Instruction, Op, Raw, check_reg, check_simm, check_uimm, x

M32 = 0xFFFFFFFF
M64 = 0xFFFFFFFFFFFFFFFF

# -------------------------
# Helpers
# -------------------------
def sext(val: int, bits: int) -> int:
    sign = 1 << (bits - 1)
    val &= (1 << bits) - 1
    return (val ^ sign) - sign

def u32(v: int) -> int:
    return v & M32

def s32(v: int) -> int:
    return sext(v, 32)

def u64(v: int) -> int:
    return v & M64

def s64(v: int) -> int:
    return sext(v, 64)

# -------------------------
# Format encoders
# -------------------------
def encode_R(opcode, rd, funct3, rs1, rs2, funct7):
    return ((check_uimm(funct7, 7, "funct7") << 25) |
            (check_reg(rs2, "rs2")          << 20) |
            (check_reg(rs1, "rs1")          << 15) |
            (check_uimm(funct3, 3, "funct3") << 12) |
            (check_reg(rd, "rd")            << 7)  |
            check_uimm(opcode, 7, "opcode"))

def encode_I(opcode, rd, funct3, rs1, imm):
    imm12 = check_simm(imm, 12, "imm") & 0xFFF
    return ((imm12                 << 20) |
            (check_reg(rs1, "rs1") << 15) |
            (funct3                << 12) |
            (check_reg(rd, "rd")   << 7)  |
            opcode)

def encode_shift(opcode, rd, funct3, rs1, shamt, funct7, bits):
    """Immediate shifts: shamt is 6 bits on RV64, 5 bits for the *W forms."""
    check_uimm(shamt, bits, "shamt")
    return ((funct7                << 25) |
            (shamt                 << 20) |
            (check_reg(rs1, "rs1") << 15) |
            (funct3                << 12) |
            (check_reg(rd, "rd")   << 7)  |
            opcode)

def encode_S(opcode, funct3, rs1, rs2, imm12):
    imm = check_simm(imm12, 12, "imm") & 0xFFF
    imm_11_5 = (imm >> 5) & 0x7F
    imm_4_0  = imm & 0x1F
    return (
        (imm_11_5 << 25) |
        (check_reg(rs2, "rs2") << 20) |
        (check_reg(rs1, "rs1") << 15) |
        (funct3 << 12) |
        (imm_4_0 << 7) |
        opcode
    )

def encode_B(opcode, funct3, rs1, rs2, imm13):
    """Branch encoding - imm13 is signed byte offset (must be even)"""
    if imm13 & 0x1:
        raise Misaligned(f"branch offset {imm13} is not 2-byte aligned", "offset", imm13)
    imm = check_simm(imm13, 13, "offset") & 0x1FFF
    imm_12   = (imm >> 12) & 0x1
    imm_10_5 = (imm >> 5)  & 0x3F
    imm_4_1  = (imm >> 1)  & 0xF
    imm_11   = (imm >> 11) & 0x1
    return (
        (imm_12 << 31) |
        (imm_10_5 << 25) |
        (check_reg(rs2, "rs2") << 20) |
        (check_reg(rs1, "rs1") << 15) |
        (funct3 << 12) |
        (imm_4_1 << 8) |
        (imm_11 << 7) |
        opcode
    )

def encode_U(opcode, rd, imm20):
    if not -(1 << 19) <= imm20 < (1 << 20):
        raise FieldOverflow(f"imm={imm20:#x} does not fit in 20 bits", "imm", imm20)
    return (((imm20 & 0xFFFFF) << 12) |
            (check_reg(rd, "rd") << 7) |
            opcode)

def encode_J(opcode, rd, imm21):
    """JAL encoding - imm21 is signed byte offset (must be even)"""
    if imm21 & 0x1:
        raise Misaligned(f"jump offset {imm21} is not 2-byte aligned", "offset", imm21)
    imm = check_simm(imm21, 21, "offset") & 0x1FFFFF
    imm_20    = (imm >> 20) & 0x1
    imm_10_1  = (imm >> 1)  & 0x3FF
    imm_11    = (imm >> 11) & 0x1
    imm_19_12 = (imm >> 12) & 0xFF
    return (
        (imm_20 << 31) |
        (imm_10_1 << 21) |
        (imm_11 << 20) |
        (imm_19_12 << 12) |
        (check_reg(rd, "rd") << 7) |
        opcode
    )

# -------------------------
# Mnemonic table: name -> (format, opcode, funct3, funct7)
# -------------------------
OPS: Dict[str, Tuple[str, int, Optional[int], Optional[int]]] = {
    # U / J
    "lui":   ("U", 0x37, None, None),
    "auipc": ("U", 0x17, None, None),
    "jal":   ("J", 0x6F, None, None),
    "jalr":  ("I", 0x67, 0x0, None),
    # Branches
    "beq":  ("B", 0x63, 0x0, None),
    "bne":  ("B", 0x63, 0x1, None),
    "blt":  ("B", 0x63, 0x4, None),
    "bge":  ("B", 0x63, 0x5, None),
    "bltu": ("B", 0x63, 0x6, None),
    "bgeu": ("B", 0x63, 0x7, None),
    # Loads
    "lb":  ("L", 0x03, 0x0, None),
    "lh":  ("L", 0x03, 0x1, None),
    "lw":  ("L", 0x03, 0x2, None),
    "ld":  ("L", 0x03, 0x3, None),
    "lbu": ("L", 0x03, 0x4, None),
    "lhu": ("L", 0x03, 0x5, None),
    "lwu": ("L", 0x03, 0x6, None),
    # Stores
    "sb": ("S", 0x23, 0x0, None),
    "sh": ("S", 0x23, 0x1, None),
    "sw": ("S", 0x23, 0x2, None),
    "sd": ("S", 0x23, 0x3, None),
    # OP-IMM
    "addi":  ("I", 0x13, 0x0, None),
    "slti":  ("I", 0x13, 0x2, None),
    "sltiu": ("I", 0x13, 0x3, None),
    "xori":  ("I", 0x13, 0x4, None),
    "ori":   ("I", 0x13, 0x6, None),
    "andi":  ("I", 0x13, 0x7, None),
    "slli":  ("SH", 0x13, 0x1, 0x00),
    "srli":  ("SH", 0x13, 0x5, 0x00),
    "srai":  ("SH", 0x13, 0x5, 0x20),
    # OP-IMM-32
    "addiw": ("I", 0x1B, 0x0, None),
    "slliw": ("SHW", 0x1B, 0x1, 0x00),
    "srliw": ("SHW", 0x1B, 0x5, 0x00),
    "sraiw": ("SHW", 0x1B, 0x5, 0x20),
    # OP
    "add":  ("R", 0x33, 0x0, 0x00),
    "sub":  ("R", 0x33, 0x0, 0x20),
    "sll":  ("R", 0x33, 0x1, 0x00),
    "slt":  ("R", 0x33, 0x2, 0x00),
    "sltu": ("R", 0x33, 0x3, 0x00),
    "xor":  ("R", 0x33, 0x4, 0x00),
    "srl":  ("R", 0x33, 0x5, 0x00),
    "sra":  ("R", 0x33, 0x5, 0x20),
    "or":   ("R", 0x33, 0x6, 0x00),
    "and":  ("R", 0x33, 0x7, 0x00),
    # OP-32
    "addw": ("R", 0x3B, 0x0, 0x00),
    "subw": ("R", 0x3B, 0x0, 0x20),
    "sllw": ("R", 0x3B, 0x1, 0x00),
    "srlw": ("R", 0x3B, 0x5, 0x00),
    "sraw": ("R", 0x3B, 0x5, 0x20),
}

ARITY = {"R": 3, "I": 3, "L": 3, "S": 3, "B": 3, "U": 2, "J": 2, "SH": 3, "SHW": 3}

BRANCHES = frozenset(n for n, info in OPS.items() if info[0] == "B")

# -------------------------
# Zba extension (no mnemonics in the toolchain; emitted as raw words)
# -------------------------
ZBA: Dict[str, Tuple[int, int, int, Callable[[int, int], int]]] = {
    "sh1add":    (0x33, 0x2, 0x10, lambda a, b: (a << 1) + b),
    "sh2add":    (0x33, 0x4, 0x10, lambda a, b: (a << 2) + b),
    "sh3add":    (0x33, 0x6, 0x10, lambda a, b: (a << 3) + b),
    "add.uw":    (0x3B, 0x0, 0x04, lambda a, b: (a & M32) + b),
    "sh1add.uw": (0x3B, 0x2, 0x10, lambda a, b: ((a & M32) << 1) + b),
    "sh2add.uw": (0x3B, 0x4, 0x10, lambda a, b: ((a & M32) << 2) + b),
    "sh3add.uw": (0x3B, 0x6, 0x10, lambda a, b: ((a & M32) << 3) + b),
}

_ZBA_BY_FIELDS = {(opc, f3, f7): name for name, (opc, f3, f7, _) in ZBA.items()}

def zba(name: str, rd: int, rs1: int, rs2: int) -> Raw:
    if name not in ZBA:
        raise UnknownMnemonic(f"unknown Zba operation '{name}'", "mnemonic", name)
    opc, f3, f7, _ = ZBA[name]
    return Raw(opc, f3, f7, rd, rs1, rs2)

def raw_name(raw: Raw) -> Optional[str]:
    return _ZBA_BY_FIELDS.get((raw.opcode, raw.funct3, raw.funct7))

def raw_semantics(raw: Raw) -> Optional[Callable[[int, int], int]]:
    """Reference semantics for a raw word, if it is a known Zba operation."""
    name = raw_name(raw)
    return ZBA[name][3] if name else None

# -------------------------
# Encode
# -------------------------
Target = Union[int, str]

def resolve(target: Target, pc: int, labels: Optional[Mapping[str, int]]) -> int:
    if isinstance(target, int):
        return target
    if labels is None or target not in labels:
        raise UnresolvedLabel(f"undefined label '{target}'", "target", target)
    return labels[target] - pc

def encode_raw(raw: Raw) -> int:
    return encode_R(raw.opcode, raw.rd, raw.funct3, raw.rs1, raw.rs2, raw.funct7)

def encode(insn: Instruction, pc: int = 0,
           labels: Optional[Mapping[str, int]] = None) -> int:
    """Encode one instruction located at byte address pc."""
    if isinstance(insn, Raw):
        return encode_raw(insn)
    if not isinstance(insn, Op):
        raise EncodingError(f"cannot encode {insn!r}")
    info = OPS.get(insn.mnemonic)
    if info is None:
        raise UnknownMnemonic(f"unknown mnemonic '{insn.mnemonic}'", "mnemonic", insn.mnemonic)
    fmt, opc, f3, f7 = info
    ops = insn.operands
    if len(ops) != ARITY[fmt]:
        raise EncodingError(f"{insn.mnemonic} takes {ARITY[fmt]} operands, got {len(ops)}",
                            "operands", ops)

    if fmt == "R":
        rd, rs1, rs2 = ops
        return encode_R(opc, rd, f3, rs1, rs2, f7)
    if fmt in ("I", "L"):
        rd, rs1, imm = ops
        return encode_I(opc, rd, f3, rs1, imm)
    if fmt == "SH":
        rd, rs1, sh = ops
        return encode_shift(opc, rd, f3, rs1, sh, f7, 6)
    if fmt == "SHW":
        rd, rs1, sh = ops
        return encode_shift(opc, rd, f3, rs1, sh, f7, 5)
    if fmt == "S":
        rs2, rs1, imm = ops
        return encode_S(opc, f3, rs1, rs2, imm)
    if fmt == "B":
        rs1, rs2, tgt = ops
        return encode_B(opc, f3, rs1, rs2, resolve(tgt, pc, labels))
    if fmt == "U":
        rd, imm20 = ops
        return encode_U(opc, rd, imm20)
    rd, tgt = ops
    return encode_J(opc, rd, resolve(tgt, pc, labels))

# -------------------------
# Decode
# -------------------------
def imm_i(inst): return sext(inst >> 20, 12)

def imm_s(inst):
    imm = ((inst >> 25) << 5) | ((inst >> 7) & 0x1F)
    return sext(imm, 12)

def imm_b(inst):
    imm = 0
    imm |= ((inst >> 31) & 0x1) << 12
    imm |= ((inst >> 7)  & 0x1) << 11
    imm |= ((inst >> 25) & 0x3F) << 5
    imm |= ((inst >> 8)  & 0xF) << 1
    return sext(imm, 13)

def imm_j(inst):
    imm = 0
    imm |= ((inst >> 31) & 0x1) << 20
    imm |= ((inst >> 12) & 0xFF) << 12
    imm |= ((inst >> 20) & 0x1) << 11
    imm |= ((inst >> 21) & 0x3FF) << 1
    return sext(imm, 21)

def _decode_key(name: str) -> tuple:
    fmt, opc, f3, f7 = OPS[name]
    if fmt in ("U", "J"):
        return (opc, None, None)
    if fmt == "SH":
        return (opc, f3, f7 >> 1)   # funct6; bit 25 belongs to shamt
    if fmt in ("R", "SHW"):
        return (opc, f3, f7)
    return (opc, f3, None)

_BY_KEY = {_decode_key(name): name for name in OPS}

def decode_raw(word: int) -> Raw:
    """Split any word into R-type fields."""
    word = check_uimm(word, 32, "word")
    return Raw(opcode=word & 0x7F,
               funct3=(word >> 12) & 0x7,
               funct7=(word >> 25) & 0x7F,
               rd=(word >> 7) & 0x1F,
               rs1=(word >> 15) & 0x1F,
               rs2=(word >> 20) & 0x1F)

def decode(word: int) -> Instruction:
    r = decode_raw(word)
    keys = [(r.opcode, None, None), (r.opcode, r.funct3, None)]
    if r.opcode == 0x13:
        keys.append((r.opcode, r.funct3, r.funct7 >> 1))
    keys.append((r.opcode, r.funct3, r.funct7))
    name = next((_BY_KEY[k] for k in keys if k in _BY_KEY), None)
    if name is None:
        return r

    fmt = OPS[name][0]
    if fmt == "R":
        ops = (r.rd, r.rs1, r.rs2)
    elif fmt in ("I", "L"):
        ops = (r.rd, r.rs1, imm_i(word))
    elif fmt == "SH":
        ops = (r.rd, r.rs1, (word >> 20) & 0x3F)
    elif fmt == "SHW":
        ops = (r.rd, r.rs1, (word >> 20) & 0x1F)
    elif fmt == "S":
        ops = (r.rs2, r.rs1, imm_s(word))
    elif fmt == "B":
        ops = (r.rs1, r.rs2, imm_b(word))
    elif fmt == "U":
        ops = (r.rd, (word >> 12) & 0xFFFFF)
    else:
        ops = (r.rd, imm_j(word))
    return Op(name, ops)

# -------------------------
# Disassembly
# -------------------------
def _target(t: Target) -> str:
    if isinstance(t, str):
        return t
    return f".{t:+d}"

def disasm_op(op: Op) -> str:
    info = OPS.get(op.mnemonic)
    if info is None or len(op.operands) != ARITY[info[0]]:
        return f"{op.mnemonic} {', '.join(str(o) for o in op.operands)}".rstrip()
    fmt = info[0]
    mn = op.mnemonic
    a = op.operands
    if op == Op("addi", (0, 0, 0)):
        return "nop"
    if fmt in ("R", "SH", "SHW"):
        third = x(a[2]) if fmt == "R" else str(a[2])
        return f"{mn:<5s} {x(a[0])}, {x(a[1])}, {third}"
    if fmt == "I":
        if mn == "jalr":
            return f"{mn:<5s} {x(a[0])}, {a[2]}({x(a[1])})"
        return f"{mn:<5s} {x(a[0])}, {x(a[1])}, {a[2]}"
    if fmt in ("L", "S"):
        return f"{mn:<5s} {x(a[0])}, {a[2]}({x(a[1])})"
    if fmt == "B":
        return f"{mn:<5s} {x(a[0])}, {x(a[1])}, {_target(a[2])}"
    if fmt == "U":
        return f"{mn:<5s} {x(a[0])}, 0x{a[1] & 0xFFFFF:x}"
    return f"{mn:<5s} {x(a[0])}, {_target(a[1])}"

def disasm(insn: Instruction) -> str:
    if isinstance(insn, Raw):
        name = raw_name(insn)
        return f"{insn}  # {name}" if name else str(insn)
    return disasm_op(insn)

# -------------------------
# Pseudo-instructions
# -------------------------
def li_ops(rd: int, value: int) -> List[Op]:
    """Materialize a 64-bit constant (signed or unsigned) in rd."""
    check_reg(rd, "rd")
    if not -(1 << 63) <= value <= M64:
        raise FieldOverflow(f"li value {value:#x} does not fit in 64 bits", "imm", value)
    val = s64(value)

    if -2048 <= val < 2048:
        return [Op("addi", (rd, 0, val))]

    lo = sext(val, 12)
    if -(1 << 31) <= val < (1 << 31):
        # lui sign-extends bits 31..12; addiw keeps the 32-bit wrap exact.
        seq = [Op("lui", (rd, ((val - lo) >> 12) & 0xFFFFF))]
        if lo:
            seq.append(Op("addiw", (rd, rd, lo)))
        return seq

    hi = (val - lo) >> 12
    shift = 12
    while hi & 1 == 0:
        hi >>= 1
        shift += 1
    seq = li_ops(rd, hi) + [Op("slli", (rd, rd, shift))]
    if lo:
        seq.append(Op("addi", (rd, rd, lo)))
    return seq
