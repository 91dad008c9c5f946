import pytest

from rvhazard.errors import InvalidExpectation
from rvhazard.golden import check_program
from rvhazard.insn import Raw
from rvhazard.patterns import (control_flush, data_addr, extension_op, forwarding_priority,
                               load_branch, load_use)
from rvhazard.program import Program
from rvhazard.result import Category, Kind, evaluate
from rvhazard.sequence import Seq


def run(s):
    s.finish()
    report = check_program(Program(s.build(), s.cfg))
    assert report.ok, [str(f) for f in report.failures]
    return report


def test_load_use_expects_memory_plus_address():
    s = Seq("lu")
    load_use(s, 0x1234)
    seq_expect = dict((e.reg, e) for e in s.expectations)
    assert seq_expect[3].value == 0x1234 + data_addr(s)
    assert seq_expect[3].category is Category.LOAD_USE
    report = run(s)
    assert report.regs[3] == 0x1234 + data_addr(s)
    assert report.regs[2] == 0x1234


def test_load_use_back_to_back():
    s = Seq("lu")
    load_use(s, 7)
    text = [str(it) for it in s.items[-2:]]
    assert text == ["ld    x2, 0(x1)", "add   x3, x2, x1"]


def test_load_use_all_ones():
    s = Seq("lu")
    load_use(s, -1)
    run(s)


def test_load_use_rejects_unaligned_address():
    s = Seq("lu")
    with pytest.raises(InvalidExpectation):
        load_use(s, 1, addr=data_addr(s) + 4)


def test_load_branch():
    s = Seq("lb")
    load_branch(s, 42, out=17)
    report = run(s)
    assert report.regs[17] == 0x600


def test_flush_retain_and_leak_are_distinguishable():
    retain = Seq("retain")
    control_flush(retain, (10, 11))
    leak = Seq("leak")
    control_flush(leak, (10, 11), leak_from=1)

    assert [e.kind for e in retain.expectations] == [Kind.RETAIN, Kind.RETAIN]
    assert [e.kind for e in leak.expectations] == [Kind.RETAIN, Kind.LEAK]

    # a core that flushes only the first shadow slot
    shallow = {10: 0x10, 11: 0xFFFFFFFFFFFFFFFE}
    assert [f.ok for f in evaluate(retain.expectations, shallow)] == [True, False]
    assert [f.ok for f in evaluate(leak.expectations, shallow)] == [True, True]

    for s in (retain, leak):
        report = run(s)
        assert report.regs[10] == 0x10
        assert report.regs[11] == 0x20


def test_flush_via_jal():
    s = Seq("fj")
    control_flush(s, (12, 13, 14), via="jal")
    report = run(s)
    assert [report.regs[r] for r in (12, 13, 14)] == [0x10, 0x20, 0x30]


def test_flush_unknown_transfer():
    with pytest.raises(ValueError):
        control_flush(Seq("x"), via="jalr")


def test_forwarding_youngest_wins():
    s = Seq("fwd")
    forwarding_priority(s, 5, (1, 2, 3), reader=6)
    assert s.expectations[0].value == 3
    assert s.expectations[0].category is Category.FORWARDING
    report = run(s)
    assert report.regs[6] == 3


def test_forwarding_with_gap():
    s = Seq("fwd")
    forwarding_priority(s, 5, (9,), reader=6, gap=3)
    assert [str(it) for it in s.items[1:4]] == ["nop"] * 3
    run(s)


def test_extension_raw_sh1add():
    s = Seq("ext")
    extension_op(s, Raw(opcode=0x33, funct3=0x2, funct7=0x10, rd=9, rs1=5, rs2=6), 10, 20)
    assert s.expectations[0].reg == 9
    assert s.expectations[0].value == 40
    report = run(s)
    assert report.regs[9] == 40


def test_extension_by_name():
    s = Seq("ext")
    extension_op(s, "sh2add.uw", 0xFFFFFFFF00000001, 8, rd=7)
    assert s.expectations[0].value == 12
    run(s)


def test_extension_unknown_raw_needs_expected():
    s = Seq("ext")
    custom = Raw(0x0B, 0, 0, 9, 5, 6)
    with pytest.raises(InvalidExpectation):
        extension_op(s, custom, 1, 2)
    extension_op(s, custom, 1, 2, expected=3)
    assert s.expectations[0].value == 3


def test_aliased_operands_are_rejected():
    with pytest.raises(InvalidExpectation):
        extension_op(Seq("ext"), "sh1add", 10, 20, rs1=5, rs2=5)
    with pytest.raises(InvalidExpectation):
        extension_op(Seq("ext"), Raw(0x33, 0x2, 0x10, 9, 7, 7), 10, 20)
    with pytest.raises(InvalidExpectation):
        load_use(Seq("lu"), 5, addr_reg=4, dst=4)
    with pytest.raises(InvalidExpectation):
        load_branch(Seq("lb"), 5, out=17, dst=4, cmp=4)


def test_aliasing_is_rejected_before_anything_is_emitted():
    s = Seq("lu")
    with pytest.raises(InvalidExpectation):
        load_use(s, 5, addr_reg=4, dst=4)
    assert s.items == []
    assert s.expectations == []
