import pytest

from rvhazard.config import Config
from rvhazard.errors import (DuplicateLabel, FieldOverflow, InvalidExpectation, InvalidRegister,
                             UnreachableTerminal, UnresolvedLabel)
from rvhazard.insn import Label, Op, Terminal
from rvhazard.result import PASS, Category, Expectation
from rvhazard.sequence import Seq, TestSequence


def test_basic_sequence_expectations():
    s = Seq("sum")
    s.li(5, 10)
    s.li(6, 20)
    s.add(7, 5, 6)
    s.expect(7, 30)
    s.finish()
    seq = s.build()
    assert seq.expected == {7: 30, 31: PASS}
    assert isinstance(seq.items[-1], Terminal)
    assert [e.reg for e in seq.expectations_for(Category.RESULT)] == [31]
    assert len(seq.instructions) == 5


def test_result_register_follows_config():
    s = Seq("r", cfg=Config(result_reg=30))
    s.finish()
    seq = s.build()
    assert seq.result_reg == 30
    assert seq.expected == {30: PASS}


def test_no_terminal():
    with pytest.raises(UnreachableTerminal):
        TestSequence("t", (Op("addi", (5, 0, 1)),))


def test_two_terminals():
    with pytest.raises(UnreachableTerminal):
        TestSequence("t", (Terminal(), Terminal()))


def test_path_falls_off_the_end():
    items = (Op("beq", (5, 0, "skip")), Terminal(), Label("skip"), Op("addi", (6, 0, 1)))
    with pytest.raises(UnreachableTerminal) as ei:
        TestSequence("t", items)
    assert ei.value.index == 3


def test_loop_without_exit():
    items = (Label("spin"), Op("jal", (0, "spin")), Terminal())
    with pytest.raises(UnreachableTerminal):
        TestSequence("t", items)


def test_unreachable_code_is_allowed():
    items = (Op("jal", (0, "end")), Op("addi", (10, 0, -1)), Label("end"), Terminal())
    seq = TestSequence("t", items)
    assert len(seq.instructions) == 3


def test_call_and_return():
    items = (Op("jal", (1, "fn")), Op("jal", (0, "end")),
             Label("fn"), Op("addi", (5, 0, 1)), Op("jalr", (0, 1, 0)),
             Label("end"), Terminal())
    TestSequence("t", items)


def test_duplicate_label():
    items = (Label("a"), Label("a"), Terminal())
    with pytest.raises(DuplicateLabel):
        TestSequence("t", items)


def test_branch_targets_must_be_defined_labels():
    with pytest.raises(UnresolvedLabel):
        TestSequence("t", (Op("beq", (0, 0, "nowhere")), Terminal()))
    with pytest.raises(UnresolvedLabel):
        TestSequence("t", (Op("jal", (0, 8)), Terminal()))


def test_duplicate_expectation():
    with pytest.raises(InvalidExpectation):
        TestSequence("t", (Terminal(),), (Expectation(5, 1), Expectation(5, 2)))


def test_expectation_range():
    with pytest.raises(InvalidExpectation):
        Expectation(0, 0)
    with pytest.raises(InvalidExpectation):
        Expectation(32, 0)
    with pytest.raises(InvalidExpectation):
        Expectation(5, 1 << 64)
    assert Expectation(5, -1).value == 0xFFFFFFFFFFFFFFFF


def test_builder_reports_the_failing_index():
    s = Seq("bad")
    s.nop()
    with pytest.raises(FieldOverflow) as ei:
        s.addi(5, 0, 5000)
    assert ei.value.index == 1
    assert "insn #1" in str(ei.value)
    with pytest.raises(InvalidRegister):
        s.add(32, 0, 0)
    with pytest.raises(FieldOverflow):
        s.raw(0x80, 0, 0, 1, 2, 3)


def test_branch_to_label_defined_later():
    s = Seq("fwd")
    s.beq(0, 0, "later")
    s.nop()
    s.label("later")
    s.finish()
    s.build()


def test_selfcheck_stubs():
    s = Seq("chk")
    s.li(5, 1)
    s.check(5, 1, 0x21)
    s.check(5, 1, 0x22)
    s.finish()
    seq = s.build()
    names = [it.name for it in seq.items if isinstance(it, Label)]
    assert names == ["__fail_21", "__fail_22", "__done"]


def test_selfcheck_code_cannot_be_pass():
    s = Seq("chk")
    s.li(5, 1)
    with pytest.raises(InvalidExpectation):
        s.check(5, 1, PASS)


def test_selfcheck_on_scratch_register_uses_the_other_scratch():
    from rvhazard.golden import check_program
    from rvhazard.program import Program
    from rvhazard.result import verdict

    s = Seq("chk")
    s.li(28, 1)
    s.check(28, 2, 0x42)
    s.finish()
    bnes = [it for it in s.items if isinstance(it, Op) and it.mnemonic == "bne"]
    assert bnes[0].operands[:2] == (28, 29)
    report = check_program(Program(s.build()))
    v = verdict(report.regs, 31)
    assert not v.passed and v.code == 0x42
