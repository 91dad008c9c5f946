import pytest

from rvhazard.config import Config
from rvhazard.golden import check_program
from rvhazard.isa import decode, encode
from rvhazard.program import Program
from rvhazard.programs import TESTS, build_sequence
from rvhazard.result import Category, Kind


@pytest.mark.parametrize("name", sorted(TESTS))
def test_every_program_passes_the_reference_run(name):
    p = Program(build_sequence(name))
    report = check_program(p)
    assert report.ok, [str(f) for f in report.failures]
    assert report.regs[31] == 0x7FF


@pytest.mark.parametrize("name", sorted(TESTS))
def test_every_word_reencodes(name):
    image = Program(build_sequence(name)).assemble()
    assert [encode(decode(w)) for w in image.words] == list(image.words)


@pytest.mark.parametrize("name", ["arith_basic", "load_use", "flush_branch", "zba_all"])
def test_programs_under_another_layout(name):
    cfg = Config(base=0x8000, mem_size=0x4000, result_reg=30, halt="nop-loop")
    p = Program(build_sequence(name, cfg), cfg)
    report = check_program(p)
    assert report.ok
    assert report.regs[30] == 0x7FF


def test_arith_basic_expectations():
    assert build_sequence("arith_basic").expected == {7: 30, 31: 0x7FF}


def test_zba_sh1add_expectation():
    seq = build_sequence("zba_sh1add")
    assert seq.expected[9] == 40


def test_leak_program_has_one_leak():
    seq = build_sequence("flush_branch_leak")
    kinds = [e.kind for e in seq.expectations_for(Category.CONTROL_FLUSH)]
    assert kinds == [Kind.RETAIN, Kind.LEAK]


def test_unknown_program():
    with pytest.raises(KeyError):
        build_sequence("no_such_test")
