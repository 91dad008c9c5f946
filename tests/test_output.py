import pytest

from rvhazard.golden import check_program
from rvhazard.output import (load_hex_words, parse_regdump, render_source, write_asm, write_bin,
                             write_commit_trace, write_expect, write_hex, write_regfile)
from rvhazard.program import Program
from rvhazard.programs import build_sequence


@pytest.fixture
def zba_program():
    return Program(build_sequence("zba_sh1add"))


def test_hex_is_one_word_per_line(tmp_path, zba_program):
    image = zba_program.assemble()
    path = tmp_path / "p.hex"
    write_hex(str(path), image.words)
    lines = path.read_text().splitlines()
    assert len(lines) == len(image.words)
    assert all(len(l) == 8 for l in lines)
    assert "2062a4b3" in lines
    assert load_hex_words(str(path)) == list(image.words)


def test_hex_reader_rejects_address_directives(tmp_path):
    path = tmp_path / "p.hex"
    path.write_text("@00000010\n00000013\n")
    with pytest.raises(ValueError):
        load_hex_words(str(path))


def test_bin_is_little_endian(tmp_path, zba_program):
    image = zba_program.assemble()
    path = tmp_path / "p.bin"
    write_bin(str(path), image)
    data = path.read_bytes()
    assert len(data) == 4 * len(image.words)
    assert int.from_bytes(data[:4], "little") == image.words[0]


def test_listing(tmp_path, zba_program):
    image = zba_program.assemble()
    path = tmp_path / "p.S"
    write_asm(str(path), image)
    first = path.read_text().splitlines()[0]
    assert first.startswith(f"00000000: {image.words[0]:08x}")


def test_source_keeps_labels_and_raw_forms(zba_program):
    src = render_source(zba_program)
    assert "_start:" in src
    assert "main:" in src
    assert ".insn r 0x33, 0x2, 0x10, x9, x5, x6" in src
    assert src.rstrip().endswith("jal   x0, .+0")


def test_expect_file(tmp_path, zba_program):
    path = tmp_path / "p.expect"
    write_expect(str(path), zba_program)
    text = path.read_text()
    assert "x09  0x0000000000000028  exact   extension" in text
    assert "x31  0x00000000000007ff  exact   result" in text


def test_commit_trace_and_regfile(tmp_path, zba_program):
    report = check_program(zba_program)
    trace = tmp_path / "trace.txt"
    write_commit_trace(str(trace), report.trace)
    lines = [l for l in trace.read_text().splitlines() if not l.startswith("#")]
    assert len(lines) == len(report.trace)

    regs = tmp_path / "regs.txt"
    write_regfile(str(regs), report.regs)
    assert parse_regdump(str(regs)) == dict(enumerate(report.regs))


def test_regdump_formats(tmp_path):
    path = tmp_path / "dump.txt"
    path.write_text("x9 = 0x28\nx31: 2047  # status\nnoise\nx07=0x0000_001e\n")
    assert parse_regdump(str(path)) == {9: 40, 31: 0x7FF, 7: 30}


def test_regdump_rejects_unknown_register(tmp_path):
    path = tmp_path / "dump.txt"
    path.write_text("x32 = 0x1\n")
    with pytest.raises(ValueError):
        parse_regdump(str(path))
