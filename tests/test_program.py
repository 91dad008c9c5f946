import pytest

from rvhazard.boot import START_LABEL, boot_preamble
from rvhazard.config import Config
from rvhazard.errors import ConfigError, DuplicateLabel, ImageOverflow
from rvhazard.insn import Label, Op
from rvhazard.isa import decode, encode
from rvhazard.program import Program
from rvhazard.sequence import Seq


def simple(cfg=None):
    s = Seq("p", cfg=cfg)
    s.li(5, 10)
    s.beq(0, 0, "over")
    s.nop()
    s.label("over")
    s.finish()
    return s.build()


def test_boot_preamble():
    items = boot_preamble(Config())
    assert items[0] == Label(START_LABEL)
    assert items[1] == Op("lui", (2, 0x2))
    assert items[-1] == Op("jal", (0, "main"))


def test_boot_never_touches_result_register():
    for it in boot_preamble(Config(stack_top=0x1230)):
        if isinstance(it, Op):
            assert it.operands[0] != 31


def test_layout_and_labels():
    image = Program(simple()).assemble()
    assert image.labels["_start"] == 0
    assert image.labels["main"] == 8
    assert image.labels["over"] == image.labels["main"] + 12
    assert image.words[1] == encode(Op("jal", (0, 4)))
    assert image.words[3] == encode(Op("beq", (0, 0, 8)))
    assert image.text[-1].endswith("# terminal")
    assert image.terminal_pc == image.end - 4


def test_load_address():
    cfg = Config(base=0x1000, mem_size=0x1000)
    image = Program(simple(cfg), cfg).assemble()
    assert image.entry == 0x1000
    assert image.labels["main"] == 0x1008
    assert image.to_bytes()[:4] == image.words[0].to_bytes(4, "little")


def test_words_decode_and_reencode():
    image = Program(simple()).assemble()
    for w in image.words:
        assert encode(decode(w)) == w


def test_result_register_mismatch():
    with pytest.raises(ConfigError):
        Program(simple(Config(result_reg=30)), Config())


def test_entry_label_collision():
    s = Seq("p")
    s.label("main")
    s.finish()
    with pytest.raises(DuplicateLabel):
        Program(s.build()).assemble()


def test_image_overflow():
    cfg = Config(mem_size=0x10)
    with pytest.raises(ImageOverflow):
        Program(simple(cfg), cfg).assemble()


def test_padding():
    image = Program(simple()).assemble()
    padded = image.padded(4)
    assert padded.words[:len(image.words)] == image.words
    assert padded.words[len(image.words):] == (0x00000013,) * 4
    assert padded.terminal_pc == image.terminal_pc


@pytest.mark.parametrize("kwargs", [
    dict(base=2),
    dict(mem_size=0),
    dict(stack_top=0x3000),
    dict(stack_top=0x1FF8),
    dict(result_reg=0),
    dict(result_reg=2),
    dict(halt="wfi"),
    dict(entry_label=""),
    dict(scratch=(28, 28)),
    dict(scratch=(31, 29)),
])
def test_config_errors(kwargs):
    with pytest.raises(ConfigError):
        Config(**kwargs)


def test_stack_top_default():
    assert Config().stack_top == 0x2000
    assert Config(base=0x100, mem_size=0x100).stack_top == 0x200


def test_code_may_not_reach_the_data_window():
    from rvhazard.programs import build_sequence

    cfg = Config(mem_size=0x140)
    assert cfg.data_base == 0x40
    with pytest.raises(ImageOverflow, match="data window"):
        Program(build_sequence("load_use_chain", cfg), cfg).assemble()


def test_data_window_below_base():
    cfg = Config(base=0x1000, mem_size=0x80)
    assert cfg.data_base < cfg.base
    with pytest.raises(ImageOverflow):
        Program(simple(cfg), cfg).assemble()
