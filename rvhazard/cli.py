# cli.py
# rvhazard command line: list the named programs, generate the artifacts
# for one of them, and optionally check a register dump from the testbench.

from __future__ import annotations
import argparse
from typing import List, Optional

from .config import HALT_IDIOMS, Config
from .errors import ConfigError, EncodingError, ExecutionError, SequenceError
from .golden import check_program
from .output import (parse_regdump, write_asm, write_bin, write_commit_trace, write_expect,
                     write_hex, write_regfile, write_source)
from .program import Program
from .programs import TESTS, build_sequence
from .result import evaluate, summarize, verdict


def _int(s: str) -> int:
    return int(s, 0)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="rvhazard",
                                 description="Generate RV64 pipeline hazard test programs")
    ap.add_argument("--list", action="store_true", help="List available tests")
    ap.add_argument("--test", type=str, default="arith_basic", help="Which test to generate")
    ap.add_argument("--out", type=str, default="prog", help="Output prefix")
    ap.add_argument("--pad", type=int, default=16, help="NOP padding words after the program")
    ap.add_argument("--base", type=_int, default=None, help="Load address (default 0x0)")
    ap.add_argument("--mem-size", dest="mem_size", type=_int, default=None,
                    help="Memory size in bytes (default 0x2000)")
    ap.add_argument("--stack-top", dest="stack_top", type=_int, default=None,
                    help="Initial stack pointer (default base + mem-size)")
    ap.add_argument("--result-reg", dest="result_reg", type=_int, default=None,
                    help="Register holding the PASS/FAIL status (default 31)")
    ap.add_argument("--halt", choices=HALT_IDIOMS, default=None, help="Terminal idiom")
    ap.add_argument("--entry-label", dest="entry_label", type=str, default=None,
                    help="Label the boot code jumps to (default main)")
    ap.add_argument("--check-dump", dest="check_dump", type=str, default=None,
                    help="Register dump from the testbench to check against the expectations")
    ap.add_argument("--no-check", dest="no_check", action="store_true",
                    help="Skip the reference run (no commit trace or final regfile)")
    return ap


def check_dump(program: Program, path: str) -> bool:
    """Print per-expectation results for a hardware register dump."""
    regs = parse_regdump(path)
    findings = evaluate(program.sequence.expectations, regs)
    for f in findings:
        print(f"  {f}")
    for cat, (ok, total) in summarize(findings).items():
        print(f"  {cat.value:14s} {ok}/{total}")
    v = verdict(regs, program.cfg.result_reg)
    print(f"x{program.cfg.result_reg}: {v}")
    passed = v.passed and all(f.ok for f in findings)
    print("✓ PASS" if passed else "✗ FAIL")
    return passed


def main(argv: Optional[List[str]] = None):
    args = build_parser().parse_args(argv)

    if args.list:
        for k, (desc, _) in TESTS.items():
            print(f"{k:18s} - {desc}")
        return

    if args.test not in TESTS:
        raise SystemExit(f"Unknown --test '{args.test}'. Use --list.")
    if args.pad < 0:
        raise SystemExit(f"--pad must be >= 0, got {args.pad}")

    try:
        cfg = Config.from_args(args)
        program = Program(build_sequence(args.test, cfg), cfg)
        image = program.assemble()
    except (ConfigError, EncodingError, SequenceError) as e:
        raise SystemExit(f"{args.test}: {e}")

    report = None
    if not args.no_check:
        try:
            report = check_program(program, image=image)
        except ExecutionError as e:
            raise SystemExit(f"{args.test}: reference run failed: {e}")
        if not report.ok:
            for f in report.failures:
                print(f"  {f}")
            raise SystemExit(f"{args.test}: expectations are not architecturally consistent")

    out = image.padded(args.pad)
    if out.end > cfg.data_base:
        print(f"WARNING: padding runs into the data window (0x{out.end:x} > 0x{cfg.data_base:x})")

    write_hex(f"{args.out}.hex", out.words)
    write_bin(f"{args.out}.bin", out)
    write_asm(f"{args.out}.S", out)
    write_source(f"{args.out}.s", program)
    write_expect(f"{args.out}.expect", program)
    print(f"Wrote {args.out}.hex, {args.out}.bin, {args.out}.S, {args.out}.s, {args.out}.expect "
          f"({len(image.words)} words + {args.pad} pad)")

    if report is not None:
        write_commit_trace(f"{args.out}_commit_trace.txt", report.trace)
        write_regfile(f"{args.out}_regs.txt", report.regs)
        print(f"Reference run: {len(report.trace)} commits, wrote {args.out}_commit_trace.txt "
              f"and {args.out}_regs.txt")

    print(f"Test '{args.test}': check x{cfg.result_reg}==0x7ff for PASS")

    if args.check_dump:
        if not check_dump(program, args.check_dump):
            raise SystemExit(1)


if __name__ == "__main__":
    main()
