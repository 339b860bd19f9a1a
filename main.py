#!/usr/bin/env python3
"""
loopprobe - loop discovery and loop probes for machine code procedures

Disassembles one procedure, recovers its control-flow graph, dominator tree
and natural loops, writes the graphs as Graphviz DOT files and can run the
procedure under emulation to count loop iterations.
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from loopprobe.analyzer import ProcedureAnalyzer
from loopprobe.architecture import Architecture
from loopprobe.capstone_disassembler import CapstoneDisassembler
from loopprobe.emulation.unicorn_emulator import UnicornEmulator
from loopprobe.error_handling import (
    ConfigurationError, get_error_handler, handle_gracefully,
)
from loopprobe.formatter import export_cfg_dot, export_dom_dot, format_loop_report
from loopprobe.probes import LoopCounters, plan_probes


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='loopprobe',
        description='🔁 loopprobe - control flow, dominators and loops of a machine code procedure',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
📖 EXAMPLES:

  Analyze raw procedure bytes loaded at 0x401000:
    loopprobe func.bin --base 0x401000

  Analyze hex input and write graphs:
    loopprobe --hex "b903000000 85c9 7404 ffc9 ebf8 c3" --cfg-out cfg.dot --dom-out dom.dot

  Count loop iterations by running the procedure:
    loopprobe func.bin --emulate

  Render the graphs:
    dot -Tpng cfg.dot -o cfg.png
        """
    )

    parser.add_argument(
        'file',
        nargs='?',
        type=str,
        help='Raw code bytes of one procedure'
    )

    source = parser.add_argument_group('🔍 Input Options')
    source.add_argument(
        '--hex',
        type=str,
        help='Procedure bytes as a hex string (whitespace ignored)'
    )
    source.add_argument(
        '--base',
        type=str,
        default=hex(UnicornEmulator.CODE_BASE),
        help=f'Load address of the first byte (default: {UnicornEmulator.CODE_BASE:#x})'
    )
    source.add_argument(
        '--arch',
        type=str,
        default='x86_64',
        help='Architecture: x86, x86_64, arm, arm64, mips, mips64 (default: x86_64)'
    )
    source.add_argument(
        '--mode',
        type=str,
        help='Architecture mode (e.g. thumb)'
    )
    source.add_argument(
        '--name',
        type=str,
        help='Procedure name used in the report'
    )

    output = parser.add_argument_group('💾 Output Options')
    output.add_argument(
        '--cfg-out',
        type=str,
        help='Write the control flow graph in DOT format to this file'
    )
    output.add_argument(
        '--dom-out',
        type=str,
        help='Write the dominator tree in DOT format to this file'
    )
    output.add_argument(
        '--output', '-o',
        type=str,
        help='Write the text report to this file instead of stdout'
    )

    dynamic = parser.add_argument_group('🦄 Dynamic Analysis Options')
    dynamic.add_argument(
        '--emulate',
        action='store_true',
        help='Run the procedure under Unicorn with loop probes attached (x86/x86_64)'
    )
    dynamic.add_argument(
        '--max-instructions',
        type=int,
        default=UnicornEmulator.MAX_INSTRUCTIONS,
        help=f'Instruction limit for --emulate (default: {UnicornEmulator.MAX_INSTRUCTIONS})'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )
    return parser


def read_code(args: argparse.Namespace) -> bytes:
    """Procedure bytes from --hex or the positional file"""
    if args.hex:
        try:
            return bytes.fromhex("".join(args.hex.split()))
        except ValueError as e:
            raise ConfigurationError(f"Invalid hex input: {e}", original_exception=e)
    if args.file:
        path = Path(args.file)
        if not path.is_file():
            raise ConfigurationError(
                f"Input file not found: {args.file}",
                suggestion="Check that the file path is correct and the file exists."
            )
        return path.read_bytes()
    raise ConfigurationError(
        "No input provided",
        suggestion="Pass a file with procedure bytes or use --hex."
    )


def parse_address(text: str) -> int:
    try:
        return int(text, 0)
    except ValueError as e:
        raise ConfigurationError(f"Invalid address: {text}", original_exception=e)


@handle_gracefully
def run(args: argparse.Namespace) -> int:
    code = read_code(args)
    base = parse_address(args.base)
    arch = Architecture.from_name(args.arch)

    instructions = CapstoneDisassembler(arch, args.mode).disassemble(code, base)
    analysis = ProcedureAnalyzer().analyze(instructions, name=args.name)

    report = format_loop_report(analysis)

    if args.cfg_out:
        Path(args.cfg_out).write_text(export_cfg_dot(analysis.cfg))
        print(f"📊 CFG written to {args.cfg_out}", file=sys.stderr)
    if args.dom_out:
        Path(args.dom_out).write_text(export_dom_dot(analysis.cfg))
        print(f"🌳 Dominator tree written to {args.dom_out}", file=sys.stderr)

    status = 0
    if args.emulate:
        counters = LoopCounters.for_analysis(analysis)
        emulator = UnicornEmulator(arch)
        result = emulator.run_procedure(
            code, plan_probes(analysis), counters,
            base_addr=base, max_instructions=args.max_instructions,
        )
        report += "\n" + counters.report()
        if not result.success:
            report += f"\nEmulation stopped with error at 0x{result.error_address or 0:x}: {result.error}\n"
            status = 1

    if args.output:
        Path(args.output).write_text(report)
        print(f"💾 Report written to {args.output}", file=sys.stderr)
    else:
        print(report, end="")

    return status


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the loopprobe CLI"""
    parser = build_parser()
    args = parser.parse_args(argv)
    get_error_handler(debug_mode=args.debug)
    return run(args)


if __name__ == '__main__':
    sys.exit(main())
