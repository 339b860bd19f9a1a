from loopprobe import ProcedureAnalyzer
from loopprobe.formatter import export_cfg_dot, export_dom_dot, format_loop_report
from loopprobe.models import Instruction


def test_cfg_dot_edges(if_else):
    dot = export_cfg_dot(ProcedureAnalyzer().analyze(if_else).cfg)

    assert dot.startswith("digraph CFG {\n")
    assert dot.endswith("}\n")
    assert '\t"0: 0x0";' in dot
    assert '"0: 0x0" -> "1: 0x8";' in dot
    assert '"0: 0x0" -> "2: 0x10" [style=dotted];' in dot
    assert '"1: 0x8" -> "3: 0x14" [style=dotted];' in dot
    assert '"2: 0x10" -> "3: 0x14";' in dot
    assert dot.count("->") == 4


def test_dom_dot_edges(if_else):
    dot = export_dom_dot(ProcedureAnalyzer().analyze(if_else).cfg)

    assert dot.startswith("digraph DOM {\n")
    assert '"0: 0x0" -> "1: 0x8";' in dot
    assert '"0: 0x0" -> "2: 0x10";' in dot
    assert '"0: 0x0" -> "3: 0x14";' in dot
    assert dot.count("->") == 3


def test_dom_dot_skips_unreachable_block(unreachable_block):
    dot = export_dom_dot(ProcedureAnalyzer().analyze(unreachable_block).cfg)

    assert '"1: 0x8";' in dot
    assert '-> "1: 0x8"' not in dot


def test_labels_are_escaped():
    cfg = ProcedureAnalyzer().analyze([Instruction(0x10, disassembly='db "a"')]).cfg

    assert '"0: db \\"a\\""' in export_cfg_dot(cfg)


def test_loop_report(while_loop):
    report = format_loop_report(ProcedureAnalyzer().analyze(while_loop, name="count_down"))

    assert "PROCEDURE count_down" in report
    assert "  Basic blocks: 6" in report
    assert "  Loops: 1" in report
    assert "  Loop 1: head=1 (0x4) tail=4" in report
    assert "    Body: [2, 3]" in report
    assert "    Exits: [5]" in report
    assert "  0x1c -> loop 1<-4" in report


def test_loop_report_flags_unnatural_loops(jump_into_loop):
    report = format_loop_report(ProcedureAnalyzer().analyze(jump_into_loop))

    assert "PROCEDURE <anonymous>" in report
    assert "[not dominated by head]" in report


def test_loop_report_for_empty_procedure():
    report = format_loop_report(ProcedureAnalyzer().analyze([], name="stub"))

    assert "No instructions." in report
    assert "BLOCKS:" not in report
