import pytest

from loopprobe import ProcedureAnalyzer, InputError


def test_analyze_runs_all_stages(while_loop):
    analysis = ProcedureAnalyzer().analyze(while_loop, name="count_down")

    assert analysis.name == "count_down"
    assert len(analysis.cfg) == 6
    assert analysis.cfg.get(4).dominators == {0, 1, 2, 4}
    assert [(loop.head, loop.tail) for loop in analysis.loops] == [(1, 4)]
    assert list(analysis.loop_index) == [0x04, 0x1c]
    assert analysis.loops_with_head(1) == analysis.loops
    assert analysis.loops_with_head(2) == []


def test_empty_procedure():
    analysis = ProcedureAnalyzer().analyze([])

    assert analysis.is_empty
    assert analysis.cfg.root is None
    assert analysis.loops == []
    assert len(analysis.loop_index) == 0


def test_analyzer_can_be_reused(shared_head):
    analyzer = ProcedureAnalyzer()

    first = analyzer.analyze(shared_head)
    second = analyzer.analyze(shared_head)

    assert first.cfg is not second.cfg
    assert [b.dominators for b in first.cfg] == [b.dominators for b in second.cfg]
    assert [(l.head, l.tail, l.nodes, l.exits) for l in first.loops] == \
        [(l.head, l.tail, l.nodes, l.exits) for l in second.loops]
    assert first.loop_index.items()[0][1] is not second.loop_index.items()[0][1]


def test_analyze_all_keeps_procedures_apart(if_else, while_loop):
    results = ProcedureAnalyzer().analyze_all({"branchy": if_else, "loopy": while_loop})

    assert list(results) == ["branchy", "loopy"]
    assert results["branchy"].loops == []
    assert len(results["loopy"].loops) == 1
    assert results["loopy"].name == "loopy"


def test_unordered_input_is_rejected(asm):
    with pytest.raises(InputError):
        ProcedureAnalyzer().analyze([asm.op(0x10), asm.ret(0x08)])


def test_input_error_names_the_procedure(asm):
    with pytest.raises(InputError) as excinfo:
        ProcedureAnalyzer().analyze([asm.op(0x10), asm.ret(0x08)], name="broken")

    assert excinfo.value.context.procedure == "broken"
    assert excinfo.value.context.address == 0x08
    assert "Procedure: broken" in str(excinfo.value)
