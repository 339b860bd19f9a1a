import networkx as nx
from hypothesis import given, settings

from loopprobe.cfg_generator import CFGGenerator
from loopprobe.dominators import DominatorSolver
from strategies import programs


def solved(instructions):
    cfg = CFGGenerator().generate(instructions)
    DominatorSolver().solve(cfg)
    return cfg


def brute_force_dominators(cfg, block_id):
    """d dominates n iff n cannot be reached from the entry once d is removed"""
    if block_id == 0:
        return {0}
    result = {0, block_id}
    for candidate in range(1, len(cfg)):
        if candidate == block_id:
            continue
        pruned = cfg.graph.copy()
        pruned.remove_node(candidate)
        if block_id not in nx.descendants(pruned, 0):
            result.add(candidate)
    return result


def test_straight_line_dominates_itself(straight_line):
    cfg = solved(straight_line)

    assert cfg.root.dominators == {0}
    assert cfg.root.immediate_dominator is None


def test_if_else_join_is_dominated_only_by_entry(if_else):
    cfg = solved(if_else)

    assert [b.dominators for b in cfg] == [{0}, {0, 1}, {0, 2}, {0, 3}]
    assert [b.immediate_dominator for b in cfg] == [None, 0, 0, 0]


def test_while_loop_dominators(while_loop):
    cfg = solved(while_loop)

    assert [b.dominators for b in cfg] == [
        {0}, {0, 1}, {0, 1, 2}, {0, 1, 2, 3}, {0, 1, 2, 4}, {0, 1, 5},
    ]
    assert [b.immediate_dominator for b in cfg] == [None, 0, 1, 2, 2, 1]


def test_unreachable_block_keeps_universal_set(unreachable_block):
    cfg = solved(unreachable_block)

    assert cfg.get(1).dominators == {0, 1, 2}
    assert cfg.get(1).immediate_dominator is None
    # an unreachable predecessor does not constrain the join
    assert cfg.get(2).dominators == {0, 2}
    assert cfg.get(2).immediate_dominator == 0


def test_unreachable_cycle_gets_no_immediate_dominator(asm):
    # B1 [0x04,0x08] and B2 [0x0c] only reach each other
    cfg = solved([
        asm.jmp(0x00, 0x10),
        asm.op(0x04),
        asm.br(0x08, 0x0c),
        asm.jmp(0x0c, 0x04),
        asm.ret(0x10),
    ])

    assert len(cfg) == 4
    assert cfg.get(1).dominators == {0, 1, 2, 3}
    assert cfg.get(2).dominators == {0, 1, 2, 3}
    assert cfg.get(1).immediate_dominator is None
    assert cfg.get(2).immediate_dominator is None
    assert cfg.get(3).immediate_dominator == 0


def test_solver_counts_passes_and_keeps_bitsets(while_loop):
    solver = DominatorSolver()
    cfg = CFGGenerator().generate(while_loop)
    solver.solve(cfg)

    assert solver.passes >= 2
    assert len(solver.bitsets) == len(cfg)
    assert solver.bitsets[0] == 0b1
    assert solver.bitsets[4] == 0b10111


def test_empty_graph_is_a_no_op():
    cfg = CFGGenerator().generate([])
    solver = DominatorSolver()

    assert solver.solve(cfg) is cfg
    assert solver.passes == 0


def test_dominator_tree_and_helpers(if_else):
    cfg = solved(if_else)
    tree = DominatorSolver.dominator_tree(cfg)

    assert set(tree.edges()) == {(0, 1), (0, 2), (0, 3)}
    assert DominatorSolver.dominates(cfg, 0, 3)
    assert not DominatorSolver.dominates(cfg, 1, 3)
    assert DominatorSolver.strict_dominators(cfg, 3) == {0}


@settings(max_examples=200, deadline=None)
@given(programs())
def test_dominance_properties(instructions):
    cfg = solved(instructions)
    reachable = cfg.reachable()

    for block in cfg:
        assert block.id in block.dominators

    for b in reachable:
        doms = cfg.get(b).dominators
        assert 0 in doms
        assert doms <= reachable
        for a in doms:
            if a != b:
                assert b not in cfg.get(a).dominators
            assert cfg.get(a).dominators <= doms


@settings(max_examples=200, deadline=None)
@given(programs())
def test_immediate_dominators_form_tree_rooted_at_entry(instructions):
    cfg = solved(instructions)
    reachable = cfg.reachable()

    for block in cfg:
        if block.id == 0 or block.id not in reachable:
            assert block.immediate_dominator is None
            continue
        assert block.immediate_dominator in reachable
        seen = set()
        current = block.id
        while current != 0:
            assert current not in seen
            seen.add(current)
            current = cfg.get(current).immediate_dominator

    tree = DominatorSolver.dominator_tree(cfg)
    assert nx.is_arborescence(tree.subgraph(reachable))


@settings(max_examples=150, deadline=None)
@given(programs())
def test_matches_path_definition_and_networkx(instructions):
    cfg = solved(instructions)
    reachable = cfg.reachable()

    for b in reachable:
        assert cfg.get(b).dominators == brute_force_dominators(cfg, b)

    expected = nx.immediate_dominators(cfg.graph, 0)
    for b in reachable - {0}:
        assert cfg.get(b).immediate_dominator == expected[b]


@given(programs())
def test_solving_twice_gives_identical_sets(instructions):
    first = solved(instructions)
    second = solved(instructions)

    assert [b.dominators for b in first] == [b.dominators for b in second]
    assert [b.immediate_dominator for b in first] == [b.immediate_dominator for b in second]
