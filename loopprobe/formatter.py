"""Textual output: Graphviz descriptions of the CFG and dominator tree, loop reports"""
from typing import List

from loopprobe.analyzer import ProcedureAnalysis
from loopprobe.cfg_generator import BasicBlock, ControlFlowGraph

GRAPH_HEADER = [
    '\tgraph [fontname="fixed"];',
    '\tnode [fontname="fixed"];',
    '\tedge [fontname="fixed"];',
]


def _node(block: BasicBlock) -> str:
    label = block.label().replace("\\", "\\\\").replace('"', '\\"')
    return f'"{block.id}: {label}"'


def export_cfg_dot(cfg: ControlFlowGraph) -> str:
    """
    Export the block graph in Graphviz DOT format.

    Fall-through links are solid edges, jump/call links dotted edges.

    Args:
        cfg: Block graph to export

    Returns:
        DOT source
    """
    lines = ["digraph CFG {"]
    lines.extend(GRAPH_HEADER)

    for block in cfg:
        lines.append(f"\t{_node(block)};")

    for block in cfg:
        if block.successor is not None:
            lines.append(f"\t{_node(block)} -> {_node(cfg.get(block.successor))};")
        if block.target is not None:
            lines.append(f"\t{_node(block)} -> {_node(cfg.get(block.target))} [style=dotted];")

    lines.append("}")
    return "\n".join(lines) + "\n"


def export_dom_dot(cfg: ControlFlowGraph) -> str:
    """
    Export the immediate-dominator tree in Graphviz DOT format.

    Blocks without an immediate dominator (the entry and unreachable blocks)
    have no incoming edge.

    Args:
        cfg: Block graph annotated by DominatorSolver

    Returns:
        DOT source
    """
    lines = ["digraph DOM {"]
    lines.extend(GRAPH_HEADER)

    for block in cfg:
        lines.append(f"\t{_node(block)};")

    for block in cfg:
        if block.immediate_dominator is not None:
            lines.append(f"\t{_node(cfg.get(block.immediate_dominator))} -> {_node(block)};")

    lines.append("}")
    return "\n".join(lines) + "\n"


def format_loop_report(analysis: ProcedureAnalysis) -> str:
    """Plain text summary of the blocks and loops of one procedure"""
    cfg = analysis.cfg
    lines: List[str] = []
    lines.append("=" * 72)
    lines.append(f"PROCEDURE {analysis.name or '<anonymous>'}")
    lines.append("=" * 72)

    if analysis.is_empty:
        lines.append("No instructions.")
        return "\n".join(lines) + "\n"

    reachable = cfg.reachable()
    lines.append(f"  Basic blocks: {len(cfg)}")
    lines.append(f"  Edges: {cfg.edge_count()}")
    lines.append(f"  Unreachable blocks: {len(cfg) - len(reachable)}")
    lines.append(f"  Loops: {len(analysis.loops)}")
    lines.append("")

    lines.append("BLOCKS:")
    for block in cfg:
        idom = "-" if block.immediate_dominator is None else str(block.immediate_dominator)
        lines.append(
            f"  {block.id:>4}  0x{block.entry_address:x}-0x{block.exit_address:x}"
            f"  preds={sorted(block.predecessors)}  idom={idom}"
            f"{'' if block.id in reachable else '  (unreachable)'}"
        )
    lines.append("")

    if analysis.loops:
        lines.append("LOOPS:")
        for number, loop in enumerate(analysis.loops, 1):
            head = cfg.get(loop.head)
            lines.append(
                f"  Loop {number}: head={loop.head} (0x{head.entry_address:x}) tail={loop.tail}"
                f"{'' if loop.natural else '  [not dominated by head]'}"
            )
            lines.append(f"    Body: {sorted(loop.nodes)}")
            lines.append(f"    Exits: {sorted(loop.exits)}")
        lines.append("")

    if len(analysis.loop_index):
        lines.append("PROBE ADDRESSES:")
        for address, loop in analysis.loop_index.items():
            lines.append(f"  0x{address:x} -> loop {loop.head}<-{loop.tail}")

    return "\n".join(lines) + "\n"
