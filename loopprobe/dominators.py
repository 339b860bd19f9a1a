"""Dominator computation over the block graph of one procedure"""
import logging
from typing import List, Set, Iterator

import networkx as nx

from loopprobe.cfg_generator import ControlFlowGraph

logger = logging.getLogger(__name__)


def _bits(value: int) -> Iterator[int]:
    """Yield the indices of the set bits of value in ascending order"""
    index = 0
    while value:
        if value & 1:
            yield index
        value >>= 1
        index += 1


class DominatorSolver:
    """
    Iterative dominator solver.

    Every block's dominator set is a Python int used as an N-bit vector, so
    the meet over predecessors is a chain of bitwise ANDs. Block 0 starts at
    {0}, every other block at the universal set, and passes in ascending id
    order shrink the sets until a pass changes nothing:

        dom(i) = {i} | AND(dom(p) for p in preds(i))

    A block without predecessors keeps the universal set. The fixpoint is the
    same for any visiting order; the order only affects the pass count.
    """

    def __init__(self):
        self.passes = 0
        self.bitsets: List[int] = []

    def solve(self, cfg: ControlFlowGraph) -> ControlFlowGraph:
        """
        Fill dominators and immediate_dominator of every block in cfg.

        Args:
            cfg: Completed block graph

        Returns:
            The same graph, annotated
        """
        count = len(cfg)
        self.passes = 0
        self.bitsets = []
        if count == 0:
            return cfg

        universe = (1 << count) - 1
        dom = [universe] * count
        dom[0] = 1
        predecessors = [sorted(block.predecessors) for block in cfg]

        changed = True
        while changed:
            changed = False
            self.passes += 1
            for i in range(1, count):
                meet = universe
                for pred in predecessors[i]:
                    meet &= dom[pred]
                new = meet | (1 << i)
                if new != dom[i]:
                    dom[i] = new
                    changed = True

        logger.debug(f"Dominator fixpoint reached after {self.passes} passes over {count} blocks")

        for block in cfg:
            block.dominators = set(_bits(dom[block.id]))
            block.immediate_dominator = None

        self._assign_immediate_dominators(cfg, dom)
        self.bitsets = dom
        return cfg

    def _assign_immediate_dominators(self, cfg: ControlFlowGraph, dom: List[int]):
        # Blocks without a path from the entry keep the universal set; they
        # get no immediate dominator.
        reachable = cfg.reachable()
        for i in range(1, len(cfg)):
            if i not in reachable:
                continue
            strict = dom[i] & ~(1 << i)
            for candidate in _bits(strict):
                if strict & ~dom[candidate] == 0:
                    cfg.get(i).immediate_dominator = candidate
                    break

    @staticmethod
    def dominates(cfg: ControlFlowGraph, dominator: int, block_id: int) -> bool:
        """True if block dominator dominates block block_id"""
        return dominator in cfg.get(block_id).dominators

    @staticmethod
    def strict_dominators(cfg: ControlFlowGraph, block_id: int) -> Set[int]:
        return cfg.get(block_id).dominators - {block_id}

    @staticmethod
    def dominator_tree(cfg: ControlFlowGraph) -> nx.DiGraph:
        """
        Immediate-dominator tree of a solved graph.

        Unreachable blocks appear as isolated nodes.
        """
        tree = nx.DiGraph()
        for block in cfg:
            tree.add_node(block.id)
            if block.immediate_dominator is not None:
                tree.add_edge(block.immediate_dominator, block.id)
        return tree
