"""Natural loop identification on a dominator-annotated block graph"""
import logging
from typing import List, Dict, Set, Optional, Tuple, Iterator
from dataclasses import dataclass, field

from loopprobe.cfg_generator import ControlFlowGraph
from loopprobe.error_handling import AnalysisError, ErrorContext, create_error

logger = logging.getLogger(__name__)


@dataclass
class Loop:
    """
    One loop per back edge.

    Attributes:
        head: Block id of the back edge's target (lower address)
        tail: Block id of the back edge's source (higher address)
        nodes: Body block ids, excluding head and tail
        exits: Block ids outside the loop reached directly from a member
        natural: False when head does not dominate tail, i.e. the back edge
            jumps into a region the head does not guard
    """
    head: int
    tail: int
    nodes: Set[int] = field(default_factory=set)
    exits: Set[int] = field(default_factory=set)
    natural: bool = True

    @property
    def members(self) -> Set[int]:
        """nodes plus head and tail"""
        return self.nodes | {self.head, self.tail}


class LoopAddressIndex:
    """
    Maps instruction addresses to the loop whose head or exit block starts
    there. Probe placement reads it to decide where to attach counters.

    When two loops claim the same address the later registration wins.
    """

    def __init__(self):
        self._loops: Dict[int, Loop] = {}

    def register(self, address: int, loop: Loop):
        previous = self._loops.get(address)
        if previous is not None and previous is not loop:
            logger.debug(
                f"Address 0x{address:x}: loop {loop.head}<-{loop.tail} "
                f"replaces loop {previous.head}<-{previous.tail}"
            )
        self._loops[address] = loop

    def get(self, address: int) -> Optional[Loop]:
        return self._loops.get(address)

    def __getitem__(self, address: int) -> Loop:
        return self._loops[address]

    def __contains__(self, address: int) -> bool:
        return address in self._loops

    def __len__(self) -> int:
        return len(self._loops)

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._loops))

    def items(self) -> List[Tuple[int, Loop]]:
        return [(address, self._loops[address]) for address in sorted(self._loops)]


class LoopIdentifier:
    """
    Detects back edges and reconstructs loop bodies and exits.

    Requires a graph whose dominator sets have been filled by DominatorSolver.
    """

    def identify(self, cfg: ControlFlowGraph) -> Tuple[List[Loop], LoopAddressIndex]:
        """
        Find every loop of cfg.

        A back edge is a target link to a block with a lower id. Each one
        yields an independent Loop, so two back edges into the same head give
        two records.

        Args:
            cfg: Block graph annotated with dominators

        Returns:
            Tuple of (loops in ascending tail order, address index)

        Raises:
            AnalysisError: If the graph has not been through the dominator solver
        """
        loops: List[Loop] = []
        index = LoopAddressIndex()

        for block in cfg:
            if not block.dominators:
                raise create_error(
                    "dominators_missing", AnalysisError,
                    context=ErrorContext(block_id=block.id), block_id=block.id,
                )

        for block in cfg:
            if block.target is None or block.target >= block.id:
                continue

            loop = Loop(head=block.target, tail=block.id)
            loop.natural = loop.head in block.dominators
            loop.nodes = self._collect_body(cfg, loop.head, loop.tail)
            self._collect_exits(cfg, loop, index)
            loops.append(loop)

            logger.debug(
                f"Loop {loop.head}<-{loop.tail}: {len(loop.nodes)} body blocks, "
                f"exits {sorted(loop.exits)}"
            )

        return loops, index

    def _collect_body(self, cfg: ControlFlowGraph, head: int, tail: int) -> Set[int]:
        """
        Walk predecessors backwards from the tail.

        The walk stops at the head and at any block the head does not
        dominate; every other block reached belongs to the body.
        """
        nodes: Set[int] = set()
        visited = {tail}
        stack = sorted(cfg.get(tail).predecessors, reverse=True)

        while stack:
            current = stack.pop()
            if current in visited:
                continue
            visited.add(current)

            if current == head:
                continue
            block = cfg.get(current)
            if head not in block.dominators:
                continue

            nodes.add(current)
            stack.extend(sorted(block.predecessors - visited, reverse=True))

        return nodes

    def _collect_exits(self, cfg: ControlFlowGraph, loop: Loop, index: LoopAddressIndex):
        members = loop.members
        for block_id in sorted(members):
            block = cfg.get(block_id)
            for linked in (block.successor, block.target):
                if linked is not None and linked not in members:
                    loop.exits.add(linked)

        index.register(cfg.get(loop.head).entry_address, loop)
        for exit_id in sorted(loop.exits):
            index.register(cfg.get(exit_id).entry_address, loop)
