"""Control Flow Graph construction for a single procedure"""
import logging
from typing import List, Dict, Set, Optional, Tuple, Iterator
from dataclasses import dataclass, field

import networkx as nx

from loopprobe.error_handling import ErrorContext, InputError, create_error
from loopprobe.models import Instruction

logger = logging.getLogger(__name__)

FALLTHROUGH = "fallthrough"
JUMP = "jump"


@dataclass
class BasicBlock:
    """
    A maximal straight-line run of instructions with one entry and one exit.

    Links to other blocks are block ids into the owning ControlFlowGraph,
    never object references.

    Attributes:
        id: Dense id, assigned in increasing address order (0 is the entry)
        entry_address: Address of the first instruction in the block
        exit_address: Address of the last instruction in the block
        predecessors: Ids of blocks that reach this one by fall-through or jump
        dominators: Ids of all dominators, filled by the dominator solver
        immediate_dominator: Closest strict dominator, None for the entry and
            for blocks unreachable from the entry
        successor: Fall-through block id
        target: Jump/call target block id
        instructions: Instructions of the block in address order
    """
    id: int
    entry_address: int
    exit_address: int
    predecessors: Set[int] = field(default_factory=set)
    dominators: Set[int] = field(default_factory=set)
    immediate_dominator: Optional[int] = None
    successor: Optional[int] = None
    target: Optional[int] = None
    instructions: List[Instruction] = field(default_factory=list)

    def __hash__(self):
        return hash((self.id, self.entry_address))

    def __eq__(self, other):
        if not isinstance(other, BasicBlock):
            return False
        return self.id == other.id and self.entry_address == other.entry_address

    @property
    def last_instruction(self) -> Optional[Instruction]:
        return self.instructions[-1] if self.instructions else None

    def label(self) -> str:
        """Disassembly of the entry instruction, or its address"""
        if self.instructions and self.instructions[0].disassembly:
            return self.instructions[0].disassembly
        return f"{self.entry_address:#x}"


class ControlFlowGraph:
    """
    Arena of basic blocks for one analysis run.

    The graph is the only place blocks are created. Ids are handed out densely
    in creation order, which the builder guarantees is address order.
    A networkx MultiDiGraph mirrors the links; edge keys are FALLTHROUGH or
    JUMP so that a conditional branch to the next instruction keeps both edges.
    """

    def __init__(self):
        self.blocks: List[BasicBlock] = []
        self.graph = nx.MultiDiGraph()
        self._by_entry: Dict[int, int] = {}
        self._by_exit: Dict[int, int] = {}

    def __len__(self) -> int:
        return len(self.blocks)

    def __iter__(self) -> Iterator[BasicBlock]:
        return iter(self.blocks)

    @property
    def root(self) -> Optional[BasicBlock]:
        """Entry block, or None for an empty procedure"""
        return self.blocks[0] if self.blocks else None

    def get(self, block_id: int) -> BasicBlock:
        return self.blocks[block_id]

    def add_block(self, entry_address: int) -> BasicBlock:
        """Allocate the next block id for a block starting at entry_address"""
        if self.blocks and entry_address <= self.blocks[-1].exit_address:
            raise create_error(
                "address_order", InputError, context=ErrorContext(address=entry_address),
                address=entry_address, previous=self.blocks[-1].exit_address,
            )
        block = BasicBlock(
            id=len(self.blocks),
            entry_address=entry_address,
            exit_address=entry_address,
        )
        self.blocks.append(block)
        self._by_entry[entry_address] = block.id
        self._by_exit[entry_address] = block.id
        self.graph.add_node(block.id)
        return block

    def append_instruction(self, block: BasicBlock, instr: Instruction):
        """Extend block with instr, moving its exit address forward"""
        if block.instructions:
            if instr.address <= block.exit_address:
                raise create_error(
                    "address_order", InputError, context=ErrorContext(address=instr.address),
                    address=instr.address, previous=block.exit_address,
                )
            del self._by_exit[block.exit_address]
        block.instructions.append(instr)
        block.exit_address = instr.address
        self._by_exit[instr.address] = block.id

    def block_at_entry(self, address: int) -> Optional[BasicBlock]:
        block_id = self._by_entry.get(address)
        return None if block_id is None else self.blocks[block_id]

    def block_at_exit(self, address: int) -> Optional[BasicBlock]:
        block_id = self._by_exit.get(address)
        return None if block_id is None else self.blocks[block_id]

    def link_successor(self, source: int, destination: int):
        """Record the fall-through edge source -> destination"""
        self.blocks[source].successor = destination
        self.blocks[destination].predecessors.add(source)
        self.graph.add_edge(source, destination, key=FALLTHROUGH)

    def link_target(self, source: int, destination: int):
        """Record the jump/call edge source -> destination"""
        self.blocks[source].target = destination
        self.blocks[destination].predecessors.add(source)
        self.graph.add_edge(source, destination, key=JUMP)

    def reachable(self) -> Set[int]:
        """Ids of all blocks reachable from the entry block"""
        if not self.blocks:
            return set()
        return {0} | nx.descendants(self.graph, 0)

    def edge_count(self) -> int:
        return self.graph.number_of_edges()


class CFGGenerator:
    """
    Builds the block graph of one procedure from its instruction stream.

    The work is split in two passes: find_leaders() discovers block starts
    and direct jump edges, build_cfg() allocates the blocks and wires them.
    """

    def generate(self, instructions: List[Instruction]) -> ControlFlowGraph:
        """
        Run leader extraction and CFG construction.

        Args:
            instructions: Instructions of one procedure in address order

        Returns:
            ControlFlowGraph, empty when instructions is empty
        """
        leaders, jumps = self.find_leaders(instructions)
        return self.build_cfg(instructions, leaders, jumps)

    def find_leaders(self, instructions: List[Instruction]) -> Tuple[Set[int], Dict[int, int]]:
        """
        Identify block start addresses and direct branch/call edges.

        A leader is the first instruction, the instruction after a direct
        branch or call, and every direct branch/call target. Targets may point
        forwards or backwards and are not required to be inside the procedure.

        Args:
            instructions: Instructions of one procedure in address order

        Returns:
            Tuple of (leaders, jumps) where jumps maps source to target address

        Raises:
            InputError: If addresses are not strictly increasing
        """
        leaders: Set[int] = set()
        jumps: Dict[int, int] = {}
        start_of_block = True
        previous: Optional[int] = None

        for instr in instructions:
            if previous is not None and instr.address <= previous:
                raise create_error(
                    "address_order", InputError, context=ErrorContext(address=instr.address),
                    address=instr.address, previous=previous,
                )
            previous = instr.address

            if start_of_block:
                leaders.add(instr.address)
                start_of_block = False

            if instr.is_direct_branch_or_call:
                leaders.add(instr.direct_target)
                jumps[instr.address] = instr.direct_target
                start_of_block = True

        logger.debug(f"Found {len(leaders)} leaders and {len(jumps)} direct edges")
        return leaders, jumps

    def build_cfg(self, instructions: List[Instruction], leaders: Set[int],
                  jumps: Dict[int, int]) -> ControlFlowGraph:
        """
        Allocate basic blocks and wire fall-through and jump links.

        A fall-through link is only made when the previous block's last
        instruction falls through or is a call. Jump edges whose source is not
        a block exit or whose target is not a block entry are dropped; these
        come from calls or branches that leave the procedure.

        Args:
            instructions: Instructions of one procedure in address order
            leaders: Block start addresses from find_leaders()
            jumps: Source to target address map from find_leaders()

        Returns:
            ControlFlowGraph with predecessors, successor and target filled in
        """
        cfg = ControlFlowGraph()
        current: Optional[BasicBlock] = None

        for instr in instructions:
            if current is None or instr.address in leaders:
                block = cfg.add_block(instr.address)
                last = current.last_instruction if current is not None else None
                if last is not None and (last.has_fall_through or last.is_call):
                    cfg.link_successor(current.id, block.id)
                current = block
            cfg.append_instruction(current, instr)

        for source, target in sorted(jumps.items()):
            source_block = cfg.block_at_exit(source)
            target_block = cfg.block_at_entry(target)
            if source_block is None or target_block is None:
                logger.debug(f"Dropping edge 0x{source:x} -> 0x{target:x}: not a block boundary")
                continue
            cfg.link_target(source_block.id, target_block.id)

        logger.debug(f"Built CFG with {len(cfg)} blocks and {cfg.edge_count()} edges")
        return cfg
