"""Per-procedure analysis pipeline: CFG, dominators, loops"""
import logging
from dataclasses import dataclass, field
from typing import List, Dict, Optional

from loopprobe.cfg_generator import CFGGenerator, ControlFlowGraph
from loopprobe.dominators import DominatorSolver
from loopprobe.error_handling import LoopProbeError
from loopprobe.loop_identifier import Loop, LoopAddressIndex, LoopIdentifier
from loopprobe.models import Instruction

logger = logging.getLogger(__name__)


@dataclass
class ProcedureAnalysis:
    """Everything recovered for one procedure"""
    name: Optional[str]
    cfg: ControlFlowGraph
    loops: List[Loop] = field(default_factory=list)
    loop_index: LoopAddressIndex = field(default_factory=LoopAddressIndex)

    @property
    def is_empty(self) -> bool:
        return len(self.cfg) == 0

    def loops_with_head(self, head: int) -> List[Loop]:
        return [loop for loop in self.loops if loop.head == head]


class ProcedureAnalyzer:
    """
    Runs the four stages in order on one procedure.

    Each call allocates its own graph, bit vectors and loop records, so an
    analyzer can be reused and separate procedures never share state.
    """

    def __init__(self):
        self.cfg_generator = CFGGenerator()
        self.loop_identifier = LoopIdentifier()

    def analyze(self, instructions: List[Instruction], name: Optional[str] = None) -> ProcedureAnalysis:
        """
        Analyze one procedure.

        Args:
            instructions: Instructions in strictly increasing address order
            name: Optional procedure name used in logs and reports

        Returns:
            ProcedureAnalysis; empty graph and no loops for an empty procedure

        Raises:
            InputError: If the instruction stream violates its ordering contract;
                the error context names the procedure
        """
        label = name or "<anonymous>"
        try:
            cfg = self.cfg_generator.generate(instructions)
            if len(cfg) == 0:
                logger.debug(f"Procedure {label} is empty")
                return ProcedureAnalysis(name=name, cfg=cfg)

            solver = DominatorSolver()
            solver.solve(cfg)
            loops, index = self.loop_identifier.identify(cfg)
        except LoopProbeError as e:
            if e.context.procedure is None:
                e.context.procedure = name
            raise

        logger.info(
            f"Procedure {label}: {len(cfg)} blocks, {len(loops)} loops, "
            f"{len(cfg) - len(cfg.reachable())} unreachable blocks"
        )
        return ProcedureAnalysis(name=name, cfg=cfg, loops=loops, loop_index=index)

    def analyze_all(self, procedures: Dict[str, List[Instruction]]) -> Dict[str, ProcedureAnalysis]:
        """
        Analyze several procedures independently.

        Args:
            procedures: Procedure name to instruction list

        Returns:
            Procedure name to ProcedureAnalysis, in input order
        """
        return {name: self.analyze(instructions, name=name)
                for name, instructions in procedures.items()}
