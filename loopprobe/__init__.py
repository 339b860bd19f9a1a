"""loopprobe: control-flow, dominator and natural-loop recovery for machine code procedures"""

from .__version__ import __version__
from .models import Instruction
from .cfg_generator import BasicBlock, ControlFlowGraph, CFGGenerator
from .dominators import DominatorSolver
from .loop_identifier import Loop, LoopAddressIndex, LoopIdentifier
from .analyzer import ProcedureAnalysis, ProcedureAnalyzer
from .probes import LoopCounters, ProbeKind, ProbeSite, plan_probes
from .error_handling import (
    LoopProbeError,
    InputError,
    AnalysisError,
    DisassemblyError,
    EmulationError,
    ConfigurationError,
)

__all__ = [
    '__version__',
    'Instruction',
    'BasicBlock',
    'ControlFlowGraph',
    'CFGGenerator',
    'DominatorSolver',
    'Loop',
    'LoopAddressIndex',
    'LoopIdentifier',
    'ProcedureAnalysis',
    'ProcedureAnalyzer',
    'LoopCounters',
    'ProbeKind',
    'ProbeSite',
    'plan_probes',
    'LoopProbeError',
    'InputError',
    'AnalysisError',
    'DisassemblyError',
    'EmulationError',
    'ConfigurationError',
]
