"""Core data models for loopprobe"""
from dataclasses import dataclass
from typing import Optional

from loopprobe.error_handling import InputError, create_error


@dataclass(frozen=True)
class Instruction:
    """
    A single machine instruction of a procedure, as delivered by the
    instruction-stream collaborator.

    Only the control-flow facts below take part in the analysis. The
    disassembly text is carried along for graph labels.
    """
    address: int
    is_direct_branch_or_call: bool = False
    direct_target: Optional[int] = None  # present iff branch/call
    has_fall_through: bool = True        # execution may continue at the next address
    is_call: bool = False
    disassembly: Optional[str] = None
    size: int = 1

    def __post_init__(self):
        if self.is_direct_branch_or_call and self.direct_target is None:
            raise create_error("missing_target", InputError, address=self.address)
        if not self.is_direct_branch_or_call and self.direct_target is not None:
            raise create_error("unexpected_target", InputError, address=self.address)

    def __str__(self):
        if self.disassembly:
            return self.disassembly
        return f"{self.address:#x}"
