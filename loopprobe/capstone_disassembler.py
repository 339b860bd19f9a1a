"""Capstone-backed instruction stream for procedure analysis"""
import logging
from typing import List, Optional, Tuple

try:
    from capstone import (
        Cs, CsError,
        CS_ARCH_X86, CS_ARCH_ARM, CS_ARCH_ARM64, CS_ARCH_MIPS,
        CS_MODE_32, CS_MODE_64, CS_MODE_ARM, CS_MODE_THUMB,
        CS_MODE_MIPS32, CS_MODE_MIPS64,
        CS_GRP_JUMP, CS_GRP_CALL, CS_GRP_RET, CS_GRP_IRET,
        CS_OP_IMM,
    )
    CAPSTONE_AVAILABLE = True
except ImportError:
    CAPSTONE_AVAILABLE = False

from loopprobe.architecture import Architecture
from loopprobe.error_handling import DisassemblyError, ErrorContext, create_error
from loopprobe.models import Instruction

logger = logging.getLogger(__name__)


# Jumps that never continue at the next instruction
UNCONDITIONAL_JUMPS = {
    Architecture.X86: {'jmp', 'ljmp'},
    Architecture.X86_64: {'jmp', 'ljmp'},
    Architecture.ARM: {'b', 'bx'},
    Architecture.ARM64: {'b', 'br'},
    Architecture.MIPS: {'j', 'jr', 'b'},
    Architecture.MIPS64: {'j', 'jr', 'b'},
}

HALTING = {'hlt', 'ud2', 'udf', 'brk'}


class CapstoneDisassembler:
    """
    Decodes raw procedure bytes into Instruction records.

    Each record carries the control-flow facts the analysis needs: whether the
    instruction is a direct branch or call, its immediate target, whether it
    falls through to the next address and whether it is a call.
    """

    def __init__(self, arch: Architecture, mode: Optional[str] = None):
        """
        Initialize Capstone for arch.

        Args:
            arch: Target architecture
            mode: Optional mode string ("thumb" for ARM)

        Raises:
            DisassemblyError: If Capstone is not available or initialization fails
        """
        if not CAPSTONE_AVAILABLE:
            raise DisassemblyError(
                "Capstone library is not installed",
                suggestion="Install with: pip install capstone",
            )

        self.arch = arch
        try:
            cs_arch, cs_mode = self._get_capstone_arch_mode(arch, mode)
            self._cs = Cs(cs_arch, cs_mode)
            self._cs.detail = True
        except CsError as e:
            raise DisassemblyError(f"Failed to initialize Capstone: {e}", original_exception=e)

    def _get_capstone_arch_mode(self, arch: Architecture, mode: Optional[str]) -> Tuple[int, int]:
        if arch == Architecture.X86:
            return (CS_ARCH_X86, CS_MODE_32)
        elif arch == Architecture.X86_64:
            return (CS_ARCH_X86, CS_MODE_64)
        elif arch == Architecture.ARM:
            if mode and mode.lower() == "thumb":
                return (CS_ARCH_ARM, CS_MODE_THUMB)
            return (CS_ARCH_ARM, CS_MODE_ARM)
        elif arch == Architecture.ARM64:
            return (CS_ARCH_ARM64, CS_MODE_ARM)
        elif arch == Architecture.MIPS:
            return (CS_ARCH_MIPS, CS_MODE_MIPS32)
        elif arch == Architecture.MIPS64:
            return (CS_ARCH_MIPS, CS_MODE_MIPS64)
        raise create_error("unsupported_architecture", DisassemblyError, arch=arch)

    def disassemble(self, code: bytes, address: int, count: int = 0) -> List[Instruction]:
        """
        Disassemble one procedure.

        Decoding stops at the first byte sequence Capstone cannot decode; a
        procedure is expected to be contiguous code.

        Args:
            code: Raw bytes of the procedure
            address: Address of the first byte
            count: Maximum number of instructions (0 = all)

        Returns:
            Instructions in address order

        Raises:
            DisassemblyError: If Capstone fails
        """
        if not code:
            return []

        instructions: List[Instruction] = []
        try:
            for cs_insn in self._cs.disasm(code, address, count):
                instructions.append(self._convert(cs_insn))
        except CsError as e:
            raise DisassemblyError(
                f"Disassembly failed: {e}",
                context=ErrorContext(address=address),
                original_exception=e,
            )

        decoded = sum(insn.size for insn in instructions)
        if decoded < len(code) and count == 0:
            logger.warning(
                f"Stopped decoding at 0x{address + decoded:x}: "
                f"{len(code) - decoded} trailing bytes not decoded"
            )
        return instructions

    def _convert(self, cs_insn) -> Instruction:
        is_jump = cs_insn.group(CS_GRP_JUMP)
        is_call = cs_insn.group(CS_GRP_CALL)
        target = self._direct_target(cs_insn) if (is_jump or is_call) else None
        disassembly = f"{cs_insn.mnemonic} {cs_insn.op_str}".strip()

        return Instruction(
            address=cs_insn.address,
            is_direct_branch_or_call=target is not None,
            direct_target=target,
            has_fall_through=self._has_fall_through(cs_insn, is_jump),
            is_call=bool(is_call),
            disassembly=disassembly,
            size=cs_insn.size,
        )

    def _direct_target(self, cs_insn) -> Optional[int]:
        """Immediate target of a branch or call, None for indirect transfers"""
        for operand in cs_insn.operands:
            if operand.type == CS_OP_IMM:
                return operand.imm
        return None

    def _has_fall_through(self, cs_insn, is_jump: bool) -> bool:
        mnemonic = cs_insn.mnemonic.lower()
        if cs_insn.group(CS_GRP_RET) or cs_insn.group(CS_GRP_IRET):
            return False
        if mnemonic in HALTING:
            return False
        if is_jump and mnemonic in UNCONDITIONAL_JUMPS[self.arch]:
            return False
        return True

    def get_architecture(self) -> Architecture:
        return self.arch


def create_disassembler(arch: Architecture, mode: Optional[str] = None) -> CapstoneDisassembler:
    """Factory function to create a CapstoneDisassembler instance"""
    return CapstoneDisassembler(arch, mode)
