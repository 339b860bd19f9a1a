"""
Unicorn-backed execution of a procedure with loop probes attached.

The emulator plays the role of the host instrumentation engine: the probe
sites planned from a procedure's loop index become per-address code hooks,
and each hook fires the shared LoopCounters while the procedure runs.
"""

import logging
import struct
from dataclasses import dataclass, field
from typing import Optional, List, Dict

try:
    from unicorn import (
        Uc, UcError,
        UC_ARCH_X86, UC_MODE_32, UC_MODE_64,
        UC_HOOK_CODE,
        UC_HOOK_MEM_READ_UNMAPPED, UC_HOOK_MEM_WRITE_UNMAPPED,
    )
    from unicorn.x86_const import (
        UC_X86_REG_RSP, UC_X86_REG_RIP, UC_X86_REG_ESP, UC_X86_REG_EIP,
    )
    UNICORN_AVAILABLE = True
except ImportError:
    UNICORN_AVAILABLE = False

from loopprobe.architecture import Architecture
from loopprobe.error_handling import (
    ConfigurationError, EmulationError, ErrorContext, create_error,
)
from loopprobe.probes import LoopCounters, ProbeSite

logger = logging.getLogger(__name__)


@dataclass
class EmulationResult:
    """Results from running a procedure"""
    success: bool
    instructions_executed: int
    final_pc: int
    completed: bool = False  # control returned to the caller
    probes_fired: int = 0
    counters: Dict[int, Dict[str, int]] = field(default_factory=dict)
    error: Optional[str] = None
    error_address: Optional[int] = None


class UnicornEmulator:
    """
    Runs procedure code in an isolated address space.

    The procedure is entered as if it had been called: a return address
    pointing at STOP_ADDRESS is pushed, and emulation ends when control
    returns there or after max_instructions.
    """

    CODE_BASE = 0x400000
    CODE_SIZE = 0x200000  # 2MB code
    STACK_BASE = 0x7FF000
    STACK_SIZE = 0x10000  # 64KB stack
    STOP_ADDRESS = CODE_BASE + CODE_SIZE - 0x1000

    MAX_INSTRUCTIONS = 100000
    EMULATION_TIMEOUT_MS = 5000
    PAGE_SIZE = 0x1000

    def __init__(self, arch: Architecture = Architecture.X86_64):
        """
        Initialize emulator.

        Args:
            arch: X86 or X86_64

        Raises:
            EmulationError: If Unicorn is not available or setup fails
            ConfigurationError: If the architecture is not supported
        """
        if not UNICORN_AVAILABLE:
            raise EmulationError(
                "Unicorn engine is not installed",
                suggestion="Install with: pip install unicorn",
            )

        if arch == Architecture.X86_64:
            self.uc = Uc(UC_ARCH_X86, UC_MODE_64)
            self._sp, self._pc = UC_X86_REG_RSP, UC_X86_REG_RIP
        elif arch == Architecture.X86:
            self.uc = Uc(UC_ARCH_X86, UC_MODE_32)
            self._sp, self._pc = UC_X86_REG_ESP, UC_X86_REG_EIP
        else:
            raise create_error("unsupported_architecture", ConfigurationError, arch=arch.value)

        self.arch = arch
        self.ptr_size = arch.pointer_size
        self.instruction_count = 0
        self.max_instructions = self.MAX_INSTRUCTIONS
        self.probes_fired = 0
        self.last_error: Optional[str] = None
        self.error_address: Optional[int] = None

        self._setup_memory()
        self._setup_hooks()
        logger.debug(f"Initialized {arch.value} emulator")

    def _setup_memory(self):
        try:
            self.uc.mem_map(self.CODE_BASE, self.CODE_SIZE)
            stack_start = self.STACK_BASE - self.STACK_SIZE
            self.uc.mem_map(stack_start, self.STACK_SIZE)
            logger.debug(f"Mapped code 0x{self.CODE_BASE:X}, stack 0x{stack_start:X}")
        except UcError as e:
            raise EmulationError(f"Failed to setup memory: {e}", original_exception=e)

    def _setup_hooks(self):
        try:
            self.uc.hook_add(UC_HOOK_CODE, self._hook_code)
            self.uc.hook_add(
                UC_HOOK_MEM_READ_UNMAPPED | UC_HOOK_MEM_WRITE_UNMAPPED,
                self._hook_mem_invalid
            )
        except UcError as e:
            raise EmulationError(f"Failed to setup hooks: {e}", original_exception=e)

    def _hook_code(self, uc, address, size, user_data):
        self.instruction_count += 1
        if self.instruction_count >= self.max_instructions:
            logger.warning(f"Instruction limit reached ({self.max_instructions})")
            uc.emu_stop()

    def _hook_mem_invalid(self, uc, access, address, size, value, user_data):
        """Map a zeroed page on first touch of unmapped data memory"""
        page_start = address & ~(self.PAGE_SIZE - 1)
        logger.debug(f"Mapping page for access at 0x{address:X}")
        try:
            uc.mem_map(page_start, self.PAGE_SIZE)
            return True
        except UcError as e:
            self.last_error = f"Failed to map memory at 0x{address:X}: {e}"
            self.error_address = address
            logger.error(self.last_error)
            return False

    def load_code(self, code: bytes, base_addr: Optional[int] = None) -> int:
        """
        Load code into memory.

        Args:
            code: Procedure bytes
            base_addr: Load address (default: CODE_BASE)

        Returns:
            Address where code was loaded

        Raises:
            EmulationError: If the code does not fit the code region
        """
        if base_addr is None:
            base_addr = self.CODE_BASE
        if not self.CODE_BASE <= base_addr or base_addr + len(code) > self.STOP_ADDRESS:
            raise EmulationError(
                f"Code of {len(code)} bytes at 0x{base_addr:X} does not fit the code region",
                context=ErrorContext(address=base_addr),
            )
        try:
            self.uc.mem_write(base_addr, code)
            logger.debug(f"Loaded {len(code)} bytes at 0x{base_addr:X}")
            return base_addr
        except UcError as e:
            raise EmulationError(f"Failed to load code: {e}", original_exception=e)

    def attach_probes(self, sites: List[ProbeSite], counters: LoopCounters) -> List[int]:
        """
        Attach one code hook per probe site.

        Args:
            sites: Probe sites from plan_probes()
            counters: Counters the probes increment

        Returns:
            Hook handles, for detach_probes()
        """
        handles = []
        for site in sites:
            handle = self.uc.hook_add(
                UC_HOOK_CODE, self._hook_probe, (site, counters), site.address, site.address
            )
            handles.append(handle)
        logger.debug(f"Attached {len(handles)} loop probes")
        return handles

    def detach_probes(self, handles: List[int]):
        for handle in handles:
            self.uc.hook_del(handle)

    def _hook_probe(self, uc, address, size, user_data):
        site, counters = user_data
        self.probes_fired += 1
        counters.fire(site)

    def run_procedure(
        self,
        code: bytes,
        sites: List[ProbeSite],
        counters: LoopCounters,
        base_addr: Optional[int] = None,
        entry: Optional[int] = None,
        max_instructions: int = 0,
        timeout_ms: Optional[int] = None,
    ) -> EmulationResult:
        """
        Load and call a procedure with loop probes attached.

        Args:
            code: Procedure bytes
            sites: Probe sites to attach
            counters: Counters the probes increment
            base_addr: Load address (default: CODE_BASE)
            entry: Entry address (default: base_addr)
            max_instructions: Instruction limit (0 = MAX_INSTRUCTIONS)
            timeout_ms: Timeout in milliseconds (default: EMULATION_TIMEOUT_MS)

        Returns:
            EmulationResult; emulation faults are reported there, not raised
        """
        base = self.load_code(code, base_addr)
        start = base if entry is None else entry
        self.max_instructions = max_instructions or self.MAX_INSTRUCTIONS
        if timeout_ms is None:
            timeout_ms = self.EMULATION_TIMEOUT_MS

        self.instruction_count = 0
        self.probes_fired = 0
        self.last_error = None
        self.error_address = None

        stack_pointer = self.STACK_BASE - 0x1000
        fmt = '<Q' if self.ptr_size == 8 else '<I'
        self.uc.mem_write(stack_pointer, struct.pack(fmt, self.STOP_ADDRESS))
        self.uc.reg_write(self._sp, stack_pointer)

        handles = self.attach_probes(sites, counters)
        logger.info(f"Starting emulation at 0x{start:X}")
        try:
            self.uc.emu_start(
                start, self.STOP_ADDRESS,
                timeout=timeout_ms * 1000, count=self.max_instructions,
            )
            success = self.last_error is None
        except UcError as e:
            pc = self.uc.reg_read(self._pc)
            self.last_error = str(e)
            self.error_address = pc
            logger.error(f"Emulation failed at 0x{pc:X}: {e}")
            success = False
        finally:
            self.detach_probes(handles)

        final_pc = self.uc.reg_read(self._pc)
        logger.info(
            f"Emulation finished at 0x{final_pc:X}: {self.instruction_count} instructions, "
            f"{self.probes_fired} probe hits"
        )
        return EmulationResult(
            success=success,
            instructions_executed=self.instruction_count,
            final_pc=final_pc,
            completed=final_pc == self.STOP_ADDRESS,
            probes_fired=self.probes_fired,
            counters=counters.snapshot(),
            error=self.last_error,
            error_address=self.error_address,
        )
