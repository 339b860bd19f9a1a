"""Supported instruction set architectures"""
from enum import Enum

from loopprobe.error_handling import ConfigurationError, create_error


class Architecture(Enum):
    """Supported architectures"""
    X86 = "x86"
    X86_64 = "x86_64"
    ARM = "arm"
    ARM64 = "arm64"
    MIPS = "mips"
    MIPS64 = "mips64"

    @classmethod
    def from_name(cls, name: str) -> 'Architecture':
        """Parse a command line architecture name (case-insensitive, x64 accepted)"""
        normalized = name.strip().lower().replace('-', '_')
        aliases = {'x64': 'x86_64', 'amd64': 'x86_64', 'aarch64': 'arm64', 'i386': 'x86'}
        normalized = aliases.get(normalized, normalized)
        for arch in cls:
            if arch.value == normalized:
                return arch
        raise create_error("unsupported_architecture", ConfigurationError, arch=name)

    @property
    def pointer_size(self) -> int:
        return 8 if self in (Architecture.X86_64, Architecture.ARM64, Architecture.MIPS64) else 4
