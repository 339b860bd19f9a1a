"""Emulation package: running procedures with loop probes attached"""

from .unicorn_emulator import UnicornEmulator, EmulationResult, UNICORN_AVAILABLE

__all__ = ['UnicornEmulator', 'EmulationResult', 'UNICORN_AVAILABLE']
