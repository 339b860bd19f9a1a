"""Loop probe placement and thread-safe runtime counters"""
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from loopprobe.analyzer import ProcedureAnalysis
from loopprobe.loop_identifier import Loop

logger = logging.getLogger(__name__)


class ProbeKind(Enum):
    """What a probe observes"""
    ENTRY = "entry"  # an iteration started
    EXIT = "exit"    # the loop was left


@dataclass(frozen=True)
class ProbeSite:
    """A probe attached at an instruction address"""
    address: int
    kind: ProbeKind
    head: int
    loop: Loop = field(compare=False)


def plan_probes(analysis: ProcedureAnalysis) -> List[ProbeSite]:
    """
    Turn the loop address index of a procedure into probe sites.

    An address that is the entry of its mapped loop's head block gets an
    ENTRY probe; every other indexed address is an exit of that loop.

    Args:
        analysis: Result of ProcedureAnalyzer.analyze()

    Returns:
        Probe sites in address order
    """
    sites: List[ProbeSite] = []
    for address, loop in analysis.loop_index.items():
        head_address = analysis.cfg.get(loop.head).entry_address
        kind = ProbeKind.ENTRY if address == head_address else ProbeKind.EXIT
        sites.append(ProbeSite(address=address, kind=kind, head=loop.head, loop=loop))
    logger.debug(f"Planned {len(sites)} probe sites")
    return sites


class LoopCounters:
    """
    Entry and exit counters per loop head block id.

    Probes may run on any thread of the observed program, so every update
    happens under one lock. Heads passed at construction are reported with
    zero counts even if none of their probes fires.
    """

    def __init__(self, heads: Optional[Iterable[int]] = None):
        self._lock = threading.Lock()
        self._heads = set(heads or ())
        self._entries: Dict[int, int] = {}
        self._exits: Dict[int, int] = {}

    @classmethod
    def for_analysis(cls, analysis: ProcedureAnalysis) -> 'LoopCounters':
        """Counters seeded with every loop head of analysis"""
        return cls(heads=(loop.head for loop in analysis.loops))

    def record_entry(self, head: int):
        with self._lock:
            self._entries[head] = self._entries.get(head, 0) + 1

    def record_exit(self, head: int):
        with self._lock:
            self._exits[head] = self._exits.get(head, 0) + 1

    def fire(self, site: ProbeSite):
        """Probe callback for site"""
        if site.kind is ProbeKind.ENTRY:
            self.record_entry(site.head)
        else:
            self.record_exit(site.head)

    def entries(self, head: int) -> int:
        with self._lock:
            return self._entries.get(head, 0)

    def exits(self, head: int) -> int:
        with self._lock:
            return self._exits.get(head, 0)

    def snapshot(self) -> Dict[int, Dict[str, int]]:
        """Consistent copy of all counters keyed by head id"""
        with self._lock:
            heads = sorted(self._heads | set(self._entries) | set(self._exits))
            return {
                head: {
                    "entries": self._entries.get(head, 0),
                    "exits": self._exits.get(head, 0),
                }
                for head in heads
            }

    def reset(self):
        with self._lock:
            self._entries.clear()
            self._exits.clear()

    def report(self) -> str:
        """One line per loop head, as printed when the program terminates"""
        lines = ["LOOP COUNTERS:"]
        snapshot = self.snapshot()
        if not snapshot:
            lines.append("  No loop probe fired.")
        for head, counts in snapshot.items():
            lines.append(
                f"  head {head}: {counts['entries']} iterations started, "
                f"{counts['exits']} iterations completed"
            )
        return "\n".join(lines) + "\n"
