"""
Board Diagnostics - counters for the recoverable hazards of the sync engine

Nothing here is surfaced to the operator; it exists so stale results,
coerced statuses and recovered moves stay observable.
"""

from dataclasses import dataclass, asdict, fields
from typing import Dict


@dataclass
class BoardDiagnostics:
    """Running counters for one board session"""
    polls_started: int = 0
    polls_committed: int = 0
    polls_failed: int = 0
    not_modified: int = 0
    stale_results_discarded: int = 0
    unknown_statuses: int = 0
    invalid_records: int = 0
    missing_item_recoveries: int = 0
    abandoned_moves: int = 0
    duplicate_creations: int = 0
    write_backs_sent: int = 0
    write_back_failures: int = 0
    field_updates_sent: int = 0
    field_update_failures: int = 0
    auth_failures: int = 0

    def record(self, counter: str, amount: int = 1) -> None:
        setattr(self, counter, getattr(self, counter) + amount)

    def reset(self) -> None:
        for f in fields(self):
            setattr(self, f.name, 0)

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)
