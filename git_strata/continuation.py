import json
import os
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Tuple

from git_strata.git_operations import FullCommitHash, LocalBranchShortName
from git_strata.utils import debug

CONTINUATION_FILE_NAME = 'strata-continue.json'


class ContinuationPhase(Enum):
    # A rebase step is about to be run; a crash at this point leaves the record behind with this phase.
    IN_PROGRESS = 'IN_PROGRESS'
    # The rebase stopped on a conflict and waits for `git strata continue`.
    CONFLICT_WAIT = 'CONFLICT_WAIT'


class ContinuationData(NamedTuple):
    phase: ContinuationPhase
    rebased_branch_base: Optional[FullCommitHash] = None
    branches_to_restack: Tuple[LocalBranchShortName, ...] = ()
    branches_to_sync: Tuple[LocalBranchShortName, ...] = ()
    current_branch_override: Optional[LocalBranchShortName] = None

    def to_json(self) -> str:
        return json.dumps({
            "phase": self.phase.value,
            "rebasedBranchBase": self.rebased_branch_base,
            "branchesToRestack": list(self.branches_to_restack),
            "branchesToSync": list(self.branches_to_sync),
            "currentBranchOverride": self.current_branch_override,
        }, indent=2)

    @staticmethod
    def from_dict(raw: Dict[str, Any]) -> "ContinuationData":
        base = raw.get("rebasedBranchBase")
        override = raw.get("currentBranchOverride")
        return ContinuationData(
            phase=ContinuationPhase(raw.get("phase", ContinuationPhase.CONFLICT_WAIT.value)),
            rebased_branch_base=FullCommitHash.of(base) if base else None,
            branches_to_restack=tuple(LocalBranchShortName.of(b) for b in raw.get("branchesToRestack") or []),
            branches_to_sync=tuple(LocalBranchShortName.of(b) for b in raw.get("branchesToSync") or []),
            current_branch_override=LocalBranchShortName.of(override) if override else None)


class ContinuationStore:
    """Durable record of an interrupted multi-branch operation; a missing file means that no operation is pending."""

    def __init__(self, path: str) -> None:
        self.path = path

    def load(self) -> Optional[ContinuationData]:
        if not os.path.isfile(self.path):
            return None
        try:
            with open(self.path) as f:
                raw = json.load(f)
            if not isinstance(raw, dict):
                raise ValueError(f"expected a JSON object, got {type(raw).__name__}")
            return ContinuationData.from_dict(raw)
        except (ValueError, TypeError) as e:
            debug(f"continuation file {self.path} is malformed ({e}), ignoring")
            return None

    def save(self, data: ContinuationData) -> None:
        debug(f"saving {data}")
        with open(self.path, 'w') as f:
            f.write(data.to_json())

    def clear(self) -> None:
        if os.path.isfile(self.path):
            debug(f"removing {self.path}")
            os.remove(self.path)
