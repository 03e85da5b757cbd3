import sys
from typing import Optional, Sequence

from git_strata.context import StrataContext
from git_strata.continuation import ContinuationData, ContinuationPhase
from git_strata.git_operations import FullCommitHash, LocalBranchShortName
from git_strata.utils import bold, debug, fmt


class StrataClient:

    def __init__(self, context: StrataContext) -> None:
        self._context: StrataContext = context
        self._git = context.git
        self._meta_cache = context.meta_cache

    def persist_continuation(
            self,
            *,
            phase: ContinuationPhase,
            rebased_branch_base: Optional[FullCommitHash],
            branches_to_restack: Sequence[LocalBranchShortName],
            branches_to_sync: Sequence[LocalBranchShortName] = ()
    ) -> None:
        # The branch the user was on when the operation started, as the checkout itself may be mid-rebase.
        data = ContinuationData(
            phase=phase,
            rebased_branch_base=rebased_branch_base,
            branches_to_restack=tuple(branches_to_restack),
            branches_to_sync=tuple(branches_to_sync),
            current_branch_override=self._meta_cache.current_branch)
        self._context.continuation_store.save(data)
        self._context.continuation = data

    def clear_continuation(self) -> None:
        debug("operation complete, clearing continuation")
        self._context.continuation_store.clear()
        self._context.continuation = None

    def print_conflict_status(self, branch: Optional[LocalBranchShortName]) -> None:
        print(fmt(f"Hit conflict restacking <b>{branch}</b>." if branch else "Hit conflict while rebasing."), file=sys.stderr)
        unmerged_files = self._git.get_unmerged_files()
        if unmerged_files:
            print("\nUnmerged files:", file=sys.stderr)
            for path in unmerged_files:
                print(f"    {path}", file=sys.stderr)
        print(fmt("\nResolve the conflicts, stage the files and run `git strata continue`,\n"
                  "or run `git strata abort` to stop."), file=sys.stderr)

    def print_restacked(self, branch: LocalBranchShortName) -> None:
        print(f"Restacked {bold(branch)}.")
