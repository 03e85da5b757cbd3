from git_strata.client.sync import SyncStrataClient
from git_strata.exceptions import NoContinuationException, StrataException
from git_strata.git_operations import RebaseResult
from git_strata.utils import bold, debug


class ContinueStrataClient(SyncStrataClient):

    def continue_(self, *, add_all: bool) -> RebaseResult:
        continuation = self._context.continuation
        if not self._git.is_rebase_in_progress():
            self.clear_continuation()
            raise NoContinuationException()

        if add_all:
            self._git.add_all()

        if not continuation or not continuation.rebased_branch_base:
            # Either the rebase has been started outside of git-strata,
            # or git-strata died between recording a step and its rebase stopping on a conflict.
            unfinished = list(continuation.branches_to_sync + continuation.branches_to_restack) if continuation else []
            self.clear_continuation()
            raise NoContinuationException('git rebase --continue', unfinished_branches=unfinished)

        outcome = self._meta_cache.continue_rebase(continuation.rebased_branch_base)
        if outcome.result == RebaseResult.CONFLICT:
            self._context.continuation_store.save(continuation)
            self.print_conflict_status(self._git.get_currently_rebased_branch_or_none())
            return RebaseResult.CONFLICT

        assert outcome.branch is not None
        print(f"Resolved rebase conflict for {bold(outcome.branch)}.")
        debug(f"resuming {continuation}")
        if continuation.branches_to_sync:
            return self.get_branches_from_remote(
                downstack=list(continuation.branches_to_sync),
                base=outcome.branch,
                force=False,
                then_restack=continuation.branches_to_restack)
        return self.restack_branches(list(continuation.branches_to_restack))

    def abort(self) -> None:
        if not self._git.is_rebase_in_progress():
            raise StrataException("No rebase in progress, nothing to abort.")
        continuation = self._context.continuation
        self._meta_cache.abort_rebase()
        self.clear_continuation()

        override = continuation.current_branch_override if continuation else None
        if override and override in self._git.get_local_branches() and self._git.get_current_branch_or_none() != override:
            self._git.checkout(override)
        print("Aborted the rebase. Branches that have already been restacked stay restacked.")
