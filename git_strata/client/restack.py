from typing import List

from git_strata.cached_meta import RebaseOutcome
from git_strata.client.base import StrataClient
from git_strata.continuation import ContinuationPhase
from git_strata.git_operations import LocalBranchShortName, RebaseResult
from git_strata.scope import ScopeSpec
from git_strata.utils import bold, debug, fmt


class RestackStrataClient(StrataClient):

    def restack_branches(self, branch_names: List[LocalBranchShortName]) -> RebaseResult:
        """Restacks the branches one by one, in the given order, stopping at the first conflict.

        The order must list every parent before its children,
        since a child can only be rebased onto the post-restack revision of its parent.
        """
        queue = list(branch_names)
        while queue:
            branch = queue.pop(0)
            if self._meta_cache.is_trunk(branch):
                print(fmt(f"<dim>{branch} is trunk, nothing to restack.</dim>"))
                continue

            self.persist_continuation(phase=ContinuationPhase.IN_PROGRESS, rebased_branch_base=None, branches_to_restack=queue)
            outcome: RebaseOutcome = self._meta_cache.restack_branch(branch)
            if outcome.result == RebaseResult.CONFLICT:
                self.persist_continuation(
                    phase=ContinuationPhase.CONFLICT_WAIT,
                    rebased_branch_base=outcome.rebased_branch_base,
                    branches_to_restack=queue)
                self.print_conflict_status(branch)
                return RebaseResult.CONFLICT
            if outcome.result == RebaseResult.UNNEEDED:
                print(f"{bold(branch)} does not need to be restacked.")
            else:
                self.print_restacked(branch)

        debug("restack queue drained")
        self.clear_continuation()
        return RebaseResult.DONE

    def restack(self, *, branch: LocalBranchShortName, scope: ScopeSpec) -> RebaseResult:
        return self.restack_branches(self._meta_cache.get_relative_stack(branch, scope))

    def rebase_interactive(self, *, branch: LocalBranchShortName) -> RebaseResult:
        self.persist_continuation(phase=ContinuationPhase.IN_PROGRESS, rebased_branch_base=None, branches_to_restack=[])
        outcome = self._meta_cache.rebase_interactive(branch)
        if outcome.result == RebaseResult.CONFLICT:
            self.persist_continuation(
                phase=ContinuationPhase.CONFLICT_WAIT,
                rebased_branch_base=outcome.rebased_branch_base,
                branches_to_restack=[])
            self.print_conflict_status(branch)
            return RebaseResult.CONFLICT
        self.clear_continuation()
        return RebaseResult.DONE
