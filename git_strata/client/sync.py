from typing import List, Sequence

from git_strata.client.restack import RestackStrataClient
from git_strata.continuation import ContinuationPhase
from git_strata.git_operations import LocalBranchShortName, RebaseResult
from git_strata.meta_cache import PullResult
from git_strata.scope import STACK
from git_strata.utils import bold, excluding, fmt


class SyncStrataClient(RestackStrataClient):

    def get_branches_from_remote(
            self,
            *,
            downstack: List[LocalBranchShortName],
            base: LocalBranchShortName,
            force: bool,
            then_restack: Sequence[LocalBranchShortName] = ()
    ) -> RebaseResult:
        """Brings the remote versions of `downstack` (listed parent first) on top of `base`.

        Each fetched branch becomes the parent of the next one, so that the whole stack is reconstructed in one pass.
        Once all branches are in, `then_restack` is restacked.
        """
        parent = base
        queue = list(downstack)
        while queue:
            branch = queue.pop(0)
            self._meta_cache.fetch_branch(branch, parent)

            if not self._meta_cache.branch_exists(branch):
                self._meta_cache.checkout_branch_from_fetched(branch, parent)
                print(f"Checked out {bold(branch)} from remote.")
            elif self._meta_cache.is_branch_tracked(branch) and self._meta_cache.branch_matches_fetched(branch):
                print(f"{bold(branch)} is up to date.")
            elif force or not self._meta_cache.is_branch_tracked(branch):
                self._meta_cache.checkout_branch_from_fetched(branch, parent)
                print(f"Overwrote {bold(branch)} with the remote version.")
            else:
                self.persist_continuation(
                    phase=ContinuationPhase.IN_PROGRESS,
                    rebased_branch_base=None,
                    branches_to_restack=then_restack,
                    branches_to_sync=queue)
                outcome = self._meta_cache.rebase_branch_onto_fetched(branch)
                if outcome.result == RebaseResult.CONFLICT:
                    self.persist_continuation(
                        phase=ContinuationPhase.CONFLICT_WAIT,
                        rebased_branch_base=outcome.rebased_branch_base,
                        branches_to_restack=then_restack,
                        branches_to_sync=queue)
                    self.print_conflict_status(branch)
                    return RebaseResult.CONFLICT
                print(f"Rebased {bold(branch)} onto the remote version.")
            parent = branch

        if then_restack:
            return self.restack_branches(list(then_restack))
        self.clear_continuation()
        return RebaseResult.DONE

    def pull_trunk(self) -> PullResult:
        trunk = self._meta_cache.trunk
        print(fmt(f"Pulling <b>{trunk}</b> from remote..."))
        result = self._meta_cache.pull_trunk()
        if result == PullResult.UNNEEDED:
            print(f"{bold(trunk)} is up to date.")
        else:
            print(f"{bold(trunk)} fast-forwarded to {self._meta_cache.get_revision(trunk)[:7]}.")
        return result

    def delete_merged_branches(self) -> List[LocalBranchShortName]:
        trunk = self._meta_cache.trunk
        deleted: List[LocalBranchShortName] = []
        for branch in self._meta_cache.get_relative_stack(trunk, STACK):
            if self._meta_cache.is_trunk(branch) or not self._meta_cache.branch_exists(branch):
                continue
            if self._meta_cache.is_merged_into_trunk(branch):
                reason = f"merged into {trunk}"
            elif self._meta_cache.is_branch_empty(branch):
                reason = "empty"
            else:
                continue
            if self._meta_cache.get_children(branch):
                print(fmt(f"Children of <b>{branch}</b> will be moved onto its parent."))
            print(fmt(f"Deleting <b>{branch}</b> ({reason})..."))
            self._meta_cache.delete_branch(branch)
            deleted.append(branch)
        if not deleted:
            print("No merged branches to delete.")
        return deleted

    def sync(self, *, restack: bool, delete_merged: bool) -> RebaseResult:
        self.pull_trunk()
        if delete_merged:
            self.delete_merged_branches()
        if not restack:
            return RebaseResult.DONE
        trunk = self._meta_cache.trunk
        return self.restack_branches(excluding(self._meta_cache.get_relative_stack(trunk, STACK), [trunk]))
