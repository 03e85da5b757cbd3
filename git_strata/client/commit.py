from typing import Optional

from git_strata.client.restack import RestackStrataClient
from git_strata.exceptions import NoStagedChangesException
from git_strata.git_operations import RebaseResult
from git_strata.scope import UPSTACK_EXCLUSIVE
from git_strata.utils import fmt


class CommitStrataClient(RestackStrataClient):
    """Commit-level edits of the current branch; the branches stacked on top of it are restacked afterwards."""

    def __restack_upstack(self) -> RebaseResult:
        branch = self._meta_cache.current_branch_precondition
        if not self._meta_cache.get_children(branch):
            return RebaseResult.DONE
        return self.restack(branch=branch, scope=UPSTACK_EXCLUSIVE)

    def commit_create(self, *, message: Optional[str], all_: bool, patch: bool) -> RebaseResult:
        if not all_ and not patch and not self._git.detect_staged_changes():
            raise NoStagedChangesException()
        self._meta_cache.commit(message=message, all_=all_, patch=patch)
        return self.__restack_upstack()

    def commit_amend(self, *, message: Optional[str], no_edit: bool, all_: bool) -> RebaseResult:
        self._meta_cache.commit(message=message, amend=True, no_edit=no_edit, all_=all_)
        return self.__restack_upstack()

    def squash(self, *, message: Optional[str], no_edit: bool) -> RebaseResult:
        branch = self._meta_cache.current_branch_precondition
        commit_count = len(self._meta_cache.get_all_commits(branch))
        if commit_count == 1:
            print(fmt(f"<b>{branch}</b> has exactly one commit, nothing to squash."))
            return RebaseResult.UNNEEDED
        self._meta_cache.squash_current_branch(message=message, no_edit=no_edit)
        print(fmt(f"Squashed {commit_count} commits of <b>{branch}</b>."))
        return self.__restack_upstack()
