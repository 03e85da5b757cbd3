from typing import List, Optional

from git_strata.client.restack import RestackStrataClient
from git_strata.exceptions import (BadTrunkOperationException,
                                   PreconditionsFailedException)
from git_strata.git_operations import LocalBranchShortName, RebaseResult
from git_strata.scope import UPSTACK, UPSTACK_EXCLUSIVE
from git_strata.utils import bold, debug, excluding, fmt


class BranchStrataClient(RestackStrataClient):

    def create(self, *, branch: LocalBranchShortName, message: Optional[str], all_: bool, insert: bool) -> RebaseResult:
        parent = self._meta_cache.current_branch_precondition
        siblings = self._meta_cache.get_children(parent)
        if all_:
            self._git.add_all()

        self._meta_cache.checkout_new_branch(branch)
        if self._git.detect_staged_changes():
            self._meta_cache.commit(message=message)
        elif message:
            print(fmt("No staged changes, the branch has been created <b>without a commit</b>."))
        print(fmt(f"Created <b>{branch}</b> on top of <b>{parent}</b>."))

        if not insert:
            return RebaseResult.DONE
        for sibling in siblings:
            self._meta_cache.set_parent(sibling, branch)
            print(fmt(f"Moved <b>{sibling}</b> onto <b>{branch}</b>."))
        return self.restack(branch=branch, scope=UPSTACK_EXCLUSIVE)

    def track(self, *, branch: LocalBranchShortName, parent: LocalBranchShortName) -> None:
        self._meta_cache.track_branch(branch, parent)
        print(fmt(f"Tracked <b>{branch}</b> with parent <b>{parent}</b>."))

    def untrack(self, *, branch: LocalBranchShortName) -> None:
        self._meta_cache.untrack_branch(branch)
        print(fmt(f"Stopped tracking <b>{branch}</b>."))

    def move(self, *, branch: LocalBranchShortName, onto: LocalBranchShortName) -> RebaseResult:
        self._meta_cache.set_parent(branch, onto)
        print(fmt(f"Moved <b>{branch}</b> onto <b>{onto}</b>."))
        return self.restack(branch=branch, scope=UPSTACK)

    def rename(self, *, new_branch: LocalBranchShortName) -> None:
        old_branch = self._meta_cache.current_branch_precondition
        self._meta_cache.rename_current_branch(new_branch)
        print(fmt(f"Renamed <b>{old_branch}</b> to <b>{new_branch}</b>."))

    def fold(self, *, keep: bool) -> RebaseResult:
        branch = self._meta_cache.current_branch_precondition
        parent = self._meta_cache.get_parent_precondition(branch)
        self._meta_cache.fold_current_branch(keep)
        if keep:
            print(fmt(f"Folded <b>{parent}</b> into <b>{branch}</b>."))
        else:
            print(fmt(f"Folded <b>{branch}</b> into <b>{parent}</b>."))
        current_branch = self._meta_cache.current_branch_precondition
        return self.restack(branch=current_branch, scope=UPSTACK_EXCLUSIVE)

    def split(self, *, branch_names: List[LocalBranchShortName], points: List[int]) -> None:
        """Splits the current branch into `branch_names` (oldest first).

        `points` select the commits that become branch heads, as offsets from the current branch's head (`0` being the head).
        """
        branch = self._meta_cache.current_branch_precondition
        if self._meta_cache.is_trunk(branch):
            raise BadTrunkOperationException()
        commits = self._meta_cache.get_all_commits(branch)
        if len(branch_names) != len(points):
            raise PreconditionsFailedException(
                f"Got {len(branch_names)} branch name(s) but {len(points)} split point(s).")
        if len(set(branch_names)) != len(branch_names):
            raise PreconditionsFailedException("Branch names must be unique.")
        if len(set(points)) != len(points):
            raise PreconditionsFailedException("Split points must be unique.")
        if 0 not in points:
            raise PreconditionsFailedException(f"Split points must include `0`, i.e. the head of <b>{branch}</b>.")
        out_of_range = [p for p in points if p < 0 or p >= len(commits)]
        if out_of_range:
            raise PreconditionsFailedException(
                f"Split point(s) {', '.join(map(str, out_of_range))} out of range: "
                f"<b>{branch}</b> has {len(commits)} commit(s).")
        for name in excluding(branch_names, [branch]):
            if self._meta_cache.branch_exists(name):
                raise PreconditionsFailedException(f"Branch <b>{name}</b> already exists.")

        debug(f"splitting {branch} into {branch_names} at {points}")
        # The branch itself might be force-updated below, so HEAD must not point to it.
        self._meta_cache.detach()
        self._meta_cache.apply_split_to_commits(branch, branch_names, sorted(points))
        print(fmt(f"Split <b>{branch}</b> into " + ", ".join(map(bold, branch_names)) + "."))

    def delete(self, *, branch: LocalBranchShortName, force: bool) -> None:
        if self._meta_cache.is_trunk(branch):
            raise BadTrunkOperationException()
        if not force and not self._meta_cache.is_merged_into_trunk(branch) and not self._meta_cache.is_branch_empty(branch):
            raise PreconditionsFailedException(
                f"Branch <b>{branch}</b> is neither merged into <b>{self._meta_cache.trunk}</b> nor empty.\n"
                "Use `--force` to delete it anyway.")
        children = self._meta_cache.get_children(branch)
        self._meta_cache.delete_branch(branch)
        print(fmt(f"Deleted <b>{branch}</b>."))
        if children:
            print(fmt("Moved " + ", ".join(map(bold, children)) + " onto its parent."))

    def checkout(self, *, branch: LocalBranchShortName) -> None:
        self._meta_cache.checkout_branch(branch)
        print(fmt(f"Checked out <b>{branch}</b>."))
