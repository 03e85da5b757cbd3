from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from typing import Dict, List, Optional

from git_strata import utils
from git_strata.cached_meta import (CachedMeta, InvalidParentMeta,
                                    ParentedMeta, RebaseOutcome, TrunkMeta,
                                    UntrackedMeta, ValidMeta,
                                    ValidationResult, assert_is_not_trunk,
                                    assert_is_valid_and_not_trunk,
                                    assert_is_valid_or_trunk)
from git_strata.exceptions import (CycleException, DetachedHeadException,
                                   NoBranchException,
                                   PreconditionsFailedException,
                                   UnderlyingGitException)
from git_strata.git_operations import (AnyRevision, FullCommitHash,
                                       GitContext, GitLogEntry,
                                       LocalBranchShortName, RebaseResult)
from git_strata.ref_store import (BranchPRInfo, MetadataEntry,
                                  MetadataRefStore)
from git_strata.scope import ScopeSpec
from git_strata.utils import debug


class PullResult(Enum):
    DONE = 'PULL_DONE'
    UNNEEDED = 'PULL_UNNEEDED'


def validate_or_fix_parent_branch_revision(
        git: GitContext,
        branch: LocalBranchShortName,
        meta: ParentedMeta,
        parent_branch_current_revision: Optional[FullCommitHash]
) -> ParentedMeta:
    """Classifies a branch that has a parent recorded.

    If the recorded fork point is still an ancestor of (or equal to) the branch's head, the branch is valid as-is.
    Otherwise, if the parent's current revision is an ancestor of the branch's head,
    the branch is valid and its fork point is moved to the parent's current revision.
    Otherwise, the parent can't be trusted anymore.
    """
    fields = dict(branch_revision=meta.branch_revision,
                  parent_branch_name=meta.parent_branch_name,
                  parent_branch_revision=meta.parent_branch_revision,
                  children=meta.children,
                  pr_info=meta.pr_info)
    if meta.parent_branch_revision and git.is_ancestor_or_equal(meta.parent_branch_revision, meta.branch_revision):
        return ValidMeta(**fields)  # type: ignore [arg-type]
    if parent_branch_current_revision and git.is_ancestor_or_equal(parent_branch_current_revision, meta.branch_revision):
        debug(f"fork point of {branch} fixed to {parent_branch_current_revision}")
        fields['parent_branch_revision'] = parent_branch_current_revision
        return ValidMeta(**fields)  # type: ignore [arg-type]
    debug(f"{branch} is no longer based on {meta.parent_branch_name}")
    return InvalidParentMeta(**fields)  # type: ignore [arg-type]


class MetaCache:
    """In-memory forest of branch metadata, built once per process.

    Every write to the metadata of a branch goes through `_update_meta`,
    which keeps the `children` lists and the ref store consistent with the parent pointers.
    """

    def __init__(self,
                 git: GitContext,
                 ref_store: MetadataRefStore,
                 trunk: Optional[LocalBranchShortName],
                 remote: str,
                 current_branch_override: Optional[LocalBranchShortName] = None,
                 no_verify: bool = False,
                 restack_committer_date_is_author_date: bool = False,
                 extra_rebase_opts: Optional[List[str]] = None) -> None:
        self.__git = git
        self.__ref_store = ref_store
        self.__trunk = trunk
        self.__remote = remote
        self.__no_verify = no_verify
        self.__restack_committer_date_is_author_date = restack_committer_date_is_author_date
        self.__extra_rebase_opts: List[str] = extra_rebase_opts or []

        self.__remote_shas_future: Optional["Future[Dict[LocalBranchShortName, FullCommitHash]]"] = None

        self.__current_branch: Optional[LocalBranchShortName] = current_branch_override or git.get_current_branch_or_none()
        self.__branches: Dict[LocalBranchShortName, CachedMeta] = self.__load_branches()

    def __load_branches(self) -> Dict[LocalBranchShortName, CachedMeta]:
        revisions = self.__git.get_branch_names_and_revisions()
        entries = self.__ref_store.list()
        branches: Dict[LocalBranchShortName, CachedMeta] = {}

        if self.__trunk and self.__trunk in revisions:
            branches[self.__trunk] = TrunkMeta(revisions[self.__trunk], [])

        # Parents must be classified before their children; a pass that resolves nothing means the rest forms a cycle.
        pending = [branch for branch in revisions if branch not in branches]
        while pending:
            unresolved: List[LocalBranchShortName] = []
            for branch in pending:
                entry = entries.get(branch)
                parent = entry.parent_branch_name if entry else None
                if not entry or not parent or parent == branch or parent not in revisions:
                    branches[branch] = UntrackedMeta(revisions[branch], [], entry.pr_info if entry else None)
                elif parent not in branches:
                    unresolved.append(branch)
                else:
                    branches[branch] = self.__classify_loaded_branch(branch, revisions[branch], entry, branches[parent])
            if len(unresolved) == len(pending):
                for branch in unresolved:
                    debug(f"{branch} is part of a parent cycle, loading it as untracked")
                    entry = entries[branch]
                    branches[branch] = UntrackedMeta(revisions[branch], [], entry.pr_info)
                break
            pending = unresolved

        for branch, meta in branches.items():
            if isinstance(meta, (ValidMeta, InvalidParentMeta)):
                branches[meta.parent_branch_name].children.append(branch)
        return branches

    def __classify_loaded_branch(self, branch: LocalBranchShortName, revision: FullCommitHash,
                                 entry: MetadataEntry, parent_meta: CachedMeta) -> CachedMeta:
        assert entry.parent_branch_name is not None
        recorded_revision = entry.parent_branch_revision or parent_meta.branch_revision
        meta: ParentedMeta = InvalidParentMeta(revision, entry.parent_branch_name, recorded_revision, [], entry.pr_info)
        if isinstance(parent_meta, (UntrackedMeta, InvalidParentMeta)):
            return meta
        result = validate_or_fix_parent_branch_revision(self.__git, branch, meta, parent_meta.branch_revision)
        if isinstance(result, ValidMeta) and result.parent_branch_revision != entry.parent_branch_revision:
            self.__ref_store.write(branch, self.__to_entry(result))
        return result

    @staticmethod
    def __to_entry(meta: ParentedMeta) -> MetadataEntry:
        return MetadataEntry(meta.parent_branch_name, meta.parent_branch_revision, meta.pr_info)

    def reset(self, new_trunk: Optional[LocalBranchShortName] = None) -> None:
        self.__trunk = new_trunk or self.__trunk
        for branch in self.__ref_store.list():
            self.__ref_store.delete(branch)
        self.__branches = self.__load_branches()

    def rebuild(self, new_trunk: Optional[LocalBranchShortName] = None) -> None:
        self.__trunk = new_trunk or self.__trunk
        self.__branches = self.__load_branches()

    # Queries

    @property
    def trunk(self) -> LocalBranchShortName:
        if not self.__trunk:
            raise PreconditionsFailedException("No trunk found. Run `git strata init` first.")
        return self.__trunk

    def is_trunk(self, branch: str) -> bool:
        return branch == self.__trunk

    def branch_exists(self, branch: Optional[str]) -> bool:
        return branch is not None and branch in self.__branches

    @property
    def all_branch_names(self) -> List[LocalBranchShortName]:
        return list(self.__branches.keys())

    def __assert_branch(self, branch: LocalBranchShortName) -> CachedMeta:
        if branch not in self.__branches:
            raise NoBranchException(branch)
        return self.__branches[branch]

    def get_meta(self, branch: LocalBranchShortName) -> CachedMeta:
        return self.__assert_branch(branch)

    def get_validation_result(self, branch: LocalBranchShortName) -> ValidationResult:
        return self.__assert_branch(branch).validation_result

    def is_branch_tracked(self, branch: LocalBranchShortName) -> bool:
        return self.__assert_branch(branch).validation_result == ValidationResult.VALID

    def get_revision(self, branch: LocalBranchShortName) -> FullCommitHash:
        return self.__assert_branch(branch).branch_revision

    def get_base_revision(self, branch: LocalBranchShortName) -> FullCommitHash:
        return assert_is_valid_and_not_trunk(branch, self.__assert_branch(branch)).parent_branch_revision

    def get_parent(self, branch: LocalBranchShortName) -> Optional[LocalBranchShortName]:
        meta = self.__assert_branch(branch)
        return meta.parent_branch_name if isinstance(meta, (ValidMeta, InvalidParentMeta)) else None

    def get_parent_precondition(self, branch: LocalBranchShortName) -> LocalBranchShortName:
        return assert_is_valid_and_not_trunk(branch, self.__assert_branch(branch)).parent_branch_name

    def get_children(self, branch: LocalBranchShortName) -> List[LocalBranchShortName]:
        return [child for child in self.__assert_branch(branch).children
                if self.__branches[child].validation_result == ValidationResult.VALID]

    def __get_recursive_children(self, branch: LocalBranchShortName) -> List[LocalBranchShortName]:
        return utils.flat_map(lambda child: [child] + self.__get_recursive_children(child), self.get_children(branch))

    def __get_all_descendants(self, branch: LocalBranchShortName) -> List[LocalBranchShortName]:
        # Unlike `__get_recursive_children`, follows the parent pointers regardless of the validation state.
        return utils.flat_map(lambda child: [child] + self.__get_all_descendants(child), self.__branches[branch].children)

    def __get_recursive_parents_excluding_trunk(self, branch: LocalBranchShortName) -> List[LocalBranchShortName]:
        parent = self.get_parent(branch)
        if parent and not self.is_trunk(parent):
            return self.__get_recursive_parents_excluding_trunk(parent) + [parent]
        return []

    def get_relative_stack(self, branch: LocalBranchShortName, scope: ScopeSpec) -> List[LocalBranchShortName]:
        """Branches in `scope` relative to `branch`, every parent listed before its children.

        Trunk is only included when `branch` is trunk itself.
        """
        assert_is_valid_or_trunk(branch, self.__assert_branch(branch))
        return ((self.__get_recursive_parents_excluding_trunk(branch) if scope.recursive_parents else []) +
                ([branch] if scope.current_branch else []) +
                (self.__get_recursive_children(branch) if scope.recursive_children else []))

    def is_branch_fixed(self, branch: LocalBranchShortName) -> bool:
        meta = self.__branches.get(branch)
        if isinstance(meta, TrunkMeta):
            return True
        if not isinstance(meta, ValidMeta):
            return False
        return meta.parent_branch_revision == self.__branches[meta.parent_branch_name].branch_revision

    def is_branch_empty(self, branch: LocalBranchShortName) -> bool:
        meta = assert_is_valid_and_not_trunk(branch, self.__assert_branch(branch))
        return self.__git.is_diff_empty(meta.parent_branch_revision, branch)

    def is_merged_into_trunk(self, branch: LocalBranchShortName) -> bool:
        self.__assert_branch(branch)
        return self.__git.is_merged_into(branch, self.trunk)

    def get_all_commits(self, branch: LocalBranchShortName) -> List[GitLogEntry]:
        meta = assert_is_valid_or_trunk(branch, self.__assert_branch(branch))
        # For trunk, the commit range is just its latest commit.
        base = None if isinstance(meta, TrunkMeta) else meta.parent_branch_revision
        return self.__git.get_commits_between(base, meta.branch_revision)

    def get_pr_info(self, branch: LocalBranchShortName) -> Optional[BranchPRInfo]:
        meta = self.__branches.get(branch)
        return None if meta is None or isinstance(meta, TrunkMeta) else meta.pr_info

    @property
    def current_branch(self) -> Optional[LocalBranchShortName]:
        return self.__current_branch

    def __get_current_branch_or_raise(self) -> LocalBranchShortName:
        if not self.__current_branch:
            raise DetachedHeadException()
        self.__assert_branch(self.__current_branch)
        return self.__current_branch

    @property
    def current_branch_precondition(self) -> LocalBranchShortName:
        branch = self.__get_current_branch_or_raise()
        assert_is_valid_or_trunk(branch, self.__branches[branch])
        return branch

    def prefetch_remote_shas(self) -> None:
        """Start listing the branches of the remote in the background; joined on first use.

        Only commands that compare against the remote call this, so that local commands never touch the network.
        """
        if self.__remote_shas_future is not None or not self.__git.get_config_attr_or_none(f"remote.{self.__remote}.url"):
            return
        executor = ThreadPoolExecutor(max_workers=1)
        self.__remote_shas_future = executor.submit(self.__git.get_remote_shas, self.__remote)
        executor.shutdown(wait=False)

    def __get_remote_shas(self) -> Dict[LocalBranchShortName, FullCommitHash]:
        self.prefetch_remote_shas()
        if self.__remote_shas_future is None:
            return {}
        try:
            return self.__remote_shas_future.result()
        except UnderlyingGitException as e:
            debug(f"cannot list branches of remote {self.__remote}: {e}")
            return {}

    def branch_matches_remote(self, branch: LocalBranchShortName) -> bool:
        meta = assert_is_valid_or_trunk(branch, self.__assert_branch(branch))
        return self.__get_remote_shas().get(branch) == meta.branch_revision

    # Single update path

    def __validate_new_parent(self, branch: LocalBranchShortName, parent: LocalBranchShortName) -> None:
        if branch == parent:
            raise CycleException(branch, parent)
        if branch in self.__branches and parent in self.__get_all_descendants(branch):
            raise CycleException(branch, parent)

    def __remove_child(self, parent: LocalBranchShortName, child: LocalBranchShortName) -> None:
        parent_meta = self.__assert_branch(parent)
        if child in parent_meta.children:
            parent_meta.children.remove(child)

    def _update_meta(self, branch: LocalBranchShortName, new_meta: ParentedMeta) -> None:
        old_meta: CachedMeta = self.__branches.get(branch) or UntrackedMeta(
            self.__git.get_commit_hash_by_revision_or_raise(branch), [])
        assert_is_not_trunk(branch, old_meta)

        old_parent = old_meta.parent_branch_name if isinstance(old_meta, (ValidMeta, InvalidParentMeta)) else None
        new_parent = new_meta.parent_branch_name
        self.__assert_branch(new_parent)
        if old_parent != new_parent:
            self.__validate_new_parent(branch, new_parent)

        self.__branches[branch] = new_meta
        if old_parent and old_parent != new_parent and old_parent in self.__branches:
            self.__remove_child(old_parent, branch)
        if branch not in self.__branches[new_parent].children:
            self.__branches[new_parent].children.append(branch)

        self.__ref_store.write(branch, self.__to_entry(new_meta))
        debug(f"updated meta of {branch}: {new_meta}")

        if old_meta.validation_result != ValidationResult.VALID:
            self.__revalidate_children(new_meta.children)

    def __revalidate_children(self, children: List[LocalBranchShortName]) -> None:
        for child in children:
            child_meta = self.__assert_branch(child)
            if not isinstance(child_meta, InvalidParentMeta):
                continue
            parent_meta = self.__branches[child_meta.parent_branch_name]
            if isinstance(parent_meta, (UntrackedMeta, InvalidParentMeta)):
                continue
            result = validate_or_fix_parent_branch_revision(self.__git, child, child_meta, parent_meta.branch_revision)
            self.__branches[child] = result
            if result.parent_branch_revision != child_meta.parent_branch_revision:
                self.__ref_store.write(child, self.__to_entry(result))
            self.__revalidate_children(child_meta.children)

    def __delete_all_branch_data(self, branch: LocalBranchShortName) -> None:
        meta = assert_is_valid_and_not_trunk(branch, self.__assert_branch(branch))
        self.__remove_child(meta.parent_branch_name, branch)
        del self.__branches[branch]
        self.__git.delete_branch(branch)
        self.__ref_store.delete(branch)

    # Tracking

    def track_branch(self, branch: LocalBranchShortName, parent: LocalBranchShortName) -> None:
        meta = assert_is_not_trunk(branch, self.__assert_branch(branch))
        self.__validate_new_parent(branch, parent)
        assert_is_valid_or_trunk(parent, self.__assert_branch(parent))

        # This is the parent's revision unless the parent has moved on since the branch was forked off it.
        fork_point = self.__git.get_merge_base(branch, parent)
        if not fork_point:
            raise PreconditionsFailedException(f"Branches <b>{branch}</b> and <b>{parent}</b> have no common history.")
        self._update_meta(branch, ValidMeta(
            branch_revision=meta.branch_revision,
            parent_branch_name=parent,
            parent_branch_revision=fork_point,
            children=meta.children,
            pr_info=meta.pr_info))

    def untrack_branch(self, branch: LocalBranchShortName) -> None:
        meta = assert_is_valid_and_not_trunk(branch, self.__assert_branch(branch))
        self.__ref_store.delete(branch)
        self.__remove_child(meta.parent_branch_name, branch)
        self.__branches[branch] = UntrackedMeta(meta.branch_revision, meta.children, meta.pr_info)

        # The lineage of all descendants is no longer authoritative.
        for descendant in self.__get_all_descendants(branch):
            descendant_meta = self.__branches[descendant]
            if isinstance(descendant_meta, ValidMeta):
                self.__branches[descendant] = InvalidParentMeta(*descendant_meta)

    def set_parent(self, branch: LocalBranchShortName, parent: LocalBranchShortName) -> None:
        self.__validate_new_parent(branch, parent)
        meta = assert_is_valid_and_not_trunk(branch, self.__assert_branch(branch))
        if meta.parent_branch_name == parent:
            return
        assert_is_valid_or_trunk(parent, self.__assert_branch(parent))
        self._update_meta(branch, meta._replace(parent_branch_name=parent))

    def __reparent_child(self, child: LocalBranchShortName, parent: LocalBranchShortName) -> None:
        child_meta = self.__branches[child]
        if isinstance(child_meta, InvalidParentMeta):
            # Moving under a new parent is a direct edit of the child's metadata, so its validity is re-examined.
            parent_meta = self.__branches[parent]
            parent_revision = None if isinstance(parent_meta, (UntrackedMeta, InvalidParentMeta)) else parent_meta.branch_revision
            moved_meta = child_meta._replace(parent_branch_name=parent)
            self._update_meta(child, validate_or_fix_parent_branch_revision(self.__git, child, moved_meta, parent_revision))
        else:
            self.set_parent(child, parent)

    def upsert_pr_info(self, branch: LocalBranchShortName, pr_info: BranchPRInfo) -> None:
        meta = self.__branches.get(branch)
        if not isinstance(meta, ValidMeta):
            return
        self._update_meta(branch, meta._replace(pr_info=dict(meta.pr_info or {}, **pr_info)))

    def clear_pr_info(self, branch: LocalBranchShortName) -> None:
        meta = self.__branches.get(branch)
        if not isinstance(meta, ValidMeta):
            return
        self._update_meta(branch, meta._replace(pr_info={}))

    # Tree mutations

    def checkout_branch(self, branch: LocalBranchShortName) -> None:
        if self.__current_branch == branch:
            return
        self.__assert_branch(branch)
        self.__git.checkout(branch)
        self.__current_branch = branch

    def checkout_new_branch(self, branch: LocalBranchShortName) -> None:
        parent = self.__get_current_branch_or_raise()
        parent_meta = assert_is_valid_or_trunk(parent, self.__branches[parent])
        self.__validate_new_parent(branch, parent)
        self.__git.checkout_new_branch(branch)
        self._update_meta(branch, ValidMeta(
            branch_revision=parent_meta.branch_revision,
            parent_branch_name=parent,
            parent_branch_revision=parent_meta.branch_revision,
            children=[]))
        self.__current_branch = branch

    def rename_current_branch(self, new_branch: LocalBranchShortName) -> None:
        current_branch = self.__get_current_branch_or_raise()
        if new_branch == current_branch:
            return
        meta = assert_is_valid_and_not_trunk(current_branch, self.__branches[current_branch])
        if new_branch in self.__branches:
            raise PreconditionsFailedException(f"Branch <b>{new_branch}</b> already exists.")

        self.__git.move_branch(new_branch)
        self._update_meta(new_branch, meta._replace(children=[]))
        for child in list(meta.children):
            self.__reparent_child(child, new_branch)

        self.__remove_child(meta.parent_branch_name, current_branch)
        del self.__branches[current_branch]
        self.__ref_store.delete(current_branch)
        self.__current_branch = new_branch

    def fold_current_branch(self, keep: bool) -> None:
        """Merges the current branch into its parent, or, with `keep`, the parent into the current branch."""
        current_branch = self.__get_current_branch_or_raise()
        meta = assert_is_valid_and_not_trunk(current_branch, self.__branches[current_branch])
        parent = meta.parent_branch_name
        parent_meta = assert_is_valid_and_not_trunk(parent, self.__assert_branch(parent))

        if keep:
            self._update_meta(current_branch, meta._replace(
                parent_branch_name=parent_meta.parent_branch_name,
                parent_branch_revision=parent_meta.parent_branch_revision))
            for child in [c for c in list(parent_meta.children) if c != current_branch]:
                self.__reparent_child(child, current_branch)
            self.__delete_all_branch_data(parent)
        else:
            self.__git.force_checkout_new_branch(parent, meta.branch_revision)
            self._update_meta(parent, parent_meta._replace(branch_revision=meta.branch_revision))
            for child in list(meta.children):
                self.__reparent_child(child, parent)
            self.__current_branch = parent
            self.__delete_all_branch_data(current_branch)

    def delete_branch(self, branch: LocalBranchShortName) -> None:
        meta = assert_is_valid_and_not_trunk(branch, self.__assert_branch(branch))
        if branch == self.__current_branch:
            self.checkout_branch(meta.parent_branch_name)
        # Skip-level splice: children go to the deleted branch's own parent.
        for child in list(meta.children):
            self.__reparent_child(child, meta.parent_branch_name)
        self.__delete_all_branch_data(branch)

    def detach(self) -> None:
        branch = self.__get_current_branch_or_raise()
        meta = assert_is_valid_and_not_trunk(branch, self.__branches[branch])
        self.__git.detach(meta.branch_revision)

    def apply_split_to_commits(self, branch_to_split: LocalBranchShortName,
                               branch_names: List[LocalBranchShortName], branch_points: List[int]) -> None:
        """Cuts `branch_to_split` into a chain of branches.

        `branch_points` are offsets from the head of `branch_to_split` (`0` being the head itself), newest first,
        while `branch_names` go from the oldest to the newest, i.e. from parent to child.
        HEAD must not point to `branch_to_split`, since it's going to be force-updated when its name is reused.
        """
        if len(branch_names) != len(branch_points):
            debug(f"names: {branch_names}, points: {branch_points}")
            raise PreconditionsFailedException("Invalid number of branch names.")
        meta = assert_is_valid_and_not_trunk(branch_to_split, self.__assert_branch(branch_to_split))
        children = list(meta.children)

        # Resolve all revisions upfront, before any branch (including `branch_to_split` itself) is moved.
        revisions = [self.__git.get_commit_hash_by_revision_or_raise(AnyRevision.of(f"{meta.branch_revision}~{point}"))
                     for point in reversed(branch_points)]

        last_branch = meta.parent_branch_name
        last_revision = meta.parent_branch_revision
        for branch, revision in zip(branch_names, revisions):
            self.__git.force_create_branch(branch, revision)
            reuses_name = branch == branch_to_split
            self._update_meta(branch, ValidMeta(
                branch_revision=revision,
                parent_branch_name=last_branch,
                parent_branch_revision=last_revision,
                # The original children keep pointing at the original name until they're moved below.
                children=meta.children if reuses_name else [],
                pr_info=meta.pr_info if reuses_name else None))
            last_branch, last_revision = branch, revision

        if last_branch != branch_to_split:
            for child in children:
                self.__reparent_child(child, last_branch)
        if branch_to_split not in branch_names:
            self.__delete_all_branch_data(branch_to_split)
        self.__git.checkout(last_branch)
        self.__current_branch = last_branch

    def commit(self, message: Optional[str] = None, amend: bool = False, all_: bool = False,
               no_edit: bool = False, patch: bool = False) -> None:
        branch = self.__get_current_branch_or_raise()
        meta = assert_is_valid_and_not_trunk(branch, self.__branches[branch])
        self.__git.commit(message=message, amend=amend, all_=all_, no_edit=no_edit, patch=patch, no_verify=self.__no_verify)
        self.__branches[branch] = meta._replace(branch_revision=self.__git.get_commit_hash_by_revision_or_raise(branch))

    def squash_current_branch(self, message: Optional[str] = None, no_edit: bool = False) -> None:
        branch = self.__get_current_branch_or_raise()
        meta = assert_is_valid_and_not_trunk(branch, self.__branches[branch])
        commits = self.__git.get_commits_between(meta.parent_branch_revision, meta.branch_revision)
        if not commits:
            raise PreconditionsFailedException(f"Branch <b>{branch}</b> has no commits to squash.")

        self.__git.soft_reset(commits[0].hash)
        try:
            self.__git.commit(message=message, amend=True, no_edit=no_edit, no_verify=self.__no_verify)
        except UnderlyingGitException:
            try:
                self.__git.soft_reset(meta.branch_revision)
            except UnderlyingGitException as e:
                # Best effort only, the original failure is the one worth reporting.
                debug(f"cannot revert to {meta.branch_revision}: {e}")
            raise
        self.__branches[branch] = meta._replace(branch_revision=self.__git.get_commit_hash_by_revision_or_raise(branch))

    # Restack engine

    def __handle_successful_rebase(self, branch: LocalBranchShortName, parent_branch_revision: FullCommitHash) -> None:
        meta = assert_is_valid_and_not_trunk(branch, self.__assert_branch(branch))
        self._update_meta(branch, meta._replace(
            branch_revision=self.__git.get_commit_hash_by_revision_or_raise(branch),
            parent_branch_revision=parent_branch_revision))
        if self.__current_branch and self.__current_branch in self.__branches:
            self.__git.checkout(self.__current_branch)

    def __rebase(self, onto: AnyRevision, from_exclusive: AnyRevision, branch: LocalBranchShortName) -> RebaseResult:
        return self.__git.rebase(onto=onto, from_exclusive=from_exclusive, branch=branch,
                                 committer_date_is_author_date=self.__restack_committer_date_is_author_date,
                                 extra_rebase_opts=self.__extra_rebase_opts)

    def restack_branch(self, branch: LocalBranchShortName) -> RebaseOutcome:
        meta = assert_is_valid_or_trunk(branch, self.__assert_branch(branch))
        if self.is_branch_fixed(branch):
            return RebaseOutcome(RebaseResult.UNNEEDED)
        assert isinstance(meta, ValidMeta)

        new_base = self.__branches[meta.parent_branch_name].branch_revision
        if self.__rebase(onto=new_base, from_exclusive=meta.parent_branch_revision, branch=branch) == RebaseResult.CONFLICT:
            return RebaseOutcome(RebaseResult.CONFLICT, rebased_branch_base=new_base)
        self.__handle_successful_rebase(branch, new_base)
        return RebaseOutcome(RebaseResult.DONE)

    def rebase_interactive(self, branch: LocalBranchShortName) -> RebaseOutcome:
        meta = assert_is_valid_and_not_trunk(branch, self.__assert_branch(branch))
        if self.__git.rebase_interactive(branch, meta.parent_branch_revision) == RebaseResult.CONFLICT:
            return RebaseOutcome(RebaseResult.CONFLICT, rebased_branch_base=meta.parent_branch_revision)
        self.__handle_successful_rebase(branch, meta.parent_branch_revision)
        return RebaseOutcome(RebaseResult.DONE)

    def continue_rebase(self, rebased_branch_base: FullCommitHash) -> RebaseOutcome:
        if self.__git.rebase_continue() == RebaseResult.CONFLICT:
            return RebaseOutcome(RebaseResult.CONFLICT, rebased_branch_base=rebased_branch_base)
        branch = self.__git.get_current_branch_or_none()
        if not branch:
            raise PreconditionsFailedException("Must be on a branch after a rebase.")
        self.__handle_successful_rebase(branch, rebased_branch_base)
        return RebaseOutcome(RebaseResult.DONE, branch=branch)

    def abort_rebase(self) -> None:
        self.__git.rebase_abort()

    # Remote reconciliation

    def pull_trunk(self) -> PullResult:
        self.__git.prune_remote(self.__remote)
        current_branch = self.__get_current_branch_or_raise()
        trunk = self.trunk
        old_trunk_meta = self.__assert_branch(trunk)
        try:
            self.__git.checkout(trunk)
            self.__git.pull_ff_only(self.__remote, trunk)
            new_revision = self.__git.get_commit_hash_by_revision_or_raise(trunk)
            self.__branches[trunk] = TrunkMeta(new_revision, old_trunk_meta.children)
            return PullResult.UNNEEDED if new_revision == old_trunk_meta.branch_revision else PullResult.DONE
        finally:
            self.__git.checkout(current_branch)

    def fetch_branch(self, branch: LocalBranchShortName, parent: LocalBranchShortName) -> None:
        parent_meta = assert_is_valid_or_trunk(parent, self.__assert_branch(parent))
        if isinstance(parent_meta, TrunkMeta):
            # A child of trunk is based on its merge base with trunk.
            self.__git.fetch_branch(self.__remote, branch)
            base = self.__git.get_merge_base(self.__git.read_fetch_head(), parent_meta.branch_revision)
            if not base:
                raise PreconditionsFailedException(f"Remote branch <b>{branch}</b> has no common history with <b>{parent}</b>.")
            self.__git.write_fetch_base(base)
        else:
            # Otherwise, it's based on the head of the previous fetch, i.e. of its parent.
            self.__git.write_fetch_base(self.__git.read_fetch_head())
            self.__git.fetch_branch(self.__remote, branch)

    def branch_matches_fetched(self, branch: LocalBranchShortName) -> bool:
        return self.__assert_branch(branch).branch_revision == self.__git.read_fetch_head()

    def checkout_branch_from_fetched(self, branch: LocalBranchShortName, parent: LocalBranchShortName) -> None:
        self.__validate_new_parent(branch, parent)
        assert_is_valid_or_trunk(parent, self.__assert_branch(parent))
        head = self.__git.read_fetch_head()
        base = self.__git.read_fetch_base()
        existing_meta = self.__branches.get(branch)

        self.__git.force_checkout_new_branch(branch, head)
        self.__git.set_remote_tracking(self.__remote, branch, head)
        self._update_meta(branch, ValidMeta(
            branch_revision=head,
            parent_branch_name=parent,
            parent_branch_revision=base,
            children=existing_meta.children if existing_meta else [],
            pr_info=self.get_pr_info(branch)))
        self.__current_branch = branch

    def rebase_branch_onto_fetched(self, branch: LocalBranchShortName) -> RebaseOutcome:
        meta = assert_is_valid_and_not_trunk(branch, self.__assert_branch(branch))
        head = self.__git.read_fetch_head()
        base = self.__git.read_fetch_base()
        self.__git.set_remote_tracking(self.__remote, branch, head)

        # On conflict this becomes the current branch override of the continuation;
        # on success the branch is checked out after the rebase anyway.
        self.__current_branch = branch
        if self.__rebase(onto=head, from_exclusive=meta.parent_branch_revision, branch=branch) == RebaseResult.CONFLICT:
            return RebaseOutcome(RebaseResult.CONFLICT, rebased_branch_base=base)
        self.__handle_successful_rebase(branch, base)
        return RebaseOutcome(RebaseResult.DONE)

    def __repr__(self) -> str:  # pragma: no cover; debug only
        return f"MetaCache(trunk={self.__trunk}, current_branch={self.__current_branch}, branches={self.__branches})"

