import os
from typing import Any, List, Optional

from git_strata import git_config_keys
from git_strata.continuation import (CONTINUATION_FILE_NAME, ContinuationData,
                                     ContinuationStore)
from git_strata.exceptions import StrataException
from git_strata.git_operations import GitContext, LocalBranchShortName
from git_strata.lock import LOCK_FILE_NAME, RepositoryLock
from git_strata.meta_cache import MetaCache
from git_strata.ref_store import MetadataRefStore
from git_strata.utils import debug

TRUNK_CANDIDATES = ['main', 'master']


class StrataContext:
    """Everything a single git-strata command operates on.

    Constructed once per invocation; `init_context` takes the repository lock, which `close` releases.
    """

    def __init__(self, git: Optional[GitContext] = None) -> None:
        self.git: GitContext = git or GitContext()
        self.ref_store = MetadataRefStore(self.git)
        self.continuation_store = ContinuationStore(self.git.get_worktree_git_subpath(CONTINUATION_FILE_NAME))
        # Metadata refs are shared by all worktrees, hence the lock lives in the main git directory.
        self.lock = RepositoryLock(self.git.get_main_git_subpath(LOCK_FILE_NAME))
        self.continuation: Optional[ContinuationData] = None
        self.__meta_cache: Optional[MetaCache] = None

    @property
    def remote(self) -> str:
        return self.git.get_config_attr_or_none(git_config_keys.REMOTE) or git_config_keys.DEFAULT_REMOTE

    def get_configured_trunk(self) -> Optional[LocalBranchShortName]:
        trunk = self.git.get_config_attr_or_none(git_config_keys.TRUNK)
        return LocalBranchShortName.of(trunk) if trunk else None

    def infer_trunk(self) -> Optional[LocalBranchShortName]:
        existing = [LocalBranchShortName.of(b) for b in TRUNK_CANDIDATES if b in self.git.get_local_branches()]
        if len(existing) == 1:
            debug(f"inferred trunk: {existing[0]}")
            return existing[0]
        return None

    def set_trunk(self, trunk: LocalBranchShortName) -> None:
        if trunk not in self.git.get_local_branches():
            raise StrataException(f"Branch <b>{trunk}</b> does not exist.")
        self.git.set_config_attr(git_config_keys.TRUNK, trunk)

    @staticmethod
    def get_extra_rebase_opts() -> List[str]:
        return os.environ.get(git_config_keys.REBASE_OPTS_ENV_VAR, '').split()

    @property
    def meta_cache(self) -> MetaCache:
        if self.__meta_cache is None:
            raise StrataException("Context has not been initialized.")
        return self.__meta_cache

    def init_context(self) -> "StrataContext":
        self.lock.acquire()
        try:
            # A continuation with no rebase in progress has been orphaned, e.g. by a `git rebase --abort`.
            if not self.git.is_rebase_in_progress():
                self.continuation_store.clear()
            self.continuation = self.continuation_store.load()
            self.__meta_cache = MetaCache(
                git=self.git,
                ref_store=self.ref_store,
                trunk=self.get_configured_trunk() or self.infer_trunk(),
                remote=self.remote,
                current_branch_override=self.continuation.current_branch_override if self.continuation else None,
                no_verify=self.git.get_boolean_config_attr(git_config_keys.NO_VERIFY, default_value=False),
                restack_committer_date_is_author_date=self.git.get_boolean_config_attr(
                    git_config_keys.RESTACK_COMMITTER_DATE_IS_AUTHOR_DATE, default_value=False),
                extra_rebase_opts=self.get_extra_rebase_opts())
        except BaseException:
            self.lock.release()
            raise
        return self

    def close(self) -> None:
        self.lock.release()

    def __enter__(self) -> "StrataContext":
        return self.init_context()

    def __exit__(self, *args: Any) -> None:
        self.close()
