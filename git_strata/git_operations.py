import os
import re
from enum import Enum
from pathlib import Path
from typing import Dict, List, Match, NamedTuple, Optional, Tuple

from git_strata import utils
from git_strata.exceptions import (CommandFailedException,
                                   CommandKilledException,
                                   UnderlyingGitException,
                                   UnexpectedStrataException)
from git_strata.utils import PopenResult, debug

FETCH_HEAD_REF = "refs/strata/fetch-head"
FETCH_BASE_REF = "refs/strata/fetch-base"


class AnyRevision(str):
    @staticmethod
    def of(value: str) -> "AnyRevision":
        if not value:
            raise UnexpectedStrataException(f'AnyRevision.of should not accept {value} as a param.')
        return AnyRevision(value)


class AnyBranchName(AnyRevision):
    @staticmethod
    def of(value: str) -> "AnyBranchName":
        if not value:
            raise UnexpectedStrataException(f'AnyBranchName.of should not accept {value} as a param.')
        return AnyBranchName(value)


class LocalBranchShortName(AnyBranchName):
    @staticmethod
    def of(value: str) -> "LocalBranchShortName":
        if value.startswith('refs/heads/') or value.startswith('refs/remotes/'):
            raise UnexpectedStrataException(
                f'LocalBranchShortName cannot accept `refs/heads` or `refs/remotes`. Provided value: {value}.')
        return LocalBranchShortName(value)

    def full_name(self) -> str:
        return f"refs/heads/{self}"


class FullCommitHash(AnyRevision):
    @staticmethod
    def of(value: str) -> "FullCommitHash":
        if value and len(value) == 40:
            return FullCommitHash(value)
        else:
            raise UnexpectedStrataException(
                f'FullCommitHash requires length of 40. Provided value: "{value}".')


class GitLogEntry(NamedTuple):
    hash: FullCommitHash
    short_hash: str
    subject: str


class RebaseResult(Enum):
    DONE = 'REBASE_DONE'
    UNNEEDED = 'REBASE_UNNEEDED'
    CONFLICT = 'REBASE_CONFLICT'


HEAD = AnyRevision.of("HEAD")


class GitContext:
    """Thin wrapper over the `git` executable. All subprocess calls to git in git-strata go through this class."""

    def __init__(self) -> None:
        self.__root_dir: Optional[str] = None
        self.__main_git_dir: Optional[str] = None
        self.__worktree_git_dir: Optional[str] = None

        self.__branch_revisions_cached: Optional[Dict[LocalBranchShortName, FullCommitHash]] = None
        self.__commit_hash_by_revision_cached: Dict[AnyRevision, Optional[FullCommitHash]] = {}
        self.__config_cached: Optional[Dict[str, str]] = None
        self.__merge_base_cached: Dict[Tuple[FullCommitHash, FullCommitHash], Optional[FullCommitHash]] = {}

    def flush_caches(self) -> None:
        # Merge bases of full hashes never change, hence are not flushed.
        self.__branch_revisions_cached = None
        self.__commit_hash_by_revision_cached = {}

    def _run_git(self, git_cmd: str, *args: str, flush_caches: bool,
                 allow_non_zero: bool = False, env: Optional[Dict[str, str]] = None) -> int:
        exit_code = utils.run_cmd("git", git_cmd, *args, env=env)
        if flush_caches:
            self.flush_caches()
        if exit_code < 0:
            raise CommandKilledException("git", [git_cmd, *args], -exit_code, "", "")
        if not allow_non_zero and exit_code != 0:
            raise CommandFailedException("git", [git_cmd, *args], exit_code, "", "")
        return exit_code

    def _popen_git(self, git_cmd: str, *args: str,
                   allow_non_zero: bool = False, env: Optional[Dict[str, str]] = None, input: Optional[str] = None) -> PopenResult:
        result = utils.popen_cmd("git", git_cmd, *args, env=env, input=input)
        if result.signal is not None:
            raise CommandKilledException("git", [git_cmd, *args], result.signal, result.stdout, result.stderr)
        if not allow_non_zero and result.exit_code != 0:
            raise CommandFailedException("git", [git_cmd, *args], result.exit_code, result.stdout, result.stderr)
        return result

    def __rev_parse_path(self, flag: str) -> str:
        try:
            return self._popen_git("rev-parse", flag).stdout.strip()
        except UnderlyingGitException:
            raise UnderlyingGitException("Not a git repository")

    def get_root_dir(self) -> str:
        if not self.__root_dir:
            self.__root_dir = self.__rev_parse_path("--show-toplevel")
        return self.__root_dir

    def get_worktree_git_dir(self) -> str:
        if not self.__worktree_git_dir:
            self.__worktree_git_dir = os.path.abspath(self.__rev_parse_path("--git-dir"))
        return self.__worktree_git_dir

    def get_main_git_dir(self) -> str:
        """The git dir shared by all worktrees, i.e. `.git` even when called from a linked worktree."""
        if not self.__main_git_dir:
            worktree_git_dir = self.get_worktree_git_dir()
            # Linked worktrees keep their private git dir under <main git dir>/worktrees/<name>
            *main_parts, worktrees_dir, _ = Path(worktree_git_dir).parts
            if worktrees_dir == 'worktrees' and main_parts and main_parts[-1] == '.git':
                self.__main_git_dir = os.path.join(*main_parts)
                debug(f'in a linked worktree, using {self.__main_git_dir} as the main git dir')
            else:
                self.__main_git_dir = worktree_git_dir
        return self.__main_git_dir

    def get_worktree_git_subpath(self, *fragments: str) -> str:
        return os.path.join(self.get_worktree_git_dir(), *fragments)

    def get_main_git_subpath(self, *fragments: str) -> str:
        return os.path.join(self.get_main_git_dir(), *fragments)

    def __get_config(self) -> Dict[str, str]:
        if self.__config_cached is None:
            config: Dict[str, str] = {}
            # Entries are NUL-separated; within an entry, the first newline separates the key from the value.
            for entry in filter(None, self._popen_git("config", "--list", "--null").stdout.split("\0")):
                if '\n' not in entry:
                    raise UnexpectedStrataException(f"Cannot parse config entry: {entry}.")
                key, value = entry.split('\n', 1)
                config[key.lower()] = value
            self.__config_cached = config
        return self.__config_cached

    def get_config_attr_or_none(self, key: str) -> Optional[str]:
        return self.__get_config().get(key.lower())

    def get_boolean_config_attr(self, key: str, default_value: bool) -> bool:
        value = self.get_config_attr_or_none(key)
        return value == 'true' if value is not None else default_value

    def set_config_attr(self, key: str, value: str) -> None:
        self._run_git("config", "--", key, value, flush_caches=False)
        self.__get_config()[key.lower()] = value

    def get_branch_names_and_revisions(self) -> Dict[LocalBranchShortName, FullCommitHash]:
        if self.__branch_revisions_cached is None:
            self.__branch_revisions_cached = {}
            raw = self._popen_git("for-each-ref", "--format=%(refname)\t%(objectname)", "refs/heads").stdout
            for line in utils.get_non_empty_lines(raw):
                ref, commit_hash = line.split("\t")
                branch = LocalBranchShortName.of(re.sub("^refs/heads/", "", ref))
                self.__branch_revisions_cached[branch] = FullCommitHash.of(commit_hash)
        return self.__branch_revisions_cached

    def get_local_branches(self) -> List[LocalBranchShortName]:
        return list(self.get_branch_names_and_revisions().keys())

    @staticmethod
    def is_full_hash(revision: AnyRevision) -> Optional[Match[str]]:
        return re.match("^[0-9a-f]{40}$", revision)

    def __resolve_commit(self, revision: AnyRevision) -> Optional[FullCommitHash]:
        # The ^{commit} peel makes rev-parse fail for non-commit objects and for arbitrary 40-hex strings.
        result = self._popen_git("rev-parse", "--verify", "--quiet", revision + "^{commit}", allow_non_zero=True)
        return FullCommitHash.of(result.stdout.strip()) if result.exit_code == 0 else None

    def get_commit_hash_by_revision(self, revision: AnyRevision) -> Optional[FullCommitHash]:
        if self.is_full_hash(revision):
            return FullCommitHash.of(revision)
        branch_revisions = self.get_branch_names_and_revisions()
        if revision in branch_revisions:
            return branch_revisions[LocalBranchShortName(revision)]
        cache = self.__commit_hash_by_revision_cached
        if revision not in cache:
            cache[revision] = self.__resolve_commit(revision)
        return cache[revision]

    def get_commit_hash_by_revision_or_raise(self, revision: AnyRevision) -> FullCommitHash:
        commit_hash = self.get_commit_hash_by_revision(revision)
        if not commit_hash:
            raise UnderlyingGitException(f"Cannot resolve revision `{revision}`")
        return commit_hash

    # HEAD is detached for the whole duration of a rebase, so the branch name comes from the rebase state dir.
    def get_currently_rebased_branch_or_none(self) -> Optional[LocalBranchShortName]:
        for backend_dir in ("rebase-merge", "rebase-apply"):
            head_name_file = self.get_worktree_git_subpath(backend_dir, "head-name")
            if os.path.isfile(head_name_file):
                raw = utils.slurp_file(head_name_file).strip()
                if raw.startswith("refs/heads/"):
                    return LocalBranchShortName.of(re.sub("^refs/heads/", "", raw))
        return None

    def get_current_branch_or_none(self) -> Optional[LocalBranchShortName]:
        result = self._popen_git("symbolic-ref", "--quiet", "HEAD", allow_non_zero=True)
        raw = result.stdout.strip()
        if result.exit_code != 0 or not raw.startswith("refs/heads/"):
            return None
        return LocalBranchShortName.of(re.sub("^refs/heads/", "", raw))

    def get_merge_base(self, earlier_revision: AnyRevision, later_revision: AnyRevision) -> Optional[FullCommitHash]:
        hash1 = self.get_commit_hash_by_revision(earlier_revision)
        hash2 = self.get_commit_hash_by_revision(later_revision)
        if not hash1 or not hash2:
            return None
        if hash1 == hash2:
            return hash1
        # Symmetric, so one cache entry serves both argument orders
        key = (hash1, hash2) if hash1 < hash2 else (hash2, hash1)
        if key not in self.__merge_base_cached:
            # Unrelated histories: empty output and a non-zero exit code
            merge_base = self._popen_git("merge-base", *key, allow_non_zero=True).stdout.strip()
            self.__merge_base_cached[key] = FullCommitHash.of(merge_base) if merge_base else None
        return self.__merge_base_cached[key]

    def is_ancestor_or_equal(self, earlier_revision: AnyRevision, later_revision: AnyRevision) -> bool:
        earlier_hash = self.get_commit_hash_by_revision(earlier_revision)
        return earlier_hash is not None and self.get_merge_base(earlier_hash, later_revision) == earlier_hash

    def get_commits_between(self, earliest_exclusive: Optional[AnyRevision], latest_inclusive: AnyRevision) -> List[GitLogEntry]:
        """Commits reachable from `latest_inclusive` but not from `earliest_exclusive`, oldest first.

        With no lower bound, only `latest_inclusive` itself is returned.
        """
        range_args = [f"^{earliest_exclusive}", latest_inclusive] if earliest_exclusive else ["-1", latest_inclusive]
        entries = []
        for line in utils.get_non_empty_lines(self._popen_git("log", "--format=%H:%h:%s", *range_args, "--").stdout):
            full_hash, short_hash, subject = line.split(":", 2)
            entries.append(GitLogEntry(hash=FullCommitHash.of(full_hash), short_hash=short_hash, subject=subject))
        return entries[::-1]

    def is_diff_empty(self, from_revision: AnyRevision, to_revision: AnyRevision) -> bool:
        return self._popen_git("diff", "--no-ext-diff", "--quiet", from_revision, to_revision, "--", allow_non_zero=True).exit_code == 0

    def detect_staged_changes(self) -> bool:
        return self._popen_git("diff", "--no-ext-diff", "--cached", "--quiet", allow_non_zero=True).exit_code != 0

    def get_unmerged_files(self) -> List[str]:
        return utils.get_non_empty_lines(self._popen_git("diff", "--name-only", "--diff-filter=U").stdout)

    def is_merged_into(self, branch: LocalBranchShortName, target: AnyBranchName) -> bool:
        if self.is_ancestor_or_equal(branch, target):
            return True
        merge_base = self.get_merge_base(branch, target)
        if not merge_base:
            return False
        # Squash merges are detected by building a single commit with the branch's tree on top of the merge base
        # and checking whether `git cherry` finds an equivalent patch already applied to the target.
        tree = self._popen_git("rev-parse", "--verify", branch + "^{tree}").stdout.strip()  # noqa: FS003
        squashed = self._popen_git("commit-tree", tree, "-p", merge_base, "-m", "_").stdout.strip()
        cherry = self._popen_git("cherry", target, squashed).stdout.strip()
        return cherry.startswith("-")

    def checkout(self, branch: LocalBranchShortName) -> None:
        self._run_git("checkout", "--quiet", branch, "--", flush_caches=True)

    def checkout_new_branch(self, branch: LocalBranchShortName) -> None:
        self._run_git("checkout", "--quiet", "-b", branch, flush_caches=True)

    def force_checkout_new_branch(self, branch: LocalBranchShortName, revision: AnyRevision) -> None:
        self._run_git("checkout", "--quiet", "-B", branch, revision, flush_caches=True)

    def force_create_branch(self, branch: LocalBranchShortName, revision: AnyRevision) -> None:
        self._run_git("branch", "--force", branch, revision, flush_caches=True)

    def detach(self, revision: AnyRevision) -> None:
        self._run_git("checkout", "--quiet", "--detach", revision, flush_caches=True)

    def move_branch(self, new_branch: LocalBranchShortName) -> None:
        self._run_git("branch", "-m", new_branch, flush_caches=True)

    def delete_branch(self, branch: LocalBranchShortName) -> None:
        self._run_git("branch", "-D", branch, flush_caches=True)

    def add_all(self) -> None:
        self._run_git("add", "--all", flush_caches=False)

    def commit(self, message: Optional[str] = None, amend: bool = False, all_: bool = False,
               no_edit: bool = False, patch: bool = False, no_verify: bool = False) -> None:
        opts: List[str] = []
        if all_:
            opts.append("--all")
        if amend:
            opts.append("--amend")
        if message is not None:
            opts += ["--message", message]
        elif no_edit:
            opts.append("--no-edit")
        if patch:
            opts.append("--patch")
        if no_verify:
            opts.append("--no-verify")
        self._run_git("commit", *opts, flush_caches=True)

    def soft_reset(self, revision: AnyRevision) -> None:
        self._run_git("reset", "--quiet", "--soft", revision, flush_caches=True)

    # Rebase state is per worktree
    def is_rebase_in_progress(self) -> bool:
        return os.path.isdir(self.get_worktree_git_subpath("rebase-merge")) or \
            os.path.isdir(self.get_worktree_git_subpath("rebase-apply"))

    def __get_rebase_result(self, git_args: List[str], exit_code: int, stdout: str, stderr: str) -> RebaseResult:
        if self.is_rebase_in_progress():
            return RebaseResult.CONFLICT
        if exit_code != 0:
            raise CommandFailedException("git", git_args, exit_code, stdout, stderr)
        return RebaseResult.DONE

    def rebase(self, onto: AnyRevision, from_exclusive: AnyRevision, branch: LocalBranchShortName,
               committer_date_is_author_date: bool, extra_rebase_opts: List[str]) -> RebaseResult:
        args = ["rebase", *extra_rebase_opts]
        if committer_date_is_author_date:
            args.append("--committer-date-is-author-date")
        args += ["--onto", onto, from_exclusive, branch]
        exit_code, stdout, stderr = self._popen_git(*args, allow_non_zero=True)
        self.flush_caches()
        utils.mark_current_directory_as_possibly_non_existent()
        return self.__get_rebase_result(args, exit_code, stdout, stderr)

    def rebase_interactive(self, branch: LocalBranchShortName, parent_revision: AnyRevision) -> RebaseResult:
        args = ["rebase", "--interactive", parent_revision, branch]
        exit_code = self._run_git(*args, flush_caches=True, allow_non_zero=True)
        return self.__get_rebase_result(args, exit_code, "", "")

    def rebase_continue(self) -> RebaseResult:
        args = ["rebase", "--continue"]
        # The commit message of the resolved commit is kept as-is, without opening an editor.
        env = dict(os.environ, GIT_EDITOR="true")
        exit_code, stdout, stderr = self._popen_git(*args, allow_non_zero=True, env=env)
        self.flush_caches()
        return self.__get_rebase_result(args, exit_code, stdout, stderr)

    def rebase_abort(self) -> None:
        self._run_git("rebase", "--abort", flush_caches=True)

    def hash_object(self, content: str) -> FullCommitHash:
        # Blob hash, not a commit hash; both are 40-character SHA-1s.
        return FullCommitHash.of(self._popen_git("hash-object", "-w", "--stdin", input=content).stdout.strip())

    def update_ref(self, ref: str, object_hash: AnyRevision) -> None:
        self._popen_git("update-ref", ref, object_hash)

    def delete_ref(self, ref: str) -> None:
        self._popen_git("update-ref", "-d", ref)

    def cat_file(self, object_hash: AnyRevision) -> str:
        return self._popen_git("cat-file", "-p", object_hash).stdout

    def list_refs(self, prefix: str) -> Dict[str, str]:
        raw = self._popen_git("for-each-ref", "--format=%(refname)\t%(objectname)", prefix).stdout
        return dict(line.split("\t", 1) for line in utils.get_non_empty_lines(raw))  # type: ignore [misc]

    def fetch_branch(self, remote: str, branch: LocalBranchShortName) -> None:
        self._run_git("fetch", "--quiet", "--no-write-fetch-head", "--force",
                      remote, f"{branch.full_name()}:{FETCH_HEAD_REF}", flush_caches=True)

    def read_fetch_head(self) -> FullCommitHash:
        return self.get_commit_hash_by_revision_or_raise(AnyRevision.of(FETCH_HEAD_REF))

    def read_fetch_base(self) -> FullCommitHash:
        return self.get_commit_hash_by_revision_or_raise(AnyRevision.of(FETCH_BASE_REF))

    def write_fetch_base(self, revision: FullCommitHash) -> None:
        self.update_ref(FETCH_BASE_REF, revision)
        self.flush_caches()

    def set_remote_tracking(self, remote: str, branch: LocalBranchShortName, revision: FullCommitHash) -> None:
        self.update_ref(f"refs/remotes/{remote}/{branch}", revision)
        self.flush_caches()

    def pull_ff_only(self, remote: str, branch: LocalBranchShortName) -> None:
        self._run_git("pull", "--ff-only", remote, branch, flush_caches=True)

    def prune_remote(self, remote: str) -> None:
        self._run_git("remote", "prune", remote, flush_caches=True)

    def get_remote_shas(self, remote: str) -> Dict[LocalBranchShortName, FullCommitHash]:
        # Only branch heads, not tags or `refs/pull/*`
        raw = self._popen_git("ls-remote", "--heads", remote).stdout
        result: Dict[LocalBranchShortName, FullCommitHash] = {}
        for line in utils.get_non_empty_lines(raw):
            commit_hash, ref = line.split("\t")
            result[LocalBranchShortName.of(re.sub("^refs/heads/", "", ref))] = FullCommitHash.of(commit_hash)
        return result
