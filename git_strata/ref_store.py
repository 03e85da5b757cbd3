import json
from typing import Any, Dict, NamedTuple, Optional

from git_strata.exceptions import UnderlyingGitException
from git_strata.git_operations import (FullCommitHash, GitContext,
                                       LocalBranchShortName)
from git_strata.utils import debug

METADATA_REF_PREFIX = 'refs/branch-metadata/'

# Opaque to git-strata: stored and returned as-is.
BranchPRInfo = Dict[str, Any]


class MetadataEntry(NamedTuple):
    parent_branch_name: Optional[LocalBranchShortName]
    parent_branch_revision: Optional[FullCommitHash]
    pr_info: Optional[BranchPRInfo]

    def to_json(self) -> str:
        raw: Dict[str, Any] = {
            "parentBranchName": self.parent_branch_name,
            "parentBranchRevision": self.parent_branch_revision,
        }
        if self.pr_info is not None:
            raw["prInfo"] = self.pr_info
        return json.dumps(raw)

    @staticmethod
    def from_json(content: str) -> Optional["MetadataEntry"]:
        try:
            raw = json.loads(content)
        except ValueError:
            return None
        if not isinstance(raw, dict):
            return None
        parent_name = raw.get("parentBranchName")
        parent_revision = raw.get("parentBranchRevision")
        pr_info = raw.get("prInfo")
        if parent_name is not None and not isinstance(parent_name, str):
            return None
        if parent_revision is not None and not (isinstance(parent_revision, str) and len(parent_revision) == 40):
            return None
        if pr_info is not None and not isinstance(pr_info, dict):
            return None
        return MetadataEntry(
            parent_branch_name=LocalBranchShortName.of(parent_name) if parent_name else None,
            parent_branch_revision=FullCommitHash.of(parent_revision) if parent_revision else None,
            pr_info=pr_info)


class MetadataRefStore:
    """Persists branch metadata as JSON blobs, one ref per tracked branch under `refs/branch-metadata/`.

    Refs (unlike files in the git directory) are shared between worktrees and can be pushed and fetched like any other ref.
    """

    def __init__(self, git: GitContext) -> None:
        self.__git = git

    @staticmethod
    def ref_name(branch: str) -> str:
        return METADATA_REF_PREFIX + branch

    def __read_blob(self, branch: str, blob_hash: str) -> Optional[MetadataEntry]:
        try:
            entry = MetadataEntry.from_json(self.__git.cat_file(FullCommitHash.of(blob_hash)))
        except UnderlyingGitException:
            entry = None
        if entry is None:
            debug(f"metadata of {branch} is malformed, treating it as absent")
        return entry

    def list(self) -> Dict[LocalBranchShortName, MetadataEntry]:
        result: Dict[LocalBranchShortName, MetadataEntry] = {}
        for ref, blob_hash in self.__git.list_refs(METADATA_REF_PREFIX).items():
            branch = LocalBranchShortName.of(ref[len(METADATA_REF_PREFIX):])
            entry = self.__read_blob(branch, blob_hash)
            if entry is not None:
                result[branch] = entry
        return result

    def read(self, branch: LocalBranchShortName) -> Optional[MetadataEntry]:
        refs = self.__git.list_refs(self.ref_name(branch))
        blob_hash = refs.get(self.ref_name(branch))
        return self.__read_blob(branch, blob_hash) if blob_hash else None

    def write(self, branch: LocalBranchShortName, entry: MetadataEntry) -> None:
        blob_hash = self.__git.hash_object(entry.to_json())
        self.__git.update_ref(self.ref_name(branch), blob_hash)

    def delete(self, branch: LocalBranchShortName) -> None:
        if self.ref_name(branch) in self.__git.list_refs(self.ref_name(branch)):
            self.__git.delete_ref(self.ref_name(branch))
