from git_strata.git_operations import (FullCommitHash, GitContext,
                                       LocalBranchShortName)
from git_strata.ref_store import MetadataEntry, MetadataRefStore

from .base_test import BaseTest
from .mockers import execute, popen, read_metadata, write_metadata
from .mockers_git_repository import commit, create_repo, get_commit_hash

feature = LocalBranchShortName.of("feature")
main = LocalBranchShortName.of("main")


class TestMetadataRefStore(BaseTest):

    def setup_method(self) -> None:
        super().setup_method()
        create_repo()
        commit("Initial commit")
        self.main_hash = FullCommitHash.of(get_commit_hash("main"))

    def test_write_and_read(self) -> None:
        store = MetadataRefStore(GitContext())

        store.write(feature, MetadataEntry(main, self.main_hash, {"number": 3}))

        assert read_metadata("feature") == {"parentBranchName": "main", "parentBranchRevision": self.main_hash, "prInfo": {"number": 3}}
        assert store.read(feature) == MetadataEntry(main, self.main_hash, {"number": 3})
        assert store.list() == {feature: MetadataEntry(main, self.main_hash, {"number": 3})}

    def test_entry_without_pr_info(self) -> None:
        store = MetadataRefStore(GitContext())

        store.write(feature, MetadataEntry(main, self.main_hash, None))

        assert read_metadata("feature") == {"parentBranchName": "main", "parentBranchRevision": self.main_hash}

    def test_delete(self) -> None:
        write_metadata("feature", {"parentBranchName": "main", "parentBranchRevision": self.main_hash})
        store = MetadataRefStore(GitContext())

        store.delete(feature)
        store.delete(feature)

        assert read_metadata("feature") is None
        assert store.read(feature) is None

    def test_unknown_keys_are_ignored(self) -> None:
        write_metadata("feature", {"parentBranchName": "main", "someOtherTool": True})

        assert MetadataRefStore(GitContext()).read(feature) == MetadataEntry(main, None, None)

    def test_malformed_entries_are_skipped(self) -> None:
        write_metadata("short-hash", {"parentBranchName": "main", "parentBranchRevision": "abc"})
        write_metadata("not-an-object", ["main"])  # type: ignore[arg-type]
        blob = popen("echo '{' | git hash-object -w --stdin")
        execute(f"git update-ref refs/branch-metadata/not-json {blob}")
        write_metadata("feature", {"parentBranchName": "main", "parentBranchRevision": self.main_hash})

        assert list(MetadataRefStore(GitContext()).list().keys()) == [feature]

    def test_ref_pointing_to_commit(self) -> None:
        execute(f"git update-ref refs/branch-metadata/feature {self.main_hash}")

        assert MetadataRefStore(GitContext()).read(feature) is None
