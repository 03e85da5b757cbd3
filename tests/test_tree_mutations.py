from .base_test import BaseTest
from .mockers import (assert_failure, execute, launch_command, read_metadata,
                      write_metadata)
from .mockers_git_repository import (check_out, commit,
                                     create_branch_with_commit,
                                     create_initialized_repo, get_commit_hash,
                                     get_commit_subjects, get_current_branch,
                                     get_local_branches, stage_file)


class TestCreate(BaseTest):

    def setup_method(self) -> None:
        super().setup_method()
        create_initialized_repo()

    def test_create_with_staged_changes(self) -> None:
        stage_file("feature.txt")

        output = launch_command("create", "feature", "-m", "Add feature")

        assert output == "Created feature on top of main.\n"
        assert get_current_branch() == "feature"
        assert get_commit_subjects("main..feature") == ["Add feature"]
        assert read_metadata("feature") == {"parentBranchName": "main", "parentBranchRevision": get_commit_hash("main")}

    def test_create_without_staged_changes(self) -> None:
        output = launch_command("create", "empty", "-m", "Nothing here")

        assert output == "No staged changes, the branch has been created without a commit.\nCreated empty on top of main.\n"
        assert get_commit_hash("empty") == get_commit_hash("main")

    def test_create_with_insert(self) -> None:
        create_branch_with_commit("a")
        check_out("main")
        stage_file("inserted.txt")

        output = launch_command("create", "inserted", "--insert", "-m", "Inserted commit")

        assert "Moved a onto inserted." in output
        assert "Restacked a." in output
        assert get_current_branch() == "inserted"
        assert get_commit_hash("a~1") == get_commit_hash("inserted")
        assert read_metadata("a") == {"parentBranchName": "inserted", "parentBranchRevision": get_commit_hash("inserted")}

    def test_create_on_untracked_branch(self) -> None:
        execute("git checkout -q -b loose")

        assert_failure(
            ["create", "feature"],
            """
            Cannot perform this operation on untracked branch loose.
            You can track it by specifying its parent with git strata track loose --parent <parent>."""
        )


class TestRename(BaseTest):

    def setup_method(self) -> None:
        super().setup_method()
        create_initialized_repo()
        create_branch_with_commit("a")
        create_branch_with_commit("b")
        check_out("a")

    def test_rename(self) -> None:
        output = launch_command("rename", "renamed")

        assert output == "Renamed a to renamed.\n"
        assert get_current_branch() == "renamed"
        assert "a" not in get_local_branches()
        assert read_metadata("a") is None
        assert read_metadata("renamed") == {"parentBranchName": "main", "parentBranchRevision": get_commit_hash("main")}
        assert read_metadata("b") == {"parentBranchName": "renamed", "parentBranchRevision": get_commit_hash("renamed")}

    def test_rename_keeps_pr_info(self) -> None:
        write_metadata("a", {"parentBranchName": "main", "parentBranchRevision": get_commit_hash("main"), "prInfo": {"number": 42}})

        launch_command("rename", "renamed")

        assert read_metadata("renamed") == {
            "parentBranchName": "main", "parentBranchRevision": get_commit_hash("main"), "prInfo": {"number": 42}}

    def test_rename_to_existing_branch(self) -> None:
        assert_failure(["rename", "b"], "Branch b already exists.")


class TestFold(BaseTest):

    def setup_method(self) -> None:
        super().setup_method()
        create_initialized_repo()
        create_branch_with_commit("a")
        create_branch_with_commit("b")
        create_branch_with_commit("c")
        check_out("b")

    def test_fold_into_parent(self) -> None:
        b_head = get_commit_hash("b")

        output = launch_command("fold")

        assert "Folded b into a." in output
        assert "b" not in get_local_branches()
        assert read_metadata("b") is None
        assert get_current_branch() == "a"
        assert get_commit_hash("a") == b_head
        assert get_commit_subjects("main..a") == ["a commit", "b commit"]
        assert read_metadata("c") == {"parentBranchName": "a", "parentBranchRevision": b_head}

    def test_fold_keeping_current_branch(self) -> None:
        output = launch_command("fold", "--keep")

        assert "Folded a into b." in output
        assert "a" not in get_local_branches()
        assert get_current_branch() == "b"
        assert get_commit_subjects("main..b") == ["a commit", "b commit"]
        assert read_metadata("b") == {"parentBranchName": "main", "parentBranchRevision": get_commit_hash("main")}
        assert read_metadata("c") == {"parentBranchName": "b", "parentBranchRevision": get_commit_hash("b")}

    def test_fold_onto_trunk(self) -> None:
        check_out("a")

        assert_failure(["fold"], "Cannot perform this operation on the trunk branch.")


class TestDelete(BaseTest):

    def setup_method(self) -> None:
        super().setup_method()
        create_initialized_repo()
        create_branch_with_commit("a")
        create_branch_with_commit("b")
        create_branch_with_commit("c")

    def test_delete_unmerged_branch(self) -> None:
        assert_failure(
            ["delete", "b"],
            """
            Branch b is neither merged into main nor empty.
            Use --force to delete it anyway."""
        )

    def test_delete_with_force(self) -> None:
        b_head = get_commit_hash("b")

        output = launch_command("delete", "b", "--force")

        assert output == "Deleted b.\nMoved c onto its parent.\n"
        assert "b" not in get_local_branches()
        assert read_metadata("b") is None
        # The fork point is left as it was, hence `c` still contains the commit of `b` until restacked.
        assert read_metadata("c") == {"parentBranchName": "a", "parentBranchRevision": b_head}
        assert "x-c" in launch_command("status")

        launch_command("restack")

        assert get_commit_subjects("main..c") == ["a commit", "c commit"]

    def test_delete_merged_current_branch(self) -> None:
        check_out("main")
        execute("git merge --quiet --ff-only a")
        check_out("a")

        output = launch_command("delete", "a")

        assert output == "Deleted a.\nMoved b onto its parent.\n"
        assert get_current_branch() == "main"
        assert read_metadata("b") == {"parentBranchName": "main", "parentBranchRevision": get_commit_hash("main")}

    def test_delete_trunk(self) -> None:
        assert_failure(["delete", "main"], "Cannot perform this operation on the trunk branch.")


class TestSplit(BaseTest):

    def setup_method(self) -> None:
        super().setup_method()
        create_initialized_repo()
        create_branch_with_commit("a")
        commit("Second commit")
        commit("Third commit")

    def test_split_into_chain(self) -> None:
        output = launch_command("split", "a1", "a2", "a", "--points", "2", "1", "0")

        assert output == "Split a into a1, a2, a.\n"
        assert get_current_branch() == "a"
        assert get_commit_subjects("main..a1") == ["a commit"]
        assert get_commit_subjects("a1..a2") == ["Second commit"]
        assert get_commit_subjects("a2..a") == ["Third commit"]
        assert read_metadata("a1") == {"parentBranchName": "main", "parentBranchRevision": get_commit_hash("main")}
        assert read_metadata("a2") == {"parentBranchName": "a1", "parentBranchRevision": get_commit_hash("a1")}
        assert read_metadata("a") == {"parentBranchName": "a2", "parentBranchRevision": get_commit_hash("a2")}

    def test_split_keeps_pr_info_of_reused_name(self) -> None:
        write_metadata("a", {"parentBranchName": "main", "parentBranchRevision": get_commit_hash("main"), "prInfo": {"number": 7}})

        launch_command("split", "a", "top", "--points", "1", "0")

        assert read_metadata("a") == {
            "parentBranchName": "main", "parentBranchRevision": get_commit_hash("main"), "prInfo": {"number": 7}}
        assert read_metadata("top") == {"parentBranchName": "a", "parentBranchRevision": get_commit_hash("a")}
        assert get_commit_subjects("main..a") == ["a commit", "Second commit"]
        assert get_current_branch() == "top"

    def test_split_moves_children_onto_last_branch(self) -> None:
        create_branch_with_commit("child")
        check_out("a")

        launch_command("split", "x", "y", "--points", "2", "0")

        assert "a" not in get_local_branches()
        assert read_metadata("a") is None
        assert get_commit_subjects("main..x") == ["a commit"]
        assert get_commit_subjects("x..y") == ["Second commit", "Third commit"]
        assert read_metadata("child") == {"parentBranchName": "y", "parentBranchRevision": get_commit_hash("y")}
        assert "o-child" in launch_command("status")

    def test_split_validation(self) -> None:
        execute("git branch other")

        assert_failure(["split", "x", "y", "--points", "0"], "Got 2 branch name(s) but 1 split point(s).")
        assert_failure(["split", "x", "x", "--points", "1", "0"], "Branch names must be unique.")
        assert_failure(["split", "x", "y", "--points", "0", "0"], "Split points must be unique.")
        assert_failure(["split", "x", "--points", "1"], "Split points must include 0, i.e. the head of a.")
        assert_failure(["split", "x", "y", "--points", "0", "5"], "Split point(s) 5 out of range: a has 3 commit(s).")
        assert_failure(["split", "other", "a", "--points", "1", "0"], "Branch other already exists.")
        assert get_current_branch() == "a"


class TestCheckout(BaseTest):

    def test_checkout(self) -> None:
        create_initialized_repo()
        create_branch_with_commit("a")
        check_out("main")

        assert launch_command("checkout", "a") == "Checked out a.\n"
        assert get_current_branch() == "a"
        assert launch_command("co", "main") == "Checked out main.\n"
        assert get_current_branch() == "main"

    def test_checkout_missing_branch(self) -> None:
        create_initialized_repo()

        assert_failure(["checkout", "missing"], "Cannot find branch missing.")
