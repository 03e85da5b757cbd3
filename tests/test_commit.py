from .base_test import BaseTest
from .mockers import (assert_failure, launch_command, read_metadata,
                      write_to_file)
from .mockers_git_repository import (check_out, commit,
                                     create_branch_with_commit,
                                     create_initialized_repo, get_commit_hash,
                                     get_commit_subjects, stage_file)


class TestCommit(BaseTest):

    def setup_method(self) -> None:
        super().setup_method()
        create_initialized_repo()
        create_branch_with_commit("a")
        create_branch_with_commit("b")
        check_out("a")

    def test_commit_restacks_upstack(self) -> None:
        stage_file("second.txt")

        output = launch_command("commit", "-m", "Second commit of a")

        assert "Restacked b." in output
        assert get_commit_subjects("main..a") == ["a commit", "Second commit of a"]
        assert get_commit_hash("b~1") == get_commit_hash("a")
        assert read_metadata("b") == {"parentBranchName": "a", "parentBranchRevision": get_commit_hash("a")}

    def test_commit_without_staged_changes(self) -> None:
        assert_failure(
            ["commit", "-m", "Nothing"],
            "Cannot run without staged changes. Stage some changes with git add or pass --all.")

    def test_commit_all(self) -> None:
        write_to_file("a.txt", "Modified content\n")

        launch_command("commit", "--all", "-m", "Modify a.txt")

        assert get_commit_subjects("main..a") == ["a commit", "Modify a.txt"]

    def test_commit_on_trunk(self) -> None:
        check_out("main")
        stage_file("trunk.txt")

        assert_failure(["commit", "-m", "Trunk commit"], "Cannot perform this operation on the trunk branch.")

    def test_amend_without_edit(self) -> None:
        stage_file("amended.txt")

        output = launch_command("amend", "--no-edit")

        assert "Restacked b." in output
        assert get_commit_subjects("main..a") == ["a commit"]
        assert get_commit_subjects("a..b") == ["b commit"]
        assert read_metadata("b") == {"parentBranchName": "a", "parentBranchRevision": get_commit_hash("a")}

    def test_amend_with_message(self) -> None:
        launch_command("amend", "-m", "Reworded commit of a")

        assert get_commit_subjects("main..a") == ["Reworded commit of a"]
        assert get_commit_hash("b~1") == get_commit_hash("a")


class TestSquash(BaseTest):

    def setup_method(self) -> None:
        super().setup_method()
        create_initialized_repo()
        create_branch_with_commit("a")

    def test_squash(self) -> None:
        commit("Second commit")
        commit("Third commit")
        create_branch_with_commit("b")
        check_out("a")

        output = launch_command("squash", "-m", "Squashed commit")

        assert "Squashed 3 commits of a." in output
        assert get_commit_subjects("main..a") == ["Squashed commit"]
        assert get_commit_subjects("a..b") == ["b commit"]

    def test_squash_single_commit(self) -> None:
        head = get_commit_hash("a")

        output = launch_command("squash", "-m", "Unused")

        assert output == "a has exactly one commit, nothing to squash.\n"
        assert get_commit_hash("a") == head
