from .base_test import BaseTest
from .mockers import (assert_failure, execute, launch_command, read_metadata)
from .mockers_git_repository import (check_out, commit,
                                     create_branch_with_commit,
                                     create_initialized_repo, get_commit_hash,
                                     new_branch)


class TestTrack(BaseTest):

    def setup_method(self) -> None:
        super().setup_method()
        create_initialized_repo()

    def test_track_current_branch_onto_trunk_by_default(self) -> None:
        new_branch("feature")
        commit("Feature commit")
        check_out("main")
        commit("Trunk moved on")
        fork_point = get_commit_hash("main~1")
        check_out("feature")

        output = launch_command("track")

        assert output == "Tracked feature with parent main.\n"
        # The fork point is where the branch diverged, not the current revision of its parent.
        assert read_metadata("feature") == {"parentBranchName": "main", "parentBranchRevision": fork_point}
        assert "x-feature" in launch_command("status")

    def test_track_with_explicit_parent(self) -> None:
        create_branch_with_commit("a")
        new_branch("b")
        commit("b commit")

        launch_command("track", "b", "--parent", "a")

        assert read_metadata("b") == {"parentBranchName": "a", "parentBranchRevision": get_commit_hash("a")}
        assert "o-b" in launch_command("status")

    def test_untrack_and_track_again(self) -> None:
        create_branch_with_commit("a")
        create_branch_with_commit("b")

        assert launch_command("untrack", "a") == "Stopped tracking a.\n"
        assert read_metadata("a") is None
        assert "?-b" in launch_command("status")

        launch_command("track", "a", "--parent", "main")

        assert read_metadata("a") == {"parentBranchName": "main", "parentBranchRevision": get_commit_hash("main")}
        # Children are valid again once their parent is tracked again.
        status = launch_command("status")
        assert "o-a" in status
        assert "o-b" in status

    def test_track_rejects_cycles(self) -> None:
        create_branch_with_commit("a")
        create_branch_with_commit("b")

        assert_failure(["track", "a", "--parent", "b"], "Cannot set parent of a to its own descendant b.")
        assert_failure(["track", "a", "--parent", "a"], "Cannot set parent of a to itself.")

    def test_track_trunk(self) -> None:
        execute("git branch other")

        assert_failure(["track", "main", "--parent", "other"], "Cannot perform this operation on the trunk branch.")

    def test_move(self) -> None:
        create_branch_with_commit("a")
        create_branch_with_commit("b")
        create_branch_with_commit("c")

        output = launch_command("move", "--onto", "a")

        assert "Moved c onto a." in output
        assert read_metadata("c") == {"parentBranchName": "a", "parentBranchRevision": get_commit_hash("a")}
        assert get_commit_hash("c~1") == get_commit_hash("a")
        assert read_metadata("b") == {"parentBranchName": "a", "parentBranchRevision": get_commit_hash("a")}

    def test_move_branch_with_children(self) -> None:
        create_branch_with_commit("a")
        create_branch_with_commit("b")
        create_branch_with_commit("c")

        launch_command("move", "--branch", "b", "--onto", "main")

        assert get_commit_hash("b~1") == get_commit_hash("main")
        assert get_commit_hash("c~1") == get_commit_hash("b")
        assert read_metadata("c") == {"parentBranchName": "b", "parentBranchRevision": get_commit_hash("b")}

    def test_move_onto_descendant(self) -> None:
        create_branch_with_commit("a")
        create_branch_with_commit("b")

        assert_failure(["move", "--branch", "a", "--onto", "b"], "Cannot set parent of a to its own descendant b.")
