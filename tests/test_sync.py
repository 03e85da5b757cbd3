import os

from git_strata.exceptions import ExitCode

from .base_test import BaseTest
from .mockers import (execute, launch_command, launch_command_with_exit_code,
                      read_continuation, read_metadata, write_to_file)
from .mockers_git_repository import (add_file_and_commit, check_out,
                                     clone_repo, commit,
                                     create_branch_with_commit,
                                     create_repo_with_remote, get_commit_hash,
                                     get_commit_subjects, get_current_branch,
                                     get_local_branches, is_ancestor_or_equal,
                                     is_rebase_in_progress, push)


class TestSync(BaseTest):

    def setup_method(self) -> None:
        super().setup_method()
        self.local_path, self.remote_path = create_repo_with_remote()
        commit("Initial commit")
        launch_command("init")
        push(branch="main")
        create_branch_with_commit("a")
        push(branch="a")
        create_branch_with_commit("b")
        push(branch="b")

    def clone_with_stack(self) -> None:
        clone_repo(self.remote_path)
        launch_command("init")
        launch_command("get", "a", "b")

    def test_get_new_stack(self) -> None:
        clone_repo(self.remote_path)
        launch_command("init")

        output = launch_command("get", "a", "b")

        assert output == "Checked out a from remote.\nChecked out b from remote.\n"
        assert get_current_branch() == "b"
        assert read_metadata("a") == {"parentBranchName": "main", "parentBranchRevision": get_commit_hash("main")}
        assert read_metadata("b") == {"parentBranchName": "a", "parentBranchRevision": get_commit_hash("a")}
        assert get_commit_hash("b") == get_commit_hash("origin/b")

    def test_get_up_to_date_stack(self) -> None:
        self.clone_with_stack()

        assert launch_command("get", "a", "b") == "a is up to date.\nb is up to date.\n"

    def test_get_rebases_local_changes_onto_remote_version(self) -> None:
        self.clone_with_stack()
        clone_path = os.getcwd()
        commit("Local b work")

        os.chdir(self.local_path)
        check_out("b")
        commit("Remote b work")
        push(branch="b")

        os.chdir(clone_path)
        output = launch_command("get", "a", "b")

        assert output == "a is up to date.\nRebased b onto the remote version.\n"
        assert get_commit_subjects("a..b") == ["b commit", "Remote b work", "Local b work"]
        assert read_metadata("b") == {"parentBranchName": "a", "parentBranchRevision": get_commit_hash("a")}

    def test_get_with_force_overwrites_local_changes(self) -> None:
        self.clone_with_stack()
        commit("Local b work")

        output = launch_command("get", "a", "b", "--force")

        assert output == "a is up to date.\nOverwrote b with the remote version.\n"
        assert get_commit_hash("b") == get_commit_hash("origin/b")
        assert get_commit_subjects("a..b") == ["b commit"]

    def test_sync_pulls_trunk(self) -> None:
        self.clone_with_stack()
        clone_path = os.getcwd()
        os.chdir(self.local_path)
        check_out("main")
        commit("Trunk moved on")
        push(branch="main")
        os.chdir(clone_path)

        output = launch_command("sync")

        assert f"Pulling main from remote...\nmain fast-forwarded to {get_commit_hash('main')[:7]}.\n" in output
        assert get_commit_subjects("main~1..main") == ["Trunk moved on"]
        assert get_current_branch() == "b"
        assert "x-a" in launch_command("status")

    def test_sync_with_restack(self) -> None:
        self.clone_with_stack()
        clone_path = os.getcwd()
        os.chdir(self.local_path)
        check_out("main")
        commit("Trunk moved on")
        push(branch="main")
        os.chdir(clone_path)

        output = launch_command("sync", "--restack")

        assert "Restacked a." in output
        assert "Restacked b." in output
        assert get_commit_hash("a~1") == get_commit_hash("main")
        assert get_commit_hash("b~1") == get_commit_hash("a")

    def test_sync_deletes_merged_branches(self) -> None:
        self.clone_with_stack()
        clone_path = os.getcwd()
        os.chdir(self.local_path)
        check_out("main")
        execute("git merge --quiet --ff-only a")
        push(branch="main")
        os.chdir(clone_path)

        output = launch_command("sync", "--delete-merged")

        assert "Children of a will be moved onto its parent.\nDeleting a (merged into main)...\n" in output
        assert "a" not in get_local_branches()
        assert read_metadata("b") == {"parentBranchName": "main", "parentBranchRevision": get_commit_hash("main")}

    def test_sync_without_merged_branches(self) -> None:
        self.clone_with_stack()

        output = launch_command("sync", "--delete-merged")

        assert "main is up to date." in output
        assert "No merged branches to delete." in output

    def test_get_conflict_then_continue_resumes_remaining_branches(self) -> None:
        check_out("b")
        create_branch_with_commit("c")
        push(branch="c")
        clone_repo(self.remote_path)
        clone_path = os.getcwd()
        launch_command("init")
        launch_command("get", "a", "b", "c")
        check_out("b")
        add_file_and_commit("conflicting.txt", "local version\n", "Local b work")

        os.chdir(self.local_path)
        check_out("b")
        add_file_and_commit("conflicting.txt", "remote version\n", "Remote b work")
        push(branch="b")
        launch_command("restack", "--branch", "c", "--scope", "branch")
        push(branch="c")
        remote_b_revision = get_commit_hash("b")
        remote_c_revision = get_commit_hash("c")

        os.chdir(clone_path)
        output, exit_code = launch_command_with_exit_code("get", "a", "b", "c")

        assert exit_code == ExitCode.REBASE_CONFLICT
        assert "Hit conflict restacking b." in output
        continuation = read_continuation()
        assert continuation is not None
        assert continuation["phase"] == "CONFLICT_WAIT"
        assert continuation["branchesToSync"] == ["c"]
        assert continuation["branchesToRestack"] == []
        assert continuation["currentBranchOverride"] == "b"

        write_to_file("conflicting.txt", "resolved version\n")
        execute("git add conflicting.txt")
        output = launch_command("continue")

        assert "Resolved rebase conflict for b." in output
        assert "Rebased c onto the remote version." in output
        assert is_ancestor_or_equal(remote_b_revision, "b")
        assert get_commit_hash("c") == remote_c_revision
        assert read_metadata("c") == {"parentBranchName": "b", "parentBranchRevision": remote_b_revision}
        assert read_continuation() is None
        assert not is_rebase_in_progress()
