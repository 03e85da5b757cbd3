import os
import subprocess
from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from git_strata.exceptions import ConcurrentExecutionException
from git_strata.lock import RepositoryLock

from .base_test import BaseTest
from .mockers import assert_failure, launch_command, write_to_file
from .mockers_git_repository import create_initialized_repo


def dead_pid() -> int:
    process = subprocess.Popen(["true"])
    process.wait()
    return process.pid


class TestLock(BaseTest):

    def test_second_acquire_fails(self, tmp_path: Path) -> None:
        path = str(tmp_path / "strata.lock")
        first = RepositoryLock(path)
        first.acquire()

        with pytest.raises(ConcurrentExecutionException):
            RepositoryLock(path).acquire()

        first.release()
        assert not os.path.exists(path)

    def test_reacquire_after_release(self, tmp_path: Path) -> None:
        path = str(tmp_path / "strata.lock")
        with RepositoryLock(path):
            with open(path) as f:
                assert f.read() == str(os.getpid())

        with RepositoryLock(path):
            assert os.path.exists(path)
        assert not os.path.exists(path)

    def test_stale_lock_is_taken_over(self, tmp_path: Path) -> None:
        path = str(tmp_path / "strata.lock")
        write_to_file(path, str(dead_pid()))

        lock = RepositoryLock(path)
        lock.acquire()

        with open(path) as f:
            assert f.read() == str(os.getpid())
        lock.release()

    def test_lock_without_pid_is_not_taken_over(self, tmp_path: Path) -> None:
        path = str(tmp_path / "strata.lock")
        write_to_file(path, "")

        with pytest.raises(ConcurrentExecutionException):
            RepositoryLock(path).acquire()
        assert os.path.exists(path)

    def test_release_of_lock_not_held(self, tmp_path: Path) -> None:
        path = str(tmp_path / "strata.lock")
        write_to_file(path, str(os.getpid()))

        RepositoryLock(path).release()

        assert os.path.exists(path)

    def test_command_fails_while_lock_is_held(self) -> None:
        create_initialized_repo()
        lock_path = os.path.join(os.getcwd(), ".git", "strata.lock")

        with RepositoryLock(lock_path):
            assert_failure(
                ["status"],
                f"""
                Cannot run more than one git-strata process at once in the same repository.
                If no other git-strata process is running, remove {lock_path} and try again.""",
                expected_type=ConcurrentExecutionException)

        launch_command("status")
        assert not os.path.exists(lock_path)

    def test_lock_of_other_user_is_not_taken_over(self, mocker: MockerFixture, tmp_path: Path) -> None:
        def kill_without_permission(pid: int, sig: int) -> None:  # noqa: U100
            raise PermissionError()
        self.patch_symbol(mocker, "git_strata.lock.os.kill", kill_without_permission)
        path = str(tmp_path / "strata.lock")
        write_to_file(path, "1")

        with pytest.raises(ConcurrentExecutionException):
            RepositoryLock(path).acquire()
