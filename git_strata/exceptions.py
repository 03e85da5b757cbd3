from enum import IntEnum
from typing import List, Optional, Sequence

from git_strata import utils


class StrataException(Exception):
    def __init__(self, msg: str, apply_fmt: bool = True) -> None:
        self.msg: str = utils.fmt(msg) if apply_fmt else msg

    def __str__(self) -> str:
        return str(self.msg)


class UnexpectedStrataException(StrataException):
    def __init__(self, msg: str, apply_fmt: bool = True) -> None:
        super().__init__(f"{msg}\n\nThis is most likely a bug in git-strata, please report it.", apply_fmt=apply_fmt)


class PreconditionsFailedException(StrataException):
    pass


class NoBranchException(PreconditionsFailedException):
    def __init__(self, branch: str) -> None:
        super().__init__(f"Cannot find branch <b>{branch}</b>.")
        self.branch = branch


class DetachedHeadException(PreconditionsFailedException):
    def __init__(self) -> None:
        super().__init__("Not currently on any branch. Check out a branch first.")


class BadTrunkOperationException(PreconditionsFailedException):
    def __init__(self) -> None:
        super().__init__("Cannot perform this operation on the trunk branch.")


class UntrackedBranchException(PreconditionsFailedException):
    def __init__(self, branch: str) -> None:
        super().__init__(
            f"Cannot perform this operation on untracked branch <b>{branch}</b>.\n"
            f"You can track it by specifying its parent with `git strata track {branch} --parent <parent>`.")
        self.branch = branch


class InvalidParentException(PreconditionsFailedException):
    def __init__(self, branch: str, parent: str) -> None:
        super().__init__(
            f"Branch <b>{branch}</b> is no longer based on its recorded parent <b>{parent}</b>.\n"
            f"Re-track it with `git strata track {branch} --parent <parent>`.")
        self.branch = branch
        self.parent = parent


class CycleException(PreconditionsFailedException):
    def __init__(self, branch: str, parent: str) -> None:
        if branch == parent:
            super().__init__(f"Cannot set parent of <b>{branch}</b> to itself.")
        else:
            super().__init__(f"Cannot set parent of <b>{branch}</b> to its own descendant <b>{parent}</b>.")
        self.branch = branch
        self.parent = parent


class NoStagedChangesException(PreconditionsFailedException):
    def __init__(self) -> None:
        super().__init__("Cannot run without staged changes. Stage some changes with `git add` or pass `--all`.")


class NoContinuationException(StrataException):
    def __init__(self, command: Optional[str] = None, unfinished_branches: Sequence[str] = ()) -> None:
        if unfinished_branches:
            msg = ("No git-strata operation to continue: git-strata was interrupted before it could record the rebase in progress.\n"
                   f"Use `{command}` instead, then handle by hand the branches it has not reached: "
                   + ", ".join(f"<b>{branch}</b>" for branch in unfinished_branches) + ".")
        elif command:
            msg = ("No git-strata operation to continue: the rebase in progress has not been started by git-strata.\n"
                   f"Use `{command}` instead.")
        else:
            msg = "No git-strata operation to continue: there is no rebase in progress."
        super().__init__(msg)
        self.command = command
        self.unfinished_branches = list(unfinished_branches)


class ConcurrentExecutionException(StrataException):
    def __init__(self, lock_path: str) -> None:
        super().__init__(
            "Cannot run more than one git-strata process at once in the same repository.\n"
            f"If no other git-strata process is running, remove {lock_path} and try again.")


class UnderlyingGitException(Exception):
    def __init__(self, msg: str, apply_fmt: bool = True) -> None:
        self.msg: str = utils.fmt(msg) if apply_fmt else msg

    def __str__(self) -> str:
        return str(self.msg)


class CommandFailedException(UnderlyingGitException):
    def __init__(self, command: str, args: List[str], exit_code: int, stdout: str, stderr: str) -> None:
        # Raw git output may contain backticks or angle brackets, so no markup is applied
        super().__init__("\n".join([
            f"Command failed with exit code {exit_code}:",
            utils.get_cmd_shell_repr(command, *args, env=None),
            stdout,
            stderr]), apply_fmt=False)
        self.command = command
        self.args_ = args
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


class CommandKilledException(UnderlyingGitException):
    def __init__(self, command: str, args: List[str], signal: int, stdout: str, stderr: str) -> None:
        super().__init__("\n".join([
            f"Command killed with signal {signal}:",
            utils.get_cmd_shell_repr(command, *args, env=None),
            stdout,
            stderr]), apply_fmt=False)
        self.command = command
        self.args_ = args
        self.signal = signal
        self.stdout = stdout
        self.stderr = stderr


class ExitCode(IntEnum):
    SUCCESS = 0
    STRATA_EXCEPTION = 1
    ARGUMENT_ERROR = 2
    KEYBOARD_INTERRUPT = 3
    END_OF_FILE_SIGNAL = 4
    REBASE_CONFLICT = 5
