import os
import sys
from typing import Any, Optional

from git_strata.exceptions import ConcurrentExecutionException
from git_strata.utils import debug

LOCK_FILE_NAME = 'strata.lock'


class RepositoryLock:
    """Cross-process lock: a file created with O_EXCL in the git directory, holding the pid of its owner."""

    def __init__(self, path: str) -> None:
        self.path = path
        self.__held = False

    def __read_owner_pid(self) -> Optional[int]:
        try:
            with open(self.path) as f:
                return int(f.read().strip())
        except (OSError, ValueError):
            return None

    def __is_stale(self) -> bool:
        # No reliable liveness check via `os.kill(pid, 0)` on Windows.
        if sys.platform == 'win32':  # pragma: no cover
            return False
        pid = self.__read_owner_pid()
        # The owner may have created the file but not written its pid yet.
        if pid is None:
            return False
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return True
        except PermissionError:
            return False
        return False

    def __try_create(self) -> bool:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, 'w') as f:
            f.write(str(os.getpid()))
        return True

    def acquire(self) -> None:
        if not self.__try_create():
            if not self.__is_stale():
                raise ConcurrentExecutionException(self.path)
            debug(f"taking over {self.path} left behind by a process that no longer exists")
            try:
                os.remove(self.path)
            except FileNotFoundError:
                pass
            if not self.__try_create():
                raise ConcurrentExecutionException(self.path)
        self.__held = True

    def release(self) -> None:
        if self.__held:
            self.__held = False
            try:
                os.remove(self.path)
            except FileNotFoundError:
                debug(f"{self.path} has already been removed")

    def __enter__(self) -> "RepositoryLock":
        self.acquire()
        return self

    def __exit__(self, *args: Any) -> None:
        self.release()
