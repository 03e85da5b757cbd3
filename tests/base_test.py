import os
from typing import Any, Set

from pytest_mock import MockerFixture


class BaseTest:
    def setup_method(self) -> None:
        self.uncalled_patches: Set[str] = set()
        self.initial_directory = os.getcwd()
        os.environ.pop("GIT_STRATA_REBASE_OPTS", None)
        # Commands under test never open an editor unless a test mocks one in.
        os.environ["GIT_EDITOR"] = "true"

    def patch_symbol(self, mocker: MockerFixture, symbol: str, target: Any) -> None:
        """Patch `symbol` with `target`; a callable target must be called before the test ends."""
        if not callable(target):
            mocker.patch(symbol, target)
            return

        def record_call(*args: Any, **kwargs: Any) -> Any:
            self.uncalled_patches.discard(symbol)
            return target(*args, **kwargs)
        mocker.patch(symbol, record_call)
        self.uncalled_patches.add(symbol)

    def teardown_method(self) -> None:
        os.chdir(self.initial_directory)
        if self.uncalled_patches:
            raise Exception("Patched symbol(s) never called: " + ", ".join(sorted(self.uncalled_patches)))
