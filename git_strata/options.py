from typing import List, Optional

from .git_operations import LocalBranchShortName


class CommandLineOptions:

    def __init__(self) -> None:
        self.opt_all: bool = False
        self.opt_branch: Optional[LocalBranchShortName] = None
        self.opt_branches: List[LocalBranchShortName] = list()
        self.opt_delete_merged: bool = False
        self.opt_force: bool = False
        self.opt_insert: bool = False
        self.opt_keep: bool = False
        self.opt_list_commits: bool = False
        self.opt_message: Optional[str] = None
        self.opt_no_edit: bool = False
        self.opt_onto: Optional[LocalBranchShortName] = None
        self.opt_parent: Optional[LocalBranchShortName] = None
        self.opt_patch: bool = False
        self.opt_points: List[int] = list()
        self.opt_reset: bool = False
        self.opt_restack: bool = False
        self.opt_scope: str = "stack"
        self.opt_trunk: Optional[LocalBranchShortName] = None

    def __repr__(self) -> str:  # pragma: no cover; debug only
        attrs = ", ".join(f"{k}={v!r}" for k, v in self.__dict__.items())
        return f"{self.__class__.__module__}.{self.__class__.__qualname__}({attrs})"
