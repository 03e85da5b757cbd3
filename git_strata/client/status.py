import io
import sys
from enum import Enum, auto
from typing import Dict, Iterator, List, Optional, Tuple

from git_strata import utils
from git_strata.cached_meta import (InvalidParentMeta, UntrackedMeta,
                                    ValidMeta, ValidationResult)
from git_strata.client.base import StrataClient
from git_strata.git_operations import LocalBranchShortName
from git_strata.utils import (AnsiEscapeCodes, bold, colored, dim, underline,
                              warn)


class EdgeStatus(Enum):
    FIXED = auto()
    NEEDS_RESTACK = auto()
    INVALID_PARENT = auto()


edge_status_to_color_map: Dict[EdgeStatus, str] = {
    EdgeStatus.FIXED: AnsiEscapeCodes.GREEN,
    EdgeStatus.NEEDS_RESTACK: AnsiEscapeCodes.RED,
    EdgeStatus.INVALID_PARENT: AnsiEscapeCodes.YELLOW
}

edge_status_to_junction_ascii_only_map: Dict[EdgeStatus, str] = {
    EdgeStatus.FIXED: "o-",
    EdgeStatus.NEEDS_RESTACK: "x-",
    EdgeStatus.INVALID_PARENT: "?-"
}


class StatusStrataClient(StrataClient):

    def __get_roots(self) -> List[LocalBranchShortName]:
        trunk = self._meta_cache.trunk
        untracked = sorted(b for b in self._meta_cache.all_branch_names
                           if self._meta_cache.get_validation_result(b) == ValidationResult.BAD_PARENT_NAME)
        return ([trunk] if self._meta_cache.branch_exists(trunk) else []) + untracked

    def __get_edge_status(self, branch: LocalBranchShortName) -> Optional[EdgeStatus]:
        result = self._meta_cache.get_validation_result(branch)
        if result == ValidationResult.INVALID_PARENT:
            return EdgeStatus.INVALID_PARENT
        if result == ValidationResult.VALID:
            return EdgeStatus.FIXED if self._meta_cache.is_branch_fixed(branch) else EdgeStatus.NEEDS_RESTACK
        return None

    def __walk(self, branch: LocalBranchShortName,
               later_siblings: List[Optional[LocalBranchShortName]]) -> Iterator[Tuple[LocalBranchShortName, List[Optional[LocalBranchShortName]]]]:
        """Pre-order walk yielding each branch with, for every level down to it, the next sibling still to be printed."""
        yield branch, later_siblings
        # Children whose parent is no longer valid are listed too, so that they still get displayed.
        children = self._meta_cache.get_meta(branch).children
        for index, child in enumerate(children):
            next_sibling = children[index + 1] if index + 1 < len(children) else None
            yield from self.__walk(child, later_siblings + [next_sibling])

    def status(self, *, list_commits: bool) -> None:
        # Overlaps with the local validation below
        self._meta_cache.prefetch_remote_shas()
        roots = self.__get_roots()
        layout = [entry for root in roots for entry in self.__walk(root, [])]
        edge_status: Dict[LocalBranchShortName, EdgeStatus] = {}
        for branch, _ in layout:
            status = self.__get_edge_status(branch)
            if status is not None:
                edge_status[branch] = status

        rebased_branch = self._git.get_currently_rebased_branch_or_none()
        current_branch = self._meta_cache.current_branch
        remote_enabled = self._git.get_config_attr_or_none(f"remote.{self._context.remote}.url") is not None
        bar = utils.get_vertical_bar()
        out = io.StringIO()

        def write_prefix(branch_: LocalBranchShortName, later_siblings_: List[Optional[LocalBranchShortName]], tail: str) -> None:
            # One column per ancestor level: a bar in the color of the sibling edge still to come, blank if none.
            columns = [colored(f"{bar} ", edge_status_to_color_map[edge_status[s]]) if s else "  " for s in later_siblings_[:-1]]
            out.write("  " + "".join(columns) + colored(tail, edge_status_to_color_map[edge_status[branch_]]))

        for branch, later_siblings in layout:
            meta = self._meta_cache.get_meta(branch)
            if branch not in edge_status:
                # A root; roots after the first are separated by an empty line
                out.write("  " if branch == roots[0] else "\n  ")
            else:
                write_prefix(branch, later_siblings, f"{bar}\n")
                if list_commits and isinstance(meta, (ValidMeta, InvalidParentMeta)):
                    for commit in self._git.get_commits_between(meta.parent_branch_revision, meta.branch_revision):
                        write_prefix(branch, later_siblings, bar)
                        out.write(f' {dim(commit.short_hash)}  {dim(commit.subject)}\n')
                if utils.ascii_only:
                    junction = edge_status_to_junction_ascii_only_map[edge_status[branch]]
                else:
                    next_sibling = later_siblings[-1]
                    continues = next_sibling is not None and edge_status[next_sibling] == edge_status[branch]
                    junction = "├─" if continues else "└─"
                write_prefix(branch, later_siblings, junction)

            if branch == rebased_branch:
                name = bold(colored("REBASING ", AnsiEscapeCodes.RED)) + bold(underline(branch))
            elif branch == current_branch:
                name = bold(underline(branch))
            else:
                name = bold(branch)
            if utils.ascii_only and branch in (current_branch, rebased_branch):
                name += " *"

            if isinstance(meta, UntrackedMeta):
                name += colored(" (untracked)", AnsiEscapeCodes.ORANGE)
            elif remote_enabled and not isinstance(meta, InvalidParentMeta) and not self._meta_cache.branch_matches_remote(branch):
                name += colored(" (differs from remote)", AnsiEscapeCodes.RED)
            out.write(name + "\n")

        sys.stdout.write(out.getvalue())

        invalid = [b for b, s in edge_status.items() if s == EdgeStatus.INVALID_PARENT]
        if invalid:
            print("", file=sys.stderr)
            warn("yellow edges indicate branches that are no longer based on their parents: " +
                 ", ".join(map(bold, invalid)) + ".\n\n"
                 "Consider moving them with `git strata move`, or tracking them again with `git strata track`.")
        elif any(s == EdgeStatus.NEEDS_RESTACK for s in edge_status.values()):
            print("", file=sys.stderr)
            warn("red edges indicate branches that need to be restacked. Run `git strata restack --scope stack`.")
