from typing import NamedTuple

from git_strata.exceptions import StrataException


class ScopeSpec(NamedTuple):
    recursive_parents: bool
    current_branch: bool
    recursive_children: bool

    @staticmethod
    def of(name: str) -> "ScopeSpec":
        try:
            return SCOPES[name.lower()]
        except KeyError:
            raise StrataException(f"Invalid scope: `{name}`. Valid scopes: {', '.join(SCOPES)}.")


BRANCH = ScopeSpec(recursive_parents=False, current_branch=True, recursive_children=False)
DOWNSTACK = ScopeSpec(recursive_parents=True, current_branch=True, recursive_children=False)
STACK = ScopeSpec(recursive_parents=True, current_branch=True, recursive_children=True)
UPSTACK = ScopeSpec(recursive_parents=False, current_branch=True, recursive_children=True)
UPSTACK_EXCLUSIVE = ScopeSpec(recursive_parents=False, current_branch=False, recursive_children=True)

SCOPES = {
    'branch': BRANCH,
    'downstack': DOWNSTACK,
    'stack': STACK,
    'upstack': UPSTACK,
    'upstack-exclusive': UPSTACK_EXCLUSIVE,
}
