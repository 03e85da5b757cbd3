from enum import Enum
from typing import List, NamedTuple, Optional, Union

from git_strata.exceptions import (BadTrunkOperationException,
                                   InvalidParentException,
                                   UntrackedBranchException)
from git_strata.git_operations import (FullCommitHash, LocalBranchShortName,
                                       RebaseResult)
from git_strata.ref_store import BranchPRInfo


class ValidationResult(Enum):
    TRUNK = 'TRUNK'
    VALID = 'VALID'
    BAD_PARENT_NAME = 'BAD_PARENT_NAME'
    INVALID_PARENT = 'INVALID_PARENT'


# `children` lists are derived from the parent pointers of other branches;
# the lists are shared between successive versions of the same branch's meta and updated in place.

class TrunkMeta(NamedTuple):
    branch_revision: FullCommitHash
    children: List[LocalBranchShortName]

    @property
    def validation_result(self) -> ValidationResult:
        return ValidationResult.TRUNK


class UntrackedMeta(NamedTuple):
    branch_revision: FullCommitHash
    children: List[LocalBranchShortName]
    pr_info: Optional[BranchPRInfo] = None

    @property
    def validation_result(self) -> ValidationResult:
        return ValidationResult.BAD_PARENT_NAME


class ValidMeta(NamedTuple):
    branch_revision: FullCommitHash
    parent_branch_name: LocalBranchShortName
    parent_branch_revision: FullCommitHash
    children: List[LocalBranchShortName]
    pr_info: Optional[BranchPRInfo] = None

    @property
    def validation_result(self) -> ValidationResult:
        return ValidationResult.VALID


class InvalidParentMeta(NamedTuple):
    branch_revision: FullCommitHash
    parent_branch_name: LocalBranchShortName
    # Stale: no longer an ancestor of the branch, nor is the parent's current revision.
    parent_branch_revision: FullCommitHash
    children: List[LocalBranchShortName]
    pr_info: Optional[BranchPRInfo] = None

    @property
    def validation_result(self) -> ValidationResult:
        return ValidationResult.INVALID_PARENT


CachedMeta = Union[TrunkMeta, UntrackedMeta, ValidMeta, InvalidParentMeta]
ParentedMeta = Union[ValidMeta, InvalidParentMeta]


def assert_is_not_trunk(branch: LocalBranchShortName, meta: CachedMeta) -> Union[UntrackedMeta, ValidMeta, InvalidParentMeta]:
    if isinstance(meta, TrunkMeta):
        raise BadTrunkOperationException()
    return meta


def assert_is_valid_or_trunk(branch: LocalBranchShortName, meta: CachedMeta) -> Union[TrunkMeta, ValidMeta]:
    if isinstance(meta, UntrackedMeta):
        raise UntrackedBranchException(branch)
    if isinstance(meta, InvalidParentMeta):
        raise InvalidParentException(branch, meta.parent_branch_name)
    return meta


def assert_is_valid_and_not_trunk(branch: LocalBranchShortName, meta: CachedMeta) -> ValidMeta:
    meta_ = assert_is_valid_or_trunk(branch, meta)
    if isinstance(meta_, TrunkMeta):
        raise BadTrunkOperationException()
    return meta_


class RebaseOutcome(NamedTuple):
    result: RebaseResult
    # Set only for CONFLICT: the fork point to record for the branch once the conflict is resolved.
    rebased_branch_base: Optional[FullCommitHash] = None
    # Set only when a continued rebase has completed: the branch that has been rebased.
    branch: Optional[LocalBranchShortName] = None
