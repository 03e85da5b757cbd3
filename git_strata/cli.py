#!/usr/bin/env python3

import argparse
import os
import re
import sys
import textwrap
from typing import (Any, Dict, List, NoReturn, Optional, Sequence, Tuple,
                    Union)

import git_strata.options
from git_strata import __version__, utils
from git_strata.client.branch import BranchStrataClient
from git_strata.client.commit import CommitStrataClient
from git_strata.client.continue_rebase import ContinueStrataClient
from git_strata.client.status import StatusStrataClient
from git_strata.client.sync import SyncStrataClient
from git_strata.scope import STACK, UPSTACK_EXCLUSIVE, ScopeSpec

from .context import StrataContext
from .docs import long_docs, short_docs
from .exceptions import (DetachedHeadException, ExitCode, StrataException,
                         UnderlyingGitException)
from .git_operations import GitContext, LocalBranchShortName, RebaseResult
from .utils import bold, fmt, underline, warn

alias_by_command: Dict[str, str] = {
    "checkout": "co",
    "status": "s",
}

command_by_alias: Dict[str, str] = {v: k for k, v in alias_by_command.items()}

command_groups: List[Tuple[str, List[str]]] = [
    ("General topics",
     ["help", "init", "version"]),
    ("Build and display the forest of stacked branches",
     ["create", "status", "track", "untrack"]),
    ("Reshape the forest",
     ["checkout", "delete", "fold", "move", "rename", "split"]),
    ("Edit commits of the current branch",
     ["amend", "commit", "edit", "squash"]),
    ("Rebase branches onto their parents",
     ["abort", "continue", "restack"]),
    ("Exchange branches with the remote",
     ["get", "sync"])
]


def get_help_description(*, command: Optional[str] = None) -> str:
    command = command_by_alias.get(command, command) if command else None
    if command in long_docs:
        return fmt(textwrap.dedent(long_docs[command]))

    column_width = 18 if utils.ascii_only else 27
    lines = [get_short_general_usage(), '']
    for header, commands in command_groups:
        lines += [underline(header), '']
        for name in commands:
            label = f"{name}, {alias_by_command[name]}" if name in alias_by_command else name
            lines.append(f'    {bold(label): <{column_width}}{short_docs[name]}')
        lines.append('')
    lines.append(fmt(textwrap.dedent("""
        <u>General options</u>\n
            <b>--debug</b>           Print every git command run, together with its output.
            <b>-h, --help</b>        Print help and exit.
            <b>-v, --verbose</b>     Print every git command run.
            <b>--version</b>         Print version and exit.
    """[1:])))
    return '\n'.join(lines)


def get_short_general_usage() -> str:
    return (fmt("<b>Usage: git strata [--debug] [-h] [-v|--verbose] [--version] "
                "<command> [command-specific options] [command-specific argument]</b>"))


def version() -> None:
    print(f"git-strata version {__version__}")


class StrataHelpAction(argparse.Action):
    """Replaces argparse's own `-h`/`--help` output with the same text as `git strata help [<command>]`."""

    def __init__(self, option_strings: str, dest: str = argparse.SUPPRESS,
                 default: Any = argparse.SUPPRESS, help: Optional[str] = None) -> None:
        super().__init__(option_strings=option_strings, dest=dest, default=default, nargs=0, help=help)

    def __call__(self, parser: argparse.ArgumentParser, namespace: argparse.Namespace,
                 values: Union[str, Sequence[Any], None], option_string: Optional[str] = None) -> None:
        # prog is either `git strata` or `git strata <command>`
        command_name = parser.prog[len('git strata'):].strip()
        print(get_help_description(command=command_name or None))
        parser.exit(status=ExitCode.SUCCESS)


def create_cli_parser() -> argparse.ArgumentParser:
    common_args_parser = argparse.ArgumentParser(
        prog='git strata',
        argument_default=argparse.SUPPRESS,
        add_help=False)
    common_args_parser.add_argument('--debug', action='store_true')
    common_args_parser.add_argument('-h', '--help', action=StrataHelpAction)
    common_args_parser.add_argument('--version', action='version', version=f'git-strata version {__version__}')
    common_args_parser.add_argument('-v', '--verbose', action='store_true')

    class CustomArgumentParser(argparse.ArgumentParser):
        def error(self, message: str) -> NoReturn:
            if "the following arguments are required: -o/--onto" in message:
                print(f"{message}\nUse `git strata move --onto <branch>` to pick the new parent.", file=sys.stderr)
                self.exit(ExitCode.ARGUMENT_ERROR)
            else:
                super().error(message)

    cli_parser: argparse.ArgumentParser = CustomArgumentParser(
        prog='git strata',
        argument_default=argparse.SUPPRESS,
        add_help=False,
        parents=[common_args_parser])

    subparsers = cli_parser.add_subparsers(dest='command')

    def create_subparser(command: str, alias: Optional[str] = None) -> argparse.ArgumentParser:
        return subparsers.add_parser(
            command,
            aliases=[alias] if alias else [],
            argument_default=argparse.SUPPRESS,
            usage=argparse.SUPPRESS,
            add_help=False,
            parents=[common_args_parser])

    create_subparser('abort')

    amend_parser = create_subparser('amend')
    amend_parser.add_argument('-a', '--all', action='store_true')
    amend_parser.add_argument('-m', '--message')
    amend_parser.add_argument('--no-edit', action='store_true')

    checkout_parser = create_subparser('checkout', alias='co')
    checkout_parser.add_argument('branch')

    commit_parser = create_subparser('commit')
    commit_parser.add_argument('-a', '--all', action='store_true')
    commit_parser.add_argument('-m', '--message')
    commit_parser.add_argument('-p', '--patch', action='store_true')

    continue_parser = create_subparser('continue')
    continue_parser.add_argument('-a', '--all', action='store_true')

    create_parser = create_subparser('create')
    create_parser.add_argument('branch')
    create_parser.add_argument('-a', '--all', action='store_true')
    create_parser.add_argument('-i', '--insert', action='store_true')
    create_parser.add_argument('-m', '--message')

    delete_parser = create_subparser('delete')
    delete_parser.add_argument('branch')
    delete_parser.add_argument('-f', '--force', action='store_true')

    create_subparser('edit')

    fold_parser = create_subparser('fold')
    fold_parser.add_argument('-k', '--keep', action='store_true')

    get_parser = create_subparser('get')
    get_parser.add_argument('branches', nargs='+')
    get_parser.add_argument('-f', '--force', action='store_true')
    get_parser.add_argument('-p', '--parent')

    help_parser = create_subparser('help')
    help_parser.add_argument('topic_or_cmd', nargs='?', choices=list(long_docs.keys()) + list(command_by_alias.keys()))

    init_parser = create_subparser('init')
    init_parser.add_argument('--reset', action='store_true')
    init_parser.add_argument('-t', '--trunk')

    move_parser = create_subparser('move')
    move_parser.add_argument('-b', '--branch')
    move_parser.add_argument('-o', '--onto', required=True)

    rename_parser = create_subparser('rename')
    rename_parser.add_argument('branch')

    restack_parser = create_subparser('restack')
    restack_parser.add_argument('-b', '--branch')
    restack_parser.add_argument('-s', '--scope')

    split_parser = create_subparser('split')
    split_parser.add_argument('branches', nargs='+')
    split_parser.add_argument('--points', nargs='+', type=int, required=True)

    squash_parser = create_subparser('squash')
    squash_parser.add_argument('-m', '--message')
    squash_parser.add_argument('--no-edit', action='store_true')

    status_parser = create_subparser('status', alias='s')
    status_parser.add_argument('--color', choices=['always', 'auto', 'never'], default='auto')
    status_parser.add_argument('-l', '--list-commits', action='store_true')

    sync_parser = create_subparser('sync')
    sync_parser.add_argument('-d', '--delete-merged', action='store_true')
    sync_parser.add_argument('-r', '--restack', action='store_true')

    track_parser = create_subparser('track')
    track_parser.add_argument('branch', nargs='?')
    track_parser.add_argument('-p', '--parent')

    untrack_parser = create_subparser('untrack')
    untrack_parser.add_argument('branch', nargs='?')

    create_subparser('version')

    return cli_parser


def _local_branch_or_none(arg: Optional[str]) -> Optional[LocalBranchShortName]:
    return LocalBranchShortName.of(re.sub('^refs/heads/', '', arg)) if arg else None


def update_cli_options_using_parsed_args(
        cli_opts: git_strata.options.CommandLineOptions,
        parsed_args: argparse.Namespace) -> None:
    flags = {"all", "delete_merged", "force", "insert", "keep", "list_commits", "no_edit", "patch", "reset", "restack"}
    for opt, arg in vars(parsed_args).items():
        # --color, --debug and --verbose only affect `utils`, see set_utils_global_variables
        if opt in flags:
            setattr(cli_opts, f"opt_{opt}", True)
        elif opt in ("branch", "onto", "parent", "trunk"):
            setattr(cli_opts, f"opt_{opt}", _local_branch_or_none(arg))
        elif opt == "branches":
            cli_opts.opt_branches = [LocalBranchShortName.of(re.sub('^refs/heads/', '', b)) for b in arg]
        elif opt == "message":
            cli_opts.opt_message = arg
        elif opt == "points":
            cli_opts.opt_points = list(arg)
        elif opt == "scope":
            cli_opts.opt_scope = arg


def set_utils_global_variables(parsed_args: argparse.Namespace) -> None:
    args = vars(parsed_args)
    utils.ascii_only = args.get("color") == "never" or (args.get("color") in {None, "auto"} and not sys.stdout.isatty())
    utils.debug_mode = "debug" in args
    utils.verbose_mode = "verbose" in args


def get_branch_or_current(context: StrataContext, branch: Optional[LocalBranchShortName]) -> LocalBranchShortName:
    branch = branch or context.meta_cache.current_branch
    if not branch:
        raise DetachedHeadException()
    return branch


def init(context: StrataContext, cli_opts: git_strata.options.CommandLineOptions) -> None:
    trunk = cli_opts.opt_trunk or context.get_configured_trunk() or context.infer_trunk()
    if not trunk:
        raise StrataException("Cannot infer the trunk branch. Use `git strata init --trunk <branch>`.")
    context.set_trunk(trunk)
    if cli_opts.opt_reset:
        context.meta_cache.reset(trunk)
        print(fmt(f"Trunk set to <b>{trunk}</b>, all branches untracked."))
    else:
        context.meta_cache.rebuild(trunk)
        print(fmt(f"Trunk set to <b>{trunk}</b>."))


def launch(orig_args: List[str]) -> int:
    initial_current_directory: Optional[str] = utils.get_current_directory_or_none()

    try:
        cli_opts = git_strata.options.CommandLineOptions()
        cli_parser: argparse.ArgumentParser = create_cli_parser()
        parsed_cli: argparse.Namespace = cli_parser.parse_args(orig_args)

        # Let's set up options like debug/verbose before we first start reading `git config`.
        set_utils_global_variables(parsed_cli)
        update_cli_options_using_parsed_args(cli_opts, parsed_cli)

        cmd = parsed_cli.command
        if not cmd:
            print(get_help_description())
            return ExitCode.ARGUMENT_ERROR
        elif cmd == "help":
            print(get_help_description(command=parsed_cli.topic_or_cmd if "topic_or_cmd" in parsed_cli else None))
            return ExitCode.SUCCESS
        elif cmd == "version":
            version()
            return ExitCode.SUCCESS

        scope: ScopeSpec = ScopeSpec.of(cli_opts.opt_scope) if cmd == "restack" else STACK
        result: Optional[RebaseResult] = None
        with StrataContext(GitContext()) as context:
            if cmd == "init":
                init(context, cli_opts)
            elif cmd in ("status", "s"):
                StatusStrataClient(context).status(list_commits=cli_opts.opt_list_commits)
            elif cmd == "track":
                BranchStrataClient(context).track(
                    branch=get_branch_or_current(context, cli_opts.opt_branch),
                    parent=cli_opts.opt_parent or context.meta_cache.trunk)
            elif cmd == "untrack":
                BranchStrataClient(context).untrack(branch=get_branch_or_current(context, cli_opts.opt_branch))
            elif cmd == "create":
                assert cli_opts.opt_branch is not None
                result = BranchStrataClient(context).create(
                    branch=cli_opts.opt_branch, message=cli_opts.opt_message, all_=cli_opts.opt_all, insert=cli_opts.opt_insert)
            elif cmd in ("checkout", "co"):
                assert cli_opts.opt_branch is not None
                BranchStrataClient(context).checkout(branch=cli_opts.opt_branch)
            elif cmd == "move":
                assert cli_opts.opt_onto is not None
                result = BranchStrataClient(context).move(
                    branch=get_branch_or_current(context, cli_opts.opt_branch), onto=cli_opts.opt_onto)
            elif cmd == "rename":
                assert cli_opts.opt_branch is not None
                BranchStrataClient(context).rename(new_branch=cli_opts.opt_branch)
            elif cmd == "fold":
                result = BranchStrataClient(context).fold(keep=cli_opts.opt_keep)
            elif cmd == "split":
                BranchStrataClient(context).split(branch_names=cli_opts.opt_branches, points=cli_opts.opt_points)
            elif cmd == "delete":
                assert cli_opts.opt_branch is not None
                BranchStrataClient(context).delete(branch=cli_opts.opt_branch, force=cli_opts.opt_force)
            elif cmd == "restack":
                result = ContinueStrataClient(context).restack(
                    branch=get_branch_or_current(context, cli_opts.opt_branch), scope=scope)
            elif cmd == "edit":
                result = ContinueStrataClient(context).rebase_interactive(branch=get_branch_or_current(context, None))
            elif cmd == "continue":
                result = ContinueStrataClient(context).continue_(add_all=cli_opts.opt_all)
            elif cmd == "abort":
                ContinueStrataClient(context).abort()
            elif cmd == "commit":
                result = CommitStrataClient(context).commit_create(
                    message=cli_opts.opt_message, all_=cli_opts.opt_all, patch=cli_opts.opt_patch)
            elif cmd == "amend":
                result = CommitStrataClient(context).commit_amend(
                    message=cli_opts.opt_message, no_edit=cli_opts.opt_no_edit, all_=cli_opts.opt_all)
            elif cmd == "squash":
                result = CommitStrataClient(context).squash(message=cli_opts.opt_message, no_edit=cli_opts.opt_no_edit)
            elif cmd == "get":
                downstack = cli_opts.opt_branches
                top = downstack[-1]
                meta_cache = context.meta_cache
                # Local branches stacked on top of the fetched ones are restacked once the fetch is complete.
                then_restack = meta_cache.get_relative_stack(top, UPSTACK_EXCLUSIVE) \
                    if meta_cache.branch_exists(top) and meta_cache.is_branch_tracked(top) else []
                result = SyncStrataClient(context).get_branches_from_remote(
                    downstack=downstack,
                    base=cli_opts.opt_parent or meta_cache.trunk,
                    force=cli_opts.opt_force,
                    then_restack=then_restack)
            elif cmd == "sync":
                result = SyncStrataClient(context).sync(restack=cli_opts.opt_restack, delete_merged=cli_opts.opt_delete_merged)
            else:  # an unknown command is handled by argparse
                raise StrataException(f"Unknown command: `{cmd}`")

        return ExitCode.REBASE_CONFLICT if result == RebaseResult.CONFLICT else ExitCode.SUCCESS

    finally:
        # git before 2.35 could remove the directory the user invoked us from, e.g. on checkout
        _warn_if_directory_removed(initial_current_directory)


def _warn_if_directory_removed(directory: Optional[str]) -> None:
    if not directory or os.path.isdir(directory):
        return
    nearest_existing = directory
    while not os.path.isdir(nearest_existing):
        nearest_existing = os.path.dirname(nearest_existing)
    warn(f"current directory {directory} no longer exists, "
         f"the nearest existing parent directory is {nearest_existing}")


def main() -> None:
    try:
        sys.exit(launch(sys.argv[1:]))
    except EOFError:  # pragma: no cover
        sys.exit(ExitCode.END_OF_FILE_SIGNAL)
    except KeyboardInterrupt:  # pragma: no cover
        sys.exit(ExitCode.KEYBOARD_INTERRUPT)
    except (StrataException, UnderlyingGitException) as e:
        print(e, file=sys.stderr)
        sys.exit(ExitCode.STRATA_EXCEPTION)


if __name__ == "__main__":
    main()
