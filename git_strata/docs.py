from typing import Dict

short_docs: Dict[str, str] = {
    "abort": "Abort the rebase started by git strata and discard the pending operation",
    "amend": "Amend the last commit of the current branch and restack the branches above it",
    "checkout": "Check out a branch",
    "commit": "Commit staged changes to the current branch and restack the branches above it",
    "continue": "Continue the operation interrupted by a rebase conflict",
    "create": "Create a new branch on top of the current branch",
    "delete": "Delete a merged or empty branch, moving its children onto its parent",
    "edit": "Interactively rebase the commits of the current branch",
    "fold": "Fold the current branch into its parent",
    "get": "Fetch a stack of branches from the remote",
    "help": "Display this overview, or detailed help for one of the commands",
    "init": "Initialize git strata in the repository, setting the trunk branch",
    "move": "Move a branch onto another parent and restack it",
    "rename": "Rename the current branch",
    "restack": "Rebase branches onto their parents",
    "split": "Split the current branch into a chain of branches",
    "squash": "Squash all commits of the current branch into one",
    "status": "Display the forest of tracked branches",
    "sync": "Pull trunk, optionally delete merged branches and restack everything",
    "track": "Start tracking a branch with the given parent",
    "untrack": "Stop tracking a branch",
    "version": "Display the version and exit",
}

long_docs: Dict[str, str] = {
    "abort": """
        <b>Usage:
           git strata abort</b>

        Aborts the rebase in progress and discards the pending git strata operation, then checks out the branch
        that was current when the operation started. Branches restacked before the conflict stay restacked.
   """,
    "amend": """
        <b>Usage:
           git strata amend [-a|--all] [-m|--message=<message>] [--no-edit]</b>

        Amends the last commit of the current branch, then restacks all branches stacked above it.

        <b>Options:</b>
           <b>-a</b>, <b>--all</b>
              Stage all changes before amending.

           <b>-m</b>, <b>--message=<message></b>
              New commit message.

           <b>--no-edit</b>
              Keep the commit message without opening an editor.
   """,
    "checkout": """
        <b>Usage:
           git strata checkout <branch></b>

        Checks out the given branch.
   """,
    "commit": """
        <b>Usage:
           git strata commit [-a|--all] [-p|--patch] [-m|--message=<message>]</b>

        Commits the staged changes to the current branch, then restacks all branches stacked above it.
        Fails if there are no staged changes, unless `-a` or `-p` is given.

        <b>Options:</b>
           <b>-a</b>, <b>--all</b>
              Stage all changes before committing.

           <b>-p</b>, <b>--patch</b>
              Pick hunks to commit interactively.

           <b>-m</b>, <b>--message=<message></b>
              Commit message.
   """,
    "continue": """
        <b>Usage:
           git strata continue [-a|--all]</b>

        Continues the rebase that stopped on a conflict and then the rest of the interrupted operation
        (e.g. restacking of the remaining branches).
        When conflicts are still present, the operation stays pending and `continue` can be run again.

        <b>Options:</b>
           <b>-a</b>, <b>--all</b>
              Stage all changes before continuing.
   """,
    "create": """
        <b>Usage:
           git strata create <branch> [-a|--all] [-i|--insert] [-m|--message=<message>]</b>

        Creates a new branch on top of the current branch and checks it out.
        If there are staged changes, they're committed to the new branch.

        <b>Options:</b>
           <b>-a</b>, <b>--all</b>
              Stage all changes before committing.

           <b>-i</b>, <b>--insert</b>
              Move the children of the current branch onto the new branch and restack them.

           <b>-m</b>, <b>--message=<message></b>
              Commit message.
   """,
    "delete": """
        <b>Usage:
           git strata delete <branch> [-f|--force]</b>

        Deletes the given branch and its metadata. Its children are moved onto its parent.
        The branch must be merged into trunk or empty, unless `-f` is given.
   """,
    "edit": """
        <b>Usage:
           git strata edit</b>

        Runs an interactive rebase of the commits of the current branch, on top of its recorded fork point.
        The branches stacked above it are not restacked; use `git strata restack` afterwards.
   """,
    "fold": """
        <b>Usage:
           git strata fold [-k|--keep]</b>

        Folds the commits of the current branch into its parent and deletes the current branch.
        The children of the current branch are moved onto the parent and restacked.

        <b>Options:</b>
           <b>-k</b>, <b>--keep</b>
              Keep the name of the current branch and delete the parent instead.
   """,
    "get": """
        <b>Usage:
           git strata get <branch> [<branch> ...] [-p|--parent=<branch>] [-f|--force]</b>

        Fetches the given branches (listed from the bottom of the stack to the top) from the remote.
        Each branch is stacked on top of the previous one, the first one on top of `--parent` (trunk by default).
        Branches missing locally are created; tracked branches that diverged from the remote are rebased onto it.

        <b>Options:</b>
           <b>-f</b>, <b>--force</b>
              Overwrite the local branches with their remote versions instead of rebasing.
   """,
    "help": """
        <b>Usage:
           git strata help [<command>]</b>

        Prints a summary of this tool, or a detailed info on a command if given.
   """,
    "init": """
        <b>Usage:
           git strata init [-t|--trunk=<branch>] [--reset]</b>

        Sets the trunk branch (`main` or `master` by default, if exactly one of them exists)
        and loads the metadata of the tracked branches.

        <b>Options:</b>
           <b>--reset</b>
              Untrack all branches.
   """,
    "move": """
        <b>Usage:
           git strata move -o|--onto=<branch> [-b|--branch=<branch>]</b>

        Moves the given branch (the current branch by default) onto another parent,
        then restacks it together with the branches above it.
   """,
    "rename": """
        <b>Usage:
           git strata rename <new-name></b>

        Renames the current branch, keeping its parent, fork point and children.
   """,
    "restack": """
        <b>Usage:
           git strata restack [-b|--branch=<branch>] [-s|--scope=<scope>]</b>

        Rebases each branch in scope onto its parent, parents first.
        Scope is one of `branch`, `downstack`, `stack` (default), `upstack` and `upstack-exclusive`,
        relative to the given branch (the current branch by default).
        Stops at the first conflict; resolve it and run `git strata continue`.
   """,
    "split": """
        <b>Usage:
           git strata split <branch> [<branch> ...] --points <offset> [<offset> ...]</b>

        Splits the current branch into a chain of branches.
        Branch names are listed from the bottom of the chain to the top.
        Offsets select the commits that become the heads of the new branches, counted from the head of the current branch
        (`0` being the head itself, which must always be included).
   """,
    "squash": """
        <b>Usage:
           git strata squash [-m|--message=<message>] [--no-edit]</b>

        Squashes all commits of the current branch into one, then restacks all branches stacked above it.
   """,
    "status": """
        <b>Usage:
           git strata s[tatus] [-l|--list-commits]</b>

        Displays the forest of tracked branches, rooted in trunk. Untracked branches are displayed as separate roots.
        Edges between parents and children are colored:
           - <green>green edge</green>: the branch is up to date with its parent;
           - <red>red edge</red>: the branch needs to be restacked;
           - <yellow>yellow edge</yellow>: the branch is no longer based on its parent.
        When colors are disabled, these are represented as `o-`, `x-` and `?-` respectively.
   """,
    "sync": """
        <b>Usage:
           git strata sync [-d|--delete-merged] [-r|--restack]</b>

        Fast-forwards trunk to its remote counterpart.

        <b>Options:</b>
           <b>-d</b>, <b>--delete-merged</b>
              Delete branches that are merged into trunk or empty.

           <b>-r</b>, <b>--restack</b>
              Restack all tracked branches afterwards.
   """,
    "track": """
        <b>Usage:
           git strata track [<branch>] [-p|--parent=<branch>]</b>

        Starts tracking the given branch (the current branch by default) with the given parent (trunk by default).
        The fork point is the merge base of the branch and its parent.
   """,
    "untrack": """
        <b>Usage:
           git strata untrack [<branch>]</b>

        Stops tracking the given branch (the current branch by default). The branch itself is kept.
   """,
    "version": """
        <b>Usage:
           git strata version</b>

        Prints the version and exits.
   """,
}
