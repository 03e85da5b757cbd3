import inspect
import os
import re
import subprocess
import sys
from typing import (Callable, Dict, Iterable, List, NamedTuple, Optional, Set,
                    TypeVar)

T = TypeVar('T')

# Each warning is printed at most once per invocation.
displayed_warnings: Set[str] = set()

# Reset after every run_cmd, since a checkout or a rebase can remove the directory we're standing in.
current_directory_confirmed_to_exist: bool = False

ascii_only: bool = not sys.stdout.isatty()
debug_mode: bool = False
verbose_mode: bool = False


def excluding(iterable: Iterable[T], s: Iterable[T]) -> List[T]:
    excluded = set(s)
    return [x for x in iterable if x not in excluded]


def flat_map(func: Callable[[T], List[T]], iterable: Iterable[T]) -> List[T]:
    result: List[T] = []
    for item in iterable:
        result.extend(func(item))
    return result


def get_non_empty_lines(s: str) -> List[str]:
    return [line for line in s.splitlines() if line]


def get_current_directory_or_none() -> Optional[str]:
    try:
        return os.getcwd()
    except OSError:
        # The directory got removed from under us
        return None


def debug(msg: str) -> None:
    """Print `msg` to stderr in debug mode, prefixed with the calling function and its arguments."""
    if not debug_mode:
        return
    caller = inspect.stack()[1]
    arg_names, _, _, values = inspect.getargvalues(caller.frame)
    rendered_args = []
    for name in arg_names:
        if name == 'self':
            continue
        value = values[name]
        if isinstance(value, dict):
            value = {k: re.sub(r'\s*\n\s*', ' ', str(v)) for k, v in value.items()}
        rendered_args.append(f"{name}={value}")
    print(f"{bold(caller.function)}{bold('(' + ', '.join(rendered_args) + ')')}: {dim(msg)}", file=sys.stderr)


def _trace_command(cmd: str, *args: str, env: Optional[Dict[str, str]]) -> None:
    if debug_mode:
        print(bold(">>> " + get_cmd_shell_repr(cmd, *args, env=env)), file=sys.stderr)
    elif verbose_mode:
        print(get_cmd_shell_repr(cmd, *args, env=env), file=sys.stderr)


def run_cmd(cmd: str, *args: str, cwd: Optional[str] = None, env: Optional[Dict[str, str]] = None) -> int:
    """Run a command with stdout and stderr inherited from git-strata, so that the user sees its output live."""
    chdir_upwards_until_current_directory_exists()
    _trace_command(cmd, *args, env=env)

    exit_code: int = subprocess.run([cmd, *args], cwd=cwd, env=env).returncode
    mark_current_directory_as_possibly_non_existent()

    if debug_mode and exit_code != 0:
        print(dim(f"<exit code: {exit_code}>\n"), file=sys.stderr)
    return exit_code


def mark_current_directory_as_possibly_non_existent() -> None:
    global current_directory_confirmed_to_exist
    current_directory_confirmed_to_exist = False


def chdir_upwards_until_current_directory_exists() -> None:
    global current_directory_confirmed_to_exist
    if current_directory_confirmed_to_exist:
        return
    current_directory = get_current_directory_or_none()
    if current_directory is None:
        while current_directory is None:
            os.chdir(os.path.pardir)
            current_directory = get_current_directory_or_none()
        debug(f"current directory is gone, moved up to {current_directory}")
    current_directory_confirmed_to_exist = True


class PopenResult(NamedTuple):
    exit_code: int
    stdout: str
    stderr: str

    @property
    def signal(self) -> Optional[int]:
        # A process killed by signal N reports exit code -N
        return -self.exit_code if self.exit_code < 0 else None


def popen_cmd(cmd: str, *args: str, cwd: Optional[str] = None,
              env: Optional[Dict[str, str]] = None, input: Optional[str] = None) -> PopenResult:
    """Run a command and capture its output as text."""
    chdir_upwards_until_current_directory_exists()
    _trace_command(cmd, *args, env=env)

    completed = subprocess.run(
        [cmd, *args], cwd=cwd, env=env,
        input=input.encode('utf-8') if input is not None else None,
        stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    result = PopenResult(completed.returncode, completed.stdout.decode('utf-8'), completed.stderr.decode('utf-8'))

    if debug_mode:
        if result.exit_code != 0:
            print(colored(f"<exit code: {result.exit_code}>\n", AnsiEscapeCodes.RED), file=sys.stderr)
        if result.stdout:
            print(dim("<stdout>:") + "\n" + dim(result.stdout), file=sys.stderr)
        if result.stderr:
            print(dim("<stderr>:") + "\n" + colored(result.stderr, AnsiEscapeCodes.RED), file=sys.stderr)
    return result


_SHELL_ESCAPES = {"(": "\\(", ")": "\\)", " ": "\\ ", "\t": "$'\\t'", "\n": "$'\\n'"}


def _shell_escape(arg: str) -> str:
    return ''.join(_SHELL_ESCAPES.get(c, c) for c in arg)


def get_cmd_shell_repr(cmd: str, *args: str, env: Optional[Dict[str, str]]) -> str:
    # Only the variables set on top of git-strata's own environment are worth showing
    env_assignments = [f"{k}={_shell_escape(v)}" for k, v in (env or {}).items() if k not in os.environ]
    return " ".join(env_assignments + [cmd] + [_shell_escape(arg) for arg in args])


def warn(msg: str, apply_fmt: bool = True, end: str = '\n') -> None:
    if msg in displayed_warnings:
        return
    displayed_warnings.add(msg)
    print(colored("Warn: ", AnsiEscapeCodes.ORANGE) + (fmt(msg) if apply_fmt else msg), file=sys.stderr, end=end)


def slurp_file(path: str) -> str:
    with open(path, 'r') as file:
        return file.read()


class AnsiEscapeCodes:
    ENDC = '\033[0m'
    ENDC_UNDERLINE = '\033[24m'
    ENDC_BOLD_DIM = '\033[22m'
    BOLD = '\033[1m'
    DIM = '\033[2m'
    UNDERLINE = '\033[4m'
    GREEN = '\033[32m'
    YELLOW = '\033[33m'
    ORANGE = '\033[00;38;5;208m'
    RED = '\033[91m'


def _styled(s: str, start: str, end: str) -> str:
    return s if ascii_only or not s else start + s + end


def bold(s: str) -> str:
    return _styled(s, AnsiEscapeCodes.BOLD, AnsiEscapeCodes.ENDC_BOLD_DIM)


def dim(s: str) -> str:
    return _styled(s, AnsiEscapeCodes.DIM, AnsiEscapeCodes.ENDC_BOLD_DIM)


def underline(s: str) -> str:
    return _styled(s, AnsiEscapeCodes.UNDERLINE, AnsiEscapeCodes.ENDC_UNDERLINE)


def colored(s: str, color: str) -> str:
    return _styled(s, color, AnsiEscapeCodes.ENDC)


# Markup tags understood by `fmt`; backticks are handled separately as underline.
_FMT_TAGS: Dict[str, Callable[[str], str]] = {
    'b': bold,
    'u': underline,
    'dim': dim,
    'red': lambda s: colored(s, AnsiEscapeCodes.RED),
    'yellow': lambda s: colored(s, AnsiEscapeCodes.YELLOW),
    'green': lambda s: colored(s, AnsiEscapeCodes.GREEN),
    'orange': lambda s: colored(s, AnsiEscapeCodes.ORANGE),
}


def fmt(*parts: str) -> str:
    result = re.sub('`(.*?)`', lambda m: underline(m.group(1)), ''.join(parts))
    for tag, style in _FMT_TAGS.items():
        result = re.sub(f'<{tag}>(.*?)</{tag}>', lambda m: style(m.group(1)), result, flags=re.DOTALL)
    return result


def get_vertical_bar() -> str:
    return "|" if ascii_only else "│"
