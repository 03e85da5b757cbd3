import io
import json
import os
import re
import subprocess
import textwrap
from contextlib import contextmanager, redirect_stderr, redirect_stdout
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple, Type

import pytest

from git_strata import cli, utils
from git_strata.exceptions import StrataException


@contextmanager
def overridden_environment(**environ: str) -> Iterator[None]:
    saved = os.environ.copy()
    os.environ.update(environ)
    try:
        yield
    finally:
        os.environ.clear()
        os.environ.update(saved)


def launch_command_with_exit_code(*cmd_and_args: str) -> Tuple[str, int]:
    """Run git-strata in-process, returning its combined stdout/stderr and the exit code."""
    utils.displayed_warnings = set()
    out = io.StringIO()
    with redirect_stdout(out), redirect_stderr(out):
        exit_code = cli.launch(list(cmd_and_args))
    return out.getvalue(), exit_code


def launch_command(*cmd_and_args: str) -> str:
    output, exit_code = launch_command_with_exit_code(*cmd_and_args)
    assert exit_code == 0, output
    return output


def _expected_text(expected: str) -> str:
    # Lets expectations start on the line after the opening triple quote
    return textwrap.dedent(expected[1:] if expected.startswith("\n") else expected)


def assert_success(cmd_and_args: Iterable[str], expected_result: str) -> None:
    output = launch_command(*cmd_and_args)
    actual_result = re.sub(" +$", "", textwrap.dedent(output), flags=re.MULTILINE)
    assert actual_result == _expected_text(expected_result)


def assert_failure(cmd_and_args: Iterable[str], expected_message: str, expected_type: Type[Exception] = StrataException) -> None:
    with pytest.raises(expected_type) as e:
        launch_command(*cmd_and_args)
    assert e.value.msg == _expected_text(expected_message)  # type: ignore[attr-defined]


def execute(command: str) -> None:
    subprocess.check_call(command, shell=True)


def execute_ignoring_exit_code(command: str) -> None:
    subprocess.call(command, shell=True)


def popen(command: str) -> str:
    return subprocess.check_output(command, shell=True, timeout=5).decode("utf-8").strip()


def write_to_file(file_path: str, file_content: str) -> None:
    if os.path.dirname(file_path):
        os.makedirs(os.path.dirname(file_path), exist_ok=True)
    with open(file_path, 'w') as f:
        f.write(file_content)


def read_metadata(branch: str) -> Optional[Dict[str, Any]]:
    ref = f"refs/branch-metadata/{branch}"
    if subprocess.call(f'git show-ref --quiet --verify "{ref}"', shell=True) != 0:
        return None
    return json.loads(popen(f'git cat-file -p "{ref}"'))  # type: ignore[no-any-return]


def write_metadata(branch: str, metadata: Dict[str, Any]) -> None:
    write_to_file(".git/strata-metadata-blob", json.dumps(metadata))
    blob_hash = popen("git hash-object -w .git/strata-metadata-blob")
    execute(f'git update-ref "refs/branch-metadata/{branch}" {blob_hash}')


def read_continuation() -> Optional[Dict[str, Any]]:
    path = os.path.join(".git", "strata-continue.json")
    if not os.path.isfile(path):
        return None
    with open(path) as f:
        return json.load(f)  # type: ignore[no-any-return]
