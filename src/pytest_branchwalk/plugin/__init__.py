"""Pytest plugin for collecting and executing serialized branch trees.

This module integrates `pytest-branchwalk` with pytest by:
- registering custom command-line options;
- resolving shared `RunnerSettings` once per session;
- collecting tree documents as executable test specifications.

YAML files matching the pattern `test_*.tree.yml` or `test_*.tree.yaml`
are collected, and every branch of the tree becomes a pytest item.
"""

from re import match
from typing import TYPE_CHECKING

from pytest_branchwalk.config import RunnerSettings
from pytest_branchwalk.tree import FREQUENCIES

from .spec import TreeSpec

if TYPE_CHECKING:
    from pathlib import Path
    from typing import Any

if TYPE_CHECKING:
    from _pytest.config import Config
    from _pytest.config.argparsing import Parser
    from _pytest.nodes import Node


def pytest_addoption(parser: 'Parser') -> None:
    """Register pytest command-line options for pytest-branchwalk.

    Args:
        parser: Pytest argument parser.
    """
    group = parser.getgroup('branchwalk')
    group.addoption(
        '--branchwalk-unsafe-builtins',
        action='store_true',
        dest='branchwalk_unsafe_builtins',
        default=False,
        help=(
            'Expose the full Python builtins to code fragments of steps. '
            'This enables imports and file access and should only be used '
            'with trusted trees.'
        ),
    )
    group.addoption(
        '--branchwalk-code-timeout',
        action='store',
        type=float,
        dest='branchwalk_code_timeout',
        default=None,
        metavar='SECONDS',
        help='Fail a step whose code fragment runs longer than this.',
    )
    group.addoption(
        '--branchwalk-frequency',
        action='store',
        choices=FREQUENCIES,
        dest='branchwalk_frequency',
        default=None,
        help=(
            'Only collect branches tagged with this frequency or a more '
            'frequent one. Untagged branches are always collected.'
        ),
    )


def pytest_configure(config: 'Config') -> None:
    """Configure pytest-branchwalk integration.

    This hook resolves `RunnerSettings` from the environment and the
    command line, and attaches them to the pytest configuration object
    as `config.branchwalk_settings`.

    Args:
        config: Pytest configuration object.
    """
    overrides: dict[str, Any] = {}

    if config.getoption('branchwalk_unsafe_builtins', default=False):
        overrides['unsafe_builtins'] = True

    if (timeout := config.getoption('branchwalk_code_timeout', default=None)) is not None:
        overrides['code_timeout'] = timeout

    config.branchwalk_settings = RunnerSettings(**overrides)  # type: ignore[attr-defined]


def pytest_collect_file(parent: 'Node', file_path: 'Path') -> TreeSpec | None:
    """Collect tree documents.

    Files matching the pattern `test_*.tree.yml` or `test_*.tree.yaml`
    are treated as executable trees and collected using `TreeSpec`.

    Args:
        parent: Parent pytest collection node.
        file_path: Path to the file being considered.

    Returns:
        A `TreeSpec` collector if the file matches the pattern, otherwise ``None``.
    """
    if match(r'^test_.+\.tree\.ya?ml$', file_path.name):
        return TreeSpec.from_parent(
            parent,
            path=file_path,
        )

    return None
