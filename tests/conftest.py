"""Tests configurations and fixtures."""

from typing import TYPE_CHECKING

import pytest

from pytest_branchwalk.config import RunnerSettings
from pytest_branchwalk.context import RunContext
from pytest_branchwalk.core import RunInstance
from pytest_branchwalk.schema import Branch, Step, VarAssignment
from pytest_branchwalk.tree import SequentialTree

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any


@pytest.fixture
def settings() -> RunnerSettings:
    """Provide runner settings with a short wait interval.

    Settings are built explicitly so that `BRANCHWALK_*` variables of
    the surrounding environment do not leak into tests.
    """
    return RunnerSettings(
        wait_interval=0.01,
        code_timeout=None,
        unsafe_builtins=False,
    )


@pytest.fixture
def make_step() -> 'Callable[..., Step]':
    """Provide a factory of steps located in a fake tree file.

    The factory accepts every `Step` field as a keyword argument and
    a `sets` shortcut describing declared variables:
    - `'name'` declares a global variable without a literal;
    - `('name', "'value'")` declares a global variable with a literal;
    - `('name', "'value'", True)` declares a local variable.

    Line numbers are assigned sequentially, starting at 1.
    """
    counter = iter(range(1, 10_000))

    def make(text: str = '', *, sets: tuple = (), **fields: 'Any') -> Step:
        assignments = []
        for item in sets:
            if isinstance(item, str):
                item = (item,)
            name, value, is_local = (*item, None, False)[:3] if len(item) == 1 else (*item, False)[:3]
            assignments.append(VarAssignment(name=name, value=value, is_local=is_local))

        fields.setdefault('filename', 'tree.yaml')
        fields.setdefault('line_number', next(counter))

        return Step(text=text, vars_being_set=assignments, **fields)

    return make


@pytest.fixture
def make_instance(settings: RunnerSettings) -> 'Callable[..., RunInstance]':
    """Provide a factory of run instances over in-memory branches.

    The factory accepts ordinary branches positionally and forwards
    keyword arguments to `SequentialTree` and `RunContext`.
    """
    def make(*branches: Branch,
             before_everything: tuple[Branch, ...] = (),
             after_everything: tuple[Branch, ...] = (),
             **options: 'Any') -> RunInstance:
        tree = SequentialTree(
            branches,
            before_everything=before_everything,
            after_everything=after_everything,
        )
        context = RunContext(settings=settings, **options)

        return RunInstance(tree, context)

    return make
