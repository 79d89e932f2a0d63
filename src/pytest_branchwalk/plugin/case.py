"""Runtime execution of a single branch as a pytest item."""

from typing import TYPE_CHECKING

import pytest

from pytest_branchwalk.core import RunInstance
from pytest_branchwalk.tree import SequentialTree

if TYPE_CHECKING:
    from typing import Any

if TYPE_CHECKING:
    from pytest_branchwalk.context import RunContext
    from pytest_branchwalk.schema import Branch


class TestBranch(pytest.Item):
    """Pytest item executing a single branch.

    The branch is served by its own one-branch tree and executed by a
    fresh run instance, so its global and local namespaces start empty
    while the persistent namespace is shared through the run context.
    """

    __test__ = False

    def __init__(self, *,
                 branch: 'Branch',
                 context: 'RunContext',
                 **kwargs: 'Any') -> None:
        """Initialize a pytest item backed by a branch.

        Args:
            branch: Branch to execute.
            context: Run context shared by the items of a file.
            **kwargs: Keyword pytest.Item arguments.
        """
        super().__init__(**kwargs)

        self.branch = branch
        self.run_context = context

    def runtest(self) -> None:
        """Execute the branch.

        Raises:
            AssertionError: If the branch failed.
        """
        instance = RunInstance(SequentialTree([self.branch]), self.run_context)

        completed = instance.run()

        for step in self.branch.steps:
            if step.log:
                self.add_report_section('call', f'log of {step.text!r}', step.log)

        if not completed:
            paused = instance.current_step
            pytest.fail(
                f'Execution paused at step {paused.text if paused else None!r}',
                pytrace=False,
            )

        if self.branch.is_passed is False:
            raise AssertionError(self.describe_failure())

    def describe_failure(self) -> str:
        """Format the error of a failed branch."""
        error = self.branch.error
        if error is None:
            return 'Branch failed'

        return f'{error}'

    def reportinfo(self) -> tuple['Any', int | None, str]:
        """Locate the branch in its tree document."""
        line_number = None
        if self.branch.steps and self.branch.steps[0].line_number is not None:
            line_number = self.branch.steps[0].line_number - 1

        return self.path, line_number, self.name

    def repr_failure(self, excinfo: pytest.ExceptionInfo[BaseException],
                     style: 'Any' = None) -> 'Any':
        """Represent a branch failure without the engine traceback."""
        if isinstance(excinfo.value, AssertionError):
            return f'{excinfo.value}'

        return super().repr_failure(excinfo, style=style)
