"""Branch definitions.

A branch is one concrete end-to-end path through a scenario: an owned,
ordered sequence of steps. It also owns its hook branches, which are run
around lifecycle events, and carries the terminal outcome of the path.
"""

from typing import TYPE_CHECKING

from pydantic import Field
from pydantic.json_schema import SkipJsonSchema

from pytest_branchwalk.errors import DSLRuntimeError
from pytest_branchwalk.models import StateModel

from .steps import Step

if TYPE_CHECKING:
    from typing import Self


class Branch(StateModel):
    """Linear sequence of steps representing one execution path."""

    steps: list[Step] = Field(
        default_factory=list,
        title='Steps',
        description='Ordered steps of the path.',
    )

    prev_sequential_branch: 'Branch | None' = Field(
        default=None,
        title='Previous sequential branch',
        description=(
            'Branch that must run right before this one when the scenario '
            'is executed sequentially. Not owned, used by schedulers only.'
        ),
    )

    after_branches: list['Branch'] = Field(
        default_factory=list,
        title='After Every Branch hooks',
        description='Hook branches executed once this branch is finished.',
    )

    after_every_step: list['Branch'] = Field(
        default_factory=list,
        title='After Every Step hooks',
        description='Hook branches executed after each step of this branch.',
    )

    frequency: str | None = Field(
        default=None,
        title='Frequency',
        description='Opaque sampling tag interpreted by the scheduler.',
    )

    is_passed: bool | None = Field(default=None, title='Passed')
    error: SkipJsonSchema[DSLRuntimeError | None] = Field(default=None, exclude=True, title='Error')
    log: str = Field(default='', title='Log')

    def index_of(self, step: Step) -> int | None:
        """Return the position of a step in the branch.

        Steps are located by identity: two steps with equal content are
        still distinct positions of the path.

        Args:
            step: Step to locate.

        Returns:
            Index of the step, or `None` if the step is not part of the branch.
        """
        for index, item in enumerate(self.steps):
            if item is step:
                return index

        return None

    def previous_step(self, step: Step) -> Step | None:
        """Return the step preceding the given one in the branch, if any."""
        index = self.index_of(step)
        if not index:
            return None

        return self.steps[index - 1]

    def append_log(self, text: str) -> None:
        """Append a line to the accumulated log text."""
        self.log += f'{text}\n'

    def merge_to_end(self, other: 'Branch') -> None:
        """Append a copy of another branch's steps to the end of this one.

        The other branch is left untouched: its step list and step
        objects are not shared with this branch.

        Args:
            other: Branch whose steps are appended, in order.
        """
        self.steps.extend([step.clone() for step in other.steps])

    def clone(self) -> 'Self':
        """Return a deep structural copy of the branch.

        Steps, the previous sequential branch and every hook branch are
        cloned recursively, so outcome fields of the copy and the source
        are independent.
        """
        prev_sequential_branch = None
        if self.prev_sequential_branch is not None:
            prev_sequential_branch = self.prev_sequential_branch.clone()

        return self.model_copy(update={
            'steps': [step.clone() for step in self.steps],
            'prev_sequential_branch': prev_sequential_branch,
            'after_branches': [branch.clone() for branch in self.after_branches],
            'after_every_step': [branch.clone() for branch in self.after_every_step],
        })

    def __repr__(self) -> str:
        """Short representation with the first step text."""
        first = self.steps[0].text if self.steps else ''
        return f'<Branch of {len(self.steps)} steps from {first!r}>'
