"""Step definitions.

A step is the smallest unit of execution of a branch. It may describe an
action in free text, declare variables, embed a Python code fragment,
call a function declared elsewhere in the source scenario, or mark a
breakpoint.

Structural fields are fixed once the tree is built. Outcome fields
(`is_passed`, `as_expected`, `error`, `log`) are assigned in place while
the step runs, so a step keeps its identity for the whole run.
"""

from typing import TYPE_CHECKING

from pydantic import Field, NonNegativeInt
from pydantic.json_schema import SkipJsonSchema

from pytest_branchwalk.errors import DSLRuntimeError
from pytest_branchwalk.models import SchemaModel, StateModel
from pytest_branchwalk.names import Variable  # noqa: TC001

if TYPE_CHECKING:
    from typing import Self


class VarAssignment(SchemaModel):
    """Variable declared by a step, for example `{username}='alice'`."""

    name: Variable = Field(
        title='Variable name',
        description='Name of the declared variable, without braces.',
    )

    is_local: bool = Field(
        default=False,
        title='Local variable',
        description=(
            'Whether the variable is declared as `{{local}}` '
            'rather than `{global}`.'
        ),
    )

    value: str | None = Field(
        default=None,
        title='Literal value',
        description=(
            'Declared literal, as written in the source including quotes. '
            'Ignored when the declaring step carries a code fragment, '
            'the fragment return value is used instead.'
        ),
    )


class Step(StateModel):
    """Executable step of a branch."""

    text: str = Field(
        default='',
        frozen=True,
        title='Text',
        description='Descriptive text of the step.',
    )

    code_block: str | None = Field(
        default=None,
        frozen=True,
        title='Code fragment',
        description=(
            'Python code executed by the step. '
            'A `return` statement sets the fragment value.'
        ),
    )

    vars_being_set: list[VarAssignment] = Field(
        default_factory=list,
        frozen=True,
        title='Declared variables',
        description='Ordered list of variables declared by the step.',
    )

    branch_indents: NonNegativeInt = Field(
        default=0,
        frozen=True,
        title='Indentation depth',
        description='Nesting level of the step in the source scenario.',
    )

    is_function_call: bool = Field(
        default=False,
        frozen=True,
        title='Function call',
        description='Whether the step calls a function declared elsewhere.',
    )

    is_debug: bool = Field(
        default=False,
        frozen=True,
        title='Breakpoint',
        description='Whether execution pauses before this step.',
    )

    is_expected_fail: bool = Field(
        default=False,
        frozen=True,
        title='Expected to fail',
        description='Whether the step is expected to fail.',
    )

    filename: str | None = Field(
        default=None,
        frozen=True,
        title='Source filename',
    )

    line_number: int | None = Field(
        default=None,
        frozen=True,
        title='Source line',
    )

    is_passed: bool | None = Field(default=None, title='Passed')
    as_expected: bool | None = Field(default=None, title='Behaved as expected')
    error: SkipJsonSchema[DSLRuntimeError | None] = Field(default=None, exclude=True, title='Error')
    log: str = Field(default='', title='Log')

    @property
    def is_assignment(self) -> bool:
        """Whether the step only declares literal variables."""
        return (
            not self.is_function_call
            and self.code_block is None
            and bool(self.vars_being_set)
        )

    def declares(self, name: str, is_local: bool) -> VarAssignment | None:
        """Return the declaration of a variable made by this step, if any."""
        for assignment in self.vars_being_set:
            if assignment.name == name and assignment.is_local == is_local:
                return assignment

        return None

    def append_log(self, text: str) -> None:
        """Append a line to the accumulated log text."""
        self.log += f'{text}\n'

    def clone(self) -> 'Self':
        """Return an independent copy of the step.

        Declarations are immutable and shared; outcome fields of the copy
        can be assigned without affecting the source.
        """
        return self.model_copy(update={
            'vars_being_set': list(self.vars_being_set),
        })

    def __repr__(self) -> str:
        """Short representation with the source location."""
        return f'<Step {self.text!r} at {self.filename}:{self.line_number}>'
