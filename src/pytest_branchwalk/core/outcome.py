"""Step outcome classification and error attribution.

A step outcome combines two independent axes: whether the step passed,
and whether it behaved as expected. A step annotated as expected to fail
inverts the criteria:

| expected-fail | error | passed | as expected |
|---------------|-------|--------|-------------|
| no            | yes   | no     | no          |
| no            | no    | yes    | yes         |
| yes           | yes   | no     | yes         |
| yes           | no    | yes    | no          |

The outcome is attributed either to a step or, when no step naturally
owns the failure, directly to a branch.
"""

from typing import TYPE_CHECKING, NamedTuple

from pytest_branchwalk.errors import DSLRuntimeError

if TYPE_CHECKING:
    from pytest_branchwalk.schema import Branch, Step

EXPECTED_FAIL_PASSED = 'This step passed, but it was expected to fail'


class Outcome(NamedTuple):
    """Classified result of a single step execution."""

    is_passed: bool
    as_expected: bool
    error: DSLRuntimeError | None = None

    @property
    def is_defect(self) -> bool:
        """Whether the outcome is a failure or an unexpected result."""
        return not self.is_passed or not self.as_expected


class StepTarget(NamedTuple):
    """Attribute an outcome to a step of a branch."""

    step: 'Step'
    branch: 'Branch'


class BranchTarget(NamedTuple):
    """Attribute a failure wholesale to a branch."""

    branch: 'Branch'


#: Destination of a step outcome.
type ErrorTarget = StepTarget | BranchTarget


def classify(step: 'Step', error: DSLRuntimeError | None) -> Outcome:
    """Classify the execution of a step.

    Args:
        step: Executed step.
        error: Error raised during execution, if any.

    Returns:
        The outcome. An expected-fail step that passed gets a
        synthesized error tagged with the step location.
    """
    if not step.is_expected_fail:
        if error is not None:
            return Outcome(is_passed=False, as_expected=False, error=error)
        return Outcome(is_passed=True, as_expected=True)

    if error is not None:
        return Outcome(is_passed=False, as_expected=True, error=error)

    return Outcome(
        is_passed=True,
        as_expected=False,
        error=DSLRuntimeError.from_step(EXPECTED_FAIL_PASSED, step),
    )
