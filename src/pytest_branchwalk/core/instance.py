"""Execution loop of a run instance.

A run instance is a logical thread walking a tree: it asks the tree
source for a branch, then for the steps of that branch one at a time,
and runs each step through the single-step protocol:

1. a breakpoint step pauses the instance without being executed;
2. local frames are adjusted to the step indentation;
3. declared variables and the code fragment are executed;
4. the outcome is classified and attributed;
5. the pause-on-fail policy is applied;
6. After Every Step hooks run;
7. the reporter is notified;
8. the run-one-step policy is applied.

Once a branch is finished, its After Every Branch hooks run and the
global and local namespaces are reset.
"""

import logging
from enum import StrEnum
from time import sleep
from typing import TYPE_CHECKING

from pytest_branchwalk.errors import DSLRuntimeError
from pytest_branchwalk.schema import Branch
from pytest_branchwalk.tree import WAIT

from .evaluator import CodeEvaluator
from .hooks import HookRunner
from .outcome import BranchTarget, Outcome, StepTarget, classify
from .resolver import VariableResolver
from .scope import ScopeManager

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

if TYPE_CHECKING:
    from pytest_branchwalk.context import RunContext
    from pytest_branchwalk.schema import Step
    from pytest_branchwalk.tree import TreeSource
    from pytest_branchwalk.values import Namespace, RuntimeValue

    from .outcome import ErrorTarget
    from .resolver import ResolutionChain

logger = logging.getLogger(__name__)

_MISSING = object()


class RunState(StrEnum):
    """Lifecycle state of a run instance."""

    IDLE = 'idle'
    RUNNING = 'running'
    PAUSED = 'paused'
    COMPLETED = 'completed'


class RunInstance:
    """Logical thread executing branches handed out by a tree source.

    Attributes:
        tree: Tree source shared with other instances.
        context: Run context shared with other instances.
        scope: Namespaces owned by this instance.
        current_branch: Branch being executed, kept while paused.
        current_step: Step being executed, kept while paused.
        state: Lifecycle state.
    """

    def __init__(self, tree: 'TreeSource', context: 'RunContext') -> None:
        """Initialize an idle run instance.

        Args:
            tree: Tree source to pull branches and steps from.
            context: Run context providing persistent variables, pause
                policies, reporter and settings.
        """
        self.tree = tree
        self.context = context

        self.scope = ScopeManager(context.persistent)
        self.evaluator = CodeEvaluator(context.settings)
        self.resolver = VariableResolver(
            self.scope,
            self.evaluate_code,
            context.settings.var_pattern,
        )
        self.hooks = HookRunner(self)

        self.current_branch: Branch | None = None
        self.current_step: Step | None = None
        self.state = RunState.IDLE

        self._breakpoint: Step | None = None

    @property
    def is_paused(self) -> bool:
        """Whether the instance is paused."""
        return self.state == RunState.PAUSED

    def run(self) -> bool:
        """Execute branches until the tree is exhausted or a pause occurs.

        A paused instance resumes where it stopped: the step that hit a
        breakpoint is executed first, then the branch continues.

        Returns:
            `True` once there is nothing left to execute, `False` if the
            instance paused.
        """
        self.state = RunState.RUNNING

        if self.current_branch is not None:
            logger.info('Resuming %r', self.current_branch)
            if not self.run_branch(self.current_branch):
                return False
            self.finish_branch(self.current_branch)

        while True:
            branch = self.tree.next_branch()

            if branch is None:
                break

            if branch == WAIT:
                if self.context.halted:
                    logger.info('Stopped waiting, the run is halted by a paused instance')
                    self.state = RunState.IDLE
                    return False
                logger.debug('No branch available, waiting %s seconds',
                             self.context.settings.wait_interval)
                sleep(self.context.settings.wait_interval)
                continue

            self.current_branch = branch
            logger.info('Running %r', branch)

            if not self.run_branch(branch):
                return False

            self.finish_branch(branch)

        self.current_branch = None
        self.current_step = None
        self.state = RunState.COMPLETED

        return True

    def run_branch(self, branch: Branch) -> bool:
        """Execute the remaining steps of a branch.

        Returns:
            `True` if the branch ran out of steps, `False` on pause.
        """
        if (step := self._breakpoint) is not None:
            self._breakpoint = None
            self.run_step(step, branch, StepTarget(step, branch), skip_breakpoint=True)
            if self.is_paused:
                return False

        while (step := self.tree.next_step(branch)) is not None:
            self.current_step = step
            self.run_step(step, branch, StepTarget(step, branch))
            if self.is_paused:
                return False

        return True

    def finish_branch(self, branch: Branch) -> None:
        """Run After Every Branch hooks and reset branch namespaces."""
        self.hooks.run_after_branch(branch)

        logger.info('Finished %r, passed: %s', branch, branch.is_passed)

        self.scope.reset()
        self.resolver.clear()

        self.current_branch = None
        self.current_step = None

    def run_step(self, step: 'Step', branch: Branch, target: 'ErrorTarget', *,
                 is_hook: bool = False,
                 skip_breakpoint: bool = False) -> None:
        """Run a step through the single-step protocol.

        Hook steps record their own outcome, ignore breakpoints and pause
        policies, and do not trigger hooks or report notifications.

        Args:
            step: Step to execute.
            branch: Branch containing the step.
            target: Destination of the step outcome.
            is_hook: Whether the step belongs to a hook branch.
            skip_breakpoint: Execute a breakpoint step instead of pausing.
        """
        if step.is_debug and not (is_hook or skip_breakpoint):
            self._breakpoint = step
            self.current_step = step
            self.pause('Paused at breakpoint %r', step)
            return

        outcome = self.execute_step(step, branch)

        if is_hook:
            self.record(step, outcome)

        self.attribute(outcome, target, is_hook=is_hook)

        if is_hook:
            return

        if self.context.pause_on_fail and outcome.is_defect:
            self.context.pause_on_fail = False
            self.pause('Paused on failure of %r', step)
            return

        self.hooks.run_after_step(step, branch)

        self.context.reporter.generate_report()

        if self.context.run_one_step:
            self.context.run_one_step = False
            self.pause('Paused after %r', step)

    def pause(self, message: str, step: 'Step') -> None:
        """Pause the instance and halt instances waiting on the tree."""
        logger.info(message, step)
        self.state = RunState.PAUSED
        self.context.halted = True

    def execute_step(self, step: 'Step', branch: Branch) -> Outcome:
        """Execute a step and classify the result.

        Failures are captured as the step error and never propagate.

        Returns:
            The classified outcome.
        """
        error = None
        try:
            self.scope.adjust(branch.previous_step(step), step)
            self.execute(step, branch)

        except Exception as base:  # noqa: BLE001
            error = DSLRuntimeError.from_exception(base, step)
            logger.warning('Step %r failed: %s', step, error.message)

        return classify(step, error)

    def execute(self, step: 'Step', branch: Branch) -> None:
        """Realize the declarations and code fragment of a step.

        Plain assignment steps store each declared literal. A step with
        a code fragment runs it and stores its return value into every
        declared variable.

        Raises:
            Any exception raised by resolution or by the code fragment.
        """
        if step.code_block is None:
            if not step.is_assignment:
                return

            for assignment in step.vars_being_set:
                value = self.resolver.evaluate_declaration(step, assignment, step, branch)
                self.scope.assign(assignment.name, value, assignment.is_local)
            return

        value = self.evaluate_code(step, branch)
        for assignment in step.vars_being_set:
            self.scope.assign(assignment.name, value, assignment.is_local)

    def evaluate_code(self, step: 'Step', branch: Branch, *,
                      chain: 'ResolutionChain' = frozenset()) -> 'RuntimeValue':
        """Run the code fragment of a step.

        Args:
            step: Step carrying the fragment.
            branch: Branch the step belongs to.
            chain: Variables being resolved when the fragment backs a
                declaration, so getters detect circular definitions.

        Returns:
            The value returned by the fragment.
        """
        return self.evaluator.evaluate(
            step.code_block or '',
            self.capabilities(step, branch, chain),
            filename=step.filename or '<fragment>',
        )

    def capabilities(self, step: 'Step', branch: Branch,
                     chain: 'ResolutionChain' = frozenset()) -> 'Namespace':
        """Build the names visible to a code fragment of a step.

        - `p(name[, value])`, `g(name[, value])`, `l(name[, value])` get or
          set persistent, global and local variables; getters resolve
          forward declarations like `{name}` and `{{name}}` references;
        - `log(text)` appends to the step log;
        - `replace_vars(text)` substitutes references inside a text;
        - `fail(message, fail_branch_now=False)` fails the step;
        - `step` and `branch` are the executing step and its branch.
        """
        def persistent(name: str, value: 'RuntimeValue' = _MISSING) -> 'RuntimeValue':
            if value is not _MISSING:
                self.scope.persistent[name] = value
                return value
            if name not in self.scope.persistent:
                raise DSLRuntimeError.from_step(
                    f'The persistent variable {name!r} is never set, but is needed for this step',
                    step,
                )
            return self.scope.persistent[name]

        def accessor(is_local: bool) -> 'Callable[..., RuntimeValue]':
            def access(name: str, value: 'RuntimeValue' = _MISSING) -> 'RuntimeValue':
                if value is not _MISSING:
                    self.scope.assign(name, value, is_local)
                    return value
                return self.resolver.resolve(name, is_local, step, branch, chain=chain)
            return access

        def fail(message: str, fail_branch_now: bool = False) -> None:
            error = DSLRuntimeError.from_step(message, step)
            error.fail_branch_now = fail_branch_now
            raise error

        return {
            'p': persistent,
            'g': accessor(is_local=False),
            'l': accessor(is_local=True),
            'log': lambda text: step.append_log(f'{text}'),
            'replace_vars': lambda text: self.resolver.replace_vars(text, step, branch, chain=chain),
            'fail': fail,
            'step': step,
            'branch': branch,
        }

    def record(self, step: 'Step', outcome: Outcome) -> None:
        """Record an outcome on a step itself."""
        step.is_passed = outcome.is_passed
        step.as_expected = outcome.as_expected
        step.error = outcome.error

    def attribute(self, outcome: Outcome, target: 'ErrorTarget', *,
                  is_hook: bool = False) -> None:
        """Attribute an outcome to its target.

        A step target is marked through the tree source. A branch target
        takes the error directly and is marked failed. A passing hook
        leaves its target untouched.
        """
        if is_hook and outcome.error is None:
            return

        match target:
            case StepTarget(step=step, branch=branch):
                self.tree.mark_step(
                    branch,
                    step,
                    outcome.is_passed,
                    outcome.as_expected,
                    outcome.error,
                    getattr(outcome.error, 'fail_branch_now', False),
                    is_hook,
                )

            case BranchTarget(branch=branch) if outcome.error is not None:
                branch.error = outcome.error
                self.tree.mark_branch(branch, False)

    def inject_and_run(self, steps: 'Iterable[Step]') -> None:
        """Run caller-supplied steps against the paused branch.

        The steps form a temporary branch. A copy of the not yet executed
        steps of the paused branch is merged to its end, so the injected
        steps can resolve variables declared later in the paused branch.
        Injected steps run in order against the paused namespaces and
        record their outcome on themselves only. Breakpoints are ignored,
        and the instance stays paused with its pointers unchanged.

        Args:
            steps: Steps to run.

        Raises:
            DSLRuntimeError: If the instance is not paused.
        """
        if not self.is_paused or self.current_branch is None:
            raise DSLRuntimeError('Steps can only be injected while paused')

        injected = Branch(steps=list(steps))
        count = len(injected.steps)
        injected.merge_to_end(Branch(steps=self.remaining_steps()))

        for step in injected.steps[:count]:
            logger.debug('Running injected %r', step)
            self.record(step, self.execute_step(step, injected))

    def remaining_steps(self) -> list['Step']:
        """Return the steps of the paused branch that did not run yet."""
        branch = self.current_branch
        if branch is None:
            return []

        if self._breakpoint is not None:
            start = branch.index_of(self._breakpoint)
        elif self.current_step is not None:
            start = branch.index_of(self.current_step)
            if start is not None:
                start += 1
        else:
            start = 0

        if start is None:
            return []

        return branch.steps[start:]
