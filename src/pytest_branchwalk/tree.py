"""Tree source interface and a reference in-memory implementation.

A tree source hands branches and steps out to run instances and records
their outcomes. It owns scheduling: which branch runs next, when Before
Everything and After Everything hooks run, and when a branch is stopped.
Several run instances may share one tree source, which must never hand
the same branch out twice.
"""

import logging
from collections import deque
from threading import Lock
from typing import TYPE_CHECKING, Final, Literal, Protocol

if TYPE_CHECKING:
    from collections.abc import Iterable

if TYPE_CHECKING:
    from pytest_branchwalk.errors import DSLRuntimeError
    from pytest_branchwalk.schema import Branch, Step

logger = logging.getLogger(__name__)

#: Answer of `next_branch` when no branch is available yet but more may come.
WAIT: Final = 'wait'

#: Sampling tags ordered from the most to the least frequently run.
FREQUENCIES: Final = ('high', 'med', 'low')

BEFORE_EVERYTHING = 'before'
BRANCHES = 'branches'
AFTER_EVERYTHING = 'after'
STAGES = (BEFORE_EVERYTHING, BRANCHES, AFTER_EVERYTHING)

#: Answer of `next_branch`.
type NextBranch = Branch | Literal['wait'] | None


class TreeSource(Protocol):
    """Scheduler of an already-built tree."""

    def next_branch(self) -> NextBranch:
        """Return the next branch to run, `WAIT`, or `None` when done."""
        ...  # pragma: no cover

    def next_step(self, branch: 'Branch') -> 'Step | None':
        """Return the next step of a branch, or `None` when it is finished."""
        ...  # pragma: no cover

    def mark_step(self, branch: 'Branch', step: 'Step',  # noqa: PLR0913
                  is_passed: bool, as_expected: bool,
                  error: 'DSLRuntimeError | None',
                  fail_branch_now: bool, is_hook_step: bool) -> None:
        """Record the outcome of a step."""
        ...  # pragma: no cover

    def mark_branch(self, branch: 'Branch', is_passed: bool) -> None:
        """Record the outcome of a whole branch."""
        ...  # pragma: no cover


def is_sampled(branch: 'Branch', frequency: str | None) -> bool:
    """Check whether a branch runs at the requested frequency.

    Running at a frequency also runs every more frequent branch. Branches
    without a tag, or with an unknown tag, always run.

    Args:
        branch: Branch to check.
        frequency: Requested frequency, `None` to run everything.

    Returns:
        Whether the branch is scheduled.
    """
    if frequency is None or branch.frequency not in FREQUENCIES:
        return True

    if frequency not in FREQUENCIES:
        raise ValueError(f'Unknown frequency {frequency!r}')

    return FREQUENCIES.index(branch.frequency) <= FREQUENCIES.index(frequency)


class SequentialTree:
    """Thread-safe tree source serving branches in declaration order.

    Before Everything branches are served first. Ordinary branches are
    served once every Before Everything branch is finished, and After
    Everything branches once every ordinary branch is finished; until
    then, instances asking for a branch are told to wait.

    A branch is finished when its steps run out or when it is stopped by
    a failure. A finished branch that was not explicitly marked passes
    only if every step behaved as expected.
    """

    def __init__(self, branches: 'Iterable[Branch]', *,
                 before_everything: 'Iterable[Branch]' = (),
                 after_everything: 'Iterable[Branch]' = (),
                 frequency: str | None = None) -> None:
        """Initialize the tree.

        Args:
            branches: Ordinary branches.
            before_everything: Hook branches run before ordinary branches.
            after_everything: Hook branches run after ordinary branches.
            frequency: Optional sampling frequency for ordinary branches.
        """
        self._lock = Lock()

        self._pending: dict[str, deque[Branch]] = {
            BEFORE_EVERYTHING: deque(before_everything),
            BRANCHES: deque(
                branch for branch in branches
                if is_sampled(branch, frequency)
            ),
            AFTER_EVERYTHING: deque(after_everything),
        }
        self._running: dict[str, set[int]] = {stage: set() for stage in STAGES}

        self._stages: dict[int, str] = {}
        self._cursors: dict[int, int] = {}
        self._stopped: set[int] = set()

        self.dispatched: list[Branch] = []

    def next_branch(self) -> NextBranch:
        """Return the next branch to run.

        Returns:
            The next branch, `WAIT` while an earlier stage is still
            running, or `None` once every branch has been handed out.
        """
        with self._lock:
            for position, stage in enumerate(STAGES):
                queue = self._pending[stage]
                if not queue:
                    continue

                if any(self._running[earlier] for earlier in STAGES[:position]):
                    return WAIT

                branch = queue.popleft()
                key = id(branch)

                self._stages[key] = stage
                self._cursors[key] = 0
                self._running[stage].add(key)
                self.dispatched.append(branch)

                logger.debug('Dispatched %r from stage %r', branch, stage)

                return branch

        return None

    def next_step(self, branch: 'Branch') -> 'Step | None':
        """Return the next step of a branch.

        Returns:
            The next step, or `None` once the branch is finished.
        """
        with self._lock:
            key = id(branch)
            cursor = self._cursors.get(key, 0)

            if key in self._stopped or cursor >= len(branch.steps):
                self._finish(branch)
                return None

            self._cursors[key] = cursor + 1

            return branch.steps[cursor]

    def mark_step(self, branch: 'Branch', step: 'Step',  # noqa: PLR0913
                  is_passed: bool, as_expected: bool,
                  error: 'DSLRuntimeError | None',
                  fail_branch_now: bool, is_hook_step: bool) -> None:
        """Record the outcome of a step on the step itself.

        A failure carrying `fail_branch_now` also fails and stops the branch.
        """
        step.is_passed = is_passed
        step.as_expected = as_expected
        step.error = error

        if is_hook_step and error is not None:
            logger.debug('Hook failure attributed to %r', step)

        if error is not None and fail_branch_now:
            with self._lock:
                self._stopped.add(id(branch))
            branch.is_passed = False
            branch.error = error

    def mark_branch(self, branch: 'Branch', is_passed: bool) -> None:
        """Record the outcome of a branch, stopping it on failure."""
        branch.is_passed = is_passed
        if not is_passed:
            with self._lock:
                self._stopped.add(id(branch))

    def _finish(self, branch: 'Branch') -> None:
        """Finalize a branch whose steps ran out or that was stopped."""
        key = id(branch)
        stage = self._stages.get(key)
        if stage is None or key not in self._running[stage]:
            return

        self._running[stage].discard(key)

        if branch.is_passed is None:
            failures = [step for step in branch.steps if step.as_expected is False]
            branch.is_passed = not failures
            if failures and branch.error is None:
                branch.error = failures[0].error

        logger.debug('Finished %r, passed: %s', branch, branch.is_passed)
