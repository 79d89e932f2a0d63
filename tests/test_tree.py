"""Tests for the in-memory tree source."""

from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

import pytest

from pytest_branchwalk.errors import DSLRuntimeError
from pytest_branchwalk.schema import Branch
from pytest_branchwalk.tree import WAIT, SequentialTree, is_sampled

if TYPE_CHECKING:
    from collections.abc import Callable

    from pytest_branchwalk.schema import Step


def drain(tree: SequentialTree, branch: Branch) -> list['Step']:
    """Pull every remaining step of a branch."""
    steps = []
    while (step := tree.next_step(branch)) is not None:
        steps.append(step)

    return steps


def test_branch_order(make_step: 'Callable[..., Step]') -> None:
    """Branches and their steps are served in declaration order."""
    first = Branch(steps=[make_step('a'), make_step('b')])
    second = Branch(steps=[make_step('c')])
    tree = SequentialTree([first, second])

    assert tree.next_branch() is first
    assert drain(tree, first) == first.steps
    assert tree.next_branch() is second
    assert tree.next_branch() is None
    assert tree.dispatched == [first, second]


def test_before_everything_first(make_step: 'Callable[..., Step]') -> None:
    """Ordinary branches wait until Before Everything branches finish."""
    before = Branch(steps=[make_step('setup')])
    branch = Branch(steps=[make_step('test')])
    tree = SequentialTree([branch], before_everything=[before])

    assert tree.next_branch() is before
    assert tree.next_branch() == WAIT

    drain(tree, before)

    assert tree.next_branch() is branch


def test_after_everything_last(make_step: 'Callable[..., Step]') -> None:
    """After Everything branches wait until ordinary branches finish."""
    branch = Branch(steps=[make_step('test')])
    after = Branch(steps=[make_step('teardown')])
    tree = SequentialTree([branch], after_everything=[after])

    assert tree.next_branch() is branch
    assert tree.next_branch() == WAIT

    drain(tree, branch)

    assert tree.next_branch() is after
    assert tree.next_branch() is None


def test_dispatched_once(make_step: 'Callable[..., Step]') -> None:
    """Concurrent callers never get the same branch twice."""
    branches = [Branch(steps=[make_step(f'step {num}')]) for num in range(200)]
    tree = SequentialTree(branches)

    def pull() -> list[Branch]:
        pulled = []
        while (branch := tree.next_branch()) is not None:
            pulled.append(branch)
        return pulled

    with ThreadPoolExecutor(max_workers=8) as executor:
        results = [future.result() for future in [executor.submit(pull) for _ in range(8)]]

    pulled = [branch for result in results for branch in result]
    assert len(pulled) == len(branches)
    assert len({id(branch) for branch in pulled}) == len(branches)


def test_finish_from_steps(make_step: 'Callable[..., Step]') -> None:
    """A finished branch fails when a step did not behave as expected."""
    good, bad = make_step('good'), make_step('bad')
    branch = Branch(steps=[good, bad])
    tree = SequentialTree([branch])
    error = DSLRuntimeError.from_step('boom', bad)

    tree.next_branch()
    tree.mark_step(branch, tree.next_step(branch), True, True, None, False, False)  # type: ignore[arg-type]
    tree.mark_step(branch, tree.next_step(branch), False, False, error, False, False)  # type: ignore[arg-type]

    assert branch.is_passed is None
    assert tree.next_step(branch) is None
    assert branch.is_passed is False
    assert branch.error is error


def test_fail_branch_now_stops(make_step: 'Callable[..., Step]') -> None:
    """A failure with `fail_branch_now` stops serving steps."""
    first = make_step('first')
    branch = Branch(steps=[first, make_step('second')])
    tree = SequentialTree([branch])
    error = DSLRuntimeError.from_step('stop', first)

    tree.next_branch()
    tree.next_step(branch)
    tree.mark_step(branch, first, False, False, error, True, False)

    assert tree.next_step(branch) is None
    assert branch.is_passed is False
    assert branch.error is error


@pytest.mark.parametrize('is_passed', (True, False))
def test_mark_branch(make_step: 'Callable[..., Step]', is_passed: bool) -> None:
    """An explicit branch outcome wins, a failure stops the branch."""
    branch = Branch(steps=[make_step('first'), make_step('second')])
    tree = SequentialTree([branch])

    tree.next_branch()
    tree.next_step(branch)
    tree.mark_branch(branch, is_passed)

    assert (tree.next_step(branch) is None) is not is_passed
    assert branch.is_passed is is_passed


@pytest.mark.parametrize('tag, frequency, expected', (
    pytest.param('high', 'low', True, id='more frequent'),
    pytest.param('med', 'med', True, id='same'),
    pytest.param('low', 'high', False, id='less frequent'),
    pytest.param(None, 'high', True, id='untagged'),
    pytest.param('weekly', 'high', True, id='unknown tag'),
    pytest.param('low', None, True, id='everything'),
))
def test_is_sampled(tag: str | None, frequency: str | None, expected: bool) -> None:
    """Branches run at their frequency and every less frequent one."""
    assert is_sampled(Branch(frequency=tag), frequency) is expected


def test_unknown_frequency() -> None:
    """Requesting an unknown frequency is an error."""
    with pytest.raises(ValueError, match='Unknown frequency'):
        is_sampled(Branch(frequency='high'), 'hourly')


def test_frequency_filter(make_step: 'Callable[..., Step]') -> None:
    """Only sampled ordinary branches are served."""
    frequent = Branch(steps=[make_step('a')], frequency='high')
    rare = Branch(steps=[make_step('b')], frequency='low')
    tree = SequentialTree([frequent, rare], frequency='high')

    assert tree.next_branch() is frequent
    assert tree.next_branch() is None
