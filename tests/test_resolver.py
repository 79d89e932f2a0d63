"""Tests for lazy, forward-scanning variable resolution."""

from typing import TYPE_CHECKING

import pytest

from pytest_branchwalk.core import ScopeManager, VariableResolver
from pytest_branchwalk.errors import DSLRuntimeError
from pytest_branchwalk.names import VAR_REFERENCE_PATTERN
from pytest_branchwalk.schema import Branch

if TYPE_CHECKING:
    from collections.abc import Callable

    from pytest_mock import MockerFixture, MockType

    from pytest_branchwalk.schema import Step


@pytest.fixture
def evaluate(mocker: 'MockerFixture') -> 'MockType':
    """Provide a code fragment evaluation callback."""
    return mocker.Mock(return_value=42)


@pytest.fixture
def scope() -> ScopeManager:
    """Provide empty namespaces."""
    return ScopeManager()


@pytest.fixture
def resolver(scope: ScopeManager, evaluate: 'MockType') -> VariableResolver:
    """Provide a resolver using the default reference pattern."""
    return VariableResolver(scope, evaluate, VAR_REFERENCE_PATTERN)


def test_forward_declaration(make_step: 'Callable[..., Step]', resolver: VariableResolver) -> None:
    """A reference is resolved by a later declaration of the branch."""
    steps = [
        make_step('start'),
        make_step('use {x}'),
        make_step('middle'),
        make_step('middle'),
        make_step("{x}='A'", sets=(('x', "'A'"),), line_number=5),
    ]
    branch = Branch(steps=steps)

    assert resolver.resolve('x', False, steps[1], branch) == 'A'
    assert 'The value of variable {x} is being set by a later step at tree.yaml:5' in steps[1].log


def test_never_set(make_step: 'Callable[..., Step]', resolver: VariableResolver) -> None:
    """A reference without a forward declaration cites the referencing step."""
    steps = [make_step('start'), make_step('use {x}', line_number=12)]
    branch = Branch(steps=steps)

    with pytest.raises(DSLRuntimeError, match='never set') as error:
        resolver.resolve('x', False, steps[1], branch)

    assert error.value.filename == 'tree.yaml'
    assert error.value.line_number == 12


def test_never_looks_backward(make_step: 'Callable[..., Step]', resolver: VariableResolver) -> None:
    """Declarations before the referencing step are not considered."""
    steps = [make_step("{x}='A'", sets=(('x', "'A'"),)), make_step('use {x}')]
    branch = Branch(steps=steps)

    with pytest.raises(DSLRuntimeError, match='never set'):
        resolver.resolve('x', False, steps[1], branch)


def test_nearest_declaration(make_step: 'Callable[..., Step]', resolver: VariableResolver) -> None:
    """The nearest forward declaration wins."""
    steps = [
        make_step('use {x}'),
        make_step("{x}='near'", sets=(('x', "'near'"),)),
        make_step("{x}='far'", sets=(('x', "'far'"),)),
    ]
    branch = Branch(steps=steps)

    assert resolver.resolve('x', False, steps[0], branch) == 'near'


def test_locality_is_separate(make_step: 'Callable[..., Step]', resolver: VariableResolver) -> None:
    """Global and local declarations of the same name are distinct."""
    steps = [
        make_step('use {x} and {{x}}'),
        make_step("{{x}}='local'", sets=(('x', "'local'", True),)),
        make_step("{x}='global'", sets=(('x', "'global'"),)),
    ]
    branch = Branch(steps=steps)

    assert resolver.resolve('x', True, steps[0], branch) == 'local'
    assert resolver.resolve('x', False, steps[0], branch) == 'global'


def test_known_value_first(make_step: 'Callable[..., Step]',
                           scope: ScopeManager, resolver: VariableResolver) -> None:
    """A value already in the namespace is used without scanning."""
    steps = [make_step('use {x}'), make_step("{x}='later'", sets=(('x', "'later'"),))]
    branch = Branch(steps=steps)
    scope.assign('x', 'now', is_local=False)

    assert resolver.resolve('x', False, steps[0], branch) == 'now'
    assert steps[0].log == ''


def test_code_declaration_not_memoized(make_step: 'Callable[..., Step]',
                                       resolver: VariableResolver, evaluate: 'MockType') -> None:
    """A code-backed declaration runs on every independent lookup."""
    steps = [make_step('use {x}'), make_step('compute', sets=('x',), code_block='return 42')]
    branch = Branch(steps=steps)

    assert resolver.resolve('x', False, steps[0], branch) == 42
    assert resolver.resolve('x', False, steps[0], branch) == 42

    assert evaluate.call_count == 2
    evaluate.assert_called_with(steps[1], branch, chain=frozenset({('x', False)}))


def test_nested_references(make_step: 'Callable[..., Step]', resolver: VariableResolver) -> None:
    """References inside a declared value are resolved recursively."""
    steps = [
        make_step('use {greeting}'),
        make_step("{greeting}='{salutation}, world'", sets=(('greeting', "'{salutation}, world'"),)),
        make_step("{salutation}='Hello'", sets=(('salutation', '"Hello"'),)),
    ]
    branch = Branch(steps=steps)

    assert resolver.resolve('greeting', False, steps[0], branch) == 'Hello, world'


def test_circular_reference(make_step: 'Callable[..., Step]', resolver: VariableResolver) -> None:
    """A definition referring back to itself is an error."""
    steps = [
        make_step('use {x}'),
        make_step("{x}='{y}'", sets=(('x', "'{y}'"),)),
        make_step("{y}='{x}'", sets=(('y', "'{x}'"),)),
    ]
    branch = Branch(steps=steps)

    with pytest.raises(DSLRuntimeError, match='Circular reference'):
        resolver.resolve('x', False, steps[0], branch)


@pytest.mark.parametrize('text, expected', (
    pytest.param('Hello, {name}!', 'Hello, Ann!', id='embedded'),
    pytest.param('{count}', 3, id='single keeps type'),
    pytest.param('{count} items', '3 items', id='embedded number'),
    pytest.param('{{item}}', 'local', id='local'),
    pytest.param('{ name }', 'Ann', id='spaces'),
    pytest.param('{nothing}', None, id='single none'),
    pytest.param('[{nothing}]', '[]', id='embedded none'),
    pytest.param('no references', 'no references', id='plain'),
))
def test_replace_vars(make_step: 'Callable[..., Step]',
                      scope: ScopeManager, resolver: VariableResolver,
                      text: str, expected: object) -> None:
    """References are substituted in texts."""
    step = make_step(text)
    branch = Branch(steps=[step])
    scope.assign('name', 'Ann', is_local=False)
    scope.assign('count', 3, is_local=False)
    scope.assign('nothing', None, is_local=False)
    scope.assign('item', 'local', is_local=True)

    assert resolver.replace_vars(text, step, branch) == expected


def test_replace_vars_non_text(make_step: 'Callable[..., Step]', resolver: VariableResolver) -> None:
    """Non-text values are returned as-is."""
    step = make_step()
    value = {'key': '{x}'}

    assert resolver.replace_vars(value, step, Branch(steps=[step])) is value


def test_index_rebuilt_per_branch(make_step: 'Callable[..., Step]', resolver: VariableResolver) -> None:
    """Declaration indexes follow the branch being resolved."""
    first = Branch(steps=[make_step('use {x}'), make_step("{x}='one'", sets=(('x', "'one'"),))])
    second = Branch(steps=[make_step('use {x}'), make_step("{x}='two'", sets=(('x', "'two'"),))])

    assert resolver.resolve('x', False, first.steps[0], first) == 'one'
    resolver.clear()
    assert resolver.resolve('x', False, second.steps[0], second) == 'two'
