"""Integration tests for the pytest plugin."""

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pytest import Pytester


TREE_DOCUMENT = '''
persistent:
  greeting: Hello
beforeEverything:
  - steps:
      - text: Prepare
        codeBlock: p('prepared', True)
branches:
  - frequency: high
    steps:
      - text: "{name}='Ann'"
        varsBeingSet:
          - name: name
            value: "'Ann'"
      - text: Greet
        codeBlock: |
          log(p('greeting') + ', ' + g('name'))
          if not p('prepared'):
              fail('not prepared')
  - frequency: low
    steps:
      - text: Count
        codeBlock: return 1 + 1
afterEverything:
  - steps:
      - text: Teardown
'''

FAILING_DOCUMENT = '''
branches:
  - steps:
      - text: Use an unknown variable
        lineNumber: 4
        codeBlock: return g('missing')
'''


def write_tree(pytester: 'Pytester', name: str, content: str) -> None:
    """Write a tree document into the test directory."""
    pytester.path.joinpath(name).write_text(content, encoding='utf-8')


def test_collect_branches(pytester: 'Pytester') -> None:
    """Every branch of a tree document becomes a passing item."""
    write_tree(pytester, 'test_greet.tree.yaml', TREE_DOCUMENT)

    result = pytester.runpytest('-v')

    result.assert_outcomes(passed=4)
    result.stdout.fnmatch_lines([
        '*before_everything?0? PASSED*',
        '*branch?0? PASSED*',
        '*branch?1? PASSED*',
        '*after_everything?0? PASSED*',
    ])


def test_ignore_other_yaml(pytester: 'Pytester') -> None:
    """Plain YAML files are not collected."""
    write_tree(pytester, 'test_greet.yaml', TREE_DOCUMENT)
    write_tree(pytester, 'greet.tree.yaml', TREE_DOCUMENT)

    result = pytester.runpytest()

    result.assert_outcomes()


def test_failing_branch(pytester: 'Pytester') -> None:
    """A failing branch is reported with the step location."""
    write_tree(pytester, 'test_broken.tree.yml', FAILING_DOCUMENT)

    result = pytester.runpytest()

    result.assert_outcomes(failed=1)
    result.stdout.fnmatch_lines([
        '*The variable {missing} is never set*',
        '*line 4*',
    ])


def test_paused_branch(pytester: 'Pytester') -> None:
    """A breakpoint fails the item."""
    write_tree(pytester, 'test_debug.tree.yaml', (
        'branches:\n'
        '  - steps:\n'
        '      - text: Stop here\n'
        '        isDebug: true\n'
    ))

    result = pytester.runpytest()

    result.assert_outcomes(failed=1)
    result.stdout.fnmatch_lines(["*Execution paused at step 'Stop here'*"])


def test_invalid_document(pytester: 'Pytester') -> None:
    """An invalid document is a collection error."""
    write_tree(pytester, 'test_invalid.tree.yaml', 'branches:\n  - colour: red\n')

    result = pytester.runpytest()

    result.assert_outcomes(errors=1)
    result.stdout.fnmatch_lines(['*Extra inputs are not permitted*'])


@pytest.mark.parametrize('frequency, passed', (
    pytest.param('high', 3, id='high'),
    pytest.param('low', 4, id='low'),
))
def test_frequency_option(pytester: 'Pytester', frequency: str, passed: int) -> None:
    """Less frequent branches are not collected."""
    write_tree(pytester, 'test_greet.tree.yaml', TREE_DOCUMENT)

    result = pytester.runpytest(f'--branchwalk-frequency={frequency}')

    result.assert_outcomes(passed=passed)


def test_settings_options(pytester: 'Pytester') -> None:
    """Command-line options are mapped onto runner settings."""
    config = pytester.parseconfigure(
        '--branchwalk-code-timeout=0.5',
        '--branchwalk-unsafe-builtins',
    )

    assert config.branchwalk_settings.code_timeout == 0.5  # type: ignore[attr-defined]
    assert config.branchwalk_settings.unsafe_builtins is True  # type: ignore[attr-defined]


def test_unsafe_builtins_option(pytester: 'Pytester') -> None:
    """Imports are only available to fragments when enabled."""
    write_tree(pytester, 'test_import.tree.yaml', (
        'branches:\n'
        '  - steps:\n'
        '      - text: Import\n'
        '        codeBlock: import math\n'
    ))

    pytester.runpytest().assert_outcomes(failed=1)
    pytester.runpytest('--branchwalk-unsafe-builtins').assert_outcomes(passed=1)
