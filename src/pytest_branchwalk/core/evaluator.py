"""Code fragment evaluation.

Steps may embed Python code fragments. A fragment is compiled as the body
of a function, so a `return` statement delivers the fragment value, and
executed against a capability namespace provided by the run instance.

By default fragments only see a restricted table of builtins: no imports,
no file access, no `eval`. This is not a full sandbox, any callable
exposed through the capability namespace can still be invoked.
"""

import builtins
import logging
from textwrap import dedent, indent
from threading import Thread
from typing import TYPE_CHECKING

from pytest_branchwalk.errors import DSLRuntimeError

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

if TYPE_CHECKING:
    from pytest_branchwalk.config import RunnerSettings
    from pytest_branchwalk.values import RuntimeValue

logger = logging.getLogger(__name__)

#: Compiled fragment, called with its capability namespace.
type Fragment = Callable[[Mapping[str, RuntimeValue]], RuntimeValue]

FRAGMENT_FUNCTION = '__fragment__'
FRAGMENT_INDENT = '    '

SAFE_BUILTINS = {
    name: getattr(builtins, name)
    for name in (
        'abs', 'all', 'any', 'bool', 'bytes', 'callable', 'chr', 'dict',
        'divmod', 'enumerate', 'filter', 'float', 'format', 'frozenset',
        'getattr', 'hasattr', 'hash', 'int', 'isinstance', 'issubclass',
        'iter', 'len', 'list', 'map', 'max', 'min', 'next', 'ord', 'pow',
        'range', 'repr', 'reversed', 'round', 'set', 'slice', 'sorted',
        'str', 'sum', 'tuple', 'type', 'zip',
        'ArithmeticError', 'AssertionError', 'AttributeError', 'Exception',
        'IndexError', 'KeyError', 'LookupError', 'RuntimeError',
        'StopIteration', 'TypeError', 'ValueError', 'ZeroDivisionError',
    )
}


class CodeEvaluator:
    """Compile and run code fragments in an isolated namespace."""

    def __init__(self, settings: 'RunnerSettings') -> None:
        """Initialize the evaluator.

        Args:
            settings: Runner settings providing the builtins policy
                and the optional time limit.
        """
        self.timeout = settings.code_timeout
        self.builtins = vars(builtins) if settings.unsafe_builtins else SAFE_BUILTINS

    def compile(self, code: str, filename: str = '<fragment>') -> 'Fragment':
        """Compile a code fragment.

        Args:
            code: Fragment source, the body of a function.
            filename: Name reported in tracebacks.

        Returns:
            A callable running the fragment against a capability namespace.

        Raises:
            SyntaxError: If the fragment is not valid Python.
        """
        body = indent(dedent(code).strip('\n') or 'pass', FRAGMENT_INDENT)
        source = f'def {FRAGMENT_FUNCTION}():\n{body}\n'
        compiled = compile(source, filename=filename, mode='exec')

        def runner(capabilities: 'Mapping[str, RuntimeValue]') -> 'RuntimeValue':
            namespace = {**capabilities, '__builtins__': self.builtins}
            exec(compiled, namespace)  # noqa: S102
            return namespace[FRAGMENT_FUNCTION]()

        return runner

    def evaluate(self, code: str, capabilities: 'Mapping[str, RuntimeValue]', *,
                 filename: str = '<fragment>') -> 'RuntimeValue':
        """Compile and run a code fragment.

        Args:
            code: Fragment source.
            capabilities: Names visible to the fragment.
            filename: Name reported in tracebacks.

        Returns:
            The value returned by the fragment, `None` without `return`.

        Raises:
            DSLRuntimeError: If the fragment exceeds the time limit.
            Any exception raised by the fragment itself.
        """
        runner = self.compile(code, filename)
        if self.timeout is None:
            return runner(capabilities)

        return self._run_limited(runner, capabilities)

    def _run_limited(self, runner: 'Fragment',
                     capabilities: 'Mapping[str, RuntimeValue]') -> 'RuntimeValue':
        """Run a compiled fragment in a worker thread with a time limit.

        A fragment that does not finish in time is abandoned: the daemon
        thread keeps running in the background, its result is discarded.
        """
        outcome: dict[str, RuntimeValue] = {}

        def target() -> None:
            try:
                outcome['value'] = runner(capabilities)
            except Exception as error:  # noqa: BLE001
                outcome['error'] = error

        thread = Thread(target=target, name='branchwalk-fragment', daemon=True)
        thread.start()
        thread.join(self.timeout)

        if thread.is_alive():
            logger.warning('Code fragment abandoned after %s seconds', self.timeout)
            raise DSLRuntimeError(f'Code fragment timed out after {self.timeout} seconds')

        if 'error' in outcome:
            raise outcome['error']

        return outcome.get('value')
