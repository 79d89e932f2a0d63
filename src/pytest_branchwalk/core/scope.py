"""Variable namespaces of a run instance.

Three variable lifetimes are maintained:
- persistent variables live for the whole run and are shared between
  run instances;
- global variables live for one branch;
- local variables live for one nesting level of indentation, kept as a
  stack of frames.
"""

import logging
from typing import TYPE_CHECKING

from pytest_branchwalk.errors import DSLRuntimeError

if TYPE_CHECKING:
    from pytest_branchwalk.schema import Step
    from pytest_branchwalk.values import Namespace, RuntimeValue

logger = logging.getLogger(__name__)


class ScopeManager:
    """Persistent, global and local namespaces of one run instance.

    Attributes:
        persistent: Namespace shared with every instance of the run.
        global_: Namespace of the running branch.
        local: Top local frame of the running branch.
        frames: Frames preserved beneath the top local frame.
    """

    def __init__(self, persistent: 'Namespace | None' = None) -> None:
        """Initialize empty branch namespaces.

        Args:
            persistent: Shared persistent namespace. A new one is created
                if not provided.
        """
        self.persistent: Namespace = {} if persistent is None else persistent
        self.global_: Namespace = {}
        self.local: Namespace = {}
        self.frames: list[Namespace] = []

    @property
    def depth(self) -> int:
        """Number of frames preserved beneath the top local frame."""
        return len(self.frames)

    def namespace(self, is_local: bool) -> 'Namespace':
        """Return the namespace referenced by `{{name}}` or `{name}`."""
        if is_local:
            return self.local

        return self.global_

    def lookup(self, name: str, is_local: bool) -> tuple[bool, 'RuntimeValue']:
        """Look a variable up in the local or global namespace.

        Returns:
            Tuple of a found flag and the value.
        """
        namespace = self.namespace(is_local)
        if name in namespace:
            return True, namespace[name]

        return False, None

    def assign(self, name: str, value: 'RuntimeValue', is_local: bool) -> None:
        """Set a variable in the local or global namespace."""
        self.namespace(is_local)[name] = value

    def push(self) -> None:
        """Preserve the top local frame and start a fresh one."""
        self.frames.append(self.local)
        self.local = {}

    def pop(self) -> None:
        """Discard the top local frame and restore the one beneath it.

        Raises:
            DSLRuntimeError: If there is no preserved frame.
        """
        if not self.frames:
            raise DSLRuntimeError('Indentation decreased below the branch root')

        self.local = self.frames.pop()

    def adjust(self, previous: 'Step | None', step: 'Step') -> None:
        """Adjust local frames for a move between two steps of a branch.

        Any increase of indentation pushes exactly one frame, whatever
        its magnitude. A decrease by `k` pops exactly `k` frames.

        Args:
            previous: Step executed before, `None` at the branch start.
            step: Step about to be executed.

        Raises:
            DSLRuntimeError: If the decrease pops past the branch root.
        """
        if previous is None:
            return

        if step.branch_indents > previous.branch_indents:
            self.push()
            logger.debug('Pushed local frame at %r, depth %d', step, self.depth)

        elif step.branch_indents < previous.branch_indents:
            levels = previous.branch_indents - step.branch_indents
            if levels > self.depth:
                raise DSLRuntimeError('Indentation decreased below the branch root')
            for _ in range(levels):
                self.pop()
            logger.debug('Popped local frames at %r, depth %d', step, self.depth)

    def reset(self) -> None:
        """Clear branch namespaces, keeping persistent variables."""
        self.global_ = {}
        self.local = {}
        self.frames = []
