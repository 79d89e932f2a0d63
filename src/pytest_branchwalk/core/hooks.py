"""Lifecycle hook execution.

Hooks are branches of steps attached to a parent branch and executed
synchronously when a lifecycle event happens: after each step of the
branch, and once the branch is finished. Before Everything and After
Everything hooks are scheduled by the tree source as ordinary branches.

Every hook step records its own outcome, so a failing hook is visible on
the hook itself. A failure is also attributed to the hook target: the
step that just ran, or the parent branch as a whole. A passing hook
leaves the target outcome untouched.
"""

import logging
from typing import TYPE_CHECKING

from .outcome import BranchTarget, StepTarget

if TYPE_CHECKING:
    from pytest_branchwalk.schema import Branch, Step

    from .instance import RunInstance
    from .outcome import ErrorTarget

logger = logging.getLogger(__name__)


class HookRunner:
    """Run hook branches on behalf of a run instance."""

    def __init__(self, instance: 'RunInstance') -> None:
        """Initialize the runner.

        Args:
            instance: Run instance whose namespaces and step protocol
                are used to execute hook steps.
        """
        self.instance = instance

    def run_after_step(self, step: 'Step', branch: 'Branch') -> None:
        """Run the After Every Step hooks of a branch.

        Args:
            step: Step that just ran, target of hook failures.
            branch: Branch owning the hooks and the step.
        """
        if not branch.after_every_step:
            return

        self.expose(step.is_passed, step.error)
        self.run(branch.after_every_step, StepTarget(step, branch))

    def run_after_branch(self, branch: 'Branch') -> None:
        """Run the After Every Branch hooks of a finished branch.

        Args:
            branch: Finished branch, target of hook failures.
        """
        self.expose(branch.is_passed, branch.error)
        self.run(branch.after_branches, BranchTarget(branch))

    def run(self, hooks: 'list[Branch]', target: 'ErrorTarget') -> None:
        """Run every step of every hook branch, in order.

        Each hook branch starts at its own root, on a copy of the hooked
        local frame. Frames of the hooked branch are restored once the
        hook branch ends.

        Args:
            hooks: Hook branches to run.
            target: Destination of hook failures.
        """
        scope = self.instance.scope

        for hook in hooks:
            logger.debug('Running hook %r for %r', hook, target)

            local, frames = scope.local, scope.frames
            scope.local, scope.frames = dict(local), []
            try:
                for hook_step in hook.steps:
                    self.instance.run_step(hook_step, hook, target, is_hook=True)
            finally:
                scope.local, scope.frames = local, frames

    def expose(self, successful: bool | None, error: Exception | None) -> None:
        """Expose the status of the hooked element as local variables."""
        self.instance.scope.local['successful'] = successful
        self.instance.scope.local['error'] = error
