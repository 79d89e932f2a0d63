"""Run context shared by concurrent run instances.

The context makes the ambient state of a run explicit: the persistent
namespace, the one-shot pause policies, the reporter and the settings.
Every run instance of a run receives the same context object, while
owning its own global and local namespaces.
"""

from typing import TYPE_CHECKING

from pytest_branchwalk.config import RunnerSettings
from pytest_branchwalk.reporter import NullReporter

if TYPE_CHECKING:
    from pytest_branchwalk.reporter import Reporter
    from pytest_branchwalk.values import Namespace


class RunContext:
    """Shared state of a run.

    Attributes:
        persistent: Variables kept for the whole run. Set externally and
            by code fragments, read by every run instance.
        pause_on_fail: One-shot policy pausing after the next step that
            fails or behaves unexpectedly.
        run_one_step: One-shot policy pausing after the next step.
        halted: Set once any instance pauses, so instances waiting for
            a paused branch to finish stop waiting.
        reporter: Receiver of state change notifications.
        settings: Runner settings.
    """

    def __init__(self, *,
                 persistent: 'Namespace | None' = None,
                 reporter: 'Reporter | None' = None,
                 settings: RunnerSettings | None = None,
                 pause_on_fail: bool = False,
                 run_one_step: bool = False) -> None:
        """Initialize the run context.

        Args:
            persistent: Initial persistent variables.
            reporter: Reporter to notify, a `NullReporter` by default.
            settings: Runner settings, resolved from the environment by default.
            pause_on_fail: Arm the pause-on-fail policy.
            run_one_step: Arm the run-one-step policy.
        """
        self.persistent: Namespace = {} if persistent is None else persistent
        self.reporter: Reporter = NullReporter() if reporter is None else reporter
        self.settings = RunnerSettings() if settings is None else settings

        self.pause_on_fail = pause_on_fail
        self.run_one_step = run_one_step
        self.halted = False
