"""Run orchestration.

A runner owns the run context and starts one or more run instances on a
shared tree source. Instances run concurrently in worker threads; the
tree source guarantees that no branch is handed out twice.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from pytest_branchwalk.context import RunContext
from pytest_branchwalk.core import RunInstance
from pytest_branchwalk.tree import SequentialTree

if TYPE_CHECKING:
    from typing import Self

if TYPE_CHECKING:
    from pytest_branchwalk.config import RunnerSettings
    from pytest_branchwalk.reporter import Reporter
    from pytest_branchwalk.schema import TreeDocument
    from pytest_branchwalk.tree import TreeSource
    from pytest_branchwalk.values import Namespace

logger = logging.getLogger(__name__)


class Runner:
    """Run a tree with one or more concurrent run instances.

    Attributes:
        tree: Tree source shared by every instance.
        context: Run context shared by every instance.
        instances: Run instances, created on the first run.
    """

    def __init__(self, tree: 'TreeSource', *,  # noqa: PLR0913
                 persistent: 'Namespace | None' = None,
                 reporter: 'Reporter | None' = None,
                 settings: 'RunnerSettings | None' = None,
                 pause_on_fail: bool = False,
                 run_one_step: bool = False) -> None:
        """Initialize the runner.

        Args:
            tree: Tree source to run.
            persistent: Initial persistent variables.
            reporter: Reporter notified of state changes.
            settings: Runner settings.
            pause_on_fail: Arm the pause-on-fail policy.
            run_one_step: Arm the run-one-step policy.
        """
        self.tree = tree
        self.context = RunContext(
            persistent=persistent,
            reporter=reporter,
            settings=settings,
            pause_on_fail=pause_on_fail,
            run_one_step=run_one_step,
        )
        self.instances: list[RunInstance] = []

    @classmethod
    def from_document(cls, document: 'TreeDocument', *,  # noqa: PLR0913
                      frequency: str | None = None,
                      reporter: 'Reporter | None' = None,
                      settings: 'RunnerSettings | None' = None,
                      pause_on_fail: bool = False,
                      run_one_step: bool = False) -> 'Self':
        """Create a runner for a loaded tree document.

        Args:
            document: Validated tree document.
            frequency: Optional sampling frequency of ordinary branches.
            reporter: Reporter notified of state changes.
            settings: Runner settings.
            pause_on_fail: Arm the pause-on-fail policy.
            run_one_step: Arm the run-one-step policy.

        Returns:
            Runner over a `SequentialTree` of the document branches,
            seeded with the document persistent variables.
        """
        tree = SequentialTree(
            document.branches,
            before_everything=document.before_everything,
            after_everything=document.after_everything,
            frequency=frequency,
        )

        return cls(
            tree,
            persistent=dict(document.persistent),
            reporter=reporter,
            settings=settings,
            pause_on_fail=pause_on_fail,
            run_one_step=run_one_step,
        )

    @property
    def is_paused(self) -> bool:
        """Whether any instance is paused."""
        return any(instance.is_paused for instance in self.instances)

    @property
    def paused_instances(self) -> list[RunInstance]:
        """Instances currently paused."""
        return [instance for instance in self.instances if instance.is_paused]

    def run(self, instances: int = 1) -> bool:
        """Run, or resume, the tree.

        Instances are created on the first call. Later calls resume the
        existing instances: paused ones continue where they stopped,
        completed ones return immediately once the tree is exhausted.
        Once an instance pauses, instances waiting for a branch stop
        waiting and return as well.

        Args:
            instances: Number of concurrent instances for the first run.

        Returns:
            `True` if every instance completed, `False` if the run paused.

        Raises:
            ValueError: If the number of instances is not positive.
        """
        if not self.instances:
            if instances < 1:
                raise ValueError('At least one run instance is required')
            self.instances = [
                RunInstance(self.tree, self.context)
                for _ in range(instances)
            ]

        self.context.halted = False
        logger.info('Running tree with %d instance(s)', len(self.instances))

        if len(self.instances) == 1:
            return self.instances[0].run()

        with ThreadPoolExecutor(
            max_workers=len(self.instances),
            thread_name_prefix='branchwalk',
        ) as executor:
            results = list(executor.map(RunInstance.run, self.instances))

        return all(results)
