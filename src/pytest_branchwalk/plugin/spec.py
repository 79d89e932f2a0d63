"""Pytest integration for serialized branch trees.

This module defines a custom pytest file collector that treats tree
documents as executable specifications.

Each collected file is loaded with `load_document` and converted into
one `TestBranch` item per branch. Before Everything branches are
collected first and After Everything branches last, so pytest runs
them in the order a tree source would schedule them.
"""

from typing import TYPE_CHECKING

import pytest

from pytest_branchwalk.context import RunContext
from pytest_branchwalk.schema import load_document
from pytest_branchwalk.tree import is_sampled

from .case import TestBranch

if TYPE_CHECKING:
    from collections.abc import Iterable

if TYPE_CHECKING:
    from pytest_branchwalk.schema import Branch, TreeDocument


class TreeSpec(pytest.File):
    """Pytest file collector for tree documents.

    All items of a file share one run context, so persistent variables
    set by a branch are visible to the branches collected after it.
    """

    __test__ = False

    def collect(self) -> 'Iterable[TestBranch]':
        """Collect pytest items from a tree document.

        Returns:
            Iterable of `TestBranch` instances for pytest execution.

        Raises:
            DSLSchemaError: If the document is not a valid tree.
        """
        with self.path.open('rt', encoding='utf-8') as content:
            document = load_document(content, filename=f'{self.path}')

        context = RunContext(
            persistent=dict(document.persistent),
            settings=self.config.branchwalk_settings,  # type: ignore[attr-defined]
        )

        for name, branch in self.iter_branches(document):
            yield TestBranch.from_parent(
                self,
                name=name,
                branch=branch,
                context=context,
            )

    def iter_branches(self, document: 'TreeDocument') -> 'Iterable[tuple[str, Branch]]':
        """Name the branches of a document in scheduling order.

        Ordinary branches are filtered by the requested frequency.

        Args:
            document: Validated tree document.

        Yields:
            Pairs of item name and branch.
        """
        frequency = self.config.getoption('branchwalk_frequency', default=None)

        for num, branch in enumerate(document.before_everything):
            yield f'before_everything[{num}]', branch

        for num, branch in enumerate(document.branches):
            if is_sampled(branch, frequency):
                yield f'branch[{num}]', branch

        for num, branch in enumerate(document.after_everything):
            yield f'after_everything[{num}]', branch
