"""Lazy, forward-scanning variable resolution.

A variable referenced by a step does not have to be set by an earlier
step: it may be declared by any later step of the same branch. When a
reference has no value yet, the branch is scanned forward from the
referencing step for a matching declaration, which is evaluated on the
spot. Resolution never looks backward and never crosses branches.

Resolution works in two passes. The first pass indexes, once per branch,
the positions of every declaration by name and locality. The second pass
evaluates a declaration when a lookup needs it. Values are not memoized:
a declaration backed by a code fragment runs again on every independent
lookup.
"""

import logging
from re import compile as regexp
from typing import TYPE_CHECKING

from pytest_branchwalk.errors import DSLRuntimeError
from pytest_branchwalk.names import format_reference, parse_reference
from pytest_branchwalk.values import strip_quotes, to_text

if TYPE_CHECKING:
    from collections.abc import Callable
    from re import Match

if TYPE_CHECKING:
    from pytest_branchwalk.schema import Branch, Step, VarAssignment
    from pytest_branchwalk.values import RuntimeValue

    from .scope import ScopeManager

logger = logging.getLogger(__name__)

#: Positions of declaring steps, keyed by variable name and locality.
type DeclarationIndex = dict[tuple[str, bool], list[int]]

#: Chain of variables being resolved, used to detect circular definitions.
type ResolutionChain = frozenset[tuple[str, bool]]


class VariableResolver:
    """Resolve `{global}` and `{{local}}` variable references."""

    def __init__(self, scope: 'ScopeManager',
                 evaluate: 'Callable[..., RuntimeValue]',
                 pattern: str) -> None:
        """Initialize the resolver.

        Args:
            scope: Namespaces holding already known values.
            evaluate: Callback running the code fragment of a declaring
                step and returning its value. It receives the step, its
                branch and the resolution chain as `chain`.
            pattern: Regular expression matching variable references.
        """
        self.scope = scope
        self.evaluate = evaluate
        self.pattern = regexp(pattern)

        self._indexes: dict[int, tuple[Branch, DeclarationIndex]] = {}

    def clear(self) -> None:
        """Drop declaration indexes built for previous branches."""
        self._indexes = {}

    def index(self, branch: 'Branch') -> DeclarationIndex:
        """Return the declaration index of a branch, building it once.

        Args:
            branch: Branch to index.

        Returns:
            Mapping of `(name, is_local)` to ascending step positions.
        """
        cached = self._indexes.get(id(branch))
        if cached is not None and cached[0] is branch:
            return cached[1]

        index: DeclarationIndex = {}
        for position, step in enumerate(branch.steps):
            for assignment in step.vars_being_set:
                index.setdefault((assignment.name, assignment.is_local), []).append(position)

        self._indexes[id(branch)] = (branch, index)

        return index

    def resolve(self, name: str, is_local: bool, step: 'Step', branch: 'Branch', *,
                chain: ResolutionChain = frozenset()) -> 'RuntimeValue':
        """Return the value of a variable as seen from a step.

        Args:
            name: Variable name, without braces.
            is_local: Whether the reference is `{{name}}`.
            step: Referencing step.
            branch: Branch the referencing step belongs to.
            chain: Variables already being resolved by the caller.

        Returns:
            The current value, or the value of the nearest forward declaration.

        Raises:
            DSLRuntimeError: If the variable is never set in the rest of
                the branch, or its definition refers back to itself.
        """
        found, value = self.scope.lookup(name, is_local)
        if found:
            return value

        reference = format_reference(name, is_local)
        if (name, is_local) in chain:
            raise DSLRuntimeError.from_step(
                f'Circular reference of the variable {reference}',
                step,
            )

        declaring = self.find_declaration(name, is_local, step, branch)
        if declaring is None:
            raise DSLRuntimeError.from_step(
                f'The variable {reference} is never set, but is needed for this step',
                step,
                context=dict(self.scope.namespace(is_local)),
            )

        assignment = declaring.declares(name, is_local)
        value = self.evaluate_declaration(
            declaring,
            assignment,  # type: ignore[arg-type]
            step,
            branch,
            chain=chain | {(name, is_local)},
        )

        if declaring is not step:
            message = (
                f'The value of variable {reference} is being set by a later step '
                f'at {declaring.filename}:{declaring.line_number}'
            )
            step.append_log(message)
            logger.debug(message)

        return value

    def find_declaration(self, name: str, is_local: bool,
                         step: 'Step', branch: 'Branch') -> 'Step | None':
        """Find the nearest step declaring a variable, scanning forward.

        The scan starts at the referencing step itself, inclusive.

        Returns:
            The declaring step, or `None` when the rest of the branch
            never declares the variable.
        """
        start = branch.index_of(step)
        if start is None:
            return None

        for position in self.index(branch).get((name, is_local), ()):
            if position >= start:
                return branch.steps[position]

        return None

    def evaluate_declaration(self, declaring: 'Step', assignment: 'VarAssignment',
                             step: 'Step', branch: 'Branch', *,
                             chain: ResolutionChain = frozenset()) -> 'RuntimeValue':
        """Compute the value a step assigns to a variable.

        A declaring step carrying a code fragment assigns the fragment
        return value; otherwise the declared literal is used without its
        quotes. References embedded in the value are resolved relative
        to the referencing step.

        Args:
            declaring: Step declaring the variable.
            assignment: Declaration made by that step.
            step: Referencing step.
            branch: Branch both steps belong to.
            chain: Variables already being resolved.

        Returns:
            The realized value.
        """
        if declaring.code_block is not None:
            value = self.evaluate(declaring, branch, chain=chain)
        else:
            value = strip_quotes(assignment.value or '')

        return self.replace_vars(value, step, branch, chain=chain)

    def replace_vars(self, value: 'RuntimeValue', step: 'Step', branch: 'Branch', *,
                     chain: ResolutionChain = frozenset()) -> 'RuntimeValue':
        """Substitute variable references inside a text.

        A text made of a single reference is replaced by the referenced
        value itself, keeping its type. Other texts get each reference
        replaced by its string form. Non-text values are returned as-is.

        Args:
            value: Text possibly containing references.
            step: Referencing step.
            branch: Branch the step belongs to.
            chain: Variables already being resolved.

        Returns:
            The value with all references resolved.
        """
        if not isinstance(value, str):
            return value

        def resolve_match(match: 'Match[str]') -> 'RuntimeValue':
            name, is_local = parse_reference(match)
            return self.resolve(name, is_local, step, branch, chain=chain)

        if match := self.pattern.fullmatch(value):
            return resolve_match(match)

        return self.pattern.sub(
            lambda match: to_text(resolve_match(match)),
            value,
        )
