"""Core exception hierarchy.

Every failure of the library is a `DSLError`. Invalid tree documents
raise `DSLSchemaError` while loading; failures of a step while running,
whether raised by a code fragment, an undefined variable, a time limit
or a malformed indentation, travel through the single `DSLRuntimeError`
channel and are stored on the step instead of propagating.

Errors render with the source location of the failing element and, when
available, a YAML snippet of the element and of the namespace values
visible at the moment of failure.
"""

from os import linesep
from typing import TYPE_CHECKING, Any, TypedDict

from yaml import dump
from yaml.error import MarkedYAMLError

from pytest_branchwalk.values import MAPPINGS, SCALARS, SEQUENCES

if TYPE_CHECKING:
    from collections.abc import Sequence
    from typing import Self

if TYPE_CHECKING:
    from pydantic_core import ErrorDetails, ValidationError

if TYPE_CHECKING:
    from pytest_branchwalk.schema import Step
    from pytest_branchwalk.values import Namespace

#: Placeholder for values that cannot be rendered safely.
OPAQUE_VALUE = '<runtime object>'
#: Name shown for errors without a source file.
UNKNOWN_SOURCE = '<unicode string>'

LOCATION_INDENT = 4
SNIPPET_INDENT = 8
YAML_INDENT = 2


class ErrorContext(TypedDict, total=False):
    """Location and data attached to an error.

    Line and column numbers are 1-based.
    """

    filename: str | None
    line_num: int | None
    column_num: int | None

    #: Text of the failing step.
    step_text: str | None

    #: Underlying parser or validation error.
    error: Exception | None

    #: Namespace values visible at the moment of failure.
    context: dict[str, Any] | None
    #: Document fragment responsible for the error.
    element: Any


def _sanitize(value: Any) -> Any:  # noqa: ANN401
    """Replace values PyYAML cannot safely dump with a placeholder."""
    if value is None or isinstance(value, SCALARS):
        return value

    if isinstance(value, MAPPINGS):
        return {f'{key}': _sanitize(item) for key, item in value.items()}

    if isinstance(value, SEQUENCES):
        return [_sanitize(item) for item in value]

    return OPAQUE_VALUE


def _shift(text: str, indent: int) -> str:
    """Indent every non-blank line of a text."""
    prefix = ' ' * indent
    lines = [f'{prefix}{line}' for line in text.splitlines() if line.strip()]

    return linesep.join(lines) + linesep if lines else ''


class ErrorFormatter:
    """Render error messages with a location and a YAML snippet.

    A rendered error looks like:

        The variable {user} is never set, but is needed for this step
            in "test_login.tree.yaml", line 12
            on step 'Log in as {user}'
                ...
                context:
                  password: secret
    """

    @classmethod
    def format(cls, message: str, context: ErrorContext | None = None) -> str:
        """Render a message with its context.

        Args:
            message: Human-readable error description.
            context: Optional location and data of the error.

        Returns:
            The message alone without context, otherwise the message
            followed by the location and snippet lines.
        """
        if not context:
            return message

        return f'{message}{linesep}{cls.location(context)}{cls.snippet(context)}'

    @staticmethod
    def location(context: ErrorContext) -> str:
        """Render the source location lines of an error."""
        prefix = ' ' * LOCATION_INDENT

        where = f'{prefix}in "{context.get('filename') or UNKNOWN_SOURCE}"'
        if (line_num := context.get('line_num')) is not None:
            where += f', line {line_num}'
            if (column_num := context.get('column_num')) is not None:
                where += f', column {column_num}'

        lines = [where]
        if step_text := context.get('step_text'):
            lines.append(f'{prefix}on step {step_text!r}')

        return linesep.join(lines) + linesep

    @staticmethod
    def snippet(context: ErrorContext) -> str:
        """Render the snippet lines of an error, if any.

        YAML errors show the source excerpt marked by the parser. Other
        errors show the namespace values and the failing element.
        """
        error = context.get('error')
        if isinstance(error, MarkedYAMLError):
            if error.problem_mark is None:
                return ''
            return _shift(error.problem_mark.get_snippet(indent=0) or '', SNIPPET_INDENT)

        values = context.get('context')
        element = context.get('element')

        parts = []
        if values:
            parts.append({'context': values})
        if element is not None:
            parts.append(element)

        if not parts:
            return ''

        documents = [
            dump(_sanitize(part), indent=YAML_INDENT, sort_keys=False)
            for part in parts
        ]

        return _shift(f'...{linesep}' + f'---{linesep}'.join(documents), SNIPPET_INDENT)


class TreeWarning(UserWarning):
    """Warning emitted for non-fatal tree document issues."""


class DSLError(Exception, ErrorFormatter):
    """Base exception for all pytest-branchwalk errors."""

    def __init__(self, message: str, *,
                 context: ErrorContext | None = None) -> None:
        """Initialize an error.

        Args:
            message: Human-readable error description.
            context: Optional location and data of the error.
        """
        self.message = message
        self.context = context

        super().__init__(message)

    def __str__(self) -> str:
        """Render the message with its location."""
        return self.format(self.message, self.context)

    @property
    def filename(self) -> str | None:
        """Source filename the error is tagged with."""
        return (self.context or {}).get('filename')

    @property
    def line_number(self) -> int | None:
        """Source line the error is tagged with."""
        return (self.context or {}).get('line_num')


class DSLSchemaError(DSLError):
    """Tree document is not valid YAML or does not match the tree models."""

    @classmethod
    def from_yaml_error(cls, error: MarkedYAMLError) -> 'Self':
        """Convert a PyYAML parsing failure.

        Args:
            error: Exception raised by the YAML parser.

        Returns:
            Schema error located at the parser problem mark.
        """
        context = ErrorContext(error=error)
        if (mark := error.problem_mark) is not None:
            context.update(
                filename=mark.name,
                line_num=mark.line + 1,
                column_num=mark.column + 1,
            )

        message = 'Invalid YAML'
        if error.problem:
            message += f': {error.problem}'

        return cls(message, context=context)

    @classmethod
    def from_pydantic_error(cls, error: 'ValidationError', *,
                            data: Any = None,  # noqa: ANN401
                            filename: str | None = None) -> 'Self':
        """Convert a Pydantic validation failure.

        The first issue whose location exists in the document data gives
        the message, and the failing key with its value becomes the
        snippet.

        Args:
            error: ValidationError raised by Pydantic.
            data: Validated document data.
            filename: Name of the source file.

        Returns:
            Schema error describing the first located issue.
        """
        context = ErrorContext(filename=filename, error=error)

        if isinstance(data, dict):
            for details in error.errors(include_url=False, include_input=False):
                if located := cls._locate(data, details):
                    message, element = located
                    return cls(message, context=ErrorContext(**context, element=element))

        return cls('Tree document validation error', context=context)

    @staticmethod
    def _locate(data: Any, details: 'ErrorDetails') -> tuple[str, Any] | None:  # noqa: ANN401
        """Find the deepest existing element on a validation error path.

        Returns:
            The first line of the error message and the failing element
            wrapped in its parent container, or `None` when the path does
            not lead anywhere in the data.
        """
        path: Sequence[int | str] = details['loc']
        parent: Any = None
        key: int | str | None = None
        node = data

        for step in path:
            if isinstance(node, dict) and step in node:
                parent, key, node = node, step, node[step]
            elif isinstance(node, list) and isinstance(step, int) and 0 <= step < len(node):
                parent, key, node = node, step, node[step]
            elif not isinstance(node, (dict, list)):
                return None

        lines = [line.strip() for line in (details.get('msg') or '').splitlines()]
        message = next((line for line in lines if line), None)
        if parent is None or message is None:
            return None

        if isinstance(parent, list):
            return message, [node]

        return message, {key: node}


class DSLRuntimeError(DSLError):
    """Failure of a single step while running a tree.

    Attributes:
        fail_branch_now: Whether the failure also stops the rest of the
            branch.
    """

    fail_branch_now: bool = False

    @classmethod
    def from_step(cls, message: str, step: 'Step', *,
                  context: 'Namespace | None' = None) -> 'Self':
        """Create an error located at a step.

        Args:
            message: Human-readable error description.
            step: Step the error is attributed to.
            context: Optional namespace values at the moment of failure.

        Returns:
            Runtime error tagged with the step filename, line and text.
        """
        return cls(message, context=ErrorContext(
            filename=step.filename,
            line_num=step.line_number,
            step_text=step.text,
            context=context,
        ))

    @classmethod
    def from_exception(cls, error: Exception, step: 'Step') -> 'Self':
        """Wrap an exception raised while executing a step.

        Runtime errors already tagged with a location are returned as-is.
        Other runtime errors keep their message and flag; foreign
        exceptions are described by their representation.

        Args:
            error: Exception raised during execution.
            step: Step being executed.

        Returns:
            Runtime error located at the step, chained to the original.
        """
        if isinstance(error, DSLRuntimeError):
            if error.filename is not None or error.line_number is not None:
                return error  # type: ignore[return-value]
            wrapped = cls.from_step(error.message, step)
            wrapped.fail_branch_now = error.fail_branch_now
        else:
            wrapped = cls.from_step(f'{error!r}', step)

        wrapped.__cause__ = error

        return wrapped
