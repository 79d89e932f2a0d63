"""Variable names and reference patterns.

This module defines the identifier rules for variables declared by
steps, and the default pattern used to find variable references inside
step values and texts.

Two reference forms are recognized:
- `{name}` refers to the global namespace of the running branch;
- `{{name}}` refers to the top local frame of the running branch.
"""

from typing import TYPE_CHECKING, Annotated

from pydantic import Field

if TYPE_CHECKING:
    from re import Match

#: Base pattern for variable identifiers.
#: Identifiers are free text without braces, surrounding spaces are ignored.
_NAME_PATTERN = r'[^{}\r\n]+'

#: Default pattern for variable references, local form first.
VAR_REFERENCE_PATTERN = rf'\{{\{{{_NAME_PATTERN}\}}\}}|\{{{_NAME_PATTERN}\}}'


Variable = Annotated[
    str, Field(
        min_length=1,
        pattern=rf'^{_NAME_PATTERN}$',
        title='Variable identifier',
        description=(
            'Name of a variable declared or referenced by a step. '
            'Names must not contain braces or line breaks.'
        ),
        examples=[
            'username',
            'base url',
        ],
    ),
]


def parse_reference(match: 'Match[str]') -> tuple[str, bool]:
    """Split a matched reference into its name and locality.

    Args:
        match: A match produced by a variable reference pattern.

    Returns:
        Tuple of the stripped variable name and `True` if the reference
        uses the local `{{name}}` form.
    """
    text = match.group(0)
    is_local = text.startswith('{{')

    return text.strip('{}').strip(), is_local


def format_reference(name: str, is_local: bool) -> str:
    """Render a variable name in its reference form."""
    if is_local:
        return f'{{{{{name}}}}}'

    return f'{{{name}}}'
