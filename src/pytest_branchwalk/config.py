"""Runtime settings for tree execution.

Settings are resolved from environment variables prefixed with
`BRANCHWALK_` and may be overridden explicitly by the pytest plugin
or the command-line tool.
"""

from pydantic import Field, PositiveFloat
from pydantic_settings import SettingsConfigDict

from pytest_branchwalk.models import SettingsModel
from pytest_branchwalk.names import VAR_REFERENCE_PATTERN

#: Backoff between two attempts to get a branch when the tree asks to wait.
DEFAULT_WAIT_INTERVAL = 1.0


class RunnerSettings(SettingsModel):
    """Settings shared by every run instance of a runner."""

    model_config = SettingsConfigDict(
        env_prefix='BRANCHWALK_',
        frozen=True,
        extra='ignore',
    )

    wait_interval: PositiveFloat = Field(
        default=DEFAULT_WAIT_INTERVAL,
        title='Wait interval',
        description=(
            'Seconds to sleep before asking the tree for a branch again '
            'after it answered that no branch is currently available.'
        ),
    )

    code_timeout: PositiveFloat | None = Field(
        default=None,
        title='Code fragment timeout',
        description=(
            'Seconds a code fragment may run before its step fails. '
            'The fragment is abandoned, not interrupted. '
            'No limit is applied when unset.'
        ),
    )

    unsafe_builtins: bool = Field(
        default=False,
        title='Unsafe builtins',
        description=(
            'Expose the full Python builtins (including imports) to '
            'code fragments instead of the restricted table. '
            'Only use with trusted trees.'
        ),
    )

    var_pattern: str = Field(
        default=VAR_REFERENCE_PATTERN,
        title='Variable reference pattern',
        description=(
            'Regular expression matching `{name}` and `{{name}}` '
            'variable references in step values.'
        ),
    )
