"""Command-line utilities for pytest-branchwalk.

Trees can be run outside pytest, and the JSON Schema of the tree
document model can be printed or wired into VSCode YAML validation.
"""

import logging
from json import dumps
from pathlib import Path
from typing import TYPE_CHECKING

from click import Choice, ClickException, Context, FloatRange, IntRange, argument, echo, group, option, pass_context
from click import Path as PathParam
from yaml import safe_load

from pytest_branchwalk.config import RunnerSettings
from pytest_branchwalk.errors import DSLSchemaError
from pytest_branchwalk.runner import Runner
from pytest_branchwalk.schema import TreeDocument, load_document
from pytest_branchwalk.tree import FREQUENCIES

if TYPE_CHECKING:
    from typing import Any

if TYPE_CHECKING:
    from pytest_branchwalk.schema import Branch


SCHEMAS_OPTION = 'yaml.schemas'
DEFAULT_SCHEMA_PATH = '.vscode/branchwalk.schema.json'
DEFAULT_SETTINGS_PATH = '.vscode/settings.json'

#: File patterns collected by the pytest plugin.
TREE_GLOBS = ('test_*.tree.yaml', 'test_*.tree.yml')

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'

#: Exit code of a run with failed branches.
EXIT_FAILED = 1
#: Exit code of a run stopped by a pause.
EXIT_PAUSED = 2

InputFilepath = PathParam(
    exists=True,
    dir_okay=False,
    readable=True,
    path_type=Path,
)

OutputFilepath = PathParam(
    dir_okay=False,
    readable=True,
    writable=True,
    path_type=Path,
)


def make_schema() -> str:
    """Generate the JSON Schema of the tree document model."""
    return dumps(
        TreeDocument.model_json_schema(by_alias=True),
        ensure_ascii=False,
        indent=2,
    )


@group(help='Command-line utilities for pytest-branchwalk.')
def cli() -> None:
    """Root CLI group for pytest-branchwalk tools."""
    return None


@cli.command(
    name='schema',
    help='Print the tree document JSON Schema to standard output.',
)
def print_schema() -> None:
    """Generate and print the JSON Schema."""
    echo(make_schema())


def _write_json(path: Path, content: 'Any') -> None:
    """Write a JSON file, creating missing parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f'{dumps(content, ensure_ascii=False, indent=4)}\n', encoding='utf-8')


@cli.command(
    name='vscode-configure',
    help=(
        'Write the tree document JSON Schema and register it in VSCode '
        'YAML settings for tree document files.'
    ),
)
@option(
    '-s', '--schema', 'schema_path',
    type=OutputFilepath,
    default=DEFAULT_SCHEMA_PATH,
    show_default=True,
    help='Where to write the JSON Schema.',
)
@argument('settings_path', type=OutputFilepath, default=DEFAULT_SETTINGS_PATH)
def configure_vscode(schema_path: Path, settings_path: Path) -> None:
    """Register the tree document schema in VSCode YAML settings.

    Existing settings are kept, only the schema mapping is updated.
    """
    _write_json(schema_path, TreeDocument.model_json_schema(by_alias=True))

    settings = {}
    if settings_path.exists():
        settings = safe_load(settings_path.read_text(encoding='utf-8')) or {}

    schemas = settings.get(SCHEMAS_OPTION)
    if not isinstance(schemas, dict):
        schemas = {}

    schemas[schema_path.as_posix()] = list(TREE_GLOBS)
    settings[SCHEMAS_OPTION] = schemas

    _write_json(settings_path, settings)


def _branch_status(branch: 'Branch', paused: 'list[Branch]') -> str:
    """Describe the state of a branch after a run."""
    if any(branch is item for item in paused):
        return 'PAUSED'

    if branch.is_passed is None:
        return 'SKIPPED'

    return 'PASSED' if branch.is_passed else 'FAILED'


@cli.command(
    name='run',
    help='Run a tree document and print a summary of its branches.',
)
@option(
    '-n', '--instances',
    type=IntRange(min=1),
    default=1,
    show_default=True,
    help='Number of concurrent run instances.',
)
@option(
    '--pause-on-fail',
    is_flag=True,
    help='Stop after the first step that fails or behaves unexpectedly.',
)
@option(
    '--code-timeout',
    type=FloatRange(min=0, min_open=True),
    default=None,
    help='Fail a step whose code fragment runs longer than this, in seconds.',
)
@option(
    '--unsafe-builtins',
    is_flag=True,
    help='Expose the full Python builtins to code fragments.',
)
@option(
    '--frequency',
    type=Choice(FREQUENCIES),
    default=None,
    help='Only run branches tagged with this frequency or a more frequent one.',
)
@option(
    '-v', '--verbose',
    count=True,
    help='Increase logging verbosity.',
)
@argument('file', type=InputFilepath)
@pass_context
def run_tree(ctx: Context, file: Path, **options: 'Any') -> None:
    """Run a tree document.

    Exits with status 1 when a branch failed and 2 when the run paused.

    Args:
        ctx: Click context.
        file: Path to the tree document.
        **options: Command options.
    """
    verbose = options['verbose']
    logging.basicConfig(
        format=LOG_FORMAT,
        level=logging.DEBUG if verbose > 1 else logging.INFO if verbose else logging.WARNING,
    )

    overrides: dict[str, Any] = {}
    if options['unsafe_builtins']:
        overrides['unsafe_builtins'] = True
    if options['code_timeout'] is not None:
        overrides['code_timeout'] = options['code_timeout']

    try:
        with file.open('rt', encoding='utf-8') as content:
            document = load_document(content, filename=f'{file}')
    except DSLSchemaError as error:
        raise ClickException(f'{error}') from error

    runner = Runner.from_document(
        document,
        frequency=options['frequency'],
        settings=RunnerSettings(**overrides),
        pause_on_fail=options['pause_on_fail'],
    )
    completed = runner.run(options['instances'])

    paused = [
        instance.current_branch
        for instance in runner.paused_instances
        if instance.current_branch is not None
    ]

    failed = 0
    stages = (
        ('before_everything', document.before_everything),
        ('branch', document.branches),
        ('after_everything', document.after_everything),
    )
    for name, branches in stages:
        for num, branch in enumerate(branches):
            status = _branch_status(branch, paused)
            echo(f'{name}[{num}] {status}')
            if status == 'FAILED':
                failed += 1
                if branch.error is not None:
                    echo(f'{branch.error}')

    if not completed:
        echo('Run paused')
        ctx.exit(EXIT_PAUSED)

    if failed:
        echo(f'{failed} branch(es) failed')
        ctx.exit(EXIT_FAILED)

    echo('All branches passed')


if __name__ == '__main__':
    cli()
