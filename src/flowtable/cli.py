from __future__ import annotations

import click

from flowtable._log import setup_logging
from flowtable.ddl import split_statements
from flowtable.environment import EnvironmentSettings, TableEnvironment
from flowtable.errors import FlowTableError
from flowtable.word_count import word_count


@click.group()
@click.option(
    '--loglevel',
    default='warning',
    show_default=True,
    type=click.Choice(['debug', 'info', 'warning', 'error'], case_sensitive=False),
    help='Log level for messages written to stderr',
)
@click.option(
    '--parallelism',
    type=click.IntRange(min=1),
    default=None,
    help='Max query plans executing at the same time',
)
@click.pass_context
def cli(ctx: click.Context, loglevel: str, parallelism: int | None) -> None:
    '''Run table api jobs over local files.'''
    setup_logging(loglevel)

    try:
        settings = EnvironmentSettings.from_env()

    except ValueError as e:
        raise click.UsageError(str(e)) from e

    if parallelism:
        settings = EnvironmentSettings.from_other(settings, parallelism=parallelism)

    ctx.obj = settings


@cli.command()
@click.argument('script', type=click.File('r'))
@click.pass_obj
def sql(settings: EnvironmentSettings, script) -> None:
    '''Execute a `;` separated SQL script (`-` reads stdin).'''
    env = TableEnvironment.create(settings)
    try:
        for statement in split_statements(script.read()):
            result = env.execute_sql(statement)
            click.echo(result.pretty_str())

    except FlowTableError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@click.argument('input_path', type=click.Path(exists=True, dir_okay=True))
@click.argument('output_path', type=click.Path())
@click.option('--overwrite', is_flag=True, help='Replace the output if present')
@click.pass_obj
def wordcount(
    settings: EnvironmentSettings,
    input_path: str,
    output_path: str,
    overwrite: bool
) -> None:
    '''Count words of INPUT_PATH (one per line) into OUTPUT_PATH.'''
    env = TableEnvironment.create(settings)
    try:
        result = word_count(input_path, output_path, overwrite=overwrite, env=env)

    except FlowTableError as e:
        raise click.ClickException(str(e)) from e

    rows = result.job_client.get_job_execution_result() if result.job_client else {}
    click.echo(
        f'wrote {sum(rows.values()):,} rows to {output_path}',
        err=True,
    )
