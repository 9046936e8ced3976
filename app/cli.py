"""Console entry point: convert SQL text or folders, or start the API server."""

import sys
from typing import Annotated

import typer
import uvicorn

from app.config import config
from app.services.sql_conversion import ConversionOrchestrator, Severity, UnsupportedDialectError

cli = typer.Typer(help='Rewrite SQL between Oracle, MySQL and PostgreSQL.', no_args_is_help=True)

SourceOption = Annotated[str, typer.Option('--from', '-s', help='Source dialect (oracle, mysql, postgresql)')]
TargetOption = Annotated[str, typer.Option('--to', '-t', help='Target dialect (oracle, mysql, postgresql)')]
ValidateOption = Annotated[
    bool,
    typer.Option('--validate/--no-validate', help='Score the conversion and report residual syntax'),
]


def _orchestrator(source: str, target: str, validate: bool) -> ConversionOrchestrator:
    try:
        return ConversionOrchestrator(source, target, validate=validate)
    except UnsupportedDialectError as e:
        typer.echo(f'Error: {e}', err=True)
        raise typer.Exit(2)


@cli.command()
def convert(
    source: SourceOption,
    target: TargetOption,
    input_file: Annotated[
        typer.FileText | None,
        typer.Argument(help='SQL file to convert (defaults to stdin)'),
    ] = None,
    validate: ValidateOption = False,
    strict: Annotated[
        bool,
        typer.Option('--strict', help='Exit with status 1 when any ERROR finding is reported'),
    ] = False,
) -> None:
    """
    Convert SQL text and print the result.

    Findings go to stderr so the converted SQL can be piped on:

        echo "SELECT NVL(a, 0) FROM t WHERE ROWNUM <= 5" | sql-switch convert --from oracle --to postgresql
    """
    text = input_file.read() if input_file else sys.stdin.read()
    if not text.strip():
        typer.echo('Error: No input provided', err=True)
        raise typer.Exit(1)

    outcome = _orchestrator(source, target, validate).convert_sql(text)
    typer.echo(outcome.converted_sql)

    for warning in outcome.warnings:
        line = f'[{warning.severity.value}] {warning.kind.value}: {warning.message}'
        if warning.suggestion:
            line += f' ({warning.suggestion})'
        typer.echo(line, err=True)
    if outcome.quality_score is not None:
        typer.echo(f'Quality score: {outcome.quality_score:.2f}', err=True)

    if strict and any(w.severity is Severity.ERROR for w in outcome.warnings):
        raise typer.Exit(1)


@cli.command()
def convert_files(
    source: SourceOption,
    target: TargetOption,
    input_path: Annotated[str, typer.Argument(help='Folder or single .sql file')],
    output_dir: Annotated[
        str | None,
        typer.Option('--output-dir', '-o', help='Defaults to a timestamped folder under workspace/converted'),
    ] = None,
    validate: ValidateOption = False,
) -> None:
    """Convert every .sql file under INPUT_PATH into a mirrored output tree."""
    result = _orchestrator(source, target, validate).convert_directory(input_path, output_dir)
    typer.echo(result['message'])
    if result.get('output_directory'):
        typer.echo(f"Output: {result['output_directory']}")
    if result.get('manual_review_log'):
        typer.echo(f"Manual review: {result['manual_review_log']}")
    if result['status'] == 'error':
        raise typer.Exit(1)


@cli.command()
def serve(
    host: Annotated[str | None, typer.Option(help='Bind address (settings.yaml api.host)')] = None,
    port: Annotated[int | None, typer.Option(help='Port (settings.yaml api.port)')] = None,
    reload: Annotated[bool, typer.Option('--reload', help='Auto-reload on code changes (settings.yaml api.debug)')] = False,
) -> None:
    """Run the FastAPI service with uvicorn."""
    api_cfg = config.get('api', {})
    uvicorn.run(
        'app:app',
        host=host or api_cfg.get('host', '127.0.0.1'),
        port=port or api_cfg.get('port', 5001),
        reload=reload or api_cfg.get('debug', False),
    )


if __name__ == '__main__':
    cli()
