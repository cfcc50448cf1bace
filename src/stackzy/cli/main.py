"""Root CLI application for stackzy."""

import typer

from stackzy import __version__
from stackzy.cli import analyze

app = typer.Typer(
    name="stackzy",
    help="Find out which libraries an Android app is built with.",
    no_args_is_help=True,
)

# Register subcommands
app.add_typer(analyze.app, name="analyze", help="Analyze an app's libraries")


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"stackzy {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """stackzy - Android library detection pipeline."""
    pass


if __name__ == "__main__":
    app()
