"""Main CLI entry point for ring-detect."""

import typer

from ring_detect.cli.detect import detect_command
from ring_detect.cli.kernels import kernels_command

app = typer.Typer(
    name="ring-detect",
    help="Tree-ring boundary detection on tiled core images",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main():
    """Sample measurement bands from core images and detect ring boundaries."""
    pass


# Register commands
app.command(name="detect", help="Detect ring boundaries between two anchors")(detect_command)
app.command(name="kernels", help="List the convolution kernel library")(kernels_command)


def cli_main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    cli_main()
