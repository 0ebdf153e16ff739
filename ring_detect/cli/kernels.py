"""Kernels command: show the convolution kernel library."""

from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ring_detect.filters.kernels import KERNELS, kernel, weight

console = Console()


def kernels_command(
    name: Optional[str] = typer.Argument(
        None,
        help="Show the matrix of a single kernel",
    ),
):
    """
    List every kernel with its normalization weight, or print one matrix.

    Examples:

        ring-detect kernels

        ring-detect kernels emboss
    """
    if name is not None:
        try:
            matrix = kernel(name)
        except KeyError as e:
            console.print(f"[red]❌ {e.args[0]}[/red]")
            raise typer.Exit(code=1)
        table = Table(title=f"{name} (weight {weight(matrix):g})", show_header=False)
        for _ in range(3):
            table.add_column(justify="right")
        for row in matrix:
            table.add_row(*[f"{v:g}" for v in row])
        console.print(table)
        return

    table = Table(title="Kernel library")
    table.add_column("Kernel", style="cyan")
    table.add_column("Sum", justify="right")
    table.add_column("Weight", justify="right")
    for kernel_name, matrix in KERNELS.items():
        table.add_row(kernel_name, f"{float(matrix.sum()):g}", f"{weight(matrix):g}")
    console.print(table)
