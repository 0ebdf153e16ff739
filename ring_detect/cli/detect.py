"""Detect command for ring-detect CLI."""

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

from ring_detect import RingDetection
from ring_detect.constants import SUPPORTED_IMAGE_EXTS
from ring_detect.core.errors import RingDetectError
from ring_detect.core.types import Config, LatLng

# Load environment variables
load_dotenv()

console = Console()


def _parse_pair(value: str, option: str) -> Tuple[float, float]:
    try:
        first, second = (float(part) for part in value.split(","))
    except ValueError:
        raise typer.BadParameter(f"expected two comma-separated numbers, got '{value}'", param_hint=option)
    return first, second


def _parse_settings(items: List[str]) -> dict:
    """KEY=VALUE overrides; values are parsed as JSON when possible."""
    settings = {}
    for item in items:
        if "=" not in item:
            raise typer.BadParameter(f"expected KEY=VALUE, got '{item}'", param_hint="--set")
        key, raw = item.split("=", 1)
        try:
            settings[key.strip()] = json.loads(raw)
        except json.JSONDecodeError:
            settings[key.strip()] = raw
    return settings


def detect_command(
    image_path: Path = typer.Argument(
        ...,
        help="Path to the core image",
        exists=True,
        dir_okay=False,
    ),
    start: str = typer.Option(
        ...,
        "--start",
        help="First anchor as LAT,LNG (or X,Y with --pixels)",
    ),
    end: str = typer.Option(
        ...,
        "--end",
        help="Second anchor as LAT,LNG (or X,Y with --pixels)",
    ),
    pixels: bool = typer.Option(
        False,
        "--pixels",
        help="Interpret anchors as full-resolution image pixel X,Y",
    ),
    algorithm: str = typer.Option(
        "classification",
        "--algorithm",
        "-a",
        help="Boundary detection algorithm: classification (pc), derivative (ed) or threshold",
    ),
    band_height: int = typer.Option(
        50,
        "--band-height",
        "-b",
        help="Band height in pixels at the sampling zoom",
    ),
    zoom: Optional[int] = typer.Option(
        None,
        "--zoom",
        "-z",
        help="Sampling zoom (default: native resolution)",
    ),
    preset: Optional[str] = typer.Option(
        None,
        "--preset",
        "-p",
        help="Image-adjustment preset: default, detection or griffin",
    ),
    color_channel: str = typer.Option(
        "intensity",
        "--channel",
        help="Channel reduced from RGB before detection: intensity, r, g or b",
    ),
    blur_radius: int = typer.Option(
        3,
        "--blur-radius",
        help="Median blur radius (0 disables)",
    ),
    min_gap: int = typer.Option(
        10,
        "--min-gap",
        help="Minimum distance between boundaries (columns)",
    ),
    sub_annual: bool = typer.Option(
        False,
        "--sub-annual",
        help="Report earlywood/latewood transitions, not only annual ones",
    ),
    direction: str = typer.Option(
        "forward",
        "--direction",
        "-d",
        help="Measurement direction; backward reverses the point order",
    ),
    device: str = typer.Option(
        "auto",
        "--device",
        help="Torch device for the convolution pipeline: auto, cpu, cuda or mps",
    ),
    settings: List[str] = typer.Option(
        [],
        "--set",
        "-s",
        help="Algorithm setting override KEY=VALUE (repeatable)",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Print results as JSON",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress detailed processing output",
    ),
):
    """
    Detect ring boundaries along the line between two anchors.

    Examples:

        # Anchors in image pixels, derivative algorithm
        ring-detect detect core.png --start 120,400 --end 3900,420 --pixels -a derivative

        # Map coordinates with the auto-detection preset
        ring-detect detect core.png --start -25,7.5 --end -26,240 --preset detection
    """
    if image_path.suffix.lower() not in SUPPORTED_IMAGE_EXTS:
        console.print(f"[red]❌ Unsupported image type: {image_path.suffix}[/red]")
        raise typer.Exit(code=1)
    if not quiet and not json_output:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    verbose = not quiet and not json_output
    config = Config(
        algorithm=algorithm,
        band_height=band_height,
        zoom=zoom,
        color_channel=color_channel,
        blur_radius=blur_radius,
        min_gap=min_gap,
        sub_annual=sub_annual,
        direction=direction,
        device=device,
        verbose=verbose,
    )
    overrides = _parse_settings(settings)
    first, second = _parse_pair(start, "--start"), _parse_pair(end, "--end")

    try:
        detector = RingDetection.from_image(image_path, config)
        if preset:
            detector.apply_preset(preset)
        if pixels:
            anchor1 = detector.viewer.image_to_latlng(*first)
            anchor2 = detector.viewer.image_to_latlng(*second)
        else:
            anchor1, anchor2 = LatLng(*first), LatLng(*second)

        result = asyncio.run(detector.detect(anchor1, anchor2, settings=overrides or None))
    except (RingDetectError, ValueError, OSError) as e:
        console.print(f"[red]❌ Error: {e}[/red]")
        raise typer.Exit(code=1)

    if json_output:
        payload = {
            "image": str(image_path),
            "algorithm": result.algorithm,
            "zoom": result.zoom,
            "boundaries": result.boundaries,
            "coordinates": [[ll.lat, ll.lng] for ll in result.coordinates],
            "stats": {k: list(v) if isinstance(v, tuple) else v for k, v in result.processing_stats.items()},
        }
        print(json.dumps(payload, indent=2))
        return

    console.print(f"[dim]{detector.summary()}[/dim]")
    table = Table(title=f"Ring boundaries: {image_path.name}")
    table.add_column("#", justify="right")
    table.add_column("Offset (px)", justify="right", style="cyan")
    table.add_column("Lat", justify="right")
    table.add_column("Lng", justify="right")
    offsets = result.boundaries[::-1] if direction == "backward" else result.boundaries
    for index, (offset, latlng) in enumerate(zip(offsets, result.coordinates), start=1):
        table.add_row(str(index), str(offset), f"{latlng.lat:.4f}", f"{latlng.lng:.4f}")
    console.print(table)

    stats = result.processing_stats
    console.print(
        f"[dim]⏱️  sample={stats.get('time_sample_s')}s, detect={stats.get('time_detect_s')}s, "
        f"band={stats.get('buffer_shape')}, sub-areas={stats.get('sub_areas')}[/dim]"
    )
