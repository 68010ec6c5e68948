import sys
from pathlib import Path
from typing import List, Optional

import numpy as np
import rich.traceback
import typer

from ciq import file_utils, legend, quantize
from ciq.errors import PaletteWriteError, QuantizeError
from ciq.kmeans import EPSILON, MAX_ITERS, SEED_STRATEGIES


def validate_output_paths(paths: List[Path], overwrite: bool = False) -> None:
    if overwrite:
        return
    clobbered = [str(p) for p in paths if p.exists()]
    if clobbered:
        typer.secho("Error: Files already exist:", fg=typer.colors.RED)
        for path_str in clobbered:
            typer.secho(f"  {path_str}", fg=typer.colors.RED)
        typer.secho("Use --yes (-y) to overwrite.", fg=typer.colors.YELLOW)
        raise typer.Exit(code=1)


def ciq_cli(
    input_path: Path = typer.Argument(
        ...,
        help="Input image, a binary PPM (P6) with 8-bit channels.",
        metavar="INPUT_FILE",
        exists=True, file_okay=True, dir_okay=False, readable=True, resolve_path=True,
    ),
    output_path: Path = typer.Argument(
        ...,
        help="Output PPM file for the quantized image.",
        metavar="OUTPUT_FILE",
        file_okay=True, dir_okay=False, resolve_path=True,
    ),
    num_colors: int = typer.Argument(
        quantize.DEFAULT_NUM_COLORS,
        help="Number of palette colors (K).",
        metavar="[K]",
    ),
    palette_path: Optional[Path] = typer.Option(
        None, "--palette",
        help=f"Palette output file (3 bytes per color). Default: {file_utils.PALETTE_FILENAME} next to OUTPUT_FILE.",
        file_okay=True, dir_okay=False, resolve_path=True,
    ),
    legend_path: Optional[Path] = typer.Option(
        None, "--legend",
        help="Also write a PNG legend of the palette swatches to this path.",
        file_okay=True, dir_okay=False, resolve_path=True,
    ),
    swatch_size: int = typer.Option(32, "--swatch-size", min=8, help="Legend swatch size. Default: 32px."),
    seed: Optional[int] = typer.Option(
        None, "--seed", min=0, help="Seed for centroid initialization. Default: fresh entropy per run."
    ),
    init_strategy: str = typer.Option(
        "recent", "--init-strategy",
        help="Seeding weights: 'recent' (distance to last chosen centroid) or 'canonical' (k-means++)."
    ),
    max_iters: int = typer.Option(MAX_ITERS, "--max-iters", min=1, help=f"Maximum iterations. Default: {MAX_ITERS}."),
    threshold: int = typer.Option(
        EPSILON, "--threshold", min=0,
        help=f"Squared centroid movement considered stable. Default: {EPSILON}."
    ),
    any_format: bool = typer.Option(
        False, "--any-format", help="Accept any image format Pillow can read, not just PPM."
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Overwrite existing files."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print image and centroid details."),
):
    """
    Reduces an image to K colors with k-means++ clustering and writes the
    remapped image plus its palette.
    """
    command_line_str = " ".join(sys.argv)

    typer.echo("Color Image Quantization using K-Means++")
    if init_strategy not in SEED_STRATEGIES:
        typer.secho(f"Error: --init-strategy must be one of: {', '.join(SEED_STRATEGIES)}.", fg=typer.colors.RED)
        raise typer.Exit(code=2)

    # The default palette.pal is shared by every run into a directory and is always replaced.
    expected_outputs = [output_path]
    if palette_path is None:
        palette_path = file_utils.default_palette_path(output_path)
    else:
        expected_outputs.append(palette_path)
    if legend_path:
        expected_outputs.append(legend_path)
    validate_output_paths(expected_outputs, overwrite=yes)

    typer.echo(f"Quantizing image {input_path} with K={num_colors}")

    def report_seeded(centroids: np.ndarray) -> None:
        if not verbose:
            return
        for idx, (r, g, b) in enumerate(centroids):
            typer.echo(f"- Centroid {idx:3d}: ({r}, {g}, {b})")

    def report_iteration(iteration: int, changed: bool) -> None:
        typer.echo(f"Iteration: {iteration}")
        if verbose and not changed:
            typer.echo("- Clusters stable.")

    try:
        width, height, pixels = file_utils.read_image(input_path, any_format=any_format)
        if verbose:
            typer.echo(f"- Image size: {width}x{height}")
            typer.echo(f"- Number of data points: {width * height}")
            typer.echo(f"- Number of clusters: {num_colors}")
        result = quantize.quantize_pixels(
            pixels,
            num_colors=num_colors,
            seed=seed,
            max_iters=max_iters,
            threshold=threshold,
            strategy=init_strategy,
            on_seeded=report_seeded,
            on_iteration=report_iteration,
        )
    except (QuantizeError, OSError) as e:
        typer.secho(f"Error: Failed to quantize {input_path}: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    if result.convergence.converged:
        typer.echo(f"Clusters stable after {result.convergence.iterations} iteration(s).")
    else:
        typer.secho(
            f"Note: Iteration limit ({max_iters}) reached before clusters were stable; using current centroids.",
            fg=typer.colors.YELLOW,
        )

    try:
        quantize.save_outputs(result, output_path, palette_path)
    except PaletteWriteError as e:
        typer.secho(f"Quantized image saved to: {e.image_path}", fg=typer.colors.YELLOW)
        typer.secho(f"Error: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except OSError as e:
        typer.secho(f"Error writing quantized image to {output_path}: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Quantized image saved to: {output_path}")
    typer.echo(f"Palette ({len(result.palette)} colors) saved to: {palette_path}")

    if legend_path:
        legend_image = legend.create_legend_image(result.palette, swatch_size=swatch_size)
        try:
            file_utils.save_legend_png(
                legend_image,
                legend_path,
                command_line_invocation=command_line_str,
                additional_metadata={
                    "FileType": "Palette Legend",
                    "PaletteFile": palette_path.name,
                    "PaletteColors": str(len(result.palette)),
                    "Iterations": str(result.convergence.iterations),
                    "Convergence": result.convergence.state.value,
                    "InitStrategy": init_strategy,
                    "Seed": "random" if seed is None else str(seed),
                },
            )
        except OSError as e:
            typer.secho(f"Error saving palette legend to {legend_path}: {e}", fg=typer.colors.RED)
            raise typer.Exit(code=1)
        typer.echo(f"Palette legend saved to: {legend_path}")

    typer.secho("\nProcessing complete!", fg=typer.colors.GREEN)


def main():
    typer.run(ciq_cli)


if __name__ == "__main__":
    rich.traceback.install(show_locals=False, suppress=[typer])
    main()
