from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

import numpy as np

from ciq import file_utils
from ciq.errors import PaletteWriteError
from ciq.kmeans import (
    EPSILON,
    MAX_ITERS,
    Context,
    ConvergenceResult,
    converge,
    init_centroids,
)

DEFAULT_NUM_COLORS = 256


@dataclass
class QuantizeResult:
    image: np.ndarray          # (height, width, 3) uint8, every pixel a palette color
    palette: np.ndarray        # (K, 3) uint8, indexed like the centroids
    convergence: ConvergenceResult
    context: Context


def quantize_context(
    ctx: Context,
    rng: np.random.Generator,
    max_iters: int = MAX_ITERS,
    threshold: int = EPSILON,
    strategy: str = "recent",
    on_seeded: Optional[Callable[[np.ndarray], None]] = None,
    on_iteration: Optional[Callable[[int, bool], None]] = None,
) -> ConvergenceResult:
    """Seed the centroids of `ctx` and iterate until stable or out of iterations."""
    init_centroids(ctx, rng, strategy)
    if on_seeded is not None:
        on_seeded(ctx.centroids.copy())
    return converge(ctx, max_iters=max_iters, threshold=threshold, on_iteration=on_iteration)


def remap(ctx: Context) -> Tuple[np.ndarray, np.ndarray]:
    """
    Returns (image, palette) built from the same centroid array: every pixel
    takes the color of its assigned centroid, the palette lists the K
    centroid colors in index order.
    """
    if ctx.size and ctx.labels.min() < 0:
        raise ValueError("Samples must be assigned to clusters before remapping.")
    palette = ctx.centroids.astype(np.uint8)
    image = palette[ctx.labels].reshape(ctx.height, ctx.width, 3)
    return image, palette


def quantize_pixels(
    pixels: np.ndarray,
    num_colors: int = DEFAULT_NUM_COLORS,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    max_iters: int = MAX_ITERS,
    threshold: int = EPSILON,
    strategy: str = "recent",
    on_seeded: Optional[Callable[[np.ndarray], None]] = None,
    on_iteration: Optional[Callable[[int, bool], None]] = None,
) -> QuantizeResult:
    """
    Reduce an RGB image array to `num_colors` colors.

    Args:
        pixels (np.ndarray): (height, width, 3) RGB data with channels in [0, 255].
        num_colors (int): Number of clusters K, 0 < K <= width * height.
        seed (int, optional): Seed for a fresh generator. Ignored if `rng` is given.
        rng (np.random.Generator, optional): Generator used for seeding.
        max_iters (int): Maximum assign/update rounds.
        threshold (int): Squared centroid movement below which the clustering is stable.
        strategy (str): Seeding strategy, "recent" or "canonical".

    Raises:
        DegenerateInputError: num_colors is out of range for the image.
        AllocationError: working arrays could not be allocated.
    """
    pixels = np.asarray(pixels)
    if pixels.ndim != 3 or pixels.shape[2] != 3:
        raise ValueError(f"Expected an array of shape (height, width, 3), got {pixels.shape}.")
    height, width = pixels.shape[:2]

    if rng is None:
        rng = np.random.default_rng(seed)

    ctx = Context.create(width, height, pixels, num_colors)
    convergence = quantize_context(
        ctx, rng,
        max_iters=max_iters,
        threshold=threshold,
        strategy=strategy,
        on_seeded=on_seeded,
        on_iteration=on_iteration,
    )
    image, palette = remap(ctx)
    return QuantizeResult(image=image, palette=palette, convergence=convergence, context=ctx)


def quantize_image(
    input_path: Union[str, Path],
    num_colors: int = DEFAULT_NUM_COLORS,
    any_format: bool = False,
    **kwargs,
) -> QuantizeResult:
    """
    Load `input_path` and quantize it. Keyword arguments are passed on to
    `quantize_pixels`. Nothing is written; see `save_outputs`.

    Raises:
        FormatError: the input is not a supported raster.
        OSError: the input could not be read.
    """
    _, _, pixels = file_utils.read_image(input_path, any_format=any_format)
    return quantize_pixels(pixels, num_colors=num_colors, **kwargs)


def save_outputs(
    result: QuantizeResult,
    output_path: Union[str, Path],
    palette_path: Optional[Union[str, Path]] = None,
) -> Path:
    """
    Write the remapped image, then the palette. Returns the palette path.

    The image is written first and is not removed if the palette write fails;
    that failure is raised as PaletteWriteError carrying both paths.
    """
    output_path = Path(output_path)
    palette_path = Path(palette_path) if palette_path else file_utils.default_palette_path(output_path)

    file_utils.write_ppm(output_path, result.image)
    try:
        file_utils.write_palette(palette_path, result.palette)
    except OSError as e:
        raise PaletteWriteError(
            f"Could not write palette to {palette_path}: {e}",
            image_path=output_path,
            palette_path=palette_path,
        ) from e
    return palette_path
