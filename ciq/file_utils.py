import re
from pathlib import Path
from typing import Dict, Optional, Tuple, Union

import numpy as np
from PIL import Image, PngImagePlugin, UnidentifiedImageError

from ciq.errors import FormatError

PathLike = Union[str, Path]

PPM_MAGIC = b"P6"
PPM_MAXVAL = 255
PALETTE_FILENAME = "palette.pal"
PNG_METADATA_PREFIX = "ciqgen:"

_PPM_WHITESPACE = frozenset(b" \t\n\r\v\f")


def _parse_ppm_header(data: bytes) -> Tuple[list, int]:
    """
    Returns the four header tokens (magic, width, height, maxval) and the
    offset of the first raster byte. Comments ('#' to end of line) are skipped.
    """
    tokens = []
    pos = 0
    while len(tokens) < 4:
        if pos >= len(data):
            raise FormatError("Truncated PPM header.")
        byte = data[pos]
        if byte in _PPM_WHITESPACE:
            pos += 1
        elif byte == ord("#"):
            end = data.find(b"\n", pos)
            if end == -1:
                raise FormatError("Truncated PPM header (unterminated comment).")
            pos = end + 1
        else:
            start = pos
            while pos < len(data) and data[pos] not in _PPM_WHITESPACE and data[pos] != ord("#"):
                pos += 1
            tokens.append(data[start:pos])

    # Exactly one whitespace byte separates maxval from the raster.
    if pos >= len(data) or data[pos] not in _PPM_WHITESPACE:
        raise FormatError("Malformed PPM header: missing separator before pixel data.")
    return tokens, pos + 1


def read_ppm(path: PathLike) -> Tuple[int, int, np.ndarray]:
    """
    Decode a binary PPM (P6) image with 8-bit channels.

    Returns:
        (width, height, pixels) where pixels is a (height, width, 3) uint8
        array in row-major scan order.
    """
    data = Path(path).read_bytes()
    tokens, offset = _parse_ppm_header(data)

    magic, width_tok, height_tok, maxval_tok = tokens
    if magic != PPM_MAGIC:
        raise FormatError(f"Unsupported raster format {magic!r} in {path}: expected binary PPM (P6).")
    try:
        width, height, maxval = int(width_tok), int(height_tok), int(maxval_tok)
    except ValueError as e:
        raise FormatError(f"Malformed PPM header in {path}: {e}") from e
    if maxval != PPM_MAXVAL:
        raise FormatError(f"Unsupported PPM maxval {maxval} in {path}: only 8-bit channels (255) are supported.")
    if width <= 0 or height <= 0:
        raise FormatError(f"Invalid PPM dimensions {width}x{height} in {path}.")

    expected = width * height * 3
    if len(data) - offset < expected:
        raise FormatError(f"Truncated PPM pixel data in {path}: expected {expected} bytes, got {len(data) - offset}.")

    pixels = np.frombuffer(data, dtype=np.uint8, count=expected, offset=offset).reshape(height, width, 3)
    return width, height, pixels


def read_image(path: PathLike, any_format: bool = False) -> Tuple[int, int, np.ndarray]:
    """
    Decode an input image. Only binary PPM is accepted unless `any_format` is
    set, in which case anything Pillow can open is converted to RGB.
    """
    if not any_format:
        return read_ppm(path)
    try:
        with Image.open(path) as img:
            rgb = img.convert("RGB")
    except UnidentifiedImageError as e:
        raise FormatError(f"Unrecognized image format: {path}") from e
    pixels = np.array(rgb, dtype=np.uint8)
    height, width = pixels.shape[:2]
    return width, height, pixels


def write_ppm(path: PathLike, pixels: np.ndarray) -> None:
    """Write a (height, width, 3) RGB array as a binary PPM (P6)."""
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    image = Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8))
    image.save(output_path, "PPM")


def write_palette(path: PathLike, palette: np.ndarray) -> None:
    """Write palette colors as raw bytes, three per entry, no header."""
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(np.asarray(palette, dtype=np.uint8).reshape(-1, 3).tobytes())


def read_palette(path: PathLike) -> np.ndarray:
    data = Path(path).read_bytes()
    if len(data) % 3:
        raise FormatError(f"Palette file {path} has {len(data)} bytes, not a multiple of 3.")
    return np.frombuffer(data, dtype=np.uint8).reshape(-1, 3).copy()


def default_palette_path(output_path: PathLike) -> Path:
    return Path(output_path).parent / PALETTE_FILENAME


def save_legend_png(
    image_to_save: Image.Image,
    output_path: PathLike,
    command_line_invocation: Optional[str] = None,
    additional_metadata: Optional[Dict[str, str]] = None
) -> None:
    """
    Saves a PIL Image as PNG with ciqgen text metadata embedded.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    png_info = PngImagePlugin.PngInfo()
    png_info.add_text("Software", "ciqgen")
    if command_line_invocation:
        png_info.add_text(f"{PNG_METADATA_PREFIX}command_line", command_line_invocation)

    if additional_metadata:
        for key, value in additional_metadata.items():
            key_clean = re.sub(r'\s+', '_', key)
            key_clean = re.sub(r'[^a-zA-Z0-9_.-]', '', key_clean)
            if not re.match(r'^[a-zA-Z_]', key_clean):
                key_clean = "ciqgen_" + key_clean
            # tEXt keywords are limited to 79 bytes including the prefix
            key_clean = key_clean[:70]
            png_info.add_text(f"{PNG_METADATA_PREFIX}{key_clean}", str(value))

    image_to_save.save(output_path, "PNG", pnginfo=png_info)
