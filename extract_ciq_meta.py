#!/usr/bin/env python3
import sys
from pathlib import Path
from PIL import Image

from ciq.errors import FormatError
from ciq.file_utils import PNG_METADATA_PREFIX, read_palette


def extract_png_metadata(filepath: Path):
    """
    Prints the ciqgen metadata embedded in a palette legend PNG.
    """
    print(f"--- ciqgen Metadata for PNG: {filepath.name} ---")
    with Image.open(filepath) as img:
        found_metadata = False
        for key, value in img.info.items():
            if isinstance(key, str) and key.startswith(PNG_METADATA_PREFIX):
                print(f"  {key[len(PNG_METADATA_PREFIX):]}: {value}")
                found_metadata = True
        if not found_metadata:
            print("  No ciqgen-specific metadata found.")
    print("-" * (30 + len(filepath.name)))


def dump_palette(filepath: Path):
    """
    Prints every entry of a .pal palette file as index, hex and RGB.
    """
    palette = read_palette(filepath)
    print(f"--- Palette {filepath.name}: {len(palette)} colors ---")
    for idx, (r, g, b) in enumerate(palette.tolist()):
        print(f"  {idx:3d}: #{r:02x}{g:02x}{b:02x} ({r}, {g}, {b})")
    print("-" * (30 + len(filepath.name)))


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if len(argv) < 1:
        print("Usage: python extract_ciq_meta.py <legend.png_or_palette.pal>")
        return 1

    filepath = Path(argv[0])
    if not filepath.is_file():
        print(f"Error: File not found: {filepath}")
        return 1

    file_extension = filepath.suffix.lower()
    try:
        if file_extension == ".png":
            extract_png_metadata(filepath)
        elif file_extension == ".pal":
            dump_palette(filepath)
        else:
            print(f"Error: Unsupported file type '{file_extension}'. Please provide a .png or .pal file.")
            return 1
    except (OSError, FormatError) as e:
        print(f"Error processing {filepath}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
