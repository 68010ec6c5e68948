# tests/test_legend.py
import numpy as np
from PIL import Image
from ciq import legend


def test_create_legend_image_single_row(tmp_path):
    palette = [
        (255, 0, 0),
        (0, 255, 0),
        (0, 0, 255)
    ]

    legend_image = legend.create_legend_image(palette, font_size=12, swatch_size=20, padding=5)

    assert isinstance(legend_image, Image.Image)
    num_colors = len(palette)
    expected_width = (20 * num_colors) + (5 * (num_colors + 1))
    expected_height = 20 + (2 * 5)
    assert legend_image.size == (expected_width, expected_height)

    # Swatch corners (inside the outline, away from the centered label) carry the palette color
    for idx, color in enumerate(palette):
        x0 = 5 + idx * (20 + 5)
        assert legend_image.getpixel((x0 + 2, 5 + 2)) == color

    outpath = tmp_path / "legend_test_output.png"
    legend_image.save(outpath)
    assert outpath.exists()


def test_create_legend_image_wraps_rows():
    palette = [(i * 10, i * 10, i * 10) for i in range(20)]

    img = legend.create_legend_image(palette, swatch_size=16, padding=2, columns=8)

    assert img.size == (16 * 8 + 2 * 9, 16 * 3 + 2 * 4)
    # entry 19 lands in row 2, column 3
    x0 = 2 + 3 * (16 + 2)
    y0 = 2 + 2 * (16 + 2)
    assert img.getpixel((x0 + 2, y0 + 2)) == (190, 190, 190)


def test_create_legend_image_with_empty_palette():
    assert legend.create_legend_image([]) is None


def test_create_legend_image_handles_numpy_palette():
    palette = np.array([
        [255, 255, 0],
        [0, 255, 255]
    ], dtype=np.uint8)

    img = legend.create_legend_image(palette, font_size=10, swatch_size=15, padding=2)
    assert isinstance(img, Image.Image)
    assert img.size[1] == 15 + (2 * 2)
