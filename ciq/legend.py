import math
import os

from PIL import Image, ImageDraw, ImageFont


def _label_fill(color):
    # Rec. 601 luma; dark swatches get a white label
    luma = 0.299 * color[0] + 0.587 * color[1] + 0.114 * color[2]
    return (0, 0, 0) if luma >= 128 else (255, 255, 255)


def create_legend_image(palette, font_path=None, font_size=12, swatch_size=32, padding=4, columns=16):
    """
    Creates a palette legend image: one numbered swatch per palette entry,
    laid out left to right in rows of at most `columns` swatches. The swatch
    number is the palette index, i.e. the entry's position in the .pal file.

    Args:
        palette (list or np.ndarray): RGB colors, one per entry.
        font_path (str, optional): Path to a TTF font file.
        font_size (int): Font size for the index numbers.
        swatch_size (int): Width/height of each color swatch.
        padding (int): Space around and between swatches.
        columns (int): Maximum swatches per row.

    Returns:
        PIL.Image.Image: The legend image, or None for an empty palette.
    """
    num_colors = len(palette)
    if num_colors == 0:
        return None

    columns = max(1, min(columns, num_colors))
    rows = math.ceil(num_colors / columns)
    width = (swatch_size * columns) + (padding * (columns + 1))
    height = (swatch_size * rows) + (padding * (rows + 1))

    image = Image.new("RGB", (width, height), color=(255, 255, 255))
    draw = ImageDraw.Draw(image)

    loaded_font = None
    try:
        if font_path and os.path.isfile(font_path):
            loaded_font = ImageFont.truetype(font_path, font_size)
    except IOError:
        pass

    if not loaded_font:
        try:
            loaded_font = ImageFont.load_default(size=font_size)
        except TypeError:  # Pillow < 10.1
            loaded_font = ImageFont.load_default()

    for idx, color_data in enumerate(palette):
        row, col = divmod(idx, columns)
        x0 = padding + col * (swatch_size + padding)
        y0 = padding + row * (swatch_size + padding)
        fill_color = tuple(int(c) for c in color_data)

        draw.rectangle([x0, y0, x0 + swatch_size - 1, y0 + swatch_size - 1], fill=fill_color, outline=(0, 0, 0))

        text = str(idx)
        left, top, right, bottom = draw.textbbox((0, 0), text, font=loaded_font)
        text_x = x0 + (swatch_size - (right - left)) / 2.0 - left
        text_y = y0 + (swatch_size - (bottom - top)) / 2.0 - top
        draw.text((text_x, text_y), text, fill=_label_fill(fill_color), font=loaded_font)

    return image
