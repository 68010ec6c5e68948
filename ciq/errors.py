class QuantizeError(Exception):
    """Base class for all ciq failures."""


class AllocationError(QuantizeError, MemoryError):
    """A scratch buffer or sample array could not be allocated."""


class FormatError(QuantizeError, ValueError):
    """Input raster (or palette file) does not match the expected format."""


class DegenerateInputError(QuantizeError, ValueError):
    """Cluster count is not usable for the given sample population."""


class PaletteWriteError(QuantizeError, OSError):
    """
    The palette could not be written after the remapped image was saved.
    The image is left in place; `image_path` tells the caller where it went.
    """

    def __init__(self, message, image_path=None, palette_path=None):
        super().__init__(message)
        self.image_path = image_path
        self.palette_path = palette_path
