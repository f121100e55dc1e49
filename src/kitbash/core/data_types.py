"""
Data Types - Pixel buffers and colors shared by the layer engine.

This module defines:
- ImageData: Owned RGBA8 pixel buffer (straight alpha)
- Color: RGBA color value used for canvas backgrounds
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import numpy as np
from numpy.typing import NDArray

from kitbash.core.errors import ImportDecodeError, InvalidLayerError


@dataclass(frozen=True, slots=True)
class Color:
    """RGBA color with 8-bit channels."""

    r: int = 0
    g: int = 0
    b: int = 0
    a: int = 255

    def __post_init__(self) -> None:
        for channel in (self.r, self.g, self.b, self.a):
            if not isinstance(channel, (int, np.integer)) or not 0 <= channel <= 255:
                raise ValueError(f"Color channels must be ints in 0..255, got {self.as_tuple()}")

    @classmethod
    def parse(cls, value: Any) -> Color:
        """
        Build a color from a Color, an (r, g, b[, a]) sequence or a hex string.

        Hex strings may be "#rrggbb" or "#rrggbbaa" (leading '#' optional).
        """
        if isinstance(value, Color):
            return value
        if isinstance(value, str):
            text = value.strip().lstrip("#")
            if len(text) not in (6, 8):
                raise ValueError(f"Invalid hex color: {value!r}")
            try:
                channels = [int(text[i:i + 2], 16) for i in range(0, len(text), 2)]
            except ValueError:
                raise ValueError(f"Invalid hex color: {value!r}") from None
            return cls(*channels)
        channels = [int(c) for c in value]
        if len(channels) not in (3, 4):
            raise ValueError(f"Color needs 3 or 4 channels, got {len(channels)}")
        return cls(*channels)

    def as_tuple(self) -> tuple[int, int, int, int]:
        return (self.r, self.g, self.b, self.a)

    def to_hex(self) -> str:
        return "#{:02x}{:02x}{:02x}{:02x}".format(*self.as_tuple())

    @property
    def is_opaque(self) -> bool:
        return self.a == 255


TRANSPARENT = Color(0, 0, 0, 0)


@dataclass
class ImageData:
    """
    Owned RGBA pixel buffer.

    Pixels are stored as a numpy array in HWC format, shape (H, W, 4),
    dtype uint8, with straight (non-premultiplied) alpha.

    Attributes:
        pixels: numpy array of shape (H, W, 4) with uint8 values
        source_path: File the image was decoded from, if any
    """
    pixels: NDArray[np.uint8]
    source_path: Path | None = None

    def __post_init__(self) -> None:
        arr = self.pixels
        if not isinstance(arr, np.ndarray) or arr.ndim != 3 or arr.shape[2] != 4:
            raise InvalidLayerError(
                f"Expected an (H, W, 4) RGBA array, got shape {getattr(arr, 'shape', None)}"
            )
        if arr.dtype != np.uint8:
            raise InvalidLayerError(f"Expected uint8 pixels, got {arr.dtype}")

    @classmethod
    def from_numpy(cls, array: NDArray, source_path: Path | None = None) -> ImageData:
        """
        Create ImageData from a numpy array. The array is always copied.

        Handles various input formats:
        - float [0, 1] -> uint8 [0, 255]
        - HW (grayscale) -> RGBA
        - HWC with 1, 3 or 4 channels -> RGBA (opaque alpha added)
        """
        arr = np.array(array, copy=True)

        if arr.dtype != np.uint8:
            if np.issubdtype(arr.dtype, np.floating):
                arr = np.rint(np.clip(arr, 0.0, 1.0) * 255.0).astype(np.uint8)
            else:
                arr = np.clip(arr, 0, 255).astype(np.uint8)

        if arr.ndim == 2:
            arr = arr[:, :, np.newaxis]
        if arr.ndim != 3:
            raise InvalidLayerError(f"Unsupported pixel array shape: {arr.shape}")

        channels = arr.shape[2]
        if channels == 1:
            arr = np.concatenate([arr, arr, arr], axis=-1)
            channels = 3
        if channels == 3:
            alpha = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
            arr = np.concatenate([arr, alpha], axis=-1)
        elif channels != 4:
            raise InvalidLayerError(f"Unsupported channel count: {channels}")

        return cls(pixels=np.ascontiguousarray(arr), source_path=source_path)

    @classmethod
    def from_pil(cls, image, source_path: Path | None = None) -> ImageData:
        """Create ImageData from a PIL Image (converted to RGBA)."""
        from PIL import Image

        if not isinstance(image, Image.Image):
            raise TypeError(f"Expected PIL Image, got {type(image)}")

        if image.mode != "RGBA":
            image = image.convert("RGBA")

        return cls(pixels=np.array(image, dtype=np.uint8), source_path=source_path)

    @classmethod
    def from_bytes(cls, data: bytes, name: str = "<bytes>") -> ImageData:
        """Decode PNG/JPEG/WEBP bytes into RGBA."""
        from PIL import Image, UnidentifiedImageError

        try:
            with Image.open(io.BytesIO(data)) as image:
                image.load()
                return cls.from_pil(image)
        except (UnidentifiedImageError, OSError) as e:
            raise ImportDecodeError(f"Failed to decode image: {name}: {e}") from e

    @classmethod
    def from_file(cls, path: str | Path) -> ImageData:
        """
        Create ImageData by decoding an image file.

        Args:
            path: Path to the image file

        Returns:
            ImageData with the decoded RGBA pixels

        Raises:
            FileNotFoundError: If the file does not exist
            ImportDecodeError: If Pillow cannot decode the file
        """
        from PIL import Image, UnidentifiedImageError

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Image file not found: {path}")

        try:
            with Image.open(path) as image:
                image.load()
                return cls.from_pil(image, source_path=path)
        except (UnidentifiedImageError, OSError) as e:
            raise ImportDecodeError(f"Failed to decode image: {path.name}: {e}") from e

    @classmethod
    def empty(cls, width: int, height: int) -> ImageData:
        """Create a fully transparent image of the given size."""
        return cls(pixels=np.zeros((height, width, 4), dtype=np.uint8))

    @classmethod
    def filled(cls, width: int, height: int, color: Color) -> ImageData:
        """Create an image filled with a single color."""
        arr = np.empty((height, width, 4), dtype=np.uint8)
        arr[...] = color.as_tuple()
        return cls(pixels=arr)

    @property
    def width(self) -> int:
        """Image width in pixels."""
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        """Image height in pixels."""
        return self.pixels.shape[0]

    @property
    def size(self) -> tuple[int, int]:
        """Image size as (width, height)."""
        return (self.width, self.height)

    @property
    def is_empty(self) -> bool:
        return self.width == 0 or self.height == 0

    def to_pil(self):
        """Convert to PIL Image (RGBA)."""
        from PIL import Image

        return Image.fromarray(self.pixels)

    def to_png_bytes(self) -> bytes:
        """Encode as PNG."""
        buffer = io.BytesIO()
        self.to_pil().save(buffer, format="PNG")
        return buffer.getvalue()

    def copy(self) -> ImageData:
        """Create a copy of this image."""
        return ImageData(pixels=self.pixels.copy(), source_path=self.source_path)
