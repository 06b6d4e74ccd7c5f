"""Single still image source."""

from pathlib import Path
from typing import Optional, Union

import cv2
import numpy as np

from facepath.errors import SourceError
from facepath.sources.base import BaseSource
from facepath.types import Frame, SourceKind


class ImageSource(BaseSource):
    """Produces exactly one frame (sequence 0, timestamp 0), then end of stream.

    Args:
        image: Path to an image file, or an already decoded array.
    """

    kind = SourceKind.IMAGE

    def __init__(self, image: Union[str, Path, np.ndarray]):
        super().__init__()
        self._image = image
        self._pixels: Optional[np.ndarray] = None
        self._done = False

    def describe(self) -> str:
        if isinstance(self._image, np.ndarray):
            return f"ImageSource(array {self._image.shape})"
        return f"ImageSource({self._image})"

    def _open(self) -> None:
        if isinstance(self._image, np.ndarray):
            pixels = self._image
        else:
            path = Path(self._image)
            if not path.is_file():
                raise SourceError("Image file not found", source=str(path))
            pixels = cv2.imread(str(path), cv2.IMREAD_COLOR)
            if pixels is None:
                raise SourceError("Cannot decode image", source=str(path))
        if pixels.size == 0:
            raise SourceError("Image is empty", source=self.describe())
        self._pixels = pixels

    def read(self, timeout: Optional[float] = None) -> Optional[Frame]:
        self.open()
        if self._done:
            return None
        self._done = True
        try:
            return Frame(0, 0, self._pixels, SourceKind.IMAGE)
        except (TypeError, ValueError) as exc:
            raise SourceError(f"Unsupported image: {exc}", source=self.describe()) from exc

    def _close(self) -> None:
        self._pixels = None


__all__ = ["ImageSource"]
