"""Frame sources: images, video files, cameras and caller-supplied frames.

Example:
    >>> from facepath.sources import open_source
    >>> source = open_source("portrait.jpg")      # ImageSource
    >>> source = open_source("clip.mp4", fps=10)  # VideoFileSource
    >>> source = open_source(0)                   # CameraSource
"""

from pathlib import Path
from typing import Any, Union

import numpy as np

from facepath.sources.base import BaseSource, NS_PER_SECOND
from facepath.sources.camera import CameraSource
from facepath.sources.image import ImageSource
from facepath.sources.iterable import IterableSource
from facepath.sources.video import VideoFileSource, VideoInfo

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".bmp", ".webp", ".tif", ".tiff"})


def open_source(target: Union[int, str, Path, np.ndarray, BaseSource], **kwargs: Any) -> BaseSource:
    """Pick a source implementation for ``target``.

    int -> camera, ndarray -> single image, image file extension -> image,
    anything else -> video file. Existing sources are returned unchanged.
    """
    if isinstance(target, BaseSource):
        return target
    if isinstance(target, bool):
        raise TypeError("Source target cannot be a bool")
    if isinstance(target, int):
        return CameraSource(target, **kwargs)
    if isinstance(target, np.ndarray):
        return ImageSource(target)
    if isinstance(target, str) and target.isdigit():
        return CameraSource(int(target), **kwargs)
    if Path(target).suffix.lower() in IMAGE_EXTENSIONS:
        return ImageSource(target)
    return VideoFileSource(target, **kwargs)


__all__ = [
    "BaseSource",
    "ImageSource",
    "VideoFileSource",
    "VideoInfo",
    "CameraSource",
    "IterableSource",
    "open_source",
    "IMAGE_EXTENSIONS",
    "NS_PER_SECOND",
]
