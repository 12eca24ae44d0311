"""
Utility functions for loading and saving images for halftoning.
"""

import logging
import os
from typing import Dict, Optional

from PIL import Image

from image_buffer import GrayscaleImage

logger = logging.getLogger(__name__)

__all__ = [
    'IMAGE_EXTENSIONS',
    'validate_image_file',
    'get_image_info',
    'ensure_grayscale',
    'load_grayscale_image',
    'save_image',
]

IMAGE_EXTENSIONS = {'.png', '.jpg', '.jpeg', '.gif', '.bmp', '.tiff', '.tif', '.webp'}


def validate_image_file(filepath: str) -> bool:
    """
    Check if file is a valid image file.

    Args:
        filepath: Path to image file

    Returns:
        True if the file exists and has an image extension
    """
    ext = os.path.splitext(filepath)[1].lower()
    return ext in IMAGE_EXTENSIONS and os.path.exists(filepath)


def get_image_info(filepath: str) -> Optional[Dict]:
    """
    Get basic image information.

    Args:
        filepath: Path to image file

    Returns:
        Dictionary with width, height, mode, format, or None if unreadable
    """
    try:
        with Image.open(filepath) as img:
            return {
                'width': img.width,
                'height': img.height,
                'mode': img.mode,
                'format': img.format
            }
    except OSError as e:
        logger.error(f"Error getting image info: {e}")
        return None


def ensure_grayscale(image: Image.Image) -> Image.Image:
    """
    Ensure image is in 8-bit grayscale mode.
    Transparent areas are composited over white first.
    """
    if image.mode == 'L':
        return image
    if image.mode in ('RGBA', 'LA') or (image.mode == 'P' and 'transparency' in image.info):
        rgba = image.convert('RGBA')
        background = Image.new('RGBA', rgba.size, (255, 255, 255, 255))
        image = Image.alpha_composite(background, rgba)
    return image.convert('L')


def load_grayscale_image(filepath: str) -> GrayscaleImage:
    """Open an image file as a GrayscaleImage (fully loaded, file closed)."""
    with Image.open(filepath) as img:
        img.load()
        return GrayscaleImage(ensure_grayscale(img))


def save_image(image: GrayscaleImage, filepath: str, bilevel: bool = False):
    """
    Save a halftoned image.

    Args:
        image: Image to save
        filepath: Destination path (format from the extension)
        bilevel: Store as a 1-bit image
    """
    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)
    pil_image = image.image
    if bilevel:
        pil_image = pil_image.point(lambda v: 255 if v >= 128 else 0).convert('1')
    pil_image.save(filepath)
