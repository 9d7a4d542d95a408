"""File extension categories of post media."""

from typing import Tuple

UNKNOWN = "unknown"

FILE_EXTENSIONS = {
    "image": frozenset({
        "jpg", "jpeg", "png", "gif", "bmp", "webp", "tiff", "tif", "heic",
        "ico", "jfif", "svg", "psd", "exr",
    }),
    "video": frozenset({
        "webm", "mp4", "mov", "avi", "mkv", "flv", "wmv", "m4v", "3gp",
        "ogv", "vob", "mts", "m2ts",
    }),
    "flash": frozenset({"swf", "spl"}),
}


def parse_file_extension(file_ext: str) -> Tuple[str, str]:
    """
    Normalizes an extension and returns it with its media category.

    Extensions outside the known categories, and missing ones, are reported
    as ('unknown', 'unknown').
    """
    ext = (file_ext or "").strip().lower()
    for category, extensions in FILE_EXTENSIONS.items():
        if ext in extensions:
            return ext, category
    return UNKNOWN, UNKNOWN
