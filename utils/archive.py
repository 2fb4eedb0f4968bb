import io
import os
from typing import Dict
from zipfile import ZipFile, ZIP_DEFLATED

ZIP_MEDIA_TYPE = "application/zip"


def unique_name(name: str, taken: set) -> str:
    """Return name, or "stem (n).ext" when name is already taken."""
    if name not in taken:
        return name
    stem, ext = os.path.splitext(name)
    counter = 2
    while f"{stem} ({counter}){ext}" in taken:
        counter += 1
    return f"{stem} ({counter}){ext}"


def build_archive(entries: Dict[str, bytes]) -> bytes:
    """
    Bundle several output files into one zip payload.

    Args:
        entries: Archive member name -> file content, in the order to write them

    Returns:
        bytes: The zip file content
    """
    buffer = io.BytesIO()
    with ZipFile(buffer, "w", ZIP_DEFLATED) as archive:
        for name, content in entries.items():
            archive.writestr(name, content)
    return buffer.getvalue()
