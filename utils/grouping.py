import re
from typing import Dict, Iterable, List

# Extension: text after the final dot, no path separator inside it
_EXTENSION = re.compile(r"\.[^/.]+$")
# Trailing "_<digits>" or "-<digits>" numbering, e.g. "_1", "_01", "-2"
_NUMBERED_SUFFIX = re.compile(r"(.*)[_\-][0-9]+")
_UNSAFE_NAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


def strip_extension(filename: str) -> str:
    return _EXTENSION.sub("", filename)


def get_group_key(filename: str) -> str:
    """
    Derive the merge group key from an uploaded file name.

    The extension is removed and a single trailing "_<digits>" or "-<digits>"
    suffix is stripped, so "A_中学_1.xlsx" and "A_中学_2.xlsx" share the key
    "A_中学". A name without such a suffix is its own group.

    Args:
        filename: File name including its extension

    Returns:
        The group key (may be an empty string, e.g. for "_1.xlsx")
    """
    name = strip_extension(filename)
    match = _NUMBERED_SUFFIX.fullmatch(name)
    return match.group(1) if match else name


def group_filenames(filenames: Iterable[str]) -> Dict[str, List[str]]:
    """
    Partition file names by group key.

    Groups appear in the order their first file appears; files keep their
    input order inside each group.
    """
    groups: Dict[str, List[str]] = {}
    for filename in filenames:
        groups.setdefault(get_group_key(filename), []).append(filename)
    return groups


def sanitize_download_name(group_key: str, default: str = "merged", extension: str = ".xlsx") -> str:
    """
    Build a safe download file name for a group's output workbook.

    Args:
        group_key: Group key the workbook was merged for
        default: Stem used when the key is empty after cleaning
        extension: Extension appended to the stem

    Returns:
        File name such as "A_中学.xlsx"
    """
    stem = _UNSAFE_NAME_CHARS.sub("_", group_key).strip().strip(".")
    return f"{stem or default}{extension}"
