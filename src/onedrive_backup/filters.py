"""Path exclusion logic for OneDrive Backup."""

from collections.abc import Iterable


def normalize_path(path: str) -> str:
    """
    Normalize a drive-relative path for comparison.

    Backslashes become forward slashes, runs of slashes collapse, and
    leading/trailing slashes are stripped.
    """
    parts = [part for part in path.replace("\\", "/").split("/") if part]
    return "/".join(parts)


class ExclusionSet:
    """
    Ordered collection of excluded path prefixes.

    A path is excluded when it equals a prefix or lies below it
    ("Photos" excludes "Photos" and "Photos/2020/a.jpg" but not
    "Photos2020"). Entries may be added and removed while a run is in
    progress; each mutation swaps in a new tuple so readers never see a
    half-updated list.
    """

    def __init__(self, prefixes: Iterable[str] = ()):
        self._prefixes: tuple[str, ...] = ()
        for prefix in prefixes:
            self.add(prefix)

    def add(self, prefix: str) -> None:
        normalized = normalize_path(prefix)
        if normalized and normalized not in self._prefixes:
            self._prefixes = self._prefixes + (normalized,)

    def remove(self, prefix: str) -> None:
        normalized = normalize_path(prefix)
        self._prefixes = tuple(p for p in self._prefixes if p != normalized)

    def clear(self) -> None:
        self._prefixes = ()

    def is_excluded(self, relative_path: str) -> bool:
        """Check whether a path falls under any exclusion prefix."""
        path = normalize_path(relative_path)
        for prefix in self._prefixes:
            if path == prefix or path.startswith(prefix + "/"):
                return True
        return False

    def __iter__(self):
        return iter(self._prefixes)

    def __len__(self) -> int:
        return len(self._prefixes)

    def __bool__(self) -> bool:
        return bool(self._prefixes)

    def __repr__(self) -> str:
        return f"ExclusionSet({list(self._prefixes)!r})"


def parse_folder_list(folder_string: str) -> list[str]:
    """
    Parse a comma-separated folder list.

    Args:
        folder_string: String like "Photos, Documents/Old"

    Returns:
        List of normalized, de-duplicated folder paths in input order
    """
    if not folder_string:
        return []

    folders: list[str] = []
    for folder in folder_string.split(","):
        folder = normalize_path(folder.strip())
        if folder and folder not in folders:
            folders.append(folder)

    return folders
