from __future__ import annotations

"""Bundle tag naming for compiled scripts.

Scripts are grouped into bundles by their directory:
    Scripts/Example/Test.ts -> scripts_example.jsc
    Test.ts                 -> default.jsc
"""

from typing import Dict, Iterable, List

TAG_EXTENSION = ".jsc"
DEFAULT_TAG = "default"

# applied in order after path separators become underscores
ESCAPE_CHARS: Dict[str, str] = {
    "_": "_",
    " ": "",
    "#": "",
    "[": "",
    "]": "",
}


def gen_tag(asset_path: str) -> str:
    path = asset_path.replace("\\", "/")
    if "/" not in path:
        return DEFAULT_TAG + TAG_EXTENSION
    bundle = path.rsplit("/", 1)[0].replace("/", "_")
    for src, dst in ESCAPE_CHARS.items():
        bundle = bundle.replace(src, dst)
    return (bundle + TAG_EXTENSION).lower()


def group_by_tag(paths: Iterable[str]) -> Dict[str, List[str]]:
    """Map bundle tag -> script paths, in first-seen order, without duplicates."""
    groups: Dict[str, List[str]] = {}
    for p in paths:
        members = groups.setdefault(gen_tag(p), [])
        if p not in members:
            members.append(p)
    return groups


__all__ = [
    "TAG_EXTENSION",
    "DEFAULT_TAG",
    "ESCAPE_CHARS",
    "gen_tag",
    "group_by_tag",
]
