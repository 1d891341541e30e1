"""
Content Addressing - 内容寻址

文件的 MD5 与大小，以及 `name@md5` 形式的存储键。
相同内容总是得到相同的哈希，与所在路径无关。
"""
from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Tuple

from ..errors import PublishError


CHUNK_SIZE = 1024 * 1024
TAG_SEPARATOR = "@"


def bytes_md5(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def file_md5(path: Path) -> str:
    """计算文件 MD5（小写十六进制）"""
    path = Path(path)
    h = hashlib.md5()
    try:
        with open(path, 'rb') as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                h.update(chunk)
    except OSError as e:
        raise PublishError(f"Cannot hash file: {e.strerror or e}", path=str(path)) from e
    return h.hexdigest()


def file_size(path: Path) -> int:
    """文件字节数"""
    path = Path(path)
    try:
        return path.stat().st_size
    except OSError as e:
        raise PublishError(f"Cannot stat file: {e.strerror or e}", path=str(path)) from e


def tagged_name(rel_path: str, md5: str) -> str:
    """`rel_path@md5`；md5 为空时返回原名（清单指针）"""
    if not md5:
        return rel_path
    return f"{rel_path}{TAG_SEPARATOR}{md5}"


def split_tagged_name(name: str) -> Tuple[str, str]:
    """`a/b.jsc@<md5>` -> ('a/b.jsc', '<md5>')；无标签时 md5 为空"""
    base, sep, md5 = name.rpartition(TAG_SEPARATOR)
    if not sep or '/' in md5:
        return name, ""
    return base, md5


__all__ = [
    "CHUNK_SIZE",
    "TAG_SEPARATOR",
    "bytes_md5",
    "file_md5",
    "file_size",
    "tagged_name",
    "split_tagged_name",
]
