"""
Manifest - 文件清单

清单格式 (Manifest.db)：每行一个文件，无表头
    <相对路径>|<MD5>|<字节数>

    scripts_example.jsc|3f2a...|10240
    default.jsc|9bc1...|512

功能：
- 解析/序列化清单（解析宽松：错误行记录后继续）
- 从构建目录生成清单
- 对比远端与本地清单（新增/修改/删除）
- 按清单校验目录
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .content import file_md5, file_size

logger = logging.getLogger(__name__)


# ============================================================================
# 常量
# ============================================================================

MANIFEST_NAME = "Manifest.db"
FIELD_SEPARATOR = "|"
DEFAULT_EXCLUDE_SUFFIXES: Tuple[str, ...] = (".manifest",)


# ============================================================================
# 数据结构
# ============================================================================

@dataclass(frozen=True)
class ManifestEntry:
    """清单条目"""
    name: str                           # 相对路径（正斜杠）
    md5: str                            # 内容哈希
    size: int                           # 字节数

    def to_line(self) -> str:
        return f"{self.name}{FIELD_SEPARATOR}{self.md5}{FIELD_SEPARATOR}{self.size}"


@dataclass(frozen=True)
class ManifestDiff:
    """清单差异（只读）"""
    added: Tuple[ManifestEntry, ...] = ()
    modified: Tuple[ManifestEntry, ...] = ()
    removed: Tuple[ManifestEntry, ...] = ()

    @property
    def changed(self) -> Tuple[ManifestEntry, ...]:
        """需要上传的条目：新增 + 修改"""
        return self.added + self.modified

    @property
    def empty(self) -> bool:
        return not self.added and not self.modified

    def summary(self) -> str:
        return f"added={len(self.added)} modified={len(self.modified)} removed={len(self.removed)}"


class Manifest:
    """
    文件清单

    构造后为空，由 read()/parse() 填充；加载后只用于查询与对比。
    `error` 为空字符串表示没有解析错误。
    """

    def __init__(self) -> None:
        self._entries: List[ManifestEntry] = []
        self._index: Dict[str, ManifestEntry] = {}
        self.errors: List[str] = []

    @property
    def error(self) -> str:
        return "; ".join(self.errors)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def entries(self) -> Tuple[ManifestEntry, ...]:
        return tuple(self._entries)

    # ------------------------------------------------------------------
    # 构造
    # ------------------------------------------------------------------

    @classmethod
    def parse(cls, text: str) -> Tuple['Manifest', bool]:
        """解析清单文本，返回 (清单, 是否无错误)"""
        manifest = cls()
        manifest._parse_into(text)
        return manifest, manifest.ok

    @classmethod
    def from_entries(cls, entries: Iterable[ManifestEntry]) -> 'Manifest':
        manifest = cls()
        for entry in entries:
            manifest._add(entry, source=entry.to_line())
        return manifest

    def read(self, path: Path) -> bool:
        """从文件读取；无法打开时记录错误并返回 False"""
        path = Path(path)
        try:
            text = path.read_text(encoding='utf-8')
        except OSError as e:
            self.errors.append(f"cannot open {path}: {e.strerror or e}")
            return False
        self._parse_into(text)
        return self.ok

    def _parse_into(self, text: str) -> None:
        for lineno, raw in enumerate(text.splitlines(), 1):
            if not raw.strip():
                continue
            # name is taken verbatim; only md5 and size are trimmed
            fields = raw.split(FIELD_SEPARATOR)
            if len(fields) != 3:
                self.errors.append(f"line {lineno}: expected 3 fields: {raw!r}")
                continue
            name, md5, size_str = fields
            try:
                size = int(size_str)
            except ValueError:
                size = -1
            if not name or size < 0:
                self.errors.append(f"line {lineno}: invalid entry: {raw!r}")
                continue
            self._add(ManifestEntry(name=name, md5=md5.strip().lower(), size=size), source=f"line {lineno}")

    def _add(self, entry: ManifestEntry, source: str) -> None:
        if entry.name in self._index:
            self.errors.append(f"{source}: duplicate name {entry.name!r}")
            return
        self._entries.append(entry)
        self._index[entry.name] = entry

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    def get(self, name: str) -> Optional[ManifestEntry]:
        return self._index.get(name)

    def names(self) -> List[str]:
        return [e.name for e in self._entries]

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __iter__(self) -> Iterator[ManifestEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"Manifest(entries={len(self._entries)}, errors={len(self.errors)})"

    # ------------------------------------------------------------------
    # 输出 / 对比
    # ------------------------------------------------------------------

    def to_text(self) -> str:
        return serialize(self._entries)

    def write(self, path: Path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_text(), encoding='utf-8')
        return path

    def compare(self, local: 'Manifest') -> ManifestDiff:
        """以 self 为远端清单，对比本地清单"""
        return compare(self, local)


# ============================================================================
# 函数接口
# ============================================================================

def parse_manifest(text: str) -> Tuple[Manifest, bool]:
    return Manifest.parse(text)


def read_manifest(path: Path) -> Manifest:
    manifest = Manifest()
    manifest.read(path)
    return manifest


def serialize(entries: Iterable[ManifestEntry]) -> str:
    """按给定顺序输出，每行一个条目"""
    return "".join(e.to_line() + "\n" for e in entries)


def compare(remote: Manifest, local: Manifest) -> ManifestDiff:
    """
    对比清单

    仅按名称匹配、按 MD5 判定修改；大小不参与比较。
    新增/修改保持本地清单顺序，删除保持远端清单顺序。
    """
    added: List[ManifestEntry] = []
    modified: List[ManifestEntry] = []
    for entry in local:
        old = remote.get(entry.name)
        if old is None:
            added.append(entry)
        elif old.md5 != entry.md5:
            modified.append(entry)
    removed = [e for e in remote if e.name not in local]
    return ManifestDiff(added=tuple(added), modified=tuple(modified), removed=tuple(removed))


def build_manifest(
    root: Path,
    manifest_name: str = MANIFEST_NAME,
    exclude_suffixes: Sequence[str] = DEFAULT_EXCLUDE_SUFFIXES,
) -> Manifest:
    """
    扫描构建目录生成清单

    按目录遍历顺序（不排序），跳过清单文件本身与排除后缀的文件。
    """
    root = Path(root)
    entries: List[ManifestEntry] = []
    for dirpath, dirnames, filenames in os.walk(root):
        for filename in filenames:
            path = Path(dirpath) / filename
            rel = path.relative_to(root).as_posix()
            if rel == manifest_name or filename.endswith(tuple(exclude_suffixes)):
                continue
            entries.append(ManifestEntry(name=rel, md5=file_md5(path), size=file_size(path)))
    logger.debug(f"Built manifest for {root}: {len(entries)} files")
    return Manifest.from_entries(entries)


def verify_manifest(root: Path, manifest: Manifest) -> List[str]:
    """按清单校验目录，返回问题列表（空表示一致）"""
    root = Path(root)
    problems: List[str] = []
    for entry in manifest:
        p = root / entry.name
        if not p.is_file():
            problems.append(f"Missing: {entry.name}")
            continue
        if file_size(p) != entry.size:
            problems.append(f"Size mismatch: {entry.name}")
            continue
        if file_md5(p) != entry.md5:
            problems.append(f"Hash mismatch: {entry.name}")
    return problems


__all__ = [
    "MANIFEST_NAME",
    "FIELD_SEPARATOR",
    "DEFAULT_EXCLUDE_SUFFIXES",
    "ManifestEntry",
    "ManifestDiff",
    "Manifest",
    "parse_manifest",
    "read_manifest",
    "serialize",
    "compare",
    "build_manifest",
    "verify_manifest",
]
