"""
Publisher - 增量发布

流程：
    获取远端清单 -> 读取本地清单 -> 对比并暂存 -> 上传

上传规则：
- 新增/修改文件：`文件名@MD5`
- 清单文件：`Manifest.db@MD5`（版本记录）与 `Manifest.db`（当前指针）
- 清单指针最后上传；任何内容文件失败都不会写入指针，远端保持上一次发布的状态
- 远端删除的文件不做处理（只追加/覆盖）
"""
from __future__ import annotations

import logging
import shutil
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional

from ..errors import ManifestError, PublishError, StorageError
from .content import file_md5, tagged_name
from .manifest import Manifest, ManifestDiff
from .publish_config import PublishConfig
from .storage import StorageBackend, join_key

logger = logging.getLogger(__name__)


class PublishPhase(Enum):
    FETCH_REMOTE = "fetch_remote"
    LOAD_LOCAL = "load_local"
    COMPUTE_AND_STAGE = "compute_and_stage"
    UPLOAD = "upload"
    DONE = "done"


@dataclass(frozen=True)
class StagedFile:
    """暂存文件"""
    source: Path                        # 构建目录中的源文件
    name: str                           # 清单中的相对路径
    md5: str                            # 为空表示清单指针
    staged_path: Path                   # 暂存副本
    key: str                            # 远端对象键


@dataclass
class PublishPlan:
    """一次发布的上传计划（不持久化）"""
    files: List[StagedFile] = field(default_factory=list)
    manifest_tagged: Optional[StagedFile] = None
    manifest_pointer: Optional[StagedFile] = None

    def upload_order(self) -> List[StagedFile]:
        order = list(self.files)
        if self.manifest_tagged:
            order.append(self.manifest_tagged)
        if self.manifest_pointer:
            order.append(self.manifest_pointer)
        return order

    def keys(self) -> List[str]:
        return [s.key for s in self.upload_order()]


@dataclass
class PublishResult:
    ok: bool
    phase: PublishPhase
    diff: Optional[ManifestDiff] = None
    uploaded: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def no_changes(self) -> bool:
        return self.ok and self.diff is not None and self.diff.empty

    def describe(self) -> str:
        if not self.ok:
            return f"publish failed during {self.phase.value}: {self.error}"
        if self.no_changes:
            return "no changes, nothing to publish"
        return f"published {len(self.uploaded)} object(s) ({self.diff.summary() if self.diff else ''})"


class Publisher:
    """
    增量发布器

    Args:
        config: 已展开占位符的发布配置
        storage: 远端存储（绑定 bucket）
    """

    def __init__(self, config: PublishConfig, storage: StorageBackend):
        self.config = config
        self.storage = storage
        self.phase = PublishPhase.FETCH_REMOTE
        self.uploaded: List[str] = []

    # ------------------------------------------------------------------
    # 入口
    # ------------------------------------------------------------------

    def run(self) -> PublishResult:
        """执行发布并捕获错误，返回结果"""
        try:
            return self.publish()
        except PublishError as e:
            logger.error(f"Publish failed during {self.phase.value}: {e}")
            return PublishResult(
                ok=False,
                phase=self.phase,
                uploaded=list(self.uploaded),
                error=str(e),
            )

    def publish(self) -> PublishResult:
        """执行发布；致命错误抛出 PublishError"""
        self.uploaded = []
        self.config.validate(require_storage=False)

        self.phase = PublishPhase.FETCH_REMOTE
        remote = self.fetch_remote()

        self.phase = PublishPhase.LOAD_LOCAL
        local = self.load_local()

        self.phase = PublishPhase.COMPUTE_AND_STAGE
        diff = remote.compare(local)
        logger.info(f"Manifest diff: {diff.summary()}")
        if diff.empty:
            logger.info("Diff files is zero, nothing to publish")
            self.phase = PublishPhase.DONE
            return PublishResult(ok=True, phase=self.phase, diff=diff)

        staging_root, temporary = self._staging_root()
        try:
            plan = self.stage(diff, staging_root)

            self.phase = PublishPhase.UPLOAD
            self.upload(plan)
        finally:
            if temporary:
                shutil.rmtree(staging_root, ignore_errors=True)

        self.phase = PublishPhase.DONE
        logger.info(f"Published {len(self.uploaded)} object(s) to {self.storage.bucket}/{self.remote_prefix}")
        return PublishResult(ok=True, phase=self.phase, diff=diff, uploaded=list(self.uploaded))

    # ------------------------------------------------------------------
    # 阶段
    # ------------------------------------------------------------------

    @property
    def remote_prefix(self) -> str:
        return join_key(self.config.remote_uri)

    def fetch_remote(self) -> Manifest:
        """获取远端清单；失败时退化为空清单（全量发布）"""
        key = self.config.remote_manifest_key
        try:
            data = self.storage.get(key)
        except StorageError as e:
            logger.warning(f"Get remote manifest failed, publishing everything: {e}")
            return Manifest()

        try:
            text = data.decode('utf-8')
        except UnicodeDecodeError as e:
            logger.warning(f"Remote manifest is not UTF-8, publishing everything: {e}")
            return Manifest()

        remote, ok = Manifest.parse(text)
        if not ok:
            logger.warning(f"Parse remote manifest failed: {remote.error}")
        return remote

    def load_local(self) -> Manifest:
        """读取本地清单；缺失或格式错误为致命错误"""
        path = self.config.local_manifest
        local = Manifest()
        if not local.read(path):
            raise ManifestError(f"Local manifest unusable: {local.error}", path=str(path))
        return local

    def stage(self, diff: ManifestDiff, staging_root: Path) -> PublishPlan:
        """将变更文件复制为 `name@md5`，清单复制两份"""
        source_root = self.config.source_root
        stage_dir = staging_root / self.config.local_uri
        if stage_dir.exists():
            try:
                shutil.rmtree(stage_dir)
            except OSError as e:
                raise PublishError(f"Clear staging dir failed: {e.strerror or e}", path=str(stage_dir)) from e

        plan = PublishPlan()
        for entry in diff.changed:
            plan.files.append(self._stage_one(source_root / entry.name, entry.name, entry.md5, stage_dir))

        manifest_file = self.config.local_manifest
        manifest_md5 = file_md5(manifest_file)
        name = self.config.manifest_name
        plan.manifest_tagged = self._stage_one(manifest_file, name, manifest_md5, stage_dir)
        plan.manifest_pointer = self._stage_one(manifest_file, name, "", stage_dir)

        logger.info(f"Staged {len(plan.files)} file(s) + manifest under {stage_dir}")
        return plan

    def _stage_one(self, source: Path, name: str, md5: str, stage_dir: Path) -> StagedFile:
        rel = tagged_name(name, md5)
        dst = stage_dir / rel
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, dst)
        except OSError as e:
            raise PublishError(f"Stage failed: {e.strerror or e}", path=str(source)) from e
        logger.debug(f"Staged {source} -> {dst}")
        return StagedFile(
            source=source,
            name=name,
            md5=md5,
            staged_path=dst,
            key=join_key(self.remote_prefix, rel),
        )

    def upload(self, plan: PublishPlan) -> None:
        """上传内容文件与带哈希清单，全部成功后再上传清单指针"""
        content = list(plan.files)
        if plan.manifest_tagged:
            content.append(plan.manifest_tagged)

        workers = max(1, int(self.config.upload_workers))
        if workers == 1 or len(content) <= 1:
            for item in content:
                self._put(item)
        else:
            with ThreadPoolExecutor(max_workers=workers) as executor:
                futures = [executor.submit(self._put, item) for item in content]
                errors = []
                for fut in futures:
                    try:
                        fut.result()
                    except PublishError as e:
                        errors.append(e)
            if errors:
                raise errors[0]

        if plan.manifest_pointer:
            self._put(plan.manifest_pointer)

    def _put(self, item: StagedFile) -> None:
        self.storage.put(item.staged_path, item.key)
        self.uploaded.append(item.key)
        logger.debug(f"Uploaded {item.key}")

    def _staging_root(self):
        if self.config.staging_dir:
            root = Path(self.config.staging_dir)
            try:
                root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise PublishError(f"Create staging dir failed: {e.strerror or e}", path=str(root)) from e
            return root, False
        try:
            return Path(tempfile.mkdtemp(prefix="scriptpatch-")), True
        except OSError as e:
            raise PublishError(f"Create temp staging dir failed: {e.strerror or e}") from e


def publish(config: PublishConfig, storage: StorageBackend) -> PublishResult:
    """便捷函数：构建发布器并执行"""
    return Publisher(config, storage).run()


__all__ = [
    "PublishPhase",
    "StagedFile",
    "PublishPlan",
    "PublishResult",
    "Publisher",
    "publish",
]
