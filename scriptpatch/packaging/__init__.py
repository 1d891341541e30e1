"""
scriptpatch Packaging Module
脚本包清单与增量发布

包含:
- manifest: 清单格式 (Manifest.db) 与差异对比
- content: 内容哈希与 `name@md5` 命名
- tags: 脚本包标签命名
- publish_config: 发布配置
- storage: 存储后端 (S3 / 本地目录 / 内存)
- publisher: 增量发布流程
"""

from .manifest import (
    MANIFEST_NAME,
    ManifestEntry,
    ManifestDiff,
    Manifest,
    parse_manifest,
    read_manifest,
    serialize,
    compare,
    build_manifest,
    verify_manifest,
)

from .content import (
    bytes_md5,
    file_md5,
    file_size,
    tagged_name,
    split_tagged_name,
)

from .tags import (
    TAG_EXTENSION,
    DEFAULT_TAG,
    gen_tag,
    group_by_tag,
)

from .publish_config import (
    PublishConfig,
    eval_placeholders,
)

from .storage import (
    StorageBackend,
    S3Storage,
    LocalStorage,
    MemoryStorage,
    join_key,
)

from .publisher import (
    PublishPhase,
    StagedFile,
    PublishPlan,
    PublishResult,
    Publisher,
    publish,
)

__all__ = [
    # Manifest
    'MANIFEST_NAME',
    'ManifestEntry',
    'ManifestDiff',
    'Manifest',
    'parse_manifest',
    'read_manifest',
    'serialize',
    'compare',
    'build_manifest',
    'verify_manifest',
    # Content
    'bytes_md5',
    'file_md5',
    'file_size',
    'tagged_name',
    'split_tagged_name',
    # Tags
    'TAG_EXTENSION',
    'DEFAULT_TAG',
    'gen_tag',
    'group_by_tag',
    # Config
    'PublishConfig',
    'eval_placeholders',
    # Storage
    'StorageBackend',
    'S3Storage',
    'LocalStorage',
    'MemoryStorage',
    'join_key',
    # Publisher
    'PublishPhase',
    'StagedFile',
    'PublishPlan',
    'PublishResult',
    'Publisher',
    'publish',
]
