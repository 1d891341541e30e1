"""
Publish Configuration - 发布配置

存储服务与目录布局的配置，显式传入发布器。
字符串值支持 `${Environment.Name}` 占位符：
    ${Environment.StorageEndpoint} -> 环境变量 STORAGE_ENDPOINT
    ${Environment.Platform}        -> overrides['platform'] 或环境变量 PLATFORM
"""
from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field, asdict, fields, replace
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from ..errors import ConfigError
from .manifest import MANIFEST_NAME


PLACEHOLDER = re.compile(r"\$\{Environment\.([A-Za-z0-9_]+)\}")
_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def env_var_name(name: str) -> str:
    """StorageEndpoint -> STORAGE_ENDPOINT"""
    return _CAMEL_BOUNDARY.sub("_", name).upper()


def eval_placeholders(
    value: str,
    env: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, str]] = None,
) -> str:
    """展开占位符；无法解析的保持原样"""
    env = os.environ if env is None else env
    overrides = overrides or {}

    def _sub(m: re.Match) -> str:
        name = m.group(1)
        for key in (name, name.lower(), env_var_name(name).lower()):
            if overrides.get(key):
                return str(overrides[key])
        resolved = env.get(env_var_name(name))
        return resolved if resolved is not None else m.group(0)

    return PLACEHOLDER.sub(_sub, value)


@dataclass
class PublishConfig:
    """发布配置"""
    # 存储服务
    endpoint: str = "${Environment.StorageEndpoint}"
    bucket: str = "${Environment.StorageBucket}"
    access_key: str = "${Environment.StorageAccess}"
    secret_key: str = "${Environment.StorageSecret}"
    region: str = "auto"

    # 构建输出
    build_dir: str = "Builds/Patch/Scripts/TS"
    channel: str = ""
    platform: str = ""
    manifest_name: str = MANIFEST_NAME

    # 本地暂存 / 远端前缀
    staging_dir: Optional[str] = None    # 为空时使用临时目录
    local_uri: str = "Scripts/TS"
    remote_uri: str = "Builds/Patch/${Environment.Author}/${Environment.Version}/${Environment.Platform}/Scripts/TS"

    # 内容文件并发上传数（清单指针始终最后单独上传）
    upload_workers: int = 1

    # 占位符覆盖值（author/version/platform/channel ...）
    variables: Dict[str, str] = field(default_factory=dict)

    @property
    def source_root(self) -> Path:
        """构建产物目录：build_dir[/channel/platform]"""
        root = Path(self.build_dir)
        if self.channel:
            root = root / self.channel
        if self.platform:
            root = root / self.platform
        return root

    @property
    def local_manifest(self) -> Path:
        return self.source_root / self.manifest_name

    @property
    def remote_manifest_key(self) -> str:
        prefix = self.remote_uri.strip("/")
        return f"{prefix}/{self.manifest_name}" if prefix else self.manifest_name

    def resolved(self, env: Optional[Mapping[str, str]] = None) -> 'PublishConfig':
        """返回展开所有占位符后的副本"""
        overrides: Dict[str, str] = {}
        if self.channel:
            overrides["channel"] = self.channel
        if self.platform:
            overrides["platform"] = self.platform
        overrides.update({k.lower(): v for k, v in self.variables.items()})

        changes = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, str):
                changes[f.name] = eval_placeholders(value, env=env, overrides=overrides)
        return replace(self, **changes)

    def unresolved(self) -> List[str]:
        """仍含占位符的字段名"""
        out = []
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, str) and PLACEHOLDER.search(value):
                out.append(f.name)
        return out

    def validate(self, require_storage: bool = True) -> None:
        problems: List[str] = []
        required = ["build_dir", "manifest_name"]
        if require_storage:
            required += ["bucket"]
        for name in required:
            if not getattr(self, name):
                problems.append(f"{name} is empty")
        for name in self.unresolved():
            if require_storage or name not in ("endpoint", "bucket", "access_key", "secret_key"):
                problems.append(f"{name} has unresolved placeholder: {getattr(self, name)}")
        try:
            workers = int(self.upload_workers)
        except (TypeError, ValueError):
            workers = 0
        if workers < 1:
            problems.append(f"upload_workers must be an integer >= 1: {self.upload_workers!r}")
        if "/" in self.manifest_name or "\\" in self.manifest_name:
            problems.append(f"manifest_name must be a bare file name: {self.manifest_name}")
        if problems:
            raise ConfigError("Invalid publish config: " + "; ".join(problems))

    # ------------------------------------------------------------------
    # JSON
    # ------------------------------------------------------------------

    def to_json(self) -> str:
        return json.dumps(asdict(self), ensure_ascii=False, indent=2)

    def save(self, path: Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(), encoding='utf-8')

    @classmethod
    def from_json(cls, json_str: str) -> 'PublishConfig':
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid config JSON: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError("Config root must be an object")
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    @classmethod
    def load(cls, path: Path) -> 'PublishConfig':
        path = Path(path)
        try:
            text = path.read_text(encoding='utf-8')
        except OSError as e:
            raise ConfigError(f"Cannot read config: {e.strerror or e}", path=str(path)) from e
        return cls.from_json(text)


__all__ = [
    "PLACEHOLDER",
    "env_var_name",
    "eval_placeholders",
    "PublishConfig",
]
