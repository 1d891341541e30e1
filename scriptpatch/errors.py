from __future__ import annotations

from dataclasses import dataclass


@dataclass
class PublishError(Exception):
    message: str
    path: str | None = None
    key: str | None = None

    def __str__(self) -> str:  # pragma: no cover - formatting
        ctx = []
        if self.path:
            ctx.append(f"file: {self.path}")
        if self.key:
            ctx.append(f"key: {self.key}")
        return f"{self.message} ({', '.join(ctx)})" if ctx else self.message


@dataclass
class ManifestError(PublishError):
    """Local manifest missing or malformed."""


@dataclass
class StorageError(PublishError):
    """Remote get/put failed."""


@dataclass
class ObjectNotFound(StorageError):
    pass


@dataclass
class ConfigError(PublishError):
    pass
