from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional
import sys

from .errors import ConfigError, PublishError
from .packaging.manifest import (
    MANIFEST_NAME,
    DEFAULT_EXCLUDE_SUFFIXES,
    build_manifest,
    read_manifest,
    verify_manifest,
)
from .packaging.publish_config import PublishConfig
from .packaging.publisher import Publisher
from .packaging.storage import LocalStorage, MemoryStorage, S3Storage, StorageBackend
from .packaging.tags import gen_tag


def main(argv: List[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="scriptpatch", description="Script bundle manifest and incremental publisher")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log warnings and errors")
    sub = parser.add_subparsers(dest="cmd")

    # manifest: write Manifest.db for a build directory
    p_man = sub.add_parser("manifest", help="Build a manifest for a build directory")
    p_man.add_argument("root", type=str, help="Build output directory")
    p_man.add_argument("--output", type=str, default=None, help=f"Manifest path (default: <root>/{MANIFEST_NAME})")
    p_man.add_argument("--exclude-suffix", action="append", default=None, help="Skip files with this suffix (repeatable)")

    # diff: compare two manifests
    p_diff = sub.add_parser("diff", help="Compare a remote manifest with a local one")
    p_diff.add_argument("remote", type=str, help="Remote (previously published) manifest")
    p_diff.add_argument("local", type=str, help="Local manifest")

    # verify: check files against a manifest
    p_ver = sub.add_parser("verify", help="Verify a directory against its manifest")
    p_ver.add_argument("root", type=str, help="Directory to verify")
    p_ver.add_argument("--manifest", type=str, default=None, help=f"Manifest path (default: <root>/{MANIFEST_NAME})")

    # tag: bundle tag for script paths
    p_tag = sub.add_parser("tag", help="Print the bundle tag for script paths")
    p_tag.add_argument("paths", nargs="+", help="Script paths relative to the script root")

    # publish: incremental upload
    p_pub = sub.add_parser("publish", help="Publish changed files to object storage")
    p_pub.add_argument("--config", type=str, default=None, help="Publish config JSON")
    p_pub.add_argument("--source", type=str, default=None, help="Build directory (overrides build_dir/channel/platform)")
    p_pub.add_argument("--endpoint", type=str, default=None, help="Storage endpoint URL")
    p_pub.add_argument("--bucket", type=str, default=None, help="Storage bucket")
    p_pub.add_argument("--access-key", type=str, default=None, help="Storage access key")
    p_pub.add_argument("--secret-key", type=str, default=None, help="Storage secret key")
    p_pub.add_argument("--remote-uri", type=str, default=None, help="Remote key prefix")
    p_pub.add_argument("--staging-dir", type=str, default=None, help="Keep staged files here (default: temp dir)")
    p_pub.add_argument("--workers", type=int, default=None, help="Parallel content uploads")
    p_pub.add_argument("--set", action="append", default=[], metavar="NAME=VALUE", help="Placeholder value, e.g. Version=1.0.0")
    p_pub.add_argument("--local-dir", type=str, default=None, help="Publish into a local directory instead of S3")
    p_pub.add_argument("--dry-run", action="store_true", help="Publish into memory only")

    args = parser.parse_args(list(argv) if argv is not None else sys.argv[1:])
    _setup_logging(args.verbose, args.quiet)

    if args.cmd == "manifest":
        return _cmd_manifest(args.root, args.output, args.exclude_suffix)
    if args.cmd == "diff":
        return _cmd_diff(args.remote, args.local)
    if args.cmd == "verify":
        return _cmd_verify(args.root, args.manifest)
    if args.cmd == "tag":
        for p in args.paths:
            print(f"{p} -> {gen_tag(p)}")
        return 0
    if args.cmd == "publish":
        return _cmd_publish(args)

    parser.print_help()
    return 2


def _setup_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.WARNING if quiet else logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def _cmd_manifest(root: str, output: Optional[str], exclude: Optional[List[str]]) -> int:
    root_dir = Path(root)
    if not root_dir.is_dir():
        print(f"Build dir not found: {root_dir}")
        return 2
    out = Path(output) if output else root_dir / MANIFEST_NAME
    try:
        manifest = build_manifest(
            root_dir,
            manifest_name=out.name if out.parent.resolve() == root_dir.resolve() else MANIFEST_NAME,
            exclude_suffixes=tuple(exclude) if exclude else DEFAULT_EXCLUDE_SUFFIXES,
        )
    except PublishError as e:
        print(f"Manifest build failed: {e}")
        return 1
    manifest.write(out)
    print(f"Wrote {len(manifest)} entries: {out}")
    return 0


def _cmd_diff(remote_path: str, local_path: str) -> int:
    remote = read_manifest(Path(remote_path))
    if remote.error:
        print(f"Warning: remote manifest: {remote.error}")
    local = read_manifest(Path(local_path))
    if local.error:
        print(f"Local manifest unusable: {local.error}")
        return 2
    diff = remote.compare(local)
    for label, entries in (("+", diff.added), ("~", diff.modified), ("-", diff.removed)):
        for e in entries:
            print(f"{label} {e.name} {e.md5} {e.size}")
    print(diff.summary())
    return 0


def _cmd_verify(root: str, manifest_path: Optional[str]) -> int:
    root_dir = Path(root)
    path = Path(manifest_path) if manifest_path else root_dir / MANIFEST_NAME
    manifest = read_manifest(path)
    if manifest.error:
        print(f"Manifest unusable: {manifest.error}")
        return 2
    try:
        problems = verify_manifest(root_dir, manifest)
    except PublishError as e:
        print(f"Verify failed: {e}")
        return 1
    for p in problems:
        print(p)
    if problems:
        return 1
    print(f"OK: {len(manifest)} files")
    return 0


def _cmd_publish(args: argparse.Namespace) -> int:
    try:
        config = PublishConfig.load(Path(args.config)) if args.config else PublishConfig()
    except ConfigError as e:
        print(f"Config error: {e}")
        return 2

    if args.source:
        config.build_dir, config.channel, config.platform = args.source, "", ""
    for name in ("endpoint", "bucket", "access_key", "secret_key", "remote_uri", "staging_dir"):
        value = getattr(args, name)
        if value is not None:
            setattr(config, name, value)
    if args.workers is not None:
        config.upload_workers = args.workers
    for item in args.set:
        key, sep, value = item.partition("=")
        if not sep:
            print(f"Invalid --set format: {item}, expected NAME=VALUE")
            return 2
        config.variables[key] = value

    config = config.resolved()
    use_s3 = not (args.local_dir or args.dry_run)
    try:
        config.validate(require_storage=use_s3)
    except ConfigError as e:
        print(f"Config error: {e}")
        return 2

    bucket = config.bucket if config.bucket and "bucket" not in config.unresolved() else "default"
    storage: StorageBackend
    if args.dry_run:
        storage = MemoryStorage(bucket=bucket)
    elif args.local_dir:
        storage = LocalStorage(Path(args.local_dir), bucket=bucket)
    else:
        storage = S3Storage.from_config(config)

    result = Publisher(config, storage).run()
    print(result.describe())
    return 0 if result.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
