"""Diff-based sync of local files to an S3 bucket."""

from __future__ import annotations

import hashlib
import mimetypes
import os
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from botocore.exceptions import ClientError

from . import aws
from .errors import SyncError
from .orchestrator.fileset import Fileset
from .orchestrator.logging import get_logger
from .serialize import FileMap


log = get_logger("confetti.s3_deploy")

DELETE_BATCH_SIZE = 1000

METADATA_ARGS = {
    "content_type": "ContentType",
    "cache_control": "CacheControl",
    "content_encoding": "ContentEncoding",
    "content_disposition": "ContentDisposition",
}

ReportFn = Callable[[str, str, bool], None]


def file_md5(path: Path) -> str:
    h = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def dir_to_file_maps(path: str | Path) -> List[FileMap]:
    root = Path(path)
    if not root.is_dir():
        raise SyncError(f"Not a directory: {root}", retryable=False)
    maps: List[FileMap] = []
    for dirpath, _, files in os.walk(root):
        for name in files:
            p = Path(dirpath) / name
            if p.is_file():
                maps.append(
                    {"s3_key": p.relative_to(root).as_posix(), "file": p.resolve(), "metadata": {}}
                )
    return sorted(maps, key=lambda fm: fm["s3_key"])


def fileset_to_file_maps(fileset: Fileset) -> List[FileMap]:
    return [
        {"s3_key": tf.path, "file": tf.file, "metadata": {}}
        for tf in fileset.output_files()
    ]


def remote_etags(s3, bucket: str) -> Dict[str, str]:
    etags: Dict[str, str] = {}
    try:
        for page in s3.get_paginator("list_objects_v2").paginate(Bucket=bucket):
            for obj in page.get("Contents", []):
                etags[obj["Key"]] = obj.get("ETag", "").strip('"')
    except ClientError as e:
        raise SyncError(
            f"Failed to list s3://{bucket}: {e}", metadata={"bucket": bucket}
        ) from e
    return etags


def _extra_args(fm: FileMap) -> Dict[str, str]:
    meta = fm.get("metadata") or {}
    extra = {METADATA_ARGS[k]: v for k, v in meta.items() if k in METADATA_ARGS}
    if "ContentType" not in extra:
        guessed, _ = mimetypes.guess_type(fm["s3_key"])
        extra["ContentType"] = guessed or "application/octet-stream"
    return extra


def _upload(s3, bucket: str, fm: FileMap) -> None:
    try:
        with open(fm["file"], "rb") as body:
            s3.put_object(Bucket=bucket, Key=fm["s3_key"], Body=body, **_extra_args(fm))
    except ClientError as e:
        raise SyncError(
            f"Failed to upload {fm['s3_key']}: {e}",
            metadata={"bucket": bucket, "s3_key": fm["s3_key"]},
        ) from e


def _delete(s3, bucket: str, keys: List[str]) -> None:
    for i in range(0, len(keys), DELETE_BATCH_SIZE):
        batch = keys[i: i + DELETE_BATCH_SIZE]
        try:
            resp = s3.delete_objects(
                Bucket=bucket,
                Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
            )
        except ClientError as e:
            raise SyncError(f"Failed to delete objects: {e}", metadata={"bucket": bucket}) from e
        errors = resp.get("Errors") or []
        if errors:
            raise SyncError(
                f"{len(errors)} objects could not be deleted",
                metadata={"bucket": bucket, "errors": errors},
            )


def _dedupe(file_maps: Iterable[FileMap]) -> Dict[str, FileMap]:
    by_key: Dict[str, FileMap] = {}
    for fm in file_maps:
        key = fm["s3_key"]
        if key in by_key:
            log.warning("Duplicate s3 key %s, using %s", key, fm["file"])
        fm = dict(fm, file=Path(fm["file"]))
        if not fm["file"].is_file():
            raise SyncError(
                f"File for {key} does not exist: {fm['file']}",
                metadata={"s3_key": key},
                retryable=False,
            )
        by_key[key] = fm
    return by_key


def sync(
    creds: Optional[Dict[str, str]],
    bucket: str,
    file_maps: Iterable[FileMap],
    dry_run: bool = False,
    prune: bool = False,
    report_fn: Optional[ReportFn] = None,
    client=None,
) -> Dict[str, List[str]]:
    """Make `bucket` match `file_maps`.

    New keys are uploaded, keys whose ETag differs from the local MD5 are
    re-uploaded, and with `prune` remote keys absent from `file_maps` are
    deleted. `dry_run` reports the same actions without writing to S3.
    """
    s3 = client or aws.client("s3", creds or {})
    local = _dedupe(file_maps)
    remote = remote_etags(s3, bucket)
    log.info("Syncing %d files to s3://%s (%d objects present)", len(local), bucket, len(remote))

    results: Dict[str, List[str]] = {"uploaded": [], "updated": [], "deleted": [], "unchanged": []}

    def report(action: str, key: str) -> None:
        if report_fn is not None:
            report_fn(action, key, dry_run)

    for key in sorted(local):
        fm = local[key]
        etag = remote.get(key)
        if etag is None:
            action, target = "upload", results["uploaded"]
        elif "-" in etag or etag != file_md5(fm["file"]):
            action, target = "update", results["updated"]
        else:
            results["unchanged"].append(key)
            continue
        if not dry_run:
            _upload(s3, bucket, fm)
        target.append(key)
        report(action, key)

    if prune:
        stale = sorted(k for k in remote if k not in local)
        if stale and not dry_run:
            _delete(s3, bucket, stale)
        for key in stale:
            results["deleted"].append(key)
            report("delete", key)

    return results
