"""`sync-bucket` task.

Syncs the fileset (default), a directory (`dir`) or the files described by a
file-map document in the fileset (`fmap`) to an S3 bucket.
"""

from __future__ import annotations

from typing import Any, Dict, List

from .. import aws, report, s3_deploy
from ..errors import MissingOptionError, SyncError
from ..orchestrator import task
from ..orchestrator.fileset import Fileset
from ..orchestrator.logging import get_logger
from ..orchestrator.utils import require
from ..serialize import FileMap, load_file_maps


def _file_maps(opts: Dict[str, Any], fileset: Fileset) -> List[FileMap]:
    fmap = opts.get("fmap")
    if fmap:
        if fmap not in fileset:
            raise MissingOptionError(f"File map {fmap} is not in the fileset")
        return load_file_maps(fileset.tmp_file(fmap), base=fileset.root)
    if opts.get("dir"):
        return s3_deploy.dir_to_file_maps(opts["dir"])
    return s3_deploy.fileset_to_file_maps(fileset)


@task(name="sync-bucket")
def sync_bucket(params: Dict[str, Any], fileset: Fileset) -> Fileset:
    """Sync fileset (default) or directory to S3 bucket.

    - `creds` should contain `access_key` and `secret_key`
    - `fmap` names a YAML file in the fileset listing `s3_key`/`file` entries
    - `dir` syncs a filesystem directory instead of the fileset
    - `dry_run` skips all S3 side effects but reports as usual
    - `prune` deletes S3 objects that are not part of the synced files; it is
      refused when there is nothing to sync
    """
    logger = get_logger("confetti.sync_bucket")
    opts = params.get("sync_bucket") or {}

    bucket = require(opts.get("bucket"), "A bucket name is required!")
    creds = aws.resolve_creds(opts.get("creds") or params.get("creds"))

    file_maps = _file_maps(opts, fileset)
    prune = bool(opts.get("prune"))
    if prune and not file_maps:
        raise SyncError(
            f"Refusing to prune {bucket}: there are no files to sync",
            metadata={"bucket": bucket},
            retryable=False,
        )
    logger.info("Syncing %d files to %s", len(file_maps), bucket)
    results = s3_deploy.sync(
        creds,
        bucket,
        file_maps,
        dry_run=bool(opts.get("dry_run")),
        prune=prune,
        report_fn=report.s3_report,
    )
    report.summarize(results)
    return fileset
