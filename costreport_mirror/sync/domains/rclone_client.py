"""rclone subprocess wrapper."""
import json
import logging
import os
import subprocess
from typing import Dict, List, Mapping, Optional, Sequence

from ...errors import SyncTransferError
from .models import RemoteObject, SyncJobDescriptor

logger = logging.getLogger(__name__)

RCLONE_BINARY = "rclone"
# Shell convention for "command not found".
TOOL_MISSING_EXIT_CODE = 127
# Shell convention for "killed by signal N": 128 + N.
SIGNAL_EXIT_CODE_BASE = 128


def exit_code_of(returncode: int) -> int:
    """rclone's exit code; a kill by signal N (returncode -N) becomes 128 + N."""
    if returncode < 0:
        return SIGNAL_EXIT_CODE_BASE - returncode
    return returncode

def build_sync_command(job: SyncJobDescriptor, binary: str = RCLONE_BINARY) -> List[str]:
    """
    Build the rclone command line for a mirror run.

    `rclone copy` adds and overwrites; `rclone sync` also deletes
    destination objects missing from the source and is only used when the
    job asks for pruning.
    """
    cmd = [
        binary,
        "sync" if job.prune else "copy",
        job.source,
        job.destination,
        "--checksum",
        "--s3-chunk-size", job.chunk_size,
        "--s3-upload-concurrency", str(job.upload_concurrency),
        "--transfers", str(job.transfers),
        "--retries", "1",
    ]
    if job.log_file:
        cmd += ["--log-file", job.log_file]
    if job.verbose:
        cmd.append("-v")
    if job.dry_run:
        cmd.append("--dry-run")
    return cmd


def build_env(job: SyncJobDescriptor, extra: Mapping[str, str], base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """Child environment: parent env plus RCLONE_CONFIG and credentials."""
    env = dict(os.environ if base is None else base)
    if job.rclone_config:
        env["RCLONE_CONFIG"] = job.rclone_config
    env.update(extra)
    return env


class RcloneClient:
    """Runs rclone; every failure surfaces as SyncTransferError."""

    def __init__(self, binary: str = RCLONE_BINARY):
        self.binary = binary

    def _run(self, cmd: Sequence[str], env: Mapping[str, str], capture: bool) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                list(cmd),
                env=dict(env),
                capture_output=capture,
                text=True,
                check=False,
            )
        except FileNotFoundError as e:
            raise SyncTransferError(
                f"rclone not found ({self.binary}); run bootstrap to install it",
                exit_code=TOOL_MISSING_EXIT_CODE,
            ) from e

    def transfer(self, cmd: Sequence[str], env: Mapping[str, str]) -> int:
        """
        Run a transfer command; rclone writes its own progress to the log file.

        Returns:
            rclone's exit code (always 0; non-zero raises)

        Raises:
            SyncTransferError: With rclone's exit code unchanged
        """
        result = self._run(cmd, env, capture=False)
        if result.returncode != 0:
            code = exit_code_of(result.returncode)
            raise SyncTransferError(
                f"rclone {cmd[1]} exited with code {code}",
                exit_code=code,
            )
        return result.returncode

    def list_objects(self, remote: str, env: Mapping[str, str]) -> List[RemoteObject]:
        """
        List every object under an rclone address with its MD5 checksum.

        Raises:
            SyncTransferError: If listing fails or returns unparseable output
        """
        cmd = [self.binary, "lsjson", remote, "-R", "--hash", "--hash-type", "MD5", "--files-only"]
        result = self._run(cmd, env, capture=True)
        if result.returncode != 0:
            code = exit_code_of(result.returncode)
            raise SyncTransferError(
                f"rclone lsjson {remote} exited with code {code}: {(result.stderr or '').strip()}",
                exit_code=code,
            )
        try:
            entries = json.loads(result.stdout or "[]")
        except json.JSONDecodeError as e:
            raise SyncTransferError(f"Unparseable listing for {remote}: {e}") from e

        return [
            RemoteObject(
                path=entry["Path"],
                size=int(entry.get("Size", 0)),
                checksum=(entry.get("Hashes") or {}).get("md5"),
            )
            for entry in entries
        ]
