"""Workflow for the one-way mirror and its checksum-based check."""
import logging
import time
from typing import Iterable, Mapping, Optional
from ..domains.models import MirrorPlan, RemoteObject, SyncJobDescriptor, SyncResult
from ..domains.rclone_client import RcloneClient, build_env, build_sync_command
from ...secrets.domains.models import Credential

logger = logging.getLogger(__name__)


def _credential_env(credentials: Mapping[str, Credential]) -> dict:
    return {env_name: credential.value for env_name, credential in credentials.items()}


def sync(
    job: SyncJobDescriptor,
    credentials: Mapping[str, Credential],
    client: Optional[RcloneClient] = None,
) -> SyncResult:
    """
    Mirror job.source onto job.destination.

    Credentials reach rclone through the child environment only.

    Args:
        job: What to mirror; never modified
        credentials: Environment variable name -> Credential

    Returns:
        SyncResult for the completed transfer

    Raises:
        SyncTransferError: rclone failed; exit_code is rclone's
    """
    client = client or RcloneClient()
    cmd = build_sync_command(job, binary=client.binary)
    env = build_env(job, _credential_env(credentials))

    mode = "sync (pruning)" if job.prune else "copy"
    logger.info(f"Mirroring {job.source} -> {job.destination} [{mode}]")

    started = time.monotonic()
    returncode = client.transfer(cmd, env)
    duration = time.monotonic() - started

    logger.info(f"Mirror completed in {duration:.1f}s")
    return SyncResult(returncode=returncode, duration_seconds=duration, command=tuple(cmd))


def plan_mirror(
    source: Iterable[RemoteObject],
    destination: Iterable[RemoteObject],
    prune: bool = False,
) -> MirrorPlan:
    """
    Work out which objects a mirror run would transfer.

    Content checksums decide; modification times are ignored. When either
    side has no checksum for an object the sizes are compared instead,
    which is what rclone --checksum does.
    """
    dest_by_path = {obj.path: obj for obj in destination}
    plan = MirrorPlan()

    for obj in sorted(source, key=lambda o: o.path):
        existing = dest_by_path.pop(obj.path, None)
        if existing is None:
            plan.to_copy.append(obj.path)
        elif obj.checksum and existing.checksum:
            if obj.checksum == existing.checksum:
                plan.unchanged.append(obj.path)
            else:
                plan.to_update.append(obj.path)
        elif obj.size != existing.size:
            plan.to_update.append(obj.path)
        else:
            plan.unchanged.append(obj.path)

    if prune:
        plan.to_delete = sorted(dest_by_path)

    return plan


def check(
    job: SyncJobDescriptor,
    credentials: Mapping[str, Credential],
    client: Optional[RcloneClient] = None,
) -> MirrorPlan:
    """List both sides and report what the next mirror run would do."""
    client = client or RcloneClient()
    env = build_env(job, _credential_env(credentials))

    source = client.list_objects(job.source, env)
    destination = client.list_objects(job.destination, env)
    plan = plan_mirror(source, destination, prune=job.prune)

    logger.info(
        f"Check {job.source} -> {job.destination}: "
        f"{len(plan.to_copy)} new, {len(plan.to_update)} changed, "
        f"{len(plan.to_delete)} to delete, {len(plan.unchanged)} unchanged"
    )
    return plan
