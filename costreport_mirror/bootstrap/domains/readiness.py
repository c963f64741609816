"""Bounded wait for network reachability before bootstrap work starts."""
import logging
import socket
import time
from typing import Callable

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_SECONDS = 3.0


def is_reachable(host: str, port: int, timeout: float = CONNECT_TIMEOUT_SECONDS) -> bool:
    """True when a TCP connection to host:port succeeds."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def wait_until_ready(
    host: str,
    port: int,
    max_wait_seconds: float,
    poll_interval_seconds: float = 5.0,
    min_delay_seconds: float = 0.0,
    probe: Callable[[str, int], bool] = is_reachable,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """
    Poll host:port until it answers or max_wait_seconds have passed.

    Args:
        host, port: Endpoint that must be reachable before installing
        max_wait_seconds: Upper bound on the whole wait, min delay included
        poll_interval_seconds: Pause between probes
        min_delay_seconds: Fixed pause before the first probe

    Returns:
        True if the endpoint answered, False on timeout
    """
    if min_delay_seconds:
        logger.info(f"Waiting {min_delay_seconds:.0f}s before readiness checks")
        sleep(min_delay_seconds)

    deadline = clock() + max(max_wait_seconds - min_delay_seconds, 0)
    attempts = 0
    while True:
        attempts += 1
        if probe(host, port):
            logger.info(f"{host}:{port} reachable after {attempts} attempt(s)")
            return True
        remaining = deadline - clock()
        if remaining <= 0:
            logger.warning(f"{host}:{port} still unreachable after {max_wait_seconds:.0f}s; continuing")
            return False
        sleep(min(poll_interval_seconds, remaining))
