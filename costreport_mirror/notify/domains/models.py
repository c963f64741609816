"""Domain models for failure alerts."""
from dataclasses import dataclass


@dataclass(frozen=True)
class AlertEvent:
    """A single failure alert; published once, then discarded."""
    exit_code: int
    host_id: str
    message: str
    topic: str

    def body(self) -> str:
        return f"[{self.host_id}] exit code {self.exit_code}: {self.message}"
