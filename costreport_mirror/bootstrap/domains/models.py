"""Domain models for the deferred bootstrap."""
from dataclasses import dataclass, field
from typing import List


@dataclass
class BootstrapState:
    """Bootstrap progress as observed on the machine. Never persisted."""
    tool_installed: bool = False
    missing_packages: List[str] = field(default_factory=list)
    schedule_registered: bool = False
    unit_installed: bool = False

    @property
    def packages_installed(self) -> bool:
        return not self.missing_packages

    @property
    def complete(self) -> bool:
        return (
            self.tool_installed
            and self.packages_installed
            and self.schedule_registered
        )
