"""Check Result data model."""
from dataclasses import dataclass


@dataclass
class CheckResult:
    """Outcome of an external BIND command.

    Attributes:
        success: True when the command exited with status 0
        output: Combined stdout/stderr of the command
        command: The command line that was run
    """
    success: bool
    output: str = ""
    command: str = ""

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "output": self.output,
            "command": self.command,
        }
