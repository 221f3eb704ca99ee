from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from releaser.output.console import ConsoleProtocol, RichConsole


@dataclass(frozen=True, slots=True)
class CLIContext:
    root: Path
    console: ConsoleProtocol


def build_context() -> CLIContext:
    """Context for commands run from the current directory."""
    return CLIContext(root=Path.cwd(), console=RichConsole())
