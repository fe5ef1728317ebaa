"""
MiniTerm: terminal-only mode.
"""

from .tool import SerialTool


class MiniTerm(SerialTool):
    name_short = "MT"
    banner = "Miniterm 1.0"

    def run_mode(self) -> None:
        self.terminal()
