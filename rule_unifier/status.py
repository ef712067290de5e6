"""
status.py

Run-scoped state shared by the pipeline stages.

A RunContext is created once per run and handed to each stage. It holds:
 - an append-only status log of human-readable progress lines,
 - an append-only attribution buffer ("! <url>" per configured source).
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class StatusLog:
    """Append-only sequence of progress messages."""

    lines: list[str] = field(default_factory=list)

    def append(self, line: str) -> None:
        self.lines.append(line)
        logger.debug(line)

    def render(self, as_html: bool = False) -> str:
        """Join all lines; with `as_html` wrap each one in a <p> element."""
        if as_html:
            return "".join(f"<p>{html.escape(line)}</p>\n" for line in self.lines)
        return "".join(f"{line}\n" for line in self.lines)

    def __len__(self) -> int:
        return len(self.lines)


@dataclass
class RunContext:
    """Status log and attribution block for a single run."""

    status: StatusLog = field(default_factory=StatusLog)
    _attributions: list[str] = field(default_factory=list)

    def attribute(self, url: str) -> None:
        self._attributions.append(f"! {url}\n")

    @property
    def attribution_block(self) -> str:
        return "".join(self._attributions)

    def log(self, line: str) -> None:
        self.status.append(line)
