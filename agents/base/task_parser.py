# =============================================================================
# TICKET AGENT SYSTEM - TASK BLOCK PARSER
# =============================================================================
"""
Task Block Parser

Turns one model response into an ordered list of atomic work items.

Protocol:
    The model is instructed to separate tasks with TASK_DELIMITER, a line
    holding only "@@@@". Within a task, the first line is the title and
    the remaining lines are the description.

The parser is total: it never raises on malformed input. Unusable
segments are dropped and counted, so prompt drift shows up in the
logs and in the dropped-segments metric instead of as an exception.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional


logger = logging.getLogger(__name__)


TASK_DELIMITER = "\n@@@@\n"


@dataclass(frozen=True)
class TaskBlock:
    """One parsed work item."""
    title: str
    description: str = ""


@dataclass
class ParseReport:
    """
    Result of a parse with its degradation signal.

    Attributes:
        blocks: Parsed task blocks, in source order
        dropped_segments: Segments discarded as empty or untitled
    """
    blocks: List[TaskBlock] = field(default_factory=list)
    dropped_segments: int = 0

    @property
    def degraded(self) -> bool:
        return self.dropped_segments > 0


class TaskBlockParser:
    """
    Splits delimiter-separated model output into TaskBlocks.

    Usage:
        parser = TaskBlockParser(metrics=metrics)
        blocks = parser.parse(response_text)
    """

    def __init__(self, delimiter: str = TASK_DELIMITER, metrics=None):
        self.delimiter = delimiter
        self.metrics = metrics

    def parse(self, text: str) -> List[TaskBlock]:
        """Parse text into task blocks. Never raises."""
        return self.parse_with_report(text).blocks

    def parse_with_report(self, text: Optional[str]) -> ParseReport:
        """
        Parse text and report how many segments were dropped.

        A whitespace-only response is "no tasks", not degradation, so it
        yields an empty report with zero dropped segments.
        """
        report = ParseReport()
        if not text or not text.strip():
            return report

        for segment in text.split(self.delimiter):
            block = self._parse_segment(segment)
            if block is None:
                report.dropped_segments += 1
            else:
                report.blocks.append(block)

        if report.degraded:
            logger.warning(
                f"Dropped {report.dropped_segments} unusable segment(s) "
                f"while parsing {len(report.blocks)} task(s)"
            )
            if self.metrics is not None:
                self.metrics.record_parse_degradation(report.dropped_segments)

        return report

    @staticmethod
    def _parse_segment(segment: str) -> Optional[TaskBlock]:
        segment = segment.strip()
        if not segment:
            return None

        lines = segment.split("\n")
        title = lines[0].strip()
        if not title:
            return None

        description = "\n".join(lines[1:]).strip()
        return TaskBlock(title=title, description=description)


def parse_tasks(text: str) -> List[TaskBlock]:
    """Parse with the default delimiter."""
    return TaskBlockParser().parse(text)
