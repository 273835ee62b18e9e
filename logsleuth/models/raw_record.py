"""
Raw Record data model.

One physical line of input, as read from a log file.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class RawRecord:
    """
    A single line read from a log source.

    Multi-line records (stack traces, slow-log entries) are assembled by the
    parsers from consecutive RawRecords; the records themselves never change.
    """

    file_id: str            # Path or label of the source file
    line_number: int        # 1-based position inside the read window
    offset: int             # Absolute byte offset of the line in the file
    text: str               # Line content without the trailing newline

    @property
    def is_blank(self) -> bool:
        """Check if the line carries no content."""
        return not self.text.strip()

    def __str__(self) -> str:
        return f"{self.file_id}:{self.line_number} {self.text}"
