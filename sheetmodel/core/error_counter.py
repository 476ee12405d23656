"""Error and warning counter shared by all stages of parsing a workbook."""

from dataclasses import dataclass


@dataclass
class ErrorCounter:
    """Counts reported problems.

    Parsing never stops on a data problem; it reports, counts and continues. The caller
    inspects the counts afterwards, e.g. sorting is skipped once an error was counted.
    """
    no_errors: int = 0
    no_warnings: int = 0

    def error(self) -> None:
        self.no_errors += 1

    def warning(self) -> None:
        self.no_warnings += 1

    @property
    def has_errors(self) -> bool:
        return self.no_errors > 0
