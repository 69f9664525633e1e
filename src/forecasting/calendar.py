"""Holiday calendar lookup used when synthesizing future days."""

import logging
from pathlib import Path
from typing import FrozenSet, Iterable, Union

from src.config import DEFAULT_HOLIDAYS
from src.schemas import DateLike, to_date

# Configure module logger
logger = logging.getLogger(__name__)


class HolidayCalendar:
    """Immutable set of holiday dates.

    Dates not in the set are treated as regular days.
    """

    def __init__(self, dates: Iterable[DateLike] = DEFAULT_HOLIDAYS):
        self._dates: FrozenSet = frozenset(to_date(d) for d in dates)

    def __contains__(self, day: DateLike) -> bool:
        return self.is_holiday(day)

    def __len__(self) -> int:
        return len(self._dates)

    def is_holiday(self, day: DateLike) -> bool:
        return to_date(day) in self._dates

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "HolidayCalendar":
        """Read one ISO date per line; blank lines and ``#`` comments are ignored.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        calendar_file = Path(path)
        if not calendar_file.exists():
            raise FileNotFoundError(f"Holiday calendar not found: {path}")

        dates = []
        for line in calendar_file.read_text().splitlines():
            line = line.split("#", 1)[0].strip()
            if line:
                dates.append(line)

        logger.info(f"Loaded {len(dates)} holidays from {path}")
        return cls(dates)
