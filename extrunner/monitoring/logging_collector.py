import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from ..core.models import BuildGroup

GROUP_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class GroupLogHandler(logging.FileHandler):
    """Logging handler that copies records into a single group's build log."""

    def __init__(self, group: BuildGroup):
        super().__init__(str(group.log_path), mode='a', encoding='utf-8')
        self.group_index = group.index
        self.log_path = Path(group.log_path)


class LoggingCollector:
    """Manages lifecycle of the group-specific logging handler."""

    def __init__(self, level: int = logging.DEBUG):
        self.level = level
        self._handler: Optional[GroupLogHandler] = None

    @property
    def active_log_path(self) -> Optional[Path]:
        return self._handler.log_path if self._handler is not None else None

    def start_group(self, group: BuildGroup) -> None:
        self.stop_group()  # Only one group builds at a time
        handler = GroupLogHandler(group)
        handler.setLevel(self.level)
        handler.setFormatter(logging.Formatter(GROUP_LOG_FORMAT))
        logging.getLogger().addHandler(handler)
        self._handler = handler

    def stop_group(self) -> None:
        if self._handler is not None:
            logging.getLogger().removeHandler(self._handler)
            self._handler.close()
            self._handler = None

    @contextmanager
    def capture(self, group: BuildGroup) -> Iterator[None]:
        """Collect every record logged while the group builds"""
        self.start_group(group)
        try:
            yield
        finally:
            self.stop_group()
