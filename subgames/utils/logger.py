import logging
import sys
from datetime import datetime
from pathlib import Path

from subgames.config import Config
from subgames.utils.cycle import get_cycle_id

ROOT_LOGGER = 'subgames'


class CycleContextFilter(logging.Filter):
    """Stamps each record with the key of the cycle running when it was emitted"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.cycle_id = get_cycle_id()
        return True


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER)

    if root.handlers:
        return root

    log_level = logging.DEBUG if Config.DEBUG else logging.INFO
    root.setLevel(log_level)

    formatter = logging.Formatter(
        '%(asctime)s - [%(cycle_id)s] - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)

    # File handler, one file per day
    log_dir = Path(Config.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(
        log_dir / f'subgames_{datetime.now().strftime("%Y%m%d")}.log',
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)

    for handler in (console_handler, file_handler):
        handler.setFormatter(formatter)
        handler.addFilter(CycleContextFilter())
        root.addHandler(handler)

    return root


def setup_logger(name: str) -> logging.Logger:
    """
    Get a logger under the ``subgames`` root.

    Handlers live on the root only, so modules that use a plain
    ``logging.getLogger(__name__)`` (the services) share the same output.
    """
    _configure_root()
    if name != ROOT_LOGGER and not name.startswith(ROOT_LOGGER + '.'):
        name = f'{ROOT_LOGGER}.{name}'
    return logging.getLogger(name)
