"""
Logging configuration for the spatial workflows package.

Handlers are described as a ``logging.config.dictConfig`` mapping: a console
handler always, plus a dated log file and an error-only log file when a log
directory is in use.
"""
import json
import logging
import logging.config
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from .config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DETAILED_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(lineno)d - %(message)s'
LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class JsonFormatter(logging.Formatter):
    """One JSON object per record, with exception details and ``extra={'data': ...}``."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'location': f"{record.module}.{record.funcName}:{record.lineno}",
        }
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        data = getattr(record, 'data', None)
        if data is not None:
            entry['data'] = data
        return json.dumps(entry, default=str)


def _logging_dict(
    level: str, log_dir: Optional[Path], json_format: bool, verbose_libraries: Dict[str, str]
) -> Dict[str, Any]:
    handlers: Dict[str, Dict[str, Any]] = {
        'console': {
            'class': 'logging.StreamHandler',
            'level': level,
            'formatter': 'json' if json_format else 'standard',
        },
    }
    if log_dir is not None:
        stamp = datetime.now().strftime('%Y%m%d')
        handlers['file'] = {
            'class': 'logging.FileHandler',
            'level': level,
            'formatter': 'json' if json_format else 'detailed',
            'filename': str(log_dir / f"spatial_workflows_{stamp}.log"),
            'encoding': 'utf8',
        }
        handlers['error_file'] = {
            'class': 'logging.FileHandler',
            'level': 'ERROR',
            'formatter': 'detailed',
            'filename': str(log_dir / 'spatial_workflows_error.log'),
            'encoding': 'utf8',
        }

    return {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'standard': {'format': LOG_FORMAT},
            'detailed': {'format': DETAILED_FORMAT},
            'json': {'()': JsonFormatter},
        },
        'handlers': handlers,
        'loggers': {name: {'level': lib_level.upper()} for name, lib_level in verbose_libraries.items()},
        'root': {'level': level, 'handlers': list(handlers)},
    }


def setup_logging(
    log_level: str = 'INFO',
    log_dir: Optional[str] = None,
    json_format: bool = False,
    verbose_libraries: Optional[Dict[str, str]] = None,
    log_to_file: bool = True,
) -> None:
    """
    Configure the root logger.

    Args:
        log_level: Level name for the root logger and its handlers.
        log_dir: Directory for log files. Defaults to ``directories.logs_dir``
            of the global configuration.
        json_format: Emit JSON records instead of plain text.
        verbose_libraries: Per-library level overrides, e.g. ``{'libpysal': 'ERROR'}``.
        log_to_file: Write the dated and error log files.
    """
    level = log_level.upper()
    if level not in LEVELS:
        level = 'INFO'

    directory = None
    if log_to_file:
        if log_dir is None:
            from .config import config as global_config
            log_dir = global_config.get('directories.logs_dir', 'logs')
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)

    logging.config.dictConfig(_logging_dict(level, directory, json_format, verbose_libraries or {}))

    # islands and disconnected components are reported as warnings
    logging.captureWarnings(True)

    logging.getLogger(__name__).info(f"Logging initialized at level {level}")


def setup_logging_from_config(cfg: Optional[Config] = None, log_to_file: bool = True) -> None:
    """Configure logging from the ``logging`` section of a Config."""
    if cfg is None:
        from .config import config as cfg
    settings = cfg.settings().logging
    setup_logging(
        log_level=settings.log_level,
        log_dir=settings.logs_dir or cfg.get('directories.logs_dir'),
        verbose_libraries=settings.verbose_libraries,
        log_to_file=log_to_file,
    )
