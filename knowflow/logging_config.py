"""
Enhanced Logging for the workflow engine
Provides colored, structured logging with logger.function prefixes and value highlighting
"""

import logging
import os
import re
import sys
from datetime import datetime
from typing import Optional


class ColorCodes:
    """ANSI color codes for terminal output"""
    RESET = '\033[0m'
    BOLD = '\033[1m'
    DIM = '\033[2m'

    RED = '\033[31m'
    WHITE = '\033[37m'
    CYAN = '\033[36m'

    BRIGHT_BLACK = '\033[90m'
    BRIGHT_RED = '\033[91m'
    BRIGHT_GREEN = '\033[92m'
    BRIGHT_YELLOW = '\033[93m'
    BRIGHT_BLUE = '\033[94m'
    BRIGHT_MAGENTA = '\033[95m'
    BRIGHT_CYAN = '\033[96m'

    BG_WHITE = '\033[47m'


LEVEL_COLORS = {
    'DEBUG': ColorCodes.BRIGHT_BLACK,
    'INFO': ColorCodes.BRIGHT_BLUE,
    'WARNING': ColorCodes.BRIGHT_YELLOW,
    'ERROR': ColorCodes.BRIGHT_RED,
    'CRITICAL': ColorCodes.RED + ColorCodes.BG_WHITE + ColorCodes.BOLD,
}

SUCCESS_KEYWORDS = ['success', 'completed', 'started', 'running', 'ready']
ERROR_KEYWORDS = ['error', 'failed', 'failure', 'exception', 'cancelled', 'timeout', 'skipped']


class EnhancedFormatter(logging.Formatter):
    """Custom formatter with colors and enhanced structure"""

    def __init__(self, use_colors: bool = True):
        self.use_colors = use_colors
        super().__init__()

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
        reset = ColorCodes.RESET if self.use_colors else ''

        level_str = f"[{record.levelname:8}]"
        if self.use_colors:
            level_str = f"{LEVEL_COLORS.get(record.levelname, ColorCodes.WHITE)}{level_str}{reset}"

        # "knowflow.engine" -> "engine.execute_workflow"
        module = record.name.rsplit('.', 1)[-1]
        if self.use_colors:
            origin = f"{ColorCodes.BRIGHT_CYAN}{module}{ColorCodes.WHITE}.{ColorCodes.BRIGHT_GREEN}{record.funcName}{reset}"
        else:
            origin = f"{module}.{record.funcName}"

        message = record.getMessage()
        if self.use_colors:
            message = self._highlight(message)

        parts = [
            f"{ColorCodes.DIM if self.use_colors else ''}{timestamp}{reset}",
            level_str,
            f"[{origin}]",
            message,
        ]
        formatted = " ".join(parts)

        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)

        return formatted

    def _highlight(self, message: str) -> str:
        """Highlight quoted values, numbers, ids and status keywords"""
        message = re.sub(
            r"'([^']*)'",
            f"{ColorCodes.BRIGHT_YELLOW}'\\1'{ColorCodes.RESET}",
            message
        )

        message = re.sub(
            r'\b(\d+(?:\.\d+)?)(ms|s)?\b',
            f'{ColorCodes.BRIGHT_MAGENTA}\\1\\2{ColorCodes.RESET}',
            message
        )

        message = re.sub(
            r'\b(\w+)=([^\s,\]}\)]+)',
            f'{ColorCodes.CYAN}\\1{ColorCodes.WHITE}={ColorCodes.BRIGHT_YELLOW}\\2{ColorCodes.RESET}',
            message
        )

        # Execution ids
        message = re.sub(
            r'\b(exec-[a-f0-9]{12})\b',
            f'{ColorCodes.BRIGHT_CYAN}\\1{ColorCodes.RESET}',
            message
        )

        for keyword in SUCCESS_KEYWORDS:
            message = re.sub(
                rf'\b({keyword})\b',
                f'{ColorCodes.BRIGHT_GREEN}\\1{ColorCodes.RESET}',
                message,
                flags=re.IGNORECASE
            )

        for keyword in ERROR_KEYWORDS:
            message = re.sub(
                rf'\b({keyword})\b',
                f'{ColorCodes.BRIGHT_RED}\\1{ColorCodes.RESET}',
                message,
                flags=re.IGNORECASE
            )

        return message


def use_colors_for(stream) -> bool:
    """Decide whether to emit ANSI colors on stream"""
    if os.getenv('NO_COLOR') is not None:
        return False
    force_colors = os.getenv('FORCE_COLOR', '').lower() in ('1', 'true', 'yes')
    auto_colors = hasattr(stream, 'isatty') and stream.isatty() and os.getenv('TERM') != 'dumb'
    return force_colors or auto_colors


def setup_logging(level: Optional[str] = None, logger_name: str = "knowflow", stream=None) -> logging.Logger:
    """
    Attach the enhanced formatter to the package logger.

    Args:
        level: Log level name; defaults to LOG_LEVEL or INFO
        logger_name: Logger to configure
        stream: Output stream, stderr by default

    Returns:
        The configured logger
    """
    stream = stream or sys.stderr
    logger = logging.getLogger(logger_name)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(EnhancedFormatter(use_colors=use_colors_for(stream)))
    logger.addHandler(handler)

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    # Prevent duplicate logs
    logger.propagate = False

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    return logger
