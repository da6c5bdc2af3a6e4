import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler

from colorama import Fore, Style, init

init(autoreset=True)

class ColoredFormatter(logging.Formatter):
    """Custom formatter with color support for console output."""
    COLORS = {
        'DEBUG': Fore.WHITE + Style.DIM,
        'INFO': Fore.CYAN,
        'WARNING': Fore.YELLOW,
        'ERROR': Fore.RED,
        'CRITICAL': Fore.RED + Style.BRIGHT
    }
    RESET = Style.RESET_ALL

    def format(self, record):
        levelname = record.levelname
        if levelname in self.COLORS:
            record = logging.makeLogRecord(record.__dict__)
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.RESET}"
        return super().format(record)

class LoggingConfigurator:
    """Configures process-wide logging for a search run."""

    LOG_FILE = "tunesearch.log"
    FAILURE_LOG_FILE = "failures.log"

    def __init__(self, config: dict):
        self.config = config.get('logging', {})
        self.log_level = getattr(logging, self.config.get('level', 'INFO').upper())
        self.log_dir = Path(self.config.get('log_dir', 'logs'))

    def setup(self) -> None:
        """Setup all loggers and handlers."""
        root_logger = logging.getLogger()
        root_logger.setLevel(self.log_level)
        root_logger.handlers = []  # Clear existing

        if self.config.get('log_to_console', True):
            if sys.platform == 'win32':
                sys.stdout.reconfigure(encoding='utf-8')

            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(self.log_level)

            fmt = '[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s'
            if self.config.get('colorful_console', True):
                formatter = ColoredFormatter(fmt, datefmt='%Y-%m-%d %H:%M:%S')
            else:
                formatter = logging.Formatter(fmt, datefmt='%Y-%m-%d %H:%M:%S')

            console_handler.setFormatter(formatter)
            root_logger.addHandler(console_handler)

        # File Handler (always UTF-8)
        if self.config.get('log_to_file', True):
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._add_file_handler(root_logger, self.LOG_FILE)
            # Failed fits, surrogate fallbacks and timeouts are all logged at WARNING or above
            if self.config.get('log_failures', True):
                self._add_file_handler(root_logger, self.FAILURE_LOG_FILE, level=logging.WARNING)

    def _add_file_handler(self, logger: logging.Logger, filename: str, level: int = logging.DEBUG):
        file_path = self.log_dir / filename
        handler = RotatingFileHandler(
            file_path,
            maxBytes=10*1024*1024,
            backupCount=5,
            encoding='utf-8'
        )
        handler.setLevel(level)
        formatter = logging.Formatter('[%(asctime)s] [%(levelname)s] [%(name)s] [%(funcName)s] %(message)s')
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    def get_logger(self, name: str) -> logging.Logger:
        return logging.getLogger(name)
