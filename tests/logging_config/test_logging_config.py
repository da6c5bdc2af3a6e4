import logging
import os
from pathlib import Path

from colorama import Fore

from tunesearch.logging_config import ColoredFormatter, LoggingConfigurator


def test_logger_creation(tmp_path):
    # Change CWD to tmp_path to avoid creating logs in project root
    old_cwd = os.getcwd()
    os.chdir(tmp_path)
    try:
        config = {'logging': {'level': 'DEBUG', 'log_to_file': True}}
        lc = LoggingConfigurator(config)
        lc.setup()

        logger = lc.get_logger('test_mod')
        logger.info("Test message")

        assert Path("logs/tunesearch.log").exists()
        with open("logs/tunesearch.log", 'r', encoding='utf-8') as f:
            assert "Test message" in f.read()
    finally:
        logging.shutdown()
        logging.getLogger().handlers = []
        os.chdir(old_cwd)


def test_console_only_creates_no_log_dir(tmp_path):
    config = {'logging': {'level': 'WARNING', 'log_to_file': False, 'log_dir': str(tmp_path / 'logs')}}
    try:
        LoggingConfigurator(config).setup()
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert not (tmp_path / 'logs').exists()
    finally:
        logging.getLogger().handlers = []


def test_colored_formatter_does_not_mutate_record():
    record = logging.LogRecord('x', logging.ERROR, __file__, 1, "bad fit", None, None)
    output = ColoredFormatter('%(levelname)s %(message)s').format(record)
    assert Fore.RED in output
    assert record.levelname == 'ERROR'


def test_failure_log_only_keeps_warnings(tmp_path):
    config = {'logging': {'level': 'DEBUG', 'log_to_console': False, 'log_dir': str(tmp_path / 'logs')}}
    try:
        LoggingConfigurator(config).setup()
        logger = logging.getLogger('tunesearch.test')
        logger.info("Processed 4/4 fits")
        logger.warning("Fit failed on Repeat1_Fold2")
        for handler in logging.getLogger().handlers:
            handler.flush()

        failures = (tmp_path / 'logs' / 'failures.log').read_text(encoding='utf-8')
        assert "Fit failed on Repeat1_Fold2" in failures
        assert "Processed 4/4 fits" not in failures
        assert "Processed 4/4 fits" in (tmp_path / 'logs' / 'tunesearch.log').read_text(encoding='utf-8')
    finally:
        for handler in logging.getLogger().handlers:
            handler.close()
        logging.getLogger().handlers = []
