# This file is part of ds-identify. See LICENSE file for license information.

"""Tests for dsidentify.log"""

import datetime
import io
import logging
import time

import pytest

from dsidentify import log

ASCTIME_FMT = "%Y-%m-%d %H:%M:%S,%f"


def utcnow():
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


@pytest.fixture
def root_logger():
    """Give the test the root logger and put its handlers back afterwards."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    converter = logging.Formatter.converter
    yield root
    for h in list(root.handlers):
        if h not in handlers:
            h.close()
            root.removeHandler(h)
    for h in handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)
    logging.Formatter.converter = converter


class TestDsIdentifyLogger:
    @pytest.fixture(autouse=True)
    def setup(self, root_logger):
        # set up a logger like configure_root_logger does, but with a
        # StringIO in place of sys.stderr so we can see what gets logged
        logging.Formatter.converter = time.gmtime
        self.logs = io.StringIO()
        console = logging.StreamHandler(self.logs)
        console.setFormatter(logging.Formatter(log.DEFAULT_LOG_FORMAT))
        console.setLevel(logging.DEBUG)
        root_logger.addHandler(console)
        root_logger.setLevel(logging.DEBUG)
        self.LOG = logging.getLogger("test_dsidentify_logger")

    def test_logger_uses_gmtime(self):
        """Test that log message have timestamp in UTC (gmtime)"""
        # Due to loss of precision in the LOG timestamp, subtract and add
        # time to the utc stamps for comparison
        utc_before = utcnow() - datetime.timedelta(0, 0.5)
        self.LOG.error("Test message")
        utc_after = utcnow() + datetime.timedelta(0, 0.5)

        # 2017-08-23 14:19:43,069 - test_log.py[ERROR]: Test message
        logstr = self.logs.getvalue().splitlines()[0]
        timestampstr = logstr.split(" - ")[0]
        parsed_dt = datetime.datetime.strptime(timestampstr, ASCTIME_FMT)

        assert utc_before < parsed_dt < utc_after

    def test_format(self):
        self.LOG.warning("hello %s", "there")
        logstr = self.logs.getvalue().splitlines()[0]
        assert logstr.endswith(" - test_log.py[WARNING]: hello there")


def test_logger_prints_to_stderr(capsys, root_logger):
    message = "to stderr"
    log.setup_basic_logging()
    logging.getLogger().warning(message)
    assert message in capsys.readouterr().err


class TestConfigureRootLogger:
    def test_quiet_by_default(self, capsys, root_logger):
        log.configure_root_logger()
        logging.getLogger("quiet").info("not shown")
        logging.getLogger("quiet").warning("shown")
        err = capsys.readouterr().err
        assert "not shown" not in err
        assert "shown" in err

    def test_verbose(self, capsys, root_logger):
        log.configure_root_logger(verbose=True)
        logging.getLogger("verbose").debug("state INIT -> CHECK_OVERRIDE")
        assert "state INIT -> CHECK_OVERRIDE" in capsys.readouterr().err

    def test_replaces_handlers(self, root_logger):
        root_logger.addHandler(logging.NullHandler())
        log.configure_root_logger()
        assert 1 == len(root_logger.handlers)
        assert logging.Formatter.converter is time.gmtime


class TestSetupFileLogging:
    def test_appends(self, tmp_path, root_logger):
        path = tmp_path / "ds-identify.log"
        path.write_text("previous run\n")
        handler = log.setup_file_logging(str(path))
        assert handler in root_logger.handlers
        root_logger.setLevel(logging.DEBUG)
        logging.getLogger("file").debug("current run")
        handler.flush()
        content = path.read_text()
        assert content.startswith("previous run\n")
        assert "current run" in content

    def test_unwritable(self, tmp_path, root_logger, caplog):
        path = tmp_path / "missing" / "ds-identify.log"
        assert log.setup_file_logging(str(path)) is None
        assert "Unable to log to" in caplog.text


def test_flush_loggers(mocker):
    handler = logging.StreamHandler(io.StringIO())
    m_flush = mocker.patch.object(handler, "flush")
    logger = logging.getLogger("flushed")
    logger.addHandler(handler)
    try:
        log.flush_loggers(logger)
    finally:
        logger.removeHandler(handler)
    m_flush.assert_called_once_with()
