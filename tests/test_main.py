"""
Tests for the command-line entry point and explorer.logging.

Run with: python -m pytest tests/test_main.py
"""

import logging
from unittest.mock import patch

import pytest

import main
from explorer import logging as explorer_logging


@pytest.fixture(autouse=True)
def reset_logger():
    """Drop handlers added by setup_logging so later tests start clean."""
    yield
    logger = logging.getLogger(explorer_logging.LOGGER_NAME)
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers.clear()


class TestParser:
    def test_defaults(self):
        args = main.build_parser().parse_args([])
        assert args.source is None
        assert args.record == 122
        assert args.output_dir is None
        assert args.show is True
        assert args.refresh is False
        assert args.verbose is False
        assert args.filters is None

    def test_record_name_or_index(self):
        parser = main.build_parser()
        assert parser.parse_args(["--record", "7"]).record == 7
        assert parser.parse_args(["-r", "CO00URMA01"]).record == "CO00URMA01"

    def test_repeatable_filter(self):
        args = main.build_parser().parse_args(
            ["-f", "geo_ocean == Indian Ocean", "--filter", "paleoData_coralHydro2kGroup <= 3"]
        )
        assert args.filters == ["geo_ocean == Indian Ocean", "paleoData_coralHydro2kGroup <= 3"]

    def test_flags(self):
        args = main.build_parser().parse_args(
            ["--source", "ch2k.zip", "-o", "figs", "--no-show", "--refresh", "-v"]
        )
        assert args.source == "ch2k.zip"
        assert args.output_dir == "figs"
        assert args.show is False
        assert args.refresh is True
        assert args.verbose is True


class TestMain:
    def test_success(self):
        with patch("explorer.pipeline.run_walkthrough", return_value={"global_map": None}) as mock_run:
            code = main.main(["--no-show", "--record", "3", "--source", "ch2k.zip"])
        assert code == 0
        mock_run.assert_called_once_with(
            source="ch2k.zip", record=3, show=False, output_dir=None, refresh=False, filters=None,
        )

    def test_failure_returns_one(self, capsys):
        with patch("explorer.pipeline.run_walkthrough", side_effect=FileNotFoundError("ch2k.zip")):
            code = main.main(["--no-show"])
        assert code == 1
        err = capsys.readouterr().err
        assert "Error: ch2k.zip" in err
        assert str(explorer_logging.get_current_log_file()) in err

    def test_filters_passed_through(self):
        with patch("explorer.pipeline.run_walkthrough", return_value={}) as mock_run:
            main.main(["--no-show", "-f", "geo_latitude > 10"])
        assert mock_run.call_args.kwargs["filters"] == ["geo_latitude > 10"]

    def test_failure_logged_to_file(self):
        with patch("explorer.pipeline.run_walkthrough", side_effect=ValueError("boom")):
            main.main(["--no-show"])
        text = explorer_logging.get_current_log_file().read_text(encoding="utf-8")
        assert "Walkthrough failed" in text
        assert "Exception type: ValueError" in text
        assert "record: 122" in text


class TestLogging:
    def test_log_file_in_data_dir(self, isolated_data_dir):
        explorer_logging.setup_logging()
        log_file = explorer_logging.get_current_log_file()
        assert log_file.parent == isolated_data_dir.resolve() / "logs"
        assert log_file.name.startswith("explorer_")

    def test_console_level(self):
        logger = explorer_logging.setup_logging(verbose=True)
        console = [h for h in logger.handlers if not isinstance(h, logging.FileHandler)]
        assert console[0].level == logging.DEBUG
        logger = explorer_logging.setup_logging(verbose=False)
        console = [h for h in logger.handlers if not isinstance(h, logging.FileHandler)]
        assert console[0].level == logging.INFO

    def test_reinit_replaces_handlers(self):
        explorer_logging.setup_logging()
        logger = explorer_logging.setup_logging()
        assert len(logger.handlers) == 2

    def test_clean_console_format(self):
        with patch("config.get", side_effect=lambda k, d=None: "clean" if k == "console_format" else d):
            logger = explorer_logging.setup_logging()
        assert len(logger.handlers) == 1
        assert isinstance(logger.handlers[0], logging.FileHandler)

    def test_console_formatter(self):
        formatter = explorer_logging._ConsoleFormatter()
        info = logging.LogRecord("ch2k-explorer", logging.INFO, __file__, 1, "loaded", None, None)
        warn = logging.LogRecord("ch2k-explorer", logging.WARNING, __file__, 1, "empty", None, None)
        assert formatter.format(info) == "  loaded"
        assert formatter.format(warn) == "  [WARNING] empty"

    def test_log_error_with_context(self):
        explorer_logging.setup_logging()
        try:
            raise RuntimeError("parse failed")
        except RuntimeError as e:
            explorer_logging.log_error("Load failed", exc=e, context={"source": "x.lpd"})
        text = explorer_logging.get_current_log_file().read_text(encoding="utf-8")
        assert "source: x.lpd" in text
        assert "RuntimeError: parse failed" in text
