import logging

from click.testing import CliRunner

from bangspec.cli import main
from bangspec.logging import configure_logging, get_logger, log_diagnostics
from bangspec.parser.base import Diagnostic, SourceLocation


class TestLogging:
    def test_logger_hierarchy(self):
        assert get_logger().name == "bangspec"
        assert get_logger("resolver").name == "bangspec.resolver"

    def test_verbose_sets_debug(self):
        logger = configure_logging(verbose=True)
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1
        configure_logging()

    def test_reconfigure_replaces_handlers(self):
        configure_logging()
        logger = configure_logging()
        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1

    def test_console_names_the_stage(self, capsys):
        configure_logging()
        get_logger("resolver").warning("odd type")
        get_logger().warning("top level")
        err = capsys.readouterr().err
        assert "[bangspec:resolver] WARNING odd type" in err
        assert "[bangspec:main] WARNING top level" in err

    def test_log_file(self, tmp_path):
        log_file = tmp_path / "nested" / "bangspec.log"
        logger = configure_logging(log_file=log_file)
        get_logger("assembler").debug("hello from the test")
        for handler in logger.handlers:
            handler.flush()
        assert "DEBUG assembler: hello from the test" in log_file.read_text(encoding="utf-8")
        configure_logging()

    def test_diagnostics_are_mirrored_to_the_trace(self, tmp_path, capsys):
        log_file = tmp_path / "bangspec.log"
        logger = configure_logging(log_file=log_file)
        log_diagnostics([Diagnostic.warning("careful", SourceLocation(file="api.py", line=3))])
        for handler in logger.handlers:
            handler.flush()
        configure_logging()

        assert "diagnostics: api.py:3: warning: careful" in log_file.read_text(encoding="utf-8")
        assert "careful" not in capsys.readouterr().err

    def test_cli_log_file(self, tmp_path):
        (tmp_path / "api.py").write_text("# !GET /x -> getX\ndef f():\n    pass\n")
        log_file = tmp_path / "logs" / "run.log"
        result = CliRunner().invoke(main, ["check", str(tmp_path), "--log-file", str(log_file)])
        configure_logging()

        assert result.exit_code == 0, result.output
        assert "operation GET /x -> getX" in log_file.read_text(encoding="utf-8")
