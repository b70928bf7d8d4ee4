"""
Unit tests for the command line and logging setup.
"""

import logging
import socket
from pathlib import Path

import pytest

from staticserve import ServerConfig, setup_logging
from staticserve.__main__ import build_parser, config_from_args, main


def parse(*argv: str) -> ServerConfig:
    return config_from_args(build_parser().parse_args(list(argv)))


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep STATICSERVE_* variables from the outer environment out."""
    for name in ("WEB_ROOT", "HOST", "PORT", "HTTPS_PORT", "CERT_FILE", "KEY_FILE",
                 "HTML5_MODE", "GZIP", "STRIP_PREFIX", "LOG_LEVEL"):
        monkeypatch.delenv(f"STATICSERVE_{name}", raising=False)


@pytest.fixture
def restore_loggers():
    """Undo file handlers added by setup_logging."""
    names = ("staticserve.access", "staticserve.errors")
    yield
    for name in names:
        target = logging.getLogger(name)
        for handler in list(target.handlers):
            target.removeHandler(handler)
            handler.close()
        target.propagate = True


class TestArguments:
    """Tests for build_parser and config_from_args."""

    def test_defaults(self):
        """Test that no arguments gives the dataclass defaults."""
        assert parse() == ServerConfig()

    def test_long_options(self):
        """Test the long option names."""
        config = parse(
            "--web-root", "dist",
            "--port", "9000",
            "--https-port", "9443",
            "--cert-file", "c.pem",
            "--key-file", "k.pem",
            "--force-https",
            "--html5-mode",
            "--not-found-trigger",
            "--404-path", "/gone",
            "--strip-prefix", "/app",
            "--no-gzip",
        )

        assert config.web_root == "dist"
        assert config.port == 9000
        assert config.https_port == 9443
        assert config.redirect_to_https
        assert config.html5_mode
        assert config.trigger_path == "/gone"
        assert config.strip_prefix == "/app"
        assert config.gzip is False

    def test_short_and_legacy_aliases(self):
        """Test -d/-p/-s and the camelCase spellings."""
        config = parse(
            "-d", "site", "-p", "80", "-s", "443",
            "--certFile", "c.pem", "--keyFile", "k.pem",
            "--forceTLS", "--html5mode", "--stripPrefix", "/x", "--404Path", "/nf",
        )

        assert (config.web_root, config.port, config.https_port) == ("site", 80, 443)
        assert config.cert_file == "c.pem"
        assert config.key_file == "k.pem"
        assert config.force_https
        assert config.html5_mode
        assert config.strip_prefix == "/x"
        assert config.not_found_path == "/nf"

    def test_log_options(self):
        """Test request/error log files and the log format."""
        config = parse("-l", "access.log", "-e", "error.log", "--log-format", "json")

        assert config.request_log_file == "access.log"
        assert config.error_log_file == "error.log"
        assert config.log_format == "json"

    def test_workers(self):
        """Test that -w sets the pool size."""
        config = parse("-w", "2")
        assert (config.min_workers, config.max_workers) == (2, 16)

    def test_command_line_beats_environment(self, monkeypatch):
        """Test option priority over STATICSERVE_* variables."""
        monkeypatch.setenv("STATICSERVE_PORT", "7000")
        monkeypatch.setenv("STATICSERVE_WEB_ROOT", "from-env")

        config = parse("-p", "9000")

        assert config.port == 9000
        assert config.web_root == "from-env"


class TestMain:
    """Tests for the entry point's exit codes."""

    def test_missing_web_root(self, tmp_path: Path, caplog):
        """Test exit code 1 and a critical log line for a bad web root."""
        with caplog.at_level(logging.CRITICAL):
            code = main(["-d", str(tmp_path / "missing"), "-p", "0"])

        assert code == 1
        assert "error opening webroot" in caplog.text

    def test_unopenable_log_file(self, web_root: Path, tmp_path: Path, restore_loggers):
        """Test exit code 1 when the request log cannot be opened."""
        bad_log = tmp_path / "no-such-dir" / "access.log"
        assert main(["-d", str(web_root), "-l", str(bad_log)]) == 1

    def test_missing_certificate(self, web_root: Path, tmp_path: Path, free_port: int):
        """Test exit code 1 when the certificate cannot be loaded."""
        code = main([
            "-d", str(web_root),
            "--host", "127.0.0.1",
            "-p", str(free_port),
            "-s", "0",
            "--cert-file", str(tmp_path / "cert.pem"),
            "--key-file", str(tmp_path / "key.pem"),
        ])
        assert code == 1

    def test_port_in_use(self, web_root: Path, free_port: int, caplog):
        """Test exit code 1 when the HTTP port is already taken."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as occupant:
            occupant.bind(("127.0.0.1", free_port))
            occupant.listen(1)

            with caplog.at_level(logging.CRITICAL):
                code = main(["-d", str(web_root), "--host", "127.0.0.1", "-p", str(free_port)])

        assert code == 1
        assert any(r.levelno == logging.CRITICAL for r in caplog.records)


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_request_log_file(self, tmp_path: Path, restore_loggers):
        """Test that request lines go to the file and not to stdout."""
        log_file = tmp_path / "access.log"
        setup_logging(ServerConfig(request_log_file=str(log_file)))

        access = logging.getLogger("staticserve.access")
        access.info("GET /index.html 200")
        for handler in access.handlers:
            handler.flush()

        assert access.propagate is False
        assert "GET /index.html 200" in log_file.read_text()

    def test_unopenable_file(self, tmp_path: Path, restore_loggers):
        """Test that an unopenable log file raises OSError."""
        with pytest.raises(OSError, match="error opening logfile"):
            setup_logging(ServerConfig(error_log_file=str(tmp_path / "missing" / "e.log")))
