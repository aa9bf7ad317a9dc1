import logging

import pytest

from galerie_core.logging_config import RedactionFilter, configure_logging


@pytest.mark.parametrize("raw,hidden", [
    ("Authorization: Bearer abc.def.ghi", "abc.def.ghi"),
    ("GET /api/backup/export?token=s3cr3t&x=1", "s3cr3t"),
    ('{"access_token": "eyJhbGciOi"}', "eyJhbGciOi"),
    ('{"username": "admin", "password": "motdepasse"}', "motdepasse"),
])
def test_redact_masks_secrets(raw, hidden):
    out = RedactionFilter.redact(raw)
    assert hidden not in out
    assert "[REDACTED]" in out


def test_filter_formats_args_before_redacting():
    record = logging.LogRecord("galerie_api", logging.INFO, __file__, 1, "login password=%s", ("hunter2",), None)
    assert RedactionFilter().filter(record)
    assert record.getMessage() == "login password=[REDACTED]"


def test_configure_logging_from_ini(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    ini = tmp_path / "logging.ini"
    ini.write_text(
        "[loggers]\nkeys=root\n\n[handlers]\nkeys=console\n\n[formatters]\nkeys=standard\n\n"
        "[logger_root]\nlevel=__LOG_LEVEL__\nhandlers=console\n\n"
        "[handler_console]\nclass=StreamHandler\nlevel=__LOG_LEVEL__\nformatter=standard\nargs=(sys.stdout,)\n\n"
        "[formatter_standard]\nformat=%(levelname)s %(name)s: %(message)s\n",
        encoding="utf-8",
    )
    configure_logging(level="warning", config_file=ini)
    root = logging.getLogger()
    assert root.level == logging.WARNING
    assert any(isinstance(f, RedactionFilter) for f in root.filters)
    assert (tmp_path / "logs").is_dir()
