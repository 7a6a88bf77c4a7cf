import logging

from rich.console import Console
from rich.logging import RichHandler

from traas.log import setup_logging, verbosity_to_level


def test_verbosity_to_level():
    assert verbosity_to_level(0) is None
    assert verbosity_to_level(1) == "INFO"
    assert verbosity_to_level(3) == "DEBUG"


def test_setup_logging_installs_rich_handler():
    console = Console(record=True, width=120)
    setup_logging("debug", console=console)
    try:
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0], RichHandler)

        logging.getLogger("traas.engine").debug("probe %d sent", 7)
        assert "probe 7 sent" in console.export_text()
    finally:
        setup_logging("WARNING")
