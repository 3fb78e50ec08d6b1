import logging
from rich.logging import RichHandler


def setup_log(level: int = logging.INFO) -> logging.Logger:
    log = logging.getLogger("ctphantom")
    if not any(isinstance(h, RichHandler) for h in log.handlers):
        ch = RichHandler(level=logging.NOTSET)
        log.addHandler(ch)
    log.setLevel(level)
    return log
