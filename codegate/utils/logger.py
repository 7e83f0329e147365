"""Console loggers shared by the service"""
import logging
import sys

LOG_FORMAT = "%(levelname)-8s | %(asctime)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LEVEL_COLORS = {
    logging.DEBUG: "\033[96m",
    logging.INFO: "\033[92m",
    logging.WARNING: "\033[93m",
    logging.ERROR: "\033[91m",
    logging.CRITICAL: "\033[95m\033[1m",
}
RESET = "\033[0m"


class ColoredFormatter(logging.Formatter):
    """Colours the level name by severity"""

    def __init__(self):
        super().__init__(LOG_FORMAT, datefmt=DATE_FORMAT)
        self._formatters = {
            level: logging.Formatter(
                LOG_FORMAT.replace("%(levelname)-8s", f"{color}%(levelname)-8s{RESET}"),
                datefmt=DATE_FORMAT)
            for level, color in LEVEL_COLORS.items()
        }

    def format(self, record):
        formatter = self._formatters.get(record.levelno)
        if formatter is None:
            return super().format(record)
        return formatter.format(record)


def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # one handler per name, even if imported twice
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)
        handler.setFormatter(ColoredFormatter())
        logger.addHandler(handler)

    return logger


app_logger = setup_logger('app', level=logging.INFO)
api_logger = setup_logger('api', level=logging.INFO)
db_logger = setup_logger('database', level=logging.WARNING)
verification_logger = setup_logger('verification', level=logging.INFO)
