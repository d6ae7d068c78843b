import logging
import sys

DEFAULT_FORMAT = (
    "%(asctime)s - %(name)s - %(levelname)s - "
    "[%(filename)s:%(lineno)d] - %(message)s"
)


def setup_logging(level: str = "INFO", format_string: str = DEFAULT_FORMAT) -> logging.Logger:
    """Configure the root logger with a single console handler.

    Safe to call more than once (the app factory runs once per test);
    an existing handler is reused and only the level is updated.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        format_string: Format for the console handler.

    Returns:
        The configured root logger.
    """
    root = logging.getLogger()
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)
    root.setLevel(numeric_level)

    if not any(getattr(h, '_prevue_handler', False) for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(format_string, datefmt="%Y-%m-%d %H:%M:%S"))
        handler._prevue_handler = True
        root.addHandler(handler)

    for handler in root.handlers:
        if getattr(handler, '_prevue_handler', False):
            handler.setLevel(numeric_level)
    return root
