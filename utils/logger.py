import sys
import loguru

CONSOLE_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logger(log_level="INFO", log_file="chatprompt.log"):
    """
    Configure the shared loguru logger.

    Args:
        log_level (str): Minimum level shown on stderr.
        log_file (str): File receiving every record from DEBUG up. Pass None to skip it.
    """
    loguru.logger.remove()

    loguru.logger.add(
        sys.stderr,
        level=log_level,
        format=CONSOLE_FORMAT,
        colorize=True,
    )

    if log_file:
        loguru.logger.add(
            log_file,
            level="DEBUG",
            format=FILE_FORMAT,
            rotation="10 MB",
            retention="7 days",
            enqueue=True,
            backtrace=True,
            diagnose=False,
        )

    return loguru.logger

logger = setup_logger()
