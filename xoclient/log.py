import logging

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'
ROOT_LOGGER = 'xoclient'


def configure_logging(development=False):
    """
    Configure the package logger.

    :param development: Log at DEBUG level instead of INFO
    :return: The package logger
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(logging.DEBUG if development else logging.INFO)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    return logger
