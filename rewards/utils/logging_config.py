"""
Logging setup for the rewards engine.

Configures the root logger once per process. Log level comes from LOG_LEVEL
(default INFO). Gunicorn captures stdout/stderr, so everything goes to stderr.
"""
import logging
import logging.config
import os

_configured = False


def setup_logging(level: str = None) -> None:
    """Configure process-wide logging. Safe to call more than once."""
    global _configured
    if _configured:
        return

    level = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()

    logging.config.dictConfig({
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'default': {
                'format': '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            },
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'default',
            },
        },
        'root': {
            'level': level,
            'handlers': ['console'],
        },
        'loggers': {
            # SQL echo is far too noisy at INFO
            'sqlalchemy.engine': {'level': 'WARNING'},
        },
    })
    _configured = True

