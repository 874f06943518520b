# Copyright 2018-present Network Optix, Inc. Licensed under MPL 2.0: www.mozilla.org/MPL/2.0/
import logging.config
from pathlib import Path


def init_logging(run_name: str, log_dir: Path = Path('~/.cache/openpath_logs')):
    """Log everything to a file; show progress and problems on the console.

    The file keeps the commands and their output for the post-mortem.
    """
    log_dir = log_dir.expanduser()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f'{run_name}.log'
    logging.config.dictConfig({
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'file': {'format': '%(asctime)s %(threadName)s %(name)s %(levelname)s %(message)s'},
            'stream': {'format': '%(levelname)7s %(message)s'},
            },
        'handlers': {
            'stream': {
                'class': 'logging.StreamHandler',
                'formatter': 'stream',
                'level': 'INFO',
                },
            'file': {
                'class': 'logging.handlers.RotatingFileHandler',
                'formatter': 'file',
                'level': 'DEBUG',
                'filename': str(log_file),
                'maxBytes': 200 * 1024**2,
                'backupCount': 6,
                },
            },
        'loggers': {
            '': {
                'handlers': ['stream', 'file'],
                'level': 'DEBUG',
                },
            },
        })
    return log_file
