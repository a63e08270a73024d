"""
Process-wide logging setup.

The Lambda runtime installs its own handler on the root logger, so only the
level is adjusted there; when no handler exists (local runs, tests) a basic
stream handler is added.
"""

import logging

_NOISY_LOGGERS = ("opensearch", "urllib3", "botocore", "boto3")


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s %(message)s")
    root.setLevel(level)
    # Per-request lines from the HTTP stack drown out the reconciliation log.
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
