"""mtimefix — repair implausible file modification times in a catalog-backed file store."""

import logging

__version__ = "0.3.0"

logging.getLogger("mtimefix").addHandler(logging.NullHandler())
