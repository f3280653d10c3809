"""Internal logger of :py:mod:`pytest_backing_services`."""
import logging
from typing import Union


#: logger used by all modules of this package
_logger = logging.getLogger("pytest_backing_services")


def set_internal_logging_level(
    level: Union[str, int] = logging.INFO,
) -> None:
    """Set the verbosity of the internal logger to the specified level.

    Level names are accepted in any case, e.g. ``debug`` or ``DEBUG``.
    """
    _logger.setLevel(level.upper() if isinstance(level, str) else level)
