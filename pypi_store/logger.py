import logging

logger = logging.getLogger('pypi_store')
