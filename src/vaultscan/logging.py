import logging
import sys

logger = logging.getLogger("vaultscan")
logger.propagate = False
logger.setLevel(logging.INFO)

_handler = logging.StreamHandler(stream=sys.stderr)
_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
logger.addHandler(_handler)
