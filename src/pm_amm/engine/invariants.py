"""Pool invariant verification before a trade plan is committed."""

import logging
import math

from config.settings import settings
from src.pm_amm.domain.models import Pool
from src.pm_common.errors import InternalError

logger = logging.getLogger(__name__)


def verify_pool(pool: Pool, label: str = "pool") -> None:
    """Raise InternalError unless both reserves are finite and strictly positive."""
    for side, qty in (("YES", pool.yes), ("NO", pool.no)):
        if not math.isfinite(qty) or qty <= 0:
            logger.error("Pool invariant violated: %s %s=%r", label, side, qty)
            raise InternalError(f"Pool invariant violated: {label} {side}={qty!r}")


def verify_probability(prob: float, label: str = "pool") -> None:
    if not (0 < prob < 1) or math.isnan(prob):
        logger.error("Probability invariant violated: %s prob=%r", label, prob)
        raise InternalError(f"Probability invariant violated: {label} prob={prob!r}")


def is_pool_drained(pool: Pool) -> bool:
    return min(pool.yes, pool.no) < settings.CPMM_MIN_POOL_QTY
