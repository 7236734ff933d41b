import asyncio
import logging
from dataclasses import dataclass, field

from .catalog import CatalogResolver, Provider
from .config import ALTERNATES_COUNT, AVAILABILITY_TOP_N, PAID_PROVIDER_KINDS
from .recommender import Candidate

logger = logging.getLogger(__name__)


@dataclass
class Selection:
    top_pick: Candidate
    alternates: list[Candidate] = field(default_factory=list)
    eligible_count: int = 0
    fallback: bool = False  # top pick is not streamable on a subscription


def is_eligible(providers: list[Provider]) -> bool:
    """True when at least one offer is not a rental or purchase."""
    return any(p.kind not in PAID_PROVIDER_KINDS for p in providers)


async def annotate_providers(
    resolver: CatalogResolver,
    ranked: list[Candidate],
    region: str,
    top_n: int = AVAILABILITY_TOP_N,
) -> list[Candidate]:
    """Attach provider names and eligibility to the top_n candidates, in place."""
    head = ranked[:top_n]
    lookups = await asyncio.gather(*(resolver.providers(c.catalog_id, region) for c in head))
    for candidate, providers in zip(head, lookups):
        candidate.providers = frozenset(p.name for p in providers)
        candidate.eligible = is_eligible(providers)

    logger.info(f"Availability: {sum(c.eligible for c in head)}/{len(head)} on subscription in {region}")
    return head


def select(annotated: list[Candidate], only_flatrate: bool, alternates: int = ALTERNATES_COUNT) -> Selection:
    """
    Choose the top pick and alternates from annotated candidates.

    With only_flatrate, the pick is the first eligible candidate; if none is
    eligible the best candidate overall is used and flagged as a fallback.
    """
    if not annotated:
        raise ValueError("select() needs at least one candidate")

    eligible = [c for c in annotated if c.eligible]
    if not only_flatrate:
        return Selection(
            top_pick=annotated[0],
            alternates=annotated[1:1 + alternates],
            eligible_count=len(eligible),
        )

    if eligible:
        return Selection(
            top_pick=eligible[0],
            alternates=eligible[1:1 + alternates],
            eligible_count=len(eligible),
        )

    logger.warning("No candidate is available on a subscription service; using the best match overall")
    return Selection(top_pick=annotated[0], alternates=[], eligible_count=0, fallback=True)
