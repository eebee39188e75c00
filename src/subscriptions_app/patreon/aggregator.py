"""
PledgeAggregator Pipeline
=========================
1. Start at the campaign's first membership page.
2. For each page (via :class:`PageFetcher`, one deadline per page)
    a. For each member: resolve the user id, drop members without email,
       keep only configured tiers, resolve the Discord link from ``included``.
    b. Insert/overwrite the patron in the email-keyed accumulator.
3. Follow ``links.next`` until absent.
4. Return one :class:`Snapshot` built from the accumulator.

Any page error propagates, so a failed cycle never produces a partial snapshot.
"""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional

from subscriptions_app.snapshot import Snapshot

from .client import PageFetcher, members_url
from .models import Credential, MemberEntry, Page, Patron

logger = logging.getLogger(__name__)

DEFAULT_PAGE_TIMEOUT = 10 * 60


class PledgeAggregator:
    """Walk every membership page of one campaign into a :class:`Snapshot`."""

    def __init__(
        self,
        fetcher: PageFetcher,
        campaign_id: int,
        *,
        page_timeout: float = DEFAULT_PAGE_TIMEOUT,
    ) -> None:
        self._fetcher = fetcher
        self.campaign_id = campaign_id
        self.page_timeout = page_timeout

    @property
    def first_page_url(self) -> str:
        return members_url(self.campaign_id)

    async def aggregate(self, credential: Credential, tier_names: Mapping[int, str]) -> Snapshot:
        """
        Fetch all pages and build a snapshot.

        :param credential: Credential used for every page of this cycle.
        :param tier_names: Configured tier id -> display name mapping.
        :raises PatreonError: On the first page that fails.
        """
        patrons: Dict[str, Patron] = {}
        url: Optional[str] = self.first_page_url
        pages = 0

        while url:
            page = await self._fetcher.fetch_page_with_timeout(url, credential, self.page_timeout)
            pages += 1

            for member in page.data:
                patron = self._build_patron(member, page, tier_names)
                if patron is not None:
                    patrons[patron.email] = patron

            url = page.next_url

        logger.info("Fetched %d patrons across %d page(s)", len(patrons), pages)
        return Snapshot.build(patrons)

    @staticmethod
    def _build_patron(
        member: MemberEntry, page: Page, tier_names: Mapping[int, str]
    ) -> Optional[Patron]:
        user_id = member.user_id

        if not member.email:
            logger.debug("Member has no email (patron_id=%s)", user_id)
            return None

        tiers = []
        for tier_id in member.tier_ids:
            if tier_id not in tier_names:
                logger.warning("Unknown tier %d (patron_id=%s)", tier_id, user_id)
                continue
            tiers.append(tier_id)

        return Patron(
            id=user_id,
            email=member.email,
            discord_id=page.discord_id_for(user_id) if user_id is not None else None,
            tiers=tuple(tiers),
            tier_names=tuple(tier_names[t] for t in tiers),
            attributes=member.attributes,
        )


__all__ = ["PledgeAggregator", "DEFAULT_PAGE_TIMEOUT"]
