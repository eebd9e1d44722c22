"""
Shop Catalog — which gift cards can be bought, and from which merchants.

The catalog, merchant directory and integrations are fetched concurrently
and combined only when all three arrive; the first failure aborts the join.
A failed fetch is logged and signalled, and the caller gets None.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from core.api_clients import ApiClientRegistry
from core.config import network_name
from core.signals import SignalBus, CATALOG_FETCHED, CATALOG_FAILED

logger = logging.getLogger("walletd.shop")


@dataclass
class Catalog:
    available_card_map: dict = field(default_factory=dict)   # card name → list of card configs
    categories_and_curations: dict = field(default_factory=dict)
    integrations: list = field(default_factory=list)

    def available_cards(self) -> list[dict]:
        """One config per card, the first variant listed."""
        cards = []
        for name, configs in self.available_card_map.items():
            if isinstance(configs, list) and configs:
                cards.append({"name": name, **configs[0]})
            elif isinstance(configs, dict):
                cards.append({"name": name, **configs})
        return cards


def catalog_path(country: str, user: Optional[dict], sync_purchases: bool) -> str:
    """Incentive-level pricing only applies to users who sync their purchases."""
    incentive_level_id = (user or {}).get("incentiveLevelId")
    if incentive_level_id and sync_purchases:
        return f"/gift-cards/catalog/{country}/{incentive_level_id}"
    return f"/gift-cards/catalog/{country}"


class ShopCatalogService:

    def __init__(self, registry: ApiClientRegistry, signals: SignalBus):
        self._registry = registry
        self._signals = signals

    async def fetch_catalog(
        self,
        network: str,
        country: str,
        user: Optional[dict] = None,
        sync_purchases: bool = False,
    ) -> Optional[Catalog]:
        try:
            rest = self._registry.rest(network)
            card_map, directory, integrations = await asyncio.gather(
                rest.get(catalog_path(country, user, sync_purchases)),
                rest.get("/merchant-directory/directory"),
                rest.get("/merchant-directory/integrations"),
            )
        except Exception as e:
            logger.error(f"Shop catalog fetch failed on {network}: {e}")
            await self._signals.emit(CATALOG_FAILED, {"network": network_name(network), "error": str(e)})
            return None

        catalog = Catalog(
            available_card_map=card_map or {},
            categories_and_curations=directory or {},
            integrations=integrations or [],
        )
        logger.info(f"Shop catalog fetched: {len(catalog.available_card_map)} card(s) for {country}")
        await self._signals.emit(CATALOG_FETCHED, {
            "network": network_name(network),
            "cards": len(catalog.available_card_map),
        })
        return catalog

    @staticmethod
    def find_card(catalog: Catalog, merchant: str) -> Optional[dict]:
        """Deeplink lookup: case-insensitive match on the card name."""
        target = (merchant or "").lower()
        if not target:
            return None
        for card in catalog.available_cards():
            if card.get("name", "").lower() == target:
                return card
        return None
