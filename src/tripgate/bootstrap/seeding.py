"""
Reusable helpers for seeding the cruise product catalog.

The login flow provisions trips from a small set of well-known product codes;
these helpers make sure they exist in fresh databases and test fixtures.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Sequence

from ..models import CruiseProduct, db

logger = logging.getLogger(__name__)


@dataclass
class ProductSeedOptions:
    """Options for seeding a catalog product."""
    product_code: str
    cruise_line: str
    ship_name: str
    nights: int
    days: int = None
    itinerary_pattern: List[dict[str, Any]] = field(default_factory=list)

    def __post_init__(self):
        if self.days is None:
            self.days = self.nights + 1


def _day(day: int, type_: str, location: str | None = None, country: str | None = None,
         country_name: str | None = None, currency: str | None = None, language: str | None = None,
         arrival: str | None = None, departure: str | None = None) -> dict[str, Any]:
    entry = {'day': day, 'type': type_}
    for key, value in (
        ('location', location), ('country', country), ('countryName', country_name),
        ('currency', currency), ('language', language),
        ('arrival', arrival), ('departure', departure),
    ):
        if value:
            entry[key] = value
    return entry


SAMPLE_MEDITERRANEAN = ProductSeedOptions(
    product_code='SAMPLE-MED-001',
    cruise_line='MSC Cruises',
    ship_name='MSC Bellissima',
    nights=3,
    itinerary_pattern=[
        _day(1, 'Embarkation', 'Barcelona', 'ES', 'Spain', 'EUR', 'Spanish', departure='18:00'),
        _day(2, 'PortVisit', 'Marseille', 'FR', 'France', 'EUR', 'French', arrival='08:00', departure='17:00'),
        _day(3, 'Cruising'),
        _day(4, 'Disembarkation', 'Genoa', 'IT', 'Italy', 'EUR', 'Italian', arrival='07:00'),
    ],
)

TEST_PRODUCT = ProductSeedOptions(
    product_code='TEST-001',
    cruise_line='Test Line',
    ship_name='Test Ship',
    nights=2,
    itinerary_pattern=[
        _day(1, 'Embarkation', 'Busan', 'KR', 'South Korea', 'KRW', 'Korean', departure='19:00'),
        _day(2, 'PortVisit', 'Fukuoka', 'JP', 'Japan', 'JPY', 'Japanese', arrival='08:00', departure='18:00'),
        _day(3, 'Disembarkation', 'Busan', 'KR', 'South Korea', 'KRW', 'Korean', arrival='08:00'),
    ],
)

REAL_CRUISE = ProductSeedOptions(
    product_code='REAL-CRUISE-01',
    cruise_line='Royal Caribbean',
    ship_name='Spectrum of the Seas',
    nights=4,
    itinerary_pattern=[
        _day(1, 'Embarkation', 'Hong Kong', 'HK', 'Hong Kong', 'HKD', 'Cantonese', departure='17:00'),
        _day(2, 'Cruising'),
        _day(3, 'PortVisit', 'Keelung', 'TW', 'Taiwan', 'TWD', 'Mandarin', arrival='07:00', departure='17:00'),
        _day(4, 'Cruising'),
        _day(5, 'Disembarkation', 'Hong Kong', 'HK', 'Hong Kong', 'HKD', 'Cantonese', arrival='07:00'),
    ],
)

DEFAULT_PRODUCTS: Sequence[ProductSeedOptions] = (SAMPLE_MEDITERRANEAN, TEST_PRODUCT, REAL_CRUISE)


def ensure_product(options: ProductSeedOptions) -> CruiseProduct:
    """Create the product if its code is unknown; existing rows are left alone."""
    product = CruiseProduct.query.filter_by(product_code=options.product_code).first()
    if product:
        return product

    product = CruiseProduct(
        product_code=options.product_code,
        cruise_line=options.cruise_line,
        ship_name=options.ship_name,
        nights=options.nights,
        days=options.days,
    )
    product.set_itinerary_pattern(options.itinerary_pattern)
    db.session.add(product)
    db.session.flush()
    logger.info(f"Seeded catalog product {options.product_code}")
    return product


def seed_catalog(products: Sequence[ProductSeedOptions] = DEFAULT_PRODUCTS) -> List[CruiseProduct]:
    """Ensure every default product exists and commit."""
    seeded = [ensure_product(options) for options in products]
    db.session.commit()
    return seeded
