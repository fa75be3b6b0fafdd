"""Generators for marketplace participants and transaction terms."""

from __future__ import annotations

import random
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterator

from escrow_engine.directory import UserDirectory
from escrow_engine.generators.base import BaseGenerator
from escrow_engine.models.escrow import Profile, Role
from escrow_engine.money import to_minor_units


@dataclass
class ProfileDraft:
    """Identity of a user who may or may not be registered yet."""

    display_name: str
    email: str


@dataclass
class TransactionTerms:
    """Everything a buyer enters when creating a transaction."""

    title: str
    description: str
    amount_minor_units: int
    currency_code: str
    delivery_terms: str
    due_date: date | None = None


class ProfileGenerator(BaseGenerator):
    """Generate synthetic marketplace users with unique emails."""

    def generate(self) -> ProfileDraft:
        """Generate a single unregistered profile."""
        return ProfileDraft(
            display_name=self.fake.name(),
            email=self.fake.unique.email(),
        )

    def generate_batch(self, count: int) -> Iterator[ProfileDraft]:
        for _ in range(count):
            yield self.generate()

    def register_batch(
        self,
        directory: UserDirectory,
        count: int,
        roles: set[Role] | None = None,
    ) -> list[Profile]:
        """Generate ``count`` users and register them in ``directory``."""
        return [
            directory.register(draft.display_name, draft.email, roles=roles)
            for draft in self.generate_batch(count)
        ]


class TransactionTermsGenerator(BaseGenerator):
    """Generate realistic escrow deal terms."""

    # (category, items, price range in major units)
    CATALOG = [
        ("vehicle", ["Toyota Corolla 2016", "VW Polo Vivo", "Honda Fit 2018", "Ford Ranger 2014"], (45000, 320000)),
        ("electronics", ["MacBook Pro 14", "iPhone 13", "Samsung Galaxy S22", "Sony A7 III camera"], (3500, 38000)),
        ("furniture", ["Oak dining table", "L-shaped couch", "Queen bed frame", "Office desk"], (800, 15000)),
        ("services", ["Website redesign", "Logo and brand kit", "Kitchen renovation", "Wedding photography"], (1500, 90000)),
        ("collectibles", ["Vintage Rolex Datejust", "Signed Springbok jersey", "Kruger rand coin set"], (2000, 150000)),
    ]
    CATEGORY_WEIGHTS = [0.15, 0.35, 0.2, 0.2, 0.1]

    DELIVERY_TERMS = {
        "vehicle": ["Collection by buyer after roadworthy inspection", "Delivered by flatbed within 5 days"],
        "electronics": ["Courier delivery within 3 business days", "Collection in person"],
        "furniture": ["Delivery and assembly within 7 days", "Collection by buyer"],
        "services": ["Work delivered in milestones as agreed", "Completion within 30 days"],
        "collectibles": ["Insured courier delivery with tracking", "Handover at a bank branch"],
    }

    def __init__(
        self,
        seed: int | None = None,
        currency_code: str = "ZAR",
        due_date_probability: float = 0.5,
    ) -> None:
        super().__init__(seed)
        self.currency_code = currency_code
        self.due_date_probability = due_date_probability

    def generate(self, today: date | None = None) -> TransactionTerms:
        """Generate a single set of transaction terms.

        Parameters
        ----------
        today : date | None
            Reference date for due dates (defaults to today).

        Returns
        -------
        TransactionTerms
            Generated terms with a positive minor-unit amount.
        """
        category, items, (low, high) = random.choices(self.CATALOG, weights=self.CATEGORY_WEIGHTS, k=1)[0]
        item = random.choice(items)

        # Whole rands for big-ticket items, cents for the rest
        price = Decimal(str(round(random.uniform(low, high), 2)))
        if price >= 10000:
            price = price.quantize(Decimal("1"))

        due_date = None
        if random.random() < self.due_date_probability:
            due_date = (today or date.today()) + timedelta(days=random.randint(3, 45))

        return TransactionTerms(
            title=item,
            description=f"{item} ({category}). {self.fake.sentence(nb_words=12)}",
            amount_minor_units=to_minor_units(price, self.currency_code),
            currency_code=self.currency_code,
            delivery_terms=random.choice(self.DELIVERY_TERMS[category]),
            due_date=due_date,
        )

    def generate_batch(self, count: int) -> Iterator[TransactionTerms]:
        for _ in range(count):
            yield self.generate()
