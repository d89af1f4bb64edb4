"""
Kitchen routing: decides which order lines go to kitchen/bar printers.

The receipt always carries every line; only kitchen output is filtered.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Protocol, Sequence

from .models import KITCHEN_KINDS, LineItem, PrinterDefinition, RoutingRule

logger = logging.getLogger('ticket.bridge.classifier')

# Used when no routing rule targets a kitchen or bar printer
DEFAULT_KITCHEN_CATEGORIES = (
    # Food
    'Appetizers',
    'Burgers & Sandwiches',
    'Classic Meals',
    'Combos',
    'Curry & Bunny',
    'Desserts',
    'Family Meal',
    'Grill & Platters',
    'Kids',
    'Loaded Fries',
    'Main Course',
    'Mexican',
    'Midweek Specials',
    'On The Go Meals',
    'Sandwiches',
    'Sides & Extras',
    # Bar / hot beverages
    'Coffee',
    'Cold Coffee',
    'Tea',
    'Milk Shake',
    'Alcohol',
    'Bar',
    # Generic names
    'Food', 'Mains', 'Starters', 'Grills', 'Platters', 'Burgers', 'Sides', 'Dessert',
)


# ─── Matching strategies ────────────────────────────────────────────────────

class MatchStrategy(Protocol):
    def matches(self, category: str, candidate: str) -> bool:
        """Both arguments are already lower-cased."""


class LooseSubstringMatch:
    """
    Either name contains the other ("burgers" matches a rule for "burger").

    An uncategorised item (empty category) is contained in every candidate
    and so goes to the kitchen.
    """

    def matches(self, category: str, candidate: str) -> bool:
        if not candidate:
            return False
        return candidate in category or category in candidate


class ExactMatch:
    """Whitespace-normalized equality."""

    def matches(self, category: str, candidate: str) -> bool:
        return bool(category) and ' '.join(category.split()) == ' '.join(candidate.split())


# ─── Tie-break policies ─────────────────────────────────────────────────────

def longest_match(candidates: Sequence[RoutingRule]) -> RoutingRule:
    """Longest rule category wins; equal lengths keep fetch order."""
    return max(candidates, key=lambda rule: len(rule.category))


def first_match(candidates: Sequence[RoutingRule]) -> RoutingRule:
    return candidates[0]


TIE_BREAKS: dict[str, Callable[[Sequence[RoutingRule]], RoutingRule]] = {
    'longest_match': longest_match,
    'first_match': first_match,
}


# ─── Classifier ─────────────────────────────────────────────────────────────

@dataclass
class KitchenRoute:
    """Kitchen-bound items headed for one printer (or for the fallback)."""
    kind: str
    printer: PrinterDefinition | None
    items: list[LineItem] = field(default_factory=list)

    @property
    def label(self) -> str:
        return self.printer.name if self.printer else self.kind.capitalize()


class ItemClassifier:

    def __init__(
        self,
        strategy: MatchStrategy | None = None,
        tie_break: str = 'longest_match',
        default_categories: Iterable[str] = DEFAULT_KITCHEN_CATEGORIES,
    ):
        if tie_break not in TIE_BREAKS:
            raise ValueError(f"Unknown tie-break policy: {tie_break}")
        self.strategy = strategy or LooseSubstringMatch()
        self.tie_break = TIE_BREAKS[tie_break]
        self.default_categories = tuple(c.lower() for c in default_categories)

    def kitchen_rules(
        self,
        rules: Sequence[RoutingRule],
        printers: Sequence[PrinterDefinition],
    ) -> list[RoutingRule]:
        """Rules that target an active kitchen or bar printer."""
        kitchen_ids = {p.id for p in printers if p.active and p.kind in KITCHEN_KINDS}
        return [r for r in rules if r.printer_id in kitchen_ids and r.category]

    def active_categories(
        self,
        rules: Sequence[RoutingRule],
        printers: Sequence[PrinterDefinition],
    ) -> tuple[str, ...]:
        categories = tuple(r.category.lower() for r in self.kitchen_rules(rules, printers))
        return categories or self.default_categories

    def is_kitchen_item(self, item: LineItem, categories: Sequence[str]) -> bool:
        category = (item.category_name or '').lower()
        return any(self.strategy.matches(category, candidate) for candidate in categories)

    def classify_for_kitchen(
        self,
        items: Sequence[LineItem],
        rules: Sequence[RoutingRule],
        printers: Sequence[PrinterDefinition],
    ) -> list[LineItem]:
        categories = self.active_categories(rules, printers)
        return [item for item in items if self.is_kitchen_item(item, categories)]

    def match_rule(self, item: LineItem, rules: Sequence[RoutingRule]) -> RoutingRule | None:
        category = (item.category_name or '').lower()
        candidates = [r for r in rules if self.strategy.matches(category, r.category.lower())]
        if not candidates:
            return None
        return self.tie_break(candidates)

    def route_kitchen_items(
        self,
        items: Sequence[LineItem],
        rules: Sequence[RoutingRule],
        printers: Sequence[PrinterDefinition],
    ) -> list[KitchenRoute]:
        """
        Group kitchen-bound items by target printer.

        Rule matches go to the rule's printer. Default-category matches go
        to the first active kitchen printer, then the first bar printer,
        then to a printer-less route that ends in the browser fallback.
        """
        kitchen_rules = self.kitchen_rules(rules, printers)
        by_id = {p.id: p for p in printers if p.active}
        default_printer = (
            next((p for p in printers if p.active and p.kind == 'kitchen'), None)
            or next((p for p in printers if p.active and p.kind == 'bar'), None)
        )

        routes: dict[str | None, KitchenRoute] = {}
        for item in self.classify_for_kitchen(items, rules, printers):
            rule = self.match_rule(item, kitchen_rules) if kitchen_rules else None
            printer = by_id.get(rule.printer_id) if rule else default_printer
            key = printer.id if printer else None
            if key not in routes:
                routes[key] = KitchenRoute(
                    kind=printer.kind if printer else 'kitchen',
                    printer=printer,
                )
            routes[key].items.append(item)

        for route in routes.values():
            logger.debug(f"{len(route.items)} item(s) routed to {route.label}")
        return list(routes.values())


_default_classifier = ItemClassifier()


def classify_for_kitchen(
    items: Sequence[LineItem],
    rules: Sequence[RoutingRule],
    printers: Sequence[PrinterDefinition],
) -> list[LineItem]:
    """Kitchen-bound items in their original order, using the default classifier."""
    return _default_classifier.classify_for_kitchen(items, rules, printers)
