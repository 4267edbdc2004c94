"""
Session cart and cart pricing.

The cart lives in the session as a list of plain dicts and is loaded into a
SessionCart, which keys lines by (product id, size, color) so adding the same
combination twice only bumps the quantity. Prices are never stored in the
cart: they are read from the product at pricing time.
"""
import hashlib
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, Iterator, List, MutableMapping, Optional, Tuple

from pymongo.database import Database

from database import PRODUCTS, serialize_doc, to_object_id
from errors import NotFound, UnresolvedCartItems, ValidationFailed
from settings import Settings

LineKey = Tuple[str, Optional[str], Optional[str]]


def _clean(value: Optional[str]) -> Optional[str]:
    value = (value or "").strip()
    return value or None


@dataclass
class CartLine:
    product_id: str
    quantity: int
    size: Optional[str] = None
    color: Optional[str] = None

    @property
    def key(self) -> LineKey:
        return (self.product_id, self.size, self.color)

    @property
    def line_id(self) -> str:
        raw = "|".join(part or "" for part in self.key)
        return hashlib.sha1(raw.encode()).hexdigest()[:12]


class SessionCart:
    SESSION_KEY = "cart"

    def __init__(self, lines: Optional[Iterable[CartLine]] = None):
        self._lines: Dict[LineKey, CartLine] = {}
        for line in lines or []:
            existing = self._lines.get(line.key)
            if existing:
                existing.quantity += line.quantity
            else:
                self._lines[line.key] = line

    @classmethod
    def from_session(cls, session: MutableMapping[str, Any]) -> "SessionCart":
        lines = []
        for raw in session.get(cls.SESSION_KEY) or []:
            try:
                quantity = int(raw.get("quantity", 1))
            except (TypeError, ValueError):
                continue
            if not raw.get("product_id") or quantity < 1:
                continue
            lines.append(CartLine(
                product_id=str(raw["product_id"]),
                quantity=quantity,
                size=_clean(raw.get("size")),
                color=_clean(raw.get("color")),
            ))
        return cls(lines)

    def save(self, session: MutableMapping[str, Any]) -> None:
        session[self.SESSION_KEY] = [asdict(line) for line in self._lines.values()]

    def __iter__(self) -> Iterator[CartLine]:
        return iter(list(self._lines.values()))

    def __len__(self) -> int:
        return len(self._lines)

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines.values())

    @property
    def count(self) -> int:
        """Total number of units across all lines."""
        return sum(line.quantity for line in self._lines.values())

    def is_empty(self) -> bool:
        return not self._lines

    def get(self, line_id: str) -> CartLine:
        for line in self._lines.values():
            if line.line_id == line_id:
                return line
        raise NotFound("Item not found in cart")

    def add(self, product_id: str, quantity: int = 1, size: Optional[str] = None,
            color: Optional[str] = None) -> CartLine:
        if quantity < 1:
            raise ValidationFailed("Quantity must be at least 1")
        line = CartLine(product_id=str(product_id), quantity=quantity, size=_clean(size), color=_clean(color))
        existing = self._lines.get(line.key)
        if existing:
            existing.quantity += quantity
            return existing
        self._lines[line.key] = line
        return line

    def update(self, line_id: str, quantity: int) -> Optional[CartLine]:
        """Set a line's quantity; anything below 1 removes the line."""
        line = self.get(line_id)
        if quantity < 1:
            del self._lines[line.key]
            return None
        line.quantity = quantity
        return line

    def remove(self, line_id: str) -> None:
        line = self.get(line_id)
        del self._lines[line.key]

    def prune(self, product_ids: Iterable[str]) -> int:
        """Drop every line referencing one of `product_ids`; returns how many were dropped."""
        doomed = set(product_ids)
        keys = [key for key, line in self._lines.items() if line.product_id in doomed]
        for key in keys:
            del self._lines[key]
        return len(keys)

    def clear(self) -> None:
        self._lines.clear()


@dataclass
class PricedLine:
    line: CartLine
    product: Dict[str, Any]
    unit_price: float
    line_total: float

    @property
    def line_id(self) -> str:
        return self.line.line_id


@dataclass
class CartSummary:
    lines: List[PricedLine]
    subtotal: float
    shipping: float
    total: float


def shipping_for(subtotal: float, settings: Settings) -> float:
    """Flat fee unless the subtotal is strictly above the free-shipping threshold."""
    return 0.0 if subtotal > settings.free_shipping_threshold else float(settings.shipping_fee)


def compute_totals(subtotal: float, settings: Settings) -> Tuple[float, float]:
    """Return (shipping, total) for a subtotal."""
    subtotal = round(subtotal, 2)
    shipping = shipping_for(subtotal, settings)
    return shipping, round(subtotal + shipping, 2)


def price_cart(db: Database, cart: SessionCart, settings: Settings) -> CartSummary:
    """
    Price every cart line against the product's current discounted price.

    Raises UnresolvedCartItems naming every product id that no longer exists,
    rather than pricing a partial cart.
    """
    ids = [to_object_id(line.product_id) for line in cart]
    products = {
        str(p["_id"]): p
        for p in db[PRODUCTS].find({"_id": {"$in": [i for i in ids if i is not None]}})
    }
    missing = sorted({line.product_id for line in cart if line.product_id not in products})
    if missing:
        raise UnresolvedCartItems(missing)

    priced = []
    for line in cart:
        product = products[line.product_id]
        unit_price = float(product["discounted_price"])
        priced.append(PricedLine(
            line=line,
            product=serialize_doc(product),
            unit_price=unit_price,
            line_total=round(unit_price * line.quantity, 2),
        ))
    subtotal = round(sum(p.line_total for p in priced), 2)
    shipping, total = compute_totals(subtotal, settings)
    return CartSummary(lines=priced, subtotal=subtotal, shipping=shipping, total=total)
