from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

PRODUCT_TYPES = ["Jewellery", "Loose Diamonds", "Gemstones"]


class Metal(str, Enum):
    GOLD = "gold"
    SILVER = "silver"
    PLATINUM = "platinum"


class PurityUnit(str, Enum):
    FRACTION = "fraction"
    KARAT = "karat"
    PERCENT = "percent"


class AdjustmentDirection(str, Enum):
    MARKUP = "markup"
    MARKDOWN = "markdown"


@dataclass(frozen=True)
class Session:
    user_id: int
    username: str


@dataclass
class Product:
    id: Optional[int]
    name: str
    user_id: Optional[int] = None
    sku: Optional[str] = None
    product_type: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    metal_type: Optional[str] = None
    gemstone: Optional[str] = None
    color: Optional[str] = None
    diamond_color: Optional[str] = None
    diamond_clarity: Optional[str] = None
    clarity: Optional[str] = None
    delivery_type: Optional[str] = None
    dispatches_in_days: Optional[float] = None
    weight_grams: Optional[float] = None
    net_weight: Optional[float] = None
    purity_fraction_used: Optional[float] = None
    purity_unit: Optional[str] = None
    gold_per_gram_price: Optional[float] = None
    d_wt_1: Optional[float] = None
    d_wt_2: Optional[float] = None
    diamond_weight: Optional[float] = None
    d_rate_1: Optional[float] = None
    pointer_diamond: Optional[float] = None
    d_value: Optional[float] = None
    mkg: Optional[float] = None
    certification_cost: Optional[float] = None
    gemstone_cost: Optional[float] = None
    cost_price: float = 0.0
    retail_price: float = 0.0
    stock_quantity: Optional[int] = None
    gemstone_type: Optional[str] = None
    carat_weight: Optional[float] = None
    cut: Optional[str] = None
    diamond_type: Optional[str] = None
    shape: Optional[str] = None
    carat: Optional[float] = None
    polish: Optional[str] = None
    symmetry: Optional[str] = None
    fluorescence: Optional[str] = None
    lab: Optional[str] = None
    image_url: Optional[str] = None
    image_url_2: Optional[str] = None
    image_url_3: Optional[str] = None
    deleted_at: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def column_names(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Product":
        keys = set(row.keys())
        return cls(**{name: row[name] for name in cls.column_names() if name in keys})

    def to_record(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.column_names()}


@dataclass
class VendorProfile:
    user_id: int
    business_name: Optional[str] = None
    brand_tagline: Optional[str] = None
    address_line1: Optional[str] = None
    address_line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    country: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    whatsapp_number: Optional[str] = None
    gold_rate_24k_per_gram: float = 0.0
    silver_rate_per_gram: float = 95.0
    platinum_rate_per_gram: float = 3200.0
    making_charges_per_gram: float = 0.0
    gold_rate_updated_at: Optional[str] = None

    def rate_for(self, metal: Metal) -> float:
        if metal == Metal.SILVER:
            return float(self.silver_rate_per_gram or 0.0)
        if metal == Metal.PLATINUM:
            return float(self.platinum_rate_per_gram or 0.0)
        return float(self.gold_rate_24k_per_gram or 0.0)


@dataclass(frozen=True)
class PricingAdjustment:
    percentage: float
    direction: AdjustmentDirection = AdjustmentDirection.MARKUP


@dataclass(frozen=True)
class FilterState:
    """Client-held catalog filters. Every field defaults to an empty string."""

    category: str = ""
    metal_type: str = ""
    min_price: str = ""
    max_price: str = ""
    diamond_color: str = ""
    diamond_clarity: str = ""
    search_query: str = ""
    delivery_type: str = ""
    min_diamond_weight: str = ""
    max_diamond_weight: str = ""
    min_net_weight: str = ""
    max_net_weight: str = ""
    gemstone_type: str = ""
    color: str = ""
    clarity: str = ""
    cut: str = ""
    min_carat: str = ""
    max_carat: str = ""
    diamond_type: str = ""
    shape: str = ""
    polish: str = ""
    symmetry: str = ""
    fluorescence: str = ""
    lab: str = ""

    def with_changes(self, **changes: str) -> "FilterState":
        return replace(self, **{key: "" if value is None else str(value) for key, value in changes.items()})

    @classmethod
    def reset(cls) -> "FilterState":
        return cls()

    def active_fields(self) -> dict[str, str]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name).strip()}

    @property
    def is_empty(self) -> bool:
        return not self.active_fields()


@dataclass(frozen=True)
class Selection:
    """Product ids picked for a bulk action in the current session."""

    ids: frozenset = field(default_factory=frozenset)

    def __len__(self) -> int:
        return len(self.ids)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self.ids

    def toggle(self, product_id: int) -> "Selection":
        if product_id in self.ids:
            return Selection(self.ids - {product_id})
        return Selection(self.ids | {product_id})

    def toggle_all(self, visible_ids: Iterable[int]) -> "Selection":
        visible = frozenset(visible_ids)
        if len(self.ids) == len(visible):
            return Selection()
        return Selection(visible)

    def restrict_to(self, visible_ids: Iterable[int]) -> "Selection":
        return Selection(self.ids & frozenset(visible_ids))

    def clear(self) -> "Selection":
        return Selection()


@dataclass
class ShareLink:
    id: int
    user_id: int
    share_token: str
    shared_categories: list[str]
    markup_percentage: float
    markdown_percentage: float
    show_vendor_details: bool
    is_active: bool
    expires_at: str
    view_count: int
    created_at: str


@dataclass
class PurchaseInquiry:
    id: int
    share_link_id: int
    product_id: int
    customer_name: str
    customer_email: str
    customer_phone: Optional[str]
    message: Optional[str]
    quantity: int
    status: str
    created_at: str


@dataclass
class LineItem:
    """One piece on an estimate or invoice. Cost components are per unit."""

    item_name: str
    product_id: Optional[int] = None
    description: Optional[str] = None
    quantity: int = 1
    net_weight: float = 0.0
    gross_weight: float = 0.0
    purity_fraction: float = 0.0
    diamond_weight: float = 0.0
    gemstone_weight: float = 0.0
    gold_cost: float = 0.0
    diamond_cost: float = 0.0
    gemstone_cost: float = 0.0
    making_charges: float = 0.0
    certification_cost: float = 0.0
    cad_design_charges: float = 0.0
    camming_charges: float = 0.0
    # Catalog price for pieces without a metal valuation (loose stones, sheet-priced rows).
    listed_price: float = 0.0

    @property
    def unit_cost(self) -> float:
        return (
            self.gold_cost
            + self.diamond_cost
            + self.gemstone_cost
            + self.making_charges
            + self.certification_cost
            + self.cad_design_charges
            + self.camming_charges
            + self.listed_price
        )

    @property
    def subtotal(self) -> float:
        return self.unit_cost * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LineItem":
        names = {f.name for f in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in names})


@dataclass
class Estimate:
    id: Optional[int]
    user_id: int
    estimate_name: str
    line_items: list[LineItem] = field(default_factory=list)
    status: str = "draft"
    gold_rate_24k: float = 0.0
    profit_margin_percentage: float = 0.0
    total_cost: float = 0.0
    final_selling_price: float = 0.0
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    customer_email: Optional[str] = None
    customer_address: Optional[str] = None
    notes: Optional[str] = None
    invoice_number: Optional[str] = None
    invoice_date: Optional[str] = None
    invoice_type: Optional[str] = None
    payment_terms: Optional[str] = None
    payment_due_date: Optional[str] = None
    invoice_status: Optional[str] = None
    invoice_notes: Optional[str] = None
    payment_date: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def is_invoice(self) -> bool:
        return bool(self.invoice_number)

    @property
    def profit_amount(self) -> float:
        return self.final_selling_price - self.total_cost
