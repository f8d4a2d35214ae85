import logging
import re
import secrets
import sqlite3
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from cataleon import db
from cataleon.errors import AuthenticationError, RateLimitError, ShareLinkError, ValidationError
from cataleon.models import PRODUCT_TYPES, PurchaseInquiry, Session, ShareLink, VendorProfile
from cataleon.pricing import shared_display_price

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW_SECONDS = 60
MAX_REQUESTS_PER_WINDOW = 10
DEFAULT_EXPIRY_DAYS = 30
INQUIRY_STATUSES = ["pending", "contacted", "completed", "cancelled"]

_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class RateLimiter:
    """Fixed-window request counter keyed by client address."""

    def __init__(
        self,
        max_requests: int = MAX_REQUESTS_PER_WINDOW,
        window_seconds: int = RATE_LIMIT_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.clock = clock
        self._windows: dict[str, tuple[int, float]] = {}
        self._lock = threading.Lock()

    def allow(self, client_ip: str) -> bool:
        now = self.clock()
        with self._lock:
            self._windows = {ip: window for ip, window in self._windows.items() if window[1] >= now}
            count, reset_at = self._windows.get(client_ip, (0, now + self.window_seconds))
            if count >= self.max_requests:
                return False
            self._windows[client_ip] = (count + 1, reset_at)
            return True

    def check(self, client_ip: str) -> None:
        if not self.allow(client_ip):
            logger.warning("Rate limit exceeded for %s", client_ip)
            raise RateLimitError(retry_after=self.window_seconds)


@dataclass
class SharedCatalog:
    share_link: ShareLink
    products: list[dict[str, Any]]
    vendor_profile: Optional[VendorProfile]


def _require_session(session: Optional[Session]) -> Session:
    if session is None:
        raise AuthenticationError()
    return session


def _parse_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def create_share_link(
    conn: sqlite3.Connection,
    session: Optional[Session],
    categories: list[str],
    markup_pct: float = 0.0,
    markdown_pct: float = 0.0,
    expires_in_days: int = DEFAULT_EXPIRY_DAYS,
    show_vendor_details: bool = True,
) -> ShareLink:
    session = _require_session(session)
    chosen = [category for category in categories if category in PRODUCT_TYPES]
    if not chosen:
        raise ValidationError("Select at least one product type to share")
    if markup_pct < 0 or markdown_pct < 0:
        raise ValidationError("Markup and markdown must not be negative")
    if markdown_pct >= 100:
        raise ValidationError("Markdown must be below 100%")
    if expires_in_days <= 0:
        raise ValidationError("Expiry must be at least one day")

    expires_at = (datetime.now(timezone.utc) + timedelta(days=expires_in_days)).isoformat()
    link = db.insert_share_link(
        conn,
        session.user_id,
        share_token=secrets.token_urlsafe(24),
        shared_categories=chosen,
        markup_percentage=float(markup_pct),
        markdown_percentage=float(markdown_pct),
        show_vendor_details=show_vendor_details,
        expires_at=expires_at,
    )
    logger.info("User %s created share link %s for %s", session.user_id, link.id, ", ".join(chosen))
    return link


def list_share_links(conn: sqlite3.Connection, session: Optional[Session]) -> list[ShareLink]:
    session = _require_session(session)
    return db.list_share_links(conn, session.user_id)


def deactivate_share_link(conn: sqlite3.Connection, session: Optional[Session], share_link_id: int) -> None:
    session = _require_session(session)
    if db.set_share_link_active(conn, session.user_id, share_link_id, False) == 0:
        raise ValidationError("Share link not found")
    logger.info("User %s deactivated share link %s", session.user_id, share_link_id)


def resolve_share_link(conn: sqlite3.Connection, token: str) -> ShareLink:
    link = db.get_share_link_by_token(conn, token) if token else None
    # Unknown, inactive and expired links all get the same message.
    if link is None:
        logger.info("Invalid share link attempt")
        raise ShareLinkError()
    if _parse_time(link.expires_at) < datetime.now(timezone.utc):
        logger.info("Expired share link attempt for link %s", link.id)
        raise ShareLinkError()
    return link


def get_shared_catalog(
    conn: sqlite3.Connection,
    token: str,
    client_ip: str,
    limiter: RateLimiter,
) -> SharedCatalog:
    limiter.check(client_ip or "unknown")
    link = resolve_share_link(conn, token)

    products = []
    for product in db.list_products(conn, link.user_id):
        if (product.product_type or "Jewellery") not in link.shared_categories:
            continue
        record = product.to_record()
        record.pop("user_id", None)
        record.pop("cost_price", None)
        record["displayed_price"] = shared_display_price(
            product.retail_price,
            link.markup_percentage,
            link.markdown_percentage,
        )
        products.append(record)

    db.increment_share_link_views(conn, link.id)
    profile = db.get_vendor_profile(conn, link.user_id) if link.show_vendor_details else None
    logger.info("Returning shared catalog with %d products to %s", len(products), client_ip)
    return SharedCatalog(share_link=link, products=products, vendor_profile=profile)


def submit_purchase_inquiry(
    conn: sqlite3.Connection,
    token: str,
    product_id: int,
    customer_name: str,
    customer_email: str,
    customer_phone: Optional[str] = None,
    message: Optional[str] = None,
    quantity: int = 1,
) -> PurchaseInquiry:
    link = resolve_share_link(conn, token)

    name = (customer_name or "").strip()
    email = (customer_email or "").strip()
    if not name:
        raise ValidationError("Name is required")
    if len(name) > 100:
        raise ValidationError("Name must be less than 100 characters")
    if not _EMAIL.match(email):
        raise ValidationError("Invalid email address")
    if message and len(message) > 1000:
        raise ValidationError("Message must be less than 1000 characters")
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1")

    shared = [
        product
        for product in db.get_products_by_ids(conn, link.user_id, [product_id])
        if (product.product_type or "Jewellery") in link.shared_categories
    ]
    if not shared:
        raise ValidationError("Product is not part of this catalog")

    inquiry = db.insert_purchase_inquiry(
        conn,
        {
            "share_link_id": link.id,
            "product_id": product_id,
            "customer_name": name,
            "customer_email": email,
            "customer_phone": (customer_phone or "").strip() or None,
            "message": (message or "").strip() or None,
            "quantity": int(quantity),
        },
    )
    logger.info("Purchase inquiry %s received on share link %s", inquiry.id, link.id)
    return inquiry


def list_purchase_inquiries(
    conn: sqlite3.Connection,
    session: Optional[Session],
    status: Optional[str] = None,
) -> list[sqlite3.Row]:
    session = _require_session(session)
    if status and status not in INQUIRY_STATUSES:
        raise ValidationError(f"Unknown inquiry status: {status}")
    return db.list_purchase_inquiries(conn, session.user_id, status)


def update_inquiry_status(
    conn: sqlite3.Connection,
    session: Optional[Session],
    inquiry_id: int,
    status: str,
) -> None:
    session = _require_session(session)
    if status not in INQUIRY_STATUSES:
        raise ValidationError(f"Unknown inquiry status: {status}")
    if db.update_inquiry_status(conn, session.user_id, inquiry_id, status) == 0:
        raise ValidationError("Inquiry not found")
    logger.info("User %s marked inquiry %s as %s", session.user_id, inquiry_id, status)
