# Overview: Post-commit inventory restock for received returns.

"""
Return Restock

Runs on an independent session AFTER the return status change committed.

RULES:
- Each return item is restocked at most once: restocked_at is claimed with
  a conditional UPDATE (WHERE restocked_at IS NULL) in the same savepoint
  as the inventory increment; a claim that matches no row is a skip
- Items are processed one by one inside a SAVEPOINT; a failing item is
  logged and skipped, the rest still go through
- Notifications carry the quantity READ BACK from the inventory row after
  the increment, never old + delta
- Notifications are published only after the restock transaction commits
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import update
from sqlalchemy.orm import Session

from ..cache import UserViewCache
from ..models import Inventory, OrderReturn, OrderReturnItem, Product
from ..notifications import (
    EVENT_INVENTORY_STOCK_UPDATED,
    EVENT_INVENTORY_UPDATED,
    NotificationBus,
    publish_all,
)
from ..time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)

RESTOCK_ACTION = "return_restocked"


class RestockError(Exception):
    """Raised for a single return item that could not be restocked."""


@dataclass(frozen=True)
class RestockedItem:
    return_id: int
    return_item_id: int
    product_id: int
    product_name: str | None
    sku: str | None
    quantity_added: int
    quantity_available: int


@dataclass
class RestockReport:
    restocked: list[RestockedItem] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failures: dict[int, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures

    def error_message(self) -> str | None:
        if not self.failures:
            return None
        return "; ".join(f"return item {item_id}: {err}" for item_id, err in sorted(self.failures.items()))


def _claim_item(session: Session, item_id: int) -> bool:
    """
    Stamp restocked_at only if it is still NULL.

    One conditional UPDATE, so two dispatchers racing on the same item can
    never both see it as unclaimed.
    """
    result = session.execute(
        update(OrderReturnItem)
        .where(OrderReturnItem.id == item_id, OrderReturnItem.restocked_at.is_(None))
        .values(restocked_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _restock_item(session: Session, merchant_id: int, item: OrderReturnItem) -> int:
    """Add the item's quantity back; returns the authoritative on-hand quantity."""
    result = session.execute(
        update(Inventory)
        .where(
            Inventory.merchant_id == merchant_id,
            Inventory.product_id == item.product_id,
        )
        .values(quantity_available=Inventory.quantity_available + item.quantity)
    )
    if not result.rowcount:
        raise RestockError(f"No inventory record for product {item.product_id}")

    return (
        session.query(Inventory.quantity_available)
        .filter_by(merchant_id=merchant_id, product_id=item.product_id)
        .scalar()
    )


def _notifications(report: RestockReport) -> list[tuple[str, dict]]:
    events = []
    for restocked in report.restocked:
        timestamp = to_utc_z(utcnow())
        events.append((EVENT_INVENTORY_UPDATED, {
            "productId": restocked.product_id,
            "productName": restocked.product_name,
            "sku": restocked.sku,
            "quantity": restocked.quantity_available,
            "timestamp": timestamp,
            "action": RESTOCK_ACTION,
            "returnId": restocked.return_id,
        }))
        events.append((EVENT_INVENTORY_STOCK_UPDATED, {
            "productId": restocked.product_id,
            "quantity": restocked.quantity_available,
            "timestamp": timestamp,
        }))
    return events


def restock_returns(
    session: Session,
    return_ids: list[int],
    merchant_id: int,
    actor_id: int | None,
    bus: NotificationBus,
    cache: UserViewCache | None = None,
) -> RestockReport:
    """
    Put every not-yet-restocked item of the given returns back into inventory.

    Commits `session`. Item failures are collected in the report rather than
    raised.
    """
    report = RestockReport()

    returns = (
        session.query(OrderReturn)
        .filter(OrderReturn.id.in_(return_ids), OrderReturn.merchant_id == merchant_id)
        .order_by(OrderReturn.id)
        .all()
    )
    if not returns:
        logger.warning("No returns found to restock: %s (merchant %s)", return_ids, merchant_id)

    for order_return in returns:
        items = (
            session.query(OrderReturnItem)
            .filter_by(return_id=order_return.id)
            .order_by(OrderReturnItem.id)
            .all()
        )
        if not items:
            logger.warning("Return %s has no items to restock", order_return.id)

        for item in items:
            if item.restocked_at is not None:
                report.skipped.append(item.id)
                continue

            savepoint = session.begin_nested()
            try:
                if not _claim_item(session, item.id):
                    savepoint.rollback()
                    report.skipped.append(item.id)
                    continue
                quantity = _restock_item(session, merchant_id, item)
                savepoint.commit()
            except Exception as exc:
                savepoint.rollback()
                logger.warning(
                    "Restock failed for return %s item %s (product %s): %s",
                    order_return.id, item.id, item.product_id, exc,
                )
                report.failures[item.id] = str(exc)
                continue

            product = session.get(Product, item.product_id)
            report.restocked.append(RestockedItem(
                return_id=order_return.id,
                return_item_id=item.id,
                product_id=item.product_id,
                product_name=product.name if product else None,
                sku=product.sku if product else None,
                quantity_added=item.quantity,
                quantity_available=quantity,
            ))

    session.commit()

    logger.info(
        "Restocked %d item(s) for returns %s (%d skipped, %d failed)",
        len(report.restocked), return_ids, len(report.skipped), len(report.failures),
    )

    publish_all(bus, _notifications(report))
    if cache is not None:
        cache.invalidate_user(actor_id)
    return report
