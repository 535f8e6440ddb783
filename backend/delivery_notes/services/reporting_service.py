# Overview: Service-layer operations for dashboard figures.

from __future__ import annotations

from sqlalchemy import func

from ..entities import DELIVERY_STATUS_DELIVERED, DELIVERY_STATUS_PENDING, DashboardStats
from ..extensions import db
from ..models import Delivery, Product, User


def get_dashboard_stats() -> DashboardStats:
    by_status = dict(
        db.session.query(Delivery.status, func.count(Delivery.id))
        .group_by(Delivery.status)
        .all()
    )
    return DashboardStats(
        users=db.session.query(func.count(User.id)).scalar() or 0,
        products=db.session.query(func.count(Product.id)).scalar() or 0,
        deliveries=sum(by_status.values()),
        pending_deliveries=by_status.get(DELIVERY_STATUS_PENDING, 0),
        delivered_deliveries=by_status.get(DELIVERY_STATUS_DELIVERED, 0),
    )
