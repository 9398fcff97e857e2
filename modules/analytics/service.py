"""Read-only stock and usage analytics over materials and the inventory ledger."""

from collections import defaultdict
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from core.models import utcnow
from core.settings import as_float, get_settings, to_decimal
from modules.materials.models import InventoryTransaction, Material, classify_stock

STOCK_STATUSES = ("normal", "low", "critical", "out_of_stock", "excess")
UNCATEGORIZED = "Uncategorized"


def categorize_turnover(rate: float) -> str:
    if rate > 2.0:
        return "Very High"
    if rate > 1.0:
        return "High"
    if rate > 0.5:
        return "Moderate"
    if rate > 0.1:
        return "Low"
    return "Very Low"


def turnover_rate(stock, usage) -> Decimal:
    usage = to_decimal(usage)
    average_stock = to_decimal(stock) + usage / 2
    if average_stock <= 0:
        return Decimal("0")
    return usage / average_stock


def _materials(db: Session, tenant_id: str, categories: Optional[List[str]] = None) -> List[Material]:
    query = db.query(Material).filter(Material.tenant_id == tenant_id)
    if categories:
        query = query.filter(Material.category.in_(categories))
    return query.order_by(Material.name).all()


def window_transactions(
    db: Session, tenant_id: str, days: int, material_id: Optional[str] = None
) -> List[InventoryTransaction]:
    cutoff = utcnow() - timedelta(days=days)
    query = db.query(InventoryTransaction).filter(
        InventoryTransaction.tenant_id == tenant_id,
        InventoryTransaction.created_at >= cutoff,
    )
    if material_id:
        query = query.filter(InventoryTransaction.material_id == material_id)
    return query.order_by(InventoryTransaction.created_at.desc()).all()


def report_period(days: int) -> Dict[str, Any]:
    now = utcnow()
    return {"from": (now - timedelta(days=days)).isoformat(), "to": now.isoformat(), "days": days}


def _split(transactions) -> Dict[str, Decimal]:
    increase = Decimal("0")
    decrease = Decimal("0")
    for txn in transactions:
        change = to_decimal(txn.quantity_change)
        if change > 0:
            increase += change
        elif change < 0:
            decrease += -change
    return {"increase": increase, "decrease": decrease}


def stock_status_summary(db: Session, tenant_id: str) -> Dict[str, Any]:
    settings = get_settings()
    materials = _materials(db, tenant_id)
    counts = dict.fromkeys(STOCK_STATUSES, 0)
    for material in materials:
        status = classify_stock(
            material.stock_quantity, material.reorder_level, settings.critical_stock_ratio, settings.excess_stock_ratio
        )
        counts[status] += 1
    return {
        "total_materials": len(materials),
        "normal_stock": counts["normal"],
        "low_stock": counts["low"],
        "critical_stock": counts["critical"],
        "out_of_stock": counts["out_of_stock"],
        "excess_stock": counts["excess"],
        "total_value": as_float(sum((m.stock_value for m in materials), Decimal("0")), 2),
    }


def materials_by_category(db: Session, tenant_id: str) -> Dict[str, Any]:
    grouped: Dict[str, List[Material]] = defaultdict(list)
    for material in _materials(db, tenant_id):
        grouped[material.category or UNCATEGORIZED].append(material)

    categories = []
    for category, items in sorted(grouped.items()):
        categories.append(
            {
                "category": category,
                "total_materials": len(items),
                "total_stock_value": as_float(sum((m.stock_value for m in items), Decimal("0")), 2),
                "low_stock_count": sum(1 for m in items if m.is_low_stock),
                "materials": [
                    {
                        "id": m.id,
                        "name": m.name,
                        "sku": m.sku,
                        "stock_quantity": as_float(m.stock_quantity),
                        "unit": m.unit,
                        "stock_value": as_float(m.stock_value, 2),
                    }
                    for m in items
                ],
            }
        )
    return {"categories": categories, "total_categories": len(categories), "generated_at": utcnow().isoformat()}


def usage_trends(db: Session, tenant_id: str, days: int = 30) -> Dict[str, Any]:
    transactions = window_transactions(db, tenant_id, days)
    by_type: Dict[str, List[InventoryTransaction]] = defaultdict(list)
    by_reason: Dict[str, List[InventoryTransaction]] = defaultdict(list)
    by_day: Dict[str, List[InventoryTransaction]] = defaultdict(list)
    for txn in transactions:
        by_type[txn.transaction_type].append(txn)
        by_reason[txn.reason].append(txn)
        by_day[txn.created_at.date().isoformat()].append(txn)

    def _net(txns) -> float:
        return as_float(sum((to_decimal(t.quantity_change) for t in txns), Decimal("0")))

    daily = []
    for day in sorted(by_day):
        split = _split(by_day[day])
        daily.append(
            {
                "date": day,
                "transaction_count": len(by_day[day]),
                "total_increase": as_float(split["increase"]),
                "total_decrease": as_float(split["decrease"]),
            }
        )

    return {
        "period": report_period(days),
        "by_type": [
            {"type": key, "count": len(txns), "total_quantity_change": _net(txns)} for key, txns in sorted(by_type.items())
        ],
        "by_reason": [
            {"reason": key, "count": len(txns), "total_quantity_change": _net(txns)}
            for key, txns in sorted(by_reason.items())
        ],
        "daily_trends": daily,
        "total_transactions": len(transactions),
        "generated_at": utcnow().isoformat(),
    }


def material_usage(db: Session, tenant_id: str, material_id: Optional[str] = None, days: int = 30) -> Dict[str, Any]:
    grouped: Dict[str, List[InventoryTransaction]] = defaultdict(list)
    for txn in window_transactions(db, tenant_id, days, material_id):
        grouped[txn.material_id].append(txn)

    materials = {m.id: m for m in _materials(db, tenant_id) if m.id in grouped}

    entries = []
    for mid, txns in grouped.items():
        material = materials.get(mid)
        if material is None:
            continue
        split = _split(txns)
        stock = to_decimal(material.stock_quantity)
        daily = split["decrease"] / days
        entries.append(
            {
                "material_id": material.id,
                "material_name": material.name,
                "sku": material.sku,
                "unit": material.unit,
                "current_stock": as_float(stock),
                "total_increase": as_float(split["increase"]),
                "total_decrease": as_float(split["decrease"]),
                "net_change": as_float(split["increase"] - split["decrease"]),
                "transaction_count": len(txns),
                "average_daily_usage": as_float(daily),
                "days_until_stockout": as_float(stock / daily, 1) if stock > 0 and daily > 0 else None,
            }
        )
    entries.sort(key=lambda e: e["total_decrease"], reverse=True)
    return {
        "period": report_period(days),
        "materials": entries,
        "total_materials_analyzed": len(entries),
        "generated_at": utcnow().isoformat(),
    }


def cost_analysis(db: Session, tenant_id: str, categories: Optional[List[str]] = None) -> Dict[str, Any]:
    materials = _materials(db, tenant_id, categories)
    total_value = sum((m.stock_value for m in materials), Decimal("0"))

    def _avg_cost(items) -> float:
        if not items:
            return 0.0
        return as_float(sum((to_decimal(m.unit_cost) for m in items), Decimal("0")) / len(items), 2)

    top = sorted(materials, key=lambda m: m.stock_value, reverse=True)[:10]
    grouped: Dict[str, List[Material]] = defaultdict(list)
    for material in materials:
        grouped[material.category or UNCATEGORIZED].append(material)
    by_category = [
        {
            "category": category,
            "total_value": as_float(sum((m.stock_value for m in items), Decimal("0")), 2),
            "material_count": len(items),
            "average_unit_cost": _avg_cost(items),
        }
        for category, items in grouped.items()
    ]
    by_category.sort(key=lambda c: c["total_value"], reverse=True)

    return {
        "total_stock_value": as_float(total_value, 2),
        "average_unit_cost": _avg_cost(materials),
        "total_materials": len(materials),
        "top_materials_by_value": [
            {
                "material_id": m.id,
                "name": m.name,
                "sku": m.sku,
                "category": m.category,
                "stock_quantity": as_float(m.stock_quantity),
                "unit_cost": as_float(m.unit_cost, 4),
                "total_value": as_float(m.stock_value, 2),
            }
            for m in top
        ],
        "cost_by_category": by_category,
        "generated_at": utcnow().isoformat(),
    }


def inventory_turnover(db: Session, tenant_id: str, days: int = 30) -> Dict[str, Any]:
    usage: Dict[str, Decimal] = defaultdict(Decimal)
    for txn in window_transactions(db, tenant_id, days):
        change = to_decimal(txn.quantity_change)
        if change < 0:
            usage[txn.material_id] += -change

    rows = []
    for material in _materials(db, tenant_id):
        total_usage = usage.get(material.id, Decimal("0"))
        stock = to_decimal(material.stock_quantity)
        rate = as_float(turnover_rate(stock, total_usage), 2)
        rows.append(
            {
                "material_id": material.id,
                "name": material.name,
                "sku": material.sku,
                "current_stock": as_float(stock),
                "total_usage": as_float(total_usage),
                "average_stock": as_float(stock + total_usage / 2),
                "turnover_rate": rate,
                "turnover_category": categorize_turnover(rate),
            }
        )
    rows.sort(key=lambda r: r["turnover_rate"], reverse=True)
    average = round(sum(r["turnover_rate"] for r in rows) / len(rows), 2) if rows else 0.0
    return {
        "period": report_period(days),
        "turnover_data": rows,
        "average_turnover_rate": average,
        "generated_at": utcnow().isoformat(),
    }


def attention_priority(material: Material, decrease, transaction_count: int, days: int):
    """Score a material for the attention list; returns ``(priority, reasons, daily_usage)``."""
    stock = to_decimal(material.stock_quantity)
    daily = to_decimal(decrease) / days
    reasons: List[str] = []
    priority = 0
    if stock <= 0:
        reasons.append("Out of stock")
        priority = 5
    elif material.is_low_stock:
        reasons.append("Low stock (below reorder level)")
        priority += 3

    if stock > 0:
        if daily > 0:
            days_left = stock / daily
            if days_left < 7:
                reasons.append(f"Only {as_float(days_left, 1)} days of stock remaining at current usage rate")
                priority += 4
        if transaction_count == 0:
            reasons.append(f"No transactions in last {days} days (possibly obsolete)")
            priority += 1
    return priority, reasons, daily


def materials_requiring_attention(db: Session, tenant_id: str, days: int = 30) -> Dict[str, Any]:
    grouped: Dict[str, List[InventoryTransaction]] = defaultdict(list)
    for txn in window_transactions(db, tenant_id, days):
        grouped[txn.material_id].append(txn)

    entries = []
    for material in _materials(db, tenant_id):
        txns = grouped.get(material.id, [])
        priority, reasons, daily = attention_priority(material, _split(txns)["decrease"], len(txns), days)
        if not reasons:
            continue
        entries.append(
            {
                "material_id": material.id,
                "name": material.name,
                "sku": material.sku,
                "category": material.category,
                "current_stock": as_float(material.stock_quantity),
                "reorder_level": as_float(material.reorder_level),
                "unit": material.unit,
                "supplier": material.supplier,
                "priority": priority,
                "reasons": reasons,
                "average_daily_usage": as_float(daily),
            }
        )
    entries.sort(key=lambda e: e["priority"], reverse=True)
    return {
        "materials_requiring_attention": entries,
        "total_count": len(entries),
        "period_analyzed": f"{days} days",
        "generated_at": utcnow().isoformat(),
    }
