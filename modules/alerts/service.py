import logging
from collections import defaultdict
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.errors import BusinessRuleException, NotFoundException
from core.models import utcnow
from core.settings import Settings, as_float, get_settings, to_decimal
from modules.alerts import models
from modules.materials import models as material_models

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    "acknowledged": ("pending",),
    "resolved": ("pending", "acknowledged"),
    "dismissed": ("pending", "acknowledged"),
}
SEVERITY_RANK = {"critical": 3, "warning": 2, "info": 1}
PRIORITY_RANK = {"urgent": 3, "high": 2, "medium": 1}


# Persisted alerts


def _actionable_alert(db: Session, material: material_models.Material) -> Optional[models.StockAlert]:
    return (
        db.query(models.StockAlert)
        .filter(
            models.StockAlert.tenant_id == material.tenant_id,
            models.StockAlert.material_id == material.id,
            models.StockAlert.status.in_(models.ACTIONABLE_STATUSES),
        )
        .order_by(models.StockAlert.created_at.desc())
        .first()
    )


def _recently_closed(db: Session, material: material_models.Material, severity: str, settings: Settings) -> bool:
    cutoff = utcnow() - timedelta(hours=settings.alert_dedup_window_hours)
    return (
        db.query(models.StockAlert)
        .filter(
            models.StockAlert.tenant_id == material.tenant_id,
            models.StockAlert.material_id == material.id,
            models.StockAlert.severity == severity,
            models.StockAlert.status.in_(("resolved", "dismissed")),
            models.StockAlert.updated_at >= cutoff,
        )
        .first()
        is not None
    )


def _raise_or_refresh(
    db: Session,
    material: material_models.Material,
    previous_stock=None,
    settings: Optional[Settings] = None,
) -> Tuple[Optional[models.StockAlert], bool]:
    settings = settings or get_settings()
    severity = models.severity_for(material.stock_quantity, material.reorder_level, settings.critical_stock_ratio)
    if severity is None:
        return None, False

    existing = _actionable_alert(db, material)
    if existing:
        existing.current_stock = to_decimal(material.stock_quantity)
        existing.reorder_level = to_decimal(material.reorder_level)
        existing.severity = severity
        db.flush()
        return existing, False

    if previous_stock is not None:
        before = to_decimal(previous_stock)
        crossed_reorder = before >= to_decimal(material.reorder_level)
        emptied = before > 0 and severity == "out_of_stock"
        if not (crossed_reorder or emptied):
            return None, False

    if _recently_closed(db, material, severity, settings):
        return None, False

    alert = models.StockAlert(
        tenant_id=material.tenant_id,
        material_id=material.id,
        material=material,
        current_stock=to_decimal(material.stock_quantity),
        reorder_level=to_decimal(material.reorder_level),
        severity=severity,
        status="pending",
    )
    db.add(alert)
    db.flush()
    logger.warning(
        "Stock alert raised for material %s (%s): %s at %s, reorder level %s",
        material.id,
        material.name,
        severity,
        material.stock_quantity,
        material.reorder_level,
    )
    return alert, True


def evaluate_material(db: Session, material: material_models.Material, previous_stock=None) -> Optional[models.StockAlert]:
    """Raise or refresh the stock alert for a material after its stock changed.

    A new alert is only created when the change crossed the reorder threshold
    (or emptied the stock); an open alert is updated in place. Does not commit.
    """
    alert, _ = _raise_or_refresh(db, material, previous_stock=previous_stock)
    return alert


def check_tenant(db: Session, tenant_id: str) -> Dict[str, Any]:
    settings = get_settings()
    materials = db.query(material_models.Material).filter(material_models.Material.tenant_id == tenant_id).all()
    created = 0
    updated = 0
    for material in materials:
        alert, is_new = _raise_or_refresh(db, material, settings=settings)
        if alert is None:
            continue
        if is_new:
            created += 1
        else:
            updated += 1
    db.commit()
    logger.info("Stock alert check for tenant %s: %d created, %d updated", tenant_id, created, updated)
    return {"checked": len(materials), "created": created, "updated": updated}


def get_alert(db: Session, tenant_id: str, alert_id: str) -> models.StockAlert:
    alert = (
        db.query(models.StockAlert)
        .filter(models.StockAlert.id == alert_id, models.StockAlert.tenant_id == tenant_id)
        .first()
    )
    if not alert:
        raise NotFoundException("Stock alert not found")
    return alert


def list_alerts(
    db: Session,
    tenant_id: str,
    status: Optional[str] = None,
    severity: Optional[str] = None,
    material_id: Optional[str] = None,
) -> List[models.StockAlert]:
    query = db.query(models.StockAlert).filter(models.StockAlert.tenant_id == tenant_id)
    if status:
        query = query.filter(models.StockAlert.status == status)
    if severity:
        query = query.filter(models.StockAlert.severity == severity)
    if material_id:
        query = query.filter(models.StockAlert.material_id == material_id)
    return query.order_by(models.StockAlert.created_at.desc()).all()


def alert_stats(db: Session, tenant_id: str) -> Dict[str, Any]:
    by_status = dict.fromkeys(models.ALERT_STATUSES, 0)
    rows = (
        db.query(models.StockAlert.status, func.count(models.StockAlert.id))
        .filter(models.StockAlert.tenant_id == tenant_id)
        .group_by(models.StockAlert.status)
        .all()
    )
    for status, count in rows:
        by_status[status] = count

    by_severity = dict.fromkeys(models.ALERT_SEVERITIES, 0)
    rows = (
        db.query(models.StockAlert.severity, func.count(models.StockAlert.id))
        .filter(
            models.StockAlert.tenant_id == tenant_id,
            models.StockAlert.status.in_(models.ACTIONABLE_STATUSES),
        )
        .group_by(models.StockAlert.severity)
        .all()
    )
    for severity, count in rows:
        by_severity[severity] = count

    return {
        "total": sum(by_status.values()),
        "actionable": by_status["pending"] + by_status["acknowledged"],
        "by_status": by_status,
        "actionable_by_severity": by_severity,
    }


def transition_alert(
    db: Session,
    tenant_id: str,
    alert_id: str,
    target: str,
    actor: Optional[str] = None,
    notes: Optional[str] = None,
) -> models.StockAlert:
    alert = get_alert(db, tenant_id, alert_id)
    allowed_from = ALLOWED_TRANSITIONS[target]
    if alert.status not in allowed_from:
        raise BusinessRuleException(
            f"Cannot move alert from '{alert.status}' to '{target}'",
            rule="invalid_alert_transition",
        )
    alert.status = target
    setattr(alert, f"{target}_by", actor)
    setattr(alert, f"{target}_at", utcnow())
    setattr(alert, f"{target}_notes", notes)
    db.commit()
    db.refresh(alert)
    logger.info("Stock alert %s %s by %s", alert.id, target, actor or "anonymous")
    return alert


def acknowledge_alert(db: Session, tenant_id: str, alert_id: str, actor=None, notes=None) -> models.StockAlert:
    return transition_alert(db, tenant_id, alert_id, "acknowledged", actor, notes)


def resolve_alert(db: Session, tenant_id: str, alert_id: str, actor=None, notes=None) -> models.StockAlert:
    return transition_alert(db, tenant_id, alert_id, "resolved", actor, notes)


def dismiss_alert(db: Session, tenant_id: str, alert_id: str, actor=None, notes=None) -> models.StockAlert:
    return transition_alert(db, tenant_id, alert_id, "dismissed", actor, notes)


# Computed alerts


def material_alerts(material: material_models.Material) -> List[Dict[str, str]]:
    stock = to_decimal(material.stock_quantity)
    active_recipes = len(material.active_recipes())
    alerts = []
    if stock <= 0:
        alerts.append(
            {
                "type": "out_of_stock",
                "severity": "critical",
                "message": "Material is completely out of stock",
                "action_required": "Immediate reorder required",
            }
        )
    if stock > 0 and material.is_low_stock:
        alerts.append(
            {
                "type": "below_reorder_level",
                "severity": "warning",
                "message": f"Stock is below reorder level ({as_float(material.reorder_level)} {material.unit})",
                "action_required": "Consider reordering soon",
            }
        )
    if active_recipes and material.is_low_stock:
        alerts.append(
            {
                "type": "active_recipe_low_stock",
                "severity": "warning",
                "message": f"Used in {active_recipes} active recipe(s) and stock is low",
                "action_required": "Priority reorder, production is affected",
            }
        )
    if active_recipes and stock <= 0:
        alerts.append(
            {
                "type": "active_recipe_out_of_stock",
                "severity": "critical",
                "message": f"Out of stock and used in {active_recipes} active recipe(s)",
                "action_required": "Production halted, reorder immediately",
            }
        )
    return alerts


def highest_severity(alerts: List[Dict[str, str]]) -> str:
    for severity in ("critical", "warning", "info"):
        if any(alert["severity"] == severity for alert in alerts):
            return severity
    return "info"


def get_active_alerts(db: Session, tenant_id: str) -> Dict[str, Any]:
    materials = db.query(material_models.Material).filter(material_models.Material.tenant_id == tenant_id).all()
    entries = []
    for material in materials:
        alerts = material_alerts(material)
        if not alerts:
            continue
        entries.append(
            {
                "material_id": material.id,
                "material_name": material.name,
                "sku": material.sku,
                "category": material.category,
                "current_stock": as_float(material.stock_quantity),
                "reorder_level": as_float(material.reorder_level),
                "unit": material.unit,
                "alerts": alerts,
                "alert_count": len(alerts),
                "highest_severity": highest_severity(alerts),
            }
        )
    entries.sort(key=lambda e: SEVERITY_RANK[e["highest_severity"]], reverse=True)
    return {
        "alerts": entries,
        "total_alerts": len(entries),
        "severity_summary": {
            severity: sum(1 for e in entries if e["highest_severity"] == severity) for severity in SEVERITY_RANK
        },
        "generated_at": utcnow().isoformat(),
    }


def recent_usage(db: Session, tenant_id: str, days: int) -> Dict[str, Decimal]:
    """Total outgoing quantity per material over the last ``days`` days."""
    cutoff = utcnow() - timedelta(days=days)
    rows = (
        db.query(material_models.InventoryTransaction.material_id, material_models.InventoryTransaction.quantity_change)
        .filter(
            material_models.InventoryTransaction.tenant_id == tenant_id,
            material_models.InventoryTransaction.created_at >= cutoff,
            material_models.InventoryTransaction.quantity_change < 0,
        )
        .all()
    )
    usage: Dict[str, Decimal] = defaultdict(Decimal)
    for material_id, change in rows:
        usage[material_id] += abs(to_decimal(change))
    return usage


def get_predictive_alerts(db: Session, tenant_id: str, forecast_days: int = 7) -> Dict[str, Any]:
    window = get_settings().usage_window_days
    usage = recent_usage(db, tenant_id, window)
    materials = db.query(material_models.Material).filter(material_models.Material.tenant_id == tenant_id).all()
    now = utcnow()
    entries = []
    for material in materials:
        total_usage = usage.get(material.id)
        if not total_usage:
            continue
        daily = total_usage / window
        stock = to_decimal(material.stock_quantity)
        days_left = stock / daily
        if days_left > forecast_days:
            continue
        entries.append(
            {
                "material_id": material.id,
                "material_name": material.name,
                "sku": material.sku,
                "current_stock": as_float(stock),
                "unit": material.unit,
                "average_daily_usage": as_float(daily),
                "days_until_stockout": as_float(days_left, 1),
                "predicted_stockout_date": (now + timedelta(days=float(days_left))).date().isoformat(),
                "severity": "critical" if days_left <= 3 else "warning",
                "message": f"Will run out in {as_float(days_left, 1)} days at current usage rate",
                "recommended_reorder_quantity": as_float(daily * window, 2),
            }
        )
    entries.sort(key=lambda e: e["days_until_stockout"])
    return {
        "predictive_alerts": entries,
        "total_alerts": len(entries),
        "forecast_period_days": forecast_days,
        "based_on_usage_days": window,
        "generated_at": now.isoformat(),
    }


def reorder_priority(stock, reorder_level) -> str:
    stock = to_decimal(stock)
    if stock <= 0:
        return "urgent"
    if stock < to_decimal(reorder_level) * Decimal("0.5"):
        return "high"
    return "medium"


def get_reorder_recommendations(db: Session, tenant_id: str, target_days: int = 30) -> Dict[str, Any]:
    window = get_settings().usage_window_days
    usage = recent_usage(db, tenant_id, window)
    materials = (
        db.query(material_models.Material)
        .filter(
            material_models.Material.tenant_id == tenant_id,
            material_models.Material.stock_quantity < material_models.Material.reorder_level,
        )
        .all()
    )
    entries = []
    for material in materials:
        daily = usage.get(material.id, Decimal("0")) / window
        stock = to_decimal(material.stock_quantity)
        quantity = max(to_decimal(material.reorder_level) - stock, daily * target_days)
        entries.append(
            {
                "material_id": material.id,
                "material_name": material.name,
                "sku": material.sku,
                "supplier": material.supplier,
                "category": material.category,
                "current_stock": as_float(stock),
                "reorder_level": as_float(material.reorder_level),
                "unit": material.unit,
                "average_daily_usage": as_float(daily),
                "recommended_order_quantity": as_float(quantity, 2),
                "unit_cost": as_float(material.unit_cost, 4),
                "estimated_order_cost": as_float(quantity * to_decimal(material.unit_cost), 2),
                "priority": reorder_priority(stock, material.reorder_level),
            }
        )
    entries.sort(key=lambda e: PRIORITY_RANK[e["priority"]], reverse=True)
    return {
        "recommendations": entries,
        "total_materials": len(entries),
        "total_estimated_cost": round(sum(e["estimated_order_cost"] for e in entries), 2),
        "target_days_of_stock": target_days,
        "priority_summary": {
            priority: sum(1 for e in entries if e["priority"] == priority) for priority in PRIORITY_RANK
        },
        "generated_at": utcnow().isoformat(),
    }


def get_alert_dashboard(db: Session, tenant_id: str) -> Dict[str, Any]:
    active = get_active_alerts(db, tenant_id)
    predictive = get_predictive_alerts(db, tenant_id, 7)
    reorder = get_reorder_recommendations(db, tenant_id, 30)
    return {
        "summary": {
            "active_alerts": active["total_alerts"],
            "predictive_alerts": predictive["total_alerts"],
            "reorder_recommendations": reorder["total_materials"],
            "critical_count": active["severity_summary"]["critical"],
            "warning_count": active["severity_summary"]["warning"],
        },
        "active_alerts": active["alerts"][:10],
        "predictive_alerts": predictive["predictive_alerts"][:10],
        "reorder_recommendations": reorder["recommendations"][:10],
        "total_reorder_cost": reorder["total_estimated_cost"],
        "generated_at": utcnow().isoformat(),
    }
