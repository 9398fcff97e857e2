import logging
from typing import List

from sqlalchemy.orm import Session

from core.errors import NotFoundException, ValidationAppException
from modules.products import models, schemas

logger = logging.getLogger(__name__)


def _ensure_unique_sku(db: Session, tenant_id: str, sku, product_id: str = None) -> None:
    if not sku:
        return
    query = (
        db.query(models.Product)
        .execution_options(include_deleted=True)
        .filter(models.Product.tenant_id == tenant_id, models.Product.sku == sku)
    )
    if product_id:
        query = query.filter(models.Product.id != product_id)
    if query.first():
        raise ValidationAppException(f"The SKU '{sku}' is already used by another product in this tenant")


def create_product(db: Session, tenant_id: str, product_in: schemas.ProductCreate) -> models.Product:
    _ensure_unique_sku(db, tenant_id, product_in.sku)
    product = models.Product(
        tenant_id=tenant_id,
        name=product_in.name,
        sku=product_in.sku,
        description=product_in.description,
        inventory_management_type=product_in.inventory_management_type.value,
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    logger.info("Created product %s (%s) for tenant %s", product.id, product.name, tenant_id)
    return product


def list_products(db: Session, tenant_id: str) -> List[models.Product]:
    return (
        db.query(models.Product)
        .filter(models.Product.tenant_id == tenant_id)
        .order_by(models.Product.name)
        .all()
    )


def get_product(db: Session, tenant_id: str, product_id: str) -> models.Product:
    product = (
        db.query(models.Product)
        .filter(models.Product.id == product_id, models.Product.tenant_id == tenant_id)
        .first()
    )
    if not product:
        raise NotFoundException("Product not found")
    return product


def update_product(db: Session, tenant_id: str, product_id: str, product_in: schemas.ProductUpdate) -> models.Product:
    product = get_product(db, tenant_id, product_id)
    data = product_in.model_dump(exclude_unset=True)
    if "sku" in data:
        _ensure_unique_sku(db, tenant_id, data["sku"], product.id)
    for field, value in data.items():
        if field == "inventory_management_type" and value is not None:
            value = value.value
        setattr(product, field, value)
    db.commit()
    db.refresh(product)
    return product


def delete_product(db: Session, tenant_id: str, product_id: str) -> None:
    product = get_product(db, tenant_id, product_id)
    product.soft_delete()
    db.commit()
    logger.info("Soft-deleted product %s for tenant %s", product_id, tenant_id)
