from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.database import get_db
from core.tenancy import get_actor, get_tenant_id
from modules.recipes import schemas, service

router = APIRouter(prefix="/recipes", tags=["recipes"])
product_recipes_router = APIRouter(prefix="/products", tags=["recipes"])


@router.post("", response_model=schemas.RecipeRead)
def create_recipe_endpoint(
    recipe_in: schemas.RecipeCreate, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    return service.serialize_recipe(service.create_recipe(db, tenant_id, recipe_in))


@router.get("", response_model=list[schemas.RecipeRead])
def list_recipes_endpoint(
    search: Optional[str] = None,
    product_id: Optional[str] = None,
    is_active: Optional[bool] = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    recipes = service.list_recipes(db, tenant_id, search=search, product_id=product_id, is_active=is_active)
    return [service.serialize_recipe(r) for r in recipes]


@router.get("/{recipe_id}", response_model=schemas.RecipeRead)
def get_recipe_endpoint(recipe_id: str, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return service.serialize_recipe(service.get_recipe_model(db, tenant_id, recipe_id))


@router.put("/{recipe_id}", response_model=schemas.RecipeRead)
def update_recipe_endpoint(
    recipe_id: str,
    recipe_in: schemas.RecipeUpdate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return service.serialize_recipe(service.update_recipe(db, tenant_id, recipe_id, recipe_in))


@router.delete("/{recipe_id}")
def delete_recipe_endpoint(recipe_id: str, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    service.delete_recipe(db, tenant_id, recipe_id)
    return {"message": "Recipe deleted"}


@router.post("/{recipe_id}/activate", response_model=schemas.RecipeRead)
def activate_recipe_endpoint(recipe_id: str, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return service.serialize_recipe(service.activate_recipe(db, tenant_id, recipe_id))


@router.post("/{recipe_id}/deactivate", response_model=schemas.RecipeRead)
def deactivate_recipe_endpoint(
    recipe_id: str, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    return service.serialize_recipe(service.deactivate_recipe(db, tenant_id, recipe_id))


@router.post("/{recipe_id}/clone", response_model=schemas.RecipeRead)
def clone_recipe_endpoint(
    recipe_id: str,
    clone_in: Optional[schemas.RecipeClone] = None,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    clone_in = clone_in or schemas.RecipeClone()
    return service.serialize_recipe(service.clone_recipe(db, tenant_id, recipe_id, clone_in))


@router.get("/{recipe_id}/cost")
def recipe_cost_endpoint(recipe_id: str, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return service.calculate_cost(db, tenant_id, recipe_id)


@router.get("/{recipe_id}/cost-breakdown")
def recipe_cost_breakdown_endpoint(
    recipe_id: str, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    return service.cost_breakdown(db, tenant_id, recipe_id)


@router.post("/{recipe_id}/produce")
def produce_recipe_endpoint(
    recipe_id: str,
    run: schemas.ProductionRun,
    tenant_id: str = Depends(get_tenant_id),
    actor: Optional[str] = Depends(get_actor),
    db: Session = Depends(get_db),
):
    return service.produce(db, tenant_id, recipe_id, run, user_id=actor)


@router.post("/{recipe_id}/components", response_model=schemas.RecipeComponentRead)
def add_component_endpoint(
    recipe_id: str,
    component_in: schemas.RecipeComponentCreate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return service.serialize_component(service.add_component(db, tenant_id, recipe_id, component_in))


@router.put("/{recipe_id}/components/{component_id}", response_model=schemas.RecipeComponentRead)
def update_component_endpoint(
    recipe_id: str,
    component_id: str,
    component_in: schemas.RecipeComponentUpdate,
    tenant_id: str = Depends(get_tenant_id),
    db: Session = Depends(get_db),
):
    return service.serialize_component(
        service.update_component(db, tenant_id, recipe_id, component_id, component_in)
    )


@router.delete("/{recipe_id}/components/{component_id}")
def remove_component_endpoint(
    recipe_id: str, component_id: str, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)
):
    service.remove_component(db, tenant_id, recipe_id, component_id)
    return {"message": "Component removed"}


@product_recipes_router.get("/{product_id}/recipes", response_model=list[schemas.RecipeRead])
def product_recipes_endpoint(product_id: str, tenant_id: str = Depends(get_tenant_id), db: Session = Depends(get_db)):
    return [service.serialize_recipe(r) for r in service.recipes_for_product(db, tenant_id, product_id)]
