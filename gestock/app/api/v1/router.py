from fastapi import APIRouter

from gestock.app.api.v1.endpoints.health import router as health_router
from gestock.app.api.v1.endpoints.sites import router as sites_router
from gestock.app.api.v1.endpoints.suppliers import router as suppliers_router
from gestock.app.api.v1.endpoints.products import router as products_router
from gestock.app.api.v1.endpoints.taxonomy import router as taxonomy_router
from gestock.app.api.v1.endpoints.stocks import router as stocks_router
from gestock.app.api.v1.endpoints.movements import router as movements_router
from gestock.app.api.v1.endpoints.orders import router as orders_router
from gestock.app.api.v1.endpoints.packs import router as packs_router
from gestock.app.api.v1.endpoints.imports import router as imports_router
from gestock.app.api.v1.endpoints.dashboard import router as dashboard_router
from gestock.app.api.v1.endpoints.read_models import router as read_models_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(sites_router, tags=["sites"])
router.include_router(suppliers_router, tags=["suppliers"])
router.include_router(products_router, tags=["products"])
router.include_router(taxonomy_router, tags=["taxonomy"])
router.include_router(stocks_router, tags=["stocks"])
router.include_router(movements_router, tags=["movements"])
router.include_router(orders_router, tags=["orders"])
router.include_router(packs_router, tags=["packs"])
router.include_router(imports_router, tags=["import_export"])
router.include_router(dashboard_router, tags=["dashboard"])
router.include_router(read_models_router, tags=["read_models"])
