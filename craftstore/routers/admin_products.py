import logging
from typing import Literal

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from craftstore.core.config import get_settings
from craftstore.core.errors import ValidationError
from craftstore.dependencies import get_categories, get_products, require_admin
from craftstore.repositories.categories import CategoryRepository
from craftstore.repositories.products import ProductRepository
from craftstore.schemas import ImportReport, Message, ProductCreate, ProductOut, ProductUpdate, UploadedImage, UserOut
from craftstore.services import catalog_io
from craftstore.services.uploads import store_image

router = APIRouter(prefix="/api/admin/products", tags=["Admin"], dependencies=[Depends(require_admin)])

logger = logging.getLogger("craftstore.admin")

ExportFormat = Literal["csv", "xlsx"]


def _download(buffer, media_type: str, filename: str) -> StreamingResponse:
    return StreamingResponse(
        buffer,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@router.post("", response_model=ProductOut, status_code=status.HTTP_201_CREATED)
def create_product(
    payload: ProductCreate,
    admin: UserOut = Depends(require_admin),
    products: ProductRepository = Depends(get_products),
):
    product = products.create_product(payload)
    logger.info("admin_product_created", extra={"product_id": product.id, "admin_id": admin.id})
    return product


@router.post("/upload-image", response_model=UploadedImage)
async def upload_image(image: UploadFile = File(...)):
    return await store_image(image)


@router.post("/import-csv", response_model=ImportReport)
async def import_products(
    csv_file: UploadFile = File(..., alias="csvFile"),
    admin: UserOut = Depends(require_admin),
    products: ProductRepository = Depends(get_products),
    categories: CategoryRepository = Depends(get_categories),
):
    settings = get_settings()
    data = await csv_file.read(settings.import_max_bytes + 1)
    await csv_file.close()
    if not data:
        raise ValidationError("No CSV file provided")
    if len(data) > settings.import_max_bytes:
        raise ValidationError("Import file is too large", context={"max_bytes": settings.import_max_bytes})

    report = await run_in_threadpool(catalog_io.import_products, products, categories, csv_file.filename, data)
    logger.info(
        "admin_products_imported",
        extra={"admin_id": admin.id, "imported": report.imported, "failed": len(report.errors)},
    )
    return report


@router.get("/export")
def export_products(
    fmt: ExportFormat = Query("csv", alias="format"),
    products: ProductRepository = Depends(get_products),
    categories: CategoryRepository = Depends(get_categories),
):
    return _download(*catalog_io.export_products(products, categories, fmt))


@router.get("/import-template")
def import_template(fmt: ExportFormat = Query("csv", alias="format")):
    return _download(*catalog_io.import_template(fmt))


@router.put("/{product_id}", response_model=ProductOut)
def update_product(
    product_id: str,
    payload: ProductUpdate,
    admin: UserOut = Depends(require_admin),
    products: ProductRepository = Depends(get_products),
):
    product = products.update_product(product_id, payload)
    logger.info("admin_product_updated", extra={"product_id": product_id, "admin_id": admin.id})
    return product


@router.delete("/{product_id}", response_model=Message)
def delete_product(
    product_id: str,
    admin: UserOut = Depends(require_admin),
    products: ProductRepository = Depends(get_products),
):
    products.delete_product(product_id)
    logger.info("admin_product_deleted", extra={"product_id": product_id, "admin_id": admin.id})
    return Message(message="Product deleted successfully")
