"""
Product API endpoints following FastAPI best practices
Clean API layer with dependency injection
"""

from typing import List, Optional, Type, TypeVar

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.clients.blob_storage import UploadedImage
from app.core.errors import ErrorResponseModel, ValidationError
from app.dependencies.auth import require_admin
from app.dependencies.product import get_product_service, get_variant_image_coordinator
from app.models.product import ProductStatus
from app.models.user import User
from app.schemas.product import (
    ImageMeta,
    ProductCreate,
    ProductDetailsUpdate,
    ProductListResponse,
    ProductResponse,
    VariantCreate,
    VariantUpdate,
)
from app.services.product import ProductService
from app.services.variant_image import VariantImageCoordinator

router = APIRouter()

M = TypeVar("M", bound=BaseModel)

_image_meta_list = TypeAdapter(List[ImageMeta])

WRITE_RESPONSES = {
    400: {"model": ErrorResponseModel},
    401: {"model": ErrorResponseModel},
    403: {"model": ErrorResponseModel},
    404: {"model": ErrorResponseModel},
    409: {"model": ErrorResponseModel},
    502: {"model": ErrorResponseModel},
}


def _validation_details(error: PydanticValidationError) -> dict:
    return {"errors": [{"loc": list(err["loc"]), "msg": err["msg"]} for err in error.errors()]}


def parse_form_model(model: Type[M], raw: str, field: str) -> M:
    """Multipart requests carry their JSON body in a form field"""
    try:
        return model.model_validate_json(raw)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {field}", details={"field": field, **_validation_details(e)})


def parse_image_meta(raw: Optional[str]) -> List[ImageMeta]:
    if not raw:
        return []
    try:
        return _image_meta_list.validate_json(raw)
    except PydanticValidationError as e:
        raise ValidationError("Invalid meta", details={"field": "meta", **_validation_details(e)})


async def read_uploads(files: Optional[List[UploadFile]]) -> List[UploadedImage]:
    uploads = []
    for file in files or []:
        uploads.append(UploadedImage(
            filename=file.filename or "",
            content=await file.read(),
            content_type=file.content_type or "application/octet-stream",
        ))
    return uploads


# Catalog reads
@router.get(
    "",
    response_model=ProductListResponse,
    responses={400: {"model": ErrorResponseModel}},
)
async def list_products(
    page: int = Query(1, ge=1, description="Page number, starting at 1"),
    limit: Optional[int] = Query(None, ge=1, le=100, description="Page size"),
    search: Optional[str] = Query(None, description="Case-insensitive match on the title"),
    status_filter: Optional[ProductStatus] = Query(None, alias="status", description="Filter by status"),
    category: Optional[str] = Query(None, description="Filter by category id"),
    sort_by: str = Query("createdAt", alias="sortBy"),
    order: str = Query("desc", pattern="^(asc|desc)$"),
    service: ProductService = Depends(get_product_service),
):
    """
    List products with optional search, filters and pagination.
    """
    return await service.list_products(
        page=page, limit=limit, search=search, status=status_filter,
        category=category, sort_by=sort_by, order=order,
    )


@router.get(
    "/slug/{slug}",
    response_model=ProductResponse,
    responses={404: {"model": ErrorResponseModel}},
)
async def get_product_by_slug(
    slug: str,
    service: ProductService = Depends(get_product_service),
):
    """Get a product by its slug"""
    return await service.get_product_by_slug(slug)


@router.get(
    "/{product_id}",
    response_model=ProductResponse,
    responses={404: {"model": ErrorResponseModel}},
)
async def get_product(
    product_id: str,
    service: ProductService = Depends(get_product_service),
):
    """
    Get a product by its ID.
    """
    return await service.get_product(product_id)


# Product writes
@router.post(
    "",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    responses=WRITE_RESPONSES,
)
async def create_product(
    payload: str = Form(..., description="Product JSON"),
    images: List[UploadFile] = File(default=[]),
    service: ProductService = Depends(get_product_service),
    user: User = Depends(require_admin),
):
    """
    Create a product with its variants and images in a single request.

    `payload` holds the product JSON; `images` are matched to
    `payload.imagesMeta` by index. Requires admin authentication.
    """
    product = parse_form_model(ProductCreate, payload, "payload")
    files = await read_uploads(images)
    return await service.create_product(product, files, created_by=user.id)


@router.patch(
    "/{product_id}",
    response_model=ProductResponse,
    responses=WRITE_RESPONSES,
)
async def update_product(
    product_id: str,
    update: ProductDetailsUpdate,
    service: ProductService = Depends(get_product_service),
    user: User = Depends(require_admin),
):
    """
    Update product details. Variants and images are managed through their
    own endpoints. Requires admin authentication.
    """
    return await service.update_product_details(product_id, update, updated_by=user.id)


@router.delete(
    "/{product_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=WRITE_RESPONSES,
)
async def delete_product(
    product_id: str,
    service: ProductService = Depends(get_product_service),
    user: User = Depends(require_admin),
):
    """
    Delete a product and all of its stored images.
    Requires admin authentication.
    """
    await service.delete_product(product_id, deleted_by=user.id)


# Variants
@router.post(
    "/{product_id}/variants",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    responses=WRITE_RESPONSES,
)
async def add_variant(
    product_id: str,
    variant: VariantCreate,
    coordinator: VariantImageCoordinator = Depends(get_variant_image_coordinator),
    user: User = Depends(require_admin),
):
    """Add a variant to a product"""
    return await coordinator.add_variant(product_id, variant)


@router.patch(
    "/{product_id}/variants/{variant_id}",
    response_model=ProductResponse,
    responses=WRITE_RESPONSES,
)
async def edit_variant(
    product_id: str,
    variant_id: str,
    update: VariantUpdate,
    coordinator: VariantImageCoordinator = Depends(get_variant_image_coordinator),
    user: User = Depends(require_admin),
):
    """Partially update a variant; a new SKU must be unused"""
    return await coordinator.edit_variant(product_id, variant_id, update)


@router.delete(
    "/{product_id}/variants/{variant_id}",
    response_model=ProductResponse,
    responses=WRITE_RESPONSES,
)
async def delete_variant(
    product_id: str,
    variant_id: str,
    coordinator: VariantImageCoordinator = Depends(get_variant_image_coordinator),
    user: User = Depends(require_admin),
):
    """Delete a variant together with its images"""
    return await coordinator.delete_variant(product_id, variant_id)


# Images
@router.post(
    "/{product_id}/images",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    responses=WRITE_RESPONSES,
)
async def add_product_images(
    product_id: str,
    images: List[UploadFile] = File(...),
    meta: Optional[str] = Form(None, description="JSON list of image metadata, matched by index"),
    coordinator: VariantImageCoordinator = Depends(get_variant_image_coordinator),
    user: User = Depends(require_admin),
):
    """Append product-level images"""
    files = await read_uploads(images)
    return await coordinator.add_images(product_id, None, files, parse_image_meta(meta))


@router.post(
    "/{product_id}/variants/{variant_id}/images",
    response_model=ProductResponse,
    status_code=status.HTTP_201_CREATED,
    responses=WRITE_RESPONSES,
)
async def add_variant_images(
    product_id: str,
    variant_id: str,
    images: List[UploadFile] = File(...),
    meta: Optional[str] = Form(None, description="JSON list of image metadata, matched by index"),
    coordinator: VariantImageCoordinator = Depends(get_variant_image_coordinator),
    user: User = Depends(require_admin),
):
    """Append images to one variant"""
    files = await read_uploads(images)
    return await coordinator.add_images(product_id, variant_id, files, parse_image_meta(meta))


@router.delete(
    "/{product_id}/images/{image_id}",
    response_model=ProductResponse,
    responses=WRITE_RESPONSES,
)
async def delete_product_image(
    product_id: str,
    image_id: str,
    coordinator: VariantImageCoordinator = Depends(get_variant_image_coordinator),
    user: User = Depends(require_admin),
):
    """Delete a product-level image"""
    return await coordinator.delete_image(product_id, None, image_id)


@router.delete(
    "/{product_id}/variants/{variant_id}/images/{image_id}",
    response_model=ProductResponse,
    responses=WRITE_RESPONSES,
)
async def delete_variant_image(
    product_id: str,
    variant_id: str,
    image_id: str,
    coordinator: VariantImageCoordinator = Depends(get_variant_image_coordinator),
    user: User = Depends(require_admin),
):
    """Delete an image of one variant"""
    return await coordinator.delete_image(product_id, variant_id, image_id)


@router.put(
    "/{product_id}/images/{image_id}/primary",
    response_model=ProductResponse,
    responses=WRITE_RESPONSES,
)
async def set_primary_product_image(
    product_id: str,
    image_id: str,
    coordinator: VariantImageCoordinator = Depends(get_variant_image_coordinator),
    user: User = Depends(require_admin),
):
    """Make a product-level image the primary one"""
    return await coordinator.set_primary_image(product_id, None, image_id)


@router.put(
    "/{product_id}/variants/{variant_id}/images/{image_id}/primary",
    response_model=ProductResponse,
    responses=WRITE_RESPONSES,
)
async def set_primary_variant_image(
    product_id: str,
    variant_id: str,
    image_id: str,
    coordinator: VariantImageCoordinator = Depends(get_variant_image_coordinator),
    user: User = Depends(require_admin),
):
    """Make an image the primary one of its variant"""
    return await coordinator.set_primary_image(product_id, variant_id, image_id)
