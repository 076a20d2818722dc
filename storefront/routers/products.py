"""Product catalog endpoints."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from ..db import get_session
from ..errors import DuplicateSku, ProductNotFound, StoreFailure
from ..models import Product, ProductCategory, ProductImage, User, Variant
from ..reviews import add_review
from ..schemas import (
    CategoryCount,
    Envelope,
    ImageIn,
    Pagination,
    ProductCollection,
    ProductCreate,
    ProductRead,
    ProductUpdate,
    ReviewCreate,
    ReviewRead,
    StockUpdate,
    VariantIn,
)
from ..security import get_current_user, require_admin
from ..stores import CatalogStore
from .common import (
    BAD_REQUEST_RESPONSE,
    CACHED_HEADERS,
    FORBIDDEN_RESPONSE,
    UNAUTHORIZED_RESPONSE,
    cached_response,
    envelope,
    json_response,
    not_found_response,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["Products"])

NOT_FOUND_RESPONSE = not_found_response("Product")


def _images(images: List[ImageIn]) -> List[ProductImage]:
    return [ProductImage(url=str(image.url), alt=image.alt, is_primary=image.is_primary) for image in images]


def _variants(variants: List[VariantIn]) -> List[Variant]:
    return [Variant(size=v.size, color=v.color, stock=v.stock, price=v.price) for v in variants]


def _load(catalog: CatalogStore, product_id: UUID) -> Product:
    product = catalog.find_by_id(product_id)
    if product is None:
        raise ProductNotFound(product_id)
    return product


def _commit(catalog: CatalogStore, product: Product, operation: str) -> None:
    try:
        catalog.save(product)
        catalog.commit()
    except IntegrityError as exc:
        catalog.rollback()
        raise DuplicateSku(product.sku) from exc
    except SQLAlchemyError as exc:
        catalog.rollback()
        raise StoreFailure(operation, exc) from exc


@router.get(
    "",
    response_model=Envelope[ProductCollection],
    summary="List products",
    description="List active products with filtering, sorting and pagination.",
    operation_id="listProducts",
    responses={200: {"headers": {**CACHED_HEADERS, "X-Total-Count": {"schema": {"type": "integer"}}}}},
)
async def list_products(
    session: Session = Depends(get_session),
    category: Optional[ProductCategory] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=100),
    min_price: Optional[Decimal] = Query(default=None, alias="minPrice", ge=0),
    max_price: Optional[Decimal] = Query(default=None, alias="maxPrice", ge=0),
    featured: bool = Query(default=False),
    on_sale: bool = Query(default=False, alias="onSale"),
    sort_by: Literal["createdAt", "price", "name", "rating", "salesCount"] = Query(default="createdAt", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query(default="desc", alias="sortOrder"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=100),
) -> Response:
    result = CatalogStore(session).list_products(
        category=category,
        search=search,
        min_price=min_price,
        max_price=max_price,
        featured=featured,
        on_sale=on_sale,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )
    collection = ProductCollection(
        products=[ProductRead.from_model(product) for product in result.items],
        pagination=Pagination.from_page(result),
    )
    return cached_response(envelope(collection), headers={"X-Total-Count": str(result.total)})


@router.get(
    "/featured",
    response_model=Envelope[List[ProductRead]],
    summary="Featured products",
    operation_id="listFeaturedProducts",
)
async def featured_products(
    session: Session = Depends(get_session),
    limit: int = Query(default=8, ge=1, le=50),
) -> Response:
    products = CatalogStore(session).featured(limit=limit)
    return cached_response(envelope([ProductRead.from_model(product) for product in products]))


@router.get(
    "/categories",
    response_model=Envelope[List[CategoryCount]],
    summary="Categories with product counts",
    operation_id="listCategories",
)
async def categories(session: Session = Depends(get_session)) -> Response:
    counts = CatalogStore(session).category_counts()
    return cached_response(envelope([CategoryCount(category=category, count=count) for category, count in counts]))


@router.get(
    "/{product_id}",
    response_model=Envelope[ProductRead],
    summary="Retrieve product",
    operation_id="getProduct",
    responses={200: {"headers": CACHED_HEADERS}, 404: NOT_FOUND_RESPONSE},
)
async def get_product(product_id: UUID, session: Session = Depends(get_session)) -> Response:
    catalog = CatalogStore(session)
    _load(catalog, product_id)
    catalog.record_view(product_id)
    catalog.commit()
    product = _load(catalog, product_id)
    return cached_response(envelope(ProductRead.from_model(product)))


@router.post(
    "",
    response_model=Envelope[ProductRead],
    status_code=status.HTTP_201_CREATED,
    summary="Create product",
    operation_id="createProduct",
    responses={
        201: {"headers": {"Location": {"schema": {"type": "string", "format": "uri"}}}},
        400: BAD_REQUEST_RESPONSE,
        401: UNAUTHORIZED_RESPONSE,
        403: FORBIDDEN_RESPONSE,
    },
)
async def create_product(
    request: Request,
    payload: ProductCreate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
) -> Response:
    catalog = CatalogStore(session)
    if catalog.find_by_sku(payload.sku) is not None:
        raise DuplicateSku(payload.sku)

    product = Product(
        name=payload.name,
        description=payload.description,
        price=payload.price,
        original_price=payload.original_price,
        category=payload.category,
        brand=payload.brand,
        sku=payload.sku,
        status=payload.status,
        featured=payload.featured,
        tags=list(payload.tags),
        images=_images(payload.images),
        variants=_variants(payload.variants),
    )
    _commit(catalog, product, "create product")
    logger.info("Product %s (%s) created by %s", product.id, product.sku, admin.id)

    body = ProductRead.from_model(_load(catalog, product.id))
    headers = {"Location": str(request.url_for("get_product", product_id=product.id))}
    return json_response(
        envelope(body, "Product created successfully"), status_code=status.HTTP_201_CREATED, headers=headers
    )


@router.put(
    "/{product_id}",
    response_model=Envelope[ProductRead],
    summary="Update product",
    operation_id="updateProduct",
    responses={400: BAD_REQUEST_RESPONSE, 401: UNAUTHORIZED_RESPONSE, 403: FORBIDDEN_RESPONSE, 404: NOT_FOUND_RESPONSE},
)
async def update_product(
    product_id: UUID,
    payload: ProductUpdate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
) -> Response:
    catalog = CatalogStore(session)
    product = _load(catalog, product_id)

    changes = payload.model_dump(exclude_unset=True, exclude={"images", "variants"})
    for field, value in changes.items():
        setattr(product, field, value)
    if payload.images is not None:
        product.images = _images(payload.images)
    if payload.variants is not None:
        product.variants = _variants(payload.variants)

    _commit(catalog, product, "update product")
    logger.info("Product %s updated by %s", product.id, admin.id)
    return cached_response(envelope(ProductRead.from_model(_load(catalog, product_id)), "Product updated successfully"))


@router.delete(
    "/{product_id}",
    response_model=Envelope[None],
    summary="Delete product",
    operation_id="deleteProduct",
    responses={401: UNAUTHORIZED_RESPONSE, 403: FORBIDDEN_RESPONSE, 404: NOT_FOUND_RESPONSE},
)
async def delete_product(
    product_id: UUID,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
) -> Response:
    catalog = CatalogStore(session)
    product = _load(catalog, product_id)
    catalog.delete(product)
    catalog.commit()
    logger.info("Product %s deleted by %s", product_id, admin.id)
    return json_response(envelope(None, "Product deleted successfully"))


@router.post(
    "/{product_id}/reviews",
    response_model=Envelope[ReviewRead],
    status_code=status.HTTP_201_CREATED,
    summary="Review product",
    operation_id="addProductReview",
    responses={400: BAD_REQUEST_RESPONSE, 401: UNAUTHORIZED_RESPONSE, 404: NOT_FOUND_RESPONSE},
)
async def review_product(
    product_id: UUID,
    payload: ReviewCreate,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
) -> Response:
    review = add_review(CatalogStore(session), product_id, user, payload.rating, payload.comment)
    body = ReviewRead(
        id=review.id,
        user=review.user_id,
        rating=review.rating,
        comment=review.comment,
        verified=review.verified,
        created_at=review.created_at,
    )
    return json_response(envelope(body, "Review added successfully"), status_code=status.HTTP_201_CREATED)


@router.get(
    "/{product_id}/related",
    response_model=Envelope[List[ProductRead]],
    summary="Related products",
    operation_id="listRelatedProducts",
    responses={404: NOT_FOUND_RESPONSE},
)
async def related_products(
    product_id: UUID,
    session: Session = Depends(get_session),
    limit: int = Query(default=4, ge=1, le=20),
) -> Response:
    catalog = CatalogStore(session)
    product = _load(catalog, product_id)
    related = catalog.related(product, limit=limit)
    return cached_response(envelope([ProductRead.from_model(item) for item in related]))


@router.patch(
    "/{product_id}/stock",
    response_model=Envelope[ProductRead],
    summary="Set variant stock",
    description="Set stock levels of variants matched by size and color. Unknown combinations are ignored.",
    operation_id="updateProductStock",
    responses={400: BAD_REQUEST_RESPONSE, 401: UNAUTHORIZED_RESPONSE, 403: FORBIDDEN_RESPONSE, 404: NOT_FOUND_RESPONSE},
)
async def update_stock(
    product_id: UUID,
    payload: StockUpdate,
    session: Session = Depends(get_session),
    admin: User = Depends(require_admin),
) -> Response:
    catalog = CatalogStore(session)
    product = _load(catalog, product_id)
    for level in payload.variants:
        for variant in product.variants:
            if variant.size == level.size and variant.color == level.color:
                variant.stock = level.stock
                break

    _commit(catalog, product, "update stock")
    logger.info("Stock of product %s set by %s", product.id, admin.id)
    return cached_response(envelope(ProductRead.from_model(_load(catalog, product_id)), "Stock updated successfully"))
