# storefront/product/routes.py
from io import BytesIO

import pandas as pd
from flask import current_app, g, request, send_file
from sqlalchemy import asc, desc, or_
from sqlalchemy.exc import IntegrityError

from ..errors import BadRequest, Conflict, Forbidden, NotFound
from ..extensions import db
from ..model import Order, OrderItem, OrderStatus, Product, ProductImage, Review
from ..schemas import ProductForm, RemoveProductRequest, ReviewRequest, load
from ..services.images import allowed_image, get_images
from ..utils.api import ok
from ..utils.decorators import admin_required, login_required
from ..utils.paging import page_args, page_meta
from . import bp

IMAGE_FIELDS = ("image1", "image2", "image3", "image4")
XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
EXPORT_COLUMNS = ["ID", "Name", "Description", "Price", "Stock", "Category",
                  "Sub Category", "Sizes", "Bestseller", "Images"]
REQUIRED_IMPORT_COLUMNS = ["Name", "Description", "Price", "Stock", "Category", "Sub Category", "Sizes"]

# ---------- helpers ----------

def _csv(v):
    return [x.strip() for x in (v or "").split(",") if x.strip()]

def _parse_opt_float(v):
    if v is None or (isinstance(v, str) and v.strip() == ""):
        return None
    try:
        return float(v)
    except ValueError:
        raise BadRequest(f"Invalid number: {v}")

def _parse_bool(v, default=False):
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}

_SORTS = {
    "price": Product.price,
    "average_rating": Product.average_rating,
    "date": Product.created_at,
}

def _sort_products(query, sort):
    field, _, direction = (sort or "date:desc").partition(":")
    col = _SORTS.get(field.strip())
    if col is None:
        raise BadRequest(f"Invalid sort field: {field}")
    order = asc if direction.strip().lower() == "asc" else desc
    return query.order_by(order(col), order(Product.id))

def _get_product(pid) -> Product:
    product = db.session.get(Product, pid)
    if not product:
        raise NotFound("Product not found")
    return product

def _uploaded_images():
    files = [request.files[k] for k in IMAGE_FIELDS if k in request.files and request.files[k].filename]
    for fs in files:
        if not allowed_image(fs.filename):
            raise BadRequest(f"Unsupported file type: {fs.filename}")
    return files

def _upload_all(files):
    store = get_images()
    images = []
    for position, fs in enumerate(files):
        url, public_id = store.upload(fs)
        images.append(ProductImage(url=url, public_id=public_id, position=position))
    return images

def _apply_form(product: Product, form: ProductForm):
    product.name = form.name
    product.description = form.description
    product.price = form.price
    product.category = form.category
    product.sub_category = form.sub_category
    product.sizes = list(form.sizes)
    product.bestseller = form.bestseller
    product.stock = form.stock


# ---------- catalog ----------

@bp.get("/list")
def list_products():
    """
    Query params:
      category, sub_category -> comma-separated lists
      min_price, max_price   -> float
      min_rating             -> float
      in_stock=true          -> only stock > 0
      search                 -> substring of name or description
      sort                   -> price|average_rating|date, optionally :asc/:desc (default date:desc)
      page, limit            -> default 1, 50 (cap 100)
    """
    page, limit = page_args(default_limit=50)
    query = Product.query

    categories = _csv(request.args.get("category"))
    if categories:
        query = query.filter(Product.category.in_(categories))
    sub_categories = _csv(request.args.get("sub_category"))
    if sub_categories:
        query = query.filter(Product.sub_category.in_(sub_categories))

    min_price = _parse_opt_float(request.args.get("min_price"))
    max_price = _parse_opt_float(request.args.get("max_price"))
    if min_price is not None:
        query = query.filter(Product.price >= min_price)
    if max_price is not None:
        query = query.filter(Product.price <= max_price)

    min_rating = _parse_opt_float(request.args.get("min_rating"))
    if min_rating is not None:
        query = query.filter(Product.average_rating >= min_rating)

    if _parse_bool(request.args.get("in_stock")):
        query = query.filter(Product.stock > 0)

    search = (request.args.get("search") or "").strip()
    if search:
        like = f"%{search}%"
        query = query.filter(or_(Product.name.ilike(like), Product.description.ilike(like)))

    query = _sort_products(query, request.args.get("sort"))
    pagination = query.paginate(page=page, per_page=limit, error_out=False)
    return ok("Products fetched", {
        "products": [p.as_api() for p in pagination.items],
        "pagination": page_meta(pagination, limit),
    })


@bp.get("/<int:pid>")
def get_product(pid):
    return ok("Product fetched", {"product": _get_product(pid).as_api()})


@bp.get("/categories")
def list_categories():
    categories = [c for (c,) in db.session.query(Product.category).distinct().order_by(Product.category)]
    sub_categories = [
        s for (s,) in db.session.query(Product.sub_category).distinct().order_by(Product.sub_category)
    ]
    return ok("Categories fetched", {"categories": categories, "sub_categories": sub_categories})


# ---------- admin CRUD ----------

@bp.post("/add")
@admin_required
def add_product():
    form = ProductForm.model_validate(request.form.to_dict(flat=True))
    files = _uploaded_images()
    if not files:
        raise BadRequest("At least one image is required")

    product = Product()
    _apply_form(product, form)
    product.images = _upload_all(files)
    db.session.add(product)
    db.session.commit()
    current_app.logger.info("Product %s created by admin %s", product.id, g.current_user.id)
    return ok("Product added", {"product": product.as_api()}, 201)


@bp.put("/<int:pid>")
@admin_required
def update_product(pid):
    product = _get_product(pid)
    form = ProductForm.model_validate(request.form.to_dict(flat=True))
    files = _uploaded_images()

    stale = []
    if files:
        new_images = _upload_all(files)
        stale = [img.public_id for img in product.images]
        product.images = new_images
    _apply_form(product, form)
    db.session.commit()

    store = get_images()
    for public_id in stale:
        store.delete(public_id)
    current_app.logger.info("Product %s updated", product.id)
    return ok("Product updated", {"product": product.as_api()})


@bp.post("/remove")
@admin_required
def remove_product():
    body = load(RemoveProductRequest)
    product = _get_product(body.id)

    store = get_images()
    for img in product.images:
        store.delete(img.public_id)
    db.session.delete(product)
    db.session.commit()
    current_app.logger.info("Product %s removed", body.id)
    return ok("Product removed", {"id": body.id})


# ---------- reviews ----------

@bp.get("/<int:pid>/ratings")
def product_ratings(pid):
    product = _get_product(pid)
    product.recompute_rating()
    db.session.commit()
    return ok("Ratings fetched", {
        "average_rating": product.average_rating,
        "ratings": product.ratings,
        "reviews": [r.as_api() for r in product.reviews],
    })


@bp.post("/review")
@login_required
def add_review():
    body = load(ReviewRequest)
    user = g.current_user
    product = _get_product(body.product_id)

    delivered = (
        db.session.query(Order.id)
        .join(OrderItem, OrderItem.order_id == Order.id)
        .filter(
            Order.user_id == user.id,
            Order.status == OrderStatus.DELIVERED.value,
            OrderItem.product_id == product.id,
        )
        .first()
    )
    if not delivered:
        raise Forbidden("You can only review products from delivered orders")
    if Review.query.filter_by(product_id=product.id, user_id=user.id).first():
        raise Conflict("You have already reviewed this product")

    product.reviews.append(Review(user_id=user.id, rating=body.rating, comment=body.comment))
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise Conflict("You have already reviewed this product")
    product.recompute_rating()
    db.session.commit()
    current_app.logger.info("User %s reviewed product %s (%d)", user.id, product.id, body.rating)
    return ok("Review added", {
        "average_rating": product.average_rating,
        "ratings": product.ratings,
    }, 201)


# ---------- spreadsheet export / import ----------

@bp.get("/export")
@admin_required
def export_products():
    """
    Export the catalog as an Excel file.
    """
    rows = [{
        "ID": p.id,
        "Name": p.name,
        "Description": p.description,
        "Price": float(p.price),
        "Stock": p.stock,
        "Category": p.category,
        "Sub Category": p.sub_category,
        "Sizes": ",".join(p.sizes or []),
        "Bestseller": bool(p.bestseller),
        "Images": ",".join(img.url for img in p.images),
    } for p in Product.query.order_by(Product.id).all()]
    df = pd.DataFrame(rows, columns=EXPORT_COLUMNS)

    output = BytesIO()
    df.to_excel(output, index=False)
    output.seek(0)
    return send_file(output, as_attachment=True, download_name="products_export.xlsx", mimetype=XLSX_MIMETYPE)


def _cell(row, column, default=None):
    value = row.get(column, default)
    return default if value is None or pd.isna(value) else value


@bp.post("/import")
@admin_required
def import_products():
    """
    Import products from an uploaded .xlsx file.

    Rows whose name matches an existing product update it; others are created.
    The whole file is rejected when any row is invalid.
    """
    file = request.files.get("file")
    if file is None or not file.filename:
        raise BadRequest("No file uploaded")
    if not file.filename.lower().endswith(".xlsx"):
        raise BadRequest("Only .xlsx files are allowed")

    df = pd.read_excel(file)
    missing = [c for c in REQUIRED_IMPORT_COLUMNS if c not in df.columns]
    if missing:
        raise BadRequest(f"Missing required columns: {', '.join(missing)}")

    created, updated = 0, 0
    for index, row in df.iterrows():
        try:
            form = ProductForm.model_validate({
                "name": str(_cell(row, "Name", "")),
                "description": str(_cell(row, "Description", "")),
                "price": float(_cell(row, "Price", 0)),
                # left as a number so 3.7 is rejected instead of truncated
                "stock": float(_cell(row, "Stock", 0)),
                "category": str(_cell(row, "Category", "")),
                "sub_category": str(_cell(row, "Sub Category", "")),
                "sizes": _csv(str(_cell(row, "Sizes", ""))),
                "bestseller": _parse_bool(_cell(row, "Bestseller")),
            })
        except (ValueError, TypeError) as e:
            db.session.rollback()
            raise BadRequest(f"Invalid row {index + 2}: {e}")

        product = Product.query.filter_by(name=form.name).first()
        if product is None:
            product = Product()
            product.images = [
                ProductImage(url=url, position=i) for i, url in enumerate(_csv(str(_cell(row, "Images", ""))))
            ]
            db.session.add(product)
            created += 1
        else:
            updated += 1
        _apply_form(product, form)

    db.session.commit()
    current_app.logger.info("Catalog import: %d created, %d updated", created, updated)
    return ok("Products imported successfully", {"created": created, "updated": updated})
