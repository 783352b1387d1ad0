import json
from io import BytesIO

import pandas as pd

from storefront.extensions import db
from storefront.model import OrderStatus, Product


def product_form(**overrides):
    form = {
        "name": "Linen Shirt",
        "description": "Breathable summer shirt",
        "price": "499.99",
        "category": "Men",
        "sub_category": "Topwear",
        "sizes": json.dumps(["S", "M", "L"]),
        "bestseller": "true",
        "stock": "12",
    }
    form.update(overrides)
    return form


def image(name="front.png"):
    return (BytesIO(b"\x89PNG fake"), name)


# ---- listing -----------------------------------------------------------------

def test_list_filters_and_sorts(client, make_product):
    make_product(name="Tee", price="100.00", category="Men", sub_category="Topwear")
    make_product(name="Jeans", price="300.00", category="Women", sub_category="Bottomwear")
    make_product(name="Coat", price="900.00", category="Women", sub_category="Winterwear", stock=0)

    r = client.get("/api/product/list?category=Women&sort=price:asc")
    assert [p["name"] for p in r.get_json()["data"]["products"]] == ["Jeans", "Coat"]

    r = client.get("/api/product/list?min_price=150&max_price=500")
    assert [p["name"] for p in r.get_json()["data"]["products"]] == ["Jeans"]

    r = client.get("/api/product/list?in_stock=true&sort=price:desc")
    assert [p["name"] for p in r.get_json()["data"]["products"]] == ["Jeans", "Tee"]

    r = client.get("/api/product/list?search=coat")
    assert [p["name"] for p in r.get_json()["data"]["products"]] == ["Coat"]

    r = client.get("/api/product/list?sub_category=Topwear,Bottomwear&limit=1")
    data = r.get_json()["data"]
    assert len(data["products"]) == 1
    assert data["pagination"]["total"] == 2


def test_list_rejects_bad_paging(client):
    assert client.get("/api/product/list?page=-1").status_code == 400
    assert client.get("/api/product/list?limit=0").status_code == 400


def test_single_product_and_categories(client, make_product):
    pid = make_product(name="Tee", category="Men", sub_category="Topwear")
    make_product(name="Skirt", category="Women", sub_category="Bottomwear")

    r = client.get(f"/api/product/{pid}")
    assert r.get_json()["data"]["product"]["name"] == "Tee"
    assert client.get("/api/product/999").status_code == 404

    data = client.get("/api/product/categories").get_json()["data"]
    assert data["categories"] == ["Men", "Women"]
    assert data["sub_categories"] == ["Bottomwear", "Topwear"]


# ---- admin CRUD --------------------------------------------------------------

def test_admin_adds_product_with_images(client, admin_headers, images):
    form = product_form(image1=image("front.png"), image2=image("back.jpg"))

    r = client.post("/api/product/add", data=form, headers=admin_headers, content_type="multipart/form-data")

    assert r.status_code == 201
    product = r.get_json()["data"]["product"]
    assert product["price"] == 499.99
    assert product["sizes"] == ["S", "M", "L"]
    assert product["bestseller"] is True
    assert product["images"] == ["https://img.test/products/1.png", "https://img.test/products/2.png"]
    assert images.uploaded == ["front.png", "back.jpg"]


def test_add_product_validation(client, admin_headers, user_headers):
    r = client.post("/api/product/add", data=product_form(), headers=admin_headers,
                    content_type="multipart/form-data")
    assert r.status_code == 400
    assert r.get_json()["message"] == "At least one image is required"

    r = client.post("/api/product/add", data=product_form(sizes="S,M", image1=image()), headers=admin_headers,
                    content_type="multipart/form-data")
    assert r.status_code == 400

    r = client.post("/api/product/add", data=product_form(price="0", image1=image()), headers=admin_headers,
                    content_type="multipart/form-data")
    assert r.status_code == 400

    r = client.post("/api/product/add", data=product_form(image1=image("notes.txt")), headers=admin_headers,
                    content_type="multipart/form-data")
    assert r.status_code == 400

    r = client.post("/api/product/add", data=product_form(image1=image()), headers=user_headers,
                    content_type="multipart/form-data")
    assert r.status_code == 403


def test_update_replaces_images_only_when_given(client, admin_headers, images):
    r = client.post("/api/product/add", data=product_form(image1=image()), headers=admin_headers,
                    content_type="multipart/form-data")
    pid = r.get_json()["data"]["product"]["id"]

    r = client.put(f"/api/product/{pid}", data=product_form(price="450", stock="3"), headers=admin_headers,
                   content_type="multipart/form-data")
    assert r.get_json()["data"]["product"]["images"] == ["https://img.test/products/1.png"]
    assert r.get_json()["data"]["product"]["stock"] == 3
    assert images.deleted == []

    r = client.put(f"/api/product/{pid}", data=product_form(image1=image("new.png")), headers=admin_headers,
                   content_type="multipart/form-data")
    assert r.status_code == 200
    assert r.get_json()["data"]["product"]["images"] == ["https://img.test/products/2.png"]
    assert images.deleted == ["products/1"]


def test_remove_deletes_images_then_product(client, app, admin_headers, images):
    r = client.post("/api/product/add", data=product_form(image1=image(), image2=image()), headers=admin_headers,
                    content_type="multipart/form-data")
    pid = r.get_json()["data"]["product"]["id"]

    r = client.post("/api/product/remove", json={"id": pid}, headers=admin_headers)

    assert r.status_code == 200
    assert images.deleted == ["products/1", "products/2"]
    with app.app_context():
        assert db.session.get(Product, pid) is None


# ---- reviews -----------------------------------------------------------------

def test_review_needs_a_delivered_order(client, user, user_headers, make_product, make_order):
    pid = make_product()
    make_order(user, pid, status=OrderStatus.SHIPPED)

    r = client.post("/api/product/review", json={"product_id": pid, "rating": 5, "comment": "Great"},
                    headers=user_headers)

    assert r.status_code == 403


def test_review_updates_rating_once_per_user(client, user, user_headers, make_user, headers_for,
                                             make_product, make_order):
    pid = make_product()
    make_order(user, pid)
    other = make_user(email="second@shop.com", name="Second")
    make_order(other, pid)

    r = client.post("/api/product/review", json={"product_id": pid, "rating": 5, "comment": "Great"},
                    headers=user_headers)
    assert r.status_code == 201
    r = client.post("/api/product/review", json={"product_id": pid, "rating": 2, "comment": "Meh"},
                    headers=headers_for(other))
    data = r.get_json()["data"]
    assert data["average_rating"] == 3.5
    assert data["ratings"] == 2

    r = client.post("/api/product/review", json={"product_id": pid, "rating": 4, "comment": "Again"},
                    headers=user_headers)
    assert r.status_code == 409

    r = client.get(f"/api/product/{pid}/ratings")
    data = r.get_json()["data"]
    assert data["ratings"] == 2
    assert {rv["user_name"] for rv in data["reviews"]} == {"Shopper", "Second"}


def test_review_rating_range(client, user, user_headers, make_product, make_order):
    pid = make_product()
    make_order(user, pid)
    r = client.post("/api/product/review", json={"product_id": pid, "rating": 6, "comment": "!"},
                    headers=user_headers)
    assert r.status_code == 400


# ---- spreadsheets ------------------------------------------------------------

def test_export_returns_xlsx(client, admin_headers, make_product):
    make_product(name="Tee")

    r = client.get("/api/product/export", headers=admin_headers)

    assert r.status_code == 200
    assert r.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    df = pd.read_excel(BytesIO(r.data))
    assert list(df["Name"]) == ["Tee"]


def test_import_creates_and_updates_products(client, app, admin_headers, make_product):
    make_product(name="Tee", price="100.00", stock=1)
    df = pd.DataFrame([
        {"Name": "Tee", "Description": "Updated", "Price": 120, "Stock": 7, "Category": "Men",
         "Sub Category": "Topwear", "Sizes": "S,M", "Bestseller": True},
        {"Name": "Scarf", "Description": "Wool scarf", "Price": 80.5, "Stock": 4, "Category": "Women",
         "Sub Category": "Winterwear", "Sizes": "One", "Bestseller": False},
    ])
    buf = BytesIO()
    df.to_excel(buf, index=False)
    buf.seek(0)

    r = client.post("/api/product/import", data={"file": (buf, "catalog.xlsx")}, headers=admin_headers,
                    content_type="multipart/form-data")

    assert r.status_code == 200
    assert r.get_json()["data"]["created"] == 1
    assert r.get_json()["data"]["updated"] == 1
    with app.app_context():
        tee = Product.query.filter_by(name="Tee").one()
        assert tee.stock == 7
        assert tee.sizes == ["S", "M"]


def test_import_rejects_missing_columns(client, admin_headers):
    buf = BytesIO()
    pd.DataFrame([{"Name": "Tee"}]).to_excel(buf, index=False)
    buf.seek(0)

    r = client.post("/api/product/import", data={"file": (buf, "catalog.xlsx")}, headers=admin_headers,
                    content_type="multipart/form-data")

    assert r.status_code == 400
    assert r.get_json()["message"].startswith("Missing required columns")


def test_import_rejects_fractional_stock(client, app, admin_headers):
    buf = BytesIO()
    pd.DataFrame([
        {"Name": "Scarf", "Description": "Wool scarf", "Price": 80.5, "Stock": 3.7, "Category": "Women",
         "Sub Category": "Winterwear", "Sizes": "One", "Bestseller": False},
    ]).to_excel(buf, index=False)
    buf.seek(0)

    r = client.post("/api/product/import", data={"file": (buf, "catalog.xlsx")}, headers=admin_headers,
                    content_type="multipart/form-data")

    assert r.status_code == 400
    assert r.get_json()["message"].startswith("Invalid row 2")
    with app.app_context():
        assert Product.query.filter_by(name="Scarf").count() == 0
