from decimal import Decimal

from craftstore.schemas import CategoryCreate, CategoryUpdate, ProductFilters, ProductUpdate


def _names(items):
    return [item["name"] for item in items]


def test_listing_filters_by_category_slug(client, repos, make_product):
    pottery = repos.categories.create(CategoryCreate(name="Pottery"))
    make_product(name="Seagrass basket")
    make_product(name="Clay pot", category_id=pottery.id)

    response = client.get("/api/products", params={"category": "pottery"})

    assert response.status_code == 200
    assert _names(response.json()) == ["Clay pot"]


def test_unknown_category_slug_yields_nothing(client, make_product):
    make_product()
    assert client.get("/api/products", params={"category": "no-such-thing"}).json() == []


def test_in_stock_and_search_filters(client, make_product):
    make_product(name="Singing bowl", description="Bronze", stock=0)
    make_product(name="Felt slippers", description="Warm wool slippers", stock=2)
    make_product(name="Wool shawl", description="Soft", stock=4)

    assert _names(client.get("/api/products", params={"inStock": "true", "search": "BOWL"}).json()) == []
    assert sorted(_names(client.get("/api/products", params={"search": "wool"}).json())) == [
        "Felt slippers",
        "Wool shawl",
    ]


def test_price_sorting(client, make_product):
    make_product(name="Mid", price=Decimal("500.00"))
    make_product(name="Cheap", price=Decimal("100.00"))
    make_product(name="Dear", price=Decimal("900.00"))

    ascending = client.get("/api/products", params={"sortBy": "price-low-high"}).json()
    descending = client.get("/api/products", params={"sortBy": "price-high-low"}).json()

    assert _names(ascending) == ["Cheap", "Mid", "Dear"]
    assert _names(descending) == ["Dear", "Mid", "Cheap"]


def test_pagination_envelope(client, make_product):
    for index in range(5):
        make_product(name=f"Basket {index}")

    body = client.get("/api/products", params={"page": 2, "limit": 2}).json()

    assert body["total"] == 5
    assert body["page"] == 2
    assert body["limit"] == 2
    assert body["totalPages"] == 3
    assert len(body["items"]) == 2


def test_page_size_is_clamped(repos, make_product):
    make_product()
    page = repos.products.list_products_page(ProductFilters(), page=0, limit=500)
    assert page.page == 1
    assert page.limit == 100


def test_update_is_visible_in_next_listing(client, repos, make_product):
    product = make_product(name="Old name")
    assert _names(client.get("/api/products").json()) == ["Old name"]

    repos.products.update_product(product.id, ProductUpdate(name="New name", price=Decimal("900.00")))

    listing = client.get("/api/products").json()
    assert _names(listing) == ["New name"]
    assert listing[0]["price"] == "900.00"
    assert client.get(f"/api/products/{product.id}").json()["name"] == "New name"


def test_soft_deleted_products_leave_listings(client, repos, admin_headers, make_product):
    product = make_product()
    client.get("/api/products")

    response = client.delete(f"/api/admin/products/{product.id}", headers=admin_headers)

    assert response.status_code == 200
    assert client.get("/api/products").json() == []
    assert client.get(f"/api/products/{product.id}").status_code == 404
    assert repos.products.get_product(product.id).lifecycle.value == "inactive"


def test_renamed_category_slug_is_resolved_again(client, repos, category, make_product):
    make_product()
    assert len(client.get("/api/products", params={"category": "baskets"}).json()) == 1

    repos.categories.update(category.id, CategoryUpdate(slug="woven-baskets"))

    assert client.get("/api/products", params={"category": "baskets"}).json() == []
    assert len(client.get("/api/products", params={"category": "woven-baskets"}).json()) == 1


def test_admin_create_and_update(client, admin_headers, category):
    payload = {
        "name": "Dhaka topi",
        "description": "<em>Traditional</em> cap",
        "price": "450.00",
        "image": "/uploads/topi.jpg",
        "stock": 7,
        "categoryId": category.id,
    }
    created = client.post("/api/admin/products", json=payload, headers=admin_headers)
    assert created.status_code == 201
    product = created.json()
    assert product["description"] == "Traditional cap"

    updated = client.put(f"/api/admin/products/{product['id']}", json={"stock": 3}, headers=admin_headers)
    assert updated.status_code == 200
    assert updated.json()["stock"] == 3
    assert updated.json()["name"] == "Dhaka topi"


def test_admin_create_rejects_unknown_category(client, admin_headers):
    payload = {"name": "Mask", "description": "Wood", "price": "10.00", "image": "/x.jpg", "categoryId": "nope"}
    response = client.post("/api/admin/products", json=payload, headers=admin_headers)
    assert response.status_code == 400


def test_negative_stock_is_refused(client, admin_headers, make_product):
    product = make_product()
    response = client.put(f"/api/admin/products/{product.id}", json={"stock": -1}, headers=admin_headers)
    assert response.status_code == 400


def test_dashboard_stats(client, admin_headers, make_product):
    make_product(stock=2, price=Decimal("100.00"))
    make_product(stock=10, price=Decimal("50.00"))

    stats = client.get("/api/admin/stats", headers=admin_headers).json()

    assert stats["totalProducts"] == 2
    assert stats["lowStock"] == 1
    assert stats["categories"] == 1
    assert stats["totalValue"] == "700.00"


def test_stats_follow_product_changes(repos, make_product):
    product = make_product(stock=10)
    assert repos.products.product_stats().low_stock == 0

    repos.products.update_product(product.id, ProductUpdate(stock=1))

    assert repos.products.product_stats().low_stock == 1


def test_image_upload(client, admin_headers):
    response = client.post(
        "/api/admin/products/upload-image",
        files={"image": ("basket.png", b"\x89PNG fake image bytes", "image/png")},
        headers=admin_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["url"].startswith("/uploads/")
    assert body["contentType"] == "image/png"
    assert client.get(body["url"]).content == b"\x89PNG fake image bytes"


def test_image_upload_rejects_other_types(client, admin_headers):
    response = client.post(
        "/api/admin/products/upload-image",
        files={"image": ("notes.txt", b"hello", "text/plain")},
        headers=admin_headers,
    )
    assert response.status_code == 400
