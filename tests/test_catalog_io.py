import csv
import io

from openpyxl import Workbook, load_workbook

from craftstore.schemas import CategoryCreate, ProductFilters

CSV_WITH_ONE_BAD_ROW = """name,description,price,stock,category,image_url
Seagrass basket,Hand woven,850.00,5,Baskets,/uploads/a.jpg
Clay pot,Wheel thrown,400,3,pottery,/uploads/b.jpg
Bamboo tray,Light and sturdy,275.50,,baskets,/uploads/c.jpg
Wool shawl,,999,2,baskets,/uploads/d.jpg
"""


def _upload(client, headers, filename, content, media_type="text/csv"):
    return client.post(
        "/api/admin/products/import-csv",
        files={"csvFile": (filename, content, media_type)},
        headers=headers,
    )


def test_csv_import_skips_incomplete_rows(client, admin_headers, repos, category):
    repos.categories.create(CategoryCreate(name="Pottery"))

    response = _upload(client, admin_headers, "products.csv", CSV_WITH_ONE_BAD_ROW.encode())

    assert response.status_code == 200
    body = response.json()
    assert body["imported"] == 3
    assert len(body["errors"]) == 1
    assert "Row 5" in body["errors"][0]
    assert "description" in body["errors"][0]

    products = {product.name: product for product in repos.products.list_products(ProductFilters())}
    assert set(products) == {"Seagrass basket", "Clay pot", "Bamboo tray"}
    assert products["Bamboo tray"].stock == 0
    assert products["Seagrass basket"].category_id == category.id


def test_csv_import_reports_unknown_category_and_bad_price(client, admin_headers, category):
    content = (
        "name,description,price,stock,category,image\n"
        "Mask,Carved,abc,1,baskets,/uploads/m.jpg\n"
        "Drum,Goat skin,100,1,instruments,/uploads/d.jpg\n"
        "Tray,Bamboo,100,1,Baskets,/uploads/t.jpg\n"
    )

    body = _upload(client, admin_headers, "products.csv", content.encode()).json()

    assert body["imported"] == 1
    assert any("invalid price" in error for error in body["errors"])
    assert any('invalid category "instruments"' in error for error in body["errors"])


def test_csv_import_reports_unusable_stock_per_row(client, admin_headers, repos, category):
    content = (
        "name,description,price,stock,category,image_url\n"
        "Tray,Bamboo,100,2,baskets,/uploads/t.jpg\n"
        "Shawl,Wool shawl,100,Infinity,baskets,/uploads/s.jpg\n"
        "Bowl,Singing bowl,100,2.5,baskets,/uploads/b.jpg\n"
        "Mask,Carved,NaN,1,baskets,/uploads/m.jpg\n"
    )

    response = _upload(client, admin_headers, "products.csv", content.encode())

    assert response.status_code == 200
    body = response.json()
    assert body["imported"] == 1
    assert body["errors"] == [
        'Row 3: invalid stock "Infinity" for product "Shawl"',
        'Row 4: invalid stock "2.5" for product "Bowl"',
        'Row 5: invalid price "NaN" for product "Mask"',
    ]
    assert [product.name for product in repos.products.list_products(ProductFilters())] == ["Tray"]


def test_csv_without_valid_rows_is_rejected(client, admin_headers, repos, category):
    content = "name,description,price,stock,category,image_url\n,,,,,\n"

    response = _upload(client, admin_headers, "products.csv", content.encode())

    assert response.status_code == 400
    assert response.json()["detail"] == "No valid products to import"
    assert repos.products.list_products(ProductFilters()) == []


def test_unsupported_file_type(client, admin_headers):
    response = _upload(client, admin_headers, "products.json", b"[]", "application/json")
    assert response.status_code == 400


def test_xlsx_import(client, admin_headers, repos, category):
    wb = Workbook()
    ws = wb.active
    ws.append(["name", "description", "price", "stock", "category", "image_url"])
    ws.append(["Prayer wheel", "Copper", 1200, 4, "baskets", "/uploads/w.jpg"])
    buffer = io.BytesIO()
    wb.save(buffer)

    response = _upload(
        client,
        admin_headers,
        "products.xlsx",
        buffer.getvalue(),
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )

    assert response.status_code == 200
    assert response.json() == {"imported": 1, "errors": []}
    assert [product.name for product in repos.products.list_products(ProductFilters())] == ["Prayer wheel"]


def test_corrupt_workbook_is_a_validation_error(client, admin_headers, category):
    response = _upload(
        client,
        admin_headers,
        "products.xlsx",
        b"not a zip at all",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Could not read the uploaded workbook"


def test_csv_export_round_trips_through_import_layout(client, admin_headers, make_product):
    make_product(name="Seagrass basket")

    response = client.get("/api/admin/products/export", headers=admin_headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    rows = list(csv.DictReader(io.StringIO(response.text)))
    assert rows == [
        {
            "name": "Seagrass basket",
            "description": "Hand woven seagrass basket",
            "price": "850.00",
            "stock": "5",
            "category": "baskets",
            "image_url": "/uploads/basket.jpg",
        }
    ]


def test_xlsx_template(client, admin_headers):
    response = client.get("/api/admin/products/import-template", params={"format": "xlsx"}, headers=admin_headers)

    assert response.status_code == 200
    sheet = load_workbook(io.BytesIO(response.content)).active
    header = next(sheet.iter_rows(min_row=1, max_row=1, values_only=True))
    assert list(header) == ["name", "description", "price", "stock", "category", "image_url"]


def test_import_requires_admin(client, customer_headers):
    response = _upload(client, customer_headers, "products.csv", CSV_WITH_ONE_BAD_ROW.encode())
    assert response.status_code == 403
