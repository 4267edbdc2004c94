"""CSV bulk import."""

import os

import pytest

from database import PRODUCTS
from product_import import import_products, row_to_product

HEADER = "name,description,shortDescription,price,discountedPrice,category,sizes,colors,material,threadCount,dimensions,images,tags,isFeatured\n"


def write_csv(tmp_path, rows):
    path = tmp_path / "products.csv"
    path.write_text(HEADER + "".join(rows), encoding="utf-8")
    return str(path)


class TestRowToProduct:
    def test_defaults(self):
        product = row_to_product({
            "name": "Cotton Bedsheet",
            "description": "A soft cotton bedsheet for everyday use",
            "price": "1200",
            "discountedPrice": "",
            "sizes": "Double, King",
            "colors": "White",
            "threadCount": "300",
            "isFeatured": "TRUE",
        }, "cat1")
        assert product.slug == "cotton-bedsheet"
        assert product.discounted_price == 1200
        assert product.short_description == "A soft cotton bedsheet for everyday use"
        assert product.attributes.size == ["Double", "King"]
        assert product.attributes.thread_count == 300
        assert product.is_featured is True

    def test_non_numeric_price(self):
        with pytest.raises(ValueError):
            row_to_product({"name": "X", "description": "Y", "price": "free"}, "cat1")


class TestImportProducts:
    def test_creates_and_skips_rows(self, db, tmp_path, make_category):
        make_category("Bedsheets")
        path = write_csv(tmp_path, [
            'Cotton Bedsheet,Soft cotton,,1200,999,Bedsheets,"Double,King","White,Blue",Cotton,300,,,cotton,true\n',
            "Mystery Sheet,Unknown,,500,400,Towels,,,,,,,,\n",
            "Broken Sheet,Bad price,,abc,,Bedsheets,,,,,,,,\n",
            "Upside Down,Discount above price,,500,900,Bedsheets,,,,,,,,\n",
            "Cotton Bedsheet,Same name again,,1200,999,Bedsheets,,,,,,,,\n",
        ])

        report = import_products(db, path)

        assert report.created == 1
        assert [line for line, _ in report.skipped] == [3, 4, 5, 6]
        assert "unknown category" in report.skipped[0][1]
        assert "duplicate slug" in report.skipped[3][1]
        assert report.summary() == "1 products uploaded successfully, 4 rows skipped"

        product = db[PRODUCTS].find_one({"slug": "cotton-bedsheet"})
        assert product["attributes"]["color"] == ["White", "Blue"]
        assert product["is_featured"] is True
        assert product["stock"]["available"] is True

    def test_file_is_removed(self, db, tmp_path, make_category):
        make_category("Bedsheets")
        path = write_csv(tmp_path, ["Plain Sheet,Plain,,500,,Bedsheets,,,,,,,,\n"])
        import_products(db, path)
        assert not os.path.exists(path)
