import pytest

from src.live.catalog import build_product_file, load_id_file
from src.live.errors import ValidationError
from src.live.models import FILE_USE_ALL


def test_build_dedupes_and_keeps_order():
    pf = build_product_file("goods", ["100", " 200 ", "100", "300", "", "200"])
    assert pf.product_ids == ["100", "200", "300"]
    assert pf.total_count == 5
    assert pf.unique_count == 3
    assert pf.quota == FILE_USE_ALL


def test_build_normalizes_float_cells():
    pf = build_product_file("goods", [100012345.0, "100012346.0"])
    assert pf.product_ids == ["100012345", "100012346"]


def test_build_empty_raises():
    with pytest.raises(ValidationError) as exc:
        build_product_file("empty", ["", "  ", None])
    assert exc.value.reason == ValidationError.EMPTY


def test_load_csv_first_column_skips_header(tmp_path):
    path = tmp_path / "skus.csv"
    path.write_text("商品ID,名称\n1001,a\n1002,b\n1001,c\n", encoding="utf-8")
    pf = load_id_file(path, quota=5)
    assert pf.name == "skus"
    assert pf.product_ids == ["1001", "1002"]
    assert pf.total_count == 3
    assert pf.quota == 5


def test_load_txt_one_id_per_line(tmp_path):
    path = tmp_path / "ids.txt"
    path.write_text("2001\n\n2002\n", encoding="utf-8")
    assert load_id_file(path).product_ids == ["2001", "2002"]


def test_load_unsupported_extension(tmp_path):
    path = tmp_path / "skus.xlsx"
    path.write_bytes(b"PK\x03\x04")
    with pytest.raises(ValidationError) as exc:
        load_id_file(path)
    assert exc.value.reason == ValidationError.INVALID_FORMAT


def test_load_file_without_ids(tmp_path):
    path = tmp_path / "header_only.csv"
    path.write_text("商品ID\n", encoding="utf-8")
    with pytest.raises(ValidationError) as exc:
        load_id_file(path)
    assert exc.value.reason == ValidationError.EMPTY


def test_selected_ids_respects_quota():
    pf = build_product_file("goods", ["1", "2", "3"], quota=2)
    assert pf.selected_ids() == ["1", "2"]
    pf.quota = FILE_USE_ALL
    assert pf.selected_ids() == ["1", "2", "3"]
