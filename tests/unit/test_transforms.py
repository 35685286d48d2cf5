# tests/unit/test_transforms.py

import io
import zipfile
from datetime import date

import pytest

from conftest import make_workbook
from object_aggregator.exceptions import CodecError, DuplicateEntryNameError, NoDataFoundError
from object_aggregator.schemas import AggregationMode, AggregationRequest, BlobLocation
from object_aggregator.security import UnsafeEntryNameError
from object_aggregator.transforms import (
    MERGED_SHEET_TITLE,
    XLSX_CONTENT_TYPE,
    ZIP_CONTENT_TYPE,
    ArchivePack,
    TabularMerge,
    build_transform,
    decode_rows,
    encode_rows,
)

from openpyxl import Workbook, load_workbook


def _workbook_starting_at(rows: list[list], first_row: int) -> bytes:
    """Builds an .xlsx file whose first sheet holds *rows* from row *first_row* on."""
    workbook = Workbook()
    sheet = workbook.active
    for offset, row in enumerate(rows):
        for column, value in enumerate(row, start=1):
            sheet.cell(row=first_row + offset, column=column, value=value)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def _request(mode: AggregationMode, file_type: str = "xlsx") -> AggregationRequest:
    return AggregationRequest(
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 31),
        mode=mode,
        extension=f".{file_type}",
        file_type=file_type,
        source=BlobLocation(bucket="src"),
        destination=BlobLocation(bucket="dst"),
        max_candidates=20,
    )


# --- Tabular codec ---


def test_decode_rows_reads_first_sheet_only():
    data = make_workbook(
        [["h1", "h2"], ["1", "2"]], extra_sheets={"Ignored": [["x", "y"], ["9", "9"]]}
    )
    assert decode_rows(data) == [["h1", "h2"], ["1", "2"]]


def test_decode_rows_of_empty_sheet_is_empty():
    assert decode_rows(make_workbook([])) == []


def test_decode_rows_trims_trailing_blank_rows_only():
    data = make_workbook([["h1", "h2"], [None, None], ["3", "4"], [None, None], [None, None]])
    rows = decode_rows(data)
    assert rows[0] == ["h1", "h2"]
    assert rows[-1] == ["3", "4"]
    assert len(rows) == 3


def test_decode_rows_skips_blank_rows_above_the_data():
    data = _workbook_starting_at([["h1", "h2"], ["1", "2"]], first_row=3)
    assert decode_rows(data) == [["h1", "h2"], ["1", "2"]]


def test_encode_rows_writes_single_named_sheet():
    data = encode_rows([["h1", "h2"], [1, 2.5]])

    workbook = load_workbook(io.BytesIO(data))
    assert workbook.sheetnames == [MERGED_SHEET_TITLE]
    assert [list(r) for r in workbook.active.iter_rows(values_only=True)] == [
        ["h1", "h2"],
        [1, 2.5],
    ]


# --- TabularMerge ---


def test_tabular_merge_example():
    merge = TabularMerge(output_key="output/merged.xlsx")
    merge.add("a.xlsx", make_workbook([["h1", "h2"], ["1", "2"]]))
    merge.add("b.xlsx", make_workbook([["h1", "h2"], ["3", "4"]]))

    artifact = merge.finalize()

    assert artifact.content_type == XLSX_CONTENT_TYPE
    assert artifact.key == "output/merged.xlsx"
    assert artifact.object_count == 2
    assert decode_rows(artifact.data) == [["h1", "h2"], ["1", "2"], ["3", "4"]]


def test_tabular_merge_row_count_invariant():
    bodies = [[["1", "a"]], [["2", "b"], ["3", "c"]], [], [["4", "d"]]]
    merge = TabularMerge(output_key="k")
    for i, body in enumerate(bodies):
        merge.add(f"f{i}.xlsx", make_workbook([["id", "name"]] + body))

    artifact = merge.finalize()

    rows = decode_rows(artifact.data)
    assert len(rows) == 1 + sum(len(body) for body in bodies)
    assert rows[0] == ["id", "name"]
    assert rows[1:] == [row for body in bodies for row in body]
    assert merge.row_cursor == len(rows)


def test_tabular_merge_workbooks_with_data_below_row_one():
    merge = TabularMerge(output_key="k")
    merge.add("a.xlsx", _workbook_starting_at([["h1", "h2"], ["1", "2"]], first_row=3))
    merge.add("b.xlsx", _workbook_starting_at([["h1", "h2"], ["3", "4"]], first_row=3))

    assert merge.rows == [["h1", "h2"], ["1", "2"], ["3", "4"]]
    assert merge.row_cursor == 3


def test_tabular_merge_skips_empty_workbooks_before_header():
    merge = TabularMerge(output_key="k")
    merge.add("empty.xlsx", make_workbook([]))
    assert merge.header_written is False
    assert merge.row_cursor == 0

    merge.add("a.xlsx", make_workbook([["h"], ["1"]]))
    merge.add("b.xlsx", make_workbook([["h"], ["2"]]))

    assert merge.rows == [["h"], ["1"], ["2"]]


def test_tabular_merge_drops_later_first_row_without_checking_it():
    merge = TabularMerge(output_key="k")
    merge.add("a.xlsx", make_workbook([["h1", "h2"], ["1", "2"]]))
    merge.add("b.xlsx", make_workbook([["other", "header"], ["3", "4"]]))

    assert merge.rows == [["h1", "h2"], ["1", "2"], ["3", "4"]]


def test_tabular_merge_header_only_workbook_adds_no_rows_later():
    merge = TabularMerge(output_key="k")
    merge.add("a.xlsx", make_workbook([["h"], ["1"]]))
    merge.add("b.xlsx", make_workbook([["h"]]))

    assert merge.rows == [["h"], ["1"]]


def test_tabular_merge_all_empty_raises_no_data_found():
    merge = TabularMerge(output_key="k")
    merge.add("a.xlsx", make_workbook([]))
    merge.add("b.xlsx", make_workbook([]))

    with pytest.raises(NoDataFoundError) as exc_info:
        merge.finalize()
    assert exc_info.value.context == {"file_count": 2}


def test_tabular_merge_corrupt_workbook_raises_codec_error():
    merge = TabularMerge(output_key="k")

    with pytest.raises(CodecError) as exc_info:
        merge.add("input/broken.xlsx", b"this is not a workbook")
    assert exc_info.value.context["key"] == "input/broken.xlsx"


def test_tabular_merge_output_key():
    key = TabularMerge.output_key_for(_request(AggregationMode.TABULAR_MERGE))
    assert key == "output/merged-files-from-2024-01-01-to-2024-01-31.xlsx"


# --- ArchivePack ---


def test_archive_pack_round_trip_fidelity():
    payloads = {
        "in/2024/a.pdf": b"%PDF-1.7 first",
        "in/b.pdf": b"%PDF-1.7 second" * 1000,
        "c.pdf": b"",
    }
    pack = ArchivePack(output_key="compressed/out.zip")
    for key, data in payloads.items():
        pack.add(key, data)

    artifact = pack.finalize()

    assert artifact.content_type == ZIP_CONTENT_TYPE
    assert artifact.object_count == 3
    with zipfile.ZipFile(io.BytesIO(artifact.data)) as archive:
        assert archive.testzip() is None
        assert archive.namelist() == ["a.pdf", "b.pdf", "c.pdf"]
        assert archive.read("a.pdf") == payloads["in/2024/a.pdf"]
        assert archive.read("b.pdf") == payloads["in/b.pdf"]
        assert archive.read("c.pdf") == b""
        assert all(info.compress_type == zipfile.ZIP_DEFLATED for info in archive.infolist())


def test_archive_pack_is_deterministic():
    def build() -> bytes:
        pack = ArchivePack(output_key="k")
        pack.add("x/a.pdf", b"alpha")
        pack.add("y/b.pdf", b"beta")
        return pack.finalize().data

    assert build() == build()


def test_archive_pack_rejects_basename_collision():
    pack = ArchivePack(output_key="k")
    pack.add("2024/01/report.pdf", b"january")

    with pytest.raises(DuplicateEntryNameError) as exc_info:
        pack.add("2024/02/report.pdf", b"february")

    assert exc_info.value.context == {"name": "report.pdf", "key": "2024/02/report.pdf"}
    assert pack.entry_names == {"report.pdf"}


def test_archive_pack_rejects_unsafe_names():
    pack = ArchivePack(output_key="k")
    with pytest.raises(UnsafeEntryNameError):
        pack.add("folder/", b"")


def test_archive_pack_output_key_embeds_file_type():
    key = ArchivePack.output_key_for(_request(AggregationMode.ARCHIVE_PACK, file_type="png"))
    assert key == "compressed/png-files-from-2024-01-01-to-2024-01-31.zip"


# --- Factory ---


@pytest.mark.parametrize(
    "mode, expected_type",
    [(AggregationMode.TABULAR_MERGE, TabularMerge), (AggregationMode.ARCHIVE_PACK, ArchivePack)],
)
def test_build_transform_selects_variant(mode, expected_type):
    request = _request(mode, file_type="xlsx" if mode is AggregationMode.TABULAR_MERGE else "pdf")
    transform = build_transform(request)

    assert isinstance(transform, expected_type)
    assert transform.output_key == expected_type.output_key_for(request)
