"""
Tests for the tag vocabulary and output map loaders.
"""

import io
import json

import numpy as np
import pytest

from caformer_tagger.metadata import ParseError, load_tag_metadata
from caformer_tagger.models import TagRecord
from caformer_tagger.output_map import load_output_map, parse_output_map
from conftest import SAMPLE_TAGS_CSV


def test_load_tag_metadata_from_path(tags_csv):
    records = load_tag_metadata(tags_csv)

    assert list(records) == ["a", "b", "c", "d"]
    assert records["c"] == TagRecord(name="c", category=4, best_threshold=0.2)
    assert records["d"].category == 9


def test_load_tag_metadata_from_text_and_binary_streams():
    from_text = load_tag_metadata(io.StringIO(SAMPLE_TAGS_CSV))
    binary = io.BytesIO(SAMPLE_TAGS_CSV.encode("utf-8"))
    from_binary = load_tag_metadata(binary)

    assert from_text == from_binary
    # The caller's stream is left open
    assert not binary.closed


def test_minimal_columns_and_bom():
    csv_text = "\ufeffname,category,best_threshold\nsolo,0,0.4\n"
    records = load_tag_metadata(io.BytesIO(csv_text.encode("utf-8")))
    assert records["solo"].best_threshold == pytest.approx(0.4)


def test_threshold_is_stored_at_float32_precision():
    records = load_tag_metadata(io.StringIO("name,category,best_threshold\nx,0,0.35\n"))
    assert records["x"].best_threshold == float(np.float32(0.35))


def test_unknown_category_is_accepted():
    records = load_tag_metadata(io.StringIO("name,category,best_threshold\nartist_x,1,0.5\n"))
    assert records["artist_x"].category == 1


def test_duplicate_name_is_rejected():
    csv_text = "name,category,best_threshold\nsolo,0,0.4\nsolo,0,0.5\n"
    with pytest.raises(ParseError, match="Line 3: duplicate tag name 'solo'"):
        load_tag_metadata(io.StringIO(csv_text))


def test_missing_field_names_the_line():
    csv_text = "name,category,best_threshold\nsolo,0,0.4\nsmile,0\n"
    with pytest.raises(ParseError, match="Line 3: missing value for best_threshold"):
        load_tag_metadata(io.StringIO(csv_text))


def test_empty_field_is_rejected():
    csv_text = "name,category,best_threshold\nsolo,,0.4\n"
    with pytest.raises(ParseError, match="Line 2: missing value for category"):
        load_tag_metadata(io.StringIO(csv_text))


@pytest.mark.parametrize(
    "row",
    ["solo,general,0.4", "solo,0,high", "solo,0,1.5", "solo,0.5,0.4"],
)
def test_invalid_values_are_rejected(row):
    with pytest.raises(ParseError, match="Line 2: invalid tag record"):
        load_tag_metadata(io.StringIO(f"name,category,best_threshold\n{row}\n"))


def test_missing_header_column_is_rejected():
    with pytest.raises(ParseError, match="best_threshold"):
        load_tag_metadata(io.StringIO("name,category\nsolo,0\n"))


def test_empty_csv_is_rejected():
    with pytest.raises(ParseError):
        load_tag_metadata(io.StringIO(""))


def test_load_output_map_preserves_order(config_json):
    assert load_output_map(config_json) == ("a", "b", "c", "d")


def test_load_output_map_from_stream():
    document = json.dumps({"tags": ["z", "y", "x"]}).encode("utf-8")
    assert load_output_map(io.BytesIO(document)) == ("z", "y", "x")
    assert load_output_map(io.StringIO(document.decode("utf-8"))) == ("z", "y", "x")


def test_output_map_expected_length():
    document = json.dumps({"tags": ["a", "b"]})
    assert parse_output_map(document, expected_length=2) == ("a", "b")
    with pytest.raises(ParseError, match="2 tags but the model produces 3 outputs"):
        parse_output_map(document, expected_length=3)


@pytest.mark.parametrize(
    "document",
    [
        "{not json",
        json.dumps(["a", "b"]),
        json.dumps({"labels": ["a"]}),
        json.dumps({"tags": "a,b"}),
        json.dumps({"tags": ["a", 2]}),
    ],
)
def test_malformed_output_map_is_rejected(document):
    with pytest.raises(ParseError):
        parse_output_map(document)
