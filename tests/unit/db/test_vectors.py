"""Tests for the sqlite-vec table and embedding payload helpers."""

from __future__ import annotations

import json
import math
import sqlite3
import struct

import pytest

from notegraph.db.vectors import VEC_TABLE, embedding_to_json, ensure_vec_table, parse_embedding


# --- ensure_vec_table ---

def test_ensure_vec_table_idempotent(tmp_db):
    assert ensure_vec_table(tmp_db, 3) == VEC_TABLE
    assert ensure_vec_table(tmp_db, 3) == VEC_TABLE


def test_ensure_vec_table_rejects_zero_dimensions(tmp_db):
    with pytest.raises(ValueError):
        ensure_vec_table(tmp_db, 0)


def test_vec_table_rejects_wrong_dimension(tmp_db):
    with pytest.raises(sqlite3.Error):
        tmp_db.execute(
            f"INSERT INTO {VEC_TABLE}(rowid, embedding) VALUES (1, ?)", (json.dumps([1.0, 2.0]),)
        )


# --- embedding_to_json ---

def test_embedding_to_json_round_trips_as_json():
    assert json.loads(embedding_to_json([1, 2.5, -3])) == [1.0, 2.5, -3.0]


@pytest.mark.parametrize("bad", [float("nan"), float("inf"), -math.inf])
def test_embedding_to_json_rejects_non_finite(bad):
    with pytest.raises(ValueError):
        embedding_to_json([0.0, bad, 1.0])


# --- parse_embedding ---

def test_parse_embedding_from_list():
    assert parse_embedding([1, 2.5]) == [1.0, 2.5]


def test_parse_embedding_from_json_text():
    assert parse_embedding("[0.5, 1]") == [0.5, 1.0]


def test_parse_embedding_from_float32_blob():
    blob = struct.pack("<3f", 1.0, 0.5, -2.0)
    assert parse_embedding(blob) == [1.0, 0.5, -2.0]


@pytest.mark.parametrize("bad", [
    None,
    "",
    "not json",
    "{\"a\": 1}",
    "[]",
    ["x", 1],
    [True, False],
    b"",
    b"\x00\x01\x02",
    42,
])
def test_parse_embedding_malformed_returns_none(bad):
    assert parse_embedding(bad) is None


def test_stored_vector_reads_back_as_blob(tmp_db):
    tmp_db.execute(
        f"INSERT INTO {VEC_TABLE}(rowid, embedding) VALUES (7, ?)", (embedding_to_json([1, 2, 3]),)
    )
    raw = tmp_db.execute(f"SELECT embedding FROM {VEC_TABLE} WHERE rowid = 7").fetchone()[0]
    assert parse_embedding(raw) == [1.0, 2.0, 3.0]
