"""
Tests for loading, validation and respondent filters.
"""

import pandas as pd
import pytest

from happymoment_segments.data_cleaning import (
    filter_demographics, filter_moments, load_demographics, load_moments, validate_moments,
)
from happymoment_segments.exceptions import InputError

RAW_DEMO = pd.DataFrame({
    "respondent_id": [1, 2, 3, 4, 5, 6, 7],
    "country": ["USA", "USA", "IND", "USA", "USA", "USA", "USA"],
    "age": ["25", "17", "40", "prefer not to say", "85", "60", "33"],
    "gender": ["m", "f", "f", "m", "F", "o", "f"],
    "parenthood": ["y", "n", "n", "y", "n", "y", "y"],
    "marital": ["single", "single", "married", "married", "divorced", "married", "Single"],
})


def test_filter_demographics():
    df = filter_demographics(RAW_DEMO, verbose=False)
    assert df["respondent_id"].tolist() == [1, 5, 7]
    assert df["gender"].tolist() == [0, 1, 1]
    assert df["parenthood"].tolist() == [1, 0, 1]
    assert df["marital"].tolist() == [1, 0, 1]
    assert df["age"].tolist() == [25.0, 85.0, 33.0]


def test_filter_moments_by_respondent_and_sentences():
    demo = filter_demographics(RAW_DEMO, verbose=False)
    moments = pd.DataFrame({
        "moment_id": [100, 101, 102, 103],
        "respondent_id": [1, 2, 5, 7],
        "raw_text": ["a", "b", "c", "d"],
        "sentence_count": [1, 1, 3, 1],
    })
    kept = filter_moments(moments, demo, verbose=False)
    assert kept["moment_id"].tolist() == [100, 103]
    assert filter_moments(moments, demo, max_sentences=None, verbose=False)["moment_id"].tolist() == [100, 102, 103]


def test_missing_columns_rejected():
    with pytest.raises(InputError):
        filter_demographics(RAW_DEMO.drop(columns="age"), verbose=False)
    with pytest.raises(InputError):
        validate_moments(pd.DataFrame({"moment_id": [1], "raw_text": ["x"]}))


def test_null_text_and_duplicate_ids_rejected():
    with pytest.raises(InputError):
        validate_moments(pd.DataFrame({"moment_id": [1], "respondent_id": [1], "raw_text": [None]}))
    with pytest.raises(InputError):
        validate_moments(pd.DataFrame({"moment_id": [1, 1], "respondent_id": [1, 2], "raw_text": ["x", "y"]}))


def test_load_happydb_style_files(tmp_path):
    hm = tmp_path / "cleaned_hm.csv"
    pd.DataFrame({
        "hmid": [1, 2], "wid": [7, 8], "reflection_period": ["24h", "3m"],
        "cleaned_hm": ["I ate pizza", "My dog ran"], "num_sentence": [1, 1],
        "ground_truth_category": ["food", None],
    }).to_csv(hm, index=False)
    demo = tmp_path / "demographic.csv"
    RAW_DEMO.rename(columns={"respondent_id": "wid"}).to_csv(demo, index=False)

    moments = load_moments(str(hm))
    assert list(moments.columns) == ["moment_id", "respondent_id", "raw_text", "sentence_count", "category_label"]
    assert moments["raw_text"].tolist() == ["I ate pizza", "My dog ran"]
    assert len(load_demographics(str(demo))) == 7
