"""
Tests for respondent-level topic features.
"""

import numpy as np
import pandas as pd
import pytest

from happymoment_segments.aggregation import (
    aggregate_respondents, dominant_one_hot, segment_feature_matrix,
)
from happymoment_segments.exceptions import InputError

DEMO = pd.DataFrame({
    "respondent_id": [10, 20, 30],
    "age": [34.0, 51.0, 22.0],
    "gender": [0, 1, 1],
    "parenthood": [1, 1, 0],
    "marital": [0, 0, 1],
})


def test_mean_gamma_and_dominant_topic():
    feats = aggregate_respondents(np.array([[0.1, 0.9], [0.3, 0.7]]), [10, 10], DEMO, verbose=False)
    np.testing.assert_allclose(feats.mean_gamma, [[0.2, 0.8]])
    assert feats.dominant.tolist() == [[0, 1]]


def test_one_row_per_respondent_in_first_appearance_order():
    gamma = np.array([[0.6, 0.4], [0.2, 0.8], [0.5, 0.5], [0.9, 0.1]])
    feats = aggregate_respondents(gamma, [20, 10, 20, 30], DEMO, verbose=False)
    assert feats.respondent_ids.tolist() == [20, 10, 30]
    np.testing.assert_allclose(feats.mean_gamma.sum(axis=1), 1.0, atol=1e-9)
    assert (feats.dominant.sum(axis=1) == 1).all()
    assert feats.demographics["age"].tolist() == [51.0, 34.0, 22.0]


def test_dominant_tie_goes_to_lowest_topic():
    assert dominant_one_hot(np.array([[0.25, 0.25, 0.5], [0.5, 0.5, 0.0]])).tolist() == \
        [[0, 0, 1], [1, 0, 0]]


def test_demographics_reduced_with_max():
    demo = pd.DataFrame({"respondent_id": [10, 10], "age": [30.0, 31.0], "gender": [0, 0],
                         "parenthood": [0, 1], "marital": [1, 1]})
    feats = aggregate_respondents(np.array([[1.0, 0.0]]), [10], demo, verbose=False)
    assert feats.demographics.iloc[0].to_dict() == {"age": 31.0, "gender": 0, "parenthood": 1, "marital": 1}


def test_mismatched_lengths_rejected():
    with pytest.raises(InputError):
        aggregate_respondents(np.array([[0.5, 0.5]]), [10, 20], DEMO, verbose=False)


def test_segment_matrix_excludes_gender():
    gamma = np.array([[0.7, 0.3], [0.2, 0.8], [0.4, 0.6]])
    feats = aggregate_respondents(gamma, [10, 20, 30], DEMO, verbose=False)
    X = segment_feature_matrix(feats)
    assert list(X.columns) == ["age", "parenthood", "marital", "dominant_0", "dominant_1"]
    assert X.index.tolist() == [10, 20, 30]
    assert X.loc[20].tolist() == [51.0, 1.0, 0.0, 0.0, 1.0]


def test_segment_matrix_scaling_and_missing_rows():
    gamma = np.array([[0.7, 0.3], [0.2, 0.8], [0.4, 0.6], [0.9, 0.1]])
    feats = aggregate_respondents(gamma, [10, 20, 30, 99], DEMO, verbose=False)
    X = segment_feature_matrix(feats, scale=True)
    # respondent 99 has no demographics
    assert X.index.tolist() == [10, 20, 30]
    np.testing.assert_allclose(X["age"].mean(), 0.0, atol=1e-9)


def test_export_frame():
    feats = aggregate_respondents(np.array([[0.1, 0.9]]), [10], DEMO, verbose=False)
    df = feats.to_frame()
    assert df.loc[0, "respondent_id"] == 10
    assert df.loc[0, "dominant_topic"] == 1
    assert df.loc[0, "gamma_1"] == pytest.approx(0.9)
