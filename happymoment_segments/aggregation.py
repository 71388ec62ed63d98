# Per-respondent topic features merged with demographic covariates
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.preprocessing import StandardScaler

from .config import *
from .exceptions import ConfigurationError, InputError


@dataclass
class RespondentFeatures:
    """One row per respondent, in first-appearance order of respondent ids."""
    respondent_ids: np.ndarray
    demographics: pd.DataFrame     # indexed like respondent_ids, one column per covariate
    mean_gamma: np.ndarray         # n_respondents x n_topics
    dominant: np.ndarray           # n_respondents x n_topics one-hot (int)

    @property
    def n_topics(self) -> int:
        return self.mean_gamma.shape[1]

    @property
    def dominant_topic(self) -> np.ndarray:
        return self.dominant.argmax(axis=1)

    def to_frame(self) -> pd.DataFrame:
        """Export table: respondent_id, demographics, mean gamma and dominant flags per topic."""
        df = pd.DataFrame({"respondent_id": self.respondent_ids})
        df = pd.concat([df, self.demographics.reset_index(drop=True)], axis=1)
        for t in range(self.n_topics):
            df[f"gamma_{t}"] = self.mean_gamma[:, t]
        for t in range(self.n_topics):
            df[f"dominant_{t}"] = self.dominant[:, t]
        df["dominant_topic"] = self.dominant_topic
        return df


def dominant_one_hot(mean_gamma: np.ndarray) -> np.ndarray:
    """One-hot of the argmax topic per row; argmax returns the lowest index on ties."""
    idx = np.argmax(mean_gamma, axis=1)
    out = np.zeros(mean_gamma.shape, dtype=int)
    out[np.arange(mean_gamma.shape[0]), idx] = 1
    return out


def aggregate_respondents(gamma: np.ndarray, respondent_ids: Sequence,
                          demographics: Optional[pd.DataFrame] = None,
                          demographic_cols: List[str] = DEMOGRAPHIC_COLS,
                          verbose: bool = True) -> RespondentFeatures:
    """
    Collapse document-level topic weights to one feature row per respondent.

    Demographics are reduced with max(), assuming each respondent carries a
    single value per field after filtering. Respondents without a
    demographics row get NaN covariates.

    Args:
        gamma: Documents x topics topic weights
        respondent_ids: Respondent id per gamma row
        demographics: Table with respondent_id plus demographic_cols
        demographic_cols: Covariates to carry over

    Returns:
        RespondentFeatures
    """
    gamma = np.asarray(gamma, dtype=float)
    ids = pd.Series(list(respondent_ids), name="respondent_id")
    if gamma.ndim != 2 or gamma.shape[0] != len(ids):
        raise InputError(f"gamma has {gamma.shape[0] if gamma.ndim else 0} rows "
                         f"but {len(ids)} respondent ids were given")
    if ids.isna().any():
        raise InputError("respondent ids must not be null")

    k = gamma.shape[1]
    df_gamma = pd.DataFrame(gamma, columns=range(k))
    df_gamma["respondent_id"] = ids.values
    grouped = df_gamma.groupby("respondent_id", sort=False)
    mean_gamma = grouped[list(range(k))].mean()

    order = mean_gamma.index
    if demographics is not None:
        cols = [c for c in demographic_cols if c in demographics.columns]
        demo = demographics.groupby("respondent_id", sort=False)[cols].max()
        demo = demo.reindex(order)
    else:
        demo = pd.DataFrame(index=order)

    mg = mean_gamma.to_numpy()
    if verbose:
        print(f"[aggregate] {len(ids):,} documents -> {len(order):,} respondents")

    return RespondentFeatures(
        respondent_ids=np.asarray(order),
        demographics=demo.reset_index(drop=True),
        mean_gamma=mg,
        dominant=dominant_one_hot(mg),
    )


def segment_feature_matrix(features: RespondentFeatures,
                           feature_cols: List[str] = SEGMENT_FEATURES,
                           scale: bool = SCALE_FEATURES) -> pd.DataFrame:
    """
    Clustering input: selected demographics plus dominant-topic indicators.

    Gender is not part of SEGMENT_FEATURES. Rows with missing covariates are
    dropped, so the returned index gives the respondent positions kept.

    Args:
        features: Aggregated respondent features
        feature_cols: Demographic covariates to include
        scale: Standardize every column (StandardScaler) before clustering

    Returns:
        pd.DataFrame indexed by respondent_id
    """
    missing = [c for c in feature_cols if c not in features.demographics.columns]
    if missing:
        raise ConfigurationError(f"segment features not found in demographics: {missing}")

    X = features.demographics[feature_cols].copy()
    for t in range(features.n_topics):
        X[f"dominant_{t}"] = features.dominant[:, t]
    X.index = pd.Index(features.respondent_ids, name="respondent_id")
    X = X.dropna().astype(float)

    if scale and len(X):
        X = pd.DataFrame(StandardScaler().fit_transform(X), index=X.index, columns=X.columns)
    return X
