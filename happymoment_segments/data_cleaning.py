# Data loading, validation, and respondent filtering
import numpy as np
import pandas as pd
from typing import Optional, Tuple

from .config import *
from .exceptions import InputError

# -------------------------- Lookup Tables --------------------------
# HappyDB column names -> pipeline column names
MOMENT_COLUMNS = {
    "hmid": "moment_id",
    "wid": "respondent_id",
    "cleaned_hm": "raw_text",
    "num_sentence": "sentence_count",
    "ground_truth_category": "category_label",
}

DEMOGRAPHIC_COLUMNS = {
    "wid": "respondent_id",
    "country": "country",
    "age": "age",
    "gender": "gender",
    "parenthood": "parenthood",
    "marital": "marital",
}

REQUIRED_MOMENT_COLS = ["moment_id", "respondent_id", "raw_text"]
REQUIRED_DEMOGRAPHIC_COLS = ["respondent_id", "country", "age", "gender", "parenthood", "marital"]

GENDER_CODES = {"m": 0, "f": 1}
PARENTHOOD_CODES = {"n": 0, "y": 1}

# -------------------------- Helper Functions --------------------------
def _require_columns(df: pd.DataFrame, required, what: str):
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise InputError(f"{what} is missing required column(s): {missing}")


def _normalize_code(x) -> Optional[str]:
    """Lowercase and strip a categorical survey answer."""
    if not isinstance(x, str):
        return None
    v = x.strip().lower()
    return v or None


def marital_to_single(x) -> Optional[int]:
    """Collapse marital status to a single (1) vs. not single (0) flag."""
    v = _normalize_code(x)
    if v is None:
        return None
    return 1 if v == "single" else 0


def validate_moments(df: pd.DataFrame) -> pd.DataFrame:
    """
    Check the moments table has ids and text on every row.

    Raises:
        InputError: on missing columns or null ids / text
    """
    _require_columns(df, REQUIRED_MOMENT_COLS, "moments table")

    for col in REQUIRED_MOMENT_COLS:
        n_null = int(df[col].isna().sum())
        if n_null:
            raise InputError(f"moments table has {n_null} null value(s) in '{col}'")

    if df["moment_id"].duplicated().any():
        raise InputError("moment_id must be unique within the corpus")

    df_valid = df.copy()
    df_valid["raw_text"] = df_valid["raw_text"].astype(str)
    if "sentence_count" not in df_valid.columns:
        df_valid["sentence_count"] = 1
    if "category_label" not in df_valid.columns:
        df_valid["category_label"] = None
    return df_valid


def validate_demographics(df: pd.DataFrame) -> pd.DataFrame:
    """
    Check the demographics table carries every field the filters need.

    Raises:
        InputError: on missing columns or null respondent ids
    """
    _require_columns(df, REQUIRED_DEMOGRAPHIC_COLS, "demographics table")

    n_null = int(df["respondent_id"].isna().sum())
    if n_null:
        raise InputError(f"demographics table has {n_null} null respondent_id value(s)")
    return df.copy()

# -------------------------- Main Data Loading Functions --------------------------
def load_moments(csv_path: str = MOMENTS_CSV) -> pd.DataFrame:
    """Load a HappyDB-style moments file and rename it to pipeline columns."""
    print(f"Loading moments from {csv_path}...")
    df = pd.read_csv(csv_path, low_memory=False)
    df = df.rename(columns=MOMENT_COLUMNS)
    df = validate_moments(df)
    print(f"Raw moments: {len(df):,}")
    return df[["moment_id", "respondent_id", "raw_text", "sentence_count", "category_label"]]


def load_demographics(csv_path: str = DEMOGRAPHICS_CSV) -> pd.DataFrame:
    """Load a HappyDB-style demographics file and rename it to pipeline columns."""
    print(f"Loading demographics from {csv_path}...")
    df = pd.read_csv(csv_path, low_memory=False)
    df = df.rename(columns=DEMOGRAPHIC_COLUMNS)
    df = validate_demographics(df)
    print(f"Raw respondents: {len(df):,}")
    return df[REQUIRED_DEMOGRAPHIC_COLS]


def filter_demographics(df: pd.DataFrame, country: str = COUNTRY,
                        age_range: Tuple[int, int] = AGE_RANGE,
                        verbose: bool = True) -> pd.DataFrame:
    """
    Keep respondents from one country, of adult age, with binary-codable answers.

    Gender, parenthood and marital status are mapped to 0/1 integer codes.
    Ages that are not numeric are treated as missing and dropped.

    Args:
        df: Validated demographics table
        country: Country code to keep
        age_range: Inclusive (low, high) age bounds

    Returns:
        pd.DataFrame: respondent_id, age, gender, parenthood, marital (all numeric)
    """
    df = validate_demographics(df)
    n_start = len(df)

    df = df[df["country"].astype(str).str.strip() == country].copy()

    df["age"] = pd.to_numeric(df["age"], errors="coerce")
    lo, hi = age_range
    df = df[df["age"].between(lo, hi)].copy()

    df["gender"] = df["gender"].apply(_normalize_code).map(GENDER_CODES)
    df["parenthood"] = df["parenthood"].apply(_normalize_code).map(PARENTHOOD_CODES)
    df["marital"] = df["marital"].apply(marital_to_single)
    df = df.dropna(subset=["gender", "parenthood", "marital"])

    for c in ["gender", "parenthood", "marital"]:
        df[c] = df[c].astype(int)
    df["age"] = df["age"].astype(float)

    if verbose:
        print(f"[filter] respondents kept: {len(df):,} of {n_start:,}")
    return df[["respondent_id"] + DEMOGRAPHIC_COLS].reset_index(drop=True)


def filter_moments(df_moments: pd.DataFrame, df_demo: pd.DataFrame,
                   max_sentences: Optional[int] = MAX_SENTENCES,
                   verbose: bool = True) -> pd.DataFrame:
    """
    Keep moments written by surviving respondents, optionally single-sentence only.

    Args:
        df_moments: Validated moments table
        df_demo: Filtered demographics table
        max_sentences: Upper bound on sentence_count, or None for no bound

    Returns:
        pd.DataFrame: Filtered moments in their original order
    """
    df = validate_moments(df_moments)
    n_start = len(df)

    df = df[df["respondent_id"].isin(set(df_demo["respondent_id"]))]
    if max_sentences is not None:
        counts = pd.to_numeric(df["sentence_count"], errors="coerce").fillna(np.inf)
        df = df[counts <= max_sentences]

    if verbose:
        print(f"[filter] moments kept: {len(df):,} of {n_start:,}")
    return df.reset_index(drop=True)
