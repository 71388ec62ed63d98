# Export tables, diagnostic figures and persona narratives
import os
from typing import Dict, Optional

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from .config import *
from .aggregation import RespondentFeatures
from .clustering import SegmentResult
from .text_normalizer import canonical_table
from .topic_model import TopicModelResult


def _out(output_dir: str, name: str) -> str:
    os.makedirs(output_dir, exist_ok=True)
    return os.path.join(output_dir, name)


def plot_elbow_curve(curve: pd.DataFrame, path: str, title: str = "K-means elbow diagnostics"):
    """Plot within- and between-cluster SS by k; the data is saved next to the figure."""
    curve.to_csv(path.replace(".png", ".csv"), index=False)

    fig, ax1 = plt.subplots(figsize=(7, 4))
    ax1.plot(curve["k"], curve["total_within_ss"], marker="o", label="total within SS")
    ax1.set_xlabel("Number of Clusters (k)")
    ax1.set_ylabel("Total within-cluster SS")
    ax2 = ax1.twinx()
    ax2.plot(curve["k"], curve["between_ss"], marker="s", color="tab:orange", label="between SS")
    ax2.set_ylabel("Between-cluster SS")
    ax1.set_title(title)
    ax1.grid(alpha=0.3)
    fig.tight_layout()
    fig.savefig(path, dpi=DPI)
    plt.close(fig)


def plot_centroid_heatmap(segments: SegmentResult, path: str, labels: Optional[Dict[int, str]] = None):
    """Heatmap of cluster centroids (rows) over features (columns)."""
    table = segments.cluster_table().set_index("cluster_id").drop(columns="member_count")
    if labels:
        table.index = [labels.get(int(c), f"Cluster {c}") for c in table.index]

    plt.figure(figsize=(max(8, 0.7 * table.shape[1]), 0.6 * table.shape[0] + 2))
    sns.heatmap(table, annot=True, fmt=".2f", cmap="YlOrRd", cbar_kws={"label": "Centroid value"})
    plt.title(f"Segment centroids (k={segments.k})")
    plt.tight_layout()
    plt.savefig(path, dpi=DPI)
    plt.close()


def create_cluster_profiles(features: RespondentFeatures, X: pd.DataFrame, segments: SegmentResult,
                            labels: Optional[Dict[int, str]] = None) -> pd.DataFrame:
    """
    Per-cluster size, mean demographics, mean topic weights and dominant-topic shares.

    Args:
        features: Aggregated respondent features
        X: Clustering input, indexed by respondent_id (row order matches segments.labels)
        segments: Final clustering
        labels: Optional cluster id -> persona name

    Returns:
        DataFrame with one row per cluster
    """
    labels = labels if labels is not None else CLUSTER_LABELS
    df = features.to_frame().set_index("respondent_id").loc[X.index]
    df["cluster"] = segments.labels

    k_topics = features.n_topics
    profiles = []
    for cid in range(segments.k):
        g = df[df["cluster"] == cid]
        rec = {"cluster": cid, "label": labels.get(cid, ""), "n_respondents": int(len(g))}
        for col in features.demographics.columns:
            rec[f"{col}_mean"] = round(float(pd.to_numeric(g[col], errors="coerce").mean()), 3) if len(g) else np.nan
        for t in range(k_topics):
            rec[f"gamma_{t}_mean"] = round(float(g[f"gamma_{t}"].mean()), 4) if len(g) else np.nan
        shares = g["dominant_topic"].value_counts(normalize=True)
        rec["top_topic"] = int(shares.index[0]) if len(shares) else -1
        rec["top_topic_pct"] = round(float(shares.iloc[0]) * 100, 1) if len(shares) else 0.0
        profiles.append(rec)

    return pd.DataFrame(profiles)


def create_personas_narrative(profiles: pd.DataFrame, top_terms: pd.DataFrame, path: str):
    """Write plain-text persona blurbs, one per cluster."""

    def _terms(topic_id: int, n: int = 5) -> str:
        words = top_terms[top_terms["topic_id"] == topic_id].sort_values("rank")["term"].head(n)
        return ", ".join(words) if len(words) else "—"

    lines = []
    for _, r in profiles.iterrows():
        name = r["label"] or f"Cluster {int(r['cluster'])}"
        lines.append(
            f"{name} — {int(r['n_respondents'])} respondents\n"
            f"- Age: {r.get('age_mean', '—')}; parent share: {r.get('parenthood_mean', '—')}; "
            f"single share: {r.get('marital_mean', '—')}\n"
            f"- Dominant topic: {int(r['top_topic'])} ({r['top_topic_pct']}% of members)\n"
            f"- Topic words: {_terms(int(r['top_topic']))}\n"
        )

    with open(path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines))


def export_results(output_dir: str, topics: TopicModelResult, features: RespondentFeatures,
                   curve: pd.DataFrame, segments: SegmentResult, X: pd.DataFrame,
                   canonical_map=None, labels: Optional[Dict[int, str]] = None,
                   top_n: int = TOP_N_TERMS) -> Dict[str, str]:
    """
    Write every output table and figure; returns name -> path.
    """
    paths = {
        "beta": _out(output_dir, "topic_term_beta.csv"),
        "top_terms": _out(output_dir, "topic_top_terms.csv"),
        "respondents": _out(output_dir, "respondent_features.csv"),
        "elbow": _out(output_dir, "kmeans_elbow.png"),
        "clusters": _out(output_dir, "cluster_centroids.csv"),
        "assignments": _out(output_dir, "respondent_clusters.csv"),
        "profiles": _out(output_dir, "cluster_profiles.csv"),
        "heatmap": _out(output_dir, "cluster_centroids_heatmap.png"),
        "personas": _out(output_dir, "personas.txt"),
    }

    topics.beta_table().to_csv(paths["beta"], index=False)
    top = topics.top_terms(top_n)
    top.to_csv(paths["top_terms"], index=False)
    features.to_frame().to_csv(paths["respondents"], index=False)

    plot_elbow_curve(curve, paths["elbow"])

    segments.cluster_table().to_csv(paths["clusters"], index=False)
    pd.DataFrame({"respondent_id": X.index, "cluster_id": segments.labels}).to_csv(
        paths["assignments"], index=False)

    profiles = create_cluster_profiles(features, X, segments, labels)
    profiles.to_csv(paths["profiles"], index=False)
    plot_centroid_heatmap(segments, paths["heatmap"], labels or CLUSTER_LABELS)
    create_personas_narrative(profiles, top, paths["personas"])

    if canonical_map is not None:
        paths["canonical"] = _out(output_dir, "stem_canonical_map.csv")
        pd.DataFrame(canonical_table(canonical_map), columns=["stem", "canonical"]).to_csv(
            paths["canonical"], index=False)

    print(f"[report] wrote {len(paths)} files to {output_dir}/")
    return paths
