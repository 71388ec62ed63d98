# Main orchestration script - ties together all the pipeline stages
import argparse
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

import pandas as pd

from .config import *
from .data_cleaning import load_moments, load_demographics, filter_demographics, filter_moments
from .text_normalizer import NormalizationResult, normalize_corpus
from .term_matrix import DocumentTermMatrix, build_document_term_matrix
from .topic_model import LDAConfig, TopicModelResult, fit_lda
from .aggregation import RespondentFeatures, aggregate_respondents, segment_feature_matrix
from .clustering import SegmentResult, elbow_diagnostics, fit_segments
from .reporting import export_results


@dataclass
class PipelineResult:
    documents: pd.DataFrame            # moments that survived normalization
    normalization: NormalizationResult
    dtm: DocumentTermMatrix
    topics: TopicModelResult
    features: RespondentFeatures
    X: pd.DataFrame                    # clustering input
    elbow: pd.DataFrame
    segments: SegmentResult


def run_pipeline(df_moments: pd.DataFrame, df_demo: pd.DataFrame,
                 lda_config: Optional[LDAConfig] = None, n_clusters: int = N_CLUSTERS,
                 k_max: int = K_MAX, algorithm: str = KMEANS_ALGORITHM,
                 kmeans_max_iter: int = KMEANS_MAX_ITER, kmeans_n_init: int = KMEANS_N_INIT,
                 seed: int = SEED, scale: bool = SCALE_FEATURES, convergence_check=None,
                 cancel_event=None, verbose: bool = True) -> PipelineResult:
    """
    Run normalize -> term matrix -> LDA -> respondent features -> elbow -> K-means.

    Inputs must already be filtered (see data_cleaning). Each stage produces a
    new artifact and leaves the previous one untouched.

    Args:
        df_moments: moment_id, respondent_id, raw_text (+ sentence_count, category_label)
        df_demo: respondent_id plus demographic columns
        lda_config: Sampler settings
        n_clusters: Final k, chosen by the analyst from the elbow curve

    Returns:
        PipelineResult with every intermediate artifact
    """
    lda_config = (lda_config or LDAConfig()).validate()

    if verbose:
        print("Step 1: Normalizing text...")
    norm = normalize_corpus(df_moments["raw_text"].astype(str).tolist(), verbose=verbose)
    df_docs = df_moments.iloc[norm.kept].reset_index(drop=True).copy()
    df_docs["normalized_text"] = norm.documents

    if verbose:
        print("\nStep 2: Building document-term matrix...")
    dtm = build_document_term_matrix(df_docs["normalized_text"], verbose=verbose)

    if verbose:
        print("\nStep 3: Fitting topic model...")
    topics = fit_lda(dtm, lda_config, convergence_check=convergence_check,
                     cancel_event=cancel_event, verbose=verbose)

    if verbose:
        print("\nStep 4: Aggregating respondents...")
    features = aggregate_respondents(topics.gamma, df_docs["respondent_id"], df_demo, verbose=verbose)
    X = segment_feature_matrix(features, scale=scale)

    if verbose:
        print("\nStep 5: Segmenting respondents...")
    elbow = elbow_diagnostics(X, k_max=k_max, algorithm=algorithm, max_iter=kmeans_max_iter,
                              n_init=kmeans_n_init, seed=seed, n_jobs=lda_config.n_jobs,
                              verbose=verbose)
    segments = fit_segments(X, k=n_clusters, algorithm=algorithm, max_iter=kmeans_max_iter,
                            n_init=kmeans_n_init, seed=seed, n_jobs=lda_config.n_jobs,
                            cancel_event=cancel_event, verbose=verbose)

    return PipelineResult(documents=df_docs, normalization=norm, dtm=dtm, topics=topics,
                          features=features, X=X, elbow=elbow, segments=segments)


def run_comprehensive_analysis(moments_csv: str = MOMENTS_CSV, demographics_csv: str = DEMOGRAPHICS_CSV,
                               output_dir: str = OUTPUT_DIR, **kwargs) -> Dict[str, str]:
    """Load, filter, run the pipeline and write every output file."""
    print("=" * 60)
    print("HAPPY MOMENT TOPIC SEGMENTATION")
    print("=" * 60)
    print(f"Analysis started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"Random seed: {kwargs.get('seed', SEED)}")
    print()

    df_demo = filter_demographics(load_demographics(demographics_csv))
    df_moments = filter_moments(load_moments(moments_csv), df_demo)
    print()

    res = run_pipeline(df_moments, df_demo, **kwargs)

    print("\nStep 6: Writing outputs...")
    paths = export_results(output_dir, res.topics, res.features, res.elbow, res.segments, res.X,
                           canonical_map=res.normalization.canonical_map)

    print("\n" + "=" * 60)
    print("ANALYSIS COMPLETE!")
    print("=" * 60)
    print(f"Analysis completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"Documents modeled: {len(res.documents):,} (dropped {res.normalization.n_dropped:,})")
    print(f"Respondents segmented: {len(res.X):,} into {res.segments.k} clusters")
    return paths


def main(argv=None):
    parser = argparse.ArgumentParser(description="Segment survey respondents by happy-moment topics.")
    parser.add_argument("--moments", default=MOMENTS_CSV)
    parser.add_argument("--demographics", default=DEMOGRAPHICS_CSV)
    parser.add_argument("--out", default=OUTPUT_DIR)
    parser.add_argument("--topics", type=int, default=N_TOPICS)
    parser.add_argument("--k", type=int, default=N_CLUSTERS, help="final number of clusters")
    parser.add_argument("--k-max", type=int, default=K_MAX)
    parser.add_argument("--burn-in", type=int, default=BURN_IN)
    parser.add_argument("--iter", type=int, default=TOTAL_ITER, help="total Gibbs iterations incl. burn-in")
    parser.add_argument("--thin", type=int, default=THIN)
    parser.add_argument("--starts", type=int, default=N_STARTS)
    parser.add_argument("--jobs", type=int, default=N_JOBS)
    parser.add_argument("--seed", type=int, default=SEED)
    args = parser.parse_args(argv)

    lda_config = LDAConfig(n_topics=args.topics, burn_in=args.burn_in, total_iter=args.iter,
                           thin=args.thin, n_starts=args.starts, n_jobs=args.jobs)
    run_comprehensive_analysis(args.moments, args.demographics, args.out, lda_config=lda_config,
                               n_clusters=args.k, k_max=args.k_max, seed=args.seed)


if __name__ == "__main__":
    main()
