# Document-term count matrix over normalized moments
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
import scipy.sparse as sp
from sklearn.feature_extraction.text import CountVectorizer


@dataclass(frozen=True)
class DocumentTermMatrix:
    counts: sp.csr_matrix          # n_docs x n_terms, integer counts
    vocabulary: List[str]          # column order

    @property
    def shape(self):
        return self.counts.shape

    def row_sums(self) -> np.ndarray:
        return np.asarray(self.counts.sum(axis=1)).ravel()

    def column(self, term: str) -> np.ndarray:
        """Dense count column for one term."""
        j = self.vocabulary.index(term)
        return self.counts[:, j].toarray().ravel()


def build_document_term_matrix(documents: Sequence[str], verbose: bool = True) -> DocumentTermMatrix:
    """
    Count whitespace-delimited terms per document.

    Columns are the sorted vocabulary, so the same corpus always yields the
    same column order. Empty documents become all-zero rows; an input with no
    terms at all gives an n_docs x 0 matrix rather than an error.

    Args:
        documents: Normalized documents (space-separated canonical tokens)

    Returns:
        DocumentTermMatrix
    """
    docs = list(documents)
    if not any(d.split() for d in docs):
        if verbose:
            print(f"[dtm] {len(docs):,} documents, empty vocabulary")
        return DocumentTermMatrix(sp.csr_matrix((len(docs), 0), dtype=np.int64), [])

    vectorizer = CountVectorizer(
        tokenizer=str.split,
        token_pattern=None,
        lowercase=False,
        dtype=np.int64,
    )
    counts = vectorizer.fit_transform(docs).tocsr()
    vocabulary = vectorizer.get_feature_names_out().tolist()

    if verbose:
        print(f"[dtm] {counts.shape[0]:,} documents x {counts.shape[1]:,} terms, {int(counts.sum()):,} tokens")
    return DocumentTermMatrix(counts, vocabulary)
