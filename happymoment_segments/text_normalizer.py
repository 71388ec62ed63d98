# Text normalization: cleaning, stemming and stem completion of happy moments
import re
from collections import Counter
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from nltk.stem.porter import PorterStemmer

from .config import *

_PUNCT_RE = re.compile(r"[^\w\s]|_")
_SPACE_RE = re.compile(r"\s+")

_stemmer = PorterStemmer()


@dataclass(frozen=True)
class NormalizationResult:
    """Output of normalize_corpus."""
    normalized: List[str]          # parallel to the input, degenerate docs included
    kept: List[int]                # input positions of documents with >= min_tokens
    canonical_map: Mapping[str, str]
    n_dropped: int = 0
    documents: List[str] = field(default_factory=list)   # normalized text of kept docs only


def clean_text(text: str) -> str:
    """Lowercase, strip punctuation and digits, collapse whitespace."""
    text = text.lower()
    text = _PUNCT_RE.sub("", text)
    # superscripts, fractions and non-Latin numerals are numeric but not \d
    text = "".join(ch for ch in text if not ch.isnumeric())
    return _SPACE_RE.sub(" ", text).strip()


def tokenize(text: str, stopwords: Iterable[str] = STOPWORDS) -> List[str]:
    """Clean a raw moment and return its non-stopword tokens."""
    stop = stopwords if isinstance(stopwords, (set, frozenset)) else set(stopwords)
    return [t for t in clean_text(text).split(" ") if t and t not in stop]


def stem(token: str) -> str:
    return _stemmer.stem(token)


def build_canonical_map(token_docs: Sequence[Sequence[str]],
                        reference_stopwords: Iterable[str] = REFERENCE_STOPWORDS) -> Mapping[str, str]:
    """
    Map each stem to the most frequent surface token that produced it.

    Tokens in reference_stopwords never become a canonical form. Ties go to
    the token encountered first in corpus order.

    Args:
        token_docs: Tokenized documents, in corpus order
        reference_stopwords: Tokens excluded from the candidate pool

    Returns:
        Read-only mapping stem -> canonical token
    """
    exclude = set(reference_stopwords)
    candidates: Dict[str, Counter] = {}

    for tokens in token_docs:
        for tok in tokens:
            if tok in exclude:
                continue
            candidates.setdefault(stem(tok), Counter())[tok] += 1

    # Counter keeps insertion order and max() returns the first maximum
    canonical = {s: max(c.items(), key=lambda kv: kv[1])[0] for s, c in candidates.items()}
    return MappingProxyType(canonical)


def rewrite_tokens(tokens: Sequence[str], canonical_map: Mapping[str, str]) -> List[str]:
    """Replace each token by its stem's canonical form, dropping stems with none."""
    out = []
    for tok in tokens:
        form = canonical_map.get(stem(tok))
        if form is not None:
            out.append(form)
    return out


def normalize_corpus(texts: Sequence[str], stopwords: Iterable[str] = STOPWORDS,
                     reference_stopwords: Iterable[str] = REFERENCE_STOPWORDS,
                     min_tokens: int = MIN_TOKENS, verbose: bool = True) -> NormalizationResult:
    """
    Normalize a corpus in two passes.

    Pass 1 tokenizes every document and freezes the stem -> canonical map
    from the whole corpus. Pass 2 rewrites each document against that map.
    Documents left with fewer than min_tokens tokens are excluded from
    `kept` and counted in `n_dropped`.

    Args:
        texts: Raw moment strings
        stopwords: Tokens removed from documents
        reference_stopwords: Tokens never used as a canonical form
        min_tokens: Minimum surviving tokens for a document to be kept

    Returns:
        NormalizationResult
    """
    stop = frozenset(stopwords)
    token_docs = [tokenize(t, stop) for t in texts]

    canonical_map = build_canonical_map(token_docs, reference_stopwords)

    normalized: List[str] = []
    kept: List[int] = []
    for i, tokens in enumerate(token_docs):
        rewritten = rewrite_tokens(tokens, canonical_map)
        normalized.append(" ".join(rewritten))
        if len(rewritten) >= min_tokens:
            kept.append(i)

    n_dropped = len(normalized) - len(kept)
    if verbose:
        print(f"[normalize] {len(texts):,} documents, {len(canonical_map):,} stems")
        print(f"[normalize] dropped {n_dropped:,} degenerate documents (< {min_tokens} tokens)")

    return NormalizationResult(
        normalized=normalized,
        kept=kept,
        canonical_map=canonical_map,
        n_dropped=n_dropped,
        documents=[normalized[i] for i in kept],
    )


def canonical_table(canonical_map: Mapping[str, str]) -> List[Tuple[str, str]]:
    """(stem, canonical) pairs sorted by stem, for inspection."""
    return sorted(canonical_map.items())
