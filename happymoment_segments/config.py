# Configuration constants for the happy-moment segmentation pipeline
from sklearn.feature_extraction.text import ENGLISH_STOP_WORDS

# ======================= CONFIG =======================
MOMENTS_CSV = "data/cleaned_hm.csv"
DEMOGRAPHICS_CSV = "data/demographic.csv"
OUTPUT_DIR = "outputs"    # tables, figures and personas
SEED = 42

# Respondent filters (applied before the core sees data)
COUNTRY = "USA"
AGE_RANGE = (18, 85)      # inclusive
MAX_SENTENCES = 1         # keep single-sentence moments; None keeps all

# Text normalization
MIN_TOKENS = 2            # documents with fewer surviving tokens are dropped
STOPWORDS = frozenset(ENGLISH_STOP_WORDS)

# Filler words that never become a canonical form. Applied only when the
# stem -> canonical reference is built, not when documents are stemmed.
HAPPY_MOMENT_FILLER = frozenset({
    "happy", "happier", "happiest", "happiness", "day", "days", "got", "get",
    "went", "today", "yesterday", "time", "times", "made", "make", "makes",
    "really", "lot", "week", "weeks", "month", "months", "year", "years",
    "ago", "just", "able", "feel", "felt", "moment", "moments",
})
REFERENCE_STOPWORDS = STOPWORDS | HAPPY_MOMENT_FILLER

# Topic model (LDA, collapsed Gibbs)
# Sampling cost grows with TOTAL_ITER x tokens x N_STARTS. A sweep visits every
# token in Python (tens of microseconds each), so the full US HappyDB corpus takes
# hours per fit at these settings; lower the budget or raise N_JOBS for exploration.
N_TOPICS = 8
ALPHA = None              # None -> 50 / N_TOPICS
ETA = 0.1
BURN_IN = 1000
TOTAL_ITER = 2000         # includes burn-in
THIN = 250
N_STARTS = 5
CHAIN_SEEDS = (2003, 5, 63, 100001, 765)
SAMPLE_SELECTION = "best"   # "best" sample by log-likelihood, or "mean" of samples
N_JOBS = 1                # joblib workers for chains / restarts

# Clustering
K_MAX = 10                # elbow diagnostics over k = 1..K_MAX
N_CLUSTERS = 6            # chosen from the elbow plot
KMEANS_ALGORITHM = "hartigan-wong"
KMEANS_MAX_ITER = 50
KMEANS_N_INIT = 25
SCALE_FEATURES = False

# Feature definitions (gender deliberately excluded from segmentation)
DEMOGRAPHIC_COLS = ["age", "gender", "parenthood", "marital"]
SEGMENT_FEATURES = ["age", "parenthood", "marital"]

# Post-hoc persona names, cluster id -> label. Filled in after reviewing profiles.
CLUSTER_LABELS = {}

# Reporting
TOP_N_TERMS = 10
DPI = 150
