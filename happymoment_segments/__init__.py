# Happy-moment topic segmentation
# Text normalization -> LDA topics -> respondent segments

"""
Respondent segmentation from free-text happy moments, with a modular structure:

- data_cleaning.py: Loading, validation and demographic filtering of raw survey tables
- text_normalizer.py: Tokenizing, stemming and stem completion of moments
- term_matrix.py: Document-term count matrix
- topic_model.py: LDA fitted by collapsed Gibbs sampling
- aggregation.py: Per-respondent topic features merged with demographics
- clustering.py: Elbow diagnostics and K-means (Hartigan-Wong) segmentation
- reporting.py: Export tables, figures and persona narratives
- main.py: Orchestration script that ties everything together
"""

__version__ = "1.0.0"
__author__ = "Customer Analytics Team"
