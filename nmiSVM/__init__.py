"""nmiSVM: k-mer spectrum SVM classification of genomic windows."""

__version__ = "0.1.0"
