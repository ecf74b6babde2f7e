#!/usr/bin/env python
"""
Distribution script for nmiSVM, a program to predict non-methylated
islands (NMIs) genome-wide with a k-mer spectrum SVM.
"""
from setuptools import setup

VERSION = "0.1.0"

SCRIPTS = ['scripts/train_and_predict.py',
           'scripts/train_spectrum_svm.py',
           'scripts/predict_spectrum_svm.py'
           ]

PACKAGES = ['nmiSVM',
            'nmiSVM.spectrum_core'
            ]

REQUIRES = ['numpy>=1.22',
            'scipy>=1.8',
            'scikit-learn>=1.2',
            'skops>=0.9',
            'joblib>=1.2',
            'pysam>=0.21',
            'pybedtools>=0.9'
            ]

setup(name='nmiSVM',
      version=VERSION,
      description='Genome-wide NMI prediction with a k-mer spectrum SVM',
      packages=PACKAGES,
      install_requires=REQUIRES,
      extras_require={'test': ['pytest>=7']},
      python_requires='>=3.10',
      scripts=SCRIPTS,
      license='GNU General Public License'
     )
