#!/usr/bin/env python3

from setuptools import setup, find_packages

setup(
    name='bcbioSingleCell',
    version='0.5.0',
    description='Import bcbio-nextgen single-cell RNA-seq runs into AnnData objects',
    author='bcbio',
    author_email='',
    url='https://github.com/hbc/bcbioSingleCell',
    license='MIT',
    packages=find_packages(exclude=['tests', 'tests.*']),
    include_package_data=True,
    entry_points={
        'console_scripts': [
            'bcbioSingleCell=bcbio_single_cell.cli:main',
        ],
    },
    install_requires=[
        'click',
        'pyyaml',
        'pandas',
        'numpy',
        'scipy',
        'scanpy',
        'anndata',
        'requests',
        'gffutils',
        'openpyxl',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    python_requires='>=3.9',
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Science/Research',
        'License :: OSI Approved :: MIT License',
        'Natural Language :: English',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Topic :: Scientific/Engineering :: Bio-Informatics',
    ],
    keywords='single-cell rna-seq bcbio anndata bioinformatics',
)
