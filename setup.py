###############################################################################
# Copyright (c) 2024 - 2025 Advanced Micro Devices, Inc. All rights reserved.
#
# See LICENSE for license information.
###############################################################################

from setuptools import setup, find_packages


setup(
    name='CommLens',
    version='0.1.0',
    packages=find_packages(where='.', include=['CommLens', 'CommLens.*']),
    package_dir={"": "."},
    install_requires=[
        'pandas',
        'numpy',
        'tqdm',
        'backports.strenum;python_version<"3.11"',
        'openpyxl',
    ],
    extras_require={
        'test': ['pytest'],
    },
    description="A library for analysing the per-call bandwidth of collective operations from collective profiler dumps",
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.8',
    entry_points={
        "console_scripts": [
            "CommLens_bandwidth = CommLens.Reporting.generate_bandwidth_report:main",
            "CommLens_get_bins = CommLens.Reporting.generate_bins_report:main",
        ],
    },
)
