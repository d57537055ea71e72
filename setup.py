# setup.py
# Packages the dynamic Parquet sync writer: the library, the Cloud Run service and the CLI.

import setuptools

setuptools.setup(
    name='sync-parquet',
    version='1.0.0',
    description='Turn schema-less CRM JSON records into Parquet files with a schema.json side-car on GCS.',
    # Finds sync_parquet and sync_parquet.config; the tests stay out of the distribution.
    packages=setuptools.find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.9',
    install_requires=[
        'pyarrow>=14.0.0',
        'pandas>=2.0.0',
        'google-cloud-storage>=2.10.0',
        'google-cloud-logging>=3.5.0',
        'google-api-core>=2.11.0',
        'Flask>=3.0.0',
    ],
    extras_require={
        'test': ['pytest>=7.0.0', 'google-auth>=2.0.0'],
    },
    entry_points={
        'console_scripts': [
            'sync-parquet=sync_parquet.cli:main',
        ],
    },
)
