"""
Dynamic CRM record to Parquet writer.
Flattens schema-less JSON records, infers one columnar schema per batch and
persists the result to GCS together with a schema.json side-car document.
"""

__version__ = '1.0.0'
