"""
Database Registry
=================
Consolidates the candidate databases named in systematic review
extraction exports:
- Header normalization and database name canonicalization
- Per-source reconciliation of repeated database mentions
- Merge of both search strategies and contact registry enrichment
- Summary statistics for the report
"""

__version__ = "1.0.0"

# Module information
MODULES = {
    'core': 'Normalization, reconciliation, merge and enrichment stages',
    'api': 'HTTP endpoints to build and export registries',
}
