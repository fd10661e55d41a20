"""
SuburbMates quality scoring service.

FastAPI service that rates business-profile completeness for the SuburbMates
directory, aggregates directory-wide quality statistics and runs batch
rescoring jobs.

Subpackages:
    - api: FastAPI route handlers
    - core: Configuration, database, errors and dependencies
    - models: Pydantic schemas and enums
    - services: Scoring, analysis, statistics and collaborators
    - jobs: Batch rescoring job engine and job storage
    - sql: Parameterized SQL queries
"""

__version__ = "1.0.0"
