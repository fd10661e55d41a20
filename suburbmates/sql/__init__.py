"""
Parameterized PostgreSQL queries for the quality scoring service.

- business_queries: business selection, related-record subqueries, score
  write-back and audit log insert
"""
