"""
Read-only REST API over recorded scraper executions.
"""
