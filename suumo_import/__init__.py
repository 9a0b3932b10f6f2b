"""
SUUMO rental listing importer.

Crawls SUUMO search-result pages, parses buildings and rooms, upserts them
into DynamoDB without duplicating across crawls, and stores photos in S3.
"""

__version__ = "1.0.0"
