"""Ingestion package: content source adapters and the ingestion pipeline.

Contains the pipeline that chunks, embeds and stores content, the web scraper and
crawler, the YouTube transcript fetcher, file text extractors, and a command-line
ingestor. See pipeline.py for the storage flow.
"""
