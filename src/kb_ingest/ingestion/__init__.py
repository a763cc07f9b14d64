"""
Ingestion — text extraction, chunking, and embedding of source documents.

This module holds the building blocks the document pipeline composes:
storage access, per-mime-type text extraction, paragraph-aware chunking,
and batched embedding with retry.
"""
