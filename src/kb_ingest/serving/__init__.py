"""
Serving — FastAPI application for knowledge-base administration.

This module exposes document processing, consistency checks, stage
tagging, and stage-aware search over HTTP.
"""
