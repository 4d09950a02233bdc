"""Data ingestion scripts for the Swiss railway network build.

This module contains individual scripts for downloading the raw inputs:
- 01_ingest_ist_daten.py: one operating day of the actual-data feed (Ist-Daten)
- 02_ingest_registries.py: service points, passenger frequency, line kilometrage
"""
