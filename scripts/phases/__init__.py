"""Phase orchestration scripts for the Swiss railway network build.

 - ingest_data.py: Phase 1 - download every raw input
 - build_network.py: Phase 2 - build stations + the three edge encodings + artifacts
"""
