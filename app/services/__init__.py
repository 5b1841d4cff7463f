"""
Services package
- sync_service.py (SyncService: remote feed -> store)
- query_service.py (QueryService: filters -> shaped results)
"""
