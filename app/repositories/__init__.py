"""
Repositories package

Each repository encapsulates database operations for a model and takes the
caller's session as first argument, so several repositories can share one
transaction:
- feature_repository.py (features, tags, availabilities, FTS index)
- synccheckpoint_repository.py
- apicache_repository.py

Usage:
    from repositories.feature_repository import FeatureRepository
    with store.session_scope() as session:
        FeatureRepository.count(session)
"""
