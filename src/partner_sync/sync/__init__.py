"""Partner -> local reconciliation -- models, repository, engine and service facade.

Provides SQLAlchemy models for external organizations and shadow client rows,
SyncRepository for async persistence, ReconciliationEngine for the idempotent
upsert run and its status state machine, and PartnerSyncService, the
ServiceResult-returning facade used by the HTTP layer and operator script.
"""
