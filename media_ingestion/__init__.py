"""
media_ingestion -- Transform-and-load reconciliation of relational exports.

Reads the relational JSON export (accounts, users, campaigns, strategies,
line items, media buys), rolls child data up into parents, transforms rows
into documents, and upserts them under keys derived from business ids so a
re-run never duplicates a record.

Architecture:
    media_ingestion/ is a top-level package. media_kernel and media_config
    never import from it, except media_kernel.db.engine registering the
    document models in create_tables().
"""
