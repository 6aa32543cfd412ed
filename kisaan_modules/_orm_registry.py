"""
Module ORM Registry (``kisaan_modules._orm_registry``).

Ensure every kernel and module ORM model is imported so that
``Base.metadata`` contains their tables before ``create_tables()`` runs.

Architecture position
---------------------
**Modules layer** -- utility.  Imported lazily by
``kisaan_kernel.db.engine.create_tables``.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``kisaan_modules.*.orm`` module.

    This function is idempotent -- repeated calls are harmless.
    """
    import kisaan_kernel.models  # noqa: F401
    import kisaan_modules.bulk_restock.orm  # noqa: F401
    import kisaan_modules.catalog_order.orm  # noqa: F401
    import kisaan_modules.fulfillment.orm  # noqa: F401
