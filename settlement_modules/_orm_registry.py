"""
Module ORM Registry (``settlement_modules._orm_registry``).

Ensures every module-level SQLAlchemy model is imported so that
``Base.metadata`` contains its table before ``create_all()`` runs.
Scripts, entrypoints and ``tests/conftest.py`` all go through
``create_tables()`` which calls this first.
"""


def import_all_orm_models() -> None:
    """Import every ORM module. Idempotent."""
    # fmt: off
    import settlement_modules.obligations.orm  # noqa: F401
    import settlement_modules.payments.orm  # noqa: F401
    import settlement_modules.alerts.orm  # noqa: F401
    import settlement_services.orm  # noqa: F401
    # fmt: on
