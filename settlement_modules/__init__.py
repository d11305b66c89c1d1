"""
Settlement modules -- obligations, payments and due alerts.

Each module follows the same layout: ``models.py`` (frozen DTOs),
``orm.py`` (SQLAlchemy persistence), ``service.py`` / ``selector.py``
(orchestration over the pure engines in ``settlement_engines``).
"""
