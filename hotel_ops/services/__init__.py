from .postgres import check_connection, create_pool

__all__ = ["check_connection", "create_pool"]
