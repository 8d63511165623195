from .mongo import close_client, get_client, get_database, get_transaction

__all__ = ["get_client", "get_database", "get_transaction", "close_client"]
