from access_engine.repositories.scoped_store import ScopedStore, SqlAlchemyScopedStore

__all__ = ["ScopedStore", "SqlAlchemyScopedStore"]
