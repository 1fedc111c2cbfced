"""Database Package: the declarative Base shared by models and migrations."""
