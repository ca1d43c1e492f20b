import os


class DatabaseConfig:
    def __init__(self):
        self.connection_string = os.getenv("DATABASE_URL", "")
        self.create_tables = os.getenv("DB_CREATE_TABLES", "false").lower() == "true"

    @property
    def async_connection_string(self) -> str:
        if self.connection_string.startswith("sqlite"):
            return self.connection_string
        if self.connection_string.startswith("postgresql+asyncpg"):
            return self.connection_string
        return self.connection_string.replace("postgresql", "postgres").replace(
            "postgres", "postgresql+asyncpg", 1
        )

    @property
    def is_sqlite(self) -> bool:
        return self.connection_string.startswith("sqlite")


db_config = DatabaseConfig()
