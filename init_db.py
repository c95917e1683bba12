import asyncio
from database import init_db as create_tables
import models  # noqa: F401  registers the tables on Base.metadata


async def init_db():
    await create_tables()
    print("Database initialized successfully.")

if __name__ == "__main__":
    asyncio.run(init_db())
