from motor.motor_asyncio import AsyncIOMotorClient

from config.env import MONGO_URI, MONGO_DB_NAME

if not MONGO_URI:
    raise RuntimeError("MONGODB_URI not set")

client = AsyncIOMotorClient(MONGO_URI)

# URI database wins; MONGO_DB_NAME covers URIs without a path
db = client.get_default_database(MONGO_DB_NAME)


def get_db():
    return db
