import motor.motor_asyncio

from config import MONGO_DB_NAME, MONGO_DB_URL


client = motor.motor_asyncio.AsyncIOMotorClient(MONGO_DB_URL, tz_aware=True)
db = client.get_database(MONGO_DB_NAME)

carts_collection = db.get_collection("Carts")
