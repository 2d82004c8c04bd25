import logging

from database import Store

logger = logging.getLogger(__name__)

SAMPLE_USERS = [
    {
        "name": "Ali Customer",
        "email": "ali@example.com",
        "password": "12345",
        "role": "customer",
    },
    {
        "name": "John Driver",
        "email": "john@example.com",
        "password": "abc123",
        "role": "driver",
        "available": True,
    },
    {
        "name": "Admin Boss",
        "email": "admin@example.com",
        "password": "admin123",
        "role": "admin",
    },
]


def seed_sample_data(store: Store) -> None:
    """Insert sample users and a sample ride into empty collections."""
    if store.count_documents("users") == 0:
        store.insert_many("users", SAMPLE_USERS)
        logger.info("Sample users inserted")

    if store.count_documents("rides") == 0:
        driver = store.find_one("users", {"role": "driver"})
        customer = store.find_one("users", {"role": "customer"})
        if driver and customer:
            store.insert_one("rides", {
                "customerId": customer["_id"],
                "driverId": driver["_id"],
                "pickup": "KL Sentral",
                "destination": "Mid Valley",
                "status": "pending",
            })
            logger.info("Sample ride inserted")
