"""Run the subscription expiry sweep once. Meant to be invoked by an external cron."""
import logging

from mealplan.database import SessionLocal
from mealplan.services.expiry_sweep import expire_subscriptions


def main() -> int:
    db = SessionLocal()
    try:
        updated = expire_subscriptions(db)
    finally:
        db.close()
    print(f"Expired {updated} subscription(s)")
    return updated


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    main()
