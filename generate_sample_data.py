import random
from datetime import date, timedelta
from decimal import Decimal

from expense_log import DEFAULT_CATEGORIES, create_app, store
from expense_log.csv_import import ExpenseRecord


DESCRIPTIONS = {
    "Food & Dining": ["Coffee", "Groceries", "Lunch", "Dinner out"],
    "Transportation": ["Gas", "Bus pass", "Parking"],
    "Shopping": ["Clothes", "Books", "Household items"],
    "Entertainment": ["Cinema", "Concert tickets", "Streaming"],
    "Bills & Utilities": ["Electricity", "Internet", "Phone"],
    "Healthcare": ["Pharmacy", "Dentist"],
    "Education": ["Online course", "Textbooks"],
    "Travel": ["Hotel", "Train tickets"],
    "Other": ["Gift", "Donation"],
}


def main():
    app = create_app()
    with app.app_context():
        app.init_db()
        db = app.get_db()

        start = date.today() - timedelta(days=365)
        records = []
        for i in range(120):
            category = random.choice(DEFAULT_CATEGORIES)
            records.append(
                ExpenseRecord(
                    description=random.choice(DESCRIPTIONS[category]),
                    amount=Decimal(str(round(random.uniform(3, 250), 2))),
                    category=category,
                    date=start + timedelta(days=i * 3),
                )
            )
        store.insert_many(db, records)
    print(f"Sample data generated: {len(records)} expenses.")


if __name__ == "__main__":
    main()
