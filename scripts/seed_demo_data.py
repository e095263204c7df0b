from datetime import datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select

from boxoffice.infrastructure.db.models import Base, Event, Show
from boxoffice.infrastructure.db.session import engine, get_db_session

SEATS_PER_SCREEN = 96


def _dt(days_from_now: int, hour: int, minute: int) -> datetime:
    ist = timezone(timedelta(hours=5, minutes=30))
    now_ist = datetime.now(ist)
    target = now_ist + timedelta(days=days_from_now)
    return target.replace(hour=hour, minute=minute, second=0, microsecond=0)


def seed_events(db) -> None:
    event_defs = [
        {
            "title": "Interstellar (Re-release)",
            "category": "movies",
            "genre": "Science Fiction",
            "duration": "169 min",
            "venue": "PVR Select Citywalk",
            "city": "New Delhi",
            "shows": [
                {"date_time": _dt(days_from_now=1, hour=18, minute=30), "price": "250"},
                {"date_time": _dt(days_from_now=2, hour=21, minute=0), "price": "300"},
            ],
        },
        {
            "title": "Sunidhi Chauhan Live Concert",
            "category": "concerts",
            "genre": "Bollywood",
            "duration": "180 min",
            "venue": "Indira Gandhi Arena",
            "city": "New Delhi",
            "shows": [
                {"date_time": _dt(days_from_now=10, hour=19, minute=30), "price": "1800"},
            ],
        },
    ]

    for item in event_defs:
        event = db.execute(
            select(Event).where(Event.title == item["title"])
        ).scalar_one_or_none()
        if event:
            event.category = item["category"]
            event.genre = item["genre"]
            event.duration = item["duration"]
            event.venue = item["venue"]
            event.city = item["city"]
        else:
            event = Event(
                title=item["title"],
                category=item["category"],
                genre=item["genre"],
                duration=item["duration"],
                venue=item["venue"],
                city=item["city"],
            )
            db.add(event)
            db.flush()

        for show_def in item["shows"]:
            existing = db.execute(
                select(Show)
                .where(Show.event_id == event.id)
                .where(Show.show_date_time == show_def["date_time"])
            ).scalar_one_or_none()
            if existing:
                existing.ticket_price = Decimal(show_def["price"])
                continue

            db.add(
                Show(
                    event_id=event.id,
                    show_date_time=show_def["date_time"],
                    ticket_price=Decimal(show_def["price"]),
                    total_seats=SEATS_PER_SCREEN,
                    occupied_seats={},
                )
            )


def main() -> None:
    Base.metadata.create_all(bind=engine)
    with get_db_session() as db:
        seed_events(db)
    print("Seed complete: demo movie and concert shows added.")


if __name__ == "__main__":
    main()
