from db import init_db, get_session
from models import Vehicle, utcnow

# campus tricycle fleet
FLEET = [
    dict(id=1, name="Tricycle #001", lat=6.89277, lng=3.71827, battery=92, color="Blue",
         driver="John Okafor", phone="+234 803 123 4567", speed=15, rating=4.8, trips_today=12),
    dict(id=2, name="Tricycle #002", lat=6.89509, lng=3.72761, battery=78, color="Red",
         driver="Michael Obi", phone="+234 803 234 5678", speed=12, rating=4.6, trips_today=8),
    dict(id=3, name="Tricycle #003", lat=6.89286, lng=3.72351, battery=65, color="Green",
         driver="Sunday Eze", phone="+234 803 345 6789", speed=10, rating=4.9, trips_today=15),
    dict(id=4, name="Tricycle #004", lat=6.88884, lng=3.72281, battery=85, color="Yellow",
         driver="Chidi Nwosu", phone="+234 803 456 7890", speed=14, rating=4.7, trips_today=10),
    dict(id=5, name="Tricycle #005", lat=6.89069, lng=3.72622, battery=45, color="Blue",
         driver="Emeka Okonkwo", phone="+234 803 567 8901", speed=11, rating=4.5, trips_today=6),
    dict(id=6, name="Tricycle #006", lat=6.89471, lng=3.72230, battery=88, color="Red",
         driver="Ifeanyi Ade", phone="+234 803 678 9012", speed=13, rating=4.8, trips_today=14),
]


def seed():
    init_db()
    with get_session() as session:
        added = 0
        for row in FLEET:
            if session.get(Vehicle, row["id"]) is not None:
                continue
            session.add(Vehicle(type="tricycle", max_capacity=4, last_update=utcnow(), **row))
            added += 1
        session.commit()
    print(f"Seeded {added} vehicles")


if __name__ == "__main__":
    seed()
