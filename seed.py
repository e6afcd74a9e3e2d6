"""
Seed script -- populates the configured store with sample rides.

Run after migrations:
    python seed.py

Creates:
  - 1 sample company with corporate credit
  - 6 sample rides (mix of pending, accepted, in_progress, completed,
    cancelled) around Sao Paulo
"""

import asyncio
from decimal import Decimal

from ridecore.bootstrap import build_container
from ridecore.config import settings
from ridecore.domain.billing import Company
from ridecore.domain.entities import (
    Coords,
    DeliveryDetails,
    DriverSnapshot,
    PassengerSnapshot,
)
from ridecore.domain.enums import (
    DeliveryType,
    PaymentMethod,
    RideStatus,
    ServiceType,
)
from ridecore.infrastructure.companies import InMemoryCompanyDirectory

# Praca da Se (approx)
CENTER_LAT, CENTER_LNG = -23.5505, -46.6333


PASSENGERS = [
    PassengerSnapshot(id="p-ana", name="Ana Souza", phone="+5511900000001", rating=4.9),
    PassengerSnapshot(id="p-bruno", name="Bruno Lima", phone="+5511900000002", rating=4.7),
    PassengerSnapshot(id="p-carla", name="Carla Dias", phone="+5511900000003", rating=4.8),
]

DRIVER = DriverSnapshot(
    id="d-joao",
    name="Joao Pereira",
    phone="+5511911111111",
    rating=4.9,
    vehicle="Honda CG 160",
    plate="ABC1D23",
)

COMPANY = Company(
    id="acme",
    name="Acme Logistica",
    credit_limit=Decimal("500.00"),
    used_credit=Decimal("120.00"),
)

RIDES = [
    {
        "passenger": PASSENGERS[0],
        "origin": "Praca da Se",
        "destination": "Avenida Paulista, 1000",
        "origin_coords": Coords(CENTER_LAT, CENTER_LNG),
        "destination_coords": Coords(-23.5651, -46.6527),
        "service_type": ServiceType.MOTO_TAXI,
        "distance_km": 3.4,
        "duration": "12 min",
        "target": RideStatus.PENDING,
    },
    {
        "passenger": PASSENGERS[1],
        "origin": "Mercado Municipal",
        "destination": "Vila Madalena",
        "origin_coords": Coords(-23.5418, -46.6297),
        "destination_coords": Coords(-23.5535, -46.6911),
        "service_type": ServiceType.MOTO_TAXI,
        "distance_km": 7.9,
        "duration": "24 min",
        "target": RideStatus.ACCEPTED,
    },
    {
        "passenger": PASSENGERS[2],
        "origin": "Liberdade",
        "destination": "Bela Vista",
        "origin_coords": Coords(-23.5587, -46.6345),
        "destination_coords": Coords(-23.5614, -46.6460),
        "service_type": ServiceType.DELIVERY_BIKE,
        "distance_km": 1.6,
        "duration": "9 min",
        "delivery_details": DeliveryDetails(
            type=DeliveryType.SEND,
            contact_name="Daniel",
            contact_phone="+5511922222222",
            instructions="Portaria",
        ),
        "security_mode": True,
        "target": RideStatus.IN_PROGRESS,
    },
    {
        "passenger": PASSENGERS[0],
        "origin": "Avenida Paulista, 1000",
        "destination": "Pinheiros",
        "origin_coords": Coords(-23.5651, -46.6527),
        "destination_coords": Coords(-23.5674, -46.7020),
        "service_type": ServiceType.DELIVERY_MOTO,
        "distance_km": 5.2,
        "duration": "18 min",
        "delivery_details": DeliveryDetails(
            type=DeliveryType.RECEIVE,
            contact_name="Eduarda",
            contact_phone="+5511933333333",
        ),
        "payment_method": PaymentMethod.CORPORATE,
        "company": COMPANY,
        "target": RideStatus.COMPLETED,
    },
    {
        "passenger": PASSENGERS[1],
        "origin": "Vila Madalena",
        "destination": "Consolacao",
        "origin_coords": Coords(-23.5535, -46.6911),
        "destination_coords": Coords(-23.5530, -46.6610),
        "service_type": ServiceType.MOTO_TAXI,
        "distance_km": 3.1,
        "duration": "11 min",
        "payment_method": PaymentMethod.CASH,
        "target": RideStatus.COMPLETED,
    },
    {
        "passenger": PASSENGERS[2],
        "origin": "Bela Vista",
        "destination": "Moema",
        "origin_coords": Coords(-23.5614, -46.6460),
        "destination_coords": Coords(-23.6000, -46.6650),
        "service_type": ServiceType.MOTO_TAXI,
        "distance_km": 6.0,
        "duration": "20 min",
        "target": RideStatus.CANCELLED,
    },
]


async def seed():
    container = await build_container(
        settings, companies=InMemoryCompanyDirectory([COMPANY])
    )
    engine = container.engine
    try:
        if await engine.store.query_by_status(RideStatus.PENDING):
            print("Store already seeded. Skipping.")
            return

        counts: dict[RideStatus, int] = {}
        for entry in RIDES:
            data = dict(entry)
            target = data.pop("target")
            ride = await engine.create_ride(**data)

            # Walk the lifecycle up to the requested status
            if target in (
                RideStatus.ACCEPTED,
                RideStatus.IN_PROGRESS,
                RideStatus.COMPLETED,
            ):
                ride = await engine.accept(ride.id, DRIVER)
            if target in (RideStatus.IN_PROGRESS, RideStatus.COMPLETED):
                ride = await engine.start(ride.id)
            if target == RideStatus.COMPLETED:
                ride = await engine.complete(ride.id)
                ride = await engine.mark_paid(ride.id)
            if target == RideStatus.CANCELLED:
                ride = await engine.cancel(ride.id)

            counts[ride.status] = counts.get(ride.status, 0) + 1
            print(f"  {ride.id}  {ride.status.value:<12} {ride.price}")

        summary = ", ".join(f"{n} {s.value}" for s, n in counts.items())
        print(f"  Created {len(RIDES)} rides ({summary})")
        print("\nSeed complete!")
    finally:
        await container.aclose()


def main():
    print("Seeding ride store...")
    asyncio.run(seed())


if __name__ == "__main__":
    main()
