"""Deterministic seed data for the Vista Buena complex."""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional

from .registry import Repositories

LOGGER = logging.getLogger(__name__)

USERS = [
    {"name": "Ana Admin", "email": "ana.admin@vistabuena.com", "role": "admin", "apartment": "Office"},
    {"name": "Mario Mantenimiento", "email": "mario@vistabuena.com", "role": "maintenance", "apartment": "B-001"},
    {"name": "Lucia Residente", "email": "lucia@vistabuena.com", "role": "resident", "apartment": "A-101"},
    {"name": "Pedro Residente", "email": "pedro@vistabuena.com", "role": "resident", "apartment": "A-204"},
    {"name": "Sofia Residente", "email": "sofia@vistabuena.com", "role": "resident", "apartment": "C-302"},
]

RESOURCES = [
    {
        "name": "Pool",
        "type": "pool",
        "capacity": 20,
        "description": "Heated outdoor pool with lounge chairs.",
        "available": True,
        "image": "https://images.example.com/vista-buena/pool.jpg",
    },
    {
        "name": "Event Salon",
        "type": "salon",
        "capacity": 60,
        "description": "Party room with kitchen and sound system.",
        "available": True,
        "image": "https://images.example.com/vista-buena/salon.jpg",
    },
    {
        "name": "Gym",
        "type": "gym",
        "capacity": 12,
        "description": "Cardio and free weights area.",
        "available": True,
        "image": "https://images.example.com/vista-buena/gym.jpg",
    },
    {
        "name": "Tennis Court",
        "type": "court",
        "capacity": 4,
        "description": "Resurfacing in progress.",
        "available": False,
        "image": "https://images.example.com/vista-buena/court.jpg",
    },
]

INVENTORY = [
    {"name": "Pool chlorine", "category": "Cleaning", "quantity": 25, "unit": "kg"},
    {"name": "Light bulbs", "category": "Electrical", "quantity": 40, "unit": "units"},
    {"name": "Folding chairs", "category": "Furniture", "quantity": 80, "unit": "units"},
    {"name": "Floor detergent", "category": "Cleaning", "quantity": 6, "unit": "liters"},
]


async def seed(repos: Repositories, today: Optional[date] = None) -> dict[str, int]:
    """Populate empty collections with representative demo records.

    Existing users (matched by email), resources and inventory items (matched
    by name) are left alone, so running the seed twice does not duplicate
    anything. Returns how many records were created per kind.
    """

    today = today or date.today()
    created = {"users": 0, "resources": 0, "inventory": 0, "reservations": 0}

    users = {user.email: user for user in await repos.users.get_all()}
    for fields in USERS:
        if fields["email"] not in users:
            users[fields["email"]] = await repos.users.create(fields)
            created["users"] += 1

    resources = {resource.name: resource for resource in await repos.resources.get_all()}
    for fields in RESOURCES:
        if fields["name"] not in resources:
            resources[fields["name"]] = await repos.resources.create(fields)
            created["resources"] += 1

    stocked = {item.name for item in await repos.inventory.get_all()}
    for fields in INVENTORY:
        if fields["name"] not in stocked:
            await repos.inventory.create(fields)
            created["inventory"] += 1

    if not await repos.reservations.get_all():
        pending = await repos.reservations.create(
            {
                "resourceId": resources["Pool"].id,
                "userId": users["lucia@vistabuena.com"].id,
                "date": (today + timedelta(days=2)).isoformat(),
                "startTime": "10:00",
                "endTime": "11:00",
            }
        )
        approved = await repos.reservations.create(
            {
                "resourceId": resources["Event Salon"].id,
                "userId": users["pedro@vistabuena.com"].id,
                "date": (today + timedelta(days=5)).isoformat(),
                "startTime": "18:00",
                "endTime": "23:00",
            }
        )
        await repos.reservations.approve(approved.id)
        completed = await repos.reservations.create(
            {
                "resourceId": resources["Gym"].id,
                "userId": users["sofia@vistabuena.com"].id,
                "date": (today - timedelta(days=3)).isoformat(),
                "startTime": "07:00",
                "endTime": "08:00",
            }
        )
        await repos.reservations.approve(completed.id)
        await repos.reservations.complete(completed.id)
        created["reservations"] = 3
        LOGGER.debug("Seeded reservations %s, %s, %s", pending.id, approved.id, completed.id)

    LOGGER.info("Seed complete: %s", created)
    return created
